"""Conversation data model: messages, tool calls and tool results."""

import json
from dataclasses import dataclass, field, asdict
from typing import Iterable, Iterator, List, Optional, Tuple

__all__ = ["ToolCallRequest", "ToolResult", "Message", "Conversation",
           "USER", "ASSISTANT", "TOOL"]

USER = "user"
ASSISTANT = "assistant"
TOOL = "tool"
ROLES = (USER, ASSISTANT, TOOL)


@dataclass(frozen=True)
class ToolCallRequest:
    name: str
    raw_arguments: str = ""
    id: str = ""


@dataclass(frozen=True)
class ToolResult:
    tool_name: str
    output: str
    failed: bool = False
    error: str = ""
    call_id: str = ""

    def render(self) -> str:
        text = self.output
        if self.failed:
            if text and not text.endswith("\n"):
                text += "\n"
            text += f"error: {self.error}\n"
        return text


@dataclass(frozen=True)
class Message:
    role: str
    content: str = ""
    tool_calls: Tuple[ToolCallRequest, ...] = ()
    tool_results: Tuple[ToolResult, ...] = ()

    def __post_init__(self):
        if self.role not in ROLES:
            raise ValueError(f"unknown role: {self.role!r}")
        if self.tool_calls and self.role != ASSISTANT:
            raise ValueError("only assistant messages carry tool calls")

    @classmethod
    def user(cls, content: str) -> "Message":
        return cls(role=USER, content=content)

    @classmethod
    def assistant(cls, content: str,
                  tool_calls: Iterable[ToolCallRequest] = ()) -> "Message":
        return cls(role=ASSISTANT, content=content, tool_calls=tuple(tool_calls))

    @classmethod
    def from_tool_results(cls, results: Iterable[ToolResult]) -> "Message":
        """Fold all results of one turn into a single tool message keyed by tool name."""
        results = tuple(results)
        blocks = [f"[{r.tool_name}]\n{r.render()}".rstrip("\n") for r in results]
        return cls(role=TOOL, content="\n\n".join(blocks), tool_results=results)

    def to_dict(self) -> dict:
        data = {"role": self.role, "content": self.content}
        if self.tool_calls:
            data["tool_calls"] = [asdict(tc) for tc in self.tool_calls]
        if self.tool_results:
            data["tool_results"] = [asdict(r) for r in self.tool_results]
        return data


@dataclass
class Conversation:
    """Ordered transcript replayed to the backend on every turn."""

    _messages: List[Message] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self._messages)

    def __iter__(self) -> Iterator[Message]:
        return iter(self._messages)

    def __getitem__(self, index):
        return self._messages[index]

    @property
    def last(self) -> Optional[Message]:
        return self._messages[-1] if self._messages else None

    def append(self, message: Message) -> None:
        if message.role == TOOL:
            prev = self.last
            if prev is None or prev.role != ASSISTANT or not prev.tool_calls:
                raise ValueError("tool message must follow an assistant message with tool calls")
        self._messages.append(message)

    def snapshot(self) -> List[Message]:
        return list(self._messages)

    def replace_with_summary(self, summary: Message) -> None:
        if summary.role != USER:
            raise ValueError("summary must be a user message")
        self._messages = [summary]

    def dump(self) -> str:
        """Indented JSON of every message, for diagnostics after a failure."""
        return "\n".join(
            json.dumps(m.to_dict(), indent=4, ensure_ascii=False) for m in self._messages
        )

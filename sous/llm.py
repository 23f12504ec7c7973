"""Chat transport via litellm."""

from dataclasses import dataclass
from typing import Any, Dict, Iterable, Iterator, List, Optional, Protocol, Sequence, Tuple

import litellm
litellm.suppress_debug_info = True

from .cancellation import CancelScope
from .conversation import ASSISTANT, TOOL, Message
from .errors import RequestCancelled, TransportError
from .logger import get_logger

_log = get_logger(__name__)

__all__ = ["ToolCallDelta", "Fragment", "ChatTransport", "LLMAdapter",
           "DEFAULT_SYSTEM_PROMPT", "to_wire_messages"]


@dataclass(frozen=True)
class ToolCallDelta:
    """Partial tool-call data. ``index`` groups deltas of one call; ``None`` means complete."""
    index: Optional[int] = None
    id: str = ""
    name: str = ""
    arguments: str = ""


@dataclass(frozen=True)
class Fragment:
    content_delta: str = ""
    tool_call_deltas: Tuple[ToolCallDelta, ...] = ()
    reasoning_delta: str = ""
    is_final: bool = False


class ChatTransport(Protocol):
    def stream_turn(self, scope: CancelScope, messages: Sequence[Message],
                    tools: Sequence[Any]) -> Iterator[Fragment]:
        ...


DEFAULT_SYSTEM_PROMPT = """\
You are Sous, a coding assistant running inside the user's project directory.
You can inspect and change the project with the tools readFile, listFiles,
searchFile, writeFile, createFile and shell.

## Rules:
- All paths are relative to the project root.
- Look before you change: list and read files first.
- If a tool reports an error, read it and retry with corrected arguments.
- Respond in the same language the user uses.
"""


def _raise_if_interrupted(scope: CancelScope, error: BaseException) -> None:
    """An interrupt raised inside litellm may come back wrapped in its own error types."""
    if scope.cancelled or isinstance(error, RequestCancelled):
        raise RequestCancelled("request cancelled") from error


def to_wire_messages(messages: Iterable[Message]) -> List[Dict[str, Any]]:
    """Translate the conversation into OpenAI-style chat messages."""
    wire: List[Dict[str, Any]] = []
    for msg in messages:
        if msg.role == ASSISTANT and msg.tool_calls:
            wire.append({
                "role": "assistant",
                "content": msg.content or None,
                "tool_calls": [
                    {"id": tc.id, "type": "function",
                     "function": {"name": tc.name, "arguments": tc.raw_arguments or "{}"}}
                    for tc in msg.tool_calls
                ],
            })
        elif msg.role == TOOL and msg.tool_results and all(r.call_id for r in msg.tool_results):
            # One folded message in history, one wire message per call id.
            for result in msg.tool_results:
                wire.append({"role": "tool", "tool_call_id": result.call_id,
                             "name": result.tool_name, "content": result.render()})
        else:
            wire.append({"role": msg.role, "content": msg.content})
    return wire


class LLMAdapter:
    """Unified LLM interface. Passes api_key/api_base directly to litellm,
    avoiding env-var pollution when switching between providers."""

    def __init__(self, model: str, temperature: float = 0.0,
                 max_tokens: int = 4096, api_base: Optional[str] = None,
                 api_key: Optional[str] = None, stream: bool = True,
                 system_prompt: Optional[str] = DEFAULT_SYSTEM_PROMPT):
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.api_base = api_base
        self.api_key = api_key
        self.stream = stream
        self.system_prompt = system_prompt

    def _request_kwargs(self, messages: Sequence[Message], tools: Sequence[Any],
                        stream: bool) -> Dict[str, Any]:
        wire = to_wire_messages(messages)
        if self.system_prompt:
            wire.insert(0, {"role": "system", "content": self.system_prompt})
        kwargs: Dict[str, Any] = {
            "model": self.model, "messages": wire,
            "temperature": self.temperature, "max_tokens": self.max_tokens,
        }
        if stream:
            kwargs["stream"] = True
        schemas = list(tools)
        if schemas:
            kwargs["tools"] = schemas
            kwargs["tool_choice"] = "auto"
        if self.api_base:
            kwargs["api_base"] = self.api_base
        if self.api_key:
            kwargs["api_key"] = self.api_key
        return kwargs

    def _completion(self, scope: CancelScope, kwargs: Dict[str, Any]):
        try:
            return litellm.completion(**kwargs)
        except Exception as e:
            _raise_if_interrupted(scope, e)
            if isinstance(e, litellm.exceptions.AuthenticationError):
                raise TransportError(f"Auth failed. Check API key.\n{e}") from e
            if isinstance(e, litellm.exceptions.APIConnectionError):
                raise TransportError(
                    f"Cannot connect: model={self.model}, base={self.api_base or 'default'}\n{e}"
                ) from e
            raise TransportError(f"LLM error: {type(e).__name__}: {e}") from e

    def chat(self, scope: CancelScope, messages: Sequence[Message],
             tools: Sequence[Any]) -> Fragment:
        """Single request/response. Returns the whole reply as one final fragment."""
        scope.raise_if_cancelled()
        response = self._completion(scope, self._request_kwargs(messages, tools, stream=False))
        msg = response.choices[0].message
        deltas = tuple(
            ToolCallDelta(id=tc.id or "", name=tc.function.name or "",
                          arguments=tc.function.arguments or "")
            for tc in (msg.tool_calls or [])
        )
        return Fragment(
            content_delta=msg.content or "",
            tool_call_deltas=deltas,
            reasoning_delta=getattr(msg, "reasoning_content", None) or "",
            is_final=True,
        )

    def stream_turn(self, scope: CancelScope, messages: Sequence[Message],
                    tools: Sequence[Any]) -> Iterator[Fragment]:
        """Streaming chat. Yields Fragments; the last one has ``is_final`` set.

        Falls back to non-streaming when the stream cannot be opened.
        """
        if not self.stream:
            yield self.chat(scope, messages, tools)
            return

        try:
            response_stream = litellm.completion(**self._request_kwargs(messages, tools, stream=True))
        except Exception as e:
            _raise_if_interrupted(scope, e)
            _log.warning("Streaming request failed (%s), retrying without streaming", e)
            yield self.chat(scope, messages, tools)
            return

        final_sent = False
        try:
            for chunk in response_stream:
                # Usage-only chunk (some providers)
                if not chunk.choices:
                    continue
                choice = chunk.choices[0]
                delta = choice.delta
                tool_deltas = []
                for tc in getattr(delta, "tool_calls", None) or []:
                    fn = getattr(tc, "function", None)
                    tool_deltas.append(ToolCallDelta(
                        index=getattr(tc, "index", None),
                        id=getattr(tc, "id", None) or "",
                        name=(getattr(fn, "name", None) or "") if fn else "",
                        arguments=(getattr(fn, "arguments", None) or "") if fn else "",
                    ))
                final_sent = choice.finish_reason is not None
                yield Fragment(
                    content_delta=getattr(delta, "content", None) or "",
                    tool_call_deltas=tuple(tool_deltas),
                    reasoning_delta=getattr(delta, "reasoning_content", None) or "",
                    is_final=final_sent,
                )
                if final_sent:
                    return
        except Exception as e:
            _raise_if_interrupted(scope, e)
            raise TransportError(f"Stream interrupted: {type(e).__name__}: {e}") from e
        finally:
            close = getattr(response_stream, "close", None)
            if callable(close):
                try:
                    close()
                except Exception:
                    _log.debug("Closing response stream failed", exc_info=True)

        if not final_sent:
            yield Fragment(is_final=True)


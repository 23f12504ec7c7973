"""Response accumulation: one streamed turn in, one assistant message out."""

import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterable, List, Optional

from . import output
from .cancellation import ActiveRequestGuard, CancelScope
from .conversation import Message, ToolCallRequest
from .errors import RequestCancelled, TransportError
from .llm import ChatTransport, Fragment, ToolCallDelta
from .logger import get_logger
from .tools import ToolRegistry

_log = get_logger(__name__)

__all__ = ["ReasoningState", "ResponseAccumulator", "DEFAULT_REASONING_OPEN",
           "DEFAULT_REASONING_CLOSE"]

DEFAULT_REASONING_OPEN = "<think>"
DEFAULT_REASONING_CLOSE = "</think>"


class ReasoningState(Enum):
    NORMAL = "normal"
    REASONING = "reasoning"


@dataclass
class _PendingCall:
    id: str = ""
    name: str = ""
    arguments: str = ""

    def merge(self, delta: ToolCallDelta) -> None:
        if delta.id:
            self.id = delta.id
        if delta.name:
            self.name = delta.name
        self.arguments += delta.arguments

    def freeze(self) -> ToolCallRequest:
        return ToolCallRequest(name=self.name, raw_arguments=self.arguments,
                               id=self.id or f"call_{uuid.uuid4().hex[:12]}")


@dataclass
class _TurnState:
    content: List[str] = field(default_factory=list)
    calls: List[_PendingCall] = field(default_factory=list)
    by_index: Dict[int, _PendingCall] = field(default_factory=dict)
    reasoning: ReasoningState = ReasoningState.NORMAL
    reasoning_chars: int = 0

    def add_call_delta(self, delta: ToolCallDelta) -> None:
        if delta.index is None:
            pending = _PendingCall()
            self.calls.append(pending)
        else:
            pending = self.by_index.get(delta.index)
            if pending is None:
                pending = _PendingCall()
                self.by_index[delta.index] = pending
                self.calls.append(pending)
        pending.merge(delta)


class ResponseAccumulator:
    """Runs one turn against the transport and rebuilds the assistant message.

    Each call registers a fresh child cancellation scope as the active request,
    so an external interrupt can cancel exactly this turn.
    """

    def __init__(self, transport: ChatTransport, registry: ToolRegistry,
                 active: ActiveRequestGuard, *,
                 reasoning_open: str = DEFAULT_REASONING_OPEN,
                 reasoning_close: str = DEFAULT_REASONING_CLOSE,
                 keep_reasoning: bool = False):
        self.transport = transport
        self.registry = registry
        self.active = active
        self.reasoning_open = reasoning_open
        self.reasoning_close = reasoning_close
        self.keep_reasoning = keep_reasoning

    def run_turn(self, scope: CancelScope, conversation: Iterable[Message],
                 echo: bool = True) -> Message:
        messages = list(conversation)
        with self.active.activate(scope) as request_scope:
            fragments = self.transport.stream_turn(request_scope, messages, self.registry.schemas())
            return self._consume(request_scope, fragments, echo)

    def _consume(self, scope: CancelScope, fragments: Iterable[Fragment],
                 echo: bool) -> Message:
        state = _TurnState()
        finished = False
        if echo:
            output.print_label()
        iterator = iter(fragments)
        try:
            for fragment in iterator:
                if scope.cancelled:
                    raise RequestCancelled("request cancelled", partial="".join(state.content))
                self._apply(state, fragment, echo)
                if fragment.is_final:
                    finished = True
                    break
        except RequestCancelled as e:
            e.partial = e.partial or "".join(state.content)
            raise
        except TransportError:
            raise
        except Exception as e:
            if scope.cancelled:
                raise RequestCancelled("request cancelled", partial="".join(state.content)) from e
            raise TransportError(f"Streaming error: {type(e).__name__}: {e}") from e
        finally:
            close = getattr(iterator, "close", None)
            if callable(close):
                close()
            if echo:
                output.end_line()

        if not finished:
            raise TransportError("Stream ended without completion")

        if state.reasoning_chars:
            _log.info("Turn produced %d reasoning chars", state.reasoning_chars)
        return Message.assistant("".join(state.content),
                                 [pending.freeze() for pending in state.calls])

    def _apply(self, state: _TurnState, fragment: Fragment, echo: bool) -> None:
        if fragment.reasoning_delta:
            state.reasoning_chars += len(fragment.reasoning_delta)
            if echo:
                output.print_think(fragment.reasoning_delta)

        text = fragment.content_delta
        if text:
            marker = text.strip()
            if marker == self.reasoning_open and state.reasoning is ReasoningState.NORMAL:
                state.reasoning = ReasoningState.REASONING
                if echo:
                    output.print_think(text)
                if self.keep_reasoning:
                    state.content.append(text)
            elif marker == self.reasoning_close and state.reasoning is ReasoningState.REASONING:
                state.reasoning = ReasoningState.NORMAL
                if echo:
                    output.print_think(text)
                if self.keep_reasoning:
                    state.content.append(text)
            elif state.reasoning is ReasoningState.REASONING:
                state.reasoning_chars += len(text)
                if echo:
                    output.print_think(text)
                if self.keep_reasoning:
                    state.content.append(text)
            else:
                if echo:
                    output.print_answer(text)
                state.content.append(text)

        for delta in fragment.tool_call_deltas:
            state.add_call_delta(delta)

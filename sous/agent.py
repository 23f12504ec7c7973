"""Conversation loop: user input, streamed turns, tool dispatch, compaction."""

from typing import Callable, Optional

from . import output
from .accumulator import DEFAULT_REASONING_CLOSE, DEFAULT_REASONING_OPEN, ResponseAccumulator
from .cancellation import ActiveRequestGuard, CancelScope
from .compactor import ContextCompactor
from .conversation import Conversation, Message
from .errors import AgentError, RequestCancelled, TransportError
from .llm import ChatTransport
from .logger import get_logger
from .notify import Notifier
from .tools import ToolDispatcher, ToolRegistry

_log = get_logger(__name__)

__all__ = ["Agent", "InputSource", "DEFAULT_COMPACTION_THRESHOLD"]

DEFAULT_COMPACTION_THRESHOLD = 10

# Returns the next line typed by the operator, or None at end of input.
InputSource = Callable[[], Optional[str]]


class Agent:
    def __init__(self, transport: ChatTransport, registry: ToolRegistry,
                 read_input: InputSource, *,
                 compaction_threshold: int = DEFAULT_COMPACTION_THRESHOLD,
                 notifier: Optional[Notifier] = None,
                 reasoning_open: str = DEFAULT_REASONING_OPEN,
                 reasoning_close: str = DEFAULT_REASONING_CLOSE,
                 keep_reasoning: bool = False,
                 echo: bool = True):
        if compaction_threshold < 1:
            raise ValueError("compaction_threshold must be at least 1")
        self.registry = registry
        self.read_input = read_input
        self.compaction_threshold = compaction_threshold
        self.notifier = notifier or Notifier(enabled=False)
        self.echo = echo
        self.conversation = Conversation()
        self._active = ActiveRequestGuard()
        self.accumulator = ResponseAccumulator(
            transport, registry, self._active,
            reasoning_open=reasoning_open,
            reasoning_close=reasoning_close,
            keep_reasoning=keep_reasoning,
        )
        self.dispatcher = ToolDispatcher(registry, echo=echo)
        self.compactor = ContextCompactor(self.accumulator)

    # ── Interrupt surface (may be called from a signal handler) ──

    def interrupt(self) -> bool:
        """Cancel the in-flight turn. False means nothing was running."""
        cancelled = self._active.cancel()
        if cancelled:
            _log.info("Active request cancelled by interrupt")
        return cancelled

    @property
    def is_running(self) -> bool:
        return self._active.is_active

    # ── Loop ──

    def run(self, scope: Optional[CancelScope] = None) -> None:
        """Drive turns until end of input. Raises TransportError on backend failure."""
        scope = scope or CancelScope()
        read_user_input = True

        while True:
            scope.raise_if_cancelled("session cancelled")

            if len(self.conversation) > self.compaction_threshold:
                self._compact(scope)

            if read_user_input:
                user_input = self._next_input()
                if user_input is None:
                    _log.info("End of input, leaving conversation loop")
                    return
                self.conversation.append(Message.user(user_input))

            try:
                message = self.accumulator.run_turn(scope, self.conversation, echo=self.echo)
            except RequestCancelled:
                if scope.cancelled:
                    raise
                if self.echo:
                    output.print_action("(cancelled)")
                read_user_input = True
                continue
            except TransportError as e:
                e.transcript = self.conversation.dump()
                _log.error("Transport error: %s", e)
                if self.echo:
                    output.console.print(e.transcript, markup=False, highlight=False)
                raise

            self.conversation.append(message)

            if not message.tool_calls:
                read_user_input = True
                self.notifier.notify()
                continue

            results = self.dispatcher.dispatch(message.tool_calls)
            self.conversation.append(Message.from_tool_results(results))
            read_user_input = False

    def _next_input(self) -> Optional[str]:
        while True:
            line = self.read_input()
            if line is None:
                return None
            if line.strip():
                return line

    def _compact(self, scope: CancelScope) -> None:
        if self.echo:
            output.print_action("SUMMARIZING...")
        try:
            summary = self.compactor.compact(scope, self.conversation.snapshot())
        except RequestCancelled:
            if scope.cancelled:
                raise
            _log.warning("Compaction cancelled, keeping %d messages", len(self.conversation))
            return
        except AgentError as e:
            _log.warning("Compaction failed, keeping %d messages: %s", len(self.conversation), e)
            if self.echo:
                output.print_error(str(e), title="Compaction failed")
            return
        self.conversation.replace_with_summary(summary)
        if self.echo:
            output.print_action(f"NEW CONVO LEN={len(self.conversation)}")

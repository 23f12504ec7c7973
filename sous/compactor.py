"""Context compaction: replace a long history with one backend-written summary."""

from typing import Iterable

from .accumulator import ResponseAccumulator
from .cancellation import CancelScope
from .conversation import Message
from .errors import CompactionError
from .logger import get_logger

_log = get_logger(__name__)

SUMMARY_INSTRUCTION = (
    "Please summarize the active conversation so that you can pick up your work from here. "
    "Include the original user instructions so that you do not lose the context of the task "
    "at hand, and include every previous tool call with its outcome. "
    "Write the summary as a self-contained task description."
)
SUMMARY_HEADER = "[Conversation summary: original task and earlier tool calls preserved]"


class ContextCompactor:
    def __init__(self, accumulator: ResponseAccumulator):
        self.accumulator = accumulator

    def compact(self, scope: CancelScope, conversation: Iterable[Message]) -> Message:
        """Ask the backend to summarize ``conversation``; the input is never mutated.

        The summary comes back as a ``user`` message so that, as the only entry in
        history, it reads as a restated task rather than an assistant continuation.
        """
        messages = list(conversation)
        original_len = len(messages)
        messages.append(Message.user(SUMMARY_INSTRUCTION))

        reply = self.accumulator.run_turn(scope, messages, echo=False)
        summary = reply.content.strip()
        if not summary:
            raise CompactionError("backend returned an empty summary")
        if reply.tool_calls:
            _log.info("Dropping %d tool calls from summary reply", len(reply.tool_calls))

        _log.info("Compacted %d messages into %d chars", original_len, len(summary))
        return Message.user(f"{SUMMARY_HEADER}\n\n{summary}")

import pytest
from conftest import FakeTransport, text_turn, tool_turn

from sous.accumulator import ResponseAccumulator
from sous.cancellation import ActiveRequestGuard, CancelScope
from sous.compactor import SUMMARY_HEADER, SUMMARY_INSTRUCTION, ContextCompactor
from sous.conversation import Message
from sous.errors import CompactionError


def _compactor(turns, registry):
    transport = FakeTransport(turns)
    acc = ResponseAccumulator(transport, registry, ActiveRequestGuard())
    return ContextCompactor(acc), transport


def _history():
    return [Message.user("fix the bug in app.py"), Message.assistant("Looking at it.")]


def test_summary_is_user_message(registry):
    compactor, _ = _compactor([text_turn("Task: fix app.py. ", "Read app.py already.")], registry)
    summary = compactor.compact(CancelScope(), _history())
    assert summary.role == "user"
    assert summary.content == f"{SUMMARY_HEADER}\n\nTask: fix app.py. Read app.py already."


def test_history_not_mutated(registry):
    compactor, transport = _compactor([text_turn("summary")], registry)
    history = _history()
    compactor.compact(CancelScope(), history)

    assert history == _history()
    sent = transport.requests[0]
    assert sent[:2] == history
    assert sent[-1] == Message.user(SUMMARY_INSTRUCTION)


def test_empty_summary_rejected(registry):
    compactor, _ = _compactor([text_turn("  ")], registry)
    with pytest.raises(CompactionError, match="empty summary"):
        compactor.compact(CancelScope(), _history())


def test_tool_calls_in_summary_dropped(registry):
    compactor, _ = _compactor([tool_turn(("shell", '{"command": "ls"}'), text="Summary text")],
                              registry)
    summary = compactor.compact(CancelScope(), _history())
    assert summary.tool_calls == ()
    assert summary.content.endswith("Summary text")

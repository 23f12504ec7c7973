"""Tests for the conversation model."""

import json

import pytest

from sous.conversation import Conversation, Message, ToolCallRequest, ToolResult
from sous.llm import to_wire_messages


def _assistant_with_call():
    return Message.assistant("", [ToolCallRequest("listFiles", '{"dirPath": "."}', id="c1")])


class TestMessage:
    def test_unknown_role_rejected(self):
        with pytest.raises(ValueError, match="unknown role"):
            Message(role="system", content="x")

    def test_only_assistant_carries_tool_calls(self):
        with pytest.raises(ValueError):
            Message(role="user", content="x", tool_calls=(ToolCallRequest("shell"),))

    def test_tool_results_folded_in_order(self):
        msg = Message.from_tool_results([
            ToolResult("readFile", "a\n"),
            ToolResult("shell", "", failed=True, error="exit status 1"),
            ToolResult("readFile", "b\n"),
        ])
        assert msg.role == "tool"
        assert msg.content == "[readFile]\na\n\n[shell]\nerror: exit status 1\n\n[readFile]\nb"
        assert len(msg.tool_results) == 3


class TestConversation:
    def test_tool_message_needs_assistant_call(self):
        convo = Conversation()
        convo.append(Message.user("hi"))
        with pytest.raises(ValueError, match="must follow"):
            convo.append(Message.from_tool_results([ToolResult("shell", "")]))

    def test_replace_with_summary(self):
        convo = Conversation()
        convo.append(Message.user("a"))
        convo.append(Message.assistant("b"))
        convo.replace_with_summary(Message.user("summary"))
        assert len(convo) == 1
        assert convo.last.content == "summary"

    def test_summary_must_be_user(self):
        with pytest.raises(ValueError):
            Conversation().replace_with_summary(Message.assistant("x"))

    def test_dump_is_json_per_message(self):
        convo = Conversation()
        convo.append(Message.user("list files"))
        convo.append(_assistant_with_call())
        blocks = convo.dump().split("\n}\n")
        assert len(blocks) == 2
        first = json.loads(blocks[0] + "\n}")
        assert first == {"role": "user", "content": "list files"}
        assert '"name": "listFiles"' in convo.dump()


class TestWireMessages:
    def test_tool_results_expand_per_call_id(self):
        results = [ToolResult("listFiles", "a.txt", call_id="c1"),
                   ToolResult("readFile", "", failed=True, error="nope", call_id="c2")]
        wire = to_wire_messages([Message.user("go"), _assistant_with_call(),
                                 Message.from_tool_results(results)])
        assert wire[1]["tool_calls"][0]["id"] == "c1"
        assert wire[1]["content"] is None
        assert wire[2] == {"role": "tool", "tool_call_id": "c1", "name": "listFiles",
                           "content": "a.txt"}
        assert wire[3]["tool_call_id"] == "c2"
        assert wire[3]["content"] == "error: nope\n"

    def test_folded_content_without_ids(self):
        msg = Message.from_tool_results([ToolResult("shell", "ok")])
        assert to_wire_messages([msg]) == [{"role": "tool", "content": "[shell]\nok"}]

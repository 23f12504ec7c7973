from types import SimpleNamespace

import pytest

import sous.llm as llm_module
from sous.cancellation import CancelScope
from sous.conversation import Message
from sous.errors import RequestCancelled, TransportError
from sous.llm import LLMAdapter


def _chunk(content=None, tool_calls=None, finish_reason=None, reasoning=None):
    delta = SimpleNamespace(content=content, tool_calls=tool_calls, reasoning_content=reasoning)
    return SimpleNamespace(choices=[SimpleNamespace(delta=delta, finish_reason=finish_reason)])


def _tc(index, id=None, name=None, arguments=None):
    return SimpleNamespace(index=index, id=id,
                           function=SimpleNamespace(name=name, arguments=arguments))


def _adapter(**kwargs):
    return LLMAdapter(model="ollama_chat/qwen3:14b", api_base="http://localhost:11434", **kwargs)


def test_stream_fragments(monkeypatch):
    calls = []

    def fake_completion(**kwargs):
        calls.append(kwargs)
        return iter([
            _chunk(reasoning="hm"),
            SimpleNamespace(choices=[]),
            _chunk(content="Hi"),
            _chunk(tool_calls=[_tc(0, id="c1", name="listFiles", arguments='{"dirPath"')]),
            _chunk(tool_calls=[_tc(0, arguments=': "."}')], finish_reason="tool_calls"),
        ])

    monkeypatch.setattr(llm_module.litellm, "completion", fake_completion)
    frags = list(_adapter().stream_turn(CancelScope(), [Message.user("hi")], []))

    assert [f.reasoning_delta for f in frags][0] == "hm"
    assert frags[1].content_delta == "Hi"
    assert frags[2].tool_call_deltas[0].name == "listFiles"
    assert frags[-1].is_final
    assert sum(f.is_final for f in frags) == 1
    sent = calls[0]
    assert sent["stream"] is True
    assert sent["messages"][0]["role"] == "system"
    assert sent["messages"][1] == {"role": "user", "content": "hi"}
    assert "tools" not in sent


def test_system_prompt_optional(monkeypatch):
    calls = []
    monkeypatch.setattr(llm_module.litellm, "completion",
                        lambda **kw: calls.append(kw) or iter([_chunk(content="x", finish_reason="stop")]))
    list(_adapter(system_prompt=None).stream_turn(CancelScope(), [Message.user("hi")], []))
    assert calls[0]["messages"] == [{"role": "user", "content": "hi"}]


def test_stream_without_finish_reason_gets_final(monkeypatch):
    monkeypatch.setattr(llm_module.litellm, "completion", lambda **kw: iter([_chunk(content="a")]))
    frags = list(_adapter().stream_turn(CancelScope(), [Message.user("hi")], []))
    assert frags[-1].is_final
    assert frags[0].content_delta == "a"


def test_falls_back_to_non_streaming(monkeypatch):
    reply = SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(
        content="done",
        tool_calls=[SimpleNamespace(id="c9", function=SimpleNamespace(name="shell",
                                                                      arguments='{"command": "ls"}'))],
    ))])

    def fake_completion(**kwargs):
        if kwargs.get("stream"):
            raise RuntimeError("streaming unsupported")
        return reply

    monkeypatch.setattr(llm_module.litellm, "completion", fake_completion)
    [frag] = list(_adapter().stream_turn(CancelScope(), [Message.user("hi")], []))
    assert frag.is_final
    assert frag.content_delta == "done"
    assert frag.tool_call_deltas[0].index is None
    assert frag.tool_call_deltas[0].id == "c9"


def test_stream_false_uses_single_call(monkeypatch):
    calls = []
    reply = SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content="ok", tool_calls=None))])
    monkeypatch.setattr(llm_module.litellm, "completion", lambda **kw: calls.append(kw) or reply)
    [frag] = list(_adapter(stream=False).stream_turn(CancelScope(), [Message.user("hi")], []))
    assert frag.content_delta == "ok"
    assert "stream" not in calls[0]


def test_errors_wrapped(monkeypatch):
    def boom(**kwargs):
        raise ValueError("bad request")

    monkeypatch.setattr(llm_module.litellm, "completion", boom)
    with pytest.raises(TransportError, match="LLM error: ValueError"):
        list(_adapter().stream_turn(CancelScope(), [Message.user("hi")], []))


def test_interrupted_stream(monkeypatch):
    def chunks():
        yield _chunk(content="a")
        raise ConnectionError("reset")

    monkeypatch.setattr(llm_module.litellm, "completion", lambda **kw: chunks())
    with pytest.raises(TransportError, match="Stream interrupted"):
        list(_adapter().stream_turn(CancelScope(), [Message.user("hi")], []))


def test_tools_sent_as_schemas(monkeypatch, registry):
    calls = []
    monkeypatch.setattr(llm_module.litellm, "completion",
                        lambda **kw: calls.append(kw) or iter([_chunk(content="x", finish_reason="stop")]))
    list(_adapter().stream_turn(CancelScope(), [Message.user("hi")], registry.schemas()))
    assert calls[0]["tools"] == registry.schemas()
    assert calls[0]["tool_choice"] == "auto"


def test_interrupt_during_blocking_call_is_cancellation(monkeypatch):
    def interrupted(**kwargs):
        raise RequestCancelled("interrupted")

    monkeypatch.setattr(llm_module.litellm, "completion", interrupted)
    with pytest.raises(RequestCancelled):
        list(_adapter().stream_turn(CancelScope(), [Message.user("hi")], []))
    with pytest.raises(RequestCancelled):
        list(_adapter(stream=False).stream_turn(CancelScope(), [Message.user("hi")], []))


def test_wrapped_error_after_cancel_is_cancellation(monkeypatch):
    scope = CancelScope()

    def cancelled_then_wrapped(**kwargs):
        scope.cancel()
        raise RuntimeError("APIConnectionError: connection aborted")

    monkeypatch.setattr(llm_module.litellm, "completion", cancelled_then_wrapped)
    with pytest.raises(RequestCancelled) as excinfo:
        _adapter(stream=False).chat(scope, [Message.user("hi")], [])
    assert isinstance(excinfo.value.__cause__, RuntimeError)

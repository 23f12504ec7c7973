"""Shared fixtures for sous tests."""

import os
from typing import Callable, List, Optional, Sequence

import pytest
import yaml

from sous.llm import Fragment, ToolCallDelta
from sous.tools import build_default_registry


@pytest.fixture
def tmp_dir(tmp_path):
    """Provide a temporary directory and cd into it."""
    orig = os.getcwd()
    os.chdir(tmp_path)
    yield tmp_path
    os.chdir(orig)


@pytest.fixture
def isolated_home(tmp_path, monkeypatch):
    """Point the global config location at a scratch dir."""
    import sous.config as config_module

    home = tmp_path / "home" / ".sous"
    monkeypatch.setattr(config_module, "CONFIG_DIR", home)
    monkeypatch.setattr(config_module, "CONFIG_FILE", home / "config.yml")
    for var in ("SOUS_MODEL", "SOUS_VERBOSE", "SOUS_COMPACTION_THRESHOLD"):
        monkeypatch.delenv(var, raising=False)
    return home


@pytest.fixture
def sample_config_data():
    """Minimal .sous.yml data dict."""
    return {
        "active-model": "local",
        "compaction-threshold": 12,
        "reasoning-open": "<reason>",
        "reasoning-close": "</reason>",
        "keep-reasoning": False,
        "notify": True,
        "notify-command": "mpv --no-video ping.mp3",
        "command-timeout": 30,
        "verbose": False,
        "models": {
            "local": {
                "provider": "ollama",
                "model": "ollama_chat/qwen3:14b",
                "description": "Local test model",
                "temperature": 0.0,
                "max-tokens": 8192,
                "api-base": "http://localhost:11434",
            }
        },
    }


@pytest.fixture
def config_yaml_file(tmp_dir, sample_config_data):
    """Write a config YAML to tmp_dir and return its Path."""
    path = tmp_dir / ".sous.yml"
    with open(path, "w") as f:
        yaml.dump(sample_config_data, f, default_flow_style=False)
    return path


@pytest.fixture
def registry(tmp_path):
    return build_default_registry(str(tmp_path))


# ── Scripted transport ──


def text_turn(*chunks: str) -> List[Fragment]:
    """A reply streamed as text chunks, closed by a final fragment."""
    frags = [Fragment(content_delta=c) for c in chunks]
    frags.append(Fragment(is_final=True))
    return frags


def tool_turn(*calls, text: str = "") -> List[Fragment]:
    """A reply that requests ``calls`` given as (name, arguments_json) pairs."""
    deltas = tuple(
        ToolCallDelta(index=i, id=f"call_{i}", name=name, arguments=args)
        for i, (name, args) in enumerate(calls)
    )
    frags = [Fragment(content_delta=text)] if text else []
    frags.append(Fragment(tool_call_deltas=deltas, is_final=True))
    return frags


class FakeTransport:
    """Replays one scripted fragment list per turn and records what it was sent.

    A script entry may also be an exception instance (raised when the turn
    opens) or a callable ``(scope) -> iterable`` for custom streams.
    """

    def __init__(self, turns: Sequence):
        self.turns = list(turns)
        self.requests: List[list] = []
        self.tools_seen: Optional[list] = None

    def stream_turn(self, scope, messages, tools):
        self.requests.append(list(messages))
        self.tools_seen = list(tools)
        if not self.turns:
            raise AssertionError("transport called more times than scripted")
        turn = self.turns.pop(0)
        if isinstance(turn, Exception):
            raise turn
        if callable(turn):
            yield from turn(scope)
            return
        yield from turn


class ScriptedInput:
    """Input source returning queued lines, then None."""

    def __init__(self, lines: Sequence[str], on_read: Optional[Callable[[int], None]] = None):
        self.lines = list(lines)
        self.reads = 0
        self.on_read = on_read

    def __call__(self):
        self.reads += 1
        if self.on_read is not None:
            self.on_read(self.reads)
        if not self.lines:
            return None
        return self.lines.pop(0)

"""
Configuration: model presets plus session settings.

Loading priority:
  1. Project dir .sous.yml
  2. Git root .sous.yml
  3. Global ~/.sous/config.yml

``.env`` files in ~/.sous and the project dir are loaded first and never
override variables already set in the environment.
"""

import os
import shlex
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import yaml
from dotenv import load_dotenv

CONFIG_DIR = Path.home() / ".sous"
CONFIG_FILE = CONFIG_DIR / "config.yml"
HISTORY_FILE = CONFIG_DIR / "history.txt"
PROJECT_CONFIG_NAME = ".sous.yml"

DEFAULT_BLOCKED_COMMANDS = [
    "rm -rf /", "rm -rf /*", "mkfs", "> /dev/sda", ":(){:|:&};:",  # fork bomb
]


# ── Configuration metadata and validation ──


@dataclass
class ConfigFieldSpec:
    """Configuration field specification with validation rules."""
    key: str
    field_name: str
    description: str
    value_type: str  # "str", "int", "bool", "list"
    default: Any
    validator: Optional[Callable[[Any], tuple]] = None  # (valid, coerced_value, error_msg)


def _validate_int_range(value: Any, min_val: int, max_val: int) -> tuple:
    try:
        parsed = int(value)
    except (TypeError, ValueError):
        return False, 0, "Must be an integer"
    if parsed < min_val or parsed > max_val:
        return False, max(min_val, min(max_val, parsed)), f"Must be between {min_val} and {max_val}"
    return True, parsed, ""


def _validate_bool(value: Any) -> tuple:
    if isinstance(value, bool):
        return True, value, ""
    if isinstance(value, str):
        val_lower = value.strip().lower()
        if val_lower in ("1", "true", "yes", "on"):
            return True, True, ""
        if val_lower in ("0", "false", "no", "off"):
            return True, False, ""
    return False, False, "Must be true/false, yes/no, on/off, or 1/0"


def _validate_marker(value: Any) -> tuple:
    text = str(value or "").strip()
    if not text:
        return False, "", "Must be a non-empty marker string"
    return True, text, ""


def _validate_command(value: Any) -> tuple:
    if value is None or value == "":
        return True, [], ""
    if isinstance(value, str):
        try:
            return True, shlex.split(value), ""
        except ValueError as e:
            return False, [], f"Cannot parse command: {e}"
    if isinstance(value, list):
        return True, [str(item) for item in value], ""
    return False, [], "Must be a command string or a list of arguments"


CONFIG_FIELDS: Dict[str, ConfigFieldSpec] = {
    "active-model": ConfigFieldSpec(
        key="active-model", field_name="active_model",
        description="Currently active model preset name",
        value_type="str", default="local",
    ),
    "compaction-threshold": ConfigFieldSpec(
        key="compaction-threshold", field_name="compaction_threshold",
        description="Summarize the conversation once it holds more messages than this",
        value_type="int", default=10,
        validator=lambda v: _validate_int_range(v, 1, 1000),
    ),
    "reasoning-open": ConfigFieldSpec(
        key="reasoning-open", field_name="reasoning_open",
        description="Stream token that starts a thinking segment",
        value_type="str", default="<think>", validator=_validate_marker,
    ),
    "reasoning-close": ConfigFieldSpec(
        key="reasoning-close", field_name="reasoning_close",
        description="Stream token that ends a thinking segment",
        value_type="str", default="</think>", validator=_validate_marker,
    ),
    "keep-reasoning": ConfigFieldSpec(
        key="keep-reasoning", field_name="keep_reasoning",
        description="Keep thinking text in the stored conversation",
        value_type="bool", default=False, validator=_validate_bool,
    ),
    "notify": ConfigFieldSpec(
        key="notify", field_name="notify",
        description="Play a cue when the assistant is waiting for input",
        value_type="bool", default=True, validator=_validate_bool,
    ),
    "notify-command": ConfigFieldSpec(
        key="notify-command", field_name="notify_command",
        description="Command that plays the cue (empty = terminal bell)",
        value_type="list", default=[], validator=_validate_command,
    ),
    "command-timeout": ConfigFieldSpec(
        key="command-timeout", field_name="command_timeout",
        description="Shell tool timeout in seconds (0 = no timeout)",
        value_type="int", default=0,
        validator=lambda v: _validate_int_range(v, 0, 86400),
    ),
    "verbose": ConfigFieldSpec(
        key="verbose", field_name="verbose",
        description="Show INFO logs on the console",
        value_type="bool", default=False, validator=_validate_bool,
    ),
}


def validate_config_value(key: str, value: Any) -> tuple:
    """Validate a single config value. Returns (valid, coerced_value, error_msg)."""
    spec = CONFIG_FIELDS.get(key)
    if spec is None:
        return False, None, f"Unknown config key: {key}"
    if spec.validator is None:
        return True, value, ""
    return spec.validator(value)


@dataclass
class ModelPreset:
    name: str
    provider: str
    model: str
    api_base: Optional[str] = None
    api_key: Optional[str] = None
    api_key_env: Optional[str] = None
    temperature: float = 0.0
    max_tokens: int = 4096
    stream: bool = True
    description: str = ""

    def resolve_api_key(self) -> Optional[str]:
        if self.api_key:
            return self.api_key
        if self.api_key_env:
            return os.environ.get(self.api_key_env)
        env_map = {
            "openai": "OPENAI_API_KEY", "anthropic": "ANTHROPIC_API_KEY",
            "deepseek": "DEEPSEEK_API_KEY", "gemini": "GEMINI_API_KEY",
        }
        env_var = env_map.get(self.provider)
        return os.environ.get(env_var) if env_var else None

    def get_llm_kwargs(self) -> dict:
        """Return kwargs dict for LLMAdapter constructor, passed directly, no env vars."""
        return {
            "model": self.model,
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
            "api_base": self.api_base,
            "api_key": self.resolve_api_key(),
            "stream": self.stream,
        }


@dataclass
class Config:
    active_model: str = "local"
    models: Dict[str, ModelPreset] = field(default_factory=dict)
    compaction_threshold: int = 10
    reasoning_open: str = "<think>"
    reasoning_close: str = "</think>"
    keep_reasoning: bool = False
    notify: bool = True
    notify_command: List[str] = field(default_factory=list)
    command_timeout: int = 0
    blocked_commands: List[str] = field(default_factory=lambda: list(DEFAULT_BLOCKED_COMMANDS))
    system_prompt: Optional[str] = None
    verbose: bool = False
    log_file: Any = None
    project_root: Optional[str] = None
    _config_source: str = ""

    @classmethod
    def load(cls, project_dir: str = ".") -> "Config":
        config = cls()
        project_path = Path(project_dir).resolve()

        for env_path in [CONFIG_DIR / ".env", project_path / ".env"]:
            if env_path.exists():
                load_dotenv(env_path, override=False)

        git_root = cls._find_git_root(project_path)
        config_loaded = False
        for candidate in [
            project_path / PROJECT_CONFIG_NAME,
            (git_root / PROJECT_CONFIG_NAME) if git_root and git_root != project_path else None,
            CONFIG_FILE,
        ]:
            if candidate and candidate.exists():
                config._load_yaml(candidate)
                config._config_source = str(candidate)
                config_loaded = True
                break

        if not config_loaded:
            config._add_default_presets()

        config._apply_env()
        config.project_root = str(project_path)
        return config

    @classmethod
    def get_default_presets(cls) -> Dict[str, ModelPreset]:
        return {
            "local": ModelPreset(
                name="local", provider="ollama", model="ollama_chat/qwen3:14b",
                api_base="http://localhost:11434",
                description="Ollama on :11434",
            ),
            "lmstudio": ModelPreset(
                name="lmstudio", provider="openai", model="openai/local-model",
                api_base="http://localhost:1234/v1", api_key="not-needed",
                description="OpenAI-compatible server (LM Studio) on :1234",
            ),
        }

    def _add_default_presets(self):
        self.models = self.get_default_presets()
        self.active_model = "local"

    def _load_yaml(self, filepath: Path):
        try:
            with open(filepath) as f:
                data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError):
            self._add_default_presets()
            return

        self.active_model = str(data.get("active-model", "local"))
        for key, spec in CONFIG_FIELDS.items():
            if key == "active-model" or key not in data:
                continue
            valid, coerced, _ = validate_config_value(key, data[key])
            setattr(self, spec.field_name, coerced if valid else spec.default)
        if "blocked-commands" in data and isinstance(data["blocked-commands"], list):
            self.blocked_commands = [str(item) for item in data["blocked-commands"]]
        if data.get("system-prompt"):
            self.system_prompt = str(data["system-prompt"])
        if "log-file" in data:
            self.log_file = data["log-file"]

        self.models = {}
        for name, m in (data.get("models") or {}).items():
            m = m or {}
            self.models[name] = ModelPreset(
                name=name, provider=m.get("provider", "openai"),
                model=m.get("model", "openai/gpt-4o-mini"),
                api_base=m.get("api-base"), api_key=m.get("api-key"),
                api_key_env=m.get("api-key-env"),
                temperature=m.get("temperature", 0.0),
                max_tokens=m.get("max-tokens", 4096),
                stream=self._coerce_bool(m.get("stream", True), default=True),
                description=m.get("description", ""),
            )
        if not self.models:
            self._add_default_presets()

    def _apply_env(self):
        env_map = {
            "SOUS_MODEL": ("active_model", str),
            "SOUS_VERBOSE": ("verbose", lambda v: v.lower() in ("true", "1")),
            "SOUS_COMPACTION_THRESHOLD": (
                "compaction_threshold",
                lambda v: self._coerce_positive_int(v, default=self.compaction_threshold,
                                                    min_value=1, max_value=1000),
            ),
        }
        for env_var, (attr, conv) in env_map.items():
            val = os.environ.get(env_var)
            if val:
                try:
                    setattr(self, attr, conv(val))
                except (ValueError, TypeError):
                    pass

    def set_value(self, key: str, value: Any) -> Any:
        """Validate and apply one setting by its config-file key. Raises ValueError."""
        valid, coerced, error = validate_config_value(key, value)
        if not valid:
            raise ValueError(f"{key}: {error}")
        if key == "active-model" and coerced not in self.models:
            raise ValueError(f"active-model: unknown preset '{coerced}'")
        setattr(self, CONFIG_FIELDS[key].field_name, coerced)
        return coerced

    @property
    def source(self) -> str:
        return self._config_source

    def save(self, filepath: Optional[str] = None):
        target = Path(filepath) if filepath else (
            Path(self._config_source) if self._config_source else CONFIG_FILE
        )
        target.parent.mkdir(parents=True, exist_ok=True)

        data: Dict[str, Any] = {"active-model": self.active_model}
        for key, spec in CONFIG_FIELDS.items():
            data[key] = getattr(self, spec.field_name)
        data["blocked-commands"] = self.blocked_commands
        if self.system_prompt:
            data["system-prompt"] = self.system_prompt
        if self.log_file is not None:
            data["log-file"] = self.log_file if isinstance(self.log_file, bool) else str(self.log_file)
        data["models"] = {}
        for name, m in self.models.items():
            entry = {"provider": m.provider, "model": m.model,
                     "temperature": m.temperature, "max-tokens": m.max_tokens,
                     "stream": m.stream}
            if m.api_base:
                entry["api-base"] = m.api_base
            if m.api_key:
                entry["api-key"] = m.api_key
            if m.api_key_env:
                entry["api-key-env"] = m.api_key_env
            if m.description:
                entry["description"] = m.description
            data["models"][name] = entry

        with open(target, "w") as f:
            yaml.dump(data, f, default_flow_style=False, sort_keys=False, allow_unicode=True)
        self._config_source = str(target)

    def get_active_preset(self) -> ModelPreset:
        if self.active_model in self.models:
            return self.models[self.active_model]
        if self.models:
            return next(iter(self.models.values()))
        return self.get_default_presets()["local"]

    def summary(self) -> dict:
        p = self.get_active_preset()
        return {
            "Active model": f"{self.active_model} → {p.model}",
            "Provider": p.provider,
            "API base": p.api_base or "(provider default)",
            "API key": "set" if p.resolve_api_key() else "not set",
            "Streaming": "ON" if p.stream else "OFF",
            "Compaction threshold": self.compaction_threshold,
            "Reasoning markers": f"{self.reasoning_open} … {self.reasoning_close}",
            "Keep reasoning": "ON" if self.keep_reasoning else "OFF",
            "Notify": (" ".join(self.notify_command) or "bell") if self.notify else "OFF",
            "Command timeout": f"{self.command_timeout}s" if self.command_timeout else "none",
            "Project": self.project_root,
            "Config": self.source or "(defaults)",
        }

    @staticmethod
    def _coerce_bool(value, default: bool) -> bool:
        valid, coerced, _ = _validate_bool(value)
        return coerced if valid else default

    @staticmethod
    def _coerce_positive_int(value, default: int, min_value: int = 1, max_value: int = 100000) -> int:
        try:
            parsed = int(value)
        except (TypeError, ValueError):
            return default
        if parsed < min_value:
            return min_value
        if parsed > max_value:
            return max_value
        return parsed

    @staticmethod
    def _find_git_root(path: Path) -> Optional[Path]:
        current = path
        while current != current.parent:
            if (current / ".git").exists():
                return current
            current = current.parent
        return None

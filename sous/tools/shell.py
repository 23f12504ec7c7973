"""Shell command execution with safety guards."""

import os
import re
import subprocess
from pathlib import Path
from typing import Optional, Sequence

from ..errors import ShellBlockedError, ShellTimeoutError, ToolExecutionError
from ..logger import get_logger

_log = get_logger(__name__)

MAX_OUTPUT_CHARS = 16000


class ShellExecutor:
    """Run ``bash -c`` in the project root, refusing destructive commands."""

    # Regex signatures for high-risk commands.
    DANGEROUS_PATTERNS = [
        r"\brm\b\s+-[^\s;|&]*r[^\s;|&]*f[^\s;|&]*\s+/(?:\s|\*|$)",
        r"\b(?:mkfs(?:\.[a-z0-9_+\-]+)?|fdisk|parted|sfdisk|wipefs)\b",
        r"\bdd\b[^\n;|&]*\bof\s*=\s*/dev/",
        r":\s*\(\s*\)\s*\{\s*:\s*\|\s*:\s*&\s*\}\s*;\s*:",
        r"(?:>|>>)\s*/dev/sd[a-z]\d*",
        r"\b(?:curl|wget)\b[^\n;|&]*\|\s*(?:sh|bash|zsh|ksh)\b",
    ]

    _OPERATORS = "|&;<>"

    @classmethod
    def _blocklist_regex(cls, blocked: str) -> "re.Pattern":
        """Match a blocked command as whole words, tolerating quotes and spacing."""
        text = blocked.strip()
        parts = []
        for i, char in enumerate(text):
            if char.isspace():
                near_operator = (text[i - 1] in cls._OPERATORS
                                 or (i + 1 < len(text) and text[i + 1] in cls._OPERATORS))
                parts.append(r"\s*" if near_operator else r"\s+")
            elif char in cls._OPERATORS:
                parts.append(r"\s*" + re.escape(char) + r"\s*")
            elif char.isalnum():
                parts.append(re.escape(char) + r"['\"`\\]*")
            else:
                parts.append(re.escape(char))

        pattern = "".join(parts)
        if text[0].isalnum():
            pattern = r"\b" + pattern
        # "rm -rf /" must not match "rm -rf /tmp/build".
        pattern += r"\b" if text[-1].isalnum() else r"(?=[\s;&|)]|$)"
        return re.compile(pattern, re.IGNORECASE)

    def __init__(self, project_root: str, blocked_commands: Sequence[str] = None,
                 timeout: Optional[int] = None):
        self.project_root = Path(project_root).resolve()
        self.timeout = timeout or None
        self.blocked = [(b, self._blocklist_regex(b))
                        for b in (blocked_commands or []) if b.strip()]
        self._dangerous_regexes = [
            re.compile(pattern, re.IGNORECASE) for pattern in self.DANGEROUS_PATTERNS
        ]

    @staticmethod
    def _canonicalize_command(command: str) -> str:
        """Normalize quoting and whitespace so trivially obfuscated variants still match."""
        normalized = command.lower().replace("\\\n", " ")
        normalized = re.sub(r"[\'\"`\\]", "", normalized)
        normalized = re.sub(r"\s+", " ", normalized)
        return normalized.strip()

    def block_reason(self, command: str) -> Optional[str]:
        canonical = self._canonicalize_command(command)
        for blocked, rule in self.blocked:
            if rule.search(command) or rule.search(canonical):
                return f"matches blocked command '{blocked}'"
        for pattern in self._dangerous_regexes:
            if pattern.search(command) or pattern.search(canonical):
                return f"matches dangerous pattern '{pattern.pattern}'"
        return None

    @staticmethod
    def _truncate(out: str) -> str:
        if len(out) <= MAX_OUTPUT_CHARS:
            return out
        half = MAX_OUTPUT_CHARS // 2
        return out[:half] + "\n...(truncated)...\n" + out[-half:]

    def execute(self, command: str) -> str:
        reason = self.block_reason(command)
        if reason:
            _log.warning("Command blocked: %s", reason)
            raise ShellBlockedError(reason)

        _log.info("Executing command: %s", command[:100])

        try:
            result = subprocess.run(
                ["bash", "-c", command],
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                text=True,
                errors="replace",
                timeout=self.timeout,
                cwd=str(self.project_root),
                env={**os.environ, "TERM": "dumb"},
            )
        except subprocess.TimeoutExpired as e:
            partial = e.output or ""
            if isinstance(partial, bytes):
                partial = partial.decode("utf-8", errors="replace")
            raise ShellTimeoutError(self.timeout, output=self._truncate(partial))

        output = self._truncate(result.stdout or "")
        if result.returncode != 0:
            raise ToolExecutionError("shell", f"exit status {result.returncode}", output=output)
        return output

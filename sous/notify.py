"""Fire-and-forget completion cue after a turn that needs the operator again."""

import shlex
import subprocess
import threading
from typing import List, Optional, Sequence, Union

from . import output
from .logger import get_logger

_log = get_logger(__name__)


class Notifier:
    """Plays ``command`` (e.g. ``mpv done.mp3``) or rings the terminal bell.

    Runs on a daemon thread. Failures are logged and never reach the caller.
    """

    def __init__(self, command: Union[str, Sequence[str], None] = None, enabled: bool = True):
        if isinstance(command, str):
            command = shlex.split(command)
        self.command: List[str] = list(command or [])
        self.enabled = enabled

    def notify(self) -> Optional[threading.Thread]:
        if not self.enabled:
            return None
        thread = threading.Thread(target=self._run, name="sous-notify", daemon=True)
        thread.start()
        return thread

    def _run(self) -> None:
        try:
            self.play()
        except Exception as e:
            _log.warning("Completion notification failed: %s", e)

    def play(self) -> None:
        if not self.command:
            output.console.bell()
            return
        subprocess.run(self.command, check=True, stdout=subprocess.DEVNULL,
                       stderr=subprocess.DEVNULL, timeout=30)

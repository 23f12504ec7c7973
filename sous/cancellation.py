"""Cooperative cancellation scopes and the single active-request slot."""

import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Iterator, Optional

from .errors import RequestCancelled
from .logger import get_logger

_log = get_logger(__name__)

__all__ = ["CancelScope", "ActiveRequest", "ActiveRequestGuard"]


class CancelScope:
    """A cancellation flag that is also set when any ancestor is cancelled."""

    def __init__(self, parent: Optional["CancelScope"] = None):
        self._event = threading.Event()
        self._parent = parent

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        if self._event.is_set():
            return True
        return self._parent is not None and self._parent.cancelled

    def child(self) -> "CancelScope":
        return CancelScope(parent=self)

    def raise_if_cancelled(self, message: str = "request cancelled") -> None:
        if self.cancelled:
            raise RequestCancelled(message)


@dataclass
class ActiveRequest:
    scope: CancelScope
    started_at: float = field(default_factory=time.monotonic)

    @property
    def elapsed(self) -> float:
        return time.monotonic() - self.started_at


class ActiveRequestGuard:
    """Holds at most one ActiveRequest; every read and write goes through one lock.

    The loop thread activates a request per turn, while a SIGINT handler may
    call :meth:`cancel` at any bytecode of that same thread, possibly while the
    lock is already held there, so the lock is re-entrant.
    """

    def __init__(self):
        self._lock = threading.RLock()
        self._current: Optional[ActiveRequest] = None

    @contextmanager
    def activate(self, parent: CancelScope) -> Iterator[CancelScope]:
        scope = parent.child()
        with self._lock:
            if self._current is not None:
                raise RuntimeError("another request is already active")
            self._current = ActiveRequest(scope)
            request = self._current
        try:
            yield scope
        finally:
            with self._lock:
                if self._current is request:
                    self._current = None
            _log.info("Request %s after %.2fs",
                      "cancelled" if scope.cancelled else "finished", request.elapsed)

    def cancel(self) -> bool:
        """Cancel the active request. Returns False when nothing was in flight."""
        with self._lock:
            if self._current is None:
                return False
            self._current.scope.cancel()
            self._current = None
            return True

    @property
    def is_active(self) -> bool:
        with self._lock:
            return self._current is not None

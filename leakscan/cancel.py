"""
Cooperative cancellation for a scan run.

One token carries both the run deadline and the external cancel signal.
Nothing is interrupted forcibly; workers check the token between units
of work.
"""

from __future__ import annotations

import threading
import time

from leakscan.errors import ScanCancelled


class CancelToken:
    """Thread-safe cancel flag with an optional monotonic deadline."""

    def __init__(self, timeout: float | None = None) -> None:
        self._event = threading.Event()
        self._reason = ""
        self._deadline = time.monotonic() + timeout if timeout is not None else None

    def cancel(self, reason: str = "scan cancelled") -> None:
        if not self._event.is_set():
            self._reason = reason
            self._event.set()

    def set_timeout(self, timeout: float) -> None:
        """Tighten the deadline to now + timeout. Never extends an earlier one."""
        deadline = time.monotonic() + timeout
        if self._deadline is None or deadline < self._deadline:
            self._deadline = deadline

    @property
    def timed_out(self) -> bool:
        return self._deadline is not None and time.monotonic() >= self._deadline

    @property
    def cancelled(self) -> bool:
        if self._event.is_set():
            return True
        if self.timed_out:
            self.cancel("scan timed out")
            return True
        return False

    @property
    def reason(self) -> str:
        return self._reason

    def raise_if_cancelled(self) -> None:
        if self.cancelled:
            raise ScanCancelled(self._reason)

"""Cooperative cancellation."""

from __future__ import annotations

import threading


class CancelToken:
    """A flag that long-running stages poll between units of work.

    Setting it never interrupts work already in flight; it only stops new
    work from starting.
    """

    def __init__(self) -> None:
        self._event = threading.Event()
        self._reason = "cancellation requested"

    def cancel(self, reason: str | None = None) -> None:
        if reason:
            self._reason = reason
        self._event.set()

    def is_set(self) -> bool:
        return self._event.is_set()

    @property
    def reason(self) -> str:
        return self._reason

    def wait(self, timeout: float) -> bool:
        """Sleep up to *timeout* seconds, returning early (``True``) once canceled."""
        return self._event.wait(timeout)

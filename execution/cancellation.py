"""
Cooperative cancellation shared by execution runs and mining runs.

The token is polled at checkpoints; it never interrupts a call that is
already in flight.
"""

from __future__ import annotations
from typing import Optional
import threading

from planner.contracts import RunCancelledError


class CancellationToken:
    """Single-use cancellation flag. Safe to set from another thread."""

    def __init__(self):
        self._event = threading.Event()
        self._reason: Optional[str] = None

    def cancel(self, reason: str = "cancelled by caller") -> None:
        if not self._event.is_set():
            self._reason = reason
            self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def reason(self) -> Optional[str]:
        return self._reason

    def raise_if_cancelled(self, checkpoint: str = "") -> None:
        if self._event.is_set():
            where = f" at {checkpoint}" if checkpoint else ""
            raise RunCancelledError(f"Run cancelled{where}: {self._reason}")

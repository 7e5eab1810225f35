"""
Cooperative cancellation for export runs.

A CancelToken is created by the caller, passed into ExportService.export(),
and aborted from anywhere (typically a UI thread or a signal handler).
The pipeline only checks it at defined checkpoints; it never interrupts
work in progress.
"""

import threading
from typing import Optional

from .errors import ExportCancelledError


DEFAULT_REASON = 'User cancelled'


class CancelToken:
    """Thread-safe abort flag with a human-readable reason."""

    def __init__(self):
        self._event = threading.Event()
        self._reason: Optional[str] = None

    def abort(self, reason: str = DEFAULT_REASON) -> None:
        # First reason wins
        if not self._event.is_set():
            self._reason = reason
            self._event.set()

    @property
    def aborted(self) -> bool:
        return self._event.is_set()

    @property
    def reason(self) -> str:
        return self._reason or DEFAULT_REASON

    def raise_if_aborted(self) -> None:
        """Raise ExportCancelledError if abort() has been called."""
        if self._event.is_set():
            raise ExportCancelledError(self.reason)


def check_cancelled(token: Optional[CancelToken]) -> None:
    """Checkpoint helper that accepts a missing token."""
    if token is not None:
        token.raise_if_aborted()

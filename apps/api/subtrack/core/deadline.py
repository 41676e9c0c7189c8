from __future__ import annotations

import threading
import time
from dataclasses import dataclass, field


class OperationCancelledError(Exception):
    """Raised when a caller's deadline expires or the operation is cancelled."""

    def __init__(self, reason: str = "operation cancelled") -> None:
        self.reason = reason
        super().__init__(reason)


@dataclass(slots=True)
class Deadline:
    """Cancellation signal handed down from the caller.

    ``expires_at`` is a ``time.monotonic()`` timestamp; ``None`` means no time
    limit. ``cancel()`` may be called from another thread.
    """

    expires_at: float | None = None
    _cancelled: threading.Event = field(default_factory=threading.Event, repr=False)

    @classmethod
    def after(cls, seconds: float | None) -> Deadline:
        if seconds is None or seconds <= 0:
            return cls()
        return cls(expires_at=time.monotonic() + seconds)

    def cancel(self) -> None:
        self._cancelled.set()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def remaining(self) -> float | None:
        if self.expires_at is None:
            return None
        return max(0.0, self.expires_at - time.monotonic())

    def expired(self) -> bool:
        remaining = self.remaining()
        return remaining is not None and remaining <= 0

    def check(self) -> None:
        if self.cancelled:
            raise OperationCancelledError("operation cancelled by caller")
        if self.expired():
            raise OperationCancelledError("deadline exceeded")

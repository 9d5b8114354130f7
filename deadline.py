import time
from typing import Optional

from errors import DeadlineExceeded


class Deadline:
    """Per-request cancellation token checked before every store statement."""

    def __init__(self, expires_at: Optional[float] = None) -> None:
        self.expires_at = expires_at
        self.cancelled = False

    @classmethod
    def after(cls, seconds: float) -> "Deadline":
        return cls(time.monotonic() + seconds)

    def cancel(self) -> None:
        self.cancelled = True

    def expired(self) -> bool:
        if self.cancelled:
            return True
        return self.expires_at is not None and time.monotonic() >= self.expires_at

    def check(self, operation: str) -> None:
        if self.cancelled:
            raise DeadlineExceeded(operation, "request cancelled")
        if self.expired():
            raise DeadlineExceeded(operation, "deadline exceeded")

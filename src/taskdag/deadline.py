"""Cancellation signal checked between the major phases of a computation."""

from __future__ import annotations

import logging
import time

from taskdag.errors import ComputationCancelledError

logger = logging.getLogger(__name__)


class Deadline:
    """A time budget and/or explicit cancellation flag.

    Phases call :meth:`check` before starting; nothing is checked inside
    the algorithms themselves.

    Args:
        seconds: Budget in seconds from construction. None means no budget.
    """

    def __init__(self, seconds: float | None = None) -> None:
        if seconds is not None and seconds <= 0:
            raise ValueError("seconds must be positive")
        self._expires_at = None if seconds is None else time.monotonic() + seconds
        self._cancelled = False

    @classmethod
    def none(cls) -> Deadline:
        """A deadline that never expires."""
        return cls()

    def cancel(self) -> None:
        """Request cancellation at the next phase boundary."""
        self._cancelled = True

    @property
    def expired(self) -> bool:
        if self._cancelled:
            return True
        return self._expires_at is not None and time.monotonic() >= self._expires_at

    def remaining(self) -> float | None:
        """Seconds left, or None when there is no budget."""
        if self._expires_at is None:
            return None
        return max(0.0, self._expires_at - time.monotonic())

    def check(self, phase: str) -> None:
        """Raise if the deadline has passed.

        Raises:
            ComputationCancelledError: If cancelled or out of time.
        """
        if self.expired:
            logger.warning("Cancelling computation before phase %s", phase)
            raise ComputationCancelledError(phase)
        logger.debug("Entering phase %s", phase)


def ensure_deadline(deadline: Deadline | None) -> Deadline:
    """Return ``deadline`` or a never-expiring one."""
    return deadline if deadline is not None else Deadline.none()

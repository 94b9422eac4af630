"""Tests for taskdag.deadline."""

from __future__ import annotations

import time

import pytest

from taskdag.deadline import Deadline, ensure_deadline
from taskdag.errors import ComputationCancelledError


class TestDeadline:
    """Tests for the Deadline cancellation signal."""

    def test_unbounded(self) -> None:
        """Test that a deadline without budget never expires."""
        deadline = Deadline.none()
        assert not deadline.expired
        assert deadline.remaining() is None
        deadline.check("sort")

    def test_cancel(self) -> None:
        """Test that explicit cancellation trips the next check."""
        deadline = Deadline()
        deadline.cancel()
        assert deadline.expired
        with pytest.raises(ComputationCancelledError, match="forward_pass") as exc_info:
            deadline.check("forward_pass")
        assert exc_info.value.phase == "forward_pass"

    def test_budget_expires(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test that the budget runs out on the monotonic clock."""
        now = [100.0]
        monkeypatch.setattr(time, "monotonic", lambda: now[0])
        deadline = Deadline(5)
        assert deadline.remaining() == 5
        now[0] = 104.0
        assert not deadline.expired
        now[0] = 105.0
        assert deadline.expired
        assert deadline.remaining() == 0

    @pytest.mark.parametrize("seconds", [0, -1])
    def test_non_positive_budget_rejected(self, seconds: float) -> None:
        """Test that a budget must be positive."""
        with pytest.raises(ValueError, match="seconds must be positive"):
            Deadline(seconds)

    def test_ensure_deadline(self) -> None:
        """Test that None becomes an unbounded deadline and others pass through."""
        deadline = Deadline(10)
        assert ensure_deadline(deadline) is deadline
        assert ensure_deadline(None).remaining() is None

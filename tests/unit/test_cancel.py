# -*- coding: utf-8 -*-

"""
Unit tests for CancelToken.

Tests for:
- manual cancellation and reasons
- deadlines and remaining time
- parent/child propagation
- callbacks and wait()
"""

import threading
import time

from zai.cancel import CancelToken
from zai.errors import DeadlineExceededError, RequestCancelledError


class TestManualCancel:
    """Tests for cancel()."""

    def test_fresh_token_is_live(self):
        token = CancelToken()

        assert token.cancelled is False
        assert token.error() is None
        assert token.deadline is None
        assert token.remaining() is None
        token.raise_if_cancelled()

    def test_cancel_with_reason(self):
        """
        What it does: Cancels a token with a reason.
        Purpose: The reason becomes the message of RequestCancelledError.
        """
        token = CancelToken()

        token.cancel("user pressed stop")

        assert token.cancelled is True
        assert isinstance(token.error(), RequestCancelledError)
        assert str(token.error()) == "user pressed stop"

    def test_first_reason_wins(self):
        """
        What it does: Cancels twice with different reasons.
        Purpose: A token fires once and keeps its first reason.
        """
        token = CancelToken()
        token.cancel("first")
        token.cancel("second")

        assert str(token.error()) == "first"

    def test_raise_if_cancelled(self):
        token = CancelToken()
        token.cancel()

        try:
            token.raise_if_cancelled()
        except RequestCancelledError as e:
            print(f"Raised: {e}")
            assert str(e) == "request cancelled"
        else:
            raise AssertionError("RequestCancelledError was not raised")


class TestDeadline:
    """Tests for timeout-based tokens."""

    def test_deadline_fires(self):
        """
        What it does: Creates a token with a 50 ms timeout and waits.
        Purpose: The deadline fires on its own with DeadlineExceededError.
        """
        token = CancelToken.with_timeout(0.05)

        assert token.wait(1.0) is True
        assert isinstance(token.error(), DeadlineExceededError)

    def test_zero_timeout_is_already_expired(self):
        token = CancelToken(timeout=0)

        assert token.cancelled is True
        assert isinstance(token.error(), DeadlineExceededError)

    def test_remaining_counts_down(self):
        """
        What it does: Reads remaining() of a 10 second token.
        Purpose: remaining() is positive and bounded by the timeout.
        """
        token = CancelToken(timeout=10.0)

        remaining = token.remaining()
        print(f"Remaining: {remaining:.3f}s")

        assert 9.0 < remaining <= 10.0
        assert token.deadline is not None

    def test_manual_cancel_before_deadline(self):
        token = CancelToken(timeout=10.0)
        token.cancel()

        assert not isinstance(token.error(), DeadlineExceededError)


class TestChildTokens:
    """Tests for parent/child propagation."""

    def test_parent_cancel_reaches_child(self):
        """
        What it does: Cancels a parent with a live child.
        Purpose: The child fires with the parent's reason.
        """
        parent = CancelToken()
        child = parent.child()

        parent.cancel("shutdown")

        assert child.cancelled is True
        assert str(child.error()) == "shutdown"

    def test_child_cancel_does_not_reach_parent(self):
        parent = CancelToken()
        child = parent.child()

        child.cancel()

        assert parent.cancelled is False

    def test_child_inherits_earlier_parent_deadline(self):
        """
        What it does: Gives the child a longer timeout than its parent.
        Purpose: A child never outlives its parent's deadline.
        """
        parent = CancelToken(timeout=1.0)
        child = parent.child(timeout=60.0)

        assert child.deadline == parent.deadline

    def test_child_keeps_shorter_deadline(self):
        parent = CancelToken(timeout=60.0)
        child = parent.child(timeout=1.0)

        assert child.deadline < parent.deadline

    def test_child_of_cancelled_parent_starts_cancelled(self):
        parent = CancelToken()
        parent.cancel()

        assert parent.child().cancelled is True


class TestCallbacks:
    """Tests for add_callback() and wait()."""

    def test_callback_runs_once_on_fire(self):
        """
        What it does: Registers a callback and fires the token twice.
        Purpose: Callbacks run exactly once.
        """
        token = CancelToken()
        calls = []
        token.add_callback(lambda: calls.append("fired"))

        token.cancel()
        token.cancel()

        assert calls == ["fired"]

    def test_callback_on_fired_token_runs_immediately(self):
        token = CancelToken()
        token.cancel()
        calls = []

        token.add_callback(lambda: calls.append("late"))

        assert calls == ["late"]

    def test_unregistered_callback_does_not_run(self):
        token = CancelToken()
        calls = []
        unregister = token.add_callback(lambda: calls.append("fired"))

        unregister()
        token.cancel()

        assert calls == []

    def test_failing_callback_does_not_block_others(self):
        """
        What it does: Registers a failing callback before a working one.
        Purpose: One broken callback does not stop cancellation from spreading.
        """
        token = CancelToken()
        calls = []

        def broken():
            raise RuntimeError("callback bug")

        token.add_callback(broken)
        token.add_callback(lambda: calls.append("second"))

        token.cancel()

        assert calls == ["second"]

    def test_wait_times_out(self):
        token = CancelToken()

        assert token.wait(0.01) is False

    def test_wait_wakes_on_cancel(self):
        """
        What it does: Cancels from another thread during a long wait().
        Purpose: wait() returns as soon as the token fires.
        """
        token = CancelToken()
        threading.Timer(0.05, token.cancel).start()

        started = time.monotonic()
        assert token.wait(5.0) is True
        elapsed = time.monotonic() - started

        print(f"Woke after {elapsed:.3f}s")
        assert elapsed < 1.0

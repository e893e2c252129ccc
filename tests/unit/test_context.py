"""Tests for operation contexts and correlation IDs."""

from __future__ import annotations

import gc
import threading
import time

import pytest

from linode_cosi_driver.utils.context import (
    ContextCancelled,
    DeadlineExceeded,
    OperationContext,
    get_context_dict,
    get_correlation_id,
    with_correlation_id,
)


class TestOperationContext:
    """Test cases for OperationContext."""

    def test_background_never_expires(self):
        ctx = OperationContext.background()

        assert ctx.remaining() is None
        assert not ctx.cancelled
        ctx.check()

    def test_cancel(self):
        """Test that a cancelled context raises on check."""
        ctx = OperationContext.background()
        ctx.cancel("stopping")

        assert ctx.cancelled
        with pytest.raises(ContextCancelled, match="stopping"):
            ctx.check()

    def test_deadline(self):
        """Test that a passed deadline raises DeadlineExceeded."""
        ctx = OperationContext.with_deadline_in(0)

        assert ctx.expired
        assert ctx.remaining() == 0.0
        with pytest.raises(DeadlineExceeded):
            ctx.check()

    def test_with_timeout_uses_earlier_deadline(self):
        """Test that a child never outlives its parent."""
        parent = OperationContext.with_deadline_in(1)

        child = parent.with_timeout(60)

        assert child.deadline == parent.deadline
        assert parent.with_timeout(0.5).deadline < parent.deadline

    def test_with_timeout_cancelled_with_parent(self):
        """Test that chained children are cancelled with the parent."""
        parent = OperationContext.background()
        child = parent.with_timeout(60)
        grandchild = child.with_timeout(60)

        parent.cancel()

        assert child.cancelled
        assert grandchild.cancelled

    def test_child_of_cancelled_parent(self):
        """Test that a child derived after cancellation starts cancelled."""
        parent = OperationContext.background()
        parent.cancel()

        assert parent.with_timeout(60).cancelled

    def test_detached_survives_parent(self):
        """Test that a detached context is not cancelled with its parent."""
        parent = OperationContext.background()
        detached = parent.detached(3)

        parent.cancel()

        assert not detached.cancelled
        detached.check()
        assert 0 < detached.remaining() <= 3

    def test_children_are_not_retained(self):
        """Test that finished children do not accumulate on the parent."""
        parent = OperationContext.background()
        for _ in range(10):
            parent.with_timeout(1)
        gc.collect()

        assert len(parent._children) == 0

    def test_wait_returns_on_cancel(self):
        """Test that wait wakes up when the context is cancelled."""
        ctx = OperationContext.background()
        threading.Timer(0.05, ctx.cancel).start()

        start = time.monotonic()
        assert ctx.wait(10) is True
        assert time.monotonic() - start < 5

    def test_wait_times_out(self):
        ctx = OperationContext.background()

        assert ctx.wait(0.01) is False

    def test_wait_bounded_by_deadline(self):
        """Test that wait stops at the deadline."""
        ctx = OperationContext.with_deadline_in(0.05)

        assert ctx.wait(10) is True


class TestCorrelationId:
    """Test cases for correlation IDs."""

    def test_scoped_correlation_id(self):
        """Test that the correlation ID is reset after the block."""
        assert get_correlation_id() is None

        with with_correlation_id("req-1"):
            assert get_correlation_id() == "req-1"
            assert get_context_dict() == {"correlation_id": "req-1"}

        assert get_correlation_id() is None

    def test_context_dict_additional(self):
        assert get_context_dict({"a": 1}) == {"a": 1}

"""Operation contexts and correlation IDs.

Every provider and S3 call receives an ``OperationContext``: a cancellation
token combined with an optional deadline. Contexts derived with
``with_timeout`` are cancelled together with their parent, while contexts
derived with ``detached`` only inherit the parent's values and run on their
own clock, so cleanup work survives the cancellation of the caller.
"""

from __future__ import annotations

import contextvars
import threading
import time
import weakref
from contextlib import contextmanager
from typing import Any, Iterator

# Context variable for storing correlation ID
correlation_id: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "correlation_id", default=None
)


class ContextCancelled(Exception):
    """Operation context was cancelled."""


class DeadlineExceeded(ContextCancelled):
    """Operation context deadline passed."""


class OperationContext:
    """Cancellation token with an optional monotonic deadline."""

    def __init__(self, deadline: float | None = None, parent: OperationContext | None = None) -> None:
        self._deadline = deadline
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._children: weakref.WeakSet[OperationContext] = weakref.WeakSet()
        self._cause: str | None = None
        if parent is not None:
            parent._attach(self)

    @classmethod
    def background(cls) -> OperationContext:
        """Return a context that is never cancelled unless asked to."""
        return cls()

    @classmethod
    def with_deadline_in(cls, seconds: float) -> OperationContext:
        """Return a root context expiring after ``seconds``."""
        return cls(deadline=time.monotonic() + seconds)

    def _attach(self, child: OperationContext) -> None:
        with self._lock:
            if self._event.is_set():
                child.cancel(self._cause)
                return
            self._children.add(child)

    @property
    def deadline(self) -> float | None:
        """Monotonic deadline, if any."""
        return self._deadline

    def with_timeout(self, seconds: float) -> OperationContext:
        """Derive a child that expires after ``seconds`` or with this context."""
        deadline = time.monotonic() + seconds
        if self._deadline is not None:
            deadline = min(deadline, self._deadline)
        return OperationContext(deadline=deadline, parent=self)

    def detached(self, seconds: float) -> OperationContext:
        """Derive a context with its own ``seconds`` budget, not chained to this one."""
        return OperationContext(deadline=time.monotonic() + seconds)

    def cancel(self, cause: str | None = None) -> None:
        """Cancel this context and every chained child."""
        with self._lock:
            if self._event.is_set():
                return
            self._cause = cause
            self._event.set()
            children = list(self._children)
            self._children.clear()
        for child in children:
            child.cancel(cause)

    def remaining(self) -> float | None:
        """Seconds left before the deadline, or None without a deadline."""
        if self._deadline is None:
            return None
        return max(0.0, self._deadline - time.monotonic())

    @property
    def expired(self) -> bool:
        return self._deadline is not None and time.monotonic() >= self._deadline

    @property
    def cancelled(self) -> bool:
        return self._event.is_set() or self.expired

    def check(self) -> None:
        """Raise if the context is cancelled or past its deadline.

        Raises:
            ContextCancelled: If the context was cancelled
            DeadlineExceeded: If the deadline passed
        """
        if self._event.is_set():
            raise ContextCancelled(self._cause or "context canceled")
        if self.expired:
            raise DeadlineExceeded("context deadline exceeded")

    def wait(self, seconds: float) -> bool:
        """Block for up to ``seconds``.

        Returns:
            True if the context got cancelled (or expired) while waiting
        """
        timeout = seconds
        remaining = self.remaining()
        if remaining is not None:
            timeout = min(timeout, remaining)
        self._event.wait(timeout)
        return self.cancelled


def set_correlation_id(corr_id: str) -> None:
    """Set the correlation ID in the current context.
    
    Args:
        corr_id: Correlation ID to set
    """
    correlation_id.set(corr_id)


def get_correlation_id() -> str | None:
    """Get the correlation ID from the current context."""
    return correlation_id.get()


@contextmanager
def with_correlation_id(corr_id: str) -> Iterator[str]:
    """Context manager to set a correlation ID for the duration of a block.
    
    Args:
        corr_id: Correlation ID to use
        
    Yields:
        The correlation ID
    """
    token = correlation_id.set(corr_id)
    try:
        yield corr_id
    finally:
        correlation_id.reset(token)


def get_context_dict(additional: dict[str, Any] | None = None) -> dict[str, Any]:
    """Get a dictionary of context values.
    
    Args:
        additional: Additional key-value pairs to include
        
    Returns:
        Dictionary with context values including correlation_id
    """
    ctx = {}
    
    corr_id = get_correlation_id()
    if corr_id:
        ctx["correlation_id"] = corr_id
    
    if additional:
        ctx.update(additional)
    
    return ctx

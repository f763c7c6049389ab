"""Cancellable deadline contexts passed to every node API call."""

from __future__ import annotations

import threading
import time
from typing import List, Optional

from .errors import ContextCancelled, DeadlineExceeded


class RunContext:
    """Cancellation token with an optional absolute deadline.

    Children created with :meth:`with_timeout` or :meth:`with_cancel` are
    cancelled together with their parent; cancelling a child leaves the
    parent running.
    """

    def __init__(self, deadline: Optional[float] = None, parent: Optional["RunContext"] = None) -> None:
        if parent is not None and parent.deadline is not None:
            deadline = parent.deadline if deadline is None else min(deadline, parent.deadline)
        self.deadline = deadline
        self._parent = parent
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._children: List[RunContext] = []
        self._cause: Optional[ContextCancelled] = None
        if parent is not None:
            parent._attach(self)

    @classmethod
    def background(cls) -> "RunContext":
        return cls()

    @classmethod
    def with_deadline_in(cls, seconds: float) -> "RunContext":
        return cls(deadline=time.monotonic() + seconds)

    def with_timeout(self, seconds: float) -> "RunContext":
        return RunContext(deadline=time.monotonic() + seconds, parent=self)

    def with_cancel(self) -> "RunContext":
        return RunContext(parent=self)

    def _attach(self, child: "RunContext") -> None:
        with self._lock:
            self._children.append(child)
            cause = self._cause
        if cause is not None:
            child._cancel_with(cause)

    def _detach(self, child: "RunContext") -> None:
        with self._lock:
            if child in self._children:
                self._children.remove(child)

    def cancel(self) -> None:
        self._cancel_with(ContextCancelled())
        if self._parent is not None:
            self._parent._detach(self)

    def _cancel_with(self, cause: ContextCancelled) -> None:
        with self._lock:
            if self._cause is None:
                self._cause = cause
            children = list(self._children)
        self._event.set()
        for child in children:
            child._cancel_with(cause)

    def remaining(self) -> Optional[float]:
        if self.deadline is None:
            return None
        return max(0.0, self.deadline - time.monotonic())

    def done(self) -> bool:
        if self._event.is_set():
            return True
        if self.deadline is not None and time.monotonic() >= self.deadline:
            self._cancel_with(DeadlineExceeded())
            return True
        return False

    def err(self) -> Optional[ContextCancelled]:
        if not self.done():
            return None
        return self._cause

    def raise_if_done(self) -> None:
        error = self.err()
        if error is not None:
            raise error

    def sleep(self, seconds: float) -> bool:
        """Wait up to ``seconds``; return False if the context ended first."""
        if seconds <= 0:
            return not self.done()
        remaining = self.remaining()
        if remaining is not None and remaining < seconds:
            self._event.wait(remaining)
            self.done()
            return False
        cancelled = self._event.wait(seconds)
        return not cancelled and not self.done()

    def timeout(self, default: float) -> float:
        """HTTP timeout for one call, bounded by the remaining deadline."""
        remaining = self.remaining()
        if remaining is None:
            return default
        return max(0.001, min(default, remaining))

"""
core/context.py
----------------

Deadlines and cancellation for client calls.

A :class:`CancelScope` combines an optional deadline with a
``threading.Event`` that another thread can set through
:meth:`CancelScope.cancel`.  Scopes can be nested: a child is cancelled
when any of its parents is, and never outlives their deadlines.  The
request executor consults the scope before every attempt, bounds each
attempt's timeout by :meth:`CancelScope.remaining`, keeps polling it
while an attempt waits for the server and sleeps between retries with
:meth:`CancelScope.wait`, so a cancellation ends the call immediately
whether it is waiting for an answer or backing off.
"""

from __future__ import annotations

import threading
import time
from typing import Iterable, Optional, Tuple


class CancelScope:
    """Deadline plus cancellation flag shared by one or more calls."""

    def __init__(self, timeout: Optional[float] = None, parents: Iterable["CancelScope"] = ()) -> None:
        self._event = threading.Event()
        self.parents: Tuple[CancelScope, ...] = tuple(parents)
        self._deadline: Optional[float] = None
        if timeout is not None:
            self._deadline = time.monotonic() + timeout

    def child(self, timeout: Optional[float] = None) -> "CancelScope":
        """Return a nested scope bounded by this one."""
        return CancelScope(timeout, parents=(self,))

    def cancel(self) -> None:
        """Cancel the scope and every call waiting on it."""
        self._event.set()

    @property
    def deadline(self) -> Optional[float]:
        """Earliest ``time.monotonic()`` deadline of this scope and its parents."""
        deadlines = [d for d in [self._deadline] + [p.deadline for p in self.parents] if d is not None]
        return min(deadlines) if deadlines else None

    @property
    def cancel_called(self) -> bool:
        """``True`` if :meth:`cancel` was called on this scope or a parent."""
        return self._event.is_set() or any(p.cancel_called for p in self.parents)

    @property
    def expired(self) -> bool:
        deadline = self.deadline
        return deadline is not None and time.monotonic() >= deadline

    @property
    def cancelled(self) -> bool:
        """``True`` once cancelled or past the deadline."""
        return self.cancel_called or self.expired

    def remaining(self) -> Optional[float]:
        """Seconds left before the deadline, ``None`` when unbounded."""
        deadline = self.deadline
        if deadline is None:
            return None
        return max(0.0, deadline - time.monotonic())

    def wait(self, seconds: float) -> bool:
        """Sleep up to ``seconds``, waking early on cancellation.

        :return: ``True`` if the scope got cancelled or expired meanwhile
        """
        end = time.monotonic() + seconds
        while True:
            if self.cancelled:
                return True
            left = end - time.monotonic()
            remaining = self.remaining()
            if remaining is not None:
                left = min(left, remaining)
            if left <= 0:
                return self.cancelled
            # short slices so that a parent cancellation is noticed too
            self._event.wait(min(left, 0.05))

"""Execution gate -- one program against the engine at a time.

The engine session accepts a single submission at once, so every job holds
the gate from just before the engine call until the engine reports
completion (the polling wait happens *inside* the held permit).

Ordering:
    Waiters are served strictly first-come, first-served.  Each ``acquire``
    takes a ticket from a ``deque``; the permit is handed to the ticket at the
    head of the queue only.  A waiter that times out removes its ticket so it
    never blocks the ones behind it.

Example:
    >>> gate = ExecutionGate()
    >>> with gate.hold():
    ...     engine.submit(code, server)
"""

from __future__ import annotations

import threading
import time
from collections import deque
from collections.abc import Iterator
from contextlib import contextmanager


class ExecutionGate:
    """Single-permit FIFO mutex scoped to the engine session."""

    def __init__(self) -> None:
        self._cond = threading.Condition(threading.Lock())
        self._queue: deque[object] = deque()
        self._held = False
        self._holder: str | None = None

    @property
    def locked(self) -> bool:
        with self._cond:
            return self._held

    @property
    def holder(self) -> str | None:
        """Label passed by the current holder (usually a job id)."""
        with self._cond:
            return self._holder

    @property
    def waiting(self) -> int:
        with self._cond:
            return len(self._queue)

    def acquire(self, timeout: float | None = None, *, holder: str | None = None) -> bool:
        """Wait for the permit.

        Args:
            timeout: Seconds to wait, ``None`` for no limit.
            holder: Label recorded while the permit is held.

        Returns:
            True if the permit was acquired, False on timeout.
        """
        ticket = object()
        deadline = None if timeout is None else time.monotonic() + timeout
        with self._cond:
            self._queue.append(ticket)
            try:
                while self._held or self._queue[0] is not ticket:
                    if deadline is None:
                        self._cond.wait()
                        continue
                    remaining = deadline - time.monotonic()
                    if remaining <= 0:
                        self._leave(ticket)
                        return False
                    self._cond.wait(remaining)
            except BaseException:
                self._leave(ticket)
                raise

            self._queue.popleft()
            self._held = True
            self._holder = holder
            return True

    def _leave(self, ticket: object) -> None:
        # caller holds self._cond; wake the others in case we were at the head
        self._queue.remove(ticket)
        self._cond.notify_all()

    def release(self) -> None:
        """Hand the permit to the next waiter in line."""
        with self._cond:
            if not self._held:
                raise RuntimeError("release() called on an unheld ExecutionGate")
            self._held = False
            self._holder = None
            self._cond.notify_all()

    @contextmanager
    def hold(self, holder: str | None = None) -> Iterator[None]:
        """Hold the permit for the duration of the block."""
        self.acquire(holder=holder)
        try:
            yield
        finally:
            self.release()

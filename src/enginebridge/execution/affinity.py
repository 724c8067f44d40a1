"""Engine affinity -- every engine call runs on one dedicated thread.

Engine sessions are frequently bound to the thread that opened them.
``EngineAffinity`` owns a single-thread ``ThreadPoolExecutor``; callers hand
it a callable and block on the result.  Calls made from the affinity thread
itself run inline so nested calls cannot deadlock.

    affinity = EngineAffinity()
    handle = affinity.call(engine.submit, code, server)
"""

from __future__ import annotations

import threading
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from typing import ParamSpec, TypeVar

T = TypeVar("T")
P = ParamSpec("P")


class EngineAffinity:
    """Single-thread dispatcher for engine and metadata calls."""

    def __init__(self, name: str = "engine-affinity") -> None:
        self._thread_ident: int | None = None
        self._pool = ThreadPoolExecutor(
            max_workers=1,
            thread_name_prefix=name,
            initializer=self._remember_thread,
        )

    def _remember_thread(self) -> None:
        self._thread_ident = threading.get_ident()

    @property
    def on_affinity_thread(self) -> bool:
        return self._thread_ident is not None and threading.get_ident() == self._thread_ident

    def call(self, fn: Callable[P, T], *args: P.args, **kwargs: P.kwargs) -> T:
        """Run *fn* on the affinity thread and return its result.

        Exceptions raised by *fn* propagate to the caller unchanged.
        """
        if self.on_affinity_thread:
            return fn(*args, **kwargs)
        return self._pool.submit(fn, *args, **kwargs).result()

    def shutdown(self, wait: bool = True) -> None:
        self._pool.shutdown(wait=wait, cancel_futures=True)

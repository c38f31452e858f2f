from __future__ import annotations

import os
import concurrent.futures as _fut
from typing import Callable, Iterable, List, Optional, TypeVar

T = TypeVar("T")
R = TypeVar("R")


def detect_threads(threads: Optional[int] = None) -> int:
    """Configured thread count, or the CPU core count when unset (0/None)."""
    if threads is not None and int(threads) > 0:
        return int(threads)
    return max(1, os.cpu_count() or 1)


class WorkerPool:
    """Job-scoped bounded thread pool.

    Created once per archive job and handed to the collector by reference;
    there is no process-wide pool.
    """

    def __init__(self, threads: Optional[int] = None):
        self.size = detect_threads(threads)
        self._executor: Optional[_fut.ThreadPoolExecutor] = None

    def __enter__(self) -> "WorkerPool":
        self._ensure()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    def _ensure(self) -> _fut.ThreadPoolExecutor:
        if self._executor is None:
            self._executor = _fut.ThreadPoolExecutor(max_workers=self.size, thread_name_prefix="zencore-worker")
        return self._executor

    def submit(self, fn: Callable[..., R], *args, **kwargs) -> "_fut.Future[R]":
        return self._ensure().submit(fn, *args, **kwargs)

    def map(self, fn: Callable[[T], R], items: Iterable[T]) -> List[R]:
        """Apply ``fn`` to ``items`` in parallel; results keep input order."""
        return list(self._ensure().map(fn, items))

    def close(self) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=True)
            self._executor = None

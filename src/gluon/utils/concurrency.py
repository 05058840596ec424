# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/gluon/utils/concurrency.py

from __future__ import annotations

from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Callable, List, Optional


class TaskGroup:
    """
    Spawn a handful of blocking calls, wait for all of them, then raise the
    first error (in spawn order) if any failed.

        with TaskGroup(max_workers=8) as tg:
            for m in members:
                tg.spawn(pull, m)
        # leaving the block joins every task
    """

    def __init__(self, max_workers: Optional[int] = None):
        self._pool = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="gluon")
        self._futures: List[Future] = []

    def spawn(self, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> Future:
        fut = self._pool.submit(fn, *args, **kwargs)
        self._futures.append(fut)
        return fut

    def join(self) -> List[Any]:
        """Wait for every task. Returns their results or raises the first error."""
        try:
            errors = [f.exception() for f in self._futures]
        finally:
            self._pool.shutdown(wait=True)
        for err in errors:
            if err is not None:
                raise err
        return [f.result() for f in self._futures]

    def __enter__(self) -> "TaskGroup":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if exc_type is not None:
            self._pool.shutdown(wait=True)
            return
        self.join()

"""
Bounded-admission task queue.

At most ``concurrency`` tasks run at once; the rest wait in FIFO order.
A task that raises does not fail the queue: its exception is captured in
its TaskResult.

Example:
    >>> from geoevent_alerts.pipeline.queue import BoundedQueue
    >>>
    >>> with BoundedQueue(concurrency=3) as queue:
    ...     results = queue.run_all([lambda: 1, lambda: 2])
    >>> [r.value for r in results]
    [1, 2]
"""

from __future__ import annotations

import threading
import time
from collections.abc import Callable, Iterable
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

T = TypeVar("T")


@dataclass
class TaskResult(Generic[T]):
    """Outcome of one task."""

    index: int
    value: T | None = None
    error: BaseException | None = None
    duration_ms: float = 0.0

    @property
    def ok(self) -> bool:
        return self.error is None


class BoundedQueue:
    """Runs callables on a fixed-size thread pool.

    Attributes:
        concurrency: Maximum tasks in flight
        in_flight: Tasks running right now
        max_in_flight: Highest ``in_flight`` observed
    """

    def __init__(self, concurrency: int, *, thread_name_prefix: str = "provider"):
        if concurrency < 1:
            raise ValueError("concurrency must be a positive integer")
        self.concurrency = concurrency
        self.in_flight = 0
        self.max_in_flight = 0
        self._submitted = 0
        self._lock = threading.Lock()
        self._executor = ThreadPoolExecutor(
            max_workers=concurrency,
            thread_name_prefix=thread_name_prefix,
        )

    def _run(self, index: int, task: Callable[[], T]) -> TaskResult[T]:
        with self._lock:
            self.in_flight += 1
            self.max_in_flight = max(self.max_in_flight, self.in_flight)

        start = time.perf_counter()
        result: TaskResult[T] = TaskResult(index=index)
        try:
            result.value = task()
        except Exception as e:
            result.error = e
        finally:
            result.duration_ms = round((time.perf_counter() - start) * 1000, 2)
            with self._lock:
                self.in_flight -= 1
        return result

    def submit(self, task: Callable[[], T]) -> Future[TaskResult[T]]:
        """Queue ``task``; the future never raises the task's own exception."""
        with self._lock:
            index = self._submitted
            self._submitted += 1
        return self._executor.submit(self._run, index, task)

    def run_all(self, tasks: Iterable[Callable[[], T]]) -> list[TaskResult[T]]:
        """Run every task and return results in submission order."""
        futures = [self.submit(task) for task in tasks]
        return [future.result() for future in futures]

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)

    def __enter__(self) -> BoundedQueue:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.shutdown()

"""
Run locks.

Only one pipeline run may be active at a time. ``InProcessRunLock``
covers a single process; ``LeaseRunLock`` stores a lease row in the
database so separate processes sharing it exclude each other too. A
lease expires on its own if its holder dies.

Example:
    >>> lock = LeaseRunLock(storage, ttl_seconds=900)
    >>> with lock:
    ...     orchestrator.run()
"""

from __future__ import annotations

import os
import socket
import threading
import uuid
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from geoevent_alerts.exceptions import RunInProgressError
from geoevent_alerts.utils.logging import get_logger

if TYPE_CHECKING:
    from geoevent_alerts.storage.sqlite import SQLiteStorage

logger = get_logger(__name__)

DEFAULT_LOCK_NAME = "geo-event-fetcher"


@runtime_checkable
class RunLock(Protocol):
    def acquire(self) -> None:
        """Take the lock or raise RunInProgressError."""
        ...

    def release(self) -> None:
        ...

    def __enter__(self) -> RunLock:
        ...

    def __exit__(self, *exc_info: Any) -> None:
        ...


class InProcessRunLock:
    """Non-blocking mutex."""

    def __init__(self) -> None:
        self._lock = threading.Lock()

    @property
    def locked(self) -> bool:
        return self._lock.locked()

    def acquire(self) -> None:
        if not self._lock.acquire(blocking=False):
            raise RunInProgressError("Another job is running")

    def release(self) -> None:
        self._lock.release()

    def __enter__(self) -> InProcessRunLock:
        self.acquire()
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.release()


class LeaseRunLock:
    """Lease row in ``run_locks``, combined with an in-process mutex.

    Attributes:
        name: Lease name
        holder: Unique id of this lock instance
        ttl_seconds: Lease lifetime
    """

    def __init__(
        self,
        storage: SQLiteStorage,
        *,
        name: str = DEFAULT_LOCK_NAME,
        ttl_seconds: float = 900,
        local: InProcessRunLock | None = None,
    ):
        self.storage = storage
        self.name = name
        self.ttl_seconds = ttl_seconds
        self.holder = f"{socket.gethostname()}:{os.getpid()}:{uuid.uuid4().hex[:8]}"
        self._local = local or InProcessRunLock()

    def acquire(self) -> None:
        self._local.acquire()
        try:
            acquired = self.storage.acquire_lease(self.name, self.holder, self.ttl_seconds)
        except BaseException:
            self._local.release()
            raise
        if not acquired:
            self._local.release()
            logger.warning("run_lock_busy", name=self.name)
            raise RunInProgressError("Another job is running")
        logger.debug("run_lock_acquired", name=self.name, holder=self.holder)

    def release(self) -> None:
        try:
            self.storage.release_lease(self.name, self.holder)
        finally:
            self._local.release()
        logger.debug("run_lock_released", name=self.name, holder=self.holder)

    def __enter__(self) -> LeaseRunLock:
        self.acquire()
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.release()

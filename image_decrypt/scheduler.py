"""Bounded worker pool with blocking admission and a drain barrier."""

import concurrent.futures
import logging
import threading
from typing import Any, Callable, Optional, Set

logger = logging.getLogger(__name__)


class BoundedWorkerPool:
    """
    Thread pool that never holds more than ``admission_limit`` tasks at once.

    ``submit`` blocks the calling thread until a slot is free, which keeps a
    producer (the directory walk) from racing ahead of the workers. ``join``
    waits for everything submitted so far. Exceptions escaping a task are
    logged and counted; they never reach other tasks or the caller.
    """

    def __init__(self, admission_limit: int, max_workers: Optional[int] = None,
                 thread_name_prefix: str = "decrypt"):
        if admission_limit < 1:
            raise ValueError("admission_limit must be at least 1")
        self.admission_limit = admission_limit
        self.max_workers = max_workers or admission_limit
        self._slots = threading.BoundedSemaphore(admission_limit)
        self._executor = concurrent.futures.ThreadPoolExecutor(
            max_workers=self.max_workers, thread_name_prefix=thread_name_prefix
        )
        self._pending: Set[concurrent.futures.Future] = set()
        self._state_lock = threading.Lock()
        self.submitted = 0
        self.completed = 0
        self.crashed = 0
        self.active = 0
        self.peak_active = 0

    def submit(self, fn: Callable[..., Any], *args: Any) -> concurrent.futures.Future:
        """Run ``fn(*args)`` on a worker, blocking until an admission slot frees up."""
        self._slots.acquire()
        try:
            future = self._executor.submit(self._run, fn, *args)
        except BaseException:
            self._slots.release()
            raise
        with self._state_lock:
            self.submitted += 1
            self._pending.add(future)
        future.add_done_callback(self._discard)
        return future

    def _run(self, fn: Callable[..., Any], *args: Any) -> Any:
        with self._state_lock:
            self.active += 1
            self.peak_active = max(self.peak_active, self.active)
        try:
            return fn(*args)
        except Exception as e:
            with self._state_lock:
                self.crashed += 1
            logger.exception(f"❌ Unhandled error in worker task: {e}")
            return None
        finally:
            with self._state_lock:
                self.active -= 1
                self.completed += 1
            self._slots.release()

    def _discard(self, future: concurrent.futures.Future) -> None:
        with self._state_lock:
            self._pending.discard(future)

    def join(self) -> None:
        """Block until every task submitted so far has finished."""
        while True:
            with self._state_lock:
                pending = [f for f in self._pending if not f.done()]
            if not pending:
                return
            concurrent.futures.wait(pending)

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)

    def __enter__(self) -> "BoundedWorkerPool":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.shutdown(wait=True)

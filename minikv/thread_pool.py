"""A fixed pool of worker threads consuming a shared job queue."""

from __future__ import annotations

import logging
import threading
from queue import SimpleQueue
from typing import Any, Callable

_log = logging.getLogger(__name__)


class ThreadPool:
    """Runs queued callables on background threads in FIFO order."""

    def __init__(self, num_threads: int = 4) -> None:
        if num_threads <= 0:
            raise ValueError("num_threads must be positive")
        self._jobs: SimpleQueue = SimpleQueue()
        self._lock = threading.Lock()
        self._closed = False
        self._threads = [
            threading.Thread(target=self._worker, name=f"minikv-worker-{n}", daemon=True)
            for n in range(num_threads)
        ]
        for thread in self._threads:
            thread.start()

    def _worker(self) -> None:
        while True:
            job = self._jobs.get()
            if job is None:
                return
            func, args = job
            try:
                func(*args)
            except Exception:
                _log.exception("background job failed")

    def queue(self, func: Callable[..., Any], *args: Any) -> None:
        """Schedule ``func(*args)`` on a worker thread."""
        with self._lock:
            if self._closed:
                raise RuntimeError("thread pool is shut down")
            self._jobs.put((func, args))

    def shutdown(self) -> None:
        """Finish queued jobs, then stop and join the workers."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            for _ in self._threads:
                self._jobs.put(None)
        for thread in self._threads:
            thread.join()

    def __enter__(self) -> ThreadPool:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.shutdown()
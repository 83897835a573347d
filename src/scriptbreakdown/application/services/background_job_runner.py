from __future__ import annotations

import logging
import threading
from collections import deque
from typing import Callable

logger = logging.getLogger(__name__)


class BackgroundJobRunner:
    """Run deferred breakdown tasks on daemon worker threads.

    Callers enqueue and return immediately; task errors are logged and never
    reach the caller.
    """

    def __init__(self, *, workers: int = 2, name: str = "breakdown-runner") -> None:
        self._tasks: deque[tuple[str, Callable[[], None]]] = deque()
        self._lock = threading.Lock()
        self._wakeup = threading.Event()
        self._stop = threading.Event()
        self._idle = threading.Event()
        self._idle.set()
        self._active = 0
        self._workers = [
            threading.Thread(target=self._worker_loop, daemon=True, name=f"{name}-{idx}")
            for idx in range(max(1, int(workers)))
        ]
        for worker in self._workers:
            worker.start()

    def submit(self, job_id: str, task: Callable[[], None]) -> None:
        if self._stop.is_set():
            raise RuntimeError("Background job runner has been shut down.")
        with self._lock:
            self._tasks.append((job_id, task))
            self._idle.clear()
        self._wakeup.set()
        logger.debug("Queued background task for job %s", job_id)

    def pending_count(self) -> int:
        with self._lock:
            return len(self._tasks) + self._active

    def wait_idle(self, timeout: float | None = None) -> bool:
        return self._idle.wait(timeout)

    def shutdown(self, timeout: float = 2.0) -> None:
        self._stop.set()
        self._wakeup.set()
        for worker in self._workers:
            if worker.is_alive():
                worker.join(timeout=timeout)

    def _worker_loop(self) -> None:
        while not self._stop.is_set():
            self._wakeup.clear()
            item = self._claim_next_task()
            if item is None:
                self._wakeup.wait(timeout=1.0)
                continue
            self._process_task(*item)

    def _claim_next_task(self) -> tuple[str, Callable[[], None]] | None:
        with self._lock:
            if not self._tasks:
                return None
            self._active += 1
            return self._tasks.popleft()

    def _process_task(self, job_id: str, task: Callable[[], None]) -> None:
        try:
            task()
        except Exception:
            logger.exception("Background breakdown task failed: %s", job_id)
        finally:
            with self._lock:
                self._active -= 1
                if not self._tasks and self._active == 0:
                    self._idle.set()

"""Worker pool that hands queued delivery jobs to idle workers."""

from __future__ import annotations

import logging
import queue
import threading
import time
from collections import deque
from dataclasses import dataclass
from typing import Callable, Optional

from hookbroker.queue import Job, PriorityQueue

logger = logging.getLogger(__name__)

JobHandler = Callable[[Job], None]

_STOP = object()


@dataclass
class Message:
    """The payload to be delivered to a consumer."""

    payload: str


class _FifoQueue:
    """Arrival-ordered job store used when priorities are ignored."""

    def __init__(self) -> None:
        self._jobs: deque[Job] = deque()
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._jobs)

    def enqueue(self, job: Job) -> None:
        with self._lock:
            self._jobs.append(job)

    def dequeue(self) -> Job:
        with self._lock:
            if not self._jobs:
                raise IndexError("dequeue from an empty queue")
            return self._jobs.popleft()


class Worker:
    """Runs jobs one at a time, offering itself to the pool whenever it is idle."""

    def __init__(
        self,
        worker_pool: queue.Queue,
        handler: JobHandler,
        stop_timeout: Optional[float] = None,
    ) -> None:
        self.worker_pool = worker_pool
        self.stop_timeout = stop_timeout
        self._handler = handler
        self._inbox: queue.SimpleQueue = queue.SimpleQueue()
        self._working = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def start(self) -> None:
        """Start the worker's run loop in a background thread."""
        if self._thread is not None:
            raise RuntimeError("worker already started")
        self._thread = threading.Thread(target=self._loop, name="delivery-worker", daemon=True)
        self._thread.start()

    def _loop(self) -> None:
        while True:
            self.worker_pool.put(self._inbox)
            item = self._inbox.get()
            if item is _STOP:
                return
            self._working.set()
            try:
                self._handler(item)
            except Exception:
                logger.exception("job handler failed")
            finally:
                self._working.clear()

    def _stop(self, timeout: Optional[float]) -> bool:
        self._inbox.put(_STOP)
        if self._thread is None:
            return True
        self._thread.join(timeout)
        return not self._thread.is_alive()

    def stop(self) -> bool:
        """Ask the worker to quit after its current job; return whether it has ended.

        Waits at most ``stop_timeout`` seconds, or indefinitely when it is None.
        """
        return self._stop(self.stop_timeout)

    def is_working(self) -> bool:
        """Whether the worker is in the middle of a job."""
        return self._working.is_set()


class Dispatcher:
    """Accepts jobs and passes each to the next idle worker.

    In priority mode the job handed out is the highest-priority one waiting at
    the moment a worker becomes free; otherwise jobs go out in arrival order.
    """

    def __init__(
        self,
        handler: JobHandler,
        max_workers: int = 100,
        max_queue: int = 100000,
        priority: bool = True,
        poll_interval: float = 0.05,
        stop_timeout: Optional[float] = None,
    ) -> None:
        if max_workers < 1:
            raise ValueError("max_workers must be at least 1")
        if max_queue < 1:
            raise ValueError("max_queue must be at least 1")
        self.handler = handler
        self.max_workers = max_workers
        self.priority = priority
        self.stop_timeout = stop_timeout
        self._poll = poll_interval
        self._worker_pool: queue.Queue = queue.Queue(maxsize=max_workers)
        self._job_queue: queue.Queue = queue.Queue(maxsize=max_queue)
        self._pending = PriorityQueue() if priority else _FifoQueue()
        self._available = threading.Semaphore(0)
        self._stopping = threading.Event()
        self.workers: list[Worker] = []
        self._threads: list[threading.Thread] = []

    def run(self) -> None:
        """Start the workers and the threads that feed them."""
        if self._stopping.is_set():
            raise RuntimeError("dispatcher has been stopped")
        if self.workers:
            raise RuntimeError("dispatcher already running")
        for _ in range(self.max_workers):
            worker = Worker(self._worker_pool, self.handler, self.stop_timeout)
            worker.start()
            self.workers.append(worker)
        for target, name in ((self._collect, "job-collector"), (self._hand_off, "job-hand-off")):
            thread = threading.Thread(target=target, name=name, daemon=True)
            thread.start()
            self._threads.append(thread)

    def submit(self, job: Job) -> None:
        """Queue a job, blocking while the job queue is full."""
        while True:
            if self._stopping.is_set():
                raise RuntimeError("dispatcher has been stopped")
            try:
                self._job_queue.put(job, timeout=self._poll)
                return
            except queue.Full:
                continue

    def _collect(self) -> None:
        while not self._stopping.is_set():
            try:
                job = self._job_queue.get(timeout=self._poll)
            except queue.Empty:
                continue
            self._pending.enqueue(job)
            self._available.release()

    def _hand_off(self) -> None:
        while not self._stopping.is_set():
            if not self._available.acquire(timeout=self._poll):
                continue
            inbox = self._idle_worker()
            if inbox is None:
                return
            inbox.put(self._pending.dequeue())

    def _idle_worker(self) -> Optional[queue.SimpleQueue]:
        while not self._stopping.is_set():
            try:
                return self._worker_pool.get(timeout=self._poll)
            except queue.Empty:
                continue
        return None

    def stop(self) -> bool:
        """Stop feeding and stop the workers; return whether all ended in time.

        The whole stop is bounded by ``stop_timeout`` seconds, or unbounded when it is None.
        """
        self._stopping.set()
        timeout = self.stop_timeout
        deadline = None if timeout is None else time.monotonic() + timeout

        def remaining() -> Optional[float]:
            return None if deadline is None else max(0.0, deadline - time.monotonic())

        stopped = True
        for worker in self.workers:
            stopped = worker._stop(remaining()) and stopped
        for thread in self._threads:
            thread.join(remaining())
            stopped = stopped and not thread.is_alive()
        if not stopped:
            logger.warning("dispatcher stop timed out")
        return stopped
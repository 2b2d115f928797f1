"""Delivery jobs and the thread-safe priority queue that orders them."""

from __future__ import annotations

import bisect
import threading
from dataclasses import dataclass
from typing import Any


@dataclass
class Job:
    """A unit of delivery work with the priority of its message."""

    data: Any
    priority: int = 0


def _rank(job: Job) -> int:
    return -job.priority


class PriorityQueue:
    """Queue that hands out higher priorities first and is FIFO within a priority."""

    def __init__(self) -> None:
        self._jobs: list[Job] = []
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._jobs)

    def enqueue(self, job: Job) -> None:
        """Place the job behind every queued job of equal or higher priority."""
        with self._lock:
            bisect.insort_right(self._jobs, job, key=_rank)

    def dequeue(self) -> Job:
        """Remove and return the job next in order."""
        with self._lock:
            if not self._jobs:
                raise IndexError("dequeue from an empty queue")
            return self._jobs.pop(0)
"""Periodic recovery of messages and delivery jobs that fell through the cracks."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Callable, Protocol, Sequence

logger = logging.getLogger(__name__)


class AlreadyLockedError(Exception):
    """Raised by a lock repository when the lock is held elsewhere."""


class LockRepository(Protocol):
    def try_lock(self, lock: Any) -> None: ...

    def release_lock(self, lock: Any) -> None: ...

    def timeout_locks(self, threshold: timedelta) -> None: ...


class MessageRepository(Protocol):
    def get_messages_not_dispatched_for_certain_period(self, delta: timedelta) -> Sequence[Any]: ...


class DeliveryJobRepository(Protocol):
    def get_jobs_ready_for_inflight_since(self, delta: timedelta) -> Sequence[Any]: ...

    def get_jobs_inflight_since(self, delta: timedelta) -> Sequence[Any]: ...

    def mark_job_retry(self, job: Any, earliest_delta: timedelta) -> None: ...


def compute_earliest_delta(retry_attempt: int, backoff_delays: Sequence[timedelta]) -> timedelta:
    """Delay before the given (1-based) retry attempt.

    Attempts beyond the configured delays grow linearly with the last delay.
    """
    if not backoff_delays:
        raise ValueError("no retry backoff delays configured")
    if retry_attempt < 1:
        raise ValueError("retry attempt must be at least 1")
    count = len(backoff_delays)
    if retry_attempt < count:
        return backoff_delays[retry_attempt - 1]
    return (retry_attempt - count + 1) * backoff_delays[-1]


def in_lock_run(lock_repo: LockRepository, lock: Any, run: Callable[[], Any]) -> bool:
    """Run while holding the lock; return False without running if it is taken."""
    try:
        lock_repo.try_lock(lock)
    except AlreadyLockedError:
        return False
    try:
        run()
    finally:
        lock_repo.release_lock(lock)
    return True


@dataclass
class MessageRecovery:
    """The work done on each tick of the dispatcher's recovery workers."""

    lock_repo: LockRepository
    message_repo: MessageRepository
    job_repo: DeliveryJobRepository
    dispatch: Callable[[Any], None]
    queue_job: Callable[[Any], None]
    rational_delay: timedelta
    stop_timeout: timedelta
    backoff_delays: Sequence[timedelta]

    def _each_locked(self, items: Sequence[Any], action: Callable[[Any], None], failure: str) -> int:
        handled = 0
        for item in items:
            try:
                if in_lock_run(self.lock_repo, item, lambda item=item: action(item)):
                    handled += 1
            except Exception:
                logger.exception("%s %s", failure, _identify(item))
        return handled

    def recover_messages_not_yet_dispatched(self) -> int:
        """Dispatch messages left undispatched for longer than the rational delay."""
        try:
            self.lock_repo.timeout_locks(self.rational_delay)
            messages = self.message_repo.get_messages_not_dispatched_for_certain_period(self.rational_delay)
        except Exception:
            logger.exception("recovery of undispatched messages failed")
            return 0
        return self._each_locked(messages, self.dispatch, "could not ensure dispatch from recover worker")

    def retry_queued_jobs(self) -> int:
        """Queue jobs whose retry time has come."""
        try:
            jobs = self.job_repo.get_jobs_ready_for_inflight_since(self.rational_delay)
        except Exception:
            logger.exception("retry of queued jobs failed")
            return 0
        return self._each_locked(jobs, self.queue_job, "could not retry job")

    def recover_jobs_from_long_inflight(self) -> int:
        """Schedule a retry for jobs stuck inflight, ignoring the retry limit."""
        try:
            jobs = self.job_repo.get_jobs_inflight_since(self.stop_timeout + self.rational_delay)
        except Exception:
            logger.exception("recovery of stale inflight jobs failed")
            return 0

        def requeue(job: Any) -> None:
            delta = compute_earliest_delta(job.retry_attempt_count + 1, self.backoff_delays)
            self.job_repo.mark_job_retry(job, delta)

        return self._each_locked(jobs, requeue, "could not requeue job")


def _identify(item: Any) -> str:
    for attribute in ("message_id", "id"):
        value = getattr(item, attribute, None)
        if value is not None:
            return str(value)
    return repr(item)
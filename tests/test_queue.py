import random
import threading

import pytest

from hookbroker.queue import Job, PriorityQueue


def drain(queue):
    return [queue.dequeue() for _ in range(len(queue))]


def test_higher_priority_comes_first():
    queue = PriorityQueue()
    low = Job("low", 0)
    high = Job("high", 5)
    queue.enqueue(low)
    queue.enqueue(high)
    assert queue.dequeue() is high
    assert queue.dequeue() is low


def test_equal_priority_is_fifo():
    queue = PriorityQueue()
    jobs = [Job(name, 1) for name in ("a", "b", "c")]
    for job in jobs:
        queue.enqueue(job)
    assert drain(queue) == jobs


def test_mixed_order_is_stable_and_descending():
    rng = random.Random(7)
    queue = PriorityQueue()
    submitted = [Job(index, rng.randint(0, 3)) for index in range(200)]
    for job in submitted:
        queue.enqueue(job)
    result = drain(queue)
    assert len(result) == len(submitted)
    priorities = [job.priority for job in result]
    assert priorities == sorted(priorities, reverse=True)
    for priority in set(priorities):
        same = [job.data for job in result if job.priority == priority]
        assert same == sorted(same)


def test_len_tracks_enqueue_and_dequeue():
    queue = PriorityQueue()
    assert len(queue) == 0
    queue.enqueue(Job("x"))
    queue.enqueue(Job("y"))
    assert len(queue) == 2
    queue.dequeue()
    assert len(queue) == 1


def test_dequeue_empty_raises():
    queue = PriorityQueue()
    with pytest.raises(IndexError):
        queue.dequeue()


def test_default_priority_is_lowest_seen():
    queue = PriorityQueue()
    plain = Job("plain")
    urgent = Job("urgent", 1)
    queue.enqueue(plain)
    queue.enqueue(urgent)
    assert queue.dequeue() is urgent


def test_concurrent_enqueue_keeps_every_job():
    queue = PriorityQueue()

    def producer(offset):
        for index in range(100):
            queue.enqueue(Job(offset + index, index % 3))

    threads = [threading.Thread(target=producer, args=(n * 1000,)) for n in range(4)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()
    result = drain(queue)
    assert len(result) == 400
    assert {job.data for job in result} == {n * 1000 + i for n in range(4) for i in range(100)}
    priorities = [job.priority for job in result]
    assert priorities == sorted(priorities, reverse=True)
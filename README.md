# hookbroker

Building blocks for a webhook broker: a priority queue of delivery jobs, a
worker pool that hands jobs to idle workers, the sweeps that recover stuck
messages and jobs, and a small HTTP front end with a load-generating demo.

## Installation

```
pip install .
```

To run the tests:

```
pip install ".[test]"
pytest
```

## Modules

### `hookbroker.queue`

- `Job(data, priority=0)` — a unit of delivery work.
- `PriorityQueue` — thread-safe. `enqueue(job)` places the job behind every
  queued job of equal or higher priority, so higher priorities come out first
  and equal priorities keep arrival order. `dequeue()` removes and returns the
  next job and raises `IndexError` when the queue is empty. `len(queue)` gives
  the number of queued jobs.

```python
from hookbroker.queue import Job, PriorityQueue

queue = PriorityQueue()
queue.enqueue(Job(data="low", priority=0))
queue.enqueue(Job(data="high", priority=1))
assert queue.dequeue().data == "high"
assert len(queue) == 1
```

### `hookbroker.dispatcher`

- `Message(payload)` — the text to deliver.
- `Worker(worker_pool, handler, stop_timeout=None)` — runs jobs one at a time
  in a background thread, putting its inbox on `worker_pool` whenever it is
  idle. `start()`, `stop()` (returns whether the thread ended within
  `stop_timeout` seconds) and `is_working()`.
- `Dispatcher(handler, max_workers=100, max_queue=100000, priority=True,
  poll_interval=0.05, stop_timeout=None)` — `run()` starts the workers,
  `submit(job)` queues a job (blocking while the queue is full, and raising
  `RuntimeError` once stopped), `stop()` stops everything and returns whether
  it all ended within `stop_timeout`. With `priority=True` each idle worker
  gets the highest-priority job waiting; with `priority=False` jobs go out in
  arrival order. Exceptions from `handler` are logged and the worker carries on.

```python
from hookbroker.dispatcher import Dispatcher, Message
from hookbroker.queue import Job

dispatcher = Dispatcher(lambda job: print(job.data.payload), max_workers=4)
dispatcher.run()
dispatcher.submit(Job(Message("hello"), priority=1))
dispatcher.stop()
```

### `hookbroker.recovery`

- `compute_earliest_delta(retry_attempt, backoff_delays)` — the delay before a
  1-based retry attempt. Attempts below the number of configured delays use
  the matching delay; from there on the last delay is multiplied by
  `retry_attempt - len(backoff_delays) + 1`. Raises `ValueError` for an empty
  delay list or an attempt below 1.
- `in_lock_run(lock_repo, lock, run)` — calls `lock_repo.try_lock(lock)`, runs
  `run()` and always releases the lock. Returns `False` without running if
  `try_lock` raises `AlreadyLockedError`.
- `MessageRecovery(lock_repo, message_repo, job_repo, dispatch, queue_job,
  rational_delay, stop_timeout, backoff_delays)` — the work of one recovery
  tick, each method returning how many items it handled:
  - `recover_messages_not_yet_dispatched()` times out stale locks and passes
    each message left undispatched longer than `rational_delay` to `dispatch`.
  - `retry_queued_jobs()` passes each job ready for a retry to `queue_job`.
  - `recover_jobs_from_long_inflight()` schedules a retry, through
    `job_repo.mark_job_retry`, for each job inflight longer than
    `stop_timeout + rational_delay`, ignoring any retry limit.

  Each item is handled under its own lock; failures are logged, not raised.

### `hookbroker.server`

- `parse_priority(value)` — a priority header value as an integer; anything
  that is not a 64-bit integer, or a missing value, counts as `0`.
- `make_server(address, job_sink)` — a threading HTTP server bound to
  `"host:port"` (for example `":58080"`) or a `(host, port)` tuple, handled by
  `BrokerRequestHandler`:
  - `POST /broker` wraps the body in a `Message` and passes
    `Job(message, priority)` to `job_sink`, the priority coming from the
    `X-Broker-Message-Priority` header; answers `204`.
  - `POST /consumer` prints `HOLA! <body>`; answers `204`.
  - Other methods on these paths answer `405`; other paths answer `404`.
- `send_message_to_broker(url, message, priority)` — POSTs the text with its
  priority header and returns the response status, or `None` if the request
  could not be made.

## The demo command

```
hookbroker
```

Starts a dispatcher and the HTTP server on `:58080`, waits two seconds, then
floods `/broker` with messages: several senders of low-priority (`0`)
messages and one sender of high-priority (`1`) messages. The dispatcher's
workers deliver each job to `/consumer`, which prints it. Ctrl-C (or SIGTERM)
shuts the server and the dispatcher down.

Options: `--address`, `--workers`, `--queue-size`, `--no-priority`,
`--low-senders`, `--low-messages` and `--high-messages`.

## What it does not do

There is no storage. `MessageRecovery` works on lock, message and
delivery-job repositories that you supply; the package has no database, no
repositories of its own, and no scheduler that runs the recovery sweeps
periodically. There are no channels, producers or consumers to register, no
configuration file, and no delivery to real consumer endpoints beyond what
your job handler does.
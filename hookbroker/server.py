"""HTTP front end that accepts messages for brokering, plus a demo consumer."""

from __future__ import annotations

import argparse
import logging
import re
import signal
import threading
import time
import urllib.error
import urllib.request
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Callable, Optional, Union
from urllib.parse import urlsplit

from hookbroker.dispatcher import Dispatcher, Message
from hookbroker.queue import Job

logger = logging.getLogger(__name__)

PRIORITY_HEADER = "X-Broker-Message-Priority"
DEFAULT_ADDRESS = ":58080"
DB_ENGINE_NAME = "mysql"
REQUEST_TIMEOUT = 10.0
SHUTDOWN_TIMEOUT = 5.0

_INTEGER = re.compile(r"[+-]?[0-9]+")
_INT64_MIN = -(2**63)
_INT64_MAX = 2**63 - 1

JobSink = Callable[[Job], None]
Address = Union[str, "tuple[str, int]"]


def parse_priority(value: Optional[str]) -> int:
    """Read a priority header value; anything that is not a 64-bit integer means 0."""
    if value is None or not _INTEGER.fullmatch(value):
        return 0
    priority = int(value)
    if not _INT64_MIN <= priority <= _INT64_MAX:
        return 0
    return priority


def _parse_address(address: Address) -> tuple[str, int]:
    if isinstance(address, tuple):
        return address
    host, separator, port = address.rpartition(":")
    if not separator or not port.isdigit():
        raise ValueError(f"invalid listen address: {address!r}")
    return host, int(port)


class _BrokerServer(ThreadingHTTPServer):
    daemon_threads = True

    def __init__(self, address: tuple[str, int], job_sink: JobSink) -> None:
        super().__init__(address, BrokerRequestHandler)
        self.job_sink = job_sink
        self.consumer_output: Callable[[str], None] = print


class BrokerRequestHandler(BaseHTTPRequestHandler):
    """Serves POST /broker, which queues a job, and POST /consumer, which echoes it."""

    server: _BrokerServer
    _routes = {"/broker": "_handle_broker", "/consumer": "_handle_consumer"}

    def _route_path(self) -> str:
        return urlsplit(self.path).path

    def _read_body(self) -> Optional[str]:
        try:
            length = int(self.headers.get("Content-Length") or 0)
            return self.rfile.read(length).decode("utf-8", errors="replace")
        except (ValueError, OSError):
            return None

    def _no_content(self) -> None:
        self.send_response(204)
        self.end_headers()

    def _handle_broker(self) -> None:
        body = self._read_body()
        if body is not None:
            priority = parse_priority(self.headers.get(PRIORITY_HEADER))
            self.server.job_sink(Job(data=Message(payload=body), priority=priority))
        self._no_content()

    def _handle_consumer(self) -> None:
        body = self._read_body()
        if body is not None:
            self.server.consumer_output("HOLA! " + body)
        self._no_content()

    def do_POST(self) -> None:
        handler = self._routes.get(self._route_path())
        if handler is None:
            self.send_error(404)
            return
        getattr(self, handler)()

    def _reject(self) -> None:
        self.send_error(405 if self._route_path() in self._routes else 404)

    do_GET = _reject
    do_HEAD = _reject
    do_PUT = _reject
    do_DELETE = _reject
    do_PATCH = _reject

    def log_message(self, format: str, *args: object) -> None:
        logger.debug("%s - %s", self.address_string(), format % args)


def make_server(address: Address, job_sink: JobSink) -> ThreadingHTTPServer:
    """Build a server bound to the address that passes brokered jobs to job_sink."""
    return _BrokerServer(_parse_address(address), job_sink)


def send_message_to_broker(url: str, message: str, priority: int) -> Optional[int]:
    """POST a text message with its priority; return the status, or None on failure."""
    request = urllib.request.Request(
        url,
        data=message.encode("utf-8"),
        method="POST",
        headers={"Content-Type": "text/plain", PRIORITY_HEADER: str(priority)},
    )
    try:
        with urllib.request.urlopen(request, timeout=REQUEST_TIMEOUT) as response:
            return response.status
    except urllib.error.HTTPError as error:
        return error.code
    except (urllib.error.URLError, OSError) as error:
        logger.error("could not send message to %s: %s", url, error)
        return None


def _parse_args(argv: Optional[list[str]]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run the broker demo with a load generator.")
    parser.add_argument("--address", default=DEFAULT_ADDRESS, help="listen address, host:port")
    parser.add_argument("--workers", type=int, default=100, help="number of delivery workers")
    parser.add_argument("--queue-size", type=int, default=100000, help="job queue capacity")
    parser.add_argument("--no-priority", action="store_true", help="deliver in arrival order")
    parser.add_argument("--low-senders", type=int, default=5, help="threads sending low-priority messages")
    parser.add_argument("--low-messages", type=int, default=10000, help="messages per low-priority sender")
    parser.add_argument("--high-messages", type=int, default=1000, help="high-priority messages to send")
    return parser.parse_args(argv)


def _start(target: Callable[[], None]) -> threading.Thread:
    thread = threading.Thread(target=target, daemon=True)
    thread.start()
    return thread


def main(argv: Optional[list[str]] = None) -> int:
    """Start broker and consumer, flood the broker with messages, stop on SIGINT/SIGTERM."""
    args = _parse_args(argv)
    host, port = _parse_address(args.address)
    base_url = f"http://{host or 'localhost'}:{port}"
    consumer_url = base_url + "/consumer"
    broker_url = base_url + "/broker"

    def deliver(job: Job) -> None:
        send_message_to_broker(consumer_url, job.data.payload, job.priority)

    dispatcher = Dispatcher(
        deliver,
        max_workers=args.workers,
        max_queue=args.queue_size,
        priority=not args.no_priority,
    )
    dispatcher.run()
    print(DB_ENGINE_NAME)

    done = threading.Event()

    def on_signal(signum: int, _frame: object) -> None:
        print()
        print(signal.Signals(signum).name)
        done.set()

    signal.signal(signal.SIGINT, on_signal)
    signal.signal(signal.SIGTERM, on_signal)

    server = make_server((host, port), dispatcher.submit)
    _start(server.serve_forever)

    time.sleep(2)

    def send_low(sender: int) -> None:
        for index in range(args.low_messages):
            send_message_to_broker(broker_url, f"Low Priority Test Message {sender}-{index}", 0)

    def send_high() -> None:
        for index in range(args.high_messages):
            send_message_to_broker(broker_url, f"High Priority Test Message {index}", 1)

    for sender in range(args.low_senders):
        _start(lambda sender=sender: send_low(sender))
    _start(send_high)

    print("awaiting signal")
    done.wait()
    _start(server.shutdown).join(SHUTDOWN_TIMEOUT)
    server.server_close()
    dispatcher.stop()
    print("exiting")
    return 0
import threading
import time
import urllib.error
import urllib.request

import pytest

from hookbroker.dispatcher import Dispatcher, Message
from hookbroker.queue import Job
from hookbroker.server import (
    PRIORITY_HEADER,
    BrokerRequestHandler,
    main,
    make_server,
    parse_priority,
    send_message_to_broker,
)


@pytest.fixture
def running():
    jobs = []
    server = make_server(("127.0.0.1", 0), jobs.append)
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    base_url = f"http://127.0.0.1:{server.server_address[1]}"
    yield server, jobs, base_url
    server.shutdown()
    server.server_close()
    thread.join(5)


@pytest.mark.parametrize(
    "value, expected",
    [("5", 5), ("-3", -3), ("+7", 7), ("0", 0), ("1", 1)],
)
def test_parse_priority_valid(value, expected):
    assert parse_priority(value) == expected


@pytest.mark.parametrize(
    "value",
    [None, "", "abc", " 5", "5 ", "1_0", "1.5", "99999999999999999999"],
)
def test_parse_priority_invalid_is_zero(value):
    assert parse_priority(value) == 0


def test_handler_class_is_used(running):
    server, _, _ = running
    assert server.RequestHandlerClass is BrokerRequestHandler


def test_broker_queues_job_with_priority(running):
    _, jobs, base_url = running
    status = send_message_to_broker(base_url + "/broker", "payload one", 3)
    assert status == 204
    assert jobs == [Job(data=Message(payload="payload one"), priority=3)]


def test_broker_bad_priority_header_defaults_to_zero(running):
    _, jobs, base_url = running
    request = urllib.request.Request(
        base_url + "/broker",
        data=b"body",
        method="POST",
        headers={PRIORITY_HEADER: "high"},
    )
    with urllib.request.urlopen(request, timeout=5) as response:
        assert response.status == 204
    assert len(jobs) == 1
    assert jobs[0].priority == 0
    assert jobs[0].data.payload == "body"


def test_consumer_echoes_body(running):
    server, jobs, base_url = running
    seen = []
    server.consumer_output = seen.append
    status = send_message_to_broker(base_url + "/consumer", "hello", 0)
    assert status == 204
    assert seen == ["HOLA! hello"]
    assert jobs == []


def test_wrong_method_is_rejected(running):
    _, jobs, base_url = running
    with pytest.raises(urllib.error.HTTPError) as caught:
        urllib.request.urlopen(base_url + "/broker", timeout=5)
    assert caught.value.code == 405
    assert jobs == []


def test_unknown_path_is_not_found(running):
    _, jobs, base_url = running
    assert send_message_to_broker(base_url + "/nowhere", "x", 0) == 404
    assert jobs == []


def test_send_to_closed_port_returns_none():
    server = make_server(("127.0.0.1", 0), lambda job: None)
    port = server.server_address[1]
    server.server_close()
    assert send_message_to_broker(f"http://127.0.0.1:{port}/broker", "x", 0) is None


def test_string_address_is_accepted():
    server = make_server("127.0.0.1:0", lambda job: None)
    try:
        host, port = server.server_address[:2]
        assert host == "127.0.0.1"
        assert port > 0
    finally:
        server.server_close()


def test_invalid_string_address_raises():
    with pytest.raises(ValueError):
        make_server("no-port-here", lambda job: None)


def test_broker_feeds_dispatcher():
    delivered = []
    done = threading.Event()

    def handler(job):
        delivered.append(job)
        done.set()

    dispatcher = Dispatcher(handler, max_workers=2, max_queue=10)
    dispatcher.run()
    server = make_server(("127.0.0.1", 0), dispatcher.submit)
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    try:
        url = f"http://127.0.0.1:{server.server_address[1]}/broker"
        assert send_message_to_broker(url, "through the pool", 2) == 204
        assert done.wait(5)
        assert delivered[0].data.payload == "through the pool"
        assert delivered[0].priority == 2
    finally:
        server.shutdown()
        server.server_close()
        dispatcher.stop()


def test_main_rejects_bad_arguments():
    with pytest.raises(SystemExit) as caught:
        main(["--workers", "many"])
    assert caught.value.code == 2


def test_many_messages_all_reach_sink(running):
    _, jobs, base_url = running
    payloads = [f"message {index}" for index in range(10)]
    for payload in payloads:
        assert send_message_to_broker(base_url + "/broker", payload, 0) == 204
    deadline = time.monotonic() + 5
    while len(jobs) < len(payloads) and time.monotonic() < deadline:
        time.sleep(0.01)
    assert sorted(job.data.payload for job in jobs) == sorted(payloads)
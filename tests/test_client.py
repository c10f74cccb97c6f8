"""Tests for the KairosDB delivery client outcome classification."""

from __future__ import annotations

import io
import json
import logging
import math
import socket
import threading
import time
from typing import List

import requests
import responses

from relay.config.schema import RelayConfig
from relay.errors import (
    InvariantViolation,
    PartialWriteError,
    ResponseFormatError,
    SerializationError,
    TransportError,
)
from relay.pipeline import DataPoint, DeliveryState, KairosDBClient, Sample


WRITE_URL = "http://kairosdb.example.com:8080/api/v1/datapoints"


def make_config(**overrides) -> RelayConfig:
    data = {"kairosdb-url": "http://kairosdb.example.com:8080", "timeout": 5}
    data.update(overrides)
    return RelayConfig.from_mapping(data)


def make_datapoints(count: int) -> List[DataPoint]:
    return [DataPoint(f"metric_{i}", 1_000 + i, float(i), {"host": "a"}) for i in range(count)]


def make_client(sink, session=None, **overrides) -> KairosDBClient:
    return KairosDBClient(make_config(**overrides), sink, session=session)


@responses.activate
def test_full_success_on_204(sink):
    responses.add(responses.POST, WRITE_URL, status=204)
    client = make_client(sink)

    outcome = client.deliver(make_datapoints(2))

    assert outcome.state is DeliveryState.FULLY_SENT
    assert (outcome.sent, outcome.failed, outcome.unknown, outcome.error) == (2, 0, 0, None)
    assert sink.totals["sent_samples"] == 2
    assert len(sink.durations) == 1
    assert sink.remotes == {"kairosdb"}

    request = responses.calls[0].request
    assert request.headers["Content-Type"] == "application/json"
    body = json.loads(request.body)
    assert body[0] == {"name": "metric_0", "timestamp": 1000, "value": 0.0, "tags": {"host": "a"}}


@responses.activate
def test_partial_rejection_on_400(sink):
    responses.add(responses.POST, WRITE_URL, status=400, json={"errors": [{}]})
    client = make_client(sink)

    outcome = client.deliver(make_datapoints(3))

    assert outcome.state is DeliveryState.PARTIALLY_SENT
    assert (outcome.sent, outcome.failed, outcome.unknown) == (2, 1, 0)
    assert isinstance(outcome.error, PartialWriteError)
    assert sink.totals["sent_samples"] == 2
    assert sink.totals["failed_samples"] == 1


@responses.activate
def test_more_rejections_than_datapoints_is_invariant_violation(sink, caplog):
    caplog.set_level(logging.ERROR, logger="relay.sender")
    responses.add(responses.POST, WRITE_URL, status=400, json={"errors": ["a", "b", "c"]})
    client = make_client(sink)

    outcome = client.deliver(make_datapoints(2))

    assert outcome.state is DeliveryState.INVARIANT_VIOLATED
    assert isinstance(outcome.error, InvariantViolation)
    assert (outcome.sent, outcome.failed, outcome.unknown) == (0, 0, 0)
    assert sink.totals["sent_samples"] == sink.totals["failed_samples"] == sink.totals["unknown_status_samples"] == 0
    assert any("response from kairosdb" in rec.message for rec in caplog.records)


@responses.activate
def test_connect_timeout_counts_whole_batch_as_failed(sink):
    responses.add(responses.POST, WRITE_URL, body=requests.exceptions.ConnectTimeout("deadline exceeded"))
    client = make_client(sink)

    outcome = client.deliver(make_datapoints(3))

    assert outcome.state is DeliveryState.NETWORK_FAILED
    assert (outcome.sent, outcome.failed, outcome.unknown) == (0, 3, 0)
    assert isinstance(outcome.error, TransportError)
    assert sink.totals["failed_samples"] == 3
    assert len(sink.durations) == 1


@responses.activate
def test_unparsable_400_body_is_unknown(sink):
    responses.add(responses.POST, WRITE_URL, status=400, body="<html>bad gateway</html>")
    client = make_client(sink)

    outcome = client.deliver(make_datapoints(4))

    assert outcome.state is DeliveryState.RESPONSE_UNREADABLE
    assert (outcome.sent, outcome.failed, outcome.unknown) == (0, 0, 4)
    assert isinstance(outcome.error, ResponseFormatError)
    assert sink.totals["unknown_status_samples"] == 4


@responses.activate
def test_400_without_errors_list_is_unknown(sink):
    responses.add(responses.POST, WRITE_URL, status=400, json={"message": "nope"})
    client = make_client(sink)

    outcome = client.deliver(make_datapoints(1))

    assert outcome.state is DeliveryState.RESPONSE_UNREADABLE
    assert outcome.unknown == 1


@responses.activate
def test_unexpected_status_is_unknown(sink):
    responses.add(responses.POST, WRITE_URL, status=500, body="internal error")
    client = make_client(sink)

    outcome = client.deliver(make_datapoints(2))

    assert outcome.state is DeliveryState.RESPONSE_UNREADABLE
    assert outcome.unknown == 2
    assert "HTTP 500: internal error" in str(outcome.error)


class FakeSession:
    def __init__(self):
        self.calls: List[dict] = []
        self.closed = False

    def post(self, url, data=None, headers=None, timeout=None, stream=False):
        self.calls.append({"url": url, "data": data, "headers": headers, "timeout": timeout})
        raise AssertionError("no request expected")

    def close(self):
        self.closed = True


def test_empty_batch_issues_no_request(sink):
    session = FakeSession()
    client = make_client(sink, session=session)

    outcome = client.deliver([])

    assert outcome.state is DeliveryState.EMPTY_OK
    assert (outcome.sent, outcome.failed, outcome.unknown, outcome.error) == (0, 0, 0, None)
    assert session.calls == []
    assert sink.durations == []


def test_dry_run_skips_network_and_counters(sink):
    session = FakeSession()
    client = make_client(sink, session=session, dryrun=True)

    outcome = client.deliver(make_datapoints(3))

    assert outcome.state is DeliveryState.DRYRUN_OK
    assert outcome.ok
    assert (outcome.sent, outcome.failed, outcome.unknown) == (0, 0, 0)
    assert session.calls == []
    assert sink.totals["sent_samples"] == sink.totals["failed_samples"] == 0
    assert len(sink.durations) == 1


def test_serialization_failure_is_fatal_without_counts(sink):
    session = FakeSession()
    client = make_client(sink, session=session)

    outcome = client.deliver([DataPoint("m", 1, math.nan, {})])

    assert outcome.state is DeliveryState.SERIALIZE_FAILED
    assert isinstance(outcome.error, SerializationError)
    assert (outcome.sent, outcome.failed, outcome.unknown) == (0, 0, 0)
    assert session.calls == []


def test_timeout_and_streaming_are_passed_to_the_session(sink):
    class RecordingSession(FakeSession):
        def post(self, url, data=None, headers=None, timeout=None, stream=False):
            self.calls.append({"url": url, "timeout": timeout, "stream": stream})
            response = requests.Response()
            response.status_code = 204
            response.raw = io.BytesIO()
            return response

    session = RecordingSession()
    client = make_client(sink, session=session, timeout="7s")

    outcome = client.deliver(make_datapoints(1))

    assert outcome.state is DeliveryState.FULLY_SENT
    assert session.calls == [{"url": WRITE_URL, "timeout": 7.0, "stream": True}]


@responses.activate
def test_send_applies_prefix_and_logs_batch_errors(sink, caplog):
    caplog.set_level(logging.ERROR, logger="relay.sender")
    responses.add(responses.POST, WRITE_URL, status=400, json={"errors": ["bad"]})
    client = make_client(sink, **{"metricname-prefix": "prom."})
    samples = [
        Sample({"__name__": "up", "job": "node"}, 1.0, 10),
        Sample({"__name__": "up", "job": "api"}, math.nan, 20),
        Sample({"__name__": "load", "job": ""}, 0.5, 30),
    ]

    outcome = client.send(samples)

    assert (outcome.sent, outcome.failed) == (1, 1)
    sent = json.loads(responses.calls[0].request.body)
    assert [dp["name"] for dp in sent] == ["prom.up", "prom.load"]
    assert sent[1]["tags"] == {}
    assert sink.totals["filtered_samples"] == 1
    assert any("failed writing metrics to downstream" in rec.message for rec in caplog.records)


def test_close_releases_session(sink):
    session = FakeSession()
    client = make_client(sink, session=session)
    client.close()
    assert session.closed is True


class TrickleServer:
    """Local HTTP server that answers one request, sending the body a byte at a time."""

    def __init__(self, status: str, body: bytes, delay_s: float) -> None:
        self.status = status
        self.body = body
        self.delay_s = delay_s
        self._stop = threading.Event()
        self._listener = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        self._listener.bind(("127.0.0.1", 0))
        self._listener.listen(1)
        self._listener.settimeout(5)
        self._thread = threading.Thread(target=self._serve, daemon=True)

    @property
    def url(self) -> str:
        host, port = self._listener.getsockname()
        return f"http://{host}:{port}"

    def __enter__(self) -> "TrickleServer":
        self._thread.start()
        return self

    def __exit__(self, *exc_info) -> None:
        self._stop.set()
        self._thread.join(timeout=5)
        self._listener.close()

    def _serve(self) -> None:
        try:
            conn, _ = self._listener.accept()
        except OSError:
            return
        with conn:
            conn.settimeout(5)
            try:
                self._read_request(conn)
                head = (
                    f"HTTP/1.1 {self.status}\r\n"
                    "Content-Type: application/json\r\n"
                    f"Content-Length: {len(self.body)}\r\n"
                    "Connection: close\r\n\r\n"
                )
                conn.sendall(head.encode("ascii"))
                for byte in self.body:
                    if self._stop.wait(self.delay_s):
                        return
                    conn.sendall(bytes([byte]))
            except OSError:
                return

    @staticmethod
    def _read_request(conn: socket.socket) -> None:
        data = b""
        while b"\r\n\r\n" not in data:
            chunk = conn.recv(4096)
            if not chunk:
                return
            data += chunk
        head, _, rest = data.partition(b"\r\n\r\n")
        length = 0
        for line in head.split(b"\r\n")[1:]:
            name, _, value = line.partition(b":")
            if name.strip().lower() == b"content-length":
                length = int(value.strip())
        while len(rest) < length:
            chunk = conn.recv(4096)
            if not chunk:
                return
            rest += chunk


def local_session() -> requests.Session:
    session = requests.Session()
    session.trust_env = False
    return session


def test_slow_response_body_is_cut_at_the_deadline(sink):
    with TrickleServer("400 Bad Request", b'{"errors": []}', delay_s=0.4) as server:
        client = make_client(sink, session=local_session(), **{"kairosdb-url": server.url, "timeout": 1})

        begin = time.monotonic()
        outcome = client.deliver(make_datapoints(2))
        elapsed = time.monotonic() - begin

    assert outcome.state is DeliveryState.NETWORK_FAILED
    assert (outcome.sent, outcome.failed, outcome.unknown) == (0, 2, 0)
    assert isinstance(outcome.error, TransportError)
    assert "deadline of 1s exceeded" in str(outcome.error)
    assert elapsed < 2.5
    assert sink.totals["failed_samples"] == 2
    assert sink.totals["sent_samples"] == 0


def test_streamed_rejection_list_within_the_deadline_is_read(sink):
    with TrickleServer("400 Bad Request", b'{"errors": ["bad"]}', delay_s=0.01) as server:
        client = make_client(sink, session=local_session(), **{"kairosdb-url": server.url, "timeout": 2})

        outcome = client.deliver(make_datapoints(3))

    assert outcome.state is DeliveryState.PARTIALLY_SENT
    assert (outcome.sent, outcome.failed, outcome.unknown) == (2, 1, 0)
    assert sink.totals["sent_samples"] == 2
    assert sink.totals["failed_samples"] == 1

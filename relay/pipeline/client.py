"""Cliente HTTP que entrega lotes de datapoints a KairosDB."""

from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, List, Optional, Sequence, Tuple, TYPE_CHECKING

import requests

from relay.errors import (
    InvariantViolation,
    PartialWriteError,
    RelayError,
    ResponseFormatError,
    SerializationError,
    TransportError,
)

from .base import DataPoint, MetricsSink, Sample
from .datapoints import SampleTransformer

if TYPE_CHECKING:  # pragma: no cover - hints only
    from relay.config.schema import RelayConfig


logger = logging.getLogger("relay.sender")

POST_ENDPOINT = "/api/v1/datapoints"
CONTENT_TYPE_JSON = "application/json"
BODY_READ_SIZE = 1


class DeliveryState(str, Enum):
    EMPTY_OK = "empty_ok"
    SERIALIZE_FAILED = "serialize_failed"
    DRYRUN_OK = "dryrun_ok"
    NETWORK_FAILED = "network_failed"
    FULLY_SENT = "fully_sent"
    PARTIALLY_SENT = "partially_sent"
    RESPONSE_UNREADABLE = "response_unreadable"
    INVARIANT_VIOLATED = "invariant_violated"


@dataclass
class DeliveryOutcome:
    """Resultado agregado de un lote."""

    state: DeliveryState
    sent: int = 0
    failed: int = 0
    unknown: int = 0
    error: Optional[RelayError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def to_dict(self) -> dict:
        return {
            "state": self.state.value,
            "sent": self.sent,
            "failed": self.failed,
            "unknown": self.unknown,
            "error": str(self.error) if self.error is not None else None,
        }


def serialize_datapoints(datapoints: Sequence[DataPoint]) -> bytes:
    """Encode ``datapoints`` as the JSON array expected by KairosDB."""

    try:
        payload = json.dumps([dp.to_dict() for dp in datapoints], allow_nan=False)
    except (TypeError, ValueError) as exc:
        raise SerializationError(f"unable to encode {len(datapoints)} datapoints: {exc}") from exc
    return payload.encode("utf-8")


class KairosDBClient:
    """Relabels samples and writes them to KairosDB with one request per batch."""

    remote = "kairosdb"

    def __init__(
        self,
        config: "RelayConfig",
        sink: MetricsSink,
        *,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.config = config
        self.url = f"{config.kairosdb_url.rstrip('/')}{POST_ENDPOINT}"
        self.timeout = config.timeout_s
        self.dry_run = config.dryrun
        self.sink = sink
        self.transformer = SampleTransformer(config.relabel_rules, sink, remote=self.remote)
        self.session = session or requests.Session()
        self._clock = time.perf_counter

    def send(self, samples: Sequence[Sample]) -> DeliveryOutcome:
        """Transform ``samples`` and deliver the surviving datapoints."""

        datapoints = self.transformer.transform(samples)
        outcome = self.deliver(datapoints)
        if outcome.error is not None:
            logger.error("failed writing metrics to downstream. error: %s", outcome.error)
        return outcome

    def deliver(self, datapoints: Sequence[DataPoint]) -> DeliveryOutcome:
        total = len(datapoints)
        if total == 0:
            return DeliveryOutcome(state=DeliveryState.EMPTY_OK)

        begin = self._clock()
        try:
            return self._write(datapoints)
        finally:
            self.sink.observe_duration(self.remote, self._clock() - begin)

    def close(self) -> None:
        self.session.close()

    def _write(self, datapoints: Sequence[DataPoint]) -> DeliveryOutcome:
        total = len(datapoints)
        try:
            body = serialize_datapoints(datapoints)
        except SerializationError as exc:
            return DeliveryOutcome(state=DeliveryState.SERIALIZE_FAILED, error=exc)

        logger.debug("pushing %d datapoints", total)
        if self.dry_run:
            logger.debug("dry-run enabled; payload not sent: %s", self._truncate(body.decode("utf-8")))
            return DeliveryOutcome(state=DeliveryState.DRYRUN_OK)

        deadline = time.monotonic() + self.timeout
        try:
            status_code, content = self._post(body, deadline)
        except requests.RequestException as exc:
            return self._network_failed(total, TransportError(f"{type(exc).__name__}: {exc}"))
        except TransportError as exc:
            return self._network_failed(total, exc)

        if status_code == requests.codes.no_content:
            logger.info("pushed %d datapoints successfully", total)
            self.sink.add_sent(self.remote, total)
            return DeliveryOutcome(state=DeliveryState.FULLY_SENT, sent=total)

        if status_code != requests.codes.bad_request:
            return self._unknown(
                total,
                ResponseFormatError(f"unexpected HTTP {status_code}: {self._extract_body(content)}"),
            )

        # KairosDB answers 400 with {"errors": [...]}, one entry per rejected datapoint.
        try:
            errors = self._parse_errors(content)
        except ResponseFormatError as exc:
            return self._unknown(total, exc)

        failed = len(errors)
        successful = total - failed
        if successful < 0:
            logger.error("response from kairosdb: %s", self._extract_body(content))
            logger.error("request to kairosdb: %s", self._truncate(body.decode("utf-8")))
            error = InvariantViolation(
                f"number of failed datapoints [{failed}] is greater than total datapoints [{total}]"
            )
            return DeliveryOutcome(state=DeliveryState.INVARIANT_VIOLATED, error=error)

        self.sink.add_sent(self.remote, successful)
        self.sink.add_failed(self.remote, failed)
        logger.warning("kairosdb rejected %d of %d datapoints: %s", failed, total, errors[:5])
        return DeliveryOutcome(
            state=DeliveryState.PARTIALLY_SENT,
            sent=successful,
            failed=failed,
            error=PartialWriteError(f"failed to write [{failed}] samples of [{total}]"),
        )

    def _post(self, body: bytes, deadline: float) -> Tuple[int, bytes]:
        """Send ``body`` and read the reply, giving up once ``deadline`` passes.

        ``timeout`` alone only bounds each socket operation, so the response is
        streamed and the monotonic deadline is checked after every read.
        """

        response = self.session.post(
            self.url,
            data=body,
            headers={"Content-Type": CONTENT_TYPE_JSON},
            timeout=self.timeout,
            stream=True,
        )
        try:
            self._check_deadline(deadline)
            if response.status_code == requests.codes.no_content:
                return response.status_code, b""
            content = bytearray()
            # A buffered read blocks until the whole chunk arrives.
            for chunk in response.iter_content(chunk_size=BODY_READ_SIZE):
                content += chunk
                self._check_deadline(deadline)
            return response.status_code, bytes(content)
        finally:
            response.close()

    def _check_deadline(self, deadline: float) -> None:
        if time.monotonic() > deadline:
            raise TransportError(f"deadline of {self.timeout:g}s exceeded writing to {self.url}")

    def _network_failed(self, total: int, error: TransportError) -> DeliveryOutcome:
        self.sink.add_failed(self.remote, total)
        return DeliveryOutcome(state=DeliveryState.NETWORK_FAILED, failed=total, error=error)

    def _unknown(self, total: int, error: ResponseFormatError) -> DeliveryOutcome:
        self.sink.add_unknown(self.remote, total)
        return DeliveryOutcome(state=DeliveryState.RESPONSE_UNREADABLE, unknown=total, error=error)

    def _parse_errors(self, content: bytes) -> List[Any]:
        try:
            payload = json.loads(content)
        except ValueError as exc:
            logger.error("response received is: %s", self._extract_body(content))
            raise ResponseFormatError(f"unparsable response body: {exc}") from exc
        if not isinstance(payload, dict) or not isinstance(payload.get("errors"), list):
            raise ResponseFormatError(f"unexpected response body: {self._extract_body(content)}")
        return payload["errors"]

    @staticmethod
    def _truncate(text: str, limit: int = 512) -> str:
        if len(text) <= limit:
            return text
        return f"{text[:limit]}... [truncated {len(text) - limit} chars]"

    @classmethod
    def _extract_body(cls, content: bytes, limit: int = 512) -> str:
        return cls._truncate(content.decode("utf-8", errors="replace"), limit)


__all__ = [
    "CONTENT_TYPE_JSON",
    "DeliveryOutcome",
    "DeliveryState",
    "KairosDBClient",
    "POST_ENDPOINT",
    "serialize_datapoints",
]

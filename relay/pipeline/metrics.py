from typing import Optional

from prometheus_client import CollectorRegistry, Counter, Histogram


class PrometheusSink:
    """Metrics sink backed by ``prometheus_client`` counters."""

    def __init__(self, registry: Optional[CollectorRegistry] = None) -> None:
        self.registry = registry or CollectorRegistry()
        self.sent_samples = Counter(
            "sent_samples_total",
            "Total number of processed samples sent to remote storage.",
            ["remote"],
            registry=self.registry,
        )
        self.failed_samples = Counter(
            "failed_samples_total",
            "Total number of processed samples which failed on send to remote storage.",
            ["remote"],
            registry=self.registry,
        )
        self.unknown_status_samples = Counter(
            "unknown_status_samples_total",
            "Total number of samples sent without receiving a usable response.",
            ["remote"],
            registry=self.registry,
        )
        self.filtered_samples = Counter(
            "filtered_samples_total",
            "Total number of samples which got filtered out before being sent to remote storage.",
            ["remote"],
            registry=self.registry,
        )
        self.sent_batch_duration = Histogram(
            "sent_batch_duration_seconds",
            "Duration of sample batch send calls to the remote storage.",
            ["remote"],
            registry=self.registry,
        )

    def add_sent(self, remote: str, count: int) -> None:
        self.sent_samples.labels(remote=remote).inc(max(0, count))

    def add_failed(self, remote: str, count: int) -> None:
        self.failed_samples.labels(remote=remote).inc(max(0, count))

    def add_unknown(self, remote: str, count: int) -> None:
        self.unknown_status_samples.labels(remote=remote).inc(max(0, count))

    def add_filtered(self, remote: str, count: int) -> None:
        self.filtered_samples.labels(remote=remote).inc(max(0, count))

    def observe_duration(self, remote: str, seconds: float) -> None:
        self.sent_batch_duration.labels(remote=remote).observe(seconds)

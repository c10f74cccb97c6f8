"""Relabel, transform and deliver sample batches."""

from __future__ import annotations

from .base import DataPoint, MetricsSink, Sample
from .client import DeliveryOutcome, DeliveryState, KairosDBClient, serialize_datapoints
from .datapoints import SampleTransformer, filter_and_process, tags_from_labels, valid_value
from .metrics import PrometheusSink
from .relabel import apply_rule, process

__all__ = [
    "DataPoint",
    "DeliveryOutcome",
    "DeliveryState",
    "KairosDBClient",
    "MetricsSink",
    "PrometheusSink",
    "Sample",
    "SampleTransformer",
    "apply_rule",
    "filter_and_process",
    "process",
    "serialize_datapoints",
    "tags_from_labels",
    "valid_value",
]

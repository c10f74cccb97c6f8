"""Conversion of relabeled samples into KairosDB datapoints."""

from __future__ import annotations

import logging
import math
from typing import Dict, List, Mapping, Optional, Sequence

from relay.config.schema import METRIC_NAME_LABEL, RelabelRule

from .base import DataPoint, MetricsSink, Sample
from .relabel import process

logger = logging.getLogger(__name__)


def valid_value(value: float) -> bool:
    """KairosDB cannot store NaN or infinite values."""

    return not (math.isnan(value) or math.isinf(value))


def tags_from_labels(labels: Mapping[str, str]) -> Dict[str, str]:
    return {
        name: value
        for name, value in labels.items()
        if name != METRIC_NAME_LABEL and value != ""
    }


def filter_and_process(samples: Sequence[Sample], rules: Sequence[RelabelRule]) -> List[DataPoint]:
    """Relabel, filter and convert ``samples``, preserving their order."""

    datapoints: List[DataPoint] = []
    for sample in samples:
        labels = process(sample.labels, rules)
        if labels is None:
            continue

        value = float(sample.value)
        if not valid_value(value):
            logger.debug("skipping non-finite value %s for %s", value, labels.get(METRIC_NAME_LABEL, ""))
            continue

        datapoints.append(
            DataPoint(
                name=labels.get(METRIC_NAME_LABEL, ""),
                timestamp_ms=int(sample.timestamp_ms),
                value=value,
                tags=tags_from_labels(labels),
            )
        )
    return datapoints


class SampleTransformer:
    """Applies the relabel chain and reports how many samples were filtered."""

    def __init__(
        self,
        rules: Sequence[RelabelRule],
        sink: Optional[MetricsSink] = None,
        *,
        remote: str = "kairosdb",
    ) -> None:
        self.rules = tuple(rules)
        self.sink = sink
        self.remote = remote

    def transform(self, samples: Sequence[Sample]) -> List[DataPoint]:
        datapoints = filter_and_process(samples, self.rules)
        filtered = len(samples) - len(datapoints)
        if self.sink is not None:
            self.sink.add_filtered(self.remote, filtered)
        if filtered:
            logger.debug("filtered %d of %d samples", filtered, len(samples))
        return datapoints


__all__ = ["SampleTransformer", "filter_and_process", "tags_from_labels", "valid_value"]

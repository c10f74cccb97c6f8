"""Metric relabeling: apply an ordered rule chain to a sample's label set."""

from __future__ import annotations

import logging
from typing import Dict, Mapping, Optional, Sequence

from relay.config.schema import METRIC_NAME_LABEL, RelabelAction, RelabelRule

logger = logging.getLogger(__name__)

LabelSet = Dict[str, str]


def _match_subject(labels: Mapping[str, str], rule: RelabelRule) -> str:
    return rule.separator.join(labels.get(name, "") for name in rule.source_labels)


def apply_rule(labels: LabelSet, rule: RelabelRule) -> Optional[LabelSet]:
    """Apply one rule to ``labels`` in place.

    Returns the same dict (possibly rewritten) or ``None`` when the sample
    must be dropped.
    """

    subject = _match_subject(labels, rule)
    matched = rule.pattern.fullmatch

    if rule.action == RelabelAction.DROP:
        if matched(subject):
            logger.debug("dropping metric with values: %s", subject)
            return None
    elif rule.action == RelabelAction.KEEP:
        if not matched(subject):
            logger.debug("dropping metric with values: %s", subject)
            return None
    elif rule.action == RelabelAction.ADDPREFIX:
        if matched(subject):
            labels[METRIC_NAME_LABEL] = f"{rule.prefix}{labels.get(METRIC_NAME_LABEL, '')}"
            logger.debug("added prefix [%s]: %s", rule.prefix, labels[METRIC_NAME_LABEL])
    elif rule.action == RelabelAction.LABELDROP:
        for name in [n for n in labels if matched(n)]:
            logger.debug("dropping label [%s] in metric [%s]", name, labels.get(METRIC_NAME_LABEL, ""))
            del labels[name]
    elif rule.action == RelabelAction.LABELKEEP:
        for name in [n for n in labels if not matched(n)]:
            logger.debug("dropping label [%s] from metric [%s]", name, labels.get(METRIC_NAME_LABEL, ""))
            del labels[name]
    else:
        logger.warning("unknown relabel action type %r; rule ignored", rule.action)
    return labels


def process(labels: Mapping[str, str], rules: Sequence[RelabelRule]) -> Optional[LabelSet]:
    """Run ``rules`` in order over a private copy of ``labels``.

    Stops at the first rule that drops the sample.
    """

    working: Optional[LabelSet] = dict(labels)
    for rule in rules:
        working = apply_rule(working, rule)
        if working is None:
            return None
    return working


__all__ = ["LabelSet", "apply_rule", "process"]

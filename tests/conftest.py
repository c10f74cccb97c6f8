import threading
from collections import defaultdict
from typing import Dict, List

import pytest


class RecordingSink:
    """In-memory metrics sink that keeps totals per counter name."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.totals: Dict[str, int] = defaultdict(int)
        self.durations: List[float] = []
        self.remotes = set()

    def _add(self, remote: str, name: str, count: int) -> None:
        with self._lock:
            self.remotes.add(remote)
            self.totals[name] += count

    def add_sent(self, remote: str, count: int) -> None:
        self._add(remote, "sent_samples", count)

    def add_failed(self, remote: str, count: int) -> None:
        self._add(remote, "failed_samples", count)

    def add_unknown(self, remote: str, count: int) -> None:
        self._add(remote, "unknown_status_samples", count)

    def add_filtered(self, remote: str, count: int) -> None:
        self._add(remote, "filtered_samples", count)

    def observe_duration(self, remote: str, seconds: float) -> None:
        with self._lock:
            self.remotes.add(remote)
            self.durations.append(seconds)


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()

"""Tipos comunes del pipeline: muestras, datapoints y el contrato de métricas."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Protocol, runtime_checkable


@dataclass(frozen=True)
class Sample:
    """Una lectura recibida desde la fuente de métricas."""

    labels: Mapping[str, str]
    value: float
    timestamp_ms: int


@dataclass(frozen=True)
class DataPoint:
    """Representación de una muestra lista para enviar a KairosDB."""

    name: str
    timestamp_ms: int
    value: float
    tags: Mapping[str, str] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """Serializa al formato de ``/api/v1/datapoints``."""

        return {
            "name": self.name,
            "timestamp": self.timestamp_ms,
            "value": self.value,
            "tags": dict(self.tags),
        }


@runtime_checkable
class MetricsSink(Protocol):
    """Contrato mínimo para reportar contadores por destino."""

    def add_sent(self, remote: str, count: int) -> None:
        """Muestras confirmadas por el destino."""

    def add_failed(self, remote: str, count: int) -> None:
        """Muestras rechazadas o no entregadas."""

    def add_unknown(self, remote: str, count: int) -> None:
        """Muestras cuyo resultado no se pudo determinar."""

    def add_filtered(self, remote: str, count: int) -> None:
        """Muestras descartadas antes del envío."""

    def observe_duration(self, remote: str, seconds: float) -> None:
        """Duración de un intento de envío."""

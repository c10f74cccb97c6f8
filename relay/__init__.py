"""Relay de muestras Prometheus hacia KairosDB."""

__all__ = [
    "config",
    "pipeline",
    "webapi",
]

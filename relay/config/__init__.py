"""Configuration schemas and loaders for the relay."""

from .schema import (
    METRIC_NAME_LABEL,
    RelabelAction,
    RelabelRule,
    RelayConfig,
    ServerSettings,
    metric_name_prefix_rule,
)
from .store import (
    load_relay_config,
    relay_config_from_env,
    resolve_config_path,
)

__all__ = [
    "METRIC_NAME_LABEL",
    "RelabelAction",
    "RelabelRule",
    "RelayConfig",
    "ServerSettings",
    "load_relay_config",
    "metric_name_prefix_rule",
    "relay_config_from_env",
    "resolve_config_path",
]

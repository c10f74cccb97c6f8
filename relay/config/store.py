"""Helpers to locate, load and validate configuration files."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml

from relay.errors import ConfigurationError

from .schema import RelayConfig

logger = logging.getLogger(__name__)

CONFIG_DIR = Path(__file__).resolve().parent
DEFAULT_CONFIG_NAME = "relay.yaml"


def _read_yaml(path: Path) -> Dict[str, Any]:
    if not path.exists():
        raise FileNotFoundError(path)
    with path.open("r", encoding="utf-8") as fh:
        data = yaml.safe_load(fh) or {}
    if not isinstance(data, dict):
        raise ConfigurationError(f"Expected a mapping at {path}, found {type(data).__name__}")
    return data


def validate_file(path: Path) -> bool:
    """Return ``True`` when ``path`` is an existing, non-empty regular file."""

    if not path.exists():
        logger.debug("%s does not exist", path)
        return False
    if path.is_dir():
        logger.error("%s is a directory, not a file", path)
        return False
    if path.stat().st_size == 0:
        logger.error("%s is empty", path)
        return False
    return True


def resolve_config_path(name: str | Path) -> Path:
    """Look for ``name`` as given, then under the working and home directories."""

    raw = Path(name).expanduser()
    candidates = [raw]
    if not raw.is_absolute():
        candidates.extend([Path.cwd() / raw, Path.home() / raw])
    for candidate in candidates:
        if validate_file(candidate):
            return candidate
    raise FileNotFoundError(f"valid config file not found: {name}")


def load_relay_config(path: Optional[Path | str] = None) -> RelayConfig:
    """Read and validate the relay configuration from a YAML file."""

    cfg_path = resolve_config_path(path) if path else CONFIG_DIR / DEFAULT_CONFIG_NAME
    logger.info("Loading relay configuration from %s", cfg_path)
    raw = _read_yaml(cfg_path)
    return RelayConfig.from_mapping(raw)


def relay_config_from_env(env: Mapping[str, Any], base: Optional[Mapping[str, Any]] = None) -> RelayConfig:
    """Create the relay configuration from environment variables.

    Values present in ``env`` override the ones in ``base`` (usually the
    parsed YAML file); relabel rules can only come from ``base``.
    """

    payload: Dict[str, Any] = dict(base or {})
    overrides = {
        "kairosdb-url": env.get("RELAY_KAIROSDB_URL"),
        "metricname-prefix": env.get("RELAY_METRICNAME_PREFIX"),
        "timeout": env.get("RELAY_TIMEOUT_S"),
        "dryrun": env.get("RELAY_DRYRUN"),
        "debug": env.get("RELAY_DEBUG"),
    }
    for key, value in overrides.items():
        if value not in (None, ""):
            payload[key] = value

    server = dict(payload.get("server") or {})
    if env.get("RELAY_SERVER_HOST"):
        server["host"] = env["RELAY_SERVER_HOST"]
    if env.get("RELAY_SERVER_PORT"):
        server["port"] = env["RELAY_SERVER_PORT"]
    if server:
        payload["server"] = server
    return RelayConfig.from_mapping(payload)

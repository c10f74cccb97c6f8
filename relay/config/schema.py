"""Typed configuration models implemented with dataclasses."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, List, Mapping, Optional, Pattern, Tuple, Union
from urllib.parse import urlparse

from relay.errors import ConfigurationError

METRIC_NAME_LABEL = "__name__"

MIN_TIMEOUT_S = 1.0
MAX_TIMEOUT_S = 60.0
DEFAULT_TIMEOUT_S = 30.0
DEFAULT_SERVER_PORT = 9201

_DURATION_RE = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*(ms|s|m|h)?\s*$")
_DURATION_UNITS = {"ms": 0.001, "s": 1.0, "m": 60.0, "h": 3600.0}


def _as_str(value: Any, field_name: str, *, optional: bool = False) -> Optional[str]:
    if value is None:
        if optional:
            return None
        raise ConfigurationError(f"'{field_name}' es obligatorio")
    text = str(value).strip()
    if not text and not optional:
        raise ConfigurationError(f"'{field_name}' no puede estar vacío")
    return text or None


def _as_int(value: Any, field_name: str) -> int:
    if value is None:
        raise ConfigurationError(f"'{field_name}' es obligatorio")
    try:
        result = int(value)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"'{field_name}' debe ser un entero válido") from exc
    return result


def _as_duration_s(value: Any, field_name: str) -> float:
    """Accept plain seconds (``30``, ``2.5``) or suffixed strings (``"30s"``, ``"500ms"``)."""

    if isinstance(value, bool):
        raise ConfigurationError(f"'{field_name}' debe ser una duración válida")
    if isinstance(value, (int, float)):
        return float(value)
    match = _DURATION_RE.match(str(value))
    if not match:
        raise ConfigurationError(f"'{field_name}' debe ser una duración válida")
    amount, unit = match.groups()
    return float(amount) * _DURATION_UNITS[unit or "s"]


def _as_bool(value: Any, default: bool = False) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in {"1", "true", "yes", "si", "sí", "on"}:
        return True
    if text in {"0", "false", "no", "off"}:
        return False
    return default


def _as_label_names(value: Any, field_name: str) -> Tuple[str, ...]:
    if value in (None, ""):
        return ()
    if isinstance(value, str):
        return (value.strip(),)
    if not isinstance(value, Iterable):
        raise ConfigurationError(f"'{field_name}' debe ser una lista de etiquetas")
    return tuple(str(item).strip() for item in value)


def compile_anchored(expression: str) -> Pattern[str]:
    """Compile ``expression`` so that only full matches succeed."""

    try:
        return re.compile(f"^(?:{expression})$")
    except re.error as exc:
        raise ConfigurationError(f"regex inválida {expression!r}: {exc}") from exc


class RelabelAction(str, Enum):
    KEEP = "keep"
    DROP = "drop"
    LABELDROP = "labeldrop"
    LABELKEEP = "labelkeep"
    ADDPREFIX = "addprefix"

    @classmethod
    def parse(cls, value: Any) -> Union["RelabelAction", str]:
        """Return the known action, or the raw text for unrecognized ones.

        Names are matched case-sensitively, so ``Drop`` is not ``drop``.
        """

        if isinstance(value, cls):
            return value
        text = str(value or "").strip()
        try:
            return cls(text)
        except ValueError:
            return text


@dataclass(frozen=True)
class RelabelRule:
    """One step of the metric relabel chain.

    ``regex`` keeps the expression as written in the configuration while
    ``pattern`` holds its fully anchored compilation.
    """

    action: Union[RelabelAction, str]
    source_labels: Tuple[str, ...] = ()
    separator: str = ""
    regex: str = ".*"
    prefix: str = ""
    pattern: Pattern[str] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "action", RelabelAction.parse(self.action))
        object.__setattr__(self, "source_labels", tuple(self.source_labels))
        if self.action in (RelabelAction.LABELDROP, RelabelAction.LABELKEEP):
            if self.source_labels or self.separator:
                raise ConfigurationError(
                    f"con action=={self.action.value} solo se admite regex "
                    "(source_labels y separator deben omitirse)"
                )
        if self.action == RelabelAction.ADDPREFIX and not self.prefix:
            raise ConfigurationError("la acción addprefix requiere prefix")
        object.__setattr__(self, "pattern", compile_anchored(self.regex))

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "RelabelRule":
        if not isinstance(data, Mapping):
            raise ConfigurationError("cada metric_relabel_configs[] debe ser un mapa")
        action = RelabelAction.parse(data.get("action", RelabelAction.KEEP.value))
        source_labels = _as_label_names(data.get("source_labels"), "metric_relabel_configs[].source_labels")
        separator = "" if data.get("separator") is None else str(data.get("separator"))
        regex_raw = data.get("regex")
        regex = ".*" if regex_raw is None else str(regex_raw)
        prefix = "" if data.get("prefix") is None else str(data.get("prefix"))
        return cls(
            action=action,
            source_labels=source_labels,
            separator=separator,
            regex=regex,
            prefix=prefix,
        )

    def to_dict(self) -> Dict[str, Any]:
        action = self.action.value if isinstance(self.action, RelabelAction) else self.action
        payload: Dict[str, Any] = {"action": action, "regex": self.regex}
        if self.source_labels:
            payload["source_labels"] = list(self.source_labels)
        if self.separator:
            payload["separator"] = self.separator
        if self.prefix:
            payload["prefix"] = self.prefix
        return payload


def metric_name_prefix_rule(prefix: str) -> RelabelRule:
    """Rule that prepends ``prefix`` to every metric name."""

    return RelabelRule(
        action=RelabelAction.ADDPREFIX,
        source_labels=(METRIC_NAME_LABEL,),
        regex=".*",
        prefix=prefix,
    )


@dataclass
class ServerSettings:
    host: str = "0.0.0.0"
    port: int = DEFAULT_SERVER_PORT

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any] | None) -> "ServerSettings":
        if not data:
            return cls()
        host = _as_str(data.get("host", "0.0.0.0"), "server.host") or "0.0.0.0"
        port_raw = data.get("port", DEFAULT_SERVER_PORT)
        # Formato heredado ":9201".
        if isinstance(port_raw, str):
            port_raw = port_raw.strip().lstrip(":") or DEFAULT_SERVER_PORT
        port = _as_int(port_raw, "server.port")
        if not 0 < port < 65536:
            raise ConfigurationError("server.port debe estar entre 1 y 65535")
        return cls(host=host, port=port)

    def to_dict(self) -> Dict[str, Any]:
        return {"host": self.host, "port": self.port}


@dataclass
class RelayConfig:
    kairosdb_url: str
    metricname_prefix: str = ""
    timeout_s: float = DEFAULT_TIMEOUT_S
    metric_relabel_configs: List[RelabelRule] = field(default_factory=list)
    server: ServerSettings = field(default_factory=ServerSettings)
    dryrun: bool = False
    debug: bool = False

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "RelayConfig":
        url = _as_str(data.get("kairosdb-url", data.get("kairosdb_url")), "kairosdb-url")
        parsed = urlparse(url)
        if parsed.scheme not in {"http", "https"} or not parsed.netloc:
            raise ConfigurationError(f"kairosdb-url debe ser una URL http(s) válida: {url!r}")

        prefix_raw = data.get("metricname-prefix", data.get("metricname_prefix"))
        prefix = _as_str(prefix_raw, "metricname-prefix", optional=True) or ""

        timeout_raw = data.get("timeout", data.get("timeout_s"))
        if timeout_raw in (None, "", 0):
            timeout_s = DEFAULT_TIMEOUT_S
        else:
            timeout_s = _as_duration_s(timeout_raw, "timeout")
        if timeout_s > MAX_TIMEOUT_S:
            raise ConfigurationError(
                f"timeout {timeout_s}s es demasiado alto; debe estar entre {MIN_TIMEOUT_S}s y {MAX_TIMEOUT_S}s"
            )
        if timeout_s < MIN_TIMEOUT_S:
            raise ConfigurationError(
                f"timeout {timeout_s}s es demasiado bajo; debe estar entre {MIN_TIMEOUT_S}s y {MAX_TIMEOUT_S}s"
            )

        rules_payload = data.get("metric_relabel_configs") or []
        if isinstance(rules_payload, (str, bytes)) or not isinstance(rules_payload, Iterable):
            raise ConfigurationError("metric_relabel_configs debe ser una lista")
        rules = [RelabelRule.from_mapping(item) for item in rules_payload]

        return cls(
            kairosdb_url=url,
            metricname_prefix=prefix,
            timeout_s=timeout_s,
            metric_relabel_configs=rules,
            server=ServerSettings.from_mapping(data.get("server")),
            dryrun=_as_bool(data.get("dryrun"), False),
            debug=_as_bool(data.get("debug"), False),
        )

    @property
    def relabel_rules(self) -> List[RelabelRule]:
        """Configured rules followed by the metric name prefix rule, if any."""

        rules = list(self.metric_relabel_configs)
        if self.metricname_prefix:
            rules.append(metric_name_prefix_rule(self.metricname_prefix))
        return rules

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "kairosdb-url": self.kairosdb_url,
            "timeout": self.timeout_s,
            "metric_relabel_configs": [rule.to_dict() for rule in self.metric_relabel_configs],
            "server": self.server.to_dict(),
            "dryrun": self.dryrun,
            "debug": self.debug,
        }
        if self.metricname_prefix:
            payload["metricname-prefix"] = self.metricname_prefix
        return payload

"""Operational endpoints: Prometheus metrics, active configuration and destination health."""

from __future__ import annotations

from datetime import datetime, timezone
from time import perf_counter
from typing import Any, Dict

import anyio
import requests
from fastapi import APIRouter, Depends, Request, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from relay.config.schema import RelayConfig

from .auth import require_token

router = APIRouter(tags=["status"])

HEALTH_ENDPOINT = "/api/v1/health/check"


def _check_kairosdb_health(session: requests.Session, config: RelayConfig) -> Dict[str, Any]:
    url = f"{config.kairosdb_url.rstrip('/')}{HEALTH_ENDPOINT}"
    start = perf_counter()
    try:
        response = session.get(url, timeout=config.timeout_s)
    except requests.RequestException as exc:
        return {
            "ok": False,
            "message": f"No se pudo conectar al endpoint de salud: {exc}",
            "http_status": None,
            "latency_ms": None,
        }

    latency_ms = round((perf_counter() - start) * 1000, 2)
    if response.ok:
        message = "KairosDB respondió correctamente al chequeo de salud."
    else:
        message = f"KairosDB devolvió {response.status_code}."
    return {
        "ok": response.ok,
        "message": message,
        "http_status": response.status_code,
        "latency_ms": latency_ms,
        "checked_at": datetime.now(timezone.utc).isoformat(),
    }


@router.get("/metrics")
async def metrics(request: Request) -> Response:
    registry = request.app.state.registry
    return Response(content=generate_latest(registry), media_type=CONTENT_TYPE_LATEST)


@router.get("/config", dependencies=[Depends(require_token)])
async def get_config(request: Request) -> Dict[str, Any]:
    """Return the active relay configuration."""

    config: RelayConfig = request.app.state.config
    return config.to_dict()


@router.get("/config/status", dependencies=[Depends(require_token)])
async def get_kairosdb_status(request: Request) -> Dict[str, Any]:
    """Probe the KairosDB health endpoint with the relay session."""

    client = request.app.state.client
    return await anyio.to_thread.run_sync(_check_kairosdb_health, client.session, client.config)


__all__ = ["router"]

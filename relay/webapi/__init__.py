"""FastAPI application exposing the relay ingest and status endpoints."""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from fastapi import FastAPI
from prometheus_client import CollectorRegistry

from relay.config.schema import RelayConfig
from relay.pipeline import KairosDBClient, PrometheusSink

from .status import router as status_router
from .write import router as write_router


def create_app(
    config: RelayConfig,
    client: Optional[KairosDBClient] = None,
    registry: Optional[CollectorRegistry] = None,
) -> FastAPI:
    """Build the web app around one client and one metrics registry."""

    if client is None:
        sink = PrometheusSink(registry)
        registry = sink.registry
        client = KairosDBClient(config, sink)
    elif registry is None:
        registry = getattr(client.sink, "registry", None) or CollectorRegistry()

    @asynccontextmanager
    async def lifespan(_: FastAPI) -> AsyncIterator[None]:
        yield
        client.close()

    app = FastAPI(title="KairosDB Relay", version="1.0.0", lifespan=lifespan)
    app.state.config = config
    app.state.client = client
    app.state.registry = registry

    app.include_router(write_router)
    app.include_router(status_router)

    return app


__all__ = ["create_app"]

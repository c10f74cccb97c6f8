"""Ingest endpoint: receives sample batches and forwards them to KairosDB."""

from __future__ import annotations

from typing import Dict, List, Union

import anyio
from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field, field_validator

from relay.config.schema import METRIC_NAME_LABEL
from relay.pipeline import KairosDBClient, Sample

from .auth import require_token

router = APIRouter(tags=["write"], dependencies=[Depends(require_token)])


class SamplePayload(BaseModel):
    labels: Dict[str, str] = Field(description="Etiquetas de la serie, incluida __name__")
    value: Union[float, str] = Field(description="Valor numérico; admite 'NaN', '+Inf' y '-Inf'")
    timestamp_ms: int = Field(description="Marca temporal en milisegundos desde epoch")

    @field_validator("labels")
    @classmethod
    def _require_metric_name(cls, labels: Dict[str, str]) -> Dict[str, str]:
        if not labels.get(METRIC_NAME_LABEL):
            raise ValueError(f"la etiqueta {METRIC_NAME_LABEL} es obligatoria")
        return labels

    @field_validator("value")
    @classmethod
    def _parse_value(cls, value: Union[float, str]) -> float:
        try:
            return float(value)
        except (TypeError, ValueError) as exc:
            raise ValueError(f"valor no numérico: {value!r}") from exc

    def to_sample(self) -> Sample:
        return Sample(labels=dict(self.labels), value=float(self.value), timestamp_ms=self.timestamp_ms)


class WriteRequest(BaseModel):
    samples: List[SamplePayload] = Field(default_factory=list)


class WriteResponse(BaseModel):
    state: str
    sent: int
    failed: int
    unknown: int
    error: str | None = None


@router.post("/write", response_model=WriteResponse)
async def write_samples(payload: WriteRequest, request: Request) -> JSONResponse:
    """Relabel and forward one batch; 502 when the batch ends with an error."""

    client: KairosDBClient = request.app.state.client
    samples = [item.to_sample() for item in payload.samples]
    outcome = await anyio.to_thread.run_sync(client.send, samples)
    status_code = status.HTTP_200_OK if outcome.ok else status.HTTP_502_BAD_GATEWAY
    return JSONResponse(status_code=status_code, content=outcome.to_dict())


__all__ = ["router"]

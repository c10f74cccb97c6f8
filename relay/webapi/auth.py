"""Bearer token check for the ingest and configuration endpoints.

The token comes from ``RELAY_WEBAPI_TOKEN`` or, failing that, from the file
named by ``RELAY_WEBAPI_TOKEN_FILE``. With neither set, authentication is off.
"""

from __future__ import annotations

import hmac
import os
from pathlib import Path
from typing import Mapping, Optional

from fastapi import HTTPException, Security, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

_bearer_scheme = HTTPBearer(auto_error=False)


def resolve_token(env: Mapping[str, str]) -> Optional[str]:
    token = (env.get("RELAY_WEBAPI_TOKEN") or "").strip()
    if token:
        return token
    token_file = env.get("RELAY_WEBAPI_TOKEN_FILE")
    if not token_file:
        return None
    try:
        return Path(token_file).read_text(encoding="utf-8").strip() or None
    except FileNotFoundError:
        return None


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


async def require_token(
    credentials: HTTPAuthorizationCredentials | None = Security(_bearer_scheme),
) -> None:
    expected = resolve_token(os.environ)
    if expected is None:
        return
    if credentials is None:
        raise _unauthorized("Token requerido")
    supplied = credentials.credentials.encode("utf-8")
    if credentials.scheme.lower() != "bearer" or not hmac.compare_digest(supplied, expected.encode("utf-8")):
        raise _unauthorized("Token inválido")

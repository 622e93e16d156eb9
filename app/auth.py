"""Optional bearer token check for the ingestion endpoint."""

from __future__ import annotations

import hmac
import logging
from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from settings import get_settings

logger = logging.getLogger(__name__)

_bearer = HTTPBearer(auto_error=False)


def get_ingest_token() -> Optional[str]:
    return get_settings().ingest_token


def require_ingest_token(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer),
    expected: Optional[str] = Depends(get_ingest_token),
) -> None:
    """Reject the request unless it carries the configured token.

    Authentication is disabled when ``INGEST_TOKEN`` is unset.
    """
    if not expected:
        return

    if credentials is None:
        logger.warning("Request blocked: missing or malformed Authorization header")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing bearer token.",
            headers={"WWW-Authenticate": "Bearer"},
        )

    if not hmac.compare_digest(credentials.credentials.encode(), expected.encode()):
        logger.warning("Request blocked: invalid token")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authentication token.",
            headers={"WWW-Authenticate": "Bearer"},
        )

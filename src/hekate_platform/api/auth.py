from __future__ import annotations

import asyncio
import logging
import os
from typing import Optional

import httpx

logger = logging.getLogger(__name__)


SESSION_SERVICE_URL = os.getenv("SESSION_SERVICE_URL")
SESSION_SERVICE_TIMEOUT = float(os.getenv("SESSION_SERVICE_TIMEOUT", "20.0"))
DEV_USER_HEADER = "X-User-Id"

_http_client: httpx.AsyncClient | None = None
_http_client_lock = asyncio.Lock()


def is_dev_mode() -> bool:
    """Check if running in development mode."""
    return os.getenv("ENVIRONMENT", "development").lower() == "development"


async def _get_http_client() -> httpx.AsyncClient:
    """Get or create shared HTTP client with connection pooling."""
    global _http_client
    if _http_client is None or _http_client.is_closed:
        async with _http_client_lock:
            if _http_client is None or _http_client.is_closed:
                _http_client = httpx.AsyncClient(
                    timeout=SESSION_SERVICE_TIMEOUT,
                    limits=httpx.Limits(
                        max_connections=100, max_keepalive_connections=20
                    ),
                )
    return _http_client


async def close_http_client() -> None:
    global _http_client
    if _http_client is not None and not _http_client.is_closed:
        await _http_client.aclose()
    _http_client = None


async def validate_with_session_service(token: str) -> str:
    """
    Validate a session token with the session service and return the user id.

    Raises:
        PermissionError: token rejected
        RuntimeError: session service missing or unreachable
    """
    if not SESSION_SERVICE_URL:
        raise RuntimeError("SESSION_SERVICE_URL not configured for production mode")

    try:
        client = await _get_http_client()
        response = await client.post(
            f"{SESSION_SERVICE_URL}/validate",
            json={"token": token},
        )

        if response.status_code == 200:
            data = response.json()
            if data.get("valid") and data.get("user_id"):
                return data["user_id"]
            raise PermissionError(data.get("reason", "invalid session"))
        elif response.status_code == 401:
            raise PermissionError("invalid session token")
        else:
            raise PermissionError(f"authorization failed: {response.status_code}")

    except httpx.TimeoutException:
        raise PermissionError("session service timeout - try again")
    except httpx.RequestError as e:
        raise RuntimeError(f"session service unavailable: {e}")


async def get_principal_id(
    authorization: Optional[str], dev_user_id: Optional[str] = None
) -> str:
    """
    Resolve the acting user id for a request.

    In development the id is taken verbatim from the X-User-Id header;
    otherwise the bearer token is checked against the session service.
    """
    if is_dev_mode():
        if dev_user_id and dev_user_id.strip():
            return dev_user_id.strip()
        raise PermissionError(f"{DEV_USER_HEADER} header required in development mode")

    if not authorization:
        raise PermissionError("authorization required")

    token = authorization
    if authorization.lower().startswith("bearer "):
        token = authorization[7:]

    return await validate_with_session_service(token)

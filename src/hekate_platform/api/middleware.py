from __future__ import annotations

import logging

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response, JSONResponse
from starlette import status

from hekate_platform.api.auth import DEV_USER_HEADER, get_principal_id
from hekate_platform.db.session import SessionManager

logger = logging.getLogger(__name__)

PUBLIC_PATHS = {"/api/health", "/api/calendar/auth/google/callback"}


def _error(code: int, message: str, reason: str) -> JSONResponse:
    return JSONResponse(
        {
            "error": {
                "code": code,
                "message": message,
                "errors": [
                    {"domain": "global", "reason": reason, "message": message}
                ],
            }
        },
        status_code=code,
    )


class SessionMiddleware(BaseHTTPMiddleware):
    """Authenticates the caller and opens one database session per request."""

    def __init__(self, app, *, session_manager: SessionManager):
        super().__init__(app)
        self.session_manager = session_manager

    async def dispatch(self, request: Request, call_next) -> Response:
        path = request.scope.get("path", "")
        if path == "/api/health":
            return await call_next(request)

        try:
            user_id = None
            if path not in PUBLIC_PATHS:
                user_id = await get_principal_id(
                    request.headers.get("Authorization"),
                    dev_user_id=request.headers.get(DEV_USER_HEADER),
                )

            with self.session_manager.with_session() as session:
                request.state.user_id = user_id
                request.state.db_session = session
                return await call_next(request)
        except PermissionError as exc:
            return _error(status.HTTP_401_UNAUTHORIZED, str(exc), "authError")
        except RuntimeError as exc:
            logger.error(f"Session service error: {exc}")
            return _error(
                status.HTTP_503_SERVICE_UNAVAILABLE, str(exc), "backendError"
            )
        except Exception:
            logger.exception("Unhandled exception in SessionMiddleware")
            return _error(
                status.HTTP_500_INTERNAL_SERVER_ERROR,
                "Internal server error",
                "internalError",
            )

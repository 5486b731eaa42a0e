# Calendar service error handling
# Every failure surfaces as {"error": {"code", "message", "errors": [...]}}

import logging
from typing import Any, Optional

from starlette.responses import JSONResponse

logger = logging.getLogger(__name__)


# ============================================================================
# ERROR REASONS
# ============================================================================

ERROR_NOT_FOUND = "notFound"
ERROR_INVALID = "invalid"
ERROR_REQUIRED = "required"
ERROR_DUPLICATE = "duplicate"
ERROR_FORBIDDEN = "forbidden"
ERROR_UNAUTHORIZED = "authError"
ERROR_INTERNAL = "internalError"
ERROR_CONFLICT = "conflict"
ERROR_METHOD_NOT_ALLOWED = "methodNotAllowed"
ERROR_BACKEND = "backendError"

ERROR_EVENT_NOT_FOUND = "eventNotFound"
ERROR_INTEGRATION_NOT_FOUND = "integrationNotFound"
ERROR_TOKEN_REFRESH = "tokenRefreshFailed"
ERROR_MALFORMED_REMOTE_EVENT = "malformedRemoteEvent"

ERROR_DOMAIN_GLOBAL = "global"
ERROR_DOMAIN_CALENDAR = "calendar"
ERROR_DOMAIN_SYNC = "sync"


# ============================================================================
# EXCEPTION CLASSES
# ============================================================================


class CalendarAPIError(Exception):
    """Base exception for calendar service errors."""

    def __init__(
        self,
        message: str,
        status_code: int = 400,
        reason: str = ERROR_INVALID,
        domain: str = ERROR_DOMAIN_CALENDAR,
        location: Optional[str] = None,
        location_type: Optional[str] = None,
    ):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.reason = reason
        self.domain = domain
        self.location = location
        self.location_type = location_type

    def error_details(self) -> list[dict[str, Any]]:
        detail: dict[str, Any] = {
            "domain": self.domain,
            "reason": self.reason,
            "message": self.message,
        }
        if self.location:
            detail["location"] = self.location
        if self.location_type:
            detail["locationType"] = self.location_type
        return [detail]

    def to_dict(self) -> dict[str, Any]:
        """Convert to an error response dict."""
        return {
            "error": {
                "code": self.status_code,
                "message": self.message,
                "errors": self.error_details(),
            }
        }

    def to_response(self) -> JSONResponse:
        """Convert to Starlette JSONResponse."""
        return JSONResponse(
            content=self.to_dict(),
            status_code=self.status_code,
        )


class NotFoundError(CalendarAPIError):
    """Resource not found (404)."""

    def __init__(
        self,
        message: str = "Not Found",
        reason: str = ERROR_NOT_FOUND,
    ):
        super().__init__(
            message=message,
            status_code=404,
            reason=reason,
        )


class EventNotFoundError(NotFoundError):
    def __init__(self, event_id: str):
        super().__init__(
            message=f"Event not found: {event_id}",
            reason=ERROR_EVENT_NOT_FOUND,
        )


class IntegrationNotFoundError(NotFoundError):
    def __init__(self, integration_id: str):
        super().__init__(
            message=f"Calendar integration not found: {integration_id}",
            reason=ERROR_INTEGRATION_NOT_FOUND,
        )


class ValidationError(CalendarAPIError):
    """Invalid request data (400)."""

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        reason: str = ERROR_INVALID,
    ):
        location = field
        location_type = "parameter" if field else None
        super().__init__(
            message=message,
            status_code=400,
            reason=reason,
            location=location,
            location_type=location_type,
        )


class RequiredFieldError(ValidationError):
    """Required field missing (400)."""

    def __init__(self, field: str):
        super().__init__(
            message=f"Required field missing: {field}",
            field=field,
            reason=ERROR_REQUIRED,
        )


class InvalidFieldError(ValidationError):
    """Invalid field value (400)."""

    def __init__(self, field: str, message: Optional[str] = None):
        msg = message or f"Invalid value for field: {field}"
        super().__init__(
            message=msg,
            field=field,
            reason=ERROR_INVALID,
        )


class SchemaValidationError(ValidationError):
    """
    Request body rejected by a pydantic model (400).

    Carries one ``errors[]`` entry per pydantic error, located by the
    dotted field path.
    """

    def __init__(self, errors: list[dict[str, Any]], message: str = "Validation failed"):
        super().__init__(message=message)
        self.details = []
        for err in errors:
            loc = ".".join(
                str(part) for part in err.get("loc", ()) if part is not None
            )
            detail: dict[str, Any] = {
                "domain": ERROR_DOMAIN_CALENDAR,
                "reason": ERROR_INVALID,
                "message": err.get("msg", "Invalid value"),
            }
            if loc:
                detail["location"] = loc
                detail["locationType"] = "body"
            self.details.append(detail)

    @classmethod
    def from_pydantic(cls, exc) -> "SchemaValidationError":
        return cls(exc.errors(include_url=False, include_context=False))

    def error_details(self) -> list[dict[str, Any]]:
        return self.details or super().error_details()


class DuplicateError(CalendarAPIError):
    """Duplicate resource (409)."""

    def __init__(self, message: str = "Resource already exists"):
        super().__init__(
            message=message,
            status_code=409,
            reason=ERROR_DUPLICATE,
        )


class ConflictError(CalendarAPIError):
    """Request conflicts with current state (409)."""

    def __init__(self, message: str = "Conflict"):
        super().__init__(
            message=message,
            status_code=409,
            reason=ERROR_CONFLICT,
        )


class ForbiddenError(CalendarAPIError):
    """Access forbidden (403)."""

    def __init__(self, message: str = "Forbidden"):
        super().__init__(
            message=message,
            status_code=403,
            reason=ERROR_FORBIDDEN,
        )


class UnauthorizedError(CalendarAPIError):
    """Unauthorized access (401)."""

    def __init__(self, message: str = "Unauthorized"):
        super().__init__(
            message=message,
            status_code=401,
            reason=ERROR_UNAUTHORIZED,
            domain=ERROR_DOMAIN_GLOBAL,
        )


class MethodNotAllowedError(CalendarAPIError):
    """HTTP method not supported on this path (405)."""

    def __init__(self, method: str):
        super().__init__(
            message=f"Method {method} not allowed",
            status_code=405,
            reason=ERROR_METHOD_NOT_ALLOWED,
            domain=ERROR_DOMAIN_GLOBAL,
        )


class RemoteCalendarError(CalendarAPIError):
    """The remote calendar provider rejected a call or was unreachable (502)."""

    def __init__(self, message: str, remote_status: Optional[int] = None):
        super().__init__(
            message=message,
            status_code=502,
            reason=ERROR_BACKEND,
            domain=ERROR_DOMAIN_SYNC,
        )
        self.remote_status = remote_status


class TokenRefreshError(RemoteCalendarError):
    """Access token could not be refreshed; the sync run cannot continue."""

    def __init__(self, message: str = "Failed to refresh access token", remote_status: Optional[int] = None):
        super().__init__(message=message, remote_status=remote_status)
        self.reason = ERROR_TOKEN_REFRESH


class MalformedRemoteEventError(CalendarAPIError):
    """A remote event payload lacks a usable id, start or end."""

    def __init__(self, message: str):
        super().__init__(
            message=message,
            status_code=502,
            reason=ERROR_MALFORMED_REMOTE_EVENT,
            domain=ERROR_DOMAIN_SYNC,
        )


class InternalError(CalendarAPIError):
    """Internal server error (500)."""

    def __init__(self, message: str = "Internal Server Error"):
        super().__init__(
            message=message,
            status_code=500,
            reason=ERROR_INTERNAL,
        )


# ============================================================================
# ERROR HANDLING UTILITIES
# ============================================================================


def handle_exception(exc: Exception) -> JSONResponse:
    """Convert an exception to a JSONResponse."""
    if isinstance(exc, CalendarAPIError):
        return exc.to_response()

    logger.error(f"Unexpected exception: {exc}", exc_info=True)
    return InternalError().to_response()

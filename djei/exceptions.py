"""
Custom exception classes and FastAPI exception handlers.

The service layer raises domain-specific errors (InsufficientFundsError,
RoleAlreadyAssignedError, ...) without importing HTTP concepts. The
handlers registered here translate them into responses that share one
envelope:

    {"success": false, "error": "<generic message>", ...extra fields}

Exception hierarchy:
    DJEIAPIError (base)
    ├── AuthenticationError       — 401 missing/invalid/expired credential
    ├── AuthorizationError        — 403 valid identity, insufficient privilege
    ├── ValidationError           — 400 malformed/out-of-range input
    ├── InsufficientFundsError    — 400 debit larger than the balance
    ├── NotFoundError             — 404
    │   └── RoleNotFoundError     — 404 user has not picked a role yet
    ├── ConflictError             — 409
    │   └── RoleAlreadyAssignedError
    ├── UpstreamError             — 502 third-party API failed
    └── ServiceUnavailableError   — 503 integration not configured
"""

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from djei.log import get_logger

logger = get_logger(__name__)


# ---------------------------------------------------------------------------
# Base exception
# ---------------------------------------------------------------------------

class DJEIAPIError(Exception):
    """Base exception for all DJEI domain errors."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    error_type: str = "error"

    def __init__(self, detail: str = "An error occurred"):
        self.detail = detail
        super().__init__(self.detail)

    def extra(self) -> dict:
        """Additional response fields for this error."""
        return {}


# ---------------------------------------------------------------------------
# Domain exceptions
# ---------------------------------------------------------------------------

class AuthenticationError(DJEIAPIError):
    status_code = status.HTTP_401_UNAUTHORIZED
    error_type = "authentication"

    def __init__(self, detail: str = "Invalid or expired token"):
        super().__init__(detail)


class AuthorizationError(DJEIAPIError):
    status_code = status.HTTP_403_FORBIDDEN
    error_type = "authorization"

    def __init__(self, detail: str = "Admin privileges required"):
        super().__init__(detail)


class ValidationError(DJEIAPIError):
    """
    Raised for input that passed the schema layer but is still unusable,
    or for payloads the service validates itself (role profile updates).

    Attributes:
        details: List of {"field", "message"} dicts.
    """

    status_code = status.HTTP_400_BAD_REQUEST
    error_type = "validation"

    def __init__(self, detail: str = "Validation failed", details: list[dict] | None = None):
        self.details = details or []
        super().__init__(detail)

    def extra(self) -> dict:
        return {"details": self.details} if self.details else {}


class InsufficientFundsError(DJEIAPIError):
    """
    Raised when a debit would drive a token balance negative.

    Attributes:
        account_id: The account that lacks tokens.
        current_balance: The balance at the time of the check.
        required: The amount the caller tried to debit.
    """

    status_code = status.HTTP_400_BAD_REQUEST
    error_type = "insufficient_funds"

    def __init__(self, account_id: str, current_balance: int, required: int):
        self.account_id = account_id
        self.current_balance = current_balance
        self.required = required
        super().__init__("Insufficient tokens")

    def extra(self) -> dict:
        return {"currentBalance": self.current_balance, "required": self.required}


class NotFoundError(DJEIAPIError):
    status_code = status.HTTP_404_NOT_FOUND
    error_type = "not_found"

    def __init__(self, detail: str = "Not found"):
        super().__init__(detail)


class RoleNotFoundError(NotFoundError):
    """Raised when an account has no role yet (a first-time user)."""

    def __init__(self, account_id: str):
        self.account_id = account_id
        super().__init__("User role not found")

    def extra(self) -> dict:
        return {"isNewUser": True}


class ConflictError(DJEIAPIError):
    status_code = status.HTTP_409_CONFLICT
    error_type = "conflict"

    def __init__(self, detail: str = "Conflict"):
        super().__init__(detail)


class RoleAlreadyAssignedError(ConflictError):
    """Raised when assigning a role to an account that already holds one."""

    def __init__(self, account_id: str, current_role: str):
        self.account_id = account_id
        self.current_role = current_role
        super().__init__("User already has a role assigned")

    def extra(self) -> dict:
        return {"currentRole": self.current_role}


class UpstreamError(DJEIAPIError):
    status_code = status.HTTP_502_BAD_GATEWAY
    error_type = "upstream"

    def __init__(self, detail: str = "Upstream service error"):
        super().__init__(detail)


class ServiceUnavailableError(DJEIAPIError):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    error_type = "unavailable"

    def __init__(self, detail: str = "Service not configured"):
        super().__init__(detail)


# ---------------------------------------------------------------------------
# FastAPI exception handlers
# ---------------------------------------------------------------------------

def _error_body(message: str, **extra) -> dict:
    return {"success": False, "error": message, **extra}


def _field_name(loc: tuple) -> str:
    # ("body", "profileData", "name") -> "profileData.name"
    parts = [str(p) for p in loc if p not in ("body", "query", "path", "header")]
    return ".".join(parts) or "request"


def _detail(err: dict) -> dict:
    loc = tuple(err.get("loc", ()))
    if err.get("type") in ("union_tag_invalid", "union_tag_not_found"):
        # Tagged unions report on the union itself and quote the bad tag;
        # name the tag field instead.
        ctx = err.get("ctx") or {}
        tag_field = str(ctx.get("discriminator", "")).strip("'\"")
        expected = ctx.get("expected_tags")
        message = f"Must be one of: {expected}" if expected else f"{tag_field} is required"
        return {"field": _field_name(loc + (tag_field,)), "message": message}
    return {"field": _field_name(loc), "message": err.get("msg", "Invalid value")}


def validation_details(errors: list[dict]) -> list[dict]:
    """Reduce Pydantic errors to {field, message} pairs (no input echo)."""
    return [_detail(err) for err in errors]


def register_exception_handlers(app: FastAPI) -> None:
    """
    Register custom exception handlers with the FastAPI application.

    This is called once during app startup in main.py.
    """

    @app.exception_handler(DJEIAPIError)
    async def domain_error_handler(request: Request, exc: DJEIAPIError) -> JSONResponse:
        headers = None
        if isinstance(exc, AuthenticationError):
            headers = {"WWW-Authenticate": "Bearer"}
        return JSONResponse(
            status_code=exc.status_code,
            content=_error_body(exc.detail, **exc.extra()),
            headers=headers,
        )

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content=_error_body("Validation failed", details=validation_details(exc.errors())),
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(
        request: Request, exc: StarletteHTTPException
    ) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content=_error_body(str(exc.detail)),
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("unhandled_exception", path=request.url.path, exc_info=exc)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=_error_body("Internal server error"),
        )

from typing import Any, Optional

from fastapi import HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from .utils import get_current_utc


class APIException(HTTPException):
    status_code_default = 400

    def __init__(self, detail: str, status_code: Optional[int] = None, details: Any = None):
        super().__init__(status_code=status_code or self.status_code_default, detail=detail)
        self.details = details


class ValidationError(APIException):
    status_code_default = 400


class AuthenticationError(APIException):
    status_code_default = 401


class AuthorizationError(APIException):
    status_code_default = 403


class NotFoundError(APIException):
    status_code_default = 404


class ConflictError(APIException):
    status_code_default = 409


class InvalidStateError(APIException):
    """Business precondition on the current status does not hold."""
    status_code_default = 400


class ExternalProviderError(APIException):
    """The payment provider rejected or failed a call."""
    status_code_default = 502


def create_error_response(message: Any, details: Any = None) -> dict:
    """Create a standardized error response"""
    body = {
        "success": False,
        "timestamp": get_current_utc(),
        "message": message,
    }
    if details is not None:
        body["details"] = details
    return body


def create_success_response(data: Any = None, message: Optional[str] = None) -> dict:
    """Create a standardized success response"""
    body = {
        "success": True,
        "timestamp": get_current_utc(),
    }
    if message is not None:
        body["message"] = message
    if data is not None:
        body["data"] = data
    return body


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Custom exception handler for HTTPException"""
    # Convert 403 from HTTPBearer to 401 for missing authentication
    if exc.status_code == 403 and "Not authenticated" in str(exc.detail):
        return JSONResponse(
            status_code=401,
            content=create_error_response("Authentication required"),
        )

    return JSONResponse(
        status_code=exc.status_code,
        content=create_error_response(exc.detail, getattr(exc, "details", None)),
        headers=getattr(exc, "headers", None),
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    messages = []
    for err in exc.errors():
        loc = ".".join(str(part) for part in err.get("loc", ()) if part != "body")
        messages.append(f"{loc}: {err.get('msg')}" if loc else err.get("msg"))
    return JSONResponse(
        status_code=400,
        content=create_error_response("; ".join(messages) or "Invalid request"),
    )

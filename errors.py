"""
Errors raised by the portal and the handlers that turn them into responses.

Every error carries a static, client-safe message. Store failures are logged
with their detail and answered with a generic 500.
"""

from typing import Any, Dict, Optional

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pymongo.errors import DuplicateKeyError, PyMongoError
from starlette.exceptions import HTTPException as StarletteHTTPException

from logging_config import get_logger

logger = get_logger("errors")


class PortalError(Exception):
    """Base exception for all portal errors"""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str, status_code: Optional[int] = None,
                 details: Optional[Dict[str, Any]] = None):
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"message": self.message}
        if self.details:
            body["details"] = self.details
        return body


class Unauthenticated(PortalError):
    """No token, or a token that does not resolve to a session"""
    status_code = status.HTTP_401_UNAUTHORIZED

    def __init__(self, message: str = "Authentication required"):
        super().__init__(message)


class SessionExpired(PortalError):
    status_code = status.HTTP_401_UNAUTHORIZED

    def __init__(self, message: str = "Session expired. Please log in again."):
        super().__init__(message)


class Forbidden(PortalError):
    status_code = status.HTTP_403_FORBIDDEN

    def __init__(self, message: str = "Not authorized"):
        super().__init__(message)


class AlreadyAuthenticated(PortalError):
    """Login attempted while a session is still live"""
    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str = "Already authenticated. Please logout first."):
        super().__init__(message)


class NotFound(PortalError):
    status_code = status.HTTP_404_NOT_FOUND

    def __init__(self, message: str = "Not found"):
        super().__init__(message)


class ValidationError(PortalError):
    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message, details={"field": field} if field else None)


class Conflict(PortalError):
    """Uniqueness violation"""
    status_code = status.HTTP_409_CONFLICT

    def __init__(self, message: str = "Record already exists"):
        super().__init__(message)


class StoreError(PortalError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str = "Database error"):
        super().__init__(message)


async def portal_error_handler(request: Request, exc: PortalError):
    headers = None
    if exc.status_code == status.HTTP_401_UNAUTHORIZED:
        headers = {"WWW-Authenticate": "Bearer"}
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict(), headers=headers)


async def validation_error_handler(request: Request, exc: RequestValidationError):
    errors = [
        {"field": ".".join(str(p) for p in err.get("loc", ())[1:]), "message": err.get("msg")}
        for err in exc.errors()
    ]
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"message": "Invalid request data", "errors": errors},
    )


async def http_error_handler(request: Request, exc: StarletteHTTPException):
    message = exc.detail
    if exc.status_code == status.HTTP_404_NOT_FOUND and message == "Not Found":
        message = "Route not found"
    return JSONResponse(status_code=exc.status_code, content={"message": message},
                        headers=getattr(exc, "headers", None))


async def duplicate_key_handler(request: Request, exc: DuplicateKeyError):
    logger.warning(f"Duplicate key on {request.method} {request.url.path}")
    return JSONResponse(status_code=status.HTTP_409_CONFLICT,
                        content={"message": "Record already exists"})


async def store_error_handler(request: Request, exc: PyMongoError):
    logger.log_error_with_context(exc, context=f"{request.method} {request.url.path}")
    return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                        content={"message": "Database error"})


async def unhandled_error_handler(request: Request, exc: Exception):
    logger.log_error_with_context(exc, context=f"{request.method} {request.url.path}")
    return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                        content={"message": "Internal server error"})


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(PortalError, portal_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_error_handler)
    app.add_exception_handler(DuplicateKeyError, duplicate_key_handler)
    app.add_exception_handler(PyMongoError, store_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)

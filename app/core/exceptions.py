"""Application exception classes and handlers."""

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse


class AppException(Exception):
    """Base application exception."""

    def __init__(self, message: str, code: str, status_code: int = 400) -> None:
        self.message = message
        self.code = code
        self.status_code = status_code
        super().__init__(message)


# --- Validation (400) ---


class InputValidationError(AppException):
    """Bad input, surfaced directly and never retried."""

    def __init__(self, message: str = "Invalid input") -> None:
        super().__init__(message=message, code="VALIDATION_ERROR", status_code=400)


# --- Authentication (401) ---


class AuthenticationError(AppException):
    """Base authentication error."""

    def __init__(self, message: str = "Authentication failed") -> None:
        super().__init__(message=message, code="AUTHENTICATION_ERROR", status_code=401)


class TokenExpiredError(AppException):
    """Token has expired."""

    def __init__(self) -> None:
        super().__init__(
            message="Token has expired",
            code="TOKEN_EXPIRED",
            status_code=401,
        )


class InvalidTokenError(AppException):
    """Token is invalid."""

    def __init__(self) -> None:
        super().__init__(
            message="Invalid token",
            code="INVALID_TOKEN",
            status_code=401,
        )


# --- Authorization (403) ---


class AuthorizationError(AppException):
    """Insufficient permissions."""

    def __init__(self, message: str = "Insufficient permissions") -> None:
        super().__init__(message=message, code="AUTHORIZATION_ERROR", status_code=403)


# --- Not Found (404) ---


class NotFoundError(AppException):
    """Missing or unauthorized resource."""

    def __init__(
        self, message: str = "Resource not found", code: str = "NOT_FOUND"
    ) -> None:
        super().__init__(message=message, code=code, status_code=404)


class UserNotFoundError(NotFoundError):
    """User not found."""

    def __init__(self) -> None:
        super().__init__(message="User not found", code="USER_NOT_FOUND")


class ChatNotFoundError(NotFoundError):
    """Chat does not exist or belongs to another user."""

    def __init__(self) -> None:
        super().__init__(message="Chat not found", code="CHAT_NOT_FOUND")


class MessageNotFoundError(NotFoundError):
    """Message does not exist or belongs to another user."""

    def __init__(self) -> None:
        super().__init__(message="Message not found", code="MESSAGE_NOT_FOUND")


class CityNotFoundError(NotFoundError):
    """The weather provider could not geocode a city."""

    def __init__(self, city: str) -> None:
        self.city = city
        super().__init__(message=f"City '{city}' not found", code="CITY_NOT_FOUND")


# --- Conflict (409) ---


class ChatClosedError(AppException):
    """Closed chats accept no new messages."""

    def __init__(self) -> None:
        super().__init__(
            message="Chat is closed",
            code="CHAT_CLOSED",
            status_code=409,
        )


# --- Upstream (5xx, transient) ---


class UpstreamError(AppException):
    """An external service failed or returned an unusable response."""

    def __init__(
        self, message: str = "Upstream service error", code: str = "UPSTREAM_ERROR"
    ) -> None:
        super().__init__(message=message, code=code, status_code=502)


class ProtocolError(UpstreamError):
    """The model signalled a data requirement that could not be parsed."""

    def __init__(self, message: str = "Malformed data request from model") -> None:
        super().__init__(message=message, code="PROTOCOL_ERROR")


class NoDataError(UpstreamError):
    """The weather provider has no forecast for the requested date."""

    def __init__(self, date: str) -> None:
        self.date = date
        super().__init__(
            message=f"No weather data available for date: {date}",
            code="NO_DATA",
        )
        self.status_code = 404


class JobTimeoutError(UpstreamError):
    """A job attempt exceeded its wall-clock budget."""

    def __init__(self, timeout_seconds: float) -> None:
        super().__init__(
            message=f"Job exceeded {timeout_seconds:g}s",
            code="JOB_TIMEOUT",
        )
        self.status_code = 504


# --- Exception Handlers ---


async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    """Central exception handler for AppException."""
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "success": False,
            "error": {
                "code": exc.code,
                "message": exc.message,
            },
        },
    )


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Render request body/query validation failures in the error envelope."""
    first = exc.errors()[0] if exc.errors() else {}
    location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    message = first.get("msg", "Invalid input")
    if location:
        message = f"{location}: {message}"
    return JSONResponse(
        status_code=400,
        content={
            "success": False,
            "error": {
                "code": "VALIDATION_ERROR",
                "message": message,
            },
        },
    )

"""Error kinds shared by every module and their HTTP rendering.

Services raise subclasses of ``BookingSystemError``; the handlers registered in
``src.main`` turn them into ``{"message", "kind", "code"}`` JSON bodies. The
``kind`` is the stable, machine readable category and ``code`` narrows it down
(``SEAT_CONFLICT``, ``OFFER_EXPIRED`` ...).
"""

from typing import Any, Dict, Iterable, Optional

from fastapi import Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from loguru import logger


class ErrorKind:
    VALIDATION = "VALIDATION"
    NOT_FOUND = "NOT_FOUND"
    CONFLICT = "CONFLICT"
    FORBIDDEN = "FORBIDDEN"
    STATE_CONFLICT = "STATE_CONFLICT"
    GATEWAY_ERROR = "GATEWAY_ERROR"
    UNAUTHORIZED = "UNAUTHORIZED"
    INTERNAL = "INTERNAL"


class BookingSystemError(Exception):
    kind = ErrorKind.INTERNAL
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_code = "INTERNAL_ERROR"

    def __init__(self, message: str, code: Optional[str] = None, **extra: Any):
        self.message = message
        self.code = code or self.default_code
        self.extra = extra
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        body = {"message": self.message, "kind": self.kind, "code": self.code}
        body.update(self.extra)
        return body


class ValidationError(BookingSystemError):
    kind = ErrorKind.VALIDATION
    status_code = status.HTTP_400_BAD_REQUEST
    default_code = "INVALID_INPUT"


class NotFoundError(BookingSystemError):
    kind = ErrorKind.NOT_FOUND
    status_code = status.HTTP_404_NOT_FOUND
    default_code = "NOT_FOUND"


class ConflictError(BookingSystemError):
    kind = ErrorKind.CONFLICT
    status_code = status.HTTP_409_CONFLICT
    default_code = "CONFLICT"


class SeatConflictError(ConflictError):
    default_code = "SEAT_CONFLICT"

    def __init__(self, conflicting_seats: Iterable[str]):
        self.conflicting_seats = list(conflicting_seats)
        super().__init__(
            f"Seats already booked: {', '.join(self.conflicting_seats)}",
            conflictingSeats=self.conflicting_seats
        )


class ForbiddenError(BookingSystemError):
    kind = ErrorKind.FORBIDDEN
    status_code = status.HTTP_403_FORBIDDEN
    default_code = "FORBIDDEN"


class StateConflictError(BookingSystemError):
    kind = ErrorKind.STATE_CONFLICT
    status_code = status.HTTP_400_BAD_REQUEST
    default_code = "INVALID_STATE"


class GatewayError(BookingSystemError):
    kind = ErrorKind.GATEWAY_ERROR
    status_code = status.HTTP_502_BAD_GATEWAY
    default_code = "PAYMENT_GATEWAY_ERROR"


class PaymentVerificationError(GatewayError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_code = "PAYMENT_VERIFICATION_FAILED"


class AuthenticationError(BookingSystemError):
    kind = ErrorKind.UNAUTHORIZED
    status_code = status.HTTP_401_UNAUTHORIZED
    default_code = "NOT_AUTHENTICATED"


async def booking_system_error_handler(request: Request, exc: BookingSystemError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} -> {exc.kind}/{exc.code}: {exc.message}")
    else:
        logger.warning(f"{request.method} {request.url.path} -> {exc.kind}/{exc.code}: {exc.message}")
    headers = {"WWW-Authenticate": "Bearer"} if isinstance(exc, AuthenticationError) else None
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict(), headers=headers)


async def request_validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    missing = [
        ".".join(str(part) for part in err["loc"] if part != "body")
        for err in errors if err.get("type") == "missing"
    ]
    if missing:
        message = f"Missing required fields: {', '.join(missing)}"
        code = "MISSING_FIELDS"
    else:
        message = "; ".join(
            f"{'.'.join(str(part) for part in err['loc'] if part != 'body')}: {err['msg']}"
            for err in errors
        )
        code = "INVALID_INPUT"
    logger.warning(f"{request.method} {request.url.path} -> {code}: {message}")
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"message": message, "kind": ErrorKind.VALIDATION, "code": code}
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.opt(exception=exc).error(f"Unhandled error on {request.method} {request.url.path}")
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"message": "Internal server error", "kind": ErrorKind.INTERNAL, "code": "INTERNAL_ERROR"}
    )


EXCEPTION_HANDLERS = {
    BookingSystemError: booking_system_error_handler,
    RequestValidationError: request_validation_error_handler,
    Exception: unhandled_exception_handler,
}


def register_exception_handlers(app) -> None:
    for exception_class, handler in EXCEPTION_HANDLERS.items():
        app.add_exception_handler(exception_class, handler)

"""Error kinds raised by the trade core and their HTTP mapping."""

import enum
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse


class ErrorKind(str, enum.Enum):
    VALIDATION = "VALIDATION"
    NOT_FOUND = "NOT_FOUND"
    FORBIDDEN = "FORBIDDEN"
    CONFLICT = "CONFLICT"
    GONE = "GONE"
    EXTERNAL_FAILURE = "EXTERNAL_FAILURE"


HTTP_STATUS = {
    ErrorKind.VALIDATION: 400,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.FORBIDDEN: 403,
    ErrorKind.CONFLICT: 409,
    ErrorKind.GONE: 410,
    ErrorKind.EXTERNAL_FAILURE: 502,
}


class ServiceError(Exception):
    """A failed operation, tagged with the kind of failure.

    ``side`` is "proposer" or "receiver" when the failure concerns one side
    of a trade (items, participation, valuation) so clients can say which.
    """

    def __init__(self, kind: ErrorKind, message: str, side: Optional[str] = None):
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.side = side

    def __repr__(self) -> str:
        return f"<ServiceError kind={self.kind.value} side={self.side} message={self.message!r}>"

    def to_dict(self) -> dict:
        return {"detail": self.message, "kind": self.kind.value, "side": self.side}


def validation(message: str, side: Optional[str] = None) -> ServiceError:
    return ServiceError(ErrorKind.VALIDATION, message, side)


def not_found(message: str, side: Optional[str] = None) -> ServiceError:
    return ServiceError(ErrorKind.NOT_FOUND, message, side)


def forbidden(message: str, side: Optional[str] = None) -> ServiceError:
    return ServiceError(ErrorKind.FORBIDDEN, message, side)


def conflict(message: str, side: Optional[str] = None) -> ServiceError:
    return ServiceError(ErrorKind.CONFLICT, message, side)


def gone(message: str) -> ServiceError:
    return ServiceError(ErrorKind.GONE, message)


def external_failure(message: str) -> ServiceError:
    return ServiceError(ErrorKind.EXTERNAL_FAILURE, message)


async def _service_error_handler(request: Request, exc: ServiceError) -> JSONResponse:
    return JSONResponse(status_code=HTTP_STATUS[exc.kind], content=exc.to_dict())


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ServiceError, _service_error_handler)

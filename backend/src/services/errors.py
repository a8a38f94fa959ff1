"""
Service error taxonomy and the uniform (data, error) response.

Service methods catch their own failures and hand back a ServiceResponse;
API handlers map ``error.code`` to an HTTP status with ``http_status_for``.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Generic, Optional, TypeVar

from postgrest.exceptions import APIError

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Postgres error codes we branch on
PG_UNIQUE_VIOLATION = "23505"
PG_FOREIGN_KEY_VIOLATION = "23503"


class ErrorCode(Enum):
    """Error codes shared by all services."""
    VALIDATION_ERROR = "VALIDATION_ERROR"
    NOT_FOUND = "NOT_FOUND"
    DATABASE_ERROR = "DATABASE_ERROR"
    UNAUTHORIZED = "UNAUTHORIZED"
    DEADLINE_PASSED = "DEADLINE_PASSED"
    GAMEWEEK_FINISHED = "GAMEWEEK_FINISHED"
    ALREADY_PAID_OR_ENTERED = "ALREADY_PAID_OR_ENTERED"
    NOT_ENTERED = "NOT_ENTERED"


HTTP_STATUS_BY_CODE = {
    ErrorCode.VALIDATION_ERROR: 400,
    ErrorCode.UNAUTHORIZED: 401,
    ErrorCode.DEADLINE_PASSED: 403,
    ErrorCode.GAMEWEEK_FINISHED: 403,
    ErrorCode.NOT_ENTERED: 403,
    ErrorCode.NOT_FOUND: 404,
    ErrorCode.ALREADY_PAID_OR_ENTERED: 409,
    ErrorCode.DATABASE_ERROR: 500,
}


class ServiceError(Exception):
    """Base exception for service errors. ``original_error`` is for logs only."""

    def __init__(self, message: str, code: ErrorCode, original_error: Any = None):
        super().__init__(message)
        self.message = message
        self.code = code
        self.original_error = original_error

    @classmethod
    def validation(cls, message: str = "Invalid input") -> "ServiceError":
        return cls(message, ErrorCode.VALIDATION_ERROR)

    @classmethod
    def not_found(cls, message: str = "Not found") -> "ServiceError":
        return cls(message, ErrorCode.NOT_FOUND)

    @classmethod
    def database(cls, message: str = "Database error", original_error: Any = None) -> "ServiceError":
        return cls(message, ErrorCode.DATABASE_ERROR, original_error)

    def to_dict(self):
        """Client-safe payload; never includes the original error."""
        return {"error": self.message, "code": self.code.value}

    def __repr__(self):
        return f"{type(self).__name__}({self.code.value}: {self.message})"


class RoundError(ServiceError):
    """Round service errors."""


class PickError(ServiceError):
    """Pick service errors."""


class CompetitionError(ServiceError):
    """Competition service errors."""


class PaymentEntryError(ServiceError):
    """Competition entry (payment record) errors."""


class TeamError(ServiceError):
    """Team lookup errors."""


@dataclass
class ServiceResponse(Generic[T]):
    """Uniform service result: exactly one of data/error is meaningful."""
    data: Optional[T] = None
    error: Optional[ServiceError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, data: T) -> "ServiceResponse[T]":
        return cls(data=data, error=None)

    @classmethod
    def failure(cls, error: ServiceError) -> "ServiceResponse[T]":
        return cls(data=None, error=error)


def postgrest_code(exc: BaseException) -> Optional[str]:
    """Postgres/PostgREST error code of an APIError, else None."""
    if isinstance(exc, APIError):
        return exc.code
    return None


def wrap_unexpected(
    error_cls: type,
    message: str,
    exc: BaseException,
    **context: Any,
) -> ServiceError:
    """Log an unexpected exception and wrap it as a DATABASE_ERROR."""
    logger.error(message, extra={
        "error": str(exc),
        "error_type": type(exc).__name__,
        "db_error_code": postgrest_code(exc),
        **context,
    }, exc_info=True)
    return error_cls(message, ErrorCode.DATABASE_ERROR, exc)


def http_status_for(error: ServiceError) -> int:
    return HTTP_STATUS_BY_CODE.get(error.code, 500)

"""
Exception hierarchy for the moderation engine.
Every failure surfaces as one of these kinds with a machine-readable code.
"""

from enum import Enum
from typing import Any


class ErrorCode(str, Enum):
    """Error codes shared with API consumers"""

    VALIDATION_ERROR = "MODERATION_VALIDATION_ERROR"
    UNAUTHORIZED = "MODERATION_UNAUTHORIZED"
    INSUFFICIENT_PERMISSIONS = "MODERATION_INSUFFICIENT_PERMISSIONS"
    RATE_LIMIT_EXCEEDED = "MODERATION_RATE_LIMIT_EXCEEDED"
    NOT_FOUND = "MODERATION_NOT_FOUND"
    INVALID_ACTION = "MODERATION_INVALID_ACTION"
    CONCURRENT_MODIFICATION = "MODERATION_CONCURRENT_MODIFICATION"
    DATABASE_ERROR = "MODERATION_DATABASE_ERROR"


class AppException(Exception):
    """
    Base exception class for moderation errors.
    All custom exceptions should inherit from this class.
    """

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.DATABASE_ERROR,
        status_code: int = 500,
        field: str | None = None,
        metadata: dict[str, Any] | None = None,
    ):
        self.message = message
        self.code = code
        self.status_code = status_code
        self.field = field
        self.metadata = metadata or {}
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to response dictionary"""
        response = {
            "detail": self.message,
            "code": self.code.value,
        }
        if self.field:
            response["field"] = self.field
        if self.metadata:
            response["metadata"] = self.metadata
        return response


# Input (422)


class ValidationError(AppException):
    """Malformed input: bad identifier, missing field, text over limit"""

    def __init__(
        self,
        message: str = "Invalid input",
        field: str | None = None,
    ):
        super().__init__(
            message=message,
            code=ErrorCode.VALIDATION_ERROR,
            status_code=422,
            field=field,
        )


# Authentication / authorization (401, 403)


class AuthenticationError(AppException):
    """Actor is not authenticated"""

    def __init__(self, message: str = "Authentication required"):
        super().__init__(
            message=message,
            code=ErrorCode.UNAUTHORIZED,
            status_code=401,
        )


class InsufficientPermissionsError(AppException):
    """Actor is authenticated but not allowed to perform the operation"""

    def __init__(
        self,
        message: str = "You do not have permission to perform this operation",
        operation: str | None = None,
    ):
        metadata = {"operation": operation} if operation else None
        super().__init__(
            message=message,
            code=ErrorCode.INSUFFICIENT_PERMISSIONS,
            status_code=403,
            metadata=metadata,
        )


# Rate limiting (429)


class RateLimitError(AppException):
    """Rate limit exceeded"""

    def __init__(
        self,
        message: str = "Too many requests. Please wait before trying again",
        retry_after: int = 60,
        bucket: str | None = None,
    ):
        metadata: dict[str, Any] = {"retry_after": retry_after}
        if bucket:
            metadata["bucket"] = bucket
        super().__init__(
            message=message,
            code=ErrorCode.RATE_LIMIT_EXCEEDED,
            status_code=429,
            metadata=metadata,
        )


# Resource errors (404, 409)


class NotFoundError(AppException):
    """Referenced report, action, restriction or user is missing"""

    def __init__(
        self,
        message: str = "Requested resource was not found",
        resource: str | None = None,
    ):
        metadata = {"resource": resource} if resource else None
        super().__init__(
            message=message,
            code=ErrorCode.NOT_FOUND,
            status_code=404,
            metadata=metadata,
        )


class InvalidActionError(AppException):
    """Semantically impossible operation, e.g. reversing an already reversed action"""

    def __init__(self, message: str = "This operation is not allowed in the current state"):
        super().__init__(
            message=message,
            code=ErrorCode.INVALID_ACTION,
            status_code=409,
        )


class ConcurrentModificationError(AppException):
    """Another transaction changed the same rows; reload and retry"""

    def __init__(
        self,
        message: str = "The resource was modified concurrently. Reload and retry",
    ):
        super().__init__(
            message=message,
            code=ErrorCode.CONCURRENT_MODIFICATION,
            status_code=409,
        )


# Store errors (500)


class DatabaseError(AppException):
    """Underlying store failure; the original exception is kept in `cause`"""

    def __init__(
        self,
        message: str = "A database error occurred",
        cause: BaseException | None = None,
    ):
        self.cause = cause
        super().__init__(
            message=message,
            code=ErrorCode.DATABASE_ERROR,
            status_code=500,
        )

# app/core/errors.py
from fastapi import HTTPException, status
from typing import Any, Dict, Optional


class ApiError(HTTPException):
    """HTTPException carrying a machine-readable error code for the JSON envelope"""

    status_code_default = status.HTTP_500_INTERNAL_SERVER_ERROR
    error_default = "internal_error"

    def __init__(
        self,
        message: Optional[str] = None,
        error: Optional[str] = None,
        extra: Optional[Dict[str, Any]] = None,
        status_code: Optional[int] = None
    ):
        self.error = error or self.error_default
        self.message = message
        self.extra = extra or {}
        super().__init__(
            status_code=status_code or self.status_code_default,
            detail=message or self.error
        )

    def to_dict(self) -> Dict[str, Any]:
        body = {"success": False, "error": self.error}
        if self.message:
            body["message"] = self.message
        body.update(self.extra)
        return body


class ValidationError(ApiError):
    status_code_default = status.HTTP_400_BAD_REQUEST
    error_default = "invalid_input"


class Forbidden(ApiError):
    status_code_default = status.HTTP_403_FORBIDDEN
    error_default = "forbidden"


class SubscriptionReadOnly(Forbidden):
    error_default = "subscription_read_only"


class FeatureNotAvailable(Forbidden):
    error_default = "feature_not_available"


class NotFound(ApiError):
    status_code_default = status.HTTP_404_NOT_FOUND
    error_default = "not_found"


class Conflict(ApiError):
    status_code_default = status.HTTP_409_CONFLICT
    error_default = "conflict"


class BusinessRuleViolation(ApiError):
    status_code_default = 422
    error_default = "validation_failed"


class RateLimitExceeded(ApiError):
    status_code_default = status.HTTP_429_TOO_MANY_REQUESTS
    error_default = "rate_limit_exceeded"


class Unauthorized(ApiError):
    status_code_default = status.HTTP_401_UNAUTHORIZED
    error_default = "unauthorized"

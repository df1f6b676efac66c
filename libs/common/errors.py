"""Base application error.

Services subclass ``AppError`` for their own error taxonomy; the global
exception handlers in ``libs.common.error_handler`` turn any subclass into the
standard JSON error envelope.
"""

from typing import Any, Optional


class AppError(Exception):
    """An expected, user-facing error with a stable machine-readable code."""

    status_code: int = 400
    code: str = "APP_ERROR"
    default_message: str = "Request could not be completed"
    # Expected conditions are logged at INFO, not as failures
    expected: bool = True

    def __init__(
        self,
        message: Optional[str] = None,
        *,
        reason: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ):
        self.message = message or self.default_message
        self.reason = reason
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        error: dict[str, Any] = {"code": self.code, "message": self.message}
        if self.reason:
            error["reason"] = self.reason
        if self.details:
            error["details"] = self.details
        return error

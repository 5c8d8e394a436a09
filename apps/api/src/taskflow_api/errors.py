from __future__ import annotations

from typing import Any

from taskflow_api.security import redact_sensitive_text


class WorkflowError(Exception):
    code = "OPERATION_FAILED"

    def __init__(self, message: str, *, operation: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.operation = operation

    def to_error_payload(self, operation: str | None = None) -> dict[str, Any]:
        return {
            "operation": operation or self.operation or "unknown",
            "code": self.code,
            "message": redact_sensitive_text(self.message),
        }


class NotFoundError(WorkflowError):
    code = "NOT_FOUND"


class InvalidOwnershipError(WorkflowError):
    code = "INVALID_OWNERSHIP"


class InvalidStateError(WorkflowError):
    code = "INVALID_STATE"


class ValidationError(WorkflowError):
    code = "VALIDATION_FAILURE"


class OperationFailedError(WorkflowError):
    code = "OPERATION_FAILED"

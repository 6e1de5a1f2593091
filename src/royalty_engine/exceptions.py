"""Error kinds raised by the royalty engine.

Every error carries a stable ``code`` and renders to a structured dict so
callers (and the HTTP adapter) can present it without parsing messages.
"""

from __future__ import annotations

from typing import Any
from uuid import UUID


class RoyaltyEngineError(Exception):
    """Base class for all engine errors."""

    code = "ENGINE_ERROR"

    def to_dict(self) -> dict[str, Any]:
        """Return a structured representation of the error."""
        return {"code": self.code, "message": str(self)}


class CalculationError(RoyaltyEngineError):
    """Raised by the calculation layer. Never retried."""

    code = "CALCULATION_ERROR"


class InvalidInputError(CalculationError):
    """Raised when an input value is invalid (negative fee, malformed period)."""

    code = "INVALID_INPUT"

    def __init__(self, field: str, message: str, value: Any = None):
        self.field = field
        self.message = message
        self.value = value
        super().__init__(f"Invalid {field}: {message}")

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["field"] = self.field
        if self.value is not None:
            data["value"] = str(self.value)
        return data


class InvalidTransitionError(RoyaltyEngineError):
    """Raised when an illegal workflow transition is attempted."""

    code = "INVALID_TRANSITION"

    def __init__(self, from_stage: str, to_stage: str, reason: str | None = None):
        self.from_stage = from_stage
        self.to_stage = to_stage
        self.reason = reason
        msg = f"Invalid transition from '{from_stage}' to '{to_stage}'"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["from_stage"] = self.from_stage
        data["to_stage"] = self.to_stage
        return data


class ConflictingOperationError(RoyaltyEngineError):
    """Raised when a second mutation targets a resource that is still in flight."""

    code = "CONFLICTING_OPERATION"

    def __init__(self, resource_id: UUID | str | int, operation: str | None = None):
        self.resource_id = resource_id
        self.operation = operation
        msg = f"Another operation is already in progress for {resource_id}"
        if operation:
            msg += f" ({operation})"
        super().__init__(msg)

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["resource_id"] = str(self.resource_id)
        return data


class ResolutionFailureError(RoyaltyEngineError):
    """Raised when an agreement, payee or work cannot be resolved."""

    code = "RESOLUTION_FAILURE"

    def __init__(self, entity: str, entity_id: UUID | str | None, reason: str | None = None):
        self.entity = entity
        self.entity_id = entity_id
        self.reason = reason
        msg = f"Could not resolve {entity} {entity_id}"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["entity"] = self.entity
        data["entity_id"] = str(self.entity_id) if self.entity_id else None
        return data


class ExternalServiceError(RoyaltyEngineError):
    """Raised when the persistence/network boundary fails. Retryable."""

    code = "EXTERNAL_SERVICE_ERROR"


class OperationTimeoutError(ExternalServiceError):
    """Raised when a single external operation exceeds its timeout."""

    code = "TIMEOUT"

    def __init__(self, timeout_seconds: float, operation: str | None = None):
        self.timeout_seconds = timeout_seconds
        self.operation = operation
        label = operation or "operation"
        super().__init__(f"{label} timed out after {timeout_seconds}s")


class AuthenticationError(ExternalServiceError):
    """Raised when the external service rejects the caller's credentials."""

    code = "AUTHENTICATION_ERROR"


class OperationAbandoned(RoyaltyEngineError):
    """Raised when the caller disengaged before a retried operation finished."""

    code = "OPERATION_ABANDONED"

    def __init__(self, last_error: BaseException | None = None):
        self.last_error = last_error
        msg = "Caller disengaged; operation abandoned"
        if last_error is not None:
            msg += f" (last error: {last_error})"
        super().__init__(msg)

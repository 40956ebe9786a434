from typing import Any


class IdentityBrainError(Exception):
    """
    Base error for the identity brain core.

    Carries a stable machine-readable code and a suggested HTTP status so an outer
    API layer can translate errors without knowing every subclass.
    """

    code: str = "INTERNAL_ERROR"
    status_code: int = 500

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"code": self.code, "message": self.message}
        if self.details:
            payload["details"] = self.details
        return payload


class NotFoundError(IdentityBrainError):
    code = "NOT_FOUND"
    status_code = 404

    def __init__(self, resource: str = "Resource", message: str | None = None):
        super().__init__(message or f"{resource} not found", {"resource": resource})
        self.resource = resource


class AlreadyExistsError(IdentityBrainError):
    code = "ALREADY_EXISTS"
    status_code = 409

    def __init__(self, resource: str = "Resource"):
        super().__init__(f"{resource} already exists", {"resource": resource})
        self.resource = resource


class ValidationError(IdentityBrainError):
    code = "VALIDATION_ERROR"
    status_code = 400


class ForbiddenError(IdentityBrainError):
    code = "FORBIDDEN"
    status_code = 403


class ConflictError(IdentityBrainError):
    code = "CONFLICT"
    status_code = 409


class RateLimitedError(IdentityBrainError):
    code = "RATE_LIMITED"
    status_code = 429

    def __init__(self, message: str, retry_after_seconds: int | None = None):
        details = {"retry_after_seconds": retry_after_seconds} if retry_after_seconds is not None else None
        super().__init__(message, details)
        self.retry_after_seconds = retry_after_seconds


class ServiceError(IdentityBrainError):
    """An external provider (embeddings, generators) failed."""

    code = "SERVICE_ERROR"
    status_code = 502

    def __init__(self, message: str, provider: str | None = None, details: dict[str, Any] | None = None):
        merged = dict(details or {})
        if provider:
            merged["provider"] = provider
        super().__init__(message, merged)
        self.provider = provider


class InternalError(IdentityBrainError):
    code = "INTERNAL_ERROR"
    status_code = 500

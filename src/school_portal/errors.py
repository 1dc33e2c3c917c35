"""Service error taxonomy.

Repositories raise the most specific subclass; the HTTP layer (not part of
this package) maps ``status`` and ``code`` onto responses.
"""

from typing import Any, Dict, List, Optional


class ServiceError(Exception):
    """Base class for every error a repository raises on purpose."""

    code = "SERVICE_ERROR"
    status = 500

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        status: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        if status is not None:
            self.status = status
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"code": self.code, "message": self.message}
        if self.details:
            payload["details"] = self.details
        return payload


class ValidationError(ServiceError):
    """Payload failed field or cross-field checks.

    ``errors`` holds one ``{"field": ..., "message": ...}`` entry per
    violation so a form can highlight every bad field at once.
    """

    code = "VALIDATION_ERROR"
    status = 400

    def __init__(self, errors: List[Dict[str, str]], code: Optional[str] = None):
        self.errors = errors
        summary = "; ".join(
            f"{e['field']}: {e['message']}" if e.get("field") else e["message"] for e in errors
        )
        super().__init__(summary or "Invalid input", code=code, details={"errors": errors})

    @property
    def fields(self) -> List[str]:
        return [e["field"] for e in self.errors if e.get("field")]

    @classmethod
    def single(cls, field: Optional[str], message: str, code: Optional[str] = None) -> "ValidationError":
        return cls([{"field": field or "", "message": message}], code=code)


class InvalidTokenError(ValidationError):
    code = "INVALID_TOKEN"

    def __init__(self, message: str = "Invalid invite token"):
        super().__init__([{"field": "token", "message": message}])


class NotFoundError(ServiceError):
    code = "NOT_FOUND"
    status = 404

    def __init__(self, entity: str, identifier: Any, code: Optional[str] = None):
        self.entity = entity
        self.identifier = identifier
        super().__init__(
            f"{entity.capitalize()} not found: {identifier}",
            code=code or f"{entity.upper()}_NOT_FOUND",
        )


class DuplicateError(ServiceError):
    code = "DUPLICATE"
    status = 409

    def __init__(self, entity: str, fields: List[str], code: Optional[str] = None):
        self.entity = entity
        self.fields = fields
        super().__init__(
            f"{entity.capitalize()} with this {', '.join(fields)} already exists",
            code=code or f"DUPLICATE_{entity.upper()}",
            details={"fields": fields},
        )


class DependencyError(ServiceError):
    """A delete was refused because dependent rows still exist."""

    code = "DEPENDENCY_EXISTS"
    status = 409


class AlreadyProcessedError(ServiceError):
    """A state transition lost to an earlier one (e.g. invite already accepted)."""

    code = "ALREADY_PROCESSED"
    status = 409


class RateLimitError(ServiceError):
    code = "RATE_LIMIT_EXCEEDED"
    status = 429


class DeliveryError(ServiceError):
    code = "EMAIL_DELIVERY_FAILED"
    status = 502


class StorageError(ServiceError):
    """Any store failure not classified above; callers may retry."""

    code = "STORAGE_ERROR"
    status = 500

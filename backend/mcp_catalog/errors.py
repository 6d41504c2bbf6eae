"""Error taxonomy for the guardrail catalog.

Every failure a caller can observe is one of these kinds. Routes never build
HTTPException directly; the handler registered in ``main`` renders each error
as ``{"error": <kind>, "message": ..., "details": {...}}``.

    CatalogError
    +-- ValidationError               (400, field bounds / pattern / enum)
    +-- UnauthorizedError             (401, no bearer token)
    +-- PermissionDeniedError         (403, denied by authorization policy)
    |   +-- AuthorizationUnavailableError  (503, provider down, fail closed)
    +-- ProtectedAssociationError     (403, inherited association removal)
    +-- NotFoundError                 (404)
    +-- ConflictError                 (409, duplicates, live references)
    +-- InternalError                 (500)
"""

from __future__ import annotations

from typing import Any


class CatalogError(Exception):
    """Base class for all caller-visible catalog failures."""

    status_code: int = 500
    error_type: str = "InternalError"

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_response(self) -> dict[str, Any]:
        body: dict[str, Any] = {"error": self.error_type, "message": self.message}
        if self.details:
            body["details"] = self.details
        return body


class ValidationError(CatalogError):
    status_code = 400
    error_type = "ValidationError"

    @classmethod
    def from_errors(cls, errors: list[dict[str, Any]]) -> "ValidationError":
        """Build from the ``errors()`` list of a pydantic or FastAPI validation error."""

        fields = []
        for error in errors:
            location = ".".join(str(part) for part in error.get("loc", ()) if part != "body")
            fields.append({"field": location, "message": error.get("msg", "invalid value")})
        summary = "; ".join(f"{item['field'] or 'input'}: {item['message']}" for item in fields)
        return cls(f"Validation failed: {summary}", details={"fields": fields})


class NotFoundError(CatalogError):
    status_code = 404
    error_type = "NotFoundError"

    @classmethod
    def for_ref(cls, kind: str, namespace: str, name: str) -> "NotFoundError":
        return cls(
            f"{kind} '{namespace}/{name}' not found",
            details={"kind": kind, "namespace": namespace, "name": name},
        )


class ConflictError(CatalogError):
    status_code = 409
    error_type = "ConflictError"


class UnauthorizedError(CatalogError):
    status_code = 401
    error_type = "UnauthorizedError"

    def __init__(self, message: str = "Authentication token required", details: dict[str, Any] | None = None):
        super().__init__(message, details)


class PermissionDeniedError(CatalogError):
    """The authorization gate rejected the mutation."""

    status_code = 403
    error_type = "PermissionDenied"


class AuthorizationUnavailableError(PermissionDeniedError):
    """The authorization provider could not answer, so the mutation is denied."""

    status_code = 503
    error_type = "AuthorizationUnavailable"


class ProtectedAssociationError(CatalogError):
    """Raised when removing a workload-tool association inherited from its tool."""

    status_code = 403
    error_type = "ForbiddenError"


class InternalError(CatalogError):
    status_code = 500
    error_type = "InternalError"

    def __init__(self, message: str = "An unexpected error occurred", details: dict[str, Any] | None = None):
        super().__init__(message, details)

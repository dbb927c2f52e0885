"""Domain error taxonomy.

Services raise these; the API layer turns them into HTTP responses
(see app.api.errors). Every error carries enough context (entity, id,
extra details) for the boundary to format a useful message.
"""

from typing import Any, Dict, Optional


class AppError(Exception):
    status_code: int = 500

    def __init__(
        self,
        message: str,
        entity: Optional[str] = None,
        entity_id: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.entity = entity
        self.entity_id = entity_id
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"detail": self.message}
        if self.entity:
            body["entity"] = self.entity
        if self.entity_id:
            body["entity_id"] = self.entity_id
        body.update(self.details)
        return body


class NotFoundError(AppError):
    """Entity missing or outside the caller's establishment."""
    status_code = 404


class ValidationError(AppError):
    """Invalid transition, settled/canceled order, missing products..."""
    status_code = 400


BadRequestError = ValidationError


class UnauthorizedError(AppError):
    status_code = 401


class ForbiddenError(AppError):
    status_code = 403


class ConflictError(AppError):
    """Row changed under us (optimistic version check failed)."""
    status_code = 409


class ServiceUnavailableError(AppError):
    """Service is shutting down or a dependency is gone."""
    status_code = 503

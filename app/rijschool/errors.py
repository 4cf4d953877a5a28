"""
Service-layer exceptions.

Services raise these; the app-level handler in ``create_app`` turns them into
``{"error": message}`` JSON responses with ``status_code``.
"""
from __future__ import annotations


class ServiceError(ValueError):
    status_code = 400

    def __init__(self, message: str, *, details: list[str] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or []

    def to_dict(self) -> dict:
        body: dict[str, object] = {"error": self.message}
        if self.details:
            body["details"] = self.details
        return body


class ValidationError(ServiceError):
    status_code = 400


class PermissionDenied(ServiceError):
    status_code = 403


class NotFound(ServiceError):
    status_code = 404


class Conflict(ServiceError):
    status_code = 409


class InvalidTransition(Conflict):
    pass

"""
Service-layer exceptions.

Services raise these; API blueprints let them propagate to the JSON error
handler registered in ``create_app`` while page views catch them and flash
``message``.
"""

from __future__ import annotations

from typing import Any


class ServiceError(Exception):
    status_code = 400
    default_message = "Bad request"

    def __init__(self, message: str | None = None, *, errors: list[str] | None = None, extra: dict[str, Any] | None = None):
        self.errors = list(errors or [])
        self.message = message or (self.errors[0] if self.errors else self.default_message)
        self.extra = dict(extra or {})
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {"error": self.message}
        if self.errors:
            body["errors"] = self.errors
        body.update(self.extra)
        return body


class ValidationFailed(ServiceError):
    status_code = 400
    default_message = "Données invalides"


class Unauthorized(ServiceError):
    status_code = 401
    default_message = "Unauthorized"


class Forbidden(ServiceError):
    status_code = 403
    default_message = "Forbidden"


class NotFound(ServiceError):
    status_code = 404
    default_message = "Not found"


class Conflict(ServiceError):
    status_code = 409
    default_message = "Conflict"


class DeliveryFailed(ServiceError):
    status_code = 502
    default_message = "Delivery failed"


class ServiceUnavailable(ServiceError):
    status_code = 503
    default_message = "Service not configured"

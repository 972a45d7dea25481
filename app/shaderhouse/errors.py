from __future__ import annotations

from typing import Any


class ShaderHouseError(RuntimeError):
    """
    Base class for errors that map onto an HTTP response.
    Raised from service functions; rendered as JSON by the app error handler.
    """

    status_code = 500
    default_message = "Internal server error"

    def __init__(self, message: str | None = None, **extra: Any) -> None:
        super().__init__(message or self.default_message)
        self.message = message or self.default_message
        self.extra = extra

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {"error": self.message}
        body.update({k: v for k, v in self.extra.items() if v is not None})
        return body


class ValidationFailed(ShaderHouseError):
    status_code = 400
    default_message = "Invalid input"

    def __init__(self, message: str | None = None, *, details: list[str] | None = None, **extra: Any) -> None:
        if message is None and details:
            message = details[0]
        super().__init__(message, details=details, **extra)
        self.details = details or []


class NotAuthenticated(ShaderHouseError):
    status_code = 401
    default_message = "Unauthorized"


class Forbidden(ShaderHouseError):
    status_code = 403
    default_message = "Forbidden"


class NotFound(ShaderHouseError):
    status_code = 404
    default_message = "Not found"


class Conflict(ShaderHouseError):
    status_code = 409
    default_message = "Conflict"


class RateLimited(ShaderHouseError):
    status_code = 429
    default_message = "Too many requests"


class ServiceUnavailable(ShaderHouseError):
    status_code = 503
    default_message = "Service temporarily unavailable"

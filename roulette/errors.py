from __future__ import annotations


class SessionError(ValueError):
    """Base class for caller-facing failures of a session operation.

    `code` is a machine-readable reason so clients can show a specific message;
    `status_code` is what the HTTP layer answers with.
    """

    status_code: int = 422
    default_code: str = "invalid-input"

    def __init__(self, message: str, *, code: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code

    def as_detail(self) -> dict[str, str]:
        return {"error": self.message, "code": self.code}


class InvalidInput(SessionError):
    status_code = 422
    default_code = "invalid-input"


class NotFound(SessionError):
    status_code = 404
    default_code = "not-found"


class Conflict(SessionError):
    status_code = 409
    default_code = "conflict"


class RateLimited(SessionError):
    status_code = 429
    default_code = "device-limit-reached"


class PersistenceFailure(RuntimeError):
    """A durable snapshot write failed after the in-memory commit succeeded."""

"""Base error type shared by the domain modules.

Domain errors carry a short machine-readable ``code`` (the value returned in
the ``detail`` field of API error bodies) and the HTTP ``status_code`` the
views map them to. Subclasses set both as class attributes.
"""


class DomainError(Exception):
    """Base class for business errors raised by services and adapters."""

    code = "DOMAIN_ERROR"
    status_code = 400

    def __init__(self, message: str | None = None, **extra):
        super().__init__(message or self.code)
        self.message = message or self.code
        self.extra = extra

    def to_body(self) -> dict:
        """Serialize the error into the API error body."""
        body = {"detail": self.code, "message": self.message}
        body.update(self.extra)
        return body


class Unauthenticated(DomainError):
    """No valid ``X-User-Id`` was forwarded by the authenticating proxy."""

    code = "UNAUTHENTICATED"
    status_code = 401

"""
Errors raised by the stores and repositories.

Routes translate these into HTTP responses; nothing below the repositories
lets a raw OSError, JSON decode error or driver error escape.
"""

from pydantic import ValidationError


class StoreError(Exception):
    """Base class for everything the persistence layer raises."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFoundError(StoreError):
    pass


class InvalidDataError(StoreError):
    @classmethod
    def from_validation(cls, exc: ValidationError) -> "InvalidDataError":
        parts = []
        for err in exc.errors():
            loc = ".".join(str(p) for p in err.get("loc", ()))
            parts.append(f"{loc}: {err.get('msg')}" if loc else err.get("msg", ""))
        return cls("; ".join(parts) or "Invalid data")


class StoreUnavailableError(StoreError):
    pass


class AuthError(StoreError):
    pass

from __future__ import annotations


class ValidationError(ValueError):
    """Raised when an operation is rejected because a required field is blank or invalid."""


class AuthorizationError(PermissionError):
    """Raised when the acting user lacks the role an operation requires."""

    def __init__(self, message: str = "", *, required_role: str = "admin") -> None:
        detail = message.strip() if message.strip() else f"Only {required_role} users may do this."
        super().__init__(detail)
        self.required_role = required_role


class StorageFault(RuntimeError):
    """Raised by storage backends when durable storage cannot be read or written."""

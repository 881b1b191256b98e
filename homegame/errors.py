"""Service-level errors. The API maps each one to an HTTP status."""
from __future__ import annotations


class HomeGameError(Exception):
    """Base error with a human-readable message safe to show to the client."""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(HomeGameError):
    """Missing or malformed input, or an operation not allowed in the current state."""

    status_code = 400


class PermissionDenied(HomeGameError):
    status_code = 403


class NotFoundError(HomeGameError):
    status_code = 404


class ConflictError(HomeGameError):
    """The request collides with existing state (duplicate membership, double cash-out)."""

    status_code = 409


class InviteCodeExhausted(ConflictError):
    def __init__(self, attempts: int):
        super().__init__(f"Failed to generate unique invite code after {attempts} attempts")
        self.attempts = attempts

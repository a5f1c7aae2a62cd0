"""
Domain errors raised by the device protocol services.

Each error maps to one HTTP status; ``main`` registers a single handler that
renders them. Services raise before mutating anything, so a raised error
never leaves a call half-applied.
"""
from fastapi import status


class ProtocolError(Exception):
    """Base class for errors that terminate a single device or operator call."""

    status_code: int = status.HTTP_400_BAD_REQUEST
    kind: str = "protocol_error"

    def __init__(self, detail: str) -> None:
        super().__init__(detail)
        self.detail = detail


class AuthenticationFailed(ProtocolError):
    """Bad, missing, or revoked device secret."""

    status_code = status.HTTP_401_UNAUTHORIZED
    kind = "authentication_failed"


class IdentityNotFound(ProtocolError):
    """Unknown composite id (or unknown actuator on enqueue)."""

    status_code = status.HTTP_404_NOT_FOUND
    kind = "identity_not_found"


class IdentityConflict(ProtocolError):
    """Slot already registered under the project."""

    status_code = status.HTTP_409_CONFLICT
    kind = "identity_conflict"


class ValidationFailed(ProtocolError):
    """Malformed input rejected before any write."""

    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    kind = "validation_failed"


class CommandNotFound(ProtocolError):
    status_code = status.HTTP_404_NOT_FOUND
    kind = "command_not_found"


class CommandStateConflict(ProtocolError):
    """Confirmation for a command that is not awaiting one."""

    status_code = status.HTTP_409_CONFLICT
    kind = "command_state_conflict"


__all__ = [
    "AuthenticationFailed",
    "CommandNotFound",
    "CommandStateConflict",
    "IdentityConflict",
    "IdentityNotFound",
    "ProtocolError",
    "ValidationFailed",
]

"""Agent error taxonomy."""

from __future__ import annotations

from typing import Optional


class StorageCorruption(Exception):
    """Persisted record failed its checksum or could not be decoded."""


class StorageWriteError(Exception):
    """Persisted record could not be written."""


class ActuatorError(Exception):
    """An actuator rejected or failed to execute a command."""


class CloudError(Exception):
    """Base class for failed device protocol calls."""

    def __init__(self, message: str, *, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class AuthenticationFailed(CloudError):
    """Server rejected the device key (401)."""


class IdentityNotFound(CloudError):
    """Server does not know this composite id (404)."""


class ValidationFailed(CloudError):
    """Server rejected the payload (422 or another 4xx)."""


class DeviceTimeout(CloudError):
    """Request timed out; retried next cycle."""


class Unreachable(CloudError):
    """Connection failed or the server answered with a 5xx."""


__all__ = [
    "ActuatorError",
    "AuthenticationFailed",
    "CloudError",
    "DeviceTimeout",
    "IdentityNotFound",
    "StorageCorruption",
    "StorageWriteError",
    "Unreachable",
    "ValidationFailed",
]

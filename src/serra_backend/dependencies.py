"""
FastAPI dependencies for operator authentication and device identification.
"""
from dataclasses import dataclass
from typing import Optional
import hmac

from fastapi import Depends, Header, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from .config import settings

# Security scheme for the operator bearer token
security = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class DeviceCredentials:
    """Identity headers presented by a device on every protocol call."""
    composite_id: Optional[str]
    secret: Optional[str]


def get_device_credentials(
    x_composite_device_id: Optional[str] = Header(None, description="Composite device id, e.g. PROJ1-ESP3"),
    x_device_key: Optional[str] = Header(None, description="Device secret generated on the device"),
) -> DeviceCredentials:
    """
    Collect the device identity headers.

    Missing headers are passed through as None; the identity service decides
    whether that is a validation or an authentication failure.
    """
    return DeviceCredentials(composite_id=x_composite_device_id, secret=x_device_key)


async def require_operator(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> None:
    """
    Check the operator bearer token.

    Raises:
        HTTPException: 401 if the token is missing or does not match
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate operator credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    if credentials is None or credentials.scheme.lower() != "bearer":
        raise credentials_exception
    if not hmac.compare_digest(credentials.credentials.encode(), settings.OPERATOR_TOKEN.encode()):
        raise credentials_exception

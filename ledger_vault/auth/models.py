"""Data models for storage provider credentials."""

from datetime import datetime, timedelta
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .._utils import ensure_aware, utc_now


class GrantType(str, Enum):
    """How a credential was obtained."""
    LEGACY = "legacy"
    IMPLICIT = "implicit"
    AUTH_CODE = "auth_code"


class TokenState(str, Enum):
    """Observable state of the token lifecycle."""
    UNAUTHENTICATED = "unauthenticated"
    EPHEMERAL_VALID = "ephemeral_valid"
    EPHEMERAL_EXPIRING = "ephemeral_expiring"
    EPHEMERAL_EXPIRED = "ephemeral_expired"
    PERSISTENT_VALID = "persistent_valid"
    PERSISTENT_EXPIRING = "persistent_expiring"
    LEGACY_VALID = "legacy_valid"


class Credential(BaseModel):
    """Access token to the storage provider, optionally renewable.

    A credential with a refresh token is persistent and can be silently
    renewed; without one it is ephemeral and dies at ``access_expiry``.
    """

    model_config = ConfigDict(frozen=True)

    access_token: str = Field(..., min_length=1)
    access_expiry: datetime
    refresh_token: Optional[str] = None
    acquired_via: GrantType = GrantType.AUTH_CODE

    @field_validator("access_expiry")
    @classmethod
    def _aware_expiry(cls, v: datetime) -> datetime:
        return ensure_aware(v)

    @property
    def persistent(self) -> bool:
        return bool(self.refresh_token)

    def remaining(self, now: Optional[datetime] = None) -> timedelta:
        return self.access_expiry - (now or utc_now())

    def is_usable(self, buffer: timedelta, now: Optional[datetime] = None) -> bool:
        """True while more than ``buffer`` of lifetime remains."""
        return self.remaining(now) > buffer


class TokenResponse(BaseModel):
    """Successful token endpoint response."""

    model_config = ConfigDict(extra="ignore")

    access_token: str
    expires_in: int = 3600
    refresh_token: Optional[str] = None
    token_type: Optional[str] = None
    scope: Optional[str] = None

"""Storage provider credential lifecycle."""

from .models import Credential, GrantType, TokenState
from .oauth import OAuthClient
from .retry import with_auth_retry
from .store import CredentialStore
from .tokens import TokenManager

__all__ = [
    "Credential",
    "GrantType",
    "TokenState",
    "OAuthClient",
    "CredentialStore",
    "TokenManager",
    "with_auth_retry",
]

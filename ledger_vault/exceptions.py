"""Error taxonomy for credential, transport, snapshot and restore operations."""

from dataclasses import dataclass
from typing import Optional


class LedgerVaultError(Exception):
    """Base exception for ledger-vault operations."""
    pass


class AuthRequired(LedgerVaultError):
    """No usable credential; the operator has to reconnect the storage provider."""

    def __init__(self, message: str = "Storage provider not connected, please reconnect"):
        super().__init__(message)


TRANSIENT_STATUSES = frozenset({408, 429})


class TokenError(LedgerVaultError):
    """Token acquisition against the OAuth provider failed."""

    def __init__(self, message: str, status: Optional[int] = None, error_code: Optional[str] = None):
        super().__init__(message)
        self.status = status
        self.error_code = error_code

    @property
    def is_rejection(self) -> bool:
        """True when the provider answered and refused the grant.

        Timeouts, connection errors, throttling (408, 429) and provider-side
        5xx are transient and are not rejections.
        """
        if self.status is None or self.status in TRANSIENT_STATUSES:
            return False
        return self.status < 500


class ExchangeFailed(TokenError):
    """Authorization code exchange failed. Needs fresh user interaction."""
    pass


class RefreshFailed(TokenError):
    """Silent refresh with the stored refresh token failed."""
    pass


class TransportFailed(LedgerVaultError):
    """Storage provider call failed."""

    operation = "transport"

    def __init__(self, status: Optional[int], message: str):
        super().__init__(f"{self.operation.capitalize()} failed ({status}): {message}")
        self.status = status
        self.message = message

    @property
    def is_auth_error(self) -> bool:
        return self.status == 401


class UploadFailed(TransportFailed):
    operation = "upload"


class ListFailed(TransportFailed):
    operation = "list"


class DownloadFailed(TransportFailed):
    operation = "download"


class InvalidSnapshot(LedgerVaultError):
    """Backup document is malformed and must not be restored."""
    pass


class DatasetError(LedgerVaultError):
    """Dataset collaborator rejected a read or write."""

    def __init__(self, collection: str, message: str):
        super().__init__(f"{collection}: {message}")
        self.collection = collection


class RestoreFailed(LedgerVaultError):
    """Upsert of a collection failed; the remaining restore was aborted."""

    def __init__(self, collection: str, cause: BaseException):
        super().__init__(f"Failed to restore {collection}: {cause}")
        self.collection = collection
        self.cause = cause


@dataclass(frozen=True)
class PruneWarning:
    """Non-fatal failure while deleting extra records of a collection."""

    collection: str
    cause: str

    def __str__(self) -> str:
        return f"Failed to prune extra records from {self.collection}: {self.cause}"

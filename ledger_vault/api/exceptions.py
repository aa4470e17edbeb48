"""Custom exceptions for FastAPI application."""

from fastapi import HTTPException
from starlette.status import (
    HTTP_400_BAD_REQUEST,
    HTTP_401_UNAUTHORIZED,
    HTTP_422_UNPROCESSABLE_ENTITY,
    HTTP_500_INTERNAL_SERVER_ERROR,
    HTTP_502_BAD_GATEWAY,
    HTTP_503_SERVICE_UNAVAILABLE,
)

from ledger_vault.exceptions import (
    AuthRequired,
    DatasetError,
    ExchangeFailed,
    InvalidSnapshot,
    LedgerVaultError,
    RestoreFailed,
    TransportFailed,
)


class LedgerVaultAPIError(HTTPException):
    """Base exception for ledger-vault API errors."""
    pass


class NotConnectedError(LedgerVaultAPIError):
    def __init__(self, message: str = "Storage provider not connected, please reconnect"):
        super().__init__(HTTP_401_UNAUTHORIZED, message)


class AuthorizationFailedError(LedgerVaultAPIError):
    def __init__(self, message: str = "Authorization failed, please connect the storage provider again"):
        super().__init__(HTTP_400_BAD_REQUEST, message)


class ProviderError(LedgerVaultAPIError):
    def __init__(self, message: str):
        super().__init__(HTTP_502_BAD_GATEWAY, message)


class InvalidBackupError(LedgerVaultAPIError):
    def __init__(self, message: str):
        super().__init__(HTTP_422_UNPROCESSABLE_ENTITY, message)


class DatasetUnavailableError(LedgerVaultAPIError):
    def __init__(self, message: str):
        super().__init__(HTTP_503_SERVICE_UNAVAILABLE, f"Dataset unavailable: {message}")


class RestoreError(LedgerVaultAPIError):
    def __init__(self, collection: str, message: str):
        super().__init__(
            HTTP_500_INTERNAL_SERVER_ERROR,
            {"message": message, "collection": collection},
        )


def http_error(error: LedgerVaultError) -> LedgerVaultAPIError:
    """Map a domain failure to the response the operator sees."""
    if isinstance(error, AuthRequired):
        return NotConnectedError()
    if isinstance(error, ExchangeFailed):
        return AuthorizationFailedError()
    if isinstance(error, TransportFailed):
        return ProviderError(str(error))
    if isinstance(error, InvalidSnapshot):
        return InvalidBackupError(str(error))
    if isinstance(error, RestoreFailed):
        return RestoreError(error.collection, str(error))
    if isinstance(error, DatasetError):
        return DatasetUnavailableError(str(error))
    return LedgerVaultAPIError(HTTP_500_INTERNAL_SERVER_ERROR, str(error))

from .auth import CredentialStore, OAuthClient, TokenManager, with_auth_retry
from .backup.manager import BackupManager
from .base import BaseDataset, BaseStateStorage
from .config import LedgerVaultConfig
from .transport import DriveTransport

__version__ = "0.1.0"
__author__ = "ledger-vault"

__all__ = [
    "BackupManager",
    "BaseDataset",
    "BaseStateStorage",
    "CredentialStore",
    "DriveTransport",
    "LedgerVaultConfig",
    "OAuthClient",
    "TokenManager",
    "with_auth_retry",
]

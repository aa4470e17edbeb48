"""Configuration management for ledger-vault."""

import os
from dataclasses import dataclass, field
from typing import Optional, Tuple


@dataclass(frozen=True)
class OAuthConfig:
    """OAuth provider and token lifecycle configuration."""
    client_id: str = ""
    client_secret: Optional[str] = None
    redirect_uri: str = "postmessage"
    token_url: str = "https://oauth2.googleapis.com/token"
    revoke_url: str = "https://oauth2.googleapis.com/revoke"
    scope: str = "https://www.googleapis.com/auth/drive.file"
    safety_buffer: float = 300.0  # seconds before expiry a token counts as unusable
    request_timeout: float = 30.0
    upkeep_interval: float = 60.0

    @classmethod
    def from_env(cls) -> 'OAuthConfig':
        """Create config from environment variables."""
        return cls(
            client_id=os.getenv("GOOGLE_CLIENT_ID", ""),
            client_secret=os.getenv("GOOGLE_CLIENT_SECRET", None),
            redirect_uri=os.getenv("GOOGLE_REDIRECT_URI", "postmessage"),
            token_url=os.getenv("GOOGLE_TOKEN_URL", "https://oauth2.googleapis.com/token"),
            revoke_url=os.getenv("GOOGLE_REVOKE_URL", "https://oauth2.googleapis.com/revoke"),
            scope=os.getenv("GOOGLE_OAUTH_SCOPE", "https://www.googleapis.com/auth/drive.file"),
            safety_buffer=float(os.getenv("TOKEN_SAFETY_BUFFER", "300")),
            request_timeout=float(os.getenv("OAUTH_REQUEST_TIMEOUT", "30.0")),
            upkeep_interval=float(os.getenv("TOKEN_UPKEEP_INTERVAL", "60")),
        )

    def __post_init__(self):
        """Validate configuration."""
        if self.safety_buffer < 0:
            raise ValueError(f"safety_buffer must be non-negative, got {self.safety_buffer}")
        if self.request_timeout <= 0:
            raise ValueError(f"request_timeout must be positive, got {self.request_timeout}")
        if self.upkeep_interval <= 0:
            raise ValueError(f"upkeep_interval must be positive, got {self.upkeep_interval}")


@dataclass(frozen=True)
class DriveConfig:
    """Remote storage provider configuration."""
    upload_url: str = "https://www.googleapis.com/upload/drive/v3/files"
    files_url: str = "https://www.googleapis.com/drive/v3/files"
    file_prefix: str = "ledger_backup_"
    page_size: int = 10
    request_timeout: float = 60.0

    @classmethod
    def from_env(cls) -> 'DriveConfig':
        """Create config from environment variables."""
        return cls(
            upload_url=os.getenv("DRIVE_UPLOAD_URL", "https://www.googleapis.com/upload/drive/v3/files"),
            files_url=os.getenv("DRIVE_FILES_URL", "https://www.googleapis.com/drive/v3/files"),
            file_prefix=os.getenv("BACKUP_FILE_PREFIX", "ledger_backup_"),
            page_size=int(os.getenv("DRIVE_PAGE_SIZE", "10")),
            request_timeout=float(os.getenv("DRIVE_REQUEST_TIMEOUT", "60.0")),
        )

    def __post_init__(self):
        """Validate configuration."""
        if not self.file_prefix:
            raise ValueError("file_prefix must not be empty")
        if "'" in self.file_prefix:
            raise ValueError(f"file_prefix must not contain quotes, got {self.file_prefix!r}")
        if not 1 <= self.page_size <= 100:
            raise ValueError(f"page_size must be between 1 and 100, got {self.page_size}")
        if self.request_timeout <= 0:
            raise ValueError(f"request_timeout must be positive, got {self.request_timeout}")


@dataclass(frozen=True)
class SchedulerConfig:
    """Automatic backup scheduling."""
    earliest_hour: int = 7  # local hour of day
    interval: float = 1800.0  # seconds between due checks
    run_on_start: bool = True

    @classmethod
    def from_env(cls) -> 'SchedulerConfig':
        """Create config from environment variables."""
        return cls(
            earliest_hour=int(os.getenv("AUTO_BACKUP_EARLIEST_HOUR", "7")),
            interval=float(os.getenv("AUTO_BACKUP_INTERVAL", "1800")),
            run_on_start=os.getenv("AUTO_BACKUP_RUN_ON_START", "true").lower() == "true",
        )

    def __post_init__(self):
        """Validate configuration."""
        if not 0 <= self.earliest_hour <= 23:
            raise ValueError(f"earliest_hour must be between 0 and 23, got {self.earliest_hour}")
        if self.interval <= 0:
            raise ValueError(f"interval must be positive, got {self.interval}")


@dataclass(frozen=True)
class StateConfig:
    """Key-value state backend holding credentials and scheduler markers."""
    backend: str = "json"  # json, redis, memory
    working_dir: str = "./ledger_vault_state"
    namespace: str = "ledger_vault"

    # Redis specific settings
    redis_url: str = "redis://localhost:6379"
    redis_password: Optional[str] = None
    redis_max_connections: int = 10
    redis_connection_timeout: float = 5.0
    redis_socket_timeout: float = 5.0

    @classmethod
    def from_env(cls) -> 'StateConfig':
        """Create config from environment variables."""
        return cls(
            backend=os.getenv("STATE_BACKEND", "json"),
            working_dir=os.getenv("STATE_WORKING_DIR", "./ledger_vault_state"),
            namespace=os.getenv("STATE_NAMESPACE", "ledger_vault"),
            redis_url=os.getenv("REDIS_URL", "redis://localhost:6379"),
            redis_password=os.getenv("REDIS_PASSWORD", None),
            redis_max_connections=int(os.getenv("REDIS_MAX_CONNECTIONS", "10")),
            redis_connection_timeout=float(os.getenv("REDIS_CONNECTION_TIMEOUT", "5.0")),
            redis_socket_timeout=float(os.getenv("REDIS_SOCKET_TIMEOUT", "5.0")),
        )

    def __post_init__(self):
        """Validate configuration."""
        valid_backends = {"json", "redis", "memory"}
        if self.backend not in valid_backends:
            raise ValueError(f"Unknown state backend: {self.backend}. Available: {valid_backends}")
        if not self.namespace:
            raise ValueError("namespace must not be empty")


@dataclass(frozen=True)
class DatasetConfig:
    """Relational backend (PostgREST / Supabase REST) configuration."""
    url: str = ""
    api_key: Optional[str] = None
    primary_key: str = "id"
    soft_delete_column: Optional[str] = "deleted_at"
    # Collections that have no soft-delete column
    hard_delete_collections: Tuple[str, ...] = ()
    request_timeout: float = 30.0

    @classmethod
    def from_env(cls) -> 'DatasetConfig':
        """Create config from environment variables."""
        hard_delete = os.getenv("DATASET_HARD_DELETE_COLLECTIONS", "")
        return cls(
            url=os.getenv("SUPABASE_URL", ""),
            api_key=os.getenv("SUPABASE_KEY", None),
            primary_key=os.getenv("DATASET_PRIMARY_KEY", "id"),
            soft_delete_column=os.getenv("DATASET_SOFT_DELETE_COLUMN", "deleted_at") or None,
            hard_delete_collections=tuple(c.strip() for c in hard_delete.split(",") if c.strip()),
            request_timeout=float(os.getenv("DATASET_REQUEST_TIMEOUT", "30.0")),
        )

    def __post_init__(self):
        """Validate configuration."""
        if not self.primary_key:
            raise ValueError("primary_key must not be empty")
        if self.request_timeout <= 0:
            raise ValueError(f"request_timeout must be positive, got {self.request_timeout}")


@dataclass(frozen=True)
class LedgerVaultConfig:
    """Main ledger-vault configuration."""
    app_name: str = "Ledger Vault"
    oauth: OAuthConfig = field(default_factory=OAuthConfig)
    drive: DriveConfig = field(default_factory=DriveConfig)
    scheduler: SchedulerConfig = field(default_factory=SchedulerConfig)
    state: StateConfig = field(default_factory=StateConfig)
    dataset: DatasetConfig = field(default_factory=DatasetConfig)

    @classmethod
    def from_env(cls) -> 'LedgerVaultConfig':
        """Create complete config from environment variables."""
        return cls(
            app_name=os.getenv("LEDGER_APP_NAME", "Ledger Vault"),
            oauth=OAuthConfig.from_env(),
            drive=DriveConfig.from_env(),
            scheduler=SchedulerConfig.from_env(),
            state=StateConfig.from_env(),
            dataset=DatasetConfig.from_env(),
        )

    def to_dict(self) -> dict:
        """Flatten the settings a state backend needs into a plain dict."""
        config_dict = {
            'working_dir': self.state.working_dir,
            'namespace': self.state.namespace,
        }
        if self.state.backend == "redis":
            config_dict['redis_url'] = self.state.redis_url
            config_dict['redis_password'] = self.state.redis_password
            config_dict['redis_max_connections'] = self.state.redis_max_connections
            config_dict['redis_connection_timeout'] = self.state.redis_connection_timeout
            config_dict['redis_socket_timeout'] = self.state.redis_socket_timeout
        return config_dict


def validate_config(config: LedgerVaultConfig) -> list[str]:
    """Validate configuration and return list of warnings.

    Args:
        config: ledger-vault configuration to validate

    Returns:
        List of warning messages (empty if no issues)
    """
    warnings = []

    if not config.oauth.client_id:
        warnings.append("GOOGLE_CLIENT_ID is not set; authorization code exchange will fail")

    if not config.dataset.url:
        warnings.append("SUPABASE_URL is not set; export and restore have no dataset")

    if config.oauth.safety_buffer >= config.oauth.upkeep_interval * 10:
        warnings.append(
            f"safety_buffer ({config.oauth.safety_buffer}s) is large compared to "
            f"upkeep_interval ({config.oauth.upkeep_interval}s)"
        )

    if config.scheduler.interval < 60:
        warnings.append(f"Very short auto-backup check interval ({config.scheduler.interval}s)")

    return warnings

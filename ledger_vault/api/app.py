"""FastAPI application for ledger-vault."""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
import dataclasses
import logging
import sys
import os

from ledger_vault import BackupManager
from ledger_vault.config import LedgerVaultConfig, validate_config
from .config import settings
from .routers import auth, backup, health

# App-managed pattern: attach our own handler and don't propagate
vault_logger = logging.getLogger("ledger-vault")
vault_logger.setLevel(logging.INFO)
vault_logger.propagate = False
vault_logger.handlers.clear()

console_handler = logging.StreamHandler(sys.stdout)
console_handler.setLevel(logging.INFO)
formatter = logging.Formatter(
    '%(asctime)s - [%(name)s] - %(levelname)s - %(message)s',
    datefmt='%Y-%m-%d %H:%M:%S'
)
console_handler.setFormatter(formatter)
vault_logger.addHandler(console_handler)

# Optional: Allow disabling app-managed logging via env var for production
if os.getenv("DISABLE_APP_LOGGING", "false").lower() == "true":
    vault_logger.handlers.clear()
    vault_logger.propagate = True  # Fall back to server-managed pattern

logger = logging.getLogger(__name__)


def build_config() -> LedgerVaultConfig:
    """Environment config with the API settings layered on top."""
    config = LedgerVaultConfig.from_env()

    state_overrides = {
        "backend": settings.state_backend,
        "working_dir": settings.working_dir,
    }
    if settings.redis_url:
        state_overrides["redis_url"] = settings.redis_url
        state_overrides["redis_password"] = settings.redis_password

    dataset_overrides = {}
    if settings.supabase_url:
        dataset_overrides["url"] = settings.supabase_url
        dataset_overrides["api_key"] = settings.supabase_key

    return dataclasses.replace(
        config,
        state=dataclasses.replace(config.state, **state_overrides),
        dataset=dataclasses.replace(config.dataset, **dataset_overrides),
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage BackupManager lifecycle."""
    logger.info("Initializing ledger-vault...")

    config = build_config()
    for warning in validate_config(config):
        logger.warning(warning)

    try:
        app.state.backup_manager = BackupManager.from_config(config)
        logger.info(f"ledger-vault initialized with {config.state.backend} state backend")
    except Exception as e:
        logger.error(f"Failed to initialize ledger-vault: {e}")
        raise

    if settings.background_tasks:
        app.state.backup_manager.start()

    yield

    logger.info("Shutting down ledger-vault...")
    await app.state.backup_manager.close()


def create_app() -> FastAPI:
    """Create and configure FastAPI application."""
    app = FastAPI(
        title=settings.api_title,
        version=settings.api_version,
        lifespan=lifespan,
        docs_url=f"{settings.api_prefix}/docs",
        openapi_url=f"{settings.api_prefix}/openapi.json",
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(auth.router, prefix=settings.api_prefix)
    app.include_router(backup.router, prefix=settings.api_prefix)
    app.include_router(health.router, prefix=settings.api_prefix)

    @app.get("/")
    async def root():
        """Root endpoint."""
        return {
            "name": settings.api_title,
            "version": settings.api_version,
            "docs": f"{settings.api_prefix}/docs"
        }

    return app


# Create default app instance
app = create_app()

"""Credential persistence on top of a key-value state backend."""

import asyncio
from typing import Optional

from pydantic import ValidationError

from ..base import BaseStateStorage
from .._utils import epoch_ms_to_datetime, logger
from .models import Credential, GrantType

CREDENTIAL_KEY = "gdrive_credential"

# Older releases kept a bare access token and its expiry (epoch ms) under two keys
LEGACY_TOKEN_KEY = "vishnu_gdrive_token"
LEGACY_EXPIRY_KEY = "vishnu_gdrive_token_expiry"


class CredentialStore:
    """Reads and writes the single storage provider credential.

    The credential is written as one value under one key, so a reader sees
    either the previous or the new credential, never a mix of both.
    """

    def __init__(self, state: BaseStateStorage):
        self.state = state
        self._write_lock = asyncio.Lock()

    async def get(self) -> Optional[Credential]:
        raw = await self.state.get(CREDENTIAL_KEY)
        if raw is None:
            return None
        try:
            return Credential.model_validate(raw)
        except ValidationError as e:
            logger.warning(f"Discarding unreadable stored credential: {e}")
            return None

    async def put(self, credential: Credential) -> None:
        async with self._write_lock:
            await self.state.set(CREDENTIAL_KEY, credential.model_dump(mode="json"))

    async def clear(self) -> None:
        """Remove the credential in both the current and the legacy format."""
        async with self._write_lock:
            await self.state.delete(CREDENTIAL_KEY, LEGACY_TOKEN_KEY, LEGACY_EXPIRY_KEY)

    async def get_legacy(self) -> Optional[Credential]:
        token = await self.state.get(LEGACY_TOKEN_KEY)
        expiry = epoch_ms_to_datetime(await self.state.get(LEGACY_EXPIRY_KEY))
        if not token or expiry is None:
            return None
        return Credential(
            access_token=str(token),
            access_expiry=expiry,
            acquired_via=GrantType.LEGACY,
        )

    async def migrate_legacy(self, credential: Credential) -> None:
        """Move a legacy credential into the current format."""
        async with self._write_lock:
            await self.state.set(CREDENTIAL_KEY, credential.model_dump(mode="json"))
            await self.state.delete(LEGACY_TOKEN_KEY, LEGACY_EXPIRY_KEY)
        logger.info("Migrated legacy storage credential to current format")

"""Token lifecycle: exchange, silent refresh, expiry detection and revocation."""

import asyncio
from datetime import datetime, timedelta
from typing import Callable, Optional

from ..config import OAuthConfig
from .._utils import logger, utc_now
from ..exceptions import AuthRequired, ExchangeFailed, RefreshFailed, TokenError
from .models import Credential, GrantType, TokenState
from .oauth import OAuthClient
from .store import CredentialStore


class TokenManager:
    """Owns the credential state machine.

    ``ensure_valid`` is the single entry point used by every backup and
    restore operation. Refreshes are serialized so that concurrent callers
    never spend the same refresh token twice.
    """

    def __init__(
        self,
        store: CredentialStore,
        oauth: OAuthClient,
        config: Optional[OAuthConfig] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.store = store
        self.oauth = oauth
        self.config = config or oauth.config
        self.safety_buffer = timedelta(seconds=self.config.safety_buffer)
        self._clock = clock
        self._refresh_lock = asyncio.Lock()
        self._upkeep_task: Optional[asyncio.Task] = None

    # Acquisition

    async def exchange_code(self, code: str, redirect_uri: Optional[str] = None) -> Credential:
        """Persistent flow: trade an authorization code for a token pair.

        Raises:
            ExchangeFailed: network error, timeout or provider rejection.
                Not retried, the user has to authorize again.
        """
        try:
            response = await asyncio.wait_for(
                self.oauth.exchange_code(code, redirect_uri),
                timeout=self.config.request_timeout,
            )
        except asyncio.TimeoutError:
            raise ExchangeFailed("Authorization code exchange timed out")

        refresh_token = response.refresh_token
        if not refresh_token:
            # Providers only return a refresh token on first consent
            previous = await self.store.get()
            refresh_token = previous.refresh_token if previous else None

        credential = Credential(
            access_token=response.access_token,
            access_expiry=self._clock() + timedelta(seconds=response.expires_in),
            refresh_token=refresh_token,
            acquired_via=GrantType.AUTH_CODE,
        )
        await self.store.put(credential)
        logger.info(f"Connected storage provider via authorization code (persistent={credential.persistent})")
        return credential

    async def exchange_implicit(self, access_token: str, expires_in: int) -> Credential:
        """Ephemeral flow: store a directly granted access token."""
        credential = Credential(
            access_token=access_token,
            access_expiry=self._clock() + timedelta(seconds=expires_in),
            acquired_via=GrantType.IMPLICIT,
        )
        await self.store.put(credential)
        logger.info(f"Connected storage provider via implicit grant, expires in {expires_in}s")
        return credential

    # Validity

    async def ensure_valid(self, force_refresh: bool = False) -> str:
        """Return a usable access token, refreshing it when needed.

        Args:
            force_refresh: Skip the still-valid fast path, used after the
                provider rejected the current access token.

        Raises:
            AuthRequired: no credential can be made valid without the user.
        """
        credential = await self.store.get()
        if credential is not None and not force_refresh and credential.is_usable(self.safety_buffer, self._clock()):
            return credential.access_token

        if credential is not None and credential.persistent:
            return await self._refresh(credential, force_refresh)

        legacy = None
        if not force_refresh:
            legacy = await self.store.get_legacy()
            if legacy is not None and legacy.is_usable(self.safety_buffer, self._clock()):
                await self.store.migrate_legacy(legacy)
                return legacy.access_token

        pending = credential or legacy
        if not force_refresh and pending is not None and pending.remaining(self._clock()) > timedelta(0):
            # Too close to expiry to start an operation, but still valid until then
            raise AuthRequired("Storage provider access expires soon, please reconnect")

        await self.store.clear()
        raise AuthRequired()

    async def _refresh(self, stale: Credential, force_refresh: bool) -> str:
        async with self._refresh_lock:
            current = await self.store.get()
            if current is None:
                raise AuthRequired()

            now = self._clock()
            if current.access_token != stale.access_token and current.is_usable(self.safety_buffer, now):
                # Another caller refreshed while this one waited for the lock
                return current.access_token
            if not force_refresh and current.is_usable(self.safety_buffer, now):
                return current.access_token
            if not current.persistent:
                await self.store.clear()
                raise AuthRequired()

            try:
                response = await asyncio.wait_for(
                    self.oauth.refresh(current.refresh_token),
                    timeout=self.config.request_timeout,
                )
            except asyncio.TimeoutError:
                logger.warning("Token refresh timed out, keeping existing credential")
                raise AuthRequired("Token refresh timed out, try again later")
            except RefreshFailed as e:
                if e.is_rejection:
                    logger.warning(f"Refresh token rejected ({e.error_code or e.status}), clearing credential")
                    await self.store.clear()
                    raise AuthRequired() from e
                logger.warning(f"Token refresh failed, keeping existing credential: {e}")
                raise AuthRequired("Token refresh failed, try again later") from e

            refreshed = Credential(
                access_token=response.access_token,
                access_expiry=self._clock() + timedelta(seconds=response.expires_in),
                # Providers that rotate refresh tokens return a new one
                refresh_token=response.refresh_token or current.refresh_token,
                acquired_via=current.acquired_via,
            )
            await self.store.put(refreshed)
            logger.info(f"Refreshed access token, valid until {refreshed.access_expiry.isoformat()}")
            return refreshed.access_token

    async def is_expiring_soon(self) -> bool:
        """True when an ephemeral credential is inside the safety buffer.

        Persistent credentials renew themselves and never report this.
        """
        credential = await self.store.get() or await self.store.get_legacy()
        if credential is None or credential.persistent:
            return False
        remaining = credential.remaining(self._clock())
        return timedelta(0) < remaining < self.safety_buffer

    async def state(self) -> TokenState:
        credential = await self.store.get()
        now = self._clock()
        if credential is None:
            legacy = await self.store.get_legacy()
            if legacy is not None and legacy.is_usable(self.safety_buffer, now):
                return TokenState.LEGACY_VALID
            return TokenState.UNAUTHENTICATED

        if credential.persistent:
            if credential.is_usable(self.safety_buffer, now):
                return TokenState.PERSISTENT_VALID
            return TokenState.PERSISTENT_EXPIRING

        remaining = credential.remaining(now)
        if remaining <= timedelta(0):
            return TokenState.EPHEMERAL_EXPIRED
        if remaining <= self.safety_buffer:
            return TokenState.EPHEMERAL_EXPIRING
        if credential.acquired_via == GrantType.LEGACY:
            return TokenState.LEGACY_VALID
        return TokenState.EPHEMERAL_VALID

    # Disconnect

    async def revoke(self) -> None:
        """Revoke remote grants when renewable, then always clear local state."""
        credential = await self.store.get()
        try:
            if credential is not None and credential.persistent:
                for token in (credential.refresh_token, credential.access_token):
                    try:
                        await asyncio.wait_for(self.oauth.revoke(token), timeout=self.config.request_timeout)
                    except (TokenError, asyncio.TimeoutError) as e:
                        logger.warning(f"Failed to revoke token at provider: {e}")
        finally:
            await self.store.clear()
        logger.info("Storage provider disconnected")

    # Background upkeep

    async def run_upkeep_once(self) -> None:
        try:
            await self.ensure_valid()
        except AuthRequired as e:
            logger.debug(f"Token upkeep: {e}")

    async def _upkeep_loop(self) -> None:
        while True:
            await asyncio.sleep(self.config.upkeep_interval)
            try:
                await self.run_upkeep_once()
            except Exception as e:
                logger.error(f"Token upkeep failed: {e}")

    def start_upkeep(self) -> None:
        """Proactively refresh every ``upkeep_interval`` seconds."""
        if self._upkeep_task is None or self._upkeep_task.done():
            self._upkeep_task = asyncio.create_task(self._upkeep_loop())

    async def stop_upkeep(self) -> None:
        if self._upkeep_task is None:
            return
        self._upkeep_task.cancel()
        try:
            await self._upkeep_task
        except asyncio.CancelledError:
            pass
        self._upkeep_task = None

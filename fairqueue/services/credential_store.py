"""Durable broadcaster credential with refresh-before-expiry."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from datetime import datetime, timedelta

from fairqueue.core.errors import AuthRequired
from fairqueue.services.twitch_api import TwitchAPIClient
from fairqueue.shared.clock import utc_now
from fairqueue.shared.models.credential import Credential, NeedsLogin
from fairqueue.shared.repositories.credential import CredentialRepository

logger = logging.getLogger(__name__)

# Used when a token response omits expires_in.
_DEFAULT_TOKEN_LIFETIME = timedelta(hours=1)
# /api/status calls a credential "authenticated" only past this horizon.
STATUS_VALIDITY_MARGIN = timedelta(seconds=30)


class CredentialStore:
    """Holds the single OAuth credential and keeps it fresh.

    A refresh failure keeps the previous token usable until it actually
    expires; after that the store reports ``NeedsLogin``.
    """

    def __init__(
        self,
        repo: CredentialRepository,
        twitch_api: TwitchAPIClient,
        *,
        refresh_margin_secs: int = 300,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.repo = repo
        self.twitch_api = twitch_api
        self.refresh_margin = timedelta(seconds=refresh_margin_secs)
        self._clock = clock
        self._refresh_lock = asyncio.Lock()

    async def current(self) -> Credential | NeedsLogin:
        """The stored credential if it has not expired yet."""
        credential = await self.repo.get()
        if credential is None:
            return NeedsLogin()
        if credential.is_expired(self._clock()):
            return NeedsLogin("credential expired")
        return credential

    async def is_authenticated(self) -> bool:
        credential = await self.repo.get()
        if credential is None:
            return False
        return not credential.expires_within(self._clock(), STATUS_VALIDITY_MARGIN)

    async def store(self, access_token: str, refresh_token: str, expires_at: datetime) -> Credential:
        """Overwrite the credential wholesale (login or refresh)."""
        credential = Credential(
            access_token=access_token, refresh_token=refresh_token, expires_at=expires_at
        )
        await self.repo.upsert(credential)
        return credential

    async def store_token_response(
        self, access_token: str, refresh_token: str, expires_in: int
    ) -> Credential:
        lifetime = timedelta(seconds=expires_in) if expires_in > 0 else _DEFAULT_TOKEN_LIFETIME
        return await self.store(access_token, refresh_token, self._clock() + lifetime)

    async def clear(self) -> None:
        await self.repo.delete()
        logger.info("Credential cleared")

    async def refresh_if_needed(self) -> Credential | NeedsLogin:
        """Refresh when within the margin of expiry; never drops a still-valid token."""
        async with self._refresh_lock:
            credential = await self.repo.get()
            if credential is None:
                return NeedsLogin()

            now = self._clock()
            if not credential.expires_within(now, self.refresh_margin):
                return credential

            result = await self.twitch_api.refresh_access_token(credential.refresh_token)
            if result.success and result.access_token:
                refreshed = await self.store_token_response(
                    result.access_token,
                    result.refresh_token or credential.refresh_token,
                    result.expires_in,
                )
                logger.info(f"Access token refreshed, expires at {refreshed.expires_at:%Y-%m-%d %H:%M:%S}")
                return refreshed

            if credential.is_expired(now):
                logger.error(f"Token refresh failed and token expired: {result.error}")
                return NeedsLogin(f"refresh failed: {result.error}")

            logger.warning(
                f"Token refresh failed ({result.error}), keeping current token until "
                f"{credential.expires_at:%Y-%m-%d %H:%M:%S}"
            )
            return credential

    async def access_token(self) -> str:
        """A usable access token, refreshing first if needed. Raises AuthRequired."""
        state = await self.refresh_if_needed()
        if isinstance(state, NeedsLogin):
            raise AuthRequired(state.reason)
        return state.access_token

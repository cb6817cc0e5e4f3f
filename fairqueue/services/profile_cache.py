"""Cache-or-fetch resolution of Twitch user profiles."""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime, timedelta

from fairqueue.core.errors import ProfileResolutionError, StoreError
from fairqueue.services.twitch_api import TwitchAPIClient
from fairqueue.shared.clock import utc_now
from fairqueue.shared.models.user_cache import UserProfile
from fairqueue.shared.repositories.user_cache import UserCacheRepository

logger = logging.getLogger(__name__)


class ProfileCache:
    """Resolves a user id to a profile, preferring a fresh cached entry.

    With ``ttl_secs == 0`` every call goes to Helix. On lookup failure an
    expired entry is served only when ``serve_stale`` is set.
    """

    def __init__(
        self,
        repo: UserCacheRepository,
        twitch_api: TwitchAPIClient,
        *,
        ttl_secs: int,
        serve_stale: bool = True,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.repo = repo
        self.twitch_api = twitch_api
        self.ttl = timedelta(seconds=ttl_secs)
        self.serve_stale = serve_stale
        self._clock = clock

    async def _cached(self, user_id: str) -> UserProfile | None:
        try:
            return await self.repo.get(user_id)
        except StoreError as e:
            logger.warning(f"User cache read failed for {user_id}, fetching live: {e}")
            return None

    async def resolve(self, user_id: str) -> UserProfile:
        now = self._clock()
        cached = await self._cached(user_id)
        if cached is not None and now - cached.updated_at < self.ttl:
            return cached

        user = await self.twitch_api.get_user_info(user_id)
        if user is None:
            if cached is not None and self.serve_stale:
                logger.warning(
                    f"Profile lookup for {user_id} failed, serving cached entry "
                    f"from {cached.updated_at:%Y-%m-%d %H:%M:%S}"
                )
                return cached
            raise ProfileResolutionError(user_id)

        profile = UserProfile(
            user_id=user_id,
            login=user["login"],
            display_name=user["display_name"],
            avatar_url=user["avatar_url"],
            updated_at=now,
        )
        try:
            await self.repo.upsert(profile)
        except StoreError as e:
            logger.warning(f"Could not cache profile for {user_id}: {e}")
        return profile

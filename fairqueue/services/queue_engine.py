"""Queue engine: turns admitted redemptions and admin commands into store mutations."""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from datetime import datetime
from enum import StrEnum

from fairqueue.core.errors import ProfileResolutionError
from fairqueue.eventsub.messages import EventSubMessage, parse_redemption
from fairqueue.services.deduplicator import EventDeduplicator
from fairqueue.services.profile_cache import ProfileCache
from fairqueue.shared.clock import utc_now
from fairqueue.shared.models.queue import DeleteMode, QueueItem, QueueSnapshotEntry
from fairqueue.shared.repositories.queue import FairQueueRepository

LOGGER = logging.getLogger("QueueEngine")


class FeedOutcome(StrEnum):
    DUPLICATE = "duplicate"
    IGNORED = "ignored"
    ENQUEUED = "enqueued"
    ALREADY_QUEUED = "already_queued"
    CANCELED = "canceled"
    NOT_QUEUED = "not_queued"
    PROFILE_FAILED = "profile_failed"


class QueueEngine:
    """Orchestrates the deduplicator, profile cache and fair queue store."""

    def __init__(
        self,
        queue_repo: FairQueueRepository,
        deduplicator: EventDeduplicator,
        profiles: ProfileCache,
        *,
        target_reward_ids: Iterable[str],
        cancel_reward_id: str = "",
        window_secs: int,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.queue_repo = queue_repo
        self.deduplicator = deduplicator
        self.profiles = profiles
        self.target_reward_ids = frozenset(target_reward_ids)
        self.cancel_reward_id = cancel_reward_id
        self.window_secs = window_secs
        self._clock = clock

    # ==================== Feed ====================

    async def handle_notification(self, message: EventSubMessage) -> FeedOutcome:
        """Apply one feed notification. Store failures propagate."""
        if not await self.deduplicator.admit(message.message_id):
            return FeedOutcome.DUPLICATE

        redemption = parse_redemption(message)
        if redemption is None:
            return FeedOutcome.IGNORED

        if redemption.reward_id in self.target_reward_ids:
            return await self._enqueue(redemption.user_id)
        if self.cancel_reward_id and redemption.reward_id == self.cancel_reward_id:
            return await self._cancel_for_user(redemption.user_id)
        return FeedOutcome.IGNORED

    async def _enqueue(self, user_id: str) -> FeedOutcome:
        if await self.queue_repo.is_user_queued(user_id):
            LOGGER.debug(f"User {user_id} already queued")
            return FeedOutcome.ALREADY_QUEUED

        try:
            profile = await self.profiles.resolve(user_id)
        except ProfileResolutionError as e:
            LOGGER.warning(f"Redemption dropped: {e}")
            return FeedOutcome.PROFILE_FAILED

        outcome = await self.queue_repo.enqueue(profile, self._clock(), self.window_secs)
        if not outcome.added:
            return FeedOutcome.ALREADY_QUEUED
        LOGGER.info(f"Queued {profile.display_name} ({profile.login}) at position {outcome.item.position}")
        return FeedOutcome.ENQUEUED

    async def _cancel_for_user(self, user_id: str) -> FeedOutcome:
        try:
            profile = await self.profiles.resolve(user_id)
        except ProfileResolutionError as e:
            LOGGER.warning(f"Cancel redemption dropped: {e}")
            return FeedOutcome.PROFILE_FAILED

        removed = await self.queue_repo.cancel_by_user(profile.user_id)
        if removed is None:
            return FeedOutcome.NOT_QUEUED
        LOGGER.info(f"{profile.display_name} left the queue")
        return FeedOutcome.CANCELED

    # ==================== Admin ====================

    async def snapshot(self) -> list[QueueSnapshotEntry]:
        return await self.queue_repo.snapshot(self._clock(), self.window_secs)

    async def complete(self, item_id: str) -> QueueItem:
        item = await self.queue_repo.complete(item_id, self._clock())
        LOGGER.info(f"Completed {item.login}")
        return item

    async def cancel(self, item_id: str) -> QueueItem:
        item = await self.queue_repo.cancel(item_id)
        LOGGER.info(f"Canceled {item.login}")
        return item

    async def delete(self, item_id: str, mode: DeleteMode) -> QueueItem:
        if mode == DeleteMode.COMPLETED:
            return await self.complete(item_id)
        return await self.cancel(item_id)

    async def move_up(self, item_id: str) -> bool:
        return await self.queue_repo.move_up(item_id)

    async def move_down(self, item_id: str) -> bool:
        return await self.queue_repo.move_down(item_id)

"""Durable at-most-once admission of EventSub message ids."""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime, timedelta

from fairqueue.shared.clock import utc_now
from fairqueue.shared.repositories.processed_message import ProcessedMessageRepository

logger = logging.getLogger(__name__)


class EventDeduplicator:
    """Admits each message id once for as long as its marker is retained.

    Redeliveries later than ``ttl_secs`` are admitted again; the TTL should
    exceed any redelivery delay Twitch plausibly produces.
    """

    def __init__(
        self,
        repo: ProcessedMessageRepository,
        *,
        ttl_secs: int,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.repo = repo
        self.ttl = timedelta(seconds=ttl_secs)
        self._clock = clock

    async def admit(self, message_id: str) -> bool:
        admitted = await self.repo.try_mark(message_id, self._clock())
        if not admitted:
            logger.debug(f"Duplicate message {message_id} dropped")
        return admitted

    async def prune(self) -> int:
        removed = await self.repo.prune_older_than(self._clock() - self.ttl)
        if removed:
            logger.info(f"Pruned {removed} processed message marker(s)")
        return removed

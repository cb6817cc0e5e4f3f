"""Periodic upkeep: token refresh, dedup pruning, stale subscription cleanup."""

from __future__ import annotations

import asyncio
import logging

from fairqueue.eventsub.listener import EventSubListener
from fairqueue.services.credential_store import CredentialStore
from fairqueue.services.deduplicator import EventDeduplicator
from fairqueue.shared.models.credential import NeedsLogin

logger = logging.getLogger(__name__)


async def maintenance_tick(
    credentials: CredentialStore,
    deduplicator: EventDeduplicator,
    listener: EventSubListener | None = None,
) -> None:
    """One pass. Each step fails independently and only logs."""
    needs_login = False
    try:
        state = await credentials.refresh_if_needed()
        needs_login = isinstance(state, NeedsLogin)
    except Exception as e:
        logger.warning(f"Token refresh check failed: {type(e).__name__}: {e}")

    try:
        await deduplicator.prune()
    except Exception as e:
        logger.warning(f"Dedup pruning failed: {type(e).__name__}: {e}")

    if listener is not None and not needs_login:
        try:
            await listener.reap_stale()
        except Exception as e:
            logger.warning(f"Stale subscription cleanup failed: {type(e).__name__}: {e}")


async def maintenance_loop(
    interval: float,
    credentials: CredentialStore,
    deduplicator: EventDeduplicator,
    listener: EventSubListener | None = None,
) -> None:
    """Run ``maintenance_tick`` every *interval* seconds until cancelled."""
    while True:
        try:
            await asyncio.sleep(interval)
            await maintenance_tick(credentials, deduplicator, listener)
        except asyncio.CancelledError:
            break
        except Exception as e:
            logger.exception(f"Maintenance loop error: {e}")

"""Engine status for the admin page."""

from datetime import datetime

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from fairqueue.core.config import Settings, get_settings
from fairqueue.core.dependencies import get_credential_store, get_kv_repository, get_listener
from fairqueue.eventsub.listener import EventSubListener, FeedState
from fairqueue.services.credential_store import CredentialStore
from fairqueue.shared.clock import utc_now
from fairqueue.shared.repositories.kv import KeyValueRepository

router = APIRouter(prefix="/api", tags=["status"])


class StatusResponse(BaseModel):
    authenticated: bool
    broadcaster_id: str | None
    broadcaster_login: str | None
    participation_window_secs: int
    target_reward_ids: list[str]
    cancel_reward_id: str | None
    feed_state: FeedState
    feed_alert: str | None
    server_time: datetime


@router.get("/status", response_model=StatusResponse)
async def get_status(
    credentials: CredentialStore = Depends(get_credential_store),
    kv: KeyValueRepository = Depends(get_kv_repository),
    listener: EventSubListener | None = Depends(get_listener),
    settings: Settings = Depends(get_settings),
) -> StatusResponse:
    broadcaster_id, broadcaster_login = await kv.get_broadcaster()
    return StatusResponse(
        authenticated=await credentials.is_authenticated(),
        broadcaster_id=broadcaster_id,
        broadcaster_login=broadcaster_login,
        participation_window_secs=settings.participation_window_secs,
        target_reward_ids=settings.reward_ids,
        cancel_reward_id=settings.cancel_reward_id or None,
        feed_state=listener.state if listener else FeedState.DISCONNECTED,
        feed_alert=listener.alert if listener else None,
        server_time=utc_now(),
    )

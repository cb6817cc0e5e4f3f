"""Channel point rewards passthrough, for picking reward ids."""

import logging

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from fairqueue.core.dependencies import get_credential_store, get_kv_repository, get_twitch_api
from fairqueue.core.errors import AuthRequired
from fairqueue.services.broadcaster import resolve_broadcaster_id
from fairqueue.services.credential_store import CredentialStore
from fairqueue.services.twitch_api import TwitchAPIClient
from fairqueue.shared.repositories.kv import KeyValueRepository

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["rewards"])


class RewardResponse(BaseModel):
    id: str
    title: str
    cost: int
    is_enabled: bool


@router.get("/rewards", response_model=list[RewardResponse])
async def list_rewards(
    credentials: CredentialStore = Depends(get_credential_store),
    kv: KeyValueRepository = Depends(get_kv_repository),
    twitch_api: TwitchAPIClient = Depends(get_twitch_api),
) -> list[RewardResponse]:
    """Custom rewards of the broadcaster's channel. 401 until someone logs in."""
    access_token = await credentials.access_token()
    broadcaster_id = await resolve_broadcaster_id(kv, twitch_api, access_token)
    if not broadcaster_id:
        raise AuthRequired("broadcaster unknown")

    rewards = await twitch_api.get_custom_rewards(broadcaster_id, access_token)
    return [RewardResponse(**r) for r in rewards]

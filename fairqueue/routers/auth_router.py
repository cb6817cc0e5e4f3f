"""Broadcaster OAuth (authorization code) routes"""

import logging

from fastapi import APIRouter, Depends, HTTPException, Response
from fastapi.responses import RedirectResponse

from fairqueue.core.dependencies import (
    get_credential_store,
    get_kv_repository,
    get_oauth_states,
    get_twitch_api,
)
from fairqueue.services.credential_store import CredentialStore
from fairqueue.services.oauth_state import OAuthStateStore
from fairqueue.services.twitch_api import TwitchAPIClient
from fairqueue.shared.repositories.kv import KeyValueRepository

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["authentication"])

ADMIN_PATH = "/admin"


@router.get("/start")
async def start_oauth(
    twitch_api: TwitchAPIClient = Depends(get_twitch_api),
    states: OAuthStateStore = Depends(get_oauth_states),
) -> RedirectResponse:
    """Send the operator to the Twitch consent page."""
    return RedirectResponse(url=twitch_api.generate_oauth_url(states.issue()))


@router.get("/callback")
async def oauth_callback(
    code: str | None = None,
    error: str | None = None,
    error_description: str | None = None,
    state: str | None = None,
    twitch_api: TwitchAPIClient = Depends(get_twitch_api),
    credentials: CredentialStore = Depends(get_credential_store),
    kv: KeyValueRepository = Depends(get_kv_repository),
    states: OAuthStateStore = Depends(get_oauth_states),
) -> RedirectResponse:
    """Handle Twitch OAuth callback"""
    if error:
        logger.error(f"OAuth error from Twitch: {error} {error_description or ''}")
        raise HTTPException(status_code=400, detail=f"OAuth error: {error}")

    if not states.consume(state):
        logger.warning("OAuth callback with unknown or expired state")
        raise HTTPException(status_code=400, detail="Invalid OAuth state")

    if not code:
        raise HTTPException(status_code=400, detail="Missing OAuth code")

    success, error_msg, token_data = await twitch_api.exchange_code_for_token(code)
    if not success or not token_data:
        logger.error(f"Failed to exchange code: {error_msg}")
        raise HTTPException(status_code=502, detail=f"Token exchange failed: {error_msg}")

    await credentials.store_token_response(
        token_data["access_token"], token_data["refresh_token"], token_data["expires_in"]
    )
    if token_data["user_id"]:
        await kv.set_broadcaster(token_data["user_id"], token_data["login"])
        logger.info(f"Broadcaster {token_data['login']} authorized")
    else:
        # Owner unknown; resolved from the new token on next use
        await kv.clear_broadcaster()
        logger.warning("Broadcaster authorized, identity will be resolved later")

    return RedirectResponse(url=ADMIN_PATH, status_code=303)


@router.post("/logout", status_code=204)
async def logout(credentials: CredentialStore = Depends(get_credential_store)) -> Response:
    await credentials.clear()
    return Response(status_code=204)

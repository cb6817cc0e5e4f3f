"""Twitch API client service.

Token types:
- App Access Token: For public endpoints (users). Auto-fetched and cached.
- User Access Token: The broadcaster's token, for channel point rewards and
  EventSub WebSocket subscriptions. Obtained via the OAuth flow, stored in
  the database, refreshed by the credential store.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, cast
from urllib.parse import quote

import httpx

from fairqueue.core.config import BROADCASTER_SCOPES, REDEMPTION_ADD_TYPE, REDEMPTION_ADD_VERSION
from fairqueue.core.errors import SubscriptionError

logger = logging.getLogger(__name__)

HELIX_BASE = "https://api.twitch.tv/helix"
OAUTH_BASE = "https://id.twitch.tv/oauth2"

# Upper bound on pages walked when listing subscriptions.
_MAX_SUBSCRIPTION_PAGES = 50


@dataclass
class TokenRefreshResult:
    """Result of a token refresh operation."""

    success: bool
    access_token: str | None = None
    refresh_token: str | None = None
    expires_in: int = 0
    error: str | None = None


class TwitchAPIClient:
    """Client for interacting with Twitch API.

    Manages a shared httpx client for connection reuse and caches
    the app access token to avoid redundant token requests.
    """

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        redirect_url: str,
        *,
        http: httpx.AsyncClient | None = None,
    ):
        if not client_id or not client_secret:
            raise ValueError("Twitch client_id and client_secret are required")

        self.client_id = client_id
        self.client_secret = client_secret
        self.redirect_url = redirect_url

        # Shared HTTP client, reuses TCP connections across requests
        self._http = http or httpx.AsyncClient(timeout=10.0)

        # App token cache
        self._app_token: str | None = None
        self._app_token_expires_at: float = 0.0
        self._app_token_lock = asyncio.Lock()

    async def close(self) -> None:
        """Close the shared HTTP client. Call on app shutdown."""
        await self._http.aclose()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _headers(self, token: str) -> dict[str, str]:
        return {"Authorization": f"Bearer {token}", "Client-Id": self.client_id}

    async def _ensure_app_token(self) -> str | None:
        """Return a cached app access token, refreshing only when expired."""
        now = time.monotonic()
        if self._app_token and now < self._app_token_expires_at:
            return self._app_token

        async with self._app_token_lock:
            # Double-check after acquiring lock
            now = time.monotonic()
            if self._app_token and now < self._app_token_expires_at:
                return self._app_token

            try:
                response = await self._http.post(
                    f"{OAUTH_BASE}/token",
                    data={
                        "client_id": self.client_id,
                        "client_secret": self.client_secret,
                        "grant_type": "client_credentials",
                    },
                )
                if response.status_code != 200:
                    logger.error(f"Failed to get app token: {response.status_code}")
                    return None

                data = response.json()
                self._app_token = data.get("access_token")
                # Twitch returns expires_in in seconds; refresh 5 min early
                expires_in = data.get("expires_in", 0)
                self._app_token_expires_at = now + max(expires_in - 300, 0)
                return self._app_token

            except Exception as e:
                logger.exception(f"Error getting app access token: {e}")
                return None

    async def _helix_get(
        self,
        path: str,
        params: dict | None = None,
        *,
        token: str | None = None,
    ) -> httpx.Response | None:
        """GET request to Helix API. Uses app token when *token* is None."""
        if token is None:
            token = await self._ensure_app_token()
            if not token:
                return None
        try:
            return await self._http.get(
                f"{HELIX_BASE}/{path}",
                params=params,
                headers=self._headers(token),
            )
        except Exception as e:
            logger.exception(f"Helix GET /{path} error: {e}")
            return None

    # ------------------------------------------------------------------
    # OAuth flow
    # ------------------------------------------------------------------

    def generate_oauth_url(self, state: str) -> str:
        """Generate Twitch OAuth authorization URL."""
        scope_string = "+".join(s.replace(":", "%3A") for s in BROADCASTER_SCOPES)
        encoded_redirect_uri = quote(self.redirect_url, safe="")

        return (
            f"{OAUTH_BASE}/authorize"
            f"?client_id={self.client_id}"
            f"&redirect_uri={encoded_redirect_uri}"
            f"&response_type=code"
            f"&scope={scope_string}"
            f"&state={quote(state, safe='')}"
        )

    async def exchange_code_for_token(
        self, code: str
    ) -> tuple[bool, str | None, dict[str, Any] | None]:
        """Exchange OAuth code for access token.

        Returns:
            Tuple of (success, error_message, token_data)
            token_data contains: access_token, refresh_token, expires_in,
            user_id, login (both None when the owner lookup failed)
        """
        try:
            token_response = await self._http.post(
                f"{OAUTH_BASE}/token",
                data={
                    "client_id": self.client_id,
                    "client_secret": self.client_secret,
                    "code": code,
                    "grant_type": "authorization_code",
                    "redirect_uri": self.redirect_url,
                },
            )

            if token_response.status_code != 200:
                logger.error(f"Failed to exchange code: {token_response.status_code}")
                logger.error(f"Response: {token_response.text}")
                return False, "token_exchange_failed", None

            token_data = token_response.json()
            access_token = token_data.get("access_token")
            refresh_token = token_data.get("refresh_token")

            if not access_token:
                logger.error("No access_token in response")
                return False, "no_access_token", None

            # Identify the broadcaster with the new user token; a failed lookup is
            # resolved again lazily once the token is stored
            user = await self.get_self(access_token)
            if user:
                logger.debug(f"Token exchanged for user: {user['id']}")
            else:
                logger.warning("Token exchanged but the token owner lookup failed")

            return (
                True,
                None,
                {
                    "access_token": access_token,
                    "refresh_token": refresh_token or "",
                    "expires_in": int(token_data.get("expires_in") or 0),
                    "user_id": user["id"] if user else None,
                    "login": user["login"] if user else None,
                },
            )

        except httpx.TimeoutException:
            logger.error("Timeout while exchanging code for token")
            return False, "timeout", None
        except Exception as e:
            logger.exception(f"Unexpected error exchanging code: {e}")
            return False, "exchange_failed", None

    # ------------------------------------------------------------------
    # User token management
    # ------------------------------------------------------------------

    async def refresh_access_token(self, refresh_token: str) -> TokenRefreshResult:
        """Refresh the broadcaster's access token using their refresh token.

        The refresh token itself may also be rotated (Twitch returns a new one).
        Caller should store both tokens.
        """
        try:
            response = await self._http.post(
                f"{OAUTH_BASE}/token",
                data={
                    "client_id": self.client_id,
                    "client_secret": self.client_secret,
                    "grant_type": "refresh_token",
                    "refresh_token": refresh_token,
                },
            )

            if response.status_code != 200:
                error_data = response.json() if response.text else {}
                error_msg = error_data.get("message", f"HTTP {response.status_code}")
                logger.error(f"Token refresh failed: {error_msg}")
                return TokenRefreshResult(success=False, error=error_msg)

            data = response.json()
            new_access_token = data.get("access_token")
            new_refresh_token = data.get("refresh_token")

            if not new_access_token:
                return TokenRefreshResult(
                    success=False, error="No access_token in refresh response"
                )

            logger.debug("Successfully refreshed user access token")
            return TokenRefreshResult(
                success=True,
                access_token=new_access_token,
                refresh_token=new_refresh_token or refresh_token,
                expires_in=int(data.get("expires_in") or 0),
            )

        except httpx.TimeoutException:
            logger.error("Timeout while refreshing token")
            return TokenRefreshResult(success=False, error="timeout")
        except Exception as e:
            logger.exception(f"Unexpected error refreshing token: {e}")
            return TokenRefreshResult(success=False, error=str(e))

    # ------------------------------------------------------------------
    # User data
    # ------------------------------------------------------------------

    async def get_self(self, access_token: str) -> dict[str, str] | None:
        """The user a user access token belongs to."""
        return await self._fetch_user(params=None, token=access_token)

    async def get_user_info(self, user_id: str) -> dict[str, str] | None:
        """Get user information by Twitch user ID."""
        return await self._fetch_user(params={"id": user_id})

    async def _fetch_user(
        self, *, params: dict[str, str] | None, token: str | None = None
    ) -> dict[str, str] | None:
        """Internal: fetch a single user from Twitch Helix API."""
        try:
            response = await self._helix_get("users", params, token=token)
            if not response or response.status_code != 200:
                logger.error(f"Failed to fetch user: params={params}")
                return None

            users = response.json().get("data", [])
            if not users:
                logger.warning(f"No user found for params: {params}")
                return None

            user = users[0]
            return {
                "id": user.get("id"),
                "login": user.get("login"),
                "display_name": user.get("display_name") or user.get("login"),
                "avatar_url": user.get("profile_image_url") or "",
            }

        except Exception as e:
            logger.exception(f"Error fetching user info: {e}")
            return None

    # ------------------------------------------------------------------
    # Channel Points
    # ------------------------------------------------------------------

    async def get_custom_rewards(self, broadcaster_id: str, access_token: str) -> list[dict]:
        """Get custom channel point rewards (requires user token)."""
        try:
            response = await self._helix_get(
                "channel_points/custom_rewards",
                {"broadcaster_id": broadcaster_id, "only_manageable_rewards": "false"},
                token=access_token,
            )
            if not response or response.status_code != 200:
                logger.error(f"Failed to fetch custom rewards: broadcaster={broadcaster_id}")
                return []

            return [
                {
                    "id": r["id"],
                    "title": r["title"],
                    "cost": r["cost"],
                    "is_enabled": r.get("is_enabled", True),
                }
                for r in response.json().get("data", [])
            ]

        except Exception as e:
            logger.exception(f"Error getting custom rewards: {e}")
            return []

    # ------------------------------------------------------------------
    # EventSub subscriptions
    # ------------------------------------------------------------------

    async def list_eventsub_subscriptions(
        self, access_token: str, sub_type: str = REDEMPTION_ADD_TYPE
    ) -> list[dict]:
        """All subscriptions of *sub_type* visible to the token, across pages.

        Raises SubscriptionError when Twitch refuses the listing.
        """
        subscriptions: list[dict] = []
        cursor: str | None = None
        for _ in range(_MAX_SUBSCRIPTION_PAGES):
            params = {"type": sub_type}
            if cursor:
                params["after"] = cursor
            response = await self._helix_get("eventsub/subscriptions", params, token=access_token)
            if response is None:
                raise SubscriptionError("listing subscriptions failed: no response")
            if response.status_code != 200:
                raise SubscriptionError(
                    f"listing subscriptions failed: HTTP {response.status_code}",
                    status=response.status_code,
                )

            body = response.json()
            subscriptions.extend(cast(list[dict], body.get("data", [])))
            cursor = (body.get("pagination") or {}).get("cursor")
            if not cursor:
                break
        else:
            logger.warning(f"Stopped listing subscriptions after {_MAX_SUBSCRIPTION_PAGES} pages")

        return subscriptions

    async def create_redemption_subscription(
        self,
        access_token: str,
        *,
        broadcaster_id: str,
        reward_id: str,
        session_id: str,
    ) -> dict:
        """Subscribe *session_id* to redemptions of one reward.

        Raises SubscriptionError on rejection (missing scope, bad session).
        """
        payload = {
            "type": REDEMPTION_ADD_TYPE,
            "version": REDEMPTION_ADD_VERSION,
            "condition": {"broadcaster_user_id": broadcaster_id, "reward_id": reward_id},
            "transport": {"method": "websocket", "session_id": session_id},
        }
        try:
            response = await self._http.post(
                f"{HELIX_BASE}/eventsub/subscriptions",
                json=payload,
                headers=self._headers(access_token),
            )
        except httpx.HTTPError as e:
            raise SubscriptionError(f"subscribe reward={reward_id} failed: {e}") from e

        if response.status_code not in (200, 202):
            raise SubscriptionError(
                f"subscribe reward={reward_id} failed: HTTP {response.status_code} {response.text}",
                status=response.status_code,
            )

        data = response.json().get("data", [])
        return cast(dict, data[0]) if data else {}

    async def delete_eventsub_subscription(self, access_token: str, subscription_id: str) -> None:
        """Delete one subscription. A 404 means it is already gone.

        Raises SubscriptionError for any other failure, with ``status`` set.
        """
        try:
            response = await self._http.delete(
                f"{HELIX_BASE}/eventsub/subscriptions",
                params={"id": subscription_id},
                headers=self._headers(access_token),
            )
        except httpx.HTTPError as e:
            raise SubscriptionError(f"delete subscription {subscription_id} failed: {e}") from e

        if response.status_code in (204, 404):
            return
        raise SubscriptionError(
            f"delete subscription {subscription_id} failed: HTTP {response.status_code}",
            status=response.status_code,
        )

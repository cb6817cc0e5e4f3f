"""EventSub WebSocket feed: connection state machine with reconnect backoff."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Iterable
from enum import StrEnum

import aiohttp

from fairqueue.core.errors import FairQueueError, ReconnectExhausted, StoreError
from fairqueue.eventsub.messages import (
    NOTIFICATION,
    REVOCATION,
    SESSION_KEEPALIVE,
    SESSION_RECONNECT,
    SESSION_WELCOME,
    EventSubMessage,
    MalformedMessage,
    SessionInfo,
    parse_message,
    parse_session,
)
from fairqueue.eventsub.subscriptions import ensure_subscriptions, reap_stale_subscriptions
from fairqueue.services.broadcaster import resolve_broadcaster_id
from fairqueue.services.credential_store import CredentialStore
from fairqueue.services.queue_engine import QueueEngine
from fairqueue.services.twitch_api import TwitchAPIClient
from fairqueue.shared.models.credential import NeedsLogin
from fairqueue.shared.repositories.kv import KeyValueRepository

LOGGER = logging.getLogger("EventSub")

# Twitch's default when the welcome omits keepalive_timeout_seconds.
_DEFAULT_KEEPALIVE_SECS = 10
_KEEPALIVE_GRACE_SECS = 10
_WELCOME_TIMEOUT_SECS = 30


class _BroadcasterChanged(Exception):
    """The stored broadcaster no longer matches the live session."""


class FeedState(StrEnum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    SUBSCRIBING = "subscribing"
    LIVE = "live"


def reconnect_delay(attempt: int, base: float, maximum: float) -> float:
    """Delay before reconnect attempt *attempt* (1-based): exponential, capped."""
    if attempt < 1:
        return 0.0
    return min(base * 2 ** (attempt - 1), maximum)


def receive_timeout(session: SessionInfo) -> float:
    """Silence longer than this means the session is dead."""
    return float((session.keepalive_timeout_seconds or _DEFAULT_KEEPALIVE_SECS) + _KEEPALIVE_GRACE_SECS)


class EventSubListener:
    """Keeps one EventSub WebSocket session alive and feeds the queue engine.

    Waits in ``DISCONNECTED`` while no reward ids are configured or the
    credential store needs a login. Every dropped session is followed by a
    backoff; a session that reaches ``LIVE`` resets the failure count.
    """

    def __init__(
        self,
        engine: QueueEngine,
        credentials: CredentialStore,
        twitch_api: TwitchAPIClient,
        kv: KeyValueRepository,
        *,
        reward_ids: Iterable[str],
        ws_url: str,
        base_delay: float = 2.0,
        max_delay: float = 60.0,
        alert_after: int = 5,
        idle_poll_secs: float = 10.0,
        session_factory: Callable[[], aiohttp.ClientSession] = aiohttp.ClientSession,
    ) -> None:
        self.engine = engine
        self.credentials = credentials
        self.twitch_api = twitch_api
        self.kv = kv
        self.reward_ids = list(reward_ids)
        self.ws_url = ws_url
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.alert_after = alert_after
        self.idle_poll_secs = idle_poll_secs
        self._session_factory = session_factory

        self.state = FeedState.DISCONNECTED
        self.alert: str | None = None
        self.consecutive_failures = 0
        self.session_id: str | None = None
        self.broadcaster_id: str | None = None

    def _set_state(self, state: FeedState) -> None:
        if state != self.state:
            LOGGER.debug(f"Feed state {self.state} -> {state}")
            self.state = state

    def _mark_live(self) -> None:
        self._set_state(FeedState.LIVE)
        if self.alert:
            LOGGER.info("EventSub feed recovered")
        self.consecutive_failures = 0
        self.alert = None

    def _record_failure(self) -> float:
        """Count a failed session and return how long to wait before the next one."""
        self.consecutive_failures += 1
        if self.consecutive_failures >= self.alert_after:
            alert = ReconnectExhausted(self.consecutive_failures)
            self.alert = str(alert)
            LOGGER.error(str(alert))
        return reconnect_delay(self.consecutive_failures, self.base_delay, self.max_delay)

    # ==================== Main loop ====================

    async def run(self) -> None:
        if not self.reward_ids:
            LOGGER.info("No reward ids configured, EventSub feed stays disconnected")
            return

        async with self._session_factory() as http:
            while True:
                try:
                    credential = await self.credentials.refresh_if_needed()
                    if isinstance(credential, NeedsLogin):
                        self._set_state(FeedState.DISCONNECTED)
                        LOGGER.debug(f"Feed waiting for login: {credential.reason}")
                        await asyncio.sleep(self.idle_poll_secs)
                        continue

                    broadcaster_id = await resolve_broadcaster_id(
                        self.kv, self.twitch_api, credential.access_token
                    )
                    if not broadcaster_id:
                        delay = self._record_failure()
                        await asyncio.sleep(delay)
                        continue
                    self.broadcaster_id = broadcaster_id

                    await self._run_session(http, broadcaster_id)
                    LOGGER.warning("EventSub session ended")
                except asyncio.CancelledError:
                    raise
                except _BroadcasterChanged:
                    LOGGER.info("Broadcaster changed, restarting EventSub session")
                    continue
                except Exception as e:
                    LOGGER.error(f"EventSub session failed: {type(e).__name__}: {e}")
                finally:
                    self.session_id = None
                    self._set_state(FeedState.DISCONNECTED)

                delay = self._record_failure()
                LOGGER.info(f"Reconnecting EventSub in {delay:.0f}s (attempt {self.consecutive_failures})")
                await asyncio.sleep(delay)

    async def _run_session(self, http: aiohttp.ClientSession, broadcaster_id: str) -> None:
        """Connect, subscribe and read until the socket drops."""
        self._set_state(FeedState.CONNECTING)
        ws = await http.ws_connect(self.ws_url)
        try:
            session = await self._expect_welcome(ws)
            self.session_id = session.id
            LOGGER.info(f"EventSub session {session.id} opened")

            self._set_state(FeedState.SUBSCRIBING)
            access_token = await self.credentials.access_token()
            await ensure_subscriptions(
                self.twitch_api,
                access_token,
                broadcaster_id=broadcaster_id,
                reward_ids=self.reward_ids,
                session_id=session.id,
            )
            self._mark_live()
            await reap_stale_subscriptions(
                self.twitch_api, access_token, broadcaster_id=broadcaster_id
            )

            timeout = receive_timeout(session)
            while True:
                message = await self._receive(ws, timeout)
                if await self._broadcaster_changed(broadcaster_id):
                    raise _BroadcasterChanged(broadcaster_id)
                if message.message_type == SESSION_RECONNECT:
                    ws, timeout = await self._migrate(http, ws, message)
                    continue
                await self._dispatch(message)
        finally:
            await ws.close()
            self._set_state(FeedState.DISCONNECTED)

    async def _migrate(
        self,
        http: aiohttp.ClientSession,
        old_ws: aiohttp.ClientWebSocketResponse,
        message: EventSubMessage,
    ) -> tuple[aiohttp.ClientWebSocketResponse, float]:
        """Follow a session_reconnect. Subscriptions move with the session."""
        reconnect_url = parse_session(message).reconnect_url
        if not reconnect_url:
            raise MalformedMessage("session_reconnect without reconnect_url")

        LOGGER.info("EventSub asked to reconnect, migrating session")
        new_ws = await http.ws_connect(reconnect_url)
        try:
            session = await self._expect_welcome(new_ws)
        except BaseException:
            await new_ws.close()
            raise
        await old_ws.close()
        self.session_id = session.id
        return new_ws, receive_timeout(session)

    async def _expect_welcome(self, ws: aiohttp.ClientWebSocketResponse) -> SessionInfo:
        message = await self._receive(ws, _WELCOME_TIMEOUT_SECS)
        if message.message_type != SESSION_WELCOME:
            raise ConnectionError(f"expected session_welcome, got {message.message_type}")
        return parse_session(message)

    async def _receive(self, ws: aiohttp.ClientWebSocketResponse, timeout: float) -> EventSubMessage:
        """Next EventSub frame. Raises TimeoutError on silence, ConnectionError on close."""
        while True:
            msg = await ws.receive(timeout=timeout)
            if msg.type == aiohttp.WSMsgType.TEXT:
                try:
                    return parse_message(msg.data)
                except MalformedMessage as e:
                    LOGGER.warning(f"Skipped malformed EventSub frame: {e}")
                    continue
            if msg.type in (
                aiohttp.WSMsgType.CLOSE,
                aiohttp.WSMsgType.CLOSING,
                aiohttp.WSMsgType.CLOSED,
                aiohttp.WSMsgType.ERROR,
            ):
                raise ConnectionError(f"EventSub socket closed ({msg.type.name}, code={ws.close_code})")

    async def _broadcaster_changed(self, broadcaster_id: str) -> bool:
        """True once a new login replaced or cleared the stored broadcaster."""
        try:
            current, _ = await self.kv.get_broadcaster()
        except StoreError as e:
            LOGGER.debug(f"Broadcaster check skipped: {e}")
            return False
        return current != broadcaster_id

    async def _dispatch(self, message: EventSubMessage) -> None:
        if message.message_type == SESSION_KEEPALIVE:
            return
        if message.message_type == NOTIFICATION:
            try:
                outcome = await self.engine.handle_notification(message)
                LOGGER.debug(f"Notification {message.message_id}: {outcome}")
            except MalformedMessage as e:
                LOGGER.warning(f"Dropped malformed notification {message.message_id}: {e}")
            except FairQueueError as e:
                LOGGER.error(f"Notification {message.message_id} failed: {e}")
            return
        if message.message_type == REVOCATION:
            sub = message.payload.get("subscription") or {}
            LOGGER.warning(
                f"Subscription {sub.get('id')} revoked ({sub.get('status')}), "
                "it will be recreated with the next session"
            )
            return
        LOGGER.debug(f"Ignoring {message.message_type} message")

    # ==================== Maintenance hook ====================

    async def reap_stale(self) -> int:
        """Remove stale subscriptions while live; no-op otherwise."""
        if self.state != FeedState.LIVE or not self.broadcaster_id:
            return 0
        access_token = await self.credentials.access_token()
        return await reap_stale_subscriptions(
            self.twitch_api, access_token, broadcaster_id=self.broadcaster_id
        )

"""One-shot OAuth ``state`` values for the authorization-code flow."""

from __future__ import annotations

import secrets

from cachetools import TTLCache  # type: ignore[import-untyped]

# Ten minutes is plenty for a human to click through the Twitch consent page.
_STATE_TTL_SECS = 600


class OAuthStateStore:
    """Issues random states and accepts each one exactly once before it expires."""

    def __init__(self, ttl_secs: float = _STATE_TTL_SECS, maxsize: int = 64) -> None:
        self._states: TTLCache = TTLCache(maxsize=maxsize, ttl=ttl_secs)

    def issue(self) -> str:
        state = secrets.token_urlsafe(32)
        self._states[state] = True
        return state

    def consume(self, state: str | None) -> bool:
        if not state:
            return False
        return self._states.pop(state, None) is not None

"""Data models for the oauth_credentials table."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta


@dataclass
class Credential:
    """The broadcaster's OAuth token pair. Exactly one exists at a time."""

    access_token: str
    refresh_token: str
    expires_at: datetime

    def expires_within(self, now: datetime, margin: timedelta) -> bool:
        return self.expires_at <= now + margin

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at <= now


@dataclass
class NeedsLogin:
    """No usable credential; an operator has to go through /auth/start."""

    reason: str = "not authenticated"

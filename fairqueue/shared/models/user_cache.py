"""Data model for the user_cache table."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime


@dataclass
class UserProfile:
    """Twitch profile as cached locally."""

    user_id: str
    login: str
    display_name: str
    avatar_url: str
    updated_at: datetime

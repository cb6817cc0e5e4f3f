"""Application configuration using Pydantic Settings"""

import logging
from functools import lru_cache
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)

PACKAGE_DIR = Path(__file__).parent.parent
PROJECT_DIR = PACKAGE_DIR.parent

EVENTSUB_WS_URL = "wss://eventsub.wss.twitch.tv/ws"
REDEMPTION_ADD_TYPE = "channel.channel_points_custom_reward_redemption.add"
REDEMPTION_ADD_VERSION = "1"

# Only redemptions are read; nothing is written back to the channel.
BROADCASTER_SCOPES = [
    "channel:read:redemptions",
]


class Settings(BaseSettings):
    """Application settings with environment variable support"""

    model_config = SettingsConfigDict(
        env_file=PROJECT_DIR / ".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Twitch OAuth
    client_id: str = Field(..., description="Twitch OAuth Client ID")
    client_secret: str = Field(..., description="Twitch OAuth Client Secret")
    redirect_url: str = Field(
        default="http://localhost:3000/auth/callback",
        description="OAuth redirect URI, must match the one registered with Twitch",
    )

    # Database
    database_url: str = Field(..., description="PostgreSQL database URL")
    database_ssl: str = Field(default="prefer", description="asyncpg ssl mode")

    # Rewards
    target_reward_ids: str = Field(
        default="", description="Comma-separated reward ids that add the redeemer to the queue"
    )
    cancel_reward_id: str = Field(
        default="", description="Reward id that removes the redeemer without recording participation"
    )

    # Queue
    participation_window_secs: int = Field(
        default=24 * 60 * 60, ge=0, description="Fairness lookback window, 0 disables the bias"
    )
    processed_message_ttl_secs: int = Field(
        default=24 * 60 * 60, ge=0, description="How long EventSub message ids are remembered"
    )
    user_cache_ttl_secs: int = Field(
        default=24 * 60 * 60, ge=0, description="Profile cache lifetime, 0 always fetches"
    )
    serve_stale_profiles: bool = Field(
        default=True, description="Serve an expired cached profile when Helix is unavailable"
    )

    # Background maintenance
    token_refresh_margin_secs: int = Field(default=300, ge=0)
    maintenance_interval_secs: int = Field(default=60, ge=1)

    # EventSub
    eventsub_ws_url: str = Field(default=EVENTSUB_WS_URL)
    reconnect_base_delay_secs: float = Field(default=2.0, gt=0)
    reconnect_max_delay_secs: float = Field(default=60.0, gt=0)
    reconnect_alert_after: int = Field(default=5, ge=1)

    # Server Configuration
    host: str = Field(default="127.0.0.1", description="Server host")
    port: int = Field(default=3000, description="Server port")

    # Environment
    environment: str = Field(default="development", description="Environment name")
    log_level: str = Field(default="INFO", description="Logging level")

    @field_validator("database_url")
    @classmethod
    def validate_database_url(cls, v: str) -> str:
        """Validate database URL starts with postgresql://"""
        if not v.startswith(("postgresql://", "postgres://")):
            raise ValueError("DATABASE_URL must start with 'postgresql://'")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level is a valid logging level"""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        v_upper = v.upper()
        if v_upper not in valid_levels:
            logger.warning(f"Invalid log level '{v}', defaulting to INFO")
            return "INFO"
        return v_upper

    @field_validator("cancel_reward_id")
    @classmethod
    def strip_cancel_reward_id(cls, v: str) -> str:
        return v.strip()

    @property
    def reward_ids(self) -> list[str]:
        """Target reward ids, blanks and duplicates removed, order kept."""
        seen: list[str] = []
        for part in self.target_reward_ids.split(","):
            part = part.strip()
            if part and part not in seen:
                seen.append(part)
        return seen

    @property
    def subscribed_reward_ids(self) -> list[str]:
        """Every reward id the feed must be subscribed to.

        Empty when no target rewards are configured; the cancel reward is never
        subscribed on its own.
        """
        ids = list(self.reward_ids)
        if not ids:
            return []
        if self.cancel_reward_id and self.cancel_reward_id not in ids:
            ids.append(self.cancel_reward_id)
        return ids

    @property
    def is_development(self) -> bool:
        """Check if running in development environment"""
        return self.environment.lower() == "development"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()  # type: ignore[call-arg]

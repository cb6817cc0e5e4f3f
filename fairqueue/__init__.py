"""Fair channel point redemption queue fed by Twitch EventSub."""

__version__ = "1.0.0"

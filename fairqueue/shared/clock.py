"""Wall-clock helper; services take it as an injectable callable."""

from datetime import UTC, datetime


def utc_now() -> datetime:
    return datetime.now(UTC)

"""Fairness rules shared by the SQL store and its in-memory test double."""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime, timedelta


def window_start(now: datetime, window_secs: int) -> datetime | None:
    """Earliest ``completed_at`` that still counts as recent.

    The window is closed on both ends: a completion at exactly
    ``now - window`` counts. Returns None when the bias is disabled.
    """
    if window_secs <= 0:
        return None
    return now - timedelta(seconds=window_secs)


def fair_insert_index(counts: Sequence[int], my_count: int) -> int:
    """Where a newcomer with *my_count* recent completions goes.

    *counts* are the recent counts of the active items in position order.
    The newcomer lands right before the first item with strictly more recent
    completions, which keeps ties FIFO by arrival.
    """
    for idx, count in enumerate(counts):
        if count > my_count:
            return idx
    return len(counts)

"""Retention window arithmetic for daily indices."""
from __future__ import annotations

from datetime import date, timedelta
from typing import AbstractSet, FrozenSet

INDEX_DATE_FORMAT = "%Y.%m.%d"


def index_name_for(prefix: str, day: date) -> str:
    """``logs`` + 2024-01-02 -> ``logs-2024.01.02``."""
    return f"{prefix}-{day.strftime(INDEX_DATE_FORMAT)}"


def compute_kept_set(prefix: str, retain_days: int, today: date) -> FrozenSet[str]:
    """
    Names of the daily indices that must survive a purge.

    Returns exactly ``retain_days`` names: ``today`` and the
    ``retain_days - 1`` calendar days before it. Never contains a future date.
    """
    if retain_days < 1:
        raise ValueError(f"retain_days must be >= 1, got {retain_days}")
    one_day = timedelta(days=1)
    return frozenset(index_name_for(prefix, today - one_day * i) for i in range(retain_days))


def diff_indices(live: AbstractSet[str], kept: AbstractSet[str]) -> FrozenSet[str]:
    """Indices present in the cluster but outside the kept window."""
    return frozenset(live) - frozenset(kept)


__all__ = ["INDEX_DATE_FORMAT", "compute_kept_set", "diff_indices", "index_name_for"]

"""
Velocity -- percentage usage growth, the ranking signal for sounds.

velocity = (last - first) / first * 100, rounded to a whole percent.
A series with fewer than two samples, or one that starts at zero,
has velocity 0.
"""

from typing import Optional, Sequence

import config


def compute_velocity(samples: Sequence[float]) -> int:
    """Percentage change between the oldest and newest sample."""
    if samples is None or len(samples) < 2:
        return 0

    first = samples[0] or 0
    last = samples[-1] or 0

    # No baseline to grow from
    if first <= 0:
        return 0

    return int(round((last - first) / first * 100))


def snapshot_velocity(previous_uses: Optional[int], current_uses: int) -> Optional[int]:
    """Velocity between two consecutive snapshots.

    Returns None when there is no previous snapshot to compare with.
    """
    if previous_uses is None:
        return None
    return compute_velocity([previous_uses, current_uses])


def estimate_uses_from_rank(rank: Optional[int], base: Optional[int] = None) -> int:
    """Rough use count for a ranked sound (top ranks see 10K-100K+ uses)."""
    base = base if base is not None else config.USES_ESTIMATE_BASE
    return int(round(base / max(rank or 1, 1)))

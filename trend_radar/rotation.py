"""
Rotation / Cache Policy -- decides which regions to re-scrape.

Each request looks at a small, hour-of-day rotated window of regions and
only re-fetches the ones whose last successful fetch is older than the
TTL. Over one TTL window this works out to roughly one full rotation of
regions, which keeps the scraper within the page's rate limits.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional, Sequence

import config

logger = logging.getLogger(__name__)

NEVER_FETCHED = "never-fetched"
FRESH = "fresh"
STALE = "stale"


def select_rotation_regions(regions: Sequence[str], hour: int,
                            count: int = 3, offset: int = 0) -> List[str]:
    """
    Pick ``count`` consecutive regions starting at (hour + offset) mod N.

    For N regions and hour H (offset 0) this is
    [H mod N, (H+1) mod N, (H+2) mod N].
    """
    n = len(regions)
    if n == 0 or count <= 0:
        return []

    start = (hour + offset) % n
    return [regions[(start + i) % n] for i in range(min(count, n))]


class RegionFetchCache:
    """
    Process-lifetime "last fetched at" map per region.

    Construct one per process and hand it to the orchestrator; tests build
    their own isolated instances. Not synchronized: assumes a single
    application instance.
    """

    def __init__(self, ttl_hours: Optional[float] = None):
        self.ttl = timedelta(hours=ttl_hours if ttl_hours is not None
                             else config.CACHE_TTL_HOURS)
        self._last_fetch: Dict[str, datetime] = {}

    def state(self, region: str, now: Optional[datetime] = None) -> str:
        last = self._last_fetch.get(region)
        if last is None:
            return NEVER_FETCHED

        now = now or datetime.now(timezone.utc)
        if now - last > self.ttl:
            return STALE
        return FRESH

    def should_fetch(self, region: str, now: Optional[datetime] = None) -> bool:
        return self.state(region, now) != FRESH

    def mark_fetched(self, region: str, now: Optional[datetime] = None) -> None:
        self._last_fetch[region] = now or datetime.now(timezone.utc)

    def last_fetched(self, region: str) -> Optional[datetime]:
        return self._last_fetch.get(region)

    def as_dict(self, now: Optional[datetime] = None) -> Dict[str, Dict]:
        """Current state of every region seen so far (for status output)."""
        return {
            region: {
                "last_fetched": last.isoformat(),
                "state": self.state(region, now),
            }
            for region, last in self._last_fetch.items()
        }

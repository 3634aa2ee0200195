"""
Trend Radar Collector -- the trending-sound ingestion pipeline.

scrape -> parse -> snapshot -> velocity, driven by the rotation/cache
policy. Regions are fetched one at a time with a fixed delay between
requests. A failure in one region is logged and skipped; it never stops
the remaining regions.
"""

import logging
import sqlite3
import time
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional, Sequence

import config
from collectors import BaseSoundCollector, TrendingSound
from collectors.creative_center import create_creative_center_collector
from trend_radar.rotation import RegionFetchCache, select_rotation_regions
from trend_radar.scorer import TrendRadarScorer
from trend_radar.store import SoundStore, utc_now_iso

logger = logging.getLogger(__name__)


class TrendRadarCollector:
    """
    Orchestrates scraping and storage of trending sounds.

    Built once per process; the fetch cache lives as long as this object
    and starts out seeded from the snapshots already in the database.
    """

    def __init__(self, collector: Optional[BaseSoundCollector] = None,
                 store: Optional[SoundStore] = None,
                 fetch_cache: Optional[RegionFetchCache] = None,
                 regions: Optional[Sequence[str]] = None,
                 request_delay: Optional[float] = None,
                 clock: Optional[Callable[[], datetime]] = None,
                 sleep: Optional[Callable[[float], None]] = None,
                 db_path=None):
        self.collector = collector or create_creative_center_collector()
        self.store = store or SoundStore(db_path)
        self.scorer = TrendRadarScorer(store=self.store)
        self.fetch_cache = fetch_cache or RegionFetchCache()
        self.regions = list(regions or config.COUNTRIES)
        self.request_delay = (
            request_delay if request_delay is not None
            else config.REQUEST_DELAY_SECONDS
        )
        self.clock = clock or (lambda: datetime.now(timezone.utc))
        self.sleep = sleep or time.sleep

        self.seed_fetch_cache()

    def seed_fetch_cache(self) -> int:
        """
        Mark regions fetched at their newest stored snapshot, so a fresh
        process does not re-scrape regions another process just scraped.

        Returns the number of regions seeded.
        """
        try:
            captures = self.store.last_capture_per_region()
        except sqlite3.Error as e:
            logger.warning(f"Trend Radar: could not seed fetch cache: {e}")
            return 0

        seeded = 0
        for region, captured_at in captures.items():
            previous = self.fetch_cache.last_fetched(region)
            if previous is None or captured_at > previous:
                self.fetch_cache.mark_fetched(region, captured_at)
                seeded += 1
        return seeded

    def fetch_trending_sounds(self, force_refresh: bool = False,
                              limit: Optional[int] = None) -> List[Dict]:
        """Run one rotation step, then return the ranked sound list."""
        self.run_rotation(force_refresh=force_refresh)
        return self.scorer.get_trending(limit=limit)

    def run_rotation(self, force_refresh: bool = False) -> Dict:
        """
        Fetch the regions in this hour's rotation window that need it.

        Returns:
            {
                "regions": [...],       # rotation window
                "fetched": [...],       # returned data and were stored
                "skipped": [...],       # still fresh
                "failed": [...],        # error or no data
                "sounds_stored": int,
            }
        """
        now = self.clock()
        window = select_rotation_regions(
            self.regions, now.hour,
            count=config.REGIONS_PER_CYCLE,
            offset=config.ROTATION_OFFSET,
        )

        result = {
            "regions": window,
            "fetched": [],
            "skipped": [],
            "failed": [],
            "sounds_stored": 0,
        }

        to_fetch = []
        for region in window:
            if force_refresh or self.fetch_cache.should_fetch(region, now):
                to_fetch.append(region)
            else:
                result["skipped"].append(region)

        if to_fetch:
            logger.info(
                f"Trend Radar: fetching {', '.join(to_fetch)}"
                f"{' (forced)' if force_refresh else ''}"
            )

        for i, region in enumerate(to_fetch):
            if i > 0:
                self.sleep(self.request_delay)

            stored = self._collect_region(region, now)
            if stored is None:
                result["failed"].append(region)
            else:
                result["fetched"].append(region)
                result["sounds_stored"] += stored

        return result

    def refresh_all_regions(self, delay: Optional[float] = None) -> int:
        """
        Scrape every configured region (scheduled full refresh).

        Returns the number of sounds found across all regions.
        """
        delay = delay if delay is not None else config.FULL_REFRESH_DELAY_SECONDS
        total = 0

        for i, region in enumerate(self.regions):
            if i > 0:
                self.sleep(delay)

            stored = self._collect_region(region, self.clock())
            if stored:
                total += stored

        logger.info(
            f"Trend Radar: full refresh found {total} sounds "
            f"across {len(self.regions)} regions"
        )
        return total

    def store_sounds(self, sounds: List[TrendingSound],
                     region: Optional[str] = None,
                     captured_at: Optional[str] = None) -> int:
        """Persist scraped sounds; a failing sound is logged and skipped."""
        captured_at = captured_at or utc_now_iso()
        stored = 0

        for sound in sounds:
            # snapshot region is the region that was scraped
            if region:
                sound.country_code = region
            try:
                self.store.ingest_trending_sound(sound, captured_at=captured_at)
                stored += 1
            except Exception as e:
                logger.error(f"Error storing sound {sound.clip_id}: {e}")

        return stored

    def _collect_region(self, region: str, now: datetime) -> Optional[int]:
        """
        Fetch and store one region.

        Returns the number of sounds stored, or None when the region
        produced nothing (network error, parse miss or empty list). Only
        successful regions are marked as fetched.
        """
        try:
            sounds = self.collector.collect_sounds(region)
        except Exception as e:
            logger.error(f"  Trend Radar {region}: collection failed: {e}")
            return None

        if not sounds:
            logger.warning(f"  Trend Radar {region}: no sounds this round")
            return None

        stored = self.store_sounds(sounds, region, captured_at=now.isoformat())
        self.fetch_cache.mark_fetched(region, now)
        logger.info(f"  Trend Radar {region}: {stored} sounds snapshot captured")
        return stored

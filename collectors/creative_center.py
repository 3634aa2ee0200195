"""
Creative Center Collector -- scrapes trending sounds from the public
TikTok Creative Center popular-music page.

The page is server-rendered and embeds its data as a __NEXT_DATA__ JSON
blob, which gives a handful of ranked sounds per country without
authentication.
"""

import json
import logging
import re
from dataclasses import dataclass, field
from typing import List, Optional

import requests

import config
from collectors import BaseSoundCollector, TrendingSound, TrendPoint

logger = logging.getLogger(__name__)

NEXT_DATA_PATTERN = re.compile(
    r'<script id="__NEXT_DATA__" type="application/json"[^>]*>(.+?)</script>',
    re.DOTALL,
)

# props -> pageProps -> data -> soundList
SOUND_LIST_PATH = ("props", "pageProps", "data", "soundList")


@dataclass
class PageParseResult:
    """Outcome of decoding a Creative Center page.

    An empty ``sounds`` list with ``error`` set means "no data this round".
    """
    sounds: List[TrendingSound] = field(default_factory=list)
    error: Optional[str] = None


def parse_creative_center_page(html: Optional[str],
                               country_code: Optional[str] = None) -> PageParseResult:
    """Extract the trending sound list from a Creative Center page.

    Never raises: a missing script tag, broken JSON or a missing data path
    all come back as an empty result with the reason in ``error``.
    """
    label = country_code or "page"

    if not html:
        return _no_data(label, "empty response body")

    match = NEXT_DATA_PATTERN.search(html)
    if not match:
        return _no_data(label, "__NEXT_DATA__ script tag not found")

    try:
        payload = json.loads(match.group(1))
    except ValueError as e:
        return _no_data(label, f"invalid __NEXT_DATA__ JSON: {e}")

    node = payload
    for key in SOUND_LIST_PATH:
        if not isinstance(node, dict) or key not in node:
            return _no_data(label, f"missing '{key}' in page data")
        node = node[key]

    if not isinstance(node, list):
        return _no_data(label, "soundList is not a list")

    sounds = []
    for item in node:
        sound = _parse_sound(item, country_code)
        if sound:
            sounds.append(sound)

    logger.info(f"  Creative Center {label}: parsed {len(sounds)} sounds")
    return PageParseResult(sounds=sounds)


def _no_data(label: str, reason: str) -> PageParseResult:
    logger.warning(f"  Creative Center {label}: no data ({reason})")
    return PageParseResult(error=reason)


def _parse_sound(item, country_code: Optional[str]) -> Optional[TrendingSound]:
    """Decode one soundList record; returns None for unusable records."""
    if not isinstance(item, dict):
        return None

    try:
        clip_id = str(item.get("clipId") or "").strip()
        if not clip_id:
            return None

        trend = []
        for point in item.get("trend") or []:
            try:
                trend.append(TrendPoint(
                    time=int(point.get("time", 0)),
                    value=float(point.get("value") or 0),
                ))
            except (AttributeError, TypeError, ValueError):
                continue

        return TrendingSound(
            clip_id=clip_id,
            title=item.get("title") or clip_id,
            author=item.get("author"),
            cover=item.get("cover"),
            link=item.get("link"),
            rank=int(item.get("rank") or 0),
            rank_diff=item.get("rankDiff"),
            rank_diff_type=item.get("rankDiffType"),
            trend=trend,
            duration=item.get("duration"),
            country_code=item.get("countryCode") or country_code,
        )

    except Exception as e:
        logger.error(f"Error parsing Creative Center sound: {e}")
        return None


class CreativeCenterCollector(BaseSoundCollector):
    """Collects trending sounds from the Creative Center music page."""

    HEADERS = {
        "User-Agent": config.USER_AGENT,
        "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,"
                  "image/avif,image/webp,*/*;q=0.8",
        "Accept-Language": "en-US,en;q=0.5",
        "Cache-Control": "no-cache",
    }

    def __init__(self, base_url: Optional[str] = None,
                 session: Optional[requests.Session] = None,
                 timeout: Optional[int] = None):
        self.base_url = base_url or config.CREATIVE_CENTER_URL
        self.session = session or requests.Session()
        self.timeout = timeout or config.REQUEST_TIMEOUT_SECONDS

    def health_check(self) -> bool:
        """Verify the Creative Center page is reachable."""
        try:
            response = self.session.get(
                self.base_url, headers=self.HEADERS, timeout=10,
            )
            return response.status_code == 200
        except Exception:
            return False

    def fetch_page(self, country_code: str) -> Optional[str]:
        """GET the music page for a country. Returns None on any failure."""
        logger.info(f"  Creative Center {country_code}: fetching page...")

        try:
            response = self.session.get(
                self.base_url,
                params={"countryCode": country_code},
                headers=self.HEADERS,
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            logger.error(f"  Creative Center {country_code}: request failed: {e}")
            return None

        if response.status_code != 200:
            logger.error(
                f"  Creative Center {country_code}: HTTP {response.status_code}"
            )
            return None

        return response.text

    def collect_sounds(self, country_code: str) -> List[TrendingSound]:
        html = self.fetch_page(country_code)
        if html is None:
            return []
        return parse_creative_center_page(html, country_code).sounds


def create_creative_center_collector() -> BaseSoundCollector:
    """Create the default trending sound collector."""
    return CreativeCenterCollector()

"""
Trend Radar Scorer -- ranked read path for trending sounds.

Takes the newest snapshot of every tracked sound and orders sounds by
velocity. Velocity beats volume: a sound growing 400% is a better signal
than a huge one that has already peaked.
"""

import logging
from datetime import datetime, timezone
from typing import Dict, List, Optional

import config
from trend_radar.store import SoundStore

logger = logging.getLogger(__name__)


# Shown instead of an empty screen when ingestion has nothing to offer
PLACEHOLDER_SOUNDS = [
    {
        "id": "placeholder-1",
        "name": "Cupid",
        "artist": "FIFTY FIFTY",
        "latestUses": 6600,
        "velocity": 450,
    },
    {
        "id": "placeholder-2",
        "name": "Boy's a Liar Pt. 2",
        "artist": "PinkPantheress & Ice Spice",
        "latestUses": 3840,
        "velocity": 380,
    },
    {
        "id": "placeholder-3",
        "name": "die for you",
        "artist": "The Weeknd & Ariana Grande",
        "latestUses": 8820,
        "velocity": 320,
    },
]


class TrendRadarScorer:
    """
    Ranks tracked sounds by velocity and returns the top N.
    """

    def __init__(self, db_path=None, store: Optional[SoundStore] = None):
        self.store = store or SoundStore(db_path)

    def get_trending(self, limit: Optional[int] = None) -> List[Dict]:
        """
        Latest snapshot per sound, sorted by velocity descending.

        Sounds without snapshots never appear. Equal velocities are ordered
        by latest uses (descending) and then by id.

        Returns list of dicts:
            {id, name, artist, coverUrl, tiktokUrl, latestUses, velocity, capturedAt}
        """
        limit = limit if limit is not None else config.TRENDING_LIMIT

        trending = [
            self._to_payload(row)
            for row in self.store.latest_snapshot_per_sound()
        ]

        trending.sort(key=lambda s: s["id"])
        trending.sort(key=lambda s: (s["velocity"], s["latestUses"]), reverse=True)
        return trending[:limit]

    def get_sound_details(self, sound_id: str, history: int = 10) -> Optional[Dict]:
        """A sound with its most recent snapshots, or None if unknown."""
        sound = self.store.get_sound(sound_id)
        if not sound:
            return None

        snapshots = self.store.get_snapshot_history(sound_id, limit=history)
        return {
            "id": sound["id"],
            "name": sound["name"],
            "artist": sound["artist"],
            "coverUrl": sound["cover_url"],
            "tiktokUrl": sound["tiktok_url"],
            "createdAt": sound["created_at"],
            "snapshots": [
                {
                    "uses": snap["uses"],
                    "velocity": _whole(snap["velocity"]),
                    "region": snap["region"],
                    "capturedAt": snap["captured_at"],
                }
                for snap in snapshots
            ],
        }

    @staticmethod
    def placeholder_sounds() -> List[Dict]:
        now = datetime.now(timezone.utc).isoformat()
        return [
            dict(sound, coverUrl="/placeholder.png",
                 tiktokUrl="https://www.tiktok.com", capturedAt=now)
            for sound in PLACEHOLDER_SOUNDS
        ]

    @staticmethod
    def _to_payload(row: Dict) -> Dict:
        return {
            "id": row["id"],
            "name": row["name"],
            "artist": row["artist"],
            "coverUrl": row["cover_url"],
            "tiktokUrl": row["tiktok_url"],
            "latestUses": row["uses"],
            "velocity": _whole(row["velocity"]) or 0,
            "capturedAt": row["captured_at"],
        }


def _whole(value) -> Optional[int]:
    """REAL column values back to whole percentages."""
    if value is None:
        return None
    return int(round(value))

"""
Snapshot Store -- sounds and their time-stamped usage snapshots.

Sounds are upserted by their external clip id; every ingestion appends
exactly one snapshot row. Velocity is always computed here from the
sound's own data, never taken from the caller.
"""

import logging
from datetime import datetime, timezone
from typing import Dict, List, Optional

import config
from collectors import TrendingSound
from database_migrations import connect
from trend_radar.velocity import (
    compute_velocity, estimate_uses_from_rank, snapshot_velocity,
)

logger = logging.getLogger(__name__)


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class SoundStore:
    """Reads and writes the sounds / sound_snapshots tables."""

    def __init__(self, db_path=None):
        self.db_path = db_path or config.DB_PATH

    def _get_conn(self):
        return connect(self.db_path)

    # ── Writes ──

    def upsert_sound(self, sound_id: str, name: str, artist: Optional[str] = None,
                     cover_url: Optional[str] = None,
                     tiktok_url: Optional[str] = None) -> bool:
        """
        Insert a sound or refresh its metadata.

        Returns True if the sound was created, False if it already existed.
        """
        if not sound_id:
            raise ValueError("sound_id is required")
        if not name:
            raise ValueError("name is required")

        now = utc_now_iso()
        conn = self._get_conn()
        try:
            existing = conn.execute(
                "SELECT 1 FROM sounds WHERE id = ?", (sound_id,)
            ).fetchone()

            conn.execute("""
                INSERT INTO sounds (id, name, artist, cover_url, tiktok_url,
                                    created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    name = excluded.name,
                    artist = COALESCE(excluded.artist, sounds.artist),
                    cover_url = COALESCE(excluded.cover_url, sounds.cover_url),
                    tiktok_url = COALESCE(excluded.tiktok_url, sounds.tiktok_url),
                    updated_at = excluded.updated_at
            """, (sound_id, name, artist, cover_url, tiktok_url, now, now))
            conn.commit()
            return existing is None
        finally:
            conn.close()

    def add_snapshot(self, sound_id: str, uses: int, velocity: Optional[float] = None,
                     region: Optional[str] = None,
                     captured_at: Optional[str] = None) -> int:
        """Append a usage snapshot. The sound must already exist."""
        conn = self._get_conn()
        try:
            exists = conn.execute(
                "SELECT 1 FROM sounds WHERE id = ?", (sound_id,)
            ).fetchone()
            if not exists:
                raise ValueError(f"Unknown sound '{sound_id}': insert it before snapshotting")

            cursor = conn.execute("""
                INSERT INTO sound_snapshots (sound_id, uses, velocity, region, captured_at)
                VALUES (?, ?, ?, ?, ?)
            """, (sound_id, int(uses), velocity, region, captured_at or utc_now_iso()))
            conn.commit()
            return cursor.lastrowid
        finally:
            conn.close()

    def record_usage(self, sound_id: str, name: str, uses: int,
                     artist: Optional[str] = None, cover_url: Optional[str] = None,
                     tiktok_url: Optional[str] = None,
                     captured_at: Optional[str] = None) -> Dict:
        """
        Upsert a sound and append one snapshot, with velocity measured
        against the sound's previous snapshot.

        Returns:
            {"sound_id": str, "created": bool, "snapshot_id": int,
             "velocity": Optional[int]}
        """
        if uses is None or int(uses) < 0:
            raise ValueError("uses must be a non-negative integer")

        created = self.upsert_sound(sound_id, name, artist, cover_url, tiktok_url)
        previous = None if created else self.get_latest_snapshot(sound_id)
        velocity = snapshot_velocity(
            previous["uses"] if previous else None, int(uses)
        )

        snapshot_id = self.add_snapshot(
            sound_id, int(uses), velocity, captured_at=captured_at,
        )

        return {
            "sound_id": sound_id,
            "created": created,
            "snapshot_id": snapshot_id,
            "velocity": velocity,
        }

    def ingest_trending_sound(self, sound: TrendingSound,
                              captured_at: Optional[str] = None) -> int:
        """Store one scraped sound; returns the new snapshot id."""
        velocity = compute_velocity(sound.trend_values)
        uses = estimate_uses_from_rank(sound.rank)

        self.upsert_sound(
            sound.clip_id, sound.title, sound.author, sound.cover, sound.link,
        )
        return self.add_snapshot(
            sound.clip_id, uses, velocity,
            region=sound.country_code, captured_at=captured_at,
        )

    # ── Reads ──

    def get_sound(self, sound_id: str) -> Optional[Dict]:
        conn = self._get_conn()
        try:
            row = conn.execute(
                "SELECT * FROM sounds WHERE id = ?", (sound_id,)
            ).fetchone()
            return dict(row) if row else None
        finally:
            conn.close()

    def get_latest_snapshot(self, sound_id: str) -> Optional[Dict]:
        history = self.get_snapshot_history(sound_id, limit=1)
        return history[0] if history else None

    def get_snapshot_history(self, sound_id: str, limit: int = 10) -> List[Dict]:
        """Most recent snapshots first."""
        conn = self._get_conn()
        try:
            rows = conn.execute("""
                SELECT id, sound_id, uses, velocity, region, captured_at
                FROM sound_snapshots
                WHERE sound_id = ?
                ORDER BY captured_at DESC, id DESC
                LIMIT ?
            """, (sound_id, limit)).fetchall()
            return [dict(row) for row in rows]
        finally:
            conn.close()

    def latest_snapshot_per_sound(self) -> List[Dict]:
        """
        Join every sound with its newest snapshot.

        Sounds that have no snapshots are not returned.
        """
        conn = self._get_conn()
        try:
            rows = conn.execute("""
                SELECT s.id, s.name, s.artist, s.cover_url, s.tiktok_url,
                       ss.uses, ss.velocity, ss.captured_at
                FROM sounds s
                JOIN sound_snapshots ss ON ss.id = (
                    SELECT id FROM sound_snapshots
                    WHERE sound_id = s.id
                    ORDER BY captured_at DESC, id DESC
                    LIMIT 1
                )
                ORDER BY s.created_at ASC, s.id ASC
            """).fetchall()
            return [dict(row) for row in rows]
        finally:
            conn.close()

    def last_capture_per_region(self) -> Dict[str, datetime]:
        """Newest scraped snapshot time per region (manual posts have no region)."""
        conn = self._get_conn()
        try:
            rows = conn.execute("""
                SELECT region, MAX(captured_at) AS last_captured
                FROM sound_snapshots
                WHERE region IS NOT NULL
                GROUP BY region
            """).fetchall()
        finally:
            conn.close()

        captures = {}
        for row in rows:
            try:
                captured = datetime.fromisoformat(row["last_captured"])
            except (TypeError, ValueError):
                logger.warning(
                    f"Unreadable captured_at for region {row['region']}: "
                    f"{row['last_captured']}"
                )
                continue
            if captured.tzinfo is None:
                captured = captured.replace(tzinfo=timezone.utc)
            captures[row["region"]] = captured
        return captures

    def count_sounds(self) -> int:
        conn = self._get_conn()
        try:
            return conn.execute("SELECT COUNT(*) FROM sounds").fetchone()[0]
        finally:
            conn.close()

    def count_snapshots(self, sound_id: Optional[str] = None) -> int:
        conn = self._get_conn()
        try:
            if sound_id:
                row = conn.execute(
                    "SELECT COUNT(*) FROM sound_snapshots WHERE sound_id = ?",
                    (sound_id,),
                ).fetchone()
            else:
                row = conn.execute("SELECT COUNT(*) FROM sound_snapshots").fetchone()
            return row[0]
        finally:
            conn.close()

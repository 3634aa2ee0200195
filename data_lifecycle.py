"""
Data Lifecycle Management for TrendCatch.

Handles:
1. Bounded snapshot history per sound (newest N kept)
2. Age-based cleanup of the alerts audit log
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Dict, Optional

import config
from database_migrations import connect

logger = logging.getLogger(__name__)


class DataLifecycleManager:
    """Applies the snapshot and alert retention policy."""

    def __init__(self, db_path=None):
        self.db_path = db_path or config.DB_PATH

    def prune_snapshot_history(self, keep_per_sound: Optional[int] = None) -> int:
        """
        Keep only the newest N snapshots of every sound.

        A sound's latest snapshot is never removed, so the ranked read is
        unaffected.

        Returns:
            Number of snapshot rows deleted
        """
        keep = keep_per_sound if keep_per_sound is not None else config.SNAPSHOT_HISTORY_LIMIT
        keep = max(keep, 1)

        conn = connect(self.db_path)
        try:
            result = conn.execute("""
                DELETE FROM sound_snapshots
                WHERE id IN (
                    SELECT id FROM (
                        SELECT id, ROW_NUMBER() OVER (
                            PARTITION BY sound_id
                            ORDER BY captured_at DESC, id DESC
                        ) AS position
                        FROM sound_snapshots
                    )
                    WHERE position > ?
                )
            """, (keep,))
            deleted = result.rowcount
            conn.commit()
        finally:
            conn.close()

        if deleted > 0:
            logger.info(f"Pruned {deleted} snapshots beyond {keep} per sound")
        return deleted

    def cleanup_old_alerts(self, days: Optional[int] = None) -> int:
        """
        Delete alert records older than N days.

        Returns:
            Number of alert rows deleted
        """
        days = days if days is not None else config.ALERT_RETENTION_DAYS
        cutoff = (datetime.now(timezone.utc) - timedelta(days=days)).isoformat()

        conn = connect(self.db_path)
        try:
            result = conn.execute(
                "DELETE FROM alerts WHERE sent_at < ?", (cutoff,)
            )
            deleted = result.rowcount
            conn.commit()
        finally:
            conn.close()

        if deleted > 0:
            logger.info(f"Cleaned up {deleted} alerts older than {days} days")
        return deleted

    def run_retention(self) -> Dict[str, int]:
        """Apply both policies with the configured limits."""
        return {
            "snapshots_deleted": self.prune_snapshot_history(),
            "alerts_deleted": self.cleanup_old_alerts(),
        }

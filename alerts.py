"""
Alert Dispatcher -- tells subscribers about sounds crossing their thresholds.

For each user on a given frequency (realtime, daily, weekly) it picks the
ranked sounds with velocity >= the user's threshold and enough uses. Each
configured channel gets one digest of the sounds it has not delivered to
that user yet. Every delivered sound is written to the alerts table.
"""

import logging
from datetime import datetime, timezone
from typing import Dict, List, Optional, Set

import config
from database_migrations import connect
from notifier import Notifier, format_alert_html, format_alert_text
from trend_radar.scorer import TrendRadarScorer
from user_manager import AlertSettings, User, UserManager

logger = logging.getLogger(__name__)

MAX_SOUNDS_PER_ALERT = 10


class AlertDispatcher:
    """Matches trending sounds against user alert settings and sends alerts."""

    def __init__(self, db_path=None, notifier: Optional[Notifier] = None,
                 scorer: Optional[TrendRadarScorer] = None):
        self.db_path = db_path or config.DB_PATH
        self.notifier = notifier or Notifier()
        self.scorer = scorer or TrendRadarScorer(self.db_path)
        self.users = UserManager(self.db_path)

    def dispatch(self, frequency: str) -> Dict:
        """
        Send alerts to every subscriber with this frequency.

        Returns:
            {"frequency": str, "users_checked": int, "users_alerted": int,
             "alerts_sent": int}
        """
        if frequency not in config.EMAIL_FREQUENCIES:
            raise ValueError(
                f"frequency must be one of {', '.join(config.EMAIL_FREQUENCIES)}"
            )

        subscribers = self.users.list_subscribers(frequency)
        trending = self.scorer.get_trending()

        summary = {
            "frequency": frequency,
            "users_checked": len(subscribers),
            "users_alerted": 0,
            "alerts_sent": 0,
        }

        for user, settings in subscribers:
            try:
                sent = self._alert_user(user, settings, trending)
            except Exception as e:
                logger.error(f"Alert dispatch failed for {user.email}: {e}")
                continue
            if sent:
                summary["users_alerted"] += 1
                summary["alerts_sent"] += sent

        logger.info(
            f"Alerts ({frequency}): {summary['alerts_sent']} sent to "
            f"{summary['users_alerted']}/{summary['users_checked']} users"
        )
        return summary

    def matching_sounds(self, settings: AlertSettings, trending: List[Dict],
                        already_alerted: Set[str]) -> List[Dict]:
        """Sounds over the user's velocity threshold and use floor, not yet sent."""
        matches = [
            sound for sound in trending
            if sound["velocity"] >= settings.velocity_threshold
            and sound["latestUses"] >= settings.min_uses
            and sound["id"] not in already_alerted
        ]
        return matches[:MAX_SOUNDS_PER_ALERT]

    def record_alert(self, user_id: int, sound_id: str, channel: str) -> int:
        conn = connect(self.db_path)
        try:
            cursor = conn.execute("""
                INSERT INTO alerts (user_id, sound_id, type, sent_at)
                VALUES (?, ?, ?, ?)
            """, (user_id, sound_id, channel, datetime.now(timezone.utc).isoformat()))
            conn.commit()
            return cursor.lastrowid
        finally:
            conn.close()

    def alerted_sound_ids(self, user_id: int, channel: Optional[str] = None) -> Set[str]:
        """Sound ids already delivered to this user, on one channel or any."""
        conn = connect(self.db_path)
        try:
            if channel:
                rows = conn.execute(
                    "SELECT DISTINCT sound_id FROM alerts WHERE user_id = ? AND type = ?",
                    (user_id, channel)
                ).fetchall()
            else:
                rows = conn.execute(
                    "SELECT DISTINCT sound_id FROM alerts WHERE user_id = ?",
                    (user_id,)
                ).fetchall()
            return {row["sound_id"] for row in rows}
        finally:
            conn.close()

    def _alert_user(self, user: User, settings: AlertSettings,
                    trending: List[Dict]) -> int:
        channels = ["email"]
        if settings.discord_webhook:
            channels.append("discord")
        if settings.telegram_chat_id:
            channels.append("telegram")

        sent = 0
        for channel in channels:
            # each channel keeps its own history
            sounds = self.matching_sounds(
                settings, trending, self.alerted_sound_ids(user.id, channel)
            )
            if not sounds or not self._send(channel, user, settings, sounds):
                continue
            for sound in sounds:
                self.record_alert(user.id, sound["id"], channel)
                sent += 1
        return sent

    def _send(self, channel: str, user: User, settings: AlertSettings,
              sounds: List[Dict]) -> bool:
        text = format_alert_text(sounds)
        if channel == "discord":
            return self.notifier.send_discord(settings.discord_webhook, text)
        if channel == "telegram":
            return self.notifier.send_telegram(settings.telegram_chat_id, text)

        top = sounds[0]
        subject = f"TrendCatch: {top['name']} is up {top['velocity']}%"
        return self.notifier.send_email(user.email, subject,
                                        format_alert_html(sounds), text)

"""
User Manager -- users and their alert settings.

Users are created lazily on their first magic-link request, together with
a default AlertSettings row.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import List, Optional, Tuple

import config
from database_migrations import connect

logger = logging.getLogger(__name__)


@dataclass
class User:
    """A TrendCatch account."""
    id: int
    email: str
    plan: str = "free"
    created_at: Optional[str] = None


@dataclass
class AlertSettings:
    """Per-user alert preferences."""
    user_id: int
    email_frequency: str = config.DEFAULT_EMAIL_FREQUENCY
    velocity_threshold: int = config.DEFAULT_VELOCITY_THRESHOLD
    min_uses: int = config.DEFAULT_MIN_USES
    discord_webhook: Optional[str] = None
    telegram_chat_id: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "emailFrequency": self.email_frequency,
            "velocityThreshold": self.velocity_threshold,
            "minUses": self.min_uses,
            "discordWebhook": self.discord_webhook,
            "telegramChatId": self.telegram_chat_id,
        }


def normalize_email(email: Optional[str]) -> str:
    """Strip and lower-case an email address; raises ValueError if invalid."""
    email = (email or "").strip().lower()
    if "@" not in email:
        raise ValueError("Valid email required")
    return email


class UserManager:
    """Manages users and their alert settings."""

    # column -> expected type
    SETTINGS_FIELDS = {
        "email_frequency": str,
        "velocity_threshold": int,
        "min_uses": int,
        "discord_webhook": str,
        "telegram_chat_id": str,
    }

    def __init__(self, db_path=None):
        self.db_path = db_path or config.DB_PATH

    def _get_conn(self):
        return connect(self.db_path)

    def get_or_create_user(self, email: str) -> Tuple[User, bool]:
        """
        Return the user for an email, creating it with default settings
        if needed.

        Returns:
            (User, created)
        """
        email = normalize_email(email)
        existing = self.get_user_by_email(email)
        if existing:
            return existing, False

        now = datetime.now(timezone.utc).isoformat()
        conn = self._get_conn()
        try:
            cursor = conn.execute("""
                INSERT INTO users (email, plan, created_at)
                VALUES (?, 'free', ?)
            """, (email, now))
            user_id = cursor.lastrowid

            conn.execute("""
                INSERT INTO alert_settings
                    (user_id, email_frequency, velocity_threshold, min_uses)
                VALUES (?, ?, ?, ?)
            """, (
                user_id,
                config.DEFAULT_EMAIL_FREQUENCY,
                config.DEFAULT_VELOCITY_THRESHOLD,
                config.DEFAULT_MIN_USES,
            ))
            conn.commit()
        finally:
            conn.close()

        logger.info(f"Created user {email} with default alert settings")
        return User(id=user_id, email=email, plan="free", created_at=now), True

    def get_user_by_email(self, email: str) -> Optional[User]:
        conn = self._get_conn()
        try:
            row = conn.execute(
                "SELECT id, email, plan, created_at FROM users WHERE email = ?",
                (email.strip().lower(),)
            ).fetchone()
        finally:
            conn.close()
        return User(**dict(row)) if row else None

    def get_alert_settings(self, user_id: int) -> Optional[AlertSettings]:
        conn = self._get_conn()
        try:
            row = conn.execute("""
                SELECT user_id, email_frequency, velocity_threshold, min_uses,
                       discord_webhook, telegram_chat_id
                FROM alert_settings
                WHERE user_id = ?
            """, (user_id,)).fetchone()
        finally:
            conn.close()
        return AlertSettings(**dict(row)) if row else None

    def update_alert_settings(self, user_id: int, **fields) -> AlertSettings:
        """
        Update a user's alert settings.

        Unknown fields and invalid values raise ValueError.
        """
        updates = {}
        for name, value in fields.items():
            if name not in self.SETTINGS_FIELDS:
                raise ValueError(f"Unknown alert setting '{name}'")

            if self.SETTINGS_FIELDS[name] is int:
                try:
                    value = int(value)
                except (TypeError, ValueError):
                    raise ValueError(f"{name} must be an integer")
                if value < 0:
                    raise ValueError(f"{name} must be non-negative")
            elif value is not None:
                value = str(value).strip() or None

            if name == "email_frequency" and value not in config.EMAIL_FREQUENCIES:
                raise ValueError(
                    f"email_frequency must be one of {', '.join(config.EMAIL_FREQUENCIES)}"
                )
            updates[name] = value

        if self.get_alert_settings(user_id) is None:
            raise ValueError(f"No alert settings for user {user_id}")

        if updates:
            assignments = ", ".join(f"{name} = ?" for name in updates)
            conn = self._get_conn()
            try:
                conn.execute(
                    f"UPDATE alert_settings SET {assignments} WHERE user_id = ?",
                    list(updates.values()) + [user_id],
                )
                conn.commit()
            finally:
                conn.close()

        return self.get_alert_settings(user_id)

    def list_subscribers(self, frequency: str) -> List[Tuple[User, AlertSettings]]:
        """All users whose alert frequency matches."""
        conn = self._get_conn()
        try:
            rows = conn.execute("""
                SELECT u.id, u.email, u.plan, u.created_at,
                       a.email_frequency, a.velocity_threshold, a.min_uses,
                       a.discord_webhook, a.telegram_chat_id
                FROM users u
                JOIN alert_settings a ON a.user_id = u.id
                WHERE a.email_frequency = ?
                ORDER BY u.id
            """, (frequency,)).fetchall()
        finally:
            conn.close()

        subscribers = []
        for row in rows:
            user = User(id=row["id"], email=row["email"], plan=row["plan"],
                        created_at=row["created_at"])
            settings = AlertSettings(
                user_id=row["id"],
                email_frequency=row["email_frequency"],
                velocity_threshold=row["velocity_threshold"],
                min_uses=row["min_uses"],
                discord_webhook=row["discord_webhook"],
                telegram_chat_id=row["telegram_chat_id"],
            )
            subscribers.append((user, settings))
        return subscribers

"""
Database migrations for TrendCatch.

Creates the sound tracking, user/alert and bookkeeping tables.
Safe to run multiple times (idempotent).
"""

import sqlite3
import logging
import config

logger = logging.getLogger(__name__)


SCHEMA = """
    -- Trending sounds (identity is the platform's own clip id)
    CREATE TABLE IF NOT EXISTS sounds (
        id TEXT PRIMARY KEY,
        name TEXT NOT NULL,
        artist TEXT,
        cover_url TEXT,
        tiktok_url TEXT,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    );

    -- Usage observations over time (append-only)
    CREATE TABLE IF NOT EXISTS sound_snapshots (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        sound_id TEXT NOT NULL REFERENCES sounds(id),
        uses INTEGER NOT NULL,
        velocity REAL,  -- % change, NULL when there is no baseline yet
        region TEXT,
        captured_at TEXT NOT NULL
    );

    CREATE TABLE IF NOT EXISTS users (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        email TEXT NOT NULL UNIQUE,
        plan TEXT NOT NULL DEFAULT 'free',  -- free | pro
        created_at TEXT NOT NULL
    );

    CREATE TABLE IF NOT EXISTS alert_settings (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        user_id INTEGER NOT NULL UNIQUE REFERENCES users(id),
        email_frequency TEXT NOT NULL DEFAULT 'daily',  -- realtime | daily | weekly
        velocity_threshold INTEGER NOT NULL DEFAULT 300,
        min_uses INTEGER NOT NULL DEFAULT 200,
        discord_webhook TEXT,
        telegram_chat_id TEXT
    );

    -- Sent alerts (audit log)
    CREATE TABLE IF NOT EXISTS alerts (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        user_id INTEGER NOT NULL REFERENCES users(id),
        sound_id TEXT NOT NULL REFERENCES sounds(id),
        type TEXT NOT NULL,  -- email | discord | telegram
        sent_at TEXT NOT NULL
    );

    -- API credentials (admin-managed)
    CREATE TABLE IF NOT EXISTS api_credentials (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        service TEXT UNIQUE NOT NULL,  -- 'openai', 'telegram'
        api_key TEXT NOT NULL,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    );

    -- General app configuration (key-value store)
    CREATE TABLE IF NOT EXISTS config (
        key TEXT PRIMARY KEY,
        value TEXT
    );

    -- LLM token usage for cost tracking
    CREATE TABLE IF NOT EXISTS token_usage (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        timestamp TEXT NOT NULL,
        model TEXT,
        prompt_tokens INTEGER,
        completion_tokens INTEGER,
        total_tokens INTEGER,
        estimated_cost_usd REAL,
        context TEXT
    );

    CREATE INDEX IF NOT EXISTS idx_snapshots_sound ON sound_snapshots(sound_id);
    CREATE INDEX IF NOT EXISTS idx_snapshots_time ON sound_snapshots(captured_at);
    CREATE INDEX IF NOT EXISTS idx_alerts_user ON alerts(user_id);
"""


def run_migrations(db_path=None):
    """
    Create all TrendCatch tables.
    Safe to call multiple times - only creates tables if they don't exist.
    """
    db_path = db_path or config.DB_PATH
    conn = sqlite3.connect(str(db_path))

    try:
        conn.executescript(SCHEMA)
        conn.commit()
    finally:
        conn.close()

    logger.info(f"Database initialized at {db_path}")


def connect(db_path=None) -> sqlite3.Connection:
    """Open a connection with row access by name and FK enforcement."""
    conn = sqlite3.connect(str(db_path or config.DB_PATH))
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    conn.execute("PRAGMA busy_timeout = 5000")
    return conn

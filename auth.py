"""
Magic-link authentication for TrendCatch.

Login links carry a signed, expiring token (itsdangerous) instead of a
bare encoded email. Verifying a token stores the user in the Flask
session; settings routes require that session.

Operator endpoints (scheduled refresh, alert dispatch) are guarded by an
optional bearer secret instead.
"""

import hmac
import logging
import os
import secrets
import sqlite3
from functools import wraps
from typing import Optional
from urllib.parse import urlencode

from flask import jsonify, session
from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer

import config

logger = logging.getLogger(__name__)

MAGIC_LINK_SALT = "trendcatch-magic-link"


def get_or_create_secret_key(db_path=None) -> str:
    """
    Load the signing key: SECRET_KEY env var, else a key persisted in the
    config table, else an ephemeral one (links die with the process).
    """
    env_key = os.getenv("SECRET_KEY") or config.SECRET_KEY
    if env_key:
        return env_key

    db_path = db_path or config.DB_PATH
    if not db_path or not os.path.exists(str(db_path)):
        return secrets.token_hex(32)

    try:
        conn = sqlite3.connect(str(db_path))
        try:
            row = conn.execute(
                "SELECT value FROM config WHERE key = 'secret_key'"
            ).fetchone()
            if row and row[0]:
                return row[0]

            key = secrets.token_hex(32)
            conn.execute(
                "INSERT OR REPLACE INTO config (key, value) VALUES ('secret_key', ?)",
                (key,)
            )
            conn.commit()
            return key
        finally:
            conn.close()
    except sqlite3.Error as e:
        logger.warning(f"Could not persist secret key, using ephemeral key: {e}")
        return secrets.token_hex(32)


def _serializer(secret_key: str) -> URLSafeTimedSerializer:
    return URLSafeTimedSerializer(secret_key, salt=MAGIC_LINK_SALT)


def generate_magic_token(email: str, secret_key: str) -> str:
    """Signed, timestamped token carrying the user's email."""
    return _serializer(secret_key).dumps({"email": email})


def verify_magic_token(token: str, secret_key: str,
                       max_age_seconds: Optional[int] = None) -> Optional[str]:
    """
    Return the email inside a valid token, or None if the token is
    tampered with or older than max_age_seconds.
    """
    if not token:
        return None

    max_age = max_age_seconds
    if max_age is None:
        max_age = config.MAGIC_LINK_MAX_AGE_MINUTES * 60

    try:
        data = _serializer(secret_key).loads(token, max_age=max_age)
    except SignatureExpired:
        logger.info("Magic link token expired")
        return None
    except BadSignature:
        logger.warning("Magic link token failed signature check")
        return None

    if not isinstance(data, dict):
        return None
    return data.get("email")


def build_magic_link(token: str, base_url: Optional[str] = None) -> str:
    base_url = (base_url or config.APP_URL).rstrip("/")
    return f"{base_url}/auth/verify?{urlencode({'token': token})}"


def magic_link_email_html(link: str) -> str:
    max_age = config.MAGIC_LINK_MAX_AGE_MINUTES
    return f"""
<div style="font-family: -apple-system, sans-serif; max-width: 600px; margin: 0 auto;">
  <h1 style="color: #8b5cf6;">Welcome to TrendCatch</h1>
  <p>Click the button below to log in:</p>
  <a href="{link}" style="display: inline-block; background: #8b5cf6; color: white;
     padding: 12px 24px; text-decoration: none; border-radius: 8px; font-weight: bold;">
    Log In to TrendCatch
  </a>
  <p style="color: #666; font-size: 14px; margin-top: 24px;">
    This link expires in {max_age} minutes.
  </p>
</div>
"""


def check_cron_authorization(auth_header: Optional[str],
                             secret: Optional[str] = None) -> bool:
    """
    Check the Authorization header for operator endpoints.

    When no secret is configured every caller is allowed.
    """
    secret = secret if secret is not None else config.CRON_SECRET
    if not secret:
        return True
    return hmac.compare_digest(auth_header or "", f"Bearer {secret}")


def get_current_user():
    """Get the current logged-in user from session, or None."""
    return session.get("user")


def login_required(f):
    """Decorator that rejects requests without a verified magic-link session."""
    @wraps(f)
    def decorated(*args, **kwargs):
        if not session.get("user"):
            return jsonify({"error": "Login required"}), 401
        return f(*args, **kwargs)
    return decorated

"""
API -- HTTP interface for TrendCatch.

Provides:
  - Ranked trending sounds (with rotation-driven scraping)
  - Manual sound ingestion and per-sound history
  - Scheduled full refresh and alert dispatch (operator secret)
  - Magic-link login and alert settings
  - Transcription and content generation proxies

Usage:
    python main.py serve              # runs on http://localhost:5000
    python main.py serve --port 8080  # custom port
"""

import logging
import time
from datetime import datetime, timezone

from flask import Blueprint, Flask, current_app, jsonify, request, session

import config
from alerts import AlertDispatcher
from auth import (
    build_magic_link, check_cron_authorization, generate_magic_token,
    get_current_user, get_or_create_secret_key, login_required,
    magic_link_email_html, verify_magic_token,
)
from content_generator import ContentGenerator, GenerationError
from database_migrations import run_migrations
from notifier import Notifier
from transcriber import (
    Transcriber, TranscriptionError, YouTubeDownloadError, safe_audio_filename,
)
from trend_radar.collector import TrendRadarCollector
from trend_radar.scorer import TrendRadarScorer
from user_manager import UserManager, normalize_email

logger = logging.getLogger(__name__)

bp = Blueprint("trendcatch", __name__)

# request JSON key -> alert_settings column
SETTINGS_KEYS = {
    "emailFrequency": "email_frequency",
    "velocityThreshold": "velocity_threshold",
    "minUses": "min_uses",
    "discordWebhook": "discord_webhook",
    "telegramChatId": "telegram_chat_id",
}


def create_app(db_path=None, trend_collector=None, notifier=None,
               transcriber=None, content_generator=None):
    """
    Build the Flask app with its long-lived services.

    The trend collector (and its region fetch cache) is created once here
    and shared by every request handled by this app.
    """
    db_path = db_path or config.DB_PATH
    run_migrations(db_path)

    app = Flask(__name__)
    app.secret_key = get_or_create_secret_key(db_path)
    app.config["DB_PATH"] = db_path
    app.config["SHOW_PLACEHOLDER_SOUNDS"] = config.SHOW_PLACEHOLDER_SOUNDS
    app.config["CRON_SECRET"] = config.CRON_SECRET

    notifier = notifier or Notifier()
    trend_collector = trend_collector or TrendRadarCollector(db_path=db_path)
    scorer = trend_collector.scorer

    app.extensions["trendcatch"] = {
        "trend_collector": trend_collector,
        "scorer": scorer,
        "users": UserManager(db_path),
        "notifier": notifier,
        "alerts": AlertDispatcher(db_path, notifier=notifier, scorer=scorer),
        "transcriber": transcriber or Transcriber(),
        "content_generator": content_generator or ContentGenerator(db_path),
    }

    app.register_blueprint(bp)
    return app


def _service(name: str):
    return current_app.extensions["trendcatch"][name]


def _error(message: str, status: int):
    return jsonify({"error": message}), status


def _cron_authorized() -> bool:
    return check_cron_authorization(
        request.headers.get("Authorization"), current_app.config["CRON_SECRET"]
    )


def _parse_uses(value) -> int:
    if isinstance(value, bool) or value is None:
        raise ValueError("uses must be a non-negative integer")
    try:
        uses = int(value)
    except (TypeError, ValueError):
        raise ValueError("uses must be a non-negative integer")
    if uses < 0 or (isinstance(value, float) and value != uses):
        raise ValueError("uses must be a non-negative integer")
    return uses


# ── Trending sounds ──

@bp.route("/sounds")
def get_sounds():
    """Ranked trending sounds; ?refresh=true forces a scrape of this hour's regions."""
    force_refresh = request.args.get("refresh", "").lower() in ("1", "true", "yes")

    try:
        sounds = _service("trend_collector").fetch_trending_sounds(
            force_refresh=force_refresh
        )
    except Exception as e:
        logger.error(f"Error fetching sounds: {e}")
        sounds = []

    if not sounds and current_app.config["SHOW_PLACEHOLDER_SOUNDS"]:
        sounds = TrendRadarScorer.placeholder_sounds()

    return jsonify(sounds)


@bp.route("/sounds", methods=["POST"])
def post_sound():
    """Ingest one usage observation for a sound."""
    data = request.get_json(silent=True) or {}

    sound_id = str(data.get("soundId") or "").strip()
    name = str(data.get("name") or "").strip()
    if not sound_id:
        return _error("soundId is required", 400)
    if not name:
        return _error("name is required", 400)

    try:
        uses = _parse_uses(data.get("uses"))
        result = _service("trend_collector").store.record_usage(
            sound_id, name, uses,
            artist=data.get("artist"),
            cover_url=data.get("coverUrl"),
            tiktok_url=data.get("tiktokUrl"),
        )
    except ValueError as e:
        return _error(str(e), 400)
    except Exception as e:
        logger.error(f"Error storing sound {sound_id}: {e}")
        return _error("Failed to store sound", 500)

    return jsonify({
        "success": True,
        "soundId": sound_id,
        "created": result["created"],
        "snapshotId": result["snapshot_id"],
        "velocity": result["velocity"] or 0,
    })


@bp.route("/sounds/<sound_id>")
def get_sound(sound_id):
    details = _service("scorer").get_sound_details(sound_id)
    if not details:
        return _error("Sound not found", 404)
    return jsonify(details)


@bp.route("/sounds/refresh", methods=["POST"])
def refresh_sounds():
    """Full refresh of every region. Meant for a scheduler (e.g. every 6 hours)."""
    if not _cron_authorized():
        return _error("Unauthorized", 401)

    logger.info("[Refresh] Starting full country refresh...")
    start = time.time()

    try:
        total = _service("trend_collector").refresh_all_regions()
    except Exception as e:
        logger.error(f"[Refresh] Error: {e}")
        return jsonify({"error": "Refresh failed", "details": str(e)}), 500

    alerts_sent = 0
    try:
        alerts_sent = _service("alerts").dispatch("realtime")["alerts_sent"]
    except Exception as e:
        logger.error(f"[Refresh] Realtime alert dispatch failed: {e}")

    duration_ms = int((time.time() - start) * 1000)
    logger.info(f"[Refresh] Completed in {duration_ms}ms, found {total} sounds")

    return jsonify({
        "success": True,
        "soundsFound": total,
        "alertsSent": alerts_sent,
        "durationMs": duration_ms,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    })


@bp.route("/sounds/refresh")
def describe_refresh():
    return jsonify({
        "endpoint": "/sounds/refresh",
        "method": "POST",
        "description": "Triggers a full refresh of trending sounds",
        "note": "Set CRON_SECRET to require a Bearer token",
    })


# ── Auth ──

@bp.route("/auth", methods=["POST"])
def request_magic_link():
    data = request.get_json(silent=True) or {}

    try:
        email = normalize_email(data.get("email"))
    except ValueError as e:
        return _error(str(e), 400)

    try:
        _service("users").get_or_create_user(email)
        token = generate_magic_token(email, current_app.secret_key)
        link = build_magic_link(token, config.APP_URL)

        notifier = _service("notifier")
        if notifier.email_configured:
            notifier.send_email(
                email, "Your magic link to TrendCatch",
                magic_link_email_html(link),
                f"Log in to TrendCatch: {link}",
            )
        else:
            logger.warning("Email not configured; magic link not sent")
    except Exception as e:
        logger.error(f"Auth error: {e}")
        return _error("Authentication failed", 500)

    return jsonify({"success": True})


@bp.route("/auth/verify")
def verify_magic_link():
    email = verify_magic_token(request.args.get("token", ""), current_app.secret_key)
    if not email:
        return _error("Invalid or expired link", 401)

    user, _ = _service("users").get_or_create_user(email)
    session["user"] = {"id": user.id, "email": user.email}
    return jsonify({"success": True, "user": {"id": user.id, "email": user.email,
                                              "plan": user.plan}})


@bp.route("/auth/logout", methods=["POST"])
def logout():
    session.pop("user", None)
    return jsonify({"success": True})


# ── Alerts ──

@bp.route("/alerts/settings")
@login_required
def get_alert_settings():
    settings = _service("users").get_alert_settings(get_current_user()["id"])
    if not settings:
        return _error("Settings not found", 404)
    return jsonify(settings.to_dict())


@bp.route("/alerts/settings", methods=["PUT"])
@login_required
def update_alert_settings():
    data = request.get_json(silent=True) or {}
    unknown = [key for key in data if key not in SETTINGS_KEYS]
    if unknown:
        return _error(f"Unknown settings: {', '.join(unknown)}", 400)

    fields = {SETTINGS_KEYS[key]: value for key, value in data.items()}
    try:
        settings = _service("users").update_alert_settings(
            get_current_user()["id"], **fields
        )
    except ValueError as e:
        return _error(str(e), 400)
    return jsonify(settings.to_dict())


@bp.route("/alerts/dispatch", methods=["POST"])
def dispatch_alerts():
    if not _cron_authorized():
        return _error("Unauthorized", 401)

    data = request.get_json(silent=True) or {}
    frequency = data.get("frequency") or request.args.get("frequency", "daily")

    try:
        summary = _service("alerts").dispatch(frequency)
    except ValueError as e:
        return _error(str(e), 400)
    except Exception as e:
        logger.error(f"Alert dispatch failed: {e}")
        return _error("Alert dispatch failed", 500)

    return jsonify({"success": True, **summary})


# ── Content repurposing ──

@bp.route("/transcribe", methods=["POST"])
def transcribe():
    upload = request.files.get("file")
    youtube_url = (request.form.get("youtubeUrl") or "").strip()

    if not upload and not youtube_url:
        return _error("Please provide a file or YouTube URL", 400)

    transcriber = _service("transcriber")
    try:
        if youtube_url:
            transcript = transcriber.transcribe_youtube(youtube_url)
        else:
            filename = upload.filename or safe_audio_filename("upload")
            transcript = transcriber.transcribe(upload.read(), filename)
    except (ValueError, YouTubeDownloadError) as e:
        return _error(str(e), 400)
    except TranscriptionError as e:
        return _error(str(e), 500)
    except Exception as e:
        logger.error(f"Transcription error: {e}")
        return _error("Transcription failed", 500)

    return jsonify({"transcript": transcript})


@bp.route("/generate", methods=["POST"])
def generate():
    data = request.get_json(silent=True) or {}

    try:
        content = _service("content_generator").generate(data.get("transcript"))
    except ValueError as e:
        return _error(str(e), 400)
    except GenerationError as e:
        return _error(str(e), 500)
    except Exception as e:
        logger.error(f"Generation error: {e}")
        return _error("Content generation failed", 500)

    return jsonify(content)



"""
Notifier -- delivers magic links and trend alerts.

Email goes out over SMTP (STARTTLS + login). Discord and Telegram alerts
are plain webhook/Bot API calls. Every send returns True/False and logs
failures instead of raising.
"""

import logging
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Dict, List, Optional

import requests
from markupsafe import escape

import config

logger = logging.getLogger(__name__)

TELEGRAM_API_URL = "https://api.telegram.org"


class Notifier:
    """Sends messages over email, Discord and Telegram."""

    def __init__(self, smtp_server: Optional[str] = None,
                 smtp_port: Optional[int] = None,
                 email_address: Optional[str] = None,
                 email_password: Optional[str] = None,
                 telegram_token: Optional[str] = None):
        self.smtp_server = smtp_server or config.SMTP_SERVER
        self.smtp_port = smtp_port or config.SMTP_PORT
        self.email_address = email_address or config.EMAIL_ADDRESS
        self.email_password = email_password or config.EMAIL_PASSWORD
        self._telegram_token = telegram_token

    @property
    def email_configured(self) -> bool:
        return bool(self.email_address and self.email_password)

    def send_email(self, to: str, subject: str, html: str,
                   text: Optional[str] = None) -> bool:
        """
        Send an HTML email with a plain-text fallback.

        Returns True if sent successfully, False otherwise.
        """
        if not to:
            logger.warning("No email recipient given.")
            return False

        if not self.email_configured:
            logger.warning(
                "Email credentials not configured. "
                "Set EMAIL_ADDRESS and EMAIL_APP_PASSWORD in .env"
            )
            return False

        msg = MIMEMultipart("alternative")
        msg["Subject"] = subject
        msg["From"] = self.email_address
        msg["To"] = to

        plain = text or "View this email in an HTML-capable client."
        msg.attach(MIMEText(plain, "plain"))
        msg.attach(MIMEText(html, "html"))

        try:
            with smtplib.SMTP(self.smtp_server, self.smtp_port) as server:
                server.starttls()
                server.login(self.email_address, self.email_password)
                server.send_message(msg)
            logger.info(f"Email '{subject}' sent to {to}")
            return True
        except smtplib.SMTPAuthenticationError:
            logger.error(
                "Email auth failed. If you use Gmail, use an App Password, "
                "not your regular password."
            )
            return False
        except Exception as e:
            logger.error(f"Failed to send email: {e}")
            return False

    def send_discord(self, webhook_url: str, content: str) -> bool:
        """Post a message to a Discord webhook."""
        if not webhook_url:
            return False
        try:
            response = requests.post(
                webhook_url, json={"content": content[:2000]}, timeout=10,
            )
        except requests.RequestException as e:
            logger.error(f"Discord webhook failed: {e}")
            return False

        if response.status_code not in (200, 204):
            logger.error(f"Discord webhook failed: HTTP {response.status_code}")
            return False
        return True

    def send_telegram(self, chat_id: str, text: str) -> bool:
        """Send a message through the Telegram Bot API."""
        token = self._telegram_token or config.get_api_key('telegram')
        if not chat_id or not token:
            if chat_id:
                logger.warning("Telegram bot token not configured.")
            return False
        try:
            response = requests.post(
                f"{TELEGRAM_API_URL}/bot{token}/sendMessage",
                json={"chat_id": chat_id, "text": text[:4096]},
                timeout=10,
            )
        except requests.RequestException as e:
            logger.error(f"Telegram send failed: {e}")
            return False

        if response.status_code != 200:
            logger.error(f"Telegram send failed: HTTP {response.status_code}")
            return False
        return True


def format_alert_text(sounds: List[Dict]) -> str:
    """One line per sound, for chat channels and the plain email part."""
    lines = ["TrendCatch: sounds taking off right now", ""]
    for sound in sounds:
        artist = f" - {sound['artist']}" if sound.get("artist") else ""
        lines.append(
            f"+{sound['velocity']}%  {sound['name']}{artist} "
            f"({sound['latestUses']:,} uses)"
        )
        if sound.get("tiktokUrl"):
            lines.append(f"   {sound['tiktokUrl']}")
    return "\n".join(lines)


def format_alert_html(sounds: List[Dict]) -> str:
    # Sound fields come from scraped pages and API callers
    rows = []
    for sound in sounds:
        name = escape(sound["name"])
        if sound.get("tiktokUrl"):
            name = f'<a href="{escape(sound["tiktokUrl"])}">{name}</a>'
        rows.append(
            "<tr>"
            f"<td style='padding:6px 12px;color:#16a34a;font-weight:bold;'>+{sound['velocity']}%</td>"
            f"<td style='padding:6px 12px;'>{name}</td>"
            f"<td style='padding:6px 12px;color:#666;'>{escape(sound.get('artist') or '')}</td>"
            f"<td style='padding:6px 12px;'>{sound['latestUses']:,}</td>"
            "</tr>"
        )
    return f"""
<div style="font-family: -apple-system, sans-serif; max-width: 640px; margin: 0 auto;">
  <h2 style="color: #8b5cf6;">Sounds taking off right now</h2>
  <table style="border-collapse: collapse; width: 100%;">
    <tr><th align="left">Velocity</th><th align="left">Sound</th>
        <th align="left">Artist</th><th align="left">Uses</th></tr>
    {''.join(rows)}
  </table>
</div>
"""

"""Email notifier for scheduled backup outcomes, using SMTP environment variables.

Environment variables (read at send-time):
- SMTP_HOST (required)
- SMTP_PORT (optional; default 587)
- SMTP_USER (optional)
- SMTP_PASS (optional)
- SMTP_STARTTLS (optional; default "true")
- SMTP_FROM (required)
- SMTP_TO (required; comma-separated list)
"""

from __future__ import annotations

import logging
import os
import smtplib
from email.message import EmailMessage
from typing import List

from collector_backup.core.config import _get_bool


logger = logging.getLogger(__name__)

DEFAULT_SMTP_PORT = 587


def notifications_configured() -> bool:
    return bool(os.getenv("SMTP_HOST") and os.getenv("SMTP_FROM") and os.getenv("SMTP_TO"))


def _smtp_port() -> int:
    raw = os.getenv("SMTP_PORT") or str(DEFAULT_SMTP_PORT)
    try:
        return int(raw)
    except ValueError:
        logger.warning("invalid_smtp_port | value=%s fallback=%s", raw, DEFAULT_SMTP_PORT)
        return DEFAULT_SMTP_PORT


def send_notification(subject: str, body: str) -> bool:
    """Send a plaintext email. Returns False when unconfigured or on SMTP failure."""
    if not notifications_configured():
        return False

    host = os.environ["SMTP_HOST"]
    from_addr = os.environ["SMTP_FROM"]
    to_addrs: List[str] = [addr.strip() for addr in os.environ["SMTP_TO"].split(",") if addr.strip()]
    if not to_addrs:
        return False

    port = _smtp_port()
    user = os.getenv("SMTP_USER")
    password = os.getenv("SMTP_PASS")
    use_starttls = _get_bool(os.getenv("SMTP_STARTTLS"), True)

    msg = EmailMessage()
    msg["Subject"] = subject
    msg["From"] = from_addr
    msg["To"] = ", ".join(to_addrs)
    msg.set_content(body)

    try:
        with smtplib.SMTP(host=host, port=port, timeout=15) as smtp:
            if use_starttls:
                smtp.starttls()
            if user:
                smtp.login(user, password or "")
            smtp.send_message(msg)
    except (smtplib.SMTPException, OSError) as exc:
        # Notification problems never affect the backup outcome
        logger.warning("notification_failed | subject=%s error=%s", subject, exc)
        return False
    return True


def notify_backup_result(success: bool, *, filename: str | None = None, error: str | None = None) -> bool:
    if success:
        subject = "[Collection Backup] Backup completed successfully"
        body = f"Automatic backup completed successfully.\nFilename: {filename}\n"
    else:
        subject = "[Collection Backup] Backup failed"
        body = f"Automatic backup failed.\nError: {error}\n"
    return send_notification(subject, body)

"""
Async email sender using aiosmtplib with STARTTLS.

Reads EMAIL_HOST, EMAIL_PORT, EMAIL_USERNAME, EMAIL_PASSWORD, EMAIL_FROM,
EMAIL_TO from environment via Settings. Returns False without sending when
EMAIL_HOST is not configured; SMTP errors propagate to the caller.
"""
import logging
from email.mime.text import MIMEText

import aiosmtplib

from trayplan.core.config import settings

logger = logging.getLogger(__name__)


async def send_email(subject: str, body: str) -> bool:
    if not settings.EMAIL_HOST:
        logger.warning("email: EMAIL_HOST not configured — skipping send")
        return False

    msg = MIMEText(body, "plain")
    msg["Subject"] = subject
    msg["From"] = settings.EMAIL_FROM
    msg["To"] = settings.EMAIL_TO

    await aiosmtplib.send(
        msg,
        hostname=settings.EMAIL_HOST,
        port=settings.EMAIL_PORT,
        username=settings.EMAIL_USERNAME or None,
        password=settings.EMAIL_PASSWORD or None,
        start_tls=True,
    )
    logger.info("email: sent '%s' to %s", subject, settings.EMAIL_TO)
    return True

"""
notifications.py — Outbound Mail (password reset links)
Excel Analytics API
"""

import smtplib
from email.message import EmailMessage
from loguru import logger
from starlette.concurrency import run_in_threadpool

from excel_analytics.config import settings
from excel_analytics.errors import UpstreamError


def build_reset_message(recipient: str, link: str) -> EmailMessage:
    msg = EmailMessage()
    msg["Subject"] = "Reset your Excel Analytics password"
    msg["From"] = settings.MAIL_FROM
    msg["To"] = recipient
    msg.set_content(
        "We received a request to reset your password.\n\n"
        f"Open this link within {settings.RESET_TOKEN_EXPIRE_MINUTES} minutes to choose a new one:\n"
        f"{link}\n\n"
        "If you did not request a reset, you can ignore this email."
    )
    return msg


def _deliver(msg: EmailMessage) -> None:
    with smtplib.SMTP(settings.SMTP_HOST, settings.SMTP_PORT, timeout=30) as smtp:
        smtp.starttls()
        if settings.SMTP_USER:
            smtp.login(settings.SMTP_USER, settings.SMTP_PASSWORD or "")
        smtp.send_message(msg)


async def send_reset_email(recipient: str, link: str) -> None:
    if not settings.SMTP_HOST:
        logger.info(f"SMTP_HOST not configured → reset link for {recipient}: {link}")
        return

    msg = build_reset_message(recipient, link)
    try:
        await run_in_threadpool(_deliver, msg)
    except (smtplib.SMTPException, OSError) as e:
        logger.error(f"Reset email to {recipient} failed: {e}")
        raise UpstreamError("Failed to send reset email")
    logger.info(f"Reset email sent to {recipient}")

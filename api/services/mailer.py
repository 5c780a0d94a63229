"""
Mail Service — transactional email to drivers via an HTTP mail API.

Failures are logged but NEVER raise exceptions; delivery is best effort.
"""

import html
import logging
from typing import Any

import httpx

from config import Settings

logger = logging.getLogger(__name__)


async def send_email(
    settings: Settings,
    to_email: str,
    subject: str,
    html: str,
    text: str | None = None,
) -> bool:
    """
    Send one email through the configured mail API.

    Returns:
        True if the API accepted the message, False otherwise.
    """
    if not settings.MAIL_API_URL:
        logger.error("MAIL_API_URL not configured, cannot send email")
        return False

    payload: dict[str, Any] = {
        "from": settings.MAIL_FROM,
        "to": [to_email],
        "subject": subject,
        "html": html,
    }
    if text:
        payload["text"] = text

    headers = {}
    if settings.MAIL_API_KEY:
        headers["Authorization"] = f"Bearer {settings.MAIL_API_KEY}"

    try:
        async with httpx.AsyncClient(timeout=10.0) as client:
            resp = await client.post(settings.MAIL_API_URL, json=payload, headers=headers)
            if resp.status_code < 300:
                logger.info("Email sent: subject='%s'", subject)
                return True
            logger.warning(
                "Email failed: status=%s, body=%s",
                resp.status_code,
                resp.text[:200],
            )
            return False
    except Exception as e:
        logger.error("Email error: subject='%s', error=%s", subject, str(e))
        return False


# ── Templates ──────────────────────────────────────────────

async def send_resume_code_email(
    settings: Settings,
    *,
    to_email: str,
    code: str,
    company_id: str,
    first_name: str = "",
    last_name: str = "",
) -> bool:
    """Resume verification code for a driver coming back to their application."""
    name = " ".join(p for p in (first_name, last_name) if p) or "Driver"
    safe_name = html.escape(name)
    safe_company = html.escape(company_id or "")
    minutes = settings.VERIFICATION_CODE_TTL_MINUTES
    subject = "Your onboarding verification code"
    body_html = (
        f"<p>Hi {safe_name},</p>"
        f"<p>Use the code below to resume your {safe_company} driver application:</p>"
        f"<p style=\"font-size:24px;letter-spacing:4px\"><b>{code}</b></p>"
        f"<p>This code expires in {minutes} minutes. "
        "If you did not request it, you can ignore this email.</p>"
    )
    text = f"Hi {name}, your verification code is {code}. It expires in {minutes} minutes."
    return await send_email(settings, to_email, subject, body_html, text)

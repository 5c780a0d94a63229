"""Tests for outbound email templates."""

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "api"))

from unittest.mock import AsyncMock, patch

import pytest

from services.mailer import send_resume_code_email


@pytest.mark.asyncio
async def test_resume_code_email_escapes_driver_name(settings):
    with patch("services.mailer.send_email", new=AsyncMock(return_value=True)) as send:
        sent = await send_resume_code_email(
            settings,
            to_email="driver@example.com",
            code="123456",
            company_id="ssp-ca",
            first_name="<script>alert(1)</script>",
            last_name="O'Neil & Sons",
        )

    assert sent is True
    body_html = send.call_args.args[3]
    assert "<script>" not in body_html
    assert "&lt;script&gt;alert(1)&lt;/script&gt;" in body_html
    assert "O&#x27;Neil &amp; Sons" in body_html
    assert "<b>123456</b>" in body_html
    text = send.call_args.args[4]
    assert "<script>alert(1)</script>" in text

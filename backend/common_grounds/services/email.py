"""Transactional email via the Resend HTTP API."""

import logging

import httpx

from common_grounds.config import Settings
from common_grounds.exceptions import EmailDeliveryError

logger = logging.getLogger(__name__)


def _render_magic_link_html(link: str, expire_minutes: int) -> str:
    return f"""<!DOCTYPE html>
<html>
  <head><meta charset="utf-8"></head>
  <body style="font-family: -apple-system, 'Segoe UI', Roboto, sans-serif; line-height: 1.6; color: #333;">
    <div style="max-width: 600px; margin: 0 auto; padding: 20px;">
      <h1 style="background: #2563eb; color: white; padding: 30px; text-align: center;">Welcome to Common Grounds!</h1>
      <p>Click the button below to log in to Common Grounds:</p>
      <p style="text-align: center;">
        <a href="{link}" style="background: #2563eb; color: white; padding: 12px 30px; text-decoration: none; border-radius: 6px;">Log in to Common Grounds</a>
      </p>
      <p style="font-size: 14px; color: #6b7280;">Or copy and paste this link into your browser:<br><a href="{link}">{link}</a></p>
      <p style="font-size: 14px;"><strong>This link expires in {expire_minutes} minutes.</strong></p>
      <p style="font-size: 14px; color: #6b7280;">If you didn't request this, you can safely ignore this email.</p>
    </div>
  </body>
</html>"""


def _render_magic_link_text(link: str, expire_minutes: int) -> str:
    return (
        "Log in to Common Grounds\n\n"
        f"Open this link to log in:\n{link}\n\n"
        f"This link expires in {expire_minutes} minutes.\n"
        "If you didn't request this, you can safely ignore this email.\n"
    )


class EmailService:
    """Service for sending login emails."""

    def __init__(self, settings: Settings, client: httpx.AsyncClient):
        self.settings = settings
        self.client = client

    def build_magic_link(self, token: str) -> str:
        return f"{self.settings.frontend_url.rstrip('/')}/verify/{token}"

    async def send_magic_link(self, email: str, token: str) -> None:
        """
        Email a login link embedding the raw token.

        In development without an API key the link is logged instead.

        Raises:
            EmailDeliveryError: If the provider rejects or cannot be reached
        """
        link = self.build_magic_link(token)
        expire_minutes = self.settings.magic_link_expire_minutes

        if self.settings.environment == "development" and not self.settings.resend_api_key:
            logger.info("Magic link for %s: %s", email, link)
            return

        try:
            response = await self.client.post(
                self.settings.resend_api_url,
                headers={"Authorization": f"Bearer {self.settings.resend_api_key}"},
                json={
                    "from": self.settings.from_email,
                    "to": [email],
                    "subject": "Your Common Grounds Login Link",
                    "html": _render_magic_link_html(link, expire_minutes),
                    "text": _render_magic_link_text(link, expire_minutes),
                },
                timeout=self.settings.email_timeout_seconds,
            )
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.error("Failed to send magic link to %s: %s", email, e)
            raise EmailDeliveryError() from e

        logger.info("Magic link sent to %s", email)

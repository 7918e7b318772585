import logging
from typing import Optional

import httpx

from config import settings

logger = logging.getLogger(__name__)

RESEND_API_URL = "https://api.resend.com/emails"


class EmailDeliveryError(Exception):
    pass


class Mailer:
    """Sends transactional email through the Resend HTTP API."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        sender: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key
        self.sender = sender
        self._transport = transport

    @property
    def configured(self) -> bool:
        return bool(self.api_key and self.sender)

    async def send(self, to_email: str, subject: str, body: str) -> None:
        if not self.configured:
            logger.warning("Email service not configured. Skipping email send.")
            return

        async with httpx.AsyncClient(transport=self._transport) as client:
            try:
                response = await client.post(
                    RESEND_API_URL,
                    headers={
                        "Authorization": f"Bearer {self.api_key}",
                        "Content-Type": "application/json",
                    },
                    json={
                        "from": self.sender,
                        "to": [to_email],
                        "subject": subject,
                        "text": body,
                    },
                    timeout=20,
                )
            except httpx.RequestError as exc:
                raise EmailDeliveryError(f"Email service communication error: {exc}") from exc

        if response.status_code not in (200, 201):
            raise EmailDeliveryError(f"Resend rejected the message: {response.text}")

    async def send_password_reset(self, to_email: str, reset_link: str) -> None:
        if not self.configured and settings.ENVIRONMENT.lower() in ("development", "dev", "local"):
            # Email is off locally; the log is the only place the link shows up.
            logger.info(f"Password reset link (email disabled): {reset_link}")
        minutes = settings.PASSWORD_RESET_EXPIRE_MINUTES
        await self.send(
            to_email,
            "Reset your password",
            f"Use this link to choose a new password: {reset_link}\n\n"
            f"The link expires in {minutes} minutes. If you did not ask for a reset, ignore this email.",
        )


def get_mailer() -> Mailer:
    return Mailer(api_key=settings.RESEND_API_KEY, sender=settings.RESEND_FROM)

"""Outgoing mail rendered from Jinja2 templates."""

import logging
from dataclasses import dataclass
from pathlib import Path

from jinja2 import Environment, FileSystemLoader, StrictUndefined, TemplateError

from app.config import Settings
from app.errors import Result, UnableToSendEmail
from app.models.user import User

logger = logging.getLogger("sesame")

TEMPLATES_DIR = Path(__file__).resolve().parent.parent / "templates" / "mail"


@dataclass(frozen=True)
class MailMessage:
    sender: str
    to: str
    subject: str
    body: str


class Mailer:
    """Renders account emails. Delivery writes the message to the server log."""

    def __init__(self, settings: Settings) -> None:
        self.sender = settings.MAIL_FROM
        self.frontend_url = settings.FRONTEND_URL.rstrip("/")
        self.reset_expires_in = settings.RESET_PASSWORD_TOKEN_EXPIRES_IN
        self.env = Environment(
            loader=FileSystemLoader(TEMPLATES_DIR),
            undefined=StrictUndefined,
            keep_trailing_newline=True,
        )

    def render(self, template: str, **context) -> str:
        return self.env.get_template(template).render(**context)

    async def send_ask_reset_password(self, user: User, token: str) -> Result[dict]:
        """Send the reset link for `token` to the user."""
        try:
            body = self.render(
                "ask_reset_password.txt",
                user=user,
                reset_url=f"{self.frontend_url}/reset-password?token={token}",
                expires_in_minutes=self.reset_expires_in // 60000,
            )
        except TemplateError as e:
            logger.error("Unable to render reset password email: %s", e)
            return Result.fail(UnableToSendEmail())
        return await self.send(MailMessage(self.sender, user.email, "Reset your password", body))

    async def send_password_by_email(self, user: User, password: str) -> Result[dict]:
        """Send a generated or admin-chosen password to the user."""
        try:
            body = self.render(
                "password_by_email.txt",
                user=user,
                password=password,
                sign_in_url=f"{self.frontend_url}/sign-in",
            )
        except TemplateError as e:
            logger.error("Unable to render password email: %s", e)
            return Result.fail(UnableToSendEmail())
        return await self.send(MailMessage(self.sender, user.email, "Your account", body))

    async def send(self, message: MailMessage) -> Result[dict]:
        await self._deliver(message)
        return Result.ok({"emailSent": True})

    async def _deliver(self, message: MailMessage) -> None:
        logger.info("MAIL to=%s subject=%r", message.to, message.subject)
        logger.debug("MAIL body for %s:\n%s", message.to, message.body)

"""Email delivery service for verification codes.

Turns "send code X to address Y for name Z" into a delivered message,
tolerating provider-specific SMTP quirks:

1. Detect the recipient's provider, build its profile, verify the
   transport can authenticate, then send.
2. On failure, try once through a fixed generic profile, then start the
   next primary attempt. At most ``max_retries`` retries.
3. When the budget is spent, raise EmailDeliveryFailedError carrying the
   last primary error.

The mock sender is a development substitute; whether to use it is the
caller's decision.
"""

import asyncio
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from email.message import EmailMessage
from email.utils import formataddr, make_msgid

from jinja2 import DictLoader, Environment, select_autoescape

from app.core.config import Settings
from app.providers.mail import (
    MailTransport,
    MailTransportError,
    ProviderKey,
    SmtpMailTransport,
    TransportConfig,
    build_fallback_transport,
    build_service_transport,
    build_transport,
    detect_provider,
)

logger = logging.getLogger(__name__)

TransportFactory = Callable[[TransportConfig], MailTransport]

_DEFAULT_MAX_RETRIES = 2

# =============================================================================
# Templates
# =============================================================================

_CODE_EMAIL_HTML = """\
<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto; padding: 20px; background-color: #f8f9fa;">
  <div style="background: linear-gradient(135deg, #1e293b 0%, #0f172a 100%); color: white; padding: 30px; border-radius: 10px; text-align: center;">
    <h1 style="margin: 0; font-size: 28px;">{{ app_name }}</h1>
    <p style="margin: 10px 0 0 0; opacity: 0.9;">Secure Video Calling</p>
  </div>

  <div style="background: white; padding: 40px; border-radius: 10px; margin-top: 20px; box-shadow: 0 2px 10px rgba(0,0,0,0.1);">
    <h2 style="color: #1e293b; margin-top: 0;">Hi {{ first_name }}!</h2>
    <p style="color: #64748b; font-size: 16px; line-height: 1.6;">
      Welcome to {{ app_name }}! To complete your sign-in, please use the verification code below:
    </p>

    <div style="background: #f1f5f9; border: 2px dashed #3b82f6; border-radius: 10px; padding: 30px; text-align: center; margin: 30px 0;">
      <h1 style="color: #3b82f6; font-size: 36px; margin: 0; letter-spacing: 4px; font-family: monospace;">{{ code }}</h1>
    </div>

    <p style="color: #64748b; font-size: 14px; margin-bottom: 0;">
      This code will expire in {{ expires_minutes }} minutes. If you didn't request this code, please ignore this email.
    </p>

    <div style="background: #fef3c7; border: 1px solid #f59e0b; border-radius: 8px; padding: 15px; margin-top: 20px;">
      <p style="color: #92400e; font-size: 13px; margin: 0;">
        <strong>Note:</strong> This email works with all email providers including Gmail, Yahoo, Outlook, iCloud, and more.
      </p>
    </div>
  </div>

  <div style="text-align: center; margin-top: 20px; color: #94a3b8; font-size: 12px;">
    <p>{{ app_name }} - Connecting people worldwide</p>
    <p>This service works with all major email providers</p>
  </div>
</div>
"""

_CODE_EMAIL_TEXT = """\
{{ app_name }} - Verification Code

Hi {{ first_name }}!

Welcome to {{ app_name }}! Your verification code is: {{ code }}

This code will expire in {{ expires_minutes }} minutes.

If you didn't request this code, please ignore this email.

Note: This service works with all major email providers including Gmail, Yahoo, Outlook, iCloud, and more.

{{ app_name }} - Connecting people worldwide
"""

_templates = Environment(
    loader=DictLoader(
        {
            "code_email.html": _CODE_EMAIL_HTML,
            "code_email.txt": _CODE_EMAIL_TEXT,
        }
    ),
    autoescape=select_autoescape(enabled_extensions=("html",)),
    keep_trailing_newline=True,
)

_CODE_EXPIRY_MINUTES = 10


class EmailDeliveryFailedError(Exception):
    """Every delivery attempt failed.

    Security: ``last_error`` holds the raw transport message. Log it,
    never show it to end users.

    Attributes:
        attempts: Number of primary attempts made.
        last_error: Message of the last primary attempt's error.
    """

    def __init__(self, attempts: int, last_error: str):
        super().__init__(
            f"Email sending failed after {attempts} attempts: {last_error}"
        )
        self.attempts = attempts
        self.last_error = last_error


@dataclass(frozen=True)
class RenderedEmail:
    """HTML and plain-text bodies of one message."""

    html: str
    text: str


class EmailDeliveryService:
    """Sends verification-code emails with bounded retry and fallback.

    Args:
        settings: Application settings (sender credentials, SMTP_*).
        transport_factory: Builds a transport for a profile. Defaults to
            the aiosmtplib adapter.
        max_retries: Retries after the first primary attempt.
        retry_delay: Seconds to wait before each retry. Defaults to
            EMAIL_RETRY_DELAY_SECONDS.
    """

    def __init__(
        self,
        settings: Settings,
        transport_factory: TransportFactory = SmtpMailTransport,
        *,
        max_retries: int = _DEFAULT_MAX_RETRIES,
        retry_delay: float | None = None,
    ) -> None:
        self._settings = settings
        self._transport_factory = transport_factory
        self._max_retries = max_retries
        self._retry_delay = (
            settings.email_retry_delay_seconds if retry_delay is None else retry_delay
        )

    @property
    def subject(self) -> str:
        """Subject line of verification emails."""
        return f"{self._settings.app_name} - Verification Code"

    def render(self, code: str, first_name: str) -> RenderedEmail:
        """Render the verification email bodies.

        Deterministic given its inputs. The HTML body is autoescaped.

        Args:
            code: Six-digit verification code.
            first_name: Recipient's given name for the greeting.

        Returns:
            RenderedEmail with html and text bodies.
        """
        context = {
            "app_name": self._settings.app_name,
            "code": code,
            "first_name": first_name,
            "expires_minutes": _CODE_EXPIRY_MINUTES,
        }
        return RenderedEmail(
            html=_templates.get_template("code_email.html").render(context),
            text=_templates.get_template("code_email.txt").render(context),
        )

    def build_message(
        self,
        to_email: str,
        rendered: RenderedEmail,
        *,
        with_display_name: bool = True,
    ) -> EmailMessage:
        """Assemble a multipart/alternative message.

        Args:
            to_email: Recipient address.
            rendered: Bodies from render().
            with_display_name: Use "App Name <sender>" as From. The
                fallback profile sends from the bare address.

        Returns:
            EmailMessage with a fresh Message-ID.
        """
        sender = self._settings.email_user
        message = EmailMessage()
        message["From"] = (
            formataddr((self._settings.email_from_name, sender))
            if with_display_name
            else sender
        )
        message["To"] = to_email
        message["Subject"] = self.subject
        sender_domain = sender.partition("@")[2] or None
        message["Message-ID"] = make_msgid(domain=sender_domain)
        message.set_content(rendered.text)
        message.add_alternative(rendered.html, subtype="html")
        return message

    async def _send_primary(self, to_email: str, rendered: RenderedEmail) -> str:
        provider = detect_provider(to_email)
        transport = self._transport_factory(build_transport(provider, self._settings))
        await transport.verify()
        return await transport.send(self.build_message(to_email, rendered))

    async def _send_fallback(self, to_email: str, rendered: RenderedEmail) -> str:
        transport = self._transport_factory(build_fallback_transport(self._settings))
        return await transport.send(
            self.build_message(to_email, rendered, with_display_name=False)
        )

    async def send(self, to_email: str, code: str, first_name: str) -> str:
        """Deliver a verification code.

        Each primary attempt re-detects the provider, verifies, and sends.
        Between primary attempts one send goes through the fixed generic
        profile; its success ends the call.

        Args:
            to_email: Recipient address.
            code: Six-digit verification code.
            first_name: Recipient's given name.

        Returns:
            Message-ID of the delivered message.

        Raises:
            EmailDeliveryFailedError: When all attempts fail.
        """
        rendered = self.render(code, first_name)
        total_attempts = self._max_retries + 1
        last_error: MailTransportError | None = None

        for attempt in range(total_attempts):
            if attempt > 0 and self._retry_delay > 0:
                await asyncio.sleep(self._retry_delay)

            logger.info(
                "Sending verification email (attempt %d/%d)",
                attempt + 1,
                total_attempts,
                extra={"recipient": to_email},
            )
            try:
                message_id = await self._send_primary(to_email, rendered)
            except MailTransportError as e:
                last_error = e
                logger.warning(
                    "Email sending error (attempt %d/%d): %s",
                    attempt + 1,
                    total_attempts,
                    e,
                    extra={"smtp_code": e.smtp_code, "command": e.command},
                )
            else:
                logger.info("Email sent", extra={"message_id": message_id})
                return message_id

            if attempt == self._max_retries:
                break  # No more retries

            try:
                message_id = await self._send_fallback(to_email, rendered)
            except MailTransportError as e:
                logger.warning("Generic SMTP fallback also failed: %s", e)
            else:
                logger.info(
                    "Email sent with generic transport",
                    extra={"message_id": message_id},
                )
                return message_id

        raise EmailDeliveryFailedError(
            attempts=total_attempts,
            last_error=str(last_error),
        )

    async def send_mock(self, to_email: str, code: str, first_name: str) -> str:
        """Log a verification code instead of sending it.

        Development only. Always succeeds.

        Args:
            to_email: Recipient address.
            code: Six-digit verification code (written to the log).
            first_name: Recipient's given name.

        Returns:
            Synthetic message id ``mock-<epoch millis>``.
        """
        logger.warning(
            "DEVELOPMENT MODE - mock email to %s (%s provider detected): "
            "Hi %s! Your verification code is: %s",
            to_email,
            detect_provider(to_email).value,
            first_name,
            code,
            extra={"subject": self.subject},
        )
        return f"mock-{int(time.time() * 1000)}"

    async def check_configuration(self) -> bool:
        """Verify the Gmail profile and the configured service profile.

        Start-up self-test; never called on the login path.

        Returns:
            True if both transports authenticate.
        """
        profiles = (
            build_transport(ProviderKey.GMAIL, self._settings),
            build_service_transport(self._settings),
        )
        try:
            for profile in profiles:
                await self._transport_factory(profile).verify()
                logger.info(
                    "Email configuration is valid",
                    extra={"provider": profile.provider, "host": profile.hostname},
                )
        except MailTransportError as e:
            logger.error(
                "Email configuration error: %s. Tips: for Gmail or Yahoo enable "
                "2FA and use an App Password; for Outlook use your regular "
                "password or an App Password; set EMAIL_USER and "
                "EMAIL_APP_PASSWORD in .env",
                e,
            )
            return False
        return True

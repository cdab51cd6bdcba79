"""SMTP transport on aiosmtplib.

Opens a fresh connection per call: verify() connects, authenticates, and
quits; send() does the same around one message. Connections are never
pooled since each delivery attempt may target a different profile.
"""

import ssl
from email.message import EmailMessage

import aiosmtplib
import structlog

from app.providers.mail.base import MailTransport, TransportConfig
from app.providers.mail.errors import (
    MailAuthenticationError,
    MailConnectionError,
    MailTransportError,
)

logger = structlog.get_logger()


def _classify_smtp_error(error: Exception, command: str) -> MailTransportError:
    """Map aiosmtplib and socket exceptions to the mail error taxonomy.

    Returns a MailTransportError subclass instance (does not raise).
    Callers raise it: ``raise _classify_smtp_error(e, cmd) from e``.
    """
    if isinstance(error, aiosmtplib.SMTPAuthenticationError):
        return MailAuthenticationError(
            str(error), smtp_code=error.code, command=command
        )

    if isinstance(
        error,
        (
            aiosmtplib.SMTPConnectError,
            aiosmtplib.SMTPServerDisconnected,
            aiosmtplib.SMTPTimeoutError,
        ),
    ):
        return MailConnectionError(str(error), command=command)

    if isinstance(error, aiosmtplib.SMTPResponseException):
        return MailTransportError(str(error), smtp_code=error.code, command=command)

    if isinstance(error, OSError):
        return MailConnectionError(str(error), command=command)

    return MailTransportError(str(error), command=command)


def build_tls_context(config: TransportConfig) -> ssl.SSLContext:
    """Create the TLS context for a profile.

    Certificate verification follows ``config.verify_certificates``; the
    minimum protocol version follows ``config.min_tls_version``.
    """
    context = ssl.create_default_context()
    if not config.verify_certificates:
        context.check_hostname = False
        context.verify_mode = ssl.CERT_NONE
    if config.min_tls_version is not None:
        context.minimum_version = config.min_tls_version
    return context


class SmtpMailTransport(MailTransport):
    """MailTransport backed by aiosmtplib.

    Implicit TLS when ``config.use_tls``; otherwise STARTTLS is used
    whenever the server offers it.
    """

    def _client(self) -> aiosmtplib.SMTP:
        return aiosmtplib.SMTP(
            hostname=self.config.hostname,
            port=self.config.port,
            username=self.config.username or None,
            password=self.config.password or None,
            use_tls=self.config.use_tls,
            start_tls=False if self.config.use_tls else None,
            tls_context=build_tls_context(self.config),
            timeout=self.config.timeout,
        )

    async def verify(self) -> None:
        """Connect, authenticate, and disconnect.

        Raises:
            MailTransportError: On connection or authentication failure.
        """
        try:
            async with self._client() as smtp:
                await smtp.noop()
        except (aiosmtplib.SMTPException, OSError) as e:
            raise _classify_smtp_error(e, "verify") from e

        logger.debug(
            "smtp_transport_verified",
            provider=self.config.provider,
            host=self.config.hostname,
            port=self.config.port,
        )

    async def send(self, message: EmailMessage) -> str:
        """Deliver one message.

        Args:
            message: Built message. Must carry a Message-ID header.

        Returns:
            The message's Message-ID.

        Raises:
            MailTransportError: If the server refuses or the connection fails.
        """
        try:
            async with self._client() as smtp:
                await smtp.send_message(message)
        except (aiosmtplib.SMTPException, OSError) as e:
            raise _classify_smtp_error(e, "send") from e

        return str(message["Message-ID"])

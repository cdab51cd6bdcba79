"""Mail transport error taxonomy.

Adapters map library exceptions (aiosmtplib, socket errors) to these so
the delivery service can treat every transport failure the same way.

Security: Messages here may carry server responses and must never be
shown to end users verbatim.
"""

__all__ = [
    "MailTransportError",
    "MailAuthenticationError",
    "MailConnectionError",
]


class MailTransportError(Exception):
    """Base class for all mail transport failures.

    Attributes:
        smtp_code: SMTP reply code, when the server sent one.
        command: Protocol stage that failed (e.g., "verify", "send").
    """

    def __init__(
        self,
        message: str,
        *,
        smtp_code: int | None = None,
        command: str | None = None,
    ):
        super().__init__(message)
        self.smtp_code = smtp_code
        self.command = command


class MailAuthenticationError(MailTransportError):
    """Server rejected the sender credentials.

    Usually a missing app password (Gmail and Yahoo require one once
    two-factor authentication is on).
    """

    pass


class MailConnectionError(MailTransportError):
    """Could not reach or stay connected to the SMTP server."""

    pass

"""Mail transport interface.

A transport takes a fully resolved TransportConfig plus a rendered
message and performs delivery. Implementations are exchangeable per
provider; tests inject fakes through the delivery service's factory.
"""

import ssl
from abc import ABC, abstractmethod
from dataclasses import dataclass
from email.message import EmailMessage

__all__ = ["MailTransport", "TransportConfig"]


@dataclass(frozen=True)
class TransportConfig:
    """Resolved SMTP connection profile.

    Attributes:
        provider: Provider key the profile was built for.
        hostname: SMTP server host.
        port: SMTP server port.
        use_tls: Implicit TLS from the first byte (port 465 style).
        username: Sender account (fixed, never per-recipient).
        password: Sender password or app password.
        service: Well-known service shorthand the host/port came from.
        min_tls_version: TLS floor, or None to accept the library default.
        verify_certificates: Whether server certificates are checked.
        timeout: Seconds before a connect or command gives up.
    """

    provider: str
    hostname: str
    port: int
    use_tls: bool
    username: str
    password: str
    service: str | None = None
    min_tls_version: ssl.TLSVersion | None = ssl.TLSVersion.TLSv1_2
    verify_certificates: bool = False
    timeout: float = 30.0

    def __repr__(self) -> str:
        # Keep the password out of logs and tracebacks
        return (
            f"TransportConfig(provider={self.provider!r}, "
            f"hostname={self.hostname!r}, port={self.port}, "
            f"use_tls={self.use_tls}, service={self.service!r})"
        )


class MailTransport(ABC):
    """Abstract interface for SMTP-like delivery.

    Both methods raise MailTransportError (or a subclass) on failure.
    """

    def __init__(self, config: TransportConfig):
        self.config = config

    @abstractmethod
    async def verify(self) -> None:
        """Connect and authenticate without sending anything.

        Raises:
            MailTransportError: If the server cannot be reached or
                rejects the credentials.
        """
        ...

    @abstractmethod
    async def send(self, message: EmailMessage) -> str:
        """Deliver a message.

        Args:
            message: Fully built message including headers.

        Returns:
            Message-ID of the delivered message.

        Raises:
            MailTransportError: If delivery fails.
        """
        ...

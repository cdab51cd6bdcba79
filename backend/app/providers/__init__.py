"""Provider abstraction layer.

Exports:
    Mail transport interface and SMTP adapter
    Error classes for transport error handling
    Provider detection and SMTP profile builders
"""

from app.providers.mail import (
    AddressInfo,
    MailAuthenticationError,
    MailConnectionError,
    MailTransport,
    MailTransportError,
    ProviderKey,
    SmtpMailTransport,
    TransportConfig,
    analyze_address,
    detect_provider,
)

__all__ = [
    # Transport
    "MailTransport",
    "TransportConfig",
    "SmtpMailTransport",
    # Errors
    "MailTransportError",
    "MailAuthenticationError",
    "MailConnectionError",
    # Detection
    "AddressInfo",
    "ProviderKey",
    "analyze_address",
    "detect_provider",
]

"""Mail transport abstraction layer.

Provider detection, SMTP profiles, and an exchangeable transport
used by the email delivery service.
"""

from app.providers.mail.base import MailTransport, TransportConfig
from app.providers.mail.errors import (
    MailAuthenticationError,
    MailConnectionError,
    MailTransportError,
)
from app.providers.mail.profiles import (
    AddressInfo,
    ProviderKey,
    analyze_address,
    build_fallback_transport,
    build_service_transport,
    build_transport,
    detect_provider,
    is_valid_email,
)
from app.providers.mail.smtp_adapter import SmtpMailTransport

__all__ = [
    # Interface
    "MailTransport",
    "TransportConfig",
    "SmtpMailTransport",
    # Errors
    "MailTransportError",
    "MailAuthenticationError",
    "MailConnectionError",
    # Profiles
    "AddressInfo",
    "ProviderKey",
    "analyze_address",
    "build_fallback_transport",
    "build_service_transport",
    "build_transport",
    "detect_provider",
    "is_valid_email",
]

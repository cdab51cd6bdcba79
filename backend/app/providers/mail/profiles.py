"""Mail provider detection and SMTP profiles.

Detection is a heuristic over the recipient's domain: an ordered table
of ``(fragment, provider)`` pairs evaluated top to bottom, first match
wins. No DNS or MX lookups are made. ``generic`` is the terminal
catch-all and is built from the SMTP_* settings.

Gmail, Outlook, and Yahoo resolve through a table of well-known service
endpoints; iCloud and generic use explicit host/port/secure values. All
detected profiles relax certificate checks and require TLS 1.2 or newer.
"""

import enum
import re
from dataclasses import dataclass
from typing import TYPE_CHECKING

from app.providers.mail.base import TransportConfig

if TYPE_CHECKING:
    from app.core.config import Settings

__all__ = [
    "AddressInfo",
    "ProviderKey",
    "analyze_address",
    "build_fallback_transport",
    "build_service_transport",
    "build_transport",
    "detect_provider",
    "is_valid_email",
]

# Deliberately loose: one "@", no whitespace, a dot in the domain
_EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


class ProviderKey(enum.StrEnum):
    """Mail provider profiles a recipient can map to."""

    GMAIL = "gmail"
    OUTLOOK = "outlook"
    YAHOO = "yahoo"
    ICLOUD = "icloud"
    GENERIC = "generic"


# Ordered; first fragment contained in the domain wins
_PROVIDER_PATTERNS: tuple[tuple[str, ProviderKey], ...] = (
    ("gmail", ProviderKey.GMAIL),
    ("outlook", ProviderKey.OUTLOOK),
    ("hotmail", ProviderKey.OUTLOOK),
    ("live", ProviderKey.OUTLOOK),
    ("yahoo", ProviderKey.YAHOO),
    ("icloud", ProviderKey.ICLOUD),
    ("me.com", ProviderKey.ICLOUD),
)

# Domains shown to users as "known provider" hints. Matching uses the
# label before the first dot, so yahoo.co.uk and yahoo.de both count.
_KNOWN_PROVIDER_DOMAINS = (
    "gmail.com",
    "googlemail.com",
    "yahoo.com",
    "yahoo.co.uk",
    "yahoo.ca",
    "yahoo.in",
    "outlook.com",
    "hotmail.com",
    "live.com",
    "msn.com",
    "icloud.com",
    "me.com",
    "mac.com",
    "aol.com",
    "protonmail.com",
    "mail.com",
)


@dataclass(frozen=True)
class _ServiceEndpoint:
    hostname: str
    port: int
    use_tls: bool


# Well-known service shorthands: the host/port implied by the service name
_WELL_KNOWN_SERVICES: dict[str, _ServiceEndpoint] = {
    "gmail": _ServiceEndpoint("smtp.gmail.com", 465, True),
    "hotmail": _ServiceEndpoint("smtp-mail.outlook.com", 587, False),
    "yahoo": _ServiceEndpoint("smtp.mail.yahoo.com", 465, True),
}

_SERVICE_FOR_PROVIDER: dict[ProviderKey, str] = {
    ProviderKey.GMAIL: "gmail",
    ProviderKey.OUTLOOK: "hotmail",
    ProviderKey.YAHOO: "yahoo",
}

_ICLOUD_ENDPOINT = _ServiceEndpoint("smtp.mail.me.com", 587, False)

# Fixed profile tried between primary attempts
_FALLBACK_ENDPOINT = _ServiceEndpoint("smtp.gmail.com", 587, False)


@dataclass(frozen=True)
class AddressInfo:
    """Result of analyzing a recipient address.

    Attributes:
        valid: Whether the address passed the syntax check.
        provider: Detected provider profile (GENERIC when invalid).
        domain: Lower-cased domain part, or None when absent.
        is_known_provider: Whether the domain looks like a major mailbox
            provider. Informational only; unknown domains are accepted.
    """

    valid: bool
    provider: ProviderKey
    domain: str | None
    is_known_provider: bool


def is_valid_email(email: str) -> bool:
    """Check an address against the basic syntax rule."""
    return bool(_EMAIL_PATTERN.match(email))


def _domain_of(email: str) -> str | None:
    parts = email.split("@")
    if len(parts) < 2:
        return None
    return parts[1].lower()


def detect_provider(email: str) -> ProviderKey:
    """Map an email address to a provider profile.

    Case-insensitive and pure: the result depends only on the domain.

    Args:
        email: Recipient address.

    Returns:
        First matching ProviderKey, or GENERIC.
    """
    domain = _domain_of(email)
    if not domain:
        return ProviderKey.GENERIC
    for fragment, provider in _PROVIDER_PATTERNS:
        if fragment in domain:
            return provider
    return ProviderKey.GENERIC


def analyze_address(email: str) -> AddressInfo:
    """Validate an address and describe its provider.

    Args:
        email: Recipient address.

    Returns:
        AddressInfo with validity, provider, domain, and the
        known-provider hint.
    """
    if not is_valid_email(email):
        return AddressInfo(
            valid=False,
            provider=ProviderKey.GENERIC,
            domain=_domain_of(email),
            is_known_provider=False,
        )
    domain = _domain_of(email) or ""
    is_known = any(
        known.split(".")[0] in domain for known in _KNOWN_PROVIDER_DOMAINS
    )
    return AddressInfo(
        valid=True,
        provider=detect_provider(email),
        domain=domain,
        is_known_provider=is_known,
    )


def build_transport(provider: ProviderKey, settings: "Settings") -> TransportConfig:
    """Build the SMTP profile for a detected provider.

    Args:
        provider: Detected provider key.
        settings: Application settings (sender credentials, SMTP_*).

    Returns:
        TransportConfig with relaxed certificate checks and a TLS 1.2 floor.
    """
    service = _SERVICE_FOR_PROVIDER.get(provider)
    if service is not None:
        endpoint = _WELL_KNOWN_SERVICES[service]
    elif provider == ProviderKey.ICLOUD:
        endpoint = _ICLOUD_ENDPOINT
    else:
        endpoint = _ServiceEndpoint(
            settings.smtp_host, settings.smtp_port, settings.smtp_secure
        )

    return TransportConfig(
        provider=provider.value,
        hostname=endpoint.hostname,
        port=endpoint.port,
        use_tls=endpoint.use_tls,
        username=settings.email_user,
        password=settings.sender_password,
        service=service,
        timeout=settings.smtp_timeout_seconds,
    )


def build_service_transport(settings: "Settings") -> TransportConfig:
    """Build the profile for the configured EMAIL_SERVICE.

    Unknown service names fall back to the Gmail profile.
    """
    try:
        provider = ProviderKey(settings.email_service.lower())
    except ValueError:
        provider = ProviderKey.GMAIL
    return build_transport(provider, settings)


def build_fallback_transport(settings: "Settings") -> TransportConfig:
    """Build the fixed generic profile used between primary attempts.

    smtp.gmail.com:587 without implicit TLS. Certificate checks are
    relaxed but no TLS floor is imposed.
    """
    return TransportConfig(
        provider=ProviderKey.GENERIC.value,
        hostname=_FALLBACK_ENDPOINT.hostname,
        port=_FALLBACK_ENDPOINT.port,
        use_tls=_FALLBACK_ENDPOINT.use_tls,
        username=settings.email_user,
        password=settings.sender_password,
        min_tls_version=None,
        timeout=settings.smtp_timeout_seconds,
    )

"""Tests for the aiosmtplib transport adapter.

No network: the aiosmtplib client is replaced with a mock.
"""

import ssl
from email.message import EmailMessage
from unittest.mock import AsyncMock, MagicMock, patch

import aiosmtplib
import pytest

from app.providers.mail import (
    MailAuthenticationError,
    MailConnectionError,
    MailTransportError,
    SmtpMailTransport,
    TransportConfig,
)
from app.providers.mail.smtp_adapter import _classify_smtp_error, build_tls_context


def _config(**overrides) -> TransportConfig:
    values = {
        "provider": "gmail",
        "hostname": "smtp.gmail.com",
        "port": 465,
        "use_tls": True,
        "username": "sender@gmail.com",
        "password": "app-password",
    }
    values.update(overrides)
    return TransportConfig(**values)


def _fake_client(*, enter_error: Exception | None = None) -> MagicMock:
    client = MagicMock()
    client.__aenter__ = AsyncMock(side_effect=enter_error, return_value=client)
    client.__aexit__ = AsyncMock(return_value=False)
    client.noop = AsyncMock()
    client.send_message = AsyncMock()
    return client


class TestClassifySmtpError:
    """Tests for _classify_smtp_error()."""

    def test_authentication_error(self):
        """Rejected credentials map to MailAuthenticationError with the code."""
        error = _classify_smtp_error(
            aiosmtplib.SMTPAuthenticationError(535, "Bad credentials"), "verify"
        )

        assert isinstance(error, MailAuthenticationError)
        assert error.smtp_code == 535
        assert error.command == "verify"

    @pytest.mark.parametrize(
        "raw",
        [
            aiosmtplib.SMTPConnectError("refused"),
            aiosmtplib.SMTPServerDisconnected("gone"),
            aiosmtplib.SMTPTimeoutError("slow"),
            ConnectionRefusedError("refused"),
        ],
    )
    def test_connection_errors(self, raw: Exception):
        """Connect, disconnect, timeout, and socket errors are connection errors."""
        assert isinstance(_classify_smtp_error(raw, "send"), MailConnectionError)

    def test_response_error_keeps_code(self):
        """Other server replies keep their SMTP code."""
        error = _classify_smtp_error(
            aiosmtplib.SMTPResponseException(554, "Rejected"), "send"
        )

        assert type(error) is MailTransportError
        assert error.smtp_code == 554


class TestBuildTlsContext:
    """Tests for build_tls_context()."""

    def test_relaxed_certificates_with_tls12_floor(self):
        """Detected profiles skip certificate checks and require TLS 1.2."""
        context = build_tls_context(_config())

        assert context.check_hostname is False
        assert context.verify_mode == ssl.CERT_NONE
        assert context.minimum_version == ssl.TLSVersion.TLSv1_2

    def test_verification_kept_when_requested(self):
        """verify_certificates=True keeps the default checks."""
        context = build_tls_context(_config(verify_certificates=True))

        assert context.check_hostname is True
        assert context.verify_mode == ssl.CERT_REQUIRED


class TestSmtpMailTransport:
    """Tests for SmtpMailTransport."""

    async def test_verify_connects_and_noops(self):
        """verify() opens a session and issues NOOP."""
        client = _fake_client()
        transport = SmtpMailTransport(_config())

        with patch.object(SmtpMailTransport, "_client", return_value=client):
            await transport.verify()

        client.noop.assert_awaited_once()
        client.send_message.assert_not_awaited()

    async def test_verify_maps_auth_failure(self):
        """A rejected login surfaces as MailAuthenticationError."""
        client = _fake_client(
            enter_error=aiosmtplib.SMTPAuthenticationError(535, "Bad credentials")
        )
        transport = SmtpMailTransport(_config())

        with patch.object(SmtpMailTransport, "_client", return_value=client):
            with pytest.raises(MailAuthenticationError):
                await transport.verify()

    async def test_send_returns_message_id(self):
        """send() delivers the message and returns its Message-ID."""
        client = _fake_client()
        message = EmailMessage()
        message["Message-ID"] = "<abc@gmail.com>"
        transport = SmtpMailTransport(_config())

        with patch.object(SmtpMailTransport, "_client", return_value=client):
            message_id = await transport.send(message)

        assert message_id == "<abc@gmail.com>"
        client.send_message.assert_awaited_once_with(message)

    async def test_send_maps_socket_failure(self):
        """Socket errors surface as MailConnectionError."""
        client = _fake_client(enter_error=ConnectionRefusedError("refused"))
        transport = SmtpMailTransport(_config(use_tls=False, port=587))

        with patch.object(SmtpMailTransport, "_client", return_value=client):
            with pytest.raises(MailConnectionError):
                await transport.send(EmailMessage())

    def test_client_uses_profile(self):
        """The aiosmtplib client is built from the profile."""
        client = SmtpMailTransport(_config(timeout=12.5))._client()

        assert client.hostname == "smtp.gmail.com"
        assert client.port == 465
        assert client.use_tls is True
        assert client.timeout == 12.5

"""Tests for the email delivery service.

Covers rendering, message assembly, the retry loop with its generic
fallback, the mock sender, and the start-up configuration check. The
transport is the recording FakeMailServer from conftest.
"""

import logging
from unittest.mock import AsyncMock, patch

import pytest

from app.services.email_delivery import (
    EmailDeliveryFailedError,
    EmailDeliveryService,
)
from tests.conftest import FakeMailServer, make_settings

_GMAIL_HOST = "smtp.gmail.com"
_OUTLOOK_HOST = "smtp-mail.outlook.com"


def _service(mail_server: FakeMailServer, **overrides) -> EmailDeliveryService:
    return EmailDeliveryService(make_settings(**overrides), mail_server, retry_delay=0)


class TestRender:
    """Tests for EmailDeliveryService.render()."""

    def test_bodies_contain_code_name_and_expiry(self, mail_server: FakeMailServer):
        """Both bodies greet the user and show the code."""
        rendered = _service(mail_server, app_name="Acme Calls").render(
            "482913", "Ada"
        )

        for body in (rendered.html, rendered.text):
            assert "482913" in body
            assert "Hi Ada!" in body
            assert "Acme Calls" in body
            assert "10 minutes" in body

    def test_render_is_deterministic(self, mail_server: FakeMailServer):
        """Same inputs render the same bodies."""
        service = _service(mail_server)

        assert service.render("111111", "Ada") == service.render("111111", "Ada")

    def test_html_body_escapes_name(self, mail_server: FakeMailServer):
        """Markup in the name is escaped in HTML but kept in plain text."""
        rendered = _service(mail_server).render("111111", "<b>Ada</b>")

        assert "&lt;b&gt;Ada&lt;/b&gt;" in rendered.html
        assert "<b>Ada</b>" not in rendered.html
        assert "Hi <b>Ada</b>!" in rendered.text


class TestBuildMessage:
    """Tests for EmailDeliveryService.build_message()."""

    def test_headers_and_alternatives(self, mail_server: FakeMailServer):
        """From carries the display name; both bodies are attached."""
        service = _service(mail_server, email_from_name="Acme Calls")
        message = service.build_message(
            "ada@example.com", service.render("111111", "Ada")
        )

        assert message["To"] == "ada@example.com"
        assert message["From"] == "Acme Calls <sender@gmail.com>"
        assert message["Subject"] == service.subject
        assert message["Message-ID"].endswith("@gmail.com>")
        assert message.get_content_type() == "multipart/alternative"
        content_types = [part.get_content_type() for part in message.iter_parts()]
        assert content_types == ["text/plain", "text/html"]

    def test_fallback_sends_from_bare_address(self, mail_server: FakeMailServer):
        """Without the display name, From is the sender address alone."""
        service = _service(mail_server)
        message = service.build_message(
            "ada@example.com",
            service.render("111111", "Ada"),
            with_display_name=False,
        )

        assert message["From"] == "sender@gmail.com"

    def test_subject_uses_app_name(self, mail_server: FakeMailServer):
        """Subject is '<app name> - Verification Code'."""
        service = _service(mail_server, app_name="Acme Calls")

        assert service.subject == "Acme Calls - Verification Code"


class TestSend:
    """Tests for EmailDeliveryService.send()."""

    async def test_first_attempt_success(self, mail_server: FakeMailServer):
        """A healthy provider delivers on the first attempt."""
        message_id = await _service(mail_server).send(
            "ada@gmail.com", "111111", "Ada"
        )

        assert len(mail_server.verified) == 1
        assert len(mail_server.delivered) == 1
        config, message = mail_server.delivered[0]
        assert config.hostname == _GMAIL_HOST
        assert config.port == 465
        assert message_id == message["Message-ID"]

    async def test_primary_profile_follows_recipient(
        self, mail_server: FakeMailServer
    ):
        """An Outlook recipient is sent through the Outlook profile."""
        await _service(mail_server).send("ada@outlook.com", "111111", "Ada")

        assert mail_server.delivered[0][0].hostname == _OUTLOOK_HOST

    async def test_fallback_success_ends_delivery(self, mail_server: FakeMailServer):
        """When the primary fails, the generic profile delivers."""
        mail_server.failing_send.add(_OUTLOOK_HOST)

        await _service(mail_server).send("ada@outlook.com", "111111", "Ada")

        assert len(mail_server.verified) == 1
        config, message = mail_server.delivered[0]
        assert len(mail_server.delivered) == 1
        assert config.hostname == _GMAIL_HOST
        assert config.port == 587
        assert config.use_tls is False
        assert message["From"] == "sender@gmail.com"

    async def test_exhausted_budget_raises_with_last_primary_error(
        self, mail_server: FakeMailServer
    ):
        """Three primary attempts, two fallbacks between them, then failure."""
        mail_server.failing_verify.add(_GMAIL_HOST)
        mail_server.failing_send.add(_GMAIL_HOST)

        with pytest.raises(EmailDeliveryFailedError) as exc_info:
            await _service(mail_server).send("ada@gmail.com", "111111", "Ada")

        assert exc_info.value.attempts == 3
        assert "535" in exc_info.value.last_error
        assert "after 3 attempts" in str(exc_info.value)
        # Primary attempts only verify; fallbacks only send
        assert len(mail_server.verified) == 3
        assert all(config.port == 465 for config in mail_server.verified)
        assert len(mail_server.sent) == 2
        assert all(config.port == 587 for config, _ in mail_server.sent)
        assert mail_server.delivered == []

    async def test_each_attempt_builds_fresh_transport(
        self, mail_server: FakeMailServer
    ):
        """Provider detection and profile building repeat per attempt."""
        mail_server.failing_send.update({_OUTLOOK_HOST, _GMAIL_HOST})

        with pytest.raises(EmailDeliveryFailedError):
            await _service(mail_server).send("ada@outlook.com", "111111", "Ada")

        hosts = [config.hostname for config in mail_server.configs]
        assert hosts == [
            _OUTLOOK_HOST,
            _GMAIL_HOST,
            _OUTLOOK_HOST,
            _GMAIL_HOST,
            _OUTLOOK_HOST,
        ]

    async def test_zero_retries_means_single_attempt(
        self, mail_server: FakeMailServer
    ):
        """With no retry budget there is no fallback either."""
        mail_server.failing_verify.add(_GMAIL_HOST)
        service = EmailDeliveryService(
            make_settings(), mail_server, max_retries=0, retry_delay=0
        )

        with pytest.raises(EmailDeliveryFailedError) as exc_info:
            await service.send("ada@gmail.com", "111111", "Ada")

        assert exc_info.value.attempts == 1
        assert len(mail_server.configs) == 1

    async def test_waits_before_each_retry(self, mail_server: FakeMailServer):
        """The configured delay runs before retries, not before the first try."""
        mail_server.failing_verify.add(_GMAIL_HOST)
        mail_server.failing_send.add(_GMAIL_HOST)
        service = EmailDeliveryService(make_settings(), mail_server, retry_delay=0.5)

        with patch(
            "app.services.email_delivery.asyncio.sleep", new_callable=AsyncMock
        ) as sleep:
            with pytest.raises(EmailDeliveryFailedError):
                await service.send("ada@gmail.com", "111111", "Ada")

        assert sleep.await_count == 2
        sleep.assert_awaited_with(0.5)


class TestSendMock:
    """Tests for EmailDeliveryService.send_mock()."""

    async def test_logs_code_and_returns_mock_id(
        self, mail_server: FakeMailServer, caplog: pytest.LogCaptureFixture
    ):
        """No transport is built; the code goes to the log."""
        with caplog.at_level(logging.WARNING, logger="app.services.email_delivery"):
            message_id = await _service(mail_server).send_mock(
                "ada@yahoo.com", "654321", "Ada"
            )

        assert message_id.startswith("mock-")
        assert message_id.removeprefix("mock-").isdigit()
        assert mail_server.configs == []
        assert "654321" in caplog.text
        assert "yahoo" in caplog.text


class TestCheckConfiguration:
    """Tests for EmailDeliveryService.check_configuration()."""

    async def test_verifies_gmail_and_service_profiles(
        self, mail_server: FakeMailServer
    ):
        """Both profiles are verified and the check passes."""
        service = _service(mail_server, email_service="outlook")

        assert await service.check_configuration() is True

        hosts = [config.hostname for config in mail_server.verified]
        assert hosts == [_GMAIL_HOST, _OUTLOOK_HOST]
        assert mail_server.sent == []

    async def test_reports_failure(
        self, mail_server: FakeMailServer, caplog: pytest.LogCaptureFixture
    ):
        """A rejected login makes the check fail and logs tips."""
        mail_server.failing_verify.add(_GMAIL_HOST)

        with caplog.at_level(logging.ERROR, logger="app.services.email_delivery"):
            ok = await _service(mail_server).check_configuration()

        assert ok is False
        assert "App Password" in caplog.text

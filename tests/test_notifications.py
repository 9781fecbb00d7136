"""Tests for in-app notifications and email delivery"""

import smtplib
from unittest.mock import MagicMock, patch

from sqlalchemy import select

from nannygold.config import settings
from nannygold.db.models import Notification
from nannygold.services.email_notifications import EmailNotificationService, EmailTemplate


class TestNotificationService:
    async def test_notify_admins_writes_one_row_each(self, notifications, admins, test_db):
        sent = await notifications.notify_admins("Escalation", "Booking needs attention", "escalation")

        assert sent == 2
        rows = (await test_db.execute(select(Notification))).scalars().all()
        assert {row.user_id for row in rows} == {admin.id for admin in admins}

    async def test_no_admins_sends_nothing(self, notifications):
        assert await notifications.notify_admins("Escalation", "Nobody home", "escalation") == 0

    async def test_email_failure_is_contained(self, notifications, email_service):
        email_service.send_email.side_effect = RuntimeError("smtp down")

        assert notifications.send_admin_email("Alert", "<p>Alert</p>") is False

    async def test_admin_email_goes_to_configured_address(self, notifications, email_service):
        notifications.send_admin_email("Alert", "<p>Alert</p>")

        email_service.send_email.assert_called_once_with(settings.admin_email, "Alert", "<p>Alert</p>", None)


class TestEmailNotificationService:
    def test_skips_when_not_configured(self):
        assert EmailNotificationService().send_email("ops@example.com", "Hi", "<p>Hi</p>") is False

    def test_sends_over_smtp(self, monkeypatch):
        monkeypatch.setattr(settings, "enable_email_notifications", True)
        monkeypatch.setattr(settings, "smtp_server", "smtp.example.com")
        monkeypatch.setattr(settings, "smtp_username", "mailer")
        monkeypatch.setattr(settings, "smtp_password", "secret")

        with patch("nannygold.services.email_notifications.smtplib.SMTP") as smtp:
            server = MagicMock()
            smtp.return_value.__enter__.return_value = server

            assert EmailNotificationService().send_email("ops@example.com", "Hi", "<p>Hi</p>") is True

        server.login.assert_called_once_with("mailer", "secret")
        server.send_message.assert_called_once()

    def test_attachments_are_included(self, monkeypatch):
        monkeypatch.setattr(settings, "enable_email_notifications", True)
        monkeypatch.setattr(settings, "smtp_server", "smtp.example.com")
        monkeypatch.setattr(settings, "smtp_username", "mailer")
        monkeypatch.setattr(settings, "smtp_password", "secret")

        with patch("nannygold.services.email_notifications.smtplib.SMTP") as smtp:
            server = MagicMock()
            smtp.return_value.__enter__.return_value = server

            EmailNotificationService().send_email(
                "lerato@example.com",
                "Payment advice",
                "<p>Attached</p>",
                attachments=[("PA-2504-0001.pdf", b"%PDF-1.4", "pdf")],
            )

        message = server.send_message.call_args.args[0]
        filenames = [part.get_filename() for part in message.walk() if part.get_filename()]
        assert filenames == ["PA-2504-0001.pdf"]

    def test_smtp_error_returns_false(self, monkeypatch):
        monkeypatch.setattr(settings, "enable_email_notifications", True)
        monkeypatch.setattr(settings, "smtp_server", "smtp.example.com")
        monkeypatch.setattr(settings, "smtp_username", "mailer")
        monkeypatch.setattr(settings, "smtp_password", "secret")

        with patch("nannygold.services.email_notifications.smtplib.SMTP") as smtp:
            smtp.side_effect = smtplib.SMTPConnectError(421, "busy")

            assert EmailNotificationService().send_email("ops@example.com", "Hi", "<p>Hi</p>") is False

    def test_escalation_template_lists_details(self):
        html = EmailTemplate.escalation_html("b-1", "no_alternatives", {"declined_by": "Lerato"})
        assert "b-1" in html
        assert "Lerato" in html

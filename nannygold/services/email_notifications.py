"""Email notification service for admin alerts and payment advice"""

import logging
import smtplib
from email.mime.application import MIMEApplication
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Any

from nannygold.config import settings

logger = logging.getLogger(__name__)


class EmailTemplate:
    """HTML templates for booking core emails"""

    @staticmethod
    def _wrap(title: str, body: str, accent: str = "#c9a227") -> str:
        return f"""
        <!DOCTYPE html>
        <html>
        <head>
            <meta charset="utf-8">
            <title>{title}</title>
            <style>
                body {{ font-family: 'Segoe UI', Tahoma, Geneva, Verdana, sans-serif; line-height: 1.6; color: #333; }}
                .container {{ max-width: 600px; margin: 0 auto; padding: 20px; }}
                .header {{ background: {accent}; color: white; padding: 24px; text-align: center; border-radius: 8px 8px 0 0; }}
                .content {{ background: #fff; padding: 24px; border: 1px solid #e0e0e0; border-radius: 0 0 8px 8px; }}
                .details {{ background: #f8f9fa; padding: 15px; border-radius: 6px; margin: 20px 0; }}
                .footer {{ text-align: center; margin-top: 30px; color: #666; font-size: 12px; }}
            </style>
        </head>
        <body>
            <div class="container">
                <div class="header"><h1>{title}</h1></div>
                <div class="content">
                    {body}
                    <div class="footer"><p>NannyGold Operations</p></div>
                </div>
            </div>
        </body>
        </html>
        """

    @staticmethod
    def reassignment_html(
        booking_id: str,
        original_nanny: str,
        new_nanny: str,
        reason: str,
        alternatives: int,
    ) -> str:
        """Admin heads-up that a booking was automatically reassigned"""
        body = f"""
            <p>A booking was automatically reassigned after the assigned nanny declined.</p>
            <div class="details">
                <ul>
                    <li><strong>Booking:</strong> {booking_id}</li>
                    <li><strong>Original nanny:</strong> {original_nanny}</li>
                    <li><strong>New nanny:</strong> {new_nanny}</li>
                    <li><strong>Reason:</strong> {reason}</li>
                    <li><strong>Alternatives offered to client:</strong> {alternatives}</li>
                </ul>
            </div>
        """
        return EmailTemplate._wrap("Booking Reassigned", body)

    @staticmethod
    def escalation_html(booking_id: str, reason: str, details: dict[str, Any] | None = None) -> str:
        """Urgent admin email for bookings that need manual intervention"""
        rows = "".join(
            f"<li><strong>{key}:</strong> {value}</li>" for key, value in (details or {}).items()
        )
        body = f"""
            <p><strong>This booking requires immediate admin attention.</strong></p>
            <div class="details">
                <ul>
                    <li><strong>Booking:</strong> {booking_id}</li>
                    <li><strong>Reason:</strong> {reason}</li>
                    {rows}
                </ul>
            </div>
        """
        return EmailTemplate._wrap("URGENT: Booking Requires Admin Intervention", body, "#dc3545")

    @staticmethod
    def payment_advice_html(
        nanny_name: str,
        advice_number: str,
        lines: dict[str, Any],
    ) -> str:
        body = f"""
            <p>Hi {nanny_name}, your payment advice {advice_number} is ready.</p>
            <div class="details">
                <ul>
                    <li><strong>Period:</strong> {lines['period_start']} to {lines['period_end']}</li>
                    <li><strong>Gross:</strong> {lines['currency']} {lines['gross_amount']}</li>
                    <li><strong>Commission deducted:</strong> {lines['currency']} {lines['commission_deducted']}</li>
                    <li><strong>Net:</strong> {lines['currency']} {lines['net_amount']}</li>
                </ul>
            </div>
        """
        return EmailTemplate._wrap("Payment Advice", body)


class EmailNotificationService:
    """SMTP delivery for admin alerts and payee documents"""

    def __init__(self):
        self.smtp_server = settings.smtp_server
        self.smtp_port = settings.smtp_port
        self.smtp_username = settings.smtp_username
        self.smtp_password = settings.smtp_password
        self.from_email = settings.from_email or "noreply@nannygold.co.za"
        self.from_name = "NannyGold"

    def _is_configured(self) -> bool:
        return settings.is_email_configured()

    def send_email(
        self,
        to_email: str,
        subject: str,
        html_content: str,
        text_content: str | None = None,
        attachments: list[tuple[str, bytes, str]] | None = None,
    ) -> bool:
        """
        Send email via SMTP; returns False when skipped or failed

        Attachments are (filename, content, MIME subtype) tuples, e.g. a
        payment advice PDF as ("PA-2504-0001.pdf", data, "pdf").
        """
        if not self._is_configured():
            logger.warning("Email service not configured, skipping email", extra={"subject": subject})
            return False

        try:
            msg = MIMEMultipart('mixed' if attachments else 'alternative')
            msg['Subject'] = subject
            msg['From'] = f"{self.from_name} <{self.from_email}>"
            msg['To'] = to_email

            msg.attach(MIMEText(text_content or subject, 'plain'))
            msg.attach(MIMEText(html_content, 'html'))
            for filename, content, subtype in attachments or ():
                part = MIMEApplication(content, _subtype=subtype)
                part.add_header("Content-Disposition", "attachment", filename=filename)
                msg.attach(part)

            with smtplib.SMTP(self.smtp_server, self.smtp_port) as server:
                server.starttls()
                server.login(self.smtp_username, self.smtp_password)
                server.send_message(msg)

            logger.info(f"Email sent successfully to {to_email}")
            return True

        except (smtplib.SMTPException, OSError) as e:
            logger.error(f"Failed to send email to {to_email}: {e}")
            return False

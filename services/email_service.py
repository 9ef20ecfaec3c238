"""
Centralized Email Service using SendGrid with Gmail fallback.
Used for NDA document delivery when automated signing is unavailable.
"""
import base64
import os
import smtplib
from dataclasses import dataclass
from email.mime.application import MIMEApplication
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import List, Optional

from flask import current_app
from sendgrid import SendGridAPIClient
from sendgrid.helpers.mail import (
    Attachment, Content, Disposition, Email, FileContent, FileName, FileType, Mail, To
)

# Default sender email (must be verified in SendGrid)
DEFAULT_SENDER = 'nda@linktech.app'

# Seconds before a stalled SendGrid or SMTP connection counts as a failed send
DEFAULT_TIMEOUT = 30


@dataclass(frozen=True)
class EmailAttachment:
    """A file attached to an outgoing email."""
    filename: str
    content: bytes
    mime_type: str = 'application/pdf'


class EmailService:
    """Centralized email service using SendGrid with Gmail fallback."""

    def __init__(self, api_key=None, sender=None, gmail_username=None, gmail_password=None, timeout=None):
        """Initialize with SendGrid API key."""
        self.api_key = api_key or os.getenv('SENDGRID_API_KEY')
        self.sender = sender or DEFAULT_SENDER
        self.timeout = timeout or DEFAULT_TIMEOUT
        self._client = None

        # Gmail fallback configuration
        self.gmail_username = gmail_username or os.getenv('MAIL_USERNAME')
        self.gmail_password = gmail_password or os.getenv('MAIL_PASSWORD')
        self.gmail_enabled = bool(self.gmail_username and self.gmail_password)

    @classmethod
    def from_config(cls, config) -> 'EmailService':
        return cls(
            api_key=config.get('SENDGRID_API_KEY'),
            sender=config.get('SENDGRID_SENDER'),
            gmail_username=config.get('MAIL_USERNAME'),
            gmail_password=config.get('MAIL_PASSWORD'),
            timeout=config.get('MAIL_TIMEOUT'),
        )

    @property
    def client(self):
        """Lazy-load SendGrid client."""
        if self._client is None:
            if not self.api_key:
                raise ValueError("SENDGRID_API_KEY not configured")
            client = SendGridAPIClient(self.api_key)
            # Applied to every request made through python-http-client
            client.client.timeout = self.timeout
            self._client = client
        return self._client

    def _send_via_gmail(self, to_email: str, subject: str, html_content: str,
                        attachments: Optional[List[EmailAttachment]] = None,
                        reply_to: str = None) -> bool:
        """
        Fallback method to send email via Gmail SMTP when SendGrid fails.

        Returns:
            True if sent successfully, False otherwise
        """
        if not self.gmail_enabled:
            current_app.logger.warning("Gmail fallback not configured - missing MAIL_USERNAME or MAIL_PASSWORD")
            return False

        try:
            current_app.logger.info(f"Attempting Gmail fallback for {to_email}")

            msg = MIMEMultipart('mixed')
            msg['From'] = self.gmail_username
            msg['To'] = to_email
            msg['Subject'] = subject

            if reply_to:
                msg['Reply-To'] = reply_to

            msg.attach(MIMEText(html_content, 'html'))

            for attachment in attachments or []:
                subtype = attachment.mime_type.split('/')[-1]
                part = MIMEApplication(attachment.content, _subtype=subtype)
                part.add_header('Content-Disposition', 'attachment', filename=attachment.filename)
                msg.attach(part)

            with smtplib.SMTP_SSL('smtp.gmail.com', 465, timeout=self.timeout) as server:
                server.login(self.gmail_username, self.gmail_password)
                server.send_message(msg)

            current_app.logger.info(f"✓ Gmail fallback successful for {to_email}")
            return True

        except (smtplib.SMTPException, OSError) as e:
            current_app.logger.error(f"Gmail fallback failed for {to_email}: {str(e)}")
            return False

    def send_email(self, to_email: str, subject: str, html_content: str,
                   attachments: Optional[List[EmailAttachment]] = None,
                   reply_to: str = None) -> bool:
        """
        Send an HTML email through SendGrid, falling back to Gmail SMTP.

        Args:
            to_email: Recipient email address
            subject: Email subject line
            html_content: HTML body
            attachments: Files to attach (optional)
            reply_to: Reply-to email address (optional)

        Returns:
            True if sent successfully, False otherwise
        """
        try:
            current_app.logger.info(f"Preparing email: subject={subject!r}, to={to_email}, attachments={len(attachments or [])}")

            message = Mail(
                from_email=Email(self.sender),
                to_emails=To(to_email),
                subject=subject,
                html_content=Content('text/html', html_content)
            )

            for attachment in attachments or []:
                message.add_attachment(Attachment(
                    FileContent(base64.b64encode(attachment.content).decode('ascii')),
                    FileName(attachment.filename),
                    FileType(attachment.mime_type),
                    Disposition('attachment')
                ))

            if reply_to:
                message.reply_to = Email(reply_to)

            response = self.client.send(message)

            if response.status_code in (200, 201, 202):
                current_app.logger.info(f"✓ SendGrid email sent: to={to_email}, status={response.status_code}")
                return True

            current_app.logger.warning(f"SendGrid failed: to={to_email}, status={response.status_code}")
            current_app.logger.warning(f"Response body: {response.body}")
            # Fall through to Gmail fallback

        except Exception as e:
            current_app.logger.warning(f"SendGrid error: to={to_email}, error={str(e)}")
            # Fall through to Gmail fallback

        if self._send_via_gmail(to_email, subject, html_content, attachments=attachments, reply_to=reply_to):
            return True

        current_app.logger.error(f"✗ All email methods failed: to={to_email}")
        return False


def get_email_service() -> EmailService:
    """Get or create the app's email service."""
    service = current_app.extensions.get('email_service')
    if service is None:
        service = EmailService.from_config(current_app.config)
        current_app.extensions['email_service'] = service
    return service

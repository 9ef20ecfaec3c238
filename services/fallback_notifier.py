"""
NDA Fallback Notifier

Emails the unsigned agreement to both parties when the signing provider
cannot be used, with instructions to sign manually and exchange copies.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List

from markupsafe import escape

from services.email_service import EmailAttachment, EmailService
from services.esign.types import Contact

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Delivery:
    """One email sent to one party."""
    recipient: Contact
    sent: bool


@dataclass
class FallbackResult:
    """Per-party delivery outcome, in recipient order."""
    deliveries: List[Delivery] = field(default_factory=list)

    @property
    def success(self) -> bool:
        """Delivery counts only when every party got the document."""
        return bool(self.deliveries) and all(d.sent for d in self.deliveries)

    @property
    def sent_to(self) -> List[str]:
        return [d.recipient.email for d in self.deliveries if d.sent]

    @property
    def failed(self) -> List[str]:
        return [d.recipient.email for d in self.deliveries if not d.sent]

    def to_list(self) -> List[Dict[str, Any]]:
        return [{'name': d.recipient.name, 'email': d.recipient.email, 'sent': d.sent}
                for d in self.deliveries]


class FallbackNotifier:
    """Delivers the composed NDA by email for manual signature."""

    def __init__(self, email_service: EmailService):
        self.email_service = email_service

    def send(self, document: bytes, file_name: str, recipients: List[Contact],
             project_title: str, reference: str) -> FallbackResult:
        """
        Email the document to every recipient.

        Args:
            document: PDF bytes
            file_name: Attachment file name
            recipients: Both parties' contacts
            project_title: Shown in subject and body
            reference: Agreement reference shown in the body

        Returns:
            FallbackResult with one delivery per recipient, even when two
            parties share an address
        """
        result = FallbackResult()
        for index, recipient in enumerate(recipients):
            others = [c for i, c in enumerate(recipients) if i != index]
            subject = f"Action required: sign the NDA for {project_title}"
            html = _build_instructions_html(recipient, others, project_title, reference)

            try:
                sent = self.email_service.send_email(
                    to_email=recipient.email,
                    subject=subject,
                    html_content=html,
                    attachments=[EmailAttachment(filename=file_name, content=document)],
                )
            except ValueError as e:
                # Raised when no email transport is configured at all
                logger.error(f"NDA fallback email to {recipient.email} could not be sent: {e}")
                sent = False

            result.deliveries.append(Delivery(recipient=recipient, sent=sent))
            if sent:
                logger.info(f"NDA fallback email sent to {recipient.email} (ref {reference})")
            else:
                logger.error(f"NDA fallback email to {recipient.email} failed (ref {reference})")

        return result


def _build_instructions_html(recipient: Contact, others: List[Contact], project_title: str, reference: str) -> str:
    counterpart_lines = ''.join(
        f"<li>{escape(c.name)} &lt;{escape(c.email)}&gt; {escape(c.phone)}</li>" for c in others
    )
    return f"""
    <div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto; padding: 20px;">
        <h2 style="color: #1a56db;">Non-Disclosure Agreement - {escape(project_title)}</h2>
        <p>Hello {escape(recipient.name)},</p>
        <p>
            Our electronic signing service is currently unavailable, so the non-disclosure
            agreement for <strong>{escape(project_title)}</strong> is attached to this email instead.
        </p>
        <ol>
            <li>Review the attached agreement.</li>
            <li>Sign it (handwritten or with your own digital signature).</li>
            <li>Send the signed copy to the other party and keep a copy for your records.</li>
        </ol>
        <p>The other party:</p>
        <ul>{counterpart_lines}</ul>
        <p style="color: #666666; font-size: 12px;">Reference: {reference}</p>
    </div>
    """

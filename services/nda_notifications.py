"""
NDA notification emails and in-app notifications.
Uses Flask-Mail (Gmail SMTP) for notification emails.
"""
from flask import current_app
from flask_mail import Message
from markupsafe import escape
from smtplib import SMTPException

from models import db, Notification, Project, User


def get_mail():
    """Get Flask-Mail instance from app extensions."""
    return current_app.extensions.get('mail')


def _send_mail(subject, recipient, html):
    """Send a notification email; failures are logged, never raised."""
    mail = get_mail()
    if not mail:
        current_app.logger.warning("Flask-Mail not configured, skipping NDA notification email")
        return False

    try:
        msg = Message(subject=subject, recipients=[recipient])
        msg.html = html
        mail.send(msg)
        current_app.logger.info(f"NDA notification email sent to {recipient}")
        return True
    except (SMTPException, OSError) as e:
        current_app.logger.error(f"Failed to send NDA notification email to {recipient}: {str(e)}")
        return False


def _notify(user_id, type_, title, message, nda_id):
    notification = Notification(
        user_id=user_id,
        type=type_,
        title=title,
        message=message,
        nda_id=nda_id
    )
    db.session.add(notification)
    return notification


def notify_entrepreneur_input_required(nda):
    """
    Tell the project owner a company requested an NDA and their details are needed.
    """
    project = db.session.get(Project, nda.project_id)
    owner = db.session.get(User, project.owner_id)
    company_name = nda.company_info.get('legal_name') or 'A company'

    _notify(
        owner.id,
        'nda_input_required',
        'NDA signature requested',
        f"{company_name} requested a non-disclosure agreement for \"{project.title}\". "
        f"Please complete your signer details.",
        nda.id
    )

    complete_url = f"{current_app.config.get('APP_BASE_URL', '')}/nda/{nda.id}/complete"
    _send_mail(
        f"NDA requested for {project.title}",
        owner.email,
        f"""
        <div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto; padding: 20px;">
            <p style="font-size: 16px; color: #374151;">
                <strong>{escape(company_name)}</strong> wants to sign a non-disclosure agreement
                for your project <strong>{escape(project.title)}</strong>.
            </p>
            <p style="font-size: 16px; color: #374151;">
                Add your signer details so both parties can receive the signing invitations:
            </p>
            <div style="text-align: center; margin: 30px 0;">
                <a href="{complete_url}"
                   style="background: #1a56db; color: white; padding: 14px 32px;
                          text-decoration: none; border-radius: 8px; font-weight: bold;">
                    Complete NDA details
                </a>
            </div>
        </div>
        """
    )


def notify_nda_signed(nda):
    """Tell both parties the agreement is fully signed."""
    project = db.session.get(Project, nda.project_id)
    recipients = [(project.owner_id, (nda.entrepreneur_info or {}).get('email')),
                  (nda.company_user_id, nda.company_info.get('email'))]

    for user_id, email in recipients:
        _notify(
            user_id,
            'nda_signed',
            'NDA signed',
            f"The non-disclosure agreement for \"{project.title}\" has been signed by both parties.",
            nda.id
        )
        if email:
            _send_mail(
                f"NDA signed: {project.title}",
                email,
                f"""
                <div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto; padding: 20px;">
                    <p style="font-size: 16px; color: #374151;">
                        The non-disclosure agreement for <strong>{escape(project.title)}</strong>
                        is now signed by both parties. You can download it from the project page.
                    </p>
                </div>
                """
            )


def notify_nda_closed(nda, reason):
    """Tell both parties an agreement was cancelled, voided or rejected at the provider."""
    project = db.session.get(Project, nda.project_id)
    for user_id in (project.owner_id, nda.company_user_id):
        _notify(
            user_id,
            'nda_closed',
            'NDA closed',
            f"The non-disclosure agreement for \"{project.title}\" was closed: {reason}.",
            nda.id
        )

"""
Audit Service - Centralized audit trail logging for NDA agreements.

Provides helper functions to log audit events consistently throughout the application.
Every transition of an NDA agreement and every provider interaction is tracked.
Events are staged on the current session; the workflow's commit persists them
together with the state change they describe.
"""

from flask import request
from flask_login import current_user
from models import AuditEvent


def get_request_context():
    """
    Extract IP address and user agent from the current request.
    Returns (ip_address, user_agent) tuple.
    """
    ip_address = None
    user_agent = None

    try:
        if request:
            # Get IP, handling proxies
            ip_address = request.headers.get('X-Forwarded-For', request.remote_addr)
            if ip_address and ',' in ip_address:
                ip_address = ip_address.split(',')[0].strip()

            user_agent = request.headers.get('User-Agent', '')[:500]  # Truncate if too long
    except RuntimeError:
        # Outside of request context
        pass

    return ip_address, user_agent


def get_current_actor_id():
    """Get the current user's ID if authenticated."""
    try:
        if current_user and current_user.is_authenticated:
            return current_user.id
    except (RuntimeError, AttributeError):
        pass
    return None


def log_event(event_type, nda=None, description=None, event_data=None, source='app', actor_id=None):
    """
    Log an audit event with automatic context extraction.

    Args:
        event_type: One of the AuditEvent type constants
        nda: The NdaAgreement the event is about (optional)
        description: Human-readable description of the event
        event_data: Dict of additional context data
        source: Source of the event ('app', 'webhook', 'system')
        actor_id: Override for the actor (defaults to current user)

    Returns:
        The created AuditEvent instance
    """
    ip_address, user_agent = get_request_context()

    if actor_id is None:
        actor_id = get_current_actor_id()

    return AuditEvent.log(
        event_type,
        nda_id=nda.id if nda is not None else None,
        project_id=nda.project_id if nda is not None else None,
        actor_id=actor_id,
        description=description,
        event_data=event_data or {},
        source=source,
        ip_address=ip_address,
        user_agent=user_agent
    )


# =============================================================================
# LIFECYCLE EVENTS
# =============================================================================

def log_nda_initiated(nda, actor_id=None):
    """Log when a company requests an NDA for a project."""
    return log_event(
        AuditEvent.NDA_INITIATED,
        nda=nda,
        description=f"NDA requested by {nda.company_info.get('legal_name')}",
        event_data={'company_user_id': nda.company_user_id, 'representative_email': nda.company_info.get('email')},
        actor_id=actor_id
    )


def log_nda_completed(nda, actor_id=None):
    """Log when the project owner supplies their signer details."""
    return log_event(
        AuditEvent.NDA_COMPLETED,
        nda=nda,
        description="Project owner completed signer details",
        event_data={'entrepreneur_email': (nda.entrepreneur_info or {}).get('email')},
        actor_id=actor_id
    )


def log_nda_cancelled(nda, reason=None, actor_id=None):
    """Log when either party cancels the agreement before invitations go out."""
    return log_event(
        AuditEvent.NDA_CANCELLED,
        nda=nda,
        description="NDA cancelled",
        event_data={'reason': reason},
        actor_id=actor_id
    )


def log_nda_voided(nda, reason=None, actor_id=None):
    """Log when an admin voids an agreement with live invitations."""
    return log_event(
        AuditEvent.NDA_VOIDED,
        nda=nda,
        description="NDA voided",
        event_data={'reason': reason, 'envelope_id': nda.provider_envelope_id},
        actor_id=actor_id
    )


# =============================================================================
# PROVIDER EVENTS
# =============================================================================

def log_document_uploaded(nda):
    """Log the upload checkpoint."""
    return log_event(
        AuditEvent.NDA_DOCUMENT_UPLOADED,
        nda=nda,
        description="Agreement uploaded to signing provider",
        event_data={
            'document_id': nda.provider_document_id,
            'envelope_id': nda.provider_envelope_id,
            'reference_number': nda.provider_reference_number
        }
    )


def log_invitations_sent(nda, signer_emails):
    """Log when the provider accepted the signing invitations."""
    return log_event(
        AuditEvent.NDA_INVITATIONS_SENT,
        nda=nda,
        description=f"Signing invitations sent to {len(signer_emails)} signer(s)",
        event_data={'signers': signer_emails, 'envelope_id': nda.provider_envelope_id}
    )


def log_provider_failure(nda, error, attempts):
    """Log a provider pipeline failure (after retries)."""
    return log_event(
        AuditEvent.NDA_PROVIDER_FAILED,
        nda=nda,
        description="Signing provider pipeline failed",
        event_data={
            'error': str(error),
            'error_type': type(error).__name__,
            'status_code': getattr(error, 'status_code', None),
            'attempts': attempts
        }
    )


def log_fallback_sent(nda, recipients):
    """Log successful email fallback delivery."""
    return log_event(
        AuditEvent.NDA_FALLBACK_SENT,
        nda=nda,
        description="Agreement emailed to both parties for manual signature",
        event_data={'recipients': recipients}
    )


def log_fallback_failed(nda, results):
    """Log a failed email fallback (per-recipient results)."""
    return log_event(
        AuditEvent.NDA_FALLBACK_FAILED,
        nda=nda,
        description="Email fallback could not reach both parties",
        event_data={'results': results}
    )


def log_status_reconciled(nda, old_status, new_status, provider_status, source):
    """Log a reconciled provider status (only logged when something changed)."""
    return log_event(
        AuditEvent.NDA_STATUS_RECONCILED,
        nda=nda,
        description=f"Status {old_status} -> {new_status} (provider: {provider_status})",
        event_data={'old_status': old_status, 'new_status': new_status, 'provider_status': provider_status},
        source=source
    )


def log_webhook_received(nda, provider_status, duplicate):
    """Log an authenticated provider webhook delivery."""
    return log_event(
        AuditEvent.NDA_WEBHOOK_RECEIVED,
        nda=nda,
        description=f"Provider webhook received: {provider_status}",
        event_data={'provider_status': provider_status, 'duplicate': duplicate},
        source='webhook'
    )


def log_document_downloaded(nda, source):
    """Log when a party downloads the agreement document."""
    return log_event(
        AuditEvent.NDA_DOCUMENT_DOWNLOADED,
        nda=nda,
        description=f"Agreement document downloaded ({source})",
        event_data={'source': source}
    )

# models.py
from flask_sqlalchemy import SQLAlchemy
from flask_login import UserMixin
from datetime import datetime

db = SQLAlchemy()


class User(UserMixin, db.Model):
    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(80), unique=True, nullable=False)
    email = db.Column(db.String(120), unique=True, nullable=False)
    full_name = db.Column(db.String(160), nullable=False)
    phone = db.Column(db.String(20))
    role = db.Column(db.String(20), nullable=False, default='entrepreneur')  # entrepreneur, company, admin
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    @property
    def is_admin(self):
        return self.role == 'admin'

    @property
    def is_company(self):
        return self.role == 'company'

    def __repr__(self):
        return f'<User {self.username} ({self.role})>'


class CompanyProfile(db.Model):
    """Registered company details for a company account."""
    __tablename__ = 'company_profiles'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('user.id', ondelete='CASCADE'), unique=True, nullable=False)
    legal_name = db.Column(db.String(200))
    contact_email = db.Column(db.String(120))
    contact_phone = db.Column(db.String(20))
    city = db.Column(db.String(100))
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    user = db.relationship('User', backref=db.backref('company_profile', uselist=False))

    @property
    def is_complete(self):
        """A profile can back an NDA only with a legal name and both contact channels."""
        return bool(self.legal_name and self.contact_email and self.contact_phone)

    def __repr__(self):
        return f'<CompanyProfile {self.legal_name}>'


class Project(db.Model):
    __tablename__ = 'projects'

    id = db.Column(db.Integer, primary_key=True)
    owner_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False)
    title = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text)
    # Denormalized NDA summary for listing pages
    nda_status = db.Column(db.String(30))
    active_nda_id = db.Column(db.Integer)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    owner = db.relationship('User', backref=db.backref('projects', lazy=True))

    def __repr__(self):
        return f'<Project {self.title[:30]}>'


class NdaAgreement(db.Model):
    """
    One non-disclosure agreement negotiation between a project and a company.

    The row is a local projection of the provider envelope: the provider is
    the system of record for signatures, and every provider-observed status
    change arrives through the workflow's reconcile step. Rows are never
    deleted; a new agreement supersedes an old one only after the old one
    reached a terminal status.
    """
    __tablename__ = 'nda_agreements'

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(db.Integer, db.ForeignKey('projects.id'), nullable=False, index=True)
    company_user_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False, index=True)
    status = db.Column(db.String(30), nullable=False, default='awaiting_entrepreneur', index=True)

    # Party snapshots
    company_info = db.Column(db.JSON, nullable=False)
    entrepreneur_info = db.Column(db.JSON)

    # Provider identifiers (document and envelope ids are written together)
    provider_document_id = db.Column(db.String(100))
    provider_envelope_id = db.Column(db.String(100))
    provider_reference_number = db.Column(db.String(100), unique=True)
    provider_envelope_status = db.Column(db.String(50))
    provider_signers = db.Column(db.JSON)
    provider_payload_hash = db.Column(db.String(64))
    last_provider_error = db.Column(db.Text)

    # Fallback delivery
    fallback_used = db.Column(db.Boolean, nullable=False, default=False)
    fallback_sent_at = db.Column(db.DateTime)

    pdf_url = db.Column(db.String(500))
    invitations_sent_at = db.Column(db.DateTime)
    signed_at = db.Column(db.DateTime)
    expires_at = db.Column(db.DateTime)
    cancelled_at = db.Column(db.DateTime)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    project = db.relationship('Project', backref=db.backref('nda_agreements', lazy='dynamic'))
    company_user = db.relationship('User', foreign_keys=[company_user_id])

    def to_dict(self):
        return {
            'ndaId': self.id,
            'projectId': self.project_id,
            'status': self.status,
            'companyInfo': self.company_info,
            'entrepreneurInfo': self.entrepreneur_info,
            'providerDocumentId': self.provider_document_id,
            'providerEnvelopeId': self.provider_envelope_id,
            'providerReferenceNumber': self.provider_reference_number,
            'providerEnvelopeStatus': self.provider_envelope_status,
            'lastProviderError': self.last_provider_error,
            'fallbackUsed': self.fallback_used,
            'pdfUrl': self.pdf_url,
            'invitationsSentAt': _iso(self.invitations_sent_at),
            'signedAt': _iso(self.signed_at),
            'expiresAt': _iso(self.expires_at),
            'createdAt': _iso(self.created_at),
            'updatedAt': _iso(self.updated_at),
        }

    def __repr__(self):
        return f'<NdaAgreement {self.id} project={self.project_id} status={self.status}>'


class Notification(db.Model):
    """In-app notification shown in the user's notification bell."""
    __tablename__ = 'notifications'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('user.id', ondelete='CASCADE'), nullable=False, index=True)
    type = db.Column(db.String(50), nullable=False)
    title = db.Column(db.String(200), nullable=False)
    message = db.Column(db.Text)
    nda_id = db.Column(db.Integer, db.ForeignKey('nda_agreements.id', ondelete='SET NULL'))
    is_read = db.Column(db.Boolean, nullable=False, default=False)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    user = db.relationship('User', backref=db.backref('notifications', lazy='dynamic'))

    def __repr__(self):
        return f'<Notification {self.type} user={self.user_id}>'


class AuditEvent(db.Model):
    """Append-only audit trail for the NDA workflow."""
    __tablename__ = 'audit_events'

    # Event types
    NDA_INITIATED = 'nda_initiated'
    NDA_COMPLETED = 'nda_completed'
    NDA_DOCUMENT_UPLOADED = 'nda_document_uploaded'
    NDA_INVITATIONS_SENT = 'nda_invitations_sent'
    NDA_PROVIDER_FAILED = 'nda_provider_failed'
    NDA_FALLBACK_SENT = 'nda_fallback_sent'
    NDA_FALLBACK_FAILED = 'nda_fallback_failed'
    NDA_STATUS_RECONCILED = 'nda_status_reconciled'
    NDA_WEBHOOK_RECEIVED = 'nda_webhook_received'
    NDA_DOCUMENT_DOWNLOADED = 'nda_document_downloaded'
    NDA_CANCELLED = 'nda_cancelled'
    NDA_VOIDED = 'nda_voided'

    id = db.Column(db.Integer, primary_key=True)
    nda_id = db.Column(db.Integer, db.ForeignKey('nda_agreements.id', ondelete='SET NULL'), index=True)
    project_id = db.Column(db.Integer, db.ForeignKey('projects.id', ondelete='SET NULL'), index=True)
    actor_id = db.Column(db.Integer, db.ForeignKey('user.id', ondelete='SET NULL'))
    event_type = db.Column(db.String(50), nullable=False, index=True)
    description = db.Column(db.String(500))
    event_data = db.Column(db.JSON)
    source = db.Column(db.String(50), default='app')  # app, webhook, system
    ip_address = db.Column(db.String(45))
    user_agent = db.Column(db.String(500))
    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)

    @classmethod
    def log(cls, event_type, **kwargs):
        """Create and stage an audit event; the caller's commit persists it."""
        event = cls(event_type=event_type, **kwargs)
        db.session.add(event)
        return event

    def __repr__(self):
        return f'<AuditEvent {self.event_type} nda={self.nda_id}>'


def _iso(value):
    return value.isoformat() if value else None

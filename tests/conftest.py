"""
Shared fixtures for the NDA test-suite.

Run with: python -m pytest tests/ -v
"""

import sys
from pathlib import Path

import pytest
from flask import g

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from app import create_app
from models import db, User, CompanyProfile, Project
from services.esign import EnvelopeStatus, InvitationResult, UploadResult
from services.fallback_notifier import FallbackNotifier
from services.nda_repository import NdaRepository, RecordLocks
from services.nda_workflow import NdaWorkflow


COMPANY_REP = {'name': 'Ahmed Saleh', 'email': 'ahmed@acme.sa', 'phone': '0551234567'}
ENTREPRENEUR = {'name': 'Noor Alharbi', 'email': 'noor@example.sa', 'phone': '+966 55 765 4321'}


class StubProvider:
    """
    Scriptable stand-in for SadiqClient.

    Queue exceptions in upload_errors / invite_errors to make successive
    calls fail; set status / status_error / download_error for reads.
    """

    def __init__(self):
        self.upload_errors = []
        self.invite_errors = []
        self.status = EnvelopeStatus(status='InProgress')
        self.status_error = None
        self.download_content = b'%PDF-1.4 signed copy from provider'
        self.download_error = None
        self.uploads = []
        self.invitations = []
        self.status_calls = []
        self.downloads = []

    def upload_document(self, content, file_name, reference_number=None):
        self.uploads.append({'content': content, 'file_name': file_name, 'reference_number': reference_number})
        if self.upload_errors:
            raise self.upload_errors.pop(0)
        n = len(self.uploads)
        return UploadResult(
            document_id=f'doc-{n}',
            envelope_id=f'env-{n}',
            reference_number=reference_number or f'ref-{n}',
            status='Draft'
        )

    def create_and_invite(self, document_id, signers, project_title):
        self.invitations.append({'document_id': document_id, 'signers': list(signers), 'project_title': project_title})
        if self.invite_errors:
            raise self.invite_errors.pop(0)
        return InvitationResult(envelope_id=None, status='InProgress')

    def get_envelope_status(self, reference):
        self.status_calls.append(reference)
        if self.status_error is not None:
            raise self.status_error
        return self.status

    def download_document(self, document_id):
        self.downloads.append(document_id)
        if self.download_error is not None:
            raise self.download_error
        return self.download_content


class StubEmailService:
    """Records outgoing email; addresses in fail_for report a failed send."""

    def __init__(self):
        self.sent = []
        self.fail_for = set()

    def send_email(self, to_email, subject, html_content, attachments=None, reply_to=None):
        self.sent.append({
            'to': to_email,
            'subject': subject,
            'html': html_content,
            'attachments': list(attachments or []),
        })
        return to_email not in self.fail_for


@pytest.fixture
def app():
    """Application with a fresh in-memory database."""
    app = create_app('config.TestConfig')
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def users(app):
    """Project owner, two companies, an unrelated entrepreneur and an admin."""
    owner = User(username='noor', email='noor@example.sa', full_name='Noor Alharbi',
                 phone='0557654321', role='entrepreneur')
    company = User(username='acme', email='ops@acme.sa', full_name='Acme Ops', role='company')
    other_company = User(username='globex', email='ops@globex.sa', full_name='Globex Ops', role='company')
    outsider = User(username='sami', email='sami@example.sa', full_name='Sami Qahtani', role='entrepreneur')
    admin = User(username='admin', email='admin@linktech.app', full_name='Platform Admin', role='admin')
    db.session.add_all([owner, company, other_company, outsider, admin])
    db.session.flush()

    db.session.add_all([
        CompanyProfile(user_id=company.id, legal_name='Acme Trading Co.', contact_email='legal@acme.sa',
                       contact_phone='0112345678', city='Riyadh'),
        CompanyProfile(user_id=other_company.id, legal_name='Globex LLC', contact_email='legal@globex.sa',
                       contact_phone='0123456789', city='Jeddah'),
    ])
    db.session.commit()

    return {
        'owner': owner,
        'company': company,
        'other_company': other_company,
        'outsider': outsider,
        'admin': admin,
    }


@pytest.fixture
def project(users):
    project = Project(id=42, owner_id=users['owner'].id, title='Fleet Tracking App',
                      description='Route optimisation for delivery fleets')
    db.session.add(project)
    db.session.commit()
    return project


@pytest.fixture
def provider():
    return StubProvider()


@pytest.fixture
def email_service():
    return StubEmailService()


@pytest.fixture
def workflow(app, provider, email_service):
    """Workflow wired to the stub provider and email service, installed on the app."""
    workflow = NdaWorkflow(
        repository=NdaRepository(),
        provider=provider,
        fallback_notifier=FallbackNotifier(email_service),
        config=app.config,
        locks=RecordLocks(),
    )
    app.extensions['nda_workflow'] = workflow
    return workflow


@pytest.fixture
def initiated(workflow, users, project):
    """An NDA requested by the company, awaiting the owner's details."""
    result = workflow.initiate(users['company'], project.id, dict(COMPANY_REP))
    return result['ndaId']


@pytest.fixture
def invited(workflow, users, initiated):
    """An NDA whose invitations are out at the provider."""
    workflow.complete(users['owner'], initiated, dict(ENTREPRENEUR))
    return initiated


@pytest.fixture
def login(client):
    """Log a user in on the test client."""
    def _login(user):
        # Requests share the fixture app context, so drop any cached user
        g.pop('_login_user', None)
        with client.session_transaction() as sess:
            sess['_user_id'] = str(user.id)
            sess['_fresh'] = True
    return _login

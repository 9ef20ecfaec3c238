"""
HTTP tests for the NDA blueprint.

Run with: python -m pytest tests/test_nda_routes.py -v
"""

from models import db, NdaAgreement
from services.esign import ProviderPermanentError, ProviderTransientError

from conftest import COMPANY_REP, ENTREPRENEUR

WEBHOOK_AUTH = {'Authorization': 'Bearer test-webhook-secret'}


class TestAuthentication:

    def test_api_requires_login(self, client, workflow, project):
        response = client.post(f'/api/projects/{project.id}/nda/initiate', json={'companyRep': COMPANY_REP})

        assert response.status_code == 401
        assert response.get_json() == {'error': 'Authentication required'}


class TestInitiateRoute:

    def test_initiate_returns_201(self, client, login, workflow, users, project):
        login(users['company'])

        response = client.post(f'/api/projects/{project.id}/nda/initiate', json={'companyRep': COMPANY_REP})

        assert response.status_code == 201
        body = response.get_json()
        assert body['status'] == 'awaiting_entrepreneur'
        assert db.session.get(NdaAgreement, body['ndaId']) is not None

    def test_duplicate_returns_409(self, client, login, workflow, users, project, initiated):
        login(users['company'])

        response = client.post(f'/api/projects/{project.id}/nda/initiate', json={'companyRep': COMPANY_REP})

        assert response.status_code == 409
        assert response.get_json()['ndaId'] == initiated

    def test_validation_returns_400(self, client, login, workflow, users, project):
        login(users['company'])

        response = client.post(f'/api/projects/{project.id}/nda/initiate', json={'companyRep': {'name': 'Ahmed'}})

        assert response.status_code == 400
        assert response.get_json()['missing'] == ['email', 'phone']

    def test_unknown_project_returns_404(self, client, login, workflow, users, project):
        login(users['company'])

        response = client.post('/api/projects/999/nda/initiate', json={'companyRep': COMPANY_REP})

        assert response.status_code == 404


class TestCompleteRoute:

    def test_complete_returns_reference(self, client, login, workflow, users, initiated):
        login(users['owner'])

        response = client.post(f'/api/nda/{initiated}/complete', json={'entrepreneur': ENTREPRENEUR})

        assert response.status_code == 200
        body = response.get_json()
        assert body['status'] == 'invitations_sent'
        assert body['providerReferenceNumber']

    def test_complete_fallback_response(self, client, login, workflow, users, provider, initiated):
        provider.upload_errors = [ProviderPermanentError('bad request', status_code=400)]
        login(users['owner'])

        response = client.post(f'/api/nda/{initiated}/complete', json={'entrepreneur': ENTREPRENEUR})

        assert response.status_code == 200
        body = response.get_json()
        assert body['fallbackUsed'] is True
        assert sorted(body['emailsSentTo']) == ['ahmed@acme.sa', 'noor@example.sa']

    def test_complete_fallback_failure_returns_502(self, client, login, workflow, users, provider,
                                                   email_service, initiated):
        provider.upload_errors = [ProviderTransientError('timed out'), ProviderTransientError('timed out')]
        email_service.fail_for = {'noor@example.sa', 'ahmed@acme.sa'}
        login(users['owner'])

        response = client.post(f'/api/nda/{initiated}/complete', json={'entrepreneur': ENTREPRENEUR})

        assert response.status_code == 502
        body = response.get_json()
        assert body['lastProviderError'] == 'timed out'
        assert len(body['contacts']) == 2
        assert body['ndaId'] == initiated

    def test_complete_by_company_returns_403(self, client, login, workflow, users, initiated):
        login(users['company'])

        response = client.post(f'/api/nda/{initiated}/complete', json={'entrepreneur': ENTREPRENEUR})

        assert response.status_code == 403


class TestReadRoutes:

    def test_get_status(self, client, login, workflow, users, invited):
        login(users['company'])

        response = client.get(f'/api/nda/{invited}?refresh=false')

        assert response.status_code == 200
        body = response.get_json()
        assert body['ndaId'] == invited
        assert body['status'] == 'invitations_sent'
        assert body['signers']['total'] == 0

    def test_get_status_forbidden(self, client, login, workflow, users, invited):
        login(users['other_company'])

        response = client.get(f'/api/nda/{invited}')

        assert response.status_code == 403

    def test_document_download(self, client, login, workflow, users, provider, invited):
        login(users['owner'])

        response = client.get(f'/api/nda/{invited}/document')

        assert response.status_code == 200
        assert response.mimetype == 'application/pdf'
        assert response.headers['X-Nda-Document-Source'] == 'provider'
        assert 'nda-project-42.pdf' in response.headers['Content-Disposition']
        assert response.data == provider.download_content

    def test_document_reconstruction_header(self, client, login, workflow, users, provider, invited):
        provider.download_error = ProviderTransientError('down')
        login(users['owner'])

        response = client.get(f'/api/nda/{invited}/document')

        assert response.status_code == 200
        assert response.headers['X-Nda-Document-Source'] == 'reconstruction'
        assert response.data.startswith(b'%PDF')

    def test_list_project_ndas(self, client, login, workflow, users, project, initiated):
        login(users['owner'])

        response = client.get(f'/api/projects/{project.id}/nda')

        assert response.status_code == 200
        assert [n['ndaId'] for n in response.get_json()['ndas']] == [initiated]


class TestCancelVoidRoutes:

    def test_cancel(self, client, login, workflow, users, initiated):
        login(users['company'])

        response = client.post(f'/api/nda/{initiated}/cancel', json={'reason': 'No longer needed'})

        assert response.status_code == 200
        assert response.get_json()['status'] == 'cancelled'

    def test_cancel_conflict(self, client, login, workflow, users, invited):
        login(users['company'])

        response = client.post(f'/api/nda/{invited}/cancel')

        assert response.status_code == 409

    def test_void_by_admin(self, client, login, workflow, users, invited):
        login(users['admin'])

        response = client.post(f'/api/nda/{invited}/void', json={'reason': 'Duplicate'})

        assert response.status_code == 200
        assert response.get_json()['status'] == 'voided'

    def test_void_by_owner_forbidden(self, client, login, workflow, users, invited):
        login(users['owner'])

        response = client.post(f'/api/nda/{invited}/void')

        assert response.status_code == 403


class TestWebhookRoute:

    def payload(self, nda_id, status='Completed'):
        nda = db.session.get(NdaAgreement, nda_id)
        return {
            'referenceNumber': nda.provider_reference_number,
            'status': status,
            'signatories': [
                {'email': 'noor@example.sa', 'status': 'Signed'},
                {'email': 'ahmed@acme.sa', 'status': 'Signed'},
            ],
        }

    def test_webhook_signed(self, client, workflow, invited):
        response = client.post('/api/sadiq/webhook', json=self.payload(invited), headers=WEBHOOK_AUTH)

        assert response.status_code == 200
        body = response.get_json()
        assert body['received'] is True
        assert body['status'] == 'signed'

    def test_webhook_without_credentials(self, client, workflow, invited):
        response = client.post('/api/sadiq/webhook', json=self.payload(invited))

        assert response.status_code == 401
        db.session.expire_all()
        assert db.session.get(NdaAgreement, invited).status == 'invitations_sent'

    def test_webhook_unknown_envelope(self, client, workflow, invited):
        response = client.post('/api/sadiq/webhook', json={'referenceNumber': 'unknown', 'status': 'Completed'},
                               headers=WEBHOOK_AUTH)

        assert response.status_code == 404

    def test_webhook_malformed(self, client, workflow, invited):
        response = client.post('/api/sadiq/webhook', data='not json', headers=WEBHOOK_AUTH,
                               content_type='application/json')

        assert response.status_code == 400

"""
Sadiq client tests against a fake HTTP session.

Run with: python -m pytest tests/test_sadiq_client.py -v
"""

import base64
import json

import pytest
import requests

from services.esign import (
    EnvelopeStatus,
    ProviderPermanentError,
    ProviderTransientError,
    ReconciliationError,
    SadiqClient,
    Signer,
    format_phone_number,
)

TOKEN_RESPONSE = {'access_token': 'live-token', 'expires_in': 3600}


class FakeResponse:
    def __init__(self, status_code=200, body=None, text=None):
        self.status_code = status_code
        self.text = text if text is not None else json.dumps(body if body is not None else {})

    def json(self):
        return json.loads(self.text)


class FakeSession:
    """Returns queued responses (or raises queued exceptions) in order, recording every call."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.calls = []

    def request(self, method, url, timeout=None, **kwargs):
        self.calls.append({'method': method, 'url': url, 'timeout': timeout, **kwargs})
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


def make_client(*responses, **overrides):
    session = FakeSession(*responses)
    options = dict(
        base_url='https://sadiq.test',
        email='integration@linktech.test',
        password='secret',
        account_id='acct',
        account_secret='acct-secret',
        webhook_id='wh-1',
        webhook_secret='hook-secret',
        session=session,
    )
    options.update(overrides)
    return SadiqClient(**options), session


def token():
    return FakeResponse(200, TOKEN_RESPONSE)


class TestPhoneNumbers:

    @pytest.mark.parametrize('raw,expected', [
        ('+966551234567', '+966551234567'),
        ('00966551234567', '+966551234567'),
        ('966551234567', '+966551234567'),
        ('0551234567', '+966551234567'),
        ('551234567', '+966551234567'),
        ('+966 55 123 4567', '+966551234567'),
        ('055-123-4567', '+966551234567'),
        ('(055) 123.4567', '+966551234567'),
        ('0112345678', '+966112345678'),
    ])
    def test_normalizes_saudi_numbers(self, raw, expected):
        assert format_phone_number(raw) == expected

    @pytest.mark.parametrize('raw', [None, '', '12345', '+971501234567', '0751234567', '05512345678'])
    def test_rejects_other_numbers(self, raw):
        assert format_phone_number(raw) is None


class TestAuthentication:

    def test_mock_mode_without_credentials(self):
        client = SadiqClient(email=None, password=None, session=FakeSession())
        assert client.mock_mode
        assert client.authenticate() == 'mock-token'

    def test_token_request(self):
        client, session = make_client(token(), client_auth='Y2xpZW50OnNlY3JldA==')

        assert client.authenticate() == 'live-token'
        call = session.calls[0]
        assert call['url'] == 'https://sadiq.test/Authentication/Authority/Token'
        assert call['data']['grant_type'] == 'integration'
        assert call['data']['username'] == 'integration@linktech.test'
        assert call['headers']['Authorization'] == 'Basic Y2xpZW50OnNlY3JldA=='

    def test_token_is_cached(self):
        client, session = make_client(token())

        client.authenticate()
        client.authenticate()

        assert len(session.calls) == 1

    def test_bad_credentials_are_permanent(self):
        client, _ = make_client(FakeResponse(400, {'error': 'invalid_grant'}))

        with pytest.raises(ProviderPermanentError):
            client.authenticate()

    def test_missing_access_token(self):
        client, _ = make_client(FakeResponse(200, {'expires_in': 3600}))

        with pytest.raises(ProviderPermanentError):
            client.authenticate()

    def test_401_refreshes_token_once(self):
        client, session = make_client(
            token(),
            FakeResponse(401, text='expired'),
            FakeResponse(200, {'access_token': 'second-token', 'expires_in': 3600}),
            FakeResponse(200, {'errorCode': 0, 'data': {'status': 'InProgress'}}),
        )

        status = client.get_envelope_status('ref-1')

        assert status.status == 'InProgress'
        assert session.calls[1]['headers']['Authorization'] == 'Bearer live-token'
        assert session.calls[3]['headers']['Authorization'] == 'Bearer second-token'
        assert client.token_cache.refresh_count == 2

    def test_second_401_is_permanent(self):
        client, session = make_client(
            token(),
            FakeResponse(401, text='expired'),
            token(),
            FakeResponse(401, text='still expired'),
        )

        with pytest.raises(ProviderPermanentError) as exc:
            client.get_envelope_status('ref-1')

        assert exc.value.status_code == 401
        assert len(session.calls) == 4


class TestErrorClassification:

    @pytest.mark.parametrize('failure', [
        requests.exceptions.Timeout('read timed out'),
        requests.exceptions.ConnectionError('connection refused'),
    ])
    def test_network_failures_are_transient(self, failure):
        client, _ = make_client(token(), failure)

        with pytest.raises(ProviderTransientError):
            client.get_envelope_status('ref-1')

    @pytest.mark.parametrize('status_code', [500, 502, 503, 429])
    def test_server_errors_are_transient(self, status_code):
        client, _ = make_client(token(), FakeResponse(status_code, text='unavailable'))

        with pytest.raises(ProviderTransientError) as exc:
            client.get_envelope_status('ref-1')
        assert exc.value.status_code == status_code
        assert exc.value.response_body == 'unavailable'

    @pytest.mark.parametrize('status_code', [400, 403, 404, 422])
    def test_client_errors_are_permanent(self, status_code):
        client, _ = make_client(token(), FakeResponse(status_code, text='bad request'))

        with pytest.raises(ProviderPermanentError):
            client.get_envelope_status('ref-1')

    def test_malformed_json_is_permanent(self):
        client, _ = make_client(token(), FakeResponse(200, text='<html>gateway</html>'))

        with pytest.raises(ProviderPermanentError):
            client.get_envelope_status('ref-1')

    def test_provider_error_code_is_permanent(self):
        client, _ = make_client(token(), FakeResponse(200, {'errorCode': 17, 'message': 'Invalid document'}))

        with pytest.raises(ProviderPermanentError) as exc:
            client.get_envelope_status('ref-1')
        assert 'Invalid document' in str(exc.value)


class TestDocuments:

    def test_upload_document(self):
        client, session = make_client(token(), FakeResponse(200, {
            'errorCode': 0,
            'data': {'documentId': 'doc-9', 'envelopeId': 'env-9', 'referenceNumber': 'ref-9', 'status': 'Draft'},
        }))

        result = client.upload_document(b'%PDF-1.4 test', 'nda-project-42.pdf', reference_number='ref-9')

        assert (result.document_id, result.envelope_id, result.reference_number) == ('doc-9', 'env-9', 'ref-9')
        call = session.calls[1]
        assert call['url'].endswith('/IntegrationService/Document/Bulk/Initiate-envelope-Base64')
        assert call['json']['webhookId'] == 'wh-1'
        assert base64.b64decode(call['json']['files'][0]['file']) == b'%PDF-1.4 test'
        assert call['timeout'] == client.upload_timeout

    def test_upload_document_id_from_bulk_response(self):
        client, _ = make_client(token(), FakeResponse(200, {
            'errorCode': 0,
            'data': {'envelopeId': 'env-9', 'bulkFileResponse': [{'documentId': 'doc-bulk'}]},
        }))

        result = client.upload_document(b'%PDF', 'nda.pdf', reference_number='ref-9')

        assert result.document_id == 'doc-bulk'
        assert result.reference_number == 'ref-9'

    def test_upload_without_ids_is_permanent(self):
        client, _ = make_client(token(), FakeResponse(200, {'errorCode': 0, 'data': {'documentId': 'doc-9'}}))

        with pytest.raises(ProviderPermanentError):
            client.upload_document(b'%PDF', 'nda.pdf')

    def test_create_and_invite_orders_signers(self):
        client, session = make_client(token(), FakeResponse(200, {'errorCode': 0, 'data': {'envelopeId': 'env-9'}}))
        signers = [
            Signer(full_name='Noor Alharbi', email='noor@example.sa', phone_number='0557654321'),
            Signer(full_name='Ahmed Saleh', email='ahmed@acme.sa', phone_number='+44 20 7946 0000'),
        ]

        result = client.create_and_invite('doc-9', signers, 'Fleet Tracking App')

        assert result.envelope_id == 'env-9'
        destinations = session.calls[1]['json']['destinations']
        assert [d['destinationEmail'] for d in destinations] == ['noor@example.sa', 'ahmed@acme.sa']
        assert [d['signeOrder'] for d in destinations] == [0, 1]
        assert destinations[0]['destinationPhoneNumber'] == '+966557654321'
        # Unrecognized numbers are passed through without separators
        assert destinations[1]['destinationPhoneNumber'] == '+442079460000'

    def test_download_document(self):
        encoded = base64.b64encode(b'%PDF-1.4 signed').decode('ascii')
        client, session = make_client(token(), FakeResponse(200, {'errorCode': 0, 'data': {'file': encoded}}))

        assert client.download_document('doc-9') == b'%PDF-1.4 signed'
        assert session.calls[1]['url'].endswith('/IntegrationService/Document/DownloadBase64/doc-9')

    def test_download_invalid_base64(self):
        client, _ = make_client(token(), FakeResponse(200, {'errorCode': 0, 'data': {'file': '***'}}))

        with pytest.raises(ProviderPermanentError):
            client.download_document('doc-9')

    def test_envelope_status_defaults_reference(self):
        client, _ = make_client(token(), FakeResponse(200, {
            'errorCode': 0,
            'data': {'status': 'InProgress', 'signatories': [{'email': 'a@x.sa', 'status': 'Signed'}]},
        }))

        status = client.get_envelope_status('ref-7')

        assert status.reference_number == 'ref-7'
        assert status.signed_count == 1


class TestWebhookRegistration:

    def test_configured_webhook_id_is_used(self):
        client, session = make_client()
        assert client.get_or_create_webhook() == 'wh-1'
        assert session.calls == []

    def test_existing_registration_is_found(self):
        client, session = make_client(
            token(),
            FakeResponse(200, {'errorCode': 0, 'data': [
                {'id': 'wh-other', 'webhookUrl': 'https://other.test/hook'},
                {'id': 'wh-ours', 'webhookUrl': 'https://linktech.test/api/sadiq/webhook'},
            ]}),
            webhook_id=None,
            webhook_url='https://linktech.test/api/sadiq/webhook',
        )

        assert client.get_or_create_webhook() == 'wh-ours'
        assert len(session.calls) == 2

    def test_registers_webhook_with_secret(self):
        client, session = make_client(
            token(),
            FakeResponse(200, {'errorCode': 0, 'data': []}),
            FakeResponse(200, {'errorCode': 0, 'data': {'id': 'wh-new'}}),
            webhook_id=None,
            webhook_url='https://linktech.test/api/sadiq/webhook',
        )

        assert client.get_or_create_webhook() == 'wh-new'
        assert session.calls[2]['json']['HeaderToken'] == 'hook-secret'


class TestParseEnvelopeStatus:

    def test_nested_payload_and_aliases(self):
        status = SadiqClient.parse_envelope_status({
            'data': {
                'envelopeStatus': 'InProgress',
                'ReferenceNumber': 'ref-1',
                'EnvelopeId': 'env-1',
                'destinations': [
                    {'destinationEmail': 'a@x.sa', 'signatureStatus': 'Signed', 'signDate': '2026-10-01'},
                    {'destinationEmail': 'b@x.sa'},
                ],
            }
        })

        assert isinstance(status, EnvelopeStatus)
        assert status.status == 'InProgress'
        assert status.reference_number == 'ref-1'
        assert status.envelope_id == 'env-1'
        assert [s.status for s in status.signers] == ['Signed', 'Pending']
        assert status.signers[0].signed_at == '2026-10-01'
        assert status.signed_count == 1
        assert not status.all_signed

    @pytest.mark.parametrize('payload', [
        None,
        'Completed',
        [],
        {},
        {'status': 7},
        {'status': 'InProgress', 'signatories': 'all'},
        {'status': 'InProgress', 'signatories': ['a@x.sa']},
    ])
    def test_malformed_payloads(self, payload):
        with pytest.raises(ReconciliationError):
            SadiqClient.parse_envelope_status(payload)


class TestMockMode:

    def test_mock_round_trip(self):
        client = SadiqClient(session=FakeSession())
        upload = client.upload_document(b'%PDF', 'nda.pdf', reference_number='ref-mock')
        client.create_and_invite(upload.document_id, [Signer('Noor', 'noor@example.sa', '0557654321')], 'Fleet')

        status = client.get_envelope_status('ref-mock')

        assert status.status == 'InProgress'
        assert [s.email for s in status.signers] == ['noor@example.sa']

    def test_mock_download_unavailable(self):
        client = SadiqClient(session=FakeSession())
        with pytest.raises(ProviderPermanentError):
            client.download_document('doc')

"""
Sadiq Client

Thin wrapper around the Sadiq e-signature API.
Handles authentication, request building, and error classification.

Every failure is raised as either ProviderTransientError (timeouts,
connection errors, 5xx, rate limits) or ProviderPermanentError (4xx,
malformed payloads, provider error codes), so the workflow can decide
whether a retry makes sense. The provider's wire format stays in this
module.
"""

import base64
import binascii
import logging
import re
import uuid
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Tuple

import requests

from .exceptions import ProviderPermanentError, ProviderTransientError, ReconciliationError
from .token_cache import TokenCache
from .types import EnvelopeStatus, InvitationResult, Signer, SignerStatus, UploadResult

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = 'https://sandbox-api.sadq-sa.com'
DEFAULT_TIMEOUT = 30
DEFAULT_UPLOAD_TIMEOUT = 60

TOKEN_ENDPOINT = '/Authentication/Authority/Token'
UPLOAD_ENDPOINT = '/IntegrationService/Document/Bulk/Initiate-envelope-Base64'
INVITATION_ENDPOINT = '/IntegrationService/Invitation/Send-Invitation'
ENVELOPE_STATUS_ENDPOINT = '/IntegrationService/document/envelope-status/{reference}'
DOWNLOAD_ENDPOINT = '/IntegrationService/Document/DownloadBase64/{document_id}'
WEBHOOK_ENDPOINT = '/IntegrationService/Configuration/webhook'

# Signature box placement on page 1, one box per signer side by side
SIGNATURE_BOX = {'width': 160, 'height': 80, 'x': 70, 'y': 500, 'x_step': 200}

AUTHENTICATION_NAFATH = 1
LANGUAGE_ARABIC = 1


# =============================================================================
# PHONE NUMBERS
# =============================================================================

_PHONE_STRIP = re.compile(r'[\s\-\(\)\.]')
_PHONE_PATTERNS = [
    re.compile(r'^\+966([15]\d{8})$'),
    re.compile(r'^00966([15]\d{8})$'),
    re.compile(r'^966([15]\d{8})$'),
    re.compile(r'^0([15]\d{8})$'),
    re.compile(r'^([5]\d{8})$'),
]


def format_phone_number(phone_number: Optional[str]) -> Optional[str]:
    """
    Normalize a Saudi phone number to the +966XXXXXXXXX format Sadiq expects.

    Accepts +966, 00966, 966 and local 0-prefixed forms, with or without
    spaces, dashes, dots or parentheses.

    Returns:
        Normalized number, or None when the input matches no known form
    """
    if not phone_number:
        return None

    cleaned = _PHONE_STRIP.sub('', phone_number)
    for pattern in _PHONE_PATTERNS:
        match = pattern.match(cleaned)
        if match:
            return f"+966{match.group(1)}"
    return None


# =============================================================================
# CLIENT
# =============================================================================

class SadiqClient:
    """
    Client for Sadiq API operations.

    Provides methods for:
        - Authenticating (through an injected TokenCache)
        - Uploading a PDF into a new envelope
        - Sending signing invitations
        - Querying envelope status
        - Downloading the (signed) document
    """

    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        email: Optional[str] = None,
        password: Optional[str] = None,
        account_id: Optional[str] = None,
        account_secret: Optional[str] = None,
        client_auth: Optional[str] = None,
        token_cache: Optional[TokenCache] = None,
        webhook_url: Optional[str] = None,
        webhook_id: Optional[str] = None,
        webhook_secret: Optional[str] = None,
        timeout: int = DEFAULT_TIMEOUT,
        upload_timeout: int = DEFAULT_UPLOAD_TIMEOUT,
        invitation_valid_days: int = 30,
        session: Optional[requests.Session] = None
    ):
        self.base_url = base_url.rstrip('/')
        self.email = email
        self.password = password
        self.account_id = account_id
        self.account_secret = account_secret
        self.client_auth = client_auth
        self.token_cache = token_cache or TokenCache(self._fetch_token)
        self.webhook_url = webhook_url
        self.webhook_id = webhook_id
        self.webhook_secret = webhook_secret
        self.timeout = timeout
        self.upload_timeout = upload_timeout
        self.invitation_valid_days = invitation_valid_days
        self.session = session or requests.Session()
        self._mock_envelopes: Dict[str, Dict[str, Any]] = {}

    @classmethod
    def from_config(cls, config, token_cache: Optional[TokenCache] = None) -> 'SadiqClient':
        """Build a client from a Flask config mapping."""
        client = cls(
            base_url=config.get('SADIQ_BASE_URL') or DEFAULT_BASE_URL,
            email=config.get('SADIQ_EMAIL'),
            password=config.get('SADIQ_PASSWORD'),
            account_id=config.get('SADIQ_ACCOUNT_ID'),
            account_secret=config.get('SADIQ_ACCOUNT_SECRET'),
            client_auth=config.get('SADIQ_CLIENT_AUTH'),
            webhook_url=config.get('SADIQ_WEBHOOK_URL'),
            webhook_id=config.get('SADIQ_WEBHOOK_ID'),
            webhook_secret=config.get('SADIQ_WEBHOOK_SECRET'),
            timeout=config.get('SADIQ_TIMEOUT', DEFAULT_TIMEOUT),
            upload_timeout=config.get('SADIQ_UPLOAD_TIMEOUT', DEFAULT_UPLOAD_TIMEOUT),
            invitation_valid_days=config.get('NDA_INVITATION_VALID_DAYS', 30),
        )
        if token_cache is not None:
            client.token_cache = token_cache
        return client

    @property
    def mock_mode(self) -> bool:
        """Running without credentials; calls return canned data."""
        return not (self.email and self.password)

    # -------------------------------------------------------------------------
    # Authentication
    # -------------------------------------------------------------------------

    def authenticate(self) -> str:
        """Return a bearer token, refreshing it through the token cache when stale."""
        if self.mock_mode:
            return 'mock-token'
        return self.token_cache.get_token()

    def _fetch_token(self) -> Tuple[str, int]:
        """Exchange the integration credentials for an access token."""
        headers = {
            'Accept': 'application/json',
            'Content-Type': 'application/x-www-form-urlencoded',
        }
        if self.client_auth:
            headers['Authorization'] = f"Basic {self.client_auth}"

        data = {
            'grant_type': 'integration',
            'accountId': self.account_id or '',
            'accountSecret': self.account_secret or '',
            'username': self.email or '',
            'password': self.password or '',
        }

        logger.info(f"Authenticating with Sadiq as {(self.email or '')[:3]}***")
        response = self._send('POST', TOKEN_ENDPOINT, headers=headers, data=data, timeout=self.timeout)
        body = self._parse_response(response, 'authenticate')

        if body.get('error'):
            raise ProviderPermanentError(
                f"Sadiq authentication error: {body.get('error')} - {body.get('errorMessage') or 'Unknown error'}",
                status_code=response.status_code
            )
        token = body.get('access_token')
        if not token:
            raise ProviderPermanentError('No access token received from Sadiq', status_code=response.status_code)

        return token, int(body.get('expires_in') or 0)

    # -------------------------------------------------------------------------
    # Transport
    # -------------------------------------------------------------------------

    def _send(self, method: str, path: str, timeout: Optional[int] = None, **kwargs) -> requests.Response:
        url = f"{self.base_url}{path}"
        try:
            return self.session.request(method, url, timeout=timeout or self.timeout, **kwargs)
        except requests.exceptions.Timeout as e:
            logger.warning(f"Sadiq request timed out: {method} {path}")
            raise ProviderTransientError(f"Sadiq request timed out: {e}")
        except requests.exceptions.ConnectionError as e:
            logger.warning(f"Sadiq connection failed: {method} {path}: {e}")
            raise ProviderTransientError(f"Could not connect to Sadiq: {e}")
        except requests.exceptions.RequestException as e:
            logger.error(f"Sadiq request failed: {method} {path}: {e}")
            raise ProviderTransientError(f"Sadiq request failed: {e}")

    def _parse_response(self, response: requests.Response, action: str) -> Dict[str, Any]:
        """Classify the HTTP outcome and return the JSON body."""
        status_code = response.status_code

        if status_code >= 400:
            error_body = response.text[:500] if response.text else None

            logger.error(f"Sadiq {action} failed with status {status_code}")
            if error_body:
                logger.error(f"Response body: {error_body}")

            error_class = ProviderTransientError if (status_code >= 500 or status_code == 429) else ProviderPermanentError
            raise error_class(
                f"Sadiq {action} failed: HTTP {status_code}",
                status_code=status_code,
                response_body=error_body
            )

        try:
            body = response.json()
        except ValueError:
            raise ProviderPermanentError(
                f"Sadiq {action} returned a malformed response",
                status_code=status_code,
                response_body=response.text[:500]
            )

        if isinstance(body, dict) and body.get('errorCode') not in (None, 0):
            message = body.get('message') or f"error code {body.get('errorCode')}"
            raise ProviderPermanentError(
                f"Sadiq {action} failed: {message} (Code: {body.get('errorCode')})",
                status_code=status_code,
                response_body=str(body)[:500]
            )

        return body

    def _request(self, method: str, path: str, action: str, timeout: Optional[int] = None, **kwargs) -> Any:
        """Authenticated request; a 401 drops the token and retries once with a fresh one."""
        token = self.authenticate()
        response = self._send(method, path, headers=self._auth_headers(token), timeout=timeout, **kwargs)

        if response.status_code == 401:
            logger.info(f"Sadiq rejected the access token during {action}, refreshing")
            self.token_cache.invalidate(token)
            token = self.authenticate()
            response = self._send(method, path, headers=self._auth_headers(token), timeout=timeout, **kwargs)

        return self._parse_response(response, action)

    @staticmethod
    def _auth_headers(token: str) -> Dict[str, str]:
        return {
            'Authorization': f"Bearer {token}",
            'Content-Type': 'application/json',
            'Accept': 'application/json',
        }

    # -------------------------------------------------------------------------
    # Webhook registration
    # -------------------------------------------------------------------------

    def get_or_create_webhook(self) -> Optional[str]:
        """
        Return the id of the webhook registered for this application.

        Looks up existing registrations by URL and registers a new one
        (with our shared secret as header token) when none matches.
        """
        if self.webhook_id:
            return self.webhook_id
        if not self.webhook_url:
            logger.warning("SADIQ_WEBHOOK_URL not configured, uploading without a webhook")
            return None

        body = self._request('GET', WEBHOOK_ENDPOINT, 'list webhooks')
        webhooks = body.get('data', []) if isinstance(body, dict) else body
        for webhook in webhooks or []:
            if webhook.get('webhookUrl') == self.webhook_url and webhook.get('id'):
                self.webhook_id = webhook['id']
                logger.info(f"Using existing Sadiq webhook {self.webhook_id}")
                return self.webhook_id

        body = self._request('POST', WEBHOOK_ENDPOINT, 'register webhook', json={
            'webhookUrl': self.webhook_url,
            'isDefault': True,
            'HeaderToken': self.webhook_secret or '',
        })
        data = body.get('data') or body
        self.webhook_id = data.get('id') or data.get('webhookId')
        logger.info(f"Registered Sadiq webhook {self.webhook_id} at {self.webhook_url}")
        return self.webhook_id

    # -------------------------------------------------------------------------
    # Documents and envelopes
    # -------------------------------------------------------------------------

    def upload_document(self, content: bytes, file_name: str, reference_number: Optional[str] = None) -> UploadResult:
        """
        Upload a PDF and open a new envelope for it.

        Args:
            content: PDF bytes
            file_name: Name shown to signers
            reference_number: Our reference for the envelope (generated when omitted)

        Returns:
            UploadResult with document id, envelope id and reference number
        """
        reference_number = reference_number or f"linktech-nda-{uuid.uuid4().hex[:12]}"

        if self.mock_mode:
            return self._mock_upload(file_name, reference_number)

        payload = {
            'webhookId': self.get_or_create_webhook(),
            'referenceNumber': reference_number,
            'files': [{
                'file': base64.b64encode(content).decode('ascii'),
                'fileName': file_name,
                'password': '',
            }],
        }

        logger.info(f"Uploading {file_name} to Sadiq ({len(content)} bytes, ref {reference_number})")
        body = self._request('POST', UPLOAD_ENDPOINT, 'upload document', json=payload, timeout=self.upload_timeout)

        data = body.get('data') or {}
        document_id = data.get('documentId')
        if not document_id and data.get('bulkFileResponse'):
            first_file = data['bulkFileResponse'][0] or {}
            document_id = first_file.get('documentId') or first_file.get('id') or first_file.get('fileId')
        envelope_id = data.get('envelopeId')

        if not document_id or not envelope_id:
            raise ProviderPermanentError(
                'Sadiq upload response is missing the document or envelope id',
                response_body=str(body)[:500]
            )

        return UploadResult(
            document_id=str(document_id),
            envelope_id=str(envelope_id),
            reference_number=data.get('referenceNumber') or reference_number,
            status=data.get('status') or data.get('envelopeStatus')
        )

    def create_and_invite(self, document_id: str, signers: List[Signer], project_title: str) -> InvitationResult:
        """
        Invite the signers of an uploaded document, in list order.

        Phone numbers are normalized; a number that cannot be normalized
        is passed through as entered and logged.
        """
        if self.mock_mode:
            return self._mock_invite(document_id, signers)

        available_to = (datetime.utcnow() + timedelta(days=self.invitation_valid_days)).isoformat() + 'Z'
        destinations = []
        for index, signer in enumerate(signers):
            phone = format_phone_number(signer.phone_number)
            if phone is None:
                logger.warning(
                    f"Phone number for {signer.email} is not in a Sadiq format, sending as entered: "
                    f"{signer.phone_number!r}"
                )
                phone = _PHONE_STRIP.sub('', signer.phone_number or '')

            destinations.append({
                'destinationName': signer.full_name,
                'destinationEmail': signer.email,
                'destinationPhoneNumber': phone,
                'nationalId': signer.national_id or '',
                'signeOrder': index,
                'ConsentOnly': False,
                'signatories': [{
                    'signatureHigh': SIGNATURE_BOX['height'],
                    'signatureWidth': SIGNATURE_BOX['width'],
                    'pageNumber': 1,
                    'text': '',
                    'type': 'Signature',
                    'positionX': SIGNATURE_BOX['x'] + index * SIGNATURE_BOX['x_step'],
                    'positionY': SIGNATURE_BOX['y'],
                }],
                'availableTo': available_to,
                'authenticationType': AUTHENTICATION_NAFATH,
                'InvitationLanguage': LANGUAGE_ARABIC,
                'RedirectUrl': '',
                'AllowUserToAddDestination': False,
            })

        payload = {
            'documentId': document_id,
            'destinations': destinations,
            'invitationSubject': f"Non-Disclosure Agreement signature - {project_title}",
            'invitationMessage': (
                f"Please review and electronically sign the attached non-disclosure "
                f"agreement for the project: {project_title}."
            ),
        }

        logger.info(f"Sending {len(destinations)} Sadiq invitations for document {document_id}")
        body = self._request('POST', INVITATION_ENDPOINT, 'send invitations', json=payload)

        data = body.get('data') or {}
        envelope_id = data.get('envelopeId') or body.get('envelopeId') or data.get('id')
        return InvitationResult(
            envelope_id=str(envelope_id) if envelope_id else None,
            status=data.get('status') or 'InProgress'
        )

    def get_envelope_status(self, reference: str) -> EnvelopeStatus:
        """Query the envelope status and per-signer breakdown."""
        if self.mock_mode:
            return self._mock_status(reference)

        body = self._request('GET', ENVELOPE_STATUS_ENDPOINT.format(reference=reference), 'get envelope status')
        data = body.get('data') if isinstance(body, dict) else None
        status = self.parse_envelope_status(data or {})
        if not status.reference_number and not status.envelope_id:
            status = EnvelopeStatus(
                status=status.status,
                signers=status.signers,
                reference_number=reference,
                envelope_id=None
            )
        return status

    def download_document(self, document_id: str) -> bytes:
        """Download the current (possibly signed) PDF for a document."""
        if self.mock_mode:
            raise ProviderPermanentError('Document download is not available in mock mode')

        body = self._request('GET', DOWNLOAD_ENDPOINT.format(document_id=document_id), 'download document')
        encoded = (body.get('data') or {}).get('file')
        if not encoded:
            raise ProviderPermanentError('Sadiq download response contains no file')
        try:
            return base64.b64decode(encoded, validate=True)
        except (binascii.Error, ValueError):
            raise ProviderPermanentError('Sadiq download response is not valid base64')

    # -------------------------------------------------------------------------
    # Wire parsing
    # -------------------------------------------------------------------------

    @staticmethod
    def parse_envelope_status(payload: Any) -> EnvelopeStatus:
        """
        Parse an envelope status document, as returned by the status endpoint
        or delivered by the webhook.

        Raises:
            ReconciliationError: payload is not an object or has no status
        """
        if not isinstance(payload, dict):
            raise ReconciliationError('Envelope payload must be a JSON object')

        if not _first(payload, 'status', 'envelopeStatus', 'Status') and isinstance(payload.get('data'), dict):
            payload = payload['data']

        status = _first(payload, 'status', 'envelopeStatus', 'Status')
        if not status or not isinstance(status, str):
            raise ReconciliationError('Envelope payload is missing a status')

        raw_signers = _first(payload, 'signatories', 'destinations', 'signers') or []
        if not isinstance(raw_signers, list):
            raise ReconciliationError('Envelope signers must be a list')

        signers = []
        for raw in raw_signers:
            if not isinstance(raw, dict):
                raise ReconciliationError('Envelope signer entries must be objects')
            signers.append(SignerStatus(
                email=_first(raw, 'email', 'destinationEmail') or '',
                name=_first(raw, 'name', 'destinationName', 'fullName'),
                status=str(_first(raw, 'status', 'signatureStatus', 'signStatus') or 'Pending'),
                signed_at=_first(raw, 'signedAt', 'signDate', 'signed_at'),
            ))

        reference = _first(payload, 'referenceNumber', 'ReferenceNumber', 'reference_number')
        envelope_id = _first(payload, 'envelopeId', 'EnvelopeId', 'envelope_id')
        return EnvelopeStatus(
            status=status,
            signers=signers,
            reference_number=str(reference) if reference else None,
            envelope_id=str(envelope_id) if envelope_id else None
        )

    # -------------------------------------------------------------------------
    # Mock implementations
    # -------------------------------------------------------------------------

    def _mock_upload(self, file_name: str, reference_number: str) -> UploadResult:
        """Return mock upload data for development without credentials."""
        envelope_id = f"mock-env-{uuid.uuid4().hex[:8]}"
        document_id = f"mock-doc-{uuid.uuid4().hex[:8]}"
        self._mock_envelopes[reference_number] = {
            'envelope_id': envelope_id,
            'document_id': document_id,
            'status': 'Draft',
            'signers': [],
        }
        logger.info(f"[mock] Uploaded {file_name} as {document_id}")
        return UploadResult(document_id, envelope_id, reference_number, 'Draft')

    def _mock_invite(self, document_id: str, signers: List[Signer]) -> InvitationResult:
        for reference, envelope in self._mock_envelopes.items():
            if envelope['document_id'] == document_id:
                envelope['status'] = 'InProgress'
                envelope['signers'] = [SignerStatus(email=s.email, name=s.full_name, status='Pending') for s in signers]
                return InvitationResult(envelope['envelope_id'], 'InProgress')
        return InvitationResult(f"mock-env-{uuid.uuid4().hex[:8]}", 'InProgress')

    def _mock_status(self, reference: str) -> EnvelopeStatus:
        envelope = self._mock_envelopes.get(reference)
        if envelope is None:
            raise ProviderPermanentError(f"Unknown envelope {reference}", status_code=404)
        return EnvelopeStatus(
            status=envelope['status'],
            signers=list(envelope['signers']),
            reference_number=reference,
            envelope_id=envelope['envelope_id']
        )


def _first(data: Dict[str, Any], *keys):
    """Value of the first key present with a non-empty value."""
    for key in keys:
        value = data.get(key)
        if value not in (None, ''):
            return value
    return None

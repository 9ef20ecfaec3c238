"""
NDA Workflow Engine

Drives an NDA agreement from the company's request to a signed document:

    initiate -> complete -> compose -> upload -> invite -> reconcile

The signing provider is the system of record for signatures; this engine
keeps a local projection of the envelope and changes it only through
``reconcile``, whether the provider status arrived by webhook or by polling.
When the provider cannot be used, the composed agreement is emailed to
both parties for manual signature instead.
"""

import hashlib
import hmac
import json
import logging
import time
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from flask import current_app

from models import db
from services import audit_service
from services import nda_notifications
from services.email_service import get_email_service
from services.esign import (
    AuthorizationError,
    CompanyInfo,
    ConflictError,
    Contact,
    EnvelopeStatus,
    FallbackError,
    NdaStatus,
    NotFoundError,
    ProjectInfo,
    ProviderError,
    ReconciliationError,
    SadiqClient,
    Signer,
    SignerNames,
    ValidationError,
    compose_nda_pdf,
    reference_label,
)
from services.fallback_notifier import FallbackNotifier
from services.nda_repository import NdaRepository, RecordLocks
from utils import clean_text, is_valid_email, mask_name

logger = logging.getLogger(__name__)

FALLBACK_ID_PREFIX = 'EMAIL-FALLBACK-'

SIGNED_STATUSES = {'completed', 'complete', 'fullysigned', 'signed'}
CANCELLED_STATUSES = {'voided', 'void', 'cancelled', 'canceled', 'deleted'}
FAILED_STATUSES = {'rejected', 'declined', 'expired'}

COMPLETABLE_STATUSES = (NdaStatus.AWAITING_ENTREPRENEUR, NdaStatus.READY_FOR_PROVIDER)
CANCELLABLE_STATUSES = (
    NdaStatus.AWAITING_ENTREPRENEUR,
    NdaStatus.READY_FOR_PROVIDER,
    NdaStatus.EMAIL_FALLBACK_SENT,
)

# Shared by every workflow in the process
_record_locks = RecordLocks()


def map_provider_status(envelope: EnvelopeStatus) -> NdaStatus:
    """
    Map a provider envelope status onto the local lifecycle.

    Envelope-level status wins; the per-signer breakdown decides between
    fully and partially signed when the envelope itself is still open.
    """
    status = envelope.status.strip().lower().replace('_', '').replace('-', '').replace(' ', '')

    if status in SIGNED_STATUSES or envelope.all_signed:
        return NdaStatus.SIGNED
    if status in CANCELLED_STATUSES:
        return NdaStatus.CANCELLED
    if status in FAILED_STATUSES:
        return NdaStatus.PROVIDER_FAILED
    if envelope.signed_count > 0:
        return NdaStatus.PARTIALLY_SIGNED
    return NdaStatus.INVITATIONS_SENT


def payload_hash(envelope: EnvelopeStatus) -> str:
    """Stable digest of the parts of an envelope status that matter for reconcile."""
    canonical = {
        'status': envelope.status,
        'signers': sorted(
            ([s.email.lower(), s.status.lower(), s.signed_at or ''] for s in envelope.signers)
        ),
    }
    return hashlib.sha256(json.dumps(canonical, sort_keys=True).encode('utf-8')).hexdigest()


def signer_breakdown(signers: Optional[List[Dict[str, Any]]]) -> Dict[str, Any]:
    """Progress summary of the stored per-signer statuses."""
    signers = signers or []
    total = len(signers)
    signed = sum(1 for s in signers if str(s.get('status', '')).lower() in ('signed', 'completed'))
    return {
        'total': total,
        'signed': signed,
        'pending': total - signed,
        'percentage': round(signed * 100 / total) if total else 0,
        'details': signers,
    }


@dataclass(frozen=True)
class DocumentResult:
    """A downloadable agreement and where it came from ('provider' or 'reconstruction')."""
    content: bytes
    source: str
    file_name: str


class NdaWorkflow:
    """
    NDA lifecycle engine.

    Every mutating operation holds the per-record lock and re-reads the row
    under a row lock before checking its preconditions.

    Args:
        repository: NdaRepository
        provider: SadiqClient (or anything with the same operations)
        fallback_notifier: FallbackNotifier used when the provider fails
        config: Mapping with the NDA_* and SADIQ_WEBHOOK_SECRET settings
        notifications: Module/object with the notify_* functions
        locks: RecordLocks registry (process-wide by default)
        sleep: Backoff sleep, injectable for tests
        clock: Returns the current UTC datetime
    """

    def __init__(self, repository: NdaRepository, provider, fallback_notifier: FallbackNotifier, config,
                 notifications=nda_notifications, locks: Optional[RecordLocks] = None,
                 sleep=time.sleep, clock=datetime.utcnow):
        self.repository = repository
        self.provider = provider
        self.fallback_notifier = fallback_notifier
        self.config = config
        self.notifications = notifications
        self.locks = locks or _record_locks
        self.sleep = sleep
        self.clock = clock

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    @property
    def lock_timeout(self) -> float:
        return float(self.config.get('NDA_LOCK_TIMEOUT', 150))

    def _record_lock(self, nda_id):
        return self.locks.lock(('nda', nda_id), self.lock_timeout)

    def _load_for_update(self, nda_id):
        nda = self.repository.get_for_update(nda_id)
        if nda is None:
            raise NotFoundError('NDA not found', ndaId=nda_id)
        return nda

    def _load(self, nda_id):
        nda = self.repository.get(nda_id)
        if nda is None:
            raise NotFoundError('NDA not found', ndaId=nda_id)
        return nda

    @staticmethod
    def _is_party(actor, nda) -> bool:
        return (
            actor.is_admin
            or actor.id == nda.company_user_id
            or actor.id == nda.project.owner_id
        )

    def _authorize(self, actor, nda):
        if not self._is_party(actor, nda):
            raise AuthorizationError('You do not have access to this NDA')

    @staticmethod
    def _parse_contact(raw, label) -> Contact:
        """Validate a {name, email, phone} payload."""
        if not isinstance(raw, dict):
            raise ValidationError(f"{label} details are required", missing=['name', 'email', 'phone'])

        name = clean_text(raw.get('name'))
        email = clean_text(raw.get('email'))
        phone = clean_text(raw.get('phone'))

        missing = [key for key, value in (('name', name), ('email', email), ('phone', phone)) if not value]
        if missing:
            raise ValidationError(f"{label} {', '.join(missing)} required", missing=missing)
        if not is_valid_email(email):
            raise ValidationError(f"{label} email is not a valid email address", field='email')

        return Contact(name=name, email=email.lower(), phone=phone)

    @staticmethod
    def _company_contact(nda) -> Contact:
        info = nda.company_info
        return Contact(name=info['name'], email=info['email'], phone=info['phone'])

    @staticmethod
    def _entrepreneur_contact(nda) -> Contact:
        info = nda.entrepreneur_info
        return Contact(name=info['name'], email=info['email'], phone=info['phone'])

    def _notify(self, fn, nda, *args):
        """Send a notification after the state change is committed; failures never undo it."""
        try:
            fn(nda, *args)
            db.session.commit()
        except Exception as e:
            db.session.rollback()
            logger.error(f"Notification {fn.__name__} failed for NDA {nda.id}: {e}")

    @staticmethod
    def _project_info(project) -> ProjectInfo:
        return ProjectInfo(id=project.id, title=project.title, description=project.description or '')

    @staticmethod
    def _company_info(nda) -> CompanyInfo:
        return CompanyInfo(name=nda.company_info.get('legal_name') or nda.company_info.get('name', ''),
                           location=nda.company_info.get('city') or '')

    def _compose(self, nda, project, reconstruction=False) -> bytes:
        names = None
        if nda.entrepreneur_info:
            names = SignerNames(
                entrepreneur=mask_name(nda.entrepreneur_info.get('name')),
                company_rep=mask_name(nda.company_info.get('name')),
            )
        return compose_nda_pdf(self._project_info(project), self._company_info(nda), names,
                               reconstruction=reconstruction)

    @staticmethod
    def _file_name(project) -> str:
        return f"nda-project-{project.id}.pdf"

    @staticmethod
    def _has_provider_document(nda) -> bool:
        return bool(nda.provider_document_id) and not nda.provider_document_id.startswith(FALLBACK_ID_PREFIX)

    # -------------------------------------------------------------------------
    # Initiate
    # -------------------------------------------------------------------------

    def initiate(self, actor, project_id: int, representative) -> Dict[str, Any]:
        """
        A company requests an NDA for a project.

        Raises:
            NotFoundError: unknown project
            ValidationError: not a company account, incomplete company profile,
                bad representative details, or the company owns the project
            ConflictError: an active NDA already exists for this project and company
        """
        project = self.repository.get_project(project_id)
        if project is None:
            raise NotFoundError('Project not found', projectId=project_id)

        if not actor.is_company:
            raise ValidationError('Only company accounts can request an NDA')

        profile = actor.company_profile
        if profile is None or not profile.is_complete:
            raise ValidationError('Complete your company profile (legal name, contact email and phone) first')

        rep = self._parse_contact(representative, 'Company representative')

        if project.owner_id == actor.id:
            raise ValidationError('You cannot request an NDA for your own project')

        with self.locks.lock(('nda-pair', project.id, actor.id), self.lock_timeout):
            self.repository.get_project_for_update(project.id)
            existing = self.repository.find_active(project.id, actor.id)
            if existing is not None:
                db.session.rollback()
                raise ConflictError(
                    'An active NDA already exists for this project',
                    ndaId=existing.id,
                    status=existing.status
                )

            nda = self.repository.create(
                project_id=project.id,
                company_user_id=actor.id,
                status=NdaStatus.AWAITING_ENTREPRENEUR.value,
                company_info={
                    'company_user_id': actor.id,
                    'legal_name': profile.legal_name,
                    'city': profile.city,
                    'name': rep.name,
                    'email': rep.email,
                    'phone': rep.phone,
                    'captured_at': self.clock().isoformat(),
                },
            )
            audit_service.log_nda_initiated(nda, actor_id=actor.id)
            self.repository.save(nda)

        logger.info(f"NDA {nda.id} initiated for project {project.id} by company user {actor.id}")
        self._notify(self.notifications.notify_entrepreneur_input_required, nda)

        return {'ndaId': nda.id, 'status': nda.status}

    # -------------------------------------------------------------------------
    # Complete
    # -------------------------------------------------------------------------

    def complete(self, actor, nda_id: int, entrepreneur) -> Dict[str, Any]:
        """
        The project owner supplies their signer details and the agreement is
        sent out for signature (or emailed, if the provider fails).

        A record left in ready_for_provider by an interrupted run resumes from
        its last checkpoint; an empty body then reuses the stored details.

        Raises:
            NotFoundError, AuthorizationError, ValidationError, ConflictError
            FallbackError: provider and email fallback both failed
        """
        with self._record_lock(nda_id):
            nda = self._load_for_update(nda_id)
            project = nda.project

            if not (actor.is_admin or actor.id == project.owner_id):
                raise AuthorizationError('Only the project owner can complete this NDA')

            status = NdaStatus(nda.status)
            if status not in COMPLETABLE_STATUSES:
                raise ConflictError(f"NDA cannot be completed in status '{nda.status}'",
                                    ndaId=nda.id, status=nda.status)

            if not entrepreneur and nda.entrepreneur_info:
                contact = self._entrepreneur_contact(nda)
            else:
                contact = self._parse_contact(entrepreneur, 'Entrepreneur')

            nda.entrepreneur_info = {
                'entrepreneur_user_id': project.owner_id,
                'name': contact.name,
                'email': contact.email,
                'phone': contact.phone,
                'completed_at': self.clock().isoformat(),
            }
            nda.status = NdaStatus.READY_FOR_PROVIDER.value
            audit_service.log_nda_completed(nda, actor_id=actor.id)
            self.repository.save(nda)

            return self._run_provider_pipeline(nda, project)

    def _run_provider_pipeline(self, nda, project) -> Dict[str, Any]:
        """
        Compose, upload and invite, retrying transient provider errors.

        This is the only place a provider failure is handled.
        """
        try:
            document = self._compose(nda, project)
        except Exception as e:
            logger.exception(f"Document generation failed for NDA {nda.id}")
            nda.status = NdaStatus.AWAITING_ENTREPRENEUR.value
            nda.last_provider_error = f"Document generation failed: {e}"
            self.repository.save(nda)
            raise

        max_attempts = max(1, int(self.config.get('NDA_PROVIDER_MAX_ATTEMPTS', 2)))
        backoff = float(self.config.get('NDA_PROVIDER_RETRY_BACKOFF', 1.0))

        attempts = 0
        while True:
            attempts += 1
            try:
                self._upload_and_invite(nda, project, document)
                return {
                    'ndaId': nda.id,
                    'status': nda.status,
                    'providerReferenceNumber': nda.provider_reference_number,
                }
            except ProviderError as e:
                logger.warning(
                    f"Provider attempt {attempts}/{max_attempts} for NDA {nda.id} failed "
                    f"({'transient' if e.transient else 'permanent'}): {e}"
                )
                if not e.transient or attempts >= max_attempts:
                    return self._fail_over(nda, project, document, e, attempts)
                if backoff:
                    self.sleep(backoff * attempts)

    def _upload_and_invite(self, nda, project, document: bytes) -> None:
        if not nda.provider_document_id:
            upload = self.provider.upload_document(
                document,
                self._file_name(project),
                reference_number=f"linktech-nda-{nda.id}-{uuid.uuid4().hex[:8]}"
            )
            nda.provider_document_id = upload.document_id
            nda.provider_envelope_id = upload.envelope_id
            nda.provider_reference_number = upload.reference_number
            nda.provider_envelope_status = upload.status
            audit_service.log_document_uploaded(nda)
            self.repository.save(nda)
            logger.info(f"NDA {nda.id} uploaded as document {upload.document_id} (ref {upload.reference_number})")
        else:
            logger.info(f"NDA {nda.id} resuming from document {nda.provider_document_id}")

        entrepreneur = self._entrepreneur_contact(nda)
        company_rep = self._company_contact(nda)
        signers = [
            Signer(full_name=entrepreneur.name, email=entrepreneur.email, phone_number=entrepreneur.phone),
            Signer(full_name=company_rep.name, email=company_rep.email, phone_number=company_rep.phone),
        ]
        invitation = self.provider.create_and_invite(nda.provider_document_id, signers, project.title)

        now = self.clock()
        nda.status = NdaStatus.INVITATIONS_SENT.value
        nda.provider_envelope_status = invitation.status or nda.provider_envelope_status
        nda.invitations_sent_at = now
        nda.expires_at = now + timedelta(days=int(self.config.get('NDA_INVITATION_VALID_DAYS', 30)))
        nda.last_provider_error = None
        audit_service.log_invitations_sent(nda, [s.email for s in signers])
        self.repository.save(nda)
        logger.info(f"NDA {nda.id} invitations sent to {len(signers)} signers")

    def _fail_over(self, nda, project, document: bytes, error: ProviderError, attempts: int) -> Dict[str, Any]:
        """Revert, then email the agreement to both parties."""
        nda.status = NdaStatus.AWAITING_ENTREPRENEUR.value
        nda.last_provider_error = str(error)
        audit_service.log_provider_failure(nda, error, attempts)
        self.repository.save(nda)

        contacts = [self._entrepreneur_contact(nda), self._company_contact(nda)]
        result = self.fallback_notifier.send(
            document,
            self._file_name(project),
            contacts,
            project.title,
            reference_label(self._project_info(project))
        )

        if not result.success:
            audit_service.log_fallback_failed(nda, result.to_list())
            self.repository.save(nda)
            logger.error(f"NDA {nda.id}: provider and email fallback both failed")
            raise FallbackError(
                'The signing service is unavailable and the agreement could not be emailed',
                last_provider_error=str(error),
                contacts=[c.to_dict() for c in contacts],
                nda_id=nda.id
            )

        synthetic_id = f"{FALLBACK_ID_PREFIX}{nda.id}"
        nda.status = NdaStatus.EMAIL_FALLBACK_SENT.value
        nda.fallback_used = True
        nda.fallback_sent_at = self.clock()
        if not nda.provider_document_id:
            nda.provider_document_id = synthetic_id
            nda.provider_envelope_id = synthetic_id
        if not nda.provider_reference_number:
            nda.provider_reference_number = synthetic_id
        audit_service.log_fallback_sent(nda, result.sent_to)
        self.repository.save(nda)
        logger.info(f"NDA {nda.id} emailed to {', '.join(result.sent_to)} after provider failure")

        return {
            'ndaId': nda.id,
            'status': nda.status,
            'fallbackUsed': True,
            'emailsSentTo': result.sent_to,
            'lastProviderError': nda.last_provider_error,
        }

    # -------------------------------------------------------------------------
    # Reconcile
    # -------------------------------------------------------------------------

    def reconcile(self, nda_id: int, envelope: EnvelopeStatus, source: str = 'poll') -> Dict[str, Any]:
        """
        Apply a provider-observed envelope status to the record.

        Idempotent: terminal records never change, partially signed never
        goes back to invitations sent, and a repeated payload is a no-op.

        Returns:
            Dict with ndaId, status, changed and duplicate
        """
        with self._record_lock(nda_id):
            nda = self._load_for_update(nda_id)
            old_status = NdaStatus(nda.status)
            digest = payload_hash(envelope)
            duplicate = digest == nda.provider_payload_hash
            result = {'ndaId': nda.id, 'status': nda.status, 'changed': False, 'duplicate': duplicate,
                      'providerStatus': envelope.status}

            if old_status.is_terminal or duplicate or not old_status.awaits_signatures:
                if source == 'webhook':
                    audit_service.log_webhook_received(nda, envelope.status, duplicate)
                    self.repository.save(nda)
                logger.info(f"NDA {nda.id} reconcile ignored: status={old_status.value}, duplicate={duplicate}")
                return result

            new_status = map_provider_status(envelope)
            if old_status == NdaStatus.PARTIALLY_SIGNED and new_status == NdaStatus.INVITATIONS_SENT:
                new_status = NdaStatus.PARTIALLY_SIGNED

            nda.provider_envelope_status = envelope.status
            nda.provider_signers = [s.to_dict() for s in envelope.signers]
            nda.provider_payload_hash = digest

            changed = new_status != old_status
            if changed:
                nda.status = new_status.value
                now = self.clock()
                if new_status == NdaStatus.SIGNED and nda.signed_at is None:
                    nda.signed_at = now
                if new_status == NdaStatus.CANCELLED:
                    nda.cancelled_at = now
                audit_service.log_status_reconciled(nda, old_status.value, new_status.value, envelope.status, source)
            if source == 'webhook':
                audit_service.log_webhook_received(nda, envelope.status, False)
            self.repository.save(nda)

            result.update(status=nda.status, changed=changed)

        if changed:
            logger.info(f"NDA {nda.id} reconciled {old_status.value} -> {new_status.value} via {source}")
            if new_status == NdaStatus.SIGNED:
                self._notify(self.notifications.notify_nda_signed, nda)
            elif new_status.is_terminal:
                self._notify(self.notifications.notify_nda_closed, nda, f"provider reported {envelope.status}")

        return result

    def handle_webhook(self, authorization: Optional[str], payload) -> Dict[str, Any]:
        """
        Authenticate and apply a provider webhook delivery.

        Raises:
            ReconciliationError: bad credentials (401) or malformed payload (400)
            NotFoundError: no record for the envelope
        """
        secret = self.config.get('SADIQ_WEBHOOK_SECRET') or ''
        token = (authorization or '').strip()
        if token.lower().startswith('bearer '):
            token = token[7:].strip()
        if not secret or not hmac.compare_digest(token.encode('utf-8'), secret.encode('utf-8')):
            logger.warning("Rejected Sadiq webhook with invalid credentials")
            raise ReconciliationError('Invalid webhook credentials', http_status=401)

        try:
            envelope = SadiqClient.parse_envelope_status(payload)
        except ReconciliationError as e:
            logger.warning(f"Ignored malformed Sadiq webhook: {e.message}")
            raise
        if not envelope.reference_number and not envelope.envelope_id:
            logger.warning(f"Ignored Sadiq webhook without reference number or envelope id: {str(payload)[:200]}")
            raise ReconciliationError('Webhook payload has no reference number or envelope id')

        nda = None
        if envelope.reference_number:
            nda = self.repository.find_by_reference(envelope.reference_number)
        if nda is None and envelope.envelope_id:
            nda = self.repository.find_by_envelope(envelope.envelope_id)
        if nda is None:
            logger.warning(f"Ignored Sadiq webhook for unknown envelope {envelope.reference_number or envelope.envelope_id}")
            raise NotFoundError('No NDA matches this envelope',
                                referenceNumber=envelope.reference_number, envelopeId=envelope.envelope_id)

        return self.reconcile(nda.id, envelope, source='webhook')

    def refresh_status(self, nda_id: int) -> Dict[str, Any]:
        """Poll the provider for a record awaiting signatures and reconcile it."""
        nda = self._load(nda_id)
        if not NdaStatus(nda.status).awaits_signatures or not nda.provider_reference_number:
            return {'ndaId': nda.id, 'status': nda.status, 'changed': False, 'duplicate': False}

        envelope = self.provider.get_envelope_status(nda.provider_reference_number)
        return self.reconcile(nda.id, envelope, source='poll')

    def poll_pending(self, limit: int = 100) -> Dict[str, int]:
        """Reconcile every record with live invitations. Used by the cron job."""
        nda_ids = [nda.id for nda in self.repository.list_pending_reconciliation(limit)]
        stats = {'checked': 0, 'updated': 0, 'failed': 0}

        for nda_id in nda_ids:
            stats['checked'] += 1
            try:
                result = self.refresh_status(nda_id)
            except (ProviderError, ReconciliationError, ConflictError) as e:
                db.session.rollback()
                stats['failed'] += 1
                logger.warning(f"Reconcile of NDA {nda_id} failed: {e}")
                continue
            if result.get('changed'):
                stats['updated'] += 1

        return stats

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    def get_status(self, actor, nda_id: int, refresh: bool = True) -> Dict[str, Any]:
        """
        Current record, refreshed from the provider when signatures are pending.

        A failed refresh is reported as ``reconciliationError`` rather than
        failing the read.
        """
        nda = self._load(nda_id)
        self._authorize(actor, nda)

        reconciliation_error = None
        if refresh and NdaStatus(nda.status).awaits_signatures and nda.provider_reference_number:
            try:
                self.refresh_status(nda.id)
            except (ProviderError, ReconciliationError, ConflictError) as e:
                db.session.rollback()
                logger.warning(f"Status refresh for NDA {nda.id} failed: {e}")
                reconciliation_error = str(e)
            nda = self._load(nda_id)

        data = nda.to_dict()
        data['signers'] = signer_breakdown(nda.provider_signers)
        if reconciliation_error:
            data['reconciliationError'] = reconciliation_error
        return data

    def list_for_project(self, actor, project_id: int) -> Dict[str, Any]:
        """Agreements of a project visible to the actor."""
        project = self.repository.get_project(project_id)
        if project is None:
            raise NotFoundError('Project not found', projectId=project_id)

        if actor.is_admin or actor.id == project.owner_id:
            ndas = self.repository.list_for_project(project_id)
        elif actor.is_company:
            ndas = self.repository.list_for_project(project_id, company_user_id=actor.id)
        else:
            raise AuthorizationError('You do not have access to this project')

        return {'projectId': project_id, 'ndas': [nda.to_dict() for nda in ndas]}

    def get_document(self, actor, nda_id: int) -> DocumentResult:
        """
        The agreement PDF: the provider's copy when one exists, otherwise a
        regenerated copy stamped as a reconstruction.
        """
        nda = self._load(nda_id)
        self._authorize(actor, nda)
        project = nda.project

        content = None
        source = 'provider'
        if self._has_provider_document(nda):
            try:
                content = self.provider.download_document(nda.provider_document_id)
            except ProviderError as e:
                logger.warning(f"Provider download failed for NDA {nda.id}, reconstructing: {e}")

        if content is None:
            content = self._compose(nda, project, reconstruction=True)
            source = 'reconstruction'

        audit_service.log_document_downloaded(nda, source)
        db.session.commit()

        return DocumentResult(content=content, source=source, file_name=self._file_name(project))

    # -------------------------------------------------------------------------
    # Cancel / void
    # -------------------------------------------------------------------------

    def cancel(self, actor, nda_id: int, reason: Optional[str] = None) -> Dict[str, Any]:
        """Either party (or an admin) withdraws an agreement before invitations go out."""
        with self._record_lock(nda_id):
            nda = self._load_for_update(nda_id)
            self._authorize(actor, nda)

            if NdaStatus(nda.status) not in CANCELLABLE_STATUSES:
                raise ConflictError(f"NDA cannot be cancelled in status '{nda.status}'",
                                    ndaId=nda.id, status=nda.status)

            nda.status = NdaStatus.CANCELLED.value
            nda.cancelled_at = self.clock()
            audit_service.log_nda_cancelled(nda, reason=reason, actor_id=actor.id)
            self.repository.save(nda)

        logger.info(f"NDA {nda.id} cancelled by user {actor.id}")
        self._notify(self.notifications.notify_nda_closed, nda, 'cancelled')
        return {'ndaId': nda.id, 'status': nda.status}

    def void(self, actor, nda_id: int, reason: Optional[str] = None) -> Dict[str, Any]:
        """
        An admin voids an agreement whose invitations are live at the provider.

        Only the local record changes. The provider client has no void call, so
        the envelope stays open there until an admin withdraws it in the Sadiq
        portal; signatures collected after this point are ignored because
        voided is terminal. The response carries the envelope id and
        ``providerEnvelopeOpen`` so the caller can follow up.
        """
        with self._record_lock(nda_id):
            nda = self._load_for_update(nda_id)
            if not actor.is_admin:
                raise AuthorizationError('Only an administrator can void an NDA')

            if not NdaStatus(nda.status).awaits_signatures:
                raise ConflictError(f"NDA cannot be voided in status '{nda.status}'",
                                    ndaId=nda.id, status=nda.status)

            nda.status = NdaStatus.VOIDED.value
            nda.cancelled_at = self.clock()
            audit_service.log_nda_voided(nda, reason=reason, actor_id=actor.id)
            self.repository.save(nda)

        logger.info(f"NDA {nda.id} voided by admin {actor.id}")
        logger.warning(f"Sadiq envelope {nda.provider_envelope_id} for voided NDA {nda.id} must be withdrawn in the Sadiq portal")
        self._notify(self.notifications.notify_nda_closed, nda, 'voided by an administrator')
        return {
            'ndaId': nda.id,
            'status': nda.status,
            'providerEnvelopeId': nda.provider_envelope_id,
            'providerEnvelopeOpen': True,
        }


def get_workflow() -> NdaWorkflow:
    """Get or create the app's workflow engine."""
    workflow = current_app.extensions.get('nda_workflow')
    if workflow is None:
        workflow = NdaWorkflow(
            repository=NdaRepository(),
            provider=current_app.extensions['sadiq_client'],
            fallback_notifier=FallbackNotifier(get_email_service()),
            config=current_app.config,
        )
        current_app.extensions['nda_workflow'] = workflow
    return workflow

"""
NDA Repository

Persistence for NDA agreements plus the per-record lock registry that
serializes every mutating workflow operation.

A process-wide keyed lock keeps two requests in the same worker from
interleaving. Across processes the database does the same job: updates
re-read the agreement row with SELECT ... FOR UPDATE, and new agreements
are created under a lock on the project row.
"""

import logging
import threading
from contextlib import contextmanager
from typing import Dict, Hashable, List, Optional

from models import db, NdaAgreement, Project
from services.esign.exceptions import ConflictError
from services.esign.types import ACTIVE_STATUS_VALUES, NdaStatus

logger = logging.getLogger(__name__)


class RecordLocks:
    """
    Keyed lock registry.

    Locks are created on first use and dropped again once nobody holds or
    waits for them, so the registry does not grow with the number of records.
    """

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: Dict[Hashable, threading.Lock] = {}
        self._users: Dict[Hashable, int] = {}

    def _checkout(self, key):
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = self._locks[key] = threading.Lock()
                self._users[key] = 0
            self._users[key] += 1
            return lock

    def _release(self, key):
        with self._guard:
            self._users[key] -= 1
            if self._users[key] == 0:
                del self._users[key]
                del self._locks[key]

    @contextmanager
    def lock(self, key: Hashable, timeout: float):
        """
        Hold the lock for ``key`` for the duration of the block.

        Raises:
            ConflictError: the lock could not be acquired within ``timeout`` seconds
        """
        lock = self._checkout(key)
        try:
            if not lock.acquire(timeout=timeout):
                logger.warning(f"Timed out waiting for lock {key!r} after {timeout}s")
                raise ConflictError('This agreement is busy, please retry shortly')
            try:
                yield
            finally:
                lock.release()
        finally:
            self._release(key)

    def __len__(self):
        with self._guard:
            return len(self._locks)


class NdaRepository:
    """Queries and writes for NdaAgreement rows."""

    def get(self, nda_id: int) -> Optional[NdaAgreement]:
        return db.session.get(NdaAgreement, nda_id)

    def get_for_update(self, nda_id: int) -> Optional[NdaAgreement]:
        """Re-read the row under a row lock (ignored by SQLite)."""
        return (
            NdaAgreement.query
            .filter_by(id=nda_id)
            .populate_existing()
            .with_for_update()
            .first()
        )

    def get_project(self, project_id: int) -> Optional[Project]:
        return db.session.get(Project, project_id)

    def get_project_for_update(self, project_id: int) -> Optional[Project]:
        """
        Lock the project row until the next commit.

        Serializes NDA creation for a project across worker processes.
        """
        return (
            Project.query
            .filter_by(id=project_id)
            .populate_existing()
            .with_for_update()
            .first()
        )

    def find_active(self, project_id: int, company_user_id: int) -> Optional[NdaAgreement]:
        """The non-terminal agreement for a (project, company) pair, if any."""
        return (
            NdaAgreement.query
            .filter(
                NdaAgreement.project_id == project_id,
                NdaAgreement.company_user_id == company_user_id,
                NdaAgreement.status.in_(ACTIVE_STATUS_VALUES)
            )
            .order_by(NdaAgreement.created_at.desc())
            .first()
        )

    def find_by_reference(self, reference_number: str) -> Optional[NdaAgreement]:
        return NdaAgreement.query.filter_by(provider_reference_number=reference_number).first()

    def find_by_envelope(self, envelope_id: str) -> Optional[NdaAgreement]:
        return NdaAgreement.query.filter_by(provider_envelope_id=envelope_id).first()

    def list_for_project(self, project_id: int, company_user_id: Optional[int] = None) -> List[NdaAgreement]:
        query = NdaAgreement.query.filter_by(project_id=project_id)
        if company_user_id is not None:
            query = query.filter_by(company_user_id=company_user_id)
        return query.order_by(NdaAgreement.created_at.desc(), NdaAgreement.id.desc()).all()

    def list_pending_reconciliation(self, limit: int = 100) -> List[NdaAgreement]:
        """Agreements with live provider invitations, oldest update first."""
        return (
            NdaAgreement.query
            .filter(
                NdaAgreement.status.in_([NdaStatus.INVITATIONS_SENT.value, NdaStatus.PARTIALLY_SIGNED.value]),
                NdaAgreement.provider_reference_number.isnot(None)
            )
            .order_by(NdaAgreement.updated_at.asc())
            .limit(limit)
            .all()
        )

    def create(self, **fields) -> NdaAgreement:
        nda = NdaAgreement(**fields)
        db.session.add(nda)
        db.session.flush()
        return nda

    def update_project_summary(self, project_id: int) -> None:
        """
        Recompute the project's denormalized NDA fields.

        The summary follows the newest active agreement across all companies,
        or the newest agreement of any status when none is active.
        """
        project = db.session.get(Project, project_id)
        if project is None:
            return

        db.session.flush()
        newest_first = (
            NdaAgreement.query
            .filter_by(project_id=project_id)
            .order_by(NdaAgreement.created_at.desc(), NdaAgreement.id.desc())
        )
        current = newest_first.filter(NdaAgreement.status.in_(ACTIVE_STATUS_VALUES)).first() or newest_first.first()

        project.nda_status = current.status if current else None
        project.active_nda_id = current.id if current else None

    def save(self, nda: NdaAgreement) -> NdaAgreement:
        """Commit the agreement (and anything staged with it, e.g. audit events)."""
        self.update_project_summary(nda.project_id)
        db.session.commit()
        return nda

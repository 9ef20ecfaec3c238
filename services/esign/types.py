"""
E-Signature Type Definitions

Dataclasses shared between the NDA workflow and the Sadiq client.
The provider wire format never leaks past these types.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class NdaStatus(Enum):
    """Lifecycle states of an NDA agreement."""
    AWAITING_ENTREPRENEUR = "awaiting_entrepreneur"
    READY_FOR_PROVIDER = "ready_for_provider"
    INVITATIONS_SENT = "invitations_sent"
    PARTIALLY_SIGNED = "partially_signed"
    SIGNED = "signed"
    EMAIL_FALLBACK_SENT = "email_fallback_sent"
    PROVIDER_FAILED = "provider_failed"
    CANCELLED = "cancelled"
    VOIDED = "voided"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES

    @property
    def is_active(self) -> bool:
        return self not in TERMINAL_STATUSES

    @property
    def awaits_signatures(self) -> bool:
        """Invitations are out at the provider and signatures are pending."""
        return self in (NdaStatus.INVITATIONS_SENT, NdaStatus.PARTIALLY_SIGNED)


TERMINAL_STATUSES = frozenset({
    NdaStatus.SIGNED,
    NdaStatus.CANCELLED,
    NdaStatus.VOIDED,
    NdaStatus.PROVIDER_FAILED,
})

ACTIVE_STATUS_VALUES = tuple(s.value for s in NdaStatus if s not in TERMINAL_STATUSES)


@dataclass(frozen=True)
class Contact:
    """A party's contact details as supplied on initiate/complete."""
    name: str
    email: str
    phone: str

    def to_dict(self) -> Dict[str, str]:
        return {'name': self.name, 'email': self.email, 'phone': self.phone}


@dataclass(frozen=True)
class Signer:
    """
    One invitation destination at the provider.

    Attributes:
        full_name: Display name shown in the invitation
        email: Invitation email
        phone_number: Phone as entered; the client normalizes it
        national_id: Optional national id (provider identity verification)
    """
    full_name: str
    email: str
    phone_number: str
    national_id: str = ''


@dataclass(frozen=True)
class UploadResult:
    """Identifiers returned when a document is uploaded into a new envelope."""
    document_id: str
    envelope_id: str
    reference_number: str
    status: Optional[str] = None


@dataclass(frozen=True)
class InvitationResult:
    """Outcome of sending signing invitations for an envelope."""
    envelope_id: Optional[str]
    status: Optional[str] = None


@dataclass(frozen=True)
class SignerStatus:
    """Per-signer state as reported by the provider."""
    email: str
    status: str
    name: Optional[str] = None
    signed_at: Optional[str] = None

    @property
    def has_signed(self) -> bool:
        return self.status.lower() in ('signed', 'completed')

    def to_dict(self) -> Dict[str, Any]:
        return {
            'email': self.email,
            'name': self.name,
            'status': self.status,
            'signedAt': self.signed_at,
        }


@dataclass(frozen=True)
class EnvelopeStatus:
    """Provider envelope status with the per-signer breakdown."""
    status: str
    signers: List[SignerStatus] = field(default_factory=list)
    reference_number: Optional[str] = None
    envelope_id: Optional[str] = None

    @property
    def signed_count(self) -> int:
        return sum(1 for s in self.signers if s.has_signed)

    @property
    def all_signed(self) -> bool:
        return bool(self.signers) and self.signed_count == len(self.signers)


@dataclass(frozen=True)
class ProjectInfo:
    """Project data rendered into the agreement."""
    id: int
    title: str
    description: str = ''


@dataclass(frozen=True)
class CompanyInfo:
    """Company data rendered into the agreement."""
    name: str
    location: str = ''


@dataclass(frozen=True)
class SignerNames:
    """Names printed in the signature block (usually masked)."""
    entrepreneur: str
    company_rep: str

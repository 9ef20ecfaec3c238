"""
E-Signature Integration

Everything the NDA workflow needs to talk to the Sadiq signing provider:
the document composer, the provider client with its token cache, the
shared types and the error taxonomy.

Usage:
    from services.esign import SadiqClient, compose_nda_pdf, ProjectInfo, CompanyInfo, SignerNames

    pdf = compose_nda_pdf(ProjectInfo(42, 'Fleet app'), CompanyInfo('Acme Co'), SignerNames('N**r', 'A****a'))
    upload = client.upload_document(pdf, 'nda-42.pdf')
    client.create_and_invite(upload.document_id, signers, 'Fleet app')
"""

from .types import (
    NdaStatus,
    TERMINAL_STATUSES,
    ACTIVE_STATUS_VALUES,
    Contact,
    Signer,
    UploadResult,
    InvitationResult,
    SignerStatus,
    EnvelopeStatus,
    ProjectInfo,
    CompanyInfo,
    SignerNames
)

from .exceptions import (
    NdaError,
    ValidationError,
    AuthorizationError,
    NotFoundError,
    ConflictError,
    ProviderError,
    ProviderTransientError,
    ProviderPermanentError,
    FallbackError,
    ReconciliationError
)

from .token_cache import TokenCache
from .sadiq_client import SadiqClient, format_phone_number
from .composer import compose_nda_pdf, reference_label

__all__ = [
    # Types
    'NdaStatus',
    'TERMINAL_STATUSES',
    'ACTIVE_STATUS_VALUES',
    'Contact',
    'Signer',
    'UploadResult',
    'InvitationResult',
    'SignerStatus',
    'EnvelopeStatus',
    'ProjectInfo',
    'CompanyInfo',
    'SignerNames',

    # Exceptions
    'NdaError',
    'ValidationError',
    'AuthorizationError',
    'NotFoundError',
    'ConflictError',
    'ProviderError',
    'ProviderTransientError',
    'ProviderPermanentError',
    'FallbackError',
    'ReconciliationError',

    # Services
    'TokenCache',
    'SadiqClient',
    'format_phone_number',
    'compose_nda_pdf',
    'reference_label',
]

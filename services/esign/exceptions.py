"""
NDA Workflow Exceptions

Error taxonomy for the NDA workflow and the e-signature provider.
Each class carries the HTTP status the API layer renders it with.
"""


class NdaError(Exception):
    """Base exception for all NDA workflow errors."""
    http_status = 500

    def __init__(self, message: str, **details):
        self.message = message
        self.details = details
        super().__init__(message)

    def to_dict(self):
        payload = {'error': self.message}
        payload.update(self.details)
        return payload


class ValidationError(NdaError):
    """Missing or malformed input. Never retried, nothing is written."""
    http_status = 400


class AuthorizationError(NdaError):
    """The caller is not entitled to act on this agreement."""
    http_status = 403


class NotFoundError(NdaError):
    """The project or agreement does not exist."""
    http_status = 404


class ConflictError(NdaError):
    """
    Raised when a duplicate active agreement exists, or the agreement is
    not in a state that allows the requested transition.
    """
    http_status = 409


class ProviderError(NdaError):
    """
    Raised when a Sadiq API call fails.

    Wraps the underlying API error with context.
    """
    http_status = 502
    transient = False

    def __init__(self, message: str, status_code: int = None, response_body: str = None):
        self.status_code = status_code
        self.response_body = response_body
        super().__init__(message)


class ProviderTransientError(ProviderError):
    """Timeout, connection failure, 5xx or rate limit. Safe to retry."""
    transient = True


class ProviderPermanentError(ProviderError):
    """4xx validation failure or malformed payload. Must not be retried."""
    transient = False


class FallbackError(NdaError):
    """
    Raised when the email fallback could not reach both parties.

    Carries the last provider error and both parties' contact details so a
    human can finish the agreement out of band.
    """
    http_status = 502

    def __init__(self, message: str, last_provider_error: str = None, contacts: list = None, nda_id: int = None):
        self.last_provider_error = last_provider_error
        self.contacts = contacts or []
        super().__init__(
            message,
            ndaId=nda_id,
            lastProviderError=last_provider_error,
            contacts=self.contacts,
        )


class ReconciliationError(NdaError):
    """
    Raised for an unauthenticated or malformed webhook or status payload.

    The record is left untouched.
    """
    http_status = 400

    def __init__(self, message: str, http_status: int = None):
        if http_status is not None:
            self.http_status = http_status
        super().__init__(message)

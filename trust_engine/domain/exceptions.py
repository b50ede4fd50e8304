"""
Domain exceptions - Semantic error types for the verification engine.

Every user-facing error carries a stable ``kind`` so the presentation
layer can map it to a structured response without inspecting messages.
A failed verification is not an exception: it is a VerificationResult
with ``success=False``.
"""


class TrustEngineError(Exception):
    """Base class for verification engine domain errors."""

    kind = "internal_error"

    def __init__(self, message: str = "") -> None:
        super().__init__(message)
        self.message = message


class ValidationError(TrustEngineError):
    """One or more input fields failed sanitization rules."""

    kind = "validation_error"

    def __init__(self, errors: dict[str, str]) -> None:
        super().__init__("Invalid input")
        self.errors = errors


class RateLimited(TrustEngineError):
    """Actor exhausted its attempts for an action in the current window."""

    kind = "rate_limited"

    def __init__(self, action: str, remaining: int = 0) -> None:
        super().__init__(f"Too many {action} attempts. Please try again later.")
        self.action = action
        self.remaining = remaining


class InvalidChallenge(TrustEngineError):
    """Challenge cannot be consumed; the caller must request a new one."""

    kind = "invalid_challenge"


class ChallengeNotFound(InvalidChallenge):
    kind = "challenge_not_found"


class ChallengeExpired(InvalidChallenge):
    kind = "challenge_expired"


class ChallengeAlreadyConsumed(InvalidChallenge):
    kind = "challenge_already_consumed"


class SubjectNotFound(TrustEngineError):
    kind = "subject_not_found"


class ProofNotFound(TrustEngineError):
    kind = "proof_not_found"


class DisputeNotFound(TrustEngineError):
    kind = "dispute_not_found"


class Unauthorized(TrustEngineError):
    """Actor is not allowed to act on this subject."""

    kind = "unauthorized"


class NotEligible(TrustEngineError):
    """Request is well-formed but a business rule refuses it."""

    kind = "not_eligible"


class ExternalFetchError(TrustEngineError):
    """Outbound fetch failed (transient; retried on the next sweep)."""

    kind = "external_fetch_error"


class ExternalFetchTimeout(ExternalFetchError):
    kind = "external_fetch_timeout"


class StorageError(TrustEngineError):
    """Repository failure. Fatal to the current operation, never retried here."""

    kind = "storage_error"

"""
Domain layer - Pure verification logic with zero framework imports.

This package contains the Trust & Verification Engine: intake
sanitization, rate limiting, challenge issuance, proof verification, the
proof lifecycle state machine and trust scoring. It defines its own port
interfaces for infrastructure abstraction.
"""

from .engine import TrustEngine, VerificationState
from .exceptions import (
    ChallengeAlreadyConsumed,
    ChallengeExpired,
    ChallengeNotFound,
    DisputeNotFound,
    ExternalFetchError,
    ExternalFetchTimeout,
    InvalidChallenge,
    NotEligible,
    ProofNotFound,
    RateLimited,
    StorageError,
    SubjectNotFound,
    TrustEngineError,
    Unauthorized,
    ValidationError,
)
from .ports import AlertSink, ChainGateway, FetchResponse, ResourceFetcher, VerificationRepository

__all__ = [
    "AlertSink",
    "ChainGateway",
    "ChallengeAlreadyConsumed",
    "ChallengeExpired",
    "ChallengeNotFound",
    "DisputeNotFound",
    "ExternalFetchError",
    "ExternalFetchTimeout",
    "FetchResponse",
    "InvalidChallenge",
    "NotEligible",
    "ProofNotFound",
    "RateLimited",
    "ResourceFetcher",
    "StorageError",
    "SubjectNotFound",
    "TrustEngine",
    "TrustEngineError",
    "Unauthorized",
    "ValidationError",
    "VerificationRepository",
    "VerificationState",
]

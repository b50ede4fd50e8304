"""
Port interfaces - Protocol definitions for infrastructure abstraction.

This module defines the interfaces (ports) that the domain requires
from infrastructure. Adapters implement these protocols.
"""

from collections.abc import Callable, Iterable
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Protocol

from .models import (
    Challenge,
    CommunityAlert,
    CommunityAttestation,
    Dispute,
    OrganizationIdentity,
    Platform,
    ProofStatus,
    VerificationProof,
)

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    """Default clock: timezone-aware current UTC time."""
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class FetchResponse:
    """Outcome of an outbound fetch that reached the remote end."""

    status_code: int
    body: str

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300


class VerificationRepository(Protocol):
    """
    Port interface for subject, challenge, proof and dispute persistence.

    Implementations must give read-your-writes consistency per key and
    raise StorageError on infrastructure failure.
    """

    def get_subject(self, subject_id: str) -> OrganizationIdentity | None:
        ...

    def put_subject(self, subject: OrganizationIdentity) -> None:
        ...

    def list_subjects(self) -> list[OrganizationIdentity]:
        ...

    def get_challenge(self, challenge_id: str) -> Challenge | None:
        ...

    def put_challenge(self, challenge: Challenge) -> None:
        """
        Store a challenge.

        A challenge with a new id for the same (subject, platform, target)
        replaces the previous one, which is no longer retrievable by id.
        Storing a challenge under its existing id updates it in place.
        """
        ...

    def find_open_challenge(
        self, subject_id: str, platform: Platform, target: str, now: datetime
    ) -> Challenge | None:
        ...

    def append_proof(self, proof: VerificationProof) -> None:
        ...

    def update_proof(self, proof: VerificationProof) -> None:
        """Persist a status/sub-state change. Raises ProofNotFound if absent."""
        ...

    def get_proof(self, proof_id: str) -> VerificationProof | None:
        ...

    def list_proofs(self, subject_id: str) -> list[VerificationProof]:
        ...

    def list_proofs_by_status(self, statuses: Iterable[ProofStatus]) -> list[VerificationProof]:
        ...

    def append_attestation(self, subject_id: str, attestation: CommunityAttestation) -> None:
        """Append to the subject's ReputationState. Raises SubjectNotFound."""
        ...

    def put_dispute(self, dispute: Dispute) -> None:
        ...

    def get_dispute(self, dispute_id: str) -> Dispute | None:
        ...

    def list_disputes(self, proof_id: str) -> list[Dispute]:
        ...


class ResourceFetcher(Protocol):
    """Port interface for outbound HTTP/DNS-over-HTTPS reads."""

    def fetch_resource(self, url: str) -> FetchResponse:
        """
        Fetch ``url`` with a bounded timeout.

        Raises:
            ExternalFetchTimeout: The remote end did not answer in time
            ExternalFetchError: Connection or protocol failure
        """
        ...


class ChainGateway(Protocol):
    """Port interface for per-chain signature checks and read-only state queries."""

    def verify_signature(
        self, chain: Platform, address: str, message: str, signature: str
    ) -> bool:
        ...

    def read_public_state(
        self, chain: Platform, address_or_contract: str, key: str
    ) -> str | None:
        """Return the stored value, or None when the key does not exist."""
        ...


class AlertSink(Protocol):
    """Port interface for community alert delivery."""

    def publish(self, alert: CommunityAlert) -> None:
        ...

"""
In-memory repository adapter - Implements VerificationRepository protocol.

Records are deep-copied on the way in and out so callers never share
mutable state with the store; a change is visible only after it is put
back. One lock guards all maps, which gives read-your-writes per key.
"""

import copy
import threading
from collections.abc import Iterable
from datetime import datetime

from trust_engine.domain.exceptions import ProofNotFound, SubjectNotFound
from trust_engine.domain.models import (
    Challenge,
    CommunityAttestation,
    Dispute,
    Endorsement,
    OrganizationIdentity,
    Platform,
    ProofStatus,
    Testimonial,
    VerificationProof,
    Vouch,
)


class InMemoryVerificationRepository:
    """
    Implements VerificationRepository protocol with process-local dicts.

    Uses structural subtyping - no explicit inheritance from Protocol.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._subjects: dict[str, OrganizationIdentity] = {}
        self._challenges: dict[str, Challenge] = {}
        self._challenge_by_claim: dict[tuple[str, str, str], str] = {}
        self._proofs: dict[str, VerificationProof] = {}
        self._disputes: dict[str, Dispute] = {}

    # Subjects

    def get_subject(self, subject_id: str) -> OrganizationIdentity | None:
        with self._lock:
            return copy.deepcopy(self._subjects.get(subject_id))

    def put_subject(self, subject: OrganizationIdentity) -> None:
        with self._lock:
            self._subjects[subject.id] = copy.deepcopy(subject)

    def list_subjects(self) -> list[OrganizationIdentity]:
        with self._lock:
            return copy.deepcopy(list(self._subjects.values()))

    # Challenges

    def get_challenge(self, challenge_id: str) -> Challenge | None:
        with self._lock:
            return copy.deepcopy(self._challenges.get(challenge_id))

    def put_challenge(self, challenge: Challenge) -> None:
        with self._lock:
            previous_id = self._challenge_by_claim.get(challenge.claim_key)
            if previous_id is not None and previous_id != challenge.challenge_id:
                del self._challenges[previous_id]
            self._challenges[challenge.challenge_id] = copy.deepcopy(challenge)
            self._challenge_by_claim[challenge.claim_key] = challenge.challenge_id

    def find_open_challenge(
        self, subject_id: str, platform: Platform, target: str, now: datetime
    ) -> Challenge | None:
        with self._lock:
            challenge_id = self._challenge_by_claim.get((subject_id, platform.value, target))
            challenge = self._challenges.get(challenge_id) if challenge_id else None
            if challenge is None or not challenge.is_open(now):
                return None
            return copy.deepcopy(challenge)

    # Proofs

    def append_proof(self, proof: VerificationProof) -> None:
        with self._lock:
            self._proofs[proof.proof_id] = copy.deepcopy(proof)

    def update_proof(self, proof: VerificationProof) -> None:
        with self._lock:
            if proof.proof_id not in self._proofs:
                raise ProofNotFound(f"Proof {proof.proof_id} not found")
            self._proofs[proof.proof_id] = copy.deepcopy(proof)

    def get_proof(self, proof_id: str) -> VerificationProof | None:
        with self._lock:
            return copy.deepcopy(self._proofs.get(proof_id))

    def list_proofs(self, subject_id: str) -> list[VerificationProof]:
        with self._lock:
            proofs = [p for p in self._proofs.values() if p.subject_id == subject_id]
            return copy.deepcopy(sorted(proofs, key=lambda p: p.verified_at))

    def list_proofs_by_status(self, statuses: Iterable[ProofStatus]) -> list[VerificationProof]:
        wanted = set(statuses)
        with self._lock:
            proofs = [p for p in self._proofs.values() if p.status in wanted]
            return copy.deepcopy(sorted(proofs, key=lambda p: p.verified_at))

    # Attestations

    def append_attestation(self, subject_id: str, attestation: CommunityAttestation) -> None:
        with self._lock:
            subject = self._subjects.get(subject_id)
            if subject is None:
                raise SubjectNotFound(f"Organization {subject_id} not found")
            state = subject.reputation
            if isinstance(attestation, Endorsement):
                state.endorsements.append(copy.deepcopy(attestation))
            elif isinstance(attestation, Testimonial):
                state.testimonials.append(copy.deepcopy(attestation))
            elif isinstance(attestation, Vouch):
                state.vouches.append(copy.deepcopy(attestation))
            else:
                raise TypeError(f"Unsupported attestation: {type(attestation).__name__}")

    # Disputes

    def put_dispute(self, dispute: Dispute) -> None:
        with self._lock:
            self._disputes[dispute.dispute_id] = copy.deepcopy(dispute)

    def get_dispute(self, dispute_id: str) -> Dispute | None:
        with self._lock:
            return copy.deepcopy(self._disputes.get(dispute_id))

    def list_disputes(self, proof_id: str) -> list[Dispute]:
        with self._lock:
            disputes = [d for d in self._disputes.values() if d.proof_id == proof_id]
            return copy.deepcopy(sorted(disputes, key=lambda d: d.created_at))

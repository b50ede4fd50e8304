"""
Proof verification - Consumes an open challenge against a submission.

Verification Flow
=================

1. Resolve the challenge (missing -> ChallengeNotFound, consumed ->
   ChallengeAlreadyConsumed, past expiry -> ChallengeExpired)
2. Run the method-specific check through ProofChecker
3. On success: mark the challenge consumed, append an ACTIVE proof and
   recompute the subject's verification score
4. On failure: leave the challenge open (retry allowed until expiry)
   and create nothing

Verification never touches the subject's claimed data. Callers hold the
subject's mutation lock around ``verify``.
"""

import logging
import uuid
from dataclasses import dataclass

from .checks import ProofChecker
from .exceptions import ChallengeAlreadyConsumed, ChallengeExpired, ChallengeNotFound
from .models import (
    DnsTxtRecord,
    ProfileField,
    ProofStatus,
    ProofSubmission,
    PublicPost,
    SignMessage,
    StatusChange,
    VerificationMethod,
    VerificationProof,
    VerificationResult,
    WellKnownFile,
)
from .ports import Clock, VerificationRepository, utc_now
from .scoring import TrustScoreEngine, refresh_verification_score

logger = logging.getLogger(__name__)

_LIVE_STATUSES = (ProofStatus.ACTIVE, ProofStatus.DISPUTED)


def challenge_snapshot(method: VerificationMethod) -> str | None:
    """Text the subject had to publish or sign, kept with the proof for audit."""
    if isinstance(method, SignMessage):
        return method.message
    if isinstance(method, PublicPost):
        return method.required_text
    if isinstance(method, DnsTxtRecord):
        return method.record_value
    if isinstance(method, (WellKnownFile, ProfileField)):
        return method.token
    return None


@dataclass
class ProofVerifier:
    """Domain service turning a passing submission into an ACTIVE proof."""

    repository: VerificationRepository
    checker: ProofChecker
    scores: TrustScoreEngine
    clock: Clock = utc_now

    def verify(self, challenge_id: str, submission: ProofSubmission) -> VerificationResult:
        """
        Verify a submission against an open challenge.

        Args:
            challenge_id: Id returned at issuance
            submission: Signature and/or locator supplied by the subject

        Returns:
            VerificationResult; ``success=False`` is a normal outcome

        Raises:
            ChallengeNotFound: No challenge with this id (or it was replaced)
            ChallengeAlreadyConsumed: Challenge was already used
            ChallengeExpired: Challenge is past its expiry
        """
        challenge = self.repository.get_challenge(challenge_id)
        if challenge is None:
            raise ChallengeNotFound("Challenge not found. Request a new challenge.")
        if challenge.consumed_at is not None:
            raise ChallengeAlreadyConsumed("Challenge was already used. Request a new challenge.")
        if challenge.is_expired(self.clock()):
            raise ChallengeExpired("Challenge expired. Request a new challenge.")

        existing = [
            proof
            for proof in self.repository.list_proofs(challenge.subject_id)
            if proof.platform == challenge.platform
            and proof.target == challenge.target
            and proof.status in _LIVE_STATUSES
        ]
        if existing:
            return VerificationResult(
                success=False,
                message=f"{challenge.platform.value} '{challenge.target}' already has a live proof",
            )

        evidence = submission.signature if isinstance(challenge.method, SignMessage) else submission.locator
        outcome = self.checker.check(challenge.platform, challenge.target, challenge.method, evidence)
        if not outcome.passed:
            logger.info(
                "Verification failed: subject=%s platform=%s reason=%s",
                challenge.subject_id,
                challenge.platform.value,
                outcome.reason,
            )
            return VerificationResult(success=False, message=outcome.reason)

        verified_at = self.clock()
        challenge.consumed_at = verified_at
        self.repository.put_challenge(challenge)

        proof = VerificationProof(
            proof_id=uuid.uuid4().hex,
            subject_id=challenge.subject_id,
            platform=challenge.platform,
            target=challenge.target,
            locator=outcome.locator or challenge.target,
            method=challenge.method,
            verified_at=verified_at,
            status=ProofStatus.ACTIVE,
            challenge_snapshot=challenge_snapshot(challenge.method),
            last_checked_at=verified_at,
            status_history=[StatusChange(ProofStatus.ACTIVE, verified_at, "verified")],
        )
        self.repository.append_proof(proof)
        refresh_verification_score(self.repository, self.scores, challenge.subject_id, verified_at)

        logger.info(
            "Proof verified: subject=%s platform=%s proof=%s",
            challenge.subject_id,
            challenge.platform.value,
            proof.proof_id,
        )
        return VerificationResult(
            success=True,
            message=f"{challenge.platform.value} '{challenge.target}' verified successfully",
            verified_at=verified_at,
            proof=proof,
        )

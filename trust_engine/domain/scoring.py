"""
Trust scoring - Verification and reputation scores.

Weights are configuration, not design: several candidate schemes are kept
side by side as named tables and the active one is selected by settings.

Verification score = sum of platform weights over ACTIVE proofs, capped at
VERIFICATION_SCORE_CAP. Removed and disputed proofs contribute nothing.

Reputation score = endorsements + testimonials (verified weigh more)
+ vouches weighted by voucher reputation + logarithmic staking bonus.
"""

import logging
import math
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import datetime

from .exceptions import SubjectNotFound
from .models import Platform, ProofStatus, ReputationState, VerificationProof
from .ports import VerificationRepository

logger = logging.getLogger(__name__)

VERIFICATION_SCORE_CAP = 100

_CHAIN_WEIGHT = 5

# Domain highest, GitHub next, then social accounts, then chain presence.
TIERED_WEIGHTS: Mapping[Platform, int] = {
    Platform.DOMAIN: 25,
    Platform.GITHUB: 20,
    Platform.TWITTER: 10,
    Platform.DISCORD: 10,
    Platform.TELEGRAM: 10,
    Platform.ETHEREUM: _CHAIN_WEIGHT,
    Platform.POLYGON: _CHAIN_WEIGHT,
    Platform.BITCOIN: _CHAIN_WEIGHT,
    Platform.ICP: _CHAIN_WEIGHT,
    Platform.SOLANA: _CHAIN_WEIGHT,
    Platform.SUI: _CHAIN_WEIGHT,
    Platform.TON: _CHAIN_WEIGHT,
}

FLAT_WEIGHTS: Mapping[Platform, int] = {platform: 10 for platform in Platform}

# Registry's original points table: identity signals 10, chain presence 5.
POINTS_WEIGHTS: Mapping[Platform, int] = {
    **{platform: _CHAIN_WEIGHT for platform in Platform},
    Platform.DOMAIN: 10,
    Platform.GITHUB: 10,
    Platform.TWITTER: 10,
    Platform.DISCORD: 10,
    Platform.TELEGRAM: 10,
}

WEIGHT_SCHEMES: Mapping[str, Mapping[Platform, int]] = {
    "tiered": TIERED_WEIGHTS,
    "flat": FLAT_WEIGHTS,
    "points": POINTS_WEIGHTS,
}


@dataclass(frozen=True)
class ReputationWeights:
    endorsement: int = 10
    verified_testimonial: int = 5
    unverified_testimonial: int = 2
    vouch_multiplier: int = 3
    stake_log_multiplier: int = 2


# (minimum voucher reputation, vouch weight), highest tier first
VOUCHER_WEIGHT_TIERS: tuple[tuple[int, int], ...] = ((101, 5), (51, 3), (21, 2), (0, 1))


@dataclass
class TrustScoreEngine:
    weights: Mapping[Platform, int] = field(default_factory=lambda: dict(TIERED_WEIGHTS))
    reputation_weights: ReputationWeights = field(default_factory=ReputationWeights)
    cap: int = VERIFICATION_SCORE_CAP

    @classmethod
    def for_scheme(cls, scheme: str, **kwargs) -> "TrustScoreEngine":
        try:
            weights = WEIGHT_SCHEMES[scheme]
        except KeyError:
            raise ValueError(f"Unknown weight scheme: {scheme}") from None
        return cls(weights=dict(weights), **kwargs)

    def platform_weight(self, platform: Platform) -> int:
        return self.weights.get(platform, 0)

    def verification_score(self, proofs: Iterable[VerificationProof]) -> int:
        total = sum(
            self.platform_weight(proof.platform)
            for proof in proofs
            if proof.status is ProofStatus.ACTIVE
        )
        return min(total, self.cap)

    def reputation_score(self, state: ReputationState) -> int:
        w = self.reputation_weights
        verified = sum(1 for t in state.testimonials if t.verified)
        unverified = len(state.testimonials) - verified
        score = len(state.endorsements) * w.endorsement
        score += verified * w.verified_testimonial + unverified * w.unverified_testimonial
        score += sum(v.weight for v in state.vouches) * w.vouch_multiplier
        score += self.staking_bonus(state.reputation_staked)
        return score

    def staking_bonus(self, staked: int) -> int:
        if staked <= 0:
            return 0
        return math.ceil(math.log10(staked)) * self.reputation_weights.stake_log_multiplier

    def voucher_weight(self, voucher_reputation: int) -> int:
        for minimum, weight in VOUCHER_WEIGHT_TIERS:
            if voucher_reputation >= minimum:
                return weight
        return 1


def refresh_verification_score(
    repository: VerificationRepository, scores: TrustScoreEngine, subject_id: str, now: datetime
) -> int:
    """Recompute and persist a subject's verification score from its proofs."""
    subject = repository.get_subject(subject_id)
    if subject is None:
        raise SubjectNotFound(f"Organization {subject_id} not found")
    score = scores.verification_score(repository.list_proofs(subject_id))
    if score != subject.verification_score:
        logger.info(
            "Verification score changed: subject=%s %d -> %d",
            subject_id,
            subject.verification_score,
            score,
        )
    subject.verification_score = score
    subject.updated_at = now
    repository.put_subject(subject)
    return score

"""
Unit tests for verification and reputation scoring.
"""

from datetime import timedelta

import pytest

from tests.support import START
from trust_engine.adapters.repository.memory import InMemoryVerificationRepository
from trust_engine.domain.exceptions import SubjectNotFound
from trust_engine.domain.models import (
    Endorsement,
    OrganizationIdentity,
    Platform,
    ProofStatus,
    ReputationState,
    SignMessage,
    Testimonial,
    VerificationProof,
    Vouch,
)
from trust_engine.domain.scoring import (
    VERIFICATION_SCORE_CAP,
    TrustScoreEngine,
    refresh_verification_score,
)


def proof(platform: Platform, status: ProofStatus = ProofStatus.ACTIVE, proof_id: str | None = None) -> VerificationProof:
    return VerificationProof(
        proof_id=proof_id or f"{platform.value}-{status.value}",
        subject_id="org-1",
        platform=platform,
        target="target",
        locator="locator",
        method=SignMessage(message="m"),
        verified_at=START,
        status=status,
    )


class TestVerificationScore:
    def test_sums_active_proof_weights(self) -> None:
        scores = TrustScoreEngine()
        proofs = [proof(Platform.DOMAIN), proof(Platform.GITHUB), proof(Platform.ETHEREUM)]
        assert scores.verification_score(proofs) == 25 + 20 + 5

    def test_removed_and_disputed_contribute_nothing(self) -> None:
        scores = TrustScoreEngine()
        proofs = [
            proof(Platform.DOMAIN, ProofStatus.REMOVED),
            proof(Platform.GITHUB, ProofStatus.DISPUTED),
            proof(Platform.TWITTER),
        ]
        assert scores.verification_score(proofs) == 10

    def test_capped(self) -> None:
        scores = TrustScoreEngine()
        proofs = [proof(Platform.DOMAIN, proof_id=str(i)) for i in range(10)]
        assert scores.verification_score(proofs) == VERIFICATION_SCORE_CAP

    def test_weight_schemes(self) -> None:
        flat = TrustScoreEngine.for_scheme("flat")
        points = TrustScoreEngine.for_scheme("points")
        assert flat.platform_weight(Platform.DOMAIN) == flat.platform_weight(Platform.SOLANA) == 10
        assert points.platform_weight(Platform.GITHUB) == 10
        assert points.platform_weight(Platform.TON) == 5

    def test_unknown_scheme(self) -> None:
        with pytest.raises(ValueError):
            TrustScoreEngine.for_scheme("vibes")


class TestRefreshVerificationScore:
    @pytest.fixture
    def subject(self, repository: InMemoryVerificationRepository) -> OrganizationIdentity:
        subject = OrganizationIdentity(
            id="org-1",
            owner_id="owner",
            name="Acme Labs",
            description="Cross-chain infrastructure",
            website="https://acme.example.com",
            created_at=START,
            updated_at=START,
        )
        repository.put_subject(subject)
        return subject

    def test_idempotent(self, repository, subject: OrganizationIdentity) -> None:
        scores = TrustScoreEngine()
        repository.append_proof(proof(Platform.DOMAIN))

        first = refresh_verification_score(repository, scores, subject.id, START)
        second = refresh_verification_score(repository, scores, subject.id, START + timedelta(hours=1))

        assert first == second == 25
        assert repository.get_subject(subject.id).verification_score == 25

    def test_strictly_decreases_when_weighted_proof_removed(
        self, repository, subject: OrganizationIdentity
    ) -> None:
        scores = TrustScoreEngine()
        active = proof(Platform.GITHUB)
        repository.append_proof(active)
        before = refresh_verification_score(repository, scores, subject.id, START)

        active.status = ProofStatus.REMOVED
        repository.update_proof(active)
        after = refresh_verification_score(repository, scores, subject.id, START)

        assert after < before

    def test_unknown_subject(self, repository) -> None:
        with pytest.raises(SubjectNotFound):
            refresh_verification_score(repository, TrustScoreEngine(), "missing", START)


class TestReputationScore:
    def test_components(self) -> None:
        state = ReputationState(
            endorsements=[Endorsement("e1", "org-2", "owner-2", "Great partner to build with", START)],
            testimonials=[
                Testimonial("t1", "Ada", "CTO", "Shipped on time, every time", START, verified=True),
                Testimonial("t2", "Bob", "Dev", "Pleasant team to work with", START),
            ],
            vouches=[Vouch("v1", "someone", "I vouch for this team", START, weight=2)],
            reputation_staked=100,
        )

        # 10 + 5 + 2 + 2 * 3 + ceil(log10(100)) * 2
        assert TrustScoreEngine().reputation_score(state) == 27

    def test_empty_state(self) -> None:
        assert TrustScoreEngine().reputation_score(ReputationState()) == 0

    @pytest.mark.parametrize(("staked", "bonus"), [(0, 0), (1, 0), (10, 2), (11, 4), (100_000, 10)])
    def test_staking_bonus_is_logarithmic(self, staked: int, bonus: int) -> None:
        assert TrustScoreEngine().staking_bonus(staked) == bonus

    @pytest.mark.parametrize(
        ("reputation", "weight"), [(0, 1), (20, 1), (21, 2), (50, 2), (51, 3), (101, 5)]
    )
    def test_voucher_weight_tiers(self, reputation: int, weight: int) -> None:
        assert TrustScoreEngine().voucher_weight(reputation) == weight

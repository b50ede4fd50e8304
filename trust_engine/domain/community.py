"""
Community validation - Endorsements, testimonials, vouches and staking.

Attestations are append-only. The only later changes are a testimonial
becoming verified and the reputation stake growing; every change is
followed by a reputation recompute. Callers hold the target subject's
mutation lock.
"""

import dataclasses
import logging
import uuid
from dataclasses import dataclass
from datetime import timedelta

from .exceptions import NotEligible, SubjectNotFound, Unauthorized, ValidationError
from .models import Endorsement, OrganizationIdentity, Testimonial, Vouch
from .ports import Clock, VerificationRepository, utc_now
from .sanitizer import FieldKind, validate_fields
from .scoring import TrustScoreEngine

logger = logging.getLogger(__name__)

MIN_ENDORSER_REPUTATION = 10
RAPID_ENDORSEMENT_WINDOW = timedelta(hours=1)
RAPID_ENDORSEMENT_LIMIT = 5
SHARED_AUTHOR_LIMIT = 2


@dataclass(frozen=True)
class CommunityStats:
    total_endorsements: int
    total_testimonials: int
    verified_testimonials: int
    total_vouches: int
    reputation_score: int
    reputation_staked: int


@dataclass(frozen=True)
class LeaderboardEntry:
    subject_id: str
    name: str
    reputation_score: int
    reputation_staked: int


@dataclass
class CommunityService:
    """Domain service for community attestations and reputation."""

    repository: VerificationRepository
    scores: TrustScoreEngine
    clock: Clock = utc_now
    min_endorser_reputation: int = MIN_ENDORSER_REPUTATION

    def add_endorsement(
        self, subject_id: str, endorser_company_id: str, actor_id: str, message: str
    ) -> Endorsement:
        """
        Endorse ``subject_id`` on behalf of the actor's own organization.

        Raises:
            SubjectNotFound: Target or endorser organization unknown
            Unauthorized: Actor does not own the endorser organization
            NotEligible: Self-endorsement or duplicate endorsement
            ValidationError: Message fails validation
        """
        target = self._require_subject(subject_id)
        endorser = self.repository.get_subject(endorser_company_id)
        if endorser is None:
            raise SubjectNotFound("Endorser company not found")
        if endorser.owner_id != actor_id:
            raise Unauthorized("Only the company owner can create endorsements")
        if subject_id == endorser_company_id:
            raise NotEligible("Companies cannot endorse themselves")
        if any(e.endorser_company_id == endorser_company_id for e in target.reputation.endorsements):
            raise NotEligible("Endorsement already exists")

        cleaned = self._validated({"message": (FieldKind.ENDORSEMENT_MESSAGE, message)})
        endorsement = Endorsement(
            attestation_id=uuid.uuid4().hex,
            endorser_company_id=endorser_company_id,
            endorser_id=actor_id,
            message=cleaned["message"],
            created_at=self.clock(),
        )
        self.repository.append_attestation(subject_id, endorsement)
        self.recompute_reputation(subject_id)
        logger.info("Endorsement created: subject=%s endorser=%s", subject_id, endorser_company_id)
        return endorsement

    def endorsement_eligibility(self, endorser_company_id: str, subject_id: str) -> bool:
        """Whether the endorser may endorse the subject (reputation floor, no duplicate)."""
        endorser = self.repository.get_subject(endorser_company_id)
        if endorser is None:
            raise SubjectNotFound("Endorser company not found")
        if endorser_company_id == subject_id:
            return False
        if endorser.reputation.reputation_score < self.min_endorser_reputation:
            return False
        target = self._require_subject(subject_id)
        return not any(
            e.endorser_company_id == endorser_company_id for e in target.reputation.endorsements
        )

    def add_testimonial(self, subject_id: str, author_name: str, role: str, message: str) -> Testimonial:
        subject = self._require_subject(subject_id)
        cleaned = self._validated(
            {
                "author_name": (FieldKind.AUTHOR_NAME, author_name),
                "role": (FieldKind.TEAM_MEMBER_ROLE, role),
                "message": (FieldKind.TESTIMONIAL_MESSAGE, message),
            }
        )
        if any(t.author_name == cleaned["author_name"] for t in subject.reputation.testimonials):
            raise NotEligible("Testimonial from this author already exists")

        testimonial = Testimonial(
            attestation_id=uuid.uuid4().hex,
            author_name=cleaned["author_name"],
            role=cleaned["role"],
            message=cleaned["message"],
            created_at=self.clock(),
        )
        self.repository.append_attestation(subject_id, testimonial)
        self.recompute_reputation(subject_id)
        logger.info("Testimonial created: subject=%s", subject_id)
        return testimonial

    def verify_testimonial(self, subject_id: str, attestation_id: str) -> Testimonial:
        subject = self._require_subject(subject_id)
        testimonials = subject.reputation.testimonials
        for index, testimonial in enumerate(testimonials):
            if testimonial.attestation_id == attestation_id:
                break
        else:
            raise NotEligible("Testimonial not found")

        verified = dataclasses.replace(testimonial, verified=True)
        testimonials[index] = verified
        self._store_reputation(subject)
        logger.info("Testimonial verified: subject=%s testimonial=%s", subject_id, attestation_id)
        return verified

    def add_vouch(self, subject_id: str, voucher_id: str, message: str) -> Vouch:
        """
        Vouch for a subject. The vouch weight follows the best reputation
        among organizations the voucher owns.
        """
        subject = self._require_subject(subject_id)
        cleaned = self._validated({"message": (FieldKind.VOUCH_MESSAGE, message)})
        if any(v.voucher_id == voucher_id for v in subject.reputation.vouches):
            raise NotEligible("Vouch from this actor already exists")

        voucher_reputation = max(
            (
                s.reputation.reputation_score
                for s in self.repository.list_subjects()
                if s.owner_id == voucher_id and s.id != subject_id
            ),
            default=0,
        )
        vouch = Vouch(
            attestation_id=uuid.uuid4().hex,
            voucher_id=voucher_id,
            message=cleaned["message"],
            created_at=self.clock(),
            weight=self.scores.voucher_weight(voucher_reputation),
        )
        self.repository.append_attestation(subject_id, vouch)
        self.recompute_reputation(subject_id)
        logger.info("Vouch created: subject=%s weight=%d", subject_id, vouch.weight)
        return vouch

    def stake_reputation(self, subject_id: str, amount: int) -> int:
        if not isinstance(amount, int) or amount <= 0:
            raise ValidationError({"amount": "Stake amount must be greater than 0"})
        subject = self._require_subject(subject_id)
        subject.reputation.reputation_staked += amount
        self._store_reputation(subject)
        return subject.reputation.reputation_staked

    def recompute_reputation(self, subject_id: str) -> int:
        return self._store_reputation(self._require_subject(subject_id))

    def community_stats(self, subject_id: str) -> CommunityStats:
        state = self._require_subject(subject_id).reputation
        return CommunityStats(
            total_endorsements=len(state.endorsements),
            total_testimonials=len(state.testimonials),
            verified_testimonials=sum(1 for t in state.testimonials if t.verified),
            total_vouches=len(state.vouches),
            reputation_score=state.reputation_score,
            reputation_staked=state.reputation_staked,
        )

    def reputation_leaderboard(self, limit: int = 20) -> list[LeaderboardEntry]:
        subjects = sorted(
            self.repository.list_subjects(),
            key=lambda s: s.reputation.reputation_score,
            reverse=True,
        )
        return [
            LeaderboardEntry(s.id, s.name, s.reputation.reputation_score, s.reputation.reputation_staked)
            for s in subjects[:limit]
        ]

    def detect_validation_fraud(self, subject_id: str) -> list[str]:
        """
        Look for suspicious validation patterns around a subject.

        Patterns:
        - more than RAPID_ENDORSEMENT_LIMIT endorsements in the last hour
        - a testimonial author who also wrote testimonials for more than
          SHARED_AUTHOR_LIMIT other organizations
        - mutual endorsements (A endorses B and B endorses A)
        """
        subject = self._require_subject(subject_id)
        state = subject.reputation
        patterns: list[str] = []

        since = self.clock() - RAPID_ENDORSEMENT_WINDOW
        recent = sum(1 for e in state.endorsements if e.created_at > since)
        if recent > RAPID_ENDORSEMENT_LIMIT:
            patterns.append(f"Rapid endorsement creation: {recent} endorsements in the last hour")

        others = [s for s in self.repository.list_subjects() if s.id != subject_id]
        for testimonial in state.testimonials:
            shared = sum(
                1
                for other in others
                for t in other.reputation.testimonials
                if t.author_name == testimonial.author_name
            )
            if shared > SHARED_AUTHOR_LIMIT:
                patterns.append(
                    f"Author '{testimonial.author_name}' has testimonials across {shared + 1} different companies"
                )

        for endorsement in state.endorsements:
            endorser = self.repository.get_subject(endorsement.endorser_company_id)
            if endorser and any(e.endorser_company_id == subject_id for e in endorser.reputation.endorsements):
                patterns.append(f"Mutual endorsement detected with company {endorsement.endorser_company_id}")

        if patterns:
            logger.warning(
                "Suspicious validation patterns: subject=%s count=%d", subject_id, len(patterns)
            )
        return patterns

    def _require_subject(self, subject_id: str) -> OrganizationIdentity:
        subject = self.repository.get_subject(subject_id)
        if subject is None:
            raise SubjectNotFound(f"Organization {subject_id} not found")
        return subject

    def _validated(self, fields) -> dict[str, str]:
        cleaned, errors = validate_fields(fields)
        if errors:
            raise ValidationError(errors)
        return cleaned

    def _store_reputation(self, subject: OrganizationIdentity) -> int:
        score = self.scores.reputation_score(subject.reputation)
        subject.reputation.reputation_score = score
        subject.updated_at = self.clock()
        self.repository.put_subject(subject)
        return score

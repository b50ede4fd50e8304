"""
TrustEngine - Presentation-layer contract over the verification services.

Every mutating operation:
1. Is admitted by the per-action rate limiter (denial -> RateLimited)
2. Sanitizes and validates its input (failure -> ValidationError)
3. Checks the actor may act on the subject (failure -> Unauthorized)
4. Runs under the subject's mutation lock

Collaborators (repository, fetcher, chain gateway, clock, alert sink) are
injected at construction. There is no module-level engine instance.
"""

import logging
import uuid
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any

from .challenges import DEFAULT_CHALLENGE_TTL, ChallengeIssuer
from .checks import ProofChecker
from .community import CommunityService, CommunityStats, LeaderboardEntry
from .exceptions import (
    ChallengeNotFound,
    RateLimited,
    SubjectNotFound,
    Unauthorized,
    ValidationError,
)
from .lifecycle import (
    DEFAULT_GRACE_PERIODS,
    DisputePolicy,
    MonitoringStats,
    OpenDisputePolicy,
    ProofLifecycleMonitor,
    SweepReport,
)
from .locks import KeyedLocks
from .models import (
    Challenge,
    Claim,
    Dispute,
    Endorsement,
    MethodKind,
    OrganizationIdentity,
    Platform,
    ProofSubmission,
    ReportType,
    Testimonial,
    VerificationProof,
    VerificationResult,
    Vouch,
)
from .ports import AlertSink, ChainGateway, Clock, ResourceFetcher, VerificationRepository, utc_now
from .rate_limit import HTTP_POLICY, REPORT_POLICY, VERIFICATION_POLICY, ActionRateLimits, RateLimitPolicy
from .sanitizer import (
    FieldKind,
    clean,
    sanitize_registration_form,
    validate_claim,
    validate_registration_form,
)
from .scoring import TrustScoreEngine
from .verifier import ProofVerifier

logger = logging.getLogger(__name__)

HTTP_ACTION = "http"
VERIFICATION_ACTION = "verification"
REPORT_ACTION = "report"

DEFAULT_RATE_LIMITS: Mapping[str, RateLimitPolicy] = {
    HTTP_ACTION: HTTP_POLICY,
    VERIFICATION_ACTION: VERIFICATION_POLICY,
    REPORT_ACTION: REPORT_POLICY,
}

_IDENTITY_PLATFORMS: Mapping[str, Platform] = {
    "github_org": Platform.GITHUB,
    "twitter_handle": Platform.TWITTER,
    "discord_server": Platform.DISCORD,
    "telegram_channel": Platform.TELEGRAM,
    "domain": Platform.DOMAIN,
}

_CHAIN_LIST_PLATFORMS: Mapping[str, Platform] = {
    "ethereum_contracts": Platform.ETHEREUM,
    "polygon_contracts": Platform.POLYGON,
    "bitcoin_addresses": Platform.BITCOIN,
    "icp_canisters": Platform.ICP,
    "solana_addresses": Platform.SOLANA,
    "sui_addresses": Platform.SUI,
    "ton_addresses": Platform.TON,
}


@dataclass(frozen=True)
class VerificationState:
    """Read model returned by ``get_verification_state``."""

    subject: OrganizationIdentity
    proofs: list[VerificationProof]
    verification_score: int
    reputation_score: int


@dataclass
class TrustEngine:
    repository: VerificationRepository
    issuer: ChallengeIssuer
    verifier: ProofVerifier
    monitor: ProofLifecycleMonitor
    community: CommunityService
    rate_limits: ActionRateLimits
    locks: KeyedLocks
    clock: Clock = utc_now
    moderators: frozenset[str] = field(default_factory=frozenset)

    @classmethod
    def create(
        cls,
        repository: VerificationRepository,
        fetcher: ResourceFetcher,
        chain: ChainGateway,
        *,
        clock: Clock = utc_now,
        alerts: AlertSink | None = None,
        scores: TrustScoreEngine | None = None,
        challenge_ttl: timedelta = DEFAULT_CHALLENGE_TTL,
        rate_limits: Mapping[str, RateLimitPolicy] | None = None,
        grace_periods: Mapping[Platform, timedelta] | None = None,
        dispute_policy: DisputePolicy | None = None,
        sweep_max_workers: int = 8,
        check_timeout: float = 30.0,
        moderators: Iterable[str] = (),
    ) -> "TrustEngine":
        """Wire the domain services around the injected collaborators."""
        scores = scores or TrustScoreEngine()
        locks = KeyedLocks()
        checker = ProofChecker(fetcher=fetcher, chain=chain)
        policies = dict(DEFAULT_RATE_LIMITS)
        policies.update(rate_limits or {})
        return cls(
            repository=repository,
            issuer=ChallengeIssuer(repository=repository, clock=clock, ttl=challenge_ttl),
            verifier=ProofVerifier(repository=repository, checker=checker, scores=scores, clock=clock),
            monitor=ProofLifecycleMonitor(
                repository=repository,
                checker=checker,
                scores=scores,
                locks=locks,
                clock=clock,
                grace_periods=dict(grace_periods or DEFAULT_GRACE_PERIODS),
                dispute_policy=dispute_policy or OpenDisputePolicy(),
                alerts=alerts,
                max_workers=sweep_max_workers,
                check_timeout=check_timeout,
            ),
            community=CommunityService(repository=repository, scores=scores, clock=clock),
            rate_limits=ActionRateLimits(policies, clock),
            locks=locks,
            clock=clock,
            moderators=frozenset(moderators),
        )

    # Intake

    def register_subject(self, actor_id: str, form: Mapping[str, Any]) -> OrganizationIdentity:
        """
        Register an organization from a registration form.

        Identity handles and chain addresses in the form become unverified
        claims.

        Raises:
            RateLimited: Actor exceeded the http policy
            ValidationError: Field path -> message for every invalid field
        """
        self._admit(actor_id, HTTP_ACTION)
        cleaned = sanitize_registration_form(form)
        errors = validate_registration_form(cleaned)
        if errors:
            raise ValidationError(errors)

        basic = cleaned["basic_info"]
        claims: list[Claim] = []
        for key, value in cleaned["web3_identity"].items():
            claims.append(Claim(_IDENTITY_PLATFORMS[key], value))
        for key, values in cleaned["cross_chain_presence"].items():
            for value in values:
                claim = Claim(_CHAIN_LIST_PLATFORMS[key], value)
                if claim not in claims:
                    claims.append(claim)

        now = self.clock()
        subject = OrganizationIdentity(
            id=uuid.uuid4().hex,
            owner_id=actor_id,
            name=basic["name"],
            description=basic["description"],
            website=basic["website"],
            created_at=now,
            updated_at=now,
            claims=claims,
        )
        self.repository.put_subject(subject)
        logger.info("Organization registered: subject=%s claims=%d", subject.id, len(claims))
        return subject

    def submit_claim(self, actor_id: str, subject_id: str, platform: Platform, value: str) -> Claim:
        """Add an unverified claim to a subject the actor owns."""
        self._admit(actor_id, HTTP_ACTION)
        cleaned, outcome = validate_claim(platform, value)
        if not outcome.ok:
            raise ValidationError({"value": outcome.message})

        with self.locks.hold(subject_id):
            subject = self._owned_subject(actor_id, subject_id)
            claim = Claim(platform, cleaned)
            if claim not in subject.claims:
                subject.claims.append(claim)
                subject.updated_at = self.clock()
                self.repository.put_subject(subject)
                logger.info("Claim added: subject=%s platform=%s", subject_id, platform.value)
            return claim

    # Challenges and proofs

    def request_domain_challenge(
        self, actor_id: str, subject_id: str, method: MethodKind = MethodKind.DNS_TXT
    ) -> Challenge:
        self._admit(actor_id, VERIFICATION_ACTION)
        with self.locks.hold(subject_id):
            self._owned_subject(actor_id, subject_id)
            return self.issuer.issue_domain_challenge(subject_id, method)

    def request_chain_challenge(
        self,
        actor_id: str,
        subject_id: str,
        chain_type: Platform,
        address_or_contract: str,
        method: MethodKind,
        variable_name: str | None = None,
    ) -> Challenge:
        self._admit(actor_id, VERIFICATION_ACTION)
        with self.locks.hold(subject_id):
            self._owned_subject(actor_id, subject_id)
            return self.issuer.issue_chain_challenge(
                subject_id, chain_type, address_or_contract, method, variable_name
            )

    def request_platform_challenge(
        self, actor_id: str, subject_id: str, platform: Platform, target: str | None = None
    ) -> Challenge:
        self._admit(actor_id, VERIFICATION_ACTION)
        with self.locks.hold(subject_id):
            self._owned_subject(actor_id, subject_id)
            return self.issuer.issue_platform_challenge(subject_id, platform, target)

    def submit_proof(
        self, actor_id: str, challenge_id: str, submission: ProofSubmission
    ) -> VerificationResult:
        """
        Verify a submission against an open challenge.

        A failed check is a normal result (``success=False``).

        Raises:
            RateLimited: Actor exceeded the verification policy
            ChallengeNotFound / ChallengeExpired / ChallengeAlreadyConsumed
            Unauthorized: Actor does not own the challenged subject
        """
        self._admit(actor_id, VERIFICATION_ACTION)
        challenge = self.repository.get_challenge(challenge_id)
        if challenge is None:
            raise ChallengeNotFound("Challenge not found. Request a new challenge.")
        with self.locks.hold(challenge.subject_id):
            self._owned_subject(actor_id, challenge.subject_id)
            return self.verifier.verify(challenge_id, submission)

    def get_verification_state(self, subject_id: str) -> VerificationState:
        subject = self._subject(subject_id)
        return VerificationState(
            subject=subject,
            proofs=self.repository.list_proofs(subject_id),
            verification_score=subject.verification_score,
            reputation_score=subject.reputation.reputation_score,
        )

    def get_challenge(self, actor_id: str, challenge_id: str) -> Challenge:
        challenge = self.repository.get_challenge(challenge_id)
        if challenge is None:
            raise ChallengeNotFound("Challenge not found. Request a new challenge.")
        self._owned_subject(actor_id, challenge.subject_id)
        return challenge

    # Lifecycle

    def report_proof(
        self,
        actor_id: str,
        subject_id: str,
        proof_id: str,
        report_type: ReportType,
        evidence: str,
    ) -> Dispute:
        self._admit(actor_id, REPORT_ACTION)
        cleaned, outcome = clean(FieldKind.REPORT_EVIDENCE, evidence)
        if not outcome.ok:
            raise ValidationError({"evidence": outcome.message})
        self._subject(subject_id)
        return self.monitor.report_proof(subject_id, proof_id, actor_id, report_type, cleaned)

    def resolve_dispute(self, actor_id: str, dispute_id: str, upheld: bool) -> VerificationProof:
        self.require_moderator(actor_id)
        return self.monitor.resolve_dispute(dispute_id, upheld)

    def require_moderator(self, actor_id: str) -> None:
        if actor_id not in self.moderators:
            raise Unauthorized("Only moderators can do this")

    def recheck_proof(self, proof_id: str) -> VerificationProof:
        return self.monitor.recheck_proof(proof_id)

    def run_sweep(self) -> SweepReport:
        report = self.monitor.sweep()
        self.rate_limits.cleanup()
        return report

    def monitoring_stats(self) -> MonitoringStats:
        return self.monitor.monitoring_stats()

    # Community validation

    def add_endorsement(
        self, actor_id: str, subject_id: str, endorser_company_id: str, message: str
    ) -> Endorsement:
        self._admit(actor_id, HTTP_ACTION)
        with self.locks.hold(subject_id):
            return self.community.add_endorsement(subject_id, endorser_company_id, actor_id, message)

    def endorsement_eligibility(self, endorser_company_id: str, subject_id: str) -> bool:
        return self.community.endorsement_eligibility(endorser_company_id, subject_id)

    def add_testimonial(
        self, actor_id: str, subject_id: str, author_name: str, role: str, message: str
    ) -> Testimonial:
        self._admit(actor_id, HTTP_ACTION)
        with self.locks.hold(subject_id):
            return self.community.add_testimonial(subject_id, author_name, role, message)

    def verify_testimonial(self, actor_id: str, subject_id: str, attestation_id: str) -> Testimonial:
        self._admit(actor_id, HTTP_ACTION)
        with self.locks.hold(subject_id):
            self._owned_subject(actor_id, subject_id)
            return self.community.verify_testimonial(subject_id, attestation_id)

    def add_vouch(self, actor_id: str, subject_id: str, message: str) -> Vouch:
        self._admit(actor_id, HTTP_ACTION)
        with self.locks.hold(subject_id):
            return self.community.add_vouch(subject_id, actor_id, message)

    def stake_reputation(self, actor_id: str, subject_id: str, amount: int) -> int:
        self._admit(actor_id, HTTP_ACTION)
        with self.locks.hold(subject_id):
            self._owned_subject(actor_id, subject_id)
            return self.community.stake_reputation(subject_id, amount)

    def community_stats(self, subject_id: str) -> CommunityStats:
        return self.community.community_stats(subject_id)

    def reputation_leaderboard(self, limit: int = 20) -> list[LeaderboardEntry]:
        return self.community.reputation_leaderboard(limit)

    def detect_validation_fraud(self, subject_id: str) -> list[str]:
        return self.community.detect_validation_fraud(subject_id)

    # Helpers

    def _admit(self, actor_id: str, action: str) -> None:
        if not self.rate_limits.admit(actor_id, action):
            logger.warning("Rate limit exceeded: actor=%s action=%s", actor_id, action)
            raise RateLimited(action, self.rate_limits.remaining(actor_id, action))

    def _subject(self, subject_id: str) -> OrganizationIdentity:
        subject = self.repository.get_subject(subject_id)
        if subject is None:
            raise SubjectNotFound(f"Organization {subject_id} not found")
        return subject

    def _owned_subject(self, actor_id: str, subject_id: str) -> OrganizationIdentity:
        subject = self._subject(subject_id)
        if subject.owner_id != actor_id:
            raise Unauthorized("Only the organization owner can do this")
        return subject

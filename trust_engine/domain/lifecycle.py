"""
Proof lifecycle - Rechecks, grace periods and disputes.

State Machine
=============

    ACTIVE --(recheck failing >= grace)--> REMOVED
    ACTIVE --(report accepted)----------> DISPUTED
    DISPUTED --(appeal upheld)----------> ACTIVE
    DISPUTED --(appeal denied)----------> REMOVED
    DISPUTED --(recheck failing >= grace)-> REMOVED

A failed recheck first puts the proof in the pending-removal sub-state
(``failing_since`` set to the first failure). A passing recheck clears it
without recording a status change. Grace periods are per platform; on-chain
proofs have none because chain state is immediately checkable.

Whether a report moves a proof to DISPUTED is decided by an injected
DisputePolicy, so the state machine does not change with the policy.
"""

import logging
import time
import uuid
from collections.abc import Iterable, Mapping
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Protocol

from .checks import ProofChecker
from .exceptions import DisputeNotFound, NotEligible, ProofNotFound
from .locks import KeyedLocks
from .models import (
    CHAIN_PLATFORMS,
    AlertKind,
    CheckOutcome,
    CommunityAlert,
    Dispute,
    DisputeResolution,
    Platform,
    ProofStatus,
    ReportType,
    StatusChange,
    VerificationProof,
)
from .ports import AlertSink, Clock, VerificationRepository, utc_now
from .scoring import TrustScoreEngine, refresh_verification_score

logger = logging.getLogger(__name__)

SOCIAL_GRACE = timedelta(days=3)
GITHUB_GRACE = timedelta(days=3)
DOMAIN_GRACE = timedelta(days=7)
CHAIN_GRACE = timedelta(0)

DEFAULT_GRACE_PERIODS: Mapping[Platform, timedelta] = {
    Platform.DOMAIN: DOMAIN_GRACE,
    Platform.GITHUB: GITHUB_GRACE,
    Platform.TWITTER: SOCIAL_GRACE,
    Platform.DISCORD: SOCIAL_GRACE,
    Platform.TELEGRAM: SOCIAL_GRACE,
    **{chain: CHAIN_GRACE for chain in CHAIN_PLATFORMS},
}

DEFAULT_REPORT_QUOTA = 3

# Minimum grace applied when a recheck fails transiently (timeout or
# unreachable source).
TRANSIENT_GRACE = timedelta(days=1)

_MONITORED_STATUSES = (ProofStatus.ACTIVE, ProofStatus.DISPUTED)


class DisputePolicy(Protocol):
    """Decides whether a report is enough to move a proof to DISPUTED."""

    def accepts(
        self, dispute: Dispute, proof: VerificationProof, repository: VerificationRepository
    ) -> bool:
        ...


class OpenDisputePolicy:
    """Any report is accepted."""

    def accepts(self, dispute, proof, repository) -> bool:
        return True


@dataclass
class ReportQuotaPolicy:
    """Accept once ``quota`` distinct reporters have open reports on the proof."""

    quota: int = DEFAULT_REPORT_QUOTA

    def accepts(self, dispute, proof, repository) -> bool:
        reporters = {
            d.reporter_id
            for d in repository.list_disputes(proof.proof_id)
            if d.resolution is None
        }
        reporters.add(dispute.reporter_id)
        return len(reporters) >= self.quota


@dataclass
class ReputationGatedPolicy:
    """Accept reports from actors owning an organization with enough reputation."""

    min_reputation: int = 20

    def accepts(self, dispute, proof, repository) -> bool:
        return any(
            subject.owner_id == dispute.reporter_id
            and subject.reputation.reputation_score >= self.min_reputation
            for subject in repository.list_subjects()
        )


def dispute_policy_for(name: str, report_quota: int, min_reputation: int) -> DisputePolicy:
    if name == "open":
        return OpenDisputePolicy()
    if name == "report_quota":
        return ReportQuotaPolicy(quota=report_quota)
    if name == "reputation_gated":
        return ReputationGatedPolicy(min_reputation=min_reputation)
    raise ValueError(f"Unknown dispute policy: {name}")


@dataclass
class SweepReport:
    started_at: datetime
    finished_at: datetime | None = None
    checked: int = 0
    passed: int = 0
    failed: int = 0
    timed_out: int = 0
    skipped: int = 0
    pending_removal: int = 0
    removed: int = 0


@dataclass(frozen=True)
class MonitoringStats:
    total_proofs: int
    active: int
    disputed: int
    removed: int
    pending_removal: int
    last_sweep: SweepReport | None


@dataclass
class ProofLifecycleMonitor:
    """Domain service owning every proof status transition after verification."""

    repository: VerificationRepository
    checker: ProofChecker
    scores: TrustScoreEngine
    locks: KeyedLocks = field(default_factory=KeyedLocks)
    clock: Clock = utc_now
    grace_periods: Mapping[Platform, timedelta] = field(
        default_factory=lambda: dict(DEFAULT_GRACE_PERIODS)
    )
    dispute_policy: DisputePolicy = field(default_factory=OpenDisputePolicy)
    alerts: AlertSink | None = None
    max_workers: int = 8
    check_timeout: float = 30.0
    transient_grace: timedelta = TRANSIENT_GRACE
    last_sweep: SweepReport | None = field(default=None, init=False)

    def grace_period(self, platform: Platform) -> timedelta:
        return self.grace_periods.get(platform, CHAIN_GRACE)

    def check_proof(self, proof: VerificationProof) -> CheckOutcome:
        """Run the proof's original check again against its stored locator."""
        return self.checker.check(proof.platform, proof.target, proof.method, proof.locator)

    def recheck_proof(self, proof_id: str) -> VerificationProof:
        """
        Recheck a single proof now and apply the outcome.

        Raises:
            ProofNotFound: Unknown proof id
        """
        proof = self.repository.get_proof(proof_id)
        if proof is None:
            raise ProofNotFound(f"Proof {proof_id} not found")
        if proof.status is ProofStatus.REMOVED:
            return proof
        return self.apply_recheck(proof_id, self.check_proof(proof))

    def apply_recheck(self, proof_id: str, outcome: CheckOutcome) -> VerificationProof:
        """
        Apply one recheck outcome to a proof under its subject's lock.

        Removed proofs are left untouched.
        """
        proof = self.repository.get_proof(proof_id)
        if proof is None:
            raise ProofNotFound(f"Proof {proof_id} not found")

        with self.locks.hold(proof.subject_id):
            proof = self.repository.get_proof(proof_id)
            if proof is None or proof.status is ProofStatus.REMOVED:
                return proof
            now = self.clock()
            proof.last_checked_at = now

            if outcome.passed:
                if proof.failing_since is not None:
                    logger.info(
                        "Recheck recovered, pending removal cleared: proof=%s platform=%s",
                        proof.proof_id,
                        proof.platform.value,
                    )
                    proof.failing_since = None
                self.repository.update_proof(proof)
                return proof

            if proof.failing_since is None:
                proof.failing_since = now
                logger.info(
                    "Recheck failed, proof pending removal: proof=%s platform=%s reason=%s",
                    proof.proof_id,
                    proof.platform.value,
                    outcome.reason,
                )

            grace = self.grace_period(proof.platform)
            if outcome.transient:
                grace = max(grace, self.transient_grace)
            if now - proof.failing_since >= grace:
                reason = f"recheck failing since {proof.failing_since.isoformat()}: {outcome.reason}"
                self._transition(proof, ProofStatus.REMOVED, reason, now)
            else:
                self.repository.update_proof(proof)
            return proof

    def sweep(self) -> SweepReport:
        """
        Recheck every ACTIVE and DISPUTED proof.

        Checks run on a bounded thread pool. Each check's timeout counts
        from the moment a worker starts it, so proofs still queued behind
        a slow check are not charged for the wait. A check that runs past
        ``check_timeout`` seconds is abandoned and counted as a transient
        failure; its worker is reused if the check eventually returns.
        When every worker has been stuck on an abandoned check for another
        ``check_timeout``, proofs that never started are skipped and left
        as they were.
        """
        report = SweepReport(started_at=self.clock())
        proofs = self.repository.list_proofs_by_status(_MONITORED_STATUSES)
        started: dict[str, float] = {}

        def run(proof: VerificationProof) -> CheckOutcome:
            started[proof.proof_id] = time.monotonic()
            return self.check_proof(proof)

        executor = ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="recheck")
        try:
            pending = {executor.submit(run, proof): proof for proof in proofs}
            abandoned: set[Future] = set()
            saturated_at: float | None = None
            while pending:
                timeout = self._wait_timeout(pending.values(), started, saturated_at)
                done, _ = wait([*pending, *abandoned], timeout=timeout, return_when=FIRST_COMPLETED)

                abandoned -= done
                for future in done & pending.keys():
                    self._record(report, pending.pop(future), future.result())

                now = time.monotonic()
                for future, proof in list(pending.items()):
                    begun = started.get(proof.proof_id)
                    if begun is None or now - begun < self.check_timeout or future.done():
                        continue
                    del pending[future]
                    abandoned.add(future)
                    report.timed_out += 1
                    logger.warning(
                        "Recheck timed out: proof=%s platform=%s", proof.proof_id, proof.platform.value
                    )
                    self._record(report, proof, CheckOutcome(False, "Recheck timed out", transient=True))

                if len(abandoned) < self.max_workers:
                    saturated_at = None
                    continue
                if saturated_at is None:
                    saturated_at = now
                elif now - saturated_at >= self.check_timeout:
                    for future, proof in list(pending.items()):
                        if future.cancel():
                            del pending[future]
                            report.skipped += 1
                            logger.warning(
                                "Recheck skipped, every worker is stuck: proof=%s platform=%s",
                                proof.proof_id,
                                proof.platform.value,
                            )
        finally:
            executor.shutdown(wait=False, cancel_futures=True)

        report.finished_at = self.clock()
        self.last_sweep = report
        logger.info(
            "Sweep finished: checked=%d passed=%d failed=%d timed_out=%d skipped=%d "
            "pending_removal=%d removed=%d",
            report.checked,
            report.passed,
            report.failed,
            report.timed_out,
            report.skipped,
            report.pending_removal,
            report.removed,
        )
        return report

    def _wait_timeout(
        self,
        pending: Iterable[VerificationProof],
        started: Mapping[str, float],
        saturated_at: float | None,
    ) -> float:
        """Seconds until the next running check or the stuck pool runs out of time."""
        now = time.monotonic()
        deadlines = [started[p.proof_id] + self.check_timeout for p in pending if p.proof_id in started]
        if saturated_at is not None:
            deadlines.append(saturated_at + self.check_timeout)
        return max(min(deadlines, default=now + self.check_timeout) - now, 0.0)

    def _record(self, report: SweepReport, proof: VerificationProof, outcome: CheckOutcome) -> None:
        report.checked += 1
        if outcome.passed:
            report.passed += 1
        else:
            report.failed += 1

        updated = self.apply_recheck(proof.proof_id, outcome)
        if updated is None:
            return
        if updated.status is ProofStatus.REMOVED:
            report.removed += 1
        elif updated.pending_removal:
            report.pending_removal += 1

    def report_proof(
        self,
        subject_id: str,
        proof_id: str,
        reporter_id: str,
        report_type: ReportType,
        evidence: str,
    ) -> Dispute:
        """
        File a community report against a proof.

        The dispute is always recorded. The proof moves to DISPUTED only
        when the dispute policy accepts the report.

        Raises:
            ProofNotFound: Unknown proof or proof of another subject
            NotEligible: Proof is already removed
        """
        with self.locks.hold(subject_id):
            proof = self.repository.get_proof(proof_id)
            if proof is None or proof.subject_id != subject_id:
                raise ProofNotFound(f"Proof {proof_id} not found")
            if proof.status is ProofStatus.REMOVED:
                raise NotEligible("Proof is already removed")

            now = self.clock()
            dispute = Dispute(
                dispute_id=uuid.uuid4().hex,
                proof_id=proof_id,
                subject_id=subject_id,
                reporter_id=reporter_id,
                report_type=report_type,
                evidence=evidence,
                created_at=now,
            )
            dispute.accepted = self.dispute_policy.accepts(dispute, proof, self.repository)
            self.repository.put_dispute(dispute)
            logger.info(
                "Proof reported: proof=%s type=%s accepted=%s",
                proof_id,
                report_type.value,
                dispute.accepted,
            )

            if dispute.accepted and proof.status is ProofStatus.ACTIVE:
                for earlier in self.repository.list_disputes(proof_id):
                    if earlier.resolution is None and not earlier.accepted:
                        earlier.accepted = True
                        self.repository.put_dispute(earlier)
                self._transition(
                    proof, ProofStatus.DISPUTED, f"report accepted: {report_type.value}", now
                )
            return dispute

    def resolve_dispute(self, dispute_id: str, upheld: bool) -> VerificationProof:
        """
        Resolve the subject's appeal against a disputed proof.

        Upheld returns the proof to ACTIVE; denied removes it. Every open
        dispute on the proof is closed by the resolution.

        Raises:
            DisputeNotFound: Unknown dispute id
            NotEligible: Dispute already resolved or proof not disputed
        """
        dispute = self.repository.get_dispute(dispute_id)
        if dispute is None:
            raise DisputeNotFound(f"Dispute {dispute_id} not found")

        with self.locks.hold(dispute.subject_id):
            dispute = self.repository.get_dispute(dispute_id)
            if dispute.resolution is not None:
                raise NotEligible("Dispute is already resolved")
            proof = self.repository.get_proof(dispute.proof_id)
            if proof is None:
                raise ProofNotFound(f"Proof {dispute.proof_id} not found")
            if proof.status is not ProofStatus.DISPUTED:
                raise NotEligible("Proof is not under dispute")

            now = self.clock()
            appeal = DisputeResolution.APPEAL_UPHELD if upheld else DisputeResolution.APPEAL_DENIED
            for open_dispute in self.repository.list_disputes(proof.proof_id):
                if open_dispute.resolution is not None:
                    continue
                open_dispute.resolution = appeal if open_dispute.accepted else DisputeResolution.REJECTED
                open_dispute.resolved_at = now
                self.repository.put_dispute(open_dispute)

            if upheld:
                self._transition(proof, ProofStatus.ACTIVE, "appeal upheld", now)
            else:
                self._transition(proof, ProofStatus.REMOVED, "appeal denied", now)
            return proof

    def monitoring_stats(self) -> MonitoringStats:
        proofs = self.repository.list_proofs_by_status(list(ProofStatus))
        by_status = {status: 0 for status in ProofStatus}
        for proof in proofs:
            by_status[proof.status] += 1
        return MonitoringStats(
            total_proofs=len(proofs),
            active=by_status[ProofStatus.ACTIVE],
            disputed=by_status[ProofStatus.DISPUTED],
            removed=by_status[ProofStatus.REMOVED],
            pending_removal=sum(
                1 for p in proofs if p.pending_removal and p.status is not ProofStatus.REMOVED
            ),
            last_sweep=self.last_sweep,
        )

    def _transition(
        self, proof: VerificationProof, status: ProofStatus, reason: str, now: datetime
    ) -> None:
        previous = proof.status
        proof.status = status
        proof.status_history.append(StatusChange(status, now, reason))
        self.repository.update_proof(proof)
        refresh_verification_score(self.repository, self.scores, proof.subject_id, now)
        logger.info(
            "Proof status changed: proof=%s platform=%s %s -> %s (%s)",
            proof.proof_id,
            proof.platform.value,
            previous.value,
            status.value,
            reason,
        )
        self._publish(proof, status, reason, now)

    def _publish(self, proof: VerificationProof, status: ProofStatus, reason: str, now: datetime) -> None:
        if self.alerts is None:
            return
        kind = {
            ProofStatus.REMOVED: AlertKind.PROOF_REMOVED,
            ProofStatus.DISPUTED: AlertKind.PROOF_DISPUTED,
            ProofStatus.ACTIVE: AlertKind.PROOF_RESTORED,
        }[status]
        self.alerts.publish(
            CommunityAlert(
                subject_id=proof.subject_id,
                proof_id=proof.proof_id,
                kind=kind,
                message=f"{proof.platform.value} proof for '{proof.target}' is now {status.value}: {reason}",
                created_at=now,
            )
        )

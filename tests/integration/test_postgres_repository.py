"""
Integration tests for PostgresVerificationRepository.

Tests repository operations against a real PostgreSQL database.
Requires PostgreSQL at DATABASE_URL; skipped when it is not reachable.
"""

from concurrent.futures import ThreadPoolExecutor
from datetime import timedelta

import psycopg
import pytest
from psycopg_pool import ConnectionPool

from tests.support import ETH_ADDRESS, START
from trust_engine.adapters.repository.postgres import PostgresVerificationRepository, run_migrations
from trust_engine.config.settings import get_settings
from trust_engine.domain.exceptions import ProofNotFound, SubjectNotFound
from trust_engine.domain.models import (
    Challenge,
    Claim,
    Dispute,
    DnsTxtRecord,
    Endorsement,
    OrganizationIdentity,
    Platform,
    ProofStatus,
    ReportType,
    SignMessage,
    StatusChange,
    Vouch,
    VerificationProof,
)

pytestmark = pytest.mark.integration


@pytest.fixture(scope="module")
def pool() -> ConnectionPool:
    """Create connection pool for integration tests."""
    settings = get_settings()
    try:
        psycopg.connect(settings.database_url, connect_timeout=2).close()
    except psycopg.OperationalError:
        pytest.skip("PostgreSQL is not reachable")
    pool = ConnectionPool(conninfo=settings.database_url, min_size=1, max_size=10)
    run_migrations(pool)
    yield pool
    pool.close()


@pytest.fixture
def repository(pool: ConnectionPool) -> PostgresVerificationRepository:
    """Create repository instance for each test."""
    return PostgresVerificationRepository(pool)


@pytest.fixture(autouse=True)
def clean_database(pool: ConnectionPool) -> None:
    """Clean all tables before each test."""
    with pool.connection() as conn:
        conn.execute("TRUNCATE subjects, challenges, proofs, disputes")
    yield


def make_subject(subject_id: str = "org-1") -> OrganizationIdentity:
    return OrganizationIdentity(
        id=subject_id,
        owner_id="owner",
        name="Acme Labs",
        description="Cross-chain infrastructure",
        website="https://acme.example.com",
        created_at=START,
        updated_at=START,
        claims=[Claim(Platform.ETHEREUM, ETH_ADDRESS), Claim(Platform.DOMAIN, "acme.example.com")],
    )


def make_challenge(challenge_id: str) -> Challenge:
    return Challenge(
        challenge_id=challenge_id,
        subject_id="org-1",
        platform=Platform.DOMAIN,
        target="acme.example.com",
        method=DnsTxtRecord(domain="acme.example.com", token=f"ccr-{challenge_id}"),
        created_at=START,
        expires_at=START + timedelta(hours=48),
    )


def make_proof(proof_id: str = "proof-1") -> VerificationProof:
    return VerificationProof(
        proof_id=proof_id,
        subject_id="org-1",
        platform=Platform.ETHEREUM,
        target=ETH_ADDRESS,
        locator="0xsignature",
        method=SignMessage(message="Verify ownership"),
        verified_at=START,
        challenge_snapshot="Verify ownership",
        status_history=[StatusChange(ProofStatus.ACTIVE, START, "verified")],
    )


class TestSubjects:
    def test_round_trip(self, repository: PostgresVerificationRepository) -> None:
        subject = make_subject()
        repository.put_subject(subject)

        assert repository.get_subject("org-1") == subject

    def test_put_replaces(self, repository: PostgresVerificationRepository) -> None:
        subject = make_subject()
        repository.put_subject(subject)
        subject.verification_score = 30
        repository.put_subject(subject)

        assert repository.get_subject("org-1").verification_score == 30
        assert len(repository.list_subjects()) == 1

    def test_missing_subject(self, repository: PostgresVerificationRepository) -> None:
        assert repository.get_subject("missing") is None


class TestChallenges:
    def test_reissue_replaces_previous(self, repository: PostgresVerificationRepository) -> None:
        repository.put_challenge(make_challenge("c1"))
        repository.put_challenge(make_challenge("c2"))

        assert repository.get_challenge("c1") is None
        assert repository.get_challenge("c2").method == DnsTxtRecord(domain="acme.example.com", token="ccr-c2")

    def test_consume_then_find_open(self, repository: PostgresVerificationRepository) -> None:
        challenge = make_challenge("c1")
        repository.put_challenge(challenge)
        assert repository.find_open_challenge("org-1", Platform.DOMAIN, "acme.example.com", START) is not None

        challenge.consumed_at = START
        repository.put_challenge(challenge)

        assert repository.find_open_challenge("org-1", Platform.DOMAIN, "acme.example.com", START) is None


class TestProofs:
    def test_method_variant_survives_storage(self, repository: PostgresVerificationRepository) -> None:
        repository.append_proof(make_proof())

        stored = repository.get_proof("proof-1")

        assert isinstance(stored.method, SignMessage)
        assert stored.status_history == [StatusChange(ProofStatus.ACTIVE, START, "verified")]

    def test_status_filter(self, repository: PostgresVerificationRepository) -> None:
        repository.append_proof(make_proof("p1"))
        removed = make_proof("p2")
        repository.append_proof(removed)
        removed.status = ProofStatus.REMOVED
        repository.update_proof(removed)

        live = repository.list_proofs_by_status([ProofStatus.ACTIVE, ProofStatus.DISPUTED])

        assert [p.proof_id for p in live] == ["p1"]
        assert len(repository.list_proofs("org-1")) == 2

    def test_update_unknown_proof(self, repository: PostgresVerificationRepository) -> None:
        with pytest.raises(ProofNotFound):
            repository.update_proof(make_proof("missing"))


class TestAttestations:
    def test_append(self, repository: PostgresVerificationRepository) -> None:
        repository.put_subject(make_subject())

        repository.append_attestation("org-1", Endorsement("e1", "org-2", "owner-2", "Great partner", START))

        state = repository.get_subject("org-1").reputation
        assert state.endorsements[0].attestation_id == "e1"

    def test_unknown_subject(self, repository: PostgresVerificationRepository) -> None:
        with pytest.raises(SubjectNotFound):
            repository.append_attestation("missing", Vouch("v1", "someone", "I vouch for them", START))

    def test_concurrent_appends_are_not_lost(self, repository: PostgresVerificationRepository) -> None:
        """Row lock serializes concurrent read-modify-write of the subject document."""
        repository.put_subject(make_subject())

        def vouch(i: int) -> None:
            repository.append_attestation("org-1", Vouch(f"v{i}", f"voucher-{i}", "I vouch for them", START))

        with ThreadPoolExecutor(max_workers=8) as executor:
            list(executor.map(vouch, range(16)))

        assert len(repository.get_subject("org-1").reputation.vouches) == 16


class TestDisputes:
    def test_upsert_and_list(self, repository: PostgresVerificationRepository) -> None:
        dispute = Dispute(
            dispute_id="d1",
            proof_id="proof-1",
            subject_id="org-1",
            reporter_id="reporter",
            report_type=ReportType.FAKE_PROOF,
            evidence="The record points elsewhere",
            created_at=START,
        )
        repository.put_dispute(dispute)
        dispute.accepted = True
        repository.put_dispute(dispute)

        assert repository.get_dispute("d1").accepted is True
        assert [d.dispute_id for d in repository.list_disputes("proof-1")] == ["d1"]

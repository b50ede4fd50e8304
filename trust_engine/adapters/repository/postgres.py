"""
PostgreSQL repository adapter - Implements VerificationRepository protocol.

This module provides the PostgreSQL implementation of the domain's
repository port using psycopg3 with raw SQL.

Storage layout:
- Each record is stored as a JSONB document next to the columns the
  queries filter on (ids, claim key, status).
- Documents are produced and parsed with pydantic TypeAdapters over the
  domain dataclasses, so the domain stays free of serialization code.
- ``challenges`` has a UNIQUE (subject_id, platform, target) constraint;
  ``put_challenge`` upserts on it, which replaces the open challenge of a
  claim in a single statement.
- Attestations are appended under ``SELECT ... FOR UPDATE`` on the
  subject row.

Every psycopg error is logged and re-raised as StorageError.
"""

import logging
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path

import psycopg
from psycopg.types.json import Jsonb
from psycopg_pool import ConnectionPool
from pydantic import TypeAdapter

from trust_engine.domain.exceptions import ProofNotFound, StorageError, SubjectNotFound
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

logger = logging.getLogger(__name__)

_subject_adapter = TypeAdapter(OrganizationIdentity)
_challenge_adapter = TypeAdapter(Challenge)
_proof_adapter = TypeAdapter(VerificationProof)
_dispute_adapter = TypeAdapter(Dispute)


def _dump(adapter: TypeAdapter, value) -> Jsonb:
    return Jsonb(adapter.dump_python(value, mode="json"))


class PostgresVerificationRepository:
    """
    Implements VerificationRepository protocol via psycopg3.

    Uses structural subtyping - no explicit inheritance from Protocol.
    All SQL uses parameterized queries.
    """

    def __init__(self, pool: ConnectionPool) -> None:
        """
        Initialize repository with connection pool.

        Args:
            pool: psycopg3 ConnectionPool for database connections
        """
        self._pool = pool

    @contextmanager
    def _connection(self) -> Iterator[psycopg.Connection]:
        try:
            with self._pool.connection() as conn:
                yield conn
        except psycopg.Error as exc:
            logger.error("Storage operation failed: %s", exc.__class__.__name__)
            raise StorageError("Storage operation failed") from exc

    # Subjects

    def get_subject(self, subject_id: str) -> OrganizationIdentity | None:
        with self._connection() as conn:
            row = conn.execute(
                "SELECT document FROM subjects WHERE id = %s", (subject_id,)
            ).fetchone()
        return _subject_adapter.validate_python(row[0]) if row else None

    def put_subject(self, subject: OrganizationIdentity) -> None:
        sql = """
            INSERT INTO subjects (id, owner_id, document, updated_at)
            VALUES (%s, %s, %s, %s)
            ON CONFLICT (id) DO UPDATE
            SET owner_id = EXCLUDED.owner_id,
                document = EXCLUDED.document,
                updated_at = EXCLUDED.updated_at
        """
        with self._connection() as conn:
            conn.execute(
                sql, (subject.id, subject.owner_id, _dump(_subject_adapter, subject), subject.updated_at)
            )

    def list_subjects(self) -> list[OrganizationIdentity]:
        with self._connection() as conn:
            rows = conn.execute("SELECT document FROM subjects ORDER BY created_at, id").fetchall()
        return [_subject_adapter.validate_python(row[0]) for row in rows]

    # Challenges

    def get_challenge(self, challenge_id: str) -> Challenge | None:
        with self._connection() as conn:
            row = conn.execute(
                "SELECT document FROM challenges WHERE challenge_id = %s", (challenge_id,)
            ).fetchone()
        return _challenge_adapter.validate_python(row[0]) if row else None

    def put_challenge(self, challenge: Challenge) -> None:
        """
        Upsert on the claim key.

        A new challenge id for the same claim overwrites the row, so the
        previous id no longer resolves.
        """
        sql = """
            INSERT INTO challenges (challenge_id, subject_id, platform, target, document)
            VALUES (%s, %s, %s, %s, %s)
            ON CONFLICT (subject_id, platform, target) DO UPDATE
            SET challenge_id = EXCLUDED.challenge_id,
                document = EXCLUDED.document
        """
        with self._connection() as conn:
            conn.execute(
                sql,
                (
                    challenge.challenge_id,
                    challenge.subject_id,
                    challenge.platform.value,
                    challenge.target,
                    _dump(_challenge_adapter, challenge),
                ),
            )

    def find_open_challenge(
        self, subject_id: str, platform: Platform, target: str, now: datetime
    ) -> Challenge | None:
        with self._connection() as conn:
            row = conn.execute(
                """
                SELECT document FROM challenges
                WHERE subject_id = %s AND platform = %s AND target = %s
                """,
                (subject_id, platform.value, target),
            ).fetchone()
        if row is None:
            return None
        challenge = _challenge_adapter.validate_python(row[0])
        return challenge if challenge.is_open(now) else None

    # Proofs

    def append_proof(self, proof: VerificationProof) -> None:
        sql = """
            INSERT INTO proofs (proof_id, subject_id, status, verified_at, document)
            VALUES (%s, %s, %s, %s, %s)
        """
        with self._connection() as conn:
            conn.execute(
                sql,
                (
                    proof.proof_id,
                    proof.subject_id,
                    proof.status.value,
                    proof.verified_at,
                    _dump(_proof_adapter, proof),
                ),
            )

    def update_proof(self, proof: VerificationProof) -> None:
        with self._connection() as conn:
            cursor = conn.execute(
                "UPDATE proofs SET status = %s, document = %s WHERE proof_id = %s",
                (proof.status.value, _dump(_proof_adapter, proof), proof.proof_id),
            )
            updated = cursor.rowcount
        if updated != 1:
            raise ProofNotFound(f"Proof {proof.proof_id} not found")

    def get_proof(self, proof_id: str) -> VerificationProof | None:
        with self._connection() as conn:
            row = conn.execute(
                "SELECT document FROM proofs WHERE proof_id = %s", (proof_id,)
            ).fetchone()
        return _proof_adapter.validate_python(row[0]) if row else None

    def list_proofs(self, subject_id: str) -> list[VerificationProof]:
        with self._connection() as conn:
            rows = conn.execute(
                "SELECT document FROM proofs WHERE subject_id = %s ORDER BY verified_at",
                (subject_id,),
            ).fetchall()
        return [_proof_adapter.validate_python(row[0]) for row in rows]

    def list_proofs_by_status(self, statuses: Iterable[ProofStatus]) -> list[VerificationProof]:
        values = [status.value for status in statuses]
        with self._connection() as conn:
            rows = conn.execute(
                "SELECT document FROM proofs WHERE status = ANY(%s) ORDER BY verified_at",
                (values,),
            ).fetchall()
        return [_proof_adapter.validate_python(row[0]) for row in rows]

    # Attestations

    def append_attestation(self, subject_id: str, attestation: CommunityAttestation) -> None:
        with self._connection() as conn:
            row = conn.execute(
                "SELECT document FROM subjects WHERE id = %s FOR UPDATE", (subject_id,)
            ).fetchone()
            if row is None:
                raise SubjectNotFound(f"Organization {subject_id} not found")
            subject = _subject_adapter.validate_python(row[0])
            if isinstance(attestation, Endorsement):
                subject.reputation.endorsements.append(attestation)
            elif isinstance(attestation, Testimonial):
                subject.reputation.testimonials.append(attestation)
            elif isinstance(attestation, Vouch):
                subject.reputation.vouches.append(attestation)
            else:
                raise TypeError(f"Unsupported attestation: {type(attestation).__name__}")
            conn.execute(
                "UPDATE subjects SET document = %s WHERE id = %s",
                (_dump(_subject_adapter, subject), subject_id),
            )

    # Disputes

    def put_dispute(self, dispute: Dispute) -> None:
        sql = """
            INSERT INTO disputes (dispute_id, proof_id, created_at, document)
            VALUES (%s, %s, %s, %s)
            ON CONFLICT (dispute_id) DO UPDATE
            SET document = EXCLUDED.document
        """
        with self._connection() as conn:
            conn.execute(
                sql,
                (dispute.dispute_id, dispute.proof_id, dispute.created_at, _dump(_dispute_adapter, dispute)),
            )

    def get_dispute(self, dispute_id: str) -> Dispute | None:
        with self._connection() as conn:
            row = conn.execute(
                "SELECT document FROM disputes WHERE dispute_id = %s", (dispute_id,)
            ).fetchone()
        return _dispute_adapter.validate_python(row[0]) if row else None

    def list_disputes(self, proof_id: str) -> list[Dispute]:
        with self._connection() as conn:
            rows = conn.execute(
                "SELECT document FROM disputes WHERE proof_id = %s ORDER BY created_at",
                (proof_id,),
            ).fetchall()
        return [_dispute_adapter.validate_python(row[0]) for row in rows]


def run_migrations(pool: ConnectionPool) -> None:
    """
    Execute all SQL migration files from the migrations directory.

    Migrations are executed in sorted order (alphabetically by filename).
    Each migration should be idempotent (use IF NOT EXISTS, etc.).

    Args:
        pool: psycopg3 ConnectionPool instance
    """
    # Structure: trust_engine/adapters/repository/postgres.py -> migrations/
    migrations_dir = Path(__file__).parent.parent.parent.parent / "migrations"

    if not migrations_dir.exists():
        logger.warning("Migrations directory not found: %s", migrations_dir)
        return

    sql_files = sorted(migrations_dir.glob("*.sql"))

    if not sql_files:
        logger.info("No migration files found")
        return

    logger.info("Running %d migration(s)", len(sql_files))

    for sql_file in sql_files:
        logger.info("Executing migration: %s", sql_file.name)
        try:
            with pool.connection() as conn:
                conn.execute(sql_file.read_text())
            logger.info("Migration complete: %s", sql_file.name)
        except psycopg.Error as e:
            logger.error("Migration failed: %s - %s", sql_file.name, e)
            raise StorageError(f"Database migration failed: {sql_file.name}") from e

"""
Domain models - Records and enums of the verification engine.

Plain dataclasses only. Verification methods form a tagged union: each
variant carries only its own payload plus a literal ``kind`` tag, so the
verifier dispatches on the variant type and adapters can serialize the
union without guessing its shape.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Literal, Union


class Platform(str, Enum):
    """Every kind of claim a subject can prove ownership of."""

    DOMAIN = "domain"
    GITHUB = "github"
    TWITTER = "twitter"
    DISCORD = "discord"
    TELEGRAM = "telegram"
    ETHEREUM = "ethereum"
    POLYGON = "polygon"
    BITCOIN = "bitcoin"
    ICP = "icp"
    SOLANA = "solana"
    SUI = "sui"
    TON = "ton"

    @property
    def is_chain(self) -> bool:
        return self in CHAIN_PLATFORMS

    @property
    def is_social(self) -> bool:
        return self in SOCIAL_PLATFORMS


CHAIN_PLATFORMS = frozenset(
    {
        Platform.ETHEREUM,
        Platform.POLYGON,
        Platform.BITCOIN,
        Platform.ICP,
        Platform.SOLANA,
        Platform.SUI,
        Platform.TON,
    }
)

SOCIAL_PLATFORMS = frozenset({Platform.TWITTER, Platform.DISCORD, Platform.TELEGRAM})


class ProofStatus(str, Enum):
    """
    Recorded lifecycle status of a verification proof.

    Transitions:
    - ACTIVE -> REMOVED    (recheck failing for longer than the grace period)
    - ACTIVE -> DISPUTED   (community report accepted)
    - DISPUTED -> ACTIVE   (appeal upheld)
    - DISPUTED -> REMOVED  (appeal denied or failure confirmed)

    REMOVED is terminal. Re-verification creates a new proof.
    """

    ACTIVE = "active"
    REMOVED = "removed"
    DISPUTED = "disputed"


class MethodKind(str, Enum):
    """Verification method chosen at challenge issuance."""

    SIGN_MESSAGE = "sign_message"
    DEPLOY_SPECIAL_CONTRACT = "deploy_special_contract"
    SET_PUBLIC_VARIABLE = "set_public_variable"
    SPECIAL_TRANSACTION = "special_transaction"
    DNS_TXT = "dns_txt"
    WELL_KNOWN_FILE = "well_known_file"
    PROFILE_FIELD = "profile_field"
    PUBLIC_POST = "public_post"


CHAIN_METHODS = frozenset(
    {
        MethodKind.SIGN_MESSAGE,
        MethodKind.DEPLOY_SPECIAL_CONTRACT,
        MethodKind.SET_PUBLIC_VARIABLE,
        MethodKind.SPECIAL_TRANSACTION,
    }
)


@dataclass(frozen=True)
class SignMessage:
    """Subject signs ``message`` with the key behind the claimed address."""

    message: str
    kind: Literal["sign_message"] = "sign_message"


@dataclass(frozen=True)
class DeploySpecialContract:
    """Subject deploys a contract whose ``verificationCode`` equals the code."""

    verification_code: str
    kind: Literal["deploy_special_contract"] = "deploy_special_contract"


@dataclass(frozen=True)
class SetPublicVariable:
    """Subject sets ``variable_name`` to ``value`` on the claimed contract."""

    variable_name: str
    value: str
    kind: Literal["set_public_variable"] = "set_public_variable"


@dataclass(frozen=True)
class SpecialTransaction:
    """Subject sends a transaction from the claimed address carrying the data."""

    transaction_data: str
    kind: Literal["special_transaction"] = "special_transaction"


@dataclass(frozen=True)
class DnsTxtRecord:
    """Token published in a DNS TXT record of ``domain``."""

    domain: str
    token: str
    kind: Literal["dns_txt"] = "dns_txt"

    @property
    def record_value(self) -> str:
        return f"{DNS_TXT_PREFIX}{self.token}"


@dataclass(frozen=True)
class WellKnownFile:
    """Token served from ``https://<domain>/.well-known/<file>``."""

    domain: str
    token: str
    kind: Literal["well_known_file"] = "well_known_file"

    @property
    def url(self) -> str:
        return f"https://{self.domain}/.well-known/{WELL_KNOWN_FILENAME}"


@dataclass(frozen=True)
class ProfileField:
    """Token placed in a public field of the GitHub organization profile."""

    organization: str
    token: str
    kind: Literal["profile_field"] = "profile_field"

    @property
    def url(self) -> str:
        return f"https://api.github.com/orgs/{self.organization}"


@dataclass(frozen=True)
class PublicPost:
    """Public social post containing ``required_text``."""

    required_text: str
    kind: Literal["public_post"] = "public_post"


VerificationMethod = Union[
    SignMessage,
    DeploySpecialContract,
    SetPublicVariable,
    SpecialTransaction,
    DnsTxtRecord,
    WellKnownFile,
    ProfileField,
    PublicPost,
]

DNS_TXT_PREFIX = "crosschain-registry-verification="
WELL_KNOWN_FILENAME = "crosschain-registry.txt"


@dataclass(frozen=True)
class Claim:
    """An unverified assertion that the subject owns ``value`` on ``platform``."""

    platform: Platform
    value: str


@dataclass(frozen=True)
class Endorsement:
    attestation_id: str
    endorser_company_id: str
    endorser_id: str
    message: str
    created_at: datetime
    kind: Literal["endorsement"] = "endorsement"


@dataclass(frozen=True)
class Testimonial:
    attestation_id: str
    author_name: str
    role: str
    message: str
    created_at: datetime
    verified: bool = False
    kind: Literal["testimonial"] = "testimonial"


@dataclass(frozen=True)
class Vouch:
    attestation_id: str
    voucher_id: str
    message: str
    created_at: datetime
    weight: int = 1
    kind: Literal["vouch"] = "vouch"


CommunityAttestation = Union[Endorsement, Testimonial, Vouch]


@dataclass
class ReputationState:
    """Community validation of one subject. ``reputation_score`` is derived."""

    endorsements: list[Endorsement] = field(default_factory=list)
    testimonials: list[Testimonial] = field(default_factory=list)
    vouches: list[Vouch] = field(default_factory=list)
    reputation_score: int = 0
    reputation_staked: int = 0


@dataclass
class OrganizationIdentity:
    """The subject of verification."""

    id: str
    owner_id: str
    name: str
    description: str
    website: str
    created_at: datetime
    updated_at: datetime
    claims: list[Claim] = field(default_factory=list)
    reputation: ReputationState = field(default_factory=ReputationState)
    verification_score: int = 0

    def claims_for(self, platform: Platform) -> list[str]:
        return [claim.value for claim in self.claims if claim.platform == platform]

    def has_claim(self, platform: Platform, value: str) -> bool:
        return Claim(platform, value) in self.claims


@dataclass
class Challenge:
    """Time-boxed, single-use challenge for one (subject, platform, target) claim."""

    challenge_id: str
    subject_id: str
    platform: Platform
    target: str
    method: VerificationMethod
    created_at: datetime
    expires_at: datetime
    consumed_at: datetime | None = None

    @property
    def claim_key(self) -> tuple[str, str, str]:
        return (self.subject_id, self.platform.value, self.target)

    def is_expired(self, now: datetime) -> bool:
        return now >= self.expires_at

    def is_open(self, now: datetime) -> bool:
        return self.consumed_at is None and not self.is_expired(now)


@dataclass(frozen=True)
class StatusChange:
    """Audit entry for a recorded proof status transition."""

    status: ProofStatus
    changed_at: datetime
    reason: str


@dataclass
class VerificationProof:
    """
    Evidence that a claim was verified, plus its lifecycle status.

    ``failing_since`` is the pending-removal sub-state: set on the first
    failed recheck, cleared by a later successful one. It is not a status
    change and never appears in ``status_history``.
    """

    proof_id: str
    subject_id: str
    platform: Platform
    target: str
    locator: str
    method: VerificationMethod
    verified_at: datetime
    status: ProofStatus = ProofStatus.ACTIVE
    challenge_snapshot: str | None = None
    failing_since: datetime | None = None
    last_checked_at: datetime | None = None
    status_history: list[StatusChange] = field(default_factory=list)

    @property
    def pending_removal(self) -> bool:
        return self.failing_since is not None


class ReportType(str, Enum):
    PROOF_DELETED = "proof_deleted"
    FAKE_PROOF = "fake_proof"
    IMPERSONATION = "impersonation"
    SUSPICIOUS_ACTIVITY = "suspicious_activity"
    OTHER = "other"


class DisputeResolution(str, Enum):
    """Outcome of the subject's appeal against an accepted dispute."""

    APPEAL_UPHELD = "appeal_upheld"
    APPEAL_DENIED = "appeal_denied"
    REJECTED = "rejected"


@dataclass
class Dispute:
    """Community report against a proof."""

    dispute_id: str
    proof_id: str
    subject_id: str
    reporter_id: str
    report_type: ReportType
    evidence: str
    created_at: datetime
    accepted: bool = False
    resolution: DisputeResolution | None = None
    resolved_at: datetime | None = None


class AlertKind(str, Enum):
    PROOF_REMOVED = "proof_removed"
    PROOF_DISPUTED = "proof_disputed"
    PROOF_RESTORED = "proof_restored"


@dataclass(frozen=True)
class CommunityAlert:
    subject_id: str
    proof_id: str
    kind: AlertKind
    message: str
    created_at: datetime


@dataclass(frozen=True)
class ProofSubmission:
    """
    Evidence submitted against an open challenge.

    ``signature`` is used by SignMessage; ``locator`` is the post URL for
    social proofs, the deployed contract for DeploySpecialContract and the
    transaction reference for SpecialTransaction.
    """

    signature: str | None = None
    locator: str | None = None


@dataclass(frozen=True)
class VerificationResult:
    success: bool
    message: str
    verified_at: datetime | None = None
    proof: VerificationProof | None = None


@dataclass(frozen=True)
class CheckOutcome:
    """Result of one method-specific check (initial verification or recheck)."""

    passed: bool
    reason: str
    locator: str | None = None
    transient: bool = False

"""
API request and response models.

Pydantic models for FastAPI endpoint validation and OpenAPI schema generation.
String fields are accepted as-is here; sanitization and format rules live in
the domain so every entry point applies the same ones.
"""

import dataclasses
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from trust_engine.domain.challenges import describe_method
from trust_engine.domain.engine import VerificationState
from trust_engine.domain.models import (
    Challenge,
    Dispute,
    DisputeResolution,
    MethodKind,
    OrganizationIdentity,
    Platform,
    ProofStatus,
    ReportType,
    VerificationProof,
    VerificationResult,
)


class _FromDomain(BaseModel):
    model_config = ConfigDict(from_attributes=True)


# Requests


class BasicInfo(BaseModel):
    name: str
    description: str
    website: str
    team_size: int = Field(..., description="Number of team members (1-10000)")


class Web3Identity(BaseModel):
    github_org: str | None = None
    twitter_handle: str | None = None
    discord_server: str | None = None
    telegram_channel: str | None = None
    domain: str | None = None


class CrossChainPresence(BaseModel):
    ethereum_contracts: list[str] = []
    polygon_contracts: list[str] = []
    bitcoin_addresses: list[str] = []
    icp_canisters: list[str] = []
    solana_addresses: list[str] = []
    sui_addresses: list[str] = []
    ton_addresses: list[str] = []


class RegisterOrganizationRequest(BaseModel):
    """Request model for organization registration."""

    basic_info: BasicInfo
    web3_identity: Web3Identity = Web3Identity()
    cross_chain_presence: CrossChainPresence = CrossChainPresence()


class ClaimRequest(BaseModel):
    platform: Platform
    value: str


class DomainChallengeRequest(BaseModel):
    method: MethodKind = Field(MethodKind.DNS_TXT, description="dns_txt or well_known_file")


class ChainChallengeRequest(BaseModel):
    chain_type: Platform
    address_or_contract: str
    method: MethodKind
    variable_name: str | None = Field(None, description="Only for set_public_variable")


class PlatformChallengeRequest(BaseModel):
    platform: Platform
    target: str | None = Field(None, description="Claimed account; defaults to the first claim")


class ProofSubmissionRequest(BaseModel):
    signature: str | None = Field(None, description="Signature of the challenge message")
    locator: str | None = Field(None, description="Post URL, contract address or transaction hash")


class ReportRequest(BaseModel):
    report_type: ReportType
    evidence: str


class ResolveDisputeRequest(BaseModel):
    upheld: bool = Field(..., description="True restores the proof, false removes it")


class EndorsementRequest(BaseModel):
    endorser_company_id: str
    message: str


class TestimonialRequest(BaseModel):
    author_name: str
    role: str
    message: str


class VouchRequest(BaseModel):
    message: str


class StakeRequest(BaseModel):
    amount: int = Field(..., gt=0)


# Responses


class ClaimModel(_FromDomain):
    platform: Platform
    value: str


class OrganizationResponse(_FromDomain):
    id: str
    owner_id: str
    name: str
    description: str
    website: str
    claims: list[ClaimModel]
    verification_score: int
    reputation_score: int
    created_at: datetime

    @classmethod
    def from_subject(cls, subject: OrganizationIdentity) -> "OrganizationResponse":
        return cls(
            id=subject.id,
            owner_id=subject.owner_id,
            name=subject.name,
            description=subject.description,
            website=subject.website,
            claims=[ClaimModel.model_validate(c) for c in subject.claims],
            verification_score=subject.verification_score,
            reputation_score=subject.reputation.reputation_score,
            created_at=subject.created_at,
        )


class ChallengeResponse(BaseModel):
    challenge_id: str
    subject_id: str
    platform: Platform
    target: str
    method: dict[str, Any]
    instructions: str
    created_at: datetime
    expires_at: datetime
    consumed: bool

    @classmethod
    def from_challenge(cls, challenge: Challenge) -> "ChallengeResponse":
        return cls(
            challenge_id=challenge.challenge_id,
            subject_id=challenge.subject_id,
            platform=challenge.platform,
            target=challenge.target,
            method=dataclasses.asdict(challenge.method),
            instructions=describe_method(challenge),
            created_at=challenge.created_at,
            expires_at=challenge.expires_at,
            consumed=challenge.consumed_at is not None,
        )


class StatusChangeModel(_FromDomain):
    status: ProofStatus
    changed_at: datetime
    reason: str


class ProofResponse(_FromDomain):
    proof_id: str
    platform: Platform
    target: str
    locator: str
    status: ProofStatus
    verified_at: datetime
    pending_removal: bool
    failing_since: datetime | None
    last_checked_at: datetime | None
    status_history: list[StatusChangeModel]

    @classmethod
    def from_proof(cls, proof: VerificationProof) -> "ProofResponse":
        return cls.model_validate(proof)


class VerificationResultResponse(BaseModel):
    success: bool
    message: str
    verified_at: datetime | None = None
    proof: ProofResponse | None = None

    @classmethod
    def from_result(cls, result: VerificationResult) -> "VerificationResultResponse":
        return cls(
            success=result.success,
            message=result.message,
            verified_at=result.verified_at,
            proof=ProofResponse.from_proof(result.proof) if result.proof else None,
        )


class VerificationStateResponse(BaseModel):
    subject_id: str
    verification_score: int
    reputation_score: int
    claims: list[ClaimModel]
    proofs: list[ProofResponse]

    @classmethod
    def from_state(cls, state: VerificationState) -> "VerificationStateResponse":
        return cls(
            subject_id=state.subject.id,
            verification_score=state.verification_score,
            reputation_score=state.reputation_score,
            claims=[ClaimModel.model_validate(c) for c in state.subject.claims],
            proofs=[ProofResponse.from_proof(p) for p in state.proofs],
        )


class DisputeResponse(_FromDomain):
    dispute_id: str
    proof_id: str
    subject_id: str
    report_type: ReportType
    accepted: bool
    resolution: DisputeResolution | None
    created_at: datetime

    @classmethod
    def from_dispute(cls, dispute: Dispute) -> "DisputeResponse":
        return cls.model_validate(dispute)


class AttestationResponse(_FromDomain):
    attestation_id: str
    kind: str
    created_at: datetime


class TestimonialResponse(AttestationResponse):
    author_name: str
    role: str
    verified: bool


class VouchResponse(AttestationResponse):
    weight: int


class StakeResponse(BaseModel):
    reputation_staked: int


class CommunityStatsResponse(_FromDomain):
    total_endorsements: int
    total_testimonials: int
    verified_testimonials: int
    total_vouches: int
    reputation_score: int
    reputation_staked: int


class EligibilityResponse(BaseModel):
    eligible: bool


class FraudPatternsResponse(BaseModel):
    subject_id: str
    patterns: list[str]


class LeaderboardEntryModel(_FromDomain):
    subject_id: str
    name: str
    reputation_score: int
    reputation_staked: int


class SweepReportModel(_FromDomain):
    started_at: datetime
    finished_at: datetime | None
    checked: int
    passed: int
    failed: int
    timed_out: int
    skipped: int
    pending_removal: int
    removed: int


class MonitoringStatsResponse(_FromDomain):
    total_proofs: int
    active: int
    disputed: int
    removed: int
    pending_removal: int
    last_sweep: SweepReportModel | None


class ErrorBody(BaseModel):
    kind: str
    message: str
    errors: dict[str, str] | None = None
    remaining: int | None = None


class ErrorResponse(BaseModel):
    """Standard error response model."""

    error: ErrorBody

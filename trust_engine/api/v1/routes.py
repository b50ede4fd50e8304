"""
API v1 routes.

Defines REST endpoints for the Trust & Verification Engine. Domain errors
propagate to the handlers installed by ``trust_engine.api.errors``.
"""

from fastapi import APIRouter, Depends, Query, status

from trust_engine.api.dependencies import get_actor_id, get_engine
from trust_engine.api.models import (
    AttestationResponse,
    ChainChallengeRequest,
    ChallengeResponse,
    ClaimModel,
    ClaimRequest,
    CommunityStatsResponse,
    DisputeResponse,
    DomainChallengeRequest,
    EligibilityResponse,
    EndorsementRequest,
    ErrorResponse,
    FraudPatternsResponse,
    LeaderboardEntryModel,
    MonitoringStatsResponse,
    OrganizationResponse,
    PlatformChallengeRequest,
    ProofResponse,
    ProofSubmissionRequest,
    RegisterOrganizationRequest,
    ReportRequest,
    ResolveDisputeRequest,
    StakeRequest,
    StakeResponse,
    SweepReportModel,
    TestimonialRequest,
    TestimonialResponse,
    VerificationResultResponse,
    VerificationStateResponse,
    VouchRequest,
    VouchResponse,
)
from trust_engine.domain.engine import TrustEngine
from trust_engine.domain.models import ProofSubmission

router = APIRouter(tags=["v1"])

_ERRORS = {
    403: {"model": ErrorResponse, "description": "Actor not allowed"},
    404: {"model": ErrorResponse, "description": "Unknown organization, challenge or proof"},
    422: {"model": ErrorResponse, "description": "Validation error"},
    429: {"model": ErrorResponse, "description": "Rate limited"},
}


# Intake


@router.post(
    "/organizations",
    response_model=OrganizationResponse,
    status_code=status.HTTP_201_CREATED,
    responses=_ERRORS,
    summary="Register an organization",
)
def register_organization(
    request_data: RegisterOrganizationRequest,
    actor_id: str = Depends(get_actor_id),
    engine: TrustEngine = Depends(get_engine),
) -> OrganizationResponse:
    """
    Register an organization. Identity handles and chain addresses become
    unverified claims owned by the calling actor.
    """
    subject = engine.register_subject(actor_id, request_data.model_dump())
    return OrganizationResponse.from_subject(subject)


@router.get(
    "/organizations/leaderboard",
    response_model=list[LeaderboardEntryModel],
    summary="Organizations ranked by reputation",
)
def reputation_leaderboard(
    limit: int = Query(20, ge=1, le=100),
    engine: TrustEngine = Depends(get_engine),
) -> list[LeaderboardEntryModel]:
    return [LeaderboardEntryModel.model_validate(e) for e in engine.reputation_leaderboard(limit)]


@router.post(
    "/organizations/{subject_id}/claims",
    response_model=ClaimModel,
    status_code=status.HTTP_201_CREATED,
    responses=_ERRORS,
    summary="Submit a claim",
)
def submit_claim(
    subject_id: str,
    request_data: ClaimRequest,
    actor_id: str = Depends(get_actor_id),
    engine: TrustEngine = Depends(get_engine),
) -> ClaimModel:
    claim = engine.submit_claim(actor_id, subject_id, request_data.platform, request_data.value)
    return ClaimModel.model_validate(claim)


@router.get(
    "/organizations/{subject_id}/verification",
    response_model=VerificationStateResponse,
    responses={404: _ERRORS[404]},
    summary="Get verification state",
)
def get_verification_state(
    subject_id: str, engine: TrustEngine = Depends(get_engine)
) -> VerificationStateResponse:
    return VerificationStateResponse.from_state(engine.get_verification_state(subject_id))


# Challenges and proofs


@router.post(
    "/organizations/{subject_id}/challenges/domain",
    response_model=ChallengeResponse,
    status_code=status.HTTP_201_CREATED,
    responses=_ERRORS,
    summary="Request a domain challenge",
)
def request_domain_challenge(
    subject_id: str,
    request_data: DomainChallengeRequest,
    actor_id: str = Depends(get_actor_id),
    engine: TrustEngine = Depends(get_engine),
) -> ChallengeResponse:
    challenge = engine.request_domain_challenge(actor_id, subject_id, request_data.method)
    return ChallengeResponse.from_challenge(challenge)


@router.post(
    "/organizations/{subject_id}/challenges/chain",
    response_model=ChallengeResponse,
    status_code=status.HTTP_201_CREATED,
    responses=_ERRORS,
    summary="Request a chain address or contract challenge",
)
def request_chain_challenge(
    subject_id: str,
    request_data: ChainChallengeRequest,
    actor_id: str = Depends(get_actor_id),
    engine: TrustEngine = Depends(get_engine),
) -> ChallengeResponse:
    challenge = engine.request_chain_challenge(
        actor_id,
        subject_id,
        request_data.chain_type,
        request_data.address_or_contract,
        request_data.method,
        request_data.variable_name,
    )
    return ChallengeResponse.from_challenge(challenge)


@router.post(
    "/organizations/{subject_id}/challenges/platform",
    response_model=ChallengeResponse,
    status_code=status.HTTP_201_CREATED,
    responses=_ERRORS,
    summary="Request a GitHub or social account challenge",
)
def request_platform_challenge(
    subject_id: str,
    request_data: PlatformChallengeRequest,
    actor_id: str = Depends(get_actor_id),
    engine: TrustEngine = Depends(get_engine),
) -> ChallengeResponse:
    challenge = engine.request_platform_challenge(
        actor_id, subject_id, request_data.platform, request_data.target
    )
    return ChallengeResponse.from_challenge(challenge)


@router.get(
    "/challenges/{challenge_id}",
    response_model=ChallengeResponse,
    responses=_ERRORS,
    summary="Get a challenge",
)
def get_challenge(
    challenge_id: str,
    actor_id: str = Depends(get_actor_id),
    engine: TrustEngine = Depends(get_engine),
) -> ChallengeResponse:
    return ChallengeResponse.from_challenge(engine.get_challenge(actor_id, challenge_id))


@router.post(
    "/challenges/{challenge_id}/proof",
    response_model=VerificationResultResponse,
    responses={
        **_ERRORS,
        409: {"model": ErrorResponse, "description": "Challenge already used"},
        410: {"model": ErrorResponse, "description": "Challenge expired"},
    },
    summary="Submit a proof",
    description="A failed check is returned with success=false; the challenge stays open until it expires.",
)
def submit_proof(
    challenge_id: str,
    request_data: ProofSubmissionRequest,
    actor_id: str = Depends(get_actor_id),
    engine: TrustEngine = Depends(get_engine),
) -> VerificationResultResponse:
    submission = ProofSubmission(signature=request_data.signature, locator=request_data.locator)
    result = engine.submit_proof(actor_id, challenge_id, submission)
    return VerificationResultResponse.from_result(result)


# Lifecycle


@router.post(
    "/organizations/{subject_id}/proofs/{proof_id}/reports",
    response_model=DisputeResponse,
    status_code=status.HTTP_201_CREATED,
    responses=_ERRORS,
    summary="Report a proof",
)
def report_proof(
    subject_id: str,
    proof_id: str,
    request_data: ReportRequest,
    actor_id: str = Depends(get_actor_id),
    engine: TrustEngine = Depends(get_engine),
) -> DisputeResponse:
    dispute = engine.report_proof(
        actor_id, subject_id, proof_id, request_data.report_type, request_data.evidence
    )
    return DisputeResponse.from_dispute(dispute)


@router.post(
    "/disputes/{dispute_id}/resolution",
    response_model=ProofResponse,
    responses=_ERRORS,
    summary="Resolve a dispute (moderators)",
)
def resolve_dispute(
    dispute_id: str,
    request_data: ResolveDisputeRequest,
    actor_id: str = Depends(get_actor_id),
    engine: TrustEngine = Depends(get_engine),
) -> ProofResponse:
    return ProofResponse.from_proof(engine.resolve_dispute(actor_id, dispute_id, request_data.upheld))


@router.get(
    "/monitoring/stats",
    response_model=MonitoringStatsResponse,
    summary="Proof lifecycle statistics",
)
def monitoring_stats(engine: TrustEngine = Depends(get_engine)) -> MonitoringStatsResponse:
    return MonitoringStatsResponse.model_validate(engine.monitoring_stats())


@router.post(
    "/monitoring/sweep",
    response_model=SweepReportModel,
    responses={403: _ERRORS[403]},
    summary="Run a recheck sweep now (moderators)",
)
def run_sweep(
    actor_id: str = Depends(get_actor_id),
    engine: TrustEngine = Depends(get_engine),
) -> SweepReportModel:
    engine.require_moderator(actor_id)
    return SweepReportModel.model_validate(engine.run_sweep())


# Community validation


@router.post(
    "/organizations/{subject_id}/endorsements",
    response_model=AttestationResponse,
    status_code=status.HTTP_201_CREATED,
    responses=_ERRORS,
    summary="Endorse an organization",
)
def add_endorsement(
    subject_id: str,
    request_data: EndorsementRequest,
    actor_id: str = Depends(get_actor_id),
    engine: TrustEngine = Depends(get_engine),
) -> AttestationResponse:
    endorsement = engine.add_endorsement(
        actor_id, subject_id, request_data.endorser_company_id, request_data.message
    )
    return AttestationResponse.model_validate(endorsement)


@router.get(
    "/organizations/{subject_id}/endorsement-eligibility",
    response_model=EligibilityResponse,
    responses={404: _ERRORS[404]},
    summary="Check whether an organization may endorse this one",
)
def endorsement_eligibility(
    subject_id: str,
    endorser_company_id: str = Query(...),
    engine: TrustEngine = Depends(get_engine),
) -> EligibilityResponse:
    return EligibilityResponse(eligible=engine.endorsement_eligibility(endorser_company_id, subject_id))


@router.post(
    "/organizations/{subject_id}/testimonials",
    response_model=TestimonialResponse,
    status_code=status.HTTP_201_CREATED,
    responses=_ERRORS,
    summary="Add a testimonial",
)
def add_testimonial(
    subject_id: str,
    request_data: TestimonialRequest,
    actor_id: str = Depends(get_actor_id),
    engine: TrustEngine = Depends(get_engine),
) -> TestimonialResponse:
    testimonial = engine.add_testimonial(
        actor_id, subject_id, request_data.author_name, request_data.role, request_data.message
    )
    return TestimonialResponse.model_validate(testimonial)


@router.post(
    "/organizations/{subject_id}/testimonials/{attestation_id}/verify",
    response_model=TestimonialResponse,
    responses=_ERRORS,
    summary="Mark a testimonial as verified (owner)",
)
def verify_testimonial(
    subject_id: str,
    attestation_id: str,
    actor_id: str = Depends(get_actor_id),
    engine: TrustEngine = Depends(get_engine),
) -> TestimonialResponse:
    testimonial = engine.verify_testimonial(actor_id, subject_id, attestation_id)
    return TestimonialResponse.model_validate(testimonial)


@router.post(
    "/organizations/{subject_id}/vouches",
    response_model=VouchResponse,
    status_code=status.HTTP_201_CREATED,
    responses=_ERRORS,
    summary="Vouch for an organization",
)
def add_vouch(
    subject_id: str,
    request_data: VouchRequest,
    actor_id: str = Depends(get_actor_id),
    engine: TrustEngine = Depends(get_engine),
) -> VouchResponse:
    return VouchResponse.model_validate(engine.add_vouch(actor_id, subject_id, request_data.message))


@router.post(
    "/organizations/{subject_id}/stake",
    response_model=StakeResponse,
    responses=_ERRORS,
    summary="Stake reputation (owner)",
)
def stake_reputation(
    subject_id: str,
    request_data: StakeRequest,
    actor_id: str = Depends(get_actor_id),
    engine: TrustEngine = Depends(get_engine),
) -> StakeResponse:
    staked = engine.stake_reputation(actor_id, subject_id, request_data.amount)
    return StakeResponse(reputation_staked=staked)


@router.get(
    "/organizations/{subject_id}/community",
    response_model=CommunityStatsResponse,
    responses={404: _ERRORS[404]},
    summary="Community validation statistics",
)
def community_stats(subject_id: str, engine: TrustEngine = Depends(get_engine)) -> CommunityStatsResponse:
    return CommunityStatsResponse.model_validate(engine.community_stats(subject_id))


@router.get(
    "/organizations/{subject_id}/fraud-patterns",
    response_model=FraudPatternsResponse,
    responses={404: _ERRORS[404]},
    summary="Suspicious validation patterns",
)
def fraud_patterns(subject_id: str, engine: TrustEngine = Depends(get_engine)) -> FraudPatternsResponse:
    return FraudPatternsResponse(subject_id=subject_id, patterns=engine.detect_validation_fraud(subject_id))

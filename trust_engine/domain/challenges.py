"""
Challenge issuance - Time-boxed, single-use ownership challenges.

A challenge binds one claim (subject, platform, target) to a verification
method and an unpredictable token or message. The method is chosen by the
caller and stored with its payload, so the verifier never has to infer
how to check a submission from its shape.

Every challenge expires after the same fixed window regardless of method.
Issuing a new challenge for a claim replaces the open one: the repository
keeps at most one challenge per claim, so the previous id stops resolving.
"""

import logging
import re
import secrets
import uuid
from dataclasses import dataclass
from datetime import timedelta

from .exceptions import NotEligible, SubjectNotFound, ValidationError
from .models import (
    Challenge,
    DeploySpecialContract,
    DnsTxtRecord,
    MethodKind,
    OrganizationIdentity,
    Platform,
    ProfileField,
    PublicPost,
    SetPublicVariable,
    SignMessage,
    SpecialTransaction,
    VerificationMethod,
    WellKnownFile,
)
from .ports import Clock, VerificationRepository, utc_now
from .sanitizer import FieldKind, clean, validate_claim

logger = logging.getLogger(__name__)

DEFAULT_CHALLENGE_TTL = timedelta(hours=48)
DEFAULT_VARIABLE_NAME = "registryVerification"
REQUIRED_TEXT_PREFIX = "CrossChain Registry - Company ID: "

_VARIABLE_NAME = re.compile(r"[A-Za-z_][A-Za-z0-9_]{0,63}")


def generate_token() -> str:
    """Unpredictable token from the OS CSPRNG."""
    return f"ccr-{secrets.token_hex(16)}"


@dataclass
class ChallengeIssuer:
    """Creates challenges and stores them through the repository port."""

    repository: VerificationRepository
    clock: Clock = utc_now
    ttl: timedelta = DEFAULT_CHALLENGE_TTL

    def issue_domain_challenge(
        self, subject_id: str, method: MethodKind = MethodKind.DNS_TXT
    ) -> Challenge:
        """
        Issue a domain ownership challenge.

        The domain comes from the subject's domain claim, falling back to
        its website host.

        Args:
            subject_id: Organization id
            method: DNS_TXT (TXT record) or WELL_KNOWN_FILE

        Raises:
            SubjectNotFound: Unknown subject
            NotEligible: Subject has no usable domain
            ValidationError: Unsupported method for domains
        """
        subject = self._require_subject(subject_id)
        domain = self._domain_of(subject)
        token = generate_token()

        verification: VerificationMethod
        if method is MethodKind.DNS_TXT:
            verification = DnsTxtRecord(domain=domain, token=token)
        elif method is MethodKind.WELL_KNOWN_FILE:
            verification = WellKnownFile(domain=domain, token=token)
        else:
            raise ValidationError({"method": f"Method {method.value} cannot verify a domain"})
        return self._store(subject_id, Platform.DOMAIN, domain, verification)

    def issue_chain_challenge(
        self,
        subject_id: str,
        chain_type: Platform,
        address_or_contract: str,
        method: MethodKind,
        variable_name: str | None = None,
    ) -> Challenge:
        """
        Issue a chain address/contract ownership challenge.

        Raises:
            SubjectNotFound: Unknown subject
            ValidationError: Not a chain, malformed address or non-chain method
            NotEligible: The address is not claimed by the subject
        """
        if not chain_type.is_chain:
            raise ValidationError({"chain_type": f"{chain_type.value} is not a supported chain"})
        address, outcome = validate_claim(chain_type, address_or_contract)
        if not outcome.ok:
            raise ValidationError({"address_or_contract": outcome.message})

        subject = self._require_subject(subject_id)
        if not subject.has_claim(chain_type, address):
            raise NotEligible(f"{chain_type.value} address {address} is not claimed by this organization")

        nonce = secrets.token_hex(16)
        verification: VerificationMethod
        if method is MethodKind.SIGN_MESSAGE:
            verification = SignMessage(message=f"Verify ownership for {subject_id}:{nonce}")
        elif method is MethodKind.DEPLOY_SPECIAL_CONTRACT:
            verification = DeploySpecialContract(verification_code=f"ccr-{nonce}")
        elif method is MethodKind.SET_PUBLIC_VARIABLE:
            name = (variable_name or DEFAULT_VARIABLE_NAME).strip()
            if not _VARIABLE_NAME.fullmatch(name):
                raise ValidationError({"variable_name": "Variable name must be an identifier"})
            verification = SetPublicVariable(variable_name=name, value=f"ccr-{nonce}")
        elif method is MethodKind.SPECIAL_TRANSACTION:
            verification = SpecialTransaction(transaction_data=f"0x{nonce}")
        else:
            raise ValidationError({"method": f"Method {method.value} cannot verify a chain address"})
        return self._store(subject_id, chain_type, address, verification)

    def issue_platform_challenge(
        self, subject_id: str, platform: Platform, target: str | None = None
    ) -> Challenge:
        """
        Issue a GitHub or social-account challenge.

        GitHub expects the token in a public organization profile field;
        Twitter/Discord/Telegram expect a public post with the required text.
        """
        if platform is not Platform.GITHUB and not platform.is_social:
            raise ValidationError({"platform": f"Use a domain or chain challenge for {platform.value}"})
        subject = self._require_subject(subject_id)
        claimed = subject.claims_for(platform)
        if target is None:
            if not claimed:
                raise NotEligible(f"No {platform.value} account is claimed by this organization")
            target = claimed[0]
        elif target not in claimed:
            raise NotEligible(f"{platform.value} account {target} is not claimed by this organization")

        token = generate_token()
        verification: VerificationMethod
        if platform is Platform.GITHUB:
            verification = ProfileField(organization=target, token=token)
        else:
            verification = PublicPost(required_text=f"{REQUIRED_TEXT_PREFIX}{subject_id} - {token}")
        return self._store(subject_id, platform, target, verification)

    def _require_subject(self, subject_id: str) -> OrganizationIdentity:
        subject = self.repository.get_subject(subject_id)
        if subject is None:
            raise SubjectNotFound(f"Organization {subject_id} not found")
        return subject

    def _domain_of(self, subject: OrganizationIdentity) -> str:
        candidates = subject.claims_for(Platform.DOMAIN) + [subject.website]
        for candidate in candidates:
            domain, outcome = clean(FieldKind.DOMAIN, candidate)
            if outcome.ok:
                return domain
        raise NotEligible("Organization has no domain to verify")

    def _store(
        self, subject_id: str, platform: Platform, target: str, method: VerificationMethod
    ) -> Challenge:
        now = self.clock()
        challenge = Challenge(
            challenge_id=uuid.uuid4().hex,
            subject_id=subject_id,
            platform=platform,
            target=target,
            method=method,
            created_at=now,
            expires_at=now + self.ttl,
        )
        replaced = self.repository.find_open_challenge(subject_id, platform, target, now)
        if replaced is not None:
            logger.info(
                "Open challenge replaced: subject=%s platform=%s challenge=%s",
                subject_id,
                platform.value,
                replaced.challenge_id,
            )
        self.repository.put_challenge(challenge)
        logger.info(
            "Challenge issued: subject=%s platform=%s method=%s expires_at=%s",
            subject_id,
            platform.value,
            method.kind,
            challenge.expires_at.isoformat(),
        )
        return challenge


def describe_method(challenge: Challenge) -> str:
    """Human-readable instructions for completing a challenge."""
    method = challenge.method
    if isinstance(method, DnsTxtRecord):
        return f"Add a TXT record to {method.domain} with the value: {method.record_value}"
    if isinstance(method, WellKnownFile):
        return f"Serve a file at {method.url} containing: {method.token}"
    if isinstance(method, ProfileField):
        return (
            f"Add {method.token} to the description or another public profile field "
            f"of the GitHub organization {method.organization}"
        )
    if isinstance(method, PublicPost):
        return f"Publish a public post from {challenge.target} containing: {method.required_text}"
    if isinstance(method, SignMessage):
        return f"Sign this exact message with {challenge.target}: {method.message}"
    if isinstance(method, DeploySpecialContract):
        return (
            f"Deploy a contract from {challenge.target} exposing verificationCode() "
            f"that returns {method.verification_code}, then submit its address"
        )
    if isinstance(method, SetPublicVariable):
        return f"Set the public variable {method.variable_name} on {challenge.target} to {method.value}"
    if isinstance(method, SpecialTransaction):
        return (
            f"Send a transaction from {challenge.target} with input data {method.transaction_data}, "
            "then submit its hash"
        )
    raise TypeError(f"Unsupported verification method: {type(method).__name__}")

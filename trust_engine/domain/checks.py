"""
Method-specific proof checks shared by initial verification and rechecks.

``ProofChecker.check`` dispatches on the verification method variant.
Fetch and chain-read failures never escape: they come back as a failed
CheckOutcome flagged ``transient`` so callers can treat them as
retryable rather than as evidence that the proof is gone.
"""

import hmac
import logging
from collections.abc import Callable
from dataclasses import dataclass

from .exceptions import ExternalFetchError
from .models import (
    CheckOutcome,
    DeploySpecialContract,
    DnsTxtRecord,
    Platform,
    ProfileField,
    PublicPost,
    SetPublicVariable,
    SignMessage,
    SpecialTransaction,
    VerificationMethod,
    WellKnownFile,
)
from .ports import ChainGateway, FetchResponse, ResourceFetcher
from .sanitizer import proof_url_matches_claim, sanitize_url, validate_claim, validate_proof_url

logger = logging.getLogger(__name__)

DNS_OVER_HTTPS_URL = "https://dns.google/resolve?name={domain}&type=TXT"


def same_bytes(actual: str | None, expected: str) -> bool:
    """Byte-for-byte comparison in constant time."""
    if actual is None:
        return False
    return hmac.compare_digest(actual.encode(), expected.encode())


def same_address(chain: Platform, actual: str | None, expected: str) -> bool:
    # Hex-encoded EVM/Sui addresses are case-insensitive (checksum casing).
    if actual is None:
        return False
    if chain in (Platform.ETHEREUM, Platform.POLYGON, Platform.SUI):
        return same_bytes(actual.lower(), expected.lower())
    return same_bytes(actual, expected)


def _is_transient_status(status_code: int) -> bool:
    return status_code == 429 or status_code >= 500


@dataclass
class ProofChecker:
    """Runs the check a verification method calls for."""

    fetcher: ResourceFetcher
    chain: ChainGateway

    def check(
        self, platform: Platform, target: str, method: VerificationMethod, evidence: str | None
    ) -> CheckOutcome:
        """
        Check one proof.

        Args:
            platform: Platform or chain of the claim
            target: The claimed handle, domain or address
            method: Verification method stored with the challenge
            evidence: Signature (SignMessage), post URL (PublicPost),
                deployed contract (DeploySpecialContract) or transaction
                reference (SpecialTransaction); unused otherwise

        Returns:
            CheckOutcome; fetch failures are reported as transient
        """
        handler = self._handlers()[type(method)]
        try:
            return handler(platform, target, method, evidence)
        except ExternalFetchError as exc:
            logger.warning(
                "Proof check could not reach its source: platform=%s target=%s error=%s",
                platform.value,
                target,
                exc.kind,
            )
            return CheckOutcome(False, f"Could not reach verification source: {exc.message}", transient=True)

    def _handlers(self) -> dict[type, Callable[..., CheckOutcome]]:
        return {
            DnsTxtRecord: self._check_dns_txt,
            WellKnownFile: self._check_well_known_file,
            ProfileField: self._check_profile_field,
            PublicPost: self._check_public_post,
            SignMessage: self._check_signature,
            DeploySpecialContract: self._check_deployed_contract,
            SetPublicVariable: self._check_public_variable,
            SpecialTransaction: self._check_transaction,
        }

    def _fetch_and_find(self, url: str, needle: str, missing: str) -> CheckOutcome:
        response: FetchResponse = self.fetcher.fetch_resource(url)
        if not response.ok:
            return CheckOutcome(
                False,
                f"Verification source returned HTTP {response.status_code}",
                locator=url,
                transient=_is_transient_status(response.status_code),
            )
        if needle in response.body:
            return CheckOutcome(True, "Expected token found", locator=url)
        return CheckOutcome(False, missing, locator=url)

    def _check_dns_txt(self, platform, target, method: DnsTxtRecord, evidence) -> CheckOutcome:
        return self._fetch_and_find(
            DNS_OVER_HTTPS_URL.format(domain=method.domain),
            method.record_value,
            f"TXT record with the issued token not found for domain '{method.domain}'",
        )

    def _check_well_known_file(self, platform, target, method: WellKnownFile, evidence) -> CheckOutcome:
        return self._fetch_and_find(
            method.url,
            method.token,
            f"Verification file on '{method.domain}' does not contain the issued token",
        )

    def _check_profile_field(self, platform, target, method: ProfileField, evidence) -> CheckOutcome:
        return self._fetch_and_find(
            method.url,
            method.token,
            f"GitHub organization '{method.organization}' profile does not contain the issued token",
        )

    def _check_public_post(self, platform, target, method: PublicPost, evidence) -> CheckOutcome:
        url = sanitize_url(evidence or "")
        outcome = validate_proof_url(platform, url)
        if not outcome.ok:
            return CheckOutcome(False, outcome.message)
        if not proof_url_matches_claim(platform, url, target):
            return CheckOutcome(False, f"Post URL does not belong to the claimed account {target}")
        return self._fetch_and_find(
            url, method.required_text, "Post does not contain the required verification text"
        )

    def _check_signature(self, platform, target, method: SignMessage, evidence) -> CheckOutcome:
        if not evidence:
            return CheckOutcome(False, "Signature is required")
        if self.chain.verify_signature(platform, target, method.message, evidence):
            return CheckOutcome(True, "Signature matches the claimed address", locator=evidence)
        return CheckOutcome(False, "Signature mismatch: message was not signed by the claimed address")

    def _check_deployed_contract(
        self, platform, target, method: DeploySpecialContract, evidence
    ) -> CheckOutcome:
        contract, outcome = validate_claim(platform, evidence)
        if not outcome.ok:
            return CheckOutcome(False, f"Deployed contract address: {outcome.message}")
        code = self.chain.read_public_state(platform, contract, "verificationCode")
        deployer = self.chain.read_public_state(platform, contract, "deployer")
        if not same_bytes(code, method.verification_code):
            return CheckOutcome(False, "Contract verification code does not match", locator=contract)
        if not same_address(platform, deployer, target):
            return CheckOutcome(False, "Contract was not deployed by the claimed address", locator=contract)
        return CheckOutcome(True, "Verification contract found", locator=contract)

    def _check_public_variable(self, platform, target, method: SetPublicVariable, evidence) -> CheckOutcome:
        value = self.chain.read_public_state(platform, target, method.variable_name)
        if same_bytes(value, method.value):
            return CheckOutcome(True, f"Public variable {method.variable_name} matches", locator=target)
        return CheckOutcome(
            False, f"Public variable {method.variable_name} does not hold the expected value", locator=target
        )

    def _check_transaction(self, platform, target, method: SpecialTransaction, evidence) -> CheckOutcome:
        if not evidence:
            return CheckOutcome(False, "Transaction reference is required")
        reference = evidence.strip()
        data = self.chain.read_public_state(platform, reference, "input")
        sender = self.chain.read_public_state(platform, reference, "from")
        if not same_bytes(data, method.transaction_data):
            return CheckOutcome(False, "Transaction data does not match", locator=reference)
        if not same_address(platform, sender, target):
            return CheckOutcome(False, "Transaction was not sent by the claimed address", locator=reference)
        return CheckOutcome(True, "Verification transaction found", locator=reference)

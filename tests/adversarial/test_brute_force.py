"""
Adversarial tests for brute force attack prevention.

Verifies that:
- Per-actor rate limits hold under concurrent bursts
- Failed verification attempts consume the verification budget
- Challenge tokens and messages are unpredictable

Security rationale:
- Without a limit an attacker could hammer proof submission or flood
  community reports
- Tokens drawn from the OS CSPRNG cannot be guessed from earlier ones
"""

import re
import threading
from concurrent.futures import ThreadPoolExecutor
from datetime import timedelta

import pytest

from tests.support import ETH_ADDRESS, FakeClock, FakeFetcher, InMemoryChainGateway, registration_form
from trust_engine.adapters.repository.memory import InMemoryVerificationRepository
from trust_engine.domain.challenges import generate_token
from trust_engine.domain.engine import TrustEngine
from trust_engine.domain.exceptions import ProofNotFound, RateLimited, Unauthorized
from trust_engine.domain.models import MethodKind, Platform, ProofSubmission, ReportType
from trust_engine.domain.rate_limit import ActionRateLimits, RateLimitPolicy

# Apply adversarial marker to all tests in this module
pytestmark = pytest.mark.adversarial

OWNER = "owner"


@pytest.fixture
def limited_engine(
    repository: InMemoryVerificationRepository,
    fetcher: FakeFetcher,
    chain: InMemoryChainGateway,
    clock: FakeClock,
) -> TrustEngine:
    return TrustEngine.create(
        repository,
        fetcher,
        chain,
        clock=clock,
        rate_limits={
            "http": RateLimitPolicy(100, timedelta(seconds=60)),
            "verification": RateLimitPolicy(5, timedelta(seconds=300)),
            "report": RateLimitPolicy(3, timedelta(seconds=600)),
        },
    )


class TestRateLimitBursts:
    def test_concurrent_burst_admits_exactly_max(self, clock: FakeClock) -> None:
        limits = ActionRateLimits({"verification": RateLimitPolicy(5, timedelta(seconds=300))}, clock)

        with ThreadPoolExecutor(max_workers=20) as executor:
            admitted = list(executor.map(lambda _: limits.admit("attacker", "verification"), range(50)))

        assert admitted.count(True) == 5
        assert limits.remaining("attacker", "verification") == 0

    def test_signature_guessing_is_rate_limited(
        self, limited_engine: TrustEngine, clock: FakeClock
    ) -> None:
        """
        Attack scenario: Attacker submits forged signatures from many
        threads hoping one matches.

        Expected defense: The challenge request plus four guesses exhaust
        the verification budget; every later attempt is refused.
        """
        subject = limited_engine.register_subject(OWNER, registration_form())
        challenge = limited_engine.request_chain_challenge(
            OWNER, subject.id, Platform.ETHEREUM, ETH_ADDRESS, MethodKind.SIGN_MESSAGE
        )
        checked: list[bool] = []
        limited: list[bool] = []
        results_lock = threading.Lock()

        def guess(i: int) -> None:
            try:
                result = limited_engine.submit_proof(
                    OWNER, challenge.challenge_id, ProofSubmission(signature=f"0x{i:064x}")
                )
                with results_lock:
                    checked.append(result.success)
            except RateLimited:
                with results_lock:
                    limited.append(True)

        with ThreadPoolExecutor(max_workers=10) as executor:
            for f in [executor.submit(guess, i) for i in range(30)]:
                f.result()

        assert checked == [False] * 4
        assert len(limited) == 26

        # The challenge itself is untouched and usable after the window.
        clock.advance(timedelta(seconds=300))
        assert limited_engine.get_challenge(OWNER, challenge.challenge_id).consumed_at is None

    def test_report_flood_is_rate_limited(self, limited_engine: TrustEngine) -> None:
        subject = limited_engine.register_subject(OWNER, registration_form())

        refused = 0
        for _ in range(10):
            try:
                limited_engine.report_proof(
                    "troll", subject.id, "missing", ReportType.OTHER, "this proof looks fake to me"
                )
            except RateLimited:
                refused += 1
            except ProofNotFound:
                pass

        assert refused == 7

    def test_limits_are_per_actor(self, limited_engine: TrustEngine) -> None:
        subject = limited_engine.register_subject(OWNER, registration_form())
        for _ in range(5):
            try:
                limited_engine.request_domain_challenge("attacker", subject.id)
            except RateLimited:
                pytest.fail("attacker limited before exhausting its own budget")
            except Unauthorized:
                pass

        # Owner still has a full budget.
        limited_engine.request_domain_challenge(OWNER, subject.id)


class TestTokenUnpredictability:
    def test_tokens_unique_and_long(self) -> None:
        tokens = {generate_token() for _ in range(1000)}

        assert len(tokens) == 1000
        assert all(re.fullmatch(r"ccr-[0-9a-f]{32}", t) for t in tokens)

    def test_sign_messages_differ_per_challenge(self, engine: TrustEngine) -> None:
        subject = engine.register_subject(OWNER, registration_form())

        messages = {
            engine.request_chain_challenge(
                OWNER, subject.id, Platform.ETHEREUM, ETH_ADDRESS, MethodKind.SIGN_MESSAGE
            ).method.message
            for _ in range(20)
        }

        assert len(messages) == 20

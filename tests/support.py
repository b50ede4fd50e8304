"""
Test doubles and builders shared across the unit, integration and
adversarial suites.
"""

import hashlib
import hmac
import secrets
import threading
from datetime import datetime, timedelta, timezone

from trust_engine.domain.exceptions import ExternalFetchTimeout
from trust_engine.domain.models import Platform
from trust_engine.domain.ports import FetchResponse
from trust_engine.domain.rate_limit import RateLimitPolicy

START = datetime(2026, 1, 5, 12, 0, tzinfo=timezone.utc)

ETH_ADDRESS = "0x" + "ab" * 20
OTHER_ETH_ADDRESS = "0x" + "cd" * 20

# Generous limits so functional tests never trip the rate limiter.
UNLIMITED = {
    "http": RateLimitPolicy(10_000, timedelta(seconds=60)),
    "verification": RateLimitPolicy(10_000, timedelta(seconds=300)),
    "report": RateLimitPolicy(10_000, timedelta(seconds=600)),
}


class FakeClock:
    """Clock whose time only moves when a test advances it."""

    def __init__(self, start: datetime = START) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, delta: timedelta) -> None:
        self.now += delta


class FakeFetcher:
    """ResourceFetcher returning scripted bodies; unknown URLs answer 404."""

    def __init__(self) -> None:
        self.pages: dict[str, FetchResponse] = {}
        self.timeouts: set[str] = set()
        self.requested: list[str] = []

    def serve(self, url: str, body: str, status_code: int = 200) -> None:
        self.pages[url] = FetchResponse(status_code=status_code, body=body)

    def remove(self, url: str) -> None:
        self.pages.pop(url, None)

    def fetch_resource(self, url: str) -> FetchResponse:
        self.requested.append(url)
        if url in self.timeouts:
            raise ExternalFetchTimeout("Timed out fetching from test host")
        return self.pages.get(url, FetchResponse(status_code=404, body="Not Found"))


def registration_form(name: str = "Acme Labs", **sections) -> dict:
    """Valid registration form; keyword arguments replace whole sections."""
    form = {
        "basic_info": {
            "name": name,
            "description": "Cross-chain infrastructure for everyone",
            "website": "https://acme.example.com",
            "team_size": 12,
        },
        "web3_identity": {
            "github_org": "acme-labs",
            "twitter_handle": "acmelabs",
            "domain": "acme.example.com",
        },
        "cross_chain_presence": {
            "ethereum_contracts": [ETH_ADDRESS],
        },
    }
    form.update(sections)
    return form


def dns_url(domain: str) -> str:
    return f"https://dns.google/resolve?name={domain}&type=TXT"


class InMemoryChainGateway:
    """
    ChainGateway double with process-local keys and state.

    Each registered address gets a random key and ``sign`` produces an
    HMAC-SHA256 that only that key reproduces, so a signature made for one
    address never verifies for another.
    """

    _CASE_INSENSITIVE = frozenset({Platform.ETHEREUM, Platform.POLYGON, Platform.SUI})

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._keys: dict[tuple[Platform, str], bytes] = {}
        self._state: dict[tuple[Platform, str, str], str] = {}

    def _normalize(self, chain: Platform, address: str) -> str:
        address = address.strip()
        return address.lower() if chain in self._CASE_INSENSITIVE else address

    def register_address(self, chain: Platform, address: str) -> None:
        with self._lock:
            self._keys.setdefault((chain, self._normalize(chain, address)), secrets.token_bytes(32))

    def sign(self, chain: Platform, address: str, message: str) -> str:
        with self._lock:
            key = self._keys[(chain, self._normalize(chain, address))]
        return "0x" + hmac.new(key, message.encode(), hashlib.sha256).hexdigest()

    def set_public_state(self, chain: Platform, address_or_contract: str, key: str, value: str) -> None:
        with self._lock:
            self._state[(chain, self._normalize(chain, address_or_contract), key)] = value

    def clear_public_state(self, chain: Platform, address_or_contract: str, key: str) -> None:
        with self._lock:
            self._state.pop((chain, self._normalize(chain, address_or_contract), key), None)

    def verify_signature(self, chain: Platform, address: str, message: str, signature: str) -> bool:
        with self._lock:
            key = self._keys.get((chain, self._normalize(chain, address)))
        if key is None:
            return False
        expected = "0x" + hmac.new(key, message.encode(), hashlib.sha256).hexdigest()
        return hmac.compare_digest(expected.encode(), signature.strip().lower().encode())

    def read_public_state(self, chain: Platform, address_or_contract: str, key: str) -> str | None:
        with self._lock:
            return self._state.get((chain, self._normalize(chain, address_or_contract), key))


def b58encode(data: bytes) -> str:
    """Base58 (Bitcoin alphabet), as Solana addresses and signatures are written."""
    alphabet = "123456789ABCDEFGHJKLMNPQRSTUVWXYZabcdefghijkmnopqrstuvwxyz"
    num = int.from_bytes(data, "big")
    encoded = ""
    while num > 0:
        num, remainder = divmod(num, 58)
        encoded = alphabet[remainder] + encoded
    leading = len(data) - len(data.lstrip(b"\x00"))
    return alphabet[0] * leading + encoded

"""
Chain gateway adapter - Implements ChainGateway protocol against real chains.

Signature checks per chain family:
- Ethereum / Polygon: EIP-191 ``personal_sign`` recovery with eth-account;
  needs no node.
- Solana: ed25519 over the UTF-8 message, key taken from the base58
  address.
- Sui: serialized ed25519 signature (flag || signature || public key)
  over the personal-message intent digest; the key must hash to the
  claimed address.
- TON: ed25519 over the UTF-8 message, key read from the wallet's
  ``get_public_key`` get-method through a toncenter-compatible API.

Public state (contract getters, transactions) is read from EVM nodes
through web3 JSON-RPC. Bitcoin and ICP have no signature or state support
here; their checks fail rather than pass.

Transport failures raise ExternalFetchError so checks report them as
transient; a missing getter or transaction is a plain ``None``.
"""

import base64
import binascii
import hashlib
import logging
import re
from collections.abc import Mapping

import httpx
from eth_account import Account
from eth_account.messages import encode_defunct
from nacl.exceptions import BadSignatureError
from nacl.signing import VerifyKey
from web3 import Web3
from web3.exceptions import BadFunctionCallOutput, ContractLogicError, TransactionNotFound, Web3Exception

from trust_engine.domain.exceptions import ExternalFetchError, ExternalFetchTimeout
from trust_engine.domain.models import Platform

logger = logging.getLogger(__name__)

EVM_CHAINS = frozenset({Platform.ETHEREUM, Platform.POLYGON})

BASE58_ALPHABET = "123456789ABCDEFGHJKLMNPQRSTUVWXYZabcdefghijkmnopqrstuvwxyz"

SUI_ED25519_FLAG = 0x00
# Intent scope PersonalMessage, version 0, app id Sui
SUI_PERSONAL_MESSAGE_INTENT = bytes([3, 0, 0])

_TX_HASH = re.compile(r"^0x[0-9a-fA-F]{64}$")
_HEX = re.compile(r"^(?:0x)?[0-9a-fA-F]+$")
_BASE58 = re.compile(f"^[{BASE58_ALPHABET}]+$")


def b58decode(value: str) -> bytes:
    """Decode a base58 (Bitcoin alphabet) string."""
    num = 0
    for char in value:
        num = num * 58 + BASE58_ALPHABET.index(char)
    body = num.to_bytes((num.bit_length() + 7) // 8, "big") if num else b""
    leading = len(value) - len(value.lstrip(BASE58_ALPHABET[0]))
    return b"\x00" * leading + body


def decode_signature(signature: str) -> bytes | None:
    """Decode a hex, base58 or base64 signature; None when it is none of them."""
    text = signature.strip()
    if _HEX.match(text) and len(text.removeprefix("0x")) % 2 == 0:
        return bytes.fromhex(text.removeprefix("0x"))
    if _BASE58.match(text):
        return b58decode(text)
    try:
        return base64.b64decode(text, validate=True)
    except binascii.Error:
        return None


def _ed25519_valid(public_key: bytes, message: bytes, signature: bytes) -> bool:
    try:
        VerifyKey(public_key).verify(message, signature)
    except (BadSignatureError, ValueError):
        return False
    return True


def sui_address(public_key: bytes) -> str:
    """Sui address of an ed25519 public key."""
    return "0x" + hashlib.blake2b(bytes([SUI_ED25519_FLAG]) + public_key, digest_size=32).hexdigest()


def sui_personal_message_digest(message: bytes) -> bytes:
    """Digest a Sui wallet signs for ``signPersonalMessage``."""
    length = len(message)
    uleb = bytearray()
    while True:
        byte = length & 0x7F
        length >>= 7
        if length:
            uleb.append(byte | 0x80)
        else:
            uleb.append(byte)
            break
    return hashlib.blake2b(SUI_PERSONAL_MESSAGE_INTENT + bytes(uleb) + message, digest_size=32).digest()


def _getter_abi(name: str, output_type: str) -> list[dict]:
    return [
        {
            "inputs": [],
            "name": name,
            "outputs": [{"internalType": output_type, "name": "", "type": output_type}],
            "stateMutability": "view",
            "type": "function",
        }
    ]


class RpcChainGateway:
    """
    Implements ChainGateway protocol with web3 for EVM chains, PyNaCl for
    ed25519 chains and httpx for TON wallet keys.

    Uses structural subtyping - no explicit inheritance from Protocol.
    """

    def __init__(
        self,
        evm_clients: Mapping[Platform, Web3] | None = None,
        ton_client: httpx.Client | None = None,
    ) -> None:
        self._evm = dict(evm_clients or {})
        self._ton = ton_client

    @classmethod
    def from_endpoints(
        cls,
        ethereum_rpc_url: str | None = None,
        polygon_rpc_url: str | None = None,
        ton_api_url: str | None = None,
        timeout: float = 10.0,
    ) -> "RpcChainGateway":
        """Build clients for the configured endpoints; unset endpoints stay unsupported."""
        evm_clients = {
            chain: Web3(Web3.HTTPProvider(url, request_kwargs={"timeout": timeout}))
            for chain, url in ((Platform.ETHEREUM, ethereum_rpc_url), (Platform.POLYGON, polygon_rpc_url))
            if url
        }
        ton_client = httpx.Client(base_url=ton_api_url, timeout=timeout) if ton_api_url else None
        return cls(evm_clients, ton_client)

    def verify_signature(self, chain: Platform, address: str, message: str, signature: str) -> bool:
        if chain in EVM_CHAINS:
            return self._verify_evm(address, message, signature)
        raw = decode_signature(signature)
        if raw is None:
            return False
        if chain is Platform.SOLANA:
            return _ed25519_valid(b58decode(address), message.encode(), raw)
        if chain is Platform.SUI:
            return self._verify_sui(address, message, raw)
        if chain is Platform.TON:
            public_key = self._ton_public_key(address)
            return public_key is not None and _ed25519_valid(public_key, message.encode(), raw)
        logger.warning("Signature verification is not supported: chain=%s", chain.value)
        return False

    def read_public_state(self, chain: Platform, address_or_contract: str, key: str) -> str | None:
        if chain not in EVM_CHAINS:
            logger.warning("Public state reads are not supported: chain=%s", chain.value)
            return None
        w3 = self._evm.get(chain)
        if w3 is None:
            raise ExternalFetchError(f"No RPC endpoint configured for {chain.value}")
        try:
            if _TX_HASH.match(address_or_contract):
                return self._read_transaction(w3, address_or_contract, key)
            return self._call_getter(w3, address_or_contract, key)
        except (ContractLogicError, BadFunctionCallOutput, TransactionNotFound):
            return None
        except (Web3Exception, OSError) as exc:
            logger.warning("Chain read failed: chain=%s error=%s", chain.value, exc.__class__.__name__)
            raise ExternalFetchError(f"Could not read {chain.value} state") from exc

    def close(self) -> None:
        if self._ton is not None:
            self._ton.close()

    def _verify_evm(self, address: str, message: str, signature: str) -> bool:
        try:
            signer = Account.recover_message(encode_defunct(text=message), signature=signature.strip())
        except Exception:  # eth-keys raises its own BadSignature outside ValueError
            logger.debug("Unrecoverable EVM signature for address=%s", address)
            return False
        return signer.lower() == address.lower()

    def _verify_sui(self, address: str, message: str, serialized: bytes) -> bool:
        if len(serialized) != 97 or serialized[0] != SUI_ED25519_FLAG:
            return False
        signature, public_key = serialized[1:65], serialized[65:]
        if sui_address(public_key) != address.lower():
            return False
        return _ed25519_valid(public_key, sui_personal_message_digest(message.encode()), signature)

    def _ton_public_key(self, address: str) -> bytes | None:
        if self._ton is None:
            raise ExternalFetchError("No TON API endpoint configured")
        try:
            response = self._ton.post(
                "/runGetMethod", json={"address": address, "method": "get_public_key", "stack": []}
            )
        except httpx.TimeoutException as exc:
            logger.warning("TON key lookup timed out")
            raise ExternalFetchTimeout("Timed out reading the TON wallet key") from exc
        except httpx.HTTPError as exc:
            logger.warning("TON key lookup failed: error=%s", exc.__class__.__name__)
            raise ExternalFetchError("Could not read the TON wallet key") from exc

        if response.status_code == 429 or response.status_code >= 500:
            logger.warning("TON key lookup failed: status=%d", response.status_code)
            raise ExternalFetchError(f"TON API returned HTTP {response.status_code}")
        try:
            payload = response.json()
        except ValueError:
            return None
        result = payload.get("result") or {}
        stack = result.get("stack") or []
        if not payload.get("ok") or result.get("exit_code") != 0 or not stack:
            return None
        return int(stack[0][1], 16).to_bytes(32, "big")

    def _call_getter(self, w3: Web3, contract_address: str, key: str) -> str:
        output_type = "address" if key == "deployer" else "string"
        contract = w3.eth.contract(
            address=Web3.to_checksum_address(contract_address), abi=_getter_abi(key, output_type)
        )
        return str(getattr(contract.functions, key)().call())

    def _read_transaction(self, w3: Web3, tx_hash: str, key: str) -> str | None:
        tx = w3.eth.get_transaction(tx_hash)
        value = tx.get(key)
        if value is None:
            return None
        return value if isinstance(value, str) else Web3.to_hex(value)

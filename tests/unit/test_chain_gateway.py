"""
Unit tests for RpcChainGateway.

Signatures are produced with real keys (eth-account, PyNaCl); node and
TON API access goes through a mocked Web3 and an httpx MockTransport.
"""

import base64
from unittest.mock import MagicMock

import httpx
import pytest
from eth_account import Account
from eth_account.messages import encode_defunct
from nacl.signing import SigningKey
from web3 import Web3
from web3.exceptions import ContractLogicError

from tests.support import ETH_ADDRESS, OTHER_ETH_ADDRESS, b58encode
from trust_engine.adapters.chain.rpc import (
    RpcChainGateway,
    b58decode,
    sui_address,
    sui_personal_message_digest,
)
from trust_engine.domain.exceptions import ExternalFetchError
from trust_engine.domain.models import Platform

MESSAGE = "Verify ownership for org-1:0123456789abcdef"
TON_ADDRESS = "EQ" + "A" * 46


def ton_client(handler) -> httpx.Client:
    return httpx.Client(transport=httpx.MockTransport(handler), base_url="https://ton.test/api/v2")


class TestStructure:
    def test_no_explicit_inheritance(self) -> None:
        """Gateway uses structural subtyping, not inheritance."""
        assert RpcChainGateway.__bases__ == (object,)

    def test_base58_decode_keeps_leading_zeros(self) -> None:
        data = b"\x00\x00" + bytes(range(1, 31))
        assert b58decode(b58encode(data)) == data


class TestEvmSignatures:
    def test_personal_sign_from_claimed_address(self) -> None:
        account = Account.create()
        signed = Account.sign_message(encode_defunct(text=MESSAGE), private_key=account.key)
        signature = Web3.to_hex(signed.signature)

        gateway = RpcChainGateway()

        assert gateway.verify_signature(Platform.ETHEREUM, account.address, MESSAGE, signature)
        assert gateway.verify_signature(Platform.POLYGON, account.address.lower(), MESSAGE, signature)

    def test_signature_from_other_account(self) -> None:
        account = Account.create()
        signed = Account.sign_message(encode_defunct(text=MESSAGE), private_key=account.key)

        gateway = RpcChainGateway()

        assert not gateway.verify_signature(
            Platform.ETHEREUM, OTHER_ETH_ADDRESS, MESSAGE, Web3.to_hex(signed.signature)
        )
        assert not gateway.verify_signature(
            Platform.ETHEREUM, account.address, MESSAGE + "!", Web3.to_hex(signed.signature)
        )

    def test_malformed_signature_is_a_mismatch(self) -> None:
        assert not RpcChainGateway().verify_signature(Platform.ETHEREUM, ETH_ADDRESS, MESSAGE, "0xdead")


class TestEd25519Signatures:
    def test_solana(self) -> None:
        key = SigningKey.generate()
        address = b58encode(bytes(key.verify_key))
        signature = b58encode(key.sign(MESSAGE.encode()).signature)

        gateway = RpcChainGateway()

        assert gateway.verify_signature(Platform.SOLANA, address, MESSAGE, signature)
        assert not gateway.verify_signature(Platform.SOLANA, address, "another message", signature)

    def test_solana_other_key(self) -> None:
        key = SigningKey.generate()
        other = b58encode(bytes(SigningKey.generate().verify_key))
        signature = b58encode(key.sign(MESSAGE.encode()).signature)

        assert not RpcChainGateway().verify_signature(Platform.SOLANA, other, MESSAGE, signature)

    def test_sui_serialized_signature(self) -> None:
        key = SigningKey.generate()
        public_key = bytes(key.verify_key)
        raw = key.sign(sui_personal_message_digest(MESSAGE.encode())).signature
        serialized = base64.b64encode(b"\x00" + raw + public_key).decode()

        gateway = RpcChainGateway()

        assert gateway.verify_signature(Platform.SUI, sui_address(public_key), MESSAGE, serialized)
        assert not gateway.verify_signature(Platform.SUI, "0x" + "ab" * 32, MESSAGE, serialized)

    def test_ton_key_read_from_wallet(self) -> None:
        key = SigningKey.generate()
        public_key = int.from_bytes(bytes(key.verify_key), "big")
        seen: list[dict] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append({"path": request.url.path, "body": request.content})
            return httpx.Response(
                200, json={"ok": True, "result": {"exit_code": 0, "stack": [["num", hex(public_key)]]}}
            )

        gateway = RpcChainGateway(ton_client=ton_client(handler))
        signature = key.sign(MESSAGE.encode()).signature.hex()

        assert gateway.verify_signature(Platform.TON, TON_ADDRESS, MESSAGE, signature)
        assert seen[0]["path"] == "/api/v2/runGetMethod"
        assert b"get_public_key" in seen[0]["body"]

    def test_ton_wallet_without_key(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"ok": True, "result": {"exit_code": -13, "stack": []}})

        gateway = RpcChainGateway(ton_client=ton_client(handler))

        assert not gateway.verify_signature(Platform.TON, TON_ADDRESS, MESSAGE, "ab" * 64)

    def test_ton_api_outage_is_a_fetch_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(503, text="unavailable")

        gateway = RpcChainGateway(ton_client=ton_client(handler))

        with pytest.raises(ExternalFetchError):
            gateway.verify_signature(Platform.TON, TON_ADDRESS, MESSAGE, "ab" * 64)

    def test_unsupported_chain_never_verifies(self) -> None:
        assert not RpcChainGateway().verify_signature(
            Platform.BITCOIN, "1BoatSLRHtKNngkdXEeobR76b53LETtpyT", MESSAGE, "ab" * 64
        )


class TestEvmState:
    @pytest.fixture
    def w3(self) -> MagicMock:
        return MagicMock()

    @pytest.fixture
    def gateway(self, w3: MagicMock) -> RpcChainGateway:
        return RpcChainGateway(evm_clients={Platform.ETHEREUM: w3})

    def test_contract_getter(self, gateway: RpcChainGateway, w3: MagicMock) -> None:
        w3.eth.contract.return_value.functions.verificationCode.return_value.call.return_value = "ccr-abc"

        assert gateway.read_public_state(Platform.ETHEREUM, ETH_ADDRESS, "verificationCode") == "ccr-abc"
        assert w3.eth.contract.call_args.kwargs["address"] == Web3.to_checksum_address(ETH_ADDRESS)

    def test_missing_getter_reads_as_none(self, gateway: RpcChainGateway, w3: MagicMock) -> None:
        getter = w3.eth.contract.return_value.functions.registryVerification.return_value
        getter.call.side_effect = ContractLogicError("execution reverted")

        assert gateway.read_public_state(Platform.ETHEREUM, ETH_ADDRESS, "registryVerification") is None

    def test_transaction_fields(self, gateway: RpcChainGateway, w3: MagicMock) -> None:
        tx_hash = "0x" + "12" * 32
        w3.eth.get_transaction.return_value = {"from": ETH_ADDRESS, "input": bytes.fromhex("0abc")}

        assert gateway.read_public_state(Platform.ETHEREUM, tx_hash, "input") == "0x0abc"
        assert gateway.read_public_state(Platform.ETHEREUM, tx_hash, "from") == ETH_ADDRESS
        w3.eth.get_transaction.assert_called_with(tx_hash)

    def test_node_unreachable_is_a_fetch_error(self, gateway: RpcChainGateway, w3: MagicMock) -> None:
        w3.eth.get_transaction.side_effect = ConnectionError("connection refused")

        with pytest.raises(ExternalFetchError):
            gateway.read_public_state(Platform.ETHEREUM, "0x" + "12" * 32, "input")

    def test_unconfigured_chain_is_a_fetch_error(self, gateway: RpcChainGateway) -> None:
        with pytest.raises(ExternalFetchError):
            gateway.read_public_state(Platform.POLYGON, ETH_ADDRESS, "verificationCode")

    def test_non_evm_state_is_unsupported(self, gateway: RpcChainGateway) -> None:
        assert gateway.read_public_state(Platform.SOLANA, "So11111111111111111111111111111111111111112", "x") is None

"""
Shared fixtures.

All tests use fakes and mocks - no network, no real transactions.
"""

import asyncio
import base64
from types import SimpleNamespace
from typing import Any, Dict, List
from unittest.mock import AsyncMock, MagicMock

import pytest
from solders.hash import Hash
from solders.keypair import Keypair
from solders.message import MessageV0
from solders.transaction import VersionedTransaction

from solana_swap_gateway.jupiter_async import SOL_MINT, USDC_MINT, Quote, SwapTransaction
from solana_swap_gateway.rpc_gateway import Endpoint, RPCGateway


WALLET = "9WzDXwBbmkg8ZTbNMqUxvQRAyrZzDsGYdLVL9zYtAWWM"


class FakeRPCClient:
    """
    Stand-in for solana.rpc.async_api.AsyncClient.

    responses maps a method name to what the call produces: an exception
    instance is raised, an async callable is awaited, anything else is
    returned. "*" applies to every method without its own entry.
    """

    def __init__(self, name: str, responses: Dict[str, Any] = None):
        self.name = name
        self.responses = dict(responses or {})
        self.calls: List[str] = []
        self.closed = False

    async def _respond(self, method: str) -> Any:
        self.calls.append(method)
        outcome = self.responses.get(method, self.responses.get("*"))
        if isinstance(outcome, BaseException):
            raise outcome
        if callable(outcome):
            return await outcome()
        return outcome

    async def get_slot(self):
        return await self._respond("get_slot")

    async def get_account_info(self, pubkey):
        return await self._respond("get_account_info")

    async def get_token_accounts_by_owner_json_parsed(self, owner, opts):
        return await self._respond("get_token_accounts_by_owner_json_parsed")

    async def get_token_supply(self, mint):
        return await self._respond("get_token_supply")

    async def send_raw_transaction(self, raw, opts=None):
        return await self._respond("send_raw_transaction")

    async def get_signature_statuses(self, signatures):
        return await self._respond("get_signature_statuses")

    async def close(self):
        self.closed = True


def ok(value: Any) -> SimpleNamespace:
    return SimpleNamespace(value=value)


async def hang():
    await asyncio.sleep(3600)


@pytest.fixture
def endpoints():
    return [
        Endpoint(url="https://primary.rpc.test", name="Primary"),
        Endpoint(url="https://secondary.rpc.test", name="Secondary"),
        Endpoint(url="https://tertiary.rpc.test", name="Tertiary"),
    ]


@pytest.fixture
def fake_clients(endpoints):
    return {e.name: FakeRPCClient(e.name) for e in endpoints}


@pytest.fixture
def gateway(endpoints, fake_clients):
    return RPCGateway(
        endpoints=endpoints,
        attempt_timeout=0.2,
        client_factory=lambda endpoint: fake_clients[endpoint.name],
    )


@pytest.fixture
def quote_payload():
    """Aggregator quote for 1 SOL -> USDC over two hops."""
    return {
        "inputMint": SOL_MINT,
        "outputMint": USDC_MINT,
        "inAmount": "1000000000",
        "outAmount": "150000000",
        "otherAmountThreshold": "149250000",
        "swapMode": "ExactIn",
        "slippageBps": 50,
        "priceImpactPct": "0.12",
        "routePlan": [
            {
                "swapInfo": {
                    "ammKey": "amm1",
                    "label": "Raydium",
                    "inputMint": SOL_MINT,
                    "outputMint": "mSoLzYCxHdYgdzU16g5QSh3i5K3z3KZK7ytfqcJm7So",
                    "inAmount": "1000000000",
                    "outAmount": "900000000",
                    "feeAmount": "2500",
                    "feeMint": SOL_MINT,
                },
                "percent": 100,
            },
            {
                "swapInfo": {
                    "ammKey": "amm2",
                    "label": "Orca",
                    "inputMint": "mSoLzYCxHdYgdzU16g5QSh3i5K3z3KZK7ytfqcJm7So",
                    "outputMint": USDC_MINT,
                    "inAmount": "900000000",
                    "outAmount": "150000000",
                    "feeAmount": "3000",
                    "feeMint": USDC_MINT,
                },
                "percent": 100,
            },
        ],
        "contextSlot": 250000000,
        "timeTaken": 0.04,
    }


@pytest.fixture
def quote(quote_payload):
    return Quote.from_dict(quote_payload)


@pytest.fixture
def keypair():
    return Keypair()


@pytest.fixture
def unsigned_tx_b64(keypair):
    """A real serialized v0 transaction, as the aggregator would return it."""
    message = MessageV0.try_compile(keypair.pubkey(), [], [], Hash.default())
    tx = VersionedTransaction(message, [keypair])
    return base64.b64encode(bytes(tx)).decode()


@pytest.fixture
def mock_jupiter(unsigned_tx_b64):
    jupiter = MagicMock()
    jupiter.build_swap_transaction = AsyncMock(
        return_value=SwapTransaction(swap_transaction=unsigned_tx_b64)
    )
    jupiter.fetch_quote = AsyncMock()
    return jupiter


@pytest.fixture
def mock_gateway():
    gateway = MagicMock()
    gateway.send_raw_transaction = AsyncMock(return_value="sig123")
    gateway.get_signature_status = AsyncMock(
        return_value=SimpleNamespace(err=None, confirmation_status="confirmed")
    )
    return gateway


@pytest.fixture
def sign_ok(keypair):
    """Wallet callback that re-signs the transaction with the test keypair."""
    def sign(tx):
        return VersionedTransaction(tx.message, [keypair])
    return sign

"""
Tests for client.py - facade wiring.
"""

import asyncio

import pytest

from conftest import WALLET, FakeRPCClient, hang, ok
from solana_swap_gateway.client import SolanaSwapClient
from solana_swap_gateway.config import Settings, SolanaRPCSettings
from solana_swap_gateway.exceptions import GatewayClosed
from solana_swap_gateway.swap_executor import SwapStatus


@pytest.fixture
def settings():
    return Settings(solana=SolanaRPCSettings(rpc_endpoints="A=https://a.test,B=https://b.test"))


@pytest.mark.asyncio
async def test_reads_go_through_failover(settings):
    clients = {
        "A": FakeRPCClient("A", {"get_slot": ConnectionError("down")}),
        "B": FakeRPCClient("B", {"get_slot": ok(321)}),
    }

    async with SolanaSwapClient(settings, rpc_client_factory=lambda e: clients[e.name]) as client:
        assert await client.get_current_slot() == 321
        assert client.current_endpoint.name == "B"
        metrics = client.get_metrics()

    assert metrics["rpc"]["failover_count"] == 1
    assert clients["B"].closed


def test_components_share_settings(settings):
    client = SolanaSwapClient(settings)
    assert client.orchestrator.gateway is client.gateway
    assert client.orchestrator.jupiter is client.jupiter
    assert client.quotes.jupiter is client.jupiter
    assert client.orchestrator.max_poll_attempts == settings.confirmation.max_attempts


@pytest.mark.asyncio
async def test_close_stops_confirmations_and_gateway(settings, mock_jupiter, quote, sign_ok):
    signature = "1" * 64
    clients = {
        "A": FakeRPCClient("A", {"send_raw_transaction": ok(signature), "get_signature_statuses": hang}),
        "B": FakeRPCClient("B", {}),
    }
    client = SolanaSwapClient(settings, rpc_client_factory=lambda e: clients[e.name])
    client.orchestrator.jupiter = mock_jupiter

    result = await client.execute_swap(quote, WALLET, sign_ok)
    await asyncio.sleep(0.02)
    await client.close()

    assert result.status == SwapStatus.FAILED
    assert client.orchestrator.pending_confirmations == 0
    assert client.get_metrics()["swaps"]["swaps_failed"] == 1
    assert client.gateway.closed
    assert clients["A"].closed

    with pytest.raises(GatewayClosed):
        await client.get_current_slot()
    assert clients["B"].calls == []

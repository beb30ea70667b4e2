"""
Tests for rpc_gateway.py - endpoint pool and failover sweep.
"""

import asyncio
from types import SimpleNamespace

import pytest

from conftest import WALLET, FakeRPCClient, hang, ok
from solana_swap_gateway.config import SolanaRPCSettings
from solana_swap_gateway.exceptions import (
    AllEndpointsFailed,
    ConfigurationError,
    GatewayClosed,
    InvalidAddressError,
    ValidationError,
)
from solana_swap_gateway.rpc_gateway import (
    DEFAULT_ENDPOINTS,
    Endpoint,
    EndpointPool,
    RPCGateway,
)


# ==============================================================================
# Endpoint Pool
# ==============================================================================

class TestEndpointPool:

    def test_starts_at_primary(self, endpoints):
        pool = EndpointPool(endpoints)
        assert pool.current_index == 0
        assert pool.current.name == "Primary"

    def test_empty_pool_rejected(self):
        with pytest.raises(ConfigurationError):
            EndpointPool([])

    def test_sweep_order_wraps_from_current(self, endpoints):
        pool = EndpointPool(endpoints)
        pool.mark_success(2)
        assert pool.sweep_order() == [2, 0, 1]

    def test_mark_success_reports_change(self, endpoints):
        pool = EndpointPool(endpoints)
        assert pool.mark_success(0) is False
        assert pool.mark_success(1) is True
        assert pool.current.name == "Secondary"

    def test_reset_to_primary(self, endpoints):
        pool = EndpointPool(endpoints)
        pool.mark_success(1)
        assert pool.reset_to_primary() is True
        assert pool.current_index == 0
        assert pool.reset_to_primary() is False

    def test_default_endpoints_order(self):
        assert [e.name for e in DEFAULT_ENDPOINTS] == ["Mainnet Beta", "Project Serum", "Ankr"]
        assert DEFAULT_ENDPOINTS[0].url == "https://api.mainnet-beta.solana.com"


# ==============================================================================
# Failover
# ==============================================================================

class TestFailover:

    @pytest.mark.asyncio
    async def test_primary_success_stays_on_primary(self, gateway, fake_clients):
        fake_clients["Primary"].responses["get_slot"] = ok(12345)

        assert await gateway.get_current_slot() == 12345
        assert gateway.current_endpoint.name == "Primary"
        assert fake_clients["Secondary"].calls == []
        assert gateway.failover_count == 0

    @pytest.mark.asyncio
    async def test_fails_over_to_next_and_sticks(self, gateway, fake_clients):
        fake_clients["Primary"].responses["get_slot"] = ConnectionError("connection refused")
        fake_clients["Secondary"].responses["get_slot"] = ok(777)

        assert await gateway.get_current_slot() == 777
        assert gateway.current_endpoint.name == "Secondary"
        assert gateway.failover_count == 1

        # Next call starts at the sticky endpoint; primary is not retried
        assert await gateway.get_current_slot() == 777
        assert fake_clients["Primary"].calls == ["get_slot"]
        assert fake_clients["Secondary"].calls == ["get_slot", "get_slot"]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("failing", [0, 1, 2])
    async def test_first_k_fail_then_sticks_to_next(self, gateway, fake_clients, failing):
        names = ["Primary", "Secondary", "Tertiary"]
        for name in names[:failing]:
            fake_clients[name].responses["get_slot"] = ConnectionError(f"{name} down")
        fake_clients[names[failing]].responses["get_slot"] = ok(999)

        assert await gateway.get_current_slot() == 999
        assert gateway.current_endpoint.name == names[failing]

        assert await gateway.get_current_slot() == 999
        for name in names[:failing]:
            assert fake_clients[name].calls == ["get_slot"]
        assert fake_clients[names[failing]].calls == ["get_slot", "get_slot"]
        for name in names[failing + 1:]:
            assert fake_clients[name].calls == []
        assert gateway.failover_count == (1 if failing else 0)

    @pytest.mark.asyncio
    async def test_concurrent_calls_sweep_independently(self, gateway, fake_clients):
        async def slow_slot():
            await asyncio.sleep(0.1)
            return ok(5)

        async def failing_account():
            await asyncio.sleep(0.05)
            raise ConnectionError("reset")

        fake_clients["Primary"].responses["get_slot"] = slow_slot
        fake_clients["Primary"].responses["get_account_info"] = failing_account
        fake_clients["Secondary"].responses["get_account_info"] = ok("account")

        slot, account = await asyncio.gather(
            gateway.get_current_slot(),
            gateway.get_account_info(WALLET),
        )

        assert slot == 5
        assert account == "account"
        # The slot call stayed on its own snapshot while the other call failed over
        assert sorted(fake_clients["Primary"].calls) == ["get_account_info", "get_slot"]
        assert fake_clients["Secondary"].calls == ["get_account_info"]
        assert fake_clients["Tertiary"].calls == []
        assert gateway.current_endpoint.name == "Primary"

    @pytest.mark.asyncio
    async def test_total_outage_raises_and_resets(self, gateway, fake_clients):
        for client in fake_clients.values():
            client.responses["get_slot"] = ConnectionError("down")

        with pytest.raises(AllEndpointsFailed) as exc_info:
            await gateway.get_current_slot()

        err = exc_info.value
        assert err.operation == "get_slot"
        assert len(err.failures) == 3
        assert err.endpoints_tried == ["Primary", "Secondary", "Tertiary"]
        assert gateway.current_endpoint.name == "Primary"
        for client in fake_clients.values():
            assert client.calls == ["get_slot"]

    @pytest.mark.asyncio
    async def test_total_outage_from_secondary_resets_to_primary(self, gateway, fake_clients):
        fake_clients["Primary"].responses["get_slot"] = ConnectionError("down")
        fake_clients["Secondary"].responses["get_slot"] = ok(1)
        await gateway.get_current_slot()
        assert gateway.current_endpoint.name == "Secondary"

        fake_clients["Secondary"].responses["get_slot"] = ConnectionError("down")
        fake_clients["Tertiary"].responses["get_slot"] = ConnectionError("down")

        with pytest.raises(AllEndpointsFailed) as exc_info:
            await gateway.get_current_slot()

        assert exc_info.value.endpoints_tried == ["Secondary", "Tertiary", "Primary"]
        assert gateway.current_endpoint.name == "Primary"

    @pytest.mark.asyncio
    async def test_hanging_endpoint_times_out(self, gateway, fake_clients):
        fake_clients["Primary"].responses["get_slot"] = hang
        fake_clients["Secondary"].responses["get_slot"] = ok(42)

        assert await asyncio.wait_for(gateway.get_current_slot(), timeout=5) == 42
        assert gateway.current_endpoint.name == "Secondary"

    @pytest.mark.asyncio
    async def test_malformed_response_fails_over(self, gateway, fake_clients):
        fake_clients["Primary"].responses["get_slot"] = {"unexpected": True}
        fake_clients["Secondary"].responses["get_slot"] = ok(9)

        assert await gateway.get_current_slot() == 9
        assert gateway.current_endpoint.name == "Secondary"

    @pytest.mark.asyncio
    async def test_single_endpoint_pool(self):
        client = FakeRPCClient("Only", {"get_slot": ConnectionError("down")})
        gateway = RPCGateway(
            endpoints=[Endpoint(url="https://only.rpc.test", name="Only")],
            client_factory=lambda endpoint: client,
        )

        with pytest.raises(AllEndpointsFailed) as exc_info:
            await gateway.get_current_slot()
        assert len(exc_info.value.failures) == 1


# ==============================================================================
# Operations
# ==============================================================================

class TestOperations:

    @pytest.mark.asyncio
    async def test_get_account_info_missing_account_is_none(self, gateway, fake_clients):
        fake_clients["Primary"].responses["get_account_info"] = ok(None)
        assert await gateway.get_account_info(WALLET) is None

    @pytest.mark.asyncio
    async def test_invalid_address_makes_no_rpc_call(self, gateway, fake_clients):
        with pytest.raises(InvalidAddressError):
            await gateway.get_account_info("not-an-address")
        assert all(client.calls == [] for client in fake_clients.values())

    @pytest.mark.asyncio
    async def test_get_token_accounts_by_owner(self, gateway, fake_clients):
        accounts = [SimpleNamespace(pubkey="a"), SimpleNamespace(pubkey="b")]
        fake_clients["Primary"].responses["get_token_accounts_by_owner_json_parsed"] = ok(accounts)

        assert await gateway.get_token_accounts_by_owner(WALLET) == accounts

    @pytest.mark.asyncio
    async def test_get_token_supply(self, gateway, fake_clients):
        supply = SimpleNamespace(amount="1000", decimals=6)
        fake_clients["Primary"].responses["get_token_supply"] = ok(supply)

        assert await gateway.get_token_supply(WALLET) is supply

    @pytest.mark.asyncio
    async def test_send_raw_transaction_returns_signature(self, gateway, fake_clients):
        fake_clients["Primary"].responses["send_raw_transaction"] = ConnectionError("down")
        fake_clients["Secondary"].responses["send_raw_transaction"] = ok("5sigAbc")

        assert await gateway.send_raw_transaction(b"\x01\x02") == "5sigAbc"

    @pytest.mark.asyncio
    async def test_get_signature_status_unknown_is_none(self, gateway, fake_clients):
        fake_clients["Primary"].responses["get_signature_statuses"] = ok([None])
        signature = "1" * 64

        assert await gateway.get_signature_status(signature) is None

    @pytest.mark.asyncio
    async def test_get_signature_status_rejects_garbage(self, gateway):
        with pytest.raises(ValidationError):
            await gateway.get_signature_status("sig123")

    @pytest.mark.asyncio
    async def test_close_closes_created_clients(self, gateway, fake_clients):
        fake_clients["Primary"].responses["get_slot"] = ok(1)
        await gateway.get_current_slot()
        await gateway.close()

        assert fake_clients["Primary"].closed is True
        assert fake_clients["Secondary"].closed is False

    @pytest.mark.asyncio
    async def test_closed_gateway_creates_no_new_clients(self, endpoints):
        created = []

        def factory(endpoint):
            client = FakeRPCClient(endpoint.name, {"get_slot": ok(1)})
            created.append(client)
            return client

        gateway = RPCGateway(endpoints=endpoints, client_factory=factory)
        await gateway.get_current_slot()
        await gateway.close()

        with pytest.raises(GatewayClosed):
            await gateway.get_current_slot()

        assert gateway.closed
        assert len(created) == 1
        assert all(client.closed for client in created)

    @pytest.mark.asyncio
    async def test_close_during_sweep_stops_failover(self, gateway, fake_clients):
        async def close_then_fail():
            await gateway.close()
            raise ConnectionError("down")

        fake_clients["Primary"].responses["get_slot"] = close_then_fail
        fake_clients["Secondary"].responses["get_slot"] = ok(2)

        with pytest.raises(GatewayClosed):
            await gateway.get_current_slot()
        assert fake_clients["Secondary"].calls == []


class TestFromSettings:

    def test_builds_endpoints_from_env_string(self):
        settings = SolanaRPCSettings(
            rpc_endpoints="Helius=https://helius.test,https://fallback.test",
            attempt_timeout=3.0,
        )
        gateway = RPCGateway.from_settings(settings)

        assert [e.name for e in gateway.endpoints] == ["Helius", "RPC 2"]
        assert gateway.attempt_timeout == 3.0

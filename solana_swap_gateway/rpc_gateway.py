"""
Resilient RPC Gateway

Chain reads and writes executed against an ordered pool of interchangeable
RPC endpoints:
- Linear failover sweep, each endpoint tried at most once per call
- Sticky current endpoint after a success
- Reset to the primary endpoint after a total outage
- Bounded per-attempt timeout
"""

import asyncio
import logging
import threading
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, TypeVar

from solana.rpc.async_api import AsyncClient
from solana.rpc.commitment import Commitment, Confirmed
from solana.rpc.types import TokenAccountOpts, TxOpts
from solders.pubkey import Pubkey
from solders.signature import Signature

from .config import DEFAULT_RPC_ENDPOINTS, SolanaRPCSettings
from .exceptions import (
    AllEndpointsFailed,
    ConfigurationError,
    EndpointFailure,
    GatewayClosed,
    ValidationError,
    wrap_exception,
)
from .validators import to_pubkey

logger = logging.getLogger(__name__)

T = TypeVar("T")

TOKEN_PROGRAM_ID = Pubkey.from_string("TokenkegQfeZyiNwAJbNbGKPFXCWuBvf9Ss623VQ5DA")


# =============================================================================
# Endpoint Pool
# =============================================================================

@dataclass(frozen=True)
class Endpoint:
    """One named URL for reaching the chain RPC service."""
    url: str
    name: str


DEFAULT_ENDPOINTS: List[Endpoint] = [
    Endpoint(url=url, name=name) for name, url in DEFAULT_RPC_ENDPOINTS
]


class EndpointPool:
    """
    Ordered endpoints plus the index of the current one.

    The index is the only mutable state. It is read once per call as a
    snapshot and written only through mark_success / reset_to_primary,
    both under the lock.
    """

    def __init__(self, endpoints: Sequence[Endpoint]):
        if not endpoints:
            raise ConfigurationError("Endpoint pool requires at least one endpoint")
        self._endpoints = tuple(endpoints)
        self._current_index = 0
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._endpoints)

    def __getitem__(self, index: int) -> Endpoint:
        return self._endpoints[index]

    @property
    def endpoints(self) -> List[Endpoint]:
        return list(self._endpoints)

    @property
    def current_index(self) -> int:
        with self._lock:
            return self._current_index

    @property
    def current(self) -> Endpoint:
        return self._endpoints[self.current_index]

    def sweep_order(self) -> List[int]:
        """Indices to try for one call, starting at the current endpoint."""
        with self._lock:
            start = self._current_index
        n = len(self._endpoints)
        return [(start + offset) % n for offset in range(n)]

    def mark_success(self, index: int) -> bool:
        """Make index current. Returns True if the current endpoint changed."""
        with self._lock:
            changed = self._current_index != index
            self._current_index = index
            return changed

    def reset_to_primary(self) -> bool:
        with self._lock:
            changed = self._current_index != 0
            self._current_index = 0
            return changed


# =============================================================================
# Gateway
# =============================================================================

ClientFactory = Callable[[Endpoint], Any]


class RPCGateway:
    """
    Failover-wrapping client over an EndpointPool.

    Usage:
        async with RPCGateway() as gateway:
            slot = await gateway.get_current_slot()
            print(gateway.current_endpoint.name)
    """

    def __init__(
        self,
        endpoints: Optional[Sequence[Endpoint]] = None,
        attempt_timeout: float = 10.0,
        commitment: str = "confirmed",
        send_max_retries: int = 3,
        client_factory: Optional[ClientFactory] = None,
    ):
        """
        Args:
            endpoints: Ordered endpoints, primary first (defaults to public mainnet RPCs)
            attempt_timeout: Seconds allowed for one attempt against one endpoint
            commitment: Commitment level for reads
            send_max_retries: maxRetries forwarded to the node on broadcast
            client_factory: Builds the RPC client for an endpoint (AsyncClient by default)
        """
        self._pool = EndpointPool(list(endpoints) if endpoints else DEFAULT_ENDPOINTS)
        self.attempt_timeout = attempt_timeout
        self.commitment = Commitment(commitment)
        self.send_max_retries = send_max_retries
        self._client_factory = client_factory or self._default_client_factory
        self._clients: Dict[Endpoint, Any] = {}
        self.failover_count = 0
        self._closed = False

    @classmethod
    def from_settings(
        cls,
        settings: SolanaRPCSettings,
        client_factory: Optional[ClientFactory] = None,
    ) -> "RPCGateway":
        endpoints = [Endpoint(url=url, name=name) for name, url in settings.endpoint_pairs()]
        return cls(
            endpoints=endpoints,
            attempt_timeout=settings.attempt_timeout,
            commitment=settings.commitment,
            send_max_retries=settings.send_max_retries,
            client_factory=client_factory,
        )

    def _default_client_factory(self, endpoint: Endpoint) -> AsyncClient:
        return AsyncClient(endpoint.url, commitment=self.commitment, timeout=self.attempt_timeout)

    async def __aenter__(self) -> "RPCGateway":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    @property
    def closed(self) -> bool:
        return self._closed

    async def close(self) -> None:
        """Close every RPC client created so far. Later calls raise GatewayClosed."""
        self._closed = True
        clients, self._clients = self._clients, {}
        for endpoint, client in clients.items():
            try:
                await client.close()
            except Exception as e:
                logger.warning(f"Error closing RPC client for {endpoint.name}: {e}")

    # ------------------------------------------------------------------------
    # Observability
    # ------------------------------------------------------------------------

    @property
    def current_endpoint(self) -> Endpoint:
        return self._pool.current

    @property
    def endpoints(self) -> List[Endpoint]:
        return self._pool.endpoints

    def _get_client(self, endpoint: Endpoint) -> Any:
        client = self._clients.get(endpoint)
        if client is None:
            client = self._client_factory(endpoint)
            self._clients[endpoint] = client
        return client

    # ------------------------------------------------------------------------
    # Failover sweep
    # ------------------------------------------------------------------------

    async def execute_with_failover(
        self,
        operation: str,
        func: Callable[[Any], Awaitable[T]],
        require_value: bool = True,
    ) -> T:
        """
        Run func(client) against the current endpoint, then each following one.

        Args:
            operation: Operation name for logging and errors
            func: Async callable receiving the endpoint's RPC client
            require_value: Treat a response without a `value` attribute as malformed

        Returns:
            The first successful response

        Raises:
            AllEndpointsFailed: Every endpoint failed; the pool is reset to the primary
            GatewayClosed: close() was called before or during the sweep
        """
        failures: List[EndpointFailure] = []

        for index in self._pool.sweep_order():
            endpoint = self._pool[index]
            if self._closed:
                raise GatewayClosed(
                    f"RPC gateway is closed; {operation} not sent",
                    operation=operation,
                )
            try:
                client = self._get_client(endpoint)
                result = await asyncio.wait_for(func(client), timeout=self.attempt_timeout)
                if require_value and not hasattr(result, "value"):
                    raise EndpointFailure(
                        f"Malformed {operation} response: {type(result).__name__}",
                        rpc_endpoint=endpoint.url,
                        endpoint_name=endpoint.name,
                    )
            except asyncio.TimeoutError:
                failure = EndpointFailure(
                    f"{operation} timed out after {self.attempt_timeout}s",
                    rpc_endpoint=endpoint.url,
                    endpoint_name=endpoint.name,
                )
            except EndpointFailure as e:
                failure = e
            except Exception as e:
                failure = wrap_exception(
                    e,
                    EndpointFailure,
                    message=f"{operation} failed: {str(e) or type(e).__name__}",
                    rpc_endpoint=endpoint.url,
                    endpoint_name=endpoint.name,
                )
            else:
                if self._pool.mark_success(index):
                    self.failover_count += 1
                    logger.info(f"RPC now using {endpoint.name} ({endpoint.url})")
                return result

            failures.append(failure)
            logger.warning(f"RPC call {operation} failed on {endpoint.name}: {failure.message}")

        if self._pool.reset_to_primary():
            primary = self._pool[0]
            logger.info(f"Resetting to primary RPC: {primary.name}")

        detail = "; ".join(f"{f.endpoint_name}: {f.message}" for f in failures)
        raise AllEndpointsFailed(
            f"All RPC endpoints failed for {operation}: {detail}",
            operation=operation,
            failures=failures,
            context={"endpoints": len(failures)},
        )

    # ------------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------------

    async def get_current_slot(self) -> int:
        response = await self.execute_with_failover(
            "get_slot", lambda client: client.get_slot()
        )
        return response.value

    async def get_account_info(self, address) -> Any:
        """Account info for address, or None if the account does not exist."""
        pubkey = to_pubkey(address)
        response = await self.execute_with_failover(
            "get_account_info", lambda client: client.get_account_info(pubkey)
        )
        return response.value

    async def get_token_accounts_by_owner(self, owner) -> List[Any]:
        """Parsed SPL token accounts held by owner."""
        pubkey = to_pubkey(owner, "owner")
        opts = TokenAccountOpts(program_id=TOKEN_PROGRAM_ID)
        response = await self.execute_with_failover(
            "get_token_accounts_by_owner",
            lambda client: client.get_token_accounts_by_owner_json_parsed(pubkey, opts),
        )
        return list(response.value or [])

    async def get_token_supply(self, mint) -> Any:
        pubkey = to_pubkey(mint, "mint")
        response = await self.execute_with_failover(
            "get_token_supply", lambda client: client.get_token_supply(pubkey)
        )
        return response.value

    # ------------------------------------------------------------------------
    # Writes / confirmation
    # ------------------------------------------------------------------------

    async def send_raw_transaction(self, raw_transaction: bytes, skip_preflight: bool = False) -> str:
        """Broadcast a signed, serialized transaction. Returns its signature."""
        opts = TxOpts(
            skip_preflight=skip_preflight,
            preflight_commitment=Confirmed,
            max_retries=self.send_max_retries,
        )
        response = await self.execute_with_failover(
            "send_raw_transaction",
            lambda client: client.send_raw_transaction(raw_transaction, opts=opts),
        )
        return str(response.value)

    async def get_signature_status(self, signature: str) -> Any:
        """Status of one signature, or None if the cluster has not seen it."""
        try:
            sig = Signature.from_string(signature)
        except ValueError as e:
            raise ValidationError(
                f"Invalid transaction signature: {signature!r}", field_name="signature"
            ) from e

        response = await self.execute_with_failover(
            "get_signature_statuses",
            lambda client: client.get_signature_statuses([sig]),
        )
        statuses = response.value or []
        return statuses[0] if statuses else None


def create_gateway(
    settings: Optional[SolanaRPCSettings] = None,
    client_factory: Optional[ClientFactory] = None,
) -> RPCGateway:
    """Build a gateway from settings (environment by default)."""
    if settings is None:
        from .config import get_settings
        settings = get_settings().solana
    return RPCGateway.from_settings(settings, client_factory=client_factory)


__all__ = [
    "Endpoint",
    "EndpointPool",
    "RPCGateway",
    "DEFAULT_ENDPOINTS",
    "TOKEN_PROGRAM_ID",
    "create_gateway",
]

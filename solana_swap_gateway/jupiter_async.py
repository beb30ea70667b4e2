"""
Jupiter Aggregator Async Client
Quote retrieval and swap-transaction building over aiohttp.
"""

import asyncio
import aiohttp
import time
import logging
import hashlib
from dataclasses import dataclass, field
from typing import Optional, Dict, Any, TypeVar, Generic, Tuple
from enum import Enum
from collections import OrderedDict

from .config import JupiterSettings
from .exceptions import JupiterAPIError

logger = logging.getLogger(__name__)

# ============================================================================
# CONSTANTS
# ============================================================================

JUPITER_API_BASE = "https://quote-api.jup.ag/v6"

# Well-known token mints
SOL_MINT = "So11111111111111111111111111111111111111112"
USDC_MINT = "EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v"
USDT_MINT = "Es9vMFrzaCERmJfrF4H2FYD4KCoNkY11McCe8BenwNYB"

DEFAULT_SLIPPAGE_BPS = 50  # 0.5%
DEFAULT_TIMEOUT = 30
QUOTE_CACHE_TTL = 5  # seconds


# ============================================================================
# ENUMS
# ============================================================================

class SwapMode(str, Enum):
    """Swap mode for Jupiter quotes."""
    EXACT_IN = "ExactIn"
    EXACT_OUT = "ExactOut"


# ============================================================================
# DATA CLASSES
# ============================================================================

def _parse_amount(data: Dict[str, Any], key: str, default: Optional[int] = None) -> int:
    """Base-unit amounts arrive as decimal strings; never go through float."""
    value = data.get(key)
    if value is None or value == "":
        if default is None:
            raise ValueError(f"missing {key}")
        return default
    if isinstance(value, bool) or isinstance(value, float):
        raise ValueError(f"{key} must be an integer amount, got {value!r}")
    return int(str(value))


def _route_entries(data: Dict[str, Any]) -> Tuple[Dict[str, Any], ...]:
    plan = data.get("routePlan") or []
    if not isinstance(plan, list):
        raise ValueError(f"routePlan must be a list, got {type(plan).__name__}")
    for entry in plan:
        if not isinstance(entry, dict):
            raise ValueError(f"routePlan entry must be an object, got {type(entry).__name__}")
    return tuple(plan)


@dataclass(frozen=True)
class RouteHop:
    """One venue-level exchange step of a route."""
    venue_label: str
    in_amount: int
    out_amount: int
    fee_amount: int
    fee_asset: str
    amm_key: str = ""
    input_asset: str = ""
    output_asset: str = ""
    percent: int = 100

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RouteHop":
        info = data.get("swapInfo")
        if not isinstance(info, dict):
            raise ValueError(f"route hop swapInfo must be an object, got {type(info).__name__}")
        return cls(
            venue_label=info.get("label") or "",
            in_amount=_parse_amount(info, "inAmount", 0),
            out_amount=_parse_amount(info, "outAmount", 0),
            fee_amount=_parse_amount(info, "feeAmount", 0),
            fee_asset=info.get("feeMint", ""),
            amm_key=info.get("ammKey", ""),
            input_asset=info.get("inputMint", ""),
            output_asset=info.get("outputMint", ""),
            percent=int(data.get("percent", 100)),
        )


@dataclass(frozen=True)
class Quote:
    """
    One priced route at one point in time.

    Amounts are integers in base units. raw_response is the aggregator
    payload, sent back verbatim when building the swap transaction.
    """
    input_asset: str
    output_asset: str
    in_amount: int
    out_amount: int
    other_amount_threshold: int
    slippage_bps: int
    price_impact_pct: str
    route_plan: Tuple[RouteHop, ...]
    swap_mode: SwapMode = SwapMode.EXACT_IN
    context_slot: Optional[int] = None
    time_taken: Optional[float] = None
    raw_response: Dict[str, Any] = field(default_factory=dict, compare=False, hash=False, repr=False)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Quote":
        """
        Parse an aggregator quote payload.

        Raises:
            ValueError: Not an object, required fields missing or amounts not integral
        """
        if not isinstance(data, dict):
            raise ValueError(f"quote must be an object, got {type(data).__name__}")
        out_amount = _parse_amount(data, "outAmount")
        return cls(
            input_asset=data.get("inputMint", ""),
            output_asset=data.get("outputMint", ""),
            in_amount=_parse_amount(data, "inAmount"),
            out_amount=out_amount,
            other_amount_threshold=_parse_amount(data, "otherAmountThreshold", out_amount),
            slippage_bps=int(data.get("slippageBps", DEFAULT_SLIPPAGE_BPS)),
            price_impact_pct=str(data.get("priceImpactPct") or "0"),
            route_plan=tuple(RouteHop.from_dict(r) for r in _route_entries(data)),
            swap_mode=SwapMode(data.get("swapMode") or SwapMode.EXACT_IN.value),
            context_slot=data.get("contextSlot"),
            time_taken=data.get("timeTaken"),
            raw_response=dict(data),
        )

    @property
    def num_hops(self) -> int:
        return len(self.route_plan)

    def to_dict(self) -> Dict[str, Any]:
        """Aggregator-format payload; the original response when there is one."""
        if self.raw_response:
            return dict(self.raw_response)
        return {
            "inputMint": self.input_asset,
            "outputMint": self.output_asset,
            "inAmount": str(self.in_amount),
            "outAmount": str(self.out_amount),
            "otherAmountThreshold": str(self.other_amount_threshold),
            "swapMode": self.swap_mode.value,
            "slippageBps": self.slippage_bps,
            "priceImpactPct": self.price_impact_pct,
            "routePlan": [
                {
                    "swapInfo": {
                        "ammKey": hop.amm_key,
                        "label": hop.venue_label,
                        "inputMint": hop.input_asset,
                        "outputMint": hop.output_asset,
                        "inAmount": str(hop.in_amount),
                        "outAmount": str(hop.out_amount),
                        "feeAmount": str(hop.fee_amount),
                        "feeMint": hop.fee_asset,
                    },
                    "percent": hop.percent,
                }
                for hop in self.route_plan
            ],
            "contextSlot": self.context_slot,
            "timeTaken": self.time_taken,
        }


@dataclass
class SwapTransaction:
    """Unsigned swap transaction returned by the aggregator."""
    swap_transaction: str  # Base64 encoded transaction
    last_valid_block_height: int = 0
    prioritization_fee_lamports: int = 0
    compute_unit_limit: Optional[int] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SwapTransaction":
        return cls(
            swap_transaction=data.get("swapTransaction") or "",
            last_valid_block_height=int(data.get("lastValidBlockHeight") or 0),
            prioritization_fee_lamports=int(data.get("prioritizationFeeLamports") or 0),
            compute_unit_limit=data.get("computeUnitLimit")
        )


@dataclass
class JupiterMetrics:
    """Counters for monitoring the aggregator client."""
    total_requests: int = 0
    failed_requests: int = 0
    total_latency_ms: float = 0.0
    quotes_fetched: int = 0
    swap_transactions_built: int = 0
    cache_hits: int = 0
    cache_misses: int = 0

    @property
    def avg_latency_ms(self) -> float:
        if self.total_requests == 0:
            return 0.0
        return self.total_latency_ms / self.total_requests

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_requests": self.total_requests,
            "failed_requests": self.failed_requests,
            "avg_latency_ms": self.avg_latency_ms,
            "quotes_fetched": self.quotes_fetched,
            "swap_transactions_built": self.swap_transactions_built,
            "cache_hits": self.cache_hits,
            "cache_misses": self.cache_misses,
        }


# ============================================================================
# CACHING
# ============================================================================

T = TypeVar('T')


@dataclass
class CacheEntry(Generic[T]):
    """Entry in the cache with TTL."""
    value: T
    expires_at: float

    @property
    def is_expired(self) -> bool:
        return time.monotonic() > self.expires_at


class LRUCache(Generic[T]):
    """Memory-bounded LRU cache with TTL support."""

    def __init__(self, max_size: int = 1000, default_ttl: float = 60.0):
        self.max_size = max_size
        self.default_ttl = default_ttl
        self._cache: OrderedDict[str, CacheEntry[T]] = OrderedDict()
        self._lock = asyncio.Lock()

    async def get(self, key: str) -> Optional[T]:
        """Get value from cache if exists and not expired."""
        async with self._lock:
            if key not in self._cache:
                return None

            entry = self._cache[key]
            if entry.is_expired:
                del self._cache[key]
                return None

            self._cache.move_to_end(key)
            return entry.value

    async def set(self, key: str, value: T, ttl: Optional[float] = None) -> None:
        """Set value in cache with optional TTL override."""
        ttl = ttl if ttl is not None else self.default_ttl
        async with self._lock:
            self._cache.pop(key, None)
            while len(self._cache) >= self.max_size:
                self._cache.popitem(last=False)

            self._cache[key] = CacheEntry(
                value=value,
                expires_at=time.monotonic() + ttl
            )

    async def clear(self) -> None:
        async with self._lock:
            self._cache.clear()

    @property
    def size(self) -> int:
        return len(self._cache)


def make_quote_key(params: Dict[str, Any]) -> str:
    """Cache key for a quote request; any parameter change is a new key."""
    data = "&".join(f"{k}={params[k]}" for k in sorted(params))
    return hashlib.md5(data.encode()).hexdigest()


# ============================================================================
# JUPITER CLIENT
# ============================================================================

class JupiterClient:
    """
    Async client for the Jupiter quote and swap endpoints.

    Each call is a single HTTP attempt; retry policy belongs to the caller.

    Example:
        async with JupiterClient() as jupiter:
            payload = await jupiter.fetch_quote({
                "inputMint": SOL_MINT,
                "outputMint": USDC_MINT,
                "amount": "1000000000",
                "slippageBps": "50",
            })
    """

    def __init__(
        self,
        api_base: str = JUPITER_API_BASE,
        timeout: float = DEFAULT_TIMEOUT,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        """
        Args:
            api_base: Base URL for the quote/swap API
            timeout: Request timeout in seconds
            session: Externally owned session (not closed by this client)
        """
        self.api_base = api_base.rstrip("/")
        self.timeout = timeout

        self._session = session
        self._owns_session = session is None
        self._session_lock = asyncio.Lock()

        self.metrics = JupiterMetrics()
        self._closed = False

    @classmethod
    def from_settings(cls, settings: JupiterSettings) -> "JupiterClient":
        return cls(api_base=str(settings.api_url), timeout=settings.timeout)

    async def __aenter__(self) -> "JupiterClient":
        await self._ensure_session()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def _ensure_session(self) -> aiohttp.ClientSession:
        async with self._session_lock:
            if self._session is None or self._session.closed:
                connector = aiohttp.TCPConnector(
                    limit=100,
                    limit_per_host=30,
                    ttl_dns_cache=300,
                )
                self._session = aiohttp.ClientSession(
                    connector=connector,
                    timeout=aiohttp.ClientTimeout(total=self.timeout),
                    headers={
                        "Accept": "application/json",
                        "Content-Type": "application/json",
                        "User-Agent": "SolanaSwapGateway/1.0"
                    }
                )
                self._owns_session = True
            return self._session

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True

        if self._owns_session and self._session and not self._session.closed:
            await self._session.close()

        logger.debug("JupiterClient closed")

    async def _request(
        self,
        method: str,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        json_data: Optional[Dict[str, Any]] = None,
    ) -> Any:
        """
        Make one HTTP request and return the parsed JSON body.

        Raises:
            JupiterAPIError: Transport failure, timeout, or error status
        """
        session = await self._ensure_session()
        url = f"{self.api_base}{path}"

        start_time = time.monotonic()
        self.metrics.total_requests += 1
        logger.debug(f"Request {method} {url} params={params}")

        try:
            async with session.request(method, url, params=params, json=json_data) as response:
                try:
                    data = await response.json(content_type=None)
                except ValueError:
                    data = {"raw": await response.text()}

                if response.status >= 400:
                    if isinstance(data, dict):
                        error_msg = data.get("error") or data.get("message") or str(data)
                    else:
                        error_msg = str(data)
                    raise JupiterAPIError(
                        f"HTTP {response.status}: {error_msg}",
                        status_code=response.status,
                        context={"url": url},
                    )
        except aiohttp.ClientError as e:
            self.metrics.failed_requests += 1
            raise JupiterAPIError(
                f"Connection error: {str(e) or type(e).__name__}", context={"url": url}
            ) from e
        except asyncio.TimeoutError as e:
            self.metrics.failed_requests += 1
            raise JupiterAPIError(
                f"Request timed out after {self.timeout}s", context={"url": url}
            ) from e
        except JupiterAPIError:
            self.metrics.failed_requests += 1
            raise
        finally:
            self.metrics.total_latency_ms += (time.monotonic() - start_time) * 1000

        return data

    async def fetch_quote(self, params: Dict[str, str]) -> Optional[Dict[str, Any]]:
        """GET /quote. Returns the raw payload (possibly empty)."""
        data = await self._request("GET", "/quote", params=params)
        if data:
            self.metrics.quotes_fetched += 1
        return data or None

    async def build_swap_transaction(self, body: Dict[str, Any]) -> SwapTransaction:
        """POST /swap. swap_transaction is empty when none was produced."""
        data = await self._request("POST", "/swap", json_data=body)
        if not isinstance(data, dict):
            return SwapTransaction(swap_transaction="")
        swap_tx = SwapTransaction.from_dict(data)
        if swap_tx.swap_transaction:
            self.metrics.swap_transactions_built += 1
        return swap_tx


__all__ = [
    "JupiterClient",
    "Quote",
    "RouteHop",
    "SwapTransaction",
    "SwapMode",
    "JupiterMetrics",
    "LRUCache",
    "make_quote_key",
    "SOL_MINT",
    "USDC_MINT",
    "USDT_MINT",
    "DEFAULT_SLIPPAGE_BPS",
    "QUOTE_CACHE_TTL",
]

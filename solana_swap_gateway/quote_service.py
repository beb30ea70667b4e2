"""
Quote Service

Obtains one best-effort Quote from the aggregator for an asset pair,
amount and slippage tolerance, and exposes the derived quote metrics.
"""

import logging
from decimal import Decimal
from typing import Any, Dict, List, Optional, Sequence

from .config import JupiterSettings
from .exceptions import JupiterAPIError, QuoteUnavailable
from .jupiter_async import (
    DEFAULT_SLIPPAGE_BPS,
    QUOTE_CACHE_TTL,
    JupiterClient,
    LRUCache,
    Quote,
    SwapMode,
    make_quote_key,
)
from . import pricing
from .validators import validate_quote_request

logger = logging.getLogger(__name__)


class QuoteService:
    """
    Quote retrieval with request validation and a short-lived cache.

    Validation errors are raised as-is (caller errors). Transport failures
    and empty or unusable payloads become QuoteUnavailable. Nothing is
    retried here.
    """

    def __init__(
        self,
        jupiter: JupiterClient,
        cache_ttl: float = QUOTE_CACHE_TTL,
        cache_size: int = 1000,
    ):
        self.jupiter = jupiter
        self.cache_ttl = cache_ttl
        self._cache: Optional[LRUCache[Quote]] = (
            LRUCache(max_size=cache_size, default_ttl=cache_ttl) if cache_ttl > 0 else None
        )

    @classmethod
    def from_settings(cls, jupiter: JupiterClient, settings: JupiterSettings) -> "QuoteService":
        return cls(jupiter, cache_ttl=settings.quote_cache_ttl, cache_size=settings.quote_cache_size)

    async def get_quote(
        self,
        input_asset: str,
        output_asset: str,
        amount: int,
        slippage_bps: int = DEFAULT_SLIPPAGE_BPS,
        swap_mode: SwapMode = SwapMode.EXACT_IN,
        only_direct_routes: bool = False,
        as_legacy_transaction: bool = False,
        max_accounts: Optional[int] = None,
        dexes: Optional[Sequence[str]] = None,
        exclude_dexes: Optional[Sequence[str]] = None,
        use_cache: bool = True,
    ) -> Quote:
        """
        Get a swap quote.

        Args:
            input_asset: Input token mint
            output_asset: Output token mint
            amount: Positive amount in base units
            slippage_bps: Slippage tolerance in basis points, 0-10000
            swap_mode: ExactIn or ExactOut
            only_direct_routes: Only single-hop routes
            as_legacy_transaction: Route must fit a legacy transaction
            max_accounts: Maximum accounts the route may touch
            dexes: Only route through these venues
            exclude_dexes: Never route through these venues
            use_cache: Serve an identical recent request from cache

        Returns:
            Quote

        Raises:
            ValidationError: Invalid amount, slippage or asset pair
            QuoteUnavailable: The aggregator produced no usable quote
        """
        input_asset, output_asset, amount, slippage_bps = validate_quote_request(
            input_asset, output_asset, amount, slippage_bps
        )

        params: Dict[str, str] = {
            "inputMint": input_asset,
            "outputMint": output_asset,
            "amount": str(amount),
            "slippageBps": str(slippage_bps),
            "swapMode": SwapMode(swap_mode).value,
            "onlyDirectRoutes": str(only_direct_routes).lower(),
            "asLegacyTransaction": str(as_legacy_transaction).lower(),
        }
        if max_accounts is not None:
            params["maxAccounts"] = str(max_accounts)
        if dexes:
            params["dexes"] = ",".join(dexes)
        if exclude_dexes:
            params["excludeDexes"] = ",".join(exclude_dexes)

        cache_key = make_quote_key(params)
        if use_cache and self._cache:
            cached = await self._cache.get(cache_key)
            if cached is not None:
                self.jupiter.metrics.cache_hits += 1
                return cached
            self.jupiter.metrics.cache_misses += 1

        details = {"input_asset": input_asset, "output_asset": output_asset, "amount": amount}

        try:
            data = await self.jupiter.fetch_quote(params)
        except JupiterAPIError as e:
            logger.error(f"Error getting quote {input_asset} -> {output_asset}: {e.message}")
            raise QuoteUnavailable(f"Failed to get swap quote: {e.message}", **details) from e

        if not data:
            raise QuoteUnavailable("No quote received from Jupiter", **details)

        if not isinstance(data, dict):
            raise QuoteUnavailable(
                f"Malformed quote received: expected an object, got {type(data).__name__}", **details
            )

        try:
            quote = Quote.from_dict(data)
        except (ValueError, TypeError, AttributeError) as e:
            raise QuoteUnavailable(f"Malformed quote received: {e}", **details) from e

        if self._cache:
            await self._cache.set(cache_key, quote)

        logger.debug(
            f"Quote {input_asset} -> {output_asset}: in={quote.in_amount} "
            f"out={quote.out_amount} hops={quote.num_hops}"
        )
        return quote

    async def clear_cache(self) -> None:
        if self._cache:
            await self._cache.clear()

    # ------------------------------------------------------------------------
    # Derived metrics
    # ------------------------------------------------------------------------

    def calculate_minimum_received(self, quote: Quote) -> int:
        return pricing.calculate_minimum_received(quote)

    def calculate_price_impact(self, quote: Quote) -> Decimal:
        return pricing.calculate_price_impact(quote)

    def get_route_summary(self, quote: Quote) -> List[str]:
        return pricing.get_route_summary(quote)

    def summarize(self, quote: Quote) -> Dict[str, Any]:
        """Display-ready figures for a quote."""
        return {
            "input_asset": quote.input_asset,
            "output_asset": quote.output_asset,
            "in_amount": quote.in_amount,
            "out_amount": quote.out_amount,
            "minimum_received": pricing.calculate_minimum_received(quote),
            "price_impact_pct": pricing.calculate_price_impact(quote),
            "effective_price": pricing.calculate_effective_price(quote),
            "route": pricing.get_route_summary(quote),
            "fees": pricing.calculate_total_fees(quote),
        }


__all__ = ["QuoteService"]

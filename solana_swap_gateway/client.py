"""
SolanaSwapClient

One object wiring the RPC gateway, the aggregator client, the quote
service and the swap orchestrator from Settings.
"""

import logging
from decimal import Decimal
from typing import Any, Dict, List, Optional

from .config import Settings, get_settings
from .jupiter_async import DEFAULT_SLIPPAGE_BPS, JupiterClient, Quote
from .quote_service import QuoteService
from .rpc_gateway import ClientFactory, Endpoint, RPCGateway
from .swap_executor import SignTransaction, SwapOptions, SwapOrchestrator, SwapResult

logger = logging.getLogger(__name__)


class SolanaSwapClient:
    """
    Usage:
        async with SolanaSwapClient() as client:
            quote = await client.get_quote(SOL_MINT, USDC_MINT, 1_000_000_000)
            result = await client.execute_swap(quote, wallet_pubkey, wallet.sign)
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        rpc_client_factory: Optional[ClientFactory] = None,
    ):
        self.settings = settings or get_settings()

        self.gateway = RPCGateway.from_settings(self.settings.solana, client_factory=rpc_client_factory)
        self.jupiter = JupiterClient.from_settings(self.settings.jupiter)
        self.quotes = QuoteService.from_settings(self.jupiter, self.settings.jupiter)
        self.orchestrator = SwapOrchestrator.from_settings(
            self.jupiter,
            self.gateway,
            self.settings.jupiter,
            self.settings.confirmation,
        )

    async def __aenter__(self) -> "SolanaSwapClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def close(self, confirmation_timeout: Optional[float] = 0) -> None:
        """
        Release HTTP sessions and RPC clients.

        Confirmation tasks still running are given confirmation_timeout
        seconds to finish (None waits for all of them). Any still running
        after that are cancelled and their results end ``failed``, so no
        poll reaches the gateway after it is closed.
        """
        if self.orchestrator.pending_confirmations and confirmation_timeout != 0:
            await self.orchestrator.wait_for_confirmations(confirmation_timeout)
        cancelled = await self.orchestrator.cancel_confirmations()
        if cancelled:
            logger.warning(f"Stopped confirming {cancelled} swap(s) on close")
        await self.jupiter.close()
        await self.gateway.close()
        logger.debug("SolanaSwapClient closed")

    # ------------------------------------------------------------------------
    # Quotes and swaps
    # ------------------------------------------------------------------------

    async def get_quote(
        self,
        input_asset: str,
        output_asset: str,
        amount: int,
        slippage_bps: int = DEFAULT_SLIPPAGE_BPS,
        **kwargs: Any,
    ) -> Quote:
        return await self.quotes.get_quote(input_asset, output_asset, amount, slippage_bps, **kwargs)

    async def execute_swap(
        self,
        quote: Quote,
        user_public_key: str,
        sign_transaction: SignTransaction,
        options: Optional[SwapOptions] = None,
    ) -> SwapResult:
        return await self.orchestrator.execute_swap(quote, user_public_key, sign_transaction, options)

    def calculate_price_impact(self, quote: Quote) -> Decimal:
        return self.quotes.calculate_price_impact(quote)

    def calculate_minimum_received(self, quote: Quote) -> int:
        return self.quotes.calculate_minimum_received(quote)

    def get_route_summary(self, quote: Quote) -> List[str]:
        return self.quotes.get_route_summary(quote)

    # ------------------------------------------------------------------------
    # Chain reads
    # ------------------------------------------------------------------------

    async def get_current_slot(self) -> int:
        return await self.gateway.get_current_slot()

    async def get_account_info(self, address) -> Any:
        return await self.gateway.get_account_info(address)

    async def get_token_accounts_by_owner(self, owner) -> List[Any]:
        return await self.gateway.get_token_accounts_by_owner(owner)

    async def get_token_supply(self, mint) -> Any:
        return await self.gateway.get_token_supply(mint)

    @property
    def current_endpoint(self) -> Endpoint:
        return self.gateway.current_endpoint

    def get_metrics(self) -> Dict[str, Any]:
        return {
            "rpc": {
                "current_endpoint": self.gateway.current_endpoint.name,
                "failover_count": self.gateway.failover_count,
            },
            "jupiter": self.jupiter.metrics.to_dict(),
            "swaps": self.orchestrator.metrics.to_dict(),
            "pending_confirmations": self.orchestrator.pending_confirmations,
        }


__all__ = ["SolanaSwapClient"]

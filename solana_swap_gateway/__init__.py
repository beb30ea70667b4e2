"""
Solana Swap Gateway

Failover RPC access to Solana and token swaps through the Jupiter aggregator.
"""

__version__ = "1.0.0"

from .client import SolanaSwapClient
from .config import Settings, get_settings
from .exceptions import (
    AllEndpointsFailed,
    GatewayClosed,
    QuoteUnavailable,
    SwapErrorKind,
    SwapGatewayError,
    UserRejected,
    ValidationError,
)
from .jupiter_async import SOL_MINT, USDC_MINT, USDT_MINT, JupiterClient, Quote, RouteHop
from .quote_service import QuoteService
from .rpc_gateway import Endpoint, RPCGateway, create_gateway
from .swap_executor import SwapOptions, SwapOrchestrator, SwapResult, SwapStatus

__all__ = [
    "SolanaSwapClient",
    "Settings",
    "get_settings",
    "SwapGatewayError",
    "AllEndpointsFailed",
    "GatewayClosed",
    "QuoteUnavailable",
    "SwapErrorKind",
    "UserRejected",
    "ValidationError",
    "JupiterClient",
    "Quote",
    "RouteHop",
    "SOL_MINT",
    "USDC_MINT",
    "USDT_MINT",
    "QuoteService",
    "Endpoint",
    "RPCGateway",
    "create_gateway",
    "SwapOptions",
    "SwapOrchestrator",
    "SwapResult",
    "SwapStatus",
]

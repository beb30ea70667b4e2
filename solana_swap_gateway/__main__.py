"""
Command-line entry point.

    python -m solana_swap_gateway slot
    python -m solana_swap_gateway quote <input_mint> <output_mint> <amount> [--slippage-bps N]
    python -m solana_swap_gateway config
"""

import argparse
import asyncio
import json
import sys
from typing import List, Optional

from .client import SolanaSwapClient
from .config import get_settings
from .exceptions import SwapGatewayError
from .logger import setup_logging


async def _show_slot() -> int:
    async with SolanaSwapClient() as client:
        slot = await client.get_current_slot()
        print(f"Slot {slot} via {client.current_endpoint.name}")
    return 0


async def _show_quote(args: argparse.Namespace) -> int:
    async with SolanaSwapClient() as client:
        quote = await client.get_quote(
            args.input_mint,
            args.output_mint,
            args.amount,
            slippage_bps=args.slippage_bps,
            only_direct_routes=args.direct,
        )
        summary = client.quotes.summarize(quote)

    print(f"In:               {summary['in_amount']} {summary['input_asset']}")
    print(f"Out:              {summary['out_amount']} {summary['output_asset']}")
    print(f"Minimum received: {summary['minimum_received']}")
    print(f"Price impact:     {summary['price_impact_pct']}%")
    print(f"Route:            {' -> '.join(summary['route']) or '-'}")
    for asset, amount in summary["fees"].items():
        print(f"Fee:              {amount} {asset}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="solana-swap-gateway",
        description="Solana RPC failover and Jupiter swap quotes",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("slot", help="Print the current slot")

    quote = sub.add_parser("quote", help="Fetch a swap quote")
    quote.add_argument("input_mint")
    quote.add_argument("output_mint")
    quote.add_argument("amount", type=int, help="Amount in base units")
    quote.add_argument("--slippage-bps", type=int, default=50)
    quote.add_argument("--direct", action="store_true", help="Single-hop routes only")

    sub.add_parser("config", help="Show effective settings")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    if args.command == "config":
        print(json.dumps(get_settings().to_safe_dict(), indent=2))
        return 0

    setup_logging()
    try:
        if args.command == "slot":
            return asyncio.run(_show_slot())
        return asyncio.run(_show_quote(args))
    except SwapGatewayError as e:
        print(f"Error: {e.message}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())

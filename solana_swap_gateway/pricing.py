"""
Derived quote metrics.

Pure functions of a Quote, shared by the quote service and the swap
orchestrator. Integer arithmetic for amounts; Decimal for ratios.
"""

from collections import OrderedDict
from decimal import Decimal, InvalidOperation
from typing import Dict, List

from .jupiter_async import Quote
from .validators import validate_slippage_bps

BPS_DENOMINATOR = 10_000


def minimum_received(out_amount: int, slippage_bps: int) -> int:
    """floor(out_amount * (1 - slippage_bps / 10000)), exact for any size."""
    slippage_bps = validate_slippage_bps(slippage_bps)
    if out_amount < 0:
        raise ValueError(f"out_amount must be non-negative, got {out_amount}")
    return out_amount * (BPS_DENOMINATOR - slippage_bps) // BPS_DENOMINATOR


def calculate_minimum_received(quote: Quote) -> int:
    """
    Minimum output the swap guarantees at the quote's slippage.

    Computed from out_amount rather than trusting otherAmountThreshold, so it
    stays correct when the upstream field is absent or stale.
    """
    return minimum_received(quote.out_amount, quote.slippage_bps)


def calculate_price_impact(quote: Quote) -> Decimal:
    """priceImpactPct as a number; unparseable values count as zero."""
    try:
        impact = Decimal(quote.price_impact_pct)
    except (InvalidOperation, TypeError):
        return Decimal(0)
    if not impact.is_finite():
        return Decimal(0)
    return impact


def get_route_summary(quote: Quote) -> List[str]:
    """Venue label of each hop in route order. Repeats are kept."""
    return [hop.venue_label for hop in quote.route_plan]


def calculate_total_fees(quote: Quote) -> Dict[str, int]:
    """Hop fees summed per fee asset, in first-seen order."""
    totals: Dict[str, int] = OrderedDict()
    for hop in quote.route_plan:
        totals[hop.fee_asset] = totals.get(hop.fee_asset, 0) + hop.fee_amount
    return dict(totals)


def calculate_effective_price(quote: Quote) -> Decimal:
    """Output base units per input base unit."""
    if quote.in_amount == 0:
        return Decimal(0)
    return Decimal(quote.out_amount) / Decimal(quote.in_amount)


__all__ = [
    "BPS_DENOMINATOR",
    "minimum_received",
    "calculate_minimum_received",
    "calculate_price_impact",
    "get_route_summary",
    "calculate_total_fees",
    "calculate_effective_price",
]

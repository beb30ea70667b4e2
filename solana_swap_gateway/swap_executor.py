"""
Swap Execution Orchestrator

Turns a Quote into a submitted transaction and tracks it to a terminal
outcome:

    build -> sign (wallet callback) -> broadcast (gateway) -> confirm

Every failure before broadcast returns a terminal ``failed`` SwapResult.
After broadcast the caller immediately gets a ``pending`` SwapResult; a
background task polls for confirmation and mutates that same object to
``confirmed`` or ``failed``.
"""

import asyncio
import inspect
import logging
import time
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

from .config import ConfirmationSettings, JupiterSettings
from .exceptions import (
    BroadcastFailure,
    BuildFailure,
    ConfirmationFailure,
    JupiterAPIError,
    SignFailure,
    SwapErrorKind,
    SwapGatewayError,
    SwapStageError,
)
from .jupiter_async import JupiterClient, Quote, SwapTransaction
from . import pricing
from .transaction import (
    DEFAULT_MAX_POLL_ATTEMPTS,
    DEFAULT_POLL_INTERVAL,
    CommitmentLevel,
    decode_swap_transaction,
    poll_confirmation,
    serialize_transaction,
)

logger = logging.getLogger(__name__)

SignTransaction = Callable[[Any], Union[Any, Awaitable[Any]]]


class SwapStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    FAILED = "failed"


@dataclass(eq=False)
class SwapResult:
    """
    One execution attempt.

    Returned to the caller as soon as the outcome of submission is known and
    updated in place when confirmation resolves. ``await result.wait()``
    blocks until the status is terminal.
    """
    signature: str
    status: SwapStatus
    input_amount: int
    output_amount: int
    input_asset: str = ""
    output_asset: str = ""
    timestamp: float = field(default_factory=time.time)
    error: Optional[str] = None
    error_kind: Optional[SwapErrorKind] = None
    confirmed_at: Optional[float] = None
    _done: asyncio.Event = field(default_factory=asyncio.Event, init=False, repr=False)

    def __post_init__(self) -> None:
        if self.is_terminal:
            self._done.set()

    @property
    def is_terminal(self) -> bool:
        return self.status != SwapStatus.PENDING

    def mark_confirmed(self) -> None:
        self.status = SwapStatus.CONFIRMED
        self.confirmed_at = time.time()
        self._done.set()

    def mark_failed(self, error: str, kind: SwapErrorKind) -> None:
        self.status = SwapStatus.FAILED
        self.error = error
        self.error_kind = kind
        self._done.set()

    async def wait(self, timeout: Optional[float] = None) -> "SwapResult":
        """Wait until terminal. Raises asyncio.TimeoutError on timeout."""
        await asyncio.wait_for(self._done.wait(), timeout=timeout)
        return self

    def to_dict(self) -> Dict[str, Any]:
        return {
            "signature": self.signature,
            "status": self.status.value,
            "input_amount": self.input_amount,
            "output_amount": self.output_amount,
            "input_asset": self.input_asset,
            "output_asset": self.output_asset,
            "timestamp": self.timestamp,
            "error": self.error,
            "error_kind": self.error_kind.value if self.error_kind else None,
            "confirmed_at": self.confirmed_at,
        }


@dataclass
class SwapOptions:
    """Transaction-build options forwarded to the aggregator."""
    wrap_and_unwrap_sol: bool = True
    dynamic_compute_unit_limit: bool = True
    prioritization_fee_lamports: Optional[int] = None
    fee_account: Optional[str] = None
    skip_preflight: bool = False

    @classmethod
    def from_settings(cls, settings: JupiterSettings) -> "SwapOptions":
        return cls(
            wrap_and_unwrap_sol=settings.wrap_and_unwrap_sol,
            dynamic_compute_unit_limit=settings.dynamic_compute_unit_limit,
            prioritization_fee_lamports=settings.prioritization_fee_lamports,
        )


@dataclass
class SwapMetrics:
    swaps_attempted: int = 0
    swaps_submitted: int = 0
    swaps_confirmed: int = 0
    swaps_failed: int = 0

    def to_dict(self) -> Dict[str, int]:
        return {
            "swaps_attempted": self.swaps_attempted,
            "swaps_submitted": self.swaps_submitted,
            "swaps_confirmed": self.swaps_confirmed,
            "swaps_failed": self.swaps_failed,
        }


def _error_message(error: BaseException) -> str:
    if isinstance(error, SwapGatewayError):
        return error.message
    return str(error) or type(error).__name__


class SwapOrchestrator:
    """
    Drives quotes through build, sign, broadcast and confirmation.

    Example:
        orchestrator = SwapOrchestrator(jupiter, gateway)
        result = await orchestrator.execute_swap(quote, wallet_pubkey, wallet.sign)
        # result.status == "pending"; later:
        await result.wait()
    """

    def __init__(
        self,
        jupiter: JupiterClient,
        gateway: Any,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        max_poll_attempts: int = DEFAULT_MAX_POLL_ATTEMPTS,
        commitment: CommitmentLevel = CommitmentLevel.CONFIRMED,
        default_options: Optional[SwapOptions] = None,
    ):
        """
        Args:
            jupiter: Aggregator client used for the transaction-build step
            gateway: RPCGateway used for broadcast and confirmation
            poll_interval: Seconds between confirmation polls
            max_poll_attempts: Polls before the swap is marked failed
            commitment: Commitment level that counts as confirmed
            default_options: Build options used when execute_swap gets none
        """
        self.jupiter = jupiter
        self.gateway = gateway
        self.poll_interval = poll_interval
        self.max_poll_attempts = max_poll_attempts
        self.commitment = CommitmentLevel(commitment)
        self.default_options = default_options or SwapOptions()
        self.metrics = SwapMetrics()
        self._confirmations: Dict[asyncio.Task, SwapResult] = {}

    @classmethod
    def from_settings(
        cls,
        jupiter: JupiterClient,
        gateway: Any,
        jupiter_settings: JupiterSettings,
        confirmation_settings: ConfirmationSettings,
    ) -> "SwapOrchestrator":
        return cls(
            jupiter,
            gateway,
            poll_interval=confirmation_settings.poll_interval,
            max_poll_attempts=confirmation_settings.max_attempts,
            commitment=CommitmentLevel(confirmation_settings.commitment),
            default_options=SwapOptions.from_settings(jupiter_settings),
        )

    # ========================================================================
    # EXECUTION
    # ========================================================================

    async def execute_swap(
        self,
        quote: Quote,
        user_public_key: str,
        sign_transaction: SignTransaction,
        options: Optional[SwapOptions] = None,
    ) -> SwapResult:
        """
        Build, sign and broadcast a swap for quote.

        Args:
            quote: Quote to execute
            user_public_key: Wallet public key that signs and pays
            sign_transaction: Wallet callback; receives the unsigned
                VersionedTransaction and returns it signed (may be a coroutine).
                Raise UserRejected to report a declined signature.
            options: Transaction-build options

        Returns:
            SwapResult in ``pending`` state after a successful broadcast, or
            in ``failed`` state if any step before broadcast failed. Never raises
            for build, sign or broadcast failures.
        """
        options = options or self.default_options
        self.metrics.swaps_attempted += 1

        try:
            swap_tx = await self._build(quote, user_public_key, options)
            try:
                transaction = decode_swap_transaction(swap_tx.swap_transaction)
            except Exception as e:
                raise BuildFailure(f"Could not decode swap transaction: {e}") from e
            signed = await self._sign(sign_transaction, transaction)
            signature = await self._broadcast(signed, options)
        except SwapStageError as e:
            self.metrics.swaps_failed += 1
            logger.error(f"Swap failed ({e.kind.value}): {e.message}")
            return SwapResult(
                signature="",
                status=SwapStatus.FAILED,
                input_amount=quote.in_amount,
                output_amount=quote.out_amount,
                input_asset=quote.input_asset,
                output_asset=quote.output_asset,
                error=e.message,
                error_kind=e.kind,
            )

        self.metrics.swaps_submitted += 1
        logger.info(f"Swap submitted: {signature}")

        result = SwapResult(
            signature=signature,
            status=SwapStatus.PENDING,
            input_amount=quote.in_amount,
            output_amount=quote.out_amount,
            input_asset=quote.input_asset,
            output_asset=quote.output_asset,
        )

        task = asyncio.create_task(self._confirm(result), name=f"confirm-{signature[:16]}")
        self._confirmations[task] = result
        task.add_done_callback(self._forget_confirmation)

        return result

    def build_swap_request(
        self,
        quote: Quote,
        user_public_key: str,
        options: Optional[SwapOptions] = None,
    ) -> Dict[str, Any]:
        """Request body for the aggregator's swap endpoint."""
        options = options or self.default_options
        body: Dict[str, Any] = {
            "quoteResponse": quote.to_dict(),
            "userPublicKey": user_public_key,
            "wrapAndUnwrapSol": options.wrap_and_unwrap_sol,
            "dynamicComputeUnitLimit": options.dynamic_compute_unit_limit,
        }
        if options.prioritization_fee_lamports is not None:
            body["prioritizationFeeLamports"] = options.prioritization_fee_lamports
        if options.fee_account:
            body["feeAccount"] = options.fee_account
        return body

    async def _build(self, quote: Quote, user_public_key: str, options: SwapOptions) -> SwapTransaction:
        body = self.build_swap_request(quote, user_public_key, options)
        try:
            swap_tx = await self.jupiter.build_swap_transaction(body)
        except JupiterAPIError as e:
            raise BuildFailure(f"Failed to build swap transaction: {e.message}") from e
        except Exception as e:
            raise BuildFailure(_error_message(e)) from e

        if not swap_tx or not swap_tx.swap_transaction:
            raise BuildFailure("No swap transaction received")
        return swap_tx

    async def _sign(self, sign_transaction: SignTransaction, transaction: Any) -> Any:
        try:
            signed = sign_transaction(transaction)
            if inspect.isawaitable(signed):
                signed = await signed
        except SignFailure:
            raise
        except Exception as e:
            raise SignFailure(_error_message(e)) from e

        if signed is None:
            raise SignFailure("Signing callback returned no transaction")
        return signed

    async def _broadcast(self, signed: Any, options: SwapOptions) -> str:
        try:
            raw = serialize_transaction(signed)
            return await self.gateway.send_raw_transaction(raw, skip_preflight=options.skip_preflight)
        except Exception as e:
            raise BroadcastFailure(_error_message(e)) from e

    async def _confirm(self, result: SwapResult) -> None:
        """Background confirmation; every outcome ends as a mutation of result."""
        try:
            await poll_confirmation(
                self.gateway,
                result.signature,
                poll_interval=self.poll_interval,
                max_attempts=self.max_poll_attempts,
                commitment=self.commitment,
            )
        except ConfirmationFailure as e:
            self.metrics.swaps_failed += 1
            logger.warning(f"Swap {result.signature} failed: {e.message}")
            result.mark_failed(e.message, e.kind)
        except asyncio.CancelledError:
            self.metrics.swaps_failed += 1
            logger.warning(f"Confirmation of {result.signature} cancelled")
            result.mark_failed("Confirmation polling cancelled", SwapErrorKind.CONFIRMATION_FAILED)
            raise
        except Exception as e:
            self.metrics.swaps_failed += 1
            logger.error(f"Error confirming {result.signature}: {e}")
            result.mark_failed(_error_message(e), SwapErrorKind.CONFIRMATION_FAILED)
        else:
            self.metrics.swaps_confirmed += 1
            result.mark_confirmed()

    # ========================================================================
    # BACKGROUND TASKS
    # ========================================================================

    def _forget_confirmation(self, task: asyncio.Task) -> None:
        result = self._confirmations.pop(task, None)
        # Cancelled before its first step: _confirm never ran
        if result is not None and not result.is_terminal:
            self.metrics.swaps_failed += 1
            result.mark_failed("Confirmation polling cancelled", SwapErrorKind.CONFIRMATION_FAILED)

    @property
    def pending_confirmations(self) -> int:
        return len(self._confirmations)

    async def wait_for_confirmations(self, timeout: Optional[float] = None) -> None:
        """Wait for every running confirmation task (e.g. before shutdown)."""
        if not self._confirmations:
            return
        await asyncio.wait(list(self._confirmations), timeout=timeout)

    async def cancel_confirmations(self) -> int:
        """
        Stop observing every running confirmation; each result ends ``failed``.

        The transactions themselves are already broadcast and are not affected.
        Returns the number of tasks cancelled.
        """
        tasks = list(self._confirmations)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        return len(tasks)

    # ========================================================================
    # DERIVED CALCULATIONS
    # ========================================================================

    def calculate_price_impact(self, quote: Quote) -> Decimal:
        return pricing.calculate_price_impact(quote)

    def calculate_minimum_received(self, quote: Quote) -> int:
        return pricing.calculate_minimum_received(quote)

    def get_route_summary(self, quote: Quote) -> List[str]:
        return pricing.get_route_summary(quote)


__all__ = [
    "SwapStatus",
    "SwapResult",
    "SwapOptions",
    "SwapMetrics",
    "SwapErrorKind",
    "SwapOrchestrator",
]

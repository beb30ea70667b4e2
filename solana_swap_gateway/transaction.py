import asyncio
import base64
import binascii
import logging
from enum import Enum
from typing import Any

from solders.transaction import VersionedTransaction

from .exceptions import ConfirmationFailure, ConfirmationTimeout

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL = 2.0
DEFAULT_MAX_POLL_ATTEMPTS = 30


class CommitmentLevel(str, Enum):
    PROCESSED = "processed"
    CONFIRMED = "confirmed"
    FINALIZED = "finalized"


class TransactionStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    FINALIZED = "finalized"
    FAILED = "failed"
    NOT_FOUND = "not_found"


def decode_swap_transaction(payload: str) -> VersionedTransaction:
    """Deserialize the aggregator's base64 transaction."""
    try:
        raw = base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError) as e:
        raise ValueError(f"Swap transaction is not valid base64: {e}") from e
    return VersionedTransaction.from_bytes(raw)


def serialize_transaction(tx: Any) -> bytes:
    """Wire bytes of a signed transaction (already-serialized input passes through)."""
    return bytes(tx)


def classify_signature_status(
    status: Any,
    commitment: CommitmentLevel = CommitmentLevel.CONFIRMED,
) -> TransactionStatus:
    """Map an RPC signature status (or None) to a TransactionStatus."""
    if status is None:
        return TransactionStatus.NOT_FOUND

    if getattr(status, "err", None):
        return TransactionStatus.FAILED

    confirmation_status = getattr(status, "confirmation_status", None)
    if confirmation_status is None:
        return TransactionStatus.PENDING

    status_str = str(confirmation_status).lower()
    if "finalized" in status_str:
        return TransactionStatus.FINALIZED
    if "confirmed" in status_str and commitment != CommitmentLevel.FINALIZED:
        return TransactionStatus.CONFIRMED
    if "processed" in status_str and commitment == CommitmentLevel.PROCESSED:
        return TransactionStatus.CONFIRMED
    return TransactionStatus.PENDING


async def poll_confirmation(
    gateway: Any,
    signature: str,
    poll_interval: float = DEFAULT_POLL_INTERVAL,
    max_attempts: int = DEFAULT_MAX_POLL_ATTEMPTS,
    commitment: CommitmentLevel = CommitmentLevel.CONFIRMED,
) -> TransactionStatus:
    """
    Poll the gateway until signature reaches commitment.

    Returns CONFIRMED or FINALIZED. Raises ConfirmationFailure when the
    transaction failed on-chain and ConfirmationTimeout after max_attempts
    polls. Gateway errors propagate.
    """
    commitment = CommitmentLevel(commitment)

    for attempt in range(1, max_attempts + 1):
        status = await gateway.get_signature_status(signature)
        result = classify_signature_status(status, commitment)

        if result in (TransactionStatus.CONFIRMED, TransactionStatus.FINALIZED):
            logger.info(f"Transaction {result.value}: {signature}")
            return result

        if result == TransactionStatus.FAILED:
            on_chain_error = str(getattr(status, "err", "") or "")
            raise ConfirmationFailure(
                "Transaction failed on-chain",
                signature=signature,
                on_chain_error=on_chain_error,
                context={"err": on_chain_error},
            )

        logger.debug(f"Transaction {signature} {result.value} (poll {attempt}/{max_attempts})")
        if attempt < max_attempts:
            await asyncio.sleep(poll_interval)

    raise ConfirmationTimeout(
        f"Transaction not confirmed after {max_attempts} polls",
        signature=signature,
        attempts=max_attempts,
    )


__all__ = [
    "CommitmentLevel",
    "TransactionStatus",
    "decode_swap_transaction",
    "serialize_transaction",
    "classify_signature_status",
    "poll_confirmation",
    "DEFAULT_POLL_INTERVAL",
    "DEFAULT_MAX_POLL_ATTEMPTS",
]

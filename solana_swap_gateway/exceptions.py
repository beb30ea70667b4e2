"""
Exception Hierarchy for the Solana Swap Gateway.

Every error raised by the gateway, the quote service and the swap
orchestrator derives from SwapGatewayError.

Each exception includes:
- Unique error code for logging and debugging
- Descriptive message
- Optional context dictionary for additional debugging info
- is_recoverable flag indicating if the caller may try again
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional


class SwapErrorKind(str, Enum):
    """Category of a failed swap, set by the stage that failed."""
    BUILD_FAILED = "build_failed"
    USER_REJECTED = "user_rejected"
    SIGN_FAILED = "sign_failed"
    BROADCAST_FAILED = "broadcast_failed"
    CONFIRMATION_FAILED = "confirmation_failed"
    CONFIRMATION_TIMEOUT = "confirmation_timeout"


# =============================================================================
# BASE EXCEPTIONS
# =============================================================================

@dataclass
class SwapGatewayError(Exception):
    """
    Base exception for all gateway errors.

    Attributes:
        message: Human-readable error description
        error_code: Unique identifier for the error type (e.g., "RPC_001")
        context: Optional dictionary with debugging information
        is_recoverable: Whether the operation can be invoked again
        timestamp: When the error occurred
    """
    message: str
    error_code: str = "GENERAL_001"
    context: dict[str, Any] = field(default_factory=dict)
    is_recoverable: bool = False
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def __post_init__(self) -> None:
        super().__init__(self.format_message())

    def format_message(self) -> str:
        """Format the error message with code and context."""
        base = f"[{self.error_code}] {self.message}"
        if self.context:
            context_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            base += f" | Context: {context_str}"
        return base

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to dictionary for logging/serialization."""
        return {
            "error_code": self.error_code,
            "message": self.message,
            "context": self.context,
            "is_recoverable": self.is_recoverable,
            "timestamp": self.timestamp.isoformat(),
            "exception_type": self.__class__.__name__,
        }

    def __str__(self) -> str:
        return self.format_message()

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"error_code={self.error_code!r}, "
            f"message={self.message!r}, "
            f"is_recoverable={self.is_recoverable})"
        )


@dataclass
class ConfigurationError(SwapGatewayError):
    """Error in gateway configuration or settings."""
    error_code: str = "CONFIG_001"


# =============================================================================
# RPC EXCEPTIONS
# =============================================================================

@dataclass
class RPCError(SwapGatewayError):
    """Base exception for RPC-related errors."""
    error_code: str = "RPC_000"
    rpc_endpoint: Optional[str] = None


@dataclass
class EndpointFailure(RPCError):
    """A single endpoint failed (network error, timeout or bad response)."""
    error_code: str = "RPC_001"
    is_recoverable: bool = True
    endpoint_name: Optional[str] = None


@dataclass
class AllEndpointsFailed(RPCError):
    """Every configured endpoint failed during one call."""
    error_code: str = "RPC_002"
    is_recoverable: bool = True
    operation: Optional[str] = None
    failures: list[EndpointFailure] = field(default_factory=list)

    @property
    def endpoints_tried(self) -> list[str]:
        return [f.endpoint_name or f.rpc_endpoint or "?" for f in self.failures]


@dataclass
class GatewayClosed(RPCError):
    """The gateway was closed; no further RPC calls are made."""
    error_code: str = "RPC_003"
    operation: Optional[str] = None


# =============================================================================
# VALIDATION EXCEPTIONS
# =============================================================================

@dataclass
class ValidationError(SwapGatewayError):
    """Base exception for caller errors. Never retried."""
    error_code: str = "VAL_000"
    field_name: Optional[str] = None


@dataclass
class InvalidAddressError(ValidationError):
    """Invalid Solana address format."""
    error_code: str = "VAL_001"
    invalid_address: Optional[str] = None


@dataclass
class InvalidAmountError(ValidationError):
    """Amount is not a positive integer in base units."""
    error_code: str = "VAL_002"
    amount: Optional[Any] = None


@dataclass
class InvalidSlippageError(ValidationError):
    """Slippage outside [0, 10000] basis points."""
    error_code: str = "VAL_003"
    slippage_bps: Optional[Any] = None


@dataclass
class InvalidAssetPairError(ValidationError):
    """Input and output assets are missing or identical."""
    error_code: str = "VAL_004"
    input_asset: Optional[str] = None
    output_asset: Optional[str] = None


# =============================================================================
# JUPITER / QUOTE EXCEPTIONS
# =============================================================================

@dataclass
class JupiterError(SwapGatewayError):
    """Base exception for swap aggregator errors."""
    error_code: str = "JUP_000"


@dataclass
class JupiterAPIError(JupiterError):
    """Aggregator returned an error response or could not be reached."""
    error_code: str = "JUP_001"
    is_recoverable: bool = True
    status_code: Optional[int] = None


@dataclass
class QuoteUnavailable(JupiterError):
    """The aggregator returned no usable quote."""
    error_code: str = "JUP_002"
    is_recoverable: bool = True
    input_asset: Optional[str] = None
    output_asset: Optional[str] = None
    amount: Optional[int] = None


# =============================================================================
# SWAP STAGE EXCEPTIONS
# =============================================================================

@dataclass
class SwapStageError(SwapGatewayError):
    """Failure of one stage of swap execution."""
    error_code: str = "SWAP_000"
    kind: SwapErrorKind = SwapErrorKind.BUILD_FAILED
    signature: Optional[str] = None


@dataclass
class BuildFailure(SwapStageError):
    """Aggregator could not produce a transaction for the quote."""
    error_code: str = "SWAP_001"
    is_recoverable: bool = True
    kind: SwapErrorKind = SwapErrorKind.BUILD_FAILED


@dataclass
class SignFailure(SwapStageError):
    """Signing callback raised."""
    error_code: str = "SWAP_002"
    is_recoverable: bool = True
    kind: SwapErrorKind = SwapErrorKind.SIGN_FAILED


@dataclass
class UserRejected(SignFailure):
    """
    The wallet user declined to sign.

    Signing callbacks raise this to report an explicit rejection.
    """
    error_code: str = "SWAP_003"
    kind: SwapErrorKind = SwapErrorKind.USER_REJECTED


@dataclass
class BroadcastFailure(SwapStageError):
    """Submission of the signed transaction failed."""
    error_code: str = "SWAP_004"
    is_recoverable: bool = True
    kind: SwapErrorKind = SwapErrorKind.BROADCAST_FAILED


@dataclass
class ConfirmationFailure(SwapStageError):
    """Transaction failed on-chain or its confirmation could not be observed."""
    error_code: str = "SWAP_005"
    kind: SwapErrorKind = SwapErrorKind.CONFIRMATION_FAILED
    on_chain_error: Optional[str] = None


@dataclass
class ConfirmationTimeout(ConfirmationFailure):
    """Confirmation polling exhausted its attempts."""
    error_code: str = "SWAP_006"
    is_recoverable: bool = True
    kind: SwapErrorKind = SwapErrorKind.CONFIRMATION_TIMEOUT
    attempts: Optional[int] = None


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================

def is_retryable(error: Exception) -> bool:
    """Check if the caller may invoke the failed operation again."""
    if isinstance(error, SwapGatewayError):
        return error.is_recoverable
    return False


def wrap_exception(
    original: Exception,
    wrapper_class: type[SwapGatewayError],
    message: Optional[str] = None,
    **kwargs: Any
) -> SwapGatewayError:
    """Wrap a generic exception in a SwapGatewayError subclass."""
    if isinstance(original, SwapGatewayError):
        msg = message or original.message
    else:
        msg = message or str(original) or type(original).__name__
    context = kwargs.pop("context", {})
    context["original_error"] = type(original).__name__

    return wrapper_class(
        message=msg,
        context=context,
        **kwargs
    )


__all__ = [
    "SwapErrorKind",
    "SwapGatewayError", "ConfigurationError",
    "RPCError", "EndpointFailure", "AllEndpointsFailed", "GatewayClosed",
    "ValidationError", "InvalidAddressError", "InvalidAmountError",
    "InvalidSlippageError", "InvalidAssetPairError",
    "JupiterError", "JupiterAPIError", "QuoteUnavailable",
    "SwapStageError", "BuildFailure", "SignFailure", "UserRejected",
    "BroadcastFailure", "ConfirmationFailure", "ConfirmationTimeout",
    "is_retryable", "wrap_exception",
]

import base58
from solders.pubkey import Pubkey

from .exceptions import (
    InvalidAddressError,
    InvalidAmountError,
    InvalidAssetPairError,
    InvalidSlippageError,
)

SOLANA_ADDRESS_LENGTH = 32

MIN_SLIPPAGE_BPS = 0
MAX_SLIPPAGE_BPS = 10000
MAX_BASE_UNITS = 2**64 - 1


def validate_solana_address(address, field_name: str = "address") -> str:
    if isinstance(address, Pubkey):
        return str(address)

    if not isinstance(address, str):
        raise InvalidAddressError(
            f"Address must be a string, got {type(address).__name__}",
            invalid_address=str(address)[:50],
            field_name=field_name,
        )

    address = address.strip()

    if not address:
        raise InvalidAddressError("Address cannot be empty", invalid_address="", field_name=field_name)

    if len(address) < 32 or len(address) > 44:
        raise InvalidAddressError(
            f"Invalid address length: {len(address)} characters",
            invalid_address=address, field_name=field_name
        )

    try:
        decoded = base58.b58decode(address)
    except ValueError as e:
        raise InvalidAddressError(
            f"Invalid base58 encoding: {e}",
            invalid_address=address, field_name=field_name
        ) from e

    if len(decoded) != SOLANA_ADDRESS_LENGTH:
        raise InvalidAddressError(
            f"Decoded address has wrong length: {len(decoded)} bytes (expected {SOLANA_ADDRESS_LENGTH})",
            invalid_address=address, field_name=field_name
        )

    return address


def to_pubkey(address, field_name: str = "address") -> Pubkey:
    if isinstance(address, Pubkey):
        return address
    return Pubkey.from_string(validate_solana_address(address, field_name))


def validate_base_units(amount, field_name: str = "amount") -> int:
    """Amounts are positive integers in the asset's smallest unit."""
    # bool is an int subclass; True is not an amount
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise InvalidAmountError(
            f"Amount must be an integer in base units, got {type(amount).__name__}",
            amount=amount, field_name=field_name
        )
    if amount <= 0:
        raise InvalidAmountError(
            f"Amount must be positive, got {amount}",
            amount=amount, field_name=field_name
        )
    if amount > MAX_BASE_UNITS:
        raise InvalidAmountError(
            f"Amount exceeds u64 range: {amount}",
            amount=amount, field_name=field_name
        )
    return amount


def validate_slippage_bps(slippage_bps, field_name: str = "slippage_bps") -> int:
    if isinstance(slippage_bps, bool) or not isinstance(slippage_bps, int):
        raise InvalidSlippageError(
            f"Slippage must be an integer number of basis points, got {type(slippage_bps).__name__}",
            slippage_bps=slippage_bps, field_name=field_name
        )
    if not MIN_SLIPPAGE_BPS <= slippage_bps <= MAX_SLIPPAGE_BPS:
        raise InvalidSlippageError(
            f"Slippage must be between {MIN_SLIPPAGE_BPS} and {MAX_SLIPPAGE_BPS} bps, got {slippage_bps}",
            slippage_bps=slippage_bps, field_name=field_name
        )
    return slippage_bps


def validate_asset_pair(input_asset, output_asset) -> tuple:
    for value, name in ((input_asset, "input_asset"), (output_asset, "output_asset")):
        if not isinstance(value, str) or not value.strip():
            raise InvalidAssetPairError(
                f"{name} must be a non-empty asset identifier",
                input_asset=input_asset, output_asset=output_asset, field_name=name
            )
    input_asset, output_asset = input_asset.strip(), output_asset.strip()
    if input_asset == output_asset:
        raise InvalidAssetPairError(
            "Input and output assets must differ",
            input_asset=input_asset, output_asset=output_asset
        )
    return input_asset, output_asset


def validate_quote_request(input_asset, output_asset, amount, slippage_bps) -> tuple:
    input_asset, output_asset = validate_asset_pair(input_asset, output_asset)
    return (
        input_asset,
        output_asset,
        validate_base_units(amount),
        validate_slippage_bps(slippage_bps),
    )


__all__ = [
    "validate_solana_address",
    "to_pubkey",
    "validate_base_units",
    "validate_slippage_bps",
    "validate_asset_pair",
    "validate_quote_request",
    "MIN_SLIPPAGE_BPS",
    "MAX_SLIPPAGE_BPS",
]

"""
Configuration Module for the Solana Swap Gateway

Settings are loaded from environment variables (and an optional .env file)
using Pydantic v2 BaseSettings, with validation and type safety.

Usage:
    from solana_swap_gateway.config import get_settings
    print(get_settings().solana.endpoint_pairs())
"""

from __future__ import annotations

from enum import Enum
from functools import lru_cache
from pathlib import Path
from typing import Any, List, Optional, Tuple

from pydantic import (
    AnyHttpUrl,
    Field,
    TypeAdapter,
    field_validator,
    model_validator,
)
from pydantic_settings import BaseSettings, SettingsConfigDict


# =============================================================================
# CONSTANTS
# =============================================================================

DEFAULT_RPC_ENDPOINTS: Tuple[Tuple[str, str], ...] = (
    ("Mainnet Beta", "https://api.mainnet-beta.solana.com"),
    ("Project Serum", "https://solana-api.projectserum.com"),
    ("Ankr", "https://rpc.ankr.com/solana"),
)

_HTTP_URL = TypeAdapter(AnyHttpUrl)


def format_endpoint_pairs(pairs: Tuple[Tuple[str, str], ...]) -> str:
    return ",".join(f"{name}={url}" for name, url in pairs)


def parse_endpoint_pairs(raw: str) -> List[Tuple[str, str]]:
    """
    Parse "Name=url,Name=url" into (name, url) pairs.

    A bare URL without a name is named after its position ("RPC 1", ...).
    """
    pairs: List[Tuple[str, str]] = []
    for position, item in enumerate(raw.split(","), start=1):
        item = item.strip()
        if not item:
            continue
        if "=" in item and not item.lower().startswith(("http://", "https://")):
            name, url = item.split("=", 1)
            name, url = name.strip(), url.strip()
        else:
            name, url = f"RPC {position}", item
        try:
            _HTTP_URL.validate_python(url)
        except ValueError as e:
            raise ValueError(f"invalid RPC endpoint URL {url!r}") from e
        pairs.append((name or f"RPC {position}", url))
    return pairs


# =============================================================================
# ENUMS
# =============================================================================

class LogLevel(str, Enum):
    """Logging level options."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


# =============================================================================
# BASE CONFIGURATION
# =============================================================================

class BaseConfig(BaseSettings):
    """Base configuration with common settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
    )


# =============================================================================
# SOLANA RPC CONFIGURATION
# =============================================================================

class SolanaRPCSettings(BaseConfig):
    """Solana RPC endpoint pool configuration."""

    model_config = SettingsConfigDict(
        env_prefix="SOLANA_",
        env_file=".env",
        extra="ignore",
    )

    rpc_endpoints: str = Field(
        default=format_endpoint_pairs(DEFAULT_RPC_ENDPOINTS),
        description="Ordered endpoints as 'Name=url,Name=url' (primary first)",
    )

    commitment: str = Field(
        default="confirmed",
        pattern="^(processed|confirmed|finalized)$",
        description="Commitment level for reads",
    )

    attempt_timeout: float = Field(
        default=10.0,
        gt=0,
        le=120.0,
        description="Per-endpoint attempt timeout in seconds",
    )

    send_max_retries: int = Field(
        default=3,
        ge=0,
        le=10,
        description="maxRetries passed to the node when broadcasting",
    )

    @field_validator("rpc_endpoints")
    @classmethod
    def validate_endpoints(cls, v: str) -> str:
        """Reject an empty endpoint list or malformed URLs."""
        if not parse_endpoint_pairs(v):
            raise ValueError("at least one RPC endpoint is required")
        return v

    def endpoint_pairs(self) -> List[Tuple[str, str]]:
        return parse_endpoint_pairs(self.rpc_endpoints)


# =============================================================================
# JUPITER CONFIGURATION
# =============================================================================

class JupiterSettings(BaseConfig):
    """Jupiter aggregator API configuration."""

    model_config = SettingsConfigDict(
        env_prefix="JUPITER_",
        env_file=".env",
        extra="ignore",
    )

    api_url: AnyHttpUrl = Field(
        default="https://quote-api.jup.ag/v6",
        description="Jupiter quote/swap API base URL",
    )

    timeout: float = Field(
        default=30.0,
        gt=0,
        le=120.0,
        description="API request timeout in seconds",
    )

    quote_cache_ttl: float = Field(
        default=5.0,
        ge=0,
        le=300.0,
        description="Seconds an identical quote request is served from cache",
    )

    quote_cache_size: int = Field(
        default=1000,
        ge=1,
        description="Maximum cached quotes",
    )

    wrap_and_unwrap_sol: bool = Field(
        default=True,
        description="Wrap/unwrap native SOL automatically",
    )

    dynamic_compute_unit_limit: bool = Field(
        default=True,
        description="Let the aggregator size the compute unit limit",
    )

    prioritization_fee_lamports: Optional[int] = Field(
        default=None,
        ge=0,
        le=100_000_000,
        description="Priority fee in lamports (None = aggregator default)",
    )


# =============================================================================
# CONFIRMATION CONFIGURATION
# =============================================================================

class ConfirmationSettings(BaseConfig):
    """Background confirmation polling bounds."""

    model_config = SettingsConfigDict(
        env_prefix="CONFIRM_",
        env_file=".env",
        extra="ignore",
    )

    poll_interval: float = Field(
        default=2.0,
        gt=0,
        le=60.0,
        description="Seconds between signature status polls",
    )

    max_attempts: int = Field(
        default=30,
        ge=1,
        le=1000,
        description="Polls before giving up on confirmation",
    )

    commitment: str = Field(
        default="confirmed",
        pattern="^(confirmed|finalized)$",
        description="Commitment that counts as confirmed",
    )


# =============================================================================
# LOGGING CONFIGURATION
# =============================================================================

class LoggingSettings(BaseConfig):
    """Logging configuration."""

    model_config = SettingsConfigDict(
        env_prefix="LOG_",
        env_file=".env",
        extra="ignore",
    )

    level: LogLevel = Field(
        default=LogLevel.INFO,
        description="Logging level",
    )

    format: str = Field(
        default="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        description="Log message format",
    )

    date_format: str = Field(
        default="%Y-%m-%d %H:%M:%S",
        description="Log date format",
    )

    file_enabled: bool = Field(
        default=False,
        description="Enable file logging",
    )

    file_path: Path = Field(
        default=Path("logs/swap_gateway.log"),
        description="Log file path",
    )

    file_max_bytes: int = Field(
        default=10 * 1024 * 1024,  # 10 MB
        ge=1024,
        description="Max log file size in bytes",
    )

    file_backup_count: int = Field(
        default=5,
        ge=0,
        le=100,
        description="Number of backup log files",
    )

    json_format: bool = Field(
        default=False,
        description="Use JSON log format",
    )


# =============================================================================
# APPLICATION SETTINGS (MAIN)
# =============================================================================

class Settings(BaseConfig):
    """
    Main settings aggregating all configuration sections.

    Usage:
        settings = get_settings()
        settings.confirmation.max_attempts
    """

    solana: SolanaRPCSettings = Field(default_factory=SolanaRPCSettings)
    jupiter: JupiterSettings = Field(default_factory=JupiterSettings)
    confirmation: ConfirmationSettings = Field(default_factory=ConfirmationSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    @model_validator(mode="after")
    def validate_confirmation_window(self) -> "Settings":
        """Confirmation must be allowed to outlive one RPC attempt."""
        window = self.confirmation.poll_interval * self.confirmation.max_attempts
        if window < self.solana.attempt_timeout:
            raise ValueError(
                f"confirmation window ({window:.1f}s) is shorter than the "
                f"RPC attempt timeout ({self.solana.attempt_timeout:.1f}s)"
            )
        return self

    def to_safe_dict(self) -> dict[str, Any]:
        """Export settings for display."""
        return self.model_dump(mode="json")


# =============================================================================
# SINGLETON & CACHING
# =============================================================================

@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


def reload_settings() -> Settings:
    """Clear settings cache and reload from environment."""
    get_settings.cache_clear()
    return get_settings()


__all__ = [
    "Settings",
    "SolanaRPCSettings",
    "JupiterSettings",
    "ConfirmationSettings",
    "LoggingSettings",
    "LogLevel",
    "DEFAULT_RPC_ENDPOINTS",
    "parse_endpoint_pairs",
    "format_endpoint_pairs",
    "get_settings",
    "reload_settings",
]

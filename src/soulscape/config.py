"""Configuration loading for the evolution service.

Pydantic-based settings read from environment variables and a ``.env`` file.
Private keys are held as ``SecretStr`` and are never logged or echoed in
error messages.
"""

from __future__ import annotations

import logging
import re
from functools import lru_cache
from typing import Any

from pydantic import Field, SecretStr, ValidationInfo, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)

_HEX_KEY = re.compile(r"^[0-9a-fA-F]{64}$")
_HEX_ADDRESS = re.compile(r"^0x[0-9a-fA-F]{40}$")

MEMORY_STORE_URL = "memory://"


class ConfigError(Exception):
    """Raised when configuration required for an operation is missing."""

    pass


def normalize_private_key(value: str, name: str) -> str:
    """Return a 0x-prefixed private key, or raise ValueError.

    Args:
        value: Raw key, with or without a 0x prefix.
        name: Variable name used in the error message.

    Raises:
        ValueError: If the key is not exactly 32 bytes of hex.
    """
    hex_part = value[2:] if value.startswith(("0x", "0X")) else value
    if not _HEX_KEY.match(hex_part):
        raise ValueError(f"{name} must be a 32-byte hex string")
    return f"0x{hex_part.lower()}"


class SoulscapeConfig(BaseSettings):
    """Runtime configuration.

    Environment Variables:
        EVOLUTION_PRIVATE_KEY: Hot key that signs evolveSpirit transactions.
        STORE_PRIVATE_KEY: Key presented to the entity store on writes.
        PAINTER_PRIVATE_KEY: Token holder key for operator painting (CLI only).
        SOUL_CONTRACT: Soul NFT contract address.
        GRAFFITI_CONTRACT: Graffiti wall contract address.
        CHAIN_RPC_URL / CHAIN_ID: Chain endpoint.
        EXPLORER_BASE_URL: Block-explorer API base.
        STORE_URL: Entity store endpoint ("memory://" for in-process).
        SNAPSHOT_TTL / STROKE_TTL: Entity lifetimes in seconds.
        REQUEST_TIMEOUT / RECEIPT_TIMEOUT: Bounded waits in seconds.
        SYNC_BLOCK_WINDOW / WALL_FALLBACK_BLOCK_WINDOW: Event scan horizons.
        WALL_DEFAULT_LIMIT: Default cap on returned wall strokes.
        READ_MAX_RETRIES / READ_RETRY_WAIT: Retry policy for idempotent reads.

    Example:
        >>> config = SoulscapeConfig()  # Loads from environment
        >>> config = SoulscapeConfig(_env_file=".env")
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Credentials
    evolution_private_key: SecretStr | None = Field(
        default=None,
        description="Private key of the hot evolution account",
    )
    store_private_key: SecretStr | None = Field(
        default=None,
        description="Private key used to authorize entity store writes",
    )
    painter_private_key: SecretStr | None = Field(
        default=None,
        description="Token holder key used by the CLI paint command",
    )

    # Contracts
    soul_contract: str | None = Field(default=None, description="Soul NFT contract address")
    graffiti_contract: str | None = Field(default=None, description="Graffiti wall contract")

    # Endpoints
    chain_rpc_url: str = Field(
        default="https://testnet-passet-hub-eth-rpc.polkadot.io",
        description="Chain JSON-RPC endpoint",
    )
    chain_id: int = Field(default=420420422, ge=1, description="Chain id")
    explorer_base_url: str = Field(
        default="https://blockscout-passet-hub.parity-testnet.parity.io",
        description="Block-explorer API base URL",
    )
    store_url: str = Field(default=MEMORY_STORE_URL, description="Entity store endpoint")

    # Lifetimes
    snapshot_ttl: int = Field(default=30 * 24 * 60 * 60, ge=1, description="Snapshot TTL (s)")
    stroke_ttl: int = Field(default=30 * 24 * 60 * 60, ge=1, description="Stroke TTL (s)")

    # Timeouts
    request_timeout: float = Field(default=20.0, gt=0, le=300.0, description="Per-call timeout")
    receipt_timeout: float = Field(default=120.0, gt=0, le=1800.0, description="Receipt wait")

    # Canvas
    sync_block_window: int = Field(default=10_000, ge=1, description="Syncer block horizon")
    wall_fallback_block_window: int = Field(
        default=5_000, ge=1, description="Fallback scan horizon for wall reads"
    )
    wall_default_limit: int = Field(default=500, ge=1, le=65536, description="Wall cap")

    # Read retries
    read_max_retries: int = Field(default=3, ge=1, le=10, description="Read attempts")
    read_retry_wait: float = Field(default=0.5, ge=0.0, le=30.0, description="Initial backoff")

    @field_validator(
        "evolution_private_key", "store_private_key", "painter_private_key", mode="before"
    )
    @classmethod
    def validate_private_key(cls, v: Any, info: ValidationInfo) -> Any:
        """Reject keys that are not exactly 32 bytes of hex."""
        if v is None or v == "":
            return None
        raw = v.get_secret_value() if isinstance(v, SecretStr) else str(v).strip()
        return SecretStr(normalize_private_key(raw, info.field_name.upper()))

    @field_validator("soul_contract", "graffiti_contract", mode="before")
    @classmethod
    def validate_contract(cls, v: Any, info: ValidationInfo) -> Any:
        """Contract addresses must be 0x followed by 40 hex characters."""
        if v is None or v == "":
            return None
        value = str(v).strip()
        if not _HEX_ADDRESS.match(value):
            raise ValueError(f"{info.field_name.upper()} is not a valid contract address")
        return value

    @property
    def uses_memory_store(self) -> bool:
        """True when the in-process entity store is selected."""
        return self.store_url.startswith(MEMORY_STORE_URL)

    def get_evolution_key(self) -> str | None:
        """Return the evolution key. Never logs the value."""
        if self.evolution_private_key is None:
            return None
        return self.evolution_private_key.get_secret_value()

    def get_store_key(self) -> str | None:
        """Return the store key. Never logs the value."""
        if self.store_private_key is None:
            return None
        return self.store_private_key.get_secret_value()

    def get_painter_key(self) -> str | None:
        """Return the painter key. Never logs the value."""
        if self.painter_private_key is None:
            return None
        return self.painter_private_key.get_secret_value()

    def validate_for_writes(self) -> None:
        """Check that everything an on-chain evolution needs is present.

        Raises:
            ConfigError: If the evolution key or Soul contract is missing.
        """
        if self.evolution_private_key is None:
            raise ConfigError("EVOLUTION_PRIVATE_KEY is not set")
        if self.soul_contract is None:
            raise ConfigError("SOUL_CONTRACT is not set")

    def __repr__(self) -> str:
        """Safe representation that never exposes keys."""
        return (
            f"SoulscapeConfig("
            f"chain_id={self.chain_id}, "
            f"rpc={self.chain_rpc_url}, "
            f"store={self.store_url}, "
            f"soul={self.soul_contract or 'not set'}, "
            f"graffiti={self.graffiti_contract or 'not set'}, "
            f"timeout={self.request_timeout}s, "
            f"evolution_key={'*****' if self.evolution_private_key else 'not set'}, "
            f"store_key={'*****' if self.store_private_key else 'not set'}"
            f")"
        )

    __str__ = __repr__


@lru_cache
def get_config() -> SoulscapeConfig:
    """Load configuration once per process.

    Call ``get_config.cache_clear()`` to force a reload.
    """
    config = SoulscapeConfig()
    logger.info("Loaded configuration: %s", config)
    return config

"""Application settings using pydantic-settings."""

import re
from functools import lru_cache
from typing import Literal

from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

_ADDRESS_RE = re.compile(r"^0x[0-9a-fA-F]{40}$")


class Settings(BaseSettings):
    """NFT Mirror configuration from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = Field(default="NFT Mirror", description="Application name")
    app_version: str = Field(default="0.1.0", description="Application version")
    debug: bool = Field(default=False, description="Enable debug mode")
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO", description="Minimum log level"
    )

    # Server
    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=8000, ge=1, le=65535, description="Server port")

    # Projection store
    store_backend: Literal["supabase", "memory"] = Field(
        default="supabase", description="Projection store backend"
    )
    supabase_url: str = Field(
        default="http://localhost:54321", description="Supabase project URL"
    )
    supabase_key: SecretStr = Field(default=SecretStr(""), description="Supabase API key")
    postgres_schema: str = Field(
        default="nftmirror", description="PostgreSQL schema for projection tables"
    )

    # Chain
    rpc_url: str = Field(default="http://localhost:8545", description="EVM JSON-RPC endpoint")
    nft_contract_address: str = Field(description="ERC-721 registry contract address")
    marketplace_address: str = Field(description="Marketplace contract address")
    start_block: int = Field(default=0, ge=0, description="First block to ingest")
    confirmations: int = Field(
        default=2, ge=0, description="Blocks to wait before ingesting a log"
    )
    block_batch_size: int = Field(
        default=2000, ge=1, le=100_000, description="Blocks per eth_getLogs call"
    )
    poll_interval_seconds: float = Field(
        default=5.0, gt=0, description="Seconds between ingestion polls"
    )
    ingestion_enabled: bool = Field(
        default=True, description="Start the ingestion worker with the app"
    )

    # Metadata enrichment
    metadata_enabled: bool = Field(default=True, description="Fetch token metadata on mint")
    ipfs_gateway: str = Field(default="https://ipfs.io", description="IPFS HTTP gateway")
    arweave_gateway: str = Field(
        default="https://arweave.net", description="Arweave HTTP gateway"
    )
    metadata_timeout_seconds: float = Field(
        default=5.0, gt=0, le=60, description="Deadline for one metadata fetch"
    )

    # Projector
    projector_max_attempts: int = Field(
        default=5, ge=1, le=50, description="Read-compute-write attempts per event"
    )
    projector_concurrency: int = Field(
        default=8, ge=1, le=256, description="Events applied concurrently per batch"
    )

    # Circuit Breaker
    circuit_breaker_threshold: int = Field(
        default=5, ge=1, description="Failures before circuit opens"
    )
    circuit_breaker_cooldown: int = Field(
        default=30, ge=1, description="Seconds before half-open"
    )

    @field_validator("supabase_url", "rpc_url", "ipfs_gateway", "arweave_gateway")
    @classmethod
    def validate_http_url(cls, v: str) -> str:
        """Validate URL format."""
        if not v.startswith(("http://", "https://")):
            raise ValueError("URL must start with http:// or https://")
        return v.rstrip("/")

    @field_validator("nft_contract_address", "marketplace_address")
    @classmethod
    def validate_address(cls, v: str) -> str:
        """Validate and normalise a contract address."""
        if not _ADDRESS_RE.match(v):
            raise ValueError(f"Invalid contract address: {v}")
        return v.lower()


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()  # type: ignore[call-arg]  # Values from env

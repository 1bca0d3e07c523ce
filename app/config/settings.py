"""
Application settings.

Loads configuration from environment variables using pydantic-settings.
The Settings object is built once at process start and its sections are
passed explicitly into the components that need them.
"""

from decimal import Decimal
from pathlib import Path

from loguru import logger
from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from app.config.constants import (
    APPLY_BATCH_SIZE,
    BLOCKCHAIN_EXECUTOR_TIMEOUT,
    MEMBERSHIP_COMPRESS_INTERVAL_MINUTES,
    MEMBERSHIP_DELETION_GRACE_DAYS,
    MEMBERSHIP_EXPIRE_INTERVAL_MINUTES,
    PAYMENTS_SCAN_INTERVAL_SECONDS,
    SCAN_ADDRESS_CHUNK_SIZE,
    SCAN_BLOCK_CHUNK_DIVISOR,
    SCAN_FALLBACK_BLOCKS,
    SCAN_MAX_BLOCKS,
    SWEEP_BACKOFF_MULTIPLIER,
    SWEEP_BASE_DELAY_SECONDS,
    SWEEP_BATCH_SIZE,
    SWEEP_MAX_DELAY_SECONDS,
    SWEEP_MAX_RETRIES,
    SWEEP_RECORD_ATTEMPTS,
    SWEEP_RECORD_RETRY_DELAY_SECONDS,
    SWEEP_REQUEST_TIMEOUT_SECONDS,
    USDT_DECIMALS,
)


class PaymentsConfig(BaseModel):
    """Chain, reserve and sweep settings for the payment pipeline."""

    # Chain
    chain: str = "bsc"
    rpc_url: str
    usdt_contract: str
    token_decimals: int = Field(default=USDT_DECIMALS, ge=2, le=36)
    confirmations: int = Field(default=12, ge=0)
    rpc_timeout_seconds: float = Field(default=BLOCKCHAIN_EXECUTOR_TIMEOUT, gt=0)

    # Scanning
    scan_fallback_blocks: int = Field(default=SCAN_FALLBACK_BLOCKS, gt=0)
    scan_max_blocks: int = Field(default=SCAN_MAX_BLOCKS, gt=0)
    scan_block_chunk_size: int | None = Field(default=None, gt=0)
    scan_address_chunk_size: int = Field(default=SCAN_ADDRESS_CHUNK_SIZE, gt=0)
    scan_interval_seconds: int = Field(default=PAYMENTS_SCAN_INTERVAL_SECONDS, gt=0)

    # Reserve service
    reserve_url: str
    reserve_api_key: str
    treasury_address: str | None = None
    sweep_timeout_seconds: float = Field(default=SWEEP_REQUEST_TIMEOUT_SECONDS, gt=0)
    sweep_batch_size: int = Field(default=SWEEP_BATCH_SIZE, gt=0)
    sweep_max_retries: int = Field(default=SWEEP_MAX_RETRIES, ge=0)
    sweep_base_delay_seconds: float = Field(default=SWEEP_BASE_DELAY_SECONDS, gt=0)
    sweep_backoff_multiplier: float = Field(default=SWEEP_BACKOFF_MULTIPLIER, ge=1)
    sweep_max_delay_seconds: float = Field(default=SWEEP_MAX_DELAY_SECONDS, gt=0)
    sweep_record_attempts: int = Field(default=SWEEP_RECORD_ATTEMPTS, gt=0)
    sweep_record_retry_delay_seconds: float = Field(
        default=SWEEP_RECORD_RETRY_DELAY_SECONDS, ge=0
    )

    # Settlement
    apply_batch_size: int = Field(default=APPLY_BATCH_SIZE, gt=0)

    # Deposit address derivation (extended public key only)
    xpub: str | None = None
    xpub_path: Path | None = None

    @field_validator("reserve_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        """Normalize reserve URL so paths can be appended."""
        return v.rstrip("/")

    @model_validator(mode="after")
    def set_block_chunk_default(self) -> "PaymentsConfig":
        """Derive the block chunk size from the scan window if unset."""
        if self.scan_block_chunk_size is None:
            self.scan_block_chunk_size = max(
                1, self.scan_max_blocks // SCAN_BLOCK_CHUNK_DIVISOR
            )
        return self

    @model_validator(mode="after")
    def load_xpub(self) -> "PaymentsConfig":
        """Read the extended public key from file when not given inline."""
        if not self.xpub and self.xpub_path:
            try:
                self.xpub = self.xpub_path.read_text(encoding="utf-8").strip()
            except OSError as e:
                raise ValueError(
                    f"Cannot read PAYMENTS__XPUB_PATH ({self.xpub_path}): {e}"
                ) from e
        if not self.xpub:
            raise ValueError(
                "Deposit xpub is required. "
                "Set PAYMENTS__XPUB or PAYMENTS__XPUB_PATH in .env file."
            )
        return self

    @property
    def units_per_cent(self) -> int:
        """Token base units per USD cent (10_000 for a 6-decimal token)."""
        return 10 ** (self.token_decimals - 2)


class MembershipConfig(BaseModel):
    """Membership lifecycle and commission settings."""

    deletion_grace_days: int = Field(default=MEMBERSHIP_DELETION_GRACE_DAYS, ge=0)
    expire_interval_minutes: int = Field(
        default=MEMBERSHIP_EXPIRE_INTERVAL_MINUTES, gt=0
    )
    compress_interval_minutes: int = Field(
        default=MEMBERSHIP_COMPRESS_INTERVAL_MINUTES, gt=0
    )

    # Commission split
    pool_percent: Decimal = Field(default=Decimal("0.50"), gt=0, le=1)
    sponsor_percent: Decimal = Field(default=Decimal("0.20"), ge=0, le=1)
    network_percent: Decimal = Field(default=Decimal("0.05"), ge=0, le=1)
    max_upline_depth: int = Field(
        default=7, ge=1, description="Sponsor level plus network levels"
    )

    @model_validator(mode="after")
    def validate_pool(self) -> "MembershipConfig":
        """Sponsor and network shares must fit inside the pool."""
        distributable = (
            self.sponsor_percent
            + self.network_percent * (self.max_upline_depth - 1)
        )
        if distributable > self.pool_percent:
            raise ValueError(
                f"Commission shares ({distributable}) exceed pool "
                f"({self.pool_percent})"
            )
        return self


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database
    database_url: str
    database_echo: bool = False

    # Redis (for Dramatiq)
    redis_host: str = "localhost"
    redis_port: int = 6379
    redis_password: str | None = None
    redis_db: int = 0

    # Application
    environment: str = "production"
    debug: bool = False
    log_level: str = "INFO"
    log_file: str | None = "logs/settlement.log"
    health_check_port: int = Field(
        default=8081, ge=1, le=65535, description="Health check HTTP server port"
    )

    # Sections
    payments: PaymentsConfig
    membership: MembershipConfig = Field(default_factory=MembershipConfig)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate loguru level name."""
        level = v.upper()
        allowed = {"TRACE", "DEBUG", "INFO", "SUCCESS", "WARNING", "ERROR", "CRITICAL"}
        if level not in allowed:
            raise ValueError(f"LOG_LEVEL must be one of {sorted(allowed)}")
        return level

    @model_validator(mode="after")
    def validate_production(self) -> "Settings":
        """Validate production-specific requirements."""
        if self.environment == "production":
            if self.debug:
                raise ValueError(
                    "DEBUG must be False in production environment. "
                    "Set DEBUG=false in your .env file."
                )
            if not self.payments.treasury_address:
                logger.warning(
                    "PAYMENTS__TREASURY_ADDRESS is not set. "
                    "Sweeps rely on the reserve service default destination."
                )
        return self


def get_settings() -> Settings:
    """
    Build settings from the environment.

    Called once by each process entry point; the result is passed down
    explicitly instead of being imported as a module global.
    """
    return Settings()

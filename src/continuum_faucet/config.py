"""Configuration management for the faucet using Pydantic Settings."""

from enum import Enum

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class DistributionMethod(str, Enum):
    """Contract function called to hand out tokens."""

    MINT = "mint"
    TRANSFER = "transfer"


class FaucetConfig(BaseSettings):
    """Faucet service configuration loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
    )

    # Storage
    database_url: str | None = Field(default=None, alias="FAUCET_DATABASE_URL")

    # Network
    default_rpc_url: str | None = Field(default=None, alias="FAUCET_RPC_URL")
    rpc_timeout_seconds: float = Field(default=10.0, alias="FAUCET_RPC_TIMEOUT", gt=0)

    # Wallet
    wallet_private_key: SecretStr | None = Field(default=None, alias="FAUCET_PRIVATE_KEY")
    wallet_private_key_file: str | None = Field(default=None, alias="FAUCET_PRIVATE_KEY_FILE")

    # Distribution
    distribution_method: DistributionMethod = Field(
        default=DistributionMethod.MINT, alias="FAUCET_DISTRIBUTION_METHOD"
    )
    confirmation_timeout_seconds: float = Field(
        default=30.0, alias="FAUCET_CONFIRMATION_TIMEOUT", gt=0
    )
    poll_interval_seconds: float = Field(default=1.0, alias="FAUCET_POLL_INTERVAL", gt=0)

    # HTTP
    host: str = Field(default="0.0.0.0", alias="FAUCET_HOST")  # noqa: S104
    port: int = Field(default=3000, alias="FAUCET_PORT", ge=1, le=65535)
    trusted_ip_header: str = Field(default="X-Real-IP", alias="FAUCET_TRUSTED_IP_HEADER")
    admin_token: SecretStr | None = Field(default=None, alias="FAUCET_ADMIN_TOKEN")

    # Rate limiting
    rate_limit_window_minutes: int = Field(
        default=15, alias="FAUCET_RATE_LIMIT_WINDOW_MINUTES", gt=0
    )
    rate_limit_max_requests: int = Field(
        default=100, alias="FAUCET_RATE_LIMIT_MAX_REQUESTS", gt=0
    )

    # Observability
    metrics_port: int = Field(default=8080, alias="FAUCET_METRICS_PORT", ge=1, le=65535)
    log_level: str = Field(default="INFO", alias="FAUCET_LOG_LEVEL")
    log_format: str = Field(default="json", alias="FAUCET_LOG_FORMAT")

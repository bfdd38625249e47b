"""Observability module for the faucet."""

from .health import (
    HealthCheck,
    HealthServer,
    HealthStatus,
    RegistryHealthCheck,
    StoreHealthCheck,
)
from .logging import clear_request_id, configure_logging, get_logger, set_request_id
from .metrics import (
    CHAIN_CLIENTS,
    CLAIMS,
    RATE_LIMITED,
    REQUEST_DURATION,
    TRANSACTION_DURATION,
    TRANSACTIONS,
)

__all__ = [
    # Health
    "HealthCheck",
    "HealthServer",
    "HealthStatus",
    "RegistryHealthCheck",
    "StoreHealthCheck",
    # Logging
    "clear_request_id",
    "configure_logging",
    "get_logger",
    "set_request_id",
    # Metrics
    "CHAIN_CLIENTS",
    "CLAIMS",
    "RATE_LIMITED",
    "REQUEST_DURATION",
    "TRANSACTIONS",
    "TRANSACTION_DURATION",
]

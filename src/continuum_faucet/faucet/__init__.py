"""Faucet components."""

from .claims import ClaimGuard, ClaimLedger, ReservationToken
from .distributor import DistributionEngine
from .models import (
    ClaimRecord,
    DistributionObligation,
    DistributionResult,
    DistributionStatus,
    FailureReason,
    OutcomeStatus,
    TokenConfig,
    TransactionOutcome,
)
from .rate_limiter import RateLimiter, RateLimitResult
from .registry import RegistryStore
from .service import FaucetService, FaucetStatus

__all__ = [
    "ClaimGuard",
    "ClaimLedger",
    "ClaimRecord",
    "DistributionEngine",
    "DistributionObligation",
    "DistributionResult",
    "DistributionStatus",
    "FailureReason",
    "FaucetService",
    "FaucetStatus",
    "OutcomeStatus",
    "RateLimitResult",
    "RateLimiter",
    "RegistryStore",
    "ReservationToken",
    "TokenConfig",
    "TransactionOutcome",
]

"""Faucet records and distribution results."""

import json
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum

from continuum_faucet.blockchain.networks import ChainConfig


@dataclass(frozen=True)
class TokenConfig:
    """A token registered for distribution on one chain.

    ``distribution_amount`` is kept as a decimal string of the smallest
    unit so amounts above 2**63 survive storage and JSON unchanged.
    """

    name: str
    address: str
    chain_id: int
    distribution_amount: str

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "address": self.address,
            "chainId": self.chain_id,
            "distributionAmount": self.distribution_amount,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "TokenConfig":
        return cls(
            name=data.get("name", ""),
            address=data["address"],
            chain_id=int(data["chainId"]),
            distribution_amount=str(data["distributionAmount"]),
        )


@dataclass(frozen=True)
class ClaimRecord:
    """A claim held by one IP address and one wallet."""

    ip_address: str
    wallet_address: str
    claim_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_json(self) -> str:
        return json.dumps(
            {
                "claimId": self.claim_id,
                "ipAddress": self.ip_address,
                "walletAddress": self.wallet_address,
                "createdAt": self.created_at.isoformat(),
            },
            sort_keys=True,
        )

    @classmethod
    def from_json(cls, raw: str) -> "ClaimRecord":
        data = json.loads(raw)
        return cls(
            ip_address=data["ipAddress"],
            wallet_address=data["walletAddress"],
            claim_id=data["claimId"],
            created_at=datetime.fromisoformat(data["createdAt"]),
        )


@dataclass(frozen=True)
class DistributionObligation:
    """One (chain, token, amount) transfer owed to a claimant."""

    chain: ChainConfig
    token: TokenConfig
    amount: int

    @property
    def chain_id(self) -> int:
        return self.chain.chain_id

    @property
    def token_address(self) -> str:
        return self.token.address


class OutcomeStatus(str, Enum):
    """Lifecycle state of one obligation's transaction."""

    SUBMITTED = "submitted"
    CONFIRMED = "confirmed"
    FAILED = "failed"


class FailureReason(str, Enum):
    """Why an obligation failed."""

    CLIENT_UNAVAILABLE = "client_unavailable"
    SUBMISSION_ERROR = "submission_error"
    TIMEOUT = "timeout"
    REVERTED = "reverted"
    UNKNOWN = "unknown"


@dataclass
class TransactionOutcome:
    """Outcome of one obligation."""

    obligation: DistributionObligation
    status: OutcomeStatus
    tx_hash: str | None = None
    block_number: int | None = None
    gas_used: int | None = None
    reason: FailureReason | None = None
    message: str | None = None

    @classmethod
    def submitted(cls, obligation: DistributionObligation, tx_hash: str) -> "TransactionOutcome":
        return cls(obligation=obligation, status=OutcomeStatus.SUBMITTED, tx_hash=tx_hash)

    @classmethod
    def failed(
        cls,
        obligation: DistributionObligation,
        reason: FailureReason,
        message: str,
        tx_hash: str | None = None,
    ) -> "TransactionOutcome":
        return cls(
            obligation=obligation,
            status=OutcomeStatus.FAILED,
            tx_hash=tx_hash,
            reason=reason,
            message=message,
        )

    @property
    def confirmed(self) -> bool:
        return self.status == OutcomeStatus.CONFIRMED

    def to_dict(self) -> dict:
        """Convert to JSON-serializable dict."""
        chain = self.obligation.chain
        token = self.obligation.token
        result = {
            "chainId": chain.chain_id,
            "chain": chain.name,
            "token": token.name,
            "tokenAddress": token.address,
            "amount": str(self.obligation.amount),
            "status": self.status.value,
            "txHash": self.tx_hash,
        }
        if self.tx_hash:
            result["explorerUrl"] = chain.get_tx_url(self.tx_hash)
        if self.block_number is not None:
            result["blockNumber"] = self.block_number
        if self.reason:
            result["error"] = self.reason.value
            result["message"] = self.message
        return result


class DistributionStatus(str, Enum):
    """Aggregate status of one distribution."""

    FULL_SUCCESS = "full_success"
    PARTIAL_SUCCESS = "partial_success"
    TOTAL_FAILURE = "total_failure"


@dataclass
class DistributionResult:
    """Ordered outcomes of one distribution, one per planned obligation."""

    wallet: str
    outcomes: list[TransactionOutcome]

    @property
    def confirmed_count(self) -> int:
        return sum(1 for outcome in self.outcomes if outcome.confirmed)

    @property
    def status(self) -> DistributionStatus:
        confirmed = self.confirmed_count
        if confirmed == 0:
            return DistributionStatus.TOTAL_FAILURE
        if confirmed == len(self.outcomes):
            return DistributionStatus.FULL_SUCCESS
        return DistributionStatus.PARTIAL_SUCCESS

    def to_dict(self) -> dict:
        return {
            "walletAddress": self.wallet,
            "status": self.status.value,
            "confirmed": self.confirmed_count,
            "total": len(self.outcomes),
            "outcomes": [outcome.to_dict() for outcome in self.outcomes],
        }

"""Faucet error taxonomy.

Validation and claim errors are terminal for a request and surface as
400-class responses. Chain-level errors (client, submission, confirmation)
are caught by the distribution engine and recorded per obligation.
"""

from enum import Enum


class FaucetError(Exception):
    """Base class for faucet errors."""

    code = "faucet_error"

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message


class InvalidWallet(FaucetError):
    """The requesting wallet address is missing or malformed."""

    code = "invalid_wallet"


class InvalidConfiguration(FaucetError):
    """Registry data or request input cannot be turned into a valid distribution."""

    code = "invalid_configuration"


class DuplicateEntry(FaucetError):
    """A chain or token with the same identity is already registered."""

    code = "duplicate_entry"


class AlreadyClaimed(FaucetError):
    """The IP address or wallet has already claimed from the faucet."""

    code = "already_claimed"


class NothingToDistribute(FaucetError):
    """No chains or tokens are registered."""

    code = "nothing_to_distribute"


class ClientUnavailable(FaucetError):
    """No usable RPC client could be built for a chain."""

    code = "client_unavailable"


class SubmissionErrorKind(str, Enum):
    """Why a transaction never reached the pending pool."""

    SIGNING = "signing"
    INSUFFICIENT_FUNDS = "insufficient_funds"
    RPC_REJECTED = "rpc_rejected"


class SubmissionError(FaucetError):
    """A transaction could not be built, signed or submitted."""

    code = "submission_error"

    def __init__(self, message: str, kind: SubmissionErrorKind = SubmissionErrorKind.RPC_REJECTED):
        super().__init__(message)
        self.kind = kind


class ConfirmationTimeout(FaucetError):
    """A submitted transaction was not mined within the confirmation timeout."""

    code = "timeout"


class TransactionReverted(FaucetError):
    """A transaction was mined but reverted."""

    code = "reverted"

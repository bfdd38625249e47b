"""Per-chain client used by the distribution engine.

A ``ChainClient`` pairs one web3 connection with one ``ChainSigner``.
Submissions through a signer are serialized by its lock so nonces are
assigned strictly in order; receipts are polled concurrently.
"""

import asyncio
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass

from eth_account.signers.local import LocalAccount
from web3 import Web3
from web3.exceptions import TimeExhausted, Web3Exception
from web3.types import TxReceipt

from continuum_faucet.config import DistributionMethod
from continuum_faucet.errors import (
    ConfirmationTimeout,
    SubmissionError,
    SubmissionErrorKind,
    TransactionReverted,
)
from continuum_faucet.observability.metrics import TRANSACTION_DURATION

from .networks import ChainConfig

logger = logging.getLogger(__name__)

# Minimal ABI covering both distribution methods
TOKEN_ABI = [
    {
        "type": "function",
        "name": "mint",
        "stateMutability": "nonpayable",
        "inputs": [
            {"name": "recipient", "type": "address"},
            {"name": "amount", "type": "uint256"},
        ],
        "outputs": [{"name": "success", "type": "bool"}],
    },
    {
        "type": "function",
        "name": "transfer",
        "stateMutability": "nonpayable",
        "inputs": [
            {"name": "to", "type": "address"},
            {"name": "amount", "type": "uint256"},
        ],
        "outputs": [{"name": "success", "type": "bool"}],
    },
]

# Errors raised by web3 and its HTTP transport (requests errors are OSErrors)
RPC_ERRORS = (Web3Exception, ValueError, OSError)


def _is_insufficient_funds(error: Exception) -> bool:
    return "insufficient funds" in str(error).lower()


@dataclass(frozen=True)
class PendingTransaction:
    """Handle for a transaction accepted into a chain's pending pool."""

    chain_id: int
    tx_hash: str
    nonce: int
    submitted_at: float


class ChainSigner:
    """Signing identity of the faucet on one chain.

    Holds the locally tracked next nonce. Callers must hold ``lock`` for
    the whole reserve/sign/send/commit sequence.

    Parameters
    ----------
    account : LocalAccount
        The faucet account.
    chain_id : int
        Chain the signer is bound to.
    """

    def __init__(self, account: LocalAccount, chain_id: int):
        self._account = account
        self._chain_id = chain_id
        self._next_nonce: int | None = None
        self.lock = asyncio.Lock()

    @property
    def address(self) -> str:
        return self._account.address

    @property
    def chain_id(self) -> int:
        return self._chain_id

    def reserve_nonce(self, fetch: Callable[[], int]) -> int:
        """Return the nonce for the next transaction, fetching it on first use."""
        if self._next_nonce is None:
            self._next_nonce = fetch()
        return self._next_nonce

    def commit_nonce(self, nonce: int) -> None:
        """Record that ``nonce`` was consumed by an accepted transaction."""
        self._next_nonce = nonce + 1

    def reset_nonce(self) -> None:
        """Forget the tracked nonce; the next submission re-reads it from the node."""
        self._next_nonce = None

    def sign(self, tx: dict):
        return self._account.sign_transaction(tx)


class ChainClient:
    """web3 connection and signer for one registered chain.

    Parameters
    ----------
    chain : ChainConfig
        The chain this client talks to.
    w3 : Web3
        Connected web3 instance.
    signer : ChainSigner
        Signer bound to the chain.
    rpc_url : str
        Endpoint the web3 instance was built for.
    method : DistributionMethod
        Contract function used to hand out tokens.
    confirmation_timeout : float
        Seconds to wait for a receipt.
    poll_interval : float
        Seconds between receipt polls.
    """

    def __init__(
        self,
        chain: ChainConfig,
        w3: Web3,
        signer: ChainSigner,
        rpc_url: str,
        method: DistributionMethod = DistributionMethod.MINT,
        confirmation_timeout: float = 30.0,
        poll_interval: float = 1.0,
    ):
        self._chain = chain
        self._w3 = w3
        self._signer = signer
        self._rpc_url = rpc_url
        self._method = method
        self._confirmation_timeout = confirmation_timeout
        self._poll_interval = poll_interval

    @property
    def chain(self) -> ChainConfig:
        return self._chain

    @property
    def chain_id(self) -> int:
        return self._chain.chain_id

    @property
    def rpc_url(self) -> str:
        return self._rpc_url

    @property
    def signer_address(self) -> str:
        return self._signer.address

    @property
    def connected(self) -> bool:
        return self._w3.is_connected()

    async def submit(self, token_address: str, recipient: str, amount: int) -> PendingTransaction:
        """Build, sign and submit a distribution call.

        Returns once the node accepts the transaction into its pending pool.
        Concurrent callers on the same signer are queued.

        Parameters
        ----------
        token_address : str
            Token contract address.
        recipient : str
            Wallet receiving the tokens.
        amount : int
            Amount in the token's smallest unit.

        Returns
        -------
        PendingTransaction
            Handle for :meth:`await_confirmation`.

        Raises
        ------
        SubmissionError
            On build/estimation rejection, signing failure, insufficient gas
            funds or RPC rejection of the raw transaction.
        """
        async with self._signer.lock:
            return await asyncio.to_thread(self._submit, token_address, recipient, amount)

    def _submit(self, token_address: str, recipient: str, amount: int) -> PendingTransaction:
        sender = self._signer.address
        contract = self._w3.eth.contract(
            address=Web3.to_checksum_address(token_address), abi=TOKEN_ABI
        )
        call = getattr(contract.functions, self._method.value)(
            Web3.to_checksum_address(recipient), amount
        )

        try:
            nonce = self._signer.reserve_nonce(
                lambda: self._w3.eth.get_transaction_count(sender, "pending")
            )
            tx = call.build_transaction(
                {
                    "from": sender,
                    "nonce": nonce,
                    "gasPrice": self._w3.eth.gas_price,
                    "chainId": self.chain_id,
                }
            )
        except RPC_ERRORS as e:
            kind = (
                SubmissionErrorKind.INSUFFICIENT_FUNDS
                if _is_insufficient_funds(e)
                else SubmissionErrorKind.RPC_REJECTED
            )
            raise SubmissionError(f"Transaction rejected before signing: {e}", kind) from e

        try:
            signed = self._signer.sign(tx)
        except Exception as e:
            raise SubmissionError(f"Signing failed: {e}", SubmissionErrorKind.SIGNING) from e

        try:
            tx_hash = self._w3.eth.send_raw_transaction(signed.raw_transaction)
        except RPC_ERRORS as e:
            # The node may or may not have taken the nonce; re-read it next time.
            self._signer.reset_nonce()
            kind = (
                SubmissionErrorKind.INSUFFICIENT_FUNDS
                if _is_insufficient_funds(e)
                else SubmissionErrorKind.RPC_REJECTED
            )
            raise SubmissionError(f"RPC rejected transaction: {e}", kind) from e

        self._signer.commit_nonce(nonce)
        pending = PendingTransaction(
            chain_id=self.chain_id,
            tx_hash=Web3.to_hex(tx_hash),
            nonce=nonce,
            submitted_at=time.monotonic(),
        )

        logger.info(
            "Distribution transaction submitted",
            extra={
                "chain_id": self.chain_id,
                "tx_hash": pending.tx_hash,
                "nonce": nonce,
                "token": token_address,
                "to": recipient,
                "amount": str(amount),
            },
        )
        return pending

    async def await_confirmation(self, pending: PendingTransaction) -> TxReceipt:
        """Wait until a submitted transaction is mined.

        Parameters
        ----------
        pending : PendingTransaction
            Handle returned by :meth:`submit`.

        Returns
        -------
        TxReceipt
            The successful receipt.

        Raises
        ------
        ConfirmationTimeout
            If no receipt appears within the confirmation timeout.
        TransactionReverted
            If the transaction was mined with a failure status.
        """
        try:
            receipt = await asyncio.to_thread(
                self._w3.eth.wait_for_transaction_receipt,
                pending.tx_hash,
                timeout=self._confirmation_timeout,
                poll_latency=self._poll_interval,
            )
        except TimeExhausted as e:
            raise ConfirmationTimeout(
                f"Transaction {pending.tx_hash} not mined within "
                f"{self._confirmation_timeout:g} seconds"
            ) from e

        TRANSACTION_DURATION.labels(chain_id=str(self.chain_id)).observe(
            time.monotonic() - pending.submitted_at
        )

        if receipt["status"] != 1:
            raise TransactionReverted(f"Transaction {pending.tx_hash} reverted")
        return receipt

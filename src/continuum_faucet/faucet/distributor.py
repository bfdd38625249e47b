"""Distribution engine.

Turns one reserved claim into on-chain transfers:

1. Plan: join every registered chain with its tokens into an ordered list
   of obligations.
2. Per chain, in parallel across chains: get the chain client, submit the
   chain's obligations one after another, then wait for all receipts.
3. Aggregate one outcome per obligation, in plan order.

A failure on one chain or token is recorded in its outcome and never
stops work on the others.
"""

import asyncio
import logging

from continuum_faucet.blockchain.client import ChainClient, PendingTransaction
from continuum_faucet.blockchain.networks import ChainConfig
from continuum_faucet.blockchain.pool import ChainClientPool
from continuum_faucet.core.units import parse_base_units, validate_address
from continuum_faucet.errors import (
    ClientUnavailable,
    ConfirmationTimeout,
    InvalidConfiguration,
    NothingToDistribute,
    SubmissionError,
    TransactionReverted,
)
from continuum_faucet.observability.metrics import TRANSACTIONS

from .models import (
    DistributionObligation,
    DistributionResult,
    FailureReason,
    OutcomeStatus,
    TransactionOutcome,
)
from .registry import RegistryStore

logger = logging.getLogger(__name__)


class DistributionEngine:
    """Fans a claim out across every registered chain and token.

    Parameters
    ----------
    registry : RegistryStore
        Source of chains and tokens.
    pool : ChainClientPool
        Per-chain clients and signers.
    """

    def __init__(self, registry: RegistryStore, pool: ChainClientPool):
        self._registry = registry
        self._pool = pool

    def plan(self) -> list[DistributionObligation]:
        """Build the ordered obligation list from the registry.

        Returns
        -------
        list[DistributionObligation]
            Obligations ordered by chain, then token.

        Raises
        ------
        InvalidConfiguration
            If a registered token has an invalid address or amount.
        """
        obligations = []
        for chain in self._registry.list_chains():
            for token in self._registry.tokens_for_chain(chain.chain_id):
                if not validate_address(token.address):
                    raise InvalidConfiguration(
                        f"Token {token.name} on chain {chain.chain_id} has an invalid "
                        f"address: {token.address}"
                    )
                try:
                    amount = parse_base_units(token.distribution_amount)
                except ValueError as e:
                    raise InvalidConfiguration(
                        f"Token {token.name} on chain {chain.chain_id} has an invalid "
                        f"distribution amount: {e}"
                    ) from e
                obligations.append(DistributionObligation(chain=chain, token=token, amount=amount))
        return obligations

    async def distribute(self, wallet: str) -> DistributionResult:
        """Distribute every registered token to a wallet.

        Errors are raised only while planning. Once dispatch has started,
        every failure is reported as an outcome.

        Parameters
        ----------
        wallet : str
            Recipient wallet address.

        Returns
        -------
        DistributionResult
            One outcome per planned obligation, in plan order.

        Raises
        ------
        NothingToDistribute
            If no chain has any token registered.
        InvalidConfiguration
            If the registry holds an invalid token.
        """
        obligations = self.plan()
        if not obligations:
            raise NothingToDistribute("No chains or tokens are registered for distribution.")

        outcomes: list[TransactionOutcome | None] = [None] * len(obligations)
        by_chain: dict[int, list[int]] = {}
        chains: dict[int, ChainConfig] = {}
        for index, obligation in enumerate(obligations):
            by_chain.setdefault(obligation.chain_id, []).append(index)
            chains[obligation.chain_id] = obligation.chain

        logger.info(
            "Distribution started",
            extra={"wallet": wallet, "obligations": len(obligations), "chains": len(by_chain)},
        )

        workers = await asyncio.gather(
            *(
                self._run_chain(chains[chain_id], indexes, obligations, outcomes, wallet)
                for chain_id, indexes in by_chain.items()
            ),
            return_exceptions=True,
        )
        for (chain_id, indexes), error in zip(by_chain.items(), workers):
            if isinstance(error, BaseException):
                self._fail_unfinished(chain_id, indexes, obligations, outcomes, error)

        result = DistributionResult(wallet=wallet, outcomes=outcomes)
        logger.info(
            "Distribution finished",
            extra={
                "wallet": wallet,
                "status": result.status.value,
                "confirmed": result.confirmed_count,
                "total": len(obligations),
            },
        )
        return result

    async def _run_chain(
        self,
        chain: ChainConfig,
        indexes: list[int],
        obligations: list[DistributionObligation],
        outcomes: list[TransactionOutcome | None],
        wallet: str,
    ) -> None:
        """Worker for one chain: serialized submission, concurrent confirmation."""
        try:
            client = await self._pool.get_client(chain)
        except Exception as e:
            message = e.message if isinstance(e, ClientUnavailable) else f"Unexpected error: {e}"
            logger.warning(
                "Chain client unavailable",
                extra={"chain_id": chain.chain_id, "error": message},
                exc_info=not isinstance(e, ClientUnavailable),
            )
            for index in indexes:
                outcomes[index] = self._record(
                    TransactionOutcome.failed(
                        obligations[index], FailureReason.CLIENT_UNAVAILABLE, message
                    )
                )
            return

        submitted: list[tuple[int, PendingTransaction]] = []
        for index in indexes:
            obligation = obligations[index]
            try:
                pending = await client.submit(obligation.token_address, wallet, obligation.amount)
            except SubmissionError as e:
                logger.error(
                    "Distribution submission failed",
                    extra={
                        "chain_id": chain.chain_id,
                        "token": obligation.token_address,
                        "kind": e.kind.value,
                        "error": e.message,
                    },
                )
                outcomes[index] = self._record(
                    TransactionOutcome.failed(obligation, FailureReason.SUBMISSION_ERROR, e.message)
                )
                continue
            except Exception as e:
                logger.error(
                    "Distribution submission failed",
                    extra={"chain_id": chain.chain_id, "token": obligation.token_address},
                    exc_info=True,
                )
                outcomes[index] = self._record(
                    TransactionOutcome.failed(
                        obligation, FailureReason.SUBMISSION_ERROR, f"Unexpected error: {e}"
                    )
                )
                continue

            outcomes[index] = TransactionOutcome.submitted(obligation, pending.tx_hash)
            submitted.append((index, pending))

        confirmed = await asyncio.gather(
            *(self._confirm(client, outcomes[index], pending) for index, pending in submitted)
        )
        for (index, _), outcome in zip(submitted, confirmed):
            outcomes[index] = self._record(outcome)

    async def _confirm(
        self,
        client: ChainClient,
        outcome: TransactionOutcome,
        pending: PendingTransaction,
    ) -> TransactionOutcome:
        obligation = outcome.obligation
        try:
            receipt = await client.await_confirmation(pending)
        except ConfirmationTimeout as e:
            return TransactionOutcome.failed(
                obligation, FailureReason.TIMEOUT, e.message, tx_hash=pending.tx_hash
            )
        except TransactionReverted as e:
            return TransactionOutcome.failed(
                obligation, FailureReason.REVERTED, e.message, tx_hash=pending.tx_hash
            )
        except Exception as e:
            logger.error(
                "Receipt polling failed",
                extra={"chain_id": pending.chain_id, "tx_hash": pending.tx_hash},
                exc_info=True,
            )
            return TransactionOutcome.failed(
                obligation,
                FailureReason.UNKNOWN,
                f"Could not confirm transaction: {e}",
                tx_hash=pending.tx_hash,
            )

        return TransactionOutcome(
            obligation=obligation,
            status=OutcomeStatus.CONFIRMED,
            tx_hash=pending.tx_hash,
            block_number=receipt.get("blockNumber"),
            gas_used=receipt.get("gasUsed"),
        )

    def _fail_unfinished(
        self,
        chain_id: int,
        indexes: list[int],
        obligations: list[DistributionObligation],
        outcomes: list[TransactionOutcome | None],
        error: BaseException,
    ) -> None:
        """Fail the obligations a crashed chain worker left without a final outcome."""
        logger.error(
            "Chain worker crashed",
            extra={"chain_id": chain_id},
            exc_info=(type(error), error, error.__traceback__),
        )
        for index in indexes:
            outcome = outcomes[index]
            if outcome is not None and outcome.status != OutcomeStatus.SUBMITTED:
                continue
            outcomes[index] = self._record(
                TransactionOutcome.failed(
                    obligations[index],
                    FailureReason.UNKNOWN,
                    f"Unexpected error: {error}",
                    tx_hash=outcome.tx_hash if outcome is not None else None,
                )
            )

    @staticmethod
    def _record(outcome: TransactionOutcome) -> TransactionOutcome:
        reason = outcome.reason.value if outcome.reason else outcome.status.value
        TRANSACTIONS.labels(chain_id=str(outcome.obligation.chain_id), status=reason).inc()
        return outcome

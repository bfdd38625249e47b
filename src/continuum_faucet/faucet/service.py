"""Faucet Service.

Coordinates all faucet components for one claim:
- Claim guard reservation
- Distribution engine fan-out
- Reservation release when nothing was delivered
"""

import logging
from dataclasses import dataclass

from continuum_faucet.errors import FaucetError

from .claims import ClaimGuard, ClaimLedger
from .distributor import DistributionEngine
from .models import DistributionResult, DistributionStatus
from .registry import RegistryStore

logger = logging.getLogger(__name__)


@dataclass
class FaucetStatus:
    """Current faucet status."""

    faucet_address: str
    chains: int
    tokens: int
    claims: int

    def to_dict(self) -> dict:
        return {
            "faucetAddress": self.faucet_address,
            "chains": self.chains,
            "tokens": self.tokens,
            "claims": self.claims,
        }


class FaucetService:
    """Main faucet service orchestrating all components.

    Parameters
    ----------
    registry : RegistryStore
        Chain and token registry.
    ledger : ClaimLedger
        Claim storage.
    engine : DistributionEngine
        Distribution engine.
    faucet_address : str
        Address of the faucet signer, reported in the status.
    """

    def __init__(
        self,
        registry: RegistryStore,
        ledger: ClaimLedger,
        engine: DistributionEngine,
        faucet_address: str,
    ):
        self._registry = registry
        self._ledger = ledger
        self._guard = ClaimGuard(ledger)
        self._engine = engine
        self._faucet_address = faucet_address

    @property
    def registry(self) -> RegistryStore:
        return self._registry

    @property
    def ledger(self) -> ClaimLedger:
        return self._ledger

    def get_status(self) -> FaucetStatus:
        return FaucetStatus(
            faucet_address=self._faucet_address,
            chains=len(self._registry.list_chains()),
            tokens=len(self._registry.list_tokens()),
            claims=self._ledger.count(),
        )

    async def request_tokens(self, ip_address: str, wallet: str) -> DistributionResult:
        """Handle a claim: reserve, distribute, and release on total failure.

        A partial or full success never releases the claim, including when a
        chain fails unexpectedly after other chains have sent tokens.

        Parameters
        ----------
        ip_address : str
            Requester IP address.
        wallet : str
            Recipient wallet address.

        Returns
        -------
        DistributionResult
            Outcome of every obligation. The claim stays reserved unless the
            status is TOTAL_FAILURE.

        Raises
        ------
        InvalidWallet
            If the wallet address is malformed.
        AlreadyClaimed
            If the IP address or wallet has already claimed.
        NothingToDistribute
            If no tokens are registered; the reservation is released.
        InvalidConfiguration
            If the registry holds an invalid token; the reservation is released.
        """
        token = self._guard.reserve(ip_address, wallet)

        try:
            result = await self._engine.distribute(wallet)
        except FaucetError as e:
            logger.warning(
                "Distribution aborted, releasing claim",
                extra={"claim_id": token.claim_id, "error": e.message},
            )
            self._guard.release(token)
            raise
        except Exception:
            # distribute() raises only while planning, before any transaction is sent
            logger.error(
                "Distribution planning crashed, releasing claim",
                extra={"claim_id": token.claim_id},
                exc_info=True,
            )
            self._guard.release(token)
            raise

        if result.status == DistributionStatus.TOTAL_FAILURE:
            logger.warning(
                "Distribution failed on every chain, releasing claim",
                extra={"claim_id": token.claim_id, "wallet": token.record.wallet_address},
            )
            self._guard.release(token)

        return result

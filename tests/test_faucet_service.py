"""Tests for Faucet Service module."""

import json
from unittest.mock import AsyncMock, MagicMock

import pytest

from continuum_faucet.blockchain.client import PendingTransaction
from continuum_faucet.blockchain.networks import ChainConfig
from continuum_faucet.blockchain.pool import ChainClientPool
from continuum_faucet.errors import (
    AlreadyClaimed,
    InvalidConfiguration,
    InvalidWallet,
    NothingToDistribute,
)
from continuum_faucet.faucet.claims import ClaimLedger
from continuum_faucet.faucet.models import (
    DistributionObligation,
    DistributionResult,
    DistributionStatus,
    FailureReason,
    OutcomeStatus,
    TokenConfig,
    TransactionOutcome,
)
from continuum_faucet.faucet.distributor import DistributionEngine
from continuum_faucet.faucet.registry import CHAINS_KEY, RegistryStore
from continuum_faucet.faucet.service import FaucetService, FaucetStatus

FAUCET_ADDRESS = "0xFCAd0B19bB29D4674531d6f115237E16AfCE377c"
WALLET = "0x" + "11" * 20
TOKEN = "0x" + "aa" * 20


def _obligation(chain_id: int) -> DistributionObligation:
    return DistributionObligation(
        chain=ChainConfig(name=f"chain-{chain_id}", chain_id=chain_id),
        token=TokenConfig(name="TEST", address=TOKEN, chain_id=chain_id, distribution_amount="1"),
        amount=1,
    )


def _result(*confirmed: bool) -> DistributionResult:
    outcomes = []
    for chain_id, ok in enumerate(confirmed, start=1):
        if ok:
            outcomes.append(
                TransactionOutcome(
                    obligation=_obligation(chain_id),
                    status=OutcomeStatus.CONFIRMED,
                    tx_hash="0x" + "ab" * 32,
                )
            )
        else:
            outcomes.append(
                TransactionOutcome.failed(
                    _obligation(chain_id), FailureReason.CLIENT_UNAVAILABLE, "down"
                )
            )
    return DistributionResult(wallet=WALLET, outcomes=outcomes)


@pytest.fixture
def registry():
    store = RegistryStore()
    store.add_chain("One", 1, "https://rpc.one.example")
    store.add_token("TEST", TOKEN, 18, 1, "1")
    return store


@pytest.fixture
def ledger():
    return ClaimLedger()


@pytest.fixture
def mock_engine():
    """Create a mock distribution engine that confirms everything."""
    engine = MagicMock()
    engine.distribute = AsyncMock(return_value=_result(True))
    return engine


@pytest.fixture
def service(registry, ledger, mock_engine):
    return FaucetService(
        registry=registry,
        ledger=ledger,
        engine=mock_engine,
        faucet_address=FAUCET_ADDRESS,
    )


class TestFaucetStatus:
    """Tests for FaucetStatus dataclass."""

    def test_to_dict(self):
        status = FaucetStatus(faucet_address=FAUCET_ADDRESS, chains=2, tokens=3, claims=4)

        assert status.to_dict() == {
            "faucetAddress": FAUCET_ADDRESS,
            "chains": 2,
            "tokens": 3,
            "claims": 4,
        }


class TestGetStatus:
    """Tests for FaucetService.get_status."""

    @pytest.mark.asyncio
    async def test_counts(self, service):
        await service.request_tokens("1.2.3.4", WALLET)

        status = service.get_status()

        assert status.faucet_address == FAUCET_ADDRESS
        assert status.chains == 1
        assert status.tokens == 1
        assert status.claims == 1


class TestRequestTokens:
    """Tests for FaucetService.request_tokens."""

    @pytest.mark.asyncio
    async def test_full_success_keeps_claim(self, service, ledger, mock_engine):
        result = await service.request_tokens("1.2.3.4", WALLET)

        assert result.status == DistributionStatus.FULL_SUCCESS
        mock_engine.distribute.assert_awaited_once_with(WALLET)
        assert ledger.find(wallet_address=WALLET) is not None

        with pytest.raises(AlreadyClaimed):
            await service.request_tokens("1.2.3.4", WALLET)

    @pytest.mark.asyncio
    async def test_partial_success_keeps_claim(self, service, ledger, mock_engine):
        mock_engine.distribute.return_value = _result(True, False)

        result = await service.request_tokens("1.2.3.4", WALLET)

        assert result.status == DistributionStatus.PARTIAL_SUCCESS
        with pytest.raises(AlreadyClaimed):
            await service.request_tokens("5.6.7.8", WALLET)

    @pytest.mark.asyncio
    async def test_total_failure_releases_claim(self, service, ledger, mock_engine):
        mock_engine.distribute.return_value = _result(False, False)

        result = await service.request_tokens("1.2.3.4", WALLET)

        assert result.status == DistributionStatus.TOTAL_FAILURE
        assert ledger.count() == 0

        mock_engine.distribute.return_value = _result(True)
        retry = await service.request_tokens("1.2.3.4", WALLET)
        assert retry.status == DistributionStatus.FULL_SUCCESS

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "error",
        [NothingToDistribute("nothing"), InvalidConfiguration("bad token")],
    )
    async def test_aborted_distribution_releases_claim(self, service, ledger, mock_engine, error):
        mock_engine.distribute.side_effect = error

        with pytest.raises(type(error)):
            await service.request_tokens("1.2.3.4", WALLET)

        assert ledger.count() == 0
        assert ledger.find(ip_address="1.2.3.4") is None

    @pytest.mark.asyncio
    async def test_planning_crash_releases_claim(self, service, ledger, mock_engine):
        mock_engine.distribute.side_effect = RuntimeError("boom")

        with pytest.raises(RuntimeError, match="boom"):
            await service.request_tokens("1.2.3.4", WALLET)

        assert ledger.count() == 0

    @pytest.mark.asyncio
    async def test_invalid_wallet_never_distributes(self, service, ledger, mock_engine):
        with pytest.raises(InvalidWallet):
            await service.request_tokens("1.2.3.4", "0x1234")

        mock_engine.distribute.assert_not_awaited()
        assert ledger.count() == 0

    @pytest.mark.asyncio
    async def test_already_claimed_never_distributes(self, service, mock_engine):
        await service.request_tokens("1.2.3.4", WALLET)
        mock_engine.distribute.reset_mock()

        with pytest.raises(AlreadyClaimed):
            await service.request_tokens("1.2.3.4", "0x" + "22" * 20)

        mock_engine.distribute.assert_not_awaited()
    @pytest.mark.asyncio
    async def test_malformed_rpc_url_on_one_chain_keeps_claim(self, ledger, test_wallet):
        """A chain with an unparseable stored RPC URL does not free a claim another chain paid."""
        registry = RegistryStore()
        registry._insert(
            CHAINS_KEY, "1", json.dumps(ChainConfig("bad", 1, "http://[::1").to_dict())
        )
        registry.add_chain("Two", 2, "https://rpc.two.example")
        registry.add_token("TEST", TOKEN, 18, 1, "1")
        registry.add_token("TEST", TOKEN, 18, 2, "1")

        pool = ChainClientPool(test_wallet)
        healthy = MagicMock()
        healthy.rpc_url = "https://rpc.two.example"
        healthy.submit = AsyncMock(
            return_value=PendingTransaction(
                chain_id=2, tx_hash="0x" + "cd" * 32, nonce=0, submitted_at=0.0
            )
        )
        healthy.await_confirmation = AsyncMock(return_value={"status": 1, "blockNumber": 9})
        pool._clients[2] = healthy
        service = FaucetService(
            registry=registry,
            ledger=ledger,
            engine=DistributionEngine(registry, pool),
            faucet_address=FAUCET_ADDRESS,
        )

        result = await service.request_tokens("1.2.3.4", WALLET)

        assert result.status == DistributionStatus.PARTIAL_SUCCESS
        broken, paid = result.outcomes
        assert broken.reason == FailureReason.CLIENT_UNAVAILABLE
        assert paid.status == OutcomeStatus.CONFIRMED
        healthy.submit.assert_awaited_once_with(TOKEN, WALLET, 10**18)
        assert ledger.find(wallet_address=WALLET) is not None
        with pytest.raises(AlreadyClaimed):
            await service.request_tokens("5.6.7.8", WALLET)


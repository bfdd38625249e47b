"""Tests for the per-chain client and signer."""

import asyncio
from unittest.mock import MagicMock

import pytest
from web3 import Web3
from web3.exceptions import TimeExhausted

from continuum_faucet.blockchain.client import ChainClient, ChainSigner, PendingTransaction
from continuum_faucet.blockchain.networks import ChainConfig
from continuum_faucet.config import DistributionMethod
from continuum_faucet.errors import (
    ConfirmationTimeout,
    SubmissionError,
    SubmissionErrorKind,
    TransactionReverted,
)

TEST_ADDRESS = "0xFCAd0B19bB29D4674531d6f115237E16AfCE377c"
TOKEN_ADDRESS = "0x" + "11" * 20
RECIPIENT = "0x" + "22" * 20
TX_HASH = bytes.fromhex("ab" * 32)


@pytest.fixture
def mock_account():
    """Account mock that signs without a real key."""
    account = MagicMock()
    account.address = TEST_ADDRESS
    account.sign_transaction.return_value = MagicMock(raw_transaction=b"signed")
    return account


@pytest.fixture
def mock_w3():
    """Mock Web3 instance with a mintable token contract."""
    w3 = MagicMock()
    w3.is_connected.return_value = True
    w3.eth.gas_price = 1000000000
    w3.eth.get_transaction_count.return_value = 5
    w3.eth.send_raw_transaction.return_value = TX_HASH
    contract = w3.eth.contract.return_value
    for method in (contract.functions.mint, contract.functions.transfer):
        method.return_value.build_transaction.side_effect = lambda params: dict(params)
    return w3


def make_client(w3, account, method=DistributionMethod.MINT, chain_id=1) -> ChainClient:
    chain = ChainConfig(name="Test", chain_id=chain_id)
    return ChainClient(
        chain=chain,
        w3=w3,
        signer=ChainSigner(account, chain_id),
        rpc_url="http://localhost:8545",
        method=method,
        confirmation_timeout=5.0,
        poll_interval=0.1,
    )


class TestChainSigner:
    """Tests for local nonce tracking."""

    def test_fetches_once(self, mock_account):
        signer = ChainSigner(mock_account, 1)
        fetch = MagicMock(return_value=7)

        assert signer.reserve_nonce(fetch) == 7
        assert signer.reserve_nonce(fetch) == 7
        fetch.assert_called_once()

    def test_commit_advances(self, mock_account):
        signer = ChainSigner(mock_account, 1)
        fetch = MagicMock(return_value=7)

        signer.commit_nonce(signer.reserve_nonce(fetch))

        assert signer.reserve_nonce(fetch) == 8

    def test_reset_refetches(self, mock_account):
        signer = ChainSigner(mock_account, 1)
        fetch = MagicMock(side_effect=[7, 3])

        signer.reserve_nonce(fetch)
        signer.reset_nonce()

        assert signer.reserve_nonce(fetch) == 3


class TestChainClient:
    """Tests for ChainClient properties."""

    def test_properties(self, mock_w3, mock_account):
        client = make_client(mock_w3, mock_account, chain_id=42)

        assert client.chain_id == 42
        assert client.rpc_url == "http://localhost:8545"
        assert client.signer_address == TEST_ADDRESS
        assert client.connected is True


class TestSubmit:
    """Tests for transaction submission."""

    @pytest.mark.asyncio
    async def test_submit_mint(self, mock_w3, mock_account):
        """Submission calls mint with the checksummed recipient and returns a handle."""
        client = make_client(mock_w3, mock_account)

        pending = await client.submit(TOKEN_ADDRESS, RECIPIENT, 10**18)

        assert isinstance(pending, PendingTransaction)
        assert pending.tx_hash == "0x" + "ab" * 32
        assert pending.nonce == 5
        assert pending.chain_id == 1
        contract = mock_w3.eth.contract.return_value
        contract.functions.mint.assert_called_once_with(
            Web3.to_checksum_address(RECIPIENT), 10**18
        )
        mock_w3.eth.contract.assert_called_once()
        assert mock_w3.eth.contract.call_args.kwargs["address"] == Web3.to_checksum_address(
            TOKEN_ADDRESS
        )
        mock_w3.eth.get_transaction_count.assert_called_once_with(TEST_ADDRESS, "pending")

        tx = mock_account.sign_transaction.call_args.args[0]
        assert tx == {
            "from": TEST_ADDRESS,
            "nonce": 5,
            "gasPrice": 1000000000,
            "chainId": 1,
        }
        mock_w3.eth.send_raw_transaction.assert_called_once_with(b"signed")

    @pytest.mark.asyncio
    async def test_submit_transfer(self, mock_w3, mock_account):
        """Transfer method calls transfer instead of mint."""
        client = make_client(mock_w3, mock_account, method=DistributionMethod.TRANSFER)

        await client.submit(TOKEN_ADDRESS, RECIPIENT, 1)

        contract = mock_w3.eth.contract.return_value
        contract.functions.transfer.assert_called_once()
        contract.functions.mint.assert_not_called()

    @pytest.mark.asyncio
    async def test_consecutive_submissions_use_consecutive_nonces(self, mock_w3, mock_account):
        client = make_client(mock_w3, mock_account)

        first = await client.submit(TOKEN_ADDRESS, RECIPIENT, 1)
        second = await client.submit(TOKEN_ADDRESS, RECIPIENT, 1)

        assert (first.nonce, second.nonce) == (5, 6)
        mock_w3.eth.get_transaction_count.assert_called_once()

    @pytest.mark.asyncio
    async def test_concurrent_submissions_get_distinct_nonces(self, mock_w3, mock_account):
        """Concurrent callers on one signer are serialized."""
        client = make_client(mock_w3, mock_account)

        results = await asyncio.gather(
            *(client.submit(TOKEN_ADDRESS, RECIPIENT, 1) for _ in range(5))
        )

        assert sorted(p.nonce for p in results) == [5, 6, 7, 8, 9]

    @pytest.mark.asyncio
    async def test_build_rejected(self, mock_w3, mock_account):
        """Estimation failures are RPC rejections; the nonce is not consumed."""
        contract = mock_w3.eth.contract.return_value
        contract.functions.mint.return_value.build_transaction.side_effect = ValueError(
            "execution reverted: caller is not a minter"
        )
        client = make_client(mock_w3, mock_account)

        with pytest.raises(SubmissionError) as exc_info:
            await client.submit(TOKEN_ADDRESS, RECIPIENT, 1)

        assert exc_info.value.kind == SubmissionErrorKind.RPC_REJECTED
        mock_w3.eth.send_raw_transaction.assert_not_called()

        contract.functions.mint.return_value.build_transaction.side_effect = dict
        pending = await client.submit(TOKEN_ADDRESS, RECIPIENT, 1)
        assert pending.nonce == 5

    @pytest.mark.asyncio
    async def test_insufficient_funds(self, mock_w3, mock_account):
        mock_w3.eth.send_raw_transaction.side_effect = ValueError(
            {"code": -32000, "message": "insufficient funds for gas * price + value"}
        )
        client = make_client(mock_w3, mock_account)

        with pytest.raises(SubmissionError) as exc_info:
            await client.submit(TOKEN_ADDRESS, RECIPIENT, 1)

        assert exc_info.value.kind == SubmissionErrorKind.INSUFFICIENT_FUNDS

    @pytest.mark.asyncio
    async def test_signing_failure(self, mock_w3, mock_account):
        mock_account.sign_transaction.side_effect = TypeError("bad transaction field")
        client = make_client(mock_w3, mock_account)

        with pytest.raises(SubmissionError) as exc_info:
            await client.submit(TOKEN_ADDRESS, RECIPIENT, 1)

        assert exc_info.value.kind == SubmissionErrorKind.SIGNING
        mock_w3.eth.send_raw_transaction.assert_not_called()

    @pytest.mark.asyncio
    async def test_send_failure_refetches_nonce(self, mock_w3, mock_account):
        """After an uncertain send failure the next submission re-reads the nonce."""
        mock_w3.eth.send_raw_transaction.side_effect = [ConnectionError("reset"), TX_HASH]
        mock_w3.eth.get_transaction_count.side_effect = [5, 6]
        client = make_client(mock_w3, mock_account)

        with pytest.raises(SubmissionError) as exc_info:
            await client.submit(TOKEN_ADDRESS, RECIPIENT, 1)
        assert exc_info.value.kind == SubmissionErrorKind.RPC_REJECTED

        pending = await client.submit(TOKEN_ADDRESS, RECIPIENT, 1)

        assert pending.nonce == 6
        assert mock_w3.eth.get_transaction_count.call_count == 2


class TestAwaitConfirmation:
    """Tests for receipt polling."""

    def _pending(self) -> PendingTransaction:
        return PendingTransaction(chain_id=1, tx_hash="0x" + "ab" * 32, nonce=5, submitted_at=0.0)

    @pytest.mark.asyncio
    async def test_confirmed(self, mock_w3, mock_account):
        receipt = {"status": 1, "blockNumber": 100, "gasUsed": 52000}
        mock_w3.eth.wait_for_transaction_receipt.return_value = receipt
        client = make_client(mock_w3, mock_account)

        result = await client.await_confirmation(self._pending())

        assert result == receipt
        mock_w3.eth.wait_for_transaction_receipt.assert_called_once_with(
            "0x" + "ab" * 32, timeout=5.0, poll_latency=0.1
        )

    @pytest.mark.asyncio
    async def test_reverted(self, mock_w3, mock_account):
        mock_w3.eth.wait_for_transaction_receipt.return_value = {"status": 0, "blockNumber": 100}
        client = make_client(mock_w3, mock_account)

        with pytest.raises(TransactionReverted):
            await client.await_confirmation(self._pending())

    @pytest.mark.asyncio
    async def test_timeout(self, mock_w3, mock_account):
        mock_w3.eth.wait_for_transaction_receipt.side_effect = TimeExhausted("not mined")
        client = make_client(mock_w3, mock_account)

        with pytest.raises(ConfirmationTimeout, match="not mined within 5 seconds"):
            await client.await_confirmation(self._pending())

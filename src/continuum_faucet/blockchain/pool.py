"""Chain client pool.

Owns exactly one web3 connection and one signer per registered chain.
Clients are created on first use and reused for later claims.
"""

import asyncio
import logging
from web3 import Web3

from continuum_faucet.config import DistributionMethod
from continuum_faucet.core.wallet import WalletProvider
from continuum_faucet.errors import ClientUnavailable
from continuum_faucet.observability.metrics import CHAIN_CLIENTS

from .client import RPC_ERRORS, ChainClient, ChainSigner
from .networks import ChainConfig, is_valid_rpc_url

logger = logging.getLogger(__name__)


class ChainClientPool:
    """Lazily built, cached chain clients sharing one faucet wallet.

    Parameters
    ----------
    wallet : WalletProvider
        Faucet wallet; a dedicated ``ChainSigner`` is derived per chain.
    default_rpc_url : str | None
        Endpoint for chains registered without an RPC URL.
    method : DistributionMethod
        Contract function used by every client.
    confirmation_timeout : float
        Seconds each client waits for a receipt.
    poll_interval : float
        Seconds between receipt polls.
    rpc_timeout : float
        HTTP timeout for individual RPC requests.
    """

    def __init__(
        self,
        wallet: WalletProvider,
        default_rpc_url: str | None = None,
        method: DistributionMethod = DistributionMethod.MINT,
        confirmation_timeout: float = 30.0,
        poll_interval: float = 1.0,
        rpc_timeout: float = 10.0,
    ):
        self._wallet = wallet
        self._default_rpc_url = default_rpc_url
        self._method = method
        self._confirmation_timeout = confirmation_timeout
        self._poll_interval = poll_interval
        self._rpc_timeout = rpc_timeout
        self._clients: dict[int, ChainClient] = {}
        self._signers: dict[int, ChainSigner] = {}
        self._locks: dict[int, asyncio.Lock] = {}

    @property
    def size(self) -> int:
        """Number of cached clients."""
        return len(self._clients)

    def resolve_rpc_url(self, chain: ChainConfig) -> str | None:
        """RPC URL used for a chain: its own, else the pool default."""
        return chain.rpc_url or self._default_rpc_url

    async def get_client(self, chain: ChainConfig) -> ChainClient:
        """Get the client for a chain, connecting on first use.

        A cached client is rebuilt if the chain's RPC URL has changed. The
        chain's signer, and with it the tracked nonce, is kept across
        rebuilds.

        Parameters
        ----------
        chain : ChainConfig
            The registered chain.

        Returns
        -------
        ChainClient
            A connected client.

        Raises
        ------
        ClientUnavailable
            If the RPC URL is missing or malformed, the endpoint is
            unreachable, or it serves a different chain ID.
        """
        rpc_url = self.resolve_rpc_url(chain)
        lock = self._locks.setdefault(chain.chain_id, asyncio.Lock())

        async with lock:
            client = self._clients.get(chain.chain_id)
            if client is not None and client.rpc_url == rpc_url:
                return client

            w3 = await asyncio.to_thread(self._connect, chain, rpc_url)
            client = ChainClient(
                chain=chain,
                w3=w3,
                signer=self._signer_for(chain.chain_id),
                rpc_url=rpc_url,
                method=self._method,
                confirmation_timeout=self._confirmation_timeout,
                poll_interval=self._poll_interval,
            )
            self._clients[chain.chain_id] = client
            CHAIN_CLIENTS.set(self.size)

            logger.info(
                "Chain client connected",
                extra={"chain_id": chain.chain_id, "chain": chain.name, "rpc_url": rpc_url},
            )
            return client

    def _signer_for(self, chain_id: int) -> ChainSigner:
        signer = self._signers.get(chain_id)
        if signer is None:
            signer = ChainSigner(self._wallet.get_account(), chain_id)
            self._signers[chain_id] = signer
        return signer

    def _connect(self, chain: ChainConfig, rpc_url: str | None) -> Web3:
        """Build a web3 instance and verify it serves the expected chain."""
        if not rpc_url:
            raise ClientUnavailable(f"No RPC URL configured for chain {chain.chain_id}")

        if not is_valid_rpc_url(rpc_url):
            raise ClientUnavailable(f"Malformed RPC URL for chain {chain.chain_id}: {rpc_url}")

        try:
            provider = Web3.HTTPProvider(rpc_url, request_kwargs={"timeout": self._rpc_timeout})
        except ValueError as e:
            raise ClientUnavailable(
                f"Malformed RPC URL for chain {chain.chain_id}: {rpc_url}"
            ) from e
        w3 = Web3(provider)
        try:
            remote_chain_id = w3.eth.chain_id
        except RPC_ERRORS as e:
            logger.warning(
                "Chain RPC unreachable",
                extra={"chain_id": chain.chain_id, "rpc_url": rpc_url, "error": str(e)},
            )
            raise ClientUnavailable(
                f"RPC endpoint for chain {chain.chain_id} is unreachable: {e}"
            ) from e

        if remote_chain_id != chain.chain_id:
            raise ClientUnavailable(
                f"RPC endpoint for chain {chain.chain_id} reports chain ID {remote_chain_id}"
            )
        return w3

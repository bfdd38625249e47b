"""Chain registry records.

Chains are registered at runtime through the admin API or CLI. Nothing is
hardcoded here.
"""

from dataclasses import dataclass
from urllib.parse import urlparse

RPC_URL_SCHEMES = ("http", "https")


def is_valid_rpc_url(url: str | None) -> bool:
    """True for an http(s) URL with a host and, if given, a valid port."""
    if not url:
        return False
    try:
        parsed = urlparse(url)
        host, _port = parsed.hostname, parsed.port
    except ValueError:
        return False
    return parsed.scheme in RPC_URL_SCHEMES and bool(host)


@dataclass(frozen=True)
class ChainConfig:
    """A registered chain.

    Attributes
    ----------
    name : str
        Human-readable chain name.
    chain_id : int
        EIP-155 chain ID, unique within the registry.
    rpc_url : str | None
        JSON-RPC endpoint. None means the faucet's default RPC URL is used.
    block_explorer_url : str | None
        Optional block explorer URL for transaction links.
    """

    name: str
    chain_id: int
    rpc_url: str | None = None
    block_explorer_url: str | None = None

    def get_tx_url(self, tx_hash: str) -> str | None:
        """Get the block explorer URL for a transaction.

        Parameters
        ----------
        tx_hash : str
            The transaction hash.

        Returns
        -------
        str | None
            The block explorer URL, or None if no explorer configured.
        """
        if self.block_explorer_url:
            return f"{self.block_explorer_url.rstrip('/')}/tx/{tx_hash}"
        return None

    def get_address_url(self, address: str) -> str | None:
        """Get the block explorer URL for an address, or None without an explorer."""
        if self.block_explorer_url:
            return f"{self.block_explorer_url.rstrip('/')}/address/{address}"
        return None

    def to_dict(self) -> dict:
        """Convert to the JSON shape used by storage and the HTTP API."""
        return {
            "name": self.name,
            "chainId": self.chain_id,
            "rpcUrl": self.rpc_url,
            "blockExplorerUrl": self.block_explorer_url,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ChainConfig":
        """Build from the JSON shape produced by :meth:`to_dict`."""
        return cls(
            name=data.get("name", ""),
            chain_id=int(data["chainId"]),
            rpc_url=data.get("rpcUrl"),
            block_explorer_url=data.get("blockExplorerUrl"),
        )

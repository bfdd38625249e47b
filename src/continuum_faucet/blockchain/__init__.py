"""Blockchain integration for the faucet."""

from .client import ChainClient, ChainSigner, PendingTransaction
from .networks import ChainConfig
from .pool import ChainClientPool

__all__ = ["ChainClient", "ChainClientPool", "ChainConfig", "ChainSigner", "PendingTransaction"]

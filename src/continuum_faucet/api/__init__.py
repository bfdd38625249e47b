"""HTTP API for the faucet."""

from .middleware import client_ip
from .schemas import AddChainRequest, AddTokenRequest, RequestTokensRequest
from .server import FaucetAPI

__all__ = [
    "AddChainRequest",
    "AddTokenRequest",
    "FaucetAPI",
    "RequestTokensRequest",
    "client_ip",
]

"""Core faucet components."""

from .store import connect_redis
from .units import normalize_address, parse_base_units, parse_units, validate_address
from .wallet import EnvironmentWallet, WalletProvider, wallet_from_config

__all__ = [
    "EnvironmentWallet",
    "WalletProvider",
    "connect_redis",
    "normalize_address",
    "parse_base_units",
    "parse_units",
    "validate_address",
    "wallet_from_config",
]

"""Chain and token registry.

Chains are keyed by chain ID and tokens by (chain ID, lowercase address).
Uniqueness is enforced by the insert itself (``HSETNX`` in Redis, a
locked check-and-set in memory), so concurrent admin requests cannot
create duplicates.
"""

import json
import logging
import threading

from redis import Redis

from continuum_faucet.blockchain.networks import ChainConfig, is_valid_rpc_url
from continuum_faucet.core.units import normalize_address, parse_units, validate_address
from continuum_faucet.errors import DuplicateEntry, InvalidConfiguration

from .models import TokenConfig

logger = logging.getLogger(__name__)

CHAINS_KEY = "faucet:chains"
TOKENS_KEY = "faucet:tokens"


def _token_field(chain_id: int, address: str) -> str:
    return f"{chain_id}:{normalize_address(address)}"


class RegistryStore:
    """Registry of chains and tokens.

    Parameters
    ----------
    redis : Redis | None
        Redis client. If None, uses in-memory storage.
    """

    def __init__(self, redis: Redis | None = None):
        self._redis = redis
        self._lock = threading.Lock()

        # In-memory storage; dicts keep insertion order for listing
        self._memory_chains: dict[str, str] = {}
        self._memory_tokens: dict[str, str] = {}

    def _insert(self, key: str, field: str, value: str) -> bool:
        if self._redis:
            return bool(self._redis.hsetnx(key, field, value))

        table = self._memory_chains if key == CHAINS_KEY else self._memory_tokens
        with self._lock:
            if field in table:
                return False
            table[field] = value
            return True

    def _get(self, key: str, field: str) -> str | None:
        if self._redis:
            return self._redis.hget(key, field)
        table = self._memory_chains if key == CHAINS_KEY else self._memory_tokens
        return table.get(field)

    def _values(self, key: str) -> list[str]:
        if self._redis:
            return list(self._redis.hgetall(key).values())
        table = self._memory_chains if key == CHAINS_KEY else self._memory_tokens
        with self._lock:
            return list(table.values())

    def add_chain(
        self,
        name: str,
        chain_id: int,
        rpc_url: str | None = None,
        block_explorer_url: str | None = None,
    ) -> ChainConfig:
        """Register a chain.

        A chain without an RPC URL uses the faucet's default endpoint.

        Raises
        ------
        InvalidConfiguration
            If the RPC URL is not an http(s) URL with a host.
        DuplicateEntry
            If the chain ID is already registered.
        """
        if rpc_url is not None and not is_valid_rpc_url(rpc_url):
            raise InvalidConfiguration("Invalid RPC URL.")

        chain = ChainConfig(
            name=name,
            chain_id=chain_id,
            rpc_url=rpc_url,
            block_explorer_url=block_explorer_url,
        )
        if not self._insert(CHAINS_KEY, str(chain_id), json.dumps(chain.to_dict())):
            raise DuplicateEntry("This chain has already been added.")

        logger.info("Chain added", extra={"chain_id": chain_id, "chain": name})
        return chain

    def add_token(
        self,
        name: str,
        token_address: str,
        decimals: int,
        chain_id: int,
        amount: str,
    ) -> TokenConfig:
        """Register a token on a chain.

        The address is stored lowercase and ``amount`` is converted with
        ``decimals`` into the smallest unit.

        Raises
        ------
        InvalidConfiguration
            If the address, amount or decimals are invalid, or the chain is
            not registered.
        DuplicateEntry
            If the token is already registered on the chain.
        """
        address = normalize_address(token_address)
        if not validate_address(address):
            raise InvalidConfiguration("Invalid token address.")

        try:
            distribution_amount = parse_units(amount, decimals)
        except ValueError as e:
            raise InvalidConfiguration(f"Invalid amount: {e}") from e

        if self.get_chain(chain_id) is None:
            raise InvalidConfiguration(f"Chain {chain_id} has not been added.")

        token = TokenConfig(
            name=name,
            address=address,
            chain_id=chain_id,
            distribution_amount=str(distribution_amount),
        )
        field = _token_field(chain_id, address)
        if not self._insert(TOKENS_KEY, field, json.dumps(token.to_dict())):
            raise DuplicateEntry("This token on this chain has already been added.")

        logger.info(
            "Token added",
            extra={
                "chain_id": chain_id,
                "token": name,
                "address": address,
                "amount": token.distribution_amount,
            },
        )
        return token

    def get_chain(self, chain_id: int) -> ChainConfig | None:
        raw = self._get(CHAINS_KEY, str(chain_id))
        return ChainConfig.from_dict(json.loads(raw)) if raw else None

    def get_token(self, address: str, chain_id: int) -> TokenConfig | None:
        """Look up a token; the address may be in any casing."""
        raw = self._get(TOKENS_KEY, _token_field(chain_id, address))
        return TokenConfig.from_dict(json.loads(raw)) if raw else None

    def list_chains(self) -> list[ChainConfig]:
        """All chains, ordered by chain ID."""
        chains = [ChainConfig.from_dict(json.loads(raw)) for raw in self._values(CHAINS_KEY)]
        return sorted(chains, key=lambda chain: chain.chain_id)

    def list_tokens(self) -> list[TokenConfig]:
        """All tokens, ordered by chain ID then address."""
        tokens = [TokenConfig.from_dict(json.loads(raw)) for raw in self._values(TOKENS_KEY)]
        return sorted(tokens, key=lambda token: (token.chain_id, token.address))

    def tokens_for_chain(self, chain_id: int) -> list[TokenConfig]:
        return [token for token in self.list_tokens() if token.chain_id == chain_id]

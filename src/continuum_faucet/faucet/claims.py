"""Claim ledger and claim guard.

Every claim occupies two slots: one for the requesting IP address and one
for the wallet. Both slots are written in a single atomic operation, so of
any number of concurrent requests sharing an IP or a wallet exactly one
reserves the claim.
"""

import logging
import threading
from dataclasses import dataclass

from redis import Redis

from continuum_faucet.core.units import normalize_address, validate_address
from continuum_faucet.errors import AlreadyClaimed, InvalidWallet

from .models import ClaimRecord

logger = logging.getLogger(__name__)

# Deletes each key only while it still holds this claim's record
RELEASE_SCRIPT = """
local removed = 0
for _, key in ipairs(KEYS) do
    if redis.call("GET", key) == ARGV[1] then
        removed = removed + redis.call("DEL", key)
    end
end
return removed
"""


def _ip_key(ip_address: str) -> str:
    return f"faucet:claims:ip:{ip_address}"


def _wallet_key(wallet_address: str) -> str:
    return f"faucet:claims:wallet:{normalize_address(wallet_address)}"


class ClaimLedger:
    """Storage for claim records.

    Parameters
    ----------
    redis : Redis | None
        Redis client. If None, uses in-memory storage, which only guards
        claims within a single process.
    """

    def __init__(self, redis: Redis | None = None):
        self._redis = redis
        self._release_script = redis.register_script(RELEASE_SCRIPT) if redis else None

        # In-memory storage
        self._lock = threading.Lock()
        self._memory_claims: dict[str, str] = {}

    def try_insert(self, record: ClaimRecord) -> bool:
        """Insert a claim unless its IP or wallet already holds one.

        Returns
        -------
        bool
            True if the record was inserted.
        """
        keys = [_ip_key(record.ip_address), _wallet_key(record.wallet_address)]
        value = record.to_json()

        if self._redis:
            return bool(self._redis.msetnx({key: value for key in keys}))

        with self._lock:
            if any(key in self._memory_claims for key in keys):
                return False
            for key in keys:
                self._memory_claims[key] = value
            return True

    def remove(self, record: ClaimRecord) -> int:
        """Delete the slots still held by ``record``.

        Returns
        -------
        int
            Number of slots removed.
        """
        keys = [_ip_key(record.ip_address), _wallet_key(record.wallet_address)]
        value = record.to_json()

        if self._release_script:
            return int(self._release_script(keys=keys, args=[value]))

        with self._lock:
            removed = 0
            for key in keys:
                if self._memory_claims.get(key) == value:
                    del self._memory_claims[key]
                    removed += 1
            return removed

    def find(
        self,
        ip_address: str | None = None,
        wallet_address: str | None = None,
    ) -> ClaimRecord | None:
        """Find the claim held by an IP address or a wallet."""
        keys = []
        if ip_address:
            keys.append(_ip_key(ip_address))
        if wallet_address:
            keys.append(_wallet_key(wallet_address))

        for key in keys:
            raw = self._redis.get(key) if self._redis else self._memory_claims.get(key)
            if raw:
                return ClaimRecord.from_json(raw)
        return None

    def count(self) -> int:
        """Number of claims held, counted by wallet slot."""
        prefix = _wallet_key("")
        if self._redis:
            return sum(1 for _ in self._redis.scan_iter(match=f"{prefix}*"))
        with self._lock:
            return sum(1 for key in self._memory_claims if key.startswith(prefix))

    def reset_wallet(self, wallet_address: str) -> ClaimRecord | None:
        """Remove a wallet's claim and its IP slot (admin function).

        Returns
        -------
        ClaimRecord | None
            The removed claim, or None if the wallet had not claimed.
        """
        record = self.find(wallet_address=wallet_address)
        if record is None:
            return None
        self.remove(record)
        logger.info("Claim reset", extra={"wallet": record.wallet_address})
        return record


@dataclass(frozen=True)
class ReservationToken:
    """Proof of a reserved claim, needed to release it."""

    record: ClaimRecord

    @property
    def claim_id(self) -> str:
        return self.record.claim_id


class ClaimGuard:
    """Reserve-before-distribute guard over the claim ledger.

    Parameters
    ----------
    ledger : ClaimLedger
        Ledger holding the claim records.
    """

    def __init__(self, ledger: ClaimLedger):
        self._ledger = ledger

    def reserve(self, ip_address: str, wallet_address: str) -> ReservationToken:
        """Reserve the claim slot for an IP address and wallet.

        Parameters
        ----------
        ip_address : str
            Requester IP address.
        wallet_address : str
            Requesting wallet.

        Returns
        -------
        ReservationToken
            Token for :meth:`release`.

        Raises
        ------
        InvalidWallet
            If the wallet address is malformed. The ledger is not touched.
        AlreadyClaimed
            If the IP address or the wallet has claimed before.
        """
        if not wallet_address:
            raise InvalidWallet("No wallet address passed with POST request.")
        if not validate_address(wallet_address):
            raise InvalidWallet("Invalid wallet address.")

        record = ClaimRecord(
            ip_address=ip_address,
            wallet_address=normalize_address(wallet_address),
        )
        if not self._ledger.try_insert(record):
            logger.info(
                "Claim rejected, already claimed",
                extra={"ip": ip_address, "wallet": record.wallet_address},
            )
            raise AlreadyClaimed("You have already claimed from the testnet faucet.")

        logger.info(
            "Claim reserved",
            extra={"claim_id": record.claim_id, "ip": ip_address, "wallet": record.wallet_address},
        )
        return ReservationToken(record=record)

    def release(self, token: ReservationToken) -> None:
        """Give up a reservation so the requester may claim again."""
        removed = self._ledger.remove(token.record)
        logger.info(
            "Claim released",
            extra={"claim_id": token.claim_id, "slots_removed": removed},
        )

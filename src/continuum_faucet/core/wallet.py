"""The faucet signing key.

One key signs on every registered chain; the chain client pool builds a
per-chain signer around the account a ``WalletProvider`` hands out.
"""

import logging
import re
import stat
from abc import ABC, abstractmethod
from pathlib import Path

from eth_account import Account
from eth_account.signers.local import LocalAccount
from pydantic import SecretStr

from continuum_faucet.config import FaucetConfig

logger = logging.getLogger(__name__)

PRIVATE_KEY_PATTERN = re.compile(r"^(0x)?[0-9a-fA-F]{64}$")


class WalletProvider(ABC):
    """Source of the faucet account."""

    @abstractmethod
    def get_account(self) -> LocalAccount:
        """Return the account used to sign distribution transactions."""
        ...

    @property
    def address(self) -> str:
        """Checksummed faucet address."""
        return self.get_account().address


def _account_from_key(raw_key: str, source: str) -> LocalAccount:
    key = raw_key.strip()
    if not PRIVATE_KEY_PATTERN.match(key):
        # The key itself never goes into the message
        raise ValueError(f"Invalid faucet private key in {source}")
    return Account.from_key(key)


def _read_key_file(path: Path) -> str:
    mode = path.stat().st_mode
    if mode & (stat.S_IRWXG | stat.S_IRWXO):
        logger.warning(
            "Faucet key file is readable by other users",
            extra={"path": str(path), "mode": oct(stat.S_IMODE(mode))},
        )
    return path.read_text()


class EnvironmentWallet(WalletProvider):
    """Faucet key taken from ``FAUCET_PRIVATE_KEY`` or a key file.

    Parameters
    ----------
    private_key : SecretStr, optional
        Hex private key, with or without ``0x``. Wins over the file.
    private_key_file : str, optional
        Path to a file holding the hex private key; ``~`` is expanded.

    Raises
    ------
    ValueError
        If neither source is given or the key is malformed.
    FileNotFoundError
        If private_key_file does not exist.
    """

    def __init__(
        self,
        private_key: SecretStr | None = None,
        private_key_file: str | None = None,
    ):
        if private_key is not None:
            self._account = _account_from_key(
                private_key.get_secret_value(), "FAUCET_PRIVATE_KEY"
            )
        elif private_key_file is not None:
            key_path = Path(private_key_file).expanduser()
            if not key_path.exists():
                raise FileNotFoundError(f"Private key file not found: {private_key_file}")
            self._account = _account_from_key(_read_key_file(key_path), str(key_path))
        else:
            raise ValueError("Either private_key or private_key_file must be provided")

    def get_account(self) -> LocalAccount:
        return self._account


def wallet_from_config(config: FaucetConfig) -> EnvironmentWallet:
    """Build the faucet wallet from configuration.

    The inline key wins when both the key and the key file are configured.

    Raises
    ------
    ValueError
        If no key source is configured or the key is malformed.
    """
    if config.wallet_private_key:
        return EnvironmentWallet(private_key=config.wallet_private_key)
    if config.wallet_private_key_file:
        return EnvironmentWallet(private_key_file=config.wallet_private_key_file)
    raise ValueError("No wallet configured. Set FAUCET_PRIVATE_KEY or FAUCET_PRIVATE_KEY_FILE")

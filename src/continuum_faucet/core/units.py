"""Address and token amount helpers."""

import re
from decimal import Decimal, DecimalException, localcontext

from web3 import Web3

# Ethereum address pattern: 0x followed by 40 hex characters
ADDRESS_PATTERN = re.compile(r"^0x[0-9a-fA-F]{40}$")

MAX_DECIMALS = 77

# Largest amount an ERC-20 mint or transfer call can carry
MAX_UINT256 = 2**256 - 1


def validate_address(address: str) -> bool:
    """Validate an EVM address.

    Mixed-case addresses must carry a valid EIP-55 checksum; all-lowercase
    and all-uppercase hex is accepted as is.

    Parameters
    ----------
    address : str
        Address to validate.

    Returns
    -------
    bool
        True if the address is well formed.
    """
    if not isinstance(address, str) or not ADDRESS_PATTERN.match(address):
        return False
    return Web3.is_address(address)


def normalize_address(address: str) -> str:
    """Lowercase an address for storage and identity comparisons."""
    return address.strip().lower()


def parse_units(amount: str | int | Decimal, decimals: int) -> int:
    """Convert a human-readable amount into the token's smallest unit.

    ``parse_units("1.5", 18) == 1500000000000000000``.

    Parameters
    ----------
    amount : str | int | Decimal
        Decimal amount, e.g. ``"1.5"``.
    decimals : int
        Token decimals.

    Returns
    -------
    int
        Amount in the smallest unit.

    Raises
    ------
    ValueError
        If the amount is not a positive number, has more fractional digits
        than ``decimals``, does not fit in a uint256, or ``decimals`` is out
        of range.
    """
    if isinstance(decimals, bool) or not isinstance(decimals, int):
        raise ValueError(f"Invalid decimals: {decimals!r}")
    if not 0 <= decimals <= MAX_DECIMALS:
        raise ValueError(f"Decimals must be between 0 and {MAX_DECIMALS}, got {decimals}")

    try:
        value = Decimal(str(amount).strip())
    except DecimalException:
        raise ValueError(f"Invalid amount: {amount!r}") from None
    if not value.is_finite():
        raise ValueError(f"Invalid amount: {amount!r}")

    try:
        with localcontext() as ctx:
            ctx.prec = 200
            scaled = value.scaleb(decimals)
            fractional = scaled != scaled.to_integral_value()
    except DecimalException:
        raise ValueError(f"Amount {amount} is out of range") from None
    if fractional:
        raise ValueError(f"Amount {amount} has more than {decimals} decimal places")
    if scaled <= 0:
        raise ValueError("Amount must be positive")
    if scaled > MAX_UINT256:
        raise ValueError(f"Amount {amount} exceeds the uint256 maximum")
    return int(scaled)


def parse_base_units(value: str | int) -> int:
    """Parse a stored smallest-unit amount, rejecting anything but a positive integer."""
    if isinstance(value, bool):
        raise ValueError(f"Invalid amount: {value!r}")
    if isinstance(value, int):
        units = value
    else:
        text = str(value).strip()
        if not text.isdigit():
            raise ValueError(f"Invalid amount: {value!r}")
        units = int(text)
    if units <= 0:
        raise ValueError("Amount must be positive")
    if units > MAX_UINT256:
        raise ValueError("Amount exceeds the uint256 maximum")
    return units

"""
Iceberg Protocol Assets

Asset = Native | Fungible(token address), and a Vault holding balances of
every asset with a single transfer capability.

The chain's native coin is written as the zero address in swap
configurations and as 0xEeee...EeE in aggregator requests; both map to
NATIVE.
"""

from __future__ import annotations
import logging
from dataclasses import dataclass, field
from typing import Dict, Set, Tuple, Union

from iceberg.constants import NATIVE_TOKEN_SENTINEL
from iceberg.core.types import Address, parse_amount
from iceberg.errors import InsufficientFundsError, TransferFailedError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Native:
    """The chain's native coin."""

    def __str__(self) -> str:
        return "NATIVE"

    @property
    def address(self) -> Address:
        return Address.zero()

    @property
    def api_address(self) -> str:
        return NATIVE_TOKEN_SENTINEL


@dataclass(frozen=True)
class Fungible:
    """Fungible token identified by its contract address."""
    token: Address

    def __str__(self) -> str:
        return self.token.checksum

    @property
    def address(self) -> Address:
        return self.token

    @property
    def api_address(self) -> str:
        return self.token.checksum


Asset = Union[Native, Fungible]

NATIVE = Native()

_NATIVE_SENTINEL = Address.from_hex(NATIVE_TOKEN_SENTINEL)


def asset_from_address(value: Union[Address, str, bytes]) -> Asset:
    """Map a token address (zero or sentinel for the native coin) to an Asset."""
    address = Address.parse(value)
    if address.is_zero() or address == _NATIVE_SENTINEL:
        return NATIVE
    return Fungible(address)


def asset_to_dict(asset: Asset) -> dict:
    if isinstance(asset, Native):
        return {"kind": "native", "address": asset.address.checksum}
    return {"kind": "fungible", "address": asset.address.checksum}


@dataclass
class Vault:
    """
    Balances of every asset per owner.

    Tokens may block individual recipients (as USDC/USDT blacklists do);
    transfers to a blocked recipient revert with TransferFailedError.
    """
    _balances: Dict[Tuple[Asset, Address], int] = field(default_factory=dict)
    _blocked: Dict[Asset, Set[Address]] = field(default_factory=dict)

    def balance_of(self, asset: Asset, owner: Address) -> int:
        return self._balances.get((asset, owner), 0)

    def mint(self, asset: Asset, owner: Address, amount: int) -> None:
        """Credit an owner from outside the vault (funding, swap proceeds)."""
        amount = parse_amount(amount)
        key = (asset, owner)
        self._balances[key] = self._balances.get(key, 0) + amount

    def burn(self, asset: Asset, owner: Address, amount: int) -> None:
        """Debit an owner to outside the vault (swap input)."""
        amount = parse_amount(amount)
        balance = self.balance_of(asset, owner)
        if balance < amount:
            raise InsufficientFundsError(owner, asset, balance, amount)
        self._balances[(asset, owner)] = balance - amount

    def block(self, asset: Asset, recipient: Address) -> None:
        self._blocked.setdefault(asset, set()).add(recipient)

    def unblock(self, asset: Asset, recipient: Address) -> None:
        self._blocked.get(asset, set()).discard(recipient)

    def transfer(self, asset: Asset, sender: Address, to: Address, amount: int) -> None:
        """
        Move amount of asset from sender to to.

        Raises:
            InsufficientFundsError: If sender's balance is too low
            TransferFailedError: If the token rejects the recipient
        """
        amount = parse_amount(amount)
        if to in self._blocked.get(asset, ()):
            raise TransferFailedError(asset, to, amount, "recipient blocked by token")

        balance = self.balance_of(asset, sender)
        if balance < amount:
            raise InsufficientFundsError(sender, asset, balance, amount)

        self._balances[(asset, sender)] = balance - amount
        key = (asset, to)
        self._balances[key] = self._balances.get(key, 0) + amount
        logger.debug(f"Transfer {amount} {asset}: {sender} -> {to}")

    def copy(self) -> "Vault":
        return Vault(
            _balances=dict(self._balances),
            _blocked={asset: set(recipients) for asset, recipients in self._blocked.items()},
        )

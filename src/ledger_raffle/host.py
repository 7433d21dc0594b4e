"""
Host collaborators: what the execution environment hands to each call.

The raffle never reads wall-clock time or OS randomness on its own; the host
supplies block time and a randomness source per call, and moves funds through
a bank whose transfers either fully succeed or fully fail.
"""

from __future__ import annotations

import hashlib
import os
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

from .errors import CorruptRecordError, InsufficientFundsError, InvalidMessageError
from .identity import Identity
from .project_constants import BANK_PREFIX, RANDOM_SEED_BYTES, U128_MAX
from .stores import Transaction


@dataclass(frozen=True)
class Coin:
    denom: str
    amount: int

    def __post_init__(self) -> None:
        if isinstance(self.amount, bool) or not isinstance(self.amount, int) or self.amount < 0:
            raise InvalidMessageError("coin amount must be a non-negative integer")


@dataclass(frozen=True)
class MessageInfo:
    sender: Identity
    funds: Sequence[Coin] = ()


class RandomSource(ABC):
    @abstractmethod
    def random_bytes(self) -> Optional[bytes]:
        """Return the host's random value for this call, or None if unavailable."""
        ...


class FixedRandomness(RandomSource):
    def __init__(self, seed: bytes) -> None:
        self.seed = seed

    def random_bytes(self) -> Optional[bytes]:
        return self.seed


class SystemRandomness(RandomSource):
    def random_bytes(self) -> Optional[bytes]:
        return os.urandom(RANDOM_SEED_BYTES)


class NoRandomness(RandomSource):
    def random_bytes(self) -> Optional[bytes]:
        return None


@dataclass(frozen=True)
class BlockEnv:
    time: int  # unix seconds at call execution
    randomness: RandomSource = field(default_factory=NoRandomness)


@dataclass(frozen=True)
class Transfer:
    recipient: Identity
    coin: Coin


@dataclass
class Response:
    attributes: Dict[str, str] = field(default_factory=dict)
    transfers: List[Transfer] = field(default_factory=list)
    data: object = None

    def add_attribute(self, key: str, value: object) -> "Response":
        self.attributes[key] = str(value)
        return self


class Bank(ABC):
    """Funds-transfer primitive of the host."""

    @abstractmethod
    def balance(self, address: Identity, denom: str) -> int:
        ...

    @abstractmethod
    def transfer(self, sender: Identity, recipient: Identity, coin: Coin) -> None:
        """Move coin from sender to recipient, or raise without moving anything."""
        ...


class LedgerBank(Bank):
    """Balances kept in the same transaction as raffle state, so they commit together."""

    def __init__(self, txn: Transaction) -> None:
        self._txn = txn

    @staticmethod
    def _key(address: Identity, denom: str) -> str:
        return f"{BANK_PREFIX}{address.address}/{denom}"

    def balance(self, address: Identity, denom: str) -> int:
        key = self._key(address, denom)
        value = self._txn.may_load(key)
        if value is None:
            return 0
        try:
            amount = int(value)
        except (TypeError, ValueError) as e:
            raise CorruptRecordError(key, "balance is not an integer") from e
        if amount < 0:
            raise CorruptRecordError(key, "balance is negative")
        return amount

    def _set(self, address: Identity, denom: str, amount: int) -> None:
        self._txn.save(self._key(address, denom), str(amount))

    def mint(self, recipient: Identity, coin: Coin) -> None:
        new_balance = self.balance(recipient, coin.denom) + coin.amount
        if new_balance > U128_MAX:
            raise InvalidMessageError("balance would exceed 128 bits")
        self._set(recipient, coin.denom, new_balance)

    def transfer(self, sender: Identity, recipient: Identity, coin: Coin) -> None:
        if coin.amount == 0:
            return
        available = self.balance(sender, coin.denom)
        if available < coin.amount:
            raise InsufficientFundsError(coin.denom)
        self._set(sender, coin.denom, available - coin.amount)
        self.mint(recipient, coin)


def contract_address_for(label: str) -> Identity:
    """Deterministic custody address for a deployment label."""
    return Identity(hashlib.sha256(f"ledger-raffle:{label}".encode("utf-8")).digest())

"""Pytest configuration and shared fixtures."""

import struct
from typing import Callable, Optional

import pytest
from nacl.signing import SigningKey

from ledger_raffle.contract import RaffleContract
from ledger_raffle.host import BlockEnv, Coin, FixedRandomness, MessageInfo, RandomSource, contract_address_for
from ledger_raffle.identity import Identity
from ledger_raffle.project_constants import PAYOUT_DENOM
from ledger_raffle.stores import MemoryStore

T0 = 1_700_000_000
END_TIME = T0 + 60
PRICE = 100
SECRET = "open sesame"
STARTING_BALANCE = 10_000


def seed_for(value: int) -> bytes:
    """32-byte random value whose first 8 bytes decode (little-endian) to value."""
    return struct.pack("<Q", value) + bytes(24)


class SpyRandomness(RandomSource):
    def __init__(self, seed: Optional[bytes] = None) -> None:
        self.seed = seed
        self.calls = 0

    def random_bytes(self) -> Optional[bytes]:
        self.calls += 1
        return self.seed


def _key(n: int) -> SigningKey:
    return SigningKey(bytes([n]) * 32)


@pytest.fixture
def admin_key() -> SigningKey:
    return _key(1)


@pytest.fixture
def alice_key() -> SigningKey:
    return _key(2)


@pytest.fixture
def bob_key() -> SigningKey:
    return _key(3)


@pytest.fixture
def admin(admin_key) -> Identity:
    return Identity(bytes(admin_key.verify_key))


@pytest.fixture
def alice(alice_key) -> Identity:
    return Identity(bytes(alice_key.verify_key))


@pytest.fixture
def bob(bob_key) -> Identity:
    return Identity(bytes(bob_key.verify_key))


@pytest.fixture
def contract_address() -> Identity:
    return contract_address_for("tests")


@pytest.fixture
def store() -> MemoryStore:
    return MemoryStore()


@pytest.fixture
def contract(store, contract_address, admin, alice, bob) -> RaffleContract:
    c = RaffleContract(store, contract_address)
    c.instantiate(MessageInfo(sender=admin))
    for user in (admin, alice, bob):
        c.mint(user, STARTING_BALANCE)
    return c


@pytest.fixture
def execute(contract) -> Callable:
    """execute(sender, msg, now=T0, amount=0, randomness=None) -> Response"""

    def _execute(sender, msg, now=T0, amount=0, randomness=None):
        funds = (Coin(PAYOUT_DENOM, amount),) if amount else ()
        env = BlockEnv(time=now, randomness=randomness or FixedRandomness(seed_for(0)))
        return contract.execute(env, MessageInfo(sender=sender, funds=funds), msg)

    return _execute


@pytest.fixture
def configured(contract, execute, admin) -> RaffleContract:
    execute(
        admin,
        {"set_raffle": {"secret": SECRET, "ticket_price": str(PRICE), "end_time": str(END_TIME)}},
    )
    return contract


@pytest.fixture
def started(configured, execute, admin) -> RaffleContract:
    execute(admin, {"start_raffle": {}})
    return configured

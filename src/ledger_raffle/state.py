"""Raffle state records and their typed storage codec.

Each entity lives under its own key. Decoding validates shape so a damaged
record surfaces as CorruptRecordError instead of a bad transition.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from .errors import CorruptRecordError, InvalidConfigError, InvalidIdentityError
from .identity import Identity
from .ledger import TicketLedger
from .project_constants import (
    ADMIN_KEY,
    PRIZE_CLAIMED_KEY,
    RAFFLE_KEY,
    STARTED_KEY,
    TICKETS_KEY,
    TOTAL_TICKETS_KEY,
    U64_MAX,
    U128_MAX,
    WINNER_KEY,
    WINNER_SELECTED_KEY,
)
from .stores import Transaction


def _is_uint(value: Any, limit: int) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and 0 <= value <= limit


@dataclass(frozen=True)
class RaffleConfig:
    end_time: int  # unix seconds
    ticket_price: int
    secret: str

    def __post_init__(self) -> None:
        if not _is_uint(self.end_time, U64_MAX):
            raise InvalidConfigError("end_time must be an unsigned 64-bit integer")
        if not _is_uint(self.ticket_price, U128_MAX):
            raise InvalidConfigError("ticket_price must be an unsigned 128-bit integer")
        if self.ticket_price == 0:
            raise InvalidConfigError("ticket_price must be greater than zero")
        if not isinstance(self.secret, str):
            raise InvalidConfigError("secret must be a string")

    def to_record(self) -> Dict[str, Any]:
        return {
            "end_time": self.end_time,
            "ticket_price": str(self.ticket_price),
            "secret": self.secret,
        }

    @classmethod
    def from_record(cls, record: Any) -> "RaffleConfig":
        try:
            return cls(
                end_time=record["end_time"],
                ticket_price=int(record["ticket_price"]),
                secret=record["secret"],
            )
        except (KeyError, TypeError, ValueError, InvalidConfigError) as e:
            raise CorruptRecordError(RAFFLE_KEY, f"bad raffle record: {e}") from e


@dataclass(frozen=True)
class LifecycleFlags:
    started: bool = False
    winner_selected: bool = False
    prize_claimed: bool = False


class RaffleStorage:
    """Typed accessors for every raffle entity, bound to one call's transaction."""

    def __init__(self, txn: Transaction) -> None:
        self._txn = txn

    # --- admin ---------------------------------------------------------------

    def is_instantiated(self) -> bool:
        return self._txn.may_load(ADMIN_KEY) is not None

    def load_admin(self) -> Identity:
        return _decode_identity(ADMIN_KEY, self._txn.load(ADMIN_KEY))

    def save_admin(self, admin: Identity) -> None:
        self._txn.save(ADMIN_KEY, admin.address)

    # --- flags ---------------------------------------------------------------

    def load_flags(self) -> LifecycleFlags:
        return LifecycleFlags(
            started=self._load_flag(STARTED_KEY),
            winner_selected=self._load_flag(WINNER_SELECTED_KEY),
            prize_claimed=self._load_flag(PRIZE_CLAIMED_KEY),
        )

    def init_flags(self) -> None:
        for key in (STARTED_KEY, WINNER_SELECTED_KEY, PRIZE_CLAIMED_KEY):
            self._txn.save(key, False)

    # Flags only ever move false -> true.
    def mark_started(self) -> None:
        self._txn.save(STARTED_KEY, True)

    def mark_winner_selected(self) -> None:
        self._txn.save(WINNER_SELECTED_KEY, True)

    def mark_prize_claimed(self) -> None:
        self._txn.save(PRIZE_CLAIMED_KEY, True)

    def _load_flag(self, key: str) -> bool:
        value = self._txn.load(key)
        if not isinstance(value, bool):
            raise CorruptRecordError(key, "flag is not a boolean")
        return value

    # --- config --------------------------------------------------------------

    def may_load_config(self) -> Optional[RaffleConfig]:
        record = self._txn.may_load(RAFFLE_KEY)
        if record is None:
            return None
        return RaffleConfig.from_record(record)

    def save_config(self, config: RaffleConfig) -> None:
        self._txn.save(RAFFLE_KEY, config.to_record())

    # --- tickets -------------------------------------------------------------

    def load_ledger(self) -> TicketLedger:
        total = self._txn.load(TOTAL_TICKETS_KEY)
        if not _is_uint(total, U64_MAX):
            raise CorruptRecordError(TOTAL_TICKETS_KEY, "total is not an unsigned 64-bit integer")

        raw_entries = self._txn.may_load(TICKETS_KEY) or []
        if not isinstance(raw_entries, list):
            raise CorruptRecordError(TICKETS_KEY, "ticket table is not a list")

        entries: List[Tuple[Identity, int]] = []
        for item in raw_entries:
            if not (isinstance(item, list) and len(item) == 2 and _is_uint(item[1], U64_MAX)):
                raise CorruptRecordError(TICKETS_KEY, f"bad ticket entry: {item!r}")
            entries.append((_decode_identity(TICKETS_KEY, item[0]), item[1]))

        if len({identity for identity, _ in entries}) != len(entries):
            raise CorruptRecordError(TICKETS_KEY, "duplicate ticket holder")
        if sum(count for _, count in entries) != total:
            raise CorruptRecordError(TOTAL_TICKETS_KEY, "total does not match ticket table")
        return TicketLedger(entries, total)

    def save_ledger(self, ledger: TicketLedger) -> None:
        # Table and total are always written together.
        self._txn.save(TICKETS_KEY, [[identity.address, count] for identity, count in ledger])
        self._txn.save(TOTAL_TICKETS_KEY, ledger.total())

    # --- winner --------------------------------------------------------------

    def load_winner(self) -> Optional[Identity]:
        value = self._txn.may_load(WINNER_KEY)
        if value is None:
            return None
        return _decode_identity(WINNER_KEY, value)

    def save_winner(self, winner: Optional[Identity]) -> None:
        self._txn.save(WINNER_KEY, winner.address if winner else None)


def _decode_identity(key: str, value: Any) -> Identity:
    if not isinstance(value, str):
        raise CorruptRecordError(key, "identity is not a string")
    try:
        return Identity.from_string(value)
    except InvalidIdentityError as e:
        raise CorruptRecordError(key, "identity is malformed") from e

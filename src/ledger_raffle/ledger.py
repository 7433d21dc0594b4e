from __future__ import annotations

from typing import Dict, Iterable, Iterator, Tuple

from .errors import CounterOverflowError
from .identity import Identity
from .project_constants import U64_MAX


def checked_add(a: int, b: int, limit: int, what: str) -> int:
    total = a + b
    if total > limit:
        raise CounterOverflowError(what)
    return total


def tickets_for_payment(amount: int, ticket_price: int) -> int:
    """Ticket count for an exact-multiple payment, bounded to the u64 counter range."""
    tickets = amount // ticket_price
    if tickets > U64_MAX:
        raise CounterOverflowError("Ticket purchase")
    return tickets


class TicketLedger:
    """
    Per-participant ticket counts plus a running total.

    Entries keep first-purchase order; that order is what the draw walks.
    """

    def __init__(
        self, entries: Iterable[Tuple[Identity, int]] = (), total: int = 0
    ) -> None:
        self._tickets: Dict[Identity, int] = dict(entries)
        self._total = total

    def get(self, identity: Identity) -> int:
        return self._tickets.get(identity, 0)

    def total(self) -> int:
        return self._total

    def add(self, identity: Identity, delta: int) -> int:
        # Both counters are checked before either is written.
        new_count = checked_add(self.get(identity), delta, U64_MAX, "User ticket count")
        new_total = checked_add(self._total, delta, U64_MAX, "Total ticket count")
        self._tickets[identity] = new_count
        self._total = new_total
        return new_count

    def __iter__(self) -> Iterator[Tuple[Identity, int]]:
        return iter(self._tickets.items())

from __future__ import annotations

import logging
import struct
from bisect import bisect_right
from dataclasses import dataclass
from typing import Iterable, List, Optional, Tuple

from .errors import RandomnessUnavailableError
from .identity import Identity
from .project_constants import RANDOM_INDEX_BYTES

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class TicketRange:
    identity: Identity
    tickets: int
    start_ticket: int
    end_ticket: int  # exclusive


@dataclass(frozen=True)
class DrawResult:
    seed: bytes
    seed_int: int
    winning_index: int
    total_tickets: int
    ranges: Tuple[TicketRange, ...]
    winner: TicketRange


def build_ranges(entries: Iterable[Tuple[Identity, int]]) -> Tuple[List[TicketRange], int]:
    ranges: List[TicketRange] = []
    cursor = 0
    for identity, tickets in entries:
        if tickets <= 0:
            continue
        start = cursor
        end = cursor + tickets
        ranges.append(TicketRange(identity, tickets, start, end))
        cursor = end
    return ranges, cursor


def compute_index(seed: Optional[bytes], total_tickets: int) -> Tuple[int, int]:
    """
    First 8 bytes of the seed, little-endian, modulo the ticket total.

    The modulo leaves a small bias toward low residues when total_tickets does
    not divide 2**64. Changing this changes the winner for a given seed.
    """
    if not seed or len(seed) < RANDOM_INDEX_BYTES:
        raise RandomnessUnavailableError()
    seed_int = struct.unpack("<Q", seed[:RANDOM_INDEX_BYTES])[0]
    return seed_int % total_tickets, seed_int


def find_winner(ranges: List[TicketRange], index: int) -> TicketRange:
    # First range whose running sum (end_ticket) strictly exceeds the index.
    ends = [r.end_ticket for r in ranges]
    idx = bisect_right(ends, index)
    if idx < 0 or idx >= len(ranges):
        raise RuntimeError("Ticket index out of range (unexpected).")
    return ranges[idx]


def draw(entries: Iterable[Tuple[Identity, int]], seed: Optional[bytes]) -> DrawResult:
    ranges, total = build_ranges(entries)
    if total <= 0:
        raise ValueError("draw requires at least one ticket")

    index, seed_int = compute_index(seed, total)
    winner = find_winner(ranges, index)
    log.debug("Seed u64 %d, total %d, winning index %d", seed_int, total, index)
    return DrawResult(
        seed=bytes(seed),
        seed_int=seed_int,
        winning_index=index,
        total_tickets=total,
        ranges=tuple(ranges),
        winner=winner,
    )

from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Any, Dict

from .draw import DrawResult, draw
from .identity import Identity


def build_audit(result: DrawResult, contract_address: str, seed_source: str) -> Dict[str, Any]:
    """Publishable record of a draw: enough for anyone to recompute the winner."""
    return {
        "metadata": {
            "tool": "ledger-raffle",
            "version": "1.0.0",
            "generated_at_utc": datetime.now(timezone.utc).isoformat(),
            "contract_address": contract_address,
            "seed_hex": result.seed.hex(),
            "seed_source": seed_source,
            "seed_u64": str(result.seed_int),  # big int; string for JSON consumers
            "total_tickets": str(result.total_tickets),
            "winning_index": str(result.winning_index),
        },
        "winner": {
            "address": result.winner.identity.address,
            "tickets": str(result.winner.tickets),
        },
        # Ledger order, which is the order the draw walked.
        "all_entrants": [
            {
                "address": r.identity.address,
                "tickets": str(r.tickets),
                "start_ticket": str(r.start_ticket),
                "end_ticket": str(r.end_ticket),
            }
            for r in result.ranges
        ],
    }


def verify_audit_doc(audit: Dict[str, Any]) -> Dict[str, Any]:
    meta = audit["metadata"]
    seed = bytes.fromhex(meta["seed_hex"])
    total_expected = int(meta["total_tickets"])
    index_expected = int(meta["winning_index"])

    entrants = [
        (Identity.from_string(e["address"]), int(e["tickets"]))
        for e in audit["all_entrants"]
    ]
    result = draw(entrants, seed)

    if result.total_tickets != total_expected:
        raise RuntimeError(
            f"Total tickets mismatch: audit={total_expected} recomputed={result.total_tickets}"
        )
    if result.winning_index != index_expected:
        raise RuntimeError(
            f"Winning index mismatch: audit={index_expected} recomputed={result.winning_index}"
        )

    winner_expected = audit["winner"]["address"]
    if result.winner.identity.address != winner_expected:
        raise RuntimeError(
            f"Winner mismatch: audit={winner_expected} recomputed={result.winner.identity.address}"
        )

    return {
        "ok": True,
        "seed_hex": seed.hex(),
        "seed_u64": result.seed_int,
        "winner": result.winner.identity.address,
        "winning_index": result.winning_index,
        "total_tickets": result.total_tickets,
    }


def verify_audit(audit_path: str) -> Dict[str, Any]:
    with open(audit_path, "r", encoding="utf-8") as f:
        audit = json.load(f)
    return verify_audit_doc(audit)

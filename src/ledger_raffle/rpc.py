from __future__ import annotations

import json
import logging
from itertools import count
from typing import Any, List, Optional

import base58
import httpx

from .host import RandomSource

log = logging.getLogger(__name__)


class RpcClient:
    """Minimal JSON-RPC client to a ledger node: block time and blockhash per slot."""

    def __init__(self, rpc_url: str, timeout_s: float = 60.0) -> None:
        self.rpc_url = rpc_url
        self.client = httpx.Client(timeout=timeout_s)
        self._ids = count(1)

    def close(self) -> None:
        self.client.close()

    def call(self, method: str, params: List[Any]) -> Any:
        payload = {"jsonrpc": "2.0", "id": next(self._ids), "method": method, "params": params}
        resp = self.client.post(self.rpc_url, json=payload)
        resp.raise_for_status()
        try:
            data = resp.json()
        except ValueError as e:
            raise RuntimeError(f"RPC response to {method} is not JSON: {e}")
        if not isinstance(data, dict):
            raise RuntimeError(f"RPC response to {method} is not a JSON object.")
        if "error" in data:
            raise RuntimeError(f"RPC error in {method}: {data['error']}")
        return data.get("result")

    def get_block_time(self, slot: int) -> int:
        """Unix timestamp of a slot; this is the host clock for a call pinned to that slot."""
        result = self.call("getBlockTime", [slot])
        if result is None:
            raise RuntimeError(f"Timestamp not available for slot {slot}")
        return int(result)

    def get_blockhash_for_slot(self, slot: int) -> str:
        options = {"encoding": "json", "transactionDetails": "none", "rewards": False}
        result = self.call("getBlock", [slot, options])
        if not isinstance(result, dict) or not isinstance(result.get("blockhash"), str):
            raise RuntimeError(f"Slot {slot}: getBlock returned no blockhash.")
        return result["blockhash"]


def seed_from_blockhash(blockhash: str) -> bytes:
    try:
        return base58.b58decode(blockhash.strip())
    except ValueError as e:
        raise RuntimeError(f"Blockhash is not valid base58: {e}")


class BlockhashRandomness(RandomSource):
    """Random value taken from the finalized blockhash of a pre-announced slot."""

    def __init__(self, rpc: RpcClient, slot: int) -> None:
        self.rpc = rpc
        self.slot = slot
        self.blockhash: Optional[str] = None

    def random_bytes(self) -> Optional[bytes]:
        try:
            self.blockhash = self.rpc.get_blockhash_for_slot(self.slot)
        except httpx.HTTPError as e:
            raise RuntimeError(f"Slot {self.slot}: RPC request failed: {e}")
        log.info("Seed (blockhash): %s", self.blockhash)
        return seed_from_blockhash(self.blockhash)


class BlockFeedRandomness(RandomSource):
    """Same as BlockhashRandomness, but the blockhash comes from a saved feed file."""

    def __init__(self, path: str, slot: Optional[int] = None) -> None:
        self.path = path
        self.slot = slot
        self.blockhash: Optional[str] = None

    def random_bytes(self) -> Optional[bytes]:
        self.blockhash = load_blockhash_from_feed(self.path, self.slot)
        return seed_from_blockhash(self.blockhash)


def load_blockhash_from_feed(path: str, slot: Optional[int] = None) -> str:
    """
    The file holds either a bare blockhash, or JSON shaped like one of:
      {"blockhash": "..."}            (with optional "slot", checked against slot)
      {"result": {"blockhash": "..."}}
      {"blocks": {"<slot>": {"blockhash": "..."}}}   (needs slot)
    """
    with open(path, "r", encoding="utf-8") as f:
        raw = f.read().strip()
    if not raw:
        raise RuntimeError(f"Block feed file {path} is empty.")
    if not raw.startswith("{"):
        return raw

    try:
        doc = json.loads(raw)
    except ValueError as e:
        raise RuntimeError(f"Block feed file is not valid JSON or raw string: {e}")
    if not isinstance(doc, dict):
        raise RuntimeError(f"Block feed file {path} must hold a JSON object.")

    if isinstance(doc.get("blockhash"), str):
        if slot is not None and "slot" in doc and _feed_slot(doc["slot"]) != slot:
            raise RuntimeError(f"Block feed slot mismatch: file slot={doc['slot']} vs expected slot={slot}")
        return doc["blockhash"]

    nested = doc.get("result")
    if isinstance(nested, dict) and isinstance(nested.get("blockhash"), str):
        return nested["blockhash"]

    blocks = doc.get("blocks")
    if slot is not None and isinstance(blocks, dict):
        block = blocks.get(str(slot))
        if isinstance(block, dict) and isinstance(block.get("blockhash"), str):
            return block["blockhash"]

    raise RuntimeError(f"Could not find a blockhash in block feed file {path}.")


def _feed_slot(value: Any) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        raise RuntimeError(f"Block feed slot is not an integer: {value!r}")

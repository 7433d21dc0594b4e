"""Key-value store interfaces and implementations.

Stores are swappable and hold JSON-compatible values. Raffle state is only
ever written through a `Transaction`, which stages every write in memory and
hands them to the store as one batch on commit.
"""

from __future__ import annotations

import copy
import json
import logging
import os
import tempfile
from abc import ABC, abstractmethod
from typing import Any, Dict, Mapping, Optional

from .errors import CorruptRecordError, RecordNotFoundError

log = logging.getLogger(__name__)


class KeyValueStore(ABC):
    """Interface for persistent raffle records."""

    @abstractmethod
    def load(self, key: str) -> Any:
        """Return the record under key.

        Raises:
            RecordNotFoundError: If nothing is stored under key.
            CorruptRecordError: If the stored data cannot be read.
        """
        ...

    @abstractmethod
    def save_many(self, records: Mapping[str, Any]) -> None:
        """Write every record or none of them."""
        ...

    def may_load(self, key: str) -> Optional[Any]:
        """Return the record under key, or None if not found. Corruption still raises."""
        try:
            return self.load(key)
        except RecordNotFoundError:
            return None


class MemoryStore(KeyValueStore):
    """Dict-backed store, used by tests and embedding hosts."""

    def __init__(self, records: Optional[Mapping[str, Any]] = None) -> None:
        self._records: Dict[str, Any] = copy.deepcopy(dict(records or {}))

    def load(self, key: str) -> Any:
        if key not in self._records:
            raise RecordNotFoundError(key)
        return copy.deepcopy(self._records[key])

    def save_many(self, records: Mapping[str, Any]) -> None:
        self._records.update(copy.deepcopy(dict(records)))

    def snapshot(self) -> Dict[str, Any]:
        return copy.deepcopy(self._records)


class JsonFileStore(KeyValueStore):
    """Single JSON document on disk, replaced atomically on every batch."""

    def __init__(self, path: str) -> None:
        self.path = path

    def _read(self) -> Dict[str, Any]:
        if not os.path.exists(self.path):
            return {}
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            raise CorruptRecordError(self.path, f"state file unreadable: {e}") from e
        if not isinstance(data, dict):
            raise CorruptRecordError(self.path, "state file is not a JSON object")
        return data

    def load(self, key: str) -> Any:
        data = self._read()
        if key not in data:
            raise RecordNotFoundError(key)
        return data[key]

    def save_many(self, records: Mapping[str, Any]) -> None:
        data = self._read()
        data.update(records)

        directory = os.path.dirname(os.path.abspath(self.path))
        fd, tmp_path = tempfile.mkstemp(prefix=".raffle-", suffix=".json", dir=directory)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2, sort_keys=True)
            os.replace(tmp_path, self.path)
        except BaseException:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise
        log.debug("Wrote %d record(s) to %s", len(records), self.path)


class Transaction:
    """
    Staged view over a store for one call.

    Reads see this call's own writes. Nothing reaches the store until
    commit(); a transaction that is dropped or exits with an exception
    leaves the store untouched.
    """

    def __init__(self, store: KeyValueStore) -> None:
        self._store = store
        self._staged: Dict[str, Any] = {}
        self._closed = False

    def load(self, key: str) -> Any:
        if key in self._staged:
            return copy.deepcopy(self._staged[key])
        return self._store.load(key)

    def may_load(self, key: str) -> Optional[Any]:
        try:
            return self.load(key)
        except RecordNotFoundError:
            return None

    def save(self, key: str, value: Any) -> None:
        if self._closed:
            raise RuntimeError("transaction already closed")
        self._staged[key] = copy.deepcopy(value)

    def commit(self) -> None:
        if self._closed:
            raise RuntimeError("transaction already closed")
        self._closed = True
        if self._staged:
            self._store.save_many(self._staged)

    def discard(self) -> None:
        self._closed = True
        self._staged.clear()

    def __enter__(self) -> "Transaction":
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        if exc_type is None:
            self.commit()
        else:
            self.discard()
        return False

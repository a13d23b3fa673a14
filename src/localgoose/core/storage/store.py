"""Collection store interfaces and in-memory implementation."""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from copy import deepcopy
from typing import Any

Record = dict[str, Any]


class BaseCollectionStore(ABC):
    """Abstract whole-collection persistence layer.

    A collection is an ordered list of records. Reading a collection that was
    never written returns an empty list.
    """

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}

    def lock(self, name: str) -> asyncio.Lock:
        """Return the lock guarding read-modify-write cycles on ``name``."""
        lock = self._locks.get(name)
        if lock is None:
            lock = self._locks[name] = asyncio.Lock()
        return lock

    async def open(self) -> None:
        """Prepare the backing medium. No-op by default."""

    @abstractmethod
    async def load(self, name: str) -> list[Record]:
        """Return every record of ``name`` in stored order."""

    @abstractmethod
    async def store(self, name: str, records: list[Record]) -> None:
        """Replace the whole content of ``name`` with ``records``."""

    @abstractmethod
    async def drop(self, name: str) -> bool:
        """Remove ``name``. Returns False when it did not exist."""

    @abstractmethod
    async def drop_all(self) -> bool:
        """Remove every collection."""

    @abstractmethod
    async def list_collections(self) -> list[str]:
        """Return the names of stored collections."""


class InMemoryCollectionStore(BaseCollectionStore):
    """In-memory collection store for tests and ephemeral use."""

    def __init__(self) -> None:
        super().__init__()
        self._collections: dict[str, list[Record]] = {}

    async def load(self, name: str) -> list[Record]:
        return deepcopy(self._collections.setdefault(name, []))

    async def store(self, name: str, records: list[Record]) -> None:
        self._collections[name] = deepcopy(list(records))

    async def drop(self, name: str) -> bool:
        return self._collections.pop(name, None) is not None

    async def drop_all(self) -> bool:
        self._collections.clear()
        return True

    async def list_collections(self) -> list[str]:
        return list(self._collections)

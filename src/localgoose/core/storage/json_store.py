"""JSON file collection store.

Each collection lives in ``<db_path>/<name>.json`` as a JSON array. Datetimes
are written as ISO-8601 strings and read back as plain strings; models revive
the values of their Date fields.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import shutil
from datetime import date, datetime
from pathlib import Path
from typing import Any

from localgoose.core.exceptions import PersistenceError
from localgoose.core.storage.store import BaseCollectionStore, Record

logger = logging.getLogger(__name__)


def encode_value(value: Any) -> Any:
    """``json.dumps`` default hook: datetimes become ISO-8601 strings."""
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, (set, frozenset, tuple)):
        return list(value)
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


class JsonFileCollectionStore(BaseCollectionStore):
    """Collection store backed by one JSON file per collection."""

    def __init__(self, db_path: str | os.PathLike[str], *, indent: int | None = 2) -> None:
        """Create a store rooted at ``db_path``.

        Args:
            db_path: Directory holding the collection files.
            indent: JSON indentation used on write.
        """
        super().__init__()
        self.db_path = Path(db_path)
        self.indent = indent
        logger.debug("JsonFileCollectionStore created at %s", self.db_path)

    def collection_path(self, name: str) -> Path:
        """Return the file backing collection ``name``."""
        return self.db_path / f"{name}.json"

    async def open(self) -> None:
        try:
            await asyncio.to_thread(self.db_path.mkdir, parents=True, exist_ok=True)
        except OSError as e:
            raise PersistenceError(f"Failed to create database directory {self.db_path}", e) from e

    async def load(self, name: str) -> list[Record]:
        return await asyncio.to_thread(self._read, name)

    async def store(self, name: str, records: list[Record]) -> None:
        await asyncio.to_thread(self._write, name, list(records))

    async def drop(self, name: str) -> bool:
        path = self.collection_path(name)
        try:
            await asyncio.to_thread(path.unlink)
        except FileNotFoundError:
            return False
        except OSError as e:
            raise PersistenceError(f"Failed to drop collection '{name}'", e) from e
        logger.debug("Dropped collection file %s", path)
        return True

    async def drop_all(self) -> bool:
        try:
            await asyncio.to_thread(shutil.rmtree, self.db_path, ignore_errors=False)
        except FileNotFoundError:
            return True
        except OSError as e:
            logger.error("Failed to drop database %s: %s", self.db_path, e)
            return False
        return True

    async def list_collections(self) -> list[str]:
        def _scan() -> list[str]:
            if not self.db_path.is_dir():
                return []
            return sorted(p.stem for p in self.db_path.glob("*.json"))

        return await asyncio.to_thread(_scan)

    # ------------------------------------------------------------------
    # Blocking helpers (run in a worker thread)
    # ------------------------------------------------------------------

    def _read(self, name: str) -> list[Record]:
        path = self.collection_path(name)
        try:
            raw = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            self._write(name, [])
            return []
        except OSError as e:
            raise PersistenceError(f"Failed to read {path}", e) from e

        if not raw.strip():
            return []

        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            raise PersistenceError(f"Invalid JSON in {path}", e) from e

        if not isinstance(data, list):
            raise PersistenceError(f"Collection file {path} does not contain a JSON array")
        return data

    def _write(self, name: str, records: list[Record]) -> None:
        path = self.collection_path(name)
        tmp_path = path.with_suffix(".json.tmp")
        try:
            payload = json.dumps(records, default=encode_value, indent=self.indent)
            path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path.write_text(payload, encoding="utf-8")
            os.replace(tmp_path, path)
        except (OSError, TypeError, ValueError) as e:
            raise PersistenceError(f"Failed to write to {path}", e) from e

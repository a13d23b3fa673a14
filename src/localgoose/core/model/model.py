"""Model: collection-level CRUD bound to one Schema and one Connection."""

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from copy import deepcopy
from datetime import UTC, datetime
from types import MethodType, SimpleNamespace
from typing import TYPE_CHECKING, Any, TypeAlias

from localgoose.core.aggregate.aggregate import Aggregate
from localgoose.core.document.document import Document
from localgoose.core.dto.model_dto import DeleteResult, UpdateResult
from localgoose.core.dto.result_dto import StatusCode, StatusDetail
from localgoose.core.exceptions import PersistenceError, UnsupportedOperationError, ValidationError
from localgoose.core.model.matching import match_query
from localgoose.core.model.updates import apply_update
from localgoose.core.query.query import Query
from localgoose.core.schema.schema_type import parse_datetime
from localgoose.core.storage.ids import new_id
from localgoose.core.storage.store import BaseCollectionStore, Record

if TYPE_CHECKING:
    from localgoose.core.connection.connection import Connection
    from localgoose.core.schema.schema import Schema

logger = logging.getLogger(__name__)

Conditions: TypeAlias = dict[str, Any]

TIMESTAMP_PATHS = ("createdAt", "updatedAt")


class Model:
    """Collection-level operations for one named model.

    Every write is a whole-collection read-modify-write cycle. When the
    ``serialize_writes`` setting is on (default) the cycle runs under the
    collection's lock, so concurrent writers never lose each other's updates.

    Example:
        >>> User = connection.model("User", user_schema)
        >>> ada = await User.create({"name": "ada"})
        >>> adults = await User.find().where("age").gte(18).sort("-age")
    """

    def __init__(
        self,
        name: str,
        schema: "Schema",
        connection: "Connection",
        collection: str | None = None,
    ):
        """Create a Model.

        Args:
            name: Model name, used by ``ref`` lookups.
            schema: Schema shared by every document of the model.
            connection: Owning connection (store, config and model registry).
            collection: Collection name; defaults to ``name``.
        """
        self.model_name = name
        self.schema = schema
        self.connection = connection
        self.collection_name = collection or name
        self.statics = SimpleNamespace(
            **{static: MethodType(fn, self) for static, fn in schema.statics.items()}
        )
        logger.debug(
            "Model '%s' created on collection '%s'", self.model_name, self.collection_name
        )

    def __repr__(self) -> str:
        return f"Model({self.model_name!r}, collection={self.collection_name!r})"

    @property
    def name(self) -> str:
        return self.model_name

    @property
    def store(self) -> BaseCollectionStore:
        return self.connection.store

    # ------------------------------------------------------------------
    # Collection access
    # ------------------------------------------------------------------

    async def _load(self) -> list[Record]:
        records = await self.store.load(self.collection_name)
        for record in records:
            self._revive(record)
        return records

    def _revive(self, record: Record) -> Record:
        """Restore datetimes of Date fields and timestamps read back as strings."""
        self.schema.coerce_dates(record)
        for key in TIMESTAMP_PATHS:
            value = record.get(key)
            if isinstance(value, str):
                record[key] = parse_datetime(value) or value
        return record

    async def _store(self, records: list[Record]) -> None:
        try:
            await self.store.store(self.collection_name, records)
        except PersistenceError as e:
            logger.error("Failed to store collection '%s': %s", self.collection_name, e)
            raise

    @asynccontextmanager
    async def _write_lock(self) -> AsyncIterator[None]:
        if self.connection.config.get("serialize_writes", True):
            async with self.store.lock(self.collection_name):
                yield
        else:
            yield

    def _match_query(self, record: Record, query: Conditions | None) -> bool:
        return match_query(
            record, query, strict=bool(self.connection.config.get("strict_query", False))
        )

    async def _find(self, conditions: Conditions | None = None) -> list[Record]:
        records = await self._load()
        return [record for record in records if self._match_query(record, conditions)]

    def hydrate(self, record: Record) -> Document:
        """Wrap a stored record in a Document (``is_new=False``)."""
        return Document(record, self.schema, self)

    # ------------------------------------------------------------------
    # Create
    # ------------------------------------------------------------------

    async def create(
        self, data: dict[str, Any] | list[dict[str, Any]]
    ) -> Document | list[Document]:
        """Insert one record, or several concurrently.

        Raises:
            ValidationError: If a record fails schema validation.
        """
        if isinstance(data, list):
            return list(await asyncio.gather(*(self._create_one(item) for item in data)))
        return await self._create_one(data)

    async def _create_one(self, data: dict[str, Any]) -> Document:
        record = deepcopy(dict(data))
        self.schema.apply_defaults(record)
        self.schema.coerce_dates(record)

        errors = await self.schema.validate(record)
        if errors:
            raise ValidationError(errors, model=self.model_name)
        self.schema.cast_record(record)

        draft = Document(record, self.schema, self, is_new=True)
        await self.schema.run_hooks("pre", "save", draft)

        now = datetime.now(UTC)
        fields = {key: value for key, value in draft._doc.items() if key != "_id"}
        new_record = {"_id": new_id(), **fields, "createdAt": now, "updatedAt": now}

        async with self._write_lock():
            records = await self._load()
            records.append(new_record)
            await self._store(records)

        doc = Document(new_record, self.schema, self, is_new=True)
        await self.schema.run_hooks("post", "save", doc)
        logger.debug("Created %s in '%s'", new_record["_id"], self.collection_name)
        return doc

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    def find(
        self, conditions: Conditions | None = None, projection: Any = None
    ) -> Query:
        """Return a Query over this model; await it (or ``exec()``) to run it."""
        return Query(self, conditions, projection)

    async def find_one(
        self, conditions: Conditions | None = None, projection: Any = None
    ) -> Document | None:
        """Return the first matching document in stored order, or None."""
        docs = await self.find(conditions, projection).limit(1).exec()
        return docs[0] if docs else None

    async def find_by_id(self, id: Any, projection: Any = None) -> Document | None:
        if id is None:
            return None
        return await self.find_one({"_id": id}, projection)

    async def count_documents(self, conditions: Conditions | None = None) -> int:
        return len(await self._find(conditions))

    async def exists(self, conditions: Conditions | None = None) -> bool:
        return bool(await self._find(conditions))

    def aggregate(self, pipeline: list[dict[str, Any]] | None = None) -> Aggregate:
        """Return an Aggregate over this model's collection."""
        return Aggregate(self, pipeline)

    # ------------------------------------------------------------------
    # Update / replace / delete
    # ------------------------------------------------------------------

    async def update_one(
        self, conditions: Conditions, update: dict[str, Any], *, cast: bool = True
    ) -> UpdateResult:
        """Apply ``update`` to the first matching record.

        A plain mapping is shallow-merged; a mapping of ``$``-operators is
        applied operator by operator. The merged record is validated before
        it is stored, and the changed fields are cast unless ``cast`` is False
        (values that were already cast on assignment).

        Raises:
            ValidationError: If the updated record fails validation.
        """
        return await self._update(conditions, update, multi=False, cast=cast)

    async def update_many(self, conditions: Conditions, update: dict[str, Any]) -> UpdateResult:
        """Apply ``update`` to every matching record (all or nothing on validation)."""
        return await self._update(conditions, update, multi=True)

    async def _update(
        self, conditions: Conditions, update: dict[str, Any], *, multi: bool, cast: bool = True
    ) -> UpdateResult:
        matched = modified = 0
        async with self._write_lock():
            records = await self._load()
            for index, record in enumerate(records):
                if not self._match_query(record, conditions):
                    continue
                matched += 1
                updated = apply_update(record, update)
                if updated != record:
                    await self._validate_record(updated)
                    if cast:
                        changed = [key for key in updated if updated[key] != record.get(key)]
                        self.schema.cast_record(updated, changed)
                if updated != record:
                    updated["updatedAt"] = datetime.now(UTC)
                    records[index] = updated
                    modified += 1
                if not multi:
                    break
            if modified:
                await self._store(records)

        logger.debug(
            "Update on '%s': matched=%d modified=%d", self.collection_name, matched, modified
        )
        if not matched:
            return UpdateResult.success(
                detail=StatusDetail(
                    code=StatusCode.NO_MATCH,
                    message=f"No record in '{self.collection_name}' matched the filter",
                    context={"conditions": repr(conditions)},
                )
            )
        return UpdateResult.success(matched_count=matched, modified_count=modified)

    async def replace_one(
        self, conditions: Conditions, replacement: dict[str, Any]
    ) -> UpdateResult:
        """Replace the first matching record, keeping its ``_id`` and ``createdAt``.

        Raises:
            ValidationError: If the replacement fails validation.
        """
        replacement = {
            key: deepcopy(value)
            for key, value in replacement.items()
            if key not in ("_id", "createdAt", "updatedAt")
        }
        self.schema.apply_defaults(replacement)
        self.schema.coerce_dates(replacement)
        errors = await self.schema.validate(replacement)
        if errors:
            raise ValidationError(errors, model=self.model_name)
        self.schema.cast_record(replacement)

        async with self._write_lock():
            records = await self._load()
            for index, record in enumerate(records):
                if self._match_query(record, conditions):
                    records[index] = {
                        "_id": record["_id"],
                        **replacement,
                        "createdAt": record.get("createdAt"),
                        "updatedAt": datetime.now(UTC),
                    }
                    await self._store(records)
                    return UpdateResult.success(matched_count=1, modified_count=1)

        return UpdateResult.success(
            detail=StatusDetail(
                code=StatusCode.NO_MATCH,
                message=f"No record in '{self.collection_name}' matched the filter",
            )
        )

    async def delete_many(self, conditions: Conditions | None = None) -> DeleteResult:
        """Remove every matching record."""
        return await self._delete(conditions, multi=True)

    async def delete_one(self, conditions: Conditions | None = None) -> DeleteResult:
        """Remove the first matching record."""
        return await self._delete(conditions, multi=False)

    async def _delete(self, conditions: Conditions | None, *, multi: bool) -> DeleteResult:
        async with self._write_lock():
            records = await self._load()
            remaining: list[Record] = []
            deleted = 0
            for record in records:
                if (multi or not deleted) and self._match_query(record, conditions):
                    deleted += 1
                    continue
                remaining.append(record)
            if deleted:
                await self._store(remaining)

        logger.debug("Deleted %d record(s) from '%s'", deleted, self.collection_name)
        return DeleteResult.success(deleted_count=deleted)

    async def _validate_record(self, record: Record) -> None:
        self.schema.coerce_dates(record)
        errors = await self.schema.validate(record)
        if errors:
            raise ValidationError(errors, model=self.model_name)

    # ------------------------------------------------------------------
    # Unsupported
    # ------------------------------------------------------------------

    def start_session(self, *args: Any, **kwargs: Any) -> Any:
        raise UnsupportedOperationError("Sessions")

    def with_transaction(self, *args: Any, **kwargs: Any) -> Any:
        raise UnsupportedOperationError("Transactions")

    def watch(self, *args: Any, **kwargs: Any) -> Any:
        raise UnsupportedOperationError("Change streams")


__all__ = ["Model"]

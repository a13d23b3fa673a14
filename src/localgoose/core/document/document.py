"""Document: a live wrapper around one stored record."""

import json
import logging
from copy import deepcopy
from types import MethodType, SimpleNamespace
from typing import TYPE_CHECKING, Any, Self

from localgoose.core.exceptions import NotPopulatedError
from localgoose.core.model.matching import (
    MISSING,
    get_field_value,
    resolve_path,
    set_field_value,
    values_equal,
)
from localgoose.core.storage.json_store import encode_value

if TYPE_CHECKING:
    from localgoose.core.dto.model_dto import DeleteResult, UpdateResult
    from localgoose.core.model.model import Model
    from localgoose.core.schema.schema import Schema

logger = logging.getLogger(__name__)


class Document:
    """A record bound to its Schema and Model.

    Values are read and written with ``get``/``set`` (or ``doc["path"]``).
    Virtuals go through their getter/setter chains, schema getters apply on
    read, schema setters and casting apply on write. Populated references are
    kept apart from the raw record so that ``save`` never writes them back.

    Example:
        >>> user = await User.find_one({"name": "ada"})
        >>> user["age"] = 37
        >>> await user.save()
    """

    def __init__(
        self,
        record: dict[str, Any],
        schema: "Schema",
        model: "Model",
        *,
        is_new: bool = False,
    ):
        """Create a Document over a deep copy of ``record``.

        Args:
            record: The stored (or about to be stored) record.
            schema: The owning Schema.
            model: The owning Model.
            is_new: True when the record was just created.
        """
        self._doc: dict[str, Any] = deepcopy(record)
        self._schema = schema
        self._model = model
        self._modified_paths: set[str] = set()
        self._populated: dict[str, Any] = {}
        self._snapshot: set[str] | None = None
        self.is_new = is_new
        self.errors: dict[str, str] = {}
        self.methods = SimpleNamespace(
            **{name: MethodType(fn, self) for name, fn in schema.methods.items()}
        )

    def __repr__(self) -> str:
        return f"Document({self._model.model_name}, _id={self.id!r})"

    def __getitem__(self, path: str) -> Any:
        return self.get(path)

    def __setitem__(self, path: str, value: Any) -> None:
        self.set(path, value)

    def __contains__(self, path: object) -> bool:
        if not isinstance(path, str):
            return False
        return (
            path in self._schema.virtuals
            or path in self._populated
            or resolve_path(self._doc, path) is not MISSING
        )

    @property
    def id(self) -> Any:
        return self._doc.get("_id")

    @property
    def _id(self) -> Any:
        return self._doc.get("_id")

    @property
    def schema(self) -> "Schema":
        return self._schema

    @property
    def model(self) -> "Model":
        return self._model

    # ------------------------------------------------------------------
    # Access
    # ------------------------------------------------------------------

    def get(self, path: str, default: Any = None) -> Any:
        """Read ``path``: virtuals, then populated values, then the record."""
        virtual = self._schema.virtuals.get(path)
        if virtual is not None:
            if path in self._populated:
                return self._populated[path]
            return virtual.apply_getters(None, self)

        if path in self._populated:
            return self._populated[path]

        value = get_field_value(self._doc, path, default)
        schema_type = self._schema.path(path)
        if schema_type is not None and schema_type.getters:
            value = schema_type.apply_getters(value)
        return value

    def set(self, path: str | dict[str, Any], value: Any = None) -> Self:
        """Write ``path`` (or each entry of a mapping) and mark it modified.

        Assigning a Document stores its ``_id`` and keeps the Document as the
        populated value.

        Raises:
            CastError: If the value does not satisfy the declared field kind.
        """
        if isinstance(path, dict):
            for key, item in path.items():
                self.set(key, item)
            return self

        virtual = self._schema.virtuals.get(path)
        if virtual is not None:
            virtual.apply_setters(value, self)
            return self

        self._populated.pop(path, None)
        if isinstance(value, Document):
            self._populated[path] = value
            value = value.id

        schema_type = self._schema.path(path)
        if schema_type is not None and schema_type.children is None:
            value = schema_type.cast(value)

        set_field_value(self._doc, path, value)
        self._modified_paths.add(path)
        return self

    def init(self, obj: dict[str, Any]) -> Self:
        """Merge ``obj`` into the record without marking anything modified."""
        self._doc.update(deepcopy(obj))
        self._modified_paths.clear()
        self.is_new = False
        return self

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    async def save(self) -> "UpdateResult":
        """Persist the record through ``Model.update_one`` between the save hooks.

        Raises:
            ValidationError: If the merged record fails validation.
        """
        await self._schema.run_hooks("pre", "save", self)
        result = await self._model.update_one({"_id": self.id}, self._doc, cast=False)
        await self._schema.run_hooks("post", "save", self)
        self._modified_paths.clear()
        self.is_new = False
        logger.debug("Saved %s (modified=%d)", self, result.modified_count)
        return result

    async def replace_one(self, replacement: dict[str, Any]) -> "UpdateResult":
        return await self._model.replace_one({"_id": self.id}, replacement)

    async def delete_one(self) -> "DeleteResult":
        return await self._model.delete_one({"_id": self.id})

    # ------------------------------------------------------------------
    # Serialization
    # ------------------------------------------------------------------

    def to_object(self, virtuals: bool = False) -> dict[str, Any]:
        """Return a deep plain snapshot; populated paths hold their own snapshots."""
        obj = deepcopy(self._doc)
        for path, value in self._populated.items():
            set_field_value(obj, path, _snapshot_of(value, virtuals))
        if virtuals:
            for name, virtual in self._schema.virtuals.items():
                if name in self._populated or virtual.is_populatable:
                    continue
                obj[name] = virtual.apply_getters(None, self)
        return obj

    def to_json(self, virtuals: bool = False) -> dict[str, Any]:
        """Return ``to_object`` with JSON-safe values (datetimes as ISO-8601)."""
        return json.loads(json.dumps(self.to_object(virtuals=virtuals), default=encode_value))

    # ------------------------------------------------------------------
    # Change tracking
    # ------------------------------------------------------------------

    def mark_modified(self, path: str) -> Self:
        self._modified_paths.add(path)
        return self

    def is_modified(self, path: str | None = None) -> bool:
        if path is None:
            return bool(self._modified_paths)
        return any(p == path or p.startswith(f"{path}.") for p in self._modified_paths)

    def modified_paths(self) -> list[str]:
        return sorted(self._modified_paths)

    def get_changes(self) -> dict[str, Any]:
        return {path: get_field_value(self._doc, path) for path in self._modified_paths}

    def create_modified_paths_snapshot(self) -> Self:
        self._snapshot = set(self._modified_paths)
        return self

    def restore_modified_paths_snapshot(self) -> Self:
        if self._snapshot is not None:
            self._modified_paths = set(self._snapshot)
        return self

    def is_default(self, path: str) -> bool:
        schema_type = self._schema.path(path)
        if schema_type is None or not schema_type.has_default:
            return False
        return values_equal(get_field_value(self._doc, path), schema_type.get_default())

    def is_direct_selected(self, path: str) -> bool:
        return resolve_path(self._doc, path) is not MISSING

    def is_selected(self, path: str) -> bool:
        if self._schema.get("select_all"):
            return True
        return self.is_direct_selected(path)

    # ------------------------------------------------------------------
    # Population
    # ------------------------------------------------------------------

    def set_populated(self, path: str, value: Any) -> Self:
        """Attach a resolved reference without touching the raw record."""
        self._populated[path] = value
        return self

    def populated(self, path: str) -> Any:
        """Return the populated value at ``path`` or None."""
        return self._populated.get(path)

    def assert_populated(self, path: str | list[str]) -> Self:
        """Raise NotPopulatedError unless every given path is populated."""
        for item in [path] if isinstance(path, str) else path:
            if item not in self._populated:
                raise NotPopulatedError(item)
        return self

    def get_populated_docs(self) -> list["Document"]:
        docs: list[Document] = []
        for value in self._populated.values():
            if isinstance(value, Document):
                docs.append(value)
            elif isinstance(value, list):
                docs.extend(item for item in value if isinstance(item, Document))
        return docs


def _snapshot_of(value: Any, virtuals: bool) -> Any:
    if isinstance(value, Document):
        return value.to_object(virtuals=virtuals)
    if isinstance(value, list):
        return [_snapshot_of(item, virtuals) for item in value]
    return deepcopy(value)


__all__ = ["Document"]

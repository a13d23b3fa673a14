"""Query: a declarative, awaitable read over one model's collection."""

import asyncio
import logging
from collections.abc import Generator, Mapping
from copy import deepcopy
from typing import TYPE_CHECKING, Any, Self, TypeAlias

from localgoose.core.document.document import Document
from localgoose.core.exceptions import (
    DocumentNotFoundError,
    ReferenceResolutionError,
    UnsupportedOperationError,
)
from localgoose.core.model.matching import (
    SortSpec,
    apply_projection,
    get_field_value,
    merge_sort,
    parse_projection,
    parse_sort,
    set_field_value,
    sort_records,
)
from localgoose.core.query.query_builder import QueryBuilder

if TYPE_CHECKING:
    from localgoose.core.model.model import Model

logger = logging.getLogger(__name__)

Result: TypeAlias = Document | dict[str, Any]


class Query:
    """Conditions, projection, sort, pagination and population for one read.

    Execution order is fixed: match, stable sort, skip, limit, projection,
    wrapping into Documents (unless ``lean``), population.

    Example:
        >>> posts = await (
        ...     Post.find({"published": True})
        ...     .where("likes").gte(10)
        ...     .sort("-likes title")
        ...     .limit(5)
        ...     .populate("author", "name")
        ... )
    """

    def __init__(
        self,
        model: "Model",
        conditions: dict[str, Any] | None = None,
        projection: Any = None,
    ):
        self.model = model
        self.conditions: dict[str, Any] = deepcopy(conditions) if conditions else {}
        self._fields: dict[str, int] = parse_projection(projection)
        self._sort: SortSpec = []
        self._skip: int | None = None
        self._limit: int | None = None
        self._populate: list[dict[str, Any]] = []
        self._lean = False
        self._error: BaseException | None = None
        self._options: dict[str, Any] = {}
        self._path: str | None = None

    def __repr__(self) -> str:
        return f"Query({self.model.model_name}, conditions={self.conditions!r})"

    def __await__(self) -> Generator[Any, None, list[Result]]:
        return self.exec().__await__()

    # ------------------------------------------------------------------
    # Conditions
    # ------------------------------------------------------------------

    def where(self, path: str | Mapping[str, Any]) -> QueryBuilder | Self:
        """Start a path condition, or merge a mapping of conditions."""
        if isinstance(path, Mapping):
            self.conditions.update(deepcopy(dict(path)))
            return self
        self._path = path
        return QueryBuilder(self, path)

    def _builder(self) -> QueryBuilder:
        """Builder for the path of the last ``where(path)`` call."""
        if self._path is None:
            raise ValueError("Call where(path) before using a path operator")
        return QueryBuilder(self, self._path)

    def equals(self, value: Any) -> Self:
        return self._builder().equals(value)

    def eq(self, value: Any) -> Self:
        return self._builder().eq(value)

    def ne(self, value: Any) -> Self:
        return self._builder().ne(value)

    def gt(self, value: Any) -> Self:
        return self._builder().gt(value)

    def gte(self, value: Any) -> Self:
        return self._builder().gte(value)

    def lt(self, value: Any) -> Self:
        return self._builder().lt(value)

    def lte(self, value: Any) -> Self:
        return self._builder().lte(value)

    def in_(self, values: Any) -> Self:
        return self._builder().in_(values)

    def nin(self, values: Any) -> Self:
        return self._builder().nin(values)

    def exists(self, value: bool = True) -> Self:
        return self._builder().exists(value)

    def regex(self, pattern: Any, options: str | None = None) -> Self:
        return self._builder().regex(pattern, options)

    def find(self, conditions: Mapping[str, Any] | None = None) -> Self:
        if conditions:
            self.conditions.update(deepcopy(dict(conditions)))
        return self

    def and_(self, conditions: list[dict[str, Any]]) -> Self:
        self.conditions.setdefault("$and", []).extend(deepcopy(conditions))
        return self

    def or_(self, conditions: list[dict[str, Any]]) -> Self:
        self.conditions.setdefault("$or", []).extend(deepcopy(conditions))
        return self

    def nor(self, conditions: list[dict[str, Any]]) -> Self:
        self.conditions.setdefault("$nor", []).extend(deepcopy(conditions))
        return self

    # ------------------------------------------------------------------
    # Shaping
    # ------------------------------------------------------------------

    def select(self, fields: Any) -> Self:
        """Add to the projection: ``"name -age"``, a mapping or a list of names."""
        self._fields.update(parse_projection(fields))
        return self

    def projection(self, fields: Any = None) -> dict[str, int] | Self:
        """Replace the projection; without argument, return the current one."""
        if fields is None:
            return dict(self._fields)
        self._fields = parse_projection(fields)
        return self

    def sort(self, spec: Any) -> Self:
        """Add sort keys: ``"-age name"`` or ``{"age": -1}``. Keys merge in order."""
        self._sort = merge_sort(self._sort, parse_sort(spec))
        return self

    def skip(self, n: int | None) -> Self:
        self._skip = n
        return self

    def limit(self, n: int | None) -> Self:
        self._limit = n
        return self

    def lean(self, value: bool = True) -> Self:
        """Return plain dicts instead of Documents."""
        self._lean = value
        return self

    def populate(self, path: str | Mapping[str, Any] | list[Any], select: Any = None) -> Self:
        """Request population of a reference path.

        Accepts a path (plus optional ``select``), a space separated list of
        paths, a mapping ``{"path", "select", "model", "match", "populate"}``
        or a list of any of these.
        """
        if isinstance(path, list):
            for item in path:
                self.populate(item, select)
        elif isinstance(path, Mapping):
            self._populate.append(dict(path))
        else:
            for name in path.split():
                self._populate.append({"path": name, "select": select})
        return self

    def or_fail(self, error: BaseException | None = None) -> Self:
        """Raise ``error`` (DocumentNotFoundError by default) when nothing matches."""
        self._error = error or DocumentNotFoundError(self.model.model_name, self.conditions)
        return self

    def set_options(self, options: Mapping[str, Any]) -> Self:
        """Apply ``sort``/``skip``/``limit``/``lean`` from a mapping; keep the rest."""
        for key, value in options.items():
            match key:
                case "sort":
                    self.sort(value)
                case "skip":
                    self.skip(value)
                case "limit":
                    self.limit(value)
                case "lean":
                    self.lean(value)
                case _:
                    self._options[key] = value
        return self

    def session(self, *args: Any, **kwargs: Any) -> Self:
        raise UnsupportedOperationError("Sessions")

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    async def exec(self) -> list[Result]:
        """Run the query.

        Raises:
            DocumentNotFoundError: If ``or_fail()`` was requested and nothing matched.
            PersistenceError: If the collection cannot be read.
        """
        records = await self.model._find(self.conditions)
        records = sort_records(records, self._sort)
        records = self._paginate(records)

        projection = self._effective_projection()
        if projection:
            records = [apply_projection(record, projection) for record in records]

        results: list[Result] = (
            records if self._lean else [self.model.hydrate(record) for record in records]
        )

        if self._populate and results:
            await self._populate_results(results)

        if self._error is not None and not results:
            raise self._error

        logger.debug(
            "Query on '%s' returned %d result(s)", self.model.collection_name, len(results)
        )
        return results

    async def count_documents(self) -> int:
        return len(await self.model._find(self.conditions))

    def _paginate(self, records: list[dict[str, Any]]) -> list[dict[str, Any]]:
        skip = max(self._skip or 0, 0)
        if skip:
            records = records[skip:]
        if self._limit:
            records = records[: abs(self._limit)]
        return records

    def _effective_projection(self) -> dict[str, int]:
        if self._fields:
            return self._fields
        schema = self.model.schema
        return {path: 0 for path, schema_type in schema.iter_paths() if not schema_type.selected}

    # ------------------------------------------------------------------
    # Population
    # ------------------------------------------------------------------

    async def _populate_results(self, results: list[Result]) -> None:
        for request in self._populate:
            await asyncio.gather(*(self._populate_one(result, request) for result in results))

    async def _populate_one(self, target: Result, request: dict[str, Any]) -> None:
        path = request["path"]
        schema = self.model.schema
        virtual = schema.virtuals.get(path)

        try:
            if virtual is not None and virtual.is_populatable:
                value = await self._resolve_virtual(target, request, virtual.population)
            else:
                value = await self._resolve_ref(target, request)
        except ReferenceResolutionError as e:
            logger.warning("Population skipped: %s", e)
            return

        if value is _UNRESOLVED:
            return
        _attach(target, path, value, lean=self._lean)

    def _ref_model(self, path: str, ref: str | None) -> "Model":
        if not ref:
            raise ReferenceResolutionError(path, reason="no ref declared")
        result = self.model.connection.execute_get_model(ref)
        if result.model is None:
            raise ReferenceResolutionError(path, ref, "model is not registered")
        return result.model

    def _sub_query(
        self, model: "Model", conditions: dict[str, Any], request: dict[str, Any]
    ) -> "Query":
        query = model.find(conditions).lean(self._lean)
        if request.get("select"):
            query.select(request["select"])
        if request.get("populate"):
            query.populate(request["populate"])
        if request.get("options"):
            query.set_options(request["options"])
        return query

    async def _resolve_ref(self, target: Result, request: dict[str, Any]) -> Any:
        path = request["path"]
        schema_type = self.model.schema.path(path)
        ref = request.get("model")
        if ref is None and schema_type is not None:
            ref = schema_type.ref()
            if ref is None and schema_type.item_type is not None:
                ref = schema_type.item_type.ref()
        ref_model = self._ref_model(path, ref)

        raw = _raw_value(target, path)
        if raw is None:
            return _UNRESOLVED

        ids = raw if isinstance(raw, list) else [raw]
        conditions = {"_id": {"$in": ids}, **(request.get("match") or {})}
        found = await self._sub_query(ref_model, conditions, request).exec()
        by_id = {_raw_value(item, "_id"): item for item in found}

        if not isinstance(raw, list):
            if raw not in by_id:
                raise ReferenceResolutionError(path, ref, f"no record with _id {raw!r}")
            return by_id[raw]

        missing = [item for item in ids if item not in by_id]
        if missing:
            logger.warning(
                "Population of '%s' (ref=%s) skipped missing ids: %s", path, ref, missing
            )
        return [by_id[item] for item in ids if item in by_id]

    async def _resolve_virtual(
        self, target: Result, request: dict[str, Any], population: dict[str, Any]
    ) -> Any:
        path = request["path"]
        ref_model = self._ref_model(path, request.get("model") or population["ref"])

        local = _raw_value(target, population["local_field"])
        if local is None:
            return 0 if population["count"] else (None if population["just_one"] else [])
        criterion = {"$in": local} if isinstance(local, list) else local
        conditions = {
            population["foreign_field"]: criterion,
            **(population["match"] or {}),
            **(request.get("match") or {}),
        }

        if population["count"]:
            return await ref_model.count_documents(conditions)

        found = await self._sub_query(ref_model, conditions, request).exec()
        if population["just_one"]:
            return found[0] if found else None
        return found


_UNRESOLVED: Any = object()


def _raw_value(target: Result, path: str) -> Any:
    if isinstance(target, Document):
        return get_field_value(target._doc, path)
    return get_field_value(target, path)


def _attach(target: Result, path: str, value: Any, *, lean: bool) -> None:
    if isinstance(target, Document):
        target.set_populated(path, value)
    elif lean:
        set_field_value(target, path, value)


__all__ = ["Query"]

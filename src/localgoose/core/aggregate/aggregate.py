"""Aggregate: an ordered pipeline of stages evaluated in memory."""

import logging
from collections.abc import Generator, Mapping
from copy import deepcopy
from typing import TYPE_CHECKING, Any, Self, TypeAlias

from localgoose.core.aggregate.accumulators import (
    ACCUMULATORS,
    Accumulator,
    evaluate,
    parse_accumulator,
)
from localgoose.core.exceptions import UnsupportedOperationError
from localgoose.core.model.matching import (
    MISSING,
    apply_projection,
    parse_sort,
    resolve_path,
    set_field_value,
    sort_records,
)

if TYPE_CHECKING:
    from localgoose.core.model.model import Model

logger = logging.getLogger(__name__)

Stage: TypeAlias = dict[str, Any]
Records: TypeAlias = list[dict[str, Any]]

STAGES = ("$match", "$group", "$sort", "$skip", "$limit", "$unwind", "$project", "$count")


def _freeze(value: Any) -> Any:
    """Hashable identity for a group key; bools never collide with 0/1."""
    if isinstance(value, bool):
        return ("bool", value)
    if isinstance(value, Mapping):
        return ("object", tuple((key, _freeze(item)) for key, item in value.items()))
    if isinstance(value, (list, tuple)):
        return ("array", tuple(_freeze(item) for item in value))
    try:
        hash(value)
    except TypeError:
        return ("repr", repr(value))
    return value


class Aggregate:
    """Pipeline builder and evaluator over one model's collection.

    Stages run strictly in the order they were appended; results are plain
    dicts, never Documents.

    Example:
        >>> totals = await (
        ...     Order.aggregate()
        ...     .match({"status": "paid"})
        ...     .group({"_id": "$customer", "total": {"$sum": "$amount"}})
        ...     .sort({"total": -1})
        ... )
    """

    def __init__(self, model: "Model", pipeline: list[Stage] | None = None):
        self.model = model
        self._pipeline: list[Stage] = []
        for stage in pipeline or []:
            self.append(stage)

    def __repr__(self) -> str:
        return f"Aggregate({self.model.model_name}, stages={len(self._pipeline)})"

    def __await__(self) -> Generator[Any, None, Records]:
        return self.exec().__await__()

    # ------------------------------------------------------------------
    # Builder
    # ------------------------------------------------------------------

    def append(self, *stages: Stage) -> Self:
        """Append raw stages.

        Raises:
            ValueError: If a stage is not a single-key mapping.
        """
        for stage in stages:
            if not isinstance(stage, Mapping) or len(stage) != 1:
                raise ValueError(f"Pipeline stage must be a single-key mapping, got {stage!r}")
            self._pipeline.append(dict(stage))
        return self

    def pipeline(self) -> list[Stage]:
        return deepcopy(self._pipeline)

    def match(self, criteria: dict[str, Any]) -> Self:
        return self.append({"$match": criteria})

    def group(self, grouping: dict[str, Any]) -> Self:
        return self.append({"$group": grouping})

    def sort(self, sorting: Any) -> Self:
        return self.append({"$sort": sorting})

    def skip(self, n: int) -> Self:
        return self.append({"$skip": n})

    def limit(self, n: int) -> Self:
        return self.append({"$limit": n})

    def unwind(self, path: str | dict[str, Any]) -> Self:
        return self.append({"$unwind": path})

    def project(self, spec: dict[str, Any]) -> Self:
        return self.append({"$project": spec})

    def count(self, field_name: str) -> Self:
        return self.append({"$count": field_name})

    def session(self, *args: Any, **kwargs: Any) -> Self:
        raise UnsupportedOperationError("Sessions")

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    async def exec(self) -> Records:
        """Load the collection and run every stage in order."""
        records: Records = await self.model._find()

        for stage in self._pipeline:
            operator, operand = next(iter(stage.items()))
            match operator:
                case "$match":
                    records = [r for r in records if self.model._match_query(r, operand)]
                case "$group":
                    records = self._group(records, operand)
                case "$sort":
                    records = sort_records(records, parse_sort(operand))
                case "$skip":
                    records = records[max(int(operand or 0), 0) :]
                case "$limit":
                    if operand:
                        records = records[: abs(int(operand))]
                case "$unwind":
                    records = self._unwind(records, operand)
                case "$project":
                    records = [self._project(record, operand) for record in records]
                case "$count":
                    records = [{operand: len(records)}] if records else []
                case _:
                    logger.warning("Skipping unsupported pipeline stage %s", operator)

        logger.debug(
            "Aggregate on '%s' produced %d record(s)", self.model.collection_name, len(records)
        )
        return records

    def _group(self, records: Records, grouping: Mapping[str, Any]) -> Records:
        if "_id" not in grouping:
            raise ValueError("$group requires an _id expression")

        fields = {
            name: parse_accumulator(name, spec) for name, spec in grouping.items() if name != "_id"
        }
        groups: dict[Any, tuple[Any, dict[str, Accumulator]]] = {}

        for record in records:
            key = evaluate(grouping["_id"], record)
            key = None if key is MISSING else key
            frozen = _freeze(key)
            if frozen not in groups:
                groups[frozen] = (
                    key,
                    {name: ACCUMULATORS[operator]() for name, (operator, _) in fields.items()},
                )
            accumulators = groups[frozen][1]
            for name, (_, expression) in fields.items():
                accumulators[name].add(evaluate(expression, record))

        return [
            {"_id": key, **{name: acc.result() for name, acc in accumulators.items()}}
            for key, accumulators in groups.values()
        ]

    def _unwind(self, records: Records, spec: str | Mapping[str, Any]) -> Records:
        preserve_empty = False
        if isinstance(spec, Mapping):
            preserve_empty = bool(spec.get("preserveNullAndEmptyArrays", False))
            spec = spec["path"]
        path = spec[1:] if spec.startswith("$") else spec

        result: Records = []
        for record in records:
            value = resolve_path(record, path)
            if not isinstance(value, list):
                result.append(record)
                continue
            if not value and preserve_empty:
                result.append(record)
                continue
            for item in value:
                unwound = deepcopy(record)
                set_field_value(unwound, path, deepcopy(item))
                result.append(unwound)
        return result

    def _project(self, record: dict[str, Any], spec: Mapping[str, Any]) -> dict[str, Any]:
        def _flag(value: Any) -> int | None:
            if isinstance(value, bool) or value in (0, 1):
                return 1 if value else 0
            return None

        flags = {path: _flag(value) for path, value in spec.items()}
        exclusion_only = all(
            flag == 0 for path, flag in flags.items() if path != "_id"
        ) and any(flag == 0 for flag in flags.values())
        if exclusion_only:
            return apply_projection(record, {p: f for p, f in flags.items() if f is not None})

        projected: dict[str, Any] = {}
        if flags.get("_id", 1) != 0 and "_id" in record:
            projected["_id"] = record["_id"]
        for path, value in spec.items():
            if path == "_id" and flags[path] is not None:
                continue
            flag = flags[path]
            if flag == 0:
                continue
            computed = resolve_path(record, path) if flag == 1 else evaluate(value, record)
            if computed is not MISSING:
                set_field_value(projected, path, computed)
        return projected


__all__ = ["Aggregate", "STAGES"]

"""Shared record predicate, dot-path access, ordering and projection.

The same helpers back ``Model`` filters, ``Query`` sorting/projection and the
``Aggregate`` pipeline so that every component agrees on what a path, a
comparison and a match mean.

Query documents follow the familiar operator form::

    {"age": {"$gte": 18, "$lt": 65}, "$or": [{"role": "admin"}, {"role": "owner"}]}
"""

import logging
import re
from collections.abc import Iterable, Mapping
from copy import deepcopy
from datetime import datetime
from functools import cmp_to_key
from typing import Any, TypeAlias, TypeVar

from localgoose.core.exceptions import QueryOperatorError

logger = logging.getLogger(__name__)

MISSING: Any = object()

#: Supported field operators; ``$options`` rides along with ``$regex``.
FIELD_OPERATORS = frozenset(
    {"$eq", "$gt", "$gte", "$lt", "$lte", "$ne", "$in", "$nin", "$exists", "$regex"}
)
LOGICAL_OPERATORS = frozenset({"$and", "$or", "$nor"})

_REGEX_FLAGS = {"i": re.IGNORECASE, "m": re.MULTILINE, "s": re.DOTALL, "x": re.VERBOSE}


# =============================================================================
# DOT PATHS
# =============================================================================


def resolve_path(record: Any, path: str) -> Any:
    """Walk ``path`` through nested mappings and lists; return MISSING when absent.

    Numeric segments index into lists (``"tags.0"``).
    """
    current = record
    for part in path.split("."):
        if isinstance(current, Mapping):
            if part not in current:
                return MISSING
            current = current[part]
        elif isinstance(current, list) and part.isdigit():
            index = int(part)
            if index >= len(current):
                return MISSING
            current = current[index]
        else:
            return MISSING
    return current


def get_field_value(record: Any, path: str, default: Any = None) -> Any:
    """Return the value at ``path`` or ``default`` when absent."""
    value = resolve_path(record, path)
    return default if value is MISSING else value


def set_field_value(record: dict[str, Any], path: str, value: Any) -> None:
    """Assign ``value`` at ``path``, creating intermediate mappings."""
    *parents, leaf = path.split(".")
    target = record
    for part in parents:
        child = target.get(part)
        if not isinstance(child, dict):
            child = target[part] = {}
        target = child
    target[leaf] = value


def unset_field_value(record: dict[str, Any], path: str) -> bool:
    """Remove the value at ``path``. Returns False when it was absent."""
    *parents, leaf = path.split(".")
    target: Any = record
    for part in parents:
        target = target.get(part) if isinstance(target, dict) else None
        if target is None:
            return False
    if isinstance(target, dict) and leaf in target:
        del target[leaf]
        return True
    return False


# =============================================================================
# COMPARISON
# =============================================================================


def type_rank(value: Any) -> int:
    """Cross-type ordering bucket: None < numbers < strings < objects < arrays < bools < dates."""
    if value is None or value is MISSING:
        return 0
    if isinstance(value, bool):
        return 5
    if isinstance(value, (int, float)):
        return 1
    if isinstance(value, str):
        return 2
    if isinstance(value, Mapping):
        return 3
    if isinstance(value, (list, tuple)):
        return 4
    if isinstance(value, datetime):
        return 6
    return 7


def compare_values(a: Any, b: Any) -> int:
    """Three-way comparison that never raises.

    Values of different kinds order by ``type_rank``; values of the same kind
    that cannot be compared are treated as equal.
    """
    rank_a, rank_b = type_rank(a), type_rank(b)
    if rank_a != rank_b:
        return -1 if rank_a < rank_b else 1
    if rank_a == 0:
        return 0
    try:
        if a < b:
            return -1
        if a > b:
            return 1
    except TypeError:
        return 0
    return 0


def values_equal(a: Any, b: Any) -> bool:
    """Equality that does not conflate booleans with numbers."""
    if isinstance(a, bool) != isinstance(b, bool):
        return False
    try:
        return bool(a == b)
    except TypeError:
        return False


def _ordered(value: Any, operand: Any, op: str) -> bool:
    if value is MISSING or value is None or type_rank(value) != type_rank(operand):
        return False
    try:
        match op:
            case "$gt":
                return value > operand
            case "$gte":
                return value >= operand
            case "$lt":
                return value < operand
            case "$lte":
                return value <= operand
    except TypeError:
        return False
    return False


def _as_candidates(value: Any) -> list[Any]:
    if value is MISSING:
        return [None]
    if isinstance(value, list):
        return value
    return [value]


def _regex_matches(value: Any, pattern: Any, options: str | None) -> bool:
    if isinstance(value, list):
        return any(_regex_matches(item, pattern, options) for item in value)
    if not isinstance(value, str):
        return False
    if isinstance(pattern, re.Pattern):
        return pattern.search(value) is not None
    flags = 0
    for flag in options or "":
        flags |= _REGEX_FLAGS.get(flag, 0)
    try:
        return re.search(str(pattern), value, flags) is not None
    except re.error:
        logger.warning("Invalid $regex pattern %r", pattern)
        return False


# =============================================================================
# MATCHING
# =============================================================================


def is_operator_expression(criterion: Any) -> bool:
    return (
        isinstance(criterion, Mapping)
        and bool(criterion)
        and any(isinstance(key, str) and key.startswith("$") for key in criterion)
    )


def _match_operators(value: Any, expression: Mapping[str, Any], strict: bool) -> bool:
    options = expression.get("$options")
    for op, operand in expression.items():
        if op == "$options":
            continue
        match op:
            case "$eq":
                ok = values_equal(None if value is MISSING else value, operand)
            case "$ne":
                ok = not values_equal(None if value is MISSING else value, operand)
            case "$gt" | "$gte" | "$lt" | "$lte":
                ok = _ordered(value, operand, op)
            case "$in":
                candidates = _as_candidates(value)
                ok = any(values_equal(c, item) for item in operand for c in candidates)
            case "$nin":
                candidates = _as_candidates(value)
                ok = not any(values_equal(c, item) for item in operand for c in candidates)
            case "$exists":
                ok = (value is not MISSING) == bool(operand)
            case "$regex":
                ok = _regex_matches(value, operand, options)
            case _:
                if strict:
                    raise QueryOperatorError(op)
                logger.debug("Unknown query operator %s evaluates to False", op)
                ok = False
        if not ok:
            return False
    return True


def match_query(
    record: Mapping[str, Any], query: Mapping[str, Any] | None, *, strict: bool = False
) -> bool:
    """Return True when ``record`` satisfies every top-level key of ``query``.

    Args:
        record: The stored record.
        query: Query document; ``None`` or ``{}`` matches everything.
        strict: Raise QueryOperatorError on unknown operators instead of not matching.
    """
    if not query:
        return True

    for key, criterion in query.items():
        match key:
            case "$and":
                ok = all(match_query(record, sub, strict=strict) for sub in criterion)
            case "$or":
                ok = any(match_query(record, sub, strict=strict) for sub in criterion)
            case "$nor":
                ok = not any(match_query(record, sub, strict=strict) for sub in criterion)
            case _ if key.startswith("$"):
                if strict:
                    raise QueryOperatorError(key)
                logger.debug("Unknown top-level operator %s evaluates to False", key)
                ok = False
            case _:
                value = resolve_path(record, key)
                if is_operator_expression(criterion):
                    ok = _match_operators(value, criterion, strict)
                else:
                    ok = value is not MISSING and values_equal(value, criterion)
                    if not ok and value is MISSING and criterion is None:
                        ok = True
        if not ok:
            return False
    return True


# =============================================================================
# SORT
# =============================================================================

T = TypeVar("T")
SortSpec: TypeAlias = list[tuple[str, int]]

_DIRECTIONS = {
    "1": 1,
    "asc": 1,
    "ascending": 1,
    "-1": -1,
    "desc": -1,
    "descending": -1,
}


def parse_sort(spec: str | Mapping[str, Any] | Iterable[tuple[str, Any]] | None) -> SortSpec:
    """Normalize ``"-age name"``, ``{"age": -1}`` or pairs into ``[(path, 1|-1), ...]``."""
    if not spec:
        return []
    if isinstance(spec, str):
        keys: SortSpec = []
        for token in spec.split():
            if token.startswith("-"):
                keys.append((token[1:], -1))
            else:
                keys.append((token.lstrip("+"), 1))
        return keys

    items = spec.items() if isinstance(spec, Mapping) else spec
    keys = []
    for path, direction in items:
        value = _DIRECTIONS.get(str(direction).lower())
        if value is None:
            raise ValueError(f"Invalid sort direction {direction!r} for path '{path}'")
        keys.append((path, value))
    return keys


def merge_sort(current: SortSpec, extra: SortSpec) -> SortSpec:
    """Merge sort keys; later keys override direction but keep first position."""
    merged = dict(current)
    for path, direction in extra:
        merged[path] = direction
    return list(merged.items())


def sort_records(records: list[T], keys: SortSpec, *, getter: Any = None) -> list[T]:
    """Stable multi-key sort; the first non-equal key decides.

    Args:
        records: Items to sort (records, or anything ``getter`` understands).
        keys: Normalized sort spec.
        getter: Optional ``fn(item, path)``; defaults to dot-path lookup.
    """
    if not keys:
        return list(records)
    read = getter or get_field_value

    def _compare(a: T, b: T) -> int:
        for path, direction in keys:
            result = compare_values(read(a, path), read(b, path))
            if result:
                return result * direction
        return 0

    return sorted(records, key=cmp_to_key(_compare))


# =============================================================================
# PROJECTION
# =============================================================================


def parse_projection(
    projection: str | Mapping[str, Any] | Iterable[str] | None,
) -> dict[str, int]:
    """Normalize ``"name -age"``, a mapping or a list of names into ``{path: 0|1}``."""
    if not projection:
        return {}
    if isinstance(projection, str):
        fields: dict[str, int] = {}
        for token in projection.split():
            if token.startswith("-"):
                fields[token[1:]] = 0
            else:
                fields[token.lstrip("+")] = 1
        return fields
    if isinstance(projection, Mapping):
        return {path: 1 if flag else 0 for path, flag in projection.items()}
    return {path: 1 for path in projection}


def apply_projection(
    record: dict[str, Any], projection: Mapping[str, int] | None
) -> dict[str, Any]:
    """Return a projected copy of ``record``.

    Inclusion projections keep the listed paths (plus ``_id`` unless it is
    excluded explicitly); exclusion projections drop the listed paths.
    """
    if not projection:
        return dict(record)

    inclusive = any(flag for path, flag in projection.items() if path != "_id")
    if not inclusive:
        trimmed = deepcopy(dict(record))
        for path, flag in projection.items():
            if not flag:
                unset_field_value(trimmed, path)
        return trimmed

    projected: dict[str, Any] = {}
    if projection.get("_id", 1) and "_id" in record:
        projected["_id"] = record["_id"]
    for path, flag in projection.items():
        if not flag or path == "_id":
            continue
        value = resolve_path(record, path)
        if value is not MISSING:
            set_field_value(projected, path, value)
    return projected


__all__ = [
    "FIELD_OPERATORS",
    "LOGICAL_OPERATORS",
    "MISSING",
    "apply_projection",
    "compare_values",
    "get_field_value",
    "match_query",
    "merge_sort",
    "parse_projection",
    "parse_sort",
    "resolve_path",
    "set_field_value",
    "sort_records",
    "type_rank",
    "unset_field_value",
    "values_equal",
]

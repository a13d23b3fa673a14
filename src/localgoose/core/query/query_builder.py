"""Fluent per-path condition builder returned by ``Query.where(path)``."""

import re
from typing import TYPE_CHECKING, Any

from localgoose.core.model.matching import is_operator_expression

if TYPE_CHECKING:
    from localgoose.core.query.query import Query


class QueryBuilder:
    """Adds operator conditions on one path and hands the Query back.

    Operators on the same path accumulate, so
    ``q.where("age").gte(18).where("age").lt(65)`` yields
    ``{"age": {"$gte": 18, "$lt": 65}}``. ``equals`` replaces whatever was
    there.
    """

    def __init__(self, query: "Query", path: str):
        self.query = query
        self.path = path

    def __repr__(self) -> str:
        return f"QueryBuilder(path={self.path!r})"

    def _add(self, operator: str, value: Any) -> "Query":
        current = self.query.conditions.get(self.path)
        if is_operator_expression(current):
            current[operator] = value
        else:
            self.query.conditions[self.path] = {operator: value}
        return self.query

    def equals(self, value: Any) -> "Query":
        self.query.conditions[self.path] = value
        return self.query

    def eq(self, value: Any) -> "Query":
        return self._add("$eq", value)

    def ne(self, value: Any) -> "Query":
        return self._add("$ne", value)

    def gt(self, value: Any) -> "Query":
        return self._add("$gt", value)

    def gte(self, value: Any) -> "Query":
        return self._add("$gte", value)

    def lt(self, value: Any) -> "Query":
        return self._add("$lt", value)

    def lte(self, value: Any) -> "Query":
        return self._add("$lte", value)

    def in_(self, values: Any) -> "Query":
        return self._add("$in", _as_list(values))

    def nin(self, values: Any) -> "Query":
        return self._add("$nin", _as_list(values))

    def exists(self, value: bool = True) -> "Query":
        return self._add("$exists", value)

    def regex(self, pattern: str | re.Pattern[str], options: str | None = None) -> "Query":
        self._add("$regex", pattern)
        if options:
            self._add("$options", options)
        return self.query


def _as_list(values: Any) -> list[Any]:
    return list(values) if isinstance(values, (list, tuple, set)) else [values]


__all__ = ["QueryBuilder"]

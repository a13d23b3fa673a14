"""Query layer: the awaitable Query and its per-path condition builder."""

from localgoose.core.query.query import Query
from localgoose.core.query.query_builder import QueryBuilder

__all__ = ["Query", "QueryBuilder"]

"""Virtual (computed, non-persisted) paths."""

from collections.abc import Callable
from typing import Any, Self, TypeAlias

VirtualAccessor: TypeAlias = Callable[[Any, Any], Any]


class VirtualType:
    """A computed path on a Document.

    Getters and setters are called as ``fn(value, doc)`` and chained in
    registration order. A virtual with a ``ref`` is also a population
    descriptor: documents of ``ref`` whose ``foreign_field`` equals this
    document's ``local_field`` are attached under the virtual's name.
    """

    def __init__(self, path: str, options: dict[str, Any] | None = None):
        options = options or {}
        self.path = path
        self.options = options
        self.getters: list[VirtualAccessor] = []
        self.setters: list[VirtualAccessor] = []
        self._ref: str | None = options.get("ref")
        self._local_field: str | None = options.get("local_field")
        self._foreign_field: str | None = options.get("foreign_field")
        self._just_one: bool = bool(options.get("just_one", False))
        self._count: bool = bool(options.get("count", False))
        self._match: dict[str, Any] | None = options.get("match")

    def __repr__(self) -> str:
        return f"VirtualType(path={self.path!r}, ref={self._ref!r})"

    def apply_getters(self, value: Any, doc: Any) -> Any:
        for getter in self.getters:
            value = getter(value, doc)
        return value

    def apply_setters(self, value: Any, doc: Any) -> Any:
        for setter in self.setters:
            value = setter(value, doc)
        return value

    def get(self, fn: VirtualAccessor) -> Self:
        self.getters.append(fn)
        return self

    def set(self, fn: VirtualAccessor) -> Self:
        self.setters.append(fn)
        return self

    # ------------------------------------------------------------------
    # Population descriptor
    # ------------------------------------------------------------------

    def ref(self, model: str) -> Self:
        self._ref = model
        return self

    def local_field(self, field: str) -> Self:
        self._local_field = field
        return self

    def foreign_field(self, field: str) -> Self:
        self._foreign_field = field
        return self

    def just_one(self, value: bool = True) -> Self:
        self._just_one = value
        return self

    def count(self, value: bool = True) -> Self:
        self._count = value
        return self

    def match(self, conditions: dict[str, Any] | None) -> Self:
        self._match = conditions
        return self

    @property
    def is_populatable(self) -> bool:
        """True when the virtual carries enough information to be populated."""
        return bool(self._ref and self._local_field and self._foreign_field)

    @property
    def population(self) -> dict[str, Any]:
        """Return the population descriptor as a plain mapping."""
        return {
            "ref": self._ref,
            "local_field": self._local_field,
            "foreign_field": self._foreign_field,
            "just_one": self._just_one,
            "count": self._count,
            "match": self._match,
        }


__all__ = ["VirtualType"]

"""``$group`` accumulators and field expressions."""

from abc import ABC, abstractmethod
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from localgoose.core.model.matching import MISSING, compare_values, resolve_path, values_equal


def evaluate(expression: Any, record: Mapping[str, Any]) -> Any:
    """Evaluate a field expression against ``record``.

    ``"$a.b"`` reads a dot path (absent paths yield MISSING), mappings and
    lists are evaluated item by item, anything else is a literal.
    """
    if isinstance(expression, str) and expression.startswith("$"):
        return resolve_path(record, expression[1:])
    if isinstance(expression, Mapping):
        return {key: _present(evaluate(value, record)) for key, value in expression.items()}
    if isinstance(expression, list):
        return [_present(evaluate(item, record)) for item in expression]
    return expression


def _present(value: Any) -> Any:
    return None if value is MISSING else value


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


class Accumulator(ABC):
    """Running per-group aggregate fed one evaluated value per member record."""

    @abstractmethod
    def add(self, value: Any) -> None:
        """Fold ``value`` (possibly MISSING) into the running state."""

    @abstractmethod
    def result(self) -> Any:
        """Return the emitted value for the group."""


@dataclass(slots=True)
class SumAccumulator(Accumulator):
    total: int | float = 0

    def add(self, value: Any) -> None:
        if _is_number(value):
            self.total += value

    def result(self) -> Any:
        return self.total


@dataclass(slots=True)
class AvgAccumulator(Accumulator):
    total: int | float = 0
    count: int = 0

    def add(self, value: Any) -> None:
        if _is_number(value):
            self.total += value
            self.count += 1

    def result(self) -> Any:
        return self.total / self.count if self.count else None


@dataclass(slots=True)
class MinAccumulator(Accumulator):
    value: Any = MISSING

    def add(self, value: Any) -> None:
        if value is MISSING or value is None:
            return
        if self.value is MISSING or compare_values(value, self.value) < 0:
            self.value = value

    def result(self) -> Any:
        return _present(self.value)


@dataclass(slots=True)
class MaxAccumulator(Accumulator):
    value: Any = MISSING

    def add(self, value: Any) -> None:
        if value is MISSING or value is None:
            return
        if self.value is MISSING or compare_values(value, self.value) > 0:
            self.value = value

    def result(self) -> Any:
        return _present(self.value)


@dataclass(slots=True)
class PushAccumulator(Accumulator):
    values: list[Any] = field(default_factory=list)

    def add(self, value: Any) -> None:
        if value is not MISSING:
            self.values.append(value)

    def result(self) -> Any:
        return self.values


@dataclass(slots=True)
class AddToSetAccumulator(Accumulator):
    values: list[Any] = field(default_factory=list)

    def add(self, value: Any) -> None:
        if value is MISSING:
            return
        if not any(values_equal(value, seen) for seen in self.values):
            self.values.append(value)

    def result(self) -> Any:
        return self.values


@dataclass(slots=True)
class FirstAccumulator(Accumulator):
    value: Any = MISSING

    def add(self, value: Any) -> None:
        if self.value is MISSING:
            self.value = _present(value)

    def result(self) -> Any:
        return _present(self.value)


@dataclass(slots=True)
class LastAccumulator(Accumulator):
    value: Any = None

    def add(self, value: Any) -> None:
        self.value = _present(value)

    def result(self) -> Any:
        return self.value


ACCUMULATORS: dict[str, type[Accumulator]] = {
    "$sum": SumAccumulator,
    "$avg": AvgAccumulator,
    "$min": MinAccumulator,
    "$max": MaxAccumulator,
    "$push": PushAccumulator,
    "$addToSet": AddToSetAccumulator,
    "$first": FirstAccumulator,
    "$last": LastAccumulator,
}


def parse_accumulator(field_name: str, spec: Any) -> tuple[str, Any]:
    """Split ``{"$sum": "$qty"}`` into ``("$sum", "$qty")``.

    Raises:
        ValueError: If the mapping is not a single known accumulator.
    """
    if not isinstance(spec, Mapping) or len(spec) != 1:
        raise ValueError(f"Group field '{field_name}' must be a single accumulator mapping")
    operator, expression = next(iter(spec.items()))
    if operator not in ACCUMULATORS:
        raise ValueError(f"Unknown group accumulator {operator} for field '{field_name}'")
    return operator, expression


__all__ = [
    "ACCUMULATORS",
    "Accumulator",
    "evaluate",
    "parse_accumulator",
]

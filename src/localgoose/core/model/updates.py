"""Update document application.

Two forms are accepted:

- a plain mapping (no ``$``-keys) is shallow-merged into the record;
- an operator mapping uses ``$set``, ``$unset``, ``$inc`` and ``$push``.

``_id`` is never changed. Unknown update operators are logged and ignored.
"""

import logging
from collections.abc import Mapping
from copy import deepcopy
from typing import Any

from localgoose.core.exceptions import ValidationError
from localgoose.core.model.matching import (
    MISSING,
    resolve_path,
    set_field_value,
    unset_field_value,
)

logger = logging.getLogger(__name__)

UPDATE_OPERATORS = frozenset({"$set", "$unset", "$inc", "$push"})
IMMUTABLE_PATHS = frozenset({"_id", "createdAt"})


def is_operator_update(update: Mapping[str, Any]) -> bool:
    return any(isinstance(key, str) and key.startswith("$") for key in update)


def apply_update(record: Mapping[str, Any], update: Mapping[str, Any]) -> dict[str, Any]:
    """Return a new record with ``update`` applied; ``record`` is left untouched.

    Raises:
        ValidationError: If ``$inc`` targets a non-numeric value or ``$push`` a non-array.
    """
    updated = deepcopy(dict(record))

    if not is_operator_update(update):
        for key, value in update.items():
            if key in IMMUTABLE_PATHS:
                continue
            updated[key] = deepcopy(value)
        return updated

    for op, fields in update.items():
        if op not in UPDATE_OPERATORS:
            logger.warning("Ignoring unsupported update operator %s", op)
            continue
        if not isinstance(fields, Mapping):
            raise ValidationError([f"{op} expects a mapping of paths, got {type(fields).__name__}"])

        for path, value in fields.items():
            if path.split(".")[0] in IMMUTABLE_PATHS:
                logger.debug("Skipping %s on immutable path %s", op, path)
                continue
            match op:
                case "$set":
                    set_field_value(updated, path, deepcopy(value))
                case "$unset":
                    unset_field_value(updated, path)
                case "$inc":
                    _increment(updated, path, value)
                case "$push":
                    _push(updated, path, value)
    return updated


def _increment(record: dict[str, Any], path: str, amount: Any) -> None:
    if isinstance(amount, bool) or not isinstance(amount, (int, float)):
        raise ValidationError([f"Cannot increment {path} by non-numeric value {amount!r}"])
    current = resolve_path(record, path)
    if current is MISSING or current is None:
        current = 0
    if isinstance(current, bool) or not isinstance(current, (int, float)):
        raise ValidationError([f"Cannot apply $inc to non-numeric field {path}"])
    set_field_value(record, path, current + amount)


def _push(record: dict[str, Any], path: str, value: Any) -> None:
    current = resolve_path(record, path)
    if current is MISSING or current is None:
        current = []
    if not isinstance(current, list):
        raise ValidationError([f"Cannot apply $push to non-array field {path}"])

    if isinstance(value, Mapping) and "$each" in value:
        items = [deepcopy(item) for item in value["$each"]]
    else:
        items = [deepcopy(value)]
    set_field_value(record, path, [*current, *items])


__all__ = ["UPDATE_OPERATORS", "apply_update", "is_operator_update"]

"""Field-level type descriptors.

A SchemaType describes one field path: its semantic kind, how raw values are
cast, defaults, validators, getters/setters and reference metadata.
"""

from __future__ import annotations

import logging
import math
import re
from collections.abc import Callable
from copy import deepcopy
from dataclasses import dataclass
from datetime import date, datetime, time
from decimal import Decimal
from enum import StrEnum
from typing import Any

from localgoose.core.exceptions import CastError
from localgoose.core.utils import positional_arity, run_sync_or_async

logger = logging.getLogger(__name__)

_UNSET: Any = object()


class ObjectId(str):
    """Type marker for reference identifiers (stored as plain strings)."""


class Mixed:
    """Type marker for fields that accept any value."""


class FieldKind(StrEnum):
    """Semantic kinds a field can be declared with."""

    STRING = "String"
    NUMBER = "Number"
    BOOLEAN = "Boolean"
    DATE = "Date"
    ARRAY = "Array"
    OBJECT = "Object"
    OBJECT_ID = "ObjectId"
    MIXED = "Mixed"


class Types:
    """Type aliases usable in schema definitions (``Schema.Types.ObjectId``)."""

    String = str
    Number = float
    Boolean = bool
    Array = list
    Date = datetime
    Object = dict
    ObjectId = ObjectId
    Mixed = Mixed
    Decimal128 = Decimal
    Map = dict


_KIND_BY_NAME = {kind.value.lower(): kind for kind in FieldKind}


def resolve_kind(type_decl: Any) -> FieldKind:
    """Map a type declaration to its FieldKind.

    Accepts Python types, kind names, FieldKind members, the Types markers and
    one-element lists such as ``[str]``.

    Raises:
        TypeError: If the declaration is not understood.
    """
    if type_decl is None:
        return FieldKind.MIXED
    if isinstance(type_decl, FieldKind):
        return type_decl
    if isinstance(type_decl, str):
        kind = _KIND_BY_NAME.get(type_decl.lower())
        if kind is None:
            raise TypeError(f"Unknown schema type name: {type_decl!r}")
        return kind
    if isinstance(type_decl, (list, tuple)):
        return FieldKind.ARRAY
    if type_decl is bool:
        return FieldKind.BOOLEAN
    if type_decl in (int, float, Decimal):
        return FieldKind.NUMBER
    if type_decl is ObjectId:
        return FieldKind.OBJECT_ID
    if type_decl is str:
        return FieldKind.STRING
    if type_decl in (datetime, date):
        return FieldKind.DATE
    if type_decl in (list, tuple):
        return FieldKind.ARRAY
    if type_decl is dict:
        return FieldKind.OBJECT
    if type_decl in (Mixed, object, Any):
        return FieldKind.MIXED
    raise TypeError(f"Invalid schema type: {type_decl!r}")


def parse_datetime(value: Any) -> datetime | None:
    """Coerce a date-like value into a datetime, or return None."""
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime.combine(value, time())
    if isinstance(value, str):
        try:
            return datetime.fromisoformat(value.strip())
        except ValueError:
            return None
    return None


@dataclass(slots=True)
class Validator:
    """One registered validator.

    Attributes:
        validator: Predicate called with ``(value)`` or ``(value, context)``;
            may return an awaitable.
        message: Error message used when the predicate fails.
        type: Optional validator type label (e.g. "required", "enum").
        is_required: True only for the built-in required validator.
    """

    validator: Callable[..., Any]
    message: str
    type: str | None = None
    is_required: bool = False


class SchemaType:
    """Type descriptor for a single schema path."""

    def __init__(
        self,
        path: str,
        options: dict[str, Any] | None = None,
        instance: Any = None,
        *,
        children: dict[str, SchemaType] | None = None,
    ):
        """Create a SchemaType.

        Args:
            path: Field path this type describes.
            options: Field options (required, default, validate, get, set, ref, ...).
            instance: The declared type (Python type, kind name, Types marker, ...).
            children: Sub-definitions when the field is a nested object literal.
        """
        options = options or {}
        self.path = path
        self.instance = instance
        self.kind = FieldKind.OBJECT if children is not None else resolve_kind(instance)
        self.children = children
        self.options = options
        self.validators: list[Validator] = []
        self.setters: list[Callable[[Any], Any]] = []
        self.getters: list[Callable[[Any], Any]] = []
        self.selected = True
        self.item_type: SchemaType | None = None
        self._default: Any = _UNSET
        self._index: Any = None
        self._ref: str | None = None
        self._sparse = False
        self._text = False
        self._unique = False
        self._immutable = False
        self._transform: Callable[[Any], Any] | None = None

        if isinstance(instance, (list, tuple)) and len(instance) == 1:
            item = instance[0]
            if isinstance(item, dict) and "type" in item:
                self.item_type = SchemaType(f"{path}.$", item, item["type"])
            elif isinstance(item, dict):
                self.item_type = SchemaType(f"{path}.$", {}, dict)
            else:
                self.item_type = SchemaType(f"{path}.$", {}, item)

        if options.get("required"):
            self.required(options["required"])
        if options.get("default") is not None:
            self.default(options["default"])
        if options.get("select") is not None:
            self.select(options["select"])
        if options.get("validate") is not None:
            self.validate(options["validate"])
        if options.get("get"):
            self.get(options["get"])
        if options.get("set"):
            self.set(options["set"])
        if options.get("transform"):
            self.transform(options["transform"])
        if options.get("ref"):
            self.ref(options["ref"])
        if options.get("immutable"):
            self.immutable(options["immutable"])
        if options.get("index"):
            self.index(options["index"])
        if options.get("unique"):
            self.unique(options["unique"])
        if options.get("sparse"):
            self.sparse(options["sparse"])
        if options.get("text"):
            self.text(options["text"])
        self._add_builtin_validators(options)

    def __repr__(self) -> str:
        """Return a compact debug representation."""
        return f"SchemaType(path={self.path!r}, kind={self.kind.value})"

    # ------------------------------------------------------------------
    # Casting
    # ------------------------------------------------------------------

    def cast(self, value: Any) -> Any:
        """Apply the setter chain, then check the value against the field kind.

        Raises:
            CastError: If the final value does not satisfy the field kind.
        """
        if value is None:
            return value

        for setter in self.setters:
            value = setter(value)

        if value is None:
            return value
        return self._cast_kind(value)

    def cast_function(self) -> Callable[[Any], Any]:
        """Return ``cast`` as a standalone callable."""
        return lambda value: self.cast(value)

    def _cast_kind(self, value: Any) -> Any:
        kind = self.kind
        if kind is FieldKind.MIXED:
            return value
        if kind is FieldKind.STRING:
            if isinstance(value, str):
                return value
        elif kind is FieldKind.NUMBER:
            if isinstance(value, (int, float, Decimal)) and not isinstance(value, bool):
                if not (isinstance(value, float) and math.isnan(value)):
                    return value
        elif kind is FieldKind.BOOLEAN:
            if isinstance(value, bool):
                return value
        elif kind is FieldKind.DATE:
            parsed = parse_datetime(value)
            if parsed is not None:
                return parsed
        elif kind is FieldKind.ARRAY:
            if isinstance(value, (list, tuple)):
                if self.item_type is None:
                    return list(value)
                return [self.item_type.cast(item) for item in value]
        elif kind is FieldKind.OBJECT:
            if isinstance(value, dict):
                return value
        elif kind is FieldKind.OBJECT_ID:
            if isinstance(value, str):
                return value
        raise CastError(self.path, value, kind.value)

    def apply_getters(self, value: Any) -> Any:
        """Run the getter chain over a stored value."""
        for getter in self.getters:
            value = getter(value)
        return value

    # ------------------------------------------------------------------
    # Defaults
    # ------------------------------------------------------------------

    def default(self, value: Any = _UNSET) -> Any:
        """Set the default value or producer; without argument, return it."""
        if value is _UNSET:
            return None if self._default is _UNSET else self._default
        self._default = value
        return self

    @property
    def has_default(self) -> bool:
        return self._default is not _UNSET and self._default is not None

    def get_default(self) -> Any:
        """Evaluate the default: producers are called once per call."""
        if self._default is _UNSET:
            return None
        if callable(self._default):
            return self._default()
        return deepcopy(self._default)

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    @property
    def is_required(self) -> bool:
        return any(v.is_required for v in self.validators)

    def required(self, required: bool | str = True) -> SchemaType:
        """Prepend the built-in required validator.

        Args:
            required: True, or a custom error message.
        """
        if required:
            message = (
                required if isinstance(required, str) else f"Path `{self.path}` is required."
            )
            self.validators = [
                Validator(
                    validator=lambda v: v is not None,
                    message=message,
                    type="required",
                    is_required=True,
                ),
                *[v for v in self.validators if not v.is_required],
            ]
        return self

    def validate(self, obj: Any) -> SchemaType:
        """Register one validator (callable or mapping) or a list of them."""
        if obj is None:
            return self

        if isinstance(obj, (list, tuple)):
            for item in obj:
                self.validate(item)
            return self

        if callable(obj) or (isinstance(obj, dict) and obj.get("validator")):
            self.validators.append(self._create_validator(obj))

        return self

    async def do_validate(self, value: Any, context: Any = None) -> str | None:
        """Run every validator; return the first failing validator's message.

        Every validator runs even after a failure, but only one error is
        attributed to the field.

        Args:
            value: The cast value.
            context: The enclosing record, passed to two-argument validators.
        """
        error: str | None = None
        for validator in self.validators:
            try:
                if positional_arity(validator.validator) >= 2:
                    result = await run_sync_or_async(validator.validator, value, context)
                else:
                    result = await run_sync_or_async(validator.validator, value)
                ok = bool(result)
            except Exception:
                logger.debug("Validator raised for path '%s'", self.path, exc_info=True)
                ok = False
            if not ok and error is None:
                error = validator.message
        return error

    def _create_validator(self, obj: Any) -> Validator:
        default_message = f"Validation failed for path `{self.path}`"
        if callable(obj):
            return Validator(validator=obj, message=default_message)
        return Validator(
            validator=obj["validator"],
            message=obj.get("message") or default_message,
            type=obj.get("type"),
        )

    def _add_builtin_validators(self, options: dict[str, Any]) -> None:
        if options.get("enum") is not None:
            allowed = list(options["enum"])
            self.validators.append(
                Validator(
                    validator=lambda v: v is None or v in allowed,
                    message=f"`{self.path}` must be one of {allowed!r}",
                    type="enum",
                )
            )
        if options.get("min") is not None:
            low = options["min"]
            self.validators.append(
                Validator(
                    validator=lambda v: v is None or v >= low,
                    message=f"Path `{self.path}` is less than minimum allowed value ({low}).",
                    type="min",
                )
            )
        if options.get("max") is not None:
            high = options["max"]
            self.validators.append(
                Validator(
                    validator=lambda v: v is None or v <= high,
                    message=f"Path `{self.path}` is more than maximum allowed value ({high}).",
                    type="max",
                )
            )
        if options.get("match") is not None:
            pattern = re.compile(options["match"])
            self.validators.append(
                Validator(
                    validator=lambda v: v is None or bool(pattern.search(str(v))),
                    message=f"Path `{self.path}` is invalid.",
                    type="regexp",
                )
            )

    # ------------------------------------------------------------------
    # Builder flags
    # ------------------------------------------------------------------

    def get(self, fn: Callable[[Any], Any]) -> SchemaType:
        self.getters.append(fn)
        return self

    def set(self, fn: Callable[[Any], Any]) -> SchemaType:
        self.setters.append(fn)
        return self

    def ref(self, ref: str | None = _UNSET) -> Any:
        """Set the referenced model name; without argument, return it."""
        if ref is _UNSET:
            return self._ref
        self._ref = ref
        return self

    def index(self, value: Any = True) -> SchemaType:
        self._index = value
        return self

    def select(self, value: bool) -> SchemaType:
        self.selected = bool(value)
        return self

    def immutable(self, value: bool = True) -> SchemaType:
        self._immutable = value
        return self

    def sparse(self, value: bool = True) -> SchemaType:
        self._sparse = value
        return self

    def text(self, value: bool = True) -> SchemaType:
        self._text = value
        return self

    def unique(self, value: bool = True) -> SchemaType:
        self._unique = value
        return self

    def transform(self, fn: Callable[[Any], Any]) -> SchemaType:
        self._transform = fn
        return self

    @property
    def is_immutable(self) -> bool:
        return bool(self._immutable)

    @property
    def is_unique(self) -> bool:
        return bool(self._unique)


__all__ = [
    "FieldKind",
    "Mixed",
    "ObjectId",
    "SchemaType",
    "Types",
    "Validator",
    "parse_datetime",
    "resolve_kind",
]

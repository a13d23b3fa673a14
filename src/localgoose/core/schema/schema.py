"""Schema: the field definitions, virtuals, methods, statics and middleware of a model."""

import inspect
import logging
from collections.abc import Callable, Iterable, Iterator
from typing import Any, Literal, Self, TypeAlias

from localgoose.core.exceptions import CastError
from localgoose.core.schema.schema_type import FieldKind, SchemaType, Types, parse_datetime
from localgoose.core.schema.virtual_type import VirtualType
from localgoose.core.utils import positional_arity, run_sync_or_async

logger = logging.getLogger(__name__)

PathType: TypeAlias = Literal["real", "virtual", "reserved", "adhoc"]
Hook: TypeAlias = Callable[[Any], Any]

RESERVED_PATHS = frozenset({"_id", "__v", "createdAt", "updatedAt"})
INDEX_TYPES = ("2d", "2dsphere", "hashed", "text", "unique")


def _is_nested_definition(spec: Any) -> bool:
    return isinstance(spec, dict) and "type" not in spec


def build_schema_type(path: str, spec: Any) -> SchemaType:
    """Build the SchemaType for one definition entry.

    ``spec`` is either a bare type (``str``, ``"Number"``, ``[str]``), an
    options mapping carrying a ``type`` key, or a nested mapping of further
    definitions.
    """
    if _is_nested_definition(spec):
        children = {
            name: build_schema_type(f"{path}.{name}", child) for name, child in spec.items()
        }
        return SchemaType(path, {}, dict, children=children)
    if isinstance(spec, dict):
        return SchemaType(path, spec, spec["type"])
    return SchemaType(path, {}, spec)


async def _validate_paths(
    paths: dict[str, SchemaType], values: Any, context: Any
) -> list[str]:
    errors: list[str] = []
    for name, schema_type in paths.items():
        path = schema_type.path
        value = values.get(name) if isinstance(values, dict) else None

        if schema_type.is_required and value is None:
            errors.append(f"{path} is required")
            continue
        if value is None:
            continue

        if schema_type.children is not None:
            if not isinstance(value, dict):
                error = CastError(path, value, FieldKind.OBJECT.value)
                errors.append(f"{path} validation failed: {error}")
                continue
            errors.extend(await _validate_paths(schema_type.children, value, context))
            continue

        try:
            cast_value = schema_type.cast(value)
        except (CastError, TypeError, ValueError) as e:
            errors.append(f"{path} validation failed: {e}")
            continue

        error = await schema_type.do_validate(cast_value, context)
        if error:
            errors.append(error)
    return errors


def _apply_defaults(paths: dict[str, SchemaType], values: dict[str, Any]) -> None:
    for name, schema_type in paths.items():
        if schema_type.children is not None:
            current = values.get(name)
            if name not in values:
                nested: dict[str, Any] = {}
                _apply_defaults(schema_type.children, nested)
                if nested:
                    values[name] = nested
            elif isinstance(current, dict):
                _apply_defaults(schema_type.children, current)
            continue
        if name not in values and schema_type.has_default:
            values[name] = schema_type.get_default()


def _revive_date(value: Any) -> Any:
    if isinstance(value, str):
        parsed = parse_datetime(value)
        if parsed is not None:
            return parsed
    return value


def _coerce_dates(paths: dict[str, SchemaType], values: dict[str, Any]) -> None:
    for name, schema_type in paths.items():
        value = values.get(name)
        if value is None:
            continue
        if schema_type.children is not None:
            if isinstance(value, dict):
                _coerce_dates(schema_type.children, value)
            continue
        if schema_type.kind is FieldKind.DATE:
            values[name] = _revive_date(value)
            continue
        item_type = schema_type.item_type
        if item_type is not None and item_type.kind is FieldKind.DATE and isinstance(value, list):
            values[name] = [_revive_date(item) for item in value]


def _cast_values(paths: dict[str, SchemaType], values: dict[str, Any]) -> None:
    for name, schema_type in paths.items():
        value = values.get(name)
        if value is None:
            continue
        if schema_type.children is not None:
            if isinstance(value, dict):
                _cast_values(schema_type.children, value)
            continue
        values[name] = schema_type.cast(value)


class Schema:
    """Field definitions plus behavior shared by every document of a model.

    Example:
        >>> user_schema = Schema({
        ...     "name": {"type": str, "required": True},
        ...     "age": {"type": int, "default": 0},
        ...     "address": {"city": str, "zip": str},
        ... })
        >>> user_schema.virtual("label").get(lambda _, doc: doc.get("name").title())
    """

    Types = Types
    index_types = INDEX_TYPES

    def __init__(
        self, definition: dict[str, Any] | None = None, options: dict[str, Any] | None = None
    ):
        """Create a Schema.

        Args:
            definition: Mapping of field path to type, options mapping or nested mapping.
            options: Free-form schema options (``collection``, ``select_all``, ...).
        """
        self.obj: dict[str, Any] = dict(definition or {})
        self.options: dict[str, Any] = dict(options or {})
        self.virtuals: dict[str, VirtualType] = {}
        self.methods: dict[str, Callable[..., Any]] = {}
        self.statics: dict[str, Callable[..., Any]] = {}
        self.middleware: dict[str, dict[str, list[Hook]]] = {"pre": {}, "post": {}}
        self._indexes: list[tuple[dict[str, Any], dict[str, Any]]] = []
        self._paths: dict[str, SchemaType] = {}
        self._required_paths: set[str] = set()
        self._plugins: list[Callable[..., Any]] = []

        for path, spec in self.obj.items():
            self._register_path(path, spec)

        logger.debug("Schema created with paths: %s", list(self._paths))

    def __repr__(self) -> str:
        return f"Schema(paths={list(self._paths)!r})"

    def _register_path(self, path: str, spec: Any) -> None:
        schema_type = build_schema_type(path, spec)
        self._paths[path] = schema_type
        if schema_type.is_required:
            self._required_paths.add(path)
        if isinstance(spec, dict) and spec.get("index"):
            self.index({path: 1})

    # ------------------------------------------------------------------
    # Paths
    # ------------------------------------------------------------------

    def add(self, obj: dict[str, Any]) -> Self:
        """Add (or redefine) paths."""
        for path, spec in obj.items():
            self.obj[path] = spec
            self._required_paths.discard(path)
            self._register_path(path, spec)
        return self

    def path(self, path: str) -> SchemaType | None:
        """Return the SchemaType for ``path``; dot paths reach nested definitions."""
        schema_type = self._paths.get(path)
        if schema_type is not None or "." not in path:
            return schema_type

        head, *rest = path.split(".")
        current = self._paths.get(head)
        for part in rest:
            if current is None or current.children is None:
                return None
            current = current.children.get(part)
        return current

    def path_type(self, path: str) -> PathType:
        """Classify ``path`` as real, virtual, reserved or adhoc."""
        if self.path(path) is not None:
            return "real"
        if path in self.virtuals:
            return "virtual"
        if path in RESERVED_PATHS:
            return "reserved"
        return "adhoc"

    @property
    def paths(self) -> dict[str, SchemaType]:
        return dict(self._paths)

    def each_path(self, fn: Callable[[str, SchemaType], Any]) -> None:
        for path, schema_type in self._paths.items():
            fn(path, schema_type)

    def iter_paths(self) -> Iterator[tuple[str, SchemaType]]:
        return iter(self._paths.items())

    def remove(self, path: str | list[str]) -> Self:
        for name in [path] if isinstance(path, str) else path:
            self.obj.pop(name, None)
            self._paths.pop(name, None)
            self._required_paths.discard(name)
        return self

    def required_paths(self, invalidate: bool = False) -> list[str]:
        """Return required paths, recomputing them from the definitions on demand."""
        if invalidate:
            self._required_paths = {
                path for path, schema_type in self._paths.items() if schema_type.is_required
            }
        return [path for path in self._paths if path in self._required_paths]

    # ------------------------------------------------------------------
    # Derived schemas
    # ------------------------------------------------------------------

    def clone(self) -> "Schema":
        """Copy the schema; SchemaType objects are shared, not deep-cloned."""
        clone = Schema({}, dict(self.options))
        clone.obj = dict(self.obj)
        clone._paths = dict(self._paths)
        clone._required_paths = set(self._required_paths)
        clone.virtuals = dict(self.virtuals)
        clone.methods = dict(self.methods)
        clone.statics = dict(self.statics)
        clone.middleware = {
            kind: {action: list(hooks) for action, hooks in actions.items()}
            for kind, actions in self.middleware.items()
        }
        clone._indexes = list(self._indexes)
        clone._plugins = list(self._plugins)
        return clone

    def pick(self, paths: str | list[str]) -> "Schema":
        """Return a new schema holding only ``paths``."""
        names = [paths] if isinstance(paths, str) else paths
        return Schema({name: self.obj[name] for name in names if name in self._paths})

    def omit(self, paths: str | list[str]) -> "Schema":
        """Return a clone without ``paths``."""
        return self.clone().remove(paths)

    # ------------------------------------------------------------------
    # Indexes (advisory bookkeeping only)
    # ------------------------------------------------------------------

    def index(self, fields: dict[str, Any], options: dict[str, Any] | None = None) -> Self:
        self._indexes.append((dict(fields), dict(options or {})))
        return self

    def indexes(self) -> list[tuple[dict[str, Any], dict[str, Any]]]:
        return list(self._indexes)

    def remove_index(self, path: str) -> Self:
        self._indexes = [(fields, opts) for fields, opts in self._indexes if path not in fields]
        return self

    # ------------------------------------------------------------------
    # Behavior
    # ------------------------------------------------------------------

    def method(
        self, name: str | dict[str, Callable[..., Any]], fn: Callable[..., Any] | None = None
    ) -> Self:
        """Register an instance method, called as ``fn(doc, *args)``."""
        if isinstance(name, dict):
            self.methods.update(name)
        else:
            self.methods[name] = fn
        return self

    def static(
        self, name: str | dict[str, Callable[..., Any]], fn: Callable[..., Any] | None = None
    ) -> Self:
        """Register a static, called as ``fn(model, *args)``."""
        if isinstance(name, dict):
            self.statics.update(name)
        else:
            self.statics[name] = fn
        return self

    def pre(self, action: str, fn: Hook) -> Self:
        self.middleware["pre"].setdefault(action, []).append(fn)
        return self

    def post(self, action: str, fn: Hook) -> Self:
        self.middleware["post"].setdefault(action, []).append(fn)
        return self

    def hooks(self, kind: Literal["pre", "post"], action: str) -> list[Hook]:
        return list(self.middleware[kind].get(action, []))

    async def run_hooks(self, kind: Literal["pre", "post"], action: str, context: Any) -> None:
        """Run the ``kind`` hooks registered for ``action`` in registration order.

        A raising hook propagates and aborts the remaining hooks.
        """
        hooks = self.hooks(kind, action)
        if not hooks:
            return
        logger.debug("Running %d %s-%s hook(s)", len(hooks), kind, action)
        for hook in hooks:
            await run_sync_or_async(hook, context)

    def virtual(self, name: str, options: dict[str, Any] | None = None) -> VirtualType:
        """Get or create the virtual ``name``."""
        virtual = self.virtuals.get(name)
        if virtual is None:
            virtual = self.virtuals[name] = VirtualType(name, options)
        return virtual

    def virtualpath(self, name: str) -> VirtualType | None:
        return self.virtuals.get(name)

    def remove_virtual(self, name: str) -> Self:
        self.virtuals.pop(name, None)
        return self

    def alias(self, source: str, target: str) -> Self:
        """Expose ``target`` under the virtual name ``source``."""
        self.virtual(source).get(lambda _, doc: doc.get(target)).set(
            lambda value, doc: doc.set(target, value)
        )
        return self

    def plugin(self, fn: Callable[..., Any], opts: Any = None) -> Self:
        """Apply ``fn(schema, opts)`` (or ``fn(schema)``) and remember it."""
        if positional_arity(fn) >= 2:
            fn(self, opts)
        else:
            fn(self)
        self._plugins.append(fn)
        return self

    def load_class(self, cls: type) -> Self:
        """Import behavior from a class.

        Plain functions become instance methods, classmethods and
        staticmethods become statics and properties become virtuals.
        """
        for name, attr in vars(cls).items():
            if name.startswith("_"):
                continue
            if isinstance(attr, classmethod):
                self.static(name, attr.__func__)
            elif isinstance(attr, staticmethod):
                func = attr.__func__
                self.static(name, lambda _model, *args, _f=func, **kwargs: _f(*args, **kwargs))
            elif isinstance(attr, property):
                virtual = self.virtual(name)
                if attr.fget is not None:
                    virtual.get(lambda _, doc, _g=attr.fget: _g(doc))
                if attr.fset is not None:
                    virtual.set(lambda value, doc, _s=attr.fset: _s(doc, value))
            elif inspect.isfunction(attr):
                self.method(name, attr)
        return self

    def get(self, key: str) -> Any:
        return self.options.get(key)

    def set(self, key: str, value: Any) -> Self:
        self.options[key] = value
        return self

    # ------------------------------------------------------------------
    # Record processing
    # ------------------------------------------------------------------

    def apply_defaults(self, record: dict[str, Any]) -> dict[str, Any]:
        """Fill absent fields with their defaults, in place. Nested definitions recurse."""
        _apply_defaults(self._paths, record)
        return record

    def coerce_dates(self, record: dict[str, Any]) -> dict[str, Any]:
        """Turn date-like strings of Date fields into datetimes, in place.

        Nested definitions and arrays of Date recurse; other fields, including
        ISO-looking values of String fields, are left untouched.
        """
        _coerce_dates(self._paths, record)
        return record

    def cast_record(
        self, record: dict[str, Any], fields: Iterable[str] | None = None
    ) -> dict[str, Any]:
        """Cast every declared, present field in place.

        Args:
            record: Record to cast.
            fields: Top-level fields to cast; all declared fields when None.

        Raises:
            CastError: If a value does not satisfy its field kind.
        """
        paths = self._paths
        if fields is not None:
            paths = {name: paths[name] for name in fields if name in paths}
        _cast_values(paths, record)
        return record

    async def validate(self, record: dict[str, Any]) -> list[str]:
        """Validate ``record``; return one error string per failing field.

        Fields are independent: every field is checked and no failure stops
        the others. Nested definitions report dotted paths.
        """
        errors = await _validate_paths(self._paths, record, record)
        if errors:
            logger.debug("Validation produced %d error(s): %s", len(errors), errors)
        return errors


__all__ = ["RESERVED_PATHS", "Schema", "build_schema_type"]

"""Connection: model registry, readiness state and database lifecycle."""

import logging
import os
from collections.abc import Callable
from enum import IntEnum
from pathlib import Path
from typing import Any, Self

import inflection

from localgoose.core.config.config import ConfigManager
from localgoose.core.dto.connection_dto import GetModelResult, RegisterModelResult
from localgoose.core.dto.result_dto import StatusCode, StatusDetail
from localgoose.core.exceptions import PersistenceError, UnsupportedOperationError
from localgoose.core.model.model import Model
from localgoose.core.schema.schema import Schema
from localgoose.core.storage.json_store import JsonFileCollectionStore
from localgoose.core.storage.store import BaseCollectionStore, InMemoryCollectionStore
from localgoose.core.utils import positional_arity

logger = logging.getLogger(__name__)


class ReadyState(IntEnum):
    DISCONNECTED = 0
    CONNECTED = 1
    CONNECTING = 2
    DISCONNECTING = 3


class Connection:
    """A database: one directory of collection files plus the models bound to it.

    Each Connection owns its ConfigManager and its collection store, so two
    connections never share state.

    Example:
        >>> conn = await Connection("./db").connect()
        >>> User = conn.model("User", user_schema)
    """

    def __init__(
        self,
        db_path: str | os.PathLike[str] | None = None,
        *,
        store: BaseCollectionStore | None = None,
        config_path: str | None = None,
        config: dict[str, Any] | None = None,
    ):
        """Create a Connection (not yet connected).

        Args:
            db_path: Database directory; overrides the configured ``db_path``.
            store: Collection store; defaults to a JSON file store on ``db_path``.
            config_path: Optional JSON configuration file.
            config: Optional configuration dict (``{"localgoose": {...}}``).
        """
        self.config = ConfigManager(config_path=config_path)
        self.config.load(config=config)
        if db_path is not None:
            self.config.set("db_path", os.fspath(db_path))

        self.store = store or JsonFileCollectionStore(
            self.db_path, indent=self.config.get("json_indent", 2)
        )
        self.ready_state = ReadyState.DISCONNECTED
        self._models: dict[str, Model] = {}
        self._plugins: list[Callable[..., Any]] = []
        logger.debug("Connection created for db_path=%s", self.db_path)

    def __repr__(self) -> str:
        return f"Connection(db_path={self.db_path!r}, ready_state={self.ready_state.name})"

    @property
    def db_path(self) -> str:
        return self.config.get("db_path")

    @property
    def name(self) -> str:
        return Path(self.db_path).name

    @property
    def models(self) -> dict[str, Model]:
        return dict(self._models)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def connect(self) -> Self:
        """Prepare the store and move to CONNECTED.

        Raises:
            PersistenceError: If the database directory cannot be prepared.
        """
        self.ready_state = ReadyState.CONNECTING
        try:
            await self.store.open()
        except PersistenceError:
            self.ready_state = ReadyState.DISCONNECTED
            logger.error("Failed to connect to database at %s", self.db_path)
            raise
        self.ready_state = ReadyState.CONNECTED
        logger.info("Connected to database at %s", self.db_path)
        return self

    async def disconnect(self) -> None:
        """Forget every registered model and move to DISCONNECTED."""
        self._models.clear()
        self.ready_state = ReadyState.DISCONNECTED

    async def close(self) -> None:
        self.ready_state = ReadyState.DISCONNECTING
        await self.disconnect()
        logger.info("Connection to %s closed", self.db_path)

    async def destroy(self) -> None:
        """Drop the database, then close."""
        await self.drop_database()
        await self.close()

    async def use_db(self, name: str) -> "Connection":
        """Open a sibling database directory called ``name``."""
        sibling = Path(self.db_path).parent / name
        store = None
        if isinstance(self.store, InMemoryCollectionStore):
            store = InMemoryCollectionStore()
        connection = Connection(sibling, store=store, config=self.config.get_all_config())
        return await connection.connect()

    # ------------------------------------------------------------------
    # Models
    # ------------------------------------------------------------------

    def collection_name_for(self, name: str, schema: Schema, collection: str | None = None) -> str:
        """Pick the collection for a model: explicit, schema option, derived or the name."""
        if collection:
            return collection
        if schema.get("collection"):
            return schema.get("collection")
        if self.config.get("pluralize_collections", False):
            return inflection.pluralize(inflection.underscore(name))
        return name

    def execute_register_model(
        self, name: str, schema: Schema, collection: str | None = None
    ) -> RegisterModelResult:
        """Build and register a Model for ``schema`` under ``name``.

        [Result Pattern] Check result.is_ok() and result.model.
        """
        if not isinstance(name, str) or not name.strip():
            return RegisterModelResult.fail(
                StatusDetail(
                    code=StatusCode.INVALID,
                    message=f"Invalid model name: {name!r}",
                    context={"name": repr(name)},
                ),
                name=str(name) if name else "",
            )

        existing = self._models.get(name)
        if existing is not None:
            if existing.schema is schema:
                logger.debug("Model '%s' already registered with the same schema", name)
                return RegisterModelResult.success(
                    model=existing,
                    name=name,
                    created=False,
                    detail=StatusDetail(
                        code=StatusCode.DUPLICATE,
                        message="Same schema already registered",
                    ),
                )
            return RegisterModelResult.fail(
                StatusDetail(
                    code=StatusCode.ALREADY_EXISTS,
                    message=f"Cannot overwrite model {name!r} once registered",
                    context={"name": name},
                ),
                model=existing,
                name=name,
            )

        model = Model(name, schema, self, self.collection_name_for(name, schema, collection))
        self._models[name] = model
        logger.debug("Model '%s' registered on collection '%s'", name, model.collection_name)
        return RegisterModelResult.success(model=model, name=name, created=True)

    def model(
        self, name: str, schema: Schema | None = None, collection: str | None = None
    ) -> Model:
        """Register (with ``schema``) or fetch (without) a model.

        Raises:
            ValueError: If the name is invalid or owned by another schema.
            LookupError: If fetching a model that was never registered.
        """
        if schema is None:
            result = self.execute_get_model(name)
            if result.model is None:
                raise LookupError(f"Model {name!r} is not registered")
            return result.model

        result = self.execute_register_model(name, schema, collection)
        if result.is_error():
            raise ValueError(result.detail.message)
        return result.model

    def execute_get_model(self, name: str) -> GetModelResult:
        """Look up a registered model.

        [Result Pattern] ``result.model`` is None when nothing is registered
        under ``name`` (detail NOT_FOUND).
        """
        model = self._models.get(name)
        if model is None:
            logger.debug("Model '%s' not found in registry.", name)
            return GetModelResult.success(
                model=None,
                name=name,
                detail=StatusDetail(
                    code=StatusCode.NOT_FOUND,
                    message=f"Model '{name}' not found",
                    context={"name": name},
                ),
            )
        return GetModelResult.success(model=model, name=name)

    def delete_model(self, name: str) -> bool:
        if name in self._models:
            del self._models[name]
            logger.debug("Model '%s' deleted.", name)
            return True
        return False

    def model_names(self) -> list[str]:
        return list(self._models)

    # ------------------------------------------------------------------
    # Collections
    # ------------------------------------------------------------------

    async def list_collections(self) -> list[dict[str, str]]:
        names = await self.store.list_collections()
        return [{"name": name, "type": "collection"} for name in names]

    async def drop_collection(self, name: str) -> bool:
        return await self.store.drop(name)

    async def drop_database(self) -> bool:
        return await self.store.drop_all()

    async def sync_indexes(self) -> list[Any]:
        return []

    # ------------------------------------------------------------------
    # Options and plugins
    # ------------------------------------------------------------------

    def get(self, key: str) -> Any:
        return self.config.get(key)

    def set(self, key: str, value: Any) -> Self:
        self.config.set(key, value)
        return self

    def plugin(self, fn: Callable[..., Any], opts: Any = None) -> Self:
        """Apply ``fn(connection, opts)`` once; repeated registrations are ignored."""
        if fn in self._plugins:
            return self
        if positional_arity(fn) >= 2:
            fn(self, opts)
        else:
            fn(self)
        self._plugins.append(fn)
        return self

    # ------------------------------------------------------------------
    # Unsupported
    # ------------------------------------------------------------------

    async def start_session(self, *args: Any, **kwargs: Any) -> Any:
        raise UnsupportedOperationError("Sessions")

    async def with_session(self, *args: Any, **kwargs: Any) -> Any:
        raise UnsupportedOperationError("Sessions")

    async def transaction(self, *args: Any, **kwargs: Any) -> Any:
        raise UnsupportedOperationError("Transactions")

    async def watch(self, *args: Any, **kwargs: Any) -> Any:
        raise UnsupportedOperationError("Change streams")


__all__ = ["Connection", "ReadyState"]

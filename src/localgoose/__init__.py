"""localgoose: schema-typed document models over local JSON files."""

from localgoose.core.aggregate.aggregate import Aggregate
from localgoose.core.connection.connection import Connection, ReadyState
from localgoose.core.document.document import Document
from localgoose.core.exceptions import (
    CastError,
    DocumentNotFoundError,
    LocalgooseError,
    NotPopulatedError,
    PersistenceError,
    QueryOperatorError,
    ReferenceResolutionError,
    UnsupportedOperationError,
    ValidationError,
)
from localgoose.core.localgoose import connect, create_connection
from localgoose.core.model.model import Model
from localgoose.core.query.query import Query
from localgoose.core.schema.schema import Schema
from localgoose.core.schema.schema_type import SchemaType, Types
from localgoose.core.schema.virtual_type import VirtualType
from localgoose.core.storage.json_store import JsonFileCollectionStore
from localgoose.core.storage.store import BaseCollectionStore, InMemoryCollectionStore

__version__ = "0.3.0"

__all__ = [
    "Aggregate",
    "BaseCollectionStore",
    "CastError",
    "Connection",
    "Document",
    "DocumentNotFoundError",
    "InMemoryCollectionStore",
    "JsonFileCollectionStore",
    "LocalgooseError",
    "Model",
    "NotPopulatedError",
    "PersistenceError",
    "Query",
    "QueryOperatorError",
    "ReadyState",
    "ReferenceResolutionError",
    "Schema",
    "SchemaType",
    "Types",
    "UnsupportedOperationError",
    "ValidationError",
    "VirtualType",
    "connect",
    "create_connection",
]

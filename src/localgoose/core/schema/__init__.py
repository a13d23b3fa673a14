"""Schema definitions: field types, virtuals and the Schema builder."""

from localgoose.core.schema.schema import RESERVED_PATHS, Schema
from localgoose.core.schema.schema_type import FieldKind, Mixed, ObjectId, SchemaType, Types
from localgoose.core.schema.virtual_type import VirtualType

__all__ = [
    "FieldKind",
    "Mixed",
    "ObjectId",
    "RESERVED_PATHS",
    "Schema",
    "SchemaType",
    "Types",
    "VirtualType",
]

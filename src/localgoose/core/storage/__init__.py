"""Persistence collaborators: collection stores and identifiers."""

from localgoose.core.storage.ids import new_id
from localgoose.core.storage.json_store import JsonFileCollectionStore
from localgoose.core.storage.store import BaseCollectionStore, InMemoryCollectionStore, Record

__all__ = [
    "BaseCollectionStore",
    "InMemoryCollectionStore",
    "JsonFileCollectionStore",
    "Record",
    "new_id",
]

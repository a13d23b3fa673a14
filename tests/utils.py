"""Test helpers and shared schemas."""

from localgoose.core.schema.schema import Schema
from localgoose.core.schema.schema_type import Types


def make_user_schema() -> Schema:
    """Return a fresh User schema: required name, defaulted age, optional email."""
    return Schema(
        {
            "name": {"type": str, "required": True},
            "age": {"type": "Number", "default": 0},
            "email": str,
            "tags": {"type": [str], "default": list},
        }
    )


def make_post_schema() -> Schema:
    """Return a fresh Post schema with a single and a multi reference to User."""
    return Schema(
        {
            "title": {"type": str, "required": True},
            "likes": {"type": int, "default": 0},
            "author": {"type": Types.ObjectId, "ref": "User"},
            "readers": [{"type": Types.ObjectId, "ref": "User"}],
        }
    )


async def seed_users(model, rows):
    """Create ``rows`` one by one so stored order equals ``rows`` order."""
    return [await model.create(row) for row in rows]

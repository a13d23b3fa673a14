"""Quick start: users, posts, population and an aggregation over ./mydb."""

from __future__ import annotations

import asyncio
import json
import logging
import sys
from datetime import UTC, datetime
from pathlib import Path

# Allow running directly from the repo without installing the package.
REPO_ROOT = Path(__file__).resolve().parents[1]
SRC_ROOT = REPO_ROOT / "src"
if str(SRC_ROOT) not in sys.path:
    sys.path.insert(0, str(SRC_ROOT))

from localgoose import Schema, Types, connect  # noqa: E402


def log_output(label: str, data: object) -> None:
    print(f"\n{label}")
    if isinstance(data, list):
        data = [item.to_json() if hasattr(item, "to_json") else item for item in data]
    elif hasattr(data, "to_json"):
        data = data.to_json()
    print(json.dumps(data, indent=2, default=str))


def build_schemas() -> tuple[Schema, Schema]:
    user_schema = Schema(
        {
            "username": {"type": str, "required": True},
            "email": {"type": str, "required": True},
            "age": {"type": int, "required": True},
            "is_active": {"type": bool, "default": True},
            "tags": {"type": [str], "default": list},
            "profile": {"type": dict, "default": lambda: {"avatar": "default.png", "bio": ""}},
            "last_login": {"type": datetime},
        }
    )
    user_schema.virtual("is_adult").get(lambda _, doc: doc["age"] >= 18)
    user_schema.method(
        "full_info", lambda doc: f"{doc['username']} ({doc['age']}) - {doc['email']}"
    )
    user_schema.static("find_by_email", lambda model, email: model.find_one({"email": email}))

    def touch_last_login(doc):
        print(f"Before saving user: {doc['username']}")
        doc["last_login"] = datetime.now(UTC)

    user_schema.pre("save", touch_last_login)
    user_schema.post("save", lambda doc: print(f"After saving user: {doc['username']}"))

    post_schema = Schema(
        {
            "title": {"type": str, "required": True},
            "content": {"type": str, "required": True},
            "author": {"type": Types.ObjectId, "ref": "User", "required": True},
            "tags": {"type": [str], "default": list},
            "likes": {"type": int, "default": 0},
            "published": {"type": bool, "default": True},
        }
    )
    return user_schema, post_schema


async def main() -> int:
    logging.basicConfig(level=logging.INFO)
    db = await connect(REPO_ROOT / "mydb")
    user_schema, post_schema = build_schemas()
    User = db.model("User", user_schema)
    Post = db.model("Post", post_schema)

    await User.delete_many({})
    await Post.delete_many({})

    john = await User.create(
        {"username": "john", "email": "john@example.com", "age": 25, "tags": ["developer"]}
    )
    jane = await User.create(
        {"username": "jane", "email": "jane@example.com", "age": 30, "tags": ["designer"]}
    )
    log_output("Created users:", [john, jane])

    await Post.create(
        [
            {"title": "Getting started", "content": "Hello", "author": john.id, "likes": 10},
            {"title": "Design basics", "content": "Colors", "author": jane.id, "likes": 5},
            {"title": "Async Python", "content": "await", "author": john.id, "likes": 2},
        ]
    )

    posts = await Post.find().sort("-likes").populate("author", "username email")
    log_output("Posts with authors:", posts)

    found = await User.statics.find_by_email("jane@example.com")
    print(f"\nFound by email: {found.methods.full_info()} adult={found['is_adult']}")

    stats = await (
        Post.aggregate()
        .group({"_id": "$author", "posts": {"$sum": 1}, "likes": {"$sum": "$likes"}})
        .sort({"likes": -1})
    )
    log_output("Likes per author:", stats)

    tags = await User.aggregate().unwind("$tags").group({"_id": "$tags", "count": {"$sum": 1}})
    log_output("Tag counts:", tags)

    await db.close()
    return 0


if __name__ == "__main__":
    raise SystemExit(asyncio.run(main()))

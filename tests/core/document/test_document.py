"""Tests for Document access, change tracking, serialization and population state."""

from datetime import datetime

import pytest

from localgoose.core.document.document import Document
from localgoose.core.exceptions import CastError, NotPopulatedError
from localgoose.core.schema.schema import Schema


@pytest.fixture
def profile_schema():
    """Schema with getters, virtuals, an alias and a method."""
    schema = Schema(
        {
            "name": {"type": str, "required": True},
            "nick": {"type": str, "get": str.upper},
            "age": {"type": int, "default": 0},
            "address": {"city": str},
        }
    )
    schema.virtual("label").get(lambda _, doc: f"{doc['name']}!")
    schema.virtual("full_name").set(lambda value, doc: doc.set("name", value.split()[0]))
    schema.alias("n", "name")
    schema.method("describe", lambda doc, suffix="": f"{doc['name']} ({doc['age']}){suffix}")
    return schema


@pytest.fixture
def Profile(connection, profile_schema):
    return connection.model("Profile", profile_schema)


class TestAccess:
    """Test get/set through virtuals, getters and casting."""

    @pytest.mark.asyncio
    async def test_get_and_set(self, Profile):
        """Item access reads and writes record values."""
        doc = await Profile.create({"name": "ada"})
        assert doc["name"] == "ada"
        assert doc.get("missing", "fallback") == "fallback"
        doc["age"] = 36
        assert doc["age"] == 36
        assert "age" in doc
        assert "nothing" not in doc

    @pytest.mark.asyncio
    async def test_dot_paths(self, Profile):
        """Nested values are reachable with dot paths."""
        doc = await Profile.create({"name": "ada", "address": {"city": "London"}})
        assert doc["address.city"] == "London"
        doc.set("address.city", "Paris")
        assert doc.to_object()["address"] == {"city": "Paris"}

    @pytest.mark.asyncio
    async def test_set_casts(self, Profile):
        """Values are cast on write."""
        doc = await Profile.create({"name": "ada"})
        with pytest.raises(CastError):
            doc.set("age", "old")

    @pytest.mark.asyncio
    async def test_set_mapping(self, Profile):
        """set accepts a mapping of paths."""
        doc = await Profile.create({"name": "ada"})
        doc.set({"name": "grace", "age": 40})
        assert (doc["name"], doc["age"]) == ("grace", 40)

    @pytest.mark.asyncio
    async def test_getters_apply_on_read(self, Profile):
        """Schema getters change what get returns, not what is stored."""
        doc = await Profile.create({"name": "ada", "nick": "countess"})
        assert doc["nick"] == "COUNTESS"
        assert doc.to_object()["nick"] == "countess"

    @pytest.mark.asyncio
    async def test_virtual_getter_and_setter(self, Profile):
        """Virtual getters compute values; setters write real paths."""
        doc = await Profile.create({"name": "ada"})
        assert doc["label"] == "ada!"
        doc["full_name"] = "grace hopper"
        assert doc["name"] == "grace"
        assert "label" not in doc.to_object()
        assert doc.to_object(virtuals=True)["label"] == "grace!"

    @pytest.mark.asyncio
    async def test_alias(self, Profile):
        """An alias reads and writes its target path."""
        doc = await Profile.create({"name": "ada"})
        assert doc["n"] == "ada"
        doc["n"] = "grace"
        assert doc["name"] == "grace"

    @pytest.mark.asyncio
    async def test_methods_are_bound(self, Profile):
        """Schema methods receive the document first."""
        doc = await Profile.create({"name": "ada", "age": 36})
        assert doc.methods.describe() == "ada (36)"
        assert doc.methods.describe("!") == "ada (36)!"

    @pytest.mark.asyncio
    async def test_id(self, Profile):
        """id and _id expose the stored identifier."""
        doc = await Profile.create({"name": "ada"})
        assert doc.id == doc._id == doc["_id"]
        assert len(doc.id) == 24


class TestChangeTracking:
    """Test modified-path bookkeeping."""

    @pytest.mark.asyncio
    async def test_modified_paths(self, Profile):
        """Writes mark paths modified; init does not."""
        doc = await Profile.create({"name": "ada"})
        assert not doc.is_modified()
        doc.set("age", 3)
        doc.set("address.city", "Rome")
        assert doc.is_modified()
        assert doc.is_modified("age")
        assert doc.is_modified("address")
        assert not doc.is_modified("name")
        assert doc.modified_paths() == ["address.city", "age"]
        assert doc.get_changes() == {"age": 3, "address.city": "Rome"}

        doc.init({"age": 9})
        assert not doc.is_modified()
        assert doc["age"] == 9
        assert doc.is_new is False

    @pytest.mark.asyncio
    async def test_snapshot(self, Profile):
        """Modified paths can be snapshotted and restored."""
        doc = await Profile.create({"name": "ada"})
        doc.set("age", 1).create_modified_paths_snapshot()
        doc.set("name", "grace")
        doc.restore_modified_paths_snapshot()
        assert doc.modified_paths() == ["age"]
        doc.mark_modified("nick")
        assert doc.is_modified("nick")

    @pytest.mark.asyncio
    async def test_is_default_and_selection(self, Profile):
        """is_default compares against the schema default."""
        doc = await Profile.create({"name": "ada"})
        assert doc.is_default("age")
        assert not doc.is_default("name")
        doc["age"] = 5
        assert not doc.is_default("age")
        assert doc.is_selected("name")
        assert not doc.is_direct_selected("nick")


class TestPersistence:
    """Test save, replace and delete from a document."""

    @pytest.mark.asyncio
    async def test_save_writes_changes(self, Profile):
        """save persists the record and clears modified paths."""
        doc = await Profile.create({"name": "ada"})
        assert doc.is_new
        doc["age"] = 37
        result = await doc.save()
        assert result.matched_count == 1
        assert result.modified_count == 1
        assert not doc.is_modified()
        assert doc.is_new is False
        assert (await Profile.find_by_id(doc.id))["age"] == 37

    @pytest.mark.asyncio
    async def test_save_applies_setters_once(self, connection):
        """A value cast on assignment is not cast again by save."""
        schema = Schema({"label": {"type": str, "set": lambda value: value + "!"}})
        Tagged = connection.model("Tagged", schema)
        doc = await Tagged.create({"label": "a"})
        doc["label"] = "b"
        await doc.save()
        assert (await Tagged.find_by_id(doc.id))["label"] == "b!"

    @pytest.mark.asyncio
    async def test_save_runs_hooks(self, connection, profile_schema):
        """save runs the save hooks around the write."""
        calls = []
        profile_schema.pre("save", lambda doc: calls.append(("pre", doc["name"])))
        profile_schema.post("save", lambda doc: calls.append(("post", doc["name"])))
        Profile = connection.model("HookedProfile", profile_schema)
        doc = await Profile.create({"name": "ada"})
        calls.clear()
        doc["name"] = "grace"
        await doc.save()
        assert calls == [("pre", "grace"), ("post", "grace")]

    @pytest.mark.asyncio
    async def test_delete_and_replace(self, Profile):
        """Documents can replace or delete their own record."""
        doc = await Profile.create({"name": "ada"})
        other = await Profile.create({"name": "grace"})
        assert (await doc.replace_one({"name": "lovelace"})).modified_count == 1
        assert (await Profile.find_by_id(doc.id))["name"] == "lovelace"
        assert (await other.delete_one()).deleted_count == 1
        assert await Profile.count_documents() == 1


class TestSerialization:
    """Test to_object and to_json."""

    @pytest.mark.asyncio
    async def test_to_object_is_a_copy(self, Profile):
        """to_object returns a deep copy of the record."""
        doc = await Profile.create({"name": "ada", "address": {"city": "Rome"}})
        obj = doc.to_object()
        obj["address"]["city"] = "Paris"
        assert doc["address.city"] == "Rome"
        assert isinstance(obj["createdAt"], datetime)

    @pytest.mark.asyncio
    async def test_to_json_encodes_dates(self, Profile):
        """to_json renders datetimes as ISO strings."""
        doc = await Profile.create({"name": "ada"})
        data = doc.to_json()
        assert data["createdAt"] == doc["createdAt"].isoformat()


class TestPopulationState:
    """Test the populated-value bookkeeping of a Document."""

    @pytest.mark.asyncio
    async def test_assert_populated(self, user_model, post_model):
        """assert_populated raises for paths that were not populated."""
        author = await user_model.create({"name": "ada"})
        post = await post_model.create({"title": "t", "author": author.id})
        with pytest.raises(NotPopulatedError) as exc_info:
            post.assert_populated("author")
        assert exc_info.value.path == "author"

        post.set_populated("author", author)
        assert post.assert_populated(["author"]) is post
        assert post.populated("author") is author
        assert post["author"] is author
        assert post.get_populated_docs() == [author]
        assert post.to_object()["author"]["name"] == "ada"

    @pytest.mark.asyncio
    async def test_assign_document(self, user_model, post_model):
        """Assigning a Document stores its id and keeps it populated."""
        author = await user_model.create({"name": "ada"})
        post = await post_model.create({"title": "t"})
        post["author"] = author
        assert post["author"] is author
        assert post._doc["author"] == author.id
        await post.save()
        stored = await post_model.find_by_id(post.id)
        assert stored["author"] == author.id


@pytest.mark.asyncio
async def test_document_wraps_a_copy(user_model):
    """The caller's record is never mutated through a Document."""
    record = {"_id": "x", "name": "ada", "tags": ["a"]}
    doc = Document(record, user_model.schema, user_model)
    doc["tags"] = ["b"]
    assert record["tags"] == ["a"]
    assert repr(doc) == "Document(User, _id='x')"

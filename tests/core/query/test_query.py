"""Tests for Query building, execution order and population."""

import pytest
import pytest_asyncio

from localgoose.core.document.document import Document
from localgoose.core.exceptions import DocumentNotFoundError, UnsupportedOperationError
from localgoose.core.query.query_builder import QueryBuilder
from localgoose.core.schema.schema import Schema
from localgoose.core.schema.schema_type import Types
from tests.utils import seed_users

ROWS = [
    {"name": "a", "age": 30, "tags": ["x"]},
    {"name": "b", "age": 20, "tags": ["y"]},
    {"name": "c", "age": 30, "tags": ["x", "y"]},
    {"name": "d", "age": 10},
    {"name": "e", "age": 20, "email": "e@x"},
]


@pytest_asyncio.fixture
async def users(user_model):
    return await seed_users(user_model, ROWS)


def names(docs):
    return [doc["name"] for doc in docs]


class TestConditions:
    """Test where, builder operators and logical helpers."""

    @pytest.mark.asyncio
    async def test_where_builder(self, user_model, users):
        """Builder operators on one path accumulate."""
        builder = user_model.find().where("age")
        assert isinstance(builder, QueryBuilder)
        query = builder.gte(20).lt(30)
        assert query.conditions == {"age": {"$gte": 20, "$lt": 30}}
        assert names(await query) == ["b", "e"]

    @pytest.mark.asyncio
    async def test_builder_operators(self, user_model, users):
        """Each builder operator maps to its query operator."""
        find = user_model.find
        assert names(await find().where("name").in_(["a", "d"])) == ["a", "d"]
        assert names(await find().where("name").nin("a")) == ["b", "c", "d", "e"]
        assert names(await find().where("age").eq(10)) == ["d"]
        assert names(await find().where("age").ne(30)) == ["b", "d", "e"]
        assert names(await find().where("age").gt(20).lte(30)) == ["a", "c"]
        assert names(await find().where("email").exists()) == ["e"]
        assert names(await find().where("name").regex("^[A-B]$", "i")) == ["a", "b"]
        assert names(await find().where("tags").equals(["x", "y"])) == ["c"]

    @pytest.mark.asyncio
    async def test_where_mapping_and_logical(self, user_model, users):
        """Mappings merge into conditions; logical helpers append clauses."""
        assert names(await user_model.find().where({"age": 30})) == ["a", "c"]
        assert names(await user_model.find().or_([{"name": "a"}, {"name": "d"}])) == ["a", "d"]
        assert names(await user_model.find({"age": 30}).and_([{"name": "c"}])) == ["c"]
        assert names(await user_model.find().nor([{"age": 30}, {"age": 20}])) == ["d"]
        assert names(await user_model.find().find({"name": "b"})) == ["b"]

    @pytest.mark.asyncio
    async def test_conditions_are_copied(self, user_model, users):
        """Mutating the caller's filter after find does not change the query."""
        conditions = {"age": 30}
        query = user_model.find(conditions)
        conditions["age"] = 10
        assert names(await query) == ["a", "c"]

    @pytest.mark.asyncio
    async def test_path_operators_chain_on_query(self, user_model, users):
        """Operators called on the Query reuse the last where path."""
        query = user_model.find().where("age").gt(10).lte(20)
        assert query.conditions == {"age": {"$gt": 10, "$lte": 20}}
        assert names(await query.where("name").ne("b")) == ["e"]
        with pytest.raises(ValueError):
            user_model.find().gt(1)

    @pytest.mark.asyncio
    async def test_count_documents(self, user_model, users):
        """count_documents ignores pagination."""
        assert await user_model.find({"age": 20}).limit(1).count_documents() == 2


class TestShaping:
    """Test sort, skip, limit, projection and lean."""

    @pytest.mark.asyncio
    async def test_sort_is_stable(self, user_model, users):
        """Equal keys keep stored order."""
        assert names(await user_model.find().sort("-age")) == ["a", "c", "b", "e", "d"]
        assert names(await user_model.find().sort({"age": 1, "name": -1})) == [
            "d",
            "e",
            "b",
            "c",
            "a",
        ]

    @pytest.mark.asyncio
    async def test_sort_calls_merge(self, user_model, users):
        """Successive sort calls add keys."""
        query = user_model.find().sort("age").sort("-name")
        assert names(await query) == ["d", "e", "b", "c", "a"]

    @pytest.mark.asyncio
    async def test_skip_and_limit(self, user_model, users):
        """Pagination applies after sorting; out of range gives empty results."""
        assert names(await user_model.find().sort("age").skip(1).limit(2)) == ["b", "e"]
        assert names(await user_model.find().skip(10)) == []
        assert len(await user_model.find().limit(0)) == 5
        assert names(await user_model.find().skip(-3).limit(-2)) == ["a", "b"]

    @pytest.mark.asyncio
    async def test_set_options(self, user_model, users):
        """set_options applies sort, skip, limit and lean."""
        results = await user_model.find().set_options(
            {"sort": "-name", "skip": 1, "limit": 2, "lean": True}
        )
        assert [r["name"] for r in results] == ["d", "c"]
        assert all(isinstance(r, dict) for r in results)

    @pytest.mark.asyncio
    async def test_select(self, user_model, users):
        """Inclusion keeps _id; exclusion drops only the listed fields."""
        doc = (await user_model.find({"name": "a"}).select("name"))[0]
        assert set(doc.to_object()) == {"_id", "name"}
        doc = (await user_model.find({"name": "a"}).select("-age -tags"))[0]
        assert "age" not in doc.to_object()
        assert "name" in doc.to_object()

    @pytest.mark.asyncio
    async def test_projection(self, user_model, users):
        """projection() replaces the projection and reports it."""
        query = user_model.find().select("name").projection({"age": 1})
        assert query.projection() == {"age": 1}
        assert set((await query)[0].to_object()) == {"_id", "age"}

    @pytest.mark.asyncio
    async def test_hidden_fields(self, connection):
        """Fields declared with select=False are left out unless selected."""
        Account = connection.model(
            "Account", Schema({"name": str, "password": {"type": str, "select": False}})
        )
        await Account.create({"name": "a", "password": "secret"})
        doc = (await Account.find())[0]
        assert "password" not in doc
        doc = (await Account.find().select("name password"))[0]
        assert doc["password"] == "secret"

    @pytest.mark.asyncio
    async def test_lean(self, user_model, users):
        """lean returns plain dicts; default results are Documents."""
        docs = await user_model.find({"name": "a"})
        assert isinstance(docs[0], Document)
        assert docs[0].is_new is False
        lean = await user_model.find({"name": "a"}).lean()
        assert type(lean[0]) is dict
        assert lean[0]["name"] == "a"

    @pytest.mark.asyncio
    async def test_or_fail(self, user_model, users):
        """or_fail raises when nothing matches."""
        with pytest.raises(DocumentNotFoundError):
            await user_model.find({"name": "zzz"}).or_fail()
        with pytest.raises(LookupError, match="custom"):
            await user_model.find({"name": "zzz"}).or_fail(LookupError("custom"))
        assert names(await user_model.find({"name": "a"}).or_fail()) == ["a"]

    @pytest.mark.asyncio
    async def test_session_is_unsupported(self, user_model):
        """Sessions fail fast on queries."""
        with pytest.raises(UnsupportedOperationError):
            user_model.find().session()


class TestPopulate:
    """Test reference and virtual population."""

    @pytest.mark.asyncio
    async def test_populate_single_ref(self, user_model, post_model):
        """A single reference is replaced by the referenced Document."""
        ada = await user_model.create({"name": "ada", "age": 36})
        post = await post_model.create({"title": "t", "author": ada.id})

        [loaded] = await post_model.find({"_id": post.id}).populate("author")
        assert isinstance(loaded["author"], Document)
        assert loaded["author"]["name"] == "ada"
        assert loaded.to_object()["author"]["age"] == 36
        assert loaded._doc["author"] == ada.id

    @pytest.mark.asyncio
    async def test_populate_with_select(self, user_model, post_model):
        """select narrows the populated documents."""
        ada = await user_model.create({"name": "ada", "age": 36})
        await post_model.create({"title": "t", "author": ada.id})
        [loaded] = await post_model.find().populate("author", "name")
        assert set(loaded["author"].to_object()) == {"_id", "name"}

    @pytest.mark.asyncio
    async def test_populate_array_keeps_order_and_skips_missing(self, user_model, post_model):
        """Array references resolve in stored order; missing ids are skipped."""
        ada, grace = await seed_users(user_model, [{"name": "ada"}, {"name": "grace"}])
        await post_model.create({"title": "t", "readers": [grace.id, "missing", ada.id]})
        [loaded] = await post_model.find().populate("readers")
        assert [reader["name"] for reader in loaded["readers"]] == ["grace", "ada"]

    @pytest.mark.asyncio
    async def test_missing_reference_keeps_raw_id(self, user_model, post_model):
        """An unresolved single reference leaves the raw id in place."""
        await post_model.create({"title": "t", "author": "0" * 24})
        [loaded] = await post_model.find().populate("author")
        assert loaded["author"] == "0" * 24
        assert loaded.populated("author") is None

    @pytest.mark.asyncio
    async def test_unregistered_model_is_recovered(self, connection):
        """A ref to an unregistered model is skipped, not raised."""
        schema = Schema({"owner": {"type": Types.ObjectId, "ref": "Ghost"}})
        Note = connection.model("Note", schema)
        await Note.create({"owner": "abc"})
        [loaded] = await Note.find().populate("owner")
        assert loaded["owner"] == "abc"

    @pytest.mark.asyncio
    async def test_populate_lean(self, user_model, post_model):
        """Lean population writes plain dicts into the results."""
        ada = await user_model.create({"name": "ada"})
        await post_model.create({"title": "t", "author": ada.id})
        [loaded] = await post_model.find().lean().populate("author")
        assert loaded["author"]["name"] == "ada"
        assert type(loaded["author"]) is dict

    @pytest.mark.asyncio
    async def test_populate_mapping_with_match(self, user_model, post_model):
        """A mapping request can filter the referenced documents."""
        ada, grace = await seed_users(user_model, [{"name": "ada"}, {"name": "grace"}])
        await post_model.create({"title": "t", "readers": [ada.id, grace.id]})
        [loaded] = await post_model.find().populate(
            {"path": "readers", "match": {"name": "grace"}, "select": "name"}
        )
        assert [reader["name"] for reader in loaded["readers"]] == ["grace"]

    @pytest.mark.asyncio
    async def test_virtual_population(self, connection):
        """Virtuals with ref, local_field and foreign_field populate many, one or a count."""
        author_schema = Schema({"name": str})
        author_schema.virtual(
            "books", {"ref": "Book", "local_field": "_id", "foreign_field": "author"}
        )
        author_schema.virtual(
            "first_book",
            {"ref": "Book", "local_field": "_id", "foreign_field": "author", "just_one": True},
        )
        author_schema.virtual(
            "book_count",
            {"ref": "Book", "local_field": "_id", "foreign_field": "author", "count": True},
        )
        Author = connection.model("Author", author_schema)
        Book = connection.model("Book", Schema({"title": str, "author": Types.ObjectId}))

        ada = await Author.create({"name": "ada"})
        lonely = await Author.create({"name": "lonely"})
        await Book.create([{"title": "one", "author": ada.id}, {"title": "two", "author": ada.id}])

        loaded = await Author.find().sort("name").populate("books first_book book_count")
        by_name = {doc["name"]: doc for doc in loaded}
        assert sorted(book["title"] for book in by_name["ada"]["books"]) == ["one", "two"]
        assert by_name["ada"]["first_book"]["title"] in {"one", "two"}
        assert by_name["ada"]["book_count"] == 2
        assert by_name["lonely"]["books"] == []
        assert by_name["lonely"]["first_book"] is None
        assert by_name["lonely"]["book_count"] == 0
        assert lonely.id in {doc.id for doc in loaded}

    @pytest.mark.asyncio
    async def test_nested_populate(self, connection, user_model, post_model):
        """A request can populate the populated documents in turn."""
        Comment = connection.model(
            "Comment", Schema({"text": str, "post": {"type": Types.ObjectId, "ref": "Post"}})
        )
        ada = await user_model.create({"name": "ada"})
        post = await post_model.create({"title": "t", "author": ada.id})
        await Comment.create({"text": "nice", "post": post.id})

        [loaded] = await Comment.find().populate({"path": "post", "populate": "author"})
        assert loaded["post"]["title"] == "t"
        assert loaded["post"]["author"]["name"] == "ada"

"""Tests for update document application."""

import pytest

from localgoose.core.exceptions import ValidationError
from localgoose.core.model.updates import apply_update, is_operator_update


@pytest.fixture
def record():
    return {"_id": "1", "name": "ada", "age": 36, "tags": ["math"], "createdAt": "c"}


class TestPlainUpdate:
    """Test plain (operator-free) updates."""

    def test_shallow_merge(self, record):
        """A plain mapping is merged key by key."""
        updated = apply_update(record, {"age": 37, "city": "London"})
        assert updated["age"] == 37
        assert updated["city"] == "London"
        assert updated["name"] == "ada"

    def test_immutable_paths_are_kept(self, record):
        """_id and createdAt are never overwritten."""
        updated = apply_update(record, {"_id": "2", "createdAt": "x", "name": "grace"})
        assert updated["_id"] == "1"
        assert updated["createdAt"] == "c"
        assert updated["name"] == "grace"

    def test_record_is_not_mutated(self, record):
        """apply_update returns a new record."""
        apply_update(record, {"age": 1})
        apply_update(record, {"$push": {"tags": "x"}})
        assert record["age"] == 36
        assert record["tags"] == ["math"]


class TestOperatorUpdate:
    """Test $set, $unset, $inc and $push."""

    def test_is_operator_update(self):
        """Any $-key makes an operator update."""
        assert is_operator_update({"$set": {}})
        assert not is_operator_update({"set": 1})

    def test_set_and_unset(self, record):
        """$set writes dot paths; $unset removes them."""
        updated = apply_update(record, {"$set": {"address.city": "Rome"}, "$unset": {"age": ""}})
        assert updated["address"] == {"city": "Rome"}
        assert "age" not in updated

    def test_inc(self, record):
        """$inc adds to numbers and starts missing fields from zero."""
        updated = apply_update(record, {"$inc": {"age": 2, "visits": 1}})
        assert updated["age"] == 38
        assert updated["visits"] == 1

    def test_inc_rejects_non_numbers(self, record):
        """$inc on a string field or with a non-numeric amount fails."""
        with pytest.raises(ValidationError):
            apply_update(record, {"$inc": {"name": 1}})
        with pytest.raises(ValidationError):
            apply_update(record, {"$inc": {"age": "1"}})

    def test_push(self, record):
        """$push appends one value, or several with $each."""
        assert apply_update(record, {"$push": {"tags": "art"}})["tags"] == ["math", "art"]
        updated = apply_update(record, {"$push": {"tags": {"$each": ["a", "b"]}, "new": 1}})
        assert updated["tags"] == ["math", "a", "b"]
        assert updated["new"] == [1]
        with pytest.raises(ValidationError):
            apply_update(record, {"$push": {"name": "x"}})

    def test_unknown_operator_is_ignored(self, record):
        """Unsupported operators leave the record unchanged."""
        assert apply_update(record, {"$rename": {"name": "n"}}) == record

    def test_operand_must_be_mapping(self, record):
        """An operator needs a mapping of paths."""
        with pytest.raises(ValidationError):
            apply_update(record, {"$set": ["name"]})

    def test_id_is_immutable(self, record):
        """Operators skip _id."""
        assert apply_update(record, {"$set": {"_id": "9"}})["_id"] == "1"

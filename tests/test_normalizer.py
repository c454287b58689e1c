"""
Tests for outbound normalization (entity -> plain dict).

Covers:
- Hidden columns and the unsafe flag
- Alias mode
- Absent / MISSING values are skipped, None is kept
- Recursion through ARRAY, MAP and OBJECT columns (no shared references)
- Declared-format vs runtime-shape violations
- Unrolled (dotted) output
- Virtual columns with and without joins
- Idempotence on normalized input
"""

from types import SimpleNamespace

import pytest

from entities.base import MISSING, Entity, Field
from entities.normalizer import Normalizer, SchemaViolationError
from entities.registry import SchemaRegistry
from entities.schema import Schema


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def reg():
    return SchemaRegistry()


@pytest.fixture
def normalizer(reg):
    return Normalizer(reg)


@pytest.fixture
def models(reg):
    schema = Schema(reg)

    @schema.entity("users")
    class User(Entity):
        id = Field(schema.id(), schema.primary())
        name = Field(schema.string(), schema.required())
        email = Field(schema.string(), schema.alias("mail"), schema.hidden())

    class Tag(Entity):
        label = Field(schema.string())
        secret = Field(schema.string(), schema.hidden())

    class Address(Entity):
        city = Field(schema.string(), schema.alias("town"))
        zip = Field(schema.string())

    @schema.entity("posts")
    class Post(Entity):
        id = Field(schema.id(), schema.primary())
        tags = Field(schema.array(Tag))
        labels = Field(schema.map(Tag))
        address = Field(schema.null(), schema.object(Address))
        keywords = Field(schema.array(str))
        author = Field(schema.id())

    @schema.entity("authors")
    class Author(Entity):
        id = Field(schema.id(), schema.primary())
        name = Field(schema.string())
        posts = Field(schema.join("author", Post))

    return SimpleNamespace(User=User, Tag=Tag, Address=Address, Post=Post,
                           Author=Author)


# ===========================================================================
# A. Scalars, hidden, alias
# ===========================================================================

class TestScalars:

    def test_hidden_dropped_by_default(self, normalizer, models):
        data = {"id": 1, "name": "A", "email": "a@x.com"}
        assert normalizer.create(models.User, data) == {"id": 1, "name": "A"}

    def test_unsafe_with_alias(self, normalizer, models):
        data = {"id": 1, "name": "A", "email": "a@x.com"}
        result = normalizer.create(models.User, data, alias=True, unsafe=True)
        assert result == {"id": 1, "name": "A", "mail": "a@x.com"}

    def test_unsafe_without_alias(self, normalizer, models):
        data = {"id": 1, "name": "A", "email": "a@x.com"}
        result = normalizer.create(models.User, data, unsafe=True)
        assert result == {"id": 1, "name": "A", "email": "a@x.com"}

    def test_entity_instance_source(self, normalizer, models):
        user = models.User(id=1, name="A", email="a@x.com")
        assert normalizer.create(models.User, user) == {"id": 1, "name": "A"}

    def test_absent_values_skipped(self, normalizer, models):
        assert normalizer.create(models.User, {"name": "A"}) == {"name": "A"}
        assert normalizer.create(models.User, models.User()) == {}

    def test_missing_values_skipped(self, normalizer, models):
        data = {"id": 1, "name": MISSING}
        assert normalizer.create(models.User, data) == {"id": 1}

    def test_none_is_a_value(self, normalizer, models):
        assert normalizer.create(models.User, {"id": None}) == {"id": None}

    def test_undeclared_keys_dropped(self, normalizer, models):
        data = {"id": 1, "password": "x"}
        assert normalizer.create(models.User, data) == {"id": 1}

    def test_column_order_follows_declarations(self, normalizer, models):
        data = {"email": "e", "name": "A", "id": 1}
        result = normalizer.create(models.User, data, unsafe=True)
        assert list(result) == ["id", "name", "email"]

    def test_unregistered_model_yields_empty(self, normalizer):
        class Loose:
            pass

        assert normalizer.create(Loose, {"a": 1}) == {}

    @pytest.mark.parametrize("data", [
        {"id": 7, "name": "B"},
        {"id": 8, "name": "C", "email": "c@x.com"},
        {"name": "D", "email": "d@x.com"},
    ])
    def test_hidden_toggle(self, normalizer, models, data):
        safe = normalizer.create(models.User, data)
        unsafe = normalizer.create(models.User, data, unsafe=True)
        assert "email" not in safe
        if "email" in data:
            assert unsafe["email"] == data["email"]


# ===========================================================================
# B. Nested columns
# ===========================================================================

class TestNested:

    def test_array_of_entities(self, normalizer, models):
        tags = [{"label": "x"}, {"label": "y"}]
        result = normalizer.create(models.Post, {"id": 5, "tags": tags})
        assert result == {"id": 5, "tags": [{"label": "x"}, {"label": "y"}]}
        assert result["tags"] is not tags
        assert result["tags"][0] is not tags[0]

    def test_array_of_instances(self, normalizer, models):
        post = models.Post(id=5, tags=[models.Tag(label="x", secret="s")])
        result = normalizer.create(models.Post, post)
        assert result == {"id": 5, "tags": [{"label": "x"}]}

    def test_nested_unsafe(self, normalizer, models):
        post = {"tags": [{"label": "x", "secret": "s"}]}
        result = normalizer.create(models.Post, post, unsafe=True)
        assert result["tags"] == [{"label": "x", "secret": "s"}]

    def test_map_of_entities(self, normalizer, models):
        labels = {"first": {"label": "a"}, "second": models.Tag(label="b")}
        result = normalizer.create(models.Post, {"labels": labels})
        assert result == {"labels": {"first": {"label": "a"},
                                     "second": {"label": "b"}}}

    def test_object(self, normalizer, models):
        data = {"address": {"city": "Rome", "zip": "00100"}}
        assert normalizer.create(models.Post, data, alias=True) == {
            "address": {"town": "Rome", "zip": "00100"}
        }

    def test_nullable_object(self, normalizer, models):
        assert normalizer.create(models.Post, {"address": None}) == {"address": None}

    def test_array_of_plain_values_copied(self, normalizer, models):
        keywords = ["a", "b"]
        result = normalizer.create(models.Post, {"keywords": keywords})
        assert result == {"keywords": ["a", "b"]}
        assert result["keywords"] is not keywords


# ===========================================================================
# C. Shape violations
# ===========================================================================

class TestViolations:

    def test_scalar_for_array(self, normalizer, models):
        with pytest.raises(SchemaViolationError, match="tags@posts"):
            normalizer.create(models.Post, {"tags": "x"})

    def test_array_for_object(self, normalizer, models):
        with pytest.raises(SchemaViolationError, match="doesn't support array types"):
            normalizer.create(models.Post, {"address": [{"city": "Rome"}]})

    def test_object_for_array(self, normalizer, models):
        with pytest.raises(SchemaViolationError, match="doesn't support object types"):
            normalizer.create(models.Post, {"tags": {"label": "x"}})

    def test_none_without_null_format(self, normalizer, models):
        with pytest.raises(SchemaViolationError) as exc:
            normalizer.create(models.Post, {"tags": None})
        assert exc.value.column == "tags"
        assert exc.value.storage == "posts"

    def test_nested_violation_names_nested_storage(self, normalizer, reg, models):
        schema = Schema(reg)

        class Outer(Entity):
            post = Field(schema.object(models.Post))

        with pytest.raises(SchemaViolationError, match="tags@posts"):
            normalizer.create(Outer, {"post": {"tags": 3}})


# ===========================================================================
# D. Unroll
# ===========================================================================

class TestUnroll:

    def test_object_flattened(self, normalizer, models):
        data = {"id": 1, "address": {"city": "Rome", "zip": "00100"}}
        assert normalizer.create(models.Post, data, unroll=True) == {
            "id": 1, "address.city": "Rome", "address.zip": "00100",
        }

    def test_object_flattened_with_alias(self, normalizer, models):
        data = {"address": {"city": "Rome"}}
        assert normalizer.create(models.Post, data, alias=True, unroll=True) == {
            "address.town": "Rome",
        }

    def test_arrays_not_flattened(self, normalizer, models):
        data = {"tags": [{"label": "x"}]}
        assert normalizer.create(models.Post, data, unroll=True) == {
            "tags": [{"label": "x"}],
        }


# ===========================================================================
# E. Virtual columns
# ===========================================================================

class TestJoins:

    def test_virtual_dropped_by_default(self, normalizer, models):
        data = {"id": 1, "posts": [{"id": 5, "author": 1}]}
        assert normalizer.create(models.Author, data) == {"id": 1}

    def test_virtual_kept_with_joins(self, normalizer, models):
        data = {"id": 1, "posts": [{"id": 5, "author": 1, "junk": True}]}
        result = normalizer.create(models.Author, data, joins=True)
        assert result == {"id": 1, "posts": [{"id": 5, "author": 1}]}

    def test_single_virtual_value(self, normalizer, models):
        data = {"id": 1, "posts": {"id": 5}}
        result = normalizer.create(models.Author, data, joins=True)
        assert result == {"id": 1, "posts": {"id": 5}}


# ===========================================================================
# F. Idempotence
# ===========================================================================

class TestIdempotence:

    @pytest.mark.parametrize("options", [
        {},
        {"unsafe": True},
        {"unroll": False, "unsafe": False},
    ])
    def test_normalize_twice(self, normalizer, models, options):
        post = models.Post(
            id=5,
            tags=[models.Tag(label="x", secret="s")],
            labels={"k": models.Tag(label="y")},
            address=models.Address(city="Rome"),
            keywords=["a"],
        )
        once = normalizer.create(models.Post, post, **options)
        twice = normalizer.create(models.Post, once, **options)
        assert twice == once

    def test_user_twice(self, normalizer, models):
        data = {"id": 1, "name": "A", "email": "a@x.com"}
        once = normalizer.create(models.User, data)
        assert normalizer.create(models.User, once) == once


# ===========================================================================
# G. None items and access flags
# ===========================================================================

class TestNoneItems:

    def test_array_keeps_none_items(self, normalizer, models):
        data = {"id": 1, "tags": [None, {"label": "x"}]}
        assert normalizer.create(models.Post, data) == {
            "id": 1, "tags": [None, {"label": "x"}],
        }

    def test_map_keeps_none_items(self, normalizer, models):
        data = {"labels": {"a": None, "b": models.Tag(label="y")}}
        assert normalizer.create(models.Post, data) == {
            "labels": {"a": None, "b": {"label": "y"}},
        }

    def test_joined_list_keeps_none_items(self, normalizer, models):
        data = {"id": 1, "posts": [None]}
        assert normalizer.create(models.Author, data, joins=True) == {
            "id": 1, "posts": [None],
        }


class TestAccessFlags:

    @pytest.fixture
    def Account(self, reg):
        schema = Schema(reg)

        class Account(Entity):
            login = Field(schema.string())
            password = Field(schema.string(), schema.write_only())
            created = Field(schema.string(), schema.read_only())

        return Account

    def test_write_only_dropped(self, normalizer, Account):
        account = Account(login="a", password="secret", created="today")
        assert normalizer.create(Account, account) == {
            "login": "a", "created": "today",
        }

    def test_write_only_with_unsafe(self, normalizer, Account):
        account = Account(login="a", password="secret")
        assert normalizer.create(Account, account, unsafe=True) == {
            "login": "a", "password": "secret",
        }

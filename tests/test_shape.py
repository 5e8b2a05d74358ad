"""Tests for typedrow.fields and typedrow.shape."""

import dataclasses
from datetime import datetime
from decimal import Decimal
from typing import Optional

import pytest

from tests._support.models import (
    Account,
    BadColumnName,
    Customer,
    Document,
    DuplicateColumn,
    LonelyComposite,
    Measurements,
    NothingPersisted,
    NotADataclass,
    TwoPrimaries,
    User,
    UserPost,
    UserWithPostCount,
)
from typedrow.errors import ShapeError
from typedrow.fields import METADATA_KEY, FieldPolicy, Role, column, parse_policy, parse_role
from typedrow.shape import analyse_type, clear_shape_cache, compile_shape, describe
from typedrow.types import IntKind, UInt16


@dataclasses.dataclass
class Node:
    value: int = 0
    child: Optional["Node"] = None


class TestParsing:
    """Test role and policy parsing."""

    def test_parse_role(self):
        assert parse_role(None) == (Role.ORDINARY, None)
        assert parse_role("PRIMARY") == (Role.PRIMARY, None)
        assert parse_role("unique") == (Role.UNIQUE, None)
        assert parse_role("composite:user_post") == (Role.COMPOSITE, "user_post")
        assert parse_role("composite") == (Role.COMPOSITE, "")

    def test_parse_policy(self):
        policy = parse_policy({"insertable": False, "sensitive": True})
        assert policy == FieldPolicy(omit_on_insert=True, sensitive=True)
        assert not policy.insertable
        assert policy.updatable

    def test_omit_disables_both_writes(self):
        policy = parse_policy({"omit": True})
        assert not policy.insertable
        assert not policy.updatable

    def test_column_helper_stores_metadata(self):
        f = column("email_address", role="unique", sensitive=True, default="")
        assert f.default == ""
        assert f.metadata[METADATA_KEY] == {"column": "email_address", "role": "unique", "sensitive": True}

    def test_column_helper_defaults_to_none(self):
        assert column().default is None

    def test_column_helper_default_factory(self):
        f = column(default_factory=list)
        assert f.default_factory is list
        assert f.default is dataclasses.MISSING


class TestAnalyseType:
    """Test type hint reduction."""

    def test_plain_int_defaults_to_int64(self):
        assert analyse_type(int).int_kind is IntKind.INT64

    def test_annotated_kind(self):
        info = analyse_type(Optional[UInt16])
        assert info.base is int
        assert info.optional
        assert info.int_kind is IntKind.UINT16

    def test_pep604_optional(self):
        info = analyse_type(str | None)
        assert info.base is str
        assert info.optional

    def test_list_item_type(self):
        info = analyse_type(list[int])
        assert info.base is list
        assert info.item_type is int

    def test_bool_has_no_int_kind(self):
        assert analyse_type(bool).int_kind is None


class TestCompileShape:
    """Test shape compilation."""

    def test_user_shape(self):
        shape = compile_shape(User)
        assert shape.columns == ["id", "name", "email", "password", "created_at", "updated_at"]
        assert shape.primary.name == "id"
        assert shape.table_name == "users"
        assert shape.sensitive_columns == frozenset({"password"})
        assert [f.name for f in shape.unique_fields] == ["email"]

    def test_policies_are_compiled(self):
        shape = compile_shape(Document)
        assert not shape.field("checksum").policy.insertable
        assert not shape.field("checksum").policy.updatable
        assert not shape.field("slug").policy.updatable
        assert not shape.field("revision").policy.insertable

    def test_types_are_compiled(self):
        shape = compile_shape(Measurements)
        assert shape.field("u8").int_kind is IntKind.UINT8
        assert shape.field("i64").int_kind is IntKind.INT64
        assert shape.field("amount").value_type is Decimal
        assert shape.field("seen_at").value_type is datetime
        assert shape.field("seen_at").optional
        assert shape.field("tags").item_type is str

    def test_composite_members_sorted_by_name(self):
        shape = compile_shape(UserPost)
        assert shape.primary is None
        assert [f.name for f in shape.composite_groups["user_post"]] == ["post_id", "user_id"]

    def test_embedded_fields_are_flattened(self):
        shape = compile_shape(Customer)
        assert shape.columns == ["id", "name", "created_by", "secret_note", "city", "zip_code"]
        assert shape.field("audit.secret_note").path == ("audit", "secret_note")
        assert shape.field("zip").column == "zip_code"
        assert shape.embedded_at(("address",)).optional
        assert not shape.embedded_at(("audit",)).optional

    def test_private_and_excluded_fields_are_skipped(self):
        shape = compile_shape(Customer)
        assert shape.field("_cache") is None
        assert shape.field("scratch") is None

    def test_colliding_columns_share_redaction(self):
        shape = compile_shape(Account)
        assert shape.columns == ["id", "email", "email"]
        assert shape.sensitive_columns == frozenset({"email"})
        # ambiguous attribute name; dotted path still resolves
        assert shape.field("contact.email").path == ("contact", "email")
        assert shape.fields_for_column("EMAIL") == (shape.field("email"), shape.field("contact.email"))

    def test_joined_columns_need_allow_joined(self):
        with pytest.raises(ShapeError, match="joined column paths"):
            compile_shape(UserWithPostCount)
        shape = compile_shape(UserWithPostCount, allow_joined=True)
        assert shape.has_joined_columns
        assert shape.field("id").column == "id"
        assert shape.field("id").source_column == "users.id"

    def test_instance_is_accepted(self):
        assert compile_shape(User(name="x")).entity_type is User


class TestMalformedShapes:
    """Test declaration errors."""

    def test_not_a_dataclass(self):
        with pytest.raises(ShapeError, match="must be a dataclass"):
            compile_shape(NotADataclass)

    def test_multiple_primaries(self):
        with pytest.raises(ShapeError, match="multiple primary fields"):
            compile_shape(TwoPrimaries)

    def test_lonely_composite(self):
        with pytest.raises(ShapeError) as exc_info:
            compile_shape(LonelyComposite)
        assert "at least 2 required" in str(exc_info.value)

    def test_nothing_persisted(self):
        with pytest.raises(ShapeError, match="no persisted fields"):
            compile_shape(NothingPersisted)

    def test_duplicate_column(self):
        with pytest.raises(ShapeError, match="duplicate column"):
            compile_shape(DuplicateColumn)

    def test_bad_column_name(self):
        with pytest.raises(ShapeError, match="invalid column name"):
            compile_shape(BadColumnName)

    def test_recursive_embedding(self):
        with pytest.raises(ShapeError, match="recursively"):
            compile_shape(Node)


class TestDescribeCache:
    """Test the shape cache."""

    def test_same_shape_is_returned(self):
        assert describe(User) is describe(User())

    def test_clear_shape_cache(self):
        first = describe(User)
        clear_shape_cache()
        assert describe(User) is not first

    def test_cached_joined_shape_still_checked(self):
        describe(UserWithPostCount, allow_joined=True)
        with pytest.raises(ShapeError):
            describe(UserWithPostCount)

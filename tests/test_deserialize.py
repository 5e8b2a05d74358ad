"""Tests for typedrow.deserialize and typedrow.snapshot."""

import gc
from datetime import datetime
from decimal import Decimal

import pytest

from tests._support.models import (
    Address,
    Customer,
    Document,
    Measurements,
    Profile,
    Required,
    SlottedUser,
    User,
    UserWithPostCount,
)
from typedrow import snapshot
from typedrow.deserialize import deserialize, deserialize_new, deserialize_rows
from typedrow.errors import ConversionError, OverflowError, ShapeError, ValidationError
from typedrow.registry import register_model


class TestDeserialize:
    """Test row → entity mapping."""

    def test_case_insensitive_columns(self):
        user = deserialize_new(User, {"ID": 7, "Name": "John", "EMAIL": "j@x.io"})
        assert (user.id, user.name, user.email) == (7, "John", "j@x.io")

    def test_missing_column_leaves_field_untouched(self):
        user = User(id=1, name="John", email="keep@x.io")
        deserialize({"name": "Jane"}, user)
        assert user.email == "keep@x.io"
        assert user.name == "Jane"

    def test_none_into_non_optional_is_ignored(self):
        user = deserialize_new(User, {"id": 1, "updated_at": None})
        assert user.updated_at == ""

    def test_none_into_optional_sets_none(self):
        m = Measurements(nickname="nick")
        deserialize({"nickname": None}, m)
        assert m.nickname is None

    def test_omitted_fields_are_still_read(self):
        doc = deserialize_new(Document, {"id": 1, "checksum": "abc"})
        assert doc.checksum == "abc"

    def test_values_are_converted(self):
        m = deserialize_new(
            Measurements,
            {
                "id": "5",
                "u8": 255,
                "i8": "-128",
                "ratio": "0.25",
                "amount": "1.50",
                "active": 1,
                "seen_at": "2024-01-02 03:04:05",
                "tags": "{a,b}",
                "scores": "[1, 2]",
                "meta": '{"k": 1}',
            },
        )
        assert m.id == 5
        assert m.u8 == 255
        assert m.i8 == -128
        assert m.ratio == 0.25
        assert m.amount == Decimal("1.50")
        assert m.active is True
        assert m.seen_at == datetime(2024, 1, 2, 3, 4, 5)
        assert m.tags == ["a", "b"]
        assert m.scores == [1, 2]
        assert m.meta == {"k": 1}

    def test_overflow_carries_field_context(self):
        with pytest.raises(OverflowError) as exc_info:
            deserialize_new(Measurements, {"u8": 300})
        err = exc_info.value
        assert err.context.model == "Measurements"
        assert err.context.field == "u8"
        assert err.context.operation == "deserialize"

    def test_negative_into_unsigned(self):
        with pytest.raises(OverflowError, match="negative"):
            deserialize_new(Measurements, {"u32": -1})

    def test_conversion_error(self):
        with pytest.raises(ConversionError):
            deserialize_new(Measurements, {"active": "maybe"})

    def test_optional_embedded_is_created_on_demand(self):
        customer = deserialize_new(Customer, {"id": 1, "city": "Oslo", "zip_code": "0150"})
        assert customer.address is not None
        assert customer.address.city == "Oslo"
        assert customer.address.zip == "0150"

    def test_optional_embedded_stays_absent_on_nulls(self):
        customer = deserialize_new(Customer, {"id": 1, "city": None, "created_by": "ops"})
        assert customer.address is None
        assert customer.audit.created_by == "ops"

    def test_joined_model_reads_qualified_or_bare_columns(self):
        row = deserialize_new(UserWithPostCount, {"id": 1, "name": "John", "post_count": 3})
        assert (row.id, row.name, row.post_count) == (1, "John", 3)
        row = deserialize_new(UserWithPostCount, {"users.id": 2, "users.name": "Jane"})
        assert (row.id, row.name) == (2, "Jane")

    def test_class_without_defaults(self):
        with pytest.raises(ValidationError, match="every field needs a default"):
            deserialize_new(Required, {"name": "x"})

    def test_deserialize_rows(self):
        users = deserialize_rows(User, [{"id": 1}, {"id": 2}])
        assert [u.id for u in users] == [1, 2]


class TestSnapshotCapture:
    """Test change-tracking snapshots."""

    def test_no_snapshot_for_plain_models(self):
        user = deserialize_new(User, {"id": 1, "name": "John"})
        assert not snapshot.has_snapshot(user)

    def test_partial_update_model_is_snapshotted_on_load(self):
        register_model(Profile, partial_update=True)
        profile = deserialize_new(Profile, {"id": 1, "name": "John", "age": 30})
        snap = snapshot.get_snapshot(profile)
        assert snap is not None
        assert snap.values["name"] == "John"
        assert "id" not in snap.values

    def test_capture_can_be_disabled(self):
        register_model(Profile, partial_update=True)
        profile = deserialize_new(Profile, {"id": 1}, capture_snapshot=False)
        assert not snapshot.has_snapshot(profile)

    def test_changed_paths(self):
        profile = Profile(id=1, name="John", age=30)
        assert snapshot.changed_paths(profile) is None
        snapshot.capture(profile)
        assert snapshot.changed_paths(profile) == set()
        profile.age = 31
        profile.bio = "hi"
        assert snapshot.changed_paths(profile) == {"age", "bio"}
        assert snapshot.changed_fields(profile) == {"age", "bio"}

    def test_snapshot_is_a_deep_copy(self):
        m = Measurements(tags=["a"])
        snapshot.capture(m)
        m.tags.append("b")
        assert snapshot.changed_paths(m) == {"tags"}

    def test_embedded_parent_set_counts_as_changed(self):
        customer = Customer(id=1)
        snapshot.capture(customer)
        customer.address = Address(city="Oslo")
        assert snapshot.changed_paths(customer) == {"address.city", "address.zip"}
        snapshot.capture(customer)
        customer.address = None
        assert snapshot.changed_paths(customer) == {"address.city", "address.zip"}

    def test_discard(self):
        profile = Profile(id=1)
        snapshot.capture(profile)
        snapshot.discard(profile)
        assert not snapshot.has_snapshot(profile)

    def test_snapshot_dropped_with_entity(self):
        profile = Profile(id=1)
        snapshot.capture(profile)
        assert len(snapshot._snapshots) == 1
        del profile
        gc.collect()
        assert len(snapshot._snapshots) == 0

    def test_slotted_entity_cannot_be_snapshotted(self):
        user = SlottedUser(id=1, name="John")
        with pytest.raises(ValidationError, match="weak references"):
            snapshot.capture(user)
        assert len(snapshot._snapshots) == 0

    def test_slotted_model_cannot_enable_partial_update(self):
        with pytest.raises(ShapeError, match="weak-referenceable"):
            register_model(SlottedUser, partial_update=True)
        register_model(SlottedUser)

"""Tests for typedrow.serialize module."""

import pytest

from tests._support.models import (
    Account,
    Address,
    Audit,
    Contact,
    Customer,
    Document,
    Profile,
    User,
    UserPost,
    UserWithPostCount,
)
from typedrow import snapshot
from typedrow.deserialize import deserialize_new
from typedrow.errors import ValidationError
from typedrow.serialize import (
    composite_key_values,
    primary_key_value,
    serialize_for_insert,
    serialize_for_update,
)


class TestSerializeForInsert:
    """Test INSERT payloads."""

    def test_zero_fields_and_primary_are_skipped(self):
        payload = serialize_for_insert(User(name="John", password="secret"))
        assert payload.columns == ["name", "password"]
        assert payload.values == ["John", "secret"]
        assert payload.redaction_mask == (1,)

    def test_non_insertable_fields_are_skipped(self):
        payload = serialize_for_insert(
            Document(title="T", checksum="abc", slug="t", revision=3)
        )
        assert payload.columns == ["title", "slug"]

    def test_embedded_fields_flatten(self):
        customer = Customer(name="Acme", audit=Audit(created_by="ops", secret_note="psst"))
        payload = serialize_for_insert(customer)
        assert payload.columns == ["name", "created_by", "secret_note"]
        assert payload.redaction_mask == (2,)

    def test_absent_optional_embedded_is_skipped(self):
        payload = serialize_for_insert(Customer(name="Acme", address=None))
        assert "city" not in payload.columns
        payload = serialize_for_insert(Customer(name="Acme", address=Address(city="Oslo")))
        assert payload.columns == ["name", "city"]

    def test_colliding_column_is_redacted_everywhere(self):
        payload = serialize_for_insert(Account(email="a@x.io", contact=Contact(email="b@x.io")))
        assert payload.columns == ["email", "email"]
        assert payload.redaction_mask == (0, 1)

    def test_nothing_to_insert(self):
        with pytest.raises(ValidationError, match="at least one non-zero field"):
            serialize_for_insert(User())

    def test_joined_model_rejected(self):
        with pytest.raises(ValidationError, match="joined model"):
            serialize_for_insert(UserWithPostCount(name="x"))


class TestSerializeForUpdate:
    """Test UPDATE payloads."""

    def test_full_update_skips_zero_values(self):
        payload = serialize_for_update(User(id=1, name="Jane", password="pw"))
        assert payload.columns == ["name", "password"]
        assert payload.values == ["Jane", "pw"]
        assert payload.auto_timestamp_columns == ["updated_at"]
        assert payload.redaction_mask == (1,)

    def test_non_updatable_fields_are_skipped(self):
        payload = serialize_for_update(Document(id=1, title="T", slug="s", revision=2))
        assert payload.columns == ["title", "revision"]

    def test_auto_timestamp_always_present(self):
        payload = serialize_for_update(Profile(id=1))
        assert payload.columns == []
        assert payload.auto_timestamp_columns == ["updated_at"]

    def test_changed_only_writes_differences(self):
        user = User(id=1, name="John", email="j@x.io")
        snapshot.capture(user)
        user.name = "Jane"
        payload = serialize_for_update(user, changed_only=True)
        assert payload.columns == ["name"]
        assert payload.values == ["Jane"]

    def test_changed_only_includes_change_to_zero(self):
        user = User(id=1, name="John", email="j@x.io")
        snapshot.capture(user)
        user.email = ""
        payload = serialize_for_update(user, changed_only=True)
        assert payload.columns == ["email"]
        assert payload.values == [""]

    def test_snapshot_ignored_without_changed_only(self):
        user = User(id=1, name="John", email="j@x.io")
        snapshot.capture(user)
        user.name = "Jane"
        payload = serialize_for_update(user)
        assert payload.columns == ["name", "email"]
        assert payload.values == ["Jane", "j@x.io"]

    def test_changed_only_without_snapshot_falls_back(self):
        payload = serialize_for_update(User(id=1, name="John"), changed_only=True)
        assert payload.columns == ["name"]

    def test_nothing_to_update(self):
        with pytest.raises(ValidationError, match="at least one non-zero field"):
            serialize_for_update(Document(id=1, slug="s"))


class TestKeyValues:
    """Test primary and composite key extraction."""

    def test_primary_key_value(self):
        assert primary_key_value(User(id=9)) == 9

    def test_unset_primary(self):
        with pytest.raises(ValidationError, match="is not set"):
            primary_key_value(User())

    def test_no_primary(self):
        with pytest.raises(ValidationError, match="no primary field"):
            primary_key_value(UserPost(user_id=1, post_id=2))

    def test_composite_values_are_alphabetical(self):
        assert composite_key_values(UserPost(user_id=1, post_id=2), "user_post") == [2, 1]

    def test_composite_member_unset(self):
        with pytest.raises(ValidationError, match="post_id is not set"):
            composite_key_values(UserPost(user_id=1), "user_post")

    def test_unknown_group(self):
        with pytest.raises(ValidationError, match="no composite key"):
            composite_key_values(UserPost(user_id=1, post_id=2), "other")


class TestPayloadRoundTrip:
    """Insert payloads read back through the deserializer."""

    def test_non_zero_fields_survive(self):
        original = Customer(name="Acme", audit=Audit(created_by="ops"), address=Address(city="Oslo"))
        payload = serialize_for_insert(original)
        loaded = deserialize_new(Customer, dict(zip(payload.columns, payload.values)))
        assert loaded.name == "Acme"
        assert loaded.audit.created_by == "ops"
        assert loaded.address == Address(city="Oslo")

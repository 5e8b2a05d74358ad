"""Tests for typedrow.registry module."""

import threading
from concurrent.futures import ThreadPoolExecutor

import pytest

from tests._support.models import (
    FrozenUser,
    NoKey,
    NotADataclass,
    Profile,
    Required,
    Unqueried,
    UnqueriedPost,
    User,
    UserPost,
    UserWithPostCount,
)
from typedrow.errors import ShapeError
from typedrow.registry import (
    ModelOptions,
    RegistrationState,
    get_model_options,
    get_registration,
    normalize_query_key,
    query_for,
    register_model,
    registered_models,
    registration_state,
    validate_model,
)
from typedrow.shape import describe


class TestNormalizeQueryKey:
    """Test query key normalization."""

    def test_string_is_kept(self):
        assert normalize_query_key("email") == "email"

    def test_names_are_sorted(self):
        assert normalize_query_key(["user_id", "post_id"]) == ("post_id", "user_id")

    def test_single_name_iterable_collapses(self):
        assert normalize_query_key(("id",)) == "id"


class TestRegisterModel:
    """Test model registration."""

    def test_register_and_lookup(self):
        register_model(User)
        registration = get_registration(User)
        assert registration is not None
        assert registration.shape.table_name == "users"
        assert registration_state(User) is RegistrationState.REGISTERED
        assert registered_models() == [User]

    def test_decorator_form(self):
        decorated = register_model(partial_update=True)(Profile)
        assert decorated is Profile
        assert get_model_options(Profile) == ModelOptions(partial_update=True)

    def test_unregistered_defaults(self):
        assert get_model_options(User) == ModelOptions()
        assert registration_state(User) is RegistrationState.UNREGISTERED
        assert get_registration(User) is None

    def test_idempotent_with_same_options(self):
        register_model(User, partial_update=True)
        register_model(User, partial_update=True)
        assert registered_models() == [User]

    def test_conflicting_options_rejected(self):
        register_model(User)
        with pytest.raises(ShapeError, match="already registered"):
            register_model(User, partial_update=True)

    def test_queries_are_merged(self):
        register_model(User, queries={"name": "SELECT * FROM users WHERE name = ?"})
        assert query_for(User, "name") == "SELECT * FROM users WHERE name = ?"
        assert query_for(User, "id").endswith("WHERE id = ?")

    def test_composite_query_key(self):
        register_model(UserPost)
        expected = "SELECT user_id, post_id, note FROM user_posts WHERE post_id = ? AND user_id = ?"
        assert query_for(UserPost, ["user_id", "post_id"]) == expected
        assert query_for(UserPost, ("post_id", "user_id")) == expected

    def test_query_for_unregistered_reads_class_attribute(self):
        assert query_for(User, "email").endswith("WHERE email = ?")
        assert query_for(User, "missing") is None

    def test_read_only_allows_joined_columns(self):
        register_model(UserWithPostCount, read_only=True)
        assert get_registration(UserWithPostCount).shape.has_joined_columns


class TestRegistrationFailures:
    """Test validation failures at registration."""

    def test_joined_without_read_only(self):
        with pytest.raises(ShapeError, match="joined column paths"):
            register_model(UserWithPostCount)
        assert registration_state(UserWithPostCount) is RegistrationState.REJECTED

    def test_not_a_dataclass(self):
        with pytest.raises(ShapeError):
            register_model(NotADataclass)

    def test_missing_key(self):
        with pytest.raises(ShapeError, match="primary field or a composite key"):
            register_model(NoKey)

    def test_field_without_default(self):
        with pytest.raises(ShapeError, match="needs a default"):
            register_model(Required)

    def test_frozen_dataclass(self):
        with pytest.raises(ShapeError, match="frozen"):
            register_model(FrozenUser)

    def test_read_only_with_partial_update(self):
        with pytest.raises(ShapeError, match="cannot enable partial_update"):
            register_model(User, read_only=True, partial_update=True)

    def test_unknown_query_field(self):
        with pytest.raises(ShapeError, match="unknown field"):
            register_model(User, queries={"nickname": "SELECT 1"})

    def test_empty_query_template(self):
        with pytest.raises(ShapeError, match="non-empty string"):
            register_model(User, queries={"name": "  "})

    def test_primary_and_unique_need_templates(self):
        with pytest.raises(ShapeError) as exc_info:
            register_model(Unqueried)
        assert exc_info.value.problems == [
            "primary field id has no query template",
            "unique field email has no query template",
        ]
        assert registration_state(Unqueried) is RegistrationState.REJECTED

    def test_templates_from_queries_argument_satisfy_keys(self):
        register_model(
            Unqueried,
            queries={
                "id": "SELECT id, email FROM unqueried WHERE id = ?",
                "email": "SELECT id, email FROM unqueried WHERE email = ?",
            },
        )
        assert registration_state(Unqueried) is RegistrationState.REGISTERED

    def test_composite_group_needs_template(self):
        with pytest.raises(ShapeError) as exc_info:
            register_model(UnqueriedPost)
        assert exc_info.value.problems == ["composite key 'user_post' has no query template"]

    def test_validate_model_reports_missing_templates(self):
        with pytest.raises(ShapeError, match="validation failed"):
            validate_model(Unqueried)

    def test_every_problem_is_reported(self):
        with pytest.raises(ShapeError) as exc_info:
            register_model(FrozenUser, read_only=True, partial_update=True)
        assert len(exc_info.value.problems) == 2

    def test_rejection_is_logged(self, captured_logger):
        with pytest.raises(ShapeError):
            register_model(NoKey)
        level, event, kw = captured_logger.records[-1]
        assert (level, event) == ("error", "model_registration_failed")
        assert kw["model"] == "NoKey"

    def test_validate_model_does_not_register(self):
        validate_model(User)
        assert get_registration(User) is None
        with pytest.raises(ShapeError):
            validate_model(NoKey)


class TestConcurrentRegistration:
    """Test registration and lookup from many threads at once."""

    def test_same_shape_for_every_caller(self):
        workers = 8
        barrier = threading.Barrier(workers)

        def register_and_describe(_):
            barrier.wait()
            register_model(User)
            register_model(UserPost)
            return describe(User), describe(UserPost), get_registration(User).shape

        with ThreadPoolExecutor(max_workers=workers) as pool:
            results = list(pool.map(register_and_describe, range(workers)))

        user_shapes = {id(user) for user, _, _ in results}
        post_shapes = {id(post) for _, post, _ in results}
        registered = {id(shape) for _, _, shape in results}
        assert len(user_shapes) == 1
        assert len(post_shapes) == 1
        assert registered == user_shapes
        assert registered_models() == [User, UserPost]
        assert registration_state(User) is RegistrationState.REGISTERED

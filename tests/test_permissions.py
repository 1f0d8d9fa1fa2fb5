"""Unit tests for PermissionStore and the Permissions set.

Covers:
- ensure_defaults() seeds the built-in codes and is idempotent
- grant() ignores codes already held and unknown codes
- create() validates and reports duplicate codes
- Permission rows vanish with a hard-deleted user
"""

import pytest

from auth.models import Permission, Permissions
from auth.store import DEFAULT_PERMISSIONS
from core.errors import DuplicateValueError, ValidationFailedError


def test_ensure_defaults_is_idempotent(permission_store):
    permission_store.ensure_defaults()
    permission_store.ensure_defaults()
    codes = [p.code for p in permission_store.list_all()]
    assert codes == sorted(p.code for p in DEFAULT_PERMISSIONS)


def test_new_user_holds_nothing(permission_store, make_user):
    user = make_user()
    assert permission_store.get_all_for_user(user.id) == Permissions()


def test_grant_and_read_back(permission_store, make_user):
    user = make_user()
    permission_store.grant(user.id, "livestock:read", "users:read")
    held = permission_store.get_all_for_user(user.id)
    assert held.includes("livestock:read")
    assert held.includes("users:read")
    assert not held.includes("users:write")


def test_regrant_is_a_no_op(permission_store, make_user):
    user = make_user()
    permission_store.grant(user.id, "livestock:read")
    permission_store.grant(user.id, "livestock:read", "livestock:write")
    assert permission_store.get_all_for_user(user.id) == Permissions({"livestock:read", "livestock:write"})


def test_unknown_codes_are_ignored(permission_store, make_user):
    user = make_user()
    permission_store.grant(user.id, "cattle:teleport", "livestock:read")
    assert permission_store.get_all_for_user(user.id) == Permissions({"livestock:read"})


def test_grant_nothing(permission_store, make_user):
    user = make_user()
    permission_store.grant(user.id)
    assert permission_store.get_all_for_user(user.id) == Permissions()


def test_grants_are_per_user(permission_store, make_user):
    a = make_user()
    b = make_user()
    permission_store.grant(a.id, "users:write")
    assert not permission_store.get_all_for_user(b.id).includes("users:write")


def test_create_and_duplicate(permission_store):
    created = permission_store.create(Permission(code="listings:moderate", description="Hide abusive listings"))
    assert created.id is not None
    with pytest.raises(DuplicateValueError) as exc_info:
        permission_store.create(Permission(code="listings:moderate"))
    assert exc_info.value.field == "code"


def test_create_validates(permission_store):
    with pytest.raises(ValidationFailedError) as exc_info:
        permission_store.create(Permission(code=""))
    assert exc_info.value.errors == {"code": "must be provided"}


def test_hard_delete_removes_grants(permission_store, user_store, make_user):
    user = make_user()
    permission_store.grant(user.id, "livestock:read")
    user_store.delete_hard(user.id)
    assert permission_store.get_all_for_user(user.id) == Permissions()

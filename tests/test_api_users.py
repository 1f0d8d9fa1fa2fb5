"""
tests/test_api_users.py -- Integration tests for the user and token endpoints.

Covers:
  - Registration: 201, default permissions, activation mail, duplicate and weak input,
    a failure after insert leaves no account behind
  - Activation: token consumed once, malformed / unknown token -> 422 on token
  - Authentication: bearer token issue, bad credentials, no-store header
  - Bearer resolution: missing, malformed, unknown and revoked tokens
  - Account management: self vs users:read / users:write, edit conflicts,
    password change and reset revoke sessions, soft delete ends access
  - Passwords are used exactly as sent, edge whitespace included
  - Activation token re-send and password-reset mail rules
"""

from __future__ import annotations

import pytest

from auth.store import UserStore
from conftest import DEFAULT_PASSWORD, unique_email
from core.errors import PersistenceError, RecordNotFoundError

NEW_PASSWORD = "N3w-Passw0rd"


def _register(client, mailer, email: str | None = None, **overrides):
    mailer.reset_mock()
    body = {
        "email": email or unique_email("reg"),
        "password": DEFAULT_PASSWORD,
        "first_name": "Ana",
        "last_name": "Lee",
    }
    body.update(overrides)
    return client.post("/api/v1/users", json=body)


def _activation_token(mailer) -> str:
    to_email, user_id, token = mailer.send_activation.call_args.args
    return token


def _login(client, email: str, password: str = DEFAULT_PASSWORD):
    return client.post("/api/v1/tokens/authentication", json={"email": email, "password": password})


def _bearer(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


# ---------------------------------------------------------------------------
# Registration and activation
# ---------------------------------------------------------------------------


class TestRegistration:
    def test_register_returns_201_without_secrets(self, api_client):
        client, _, mailer = api_client
        email = unique_email("reg")
        resp = _register(client, mailer, email, farmer_id="F-9001")
        assert resp.status_code == 201, f"Expected 201, got {resp.status_code}: {resp.text}"
        data = resp.json()
        assert data["email"] == email
        assert data["farmer_id"] == "F-9001"
        assert data["activated"] is False
        assert data["version"] == 1
        assert "password" not in data
        assert "password_hash" not in data

    def test_activation_mail_carries_token(self, api_client):
        client, _, mailer = api_client
        resp = _register(client, mailer)
        to_email, user_id, token = mailer.send_activation.call_args.args
        assert to_email == resp.json()["email"]
        assert user_id == resp.json()["id"]
        assert len(token) == 22

    def test_registered_user_gets_default_permissions(self, api_client):
        client, _, mailer = api_client
        email = unique_email("reg")
        _register(client, mailer, email)
        client.put("/api/v1/users/activated", json={"token": _activation_token(mailer)})
        token = _login(client, email).json()["token"]

        assert client.get("/api/v1/breeds", headers=_bearer(token)).status_code == 200
        resp = client.post("/api/v1/breeds", json={"name": "Never"}, headers=_bearer(token))
        assert resp.status_code == 403
        assert resp.json()["error"]["code"] == "not_permitted"

    def test_duplicate_email(self, api_client):
        client, _, mailer = api_client
        email = unique_email("dup")
        assert _register(client, mailer, email).status_code == 201
        resp = _register(client, mailer, email)
        assert resp.status_code == 409
        error = resp.json()["error"]
        assert error["code"] == "duplicate_value"
        assert "email" in error["fields"]

    def test_weak_password_and_bad_email_reported_together(self, api_client):
        client, _, mailer = api_client
        resp = _register(client, mailer, "not-an-email", password="weak")
        assert resp.status_code == 422
        error = resp.json()["error"]
        assert error["code"] == "validation_failed"
        assert set(error["fields"]) == {"email", "password"}
        mailer.send_activation.assert_not_called()

    def test_invalid_phone_number(self, api_client):
        client, _, mailer = api_client
        resp = _register(client, mailer, phone_number="call me maybe")
        assert resp.status_code == 422
        assert "phone_number" in resp.json()["error"]["fields"]

    def test_failed_grant_removes_new_account(self, api_client, monkeypatch):
        client, engine, mailer = api_client

        def _fail(*args, **kwargs):
            raise PersistenceError("database unavailable")

        monkeypatch.setattr(client.app.state.permission_store, "grant", _fail)
        email = unique_email("rollback")
        resp = _register(client, mailer, email)
        assert resp.status_code == 503, resp.text
        mailer.send_activation.assert_not_called()
        with pytest.raises(RecordNotFoundError):
            UserStore(engine).get_by_email(email)

    def test_missing_field_is_shape_error(self, api_client):
        client, _, _ = api_client
        resp = client.post("/api/v1/users", json={"email": unique_email()})
        assert resp.status_code == 422
        assert resp.json()["error"]["code"] == "validation_error"


class TestActivation:
    def test_activate_once(self, api_client):
        client, _, mailer = api_client
        _register(client, mailer)
        token = _activation_token(mailer)

        resp = client.put("/api/v1/users/activated", json={"token": token})
        assert resp.status_code == 200, resp.text
        assert resp.json()["activated"] is True
        assert resp.json()["version"] == 2

        again = client.put("/api/v1/users/activated", json={"token": token})
        assert again.status_code == 422
        assert again.json()["error"]["fields"] == {"token": "invalid or expired token"}

    def test_malformed_token(self, api_client):
        client, _, _ = api_client
        resp = client.put("/api/v1/users/activated", json={"token": "short"})
        assert resp.status_code == 422
        assert resp.json()["error"]["fields"]["token"] == "must be 22 characters long"

    def test_authentication_token_cannot_activate(self, api_client, make_account):
        client, _, _ = api_client
        account = make_account(activated=False)
        resp = client.put("/api/v1/users/activated", json={"token": account.token})
        assert resp.status_code == 422

    def test_resend_activation_token(self, api_client):
        client, _, mailer = api_client
        email = unique_email("resend")
        _register(client, mailer, email)
        mailer.reset_mock()

        resp = client.post("/api/v1/tokens/activation", json={"email": email})
        assert resp.status_code == 202
        assert client.put("/api/v1/users/activated", json={"token": _activation_token(mailer)}).status_code == 200

        resp = client.post("/api/v1/tokens/activation", json={"email": email})
        assert resp.status_code == 422
        assert resp.json()["error"]["fields"] == {"email": "user has already been activated"}

    def test_resend_for_unknown_email(self, api_client):
        client, _, _ = api_client
        resp = client.post("/api/v1/tokens/activation", json={"email": unique_email("ghost")})
        assert resp.status_code == 422
        assert resp.json()["error"]["fields"] == {"email": "no matching email address found"}


# ---------------------------------------------------------------------------
# Authentication
# ---------------------------------------------------------------------------


class TestAuthentication:
    def test_login_issues_bearer_token(self, api_client, make_account):
        client, _, _ = api_client
        account = make_account()
        resp = _login(client, account.user.email)
        assert resp.status_code == 201, resp.text
        assert resp.headers["cache-control"] == "no-store"
        token = resp.json()["token"]
        assert len(token) == 22
        assert resp.json()["expiry"]

        me = client.get("/api/v1/users/me", headers=_bearer(token))
        assert me.status_code == 200
        assert me.json()["id"] == account.user.id

    def test_wrong_password(self, api_client, make_account):
        client, _, _ = api_client
        account = make_account()
        resp = _login(client, account.user.email, "Wr0ng-password")
        assert resp.status_code == 401
        assert resp.json()["error"]["code"] == "invalid_credentials"

    def test_unknown_email_looks_the_same(self, api_client):
        client, _, _ = api_client
        resp = _login(client, unique_email("ghost"))
        assert resp.status_code == 401
        assert resp.json()["error"]["code"] == "invalid_credentials"

    def test_malformed_email(self, api_client):
        client, _, _ = api_client
        resp = _login(client, "nope")
        assert resp.status_code == 422
        assert "email" in resp.json()["error"]["fields"]

    def test_unactivated_user_may_log_in(self, api_client, make_account):
        client, _, _ = api_client
        account = make_account(activated=False)
        assert _login(client, account.user.email).status_code == 201


class TestBearerResolution:
    def test_anonymous_request_needs_authentication(self, api_client):
        client, _, _ = api_client
        resp = client.get("/api/v1/users/me")
        assert resp.status_code == 401
        assert resp.json()["error"]["code"] == "authentication_required"
        assert resp.headers["www-authenticate"] == "Bearer"

    def test_unknown_token(self, api_client):
        client, _, _ = api_client
        resp = client.get("/api/v1/users/me", headers=_bearer("A" * 22))
        assert resp.status_code == 401
        assert resp.json()["error"]["code"] == "invalid_authentication_token"
        assert resp.headers["www-authenticate"] == "Bearer"

    def test_malformed_token(self, api_client):
        client, _, _ = api_client
        resp = client.get("/api/v1/users/me", headers=_bearer("short"))
        assert resp.status_code == 401
        assert resp.json()["error"]["code"] == "invalid_authentication_token"

    def test_wrong_scheme(self, api_client, make_account):
        client, _, _ = api_client
        account = make_account()
        resp = client.get("/api/v1/users/me", headers={"Authorization": f"Basic {account.token}"})
        assert resp.status_code == 401

    def test_inactive_account_blocked_from_protected_resources(self, api_client, make_account):
        client, _, _ = api_client
        account = make_account(activated=False)
        resp = client.get("/api/v1/breeds", headers=account.headers)
        assert resp.status_code == 403
        assert resp.json()["error"]["code"] == "inactive_account"


# ---------------------------------------------------------------------------
# Account management
# ---------------------------------------------------------------------------


class TestUserAccess:
    def test_list_requires_users_read(self, api_client, make_account):
        client, _, _ = api_client
        account = make_account()
        resp = client.get("/api/v1/users", headers=account.headers)
        assert resp.status_code == 403
        assert resp.json()["error"]["code"] == "not_permitted"

    def test_list_with_filter_and_metadata(self, api_client, make_account):
        client, _, _ = api_client
        admin = make_account(grants=("users:read",))
        target = make_account(email=unique_email("findme"))
        resp = client.get("/api/v1/users", params={"email": target.user.email}, headers=admin.headers)
        assert resp.status_code == 200, resp.text
        data = resp.json()
        assert [u["id"] for u in data["users"]] == [target.user.id]
        assert data["metadata"] == {"page": 1, "page_size": 20, "total_pages": 1, "total_records": 1}

    def test_list_rejects_bad_sort(self, api_client, make_account):
        client, _, _ = api_client
        admin = make_account(grants=("users:read",))
        resp = client.get("/api/v1/users", params={"sort": "password_hash"}, headers=admin.headers)
        assert resp.status_code == 422
        assert resp.json()["error"]["fields"] == {"sort": "invalid sort value"}

    def test_read_self_without_permission(self, api_client, make_account):
        client, _, _ = api_client
        account = make_account(grants=())
        resp = client.get(f"/api/v1/users/{account.user.id}", headers=account.headers)
        assert resp.status_code == 200

    def test_read_other_needs_permission(self, api_client, make_account):
        client, _, _ = api_client
        account = make_account()
        other = make_account()
        resp = client.get(f"/api/v1/users/{other.user.id}", headers=account.headers)
        assert resp.status_code == 403

        admin = make_account(grants=("users:read",))
        assert client.get(f"/api/v1/users/{other.user.id}", headers=admin.headers).status_code == 200

    def test_missing_user(self, api_client, make_account):
        client, _, _ = api_client
        admin = make_account(grants=("users:read",))
        resp = client.get("/api/v1/users/999999", headers=admin.headers)
        assert resp.status_code == 404
        assert resp.json()["error"]["code"] == "not_found"


class TestUserUpdate:
    def test_patch_self(self, api_client, make_account):
        client, _, _ = api_client
        account = make_account()
        resp = client.patch(
            f"/api/v1/users/{account.user.id}",
            json={"first_name": "Thandi", "phone_number": "0825550000", "version": 1},
            headers=account.headers,
        )
        assert resp.status_code == 200, resp.text
        data = resp.json()
        assert data["first_name"] == "Thandi"
        assert data["phone_number"] == "0825550000"
        assert data["version"] == 2

    def test_stale_version_conflicts(self, api_client, make_account):
        client, _, _ = api_client
        account = make_account()
        url = f"/api/v1/users/{account.user.id}"
        assert client.patch(url, json={"first_name": "One", "version": 1}, headers=account.headers).status_code == 200
        resp = client.patch(url, json={"first_name": "Two", "version": 1}, headers=account.headers)
        assert resp.status_code == 409
        assert resp.json()["error"]["code"] == "edit_conflict"

    def test_patch_validates(self, api_client, make_account):
        client, _, _ = api_client
        account = make_account()
        resp = client.patch(f"/api/v1/users/{account.user.id}", json={"last_name": ""}, headers=account.headers)
        assert resp.status_code == 422
        assert "last_name" in resp.json()["error"]["fields"]

    def test_patch_other_needs_users_write(self, api_client, make_account):
        client, _, _ = api_client
        reader = make_account(grants=("users:read",))
        other = make_account()
        url = f"/api/v1/users/{other.user.id}"
        assert client.patch(url, json={"first_name": "X"}, headers=reader.headers).status_code == 403

        writer = make_account(grants=("users:write",))
        assert client.patch(url, json={"first_name": "X"}, headers=writer.headers).status_code == 200


class TestPasswords:
    def test_change_password_ends_sessions(self, api_client, make_account):
        client, _, _ = api_client
        account = make_account()
        resp = client.put(
            f"/api/v1/users/{account.user.id}/password",
            json={"current_password": DEFAULT_PASSWORD, "password": NEW_PASSWORD},
            headers=account.headers,
        )
        assert resp.status_code == 200, resp.text

        assert client.get("/api/v1/users/me", headers=account.headers).status_code == 401
        assert _login(client, account.user.email).status_code == 401
        assert _login(client, account.user.email, NEW_PASSWORD).status_code == 201

    def test_change_password_needs_current(self, api_client, make_account):
        client, _, _ = api_client
        account = make_account()
        resp = client.put(
            f"/api/v1/users/{account.user.id}/password",
            json={"current_password": "Wr0ng-password", "password": NEW_PASSWORD},
            headers=account.headers,
        )
        assert resp.status_code == 422
        assert resp.json()["error"]["fields"] == {"current_password": "is incorrect"}

    def test_cannot_change_someone_elses_password(self, api_client, make_account):
        client, _, _ = api_client
        account = make_account(grants=("users:write",))
        other = make_account()
        resp = client.put(
            f"/api/v1/users/{other.user.id}/password",
            json={"current_password": DEFAULT_PASSWORD, "password": NEW_PASSWORD},
            headers=account.headers,
        )
        assert resp.status_code == 403

    def test_password_reset_flow(self, api_client, make_account):
        client, _, mailer = api_client
        account = make_account()
        mailer.reset_mock()

        resp = client.post("/api/v1/tokens/password-reset", json={"email": account.user.email})
        assert resp.status_code == 202
        to_email, reset_token = mailer.send_password_reset.call_args.args
        assert to_email == account.user.email

        resp = client.put("/api/v1/users/password", json={"token": reset_token, "password": NEW_PASSWORD})
        assert resp.status_code == 200, resp.text
        assert client.get("/api/v1/users/me", headers=account.headers).status_code == 401
        assert _login(client, account.user.email, NEW_PASSWORD).status_code == 201

        reused = client.put("/api/v1/users/password", json={"token": reset_token, "password": NEW_PASSWORD})
        assert reused.status_code == 422

    def test_reset_rejects_weak_password(self, api_client, make_account):
        client, _, mailer = api_client
        account = make_account()
        mailer.reset_mock()
        client.post("/api/v1/tokens/password-reset", json={"email": account.user.email})
        _, reset_token = mailer.send_password_reset.call_args.args
        resp = client.put("/api/v1/users/password", json={"token": reset_token, "password": "weak"})
        assert resp.status_code == 422
        assert "password" in resp.json()["error"]["fields"]

    def test_register_keeps_edge_whitespace_in_password(self, api_client):
        client, _, mailer = api_client
        email = unique_email("space")
        resp = _register(client, mailer, f"  {email} ", password="Abcdef12 ")
        assert resp.status_code == 201, resp.text
        assert resp.json()["email"] == email

        assert _login(client, email, "Abcdef12 ").status_code == 201
        assert _login(client, email, "Abcdef12").status_code == 401

    def test_changed_password_with_edge_whitespace_logs_in(self, api_client, make_account):
        client, _, _ = api_client
        account = make_account()
        resp = client.put(
            f"/api/v1/users/{account.user.id}/password",
            json={"current_password": DEFAULT_PASSWORD, "password": " Padded-pw1 "},
            headers=account.headers,
        )
        assert resp.status_code == 200, resp.text
        assert _login(client, account.user.email, " Padded-pw1 ").status_code == 201
        assert _login(client, account.user.email, "Padded-pw1").status_code == 401

    def test_reset_password_with_edge_whitespace_logs_in(self, api_client, make_account):
        client, _, mailer = api_client
        account = make_account()
        mailer.reset_mock()
        client.post("/api/v1/tokens/password-reset", json={"email": account.user.email})
        _, reset_token = mailer.send_password_reset.call_args.args

        resp = client.put("/api/v1/users/password", json={"token": reset_token, "password": "Abcdef12 "})
        assert resp.status_code == 200, resp.text
        assert _login(client, account.user.email, "Abcdef12 ").status_code == 201

    def test_reset_request_does_not_reveal_accounts(self, api_client, make_account):
        client, _, mailer = api_client
        inactive = make_account(activated=False)
        mailer.reset_mock()
        for email in (unique_email("ghost"), inactive.user.email):
            resp = client.post("/api/v1/tokens/password-reset", json={"email": email})
            assert resp.status_code == 202
        mailer.send_password_reset.assert_not_called()


class TestDelete:
    def test_delete_self_ends_access(self, api_client, make_account):
        client, _, _ = api_client
        account = make_account()
        admin = make_account(grants=("users:read",))
        resp = client.delete(f"/api/v1/users/{account.user.id}", headers=account.headers)
        assert resp.status_code == 200, resp.text

        assert client.get("/api/v1/users/me", headers=account.headers).status_code == 401
        assert _login(client, account.user.email).status_code == 401
        assert client.get(f"/api/v1/users/{account.user.id}", headers=admin.headers).status_code == 404

    def test_delete_other_needs_users_write(self, api_client, make_account):
        client, _, _ = api_client
        account = make_account()
        other = make_account()
        assert client.delete(f"/api/v1/users/{other.user.id}", headers=account.headers).status_code == 403

        admin = make_account(grants=("users:write",))
        assert client.delete(f"/api/v1/users/{other.user.id}", headers=admin.headers).status_code == 200
        assert client.delete(f"/api/v1/users/{other.user.id}", headers=admin.headers).status_code == 404

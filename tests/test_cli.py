"""Tests for the admin CLI in main.py.

Covers:
- create-user with --activate and --grant, then permissions lists the codes
- Password prompt mismatch and weak password exit with status 2
- Unknown email exits with status 1
- delete-user soft then hard, purge-tokens
"""

import getpass

import pytest

import main as cli
from core.config import get_settings

PASSWORD = "Pa55word!"


@pytest.fixture(autouse=True)
def cli_database(tmp_path, monkeypatch):
    """Point the CLI at a throwaway SQLite file for each test."""
    monkeypatch.setattr(get_settings(), "database_url", f"sqlite:///{tmp_path / 'cli.db'}")


@pytest.fixture
def passwords(monkeypatch):
    """Feed the given answers to successive getpass prompts."""

    def _answers(*values: str) -> None:
        it = iter(values)
        monkeypatch.setattr(getpass, "getpass", lambda prompt="": next(it))

    return _answers


def _create(email: str, *extra: str) -> int:
    return cli.main(["create-user", "--email", email, "--first-name", "Ana", "--last-name", "Lee", *extra])


def test_create_user_with_grants(passwords, capsys):
    passwords(PASSWORD, PASSWORD)
    assert _create("ana@example.com", "--activate", "--grant", "users:read", "--grant", "users:write") == 0
    out = capsys.readouterr().out
    assert "activated=True" in out

    assert cli.main(["permissions", "--email", "ana@example.com"]) == 0
    codes = capsys.readouterr().out.split()
    assert codes == ["livestock:read", "users:read", "users:write"]


def test_password_mismatch(passwords, capsys):
    passwords(PASSWORD, "Different-1")
    assert _create("ben@example.com") == 2
    assert "passwords do not match" in capsys.readouterr().out


def test_weak_password(passwords, capsys):
    passwords("weak", "weak")
    assert _create("cat@example.com") == 2
    assert "password" in capsys.readouterr().out


def test_duplicate_email(passwords):
    passwords(PASSWORD, PASSWORD, PASSWORD, PASSWORD)
    assert _create("dup@example.com") == 0
    assert _create("dup@example.com") == 1


def test_grant_to_unknown_user(capsys):
    assert cli.main(["grant", "--email", "ghost@example.com", "users:read"]) == 1
    assert "ghost@example.com" in capsys.readouterr().out


def test_grant_warns_about_unknown_codes(passwords, capsys):
    passwords(PASSWORD, PASSWORD)
    _create("dan@example.com")
    capsys.readouterr()
    assert cli.main(["grant", "--email", "dan@example.com", "livestock:write", "cattle:teleport"]) == 0
    out = capsys.readouterr().out
    assert "Unknown permission code ignored: cattle:teleport" in out
    assert "livestock:write" in out


def test_delete_user_soft_then_hard(passwords, capsys):
    passwords(PASSWORD, PASSWORD)
    _create("eve@example.com")
    assert cli.main(["delete-user", "--email", "eve@example.com"]) == 0
    # A second soft delete is refused.
    assert cli.main(["delete-user", "--email", "eve@example.com"]) == 1
    assert cli.main(["delete-user", "--email", "eve@example.com", "--hard"]) == 0
    assert cli.main(["permissions", "--email", "eve@example.com"]) == 1


def test_purge_tokens(capsys):
    assert cli.main(["purge-tokens"]) == 0
    assert "Removed 0 expired token(s)" in capsys.readouterr().out

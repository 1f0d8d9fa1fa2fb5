#!/usr/bin/env python3
"""
Cash Cow admin CLI -- bootstrap and maintain accounts without the HTTP API.

The first administrator cannot be created through the API (registration only
grants the default permissions), so this tool talks to the database directly
using the same stores, validation and hashing as the server.

Usage:
  python main.py create-user --email ana@example.com --first-name Ana --last-name Lee --activate \
      --grant users:read --grant users:write --grant livestock:write
  python main.py grant --email ana@example.com livestock:write
  python main.py permissions --email ana@example.com
  python main.py delete-user --email ana@example.com
  python main.py delete-user --email ana@example.com --hard
  python main.py purge-tokens

Environment variables:
  DATABASE_URL   SQLAlchemy URL of the database (default: sqlite cashcow.db in the repo root)
  BCRYPT_ROUNDS  bcrypt cost factor for new passwords (default: 12)
"""

import argparse
import getpass
import logging
import sys
from typing import Optional

from auth.models import CandidatePassword, User
from auth.passwords import set_password
from auth.store import PermissionStore, TokenStore, UserStore
from auth.validation import validate_user
from core.config import get_settings
from core.db import create_db_engine, create_schema
from core.errors import RecordNotFoundError, StoreError, ValidationFailedError
from core.validator import Validator

logger = logging.getLogger("cashcow.cli")


def _read_password() -> str:
    """Prompt twice for a password without echoing it."""
    first = getpass.getpass("Password: ")
    second = getpass.getpass("Repeat password: ")
    if first != second:
        raise ValidationFailedError({"password": "passwords do not match"})
    return first


def _print_errors(errors: dict[str, str]) -> None:
    for field, message in errors.items():
        print(f"  [!] {field}: {message}")


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


def cmd_create_user(args: argparse.Namespace, users: UserStore, perms: PermissionStore) -> int:
    user = User(
        email=args.email,
        first_name=args.first_name,
        last_name=args.last_name,
        middle_name=args.middle_name,
        farmer_id=args.farmer_id,
        phone_number=args.phone_number,
        activated=args.activate,
    )
    candidate = CandidatePassword(_read_password())
    v = Validator()
    validate_user(v, user, candidate)
    v.raise_if_invalid()

    user.password = set_password(candidate)
    users.insert(user)
    codes = list(get_settings().default_permissions) + list(args.grant)
    perms.grant(user.id, *codes)
    logger.info("Created user id=%s via CLI", user.id)
    print(f"Created user {user.email} (id={user.id}, activated={user.activated})")
    print(f"Permissions: {', '.join(sorted(perms.get_all_for_user(user.id))) or '(none)'}")
    return 0


def cmd_grant(args: argparse.Namespace, users: UserStore, perms: PermissionStore) -> int:
    user = users.get_by_email(args.email)
    known = {p.code for p in perms.list_all()}
    unknown = [c for c in args.codes if c not in known]
    for code in unknown:
        print(f"  [!] Unknown permission code ignored: {code}")
    perms.grant(user.id, *args.codes)
    logger.info("Granted %s to user id=%s via CLI", ", ".join(args.codes), user.id)
    print(f"Permissions for {user.email}: {', '.join(sorted(perms.get_all_for_user(user.id))) or '(none)'}")
    return 0


def cmd_permissions(args: argparse.Namespace, users: UserStore, perms: PermissionStore) -> int:
    user = users.get_by_email(args.email)
    held = perms.get_all_for_user(user.id)
    for code in sorted(held):
        print(code)
    if not held:
        print("(none)")
    return 0


def cmd_delete_user(args: argparse.Namespace, users: UserStore, perms: PermissionStore) -> int:
    user = users.get_by_email(args.email)
    if args.hard:
        users.delete_hard(user.id)
        print(f"Permanently deleted {user.email} (id={user.id})")
    else:
        users.delete_soft(user)
        print(f"Marked {user.email} (id={user.id}) as deleted")
    logger.info("Deleted user id=%s via CLI (hard=%s)", user.id, args.hard)
    return 0


def cmd_purge_tokens(args: argparse.Namespace, tokens: TokenStore) -> int:
    removed = tokens.delete_expired()
    print(f"Removed {removed} expired token(s)")
    return 0


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="cashcow-admin",
        description="Administer Cash Cow accounts and permissions.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    sub = parser.add_subparsers(dest="command", required=True)

    create = sub.add_parser("create-user", help="Create an account (password is prompted)")
    create.add_argument("--email", required=True)
    create.add_argument("--first-name", required=True)
    create.add_argument("--last-name", required=True)
    create.add_argument("--middle-name", default="")
    create.add_argument("--farmer-id", default=None)
    create.add_argument("--phone-number", default=None)
    create.add_argument(
        "--grant",
        action="append",
        default=[],
        metavar="CODE",
        help="Permission code to grant in addition to the defaults (repeatable)",
    )
    create.add_argument("--activate", action="store_true", help="Mark the account activated immediately")

    grant = sub.add_parser("grant", help="Grant permission codes to an existing account")
    grant.add_argument("--email", required=True)
    grant.add_argument("codes", nargs="+", metavar="CODE")

    show = sub.add_parser("permissions", help="List the permission codes an account holds")
    show.add_argument("--email", required=True)

    delete = sub.add_parser("delete-user", help="Soft-delete an account (or remove it with --hard)")
    delete.add_argument("--email", required=True)
    delete.add_argument("--hard", action="store_true", help="Remove the row and its tokens permanently")

    sub.add_parser("purge-tokens", help="Delete expired tokens")
    return parser


def main(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(level=logging.WARNING, format="%(levelname)-5s %(name)s %(message)s")

    engine = create_db_engine(get_settings().database_url)
    try:
        create_schema(engine)
        users = UserStore(engine)
        perms = PermissionStore(engine)
        perms.ensure_defaults()

        if args.command == "purge-tokens":
            return cmd_purge_tokens(args, TokenStore(engine))
        handlers = {
            "create-user": cmd_create_user,
            "grant": cmd_grant,
            "permissions": cmd_permissions,
            "delete-user": cmd_delete_user,
        }
        return handlers[args.command](args, users, perms)
    except ValidationFailedError as e:
        _print_errors(e.errors)
        return 2
    except RecordNotFoundError:
        print(f"  [!] No user with email {getattr(args, 'email', '')!r}")
        return 1
    except StoreError as e:
        print(f"  [!] {e}")
        return 1
    finally:
        engine.dispose()


if __name__ == "__main__":
    sys.exit(main())

"""
core/validator.py -- Field-level input validation.

A Validator accumulates field -> message pairs. Only the first failure per
field is kept so the error map stays readable. Callers run all checks, then
call raise_if_invalid() which raises ValidationFailedError carrying the map.

Usage:
    v = Validator()
    v.check(name != "", "name", "must be provided")
    v.check(len(name) <= 255, "name", "must not be more than 255 characters long")
    v.raise_if_invalid()
"""

from __future__ import annotations

import re
from collections.abc import Iterable

from core.errors import ValidationFailedError

EMAIL_RX = re.compile(
    r"^[a-zA-Z0-9.!#$%&'*+/=?^_`{|}~-]+@[a-zA-Z0-9](?:[a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?"
    r"(?:\.[a-zA-Z0-9](?:[a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?)*$"
)
PHONE_RX = re.compile(r"^\+?[0-9 -]{7,15}$")
PASSWORD_NUMBER_RX = re.compile(r"[0-9]")
PASSWORD_UPPER_RX = re.compile(r"[A-Z]")
PASSWORD_LOWER_RX = re.compile(r"[a-z]")
PASSWORD_SPECIAL_RX = re.compile(r"[^a-zA-Z0-9]")


class Validator:
    def __init__(self) -> None:
        self.errors: dict[str, str] = {}

    def valid(self) -> bool:
        return not self.errors

    def add_error(self, key: str, message: str) -> None:
        self.errors.setdefault(key, message)

    def check(self, ok: bool, key: str, message: str) -> None:
        if not ok:
            self.add_error(key, message)

    def raise_if_invalid(self) -> None:
        if self.errors:
            raise ValidationFailedError(self.errors)


def matches(value: str, rx: re.Pattern) -> bool:
    return rx.search(value) is not None


def permitted_value(value, permitted: Iterable) -> bool:
    return value in set(permitted)

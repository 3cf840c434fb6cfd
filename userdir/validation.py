"""Field validation for user payloads."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Callable, Mapping, Optional, Tuple

MAX_NAME_LENGTH = 100
MIN_AGE = 1
MAX_AGE = 149

_EMAIL_PATTERN = re.compile(r"[^\s@]+@[^\s@]+\.[^\s@]+")
_USER_ID_PATTERN = re.compile(
    r"[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}",
    re.IGNORECASE,
)


@dataclass(frozen=True)
class ValidationResult:
    """Outcome of validating a user payload; truthy when the payload is valid."""

    ok: bool
    reason: Optional[str] = None
    field: Optional[str] = None

    def __bool__(self) -> bool:
        return self.ok


VALID = ValidationResult(ok=True)


def validate_name(value: Any) -> bool:
    # length counts UTF-16 code units, so astral characters count twice
    if not isinstance(value, str) or not value.strip():
        return False
    return len(value.encode("utf-16-le")) // 2 <= MAX_NAME_LENGTH


def validate_email(value: Any) -> bool:
    return isinstance(value, str) and _EMAIL_PATTERN.fullmatch(value) is not None


def validate_age(value: Any) -> bool:
    # bool is a subclass of int but never a meaningful age
    if isinstance(value, bool):
        return False
    if isinstance(value, float):
        if not value.is_integer():
            return False
    elif not isinstance(value, int):
        return False
    return MIN_AGE <= value <= MAX_AGE


def is_missing(value: Any) -> bool:
    """Return ``True`` for values a JSON client treats as blank: null, "", 0 and false."""

    if value is None:
        return True
    return isinstance(value, (str, int, float)) and not value


def is_valid_user_id(value: Any) -> bool:
    """Return ``True`` when *value* has the textual layout of a generated user id."""

    return isinstance(value, str) and _USER_ID_PATTERN.fullmatch(value) is not None


_FIELD_RULES: Tuple[Tuple[str, Callable[[Any], bool], str, str], ...] = (
    ("name", validate_name, "Name is required", "Name must be a non-empty string (max 100 chars)"),
    ("email", validate_email, "Email is required", "Invalid email format"),
    ("age", validate_age, "Age is required", "Age must be a number between 1 and 149"),
)


def validate_user_input(candidate: Mapping[str, Any], partial: bool = False) -> ValidationResult:
    """Validate a user payload and report the first failing field.

    When ``partial`` is false every field is mandatory: blank fields (see
    :func:`is_missing`) are reported before invalid ones, each in the order
    name, email, age. When ``partial`` is true absent fields are skipped, but
    a field that is present (even as ``None``) must satisfy its rule. Keys
    other than the three user fields are ignored.
    """

    if not partial:
        for field, _, missing_reason, _ in _FIELD_RULES:
            if is_missing(candidate.get(field)):
                return ValidationResult(ok=False, reason=missing_reason, field=field)

    for field, rule, _, invalid_reason in _FIELD_RULES:
        if field not in candidate:
            continue
        if not rule(candidate[field]):
            return ValidationResult(ok=False, reason=invalid_reason, field=field)

    return VALID


__all__ = [
    "MAX_AGE",
    "MAX_NAME_LENGTH",
    "MIN_AGE",
    "VALID",
    "ValidationResult",
    "is_missing",
    "is_valid_user_id",
    "validate_age",
    "validate_email",
    "validate_name",
    "validate_user_input",
]

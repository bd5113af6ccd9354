"""Password policy.

A candidate password is checked against an ordered list of rules.  The
first rule that fails decides the outcome; later rules are not
evaluated, so a rejection always names exactly one violation.

Rule order: length, lowercase, uppercase, digit, special character.
There is no maximum length.
"""
from __future__ import annotations

import string
from dataclasses import dataclass
from enum import Enum
from typing import Callable

from errors import ErrorCode

MIN_PASSWORD_LENGTH = 8
SPECIAL_CHARACTERS = frozenset("!@#$%^&*()_+-=[]{};':\"\\|,.<>/?`~")

_LOWER = frozenset(string.ascii_lowercase)
_UPPER = frozenset(string.ascii_uppercase)
_DIGITS = frozenset(string.digits)


class PolicyViolation(str, Enum):
    TOO_SHORT = "TOO_SHORT"
    NO_LOWERCASE = "NO_LOWERCASE"
    NO_UPPERCASE = "NO_UPPERCASE"
    NO_DIGIT = "NO_DIGIT"
    NO_SPECIAL = "NO_SPECIAL"

    @property
    def error_code(self) -> ErrorCode:
        return _ERROR_CODES[self]


_ERROR_CODES = {
    PolicyViolation.TOO_SHORT: ErrorCode.PASSWORD_TOO_SHORT,
    PolicyViolation.NO_LOWERCASE: ErrorCode.PASSWORD_NO_LOWER,
    PolicyViolation.NO_UPPERCASE: ErrorCode.PASSWORD_NO_UPPER,
    PolicyViolation.NO_DIGIT: ErrorCode.PASSWORD_NO_DIGIT,
    PolicyViolation.NO_SPECIAL: ErrorCode.PASSWORD_NO_SPECIAL,
}


# ---------------------------------------------------------------------------
# Character-class predicates
# ---------------------------------------------------------------------------

def has_min_length(candidate: str, minimum: int = MIN_PASSWORD_LENGTH) -> bool:
    return len(candidate) >= minimum


def has_lowercase(candidate: str) -> bool:
    return any(c in _LOWER for c in candidate)


def has_uppercase(candidate: str) -> bool:
    return any(c in _UPPER for c in candidate)


def has_digit(candidate: str) -> bool:
    return any(c in _DIGITS for c in candidate)


def has_special(candidate: str) -> bool:
    return any(c in SPECIAL_CHARACTERS for c in candidate)


# ---------------------------------------------------------------------------
# Rules and result
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class PasswordRule:
    """A named predicate paired with the violation it reports."""

    violation: PolicyViolation
    description: str
    check: Callable[[str], bool]


@dataclass(frozen=True)
class PolicyResult:
    violation: PolicyViolation | None = None

    @property
    def accepted(self) -> bool:
        return self.violation is None

    def __bool__(self) -> bool:
        return self.accepted


PASSWORD_RULES: list[PasswordRule] = [
    PasswordRule(
        PolicyViolation.TOO_SHORT,
        f"At least {MIN_PASSWORD_LENGTH} characters",
        has_min_length,
    ),
    PasswordRule(
        PolicyViolation.NO_LOWERCASE,
        "At least one lowercase letter",
        has_lowercase,
    ),
    PasswordRule(
        PolicyViolation.NO_UPPERCASE,
        "At least one uppercase letter",
        has_uppercase,
    ),
    PasswordRule(
        PolicyViolation.NO_DIGIT,
        "At least one digit",
        has_digit,
    ),
    PasswordRule(
        PolicyViolation.NO_SPECIAL,
        "At least one special character",
        has_special,
    ),
]


def validate_password(
    candidate: str,
    rules: list[PasswordRule] | None = None,
) -> PolicyResult:
    """Check ``candidate`` against ``rules`` in order; first failure wins."""
    for rule in PASSWORD_RULES if rules is None else rules:
        if not rule.check(candidate):
            return PolicyResult(violation=rule.violation)
    return PolicyResult()

"""Allow-list input validation applied before binding or sanitizing.

A ValidationPolicy is a pure predicate over a string: a length bound, an
allowed character class, characters that are always forbidden, and ordered
structural rules. validate() never raises for string input; it returns a
ValidationResult whose rejection reason is typed and deterministic.
"""

import logging
import re
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from functools import lru_cache

from .codec import for_log
from .errors import PolicyError, ValidationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RawInput:
    """Untrusted text with a declared length bound and source tag."""

    value: str
    source: str = ""
    max_length: int | None = None

    def __post_init__(self) -> None:
        if not isinstance(self.value, str):
            raise TypeError(f"RawInput value must be str, got {type(self.value).__name__}")
        if self.max_length is not None and self.max_length < 0:
            raise ValueError(f"max_length must be >= 0, got {self.max_length}")

    def __len__(self) -> int:
        return len(self.value)


# --- Rejection reasons ---


@dataclass(frozen=True)
class TooLong:
    length: int
    limit: int
    code = "too_long"

    def describe(self) -> str:
        return f"input is {self.length} characters, limit is {self.limit}"


@dataclass(frozen=True)
class TooShort:
    length: int
    minimum: int
    code = "too_short"

    def describe(self) -> str:
        return f"input is {self.length} characters, minimum is {self.minimum}"


@dataclass(frozen=True)
class DisallowedCharacter:
    index: int
    character: str
    code = "disallowed_character"

    def describe(self) -> str:
        # The character itself is left out: it is attacker-controlled.
        return f"character at index {self.index} is not allowed"


@dataclass(frozen=True)
class StructuralViolation:
    rule_id: str
    code = "structural_violation"

    def describe(self) -> str:
        return f"input violates rule '{self.rule_id}'"


RejectionReason = TooLong | TooShort | DisallowedCharacter | StructuralViolation


class ValidationStatus(Enum):
    ACCEPTED = "accepted"
    REJECTED = "rejected"


@dataclass(frozen=True)
class ValidationResult:
    """Outcome of validate().

    Use factory classmethods instead of constructing directly:
        ValidationResult.accepted(value)
        ValidationResult.rejected(reason)
    """

    status: ValidationStatus
    value: str | None = None
    reason: RejectionReason | None = None

    def __bool__(self) -> bool:
        """True only when the input was accepted."""
        return self.status is ValidationStatus.ACCEPTED

    @property
    def is_accepted(self) -> bool:
        return self.status is ValidationStatus.ACCEPTED

    @property
    def is_rejected(self) -> bool:
        return self.status is ValidationStatus.REJECTED

    @classmethod
    def accepted(cls, value: str) -> "ValidationResult":
        return cls(status=ValidationStatus.ACCEPTED, value=value)

    @classmethod
    def rejected(cls, reason: RejectionReason) -> "ValidationResult":
        return cls(status=ValidationStatus.REJECTED, reason=reason)

    def raise_for_rejection(self) -> str:
        """Return the accepted value, or raise ValidationError.

        Raises:
            ValidationError: If the input was rejected.
        """
        if self.reason is not None:
            raise ValidationError(
                f"Input rejected: {self.reason.describe()}", reason=self.reason
            )
        return self.value or ""


# --- Structural rules ---


@dataclass(frozen=True)
class StructuralRule:
    """A named pure predicate; returns True when the input is acceptable."""

    rule_id: str
    predicate: Callable[[str], bool]
    description: str = ""

    def check(self, text: str) -> bool:
        return bool(self.predicate(text))


def forbid_sequence(sequence: str, ignore: str = "", rule_id: str | None = None) -> StructuralRule:
    """Reject input containing `sequence` once `ignore` characters are removed.

    forbid_sequence("--", ignore=" ") rejects "a - - b" as well as "a--b".
    """
    if not sequence:
        raise PolicyError("forbid_sequence() requires a non-empty sequence")
    table = str.maketrans("", "", ignore)

    def predicate(text: str) -> bool:
        return sequence not in text.translate(table)

    return StructuralRule(
        rule_id=rule_id or f"no-sequence:{sequence}",
        predicate=predicate,
        description=f"no occurrence of {sequence!r}"
        + (f" ignoring {ignore!r}" if ignore else ""),
    )


def no_consecutive(char: str, ignore: str = " ", rule_id: str | None = None) -> StructuralRule:
    """Reject two consecutive occurrences of `char` (e.g. SQL comment "--")."""
    if len(char) != 1:
        raise PolicyError(f"no_consecutive() expects a single character, got {char!r}")
    return forbid_sequence(char * 2, ignore=ignore, rule_id=rule_id or f"no-consecutive:{char}")


def forbid_substrings(*substrings: str, case_sensitive: bool = False,
                      rule_id: str | None = None) -> StructuralRule:
    """Reject input containing any of the given substrings."""
    if not substrings or not all(substrings):
        raise PolicyError("forbid_substrings() requires non-empty substrings")
    needles = substrings if case_sensitive else tuple(s.lower() for s in substrings)

    def predicate(text: str) -> bool:
        haystack = text if case_sensitive else text.lower()
        return not any(needle in haystack for needle in needles)

    return StructuralRule(
        rule_id=rule_id or "forbidden-substrings",
        predicate=predicate,
        description=f"none of {list(substrings)!r}",
    )


def matches(pattern: str, rule_id: str | None = None) -> StructuralRule:
    """Require the whole input to match a regular expression."""
    try:
        compiled = re.compile(pattern)
    except re.error as exc:
        raise PolicyError(f"Invalid pattern {pattern!r}: {exc}") from exc

    def predicate(text: str) -> bool:
        return compiled.fullmatch(text) is not None

    return StructuralRule(
        rule_id=rule_id or "pattern",
        predicate=predicate,
        description=f"matches {pattern!r}",
    )


# --- Policy ---


@lru_cache(maxsize=256)
def _charset_pattern(charset: str) -> re.Pattern:
    return re.compile(f"[{charset}]")


@dataclass(frozen=True)
class ValidationPolicy:
    """Allow-list validation policy.

    allowed_charset is the body of a regex character class, e.g.
    r"A-Za-z0-9\\s\\-". Characters outside it are rejected, as are any
    characters listed in forbidden.
    """

    max_length: int
    allowed_charset: str
    forbidden: str = ""
    rules: tuple[StructuralRule, ...] = ()
    min_length: int = 0
    name: str = ""

    def __post_init__(self) -> None:
        """Validate policy configuration."""
        errors = []

        if not isinstance(self.max_length, int) or self.max_length < 0:
            errors.append(f"max_length must be an integer >= 0, got {self.max_length!r}")
        if not isinstance(self.min_length, int) or self.min_length < 0:
            errors.append(f"min_length must be an integer >= 0, got {self.min_length!r}")
        elif isinstance(self.max_length, int) and self.min_length > self.max_length:
            errors.append(
                f"min_length ({self.min_length}) must be <= max_length ({self.max_length})"
            )
        if not self.allowed_charset:
            errors.append("allowed_charset cannot be empty")
        else:
            try:
                _charset_pattern(self.allowed_charset)
            except re.error as exc:
                errors.append(f"allowed_charset is not a valid character class: {exc}")
        if not isinstance(self.rules, tuple):
            errors.append("rules must be a tuple of StructuralRule")
        else:
            seen: set[str] = set()
            for rule in self.rules:
                if not isinstance(rule, StructuralRule):
                    errors.append(f"rules entry is not a StructuralRule: {rule!r}")
                elif rule.rule_id in seen:
                    errors.append(f"Duplicate rule id: '{rule.rule_id}'")
                else:
                    seen.add(rule.rule_id)

        if errors:
            label = f" '{self.name}'" if self.name else ""
            raise PolicyError(
                f"Invalid ValidationPolicy{label}: {'; '.join(errors)}", errors=errors
            )

    def first_disallowed(self, text: str) -> int | None:
        """Index of the first character outside the allow-list, or None."""
        allowed = _charset_pattern(self.allowed_charset)
        forbidden = self.forbidden
        for index, char in enumerate(text):
            if char in forbidden or allowed.fullmatch(char) is None:
                return index
        return None


def validate(raw: RawInput | str, policy: ValidationPolicy) -> ValidationResult:
    """Validate untrusted input against an allow-list policy.

    Checks run in a fixed order: length, allowed characters, then each
    structural rule in policy order. The first failure is the reason.

    Args:
        raw: RawInput, or a plain string (no extra length bound or source).
        policy: The policy to apply.

    Returns:
        ValidationResult, accepted or rejected with a typed reason.

    Raises:
        PolicyError: If policy is None or not a ValidationPolicy.
    """
    if not isinstance(policy, ValidationPolicy):
        raise PolicyError(
            f"validate() requires a ValidationPolicy, got {type(policy).__name__}"
        )
    if not isinstance(raw, RawInput):
        raw = RawInput(value=raw)

    text = raw.value
    limit = policy.max_length
    if raw.max_length is not None:
        limit = min(limit, raw.max_length)

    result = _check(text, limit, policy)
    if result.is_rejected:
        logger.debug(
            "Input from %s rejected by policy %s: %s",
            for_log(raw.source or "<unknown>"),
            policy.name or "<unnamed>",
            result.reason.code,
        )
    return result


def _check(text: str, limit: int, policy: ValidationPolicy) -> ValidationResult:
    if len(text) > limit:
        return ValidationResult.rejected(TooLong(length=len(text), limit=limit))
    if len(text) < policy.min_length:
        return ValidationResult.rejected(TooShort(length=len(text), minimum=policy.min_length))

    index = policy.first_disallowed(text)
    if index is not None:
        return ValidationResult.rejected(DisallowedCharacter(index=index, character=text[index]))

    for rule in policy.rules:
        if not rule.check(text):
            return ValidationResult.rejected(StructuralViolation(rule_id=rule.rule_id))

    return ValidationResult.accepted(text)


# Structural metacharacters of MongoDB-style filter APIs: ' " \ ; { } $
NOSQL_METACHARACTERS = "'\"\\;{}$"

NOSQL_VALUE_POLICY = ValidationPolicy(
    name="nosql-value",
    max_length=50,
    allowed_charset=r"\w \-.,@:/+#&()",
    forbidden=NOSQL_METACHARACTERS,
)

# Display text such as "You user login is owasp-user01": letters, digits,
# whitespace and single hyphens only.
DISPLAY_TEXT_POLICY = ValidationPolicy(
    name="display-text",
    max_length=50,
    min_length=1,
    allowed_charset=r"a-zA-Z0-9\s\-",
    rules=(no_consecutive("-", ignore=" ", rule_id="no-double-dash"),),
)

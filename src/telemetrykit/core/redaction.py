"""Field redaction for log fields and metric label values.

A Redactor holds an ordered tuple of rules. Each rule pairs a field-name
matcher with a value transform. Rules are checked most specific first
(exact name, then suffix, longest first, then pattern) and the first match
wins. Every built-in transform is idempotent, so redacting an already
redacted value leaves it unchanged.
"""

import hashlib
import re
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any

MASK = "[REDACTED]"

Transform = Callable[[Any], Any]


@dataclass(frozen=True)
class ExactField:
    """Matches one field name, case-insensitively."""

    name: str
    specificity = 3

    def matches(self, field_name: str) -> bool:
        return field_name.lower() == self.name.lower()


@dataclass(frozen=True)
class SuffixField:
    """Matches field names ending with ``suffix``, e.g. ``_token``."""

    suffix: str
    specificity = 2

    def matches(self, field_name: str) -> bool:
        return field_name.lower().endswith(self.suffix.lower())


@dataclass(frozen=True)
class PatternField:
    """Matches field names against a regular expression (``re.search``)."""

    pattern: str
    _compiled: re.Pattern[str] = field(init=False, repr=False, compare=False)
    specificity = 1

    def __post_init__(self) -> None:
        object.__setattr__(self, "_compiled", re.compile(self.pattern, re.IGNORECASE))

    def matches(self, field_name: str) -> bool:
        return self._compiled.search(field_name) is not None


FieldMatcher = ExactField | SuffixField | PatternField


def mask(token: str = MASK) -> Transform:
    """Replace the whole value with a fixed token."""

    def _mask(value: Any) -> Any:
        return token

    return _mask


def partial_mask(keep_last: int = 4, mask_char: str = "*") -> Transform:
    """Mask all but the trailing ``keep_last`` characters.

    Length is preserved, so masking twice gives the same result as once.
    Values of ``keep_last`` characters or fewer are fully masked.
    """
    if keep_last < 0 or len(mask_char) != 1:
        raise ValueError("keep_last must be >= 0 and mask_char a single character")

    def _partial(value: Any) -> Any:
        text = str(value)
        if len(text) <= keep_last:
            return mask_char * len(text)
        visible = text[-keep_last:] if keep_last else ""
        return mask_char * (len(text) - keep_last) + visible

    return _partial


def digest(prefix: str = "sha256:", length: int = 16) -> Transform:
    """Replace the value with a truncated SHA-256 hex digest.

    Values already carrying ``prefix`` are returned unchanged.
    """

    def _digest(value: Any) -> Any:
        text = str(value)
        if text.startswith(prefix):
            return text
        return prefix + hashlib.sha256(text.encode("utf-8")).hexdigest()[:length]

    return _digest


@dataclass(frozen=True)
class RedactionRule:
    """Pairs a field-name matcher with a value transform.

    Attributes:
        matcher: Which field names the rule applies to.
        transform: Pure function applied to the matching value.
        name: Optional label for diagnostics.
    """

    matcher: FieldMatcher
    transform: Transform = field(default_factory=mask)
    name: str = ""

    def _sort_key(self) -> tuple[int, int]:
        length = len(self.matcher.suffix) if isinstance(self.matcher, SuffixField) else 0
        return (-self.matcher.specificity, -length)


SENSITIVE_FIELD_PATTERN = (
    r"pass(word|wd)?|secret|token|api[_-]?key|authorization|cookie"
    r"|card|cvv|ssn|credential|private[_-]?key"
)


def default_rules() -> tuple[RedactionRule, ...]:
    return (
        RedactionRule(PatternField(SENSITIVE_FIELD_PATTERN), mask(), "sensitive-names"),
    )


class Redactor:
    """Applies redaction rules to field values.

    Example:
        ```python
        redactor = Redactor([
            RedactionRule(ExactField("card_number"), partial_mask(4)),
            *default_rules(),
        ])
        redactor.redact("card_number", "4111111111111111")  # '************1111'
        redactor.redact("password", "hunter2")              # '[REDACTED]'
        ```
    """

    def __init__(self, rules: Iterable[RedactionRule] = ()) -> None:
        indexed = list(enumerate(rules))
        # stable within a specificity tier: configuration order breaks ties
        indexed.sort(key=lambda pair: (*pair[1]._sort_key(), pair[0]))
        self._rules: tuple[RedactionRule, ...] = tuple(rule for _, rule in indexed)

    @property
    def rules(self) -> tuple[RedactionRule, ...]:
        return self._rules

    def rule_for(self, field_name: str) -> RedactionRule | None:
        for rule in self._rules:
            if rule.matcher.matches(field_name):
                return rule
        return None

    def redact(self, field_name: str, value: Any) -> Any:
        """Return the redacted value for a field.

        Nested mappings are redacted key by key. Unmatched fields pass
        through unchanged.
        """
        rule = self.rule_for(field_name)
        if rule is not None:
            return rule.transform(value)
        if isinstance(value, Mapping):
            return self.redact_fields(value)
        return value

    def redact_fields(self, fields: Mapping[str, Any]) -> dict[str, Any]:
        return {key: self.redact(key, value) for key, value in fields.items()}


NULL_REDACTOR = Redactor()

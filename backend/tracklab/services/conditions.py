"""Targeting condition evaluation and URL pattern matching."""
import re
from dataclasses import dataclass
from typing import Optional

from tracklab.middleware.logging import get_logger
from tracklab.schemas.abtest import ConditionEntry, ConditionKind, ConditionSet, OtherCondition
from tracklab.services.url_patterns import compile_pattern, compile_url_pattern

logger = get_logger()

AXES = ("device", "browser", "os", "language")

_INT_PREFIX_RE = re.compile(r"^\s*([+-]?\d+)")


@dataclass(frozen=True)
class MatchContext:
    """Visitor attributes that conditions are evaluated against."""
    device: str = "other"
    browser: str = "Other"
    os: str = "Other"
    language: str = "unknown"
    visit_count: int = 0
    referrer: str = ""
    url: str = ""


def parse_int_prefix(value) -> Optional[int]:
    """Leading-integer parse: "12abc" -> 12, "abc" -> None."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value)
    if value is None:
        return None
    match = _INT_PREFIX_RE.match(str(value))
    return int(match.group(1)) if match else None


def _regex_search(pattern: str, actual: str) -> Optional[bool]:
    """True/False for a match, None when the pattern does not compile."""
    try:
        return compile_pattern(pattern).search(actual) is not None
    except re.error as e:
        logger.warning("condition_regex_invalid", pattern=pattern, error=str(e))
        return None


def match_url(value: Optional[str], pattern: Optional[str]) -> bool:
    """
    Match a URL against a target/exclude/referrer pattern.

    A blank pattern matches everything. A pattern starting with ``/`` that
    has a second ``/`` is a regular expression, ``/<body>/<flags>``;
    anything else is a literal substring. Unknown or repeated flags and
    bodies that do not compile never match.
    """
    pattern = (pattern or "").strip()
    if not pattern:
        return True
    value = value or ""

    try:
        regex = compile_url_pattern(pattern)
    except re.error as e:
        logger.warning("condition_regex_invalid", pattern=pattern, error=str(e))
        return False

    if regex is None:
        return pattern in value
    return regex.search(value) is not None


def check_condition(entry: ConditionEntry, actual: Optional[str]) -> bool:
    """Evaluate one entry against the visitor's value for its axis."""
    actual = "" if actual is None else str(actual)
    value = entry.value

    match entry.condition:
        case ConditionKind.EXACT:
            return actual == value
        case ConditionKind.CONTAINS:
            return value in actual
        case ConditionKind.STARTS_WITH:
            return actual.startswith(value)
        case ConditionKind.ENDS_WITH:
            return actual.endswith(value)
        case ConditionKind.REGEX:
            return _regex_search(value, actual) is True
        case ConditionKind.ONE_OF:
            return actual in entry.values
        case ConditionKind.NOT_REGEX:
            # A malformed pattern is "not satisfied", the same as for REGEX
            return _regex_search(value, actual) is False
        case ConditionKind.NOT_STARTS_WITH:
            return not actual.startswith(value)
        case ConditionKind.NOT_ENDS_WITH:
            return not actual.endswith(value)
        case ConditionKind.NOT_CONTAINS:
            return value not in actual
        case ConditionKind.NOT_ONE_OF:
            return actual not in entry.values
    raise ValueError(f"Unhandled condition kind: {entry.condition!r}")


def _check_other(entry: OtherCondition, context: MatchContext) -> bool:
    threshold = parse_int_prefix(entry.visit_count or "0")
    if threshold is None or context.visit_count < threshold:
        return False
    if entry.referrer and entry.referrer.strip():
        return match_url(context.referrer, entry.referrer)
    return True


def matches(conditions: ConditionSet, context: MatchContext) -> bool:
    """
    Evaluate a test's condition set for a visitor.

    Every axis with at least one active entry must pass, and an axis passes
    when any of its entries does. All `other` entries must pass.
    """
    for axis in AXES:
        entries = [e for e in getattr(conditions, axis) if e.is_active]
        if not entries:
            continue
        actual = getattr(context, axis)
        if not any(check_condition(entry, actual) for entry in entries):
            return False

    return all(_check_other(entry, context) for entry in conditions.other)

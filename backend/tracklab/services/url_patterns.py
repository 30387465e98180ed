"""URL pattern parsing shared by targeting and write-time validation.

A pattern that starts with ``/`` and contains a second ``/`` is a regular
expression written JavaScript-style: the body runs up to the last ``/`` and
the rest are flags. Any other non-blank pattern is a literal substring.
"""
import re
from functools import lru_cache
from typing import Optional

# JavaScript flags; g, u and y have no effect on a single search
VALID_FLAGS = "gimsuy"

_FLAG_BITS = {
    "i": re.IGNORECASE,
    "m": re.MULTILINE,
    "s": re.DOTALL,
}


@lru_cache(maxsize=512)
def compile_pattern(pattern: str, flags: int = 0) -> re.Pattern:
    return re.compile(pattern, flags)


def split_regex(pattern: str):
    """(body, flags) for ``/body/flags`` patterns, None for literals."""
    last = pattern.rfind("/")
    if not pattern.startswith("/") or last == 0:
        return None
    return pattern[1:last], pattern[last + 1:]


def compile_url_pattern(pattern: str) -> Optional[re.Pattern]:
    """
    Compile a stripped, non-blank URL pattern.

    Returns:
        The compiled regex, or None when the pattern is a literal

    Raises:
        re.error: unknown or repeated flags, or a body that does not compile
    """
    parts = split_regex(pattern)
    if parts is None:
        return None

    body, flag_chars = parts
    if any(c not in VALID_FLAGS for c in flag_chars) or len(set(flag_chars)) != len(flag_chars):
        raise re.error(f"invalid regular expression flags {flag_chars!r}")

    flags = 0
    for char in flag_chars:
        flags |= _FLAG_BITS.get(char, 0)
    return compile_pattern(body, flags)


def url_pattern_error(pattern: Optional[str]) -> Optional[str]:
    """Why a stored pattern would never match, or None when it is usable."""
    if not pattern or not pattern.strip():
        return None
    try:
        compile_url_pattern(pattern.strip())
    except re.error as e:
        return str(e)
    return None

"""Glob and regex matching for URL and text patterns."""

import re
from functools import lru_cache
from typing import Optional

from ..core.errors import InvalidPatternError


def glob_to_regex(pattern: str) -> str:
    """
    Translate a glob pattern into an anchored regex source.

    `*` matches any run of characters, `?` exactly one. Everything else is
    literal, so dots in host names do not act as wildcards.
    """
    parts = []
    for char in pattern:
        if char == "*":
            parts.append(".*")
        elif char == "?":
            parts.append(".")
        else:
            parts.append(re.escape(char))
    return "^" + "".join(parts) + "$"


@lru_cache(maxsize=256)
def _compile(source: str, flags: int) -> re.Pattern:
    return re.compile(source, flags)


def compile_pattern(
    source: str,
    case_sensitive: bool = True,
    strict: bool = False,
) -> Optional[re.Pattern]:
    """
    Compile a regex source.

    Returns None for an invalid source, or raises InvalidPatternError when
    strict is set.
    """
    flags = 0 if case_sensitive else re.IGNORECASE
    try:
        return _compile(source, flags)
    except re.error as e:
        if strict:
            raise InvalidPatternError(f"Invalid regex pattern: {source} - {e}", pattern=source)
        return None


def matches_glob(text: str, pattern: str, case_sensitive: bool = True) -> bool:
    """Test text against a glob pattern. An empty pattern never matches."""
    if not pattern:
        return False
    compiled = compile_pattern(glob_to_regex(pattern), case_sensitive)
    return compiled is not None and compiled.match(str(text)) is not None


def matches_regex(text: str, pattern: str, case_sensitive: bool = True) -> bool:
    """Search text for a literal regex. Invalid or empty patterns never match."""
    if not pattern:
        return False
    compiled = compile_pattern(pattern, case_sensitive)
    return compiled is not None and compiled.search(str(text)) is not None

#!/usr/bin/env python3
r"""Compiled rule patterns with a shared cache.

This module turns rule sources into matchers:
- Extglob sources ("source" in a hosting document), rooted at "/"
- Regex sources ("regex"), used as written
- Full-string matching only
- Compilation cached by (type, case sensitivity, source), single-flight
- Destination templates filled from capturing groups

Example:
    >>> compiler = PatternCompiler()
    >>> pattern = compiler.compile("blog/@(*)")
    >>> match = pattern.match("/blog/hello")
    >>> pattern.expand("/news/:1", match)
    '/news/hello'
"""

import re
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from sitehost.core.cache import CacheConfig, LRUCache
from sitehost.core.constants import Limits
from sitehost.rules.extglob import compile_extglob, compile_regex

# ":1" or ":name" inside a destination
DESTINATION_REFERENCE = re.compile(r":(\d+|[A-Za-z_]\w*)")


class PatternType(Enum):
    """Pattern matching type."""

    GLOB = "glob"  # Extended glob (*.html, /docs/**, @(a|b))
    REGEX = "regex"  # Regular expressions


def root_source(source: str) -> str:
    """Root an extglob source at "/" without doubling a leading slash."""
    if source.startswith("/"):
        return source
    return "/" + source


@dataclass(frozen=True)
class CompiledPattern:
    """An immutable compiled rule pattern."""

    source: str
    pattern_type: PatternType
    regex: re.Pattern

    @property
    def groups(self) -> int:
        """Number of capturing groups."""
        return self.regex.groups

    def match(self, path: str) -> Optional[re.Match]:
        """Match the whole path, returning the match object or None."""
        return self.regex.fullmatch(path)

    def matches(self, path: str) -> bool:
        """Check if the whole path matches."""
        return self.regex.fullmatch(path) is not None

    def expand(self, template: str, match: re.Match) -> str:
        """Fill ":N" / ":name" references in template from match.

        References to groups the pattern does not have are left as they
        are, so ports in absolute URLs survive. Groups that did not take
        part in the match expand to an empty string.

        Args:
            template: Destination template
            match: Result of match() on this pattern

        Returns:
            Destination with references substituted
        """
        if not self.groups:
            return template

        def substitute(reference: re.Match) -> str:
            name = reference.group(1)
            try:
                value = match.group(int(name) if name.isdigit() else name)
            except IndexError:
                return reference.group(0)
            return value or ""

        return DESTINATION_REFERENCE.sub(substitute, template)


class PatternCompiler:
    """Compiles rule sources, caching each distinct source once.

    Features:
    - Extglob and regex pattern types
    - Case-sensitive/insensitive matching
    - "/"-rooting of extglob sources
    - Thread-safe compile-once cache
    """

    def __init__(self, cache: Optional[LRUCache] = None, case_sensitive: bool = True):
        """Initialize pattern compiler.

        Args:
            cache: Cache for compiled patterns (a private one if None)
            case_sensitive: Whether patterns are case-sensitive
        """
        self._cache = cache or LRUCache(CacheConfig(max_entries=Limits.PATTERN_CACHE_ENTRIES))
        self._case_sensitive = case_sensitive

    @property
    def case_sensitive(self) -> bool:
        return self._case_sensitive

    def compile(self, source: str, pattern_type: PatternType = PatternType.GLOB) -> CompiledPattern:
        """Compile a rule source, reusing a cached result when present.

        Args:
            source: Extglob or regex source text
            pattern_type: How to read source

        Returns:
            Compiled pattern

        Raises:
            PatternError: If the source is malformed (never cached)
        """
        if pattern_type == PatternType.GLOB:
            source = root_source(source)

        sensitivity = "cs" if self._case_sensitive else "ci"
        key = f"{pattern_type.value}:{sensitivity}:{source}"
        return self._cache.get_or_create(key, lambda: self._build(source, pattern_type))

    def _build(self, source: str, pattern_type: PatternType) -> CompiledPattern:
        flags = 0 if self._case_sensitive else re.IGNORECASE

        if pattern_type == PatternType.GLOB:
            regex = compile_extglob(source, flags)
        else:
            regex = compile_regex(source, flags)

        return CompiledPattern(source=source, pattern_type=pattern_type, regex=regex)

    def get_stats(self):
        """Get statistics of the underlying cache."""
        return self._cache.get_stats()

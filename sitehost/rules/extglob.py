#!/usr/bin/env python3
r"""Extended glob (extglob) compiler.

Translates an extglob pattern into a Python regular expression in a single
left-to-right scan:

    *        any run of characters except "/"
    **       any run of characters including "/"
    **/      zero or more whole path segments (at the start or after "/")
    /**      "/" followed by anything, or nothing (at the end)
    ?        one character except "/"
    *(a|b)   zero or more, +(..) one or more, ?(..) optional, @(..) exactly one
    [...]    character class, "!" or "^" negates, [:alpha:] style names
    \X       literal X

Groups nest and are capturing, numbered by their opening position, so
rule destinations can refer to them. A "(" that does not follow a group
operator, and a ")" or "|" outside any group, are literal characters.

Example:
    >>> pattern = compile_extglob("/assets/**/*.@(js|css)")
    >>> bool(pattern.match("/assets/v2/app.css"))
    True
    >>> bool(pattern.match("/assets/v2/app.css.map"))
    False
"""

import re
import string
from enum import Enum
from typing import List, Optional

from sitehost.core.constants import ErrorCode

# Group operator -> regex quantifier applied to the closed group
GROUP_QUANTIFIERS = {"*": "*", "+": "+", "?": "?", "@": ""}

NEGATION_OPERATOR = "!"

MATCH_EVERYTHING = "**"

# POSIX bracket expressions; Python's re has no [:name:] syntax
POSIX_CLASSES = {
    "alnum": "a-zA-Z0-9",
    "alpha": "a-zA-Z",
    "ascii": "\\x00-\\x7f",
    "blank": " \\t",
    "cntrl": "\\x00-\\x1f\\x7f",
    "digit": "0-9",
    "graph": "\\x21-\\x7e",
    "lower": "a-z",
    "print": "\\x20-\\x7e",
    "punct": "".join("\\" + c for c in string.punctuation),
    "space": " \\t\\n\\r\\f\\v",
    "upper": "A-Z",
    "word": "\\w",
    "xdigit": "0-9A-Fa-f",
}

# Characters with set-operation meaning inside a Python character class
_CLASS_SPECIALS = "[&~|"


class CompileFailure(Enum):
    """Why a pattern could not be compiled."""

    TRAILING_ESCAPE = "trailing escape"
    UNCLOSED_GROUP = "unclosed group"
    UNCLOSED_CHARACTER_CLASS = "unclosed character class"
    UNSUPPORTED_NEGATION = "unsupported negation group"
    UNKNOWN_CHARACTER_CLASS = "unknown character class"
    INVALID_REGEX = "invalid regular expression"


class PatternError(Exception):
    """A rule pattern failed to compile."""

    def __init__(
        self,
        pattern: str,
        reason: CompileFailure,
        position: Optional[int] = None,
        detail: Optional[str] = None,
        error_code: ErrorCode = ErrorCode.INVALID_INPUT,
    ):
        self.pattern = pattern
        self.reason = reason
        self.position = position
        self.error_code = error_code

        message = f"{reason.value} in pattern {pattern!r}"
        if position is not None:
            message += f" at position {position}"
        if detail:
            message += f": {detail}"
        self.message = message
        super().__init__(message)


class _GlobScanner:
    """Recursive-descent scanner state for one pattern."""

    def __init__(self, glob: str):
        self.glob = glob
        self.pos = 0
        self.depth = 0
        self.out: List[str] = []
        self._open_groups: List[int] = []

    def fail(self, reason: CompileFailure, position: int) -> PatternError:
        return PatternError(self.glob, reason, position)

    def peek(self, offset: int = 1) -> str:
        index = self.pos + offset
        return self.glob[index] if index < len(self.glob) else ""

    def scan(self) -> str:
        self._expression()
        return "".join(self.out)

    def _expression(self) -> None:
        glob = self.glob

        while self.pos < len(glob):
            char = glob[self.pos]
            following = self.peek()

            if char == "\\":
                if not following:
                    raise self.fail(CompileFailure.TRAILING_ESCAPE, self.pos)
                self.out.append(re.escape(following))
                self.pos += 2

            elif char in GROUP_QUANTIFIERS and following == "(":
                self._group(GROUP_QUANTIFIERS[char])

            elif char == NEGATION_OPERATOR and following == "(":
                raise self.fail(CompileFailure.UNSUPPORTED_NEGATION, self.pos)

            elif char == "*" and following == "*":
                self._globstar()

            elif char == "*":
                self.out.append("[^/]*")
                self.pos += 1

            elif char == "?":
                self.out.append("[^/]")
                self.pos += 1

            elif char == "/" and glob[self.pos + 1:] == MATCH_EVERYTHING:
                # trailing "/**" also matches the directory itself
                self.out.append("(?:/.*)?")
                self.pos = len(glob)

            elif char == ")" and self.depth > 0:
                self.out.append(")")
                self.pos += 1
                self.depth -= 1
                self._open_groups.pop()
                return

            elif char == "|" and self.depth > 0:
                self.out.append("|")
                self.pos += 1

            elif char == "[":
                self._character_class()

            else:
                self.out.append(re.escape(char))
                self.pos += 1

        if self.depth > 0:
            raise self.fail(CompileFailure.UNCLOSED_GROUP, self._open_groups[-1])

    def _group(self, quantifier: str) -> None:
        self._open_groups.append(self.pos)
        self.depth += 1
        self.pos += 2
        self.out.append("(")
        self._expression()
        self.out.append(quantifier)

    def _globstar(self) -> None:
        at_segment_start = self.pos == 0 or self.glob[self.pos - 1] == "/"
        after = self.pos + 2

        if at_segment_start and self.glob.startswith("/", after):
            self.out.append("(?:.*/)?")
            self.pos = after + 1
        else:
            self.out.append(".*")
            self.pos = after

    def _character_class(self) -> None:
        glob = self.glob
        start = self.pos
        parts = ["["]
        self.pos += 1

        if self.pos < len(glob) and glob[self.pos] in "!^":
            parts.append("^")
            self.pos += 1
        if self.pos < len(glob) and glob[self.pos] in "]-":
            parts.append("\\" + glob[self.pos])
            self.pos += 1

        while self.pos < len(glob):
            if glob.startswith("[:", self.pos):
                end = glob.find(":]", self.pos + 2)
                name = glob[self.pos + 2:end] if end >= 0 else ""
                if name.isalpha():
                    if name not in POSIX_CLASSES:
                        raise self.fail(CompileFailure.UNKNOWN_CHARACTER_CLASS, self.pos)
                    parts.append(POSIX_CLASSES[name])
                    self.pos = end + 2
                    continue

            char = glob[self.pos]
            if char == "\\":
                if self.pos + 1 >= len(glob):
                    raise self.fail(CompileFailure.TRAILING_ESCAPE, self.pos)
                parts.append(re.escape(glob[self.pos + 1]))
                self.pos += 2
            elif char == "]":
                parts.append("]")
                self.pos += 1
                self.out.append("".join(parts))
                return
            elif char in _CLASS_SPECIALS:
                parts.append("\\" + char)
                self.pos += 1
            else:
                parts.append(char)
                self.pos += 1

        raise self.fail(CompileFailure.UNCLOSED_CHARACTER_CLASS, start)


def translate(glob: str) -> str:
    """Translate an extglob pattern into an unanchored regex body.

    Callers must anchor the result at both ends; compile_extglob does.

    Args:
        glob: Extglob pattern

    Returns:
        Regular expression source text

    Raises:
        PatternError: If the pattern is malformed
    """
    if glob == MATCH_EVERYTHING:
        return ".*"
    return _GlobScanner(glob).scan()


def anchor(body: str) -> str:
    """Wrap a regex body so it only ever matches a whole string."""
    return rf"\A(?:{body})\Z"


def compile_regex(source: str, flags: int = 0) -> re.Pattern:
    """Compile a raw regular expression anchored at both ends.

    Raises:
        PatternError: If the expression is invalid
    """
    try:
        return re.compile(anchor(source), flags)
    except re.error as e:
        raise PatternError(source, CompileFailure.INVALID_REGEX, e.pos, e.msg)


def compile_extglob(glob: str, flags: int = 0) -> re.Pattern:
    """Compile an extglob pattern into an anchored regex.

    The returned pattern carries \\A and \\Z anchors, so match(), search()
    and fullmatch() all require the whole candidate string to match.

    Args:
        glob: Extglob pattern
        flags: Extra re flags (DOTALL is always set)

    Returns:
        Compiled regular expression

    Raises:
        PatternError: If the pattern is malformed
    """
    body = translate(glob)
    try:
        return re.compile(anchor(body), flags | re.DOTALL)
    except re.error as e:
        # e.g. a reversed range such as [z-a]
        raise PatternError(glob, CompileFailure.INVALID_REGEX, None, e.msg)

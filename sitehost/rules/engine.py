#!/usr/bin/env python3
"""Hosting rule evaluation: redirects, rewrites and custom headers.

This module provides rule-based request handling for SiteHost:
- Redirect rules, first match wins
- Rewrite rules, first match wins, identity when nothing matches
- Header rules, every match applies in order, last write wins per name
- Extglob or regex sources, compiled once through a shared PatternCompiler
- Fail-closed evaluation: a rule that cannot compile aborts the lookup

Example:
    >>> rules = RuleSet.from_document({
    ...     "redirects": [{"source": "/old/**", "destination": "/new", "type": 302}],
    ... })
    >>> rules.match_redirect("/old/page")
    RedirectMatch(status=302, location='/new', ...)
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, MutableMapping, Optional, Tuple

from sitehost.core.constants import DEFAULT_REDIRECT_STATUS, ErrorCode, SiteKey
from sitehost.core.validators import ValidationError, validate_site_rules
from sitehost.rules.patterns import CompiledPattern, PatternCompiler, PatternType


class RuleAction(Enum):
    """Action to take when rule matches."""

    REDIRECT = "redirect"  # Answer with an HTTP redirect
    REWRITE = "rewrite"  # Serve another object for this path
    HEADERS = "headers"  # Add response headers


class RuleError(Exception):
    """A hosting rule definition is malformed."""

    def __init__(self, message: str, error_code: ErrorCode = ErrorCode.INVALID_INPUT):
        self.message = message
        self.error_code = error_code
        super().__init__(message)


@dataclass
class Rule:
    """A hosting rule: a source pattern and what to do on a match."""

    action: RuleAction
    source: str
    pattern_type: PatternType = PatternType.GLOB
    destination: Optional[str] = None
    status: int = DEFAULT_REDIRECT_STATUS
    headers: List[Tuple[str, str]] = field(default_factory=list)
    name: Optional[str] = None


@dataclass(frozen=True)
class RedirectMatch:
    """Outcome of a matching redirect rule."""

    status: int
    location: str
    rule: Rule


class RuleSet:
    """Ordered redirect, rewrite and header rules for one site.

    Rules keep their configured order within each action. Compiled
    patterns come from the PatternCompiler, so a source shared by many
    sites is compiled once per process.
    """

    def __init__(self, compiler: Optional[PatternCompiler] = None):
        """Initialize rule set.

        Args:
            compiler: Pattern compiler (a private one if None)
        """
        self._compiler = compiler or PatternCompiler()
        self._rules: Dict[RuleAction, List[Rule]] = {action: [] for action in RuleAction}

    @classmethod
    def from_document(
        cls, document: Dict[str, Any], compiler: Optional[PatternCompiler] = None
    ) -> "RuleSet":
        """Build a rule set from a hosting document.

        The document uses firebase.json shapes:
        ``redirects: [{source|regex, destination, type}]``,
        ``rewrites: [{source|regex, destination}]``,
        ``headers: [{source|regex, headers: [{key, value}]}]``.

        Args:
            document: Per-host hosting document
            compiler: Shared pattern compiler

        Returns:
            Populated rule set

        Raises:
            RuleError: If a rule entry is malformed
        """
        try:
            validate_site_rules(document)
        except ValidationError as e:
            raise RuleError(str(e), e.error_code)

        rule_set = cls(compiler)

        for entry in document.get(SiteKey.REDIRECTS) or []:
            rule_set.add_rule(
                _rule_from_entry(
                    RuleAction.REDIRECT,
                    entry,
                    destination=entry[SiteKey.DESTINATION],
                    status=entry.get(SiteKey.TYPE) or DEFAULT_REDIRECT_STATUS,
                )
            )

        for entry in document.get(SiteKey.REWRITES) or []:
            rule_set.add_rule(
                _rule_from_entry(RuleAction.REWRITE, entry, destination=entry[SiteKey.DESTINATION])
            )

        for entry in document.get(SiteKey.HEADERS) or []:
            pairs = [(h[SiteKey.KEY], str(h[SiteKey.VALUE])) for h in entry[SiteKey.HEADERS]]
            rule_set.add_rule(_rule_from_entry(RuleAction.HEADERS, entry, headers=pairs))

        return rule_set

    def add_rule(self, rule: Rule) -> None:
        """Append rule after existing rules of the same action."""
        self._rules[rule.action].append(rule)

    def get_rules(self, action: Optional[RuleAction] = None) -> List[Rule]:
        """Get rules, for one action or all of them in action order."""
        if action is not None:
            return list(self._rules[action])
        return [rule for action_rules in self._rules.values() for rule in action_rules]

    def compile_all(self) -> int:
        """Compile every rule pattern now.

        Returns:
            Number of patterns compiled or found in cache

        Raises:
            PatternError: On the first pattern that fails
        """
        rules = self.get_rules()
        for rule in rules:
            self._pattern(rule)
        return len(rules)

    def _pattern(self, rule: Rule) -> CompiledPattern:
        return self._compiler.compile(rule.source, rule.pattern_type)

    def _first_match(self, action: RuleAction, path: str):
        for rule in self._rules[action]:
            # PatternError propagates: a broken rule must not be skipped
            pattern = self._pattern(rule)
            match = pattern.match(path)
            if match is not None:
                return rule, pattern, match
        return None

    def match_redirect(self, path: str) -> Optional[RedirectMatch]:
        """Find the redirect for path.

        Args:
            path: "/"-rooted request path

        Returns:
            RedirectMatch of the first matching rule, or None

        Raises:
            PatternError: If a rule consulted before the match is malformed
        """
        found = self._first_match(RuleAction.REDIRECT, path)
        if found is None:
            return None

        rule, pattern, match = found
        return RedirectMatch(
            status=rule.status,
            location=pattern.expand(rule.destination, match),
            rule=rule,
        )

    def match_rewrite(self, path: str) -> str:
        """Rewrite path using the first matching rewrite rule.

        Args:
            path: "/"-rooted request path

        Returns:
            The rewritten destination, or path itself when nothing matches

        Raises:
            PatternError: If a rule consulted before the match is malformed
        """
        found = self._first_match(RuleAction.REWRITE, path)
        if found is None:
            return path

        rule, pattern, match = found
        return pattern.expand(rule.destination, match) or path

    def apply_headers(self, path: str, sink: MutableMapping[str, str]) -> int:
        """Set the headers of every matching header rule on sink.

        Rules apply in order, so a later rule overrides an earlier value
        for the same header. sink should compare names case-insensitively
        (hosting.headers.Headers does).

        Args:
            path: "/"-rooted request path
            sink: Header mapping to update

        Returns:
            Number of header rules that matched

        Raises:
            PatternError: If any header rule is malformed; sink may then hold
                headers from earlier rules and must be discarded
        """
        matched = 0
        for rule in self._rules[RuleAction.HEADERS]:
            if self._pattern(rule).matches(path):
                matched += 1
                for name, value in rule.headers:
                    sink[name] = value
        return matched

    def __len__(self) -> int:
        """Return number of rules."""
        return sum(len(rules) for rules in self._rules.values())


def _rule_from_entry(action: RuleAction, entry: Dict[str, Any], **fields) -> Rule:
    if SiteKey.REGEX in entry:
        source, pattern_type = entry[SiteKey.REGEX], PatternType.REGEX
    else:
        source, pattern_type = entry[SiteKey.SOURCE], PatternType.GLOB

    return Rule(
        action=action,
        source=source,
        pattern_type=pattern_type,
        name=entry.get("name"),
        **fields,
    )

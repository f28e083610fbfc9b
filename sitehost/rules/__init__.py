"""SiteHost Rules System.

This module provides extglob compilation and hosting rule evaluation:
- compile_extglob: Extended glob to anchored regex
- PatternCompiler: Cached compilation of rule sources
- RuleSet: Redirect, rewrite and header rules of one site
"""

from .engine import RedirectMatch, Rule, RuleAction, RuleError, RuleSet
from .extglob import CompileFailure, PatternError, compile_extglob, translate
from .patterns import CompiledPattern, PatternCompiler, PatternType

__all__ = [
    # Extglob
    "CompileFailure",
    "PatternError",
    "compile_extglob",
    "translate",
    # Pattern compilation
    "PatternType",
    "CompiledPattern",
    "PatternCompiler",
    # Rule evaluation
    "RuleAction",
    "Rule",
    "RuleError",
    "RedirectMatch",
    "RuleSet",
]

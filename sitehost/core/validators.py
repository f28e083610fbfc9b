"""
SiteHost Foundation: Input Validators.

This module provides validation functions for the process configuration,
hosting documents, rule patterns and request paths. Validators raise
ValidationError on the first problem and return True otherwise.
"""
from typing import Any, Dict, Union

from sitehost.core.constants import (
    REDIRECT_STATUSES,
    ConfigKey,
    ErrorCode,
    Limits,
    RuleKind,
    SiteKey,
)

# Hosting document keys that take a string value
_STRING_SITE_KEYS = (SiteKey.MAIN_PAGE_SUFFIX, SiteKey.NOT_FOUND_PAGE, SiteKey.BUCKET)

# Hosting document keys that take a boolean value
_BOOLEAN_SITE_KEYS = (SiteKey.CLEAN_URLS, SiteKey.TRAILING_SLASH, SiteKey.MUTABLE)


class ValidationError(Exception):
    """Base exception for validation errors."""

    def __init__(self, message: str, error_code: ErrorCode = ErrorCode.INVALID_INPUT):
        """Initialize ValidationError.

        Args:
            message: Error message
            error_code: Associated error code
        """
        super().__init__(message)
        self.error_code = error_code


def validate_server_config(server: Dict[str, Any]) -> bool:
    """Validate the ``sitehost.server`` section.

    Args:
        server: Server configuration dictionary

    Returns:
        True if valid

    Raises:
        ValidationError: If configuration is invalid
    """
    if not isinstance(server, dict):
        raise ValidationError("Server configuration must be a dictionary")

    host = server.get(ConfigKey.SERVER_HOST)
    if host is not None and not isinstance(host, str):
        raise ValidationError(f"Server host must be string: {host!r}")

    if ConfigKey.SERVER_PORT in server:
        validate_port(server[ConfigKey.SERVER_PORT])

    return True


def validate_cache_config(cache: Dict[str, Any]) -> bool:
    """Validate the ``sitehost.cache`` section.

    Args:
        cache: Cache configuration dictionary

    Returns:
        True if valid

    Raises:
        ValidationError: If cache config is invalid
    """
    if not isinstance(cache, dict):
        raise ValidationError("Cache configuration must be a dictionary")

    valid_regions = {ConfigKey.CACHE_PATTERNS, ConfigKey.CACHE_SITES}
    unknown = set(cache.keys()) - valid_regions
    if unknown:
        raise ValidationError(f"Unknown cache regions: {', '.join(sorted(unknown))}")

    for region, settings in cache.items():
        if not isinstance(settings, dict):
            raise ValidationError(f"Cache region {region} must be a dictionary")

        max_entries = settings.get(ConfigKey.CACHE_MAX_ENTRIES)
        if max_entries is not None:
            valid = isinstance(max_entries, int) and not isinstance(max_entries, bool)
            if not valid or max_entries <= 0:
                raise ValidationError(
                    f"Cache {region} max_entries must be positive integer: {max_entries!r}"
                )

    return True


def validate_hosting_document(document: Dict[str, Any]) -> bool:
    """Validate a hosting document: a mapping of hostname to site entry.

    Args:
        document: Parsed hosting document

    Returns:
        True if valid

    Raises:
        ValidationError: If any site entry is invalid
    """
    if not isinstance(document, dict):
        raise ValidationError("Hosting document must be a mapping of hostname to site")

    for hostname, site in document.items():
        if not isinstance(hostname, str) or not hostname:
            raise ValidationError(f"Invalid hostname in hosting document: {hostname!r}")
        try:
            validate_site_document(site)
        except ValidationError as e:
            raise ValidationError(f"Invalid site {hostname}: {e}", e.error_code)

    return True


def validate_site_document(site: Dict[str, Any]) -> bool:
    """Validate one site entry of a hosting document.

    Args:
        site: Site dictionary (firebase.json ``hosting`` shape)

    Returns:
        True if valid

    Raises:
        ValidationError: If site is invalid
    """
    if not isinstance(site, dict):
        raise ValidationError("Site must be a dictionary")

    for key in _STRING_SITE_KEYS:
        value = site.get(key)
        if value is not None and (not isinstance(value, str) or not value):
            raise ValidationError(f"{key} must be a non-empty string: {value!r}")

    for key in _BOOLEAN_SITE_KEYS:
        value = site.get(key)
        if value is not None and not isinstance(value, bool):
            raise ValidationError(f"{key} must be boolean: {value!r}")

    return validate_site_rules(site)


def validate_site_rules(site: Dict[str, Any]) -> bool:
    """Validate the redirects, rewrites and headers lists of a site.

    Args:
        site: Site dictionary

    Returns:
        True if valid

    Raises:
        ValidationError: If a rule is invalid
    """
    for kind in RuleKind:
        rules = site.get(kind.value)
        if rules is None:
            continue

        if not isinstance(rules, list):
            raise ValidationError(f"{kind.value} must be a list")

        if len(rules) > Limits.MAX_RULES_PER_KIND:
            raise ValidationError(
                f"Too many {kind.value} ({len(rules)} > {Limits.MAX_RULES_PER_KIND})"
            )

        for i, rule in enumerate(rules):
            try:
                validate_rule_config(kind, rule)
            except ValidationError as e:
                raise ValidationError(f"Invalid {kind.value} entry at index {i}: {e}", e.error_code)

    return True


def validate_rule_config(kind: RuleKind, rule: Dict[str, Any]) -> bool:
    """Validate one rule entry.

    Args:
        kind: Which list the rule came from
        rule: Rule configuration dictionary

    Returns:
        True if valid

    Raises:
        ValidationError: If rule is invalid
    """
    if not isinstance(rule, dict):
        raise ValidationError("Rule must be a dictionary")

    has_source = SiteKey.SOURCE in rule
    has_regex = SiteKey.REGEX in rule

    if has_source == has_regex:
        raise ValidationError("Rule must have exactly one of 'source' or 'regex'")

    validate_pattern(rule[SiteKey.SOURCE if has_source else SiteKey.REGEX])

    if kind in (RuleKind.REDIRECT, RuleKind.REWRITE):
        destination = rule.get(SiteKey.DESTINATION)
        if not isinstance(destination, str) or not destination:
            raise ValidationError("Rule must have a non-empty 'destination'")

    if kind == RuleKind.REDIRECT and rule.get(SiteKey.TYPE) is not None:
        status = rule[SiteKey.TYPE]
        valid = isinstance(status, int) and not isinstance(status, bool)
        if not valid or status not in REDIRECT_STATUSES:
            raise ValidationError(
                f"Invalid redirect type: {status!r}. Must be one of {sorted(REDIRECT_STATUSES)}"
            )

    if kind == RuleKind.HEADERS:
        headers = rule.get(SiteKey.HEADERS)
        if not isinstance(headers, list) or not headers:
            raise ValidationError("Header rule must have a non-empty 'headers' list")
        for header in headers:
            validate_header_pair(header)

    return True


def validate_header_pair(header: Dict[str, Any]) -> bool:
    """Validate a ``{key, value}`` header entry.

    Raises:
        ValidationError: If the name is not a valid token or the value is missing
    """
    if not isinstance(header, dict):
        raise ValidationError("Header must be a dictionary with 'key' and 'value'")

    name = header.get(SiteKey.KEY)
    if not isinstance(name, str) or not name:
        raise ValidationError(f"Header key must be a non-empty string: {name!r}")

    if any(c in name for c in " \t\r\n:") or not name.isprintable():
        raise ValidationError(f"Invalid header name: {name!r}")

    value = header.get(SiteKey.VALUE)
    if value is None or isinstance(value, (dict, list)):
        raise ValidationError(f"Header {name} must have a scalar 'value'")

    if any(c in str(value) for c in "\r\n"):
        raise ValidationError(f"Header {name} value contains line breaks")

    return True


def validate_pattern(pattern: str) -> bool:
    """Validate a glob or regex pattern before compiling it.

    Args:
        pattern: Pattern to validate

    Returns:
        True if valid

    Raises:
        ValidationError: If pattern is invalid
    """
    if not isinstance(pattern, str):
        raise ValidationError(f"Pattern must be string, got {type(pattern)}")

    if not pattern:
        raise ValidationError("Pattern cannot be empty")

    # Check length
    if len(pattern) > Limits.MAX_PATTERN_LENGTH:
        raise ValidationError(f"Pattern exceeds maximum length ({Limits.MAX_PATTERN_LENGTH})")

    # Check for null bytes
    if "\0" in pattern:
        raise ValidationError("Invalid pattern: contains null bytes")

    return True


def validate_request_path(path: str) -> bool:
    """Validate a decoded request path.

    Args:
        path: Path to validate

    Returns:
        True if valid

    Raises:
        ValidationError: If path is invalid
    """
    if not isinstance(path, str):
        raise ValidationError(f"Path must be string, got {type(path)}")

    if not path.startswith("/"):
        raise ValidationError(f"Path must start with '/': {path!r}")

    if len(path) > Limits.MAX_PATH_LENGTH:
        raise ValidationError(f"Path exceeds maximum length ({Limits.MAX_PATH_LENGTH})")

    # Check for control characters
    if any(ord(c) < 32 or ord(c) == 127 for c in path):
        raise ValidationError("Path contains control characters")

    if not is_canonical_path(path):
        raise ValidationError(f"Path has empty or dot segments: {path!r}")

    return True


def is_canonical_path(path: str) -> bool:
    """Check that a rooted path has no empty, "." or ".." segments.

    A single trailing "/" is allowed, so "/" and "/docs/" are canonical
    while "//docs", "/./docs" and "/docs/../x" are not.
    """
    if not path.startswith("/"):
        return False
    segments = path[1:].split("/")
    if any(segment in ("", ".", "..") for segment in segments[:-1]):
        return False
    return segments[-1] not in (".", "..")


def validate_port(port: Union[int, str]) -> bool:
    """Validate network port number.

    Port 0 asks the OS for a free port.

    Args:
        port: Port number to validate

    Returns:
        True if valid

    Raises:
        ValidationError: If port is invalid
    """
    try:
        port_num = int(port)
    except (ValueError, TypeError):
        raise ValidationError(f"Port must be numeric, got {type(port)}")

    if port_num < 0 or port_num > 65535:
        raise ValidationError(f"Port must be in range 0-65535, got {port_num}")

    return True

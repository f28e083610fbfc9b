"""
SiteHost Foundation: Constants

This module provides system-wide constants, error codes and header bundles
shared by the rule engine, the hosting layer and the server.
"""
from enum import Enum, IntEnum
from typing import Dict

# Version information
SITEHOST_VERSION = "1.0.0"


# Error codes (0-6 range)
class ErrorCode(IntEnum):
    """Standardized error codes for SiteHost operations."""

    SUCCESS = 0  # Operation completed successfully
    INVALID_INPUT = 1  # Bad pattern, invalid configuration
    NOT_FOUND = 2  # Object or site doesn't exist
    PERMISSION_DENIED = 3  # Store refused access
    CONFLICT = 4  # Precondition failed
    DEPENDENCY_ERROR = 5  # Store or config source unavailable
    INTERNAL_ERROR = 6  # Bug in SiteHost or malformed metadata


# Resource limits and defaults
class Limits:
    """System resource limits and default values."""

    # Pattern limits
    MAX_PATTERN_LENGTH = 4096
    MAX_RULES_PER_KIND = 1000

    # Path limits
    MAX_PATH_LENGTH = 4096

    # Cache configuration
    PATTERN_CACHE_ENTRIES = 10000
    SITE_CACHE_ENTRIES = 1000

    # Streaming
    STREAM_CHUNK_SIZE = 64 * 1024

    # Server
    DEFAULT_HOST = "127.0.0.1"
    DEFAULT_PORT = 8080


class HttpMethod:
    """Request methods accepted by the hosting layer."""

    GET = "GET"
    HEAD = "HEAD"

    ALLOWED = (GET, HEAD)
    ALLOW_HEADER = "GET, HEAD"


# Redirect statuses a rule may request
REDIRECT_STATUSES = frozenset({301, 302, 303, 307, 308})
DEFAULT_REDIRECT_STATUS = 301

# Status used when a redirect result arrives without one
FALLBACK_REDIRECT_STATUS = 307

# Baseline headers sent with every successful response
SECURITY_HEADERS: Dict[str, str] = {
    "Content-Security-Policy": (
        "default-src * 'unsafe-eval' 'unsafe-inline' data: blob: filesystem: about: ws: wss:"
    ),
    "Referrer-Policy": "strict-origin-when-cross-origin",
    "Strict-Transport-Security": "max-age=86400",
    "X-Content-Type-Options": "nosniff",
    "X-Download-Options": "noopen",
    "X-Frame-Options": "SAMEORIGIN",
    "X-Xss-Protection": "1; mode=block",
}

# Object metadata copied onto responses; anything else stays internal
RESOURCE_HEADERS = (
    "Cache-Control",
    "Content-Type",
    "Content-Language",
    "Content-Disposition",
)

IDENTITY_ENCODING = "identity"


# Rule kinds in a hosting document
class RuleKind(Enum):
    """Kinds of hosting rules."""

    REDIRECT = "redirects"
    REWRITE = "rewrites"
    HEADERS = "headers"


# Configuration keys
class ConfigKey:
    """Configuration key constants."""

    # Top-level keys
    ROOT = "sitehost"
    SERVER = "server"
    STORE = "store"
    HOSTING = "hosting"
    CACHE = "cache"
    LOGGING = "logging"

    # Server configuration
    SERVER_HOST = "host"
    SERVER_PORT = "port"

    # Store configuration
    STORE_ROOT = "root"

    # Hosting configuration
    HOSTING_FILE = "file"
    HOSTING_MUTABLE = "mutable"

    # Cache configuration
    CACHE_PATTERNS = "patterns"
    CACHE_SITES = "sites"
    CACHE_MAX_ENTRIES = "max_entries"


# Hosting document keys (firebase.json style)
class SiteKey:
    """Keys accepted in a per-host hosting document."""

    MAIN_PAGE_SUFFIX = "mainPageSuffix"
    NOT_FOUND_PAGE = "notFoundPage"
    REDIRECTS = "redirects"
    REWRITES = "rewrites"
    HEADERS = "headers"
    CLEAN_URLS = "cleanUrls"
    TRAILING_SLASH = "trailingSlash"
    MUTABLE = "mutable"
    BUCKET = "bucket"

    SOURCE = "source"
    REGEX = "regex"
    DESTINATION = "destination"
    TYPE = "type"
    KEY = "key"
    VALUE = "value"

    DEFAULT_HOST = "*"


# Default hosting values
DEFAULT_MAIN_PAGE_SUFFIX = "index.html"
DEFAULT_NOT_FOUND_PAGE = "404.html"

# Default configuration values
DEFAULT_CONFIG = {
    ConfigKey.ROOT: {
        ConfigKey.SERVER: {
            ConfigKey.SERVER_HOST: Limits.DEFAULT_HOST,
            ConfigKey.SERVER_PORT: Limits.DEFAULT_PORT,
        },
        ConfigKey.STORE: {
            ConfigKey.STORE_ROOT: None,
        },
        ConfigKey.HOSTING: {
            ConfigKey.HOSTING_FILE: None,
            ConfigKey.HOSTING_MUTABLE: True,
        },
        ConfigKey.CACHE: {
            ConfigKey.CACHE_PATTERNS: {ConfigKey.CACHE_MAX_ENTRIES: Limits.PATTERN_CACHE_ENTRIES},
            ConfigKey.CACHE_SITES: {ConfigKey.CACHE_MAX_ENTRIES: Limits.SITE_CACHE_ENTRIES},
        },
        ConfigKey.LOGGING: {
            "level": "INFO",
            "file": None,
        },
    }
}

#!/usr/bin/env python3
"""Per-host site configuration.

A hosting document maps hostnames to firebase.json-style site entries:

    example.com:
      mainPageSuffix: index.html
      notFoundPage: 404.html
      cleanUrls: true
      redirects:
        - {source: "/old/**", destination: "/new", type: 302}
    "*":
      trailingSlash: false

The "*" entry serves any host without an entry of its own. Each host's
SiteConfig is built on first use and cached until the registry is cleared.
"""

import threading
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Protocol

from sitehost.core.cache import LRUCache
from sitehost.core.config import ConfigError, load_yaml_document
from sitehost.core.constants import (
    DEFAULT_MAIN_PAGE_SUFFIX,
    DEFAULT_NOT_FOUND_PAGE,
    ConfigKey,
    ErrorCode,
    SiteKey,
)
from sitehost.core.logging import get_logger
from sitehost.core.validators import (
    ValidationError,
    validate_hosting_document,
    validate_site_document,
)
from sitehost.rules.engine import RuleError, RuleSet
from sitehost.rules.patterns import PatternCompiler


class SiteConfigError(Exception):
    """A site's configuration cannot be built."""

    def __init__(
        self, hostname: str, message: str, error_code: ErrorCode = ErrorCode.INVALID_INPUT
    ):
        self.hostname = hostname
        self.message = message
        self.error_code = error_code
        super().__init__(f"{hostname}: {message}")


def normalize_host(host: Optional[str]) -> str:
    """Lower-case a Host header value and drop its port and trailing dot."""
    host = (host or "").strip().lower()

    if host.startswith("["):
        # IPv6 literal, [::1]:8080
        host = host[: host.find("]") + 1] if "]" in host else host
    elif ":" in host:
        host = host.rsplit(":", 1)[0]

    return host.rstrip(".")


@dataclass
class SiteConfig:
    """Hosting settings for one hostname."""

    hostname: str
    bucket: str
    main_page_suffix: str = DEFAULT_MAIN_PAGE_SUFFIX
    not_found_page: Optional[str] = DEFAULT_NOT_FOUND_PAGE
    rules: RuleSet = field(default_factory=RuleSet)
    clean_urls: bool = False
    trailing_slash: Optional[bool] = None
    mutable: bool = True

    @property
    def main_page_key(self) -> str:
        return "/" + self.main_page_suffix

    @property
    def not_found_key(self) -> Optional[str]:
        if not self.not_found_page:
            return None
        return "/" + self.not_found_page.lstrip("/")

    @classmethod
    def from_document(
        cls,
        hostname: str,
        document: Dict[str, Any],
        compiler: Optional[PatternCompiler] = None,
        default_mutable: bool = True,
    ) -> "SiteConfig":
        """Build a site from its hosting document entry.

        Args:
            hostname: Host the site is served for
            document: Site entry
            compiler: Shared pattern compiler
            default_mutable: mutable flag when the entry does not set one

        Returns:
            Site configuration

        Raises:
            SiteConfigError: If the entry is malformed
        """
        try:
            validate_site_document(document)
            rules = RuleSet.from_document(document, compiler)
        except (ValidationError, RuleError) as e:
            raise SiteConfigError(hostname, str(e), e.error_code)

        mutable = document.get(SiteKey.MUTABLE)

        return cls(
            hostname=hostname,
            bucket=document.get(SiteKey.BUCKET) or hostname,
            main_page_suffix=document.get(SiteKey.MAIN_PAGE_SUFFIX) or DEFAULT_MAIN_PAGE_SUFFIX,
            not_found_page=document.get(SiteKey.NOT_FOUND_PAGE, DEFAULT_NOT_FOUND_PAGE),
            rules=rules,
            clean_urls=bool(document.get(SiteKey.CLEAN_URLS, False)),
            trailing_slash=document.get(SiteKey.TRAILING_SLASH),
            mutable=default_mutable if mutable is None else mutable,
        )


class SiteConfigSource(Protocol):
    """Where site configurations come from."""

    def load(self, hostname: str, compiler: PatternCompiler) -> SiteConfig:
        """Build the SiteConfig for hostname.

        Raises:
            SiteConfigError: If the configuration is missing or malformed
        """
        ...


class FileSiteConfigSource:
    """Reads sites from a YAML or JSON hosting document.

    The document is read once and kept until reload(). Without a file,
    every host gets the default site.
    """

    def __init__(self, hosting_file: Optional[str] = None, default_mutable: bool = True):
        """Initialize source.

        Args:
            hosting_file: Path to the hosting document
            default_mutable: mutable flag for sites that do not set one
        """
        self.hosting_file = hosting_file
        self.default_mutable = default_mutable
        self.logger = get_logger()
        self._document: Optional[Dict[str, Any]] = None
        self._lock = threading.Lock()

    def document(self) -> Dict[str, Any]:
        """The parsed hosting document.

        Raises:
            SiteConfigError: If the file cannot be read or validated
        """
        with self._lock:
            if self._document is None:
                self._document = self._read()
            return self._document

    def _read(self) -> Dict[str, Any]:
        if not self.hosting_file:
            return {}

        try:
            document = load_yaml_document(self.hosting_file)
            validate_hosting_document(document)
        except ConfigError as e:
            raise SiteConfigError(SiteKey.DEFAULT_HOST, e.message, e.error_code)
        except ValidationError as e:
            raise SiteConfigError(SiteKey.DEFAULT_HOST, str(e), e.error_code)

        self.logger.info(
            "Loaded hosting document", file=self.hosting_file, sites=len(document)
        )
        return {str(host).lower(): site for host, site in document.items()}

    def reload(self) -> None:
        """Re-read the hosting document on next use."""
        with self._lock:
            self._document = None

    def configure(self, settings: Dict[str, Any]) -> None:
        """Apply a ``sitehost.hosting`` section and re-read on next use."""
        mutable = settings.get(ConfigKey.HOSTING_MUTABLE)
        with self._lock:
            self.hosting_file = settings.get(ConfigKey.HOSTING_FILE)
            self.default_mutable = True if mutable is None else mutable
            self._document = None

    def hostnames(self) -> List[str]:
        """Hostnames with an entry of their own ("*" included)."""
        return list(self.document().keys())

    def load(self, hostname: str, compiler: PatternCompiler) -> SiteConfig:
        document = self.document()
        site = document.get(hostname)
        if site is None:
            site = document.get(SiteKey.DEFAULT_HOST, {})

        return SiteConfig.from_document(hostname, site, compiler, self.default_mutable)


class SiteRegistry:
    """Caches one SiteConfig per hostname, built once on first request."""

    def __init__(self, source: SiteConfigSource, cache: LRUCache, compiler: PatternCompiler):
        """Initialize registry.

        Args:
            source: Site configuration source
            cache: Cache for built configurations
            compiler: Pattern compiler shared by every site's rules
        """
        self.source = source
        self.cache = cache
        self.compiler = compiler

    def get(self, hostname: str) -> SiteConfig:
        """Get the site for hostname, building it on first use.

        Concurrent first requests for one host build it once. A failed
        build is not cached, so the next request retries.

        Raises:
            SiteConfigError: If the site cannot be built
        """
        return self.cache.get_or_create(hostname, lambda: self.source.load(hostname, self.compiler))

    def clear(self) -> None:
        """Forget every built site."""
        self.cache.clear()

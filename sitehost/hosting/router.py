#!/usr/bin/env python3
"""Request router: turns a hosting request into exactly one result.

Every request ends as one of three results, which the HTTP layer writes:
- Redirect(location, status)
- ErrorResponse(status, message, headers)
- Content(status, headers, body)

Request flow:
1. Only GET and HEAD are served (405 otherwise, before any lookup)
2. Site configuration for the host (built once per host)
3. Configured redirects, then cleanUrls / trailingSlash normalization
4. Object resolution, falling back to the site's not-found page
5. Conditional request evaluation (304 / 412)
6. Security, resource and rule-injected headers
7. Body from blob delivery (identity encoding, Range aware) or the store

Example:
    >>> router = RequestRouter(store, LocalBlobDelivery(store), FileSiteConfigSource("sites.yaml"))
    >>> router.handle(HostingRequest("GET", "example.com", "/"))
    Content(status=200, ...)
"""

import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Iterator, Optional, Union

from sitehost.core.cache import CacheManager, CacheRegion
from sitehost.core.constants import SECURITY_HEADERS, ErrorCode, HttpMethod
from sitehost.core.logging import Logger, get_logger
from sitehost.core.validators import ValidationError, validate_request_path
from sitehost.hosting.conditions import (
    ConditionOutcome,
    evaluate,
    format_http_date,
    forwarded_range,
)
from sitehost.hosting.headers import Headers
from sitehost.hosting.resolver import HTML_SUFFIX, ObjectResolver, ResolvedObject
from sitehost.hosting.site import SiteConfig, SiteConfigError, SiteConfigSource, SiteRegistry
from sitehost.hosting.store import BlobDelivery, ObjectNotFound, ObjectStore, StoreError
from sitehost.rules.engine import RuleError
from sitehost.rules.extglob import PatternError
from sitehost.rules.patterns import PatternCompiler


@dataclass(frozen=True)
class HostingRequest:
    """The parts of an HTTP request the router looks at."""

    method: str
    host: str
    path: str
    query: str = ""
    headers: Headers = field(default_factory=Headers)


@dataclass(frozen=True)
class Redirect:
    """Redirect to location; a missing status is written as 307."""

    location: str
    status: Optional[int] = None


@dataclass(frozen=True)
class ErrorResponse:
    """Error status with an optional message (status text otherwise).

    headers only carries what the error itself defines, such as Allow.
    """

    status: int
    message: Optional[str] = None
    headers: Dict[str, str] = field(default_factory=dict)


@dataclass
class Content:
    """A response with headers and a lazily read body."""

    status: int
    headers: Headers
    body: Iterator[bytes] = field(default_factory=lambda: iter(()))


HostingResult = Union[Redirect, ErrorResponse, Content]


class RequestRouter:
    """Routes hosting requests for every site served by one store."""

    def __init__(
        self,
        store: ObjectStore,
        delivery: BlobDelivery,
        site_source: SiteConfigSource,
        caches: Optional[CacheManager] = None,
        logger: Optional[Logger] = None,
    ):
        """Initialize router.

        Args:
            store: Object store holding every site's bucket
            delivery: Blob delivery for identity-encoded objects
            site_source: Source of per-host site configuration
            caches: Cache manager (a new one if None)
            logger: Logger (the global one if None)
        """
        self.store = store
        self.delivery = delivery
        self.caches = caches or CacheManager()
        self.logger = logger or get_logger()

        self.compiler = PatternCompiler(self.caches.region(CacheRegion.PATTERNS))
        self.sites = SiteRegistry(site_source, self.caches.region(CacheRegion.SITES), self.compiler)
        self.resolver = ObjectResolver(store)

        self._stats = {
            "requests": 0,
            "content": 0,
            "not_modified": 0,
            "redirects": 0,
            "not_found": 0,
            "errors": 0,
        }
        self._stats_lock = threading.Lock()

    def handle(self, request: HostingRequest) -> HostingResult:
        """Produce the result for one request. Never raises for bad input or config."""
        result = self._route(request)
        self._count(result)
        return result

    def _route(self, request: HostingRequest) -> HostingResult:
        if request.method not in HttpMethod.ALLOWED:
            return ErrorResponse(405, headers={"Allow": HttpMethod.ALLOW_HEADER})

        try:
            validate_request_path(request.path)
        except ValidationError as e:
            self.logger.debug("Rejected request path", host=request.host, error=str(e))
            return ErrorResponse(400)

        with self.logger.add_context(host=request.host, path=request.path):
            try:
                return self._serve(request)
            except (PatternError, RuleError, SiteConfigError) as e:
                self.logger.error(
                    "Site configuration error", error=str(e), error_code=e.error_code.name
                )
                return ErrorResponse(500)
            except StoreError as e:
                self.logger.error(
                    "Object store error", error=e.message, error_code=e.error_code.name
                )
                return ErrorResponse(e.status if e.status >= 400 else 500)

    def _serve(self, request: HostingRequest) -> HostingResult:
        site = self.sites.get(request.host)
        path = request.path

        redirect = site.rules.match_redirect(path)
        if redirect is not None:
            self.logger.debug(
                "Redirect rule matched", location=redirect.location, status=redirect.status
            )
            return Redirect(redirect.location, redirect.status)

        normalized = normalize_path(site, path)
        if normalized != path:
            location = normalized + ("?" + request.query if request.query else "")
            return Redirect(location, 301)

        try:
            resolved = self.resolver.resolve(site, path)
        except ObjectNotFound:
            self.logger.debug("Object not found")
            return self._not_found(site)

        return self._respond(request, site, resolved)

    def _respond(
        self, request: HostingRequest, site: SiteConfig, resolved: ResolvedObject
    ) -> HostingResult:
        metadata = resolved.metadata
        outcome = evaluate(request.headers, metadata.etag, metadata.last_modified, site.mutable)

        if outcome == ConditionOutcome.ERROR:
            self.logger.error(
                "Object has unusable validators",
                key=resolved.key,
                etag=metadata.etag,
                error_code=ErrorCode.INTERNAL_ERROR.name,
            )
            return ErrorResponse(500)

        if outcome == ConditionOutcome.PRECONDITION_FAILED:
            return ErrorResponse(412)

        if outcome == ConditionOutcome.NOT_MODIFIED:
            headers = Headers([("Etag", metadata.etag)])
            if metadata.cache_control:
                headers["Cache-Control"] = metadata.cache_control
            return Content(304, headers)

        headers = Headers(SECURITY_HEADERS.items())
        headers["Etag"] = metadata.etag
        if site.mutable:
            headers["Last-Modified"] = format_http_date(datetime.now(timezone.utc))
        else:
            headers["Last-Modified"] = metadata.last_modified
        for name, value in metadata.resource_headers().items():
            headers[name] = value

        injected = Headers()
        site.rules.apply_headers(request.path, injected)
        for name, value in injected.items():
            headers[name] = value

        if not metadata.identity_encoded:
            return Content(200, headers, self.store.get(site.bucket, resolved.key))

        byte_range = forwarded_range(
            request.headers, metadata.etag, metadata.last_modified, site.mutable
        )
        delivery = self.delivery.deliver(site.bucket, resolved.key, byte_range)
        if delivery.status >= 400:
            return ErrorResponse(delivery.status, headers=dict(delivery.headers))

        for name, value in delivery.headers.items():
            headers[name] = value
        return Content(delivery.status, headers, delivery.chunks)

    def _not_found(self, site: SiteConfig) -> HostingResult:
        key = site.not_found_key
        if key is None:
            return ErrorResponse(404)

        try:
            metadata = self.store.head(site.bucket, key)
            body = self.store.get(site.bucket, key)
        except ObjectNotFound:
            return ErrorResponse(404)
        except StoreError as e:
            self.logger.warning("Cannot fetch not-found page", key=key, error=e.message)
            return ErrorResponse(404)

        headers = Headers()
        for name in ("Content-Type", "Content-Language", "Content-Disposition"):
            value = metadata.resource_headers().get(name)
            if value:
                headers[name] = value
        return Content(404, headers, body)

    def _count(self, result: HostingResult) -> None:
        if isinstance(result, Redirect):
            kind = "redirects"
        elif isinstance(result, ErrorResponse):
            kind = "not_found" if result.status == 404 else "errors"
        elif result.status == 304:
            kind = "not_modified"
        elif result.status == 404:
            kind = "not_found"
        else:
            kind = "content"

        with self._stats_lock:
            self._stats["requests"] += 1
            self._stats[kind] += 1

    def reload(self) -> None:
        """Drop every cached site so the next request rebuilds it."""
        self.sites.clear()
        self.logger.info("Site configurations cleared")

    def get_stats(self) -> Dict[str, Any]:
        """Request counters and cache statistics."""
        with self._stats_lock:
            stats: Dict[str, Any] = dict(self._stats)
        stats["cache"] = self.caches.get_stats()
        return stats


def normalize_path(site: SiteConfig, path: str) -> str:
    """Canonical form of path under the site's cleanUrls / trailingSlash settings.

    cleanUrls drops ".html" ("/about.html" -> "/about") and a trailing main
    page ("/docs/index.html" -> "/docs/"). trailingSlash true appends "/" to
    paths whose last segment has no extension; false strips it.
    """
    normalized = path

    if site.clean_urls and normalized.endswith(HTML_SUFFIX):
        if normalized.endswith(site.main_page_key):
            normalized = normalized[: -len(site.main_page_suffix)]
        else:
            normalized = normalized[: -len(HTML_SUFFIX)]

    if site.trailing_slash is True and not normalized.endswith("/"):
        if "." not in normalized.rsplit("/", 1)[-1]:
            normalized += "/"
    elif site.trailing_slash is False and len(normalized) > 1 and normalized.endswith("/"):
        normalized = normalized.rstrip("/") or "/"

    return normalized or "/"

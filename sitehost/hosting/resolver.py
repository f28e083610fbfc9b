#!/usr/bin/env python3
"""Maps a request path to a stored object.

Lookup order for a site:
1. "/" (or "") becomes the main page, e.g. "/index.html"
2. The not-found page itself is never served directly
3. The path as given
4. Directory index: "/docs" or "/docs/" -> "/docs/index.html", also when
   "/docs/" is a zero-length folder marker
5. With cleanUrls, "/about" or "/about/" -> "/about.html"
6. The first matching rewrite rule, applied to the original path

Store failures other than a missing object propagate unchanged.
"""

from dataclasses import dataclass
from typing import Optional

from sitehost.core.logging import get_logger
from sitehost.hosting.site import SiteConfig
from sitehost.hosting.store import ObjectMetadata, ObjectNotFound, ObjectStore

HTML_SUFFIX = ".html"


@dataclass(frozen=True)
class ResolvedObject:
    """A stored object chosen to answer a request."""

    key: str
    metadata: ObjectMetadata


class ObjectResolver:
    """Resolves request paths against one object store."""

    def __init__(self, store: ObjectStore):
        self.store = store
        self.logger = get_logger()

    def resolve(self, site: SiteConfig, path: str) -> ResolvedObject:
        """Find the object serving path on site.

        Args:
            site: Site configuration
            path: Decoded, "/"-rooted request path

        Returns:
            Resolved object key and metadata

        Raises:
            ObjectNotFound: If no candidate exists
            StoreError: If the store fails
            PatternError: If a rewrite rule is malformed
        """
        resolved = self._lookup(site, path)
        if resolved is not None:
            return resolved

        rewritten = site.rules.match_rewrite(path)
        if rewritten != path:
            if not rewritten.startswith("/"):
                rewritten = "/" + rewritten
            resolved = self._lookup(site, rewritten)
            if resolved is not None:
                self.logger.debug("Rewrote path", host=site.hostname, path=path, key=resolved.key)
                return resolved

        raise ObjectNotFound(site.bucket, path)

    def _lookup(self, site: SiteConfig, path: str) -> Optional[ResolvedObject]:
        key = path
        if len(key) <= 1:
            key = site.main_page_key
        if len(key) <= 1 or key == site.not_found_key:
            return None

        metadata = self._head(site.bucket, key)
        if metadata is None or (key.endswith("/") and metadata.zero_length):
            key = key.rstrip("/") + site.main_page_key
            metadata = self._head(site.bucket, key)

        if metadata is None and site.clean_urls and len(path) > 1:
            key = path.rstrip("/") + HTML_SUFFIX
            if key != site.not_found_key:
                metadata = self._head(site.bucket, key)

        if metadata is None:
            return None
        return ResolvedObject(key=key, metadata=metadata)

    def _head(self, bucket: str, key: str) -> Optional[ObjectMetadata]:
        try:
            return self.store.head(bucket, key)
        except ObjectNotFound:
            return None

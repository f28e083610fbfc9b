"""SiteHost Hosting Layer.

This module maps requests onto stored objects:
- ObjectStore / LocalObjectStore: Object metadata and content
- SiteConfig / SiteRegistry: Per-host settings and rules
- ObjectResolver: Index, clean URL and rewrite fallbacks
- evaluate: Conditional request outcomes
- RequestRouter: One HostingResult per request
"""

from .conditions import ConditionOutcome, evaluate, forwarded_range, parse_http_date
from .headers import Headers, canonical_header
from .resolver import ObjectResolver, ResolvedObject
from .router import Content, ErrorResponse, HostingRequest, Redirect, RequestRouter
from .site import FileSiteConfigSource, SiteConfig, SiteConfigError, SiteRegistry
from .store import LocalBlobDelivery, LocalObjectStore, ObjectMetadata, ObjectNotFound, StoreError

__all__ = [
    # Conditions
    "ConditionOutcome",
    "evaluate",
    "forwarded_range",
    "parse_http_date",
    # Headers
    "Headers",
    "canonical_header",
    # Resolution
    "ObjectResolver",
    "ResolvedObject",
    # Routing
    "HostingRequest",
    "Redirect",
    "ErrorResponse",
    "Content",
    "RequestRouter",
    # Sites
    "SiteConfig",
    "SiteConfigError",
    "FileSiteConfigSource",
    "SiteRegistry",
    # Store
    "ObjectMetadata",
    "ObjectNotFound",
    "StoreError",
    "LocalObjectStore",
    "LocalBlobDelivery",
]

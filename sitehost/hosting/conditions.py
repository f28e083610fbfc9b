#!/usr/bin/env python3
"""HTTP conditional request evaluation.

Decides between proceeding, 304 Not Modified, 412 Precondition Failed and
an internal error from a resource's validators (ETag, Last-Modified) and
the request's If-* headers.

If-Match / If-Unmodified-Since are consulted as a pair, the first taking
precedence over the second; likewise If-None-Match / If-Modified-Since.

A mutable resource may change between the validation and the transfer,
so strong precondition checks against it always fail.

Example:
    >>> headers = Headers([("If-None-Match", '"abc"')])
    >>> evaluate(headers, '"abc"', "Sun, 06 Nov 1994 08:49:37 GMT")
    <ConditionOutcome.NOT_MODIFIED: 304>
"""

from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from enum import IntEnum
from typing import Optional

from sitehost.hosting.headers import Headers

ANY_ETAG = "*"


class ConditionOutcome(IntEnum):
    """Result of conditional evaluation, valued by the HTTP status it implies."""

    PROCEED = 200
    NOT_MODIFIED = 304
    PRECONDITION_FAILED = 412
    ERROR = 500


def parse_http_date(value: Optional[str]) -> Optional[datetime]:
    """Parse an HTTP date (RFC 1123, RFC 850 or asctime) into aware UTC.

    Args:
        value: Header value

    Returns:
        Parsed datetime, or None when value is missing or unparseable
    """
    if not value:
        return None

    try:
        parsed = parsedate_to_datetime(value)
    except (TypeError, ValueError, IndexError):
        return None

    if parsed is None:
        return None
    if parsed.tzinfo is None:
        # asctime carries no zone; HTTP dates are always GMT
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def format_http_date(moment: datetime) -> str:
    """Format an aware datetime as an RFC 1123 HTTP date."""
    return moment.astimezone(timezone.utc).strftime("%a, %d %b %Y %H:%M:%S GMT")


def _any_matches(candidates, etag: str) -> bool:
    return any(value == ANY_ETAG or etag in value for value in candidates)


def evaluate(
    headers: Headers, etag: Optional[str], last_modified: Optional[str], mutable: bool = False
) -> ConditionOutcome:
    """Evaluate the request's conditional headers against a resource.

    Args:
        headers: Request headers (repeated headers keep every value)
        etag: Quoted entity tag of the resource
        last_modified: Last-Modified of the resource as an HTTP date
        mutable: Whether the resource may change between requests

    Returns:
        ConditionOutcome for the request
    """
    modified = parse_http_date(last_modified)
    if not etag or not etag.startswith('"') or modified is None:
        return ConditionOutcome.ERROR

    if "If-Match" in headers:
        candidates = headers.get_all("If-Match")
        if not any(value == ANY_ETAG or (etag in value and not mutable) for value in candidates):
            return ConditionOutcome.PRECONDITION_FAILED
    else:
        since = parse_http_date(headers.get("If-Unmodified-Since"))
        if since is not None and (modified > since or mutable):
            return ConditionOutcome.PRECONDITION_FAILED

    if "If-None-Match" in headers:
        if _any_matches(headers.get_all("If-None-Match"), etag):
            return ConditionOutcome.NOT_MODIFIED
    else:
        since = parse_http_date(headers.get("If-Modified-Since"))
        if since is not None and modified <= since:
            return ConditionOutcome.NOT_MODIFIED

    return ConditionOutcome.PROCEED


def forwarded_range(
    headers: Headers, etag: Optional[str], last_modified: Optional[str], mutable: bool = False
) -> Optional[str]:
    """The Range header to hand to blob delivery, if any.

    The range is dropped when If-Range names a different representation,
    and always for mutable resources.
    """
    byte_range = headers.get("Range")
    if not byte_range or mutable:
        return None

    condition = headers.get("If-Range")
    if condition and condition != etag and condition != last_modified:
        return None

    return byte_range

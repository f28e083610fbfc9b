#!/usr/bin/env python3
"""Object store boundary and the local filesystem backend.

Defines the protocols the hosting layer reads content through:
- ObjectStore: metadata lookup (head) and full-object stream (get)
- BlobDelivery: byte-range aware streaming of identity-encoded objects

LocalObjectStore keeps one directory per bucket under a root directory.
Keys are "/"-rooted paths; a directory addressed with a trailing "/"
reports as a zero-length marker object, the way bucket-style stores
represent folders.

Example:
    >>> store = LocalObjectStore("/srv/sites")
    >>> store.head("example.com", "/index.html").content_type
    'text/html'
"""

import bz2
import gzip
import lzma
import mimetypes
import os
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Dict, Iterator, Optional, Protocol, runtime_checkable

from sitehost.core.constants import IDENTITY_ENCODING, RESOURCE_HEADERS, ErrorCode, Limits
from sitehost.core.logging import get_logger
from sitehost.core.validators import is_canonical_path
from sitehost.hosting.conditions import format_http_date

DEFAULT_CONTENT_TYPE = "application/octet-stream"

# Stored encodings get() transcodes back to the original bytes
DECODERS: Dict[str, Callable] = {
    "gzip": gzip.open,
    "bzip2": bz2.open,
    "xz": lzma.open,
}

BYTE_RANGE = re.compile(r"^bytes=(\d*)-(\d*)$")


class StoreError(Exception):
    """The object store failed or returned unusable metadata."""

    def __init__(
        self,
        message: str,
        status: int = 500,
        error_code: ErrorCode = ErrorCode.DEPENDENCY_ERROR,
    ):
        self.message = message
        self.status = status
        self.error_code = error_code
        super().__init__(message)


class ObjectNotFound(Exception):
    """The requested object does not exist."""

    def __init__(self, bucket: str, key: str):
        self.bucket = bucket
        self.key = key
        self.error_code = ErrorCode.NOT_FOUND
        super().__init__(f"Object not found: {bucket}{key}")


@dataclass(frozen=True)
class ObjectMetadata:
    """Metadata of a stored object, as returned by head()."""

    key: str
    etag: Optional[str]
    last_modified: Optional[str]
    size: int = 0
    content_type: Optional[str] = None
    cache_control: Optional[str] = None
    content_language: Optional[str] = None
    content_disposition: Optional[str] = None
    content_encoding: str = IDENTITY_ENCODING

    @property
    def zero_length(self) -> bool:
        return self.size == 0

    @property
    def identity_encoded(self) -> bool:
        return self.content_encoding == IDENTITY_ENCODING

    def resource_headers(self) -> Dict[str, str]:
        """Allow-listed headers copied onto responses, present values only."""
        values = (
            self.cache_control,
            self.content_type,
            self.content_language,
            self.content_disposition,
        )
        return {name: value for name, value in zip(RESOURCE_HEADERS, values) if value}


@dataclass
class Delivery:
    """A blob ready to stream: status, framing headers and body chunks."""

    status: int
    headers: Dict[str, str] = field(default_factory=dict)
    chunks: Iterator[bytes] = field(default_factory=lambda: iter(()))


@runtime_checkable
class ObjectStore(Protocol):
    """Read-only object store interface."""

    def head(self, bucket: str, key: str) -> ObjectMetadata:
        """Probe an object.

        Raises:
            ObjectNotFound: If the object does not exist
            StoreError: On any other failure
        """
        ...

    def get(self, bucket: str, key: str) -> Iterator[bytes]:
        """Stream an object's decoded content.

        Raises:
            ObjectNotFound: If the object does not exist
            StoreError: On any other failure
        """
        ...


@runtime_checkable
class BlobDelivery(Protocol):
    """Streams identity-encoded objects, honoring a forwarded Range."""

    def deliver(self, bucket: str, key: str, byte_range: Optional[str]) -> Delivery:
        ...


class LocalObjectStore:
    """Directory-per-bucket object store on the local filesystem."""

    def __init__(self, root: str, cache_control: Optional[str] = None):
        """Initialize store.

        Args:
            root: Directory holding one subdirectory per bucket
            cache_control: Cache-Control reported for every object
        """
        self.root = os.path.realpath(os.path.expanduser(root))
        self.cache_control = cache_control
        self.logger = get_logger()

    def path_for(self, bucket: str, key: str) -> str:
        """Filesystem path of an object.

        Keys are rooted and canonical: "//a" or "/./a" never aliases "/a".

        Raises:
            ObjectNotFound: If bucket or key would escape the bucket directory
        """
        if not bucket or bucket in (".", "..") or "/" in bucket or "\0" in bucket + key:
            raise ObjectNotFound(bucket, key)
        if not is_canonical_path(key):
            raise ObjectNotFound(bucket, key)

        bucket_dir = os.path.join(self.root, bucket)
        path = os.path.realpath(os.path.join(bucket_dir, key[1:]))

        if path != bucket_dir and not path.startswith(bucket_dir + os.sep):
            self.logger.warning("Rejected key outside bucket", bucket=bucket, key=key)
            raise ObjectNotFound(bucket, key)

        return path

    def head(self, bucket: str, key: str) -> ObjectMetadata:
        path = self.path_for(bucket, key)

        try:
            stat = os.stat(path)
        except (FileNotFoundError, NotADirectoryError):
            raise ObjectNotFound(bucket, key)
        except PermissionError as e:
            raise StoreError(
                f"Access denied to {bucket}{key}: {e}", 403, ErrorCode.PERMISSION_DENIED
            )
        except OSError as e:
            raise StoreError(f"Cannot stat {bucket}{key}: {e}")

        if os.path.isdir(path):
            if not key.endswith("/"):
                raise ObjectNotFound(bucket, key)
            size = 0
            content_type, encoding = None, None
        elif key.endswith("/"):
            raise ObjectNotFound(bucket, key)
        else:
            size = stat.st_size
            content_type, encoding = mimetypes.guess_type(path)

        modified = datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc)

        return ObjectMetadata(
            key=key,
            etag=f'"{stat.st_mtime_ns:x}-{size:x}"',
            last_modified=format_http_date(modified),
            size=size,
            content_type=content_type or DEFAULT_CONTENT_TYPE,
            cache_control=self.cache_control,
            content_encoding=encoding or IDENTITY_ENCODING,
        )

    def get(self, bucket: str, key: str) -> Iterator[bytes]:
        path = self.path_for(bucket, key)
        if key.endswith("/") or not os.path.isfile(path):
            raise ObjectNotFound(bucket, key)

        _, encoding = mimetypes.guess_type(path)
        opener = DECODERS.get(encoding or "", open)
        return self.read_range(path, 0, None, opener)

    def read_range(
        self, path: str, offset: int, length: Optional[int], opener: Callable = open
    ) -> Iterator[bytes]:
        """Read length bytes of a file from offset in chunks (to EOF if None)."""
        remaining = length
        with opener(path, "rb") as f:
            if offset:
                f.seek(offset)
            while remaining is None or remaining > 0:
                size = Limits.STREAM_CHUNK_SIZE
                if remaining is not None:
                    size = min(size, remaining)
                chunk = f.read(size)
                if not chunk:
                    break
                if remaining is not None:
                    remaining -= len(chunk)
                yield chunk


class LocalBlobDelivery:
    """Serves local objects with single byte-range support."""

    def __init__(self, store: LocalObjectStore):
        self.store = store

    def deliver(self, bucket: str, key: str, byte_range: Optional[str]) -> Delivery:
        """Prepare a full (200), partial (206) or unsatisfiable (416) delivery.

        Args:
            bucket: Bucket name
            key: Object key
            byte_range: Forwarded Range header, or None

        Returns:
            Delivery whose chunks read the file lazily

        Raises:
            ObjectNotFound: If the object vanished
            StoreError: If it cannot be read
        """
        path = self.store.path_for(bucket, key)

        try:
            size = os.path.getsize(path)
        except (FileNotFoundError, NotADirectoryError):
            raise ObjectNotFound(bucket, key)
        except OSError as e:
            raise StoreError(f"Cannot read {bucket}{key}: {e}")

        headers = {"Accept-Ranges": "bytes"}
        span = parse_byte_range(byte_range, size) if byte_range else None

        if span is None:
            headers["Content-Length"] = str(size)
            return Delivery(200, headers, self.store.read_range(path, 0, None))

        start, end = span
        if start >= size or start > end:
            return Delivery(416, {"Content-Range": f"bytes */{size}"})

        length = end - start + 1
        headers["Content-Length"] = str(length)
        headers["Content-Range"] = f"bytes {start}-{end}/{size}"
        return Delivery(206, headers, self.store.read_range(path, start, length))


def parse_byte_range(header: str, size: int):
    """Parse a single ``bytes=`` range against an object size.

    Returns:
        (start, end) inclusive, clamped to the object, or None when the
        header is malformed or lists several ranges (served whole)
    """
    match = BYTE_RANGE.match(header.strip())
    if not match:
        return None

    first, last = match.groups()
    if not first and not last:
        return None

    if not first:
        # suffix range: the final N bytes
        suffix = int(last)
        if suffix == 0:
            return size, size
        return max(size - suffix, 0), size - 1

    start = int(first)
    end = int(last) if last else size - 1
    if end < start:
        return None
    return start, min(end, size - 1)

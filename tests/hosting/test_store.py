#!/usr/bin/env python3
"""Tests for the local object store and blob delivery."""

import os

import pytest

from sitehost.hosting.conditions import parse_http_date
from sitehost.hosting.store import (
    BlobDelivery,
    LocalBlobDelivery,
    LocalObjectStore,
    ObjectMetadata,
    ObjectNotFound,
    ObjectStore,
    StoreError,
    parse_byte_range,
)


class TestObjectMetadata:
    """Tests for ObjectMetadata."""

    def test_resource_headers_skip_missing(self):
        """Test only present values are copied."""
        metadata = ObjectMetadata(
            key="/a", etag='"1"', last_modified=None, content_type="text/plain", content_language="en"
        )
        assert metadata.resource_headers() == {"Content-Type": "text/plain", "Content-Language": "en"}

    def test_flags(self):
        """Test zero_length and identity_encoded."""
        metadata = ObjectMetadata(key="/a", etag=None, last_modified=None)
        assert metadata.zero_length
        assert metadata.identity_encoded
        assert not ObjectMetadata(key="/a", etag=None, last_modified=None, content_encoding="gzip").identity_encoded


class TestLocalObjectStore:
    """Tests for LocalObjectStore."""

    def test_implements_protocol(self, store):
        """Test the store satisfies ObjectStore."""
        assert isinstance(store, ObjectStore)
        assert isinstance(LocalBlobDelivery(store), BlobDelivery)

    def test_head_file(self, store):
        """Test metadata of a regular file."""
        metadata = store.head("example.com", "/index.html")
        assert metadata.key == "/index.html"
        assert metadata.size == len("<h1>Home</h1>")
        assert metadata.content_type == "text/html"
        assert metadata.cache_control == "public, max-age=60"
        assert metadata.identity_encoded
        assert metadata.etag.startswith('"') and metadata.etag.endswith('"')
        assert parse_http_date(metadata.last_modified) is not None

    def test_etag_changes_with_content(self, store, site_root):
        """Test the etag tracks modification."""
        before = store.head("example.com", "/about.html").etag
        path = site_root / "example.com" / "about.html"
        path.write_text("<h1>About us</h1>")
        stat = path.stat()
        os.utime(path, ns=(stat.st_atime_ns, stat.st_mtime_ns + 1_000_000_000))
        assert store.head("example.com", "/about.html").etag != before

    def test_head_missing(self, store):
        """Test missing objects."""
        with pytest.raises(ObjectNotFound) as exc_info:
            store.head("example.com", "/nope.html")
        assert exc_info.value.bucket == "example.com"
        assert exc_info.value.key == "/nope.html"

    def test_head_missing_bucket(self, store):
        """Test a bucket that does not exist."""
        with pytest.raises(ObjectNotFound):
            store.head("nowhere.example", "/index.html")

    def test_directory_marker(self, store):
        """Test a directory addressed with a trailing slash is a zero-length object."""
        metadata = store.head("example.com", "/empty/")
        assert metadata.zero_length

    def test_directory_without_slash_missing(self, store):
        """Test a directory addressed without a slash is not an object."""
        with pytest.raises(ObjectNotFound):
            store.head("example.com", "/docs")

    def test_file_with_slash_missing(self, store):
        """Test a file addressed with a trailing slash is not an object."""
        with pytest.raises(ObjectNotFound):
            store.head("example.com", "/about.html/")

    def test_encoded_object(self, store):
        """Test compressed files report their encoding."""
        metadata = store.head("example.com", "/page.html.gz")
        assert metadata.content_encoding == "gzip"
        assert metadata.content_type == "text/html"
        assert not metadata.identity_encoded

    @pytest.mark.parametrize(
        "bucket,key",
        [
            ("example.com", "/../default/index.html"),
            ("..", "/example.com/index.html"),
            ("", "/index.html"),
            ("a/b", "/index.html"),
            ("example.com", "/index.html\0"),
            ("example.com", "//index.html"),
            ("example.com", "/./index.html"),
            ("example.com", "/docs//guide.html"),
            ("example.com", "index.html"),
        ],
    )
    def test_traversal_rejected(self, store, bucket, key):
        """Test keys cannot leave their bucket."""
        with pytest.raises(ObjectNotFound):
            store.path_for(bucket, key)

    def test_symlink_escape_rejected(self, store, site_root, temp_dir):
        """Test symlinks pointing outside the bucket are rejected."""
        outside = temp_dir / "secret.txt"
        outside.write_text("secret")
        os.symlink(outside, site_root / "example.com" / "link.txt")
        with pytest.raises(ObjectNotFound):
            store.head("example.com", "/link.txt")

    def test_get_identity(self, store):
        """Test reading a plain object."""
        assert b"".join(store.get("example.com", "/about.html")) == b"<h1>About</h1>"

    def test_get_decodes(self, store):
        """Test get() decodes stored encodings."""
        assert b"".join(store.get("example.com", "/page.html.gz")) == b"<h1>Zipped</h1>"

    def test_get_directory_missing(self, store):
        """Test get() of a directory."""
        with pytest.raises(ObjectNotFound):
            store.get("example.com", "/empty/")

    def test_read_range(self, store, site_root):
        """Test partial reads."""
        path = str(site_root / "example.com" / "data.bin")
        assert b"".join(store.read_range(path, 10, 5)) == bytes(range(10, 15))
        assert b"".join(store.read_range(path, 250, None)) == bytes(range(250, 256))

    def test_permission_error(self, store, monkeypatch):
        """Test permission failures become 403 store errors."""

        def deny(path):
            raise PermissionError("denied")

        monkeypatch.setattr(os, "stat", deny)
        with pytest.raises(StoreError) as exc_info:
            store.head("example.com", "/index.html")
        assert exc_info.value.status == 403


class TestParseByteRange:
    """Tests for parse_byte_range()."""

    @pytest.mark.parametrize(
        "header,expected",
        [
            ("bytes=0-9", (0, 9)),
            ("bytes=10-", (10, 99)),
            ("bytes=-10", (90, 99)),
            ("bytes=-500", (0, 99)),
            ("bytes=90-500", (90, 99)),
            ("bytes=200-300", (200, 99)),
            ("bytes=9-0", None),
            ("bytes=-", None),
            ("bytes=0-1,5-6", None),
            ("items=0-1", None),
        ],
    )
    def test_ranges(self, header, expected):
        """Test single range parsing against a 100-byte object."""
        assert parse_byte_range(header, 100) == expected


class TestLocalBlobDelivery:
    """Tests for LocalBlobDelivery."""

    def test_full(self, store):
        """Test unranged delivery."""
        delivery = LocalBlobDelivery(store).deliver("example.com", "/data.bin", None)
        assert delivery.status == 200
        assert delivery.headers == {"Accept-Ranges": "bytes", "Content-Length": "256"}
        assert b"".join(delivery.chunks) == bytes(range(256))

    def test_partial(self, store):
        """Test a satisfiable range."""
        delivery = LocalBlobDelivery(store).deliver("example.com", "/data.bin", "bytes=16-31")
        assert delivery.status == 206
        assert delivery.headers["Content-Range"] == "bytes 16-31/256"
        assert delivery.headers["Content-Length"] == "16"
        assert b"".join(delivery.chunks) == bytes(range(16, 32))

    def test_suffix(self, store):
        """Test a suffix range."""
        delivery = LocalBlobDelivery(store).deliver("example.com", "/data.bin", "bytes=-4")
        assert delivery.status == 206
        assert b"".join(delivery.chunks) == bytes(range(252, 256))

    def test_unsatisfiable(self, store):
        """Test a range past the end."""
        delivery = LocalBlobDelivery(store).deliver("example.com", "/data.bin", "bytes=300-400")
        assert delivery.status == 416
        assert delivery.headers == {"Content-Range": "bytes */256"}

    def test_malformed_range_served_whole(self, store):
        """Test malformed ranges are ignored."""
        delivery = LocalBlobDelivery(store).deliver("example.com", "/data.bin", "bytes=abc")
        assert delivery.status == 200

    def test_missing(self, store):
        """Test delivering a missing object."""
        with pytest.raises(ObjectNotFound):
            LocalBlobDelivery(store).deliver("example.com", "/gone.bin", None)

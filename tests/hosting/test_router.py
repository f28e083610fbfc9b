#!/usr/bin/env python3
"""Tests for the request router."""

import pytest
import yaml

from sitehost.core.constants import SECURITY_HEADERS
from sitehost.hosting.conditions import parse_http_date
from sitehost.hosting.headers import Headers
from sitehost.hosting.router import (
    Content,
    ErrorResponse,
    HostingRequest,
    Redirect,
    RequestRouter,
    normalize_path,
)
from sitehost.hosting.site import FileSiteConfigSource, SiteConfig
from sitehost.hosting.store import LocalBlobDelivery, ObjectMetadata, ObjectNotFound, StoreError


def get(router, host, path, *headers, method="GET", query=""):
    return router.handle(HostingRequest(method, host, path, query, Headers(headers)))


def body(result):
    return b"".join(result.body)


def router_for(store, temp_dir, document):
    path = temp_dir / "custom.yaml"
    path.write_text(yaml.dump(document))
    return RequestRouter(store, LocalBlobDelivery(store), FileSiteConfigSource(str(path)))


class TestContent:
    """Tests for successful responses."""

    def test_main_page(self, router):
        """Test "/" serves the main page with full headers."""
        result = get(router, "example.com", "/")
        assert isinstance(result, Content)
        assert result.status == 200
        assert body(result) == b"<h1>Home</h1>"
        assert result.headers["Content-Type"] == "text/html"
        assert result.headers["Cache-Control"] == "public, max-age=60"
        assert result.headers["Content-Length"] == str(len("<h1>Home</h1>"))
        assert result.headers["Accept-Ranges"] == "bytes"
        assert result.headers["Etag"].startswith('"')
        for name, value in SECURITY_HEADERS.items():
            assert result.headers[name] == value

    def test_immutable_last_modified(self, router, store):
        """Test immutable sites report the stored modification time."""
        result = get(router, "example.com", "/about.html")
        assert result.headers["Last-Modified"] == store.head("example.com", "/about.html").last_modified

    def test_head(self, router):
        """Test HEAD routes like GET."""
        result = get(router, "example.com", "/about.html", method="HEAD")
        assert result.status == 200
        assert result.headers["Content-Length"] == str(len("<h1>About</h1>"))

    def test_fallback_site(self, router):
        """Test hosts without an entry use the "*" site."""
        assert body(get(router, "unknown.test", "/")) == b"<h1>Default</h1>"
        assert body(get(router, "", "/")) == b"<h1>Default</h1>"

    def test_rewrite(self, router):
        """Test rewrite rules serve another object."""
        result = get(router, "example.com", "/app/users/1")
        assert result.status == 200
        assert body(result) == b"<h1>Home</h1>"

    def test_encoded_object(self, router):
        """Test encoded objects are decoded through the store."""
        result = get(router, "example.com", "/page.html.gz")
        assert result.status == 200
        assert body(result) == b"<h1>Zipped</h1>"
        assert result.headers["Content-Type"] == "text/html"
        assert "Content-Length" not in result.headers
        assert "Accept-Ranges" not in result.headers


class TestHeaderRules:
    """Tests for rule-injected headers."""

    def test_later_rule_wins(self, router):
        """Test injected headers override object metadata and earlier rules."""
        result = get(router, "example.com", "/assets/app.js")
        assert result.headers.get_all("Cache-Control") == ["no-cache"]
        assert result.headers["X-Custom"] == "1"

    def test_single_rule(self, router):
        """Test one matching rule."""
        result = get(router, "example.com", "/assets/style.css")
        assert result.headers["Cache-Control"] == "max-age=31536000"
        assert "X-Custom" not in result.headers

    def test_rules_use_request_path(self, router):
        """Test header rules see the request path, not the rewritten key."""
        result = get(router, "example.com", "/app/main.js")
        assert body(result) == b"<h1>Home</h1>"
        assert result.headers["Cache-Control"] == "max-age=31536000"


class TestRedirects:
    """Tests for redirect results."""

    def test_first_rule_wins(self, router):
        """Test the first matching redirect applies."""
        result = get(router, "example.com", "/old/special")
        assert result == Redirect("/new", 302)

    def test_capture(self, router):
        """Test captured segments fill the destination."""
        assert get(router, "example.com", "/blog/hello") == Redirect("/posts/hello", 301)

    def test_redirect_before_content(self, router, site_root):
        """Test redirects apply even when an object exists."""
        (site_root / "example.com" / "old").mkdir()
        (site_root / "example.com" / "old" / "index.html").write_text("old")
        assert get(router, "example.com", "/old/") == Redirect("/new", 302)


class TestNormalization:
    """Tests for cleanUrls and trailingSlash redirects."""

    def test_clean_urls_strip_html(self, router):
        """Test .html paths redirect to their clean form."""
        assert get(router, "clean.example.com", "/about.html") == Redirect("/about", 301)

    def test_clean_urls_serve(self, router):
        """Test clean paths serve the .html object."""
        result = get(router, "clean.example.com", "/about")
        assert body(result) == b"<h1>About</h1>"

    def test_index_redirect_keeps_query(self, router):
        """Test the query string survives normalization."""
        result = get(router, "clean.example.com", "/docs/index.html", query="v=2")
        assert result == Redirect("/docs?v=2", 301)

    def test_trailing_slash_false(self, router):
        """Test trailing slashes are stripped."""
        assert get(router, "clean.example.com", "/docs/") == Redirect("/docs", 301)
        assert body(get(router, "clean.example.com", "/docs")) == b"<h1>Docs</h1>"

    def test_root_untouched(self, router):
        """Test "/" is never normalized away."""
        assert get(router, "clean.example.com", "/").status == 200

    @pytest.mark.parametrize(
        "settings,path,expected",
        [
            ({}, "/about.html", "/about.html"),
            ({"cleanUrls": True}, "/about.html", "/about"),
            ({"cleanUrls": True}, "/index.html", "/"),
            ({"cleanUrls": True}, "/docs/index.html", "/docs/"),
            ({"trailingSlash": True}, "/docs", "/docs/"),
            ({"trailingSlash": True}, "/app.js", "/app.js"),
            ({"trailingSlash": True}, "/", "/"),
            ({"trailingSlash": False}, "/docs/", "/docs"),
            ({"trailingSlash": False}, "/", "/"),
            ({"cleanUrls": True, "trailingSlash": True}, "/about.html", "/about/"),
        ],
    )
    def test_normalize_path(self, settings, path, expected):
        """Test normalize_path()."""
        assert normalize_path(SiteConfig.from_document("a.test", settings), path) == expected


class TestNotFound:
    """Tests for missing objects."""

    def test_not_found_page(self, router):
        """Test the site's not-found page is served with 404."""
        result = get(router, "example.com", "/missing")
        assert isinstance(result, Content)
        assert result.status == 404
        assert body(result) == b"<h1>Missing</h1>"
        assert result.headers["Content-Type"] == "text/html"
        assert "Cache-Control" not in result.headers

    def test_not_found_page_not_direct(self, router):
        """Test requesting the not-found page answers 404."""
        assert get(router, "example.com", "/404.html").status == 404

    def test_missing_not_found_page(self, router):
        """Test a plain 404 when the page itself is absent."""
        result = get(router, "unknown.test", "/missing")
        assert result == ErrorResponse(404)

    def test_disabled_not_found_page(self, store, temp_dir):
        """Test notFoundPage: null gives a plain 404."""
        router = router_for(store, temp_dir, {"example.com": {"notFoundPage": None}})
        assert get(router, "example.com", "/missing") == ErrorResponse(404)


class TestConditionalRequests:
    """Tests for conditional requests."""

    def test_not_modified(self, router, store):
        """Test a matching If-None-Match answers 304 with minimal headers."""
        etag = store.head("example.com", "/about.html").etag
        result = get(router, "example.com", "/about.html", ("If-None-Match", etag))
        assert result.status == 304
        assert sorted(name for name, _ in result.headers.items()) == ["Cache-Control", "Etag"]
        assert body(result) == b""

    def test_modified(self, router):
        """Test a stale If-None-Match serves content."""
        result = get(router, "example.com", "/about.html", ("If-None-Match", '"stale"'))
        assert result.status == 200

    def test_precondition_failed(self, router):
        """Test a failed If-Match answers 412."""
        assert get(router, "example.com", "/about.html", ("If-Match", '"stale"')) == ErrorResponse(412)

    def test_mutable_if_match(self, router, store):
        """Test If-Match against a mutable site fails."""
        etag = store.head("default", "/index.html").etag
        assert get(router, "unknown.test", "/", ("If-Match", etag)) == ErrorResponse(412)

    def test_mutable_last_modified_is_now(self, router, store):
        """Test mutable sites report the response time as Last-Modified."""
        result = get(router, "unknown.test", "/")
        stored = parse_http_date(store.head("default", "/index.html").last_modified)
        assert parse_http_date(result.headers["Last-Modified"]) >= stored

    def test_bad_validators(self, temp_dir):
        """Test objects with unusable validators answer 500."""

        class NoEtagStore:
            def head(self, bucket, key):
                if key != "/index.html":
                    raise ObjectNotFound(bucket, key)
                return ObjectMetadata(key=key, etag=None, last_modified=None, size=1)

            def get(self, bucket, key):
                return iter([b"x"])

        store = NoEtagStore()
        router = RequestRouter(store, None, FileSiteConfigSource())
        assert get(router, "a.test", "/") == ErrorResponse(500)


class TestRanges:
    """Tests for byte ranges."""

    def test_partial_content(self, router):
        """Test a Range request on an immutable site."""
        result = get(router, "example.com", "/data.bin", ("Range", "bytes=0-3"))
        assert result.status == 206
        assert result.headers["Content-Range"] == "bytes 0-3/256"
        assert body(result) == bytes(range(4))

    def test_unsatisfiable(self, router):
        """Test ranges past the end answer 416 with Content-Range."""
        result = get(router, "example.com", "/data.bin", ("Range", "bytes=400-"))
        assert isinstance(result, ErrorResponse)
        assert result.status == 416
        assert result.headers == {"Content-Range": "bytes */256"}

    def test_stale_if_range(self, router):
        """Test a stale If-Range serves the whole object."""
        result = get(router, "example.com", "/data.bin", ("Range", "bytes=0-3"), ("If-Range", '"old"'))
        assert result.status == 200

    def test_mutable_ignores_range(self, router):
        """Test mutable sites serve the whole object."""
        result = get(router, "unknown.test", "/", ("Range", "bytes=0-3"))
        assert result.status == 200
        assert body(result) == b"<h1>Default</h1>"


class TestErrors:
    """Tests for error results."""

    @pytest.mark.parametrize("method", ["POST", "PUT", "DELETE", "OPTIONS"])
    def test_method_not_allowed(self, router, method):
        """Test only GET and HEAD are served."""
        result = get(router, "example.com", "/", method=method)
        assert result == ErrorResponse(405, headers={"Allow": "GET, HEAD"})

    @pytest.mark.parametrize("path", ["index.html", "/a\x00b", "/a\nb"])
    def test_bad_path(self, router, path):
        """Test malformed paths answer 400."""
        assert get(router, "example.com", path) == ErrorResponse(400)

    def test_broken_rule(self, store, temp_dir):
        """Test a rule that cannot compile answers 500."""
        router = router_for(
            store, temp_dir, {"example.com": {"redirects": [{"source": "/x/!(a)", "destination": "/y"}]}}
        )
        assert get(router, "example.com", "/index.html") == ErrorResponse(500)

    def test_invalid_site(self, store, temp_dir):
        """Test an invalid site entry answers 500."""
        router = router_for(store, temp_dir, {"example.com": {"cleanUrls": "sometimes"}})
        assert get(router, "example.com", "/") == ErrorResponse(500)

    @pytest.mark.parametrize(
        "path", ["//docs/guide.html", "/./docs/guide.html", "/docs/./guide.html", "/x/../docs/"]
    )
    def test_aliased_path_cannot_skip_rules(self, store, temp_dir, path):
        """Test empty and dot segments answer 400 instead of bypassing rules."""
        router = router_for(
            store,
            temp_dir,
            {"example.com": {"redirects": [{"source": "/docs/**", "destination": "/gone", "type": 302}]}},
        )
        assert get(router, "example.com", "/docs/guide.html") == Redirect("/gone", 302)
        assert get(router, "example.com", path) == ErrorResponse(400)

    @pytest.mark.parametrize("path", ["/./404.html", "//404.html"])
    def test_aliased_not_found_page(self, router, path):
        """Test the not-found page cannot be fetched as ordinary content."""
        assert get(router, "example.com", "/404.html").status == 404
        assert get(router, "example.com", path) == ErrorResponse(400)

    def test_store_error_status(self):
        """Test store failures keep their status."""

        class DeniedStore:
            def head(self, bucket, key):
                raise StoreError("denied", status=403)

            def get(self, bucket, key):
                raise StoreError("denied", status=403)

        router = RequestRouter(DeniedStore(), None, FileSiteConfigSource())
        assert get(router, "a.test", "/index.html") == ErrorResponse(403)


class TestStats:
    """Tests for router statistics and reload."""

    def test_counters(self, router, store):
        """Test results are counted by kind."""
        etag = store.head("example.com", "/about.html").etag
        get(router, "example.com", "/")
        get(router, "example.com", "/about.html", ("If-None-Match", etag))
        get(router, "example.com", "/old/x")
        get(router, "example.com", "/missing")
        get(router, "example.com", "/", method="POST")

        stats = router.get_stats()
        assert stats["requests"] == 5
        assert stats["content"] == 1
        assert stats["not_modified"] == 1
        assert stats["redirects"] == 1
        assert stats["not_found"] == 1
        assert stats["errors"] == 1
        assert stats["cache"]["sites"]["entries"] == 1

    def test_reload(self, router):
        """Test reload() rebuilds sites on next use."""
        first = router.sites.get("example.com")
        router.reload()
        assert router.sites.get("example.com") is not first

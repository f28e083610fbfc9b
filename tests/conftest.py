"""Shared pytest fixtures for SiteHost tests."""
import gzip
import tempfile
from pathlib import Path
from typing import Any, Dict, Generator

import pytest
import yaml

from sitehost.core.cache import CacheManager
from sitehost.hosting.site import FileSiteConfigSource
from sitehost.hosting.store import LocalBlobDelivery, LocalObjectStore
from sitehost.hosting.router import RequestRouter


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def site_root(temp_dir: Path) -> Path:
    """Create a content root with an example.com bucket and a default bucket."""
    root = temp_dir / "sites"
    bucket = root / "example.com"
    bucket.mkdir(parents=True)

    (bucket / "index.html").write_text("<h1>Home</h1>")
    (bucket / "404.html").write_text("<h1>Missing</h1>")
    (bucket / "about.html").write_text("<h1>About</h1>")

    (bucket / "docs").mkdir()
    (bucket / "docs" / "index.html").write_text("<h1>Docs</h1>")
    (bucket / "docs" / "guide.html").write_text("<h1>Guide</h1>")

    # Folder without an index page
    (bucket / "empty").mkdir()

    (bucket / "assets").mkdir()
    (bucket / "assets" / "app.js").write_text("console.log('app');")
    (bucket / "assets" / "style.css").write_text("body { margin: 0; }")

    (bucket / "data.bin").write_bytes(bytes(range(256)))
    (bucket / "page.html.gz").write_bytes(gzip.compress(b"<h1>Zipped</h1>"))

    default = root / "default"
    default.mkdir()
    (default / "index.html").write_text("<h1>Default</h1>")

    return root


@pytest.fixture
def hosting_document() -> Dict[str, Any]:
    """Provide a sample hosting document."""
    return {
        "example.com": {
            "notFoundPage": "404.html",
            "mutable": False,
            "redirects": [
                {"source": "/old/**", "destination": "/new", "type": 302},
                {"source": "/old/special", "destination": "/never"},
                {"source": "/blog/@(*)", "destination": "/posts/:1"},
            ],
            "rewrites": [
                {"source": "/app/**", "destination": "/index.html"},
            ],
            "headers": [
                {
                    "source": "**/*.@(js|css)",
                    "headers": [{"key": "Cache-Control", "value": "max-age=31536000"}],
                },
                {
                    "source": "/assets/app.js",
                    "headers": [
                        {"key": "cache-control", "value": "no-cache"},
                        {"key": "X-Custom", "value": "1"},
                    ],
                },
            ],
        },
        "clean.example.com": {
            "bucket": "example.com",
            "cleanUrls": True,
            "trailingSlash": False,
            "mutable": False,
        },
        "*": {
            "bucket": "default",
        },
    }


@pytest.fixture
def hosting_file(temp_dir: Path, hosting_document: Dict[str, Any]) -> Path:
    """Write the hosting document as YAML."""
    path = temp_dir / "sites.yaml"
    with open(path, "w") as f:
        yaml.dump(hosting_document, f)
    return path


@pytest.fixture
def sample_config(site_root: Path, hosting_file: Path) -> Dict[str, Any]:
    """Provide a sample SiteHost configuration."""
    return {
        "sitehost": {
            "server": {"host": "127.0.0.1", "port": 0},
            "store": {"root": str(site_root)},
            "hosting": {"file": str(hosting_file), "mutable": True},
            "cache": {"patterns": {"max_entries": 100}, "sites": {"max_entries": 10}},
            "logging": {"level": "DEBUG", "file": None},
        }
    }


@pytest.fixture
def config_file(temp_dir: Path, sample_config: Dict[str, Any]) -> Path:
    """Create a configuration file."""
    config_path = temp_dir / "sitehost.yaml"
    with open(config_path, "w") as f:
        yaml.dump(sample_config, f)
    return config_path


@pytest.fixture
def store(site_root: Path) -> LocalObjectStore:
    """Local object store over the test content root."""
    return LocalObjectStore(str(site_root), cache_control="public, max-age=60")


@pytest.fixture
def router(store: LocalObjectStore, hosting_file: Path) -> RequestRouter:
    """Router over the test store and hosting document."""
    return RequestRouter(
        store=store,
        delivery=LocalBlobDelivery(store),
        site_source=FileSiteConfigSource(str(hosting_file)),
        caches=CacheManager(),
    )

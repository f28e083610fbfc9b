#!/usr/bin/env python3
"""Main entry point for the SiteHost server.

This module handles:
- Component initialization (caches, store, site source, router, server)
- Rule checking (--check)
- Signal handling: SIGINT/SIGTERM shut down, SIGHUP reloads configuration
- Cleanup and final statistics on exit

Example:
    >>> from sitehost.main import run_sitehost
    >>> run_sitehost(args, config, logger)
"""

import argparse
import signal
import sys
import threading
from typing import Any, Dict, Optional

from sitehost.core.cache import CacheConfig, CacheManager, CacheRegion
from sitehost.core.config import ConfigError, ConfigManager
from sitehost.core.constants import ConfigKey, Limits
from sitehost.core.logging import Logger
from sitehost.hosting.router import RequestRouter
from sitehost.hosting.site import FileSiteConfigSource, SiteConfigError
from sitehost.hosting.store import LocalBlobDelivery, LocalObjectStore
from sitehost.rules.engine import RuleError
from sitehost.rules.extglob import PatternError
from sitehost.server.http import ServerError, SiteHostServer

# How often the main loop looks for a pending reload
POLL_INTERVAL = 0.5


class SiteHostMain:
    """
    Main class for SiteHost server management.

    Handles component lifecycle, serving and shutdown.
    """

    def __init__(self, args: argparse.Namespace, config: ConfigManager, logger: Logger):
        """
        Initialize SiteHost main controller.

        Args:
            args: Parsed command-line arguments
            config: Loaded configuration
            logger: Logger instance
        """
        self.args = args
        self.config = config
        self.logger = logger
        self.shutdown_event = threading.Event()
        self.reload_event = threading.Event()

        # Components
        self.cache_manager: Optional[CacheManager] = None
        self.store: Optional[LocalObjectStore] = None
        self.site_source: Optional[FileSiteConfigSource] = None
        self.router: Optional[RequestRouter] = None
        self.server: Optional[SiteHostServer] = None

    def initialize_components(self) -> None:
        """
        Initialize all SiteHost components.

        Creates and configures:
        - CacheManager (pattern and site regions)
        - LocalObjectStore and LocalBlobDelivery
        - FileSiteConfigSource
        - RequestRouter
        - SiteHostServer
        """
        self.logger.info("Initializing components...")

        self.logger.debug("Creating CacheManager")
        self.cache_manager = CacheManager(
            configs={
                CacheRegion.PATTERNS: CacheConfig(
                    max_entries=self.config.get(
                        "sitehost.cache.patterns.max_entries", Limits.PATTERN_CACHE_ENTRIES
                    )
                ),
                CacheRegion.SITES: CacheConfig(
                    max_entries=self.config.get(
                        "sitehost.cache.sites.max_entries", Limits.SITE_CACHE_ENTRIES
                    )
                ),
            }
        )

        root = self.config.get("sitehost.store.root")
        self.logger.debug("Creating LocalObjectStore", root=root)
        self.store = LocalObjectStore(root)

        self.site_source = FileSiteConfigSource(
            hosting_file=self.config.get("sitehost.hosting.file"),
            default_mutable=self.config.get("sitehost.hosting.mutable", True),
        )

        self.logger.debug("Creating RequestRouter")
        self.router = RequestRouter(
            store=self.store,
            delivery=LocalBlobDelivery(self.store),
            site_source=self.site_source,
            caches=self.cache_manager,
            logger=self.logger,
        )

        self.server = SiteHostServer(
            self.router,
            host=self.config.get("sitehost.server.host", Limits.DEFAULT_HOST),
            port=self.config.get("sitehost.server.port", Limits.DEFAULT_PORT),
            logger=self.logger,
        )

        self.config.add_watcher(self.apply_config)

        self.logger.info("All components initialized successfully")

    def check_sites(self) -> int:
        """
        Build every configured site and compile all of its rules.

        Returns:
            Exit code (0 if every site is usable, 1 on the first failure)
        """
        try:
            hostnames = self.site_source.hostnames()
        except SiteConfigError as e:
            self.logger.error("Hosting document is invalid", error=e.message)
            return 1

        for hostname in hostnames:
            try:
                site = self.router.sites.get(hostname)
                count = site.rules.compile_all()
            except (SiteConfigError, RuleError, PatternError) as e:
                self.logger.error("Site check failed", host=hostname, error=str(e))
                return 1
            self.logger.info("Site OK", host=hostname, bucket=site.bucket, rules=count)

        self.logger.info(f"Checked {len(hostnames)} site(s)")
        return 0

    def setup_signal_handlers(self) -> None:
        """
        Setup signal handlers.

        Handles:
        - SIGTERM: Graceful shutdown
        - SIGINT: Graceful shutdown (Ctrl+C)
        - SIGHUP: Reload configuration and hosting document
        """

        def shutdown_handler(signum, frame):
            """Handle shutdown signals."""
            sig_name = signal.Signals(signum).name
            self.logger.info(f"Received signal {sig_name}, shutting down...")
            self.shutdown_event.set()

        def reload_handler(signum, frame):
            """Handle reload signal; the main loop does the work."""
            self.reload_event.set()

        signal.signal(signal.SIGTERM, shutdown_handler)
        signal.signal(signal.SIGINT, shutdown_handler)
        if hasattr(signal, "SIGHUP"):
            signal.signal(signal.SIGHUP, reload_handler)

        self.logger.debug("Signal handlers registered")

    def apply_config(self, merged: Dict[str, Any]) -> None:
        """
        Configuration watcher: point the site source at the current hosting
        settings and drop cached sites.

        Args:
            merged: Merged configuration from every source
        """
        hosting = merged.get(ConfigKey.ROOT, {}).get(ConfigKey.HOSTING) or {}
        self.site_source.configure(hosting)
        self.router.reload()

    def reload(self) -> None:
        """
        Re-read configuration files; watchers apply the result.

        A configuration that fails to load is logged and the previous one
        stays in effect.
        """
        self.logger.info("Reloading configuration...")
        try:
            self.config.reload()
        except ConfigError as e:
            self.logger.error("Reload failed, keeping current configuration", error=e.message)

    def serve(self) -> int:
        """
        Serve requests until a shutdown signal arrives.

        Returns:
            Exit code (0 for success, non-zero for failure)
        """
        try:
            self.server.start()
        except ServerError as e:
            self.logger.error(str(e))
            return 1

        self.logger.info(f"Serving sites from {self.store.root} at {self.server.get_url()}")

        while not self.shutdown_event.wait(POLL_INTERVAL):
            if self.reload_event.is_set():
                self.reload_event.clear()
                self.reload()

        return 0

    def cleanup(self) -> None:
        """
        Cleanup resources on shutdown.

        Performs:
        - Server shutdown
        - Log final statistics
        - Cache clear
        """
        self.logger.info("Cleaning up...")

        if self.site_source:
            self.config.remove_watcher(self.apply_config)

        if self.server:
            self.server.stop()

        if self.router:
            self.logger.info(f"Final statistics: {self.router.get_stats()}")

        if self.cache_manager:
            self.cache_manager.clear()
            self.logger.debug("Cache cleared")

        self.logger.info("Cleanup complete")

    def run(self) -> int:
        """
        Run SiteHost main loop.

        Returns:
            Exit code (0 for success, non-zero for failure)
        """
        try:
            self.initialize_components()

            if getattr(self.args, "check", False):
                return self.check_sites()

            self.setup_signal_handlers()
            return self.serve()

        except KeyboardInterrupt:
            self.logger.info("Interrupted by user")
            return 130

        except Exception as e:
            self.logger.exception("Fatal error", e)
            return 1

        finally:
            self.cleanup()


def run_sitehost(args: argparse.Namespace, config: ConfigManager, logger: Logger) -> int:
    """
    Main entry point for running SiteHost.

    Args:
        args: Parsed command-line arguments
        config: Loaded configuration
        logger: Logger instance

    Returns:
        Exit code (0 for success, non-zero for failure)
    """
    main = SiteHostMain(args, config, logger)
    return main.run()


def main():
    """
    Entry point when run as standalone script.

    Typically called via cli.py, but can be run directly for testing.
    """
    from sitehost.cli import main as cli_main

    return cli_main()


if __name__ == "__main__":
    sys.exit(main())

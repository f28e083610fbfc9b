#!/usr/bin/env python3
"""Command-line interface for SiteHost.

This module provides the CLI for serving static sites:
- Argument parsing and validation
- Configuration file loading and merging with arguments
- Logging setup
- Help and version information

Example:
    >>> from sitehost.cli import parse_arguments
    >>> args = parse_arguments(['--root', '/srv/sites', '--hosting', 'sites.yaml'])
"""

import argparse
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

from sitehost.core.config import ConfigError, ConfigManager, ConfigSource
from sitehost.core.constants import SITEHOST_VERSION, ConfigKey
from sitehost.core.logging import Logger, configure_logger
from sitehost.core.validators import ValidationError, validate_cache_config, validate_server_config

DESCRIPTION = "SiteHost - static website hosting with firebase-style rules"


class CLIError(Exception):
    """Exception raised for CLI-related errors."""

    pass


def parse_arguments(args: Optional[List[str]] = None) -> argparse.Namespace:
    """
    Parse command-line arguments.

    Args:
        args: Argument list to parse (defaults to sys.argv[1:])

    Returns:
        Parsed arguments namespace

    Raises:
        SystemExit: On invalid arguments or --help/--version
        CLIError: If a named file or directory does not exist
    """
    parser = argparse.ArgumentParser(
        prog="sitehost",
        description=DESCRIPTION,
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Serve every bucket under /srv/sites on port 8080
  sitehost --root /srv/sites

  # Apply redirects, rewrites and headers from a hosting document
  sitehost --root /srv/sites --hosting sites.yaml --port 8000

  # Check that every site's rules compile, then exit
  sitehost --config sitehost.yaml --check

Send SIGHUP to reload the configuration and hosting document.
        """,
    )

    # Version
    parser.add_argument(
        "-v",
        "--version",
        action="version",
        version=f"%(prog)s {SITEHOST_VERSION}",
    )

    # Configuration file
    parser.add_argument(
        "-c",
        "--config",
        metavar="FILE",
        type=str,
        help="Configuration file path (YAML format)",
    )

    # Content
    content_group = parser.add_argument_group("content options")

    content_group.add_argument(
        "-r",
        "--root",
        metavar="DIR",
        type=str,
        help="Directory holding one subdirectory per bucket",
    )

    content_group.add_argument(
        "--hosting",
        metavar="FILE",
        type=str,
        help="Hosting document (YAML or JSON) mapping hostnames to sites",
    )

    content_group.add_argument(
        "--immutable",
        action="store_true",
        help="Treat objects as immutable: honor If-Match, ranges and stored Last-Modified",
    )

    content_group.add_argument(
        "--check",
        action="store_true",
        help="Validate configuration and compile every site's rules, then exit",
    )

    # Server
    server_group = parser.add_argument_group("server options")

    server_group.add_argument(
        "--host",
        metavar="ADDR",
        type=str,
        help="Address to listen on (default: 127.0.0.1)",
    )

    server_group.add_argument(
        "-p",
        "--port",
        metavar="PORT",
        type=int,
        help="Port to listen on (default: 8080)",
    )

    # Logging options
    log_group = parser.add_argument_group("logging options")

    log_group.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging",
    )

    log_group.add_argument(
        "--log-file",
        metavar="FILE",
        type=str,
        help="Also write logs to a rotating file",
    )

    # Parse arguments
    parsed = parser.parse_args(args)

    # Validate arguments
    _validate_arguments(parsed)

    return parsed


def _validate_arguments(args: argparse.Namespace) -> None:
    """
    Validate parsed arguments.

    Args:
        args: Parsed arguments namespace

    Raises:
        CLIError: If validation fails
    """
    if args.root:
        root_path = Path(args.root)

        if not root_path.exists():
            raise CLIError(f"Content root does not exist: {args.root}")

        if not root_path.is_dir():
            raise CLIError(f"Content root is not a directory: {args.root}")

    for option, value in (("--config", args.config), ("--hosting", args.hosting)):
        if value and not Path(value).is_file():
            raise CLIError(f"{option} file does not exist: {value}")


def build_config_from_args(args: argparse.Namespace) -> Dict[str, Any]:
    """
    Build configuration dictionary from command-line arguments.

    Only options given on the command line appear, so they override the
    configuration file without masking it.

    Args:
        args: Parsed arguments namespace

    Returns:
        Configuration dictionary rooted at "sitehost"
    """
    section: Dict[str, Any] = {}

    server = {ConfigKey.SERVER_HOST: args.host, ConfigKey.SERVER_PORT: args.port}
    server = {key: value for key, value in server.items() if value is not None}
    if server:
        section[ConfigKey.SERVER] = server

    if args.root:
        section[ConfigKey.STORE] = {ConfigKey.STORE_ROOT: str(Path(args.root).resolve())}

    hosting: Dict[str, Any] = {}
    if args.hosting:
        hosting[ConfigKey.HOSTING_FILE] = str(Path(args.hosting).resolve())
    if args.immutable:
        hosting[ConfigKey.HOSTING_MUTABLE] = False
    if hosting:
        section[ConfigKey.HOSTING] = hosting

    logging_config: Dict[str, Any] = {}
    if args.debug:
        logging_config["level"] = "DEBUG"
    if args.log_file:
        logging_config["file"] = args.log_file
    if logging_config:
        section[ConfigKey.LOGGING] = logging_config

    return {ConfigKey.ROOT: section}


def load_config(args: argparse.Namespace) -> ConfigManager:
    """
    Load configuration from file, environment and arguments, then validate it.

    Args:
        args: Parsed arguments namespace

    Returns:
        Configuration manager with every layer loaded

    Raises:
        CLIError: If the configuration is unusable
    """
    try:
        config = ConfigManager(config_file=args.config)
    except ConfigError as e:
        raise CLIError(f"Failed to load configuration: {e}")

    config.load_dict(build_config_from_args(args), ConfigSource.CLI_ARGS)

    if not config.get("sitehost.store.root"):
        raise CLIError(
            "No content root configured\n" "Use --root or set sitehost.store.root in --config"
        )

    section = config.section()
    try:
        validate_server_config(section.get(ConfigKey.SERVER, {}))
        validate_cache_config(section.get(ConfigKey.CACHE, {}))
    except ValidationError as e:
        raise CLIError(f"Invalid configuration: {e}")

    return config


def setup_logging(config: ConfigManager) -> Logger:
    """
    Setup logging based on configuration.

    Args:
        config: Loaded configuration

    Returns:
        Configured logger instance, installed as the global logger
    """
    level = config.get("sitehost.logging.level", "INFO")
    log_file = config.get("sitehost.logging.file")

    try:
        logger = configure_logger("sitehost", level=level, log_file=log_file)
    except KeyError:
        raise CLIError(f"Unknown log level: {level}")
    except OSError as e:
        raise CLIError(f"Cannot open log file {log_file}: {e}")

    if log_file:
        logger.info(f"Logging to file: {log_file}")

    return logger


def print_banner(logger: Logger) -> None:
    """
    Print startup banner with version information.

    Args:
        logger: Logger instance
    """
    logger.info("=" * 60)
    logger.info(f"SiteHost v{SITEHOST_VERSION}")
    logger.info(DESCRIPTION)
    logger.info("=" * 60)


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main CLI entry point.

    Handles argument parsing, configuration and logging, then passes
    control to sitehost.main to serve (or check) the sites.
    """
    try:
        args = parse_arguments(argv)
        config = load_config(args)
        logger = setup_logging(config)

        if not args.check:
            print_banner(logger)

        from sitehost.main import run_sitehost

        return run_sitehost(args, config, logger)

    except CLIError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    except KeyboardInterrupt:
        print("\nInterrupted by user", file=sys.stderr)
        return 130


if __name__ == "__main__":
    sys.exit(main())

"""SiteHost Core - Shared utilities and infrastructure.

Import specific functions from submodules:
    from sitehost.core.cache import CacheManager
    from sitehost.core.config import ConfigManager
    from sitehost.core import constants
    from sitehost.core import logging
    from sitehost.core import validators
"""

# Re-export main module references for convenience
from sitehost.core import cache, config, constants, logging, validators

__all__ = [
    "cache",
    "config",
    "constants",
    "logging",
    "validators",
]

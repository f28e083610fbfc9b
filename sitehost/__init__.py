"""SiteHost - static website hosting with firebase-style rules.

Serves objects from a content store, one bucket per hostname, applying
redirect, rewrite and header rules written as extended globs.
"""

from sitehost.core.constants import SITEHOST_VERSION

__version__ = SITEHOST_VERSION

"""SiteHost HTTP server."""

from .http import HostingRequestHandler, ServerError, SiteHostServer, write_result

__all__ = [
    "HostingRequestHandler",
    "ServerError",
    "SiteHostServer",
    "write_result",
]

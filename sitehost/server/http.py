#!/usr/bin/env python3
"""HTTP front end for SiteHost.

This module binds the request router to a threaded HTTP server:
- Translates incoming requests into HostingRequest values
- Writes every HostingResult through write_result()
- Answers methods other than GET/HEAD with 405
- Routes access logging into the SiteHost logger

Example:
    >>> server = SiteHostServer(router, host="127.0.0.1", port=8080)
    >>> server.start()
    >>> server.get_url()
    'http://127.0.0.1:8080'
"""

import html
import http.server
import threading
from http import HTTPStatus
from typing import Optional, Tuple
from urllib.parse import unquote, urlsplit

from sitehost.core.constants import FALLBACK_REDIRECT_STATUS, SITEHOST_VERSION, Limits
from sitehost.core.logging import Logger, get_logger
from sitehost.hosting.headers import Headers
from sitehost.hosting.router import (
    Content,
    ErrorResponse,
    HostingRequest,
    HostingResult,
    Redirect,
    RequestRouter,
)
from sitehost.hosting.site import normalize_host


class ServerError(Exception):
    """Exception raised when the HTTP server cannot start."""

    pass


def status_text(status: int) -> str:
    """Standard reason phrase for status."""
    try:
        return HTTPStatus(status).phrase
    except ValueError:
        return "Unknown Status"


def write_result(handler: http.server.BaseHTTPRequestHandler, result: HostingResult) -> None:
    """Write a hosting result as the HTTP response.

    This is the only place responses are written. Redirects and errors
    carry a short body of their own; content streams its body unless the
    request was HEAD or the status forbids one.

    Args:
        handler: Handler of the request being answered
        result: Result from RequestRouter.handle()
    """
    head_only = handler.command == "HEAD"

    if isinstance(result, Redirect):
        status = result.status or FALLBACK_REDIRECT_STATUS
        href = html.escape(result.location, quote=True)
        link = f'<a href="{href}">{status_text(status)}</a>.\n'
        _write_simple(
            handler,
            status,
            link.encode("utf-8"),
            "text/html; charset=utf-8",
            {"Location": result.location},
            head_only,
        )
        return

    if isinstance(result, ErrorResponse):
        message = result.message or status_text(result.status)
        headers = {"X-Content-Type-Options": "nosniff"}
        headers.update(result.headers)
        _write_simple(
            handler,
            result.status,
            (message + "\n").encode("utf-8"),
            "text/plain; charset=utf-8",
            headers,
            head_only,
        )
        return

    _write_content(handler, result, head_only)


def _write_simple(
    handler, status: int, body: bytes, content_type: str, headers, head_only: bool
) -> None:
    handler.send_response(status)
    handler.send_header("Content-Type", content_type)
    handler.send_header("Content-Length", str(len(body)))
    for name, value in headers.items():
        handler.send_header(name, value)
    handler.end_headers()
    if not head_only:
        handler.wfile.write(body)


def _write_content(handler, result: Content, head_only: bool) -> None:
    handler.send_response(result.status)
    for name, value in result.headers.items():
        handler.send_header(name, value)
    handler.end_headers()

    if head_only or result.status == 304:
        close = getattr(result.body, "close", None)
        if close is not None:
            close()
        return

    try:
        for chunk in result.body:
            handler.wfile.write(chunk)
    except (BrokenPipeError, ConnectionResetError):
        handler.server.logger.debug("Client went away mid-response", path=handler.path)
        handler.close_connection = True
    except OSError as e:
        # status line already sent; all that is left is to cut the response short
        handler.server.logger.error("Failed reading object body", path=handler.path, error=str(e))
        handler.close_connection = True


class HostingRequestHandler(http.server.BaseHTTPRequestHandler):
    """HTTP request handler delegating to the RequestRouter."""

    server_version = f"sitehost/{SITEHOST_VERSION}"

    def log_message(self, format, *args):
        """Override to use our logger instead of stderr."""
        self.server.logger.debug(format % args)

    def _build_request(self) -> HostingRequest:
        parts = urlsplit(self.path)
        host = self.headers.get("Host") or parts.netloc
        return HostingRequest(
            method=self.command,
            host=normalize_host(host),
            path=unquote(parts.path) or "/",
            query=parts.query,
            headers=Headers(self.headers.items()),
        )

    def _dispatch(self):
        router: RequestRouter = self.server.router
        try:
            result = router.handle(self._build_request())
        except Exception as e:
            self.server.logger.exception("Unhandled error routing request", e, path=self.path)
            result = ErrorResponse(500)
        write_result(self, result)

    do_GET = _dispatch
    do_HEAD = _dispatch
    do_POST = _dispatch
    do_PUT = _dispatch
    do_PATCH = _dispatch
    do_DELETE = _dispatch
    do_OPTIONS = _dispatch
    do_TRACE = _dispatch


class SiteHostServer:
    """Threaded HTTP server serving a RequestRouter.

    serve_forever() blocks the caller; start() runs the same loop in a
    background thread, which is what the tests use.
    """

    def __init__(
        self,
        router: RequestRouter,
        host: str = Limits.DEFAULT_HOST,
        port: int = Limits.DEFAULT_PORT,
        logger: Optional[Logger] = None,
    ):
        """Initialize server.

        Args:
            router: Request router
            host: Address to bind
            port: Port to bind (0 picks a free one)
            logger: Logger (the global one if None)
        """
        self.router = router
        self.host = host
        self.port = port
        self.logger = logger or get_logger()

        self.server: Optional[http.server.ThreadingHTTPServer] = None
        self.server_thread: Optional[threading.Thread] = None
        self.running = False

    def bind(self) -> None:
        """Create the listening socket.

        Raises:
            ServerError: If the address cannot be bound
        """
        if self.server is not None:
            return

        try:
            self.server = http.server.ThreadingHTTPServer(
                (self.host, self.port), HostingRequestHandler
            )
        except OSError as e:
            raise ServerError(f"Failed to bind {self.host}:{self.port}: {e}")

        self.server.daemon_threads = True

        # Attach our objects to server so handler can access them
        self.server.router = self.router
        self.server.logger = self.logger

        self.port = self.server.server_address[1]

    def serve_forever(self) -> None:
        """Serve requests on the calling thread until stop() is called."""
        self.bind()
        self.running = True
        self.logger.info("Serving", url=self.get_url())
        try:
            self.server.serve_forever()
        finally:
            self.running = False

    def start(self) -> None:
        """Start server in background thread.

        Raises:
            ServerError: If server fails to start
        """
        if self.running:
            self.logger.warning("Server already running")
            return

        self.bind()
        self.server_thread = threading.Thread(
            target=self.serve_forever, daemon=True, name="SiteHostServer"
        )
        self.server_thread.start()
        self.running = True

    def stop(self) -> None:
        """Stop server and close the socket."""
        if self.server is None:
            return

        self.logger.info("Stopping server...")
        if self.running:
            self.server.shutdown()
        self.server.server_close()

        if self.server_thread and self.server_thread is not threading.current_thread():
            self.server_thread.join(timeout=5.0)

        self.server = None
        self.running = False
        self.logger.info("Server stopped")

    @property
    def address(self) -> Tuple[str, int]:
        return self.host, self.port

    def get_url(self) -> str:
        """Get server base URL."""
        return f"http://{self.host}:{self.port}"

    def is_running(self) -> bool:
        return self.running

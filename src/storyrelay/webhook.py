"""HTTP surface: Tracker activity web hook, backlog import feed, health check.

Routes:

* ``GET /`` - health check, answers ``ok``
* ``POST /tracker_activity`` - Tracker "Activity Web Hook" receiver
* ``GET /tracker_import`` - Tracker "Import API URL" feed

Every error response is ``text/plain`` with a trailing newline. Requests are
served on threads; a single event is still relayed sequentially.
"""

from __future__ import annotations

from dataclasses import dataclass
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Any
from urllib.parse import parse_qs, urlparse

from .config import BasicAuthCredentials
from .errors import EventParseError, classify_error, redact
from .github_rest import GitHubAPIError
from .logging import get_logger
from .orchestrator import relay_event
from .parser import parse_event
from .ports import OpenIssueSource
from .processor import ChangeProcessor
from .tracker_import import build_import_feed

ACTIVITY_PATH = "/tracker_activity"
IMPORT_PATH = "/tracker_import"
HEALTH_PATH = "/"

JSON_CONTENT_TYPE = "application/json"
TEXT_CONTENT_TYPE = "text/plain; charset=utf-8"
XML_CONTENT_TYPE = "text/xml; charset=utf-8"

# Tracker activity payloads are small; anything larger is not one of them.
MAX_REQUEST_BODY_BYTES = 1_048_576

MSG_UNAUTHORIZED = "Unauthorized"
MSG_CANT_READ_BODY = "can't read body"
MSG_CANT_PARSE_BODY = "can't parse json body"
MSG_IMPORT_FAILED = "failed to get issues from GitHub API"
MSG_NOT_FOUND = "404. Not found."


@dataclass
class RelayApp:
    """Everything a request handler needs, shared by all handler threads."""

    processor: ChangeProcessor
    credentials: BasicAuthCredentials
    import_source: OpenIssueSource | None = None


def _media_type(content_type: str | None) -> str:
    return (content_type or "").split(";", 1)[0].strip().lower()


def _make_handler_class(app: RelayApp) -> type:
    """Create a handler class bound to one ``RelayApp``."""
    logger = get_logger()

    class RelayHandler(BaseHTTPRequestHandler):
        _app: RelayApp = app
        _body_consumed = False

        # Route access logs through the structured logger, minus credentials
        def log_message(self, format: str, *args: Any) -> None:  # noqa: A002
            logger.debug(redact(format % args), client=self.address_string())

        def do_GET(self) -> None:  # noqa: N802
            path = urlparse(self.path).path
            if path == HEALTH_PATH:
                self._send_text(200, "ok", newline=False)
            elif path == IMPORT_PATH:
                self._handle_import()
            elif path == ACTIVITY_PATH:
                self._reject_method()
            else:
                self._not_found(path)

        def do_POST(self) -> None:  # noqa: N802
            path = urlparse(self.path).path
            if path == ACTIVITY_PATH:
                self._handle_activity()
            elif path in (IMPORT_PATH, HEALTH_PATH):
                self._reject_method()
            else:
                self._not_found(path)

        def _other_method(self) -> None:
            path = urlparse(self.path).path
            if path in (ACTIVITY_PATH, IMPORT_PATH, HEALTH_PATH):
                self._reject_method()
            else:
                self._not_found(path)

        do_PUT = _other_method  # noqa: N815
        do_PATCH = _other_method  # noqa: N815
        do_DELETE = _other_method  # noqa: N815

        # ---------------------------------------------------------------
        # Responses
        # ---------------------------------------------------------------

        def _send_text(self, status: int, text: str, *, newline: bool = True) -> None:
            self._send(status, text + ("\n" if newline else ""), TEXT_CONTENT_TYPE)

        def _send(self, status: int, body: str, content_type: str) -> None:
            self._discard_unread_body()
            data = body.encode("utf-8")
            self.send_response(status)
            self.send_header("Content-Type", content_type)
            self.send_header("Content-Length", str(len(data)))
            self.end_headers()
            self.wfile.write(data)

        def _reject_method(self) -> None:
            path = urlparse(self.path).path
            if path == HEALTH_PATH:
                msg = "Method is not supported"
            else:
                msg = f"Request method is not supported: {self.command}"
            logger.info(msg, path=path)
            self._send_text(405, msg)

        def _not_found(self, path: str) -> None:
            logger.info(f"path not found: {path}")
            self._send_text(404, MSG_NOT_FOUND)

        def _authorized(self) -> bool:
            query = parse_qs(urlparse(self.path).query)
            if self._app.credentials.matches(self.headers.get("Authorization"), query):
                return True
            logger.warning("Rejecting request due to bad credentials.", path=urlparse(self.path).path)
            self._send_text(401, MSG_UNAUTHORIZED)
            return False

        # ---------------------------------------------------------------
        # Endpoint handlers
        # ---------------------------------------------------------------

        def _content_length(self) -> int:
            try:
                return int(self.headers.get("Content-Length") or 0)
            except (TypeError, ValueError):
                return -1

        def _discard_unread_body(self) -> None:
            # Closing with unread input resets the connection before the client sees the reply
            if self._body_consumed:
                return
            self._body_consumed = True
            length = self._content_length()
            if 0 < length <= MAX_REQUEST_BODY_BYTES:
                try:
                    self.rfile.read(length)
                except OSError as exc:
                    logger.debug(f"could not drain request body: {exc}")

        def _read_body(self) -> bytes | None:
            self._body_consumed = True
            length = self._content_length()
            if length < 0 or length > MAX_REQUEST_BODY_BYTES:
                logger.log_error("Error reading request body", error=f"bad Content-Length {length}")
                return None
            try:
                return self.rfile.read(length) if length else b""
            except OSError as exc:
                logger.log_error("Error reading request body", error=str(exc))
                return None

        def _handle_activity(self) -> None:
            if not self._authorized():
                return
            content_type = self.headers.get("Content-Type") or ""
            if _media_type(content_type) != JSON_CONTENT_TYPE:
                msg = f"Request had wrong Content-Type: {content_type}"
                logger.info(msg)
                self._send_text(415, msg)
                return
            body = self._read_body()
            if body is None:
                self._send_text(400, MSG_CANT_READ_BODY)
                return
            try:
                event = parse_event(body)
            except EventParseError as exc:
                info = classify_error(exc)
                logger.log_error(
                    "Error parsing request body", error=info.message, category=info.category
                )
                self._send_text(400, MSG_CANT_PARSE_BODY)
                return

            summary = relay_event(event, self._app.processor)
            if summary.ok:
                self._send(summary.status_code, "", TEXT_CONTENT_TYPE)
            else:
                self._send_text(summary.status_code, summary.message)

        def _handle_import(self) -> None:
            if not self._authorized():
                return
            source = self._app.import_source
            if source is None:
                logger.log_error("import feed requested but no GitHub client is configured")
                self._send_text(502, MSG_IMPORT_FAILED)
                return
            try:
                feed = build_import_feed(source)
            except GitHubAPIError as exc:
                logger.log_error("Failed to get issues from GitHub API", error=redact(str(exc)))
                self._send_text(502, MSG_IMPORT_FAILED)
                return
            self._send(200, feed, XML_CONTENT_TYPE)

    return RelayHandler


def create_server(app: RelayApp, host: str, port: int) -> ThreadingHTTPServer:
    """Create a threaded HTTP server bound to *host*:*port*.

    Pass port 0 to let the OS choose; ``server.server_address`` then holds
    the real port.
    """
    handler_cls = _make_handler_class(app)
    return ThreadingHTTPServer((host, port), handler_cls)


__all__ = [
    "ACTIVITY_PATH",
    "IMPORT_PATH",
    "RelayApp",
    "create_server",
]

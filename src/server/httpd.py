"""Main HTTP server.

Serves machine CRUD, deploy, status, catalog and selection endpoints. Each
request runs in its own thread, so deployments of different machines proceed
in parallel.
"""

import json
import logging
import signal
import sys
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Optional
from urllib.parse import unquote, urlparse

from config import Settings
from orchestrator import DeploymentOrchestrator
from store import MachineStore

from server.machines import (
    handle_catalog,
    handle_create,
    handle_delete,
    handle_deploy,
    handle_get,
    handle_list,
    handle_select,
    handle_status,
    handle_update,
)

logger = logging.getLogger(__name__)

MAX_BODY_BYTES = 1024 * 1024


class BadRequest(Exception):
    """Request body could not be used."""


class ServerHandler(BaseHTTPRequestHandler):
    """HTTP request handler for the deployment API."""

    # Class-level state (shared across requests)
    settings: Optional[Settings] = None
    store: Optional[MachineStore] = None
    orchestrator: Optional[DeploymentOrchestrator] = None

    def log_message(self, format: str, *args):  # pylint: disable=redefined-builtin
        """Override to use Python logging."""
        logger.info("%s - %s", self.address_string(), format % args)

    def send_json(self, data: dict, status: int = 200):
        """Send JSON response."""
        body = json.dumps(data, indent=2).encode("utf-8")
        self.send_response(status)
        self.send_header("Content-Type", "application/json")
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        self.wfile.write(body)

    def _read_json(self):
        """Parse the request body as JSON.

        Raises:
            BadRequest: If the length header is invalid, or the body is too large or not valid JSON
        """
        try:
            length = int(self.headers.get("Content-Length") or 0)
        except ValueError as e:
            raise BadRequest("Invalid Content-Length") from e
        if length < 0:
            raise BadRequest("Invalid Content-Length")
        if length > MAX_BODY_BYTES:
            raise BadRequest("Request body too large")
        raw = self.rfile.read(length) if length else b""
        if not raw:
            raise BadRequest("Request body required")
        try:
            return json.loads(raw.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise BadRequest(f"Invalid JSON: {e}") from e

    def _path(self) -> list[str]:
        path = urlparse(self.path).path.rstrip("/")
        return [unquote(part) for part in path.split("/") if part]

    def _unknown(self):
        self.send_json({"success": False, "error": {"code": "E404", "message": f"Unknown endpoint: {self.path}"}}, 404)

    def _bad_request(self, message: str):
        self.send_json({"success": False, "error": {"code": "E100", "message": message}}, 400)

    def do_GET(self):
        """Handle GET requests."""
        parts = self._path()

        if parts == ["health"]:
            self.send_json({"status": "ok"})
            return

        if parts == ["machines"]:
            self.send_json(*handle_list(self.store))
            return

        if len(parts) == 2 and parts[0] == "machines":
            self.send_json(*handle_get(self.store, parts[1]))
            return

        if len(parts) == 3 and parts[0] == "machines" and parts[2] == "status":
            self.send_json(*handle_status(self.orchestrator, self.store, parts[1]))
            return

        if parts == ["catalog"]:
            self.send_json(*handle_catalog())
            return

        self._unknown()

    def do_POST(self):
        """Handle POST requests."""
        parts = self._path()
        if parts not in (["machines"], ["deploy"], ["select"]):
            self._unknown()
            return

        try:
            body = self._read_json()
        except BadRequest as e:
            self._bad_request(str(e))
            return

        if parts == ["machines"]:
            self.send_json(*handle_create(self.store, body))
        elif parts == ["deploy"]:
            self.send_json(*handle_deploy(self.orchestrator, body))
        else:
            self.send_json(*handle_select(self.settings, body))

    def do_PATCH(self):
        """Handle PATCH requests."""
        parts = self._path()
        if len(parts) != 2 or parts[0] != "machines":
            self._unknown()
            return

        try:
            body = self._read_json()
        except BadRequest as e:
            self._bad_request(str(e))
            return

        self.send_json(*handle_update(self.store, parts[1], body))

    def do_DELETE(self):
        """Handle DELETE requests."""
        parts = self._path()
        if len(parts) != 2 or parts[0] != "machines":
            self._unknown()
            return

        self.send_json(*handle_delete(self.store, parts[1]))


class Server:
    """HTTP server for the deployment API."""

    def __init__(
        self,
        settings: Settings,
        bind: Optional[str] = None,
        port: Optional[int] = None,
        store: Optional[MachineStore] = None,
        orchestrator: Optional[DeploymentOrchestrator] = None,
    ):
        """Initialize server.

        Args:
            settings: Runtime settings
            bind: Address to bind to (default: settings.bind)
            port: Port to listen on (default: settings.port, 0 for any free port)
            store: MachineStore (created from settings if None)
            orchestrator: DeploymentOrchestrator (created from settings if None)
        """
        self.settings = settings
        self.bind = settings.bind if bind is None else bind
        self.port = settings.port if port is None else port
        self.store = store
        self.orchestrator = orchestrator
        self.server: Optional[ThreadingHTTPServer] = None

    def start(self):
        """Bind the HTTP server.

        Raises:
            RuntimeError: If server cannot be started
        """
        if self.store is None:
            self.store = MachineStore(self.settings.machines_file)
        if self.orchestrator is None:
            self.orchestrator = DeploymentOrchestrator(self.settings, store=self.store)

        try:
            self.settings.deployments_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise RuntimeError(f"Cannot create {self.settings.deployments_dir}: {e}") from e

        # Set handler class attributes
        ServerHandler.settings = self.settings
        ServerHandler.store = self.store
        ServerHandler.orchestrator = self.orchestrator

        try:
            self.server = ThreadingHTTPServer((self.bind, self.port), ServerHandler)
        except OSError as e:
            raise RuntimeError(f"Cannot bind {self.bind}:{self.port}: {e}") from e
        # Report the real port when 0 was requested
        self.port = self.server.server_address[1]

        logger.info("Server starting on http://%s:%d", self.bind, self.port)
        logger.info("Machines file: %s", self.store.path)
        logger.info("Deployments dir: %s", self.settings.deployments_dir)
        logger.info("Provisioning tool: %s", self.settings.tool)

    def serve_forever(self):
        """Start serving requests."""
        if not self.server:
            raise RuntimeError("Server not started")

        self._setup_signal_handlers()
        try:
            self.server.serve_forever()
        except KeyboardInterrupt:
            logger.info("Shutdown requested")
        finally:
            self.shutdown()

    def shutdown(self):
        """Shutdown the server."""
        logger.info("Shutting down server")

        if self.server:
            self.server.shutdown()
            self.server.server_close()
            self.server = None

    def _setup_signal_handlers(self):
        """Setup signal handler for graceful shutdown."""

        def handle_sigterm(signum, frame):
            """Handle SIGTERM for graceful shutdown."""
            logger.info("Received SIGTERM")
            sys.exit(0)

        signal.signal(signal.SIGTERM, handle_sigterm)

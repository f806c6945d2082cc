"""HTTP API server for synced server results and metrics.

Routes:
- /health - Health check
- /metrics - Request and player-count metrics (Prometheus text format)
- /api/v1/servers - All synced servers, ascending by port
- /api/v1/servers/{port} - Latest result for one server
"""

import logging
from typing import Optional

from aiohttp import web
from prometheus_client import CONTENT_TYPE_LATEST

from dzsa_sync.metrics import MetricsRecorder
from dzsa_sync.result_store import ResultStore

logger = logging.getLogger(__name__)

METRICS_PATH = "/metrics"


class ApiServer:
    """Read-only HTTP API over the result store."""

    def __init__(
        self,
        store: ResultStore,
        recorder: Optional[MetricsRecorder] = None,
    ):
        """Initialize API server.

        Args:
            store: Result store to expose.
            recorder: Metrics recorder served at /metrics.
        """
        self.store = store
        self.recorder = recorder or MetricsRecorder()

        self.app = web.Application()
        self._setup_routes()
        self._runner: Optional[web.AppRunner] = None
        self._site: Optional[web.TCPSite] = None
        self._port: int = 0

    def _setup_routes(self) -> None:
        """Set up all HTTP routes."""
        self.app.router.add_get("/health", self._handle_health)
        self.app.router.add_get(METRICS_PATH, self._handle_metrics)
        self.app.router.add_get("/api/v1/servers", self._handle_list_servers)
        self.app.router.add_get("/api/v1/servers/{port}", self._handle_get_server)

    async def _handle_health(self, request: web.Request) -> web.Response:
        """Health check endpoint."""
        return web.Response(text="OK")

    async def _handle_metrics(self, request: web.Request) -> web.Response:
        """Prometheus text exposition of the recorder's registry."""
        return web.Response(
            body=self.recorder.render(),
            headers={"Content-Type": CONTENT_TYPE_LATEST},
        )

    async def _handle_list_servers(self, request: web.Request) -> web.Response:
        """List every synced server."""
        entries = self.store.get_all()
        return web.json_response({"servers": [e.to_dict() for e in entries]})

    async def _handle_get_server(self, request: web.Request) -> web.Response:
        """Get the latest result for one server port.

        Unconfigured and never-synced ports are both reported as 404.
        """
        raw_port = request.match_info["port"]
        # ASCII digits only; int() would also take "+2302" or "٢٣٠٢"
        if not (raw_port.isascii() and raw_port.isdigit()):
            return web.json_response({"error": "invalid port"}, status=400)
        port = int(raw_port)

        result, found = self.store.get(port)
        if not found:
            return web.json_response({"error": "Server not found"}, status=404)
        return web.json_response(result.to_dict())

    async def start(self, host: str, port: int) -> web.AppRunner:
        """Start the server.

        Args:
            host: Host to bind to, empty for all interfaces.
            port: Port to bind to (0 for random).

        Returns:
            App runner for cleanup.
        """
        self._runner = web.AppRunner(self.app)
        await self._runner.setup()
        self._site = web.TCPSite(self._runner, host or None, port)
        await self._site.start()

        # Get actual port
        if self._site._server and self._site._server.sockets:
            self._port = self._site._server.sockets[0].getsockname()[1]
        else:
            self._port = port

        logger.info(f"API server listening on {host or '0.0.0.0'}:{self._port}")
        return self._runner

    def get_port(self) -> int:
        """Get the actual bound port."""
        return self._port

    async def close(self) -> None:
        """Stop the server."""
        if self._runner:
            await self._runner.cleanup()
            self._runner = None
            self._site = None
        logger.info("API server closed")

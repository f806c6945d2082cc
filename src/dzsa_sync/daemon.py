"""Main daemon orchestration - ties all components together."""

import asyncio
import logging
import signal
from typing import Optional

import aiohttp

from dzsa_sync.api import ApiServer
from dzsa_sync.client import DzsaClient
from dzsa_sync.config import Config
from dzsa_sync.coordinator import Coordinator
from dzsa_sync.errors import StartupError
from dzsa_sync.ifconfig import IfconfigClient, IpDetector
from dzsa_sync.metrics import MetricsRecorder
from dzsa_sync.scheduler import DirectoryClient

logger = logging.getLogger(__name__)


class Daemon:
    """Main daemon orchestrating all components.

    Responsibilities:
    - Create the shared HTTP session and outbound clients
    - Start the read-side API server
    - Start the coordinator (IP watcher and sync workers)
    - Handle graceful shutdown
    """

    def __init__(
        self,
        config: Config,
        client: Optional[DirectoryClient] = None,
        detector: Optional[IpDetector] = None,
        recorder: Optional[MetricsRecorder] = None,
    ):
        """Initialize daemon.

        Args:
            config: Validated configuration.
            client: Optional injected DZSA client (for testing).
            detector: Optional injected IP detector (for testing).
            recorder: Optional injected metrics recorder (for testing).
        """
        self._config = config
        self._client = client
        self._detector = detector
        self._recorder = recorder or MetricsRecorder()
        self._running = False
        self._stop_event = asyncio.Event()

        self._http_session: Optional[aiohttp.ClientSession] = None
        self._coordinator: Optional[Coordinator] = None
        self._api_server: Optional[ApiServer] = None

    @property
    def coordinator(self) -> Optional[Coordinator]:
        return self._coordinator

    @property
    def api_server(self) -> Optional[ApiServer]:
        return self._api_server

    async def start(self) -> None:
        """Start the daemon.

        Raises:
            StartupError: If the API server cannot bind.
        """
        logger.info("Starting daemon...")

        self._initialize_clients()

        self._coordinator = Coordinator(
            config=self._config,
            client=self._client,
            detector=self._detector if self._config.detect_ip else None,
            recorder=self._recorder,
        )

        await self._start_api_server()
        await self._coordinator.start()

        self._setup_signals()

        self._running = True
        logger.info("Daemon started successfully")

    def _initialize_clients(self) -> None:
        """Create outbound clients that were not injected."""
        if self._client is not None and (
            self._detector is not None or not self._config.detect_ip
        ):
            return

        self._http_session = aiohttp.ClientSession()
        if self._client is None:
            self._client = DzsaClient(
                http_session=self._http_session,
                recorder=self._recorder,
                timeout=self._config.request_timeout,
            )
        if self._detector is None and self._config.detect_ip:
            self._detector = IfconfigClient(
                http_session=self._http_session,
                recorder=self._recorder,
                timeout=self._config.request_timeout,
            )

    async def _start_api_server(self) -> None:
        self._api_server = ApiServer(
            store=self._coordinator.store,
            recorder=self._recorder,
        )
        try:
            await self._api_server.start(
                host=self._config.api.host,
                port=self._config.api.port,
            )
        except OSError as e:
            await self._api_server.close()
            await self._close_http_session()
            raise StartupError(
                f"cannot listen on {self._config.api.host}:{self._config.api.port}: {e}"
            ) from e

    async def run_forever(self) -> None:
        """Run daemon until shutdown signal."""
        if not self._running:
            await self.start()

        try:
            await self._stop_event.wait()
        except asyncio.CancelledError:
            pass
        finally:
            await self._shutdown()

    async def stop(self) -> None:
        """Request a graceful stop."""
        self._stop_event.set()

    def _setup_signals(self) -> None:
        """Set up signal handlers for graceful shutdown."""
        loop = asyncio.get_running_loop()

        for sig in (signal.SIGTERM, signal.SIGINT):
            try:
                loop.add_signal_handler(sig, self._stop_event.set)
            except (NotImplementedError, RuntimeError):
                # Not on the main thread or unsupported platform
                pass

    async def _shutdown(self) -> None:
        """Perform graceful shutdown."""
        if not self._running:
            return
        self._running = False
        logger.info("Shutting down daemon...")

        if self._coordinator:
            await self._coordinator.stop()

        if self._api_server:
            await self._api_server.close()

        await self._close_http_session()
        logger.info("Shutdown complete")

    async def _close_http_session(self) -> None:
        if self._http_session is not None:
            await self._http_session.close()
            self._http_session = None

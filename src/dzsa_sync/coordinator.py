"""Wires the IP watcher to one sync scheduler per configured server."""

import asyncio
import logging
from typing import Optional

from dzsa_sync.address_cache import AddressCache
from dzsa_sync.config import Config
from dzsa_sync.ifconfig import IpDetector
from dzsa_sync.ip_monitor import IpWatcher
from dzsa_sync.metrics import MetricsRecorder
from dzsa_sync.models import ServerEntry, ServerResult
from dzsa_sync.result_store import ResultStore
from dzsa_sync.scheduler import DirectoryClient, EndpointScheduler

logger = logging.getLogger(__name__)


class Coordinator:
    """Owns the schedulers and the IP watcher and their lifecycle.

    In fixed-IP mode the address cache is seeded from ``external_ip``
    and no watcher runs. In detect-IP mode the watcher fills the cache
    and, when a known IP changes, every scheduler is triggered.
    """

    def __init__(
        self,
        config: Config,
        client: DirectoryClient,
        detector: Optional[IpDetector] = None,
        recorder: Optional[MetricsRecorder] = None,
        cache: Optional[AddressCache] = None,
        store: Optional[ResultStore] = None,
    ):
        """Initialize coordinator.

        Args:
            config: Validated configuration.
            client: DZSA query client shared by all schedulers.
            detector: IP detector, required when config.detect_ip is set.
            recorder: Optional metrics recorder.
            cache: Optional injected address cache (for testing).
            store: Optional injected result store (for testing).
        """
        if config.detect_ip and detector is None:
            raise ValueError("detect_ip requires an IP detector")

        self._config = config
        self.cache = cache or AddressCache()
        self.store = store or ResultStore(config.ports)
        self._running = False
        self._start_task: Optional[asyncio.Task] = None

        self._schedulers = [
            EndpointScheduler(
                server=server,
                client=client,
                cache=self.cache,
                store=self.store,
                recorder=recorder,
                interval=config.sync_interval,
                timeout=config.request_timeout,
                fallback_ip=config.external_ip,
                jitter=config.sync_jitter,
            )
            for server in config.servers
        ]

        self._watcher: Optional[IpWatcher] = None
        if config.detect_ip:
            self._watcher = IpWatcher(
                detector=detector,
                cache=self.cache,
                check_interval=config.ip_check_interval,
                on_ip_change=self._on_ip_changed,
            )

    @property
    def schedulers(self) -> list[EndpointScheduler]:
        return list(self._schedulers)

    @property
    def watcher(self) -> Optional[IpWatcher]:
        return self._watcher

    @property
    def is_running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Seed or detect the external IP, then start every scheduler.

        Startup runs in its own task so that stop() can cancel it while
        the initial detection is still in flight.
        """
        if self._running:
            return
        self._running = True

        self._start_task = asyncio.create_task(self._start_components())
        try:
            await self._start_task
        except asyncio.CancelledError:
            if asyncio.current_task().cancelling():
                raise
            logger.info("Startup cancelled by stop")
        finally:
            self._start_task = None

    async def _start_components(self) -> None:
        if self._watcher is None:
            self.cache.set(self._config.external_ip)
        else:
            # Initial detection runs before the first syncs
            await self._watcher.start()

        logger.info(f"Starting sync workers for ports {self._config.ports}")
        for scheduler in self._schedulers:
            scheduler.start()

    async def stop(self) -> None:
        """Cancel the watcher and every scheduler and wait for all of them."""
        if not self._running:
            return
        self._running = False

        start_task = self._start_task
        if start_task is not None:
            start_task.cancel()
            try:
                await start_task
            except asyncio.CancelledError:
                pass

        logger.info("Stopping sync workers")
        stops = [s.stop() for s in self._schedulers]
        if self._watcher is not None:
            stops.append(self._watcher.stop())
        await asyncio.gather(*stops)
        logger.info("All sync workers stopped")

    def _on_ip_changed(self, old_ip: str, new_ip: str) -> None:
        """Fan one trigger out to every scheduler."""
        logger.info(
            f"External IP changed ({old_ip} -> {new_ip}), "
            "triggering sync for all servers"
        )
        for scheduler in self._schedulers:
            if not scheduler.trigger():
                logger.debug(f"Sync already pending for port {scheduler.port}")

    def list_all(self) -> list[ServerEntry]:
        """All synced servers, ascending by port."""
        return self.store.get_all()

    def get_one(self, port: int) -> tuple[Optional[ServerResult], bool]:
        """Latest result for one port; not found if unknown or never synced."""
        return self.store.get(port)

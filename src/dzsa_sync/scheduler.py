"""Per-server periodic sync with the DZSA launcher.

Each configured server gets one EndpointScheduler running its own task:

    sync once
    loop:
        wait for {interval deadline, trigger, cancellation}
        sync once
        on trigger: restart the interval from now

Triggers go through a single-slot mailbox, so any number of triggers
sent while one is pending result in exactly one extra sync.
"""

import asyncio
import logging
import random
from typing import Optional, Protocol

from dzsa_sync.address_cache import AddressCache
from dzsa_sync.config import ServerConfig
from dzsa_sync.metrics import MetricsRecorder
from dzsa_sync.models import QueryResponse
from dzsa_sync.result_store import ResultStore

logger = logging.getLogger(__name__)


class DirectoryClient(Protocol):
    """Protocol for the DZSA query client dependency."""

    async def query(self, ip: str, port: int) -> QueryResponse:
        ...


class EndpointScheduler:
    """Keeps one server registered with the DZSA launcher.

    Usage:
        scheduler = EndpointScheduler(server, client, cache, store)
        scheduler.start()

        # When the external IP changes:
        scheduler.trigger()

        await scheduler.stop()
    """

    def __init__(
        self,
        server: ServerConfig,
        client: DirectoryClient,
        cache: AddressCache,
        store: ResultStore,
        recorder: Optional[MetricsRecorder] = None,
        interval: float = 3600.0,
        timeout: float = 15.0,
        fallback_ip: str = "",
        jitter: float = 0.0,
    ):
        """Initialize the scheduler.

        Args:
            server: Server name and query port.
            client: DZSA query client.
            cache: Address cache holding the external IP.
            store: Store receiving successful results.
            recorder: Optional metrics recorder for the player gauge.
            interval: Seconds between periodic syncs.
            timeout: Upper bound in seconds on a single query.
            fallback_ip: Static IP used while the cache is empty.
            jitter: Max random delay in seconds before each sync.
        """
        self._server = server
        self._client = client
        self._cache = cache
        self._store = store
        self._recorder = recorder
        self._interval = interval
        self._timeout = timeout
        self._fallback_ip = fallback_ip
        self._jitter = jitter
        self._trigger: asyncio.Queue[None] = asyncio.Queue(maxsize=1)
        self._task: Optional[asyncio.Task] = None
        self._next_sync_at: Optional[float] = None
        self._syncing = False

    @property
    def server(self) -> ServerConfig:
        return self._server

    @property
    def port(self) -> int:
        return self._server.port

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def is_syncing(self) -> bool:
        """True from the start of a sync (including its jitter delay) until it ends."""
        return self._syncing

    @property
    def next_sync_at(self) -> Optional[float]:
        """Event loop time of the next periodic sync, None before the first wait."""
        return self._next_sync_at

    def start(self) -> None:
        """Start the scheduler task. Idempotent."""
        if self.is_running:
            return
        self._task = asyncio.create_task(
            self._run(), name=f"sync-{self._server.name}-{self._server.port}"
        )

    async def stop(self) -> None:
        """Cancel the scheduler and wait for it to finish."""
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

    def trigger(self) -> bool:
        """Request an immediate sync without blocking.

        Returns:
            False if a trigger was already pending (this one is coalesced).
        """
        try:
            self._trigger.put_nowait(None)
            return True
        except asyncio.QueueFull:
            return False

    async def wait(self) -> None:
        """Wait until the scheduler task has finished."""
        if self._task:
            try:
                await self._task
            except asyncio.CancelledError:
                pass

    async def _run(self) -> None:
        loop = asyncio.get_running_loop()
        logger.info(f"Sync worker started for {self._server.name} (port {self.port})")

        try:
            await self._sync_with_jitter()
            self._next_sync_at = loop.time() + self._interval

            while True:
                remaining = max(0.0, self._next_sync_at - loop.time())
                try:
                    await asyncio.wait_for(self._trigger.get(), timeout=remaining)
                except asyncio.TimeoutError:
                    await self._sync_with_jitter()
                    self._next_sync_at += self._interval
                    # Fell behind (long sync or suspended host): don't burst
                    if self._next_sync_at <= loop.time():
                        self._next_sync_at = loop.time() + self._interval
                else:
                    await self._sync_with_jitter()
                    self._next_sync_at = loop.time() + self._interval
        finally:
            logger.info(f"Sync worker stopped for {self._server.name} (port {self.port})")

    async def _sync_with_jitter(self) -> None:
        self._syncing = True
        try:
            if self._jitter > 0:
                await asyncio.sleep(random.uniform(0, self._jitter))
            await self._sync()
        finally:
            self._syncing = False

    async def sync_once(self) -> bool:
        """Perform one sync attempt.

        Returns:
            True if the launcher answered and the result was stored.
        """
        self._syncing = True
        try:
            return await self._sync()
        finally:
            self._syncing = False

    async def _sync(self) -> bool:
        ip = self._cache.get() or self._fallback_ip
        if not ip:
            logger.warning(
                f"No external IP available, skipping sync for port {self.port}"
            )
            return False

        try:
            async with asyncio.timeout(self._timeout):
                response = await self._client.query(ip, self.port)
        except asyncio.CancelledError:
            raise
        except TimeoutError:
            logger.error(f"Server sync failed for {ip}:{self.port}: timed out")
            return False
        except Exception as e:
            logger.error(f"Server sync failed for {ip}:{self.port}: {e}")
            return False

        result = response.result
        self._store.set(self.port, result)
        if self._recorder is not None:
            self._recorder.record_player_count(self._server.name, result.players)

        logger.info(
            f"Server synced with DZSA launcher: endpoint={result.endpoint} "
            f"name={result.name!r} players={result.players}/{result.max_players} "
            f"version={result.version} map={result.map}"
        )
        return True

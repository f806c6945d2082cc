"""External IP change monitoring via periodic detection queries."""

import asyncio
import inspect
import logging
from typing import Awaitable, Callable, Optional, Union

from dzsa_sync.address_cache import AddressCache
from dzsa_sync.ifconfig import IpDetector

logger = logging.getLogger(__name__)

# Receives (old_ip, new_ip); may be a plain function or a coroutine function
IpChangeCallback = Callable[[str, str], Union[Awaitable[None], None]]


class IpWatcher:
    """Keeps an AddressCache current by polling an IP detector.

    Uses dependency injection for the detector to allow testing
    and different detection services.
    """

    def __init__(
        self,
        detector: IpDetector,
        cache: AddressCache,
        check_interval: float = 600.0,
        on_ip_change: Optional[IpChangeCallback] = None,
    ):
        """Initialize IP watcher.

        Args:
            detector: Client used to learn the public IP.
            cache: Address cache to keep up to date.
            check_interval: Seconds between IP checks.
            on_ip_change: Callback when a known IP changes (receives old, new).
        """
        self._detector = detector
        self._cache = cache
        self._interval = check_interval
        self._on_ip_change = on_ip_change
        self._running = False
        self._task: Optional[asyncio.Task] = None

    @property
    def current_ip(self) -> str:
        """Current public IP address, empty if never detected."""
        return self._cache.get()

    @property
    def is_running(self) -> bool:
        """Whether monitoring is active."""
        return self._running

    async def start(self) -> None:
        """Start monitoring IP changes.

        Performs one detection immediately, then checks periodically.
        A failed initial detection is logged, not raised.
        """
        if self._running:
            return

        self._running = True

        try:
            changed = await self.check_now()
        except asyncio.CancelledError:
            self._running = False
            raise

        # Stopped while the initial detection was in flight
        if not self._running:
            return

        if self._cache.get():
            logger.info("Initial IP acquired")
            logger.debug(f"Initial IP: {self._cache.get()} (changed={changed})")
        else:
            logger.warning("Initial IP detection failed, will retry next interval")

        self._task = asyncio.create_task(self._monitor_loop())

    async def stop(self) -> None:
        """Stop monitoring, cancelling any in-flight detection."""
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("IP watcher stopped")

    async def check_now(self) -> bool:
        """Perform an immediate IP check.

        Returns:
            True if a previously known IP changed, False otherwise.
        """
        try:
            new_ip = await self._detector.detect()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"IP detection failed: {e}")
            return False
        return await self._handle_ip_result(new_ip)

    async def _monitor_loop(self) -> None:
        """Periodically check for IP changes."""
        while self._running:
            await asyncio.sleep(self._interval)
            if not self._running:
                break
            await self.check_now()

    async def _handle_ip_result(self, new_ip: str) -> bool:
        """Store a detection result and notify on change.

        Args:
            new_ip: Freshly detected IP.

        Returns:
            True if IP changed, False otherwise.
        """
        if not new_ip:
            logger.warning("IP detection returned empty IP")
            return False

        old_ip = self._cache.set(new_ip)
        logger.info(f"IP detection completed: {new_ip}")

        # First population is not a change
        if not old_ip or old_ip == new_ip:
            return False

        logger.info(f"IP changed: {old_ip} -> {new_ip}")
        if self._on_ip_change:
            try:
                result = self._on_ip_change(old_ip, new_ip)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.error(f"IP change callback failed: {e}")

        return True

    def set_callback(self, callback: Optional[IpChangeCallback]) -> None:
        """Set or update the IP change callback.

        Args:
            callback: New callback or None to remove.
        """
        self._on_ip_change = callback

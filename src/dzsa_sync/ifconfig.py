"""Public IP detection via ifconfig.net."""

import asyncio
import time
from typing import Optional, Protocol

import aiohttp

from dzsa_sync import __version__
from dzsa_sync.errors import IpDetectionError
from dzsa_sync.metrics import ERROR_DECODE, ERROR_NONE, MetricsRecorder, classify_error


DEFAULT_URL = "https://ifconfig.net/json"
DEFAULT_TIMEOUT = 15.0  # seconds


class IpDetector(Protocol):
    """Protocol for external IP detection."""

    async def detect(self) -> str:
        """Return the current public IP.

        Raises:
            IpDetectionError: If the IP cannot be determined.
        """
        ...


class IfconfigClient:
    """Detects the public IP using the ifconfig.net JSON endpoint.

    Example:
        async with IfconfigClient() as client:
            ip = await client.detect()  # "203.0.113.50"
    """

    HOST_TAG = "ifconfig"

    def __init__(
        self,
        http_session: Optional[aiohttp.ClientSession] = None,
        recorder: Optional[MetricsRecorder] = None,
        url: str = DEFAULT_URL,
        timeout: float = DEFAULT_TIMEOUT,
    ):
        self._session = http_session
        self._owns_session = http_session is None
        self._recorder = recorder
        self._url = url
        self._timeout = timeout

    async def __aenter__(self):
        if self._session is None:
            self._session = aiohttp.ClientSession()
        return self

    async def __aexit__(self, *args):
        await self.close()

    async def detect(self) -> str:
        """Fetch the current public IP.

        Returns:
            IP address as reported by the service, never empty.

        Raises:
            IpDetectionError: On transport failure, non-200 status,
                undecodable body or an empty ip field.
        """
        start = time.monotonic()
        if self._session is None:
            self._session = aiohttp.ClientSession()

        status = 0
        try:
            async with self._session.get(
                self._url,
                headers={
                    "User-Agent": f"dzsa-sync/{__version__}",
                    "Accept": "application/json",
                },
                timeout=aiohttp.ClientTimeout(total=self._timeout),
            ) as resp:
                status = resp.status
                if status != 200:
                    self._record(status, classify_error(None, status), start)
                    raise IpDetectionError(f"unexpected status code: {status}")
                data = await resp.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            self._record(status, classify_error(e, status), start)
            raise IpDetectionError(f"ifconfig request failed: {e!r}") from e
        except ValueError as e:
            self._record(status, ERROR_DECODE, start)
            raise IpDetectionError(f"decode response: {e}") from e

        ip = data.get("ip") if isinstance(data, dict) else None
        if not isinstance(ip, str):
            self._record(status, ERROR_DECODE, start)
            raise IpDetectionError("decode response: missing ip field")

        self._record(status, ERROR_NONE, start)
        ip = ip.strip()
        if not ip:
            raise IpDetectionError("ifconfig returned empty IP")
        return ip

    def _record(self, status: int, error: str, start: float) -> None:
        if self._recorder is not None:
            self._recorder.record_request(
                self.HOST_TAG, status, error, time.monotonic() - start
            )

    async def close(self) -> None:
        """Close the HTTP session if owned."""
        if self._owns_session and self._session:
            await self._session.close()
            self._session = None

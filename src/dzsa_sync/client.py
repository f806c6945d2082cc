"""Client for the DZSA launcher query API.

A query for ip:port both registers the server with the launcher's
listing and returns what the launcher currently knows about it.
"""

import asyncio
import json
import time
from typing import Optional

import aiohttp

from dzsa_sync import __version__
from dzsa_sync.errors import QueryError
from dzsa_sync.metrics import (
    ERROR_DECODE,
    ERROR_NONE,
    ERROR_STATUS_4XX,
    MetricsRecorder,
    classify_error,
)
from dzsa_sync.models import QueryResponse, format_host_port


DEFAULT_BASE_URL = "https://dayzsalauncher.com/api/v1/query"
DEFAULT_TIMEOUT = 15.0  # seconds
USER_AGENT = f"dzsa-sync/{__version__}"


def build_endpoint(base_url: str, ip: str, port: int) -> str:
    """Build the query URL for ip:port.

    Example:
        build_endpoint("https://dayzsalauncher.com/api/v1/query", "1.2.3.4", 2424)
        # "https://dayzsalauncher.com/api/v1/query/1.2.3.4:2424"
    """
    if not ip:
        raise QueryError("build endpoint: empty ip")
    return f"{base_url.rstrip('/')}/{format_host_port(ip, port)}"


class DzsaClient:
    """Queries the DZSA launcher, one request per call, no retries."""

    HOST_TAG = "dzsa"

    def __init__(
        self,
        http_session: Optional[aiohttp.ClientSession] = None,
        recorder: Optional[MetricsRecorder] = None,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = DEFAULT_TIMEOUT,
    ):
        """Initialize client.

        Args:
            http_session: Optional aiohttp session (created lazily if None).
            recorder: Optional metrics recorder for request outcomes.
            base_url: Query API base URL.
            timeout: Total timeout per request in seconds.
        """
        self._session = http_session
        self._owns_session = http_session is None
        self._recorder = recorder
        self._base_url = base_url
        self._timeout = timeout

    async def __aenter__(self):
        if self._session is None:
            self._session = aiohttp.ClientSession()
        return self

    async def __aexit__(self, *args):
        await self.close()

    @property
    def base_url(self) -> str:
        return self._base_url

    async def query(self, ip: str, port: int) -> QueryResponse:
        """Query (and thereby register) the server at ip:port.

        Raises:
            QueryError: On transport failure, non-200 status, undecodable
                body or an error reported by the API.
        """
        start = time.monotonic()
        url = build_endpoint(self._base_url, ip, port)

        if self._session is None:
            self._session = aiohttp.ClientSession()

        status = 0
        try:
            async with self._session.get(
                url,
                headers={"User-Agent": USER_AGENT, "Accept": "application/json"},
                timeout=aiohttp.ClientTimeout(total=self._timeout),
            ) as resp:
                status = resp.status
                if status != 200:
                    self._record(status, classify_error(None, status), start)
                    raise QueryError(f"unexpected status code: {status}")
                body = await resp.read()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            self._record(status, classify_error(e, status), start)
            raise QueryError(f"do request: {e!r}") from e

        try:
            data = json.loads(body)
        except ValueError as e:
            self._record(status, ERROR_DECODE, start)
            raise QueryError(f"decode response: {e}") from e
        if not isinstance(data, dict):
            self._record(status, ERROR_DECODE, start)
            raise QueryError("decode response: expected a JSON object")

        if "error" in data:
            self._record(status, ERROR_STATUS_4XX, start)
            raise QueryError(f"api error: {data['error']}")

        try:
            response = QueryResponse.from_dict(data)
        except (AttributeError, TypeError) as e:
            self._record(status, ERROR_DECODE, start)
            raise QueryError(f"unmarshal response: {e}") from e

        self._record(status, ERROR_NONE, start)
        return response

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

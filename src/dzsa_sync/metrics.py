"""Request and player-count metrics.

Outbound HTTP requests are counted per (host, status_code, error) and
their latency is accumulated per (host, status_code). Each successful
server sync updates a player-count gauge keyed by server name.
"""

import asyncio
from typing import Optional

import aiohttp
from prometheus_client import CollectorRegistry, Counter, Gauge, Histogram, generate_latest

# Error type attribute values for request metrics
ERROR_NONE = "none"
ERROR_TIMEOUT = "timeout"
ERROR_CONNECTION_REFUSED = "connection_refused"
ERROR_STATUS_4XX = "status_4xx"
ERROR_STATUS_5XX = "status_5xx"
ERROR_DECODE = "decode_error"
ERROR_UNKNOWN = "unknown"

NAMESPACE = "dzsa_sync"
REQUEST_COUNT = "request_count"
REQUEST_LATENCY = "request_latency_seconds"
SERVER_PLAYER_COUNT = "server_player_count"


def classify_error(exc: Optional[BaseException], status_code: int = 0) -> str:
    """Return the metrics error type for an exception and HTTP status.

    Args:
        exc: Exception raised by the request, or None.
        status_code: HTTP status, 0 if no response was received.
    """
    if exc is None:
        if 200 <= status_code < 300:
            return ERROR_NONE
        if 400 <= status_code < 500:
            return ERROR_STATUS_4XX
        if status_code >= 500:
            return ERROR_STATUS_5XX
        return ERROR_UNKNOWN

    if isinstance(exc, (asyncio.TimeoutError, aiohttp.ServerTimeoutError)):
        return ERROR_TIMEOUT
    if isinstance(exc, ConnectionRefusedError):
        return ERROR_CONNECTION_REFUSED
    if isinstance(exc, aiohttp.ClientConnectorError):
        if isinstance(exc.os_error, ConnectionRefusedError):
            return ERROR_CONNECTION_REFUSED
    if "connection refused" in str(exc).lower():
        return ERROR_CONNECTION_REFUSED
    if isinstance(exc, (aiohttp.ContentTypeError, ValueError)):
        return ERROR_DECODE
    if 400 <= status_code < 500:
        return ERROR_STATUS_4XX
    if status_code >= 500:
        return ERROR_STATUS_5XX
    return ERROR_UNKNOWN


class MetricsRecorder:
    """Prometheus metrics on a dedicated registry.

    Exposed names (namespace ``dzsa_sync``):
    - request_count_total{host, status_code, error}
    - request_latency_seconds{host, status_code} (histogram)
    - server_player_count{server}
    """

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        self.registry = registry if registry is not None else CollectorRegistry()
        self._requests = Counter(
            REQUEST_COUNT,
            "Outbound HTTP requests by host, status code and error type.",
            ["host", "status_code", "error"],
            namespace=NAMESPACE,
            registry=self.registry,
        )
        self._latency = Histogram(
            REQUEST_LATENCY,
            "Outbound HTTP request latency in seconds.",
            ["host", "status_code"],
            namespace=NAMESPACE,
            registry=self.registry,
        )
        self._players = Gauge(
            SERVER_PLAYER_COUNT,
            "Players on each server as last reported by the launcher.",
            ["server"],
            namespace=NAMESPACE,
            registry=self.registry,
        )

    def record_request(
        self, host: str, status_code: int, error: str, duration: float
    ) -> None:
        """Record one outbound request outcome."""
        self._requests.labels(host=host, status_code=str(status_code), error=error).inc()
        self._latency.labels(host=host, status_code=str(status_code)).observe(duration)

    def record_player_count(self, server_name: str, count: int) -> None:
        """Set the player-count gauge for a server."""
        self._players.labels(server=server_name).set(count)

    def request_count(self, host: str, error: Optional[str] = None) -> int:
        """Total requests to host, optionally filtered by error type."""
        total = 0.0
        for metric in self._requests.collect():
            for sample in metric.samples:
                if not sample.name.endswith("_total"):
                    continue
                if sample.labels["host"] != host:
                    continue
                if error is None or sample.labels["error"] == error:
                    total += sample.value
        return int(total)

    def player_count(self, server_name: str) -> Optional[int]:
        """Last recorded player count for a server, if any."""
        value = self.registry.get_sample_value(
            f"{NAMESPACE}_{SERVER_PLAYER_COUNT}", {"server": server_name}
        )
        return None if value is None else int(value)

    def render(self) -> bytes:
        """Prometheus text exposition of every metric."""
        return generate_latest(self.registry)

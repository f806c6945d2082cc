"""Test doubles shared across test modules."""

import asyncio

from dzsa_sync.models import QueryResponse, ServerResult


class FakeDirectoryClient:
    """In-memory DZSA client.

    Answers with a result whose name echoes the queried port. Per-port
    failures can be queued with fail_next().
    """

    def __init__(self):
        self.calls: list[tuple[str, int]] = []
        self._failures: dict[int, list[Exception]] = {}

    def fail_next(self, port: int, error: Exception | None = None) -> None:
        self._failures.setdefault(port, []).append(error or ConnectionError("boom"))

    def calls_for(self, port: int) -> list[tuple[str, int]]:
        return [c for c in self.calls if c[1] == port]

    async def query(self, ip: str, port: int) -> QueryResponse:
        self.calls.append((ip, port))
        pending = self._failures.get(port)
        if pending:
            raise pending.pop(0)
        return QueryResponse(
            result=ServerResult(name=str(port), players=port % 60, max_players=60),
            status=0,
        )


class FakeIpDetector:
    """IP detector returning values from a sequence, repeating the last one.

    A delay makes every detection take that many seconds.
    """

    def __init__(self, sequence, delay: float = 0.0):
        self._sequence = list(sequence)
        self.call_count = 0
        self._delay = delay

    async def detect(self) -> str:
        idx = min(self.call_count, len(self._sequence) - 1)
        self.call_count += 1
        if self._delay:
            await asyncio.sleep(self._delay)
        result = self._sequence[idx]
        if isinstance(result, Exception):
            raise result
        return result


async def wait_until(predicate, timeout: float = 2.0) -> None:
    """Poll predicate until true, fail after timeout seconds."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met before timeout")
        await asyncio.sleep(0.005)

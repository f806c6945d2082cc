"""Tests for the per-server sync scheduler."""

import asyncio
from unittest.mock import MagicMock, patch

import pytest

from dzsa_sync.address_cache import AddressCache
from dzsa_sync.config import ServerConfig
from dzsa_sync.metrics import MetricsRecorder
from dzsa_sync.result_store import ResultStore
from dzsa_sync.scheduler import EndpointScheduler
from fakes import wait_until


def make_scheduler(client, cache=None, store=None, **kwargs):
    server = kwargs.pop("server", ServerConfig(name="alpha", port=1000))
    return EndpointScheduler(
        server=server,
        client=client,
        cache=cache if cache is not None else AddressCache("10.0.0.1"),
        store=store if store is not None else ResultStore([server.port]),
        **kwargs,
    )


class TestSyncOnce:
    """Tests for a single sync attempt."""

    @pytest.mark.asyncio
    async def test_success_stores_result(self, directory_client):
        """Successful query is stored under the server port."""
        store = ResultStore([1000])
        scheduler = make_scheduler(directory_client, store=store)

        assert await scheduler.sync_once() is True

        assert directory_client.calls == [("10.0.0.1", 1000)]
        result, found = store.get(1000)
        assert found is True
        assert result.name == "1000"

    @pytest.mark.asyncio
    async def test_success_records_player_count(self, directory_client):
        recorder = MetricsRecorder()
        scheduler = make_scheduler(directory_client, recorder=recorder)

        await scheduler.sync_once()

        assert recorder.player_count("alpha") == 1000 % 60

    @pytest.mark.asyncio
    async def test_uses_fallback_ip_when_cache_empty(self, directory_client):
        scheduler = make_scheduler(
            directory_client, cache=AddressCache(), fallback_ip="192.0.2.1"
        )

        assert await scheduler.sync_once() is True

        assert directory_client.calls == [("192.0.2.1", 1000)]

    @pytest.mark.asyncio
    async def test_cache_preferred_over_fallback(self, directory_client):
        scheduler = make_scheduler(
            directory_client, cache=AddressCache("10.0.0.9"), fallback_ip="192.0.2.1"
        )

        await scheduler.sync_once()

        assert directory_client.calls == [("10.0.0.9", 1000)]

    @pytest.mark.asyncio
    async def test_skips_when_no_address(self, directory_client):
        """No address at all is a skip, not a call with an empty IP."""
        store = ResultStore([1000])
        scheduler = make_scheduler(directory_client, cache=AddressCache(), store=store)

        assert await scheduler.sync_once() is False

        assert directory_client.calls == []
        assert store.get(1000) == (None, False)

    @pytest.mark.asyncio
    async def test_failure_then_success(self, directory_client):
        """First attempt fails (not found), second succeeds (found)."""
        store = ResultStore([1000])
        directory_client.fail_next(1000)
        scheduler = make_scheduler(directory_client, store=store)

        assert await scheduler.sync_once() is False
        assert store.get(1000) == (None, False)

        assert await scheduler.sync_once() is True
        result, found = store.get(1000)
        assert found is True
        assert result.name == "1000"

    @pytest.mark.asyncio
    async def test_failure_keeps_previous_result(self, directory_client):
        """A failed attempt leaves the last good result in place."""
        store = ResultStore([1000])
        scheduler = make_scheduler(directory_client, store=store)
        await scheduler.sync_once()

        directory_client.fail_next(1000)
        assert await scheduler.sync_once() is False

        assert store.get(1000)[0].name == "1000"

    @pytest.mark.asyncio
    async def test_query_bounded_by_timeout(self):
        """A hanging query is abandoned after the timeout."""

        async def hang(ip, port):
            await asyncio.sleep(3600)

        client = MagicMock()
        client.query.side_effect = hang
        scheduler = make_scheduler(client, timeout=0.05)

        assert await asyncio.wait_for(scheduler.sync_once(), timeout=2) is False
        assert scheduler.is_syncing is False


class TestSchedulerLoop:
    """Tests for the periodic loop and triggers."""

    @pytest.mark.asyncio
    async def test_syncs_once_on_start(self, directory_client):
        scheduler = make_scheduler(directory_client, interval=100)

        scheduler.start()
        await wait_until(lambda: len(directory_client.calls) == 1)
        await asyncio.sleep(0.05)

        assert len(directory_client.calls) == 1
        await scheduler.stop()

    @pytest.mark.asyncio
    async def test_start_is_idempotent(self, directory_client):
        scheduler = make_scheduler(directory_client, interval=100)

        scheduler.start()
        scheduler.start()
        await wait_until(lambda: len(directory_client.calls) >= 1)
        await asyncio.sleep(0.05)

        assert len(directory_client.calls) == 1
        await scheduler.stop()

    @pytest.mark.asyncio
    async def test_periodic_syncs(self, directory_client):
        scheduler = make_scheduler(directory_client, interval=0.02)

        scheduler.start()
        await wait_until(lambda: len(directory_client.calls) >= 4)

        await scheduler.stop()

    @pytest.mark.asyncio
    async def test_failures_are_not_fatal(self, directory_client):
        """The loop keeps running after failed attempts."""
        for _ in range(3):
            directory_client.fail_next(1000)
        store = ResultStore([1000])
        scheduler = make_scheduler(directory_client, store=store, interval=0.02)

        scheduler.start()
        await wait_until(lambda: store.get(1000)[1])

        assert len(directory_client.calls) >= 4
        assert scheduler.is_running is True
        await scheduler.stop()

    @pytest.mark.asyncio
    async def test_trigger_syncs_once_and_resets_interval(self, directory_client):
        """A trigger causes one sync and restarts the full interval."""
        loop = asyncio.get_running_loop()
        scheduler = make_scheduler(directory_client, interval=100)
        scheduler.start()
        await wait_until(lambda: scheduler.next_sync_at is not None)
        first_deadline = scheduler.next_sync_at

        await asyncio.sleep(0.05)
        triggered_at = loop.time()
        assert scheduler.trigger() is True
        await wait_until(lambda: len(directory_client.calls) == 2)
        await wait_until(lambda: scheduler.next_sync_at != first_deadline)
        await asyncio.sleep(0.05)

        assert len(directory_client.calls) == 2
        assert scheduler.next_sync_at >= triggered_at + 100
        assert scheduler.next_sync_at > first_deadline
        await scheduler.stop()

    @pytest.mark.asyncio
    async def test_back_to_back_triggers_coalesce(self, directory_client):
        """Two triggers before the first is consumed give one extra sync."""
        scheduler = make_scheduler(directory_client, interval=100)

        assert scheduler.trigger() is True
        assert scheduler.trigger() is False

        scheduler.start()
        await wait_until(lambda: len(directory_client.calls) == 2)
        await asyncio.sleep(0.05)

        assert len(directory_client.calls) == 2
        await scheduler.stop()

    @pytest.mark.asyncio
    async def test_trigger_uses_current_address(self, directory_client):
        cache = AddressCache("1.1.1.1")
        scheduler = make_scheduler(directory_client, cache=cache, interval=100)
        scheduler.start()
        await wait_until(lambda: len(directory_client.calls) == 1)

        cache.set("2.2.2.2")
        scheduler.trigger()
        await wait_until(lambda: len(directory_client.calls) == 2)

        assert directory_client.calls == [("1.1.1.1", 1000), ("2.2.2.2", 1000)]
        await scheduler.stop()

    @pytest.mark.asyncio
    async def test_jitter_delays_sync(self, directory_client):
        scheduler = make_scheduler(directory_client, interval=100, jitter=0.01)

        scheduler.start()
        await wait_until(lambda: len(directory_client.calls) == 1)

        await scheduler.stop()

    @pytest.mark.asyncio
    async def test_syncing_during_jitter_delay(self, directory_client):
        """The jitter wait already counts as Syncing."""
        scheduler = make_scheduler(directory_client, interval=100, jitter=0.2)

        with patch("dzsa_sync.scheduler.random.uniform", return_value=0.2):
            scheduler.start()
            await wait_until(lambda: scheduler.is_syncing)

            assert directory_client.calls == []
            await wait_until(lambda: len(directory_client.calls) == 1)
            await wait_until(lambda: not scheduler.is_syncing)

        assert scheduler.next_sync_at is not None
        await scheduler.stop()


class TestSchedulerStop:
    """Tests for cancellation."""

    @pytest.mark.asyncio
    async def test_stop_terminates_task(self, directory_client):
        scheduler = make_scheduler(directory_client, interval=100)
        scheduler.start()
        await wait_until(lambda: scheduler.next_sync_at is not None)

        await asyncio.wait_for(scheduler.stop(), timeout=1)

        assert scheduler.is_running is False

    @pytest.mark.asyncio
    async def test_stop_interrupts_inflight_query(self):
        started = asyncio.Event()

        async def hang(ip, port):
            started.set()
            await asyncio.sleep(3600)

        client = MagicMock()
        client.query.side_effect = hang
        scheduler = make_scheduler(client, interval=100, timeout=3600)
        scheduler.start()
        await asyncio.wait_for(started.wait(), timeout=1)

        await asyncio.wait_for(scheduler.stop(), timeout=1)

        assert scheduler.is_running is False

    @pytest.mark.asyncio
    async def test_stop_without_start_is_safe(self, directory_client):
        await make_scheduler(directory_client).stop()

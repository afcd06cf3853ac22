"""
Tests for the Informer lifecycle: watch registration, the startup sync
barrier, worker loops and shutdown.
"""

import asyncio

import pytest

from kinformer.errors import ConfigurationError, InformerError, SyncTimeoutError
from kinformer.models.config import InformerConfig
from kinformer.models.events import EventType
from kinformer.sync.engine import Informer

from tests.fixtures.fakes import FakeResourceCache, RecordingHandler
from tests.fixtures.objects import make_object


class TestWatchRegistration:
    """Test suite for Informer.watch"""

    def test_indices_follow_registration_order(self, make_informer, recording_handler):
        informer = make_informer(recording_handler)
        first = informer.watch("v1", "ConfigMap", namespace="default")
        second = informer.watch("apps/v1", "Deployment", namespace="prod", selector="app=web")

        assert (first.index, second.index) == (0, 1)
        assert first.name == "default/configmaps "
        assert second.name == "prod/deployments app=web"
        assert second.resource.group == "apps"
        assert len(informer.watches) == 2

    def test_cluster_scoped_kind_ignores_namespace(self, make_informer, recording_handler):
        informer = make_informer(recording_handler)
        watch = informer.watch("v1", "Node", namespace="default")

        assert watch.namespace == ""
        assert watch.name == "/nodes "

    @pytest.mark.parametrize("api_version,kind,selector", [
        ("v1", "Widget", ""),
        ("a/b/c", "ConfigMap", ""),
        ("v1", "ConfigMap", "env in ("),
    ])
    def test_invalid_watch_is_rejected(self, make_informer, recording_handler, api_version, kind, selector):
        informer = make_informer(recording_handler)

        with pytest.raises(ConfigurationError):
            informer.watch(api_version, kind, namespace="default", selector=selector)
        assert len(informer.watches) == 0

    def test_missing_client_factory(self, recording_handler):
        informer = Informer(recording_handler)

        with pytest.raises(ConfigurationError):
            informer.watch("v1", "ConfigMap")

    def test_resync_defaults_from_config(self, recording_handler):
        periods = []

        def cache_factory(list_watch, resync_period, name):
            periods.append(resync_period)
            return FakeResourceCache()

        informer = Informer(
            recording_handler,
            config=InformerConfig(default_resync=30.0),
            client_factory=lambda resource, namespace: None,
            cache_factory=cache_factory,
        )
        informer.watch("v1", "ConfigMap")
        informer.watch("v1", "Secret", resync=0)

        assert periods == [30.0, 0]


class TestInformerRun:
    """Test suite for the run loop"""

    @pytest.mark.asyncio
    async def test_dispatches_after_sync_and_stops(self, make_informer, recording_handler, eventually):
        informer = make_informer(recording_handler, poll_interval=0.01, sync_poll_interval=0.01)
        cache = informer.watch("v1", "ConfigMap", namespace="default").cache
        cache.put(make_object("a"))

        stop_event = asyncio.Event()
        task = asyncio.create_task(informer.run(stop_event))
        await eventually(lambda: len(recording_handler.calls) == 1)

        cache.put(make_object("a", resource_version="2"))
        cache.remove("default/a")
        await eventually(lambda: len(recording_handler.calls) >= 2
                         and recording_handler.calls[-1][1] == EventType.DELETE)

        stop_event.set()
        await asyncio.wait_for(task, timeout=2.0)

        assert cache.started and cache.stopped
        assert informer.is_running is False
        assert informer.queue.shutting_down

    @pytest.mark.asyncio
    async def test_sync_timeout_stops_everything(self, make_informer, recording_handler):
        informer = make_informer(recording_handler, unsynced=(1,), sync_timeout=0.05, sync_poll_interval=0.01)
        synced = informer.watch("v1", "ConfigMap", namespace="default").cache
        unsynced = informer.watch("v1", "Secret", namespace="default").cache
        synced.put(make_object("a"))

        with pytest.raises(SyncTimeoutError):
            await asyncio.wait_for(informer.run(), timeout=2.0)

        assert recording_handler.calls == []
        assert synced.stopped and unsynced.stopped
        assert informer.is_running is False

    @pytest.mark.asyncio
    async def test_cache_crash_before_sync_fails_run(self, make_informer, recording_handler):
        informer = make_informer(recording_handler, unsynced=(1,), sync_poll_interval=0.01)
        synced = informer.watch("v1", "ConfigMap", namespace="default").cache
        unsynced = informer.watch("v1", "Secret", namespace="default").cache

        async def crash(stop_event):
            raise RuntimeError("list forbidden")

        unsynced.run = crash

        with pytest.raises(SyncTimeoutError) as exc_info:
            await asyncio.wait_for(informer.run(), timeout=1.0)

        assert isinstance(exc_info.value.__cause__, RuntimeError)
        assert "list forbidden" in str(exc_info.value)
        assert recording_handler.calls == []
        assert synced.stopped
        assert informer.is_running is False

    @pytest.mark.asyncio
    async def test_cache_crash_after_sync_stops_run(self, make_informer, recording_handler, eventually, caplog):
        informer = make_informer(recording_handler, poll_interval=0.01, sync_poll_interval=0.01)
        healthy = informer.watch("v1", "ConfigMap", namespace="default").cache
        failing = informer.watch("v1", "Secret", namespace="default").cache
        healthy.put(make_object("a"))
        lost = asyncio.Event()

        async def crash_later(stop_event):
            await lost.wait()
            raise RuntimeError("watch connection lost")

        failing.run = crash_later

        task = asyncio.create_task(informer.run())
        await eventually(lambda: len(recording_handler.calls) == 1)
        lost.set()

        await asyncio.wait_for(task, timeout=1.0)

        assert healthy.stopped
        assert informer.is_running is False
        assert "watch connection lost" in informer.get_metrics()["last_error_message"]
        assert any(
            record.levelname == "ERROR" and "stopped unexpectedly" in record.getMessage()
            for record in caplog.records
        )

    @pytest.mark.asyncio
    async def test_stop_during_sync_barrier(self, make_informer, recording_handler):
        informer = make_informer(recording_handler, unsynced=(0,), sync_poll_interval=0.01)
        cache = informer.watch("v1", "ConfigMap", namespace="default").cache

        stop_event = asyncio.Event()
        task = asyncio.create_task(informer.run(stop_event))
        await asyncio.sleep(0.03)
        stop_event.set()

        with pytest.raises(SyncTimeoutError):
            await asyncio.wait_for(task, timeout=2.0)
        assert cache.stopped

    @pytest.mark.asyncio
    async def test_cannot_watch_or_run_while_running(self, make_informer, recording_handler, eventually):
        informer = make_informer(recording_handler, sync_poll_interval=0.01)
        informer.watch("v1", "ConfigMap", namespace="default")

        task = asyncio.create_task(informer.run())
        await eventually(lambda: informer.is_running)

        with pytest.raises(InformerError):
            informer.watch("v1", "Secret", namespace="default")
        with pytest.raises(InformerError):
            await informer.run()

        informer.stop()
        await asyncio.wait_for(task, timeout=2.0)

    @pytest.mark.asyncio
    async def test_multiple_workers_process_and_shut_down(self, make_informer, eventually):
        active, peak = 0, 0
        handled = []

        async def handler(ctx, event, obj, num_retries):
            nonlocal active, peak
            active += 1
            peak = max(peak, active)
            await asyncio.sleep(0.02)
            active -= 1
            handled.append(obj.name)

        informer = make_informer(handler, workers=4, poll_interval=0.01, sync_poll_interval=0.01)
        cache = informer.watch("v1", "ConfigMap", namespace="default").cache

        task = asyncio.create_task(informer.run())
        await eventually(lambda: informer.is_running)
        for i in range(8):
            cache.put(make_object(f"cm-{i}"))

        await eventually(lambda: len(handled) == 8)
        assert sorted(handled) == sorted(f"cm-{i}" for i in range(8))
        assert peak > 1

        informer.stop()
        await asyncio.wait_for(task, timeout=1.0)

    @pytest.mark.asyncio
    async def test_failed_event_is_retried_by_workers(self, make_informer, eventually):
        handler = RecordingHandler(failures=1)
        informer = make_informer(handler, poll_interval=0.01, sync_poll_interval=0.01)
        informer.watch("v1", "ConfigMap", namespace="default").cache.put(make_object("a"))

        task = asyncio.create_task(informer.run())
        await eventually(lambda: len(handler.calls) == 2)
        informer.stop()
        await asyncio.wait_for(task, timeout=2.0)

        assert [retries for _, _, _, retries in handler.calls] == [0, 1]

    @pytest.mark.asyncio
    async def test_cancelling_run_cleans_up(self, make_informer, recording_handler, eventually):
        informer = make_informer(recording_handler, sync_poll_interval=0.01)
        cache = informer.watch("v1", "ConfigMap", namespace="default").cache

        task = asyncio.create_task(informer.run())
        await eventually(lambda: informer.is_running)
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task
        assert cache.stopped
        assert informer.is_running is False


class TestInformerWithMemoryCluster:
    """End-to-end tests against the in-memory store"""

    @pytest.mark.asyncio
    async def test_full_lifecycle(self, cluster, eventually):
        handler = RecordingHandler()
        cluster.apply(make_object("existing", data={"k": "1"}))

        informer = Informer(
            handler,
            config=InformerConfig(poll_interval=0.01, sync_poll_interval=0.01),
            client_factory=cluster.client_for,
        )
        informer.watch("v1", "ConfigMap", namespace="default")

        task = asyncio.create_task(informer.run())
        await eventually(lambda: handler.events == [(EventType.ADD, "existing")])

        cluster.update(make_object("existing", data={"k": "2"}))
        await eventually(lambda: len(handler.calls) == 2)
        assert handler.calls[1][1] == EventType.UPDATE
        assert handler.calls[1][2].get("data") == {"k": "2"}

        final = cluster.delete("v1", "ConfigMap", "existing", namespace="default")
        await eventually(lambda: len(handler.calls) == 3)
        assert handler.calls[2][1] == EventType.DELETE
        assert handler.calls[2][2].resource_version == final.resource_version

        informer.stop()
        await asyncio.wait_for(task, timeout=2.0)
        assert len(informer.deleted_objects) == 0

    @pytest.mark.asyncio
    async def test_namespace_and_selector_filtering(self, cluster, eventually):
        handler = RecordingHandler()
        informer = Informer(
            handler,
            config=InformerConfig(poll_interval=0.01, sync_poll_interval=0.01),
            client_factory=cluster.client_for,
        )
        informer.watch("v1", "ConfigMap", namespace="default", selector="app=web")

        task = asyncio.create_task(informer.run())
        await eventually(lambda: informer.is_running and all(w.cache.has_synced() for w in informer.watches))

        cluster.apply(make_object("other-ns", namespace="kube-system", labels={"app": "web"}))
        cluster.apply(make_object("other-label", labels={"app": "db"}))
        cluster.apply(make_object("match", labels={"app": "web"}))

        await eventually(lambda: len(handler.calls) == 1)
        await asyncio.sleep(0.05)
        informer.stop()
        await asyncio.wait_for(task, timeout=2.0)

        assert handler.events == [(EventType.ADD, "match")]

"""
Tests for ListWatchCache: initial sync, watch notifications, relists,
tombstones and resync.
"""

import asyncio
from typing import Any, List, Tuple

import pytest
import pytest_asyncio

from kinformer.cache.informer_cache import ListWatchCache
from kinformer.cache.listwatch import ListWatch, ObjectList, list_watch_from_client
from kinformer.cache.store import ResourceEventHandler
from kinformer.models.objects import DeletedFinalStateUnknown

from tests.fixtures.objects import make_object


class Recorder:
    """Collects cache notifications as (kind, payload) tuples"""

    def __init__(self):
        self.events: List[Tuple[str, Any]] = []

    def handler(self) -> ResourceEventHandler:
        return ResourceEventHandler(
            on_add=lambda obj: self.events.append(("add", obj)),
            on_update=lambda old, new: self.events.append(("update", (old, new))),
            on_delete=lambda obj: self.events.append(("delete", obj)),
        )

    def kinds(self) -> List[str]:
        return [kind for kind, _ in self.events]


@pytest.fixture
def recorder():
    return Recorder()


@pytest_asyncio.fixture
async def start_cache(cluster, recorder):
    """Start a ListWatchCache on configmaps in ``default`` and stop it afterwards"""
    running = []

    async def start(selector: str = "", **kwargs) -> ListWatchCache:
        resource = cluster.resolver.resolve("v1", "ConfigMap")
        client = cluster.client_for(resource, "default")
        cache = ListWatchCache(list_watch_from_client(client, selector), name="test", relist_backoff=0.01, **kwargs)
        cache.client = client
        cache.add_event_handler(recorder.handler())

        stop_event = asyncio.Event()
        task = asyncio.create_task(cache.run(stop_event))
        running.append((stop_event, task))
        while not cache.has_synced():
            await asyncio.sleep(0.005)
        return cache

    yield start

    for stop_event, task in running:
        stop_event.set()
        await asyncio.wait_for(task, timeout=1.0)


class TestInitialSync:
    """Test suite for the first list"""

    @pytest.mark.asyncio
    async def test_sync_reports_existing_objects(self, cluster, recorder, start_cache):
        cluster.apply(make_object("a"))
        cluster.apply(make_object("b"))

        cache = await start_cache()

        assert cache.has_synced()
        assert sorted(cache.list_keys()) == ["default/a", "default/b"]
        assert sorted(obj.name for kind, obj in recorder.events if kind == "add") == ["a", "b"]

    @pytest.mark.asyncio
    async def test_get_by_key(self, cluster, start_cache):
        cluster.apply(make_object("a", data={"k": "v"}))
        cache = await start_cache()

        obj, exists = cache.get_by_key("default/a")
        assert exists and obj.get("data") == {"k": "v"}
        assert cache.get_by_key("default/missing") == (None, False)

    @pytest.mark.asyncio
    async def test_selector_limits_mirror(self, cluster, start_cache):
        cluster.apply(make_object("web", labels={"app": "web"}))
        cluster.apply(make_object("db", labels={"app": "db"}))

        cache = await start_cache(selector="app=web")

        assert cache.list_keys() == ["default/web"]

    @pytest.mark.asyncio
    async def test_list_failure_is_retried(self, cluster):
        attempts = {"count": 0}
        resource = cluster.resolver.resolve("v1", "ConfigMap")
        client = cluster.client_for(resource, "default")
        cluster.apply(make_object("a"))

        async def flaky_list() -> ObjectList:
            attempts["count"] += 1
            if attempts["count"] == 1:
                raise ConnectionError("apiserver unavailable")
            return await client.list()

        cache = ListWatchCache(ListWatch(flaky_list, lambda rv: client.watch(resource_version=rv)),
                               relist_backoff=0.01)
        stop_event = asyncio.Event()
        task = asyncio.create_task(cache.run(stop_event))
        try:
            for _ in range(200):
                if cache.has_synced():
                    break
                await asyncio.sleep(0.005)
            assert cache.has_synced()
            assert attempts["count"] == 2
        finally:
            stop_event.set()
            await asyncio.wait_for(task, timeout=1.0)


class TestWatchNotifications:
    """Test suite for watch driven updates"""

    @pytest.mark.asyncio
    async def test_add_update_delete(self, cluster, recorder, start_cache, eventually):
        cache = await start_cache()

        cluster.apply(make_object("a", data={"v": "1"}))
        cluster.apply(make_object("a", data={"v": "2"}))
        final = cluster.delete("v1", "ConfigMap", "a", namespace="default")
        await eventually(lambda: recorder.kinds() == ["add", "update", "delete"])

        old, new = recorder.events[1][1]
        assert (old.get("data"), new.get("data")) == ({"v": "1"}, {"v": "2"})
        assert recorder.events[2][1].resource_version == final.resource_version
        assert cache.list_keys() == []

    @pytest.mark.asyncio
    async def test_closed_stream_resumes_without_relist(self, cluster, recorder, start_cache, eventually):
        cache = await start_cache()

        # The change lands while no watch is open
        cluster.close_watches()
        cluster.apply(make_object("after-close"))

        await eventually(lambda: cache.list_keys() == ["default/after-close"])
        assert cache.client.watch_calls == 2
        assert cache.client.list_calls == 1

    @pytest.mark.asyncio
    async def test_expired_watch_relists_with_tombstones(self, cluster, recorder, start_cache, eventually):
        cluster.apply(make_object("kept"))
        cluster.apply(make_object("lost", data={"v": "last"}))
        cache = await start_cache()

        # The delete lands behind the error, so the cache only learns of it by relisting
        cluster.expire_watches()
        cluster.delete("v1", "ConfigMap", "lost", namespace="default")

        await eventually(lambda: cache.client.list_calls == 2 and "delete" in recorder.kinds())

        tombstone = next(obj for kind, obj in recorder.events if kind == "delete")
        assert isinstance(tombstone, DeletedFinalStateUnknown)
        assert tombstone.key == "default/lost"
        assert tombstone.obj.get("data") == {"v": "last"}
        assert cache.list_keys() == ["default/kept"]

    @pytest.mark.asyncio
    async def test_failing_handler_does_not_stop_cache(self, cluster, start_cache, eventually):
        cache = await start_cache()

        def broken(obj):
            raise RuntimeError("handler bug")

        cache.add_event_handler(ResourceEventHandler(on_add=broken))
        cluster.apply(make_object("a"))

        await eventually(lambda: cache.list_keys() == ["default/a"])


class TestHandlersAndResync:
    """Test suite for late handlers and periodic resync"""

    @pytest.mark.asyncio
    async def test_late_handler_sees_existing_objects(self, cluster, start_cache):
        cluster.apply(make_object("a"))
        cache = await start_cache()

        late = Recorder()
        cache.add_event_handler(late.handler())

        assert late.kinds() == ["add"]
        assert late.events[0][1].name == "a"

    @pytest.mark.asyncio
    async def test_resync_reports_updates(self, cluster, recorder, start_cache, eventually):
        cluster.apply(make_object("a"))
        await start_cache(resync_period=0.02)

        await eventually(lambda: recorder.kinds().count("update") >= 2)

        old, new = next(payload for kind, payload in recorder.events if kind == "update")
        assert old is new

    @pytest.mark.asyncio
    async def test_run_returns_when_stopped(self, cluster):
        resource = cluster.resolver.resolve("v1", "ConfigMap")
        cache = ListWatchCache(list_watch_from_client(cluster.client_for(resource)), resync_period=10.0)
        stop_event = asyncio.Event()
        task = asyncio.create_task(cache.run(stop_event))
        await asyncio.sleep(0.02)

        stop_event.set()
        await asyncio.wait_for(task, timeout=1.0)
        assert task.done()

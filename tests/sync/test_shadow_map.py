"""
Tests for DeletedObjectMap capture and purge rules.
"""

import pytest

from kinformer.models.events import ObjectKey
from kinformer.sync.shadow import DeletedObjectMap

from tests.fixtures.objects import make_object


class TestDeletedObjectMap:
    """Test suite for the deleted-object shadow map."""

    @pytest.fixture
    def shadows(self):
        return DeletedObjectMap()

    def test_capture_stores_independent_copy(self, shadows):
        obj = make_object("a", data={"k": "v"})
        shadows.capture(ObjectKey(0, "default/a"), obj)

        obj.metadata.labels["changed"] = "yes"
        obj.get("data")["k"] = "mutated"

        stored = shadows.get(ObjectKey(0, "default/a"))
        assert stored is not obj
        assert "changed" not in stored.metadata.labels
        assert stored.get("data") == {"k": "v"}

    def test_latest_capture_wins(self, shadows):
        key = ObjectKey(0, "default/a")
        shadows.capture(key, make_object("a", resource_version="1"))
        shadows.capture(key, make_object("a", resource_version="2"))

        assert len(shadows) == 1
        assert shadows.get(key).resource_version == "2"

    def test_watch_index_separates_identical_keys(self, shadows):
        shadows.capture(ObjectKey(0, "default/a"), make_object("a", kind="ConfigMap"))
        shadows.capture(ObjectKey(1, "default/a"), make_object("a", kind="Secret"))

        assert shadows.purge(ObjectKey(0, "default/a"))
        assert ObjectKey(0, "default/a") not in shadows
        assert shadows.get(ObjectKey(1, "default/a")).kind == "Secret"

    def test_purge_missing_key(self, shadows):
        assert shadows.purge(ObjectKey(0, "default/missing")) is False

    def test_purge_keeps_newer_capture(self, shadows):
        key = ObjectKey(0, "default/a")
        shadows.capture(key, make_object("a", resource_version="1"))
        delivered = shadows.get(key)
        shadows.capture(key, make_object("a", resource_version="2"))

        assert shadows.purge(key, delivered=delivered) is False
        assert shadows.get(key).resource_version == "2"

    def test_purge_delivered_capture(self, shadows):
        key = ObjectKey(0, "default/a")
        shadows.capture(key, make_object("a"))

        assert shadows.purge(key, delivered=shadows.get(key)) is True
        assert len(shadows) == 0

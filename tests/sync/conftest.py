"""
Fixtures for dispatch tests: an informer factory wired to hand-driven caches.
"""

from typing import Any
from unittest.mock import Mock

import pytest

from kinformer.models.config import InformerConfig
from kinformer.sync.engine import Informer
from kinformer.sync.ratelimit import ItemExponentialFailureRateLimiter
from tests.fixtures.fakes import FakeResourceCache, RecordingHandler


@pytest.fixture
def recording_handler() -> RecordingHandler:
    return RecordingHandler()


@pytest.fixture
def make_informer():
    """
    Build an informer whose watches use FakeResourceCache.

    Each registered watch gets a fresh cache (unsynced when its index is in
    ``unsynced``); the rate limiter uses millisecond delays.
    """

    def factory(handler, unsynced=(), **config: Any) -> Informer:
        counter = {"index": 0}

        def cache_factory(list_watch, resync_period, name):
            cache = FakeResourceCache(synced=counter["index"] not in unsynced)
            counter["index"] += 1
            return cache

        return Informer(
            handler,
            config=InformerConfig(**config),
            client_factory=lambda resource, namespace: Mock(),
            cache_factory=cache_factory,
            rate_limiter=ItemExponentialFailureRateLimiter(0.001, 0.01),
        )

    return factory

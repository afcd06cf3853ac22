"""
Shared fixtures for kinformer tests.
"""

import asyncio
from typing import Callable

import pytest

from kinformer.cache.memory import InMemoryCluster
from kinformer.models.objects import ResourceObject
from tests.fixtures.objects import make_object


@pytest.fixture
def obj_factory() -> Callable[..., ResourceObject]:
    """Factory for test objects"""
    return make_object


@pytest.fixture
def cluster() -> InMemoryCluster:
    """Empty in-memory store with the builtin kinds"""
    return InMemoryCluster()


@pytest.fixture
def eventually():
    """Wait until a condition holds (or fail after a timeout)"""

    async def wait(predicate: Callable[[], bool], timeout: float = 2.0, interval: float = 0.01) -> None:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while not predicate():
            if loop.time() > deadline:
                raise AssertionError("condition not met before timeout")
            await asyncio.sleep(interval)

    return wait

"""
Unit tests for the per-session graph cache.
"""

import asyncio
from unittest.mock import MagicMock

import pytest

from task_orchestrator.orchestration.core.graph_cache import GraphCache
from task_orchestrator.orchestration.states import TaskType


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def builder():
    return MagicMock(side_effect=lambda task_type: MagicMock(name=task_type.value))


@pytest.fixture
def cache(builder, clock):
    return GraphCache(builder, ttl_seconds=60, sweep_interval_seconds=10, clock=clock)


def test_get_reuses_entry(cache, builder):
    first = cache.get("session-1", TaskType.MEDICINE)
    assert cache.get("session-1", "medicine") is first
    assert builder.call_count == 1


def test_entries_are_per_session_and_type(cache, builder):
    cache.get("session-1", TaskType.MEDICINE)
    cache.get("session-1", TaskType.TRAVEL)
    cache.get("session-2", TaskType.MEDICINE)
    assert len(cache) == 3
    assert builder.call_count == 3


def test_expired_entry_is_rebuilt(cache, builder, clock):
    first = cache.get("session-1", TaskType.MEDICINE)
    clock.now += 61
    second = cache.get("session-1", TaskType.MEDICINE)
    assert second is not first
    assert builder.call_count == 2


def test_sweep_removes_only_expired(cache, clock):
    cache.get("session-1", TaskType.MEDICINE)
    clock.now += 30
    cache.get("session-2", TaskType.TRAVEL)
    clock.now += 31

    assert cache.sweep() == 1
    assert len(cache) == 1
    assert cache.sweep() == 0


def test_evict_and_drop_session(cache):
    cache.get("session-1", TaskType.MEDICINE)
    cache.get("session-1", TaskType.TRAVEL)
    cache.get("session-2", TaskType.TRAVEL)

    assert cache.evict("session-2", TaskType.TRAVEL)
    assert not cache.evict("session-2", TaskType.TRAVEL)
    assert cache.drop_session("session-1") == 2
    assert len(cache) == 0


@pytest.mark.asyncio
async def test_background_sweep(builder, clock):
    cache = GraphCache(builder, ttl_seconds=5, sweep_interval_seconds=0.01, clock=clock)
    cache.get("session-1", TaskType.MEDICINE)
    clock.now += 10

    cache.start()
    assert cache.running
    for _ in range(50):
        if len(cache) == 0:
            break
        await asyncio.sleep(0.01)

    assert len(cache) == 0
    await cache.stop()
    assert not cache.running


@pytest.mark.asyncio
async def test_start_is_idempotent_and_stop_without_start(cache):
    await cache.stop()
    cache.start()
    sweeper = cache._sweeper
    cache.start()
    assert cache._sweeper is sweeper
    await cache.stop()

"""Shared fixtures for the tiercache test suite."""

import pytest

from tiercache.engine import PersistentCache


class FakeClock:
    """Manually advanced clock returning seconds."""

    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def disk_cache(tmp_path, clock) -> PersistentCache:
    """Memory + disk engine rooted in a temp directory, no TTL."""
    return PersistentCache(base=tmp_path, name="test", clock=clock)


@pytest.fixture
def ttl_cache(tmp_path, clock) -> PersistentCache:
    """Memory + disk engine with a 10 second TTL."""
    return PersistentCache(base=tmp_path, name="ttl", duration=10, clock=clock)


@pytest.fixture
def memory_cache(tmp_path, clock) -> PersistentCache:
    """Memory-only engine."""
    return PersistentCache(base=tmp_path, name="mem", persist=False, clock=clock)

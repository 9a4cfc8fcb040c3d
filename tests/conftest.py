import pytest

from infrastructure.persistence import CacheStorage
from tests.fakes import FakeClock


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def cache(tmp_path, clock):
    store = CacheStorage(f"sqlite:///{tmp_path / 'cache.db'}", clock=clock)
    yield store
    store.close()

import pytest

from zklocker import MemoryStore


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def session(store):
    s = store.session()
    yield s
    s.close()

import os

# Must be set before importing app so the module-level store never points at
# the real data file during tests.
os.environ.setdefault("DATA_FILE", os.path.join(os.path.dirname(__file__), ".pytest-data.json"))

import pytest
from fastapi.testclient import TestClient

from app import app, get_store
from store import ActionStore
from tests.helpers import InMemoryActionStore


@pytest.fixture
def store(tmp_path):
    """A file-backed store in a per-test temporary directory."""
    return ActionStore(tmp_path / "data" / "data.json")


@pytest.fixture
def memory_store():
    return InMemoryActionStore()


def _client_for(store, raise_server_exceptions=True):
    app.dependency_overrides[get_store] = lambda: store
    return TestClient(app, raise_server_exceptions=raise_server_exceptions)


@pytest.fixture
def client(store):
    """
    A TestClient whose get_store dependency is overridden with the per-test
    file store, so every request reads and writes inside tmp_path.
    """
    yield _client_for(store)
    app.dependency_overrides.clear()


@pytest.fixture
def memory_client(memory_store):
    yield _client_for(memory_store)
    app.dependency_overrides.clear()


@pytest.fixture
def lenient_client():
    """
    Returns a factory for clients that turn unhandled errors into 500
    responses instead of re-raising them in the test.
    """
    def make(store):
        return _client_for(store, raise_server_exceptions=False)
    yield make
    app.dependency_overrides.clear()

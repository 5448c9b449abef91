# ABOUTME: Pytest hooks and shared fixtures: in-memory and file-backed providers plus app clients.
# ABOUTME: Every test gets its own database; nothing touches the configured storage candidates.

import pytest
from fastapi.testclient import TestClient

try:
    from dotenv import load_dotenv

    load_dotenv()
except ImportError:
    pass

from api.main import create_app
from core.database import ConnectionProvider
from core.storage import TRANSIENT, StorageTarget


@pytest.fixture
def memory_provider():
    """Provider over a fresh in-memory database."""
    provider = ConnectionProvider(TRANSIENT)
    yield provider
    provider.close()


@pytest.fixture
def db_file(tmp_path):
    return tmp_path / "data" / "nexus.db"


@pytest.fixture
def file_provider(db_file):
    """Read-write provider over a SQLite file in tmp_path."""
    db_file.parent.mkdir(parents=True, exist_ok=True)
    provider = ConnectionProvider(StorageTarget(path=db_file, label="test"))
    yield provider
    provider.close()


@pytest.fixture
def session(memory_provider):
    with memory_provider.session() as s:
        yield s


@pytest.fixture
def client(memory_provider):
    """TestClient for the read-write API over the in-memory provider."""
    return TestClient(create_app(memory_provider))

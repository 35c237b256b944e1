import pytest
from fastapi.testclient import TestClient

import database
from config import settings
from library import Library


@pytest.fixture
def db_file(tmp_path, monkeypatch):
    # Every test gets its own database file and a fresh pool
    path = str(tmp_path / "library_test.db")
    database.close_pool()
    monkeypatch.setattr(settings, "database_file", path)
    yield path
    database.close_pool()


@pytest.fixture
def lib(db_file):
    lib = Library()
    yield lib
    lib.close()


@pytest.fixture
def client(db_file):
    from api import app

    # Entering the client runs the lifespan, which creates the schema
    with TestClient(app) as test_client:
        yield test_client

import os
from pathlib import Path

import mongomock
import pytest

os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("JWT_SECRET", "test-secret-key-long-enough-for-hs256")


def pytest_collection_modifyitems(config, items):
    """Automatically mark tests based on their directory location."""
    for item in items:
        test_path = str(Path(item.fspath))

        if "/domain/" in test_path:
            item.add_marker(pytest.mark.domain)
        elif "/application/" in test_path:
            item.add_marker(pytest.mark.application)
        elif "/integration/" in test_path:
            item.add_marker(pytest.mark.integration)


@pytest.fixture()
def db():
    """A fresh in-memory database per test, with the production indexes."""
    from database import ensure_indexes

    database = mongomock.MongoClient()["storefront_test"]
    ensure_indexes(database)
    return database


@pytest.fixture()
def shipping_address():
    return {
        "street": "123 Main St",
        "city": "Springfield",
        "state": "IL",
        "postal_code": "62701",
        "country": "US",
    }


@pytest.fixture()
def mongo_db():
    """
    A throwaway database on a real MongoDB server.

    Set TEST_MONGO_URL to run tests that rely on server-side atomicity;
    mongomock does not serialise concurrent updates.
    """
    url = os.getenv("TEST_MONGO_URL")
    if not url:
        pytest.skip("TEST_MONGO_URL is not set")

    from pymongo import MongoClient

    client = MongoClient(url, serverSelectionTimeoutMS=2000)
    name = f"storefront_test_{os.getpid()}"
    yield client[name]
    client.drop_database(name)
    client.close()

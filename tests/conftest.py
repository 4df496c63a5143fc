"""Pytest configuration and fixtures for autocrud tests."""

import pytest
import pytest_asyncio

from autocrud.models.database import BackendKind, ConnectionDescriptor
from autocrud.models.schema import SchemaEntry, SchemaGraph
from autocrud.services.database import close_pool, create_pool
from factories import make_users_table, make_users_view


# Markers for test categorization
def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests (deselect with '-m \"not integration\"')"
    )
    config.addinivalue_line(
        "markers", "slow: marks tests as slow running tests"
    )


@pytest.fixture(scope="session")
def anyio_backend():
    """Set the async backend for anyio."""
    return "asyncio"


def pytest_collection_modifyitems(config, items):
    """Run integration tests last."""
    items.sort(key=lambda item: (item.get_closest_marker("integration") is not None, item.name))


APP_SCHEMA_SQL = """
ATTACH DATABASE ':memory:' AS app;

CREATE TABLE app.users (
    id UUID PRIMARY KEY DEFAULT (lower(
        hex(randomblob(4)) || '-' || hex(randomblob(2)) || '-4' ||
        substr(hex(randomblob(2)), 2) || '-a' || substr(hex(randomblob(2)), 2) ||
        '-' || hex(randomblob(6))
    )),
    email TEXT NOT NULL,
    age INT4
);

CREATE TABLE app.accounts (
    account_id INTEGER PRIMARY KEY,
    user_id UUID NOT NULL REFERENCES users (id),
    handle TEXT NOT NULL UNIQUE,
    balance NUMERIC DEFAULT 0,
    settings JSON,
    created_at TIMESTAMP
);

CREATE VIEW app.adult_users AS
    SELECT id, email, age FROM users WHERE age >= 18;
"""


@pytest.fixture
def users_table():
    """A users table entry."""
    return make_users_table()


@pytest.fixture
def users_graph():
    """A schema graph holding only the app schema."""
    users = make_users_table()
    view = make_users_view()
    return SchemaGraph(
        backend=BackendKind.POSTGRES,
        schemas=(SchemaEntry(name="app", tables={"users": users}, views={"adult_users": view}),),
    )


@pytest_asyncio.fixture
async def sqlite_pool():
    """An in-memory SQLite pool with an attached ``app`` schema."""
    pool = await create_pool(ConnectionDescriptor(backend=BackendKind.SQLITE, sqlite_path=""))
    await pool._conn.executescript(APP_SCHEMA_SQL)
    yield pool
    await close_pool(pool)

# tests/test_operations_sqlite.py
"""End-to-end operation tests against an in-memory SQLite database."""

import dataclasses
import uuid
from datetime import datetime

import pytest
import pytest_asyncio

from autocrud.config import Settings
from autocrud.main import app_lifespan, format_summary, run
from autocrud.services.cache import MetadataCache
from autocrud.services.catalog import get_catalog_reader
from autocrud.services.dialects import SQLITE_DIALECT
from autocrud.services.gateway import ExecutionGateway
from autocrud.services.operations import OperationService
from autocrud.services.synthesizer import QuerySynthesizer
from autocrud.utils.exceptions import (
    ConstraintViolationError,
    InvalidRequestError,
    MissingRequiredColumnError,
    OutOfRangeError,
    UnscopedMutationError,
)


async def build_service(pool, dialect=SQLITE_DIALECT) -> OperationService:
    cache = MetadataCache(get_catalog_reader(pool), schema_names=["app"])
    await cache.refresh()
    return OperationService(cache, QuerySynthesizer(dialect, max_limit=100), ExecutionGateway(pool))


@pytest_asyncio.fixture
async def service(sqlite_pool):
    """Operation service over the app schema."""
    return await build_service(sqlite_pool)


async def seed_users(service, ages):
    created = []
    for letter, age in zip("abcdefgh", ages):
        result = await service.execute_operation(
            "app.users", {"kind": "create", "values": {"email": f"{letter}@b.com", "age": age}}
        )
        created.append(result.rows[0])
    return created


class TestCreate:
    """Create operation tests."""

    @pytest.mark.asyncio
    async def test_create_returns_row(self, service):
        """Test the created row comes back with its generated key."""
        result = await service.execute_operation(
            "app.users", {"kind": "create", "values": {"email": "a@b.com", "age": 30}}
        )
        assert result.affected_rows == 1
        row = result.rows[0]
        assert isinstance(row["id"], uuid.UUID)
        assert row["email"] == "a@b.com"
        assert row["age"] == 30
        assert result.columns == ["id", "email", "age"]

    @pytest.mark.asyncio
    async def test_create_missing_required(self, service):
        """Test omitting email is rejected before execution."""
        with pytest.raises(MissingRequiredColumnError):
            await service.execute_operation("app.users", {"kind": "create", "values": {"age": 5}})

        result = await service.execute_operation("app.users", {"kind": "read"})
        assert result.rows == []

    @pytest.mark.asyncio
    async def test_value_kinds_round_trip(self, service):
        """Test decimal, JSON and timestamp columns."""
        user = (await seed_users(service, [30]))[0]
        result = await service.execute_operation("app.accounts", {
            "kind": "create",
            "values": {
                "user_id": str(user["id"]),
                "handle": "alice",
                "balance": "10.25",
                "settings": {"tier": "gold"},
                "created_at": "2024-01-02T03:04:05",
            },
        })
        account = result.rows[0]
        assert account["account_id"] == 1
        assert account["balance"] == "10.25"
        assert account["settings"] == {"tier": "gold"}
        assert account["created_at"] == datetime(2024, 1, 2, 3, 4, 5)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("balance", ["10.50", "12345678901234567.89", "0.1000000000000000000001"])
    async def test_inexact_decimals_rejected(self, service, balance):
        """Test decimals SQLite would not store exactly never reach the table."""
        user = (await seed_users(service, [30]))[0]
        with pytest.raises(OutOfRangeError):
            await service.execute_operation("app.accounts", {
                "kind": "create",
                "values": {"user_id": str(user["id"]), "handle": "alice", "balance": balance},
            })
        result = await service.execute_operation("app.accounts", {"kind": "read"})
        assert result.rows == []

    @pytest.mark.asyncio
    async def test_decimal_filter_compares_numerically(self, service):
        """Test filter values are compared, not stored, so any spelling works."""
        user = (await seed_users(service, [30]))[0]
        await service.execute_operation("app.accounts", {
            "kind": "create",
            "values": {"user_id": str(user["id"]), "handle": "alice", "balance": "10.5"},
        })
        result = await service.execute_operation(
            "app.accounts", {"kind": "read", "filters": {"balance": "10.50"}}
        )
        assert [r["balance"] for r in result.rows] == ["10.5"]

    @pytest.mark.asyncio
    async def test_constraint_violations(self, service):
        """Test foreign key and unique violations are translated."""
        user = (await seed_users(service, [30]))[0]
        with pytest.raises(ConstraintViolationError):
            await service.execute_operation("app.accounts", {
                "kind": "create",
                "values": {"user_id": str(uuid.uuid4()), "handle": "ghost"},
            })

        values = {"user_id": str(user["id"]), "handle": "alice"}
        await service.execute_operation("app.accounts", {"kind": "create", "values": values})
        with pytest.raises(ConstraintViolationError):
            await service.execute_operation("app.accounts", {"kind": "create", "values": values})

    @pytest.mark.asyncio
    async def test_views_reject_create(self, service):
        """Test views are read-only."""
        with pytest.raises(InvalidRequestError):
            await service.execute_operation(
                "app.adult_users", {"kind": "create", "values": {"email": "x@b.com"}}
            )


class TestRead:
    """Read operation tests."""

    @pytest.mark.asyncio
    async def test_filter_sort_limit(self, service):
        """Test filtered, sorted pages."""
        await seed_users(service, [17, 25, 40, 25, 19])

        request = {"kind": "read", "filters": {"age": {"gt": 18}}, "sort": "email", "limit": 2}
        first = await service.execute_operation("app.users", request)
        assert [r["email"] for r in first.rows] == ["b@b.com", "c@b.com"]

        second = await service.execute_operation("app.users", {**request, "offset": 2})
        assert [r["email"] for r in second.rows] == ["d@b.com", "e@b.com"]

    @pytest.mark.asyncio
    async def test_pagination_is_stable_with_ties(self, service):
        """Test pages over a non-unique sort key neither repeat nor skip rows."""
        await seed_users(service, [25, 25, 25, 30, 30, 25])

        everything = await service.execute_operation(
            "app.users", {"kind": "read", "sort": "age"}
        )
        paged = []
        for offset in range(0, 6, 2):
            page = await service.execute_operation(
                "app.users", {"kind": "read", "sort": "age", "limit": 2, "offset": offset}
            )
            paged.extend(page.rows)

        assert paged == everything.rows
        assert len({r["id"] for r in paged}) == 6

    @pytest.mark.asyncio
    async def test_read_view(self, service):
        """Test reading a key-less view."""
        await seed_users(service, [17, 25, 40])
        result = await service.execute_operation(
            "app.adult_users", {"kind": "read", "sort": "-age"}
        )
        assert [r["age"] for r in result.rows] == [40, 25]

    @pytest.mark.asyncio
    async def test_in_and_null_filters(self, service):
        """Test in and is_null filters."""
        await seed_users(service, [17, None, 40])
        nulls = await service.execute_operation(
            "app.users", {"kind": "read", "filters": {"age": {"is_null": True}}}
        )
        assert [r["email"] for r in nulls.rows] == ["b@b.com"]

        listed = await service.execute_operation(
            "app.users", {"kind": "read", "filters": {"age": {"in": [17, 40]}}, "sort": "age"}
        )
        assert [r["age"] for r in listed.rows] == [17, 40]


class TestMutations:
    """Update and delete operation tests."""

    @pytest.mark.asyncio
    async def test_update_by_key(self, service):
        """Test a key-scoped update returns the new row."""
        user = (await seed_users(service, [30]))[0]
        result = await service.execute_operation("app.users", {
            "kind": "update", "filters": {"id": str(user["id"])}, "values": {"age": 31}
        })
        assert result.affected_rows == 1
        assert result.rows[0]["age"] == 31

    @pytest.mark.asyncio
    async def test_delete_by_key(self, service):
        """Test a key-scoped delete."""
        users = await seed_users(service, [30, 40])
        result = await service.execute_operation(
            "app.users", {"kind": "delete", "filters": {"id": str(users[0]["id"])}}
        )
        assert result.affected_rows == 1

        remaining = await service.execute_operation("app.users", {"kind": "read"})
        assert [r["id"] for r in remaining.rows] == [users[1]["id"]]

    @pytest.mark.asyncio
    async def test_unscoped_delete_rejected(self, service):
        """Test deletes that do not pin a key leave the table alone."""
        await seed_users(service, [30, 40])
        with pytest.raises(UnscopedMutationError):
            await service.execute_operation(
                "app.users", {"kind": "delete", "filters": {"email": "a@b.com"}}
            )
        remaining = await service.execute_operation("app.users", {"kind": "read"})
        assert len(remaining.rows) == 2

    @pytest.mark.asyncio
    async def test_delete_by_unique_constraint(self, service):
        """Test unique constraints scope mutations too."""
        user = (await seed_users(service, [30]))[0]
        await service.execute_operation("app.accounts", {
            "kind": "create", "values": {"user_id": str(user["id"]), "handle": "alice"}
        })
        result = await service.execute_operation(
            "app.accounts", {"kind": "delete", "filters": {"handle": "alice"}}
        )
        assert result.affected_rows == 1


class TestReadBack:
    """Creates on a dialect without RETURNING."""

    @pytest.mark.asyncio
    async def test_read_back_by_rowid(self, sqlite_pool):
        """Test the created row is fetched by its row id."""
        dialect = dataclasses.replace(SQLITE_DIALECT, supports_returning=False)
        service = await build_service(sqlite_pool, dialect)

        result = await service.execute_operation(
            "app.users", {"kind": "create", "values": {"email": "a@b.com"}}
        )
        assert result.affected_rows == 1
        assert result.rows[0]["email"] == "a@b.com"
        assert isinstance(result.rows[0]["id"], uuid.UUID)

    @pytest.mark.asyncio
    async def test_read_back_by_unique_key(self, sqlite_pool):
        """Test a supplied unique key identifies the created row."""
        dialect = dataclasses.replace(SQLITE_DIALECT, supports_returning=False)
        service = await build_service(sqlite_pool, dialect)
        user = (await seed_users(service, [30]))[0]

        result = await service.execute_operation("app.accounts", {
            "kind": "create", "values": {"user_id": str(user["id"]), "handle": "alice"}
        })
        assert result.last_row_id == 1
        assert result.rows[0]["account_id"] == 1
        assert result.rows[0]["handle"] == "alice"

    @pytest.mark.asyncio
    async def test_mutation_without_returning(self, sqlite_pool):
        """Test updates report affected rows only."""
        dialect = dataclasses.replace(SQLITE_DIALECT, supports_returning=False)
        service = await build_service(sqlite_pool, dialect)
        user = (await seed_users(service, [30]))[0]

        result = await service.execute_operation("app.users", {
            "kind": "update", "filters": {"id": str(user["id"])}, "values": {"age": 31}
        })
        assert result.affected_rows == 1
        assert result.rows == []


class TestEntryPoint:
    """Lifespan and summary tests."""

    @pytest.mark.asyncio
    async def test_format_summary(self, service):
        """Test the discovery summary table."""
        text = format_summary(service.cache.current())
        lines = text.splitlines()
        assert lines[0].split(" | ")[0].strip() == "Schema"
        assert any(line.startswith("app ") for line in lines)
        assert any(line.startswith("TOTAL") for line in lines)
        assert any(line.startswith("Server: SQLite") for line in lines)

    @pytest.mark.asyncio
    async def test_lifespan_and_run(self, capsys):
        """Test startup wiring against an in-memory database."""
        settings = Settings(backend="sqlite", sqlite_path="", schemas='["main"]')
        async with app_lifespan(settings) as services:
            status = services["connection"]
            assert status.connected
            assert status.database == ":memory:"
            assert status.latency_ms >= 0
            assert services["cache"].list_schemas() == ["main"]
            assert services["cache"].list_tables() == []
            assert services["synthesizer"].max_limit == settings.max_result_rows
        assert services["pool"].is_closed

        await run(settings)
        assert "TOTAL" in capsys.readouterr().out

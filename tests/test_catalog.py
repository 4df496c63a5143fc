# tests/test_catalog.py
"""Tests for catalog discovery."""

from typing import Optional
from unittest.mock import AsyncMock, MagicMock

import pytest

from autocrud.models.catalog import (
    RawColumn,
    RawForeignKey,
    RawRelation,
    RawSchema,
    RawUniqueConstraint,
)
from autocrud.models.database import BackendKind
from autocrud.services.catalog import (
    CatalogReader,
    MySQLCatalogReader,
    PostgresCatalogReader,
    SQLiteCatalogReader,
    _mysql_enum_labels,
    _mysql_native_type,
    discover,
    get_catalog_reader,
)
from autocrud.utils.exceptions import (
    CatalogConnectionError,
    ExecutionConnectionError,
    UnsupportedBackendError,
)


class _StaticReader(CatalogReader):
    """Catalog reader serving a fixed schema."""

    backend = BackendKind.SQLITE

    def __init__(self, pool, schema: Optional[RawSchema] = None, fail: Optional[Exception] = None):
        super().__init__(pool)
        self.schema = schema
        self.fail = fail

    async def list_schemas(self) -> list[str]:
        return ["app"]

    async def server_version(self) -> Optional[str]:
        return "static"

    async def read_schema(self, schema_name: str, include_system: bool) -> RawSchema:
        if self.fail is not None:
            raise self.fail
        return self.schema


def _open_pool():
    pool = MagicMock()
    pool.is_closed = False
    return pool


def _columns(*names):
    return [RawColumn(name=n, native_type="text", ordinal_position=i) for i, n in enumerate(names, 1)]


class TestSQLiteDiscovery:
    """Discovery against an in-memory SQLite database."""

    @pytest.mark.asyncio
    async def test_discovers_tables_and_views(self, sqlite_pool):
        """Test relations, columns and keys of the app schema."""
        catalog = await discover(sqlite_pool, ["app"])

        assert catalog.backend == BackendKind.SQLITE
        assert catalog.server_version.startswith("SQLite ")
        schema = catalog.schema("app")
        assert [r.name for r in schema.relations] == ["accounts", "adult_users", "users"]

        users = schema.relation("users")
        assert users.kind == "table"
        assert [c.name for c in users.columns] == ["id", "email", "age"]
        assert [c.native_type for c in users.columns] == ["UUID", "TEXT", "INT4"]
        assert users.primary_key == ["id"]
        assert users.columns[0].has_default
        assert not users.columns[1].is_nullable

        view = schema.relation("adult_users")
        assert view.kind == "view"
        assert view.primary_key == []
        assert "SELECT" in view.definition

    @pytest.mark.asyncio
    async def test_keys_and_constraints(self, sqlite_pool):
        """Test rowid aliases, unique constraints and foreign keys."""
        catalog = await discover(sqlite_pool, ["app"])
        accounts = catalog.schema("app").relation("accounts")

        account_id = accounts.columns[0]
        assert account_id.name == "account_id"
        assert account_id.has_default
        assert not account_id.is_nullable
        assert accounts.primary_key == ["account_id"]

        assert [u.columns for u in accounts.unique_constraints] == [["handle"]]
        assert len(accounts.foreign_keys) == 1
        fk = accounts.foreign_keys[0]
        assert (fk.column, fk.ref_schema, fk.ref_table, fk.ref_column) == (
            "user_id", "app", "users", "id"
        )

    @pytest.mark.asyncio
    async def test_missing_schema_skipped(self, sqlite_pool):
        """Test requested schemas that do not exist."""
        catalog = await discover(sqlite_pool, ["app", "nope"])
        assert [s.name for s in catalog.schemas] == ["app"]
        assert any("nope" in d for d in catalog.diagnostics)

    @pytest.mark.asyncio
    async def test_default_schemas(self, sqlite_pool):
        """Test discovery without names reads every attached database."""
        reader = SQLiteCatalogReader(sqlite_pool)
        schemas = await reader.list_user_schemas()
        assert "main" in schemas
        assert "app" in schemas
        assert "temp" not in schemas

        catalog = await reader.discover()
        assert {"main", "app"} <= {s.name for s in catalog.schemas}


class TestCatalogReader:
    """Backend-independent reader behaviour."""

    @pytest.mark.asyncio
    async def test_closed_pool(self):
        """Test discovery on a closed pool."""
        pool = MagicMock()
        pool.is_closed = True
        with pytest.raises(CatalogConnectionError):
            await _StaticReader(pool).discover(["app"])

    @pytest.mark.asyncio
    async def test_connection_lost(self):
        """Test connection failures surface as catalog connection errors."""
        pool = _open_pool()
        pool.backend = BackendKind.SQLITE
        pool.fetch = AsyncMock(side_effect=ConnectionRefusedError("refused"))
        pool.translate_error = lambda e: ExecutionConnectionError(str(e))

        with pytest.raises(CatalogConnectionError):
            await SQLiteCatalogReader(pool).discover(["app"])
        pool.fetch.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_schema_failure_is_diagnosed(self):
        """Test a schema whose introspection fails is skipped."""
        reader = _StaticReader(_open_pool(), fail=RuntimeError("permission denied"))
        catalog = await reader.discover(["app"])
        assert catalog.schemas == []
        assert "permission denied" in catalog.diagnostics[0]

    @pytest.mark.asyncio
    async def test_malformed_rows_dropped(self):
        """Test relations and keys that violate their shape are dropped."""
        empty = RawRelation(schema_name="app", name="ghost", kind="table")
        orders = RawRelation(
            schema_name="app",
            name="orders",
            kind="table",
            columns=_columns("id", "user_id"),
            primary_key=["id"],
            foreign_keys=[
                RawForeignKey(name="fk_ok", column="user_id", ref_schema="app",
                              ref_table="users", ref_column="id"),
                RawForeignKey(name="fk_bad_column", column="missing", ref_schema="app",
                              ref_table="users", ref_column="id"),
                RawForeignKey(name="fk_bad_target", column="user_id", ref_schema="app",
                              ref_table="ghost", ref_column="id"),
                RawForeignKey(name="fk_elsewhere", column="user_id", ref_schema="billing",
                              ref_table="customers", ref_column="id"),
            ],
            unique_constraints=[
                RawUniqueConstraint(name="u_ok", columns=["user_id"]),
                RawUniqueConstraint(name="u_bad", columns=["nope"]),
            ],
        )
        users = RawRelation(
            schema_name="app",
            name="users",
            kind="table",
            columns=_columns("id"),
            primary_key=["uuid"],
        )
        schema = RawSchema(name="app", relations=[empty, orders, users])

        catalog = await _StaticReader(_open_pool(), schema=schema).discover(["app"])

        assert [r.name for r in schema.relations] == ["orders", "users"]
        assert [fk.name for fk in orders.foreign_keys] == ["fk_ok", "fk_elsewhere"]
        assert [u.name for u in orders.unique_constraints] == ["u_ok"]
        assert users.primary_key == []
        assert len(catalog.diagnostics) == 4

    def test_unsupported_backend(self):
        """Test a pool without a registered reader."""
        pool = MagicMock()
        pool.backend = "oracle"
        with pytest.raises(UnsupportedBackendError):
            get_catalog_reader(pool)

    def test_reader_registry(self):
        """Test readers are chosen by pool backend."""
        pool = MagicMock()
        pool.backend = BackendKind.POSTGRES
        assert isinstance(get_catalog_reader(pool), PostgresCatalogReader)

    def test_postgres_system_schemas(self):
        """Test PostgreSQL system schema detection."""
        reader = PostgresCatalogReader(_open_pool())
        assert reader.is_system_schema("pg_catalog")
        assert reader.is_system_schema("pg_temp_3")
        assert reader.is_system_schema("pg_toast_temp_1")
        assert not reader.is_system_schema("public")
        assert PostgresCatalogReader._category("a", "e") == "enum_array"
        assert PostgresCatalogReader._category("e", None) == "enum"
        assert PostgresCatalogReader._category(None, None) is None


class TestMySQLHelpers:
    """MySQL column type helpers."""

    def test_native_type(self):
        """Test unsigned and boolean column types."""
        assert _mysql_native_type("int", "int(10) unsigned") == "int unsigned"
        assert _mysql_native_type("tinyint", "tinyint(1)") == "tinyint(1)"
        assert _mysql_native_type("tinyint", "tinyint(4)") == "tinyint"
        assert _mysql_native_type("VARCHAR", "varchar(255)") == "varchar"

    def test_enum_labels(self):
        """Test enum labels with embedded quotes."""
        assert _mysql_enum_labels("enum('small','it''s','large')") == ["small", "it's", "large"]


def _pg_column(name, data_type="integer", **overrides):
    row = {
        "table_name": "users",
        "column_name": name,
        "ordinal_position": 1,
        "data_type": data_type,
        "udt_schema": "pg_catalog",
        "udt_name": "int4",
        "is_nullable": "NO",
        "column_default": None,
        "is_identity": "NO",
        "is_generated": "NEVER",
        "udt_type": "b",
        "element_type": None,
        "comment": None,
    }
    row.update(overrides)
    return row


def _pg_routine(name, specific_name, return_type="integer", prokind="f"):
    return {
        "routine_name": name,
        "specific_name": specific_name,
        "prokind": prokind,
        "returns_set": False,
        "return_type": return_type,
        "return_udt_schema": "pg_catalog",
        "return_udt_name": return_type,
        "return_udt_type": "b" if return_type != "trigger" else "p",
        "comment": None,
    }


def _pg_parameter(specific_name, position, name, mode="IN", default=None):
    return {
        "specific_name": specific_name,
        "ordinal_position": position,
        "parameter_mode": mode,
        "parameter_name": name,
        "data_type": "integer",
        "udt_schema": "pg_catalog",
        "udt_name": "int4",
        "parameter_default": default,
        "udt_type": "b",
        "element_type": None,
    }


def _mysql_column(table, name, position, data_type, column_type, extra=""):
    return {
        "table_name": table,
        "column_name": name,
        "ordinal_position": position,
        "data_type": data_type,
        "column_type": column_type,
        "is_nullable": "NO",
        "column_default": None,
        "extra": extra,
        "comment": "",
    }


class TestPostgresRows:
    """PostgreSQL catalog rows mapped onto raw models."""

    def setup_method(self):
        """Set up test fixtures."""
        self.pool = _open_pool()
        self.reader = PostgresCatalogReader(self.pool)

    def test_identity_and_generated_defaults(self):
        """Test identity and generated columns count as defaulted."""
        plain = self.reader._column_from_row(_pg_column("age", is_nullable="YES"))
        assert plain.is_nullable
        assert not plain.has_default
        assert plain.udt_category == "base"

        identity = self.reader._column_from_row(_pg_column("id", is_identity="YES"))
        assert identity.has_default
        assert identity.default_value is None
        assert not identity.is_nullable

        generated = self.reader._column_from_row(_pg_column("total", is_generated="ALWAYS"))
        assert generated.has_default

        serial = self.reader._column_from_row(
            _pg_column("n", column_default="nextval('users_n_seq'::regclass)")
        )
        assert serial.has_default
        assert serial.default_value == "nextval('users_n_seq'::regclass)"

    def test_enum_and_enum_array_categories(self):
        """Test enum columns and arrays of enums."""
        mood = self.reader._column_from_row(_pg_column(
            "mood", data_type="USER-DEFINED", udt_schema="app", udt_name="mood", udt_type="e"
        ))
        assert (mood.native_type, mood.udt_schema, mood.udt_name) == ("USER-DEFINED", "app", "mood")
        assert mood.udt_category == "enum"

        moods = self.reader._column_from_row(_pg_column(
            "moods", data_type="ARRAY", udt_schema="app", udt_name="_mood",
            udt_type="b", element_type="e"
        ))
        assert moods.native_type == "ARRAY"
        assert moods.udt_name == "_mood"
        assert moods.udt_category == "enum_array"

    @pytest.mark.asyncio
    async def test_routines_group_parameters(self):
        """Test parameters attach by specific name and triggers are skipped."""
        self.pool.fetch = AsyncMock(side_effect=[
            [
                _pg_routine("add", "add_101"),
                _pg_routine("add", "add_102"),
                _pg_routine("audit", "audit_103", return_type="trigger"),
                _pg_routine("archive", "archive_104", return_type="void", prokind="p"),
            ],
            [
                _pg_parameter("add_101", 1, "a"),
                _pg_parameter("add_101", 2, "b", default="1"),
                _pg_parameter("add_102", 1, None),
                _pg_parameter("archive_104", 1, "user_id"),
                _pg_parameter("archive_104", 2, "archived", mode="OUT"),
            ],
        ])

        routines = await self.reader._get_routines("app")

        assert [(r.name, r.specific_name) for r in routines] == [
            ("add", "add_101"), ("add", "add_102"), ("archive", "archive_104")
        ]
        first, second, archive = routines
        assert first.kind == "function"
        assert [(p.name, p.has_default) for p in first.parameters] == [("a", False), ("b", True)]
        assert [p.name for p in second.parameters] == ["arg1"]
        assert archive.kind == "procedure"
        assert [p.mode for p in archive.parameters] == ["IN", "OUT"]
        assert self.pool.fetch.await_count == 2
        assert self.pool.fetch.await_args_list[0].args[1] == ("app",)

    @pytest.mark.asyncio
    async def test_enums_keep_label_order(self):
        """Test enum labels group by type in catalog order."""
        self.pool.fetch = AsyncMock(return_value=[
            {"enum_name": "color", "enum_value": "red"},
            {"enum_name": "color", "enum_value": "green"},
            {"enum_name": "mood", "enum_value": "sad"},
            {"enum_name": "mood", "enum_value": "ok"},
            {"enum_name": "mood", "enum_value": "happy"},
        ])

        enums = await self.reader._get_enums("app")

        assert [(e.schema_name, e.name) for e in enums] == [("app", "color"), ("app", "mood")]
        assert enums[0].labels == ["red", "green"]
        assert enums[1].labels == ["sad", "ok", "happy"]


class TestMySQLRows:
    """MySQL catalog rows mapped onto raw models."""

    @pytest.mark.asyncio
    async def test_read_schema(self):
        """Test inline enums, boolean tinyints and keys of one database."""
        pool = _open_pool()
        pool.fetch = AsyncMock(side_effect=[
            [{"table_name": "users", "table_type": "BASE TABLE", "comment": "", "definition": None}],
            [
                _mysql_column("users", "id", 1, "int", "int(10) unsigned", extra="auto_increment"),
                _mysql_column("users", "size", 2, "enum", "enum('small','it''s','large')"),
                _mysql_column("users", "active", 3, "tinyint", "tinyint(1)"),
                _mysql_column("users", "rank", 4, "tinyint", "tinyint(4)"),
                _mysql_column("ghosts", "id", 1, "int", "int(11)"),
            ],
            [
                {"table_name": "users", "constraint_name": "PRIMARY",
                 "constraint_type": "PRIMARY KEY", "column_name": "id"},
            ],
            [],
            [],
            [],
        ])

        schema = await MySQLCatalogReader(pool).read_schema("shop", False)

        assert [r.name for r in schema.relations] == ["users"]
        users = schema.relation("users")
        assert users.comment is None
        assert [c.native_type for c in users.columns] == [
            "int unsigned", "enum", "tinyint(1)", "tinyint"
        ]
        assert users.columns[0].has_default
        assert users.primary_key == ["id"]

        size = users.columns[1]
        assert (size.udt_schema, size.udt_name, size.udt_category) == ("shop", "users_size", "enum")
        assert [(e.schema_name, e.name, e.labels) for e in schema.enums] == [
            ("shop", "users_size", ["small", "it's", "large"])
        ]
        assert pool.fetch.await_count == 6

# autocrud/services/catalog.py
"""Catalog discovery services.

A catalog reader issues read-only introspection queries for a set of
schema names and returns a backend-independent :class:`RawCatalog`.
"""

import logging
import re
from abc import ABC, abstractmethod
from collections import defaultdict
from typing import Any, Iterable, Optional, Sequence

from autocrud.models.catalog import (
    RawCatalog,
    RawColumn,
    RawEnum,
    RawForeignKey,
    RawParameter,
    RawRelation,
    RawRoutine,
    RawSchema,
    RawUniqueConstraint,
)
from autocrud.models.database import BackendKind
from autocrud.services.database import DatabasePool
from autocrud.services.dialects import get_dialect
from autocrud.utils.exceptions import (
    CatalogConnectionError,
    DiscoveryError,
    ExecutionConnectionError,
    MalformedCatalogError,
    UnsupportedBackendError,
)

logger = logging.getLogger("catalog-reader")


class CatalogReader(ABC):
    """Reads the database catalog for one backend."""

    backend: BackendKind
    system_schemas: frozenset[str] = frozenset()

    def __init__(self, pool: DatabasePool):
        """Initialize the reader.

        Args:
            pool: The database connection pool.
        """
        self.pool = pool
        self.dialect = get_dialect(self.backend)

    # ------------------------------------------------------------------
    # Public surface
    # ------------------------------------------------------------------

    async def discover(
        self,
        schema_names: Optional[Iterable[str]] = None,
        include_system: bool = False
    ) -> RawCatalog:
        """Read every requested schema from the catalog.

        Args:
            schema_names: Schemas to introspect; all user schemas when empty.
            include_system: Keep system schemas and internal tables.

        Returns:
            The raw catalog. Relations and keys that could not be read
            consistently are dropped and listed in ``diagnostics``.

        Raises:
            CatalogConnectionError: If the pool cannot serve a connection.
        """
        if self.pool.is_closed:
            raise CatalogConnectionError("Connection pool is closed")

        catalog = RawCatalog(backend=self.backend)
        available = await self.list_schemas()
        catalog.server_version = await self.server_version()

        requested = sorted(set(schema_names or ())) or await self.list_user_schemas()
        logger.info(
            "Starting catalog discovery for schemas: %s", ", ".join(requested)
        )

        for name in requested:
            if name not in available:
                self._diagnose(catalog, f"Schema '{name}' does not exist; skipped")
                continue
            if not include_system and self.is_system_schema(name):
                self._diagnose(catalog, f"Schema '{name}' is a system schema; skipped")
                continue
            try:
                schema = await self.read_schema(name, include_system)
            except DiscoveryError:
                raise
            except Exception as e:
                self._diagnose(catalog, f"Could not introspect schema '{name}': {e}")
                continue
            catalog.schemas.append(schema)

        self._drop_malformed(catalog)
        logger.info(
            "Catalog discovery complete: %d schemas, %d diagnostics",
            len(catalog.schemas), len(catalog.diagnostics)
        )
        return catalog

    async def list_user_schemas(self) -> list[str]:
        """List every schema that is not a system schema."""
        return [s for s in await self.list_schemas() if not self.is_system_schema(s)]

    def is_system_schema(self, name: str) -> bool:
        return name in self.system_schemas

    @abstractmethod
    async def list_schemas(self) -> list[str]:
        """List every schema visible to the connection."""

    @abstractmethod
    async def server_version(self) -> Optional[str]:
        """Return the server's version string."""

    @abstractmethod
    async def read_schema(self, schema_name: str, include_system: bool) -> RawSchema:
        """Read one schema's relations, routines and enums."""

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _fetch(self, sql: str, params: Sequence[Any] = ()) -> list[dict[str, Any]]:
        try:
            return await self.pool.fetch(sql, params)
        except Exception as e:
            translated = self.pool.translate_error(e)
            if isinstance(translated, ExecutionConnectionError):
                raise CatalogConnectionError(str(e)) from e
            raise

    @staticmethod
    def _diagnose(catalog: RawCatalog, message: str) -> None:
        logger.warning(message)
        catalog.diagnostics.append(message)

    def _drop_malformed(self, catalog: RawCatalog) -> None:
        """Drop relations without columns and keys pointing at missing columns.

        Foreign keys into schemas outside the catalog are kept; the schema
        builder decides how to degrade them.
        """
        for schema in catalog.schemas:
            kept = []
            for relation in schema.relations:
                if not relation.columns:
                    error = MalformedCatalogError(relation.qualified_name, "relation has no columns")
                    self._diagnose(catalog, error.message)
                    continue
                kept.append(relation)
            schema.relations = kept

        for schema in catalog.schemas:
            for relation in schema.relations:
                names = relation.column_names()
                valid_fks = []
                for fk in relation.foreign_keys:
                    reason = self._foreign_key_problem(catalog, names, fk)
                    if reason:
                        error = MalformedCatalogError(relation.qualified_name, reason)
                        self._diagnose(catalog, error.message)
                        continue
                    valid_fks.append(fk)
                relation.foreign_keys = valid_fks

                missing = [c for c in relation.primary_key if c not in names]
                if missing:
                    error = MalformedCatalogError(
                        relation.qualified_name,
                        f"primary key names missing columns {missing}"
                    )
                    self._diagnose(catalog, error.message)
                    relation.primary_key = []
                relation.unique_constraints = [
                    u for u in relation.unique_constraints
                    if u.columns and all(c in names for c in u.columns)
                ]

    @staticmethod
    def _foreign_key_problem(
        catalog: RawCatalog,
        local_columns: set[str],
        fk: RawForeignKey
    ) -> Optional[str]:
        if fk.column not in local_columns:
            return f"foreign key {fk.name} uses missing column '{fk.column}'"
        target_schema = catalog.schema(fk.ref_schema)
        if target_schema is None:
            return None
        target = target_schema.relation(fk.ref_table)
        if target is None:
            return f"foreign key {fk.name} references missing table {fk.ref_schema}.{fk.ref_table}"
        if fk.ref_column not in target.column_names():
            return (
                f"foreign key {fk.name} references missing column "
                f"{fk.ref_schema}.{fk.ref_table}.{fk.ref_column}"
            )
        return None


def _attach_constraints(
    relations: dict[str, RawRelation],
    constraint_rows: list[dict[str, Any]]
) -> None:
    """Group PRIMARY KEY / UNIQUE rows (ordered by key position) onto relations."""
    uniques: dict[tuple[str, str], list[str]] = defaultdict(list)
    for row in constraint_rows:
        relation = relations.get(row["table_name"])
        if relation is None:
            continue
        if row["constraint_type"] == "PRIMARY KEY":
            relation.primary_key.append(row["column_name"])
        else:
            uniques[(row["table_name"], row["constraint_name"])].append(row["column_name"])
    for (table_name, constraint_name), columns in uniques.items():
        relations[table_name].unique_constraints.append(
            RawUniqueConstraint(name=constraint_name, columns=columns)
        )


def _attach_foreign_keys(
    schema_name: str,
    relations: dict[str, RawRelation],
    fk_rows: list[dict[str, Any]]
) -> None:
    for row in fk_rows:
        relation = relations.get(row["table_name"])
        if relation is None:
            continue
        relation.foreign_keys.append(RawForeignKey(
            name=row["constraint_name"],
            column=row["column_name"],
            ref_schema=row["ref_schema"] or schema_name,
            ref_table=row["ref_table"],
            ref_column=row["ref_column"]
        ))


# ---------------------------------------------------------------------------
# PostgreSQL
# ---------------------------------------------------------------------------

_PG_TYPTYPE = {
    "b": "base",
    "c": "composite",
    "d": "domain",
    "e": "enum",
    "p": "pseudo",
    "r": "range",
    "m": "multirange",
}


class PostgresCatalogReader(CatalogReader):
    """Reads information_schema and pg_catalog."""

    backend = BackendKind.POSTGRES
    system_schemas = frozenset({"pg_catalog", "information_schema", "pg_toast"})

    def is_system_schema(self, name: str) -> bool:
        return (
            name in self.system_schemas
            or name.startswith("pg_temp_")
            or name.startswith("pg_toast_temp_")
        )

    async def list_schemas(self) -> list[str]:
        rows = await self._fetch("""
            SELECT nspname::text AS schema_name
            FROM pg_catalog.pg_namespace
            ORDER BY nspname
        """)
        return [row["schema_name"] for row in rows]

    async def server_version(self) -> Optional[str]:
        rows = await self._fetch("SELECT version() AS version")
        return rows[0]["version"] if rows else None

    async def read_schema(self, schema_name: str, include_system: bool) -> RawSchema:
        relations = await self._get_relations(schema_name)
        for row in await self._get_columns(schema_name):
            relation = relations.get(row["table_name"])
            if relation is not None:
                relation.columns.append(self._column_from_row(row))
        _attach_constraints(relations, await self._get_constraints(schema_name))
        _attach_foreign_keys(schema_name, relations, await self._get_foreign_keys(schema_name))

        return RawSchema(
            name=schema_name,
            relations=list(relations.values()),
            routines=await self._get_routines(schema_name),
            enums=await self._get_enums(schema_name)
        )

    async def _get_relations(self, schema_name: str) -> dict[str, RawRelation]:
        rows = await self._fetch("""
            SELECT
                t.table_name::text AS table_name,
                t.table_type::text AS table_type,
                obj_description(c.oid, 'pg_class') AS comment,
                v.view_definition::text AS definition
            FROM information_schema.tables t
            JOIN pg_catalog.pg_namespace n ON n.nspname = t.table_schema
            JOIN pg_catalog.pg_class c
                ON c.relnamespace = n.oid AND c.relname = t.table_name
            LEFT JOIN information_schema.views v
                ON v.table_schema = t.table_schema AND v.table_name = t.table_name
            WHERE t.table_schema = $1
                AND t.table_type IN ('BASE TABLE', 'VIEW')
            ORDER BY t.table_name
        """, (schema_name,))
        return {
            row["table_name"]: RawRelation(
                schema_name=schema_name,
                name=row["table_name"],
                kind="table" if row["table_type"] == "BASE TABLE" else "view",
                definition=row["definition"],
                comment=row["comment"]
            )
            for row in rows
        }

    async def _get_columns(self, schema_name: str) -> list[dict[str, Any]]:
        return await self._fetch("""
            SELECT
                c.table_name::text AS table_name,
                c.column_name::text AS column_name,
                c.ordinal_position::int AS ordinal_position,
                c.data_type::text AS data_type,
                c.udt_schema::text AS udt_schema,
                c.udt_name::text AS udt_name,
                c.is_nullable::text AS is_nullable,
                c.column_default::text AS column_default,
                c.is_identity::text AS is_identity,
                c.is_generated::text AS is_generated,
                ty.typtype::text AS udt_type,
                et.typtype::text AS element_type,
                col_description(cls.oid, c.ordinal_position::int) AS comment
            FROM information_schema.columns c
            JOIN pg_catalog.pg_namespace n ON n.nspname = c.table_schema
            JOIN pg_catalog.pg_class cls
                ON cls.relnamespace = n.oid AND cls.relname = c.table_name
            LEFT JOIN pg_catalog.pg_namespace tn ON tn.nspname = c.udt_schema
            LEFT JOIN pg_catalog.pg_type ty
                ON ty.typnamespace = tn.oid AND ty.typname = c.udt_name
            LEFT JOIN pg_catalog.pg_type et ON et.oid = ty.typelem AND ty.typelem <> 0
            WHERE c.table_schema = $1
            ORDER BY c.table_name, c.ordinal_position
        """, (schema_name,))

    @staticmethod
    def _category(udt_type: Optional[str], element_type: Optional[str]) -> Optional[str]:
        if element_type == "e":
            return "enum_array"
        return _PG_TYPTYPE.get(udt_type or "")

    def _column_from_row(self, row: dict[str, Any]) -> RawColumn:
        return RawColumn(
            name=row["column_name"],
            native_type=row["data_type"],
            ordinal_position=row["ordinal_position"],
            is_nullable=(row["is_nullable"] or "").upper() == "YES",
            has_default=(
                row["column_default"] is not None
                or (row["is_identity"] or "").upper() == "YES"
                or (row["is_generated"] or "").upper() == "ALWAYS"
            ),
            udt_schema=row["udt_schema"],
            udt_name=row["udt_name"],
            udt_category=self._category(row["udt_type"], row["element_type"]),
            default_value=row["column_default"],
            comment=row["comment"]
        )

    async def _get_constraints(self, schema_name: str) -> list[dict[str, Any]]:
        return await self._fetch("""
            SELECT
                tc.table_name::text AS table_name,
                tc.constraint_name::text AS constraint_name,
                tc.constraint_type::text AS constraint_type,
                kcu.column_name::text AS column_name
            FROM information_schema.table_constraints tc
            JOIN information_schema.key_column_usage kcu
                ON kcu.constraint_schema = tc.constraint_schema
                AND kcu.constraint_name = tc.constraint_name
                AND kcu.table_name = tc.table_name
            WHERE tc.table_schema = $1
                AND tc.constraint_type IN ('PRIMARY KEY', 'UNIQUE')
            ORDER BY tc.table_name, tc.constraint_name, kcu.ordinal_position
        """, (schema_name,))

    async def _get_foreign_keys(self, schema_name: str) -> list[dict[str, Any]]:
        return await self._fetch("""
            SELECT
                cl.relname::text AS table_name,
                con.conname::text AS constraint_name,
                att.attname::text AS column_name,
                fns.nspname::text AS ref_schema,
                fcl.relname::text AS ref_table,
                fatt.attname::text AS ref_column
            FROM pg_catalog.pg_constraint con
            JOIN pg_catalog.pg_class cl ON cl.oid = con.conrelid
            JOIN pg_catalog.pg_namespace ns ON ns.oid = cl.relnamespace
            JOIN pg_catalog.pg_class fcl ON fcl.oid = con.confrelid
            JOIN pg_catalog.pg_namespace fns ON fns.oid = fcl.relnamespace
            CROSS JOIN LATERAL unnest(con.conkey, con.confkey) AS k(local_attnum, ref_attnum)
            JOIN pg_catalog.pg_attribute att
                ON att.attrelid = con.conrelid AND att.attnum = k.local_attnum
            JOIN pg_catalog.pg_attribute fatt
                ON fatt.attrelid = con.confrelid AND fatt.attnum = k.ref_attnum
            WHERE con.contype = 'f' AND ns.nspname = $1
            ORDER BY cl.relname, con.conname
        """, (schema_name,))

    async def _get_enums(self, schema_name: str) -> list[RawEnum]:
        rows = await self._fetch("""
            SELECT
                t.typname::text AS enum_name,
                e.enumlabel::text AS enum_value
            FROM pg_catalog.pg_type t
            JOIN pg_catalog.pg_namespace n ON n.oid = t.typnamespace
            JOIN pg_catalog.pg_enum e ON e.enumtypid = t.oid
            WHERE n.nspname = $1 AND t.typtype = 'e'
            ORDER BY t.typname, e.enumsortorder
        """, (schema_name,))
        enums: dict[str, RawEnum] = {}
        for row in rows:
            enums.setdefault(
                row["enum_name"],
                RawEnum(schema_name=schema_name, name=row["enum_name"])
            ).labels.append(row["enum_value"])
        return list(enums.values())

    async def _get_routines(self, schema_name: str) -> list[RawRoutine]:
        rows = await self._fetch("""
            SELECT
                p.proname::text AS routine_name,
                p.proname || '_' || p.oid AS specific_name,
                p.prokind::text AS prokind,
                p.proretset AS returns_set,
                format_type(p.prorettype, NULL) AS return_type,
                rn.nspname::text AS return_udt_schema,
                rt.typname::text AS return_udt_name,
                rt.typtype::text AS return_udt_type,
                obj_description(p.oid, 'pg_proc') AS comment
            FROM pg_catalog.pg_proc p
            JOIN pg_catalog.pg_namespace n ON n.oid = p.pronamespace
            LEFT JOIN pg_catalog.pg_type rt ON rt.oid = p.prorettype
            LEFT JOIN pg_catalog.pg_namespace rn ON rn.oid = rt.typnamespace
            WHERE n.nspname = $1
                AND p.prokind IN ('f', 'p')
                AND NOT EXISTS (
                    SELECT 1 FROM pg_catalog.pg_depend d
                    WHERE d.classid = 'pg_catalog.pg_proc'::regclass
                        AND d.objid = p.oid AND d.deptype = 'e'
                )
            ORDER BY p.proname, p.oid
        """, (schema_name,))

        param_rows = await self._fetch("""
            SELECT
                pa.specific_name::text AS specific_name,
                pa.ordinal_position::int AS ordinal_position,
                pa.parameter_mode::text AS parameter_mode,
                pa.parameter_name::text AS parameter_name,
                pa.data_type::text AS data_type,
                pa.udt_schema::text AS udt_schema,
                pa.udt_name::text AS udt_name,
                pa.parameter_default::text AS parameter_default,
                ty.typtype::text AS udt_type,
                et.typtype::text AS element_type
            FROM information_schema.parameters pa
            LEFT JOIN pg_catalog.pg_namespace tn ON tn.nspname = pa.udt_schema
            LEFT JOIN pg_catalog.pg_type ty
                ON ty.typnamespace = tn.oid AND ty.typname = pa.udt_name
            LEFT JOIN pg_catalog.pg_type et ON et.oid = ty.typelem AND ty.typelem <> 0
            WHERE pa.specific_schema = $1
            ORDER BY pa.specific_name, pa.ordinal_position
        """, (schema_name,))
        params_by_routine: dict[str, list[RawParameter]] = defaultdict(list)
        for row in param_rows:
            params_by_routine[row["specific_name"]].append(RawParameter(
                name=row["parameter_name"] or f"arg{row['ordinal_position']}",
                native_type=row["data_type"],
                ordinal_position=row["ordinal_position"],
                mode=row["parameter_mode"] or "IN",
                has_default=row["parameter_default"] is not None,
                udt_schema=row["udt_schema"],
                udt_name=row["udt_name"],
                udt_category=self._category(row["udt_type"], row["element_type"])
            ))

        routines = []
        for row in rows:
            if row["return_type"] in ("trigger", "event_trigger"):
                continue
            routines.append(RawRoutine(
                schema_name=schema_name,
                name=row["routine_name"],
                kind="procedure" if row["prokind"] == "p" else "function",
                specific_name=row["specific_name"],
                parameters=params_by_routine.get(row["specific_name"], []),
                return_type=row["return_type"],
                return_udt_schema=row["return_udt_schema"],
                return_udt_name=row["return_udt_name"],
                return_category=_PG_TYPTYPE.get(row["return_udt_type"] or ""),
                returns_set=bool(row["returns_set"]),
                comment=row["comment"]
            ))
        return routines


# ---------------------------------------------------------------------------
# MySQL / MariaDB
# ---------------------------------------------------------------------------

_MYSQL_ENUM_LABEL_RE = re.compile(r"'((?:[^']|'')*)'")


def _mysql_native_type(data_type: str, column_type: str) -> str:
    data_type = (data_type or "").lower()
    column_type = (column_type or "").lower()
    if data_type == "tinyint" and column_type.startswith("tinyint(1)"):
        return "tinyint(1)"
    if "unsigned" in column_type:
        return f"{data_type} unsigned"
    return data_type


def _mysql_enum_labels(column_type: str) -> list[str]:
    return [label.replace("''", "'") for label in _MYSQL_ENUM_LABEL_RE.findall(column_type)]


class MySQLCatalogReader(CatalogReader):
    """Reads MySQL's information_schema; schemas are databases."""

    backend = BackendKind.MYSQL
    system_schemas = frozenset({"information_schema", "mysql", "performance_schema", "sys"})

    async def list_schemas(self) -> list[str]:
        rows = await self._fetch("""
            SELECT SCHEMA_NAME AS schema_name
            FROM information_schema.SCHEMATA
            ORDER BY SCHEMA_NAME
        """)
        return [row["schema_name"] for row in rows]

    async def server_version(self) -> Optional[str]:
        rows = await self._fetch("SELECT VERSION() AS version")
        return rows[0]["version"] if rows else None

    async def read_schema(self, schema_name: str, include_system: bool) -> RawSchema:
        rows = await self._fetch("""
            SELECT
                t.TABLE_NAME AS table_name,
                t.TABLE_TYPE AS table_type,
                t.TABLE_COMMENT AS comment,
                v.VIEW_DEFINITION AS definition
            FROM information_schema.TABLES t
            LEFT JOIN information_schema.VIEWS v
                ON v.TABLE_SCHEMA = t.TABLE_SCHEMA AND v.TABLE_NAME = t.TABLE_NAME
            WHERE t.TABLE_SCHEMA = %s AND t.TABLE_TYPE IN ('BASE TABLE', 'VIEW')
            ORDER BY t.TABLE_NAME
        """, (schema_name,))
        relations = {
            row["table_name"]: RawRelation(
                schema_name=schema_name,
                name=row["table_name"],
                kind="table" if row["table_type"] == "BASE TABLE" else "view",
                definition=row["definition"],
                comment=row["comment"] or None
            )
            for row in rows
        }

        enums: list[RawEnum] = []
        column_rows = await self._fetch("""
            SELECT
                TABLE_NAME AS table_name,
                COLUMN_NAME AS column_name,
                ORDINAL_POSITION AS ordinal_position,
                DATA_TYPE AS data_type,
                COLUMN_TYPE AS column_type,
                IS_NULLABLE AS is_nullable,
                COLUMN_DEFAULT AS column_default,
                EXTRA AS extra,
                COLUMN_COMMENT AS comment
            FROM information_schema.COLUMNS
            WHERE TABLE_SCHEMA = %s
            ORDER BY TABLE_NAME, ORDINAL_POSITION
        """, (schema_name,))
        for row in column_rows:
            relation = relations.get(row["table_name"])
            if relation is None:
                continue
            column = self._column_from_row(schema_name, row)
            if row["data_type"].lower() == "enum":
                enum = RawEnum(
                    schema_name=schema_name,
                    name=f"{row['table_name']}_{row['column_name']}",
                    labels=_mysql_enum_labels(row["column_type"])
                )
                enums.append(enum)
                column.udt_schema = schema_name
                column.udt_name = enum.name
                column.udt_category = "enum"
            relation.columns.append(column)

        _attach_constraints(relations, await self._fetch("""
            SELECT
                tc.TABLE_NAME AS table_name,
                tc.CONSTRAINT_NAME AS constraint_name,
                tc.CONSTRAINT_TYPE AS constraint_type,
                kcu.COLUMN_NAME AS column_name
            FROM information_schema.TABLE_CONSTRAINTS tc
            JOIN information_schema.KEY_COLUMN_USAGE kcu
                ON kcu.CONSTRAINT_SCHEMA = tc.CONSTRAINT_SCHEMA
                AND kcu.CONSTRAINT_NAME = tc.CONSTRAINT_NAME
                AND kcu.TABLE_NAME = tc.TABLE_NAME
            WHERE tc.TABLE_SCHEMA = %s
                AND tc.CONSTRAINT_TYPE IN ('PRIMARY KEY', 'UNIQUE')
            ORDER BY tc.TABLE_NAME, tc.CONSTRAINT_NAME, kcu.ORDINAL_POSITION
        """, (schema_name,)))

        _attach_foreign_keys(schema_name, relations, await self._fetch("""
            SELECT
                TABLE_NAME AS table_name,
                CONSTRAINT_NAME AS constraint_name,
                COLUMN_NAME AS column_name,
                REFERENCED_TABLE_SCHEMA AS ref_schema,
                REFERENCED_TABLE_NAME AS ref_table,
                REFERENCED_COLUMN_NAME AS ref_column
            FROM information_schema.KEY_COLUMN_USAGE
            WHERE TABLE_SCHEMA = %s AND REFERENCED_TABLE_NAME IS NOT NULL
            ORDER BY TABLE_NAME, CONSTRAINT_NAME, ORDINAL_POSITION
        """, (schema_name,)))

        return RawSchema(
            name=schema_name,
            relations=list(relations.values()),
            routines=await self._get_routines(schema_name),
            enums=enums
        )

    @staticmethod
    def _column_from_row(schema_name: str, row: dict[str, Any]) -> RawColumn:
        extra = (row["extra"] or "").lower()
        return RawColumn(
            name=row["column_name"],
            native_type=_mysql_native_type(row["data_type"], row["column_type"]),
            ordinal_position=int(row["ordinal_position"]),
            is_nullable=(row["is_nullable"] or "").upper() == "YES",
            has_default=(
                row["column_default"] is not None
                or "auto_increment" in extra
                or "generated" in extra
            ),
            default_value=row["column_default"],
            comment=row["comment"] or None
        )

    async def _get_routines(self, schema_name: str) -> list[RawRoutine]:
        rows = await self._fetch("""
            SELECT
                ROUTINE_NAME AS routine_name,
                SPECIFIC_NAME AS specific_name,
                ROUTINE_TYPE AS routine_type,
                DATA_TYPE AS data_type,
                DTD_IDENTIFIER AS dtd_identifier,
                ROUTINE_COMMENT AS comment
            FROM information_schema.ROUTINES
            WHERE ROUTINE_SCHEMA = %s
            ORDER BY ROUTINE_NAME
        """, (schema_name,))
        param_rows = await self._fetch("""
            SELECT
                SPECIFIC_NAME AS specific_name,
                ORDINAL_POSITION AS ordinal_position,
                PARAMETER_MODE AS parameter_mode,
                PARAMETER_NAME AS parameter_name,
                DATA_TYPE AS data_type,
                DTD_IDENTIFIER AS dtd_identifier
            FROM information_schema.PARAMETERS
            WHERE SPECIFIC_SCHEMA = %s AND ORDINAL_POSITION > 0
            ORDER BY SPECIFIC_NAME, ORDINAL_POSITION
        """, (schema_name,))
        params_by_routine: dict[str, list[RawParameter]] = defaultdict(list)
        for row in param_rows:
            params_by_routine[row["specific_name"]].append(RawParameter(
                name=row["parameter_name"] or f"arg{row['ordinal_position']}",
                native_type=_mysql_native_type(row["data_type"], row["dtd_identifier"]),
                ordinal_position=int(row["ordinal_position"]),
                mode=row["parameter_mode"] or "IN"
            ))

        routines = []
        for row in rows:
            is_procedure = (row["routine_type"] or "").upper() == "PROCEDURE"
            routines.append(RawRoutine(
                schema_name=schema_name,
                name=row["routine_name"],
                kind="procedure" if is_procedure else "function",
                specific_name=row["specific_name"],
                parameters=params_by_routine.get(row["specific_name"], []),
                return_type=None if is_procedure else _mysql_native_type(
                    row["data_type"], row["dtd_identifier"]
                ),
                return_category=None if is_procedure else "base",
                comment=row["comment"] or None
            ))
        return routines


# ---------------------------------------------------------------------------
# SQLite
# ---------------------------------------------------------------------------

class SQLiteCatalogReader(CatalogReader):
    """Reads sqlite_master and the table-valued pragma functions.

    Every attached database is a schema; ``main`` is always present.
    SQLite has no stored routines or enumerated types.
    """

    backend = BackendKind.SQLITE

    async def list_schemas(self) -> list[str]:
        rows = await self._fetch("SELECT name FROM pragma_database_list ORDER BY seq")
        return [row["name"] for row in rows]

    async def list_user_schemas(self) -> list[str]:
        return [s for s in await self.list_schemas() if s != "temp"]

    async def server_version(self) -> Optional[str]:
        rows = await self._fetch("SELECT sqlite_version() AS version")
        return f"SQLite {rows[0]['version']}" if rows else None

    async def read_schema(self, schema_name: str, include_system: bool) -> RawSchema:
        master = self.dialect.qualify(schema_name, "sqlite_master")
        rows = await self._fetch(
            f"SELECT name, type, sql FROM {master} "
            "WHERE type IN ('table', 'view') ORDER BY name"
        )
        relations: dict[str, RawRelation] = {}
        for row in rows:
            if row["name"].startswith("sqlite_") and not include_system:
                continue
            relations[row["name"]] = RawRelation(
                schema_name=schema_name,
                name=row["name"],
                kind=row["type"],
                definition=row["sql"] if row["type"] == "view" else None
            )

        for relation in relations.values():
            await self._read_columns(schema_name, relation)
            if relation.kind == "table":
                await self._read_unique_constraints(schema_name, relation)
                await self._read_foreign_keys(schema_name, relation, relations)

        return RawSchema(name=schema_name, relations=list(relations.values()))

    async def _read_columns(self, schema_name: str, relation: RawRelation) -> None:
        rows = await self._fetch(
            'SELECT cid, name, type, "notnull", dflt_value, pk '
            "FROM pragma_table_info(?, ?) ORDER BY cid",
            (relation.name, schema_name)
        )
        key_positions = {row["name"]: row["pk"] for row in rows if row["pk"]}
        # A lone INTEGER PRIMARY KEY aliases the rowid and is always generated
        rowid_alias = None
        if len(key_positions) == 1:
            (name,) = key_positions
            declared = next(r["type"] for r in rows if r["name"] == name)
            if (declared or "").strip().upper() == "INTEGER":
                rowid_alias = name

        for row in rows:
            is_rowid = row["name"] == rowid_alias
            relation.columns.append(RawColumn(
                name=row["name"],
                native_type=row["type"] or "",
                ordinal_position=row["cid"] + 1,
                is_nullable=not row["notnull"] and not is_rowid,
                has_default=row["dflt_value"] is not None or is_rowid,
                default_value=row["dflt_value"]
            ))
        if relation.kind == "table":
            relation.primary_key = sorted(key_positions, key=key_positions.get)

    async def _read_unique_constraints(self, schema_name: str, relation: RawRelation) -> None:
        indexes = await self._fetch(
            'SELECT name, "unique", origin, partial FROM pragma_index_list(?, ?)',
            (relation.name, schema_name)
        )
        for index in indexes:
            if not index["unique"] or index["partial"] or index["origin"] == "pk":
                continue
            columns = await self._fetch(
                "SELECT name FROM pragma_index_info(?, ?) ORDER BY seqno",
                (index["name"], schema_name)
            )
            names = [c["name"] for c in columns]
            if names and all(names):
                relation.unique_constraints.append(
                    RawUniqueConstraint(name=index["name"], columns=names)
                )

    async def _read_foreign_keys(
        self,
        schema_name: str,
        relation: RawRelation,
        relations: dict[str, RawRelation]
    ) -> None:
        rows = await self._fetch(
            'SELECT id, seq, "table", "from", "to" '
            "FROM pragma_foreign_key_list(?, ?) ORDER BY id, seq",
            (relation.name, schema_name)
        )
        for row in rows:
            ref_column = row["to"]
            if ref_column is None:
                # REFERENCES without a column list targets the parent's key
                parent = relations.get(row["table"])
                if parent is None:
                    continue
                if not parent.columns:
                    await self._read_columns(schema_name, parent)
                if row["seq"] >= len(parent.primary_key):
                    continue
                ref_column = parent.primary_key[row["seq"]]
            relation.foreign_keys.append(RawForeignKey(
                name=f"fk_{relation.name}_{row['id']}",
                column=row["from"],
                ref_schema=schema_name,
                ref_table=row["table"],
                ref_column=ref_column
            ))


_READERS: dict[BackendKind, type[CatalogReader]] = {
    BackendKind.POSTGRES: PostgresCatalogReader,
    BackendKind.MYSQL: MySQLCatalogReader,
    BackendKind.SQLITE: SQLiteCatalogReader,
}


def get_catalog_reader(pool: DatabasePool) -> CatalogReader:
    """Create the catalog reader registered for the pool's backend.

    Args:
        pool: The database connection pool.

    Returns:
        A catalog reader bound to the pool.

    Raises:
        UnsupportedBackendError: If no reader is registered for the backend.
    """
    backend = getattr(pool, "backend", None)
    reader_cls = _READERS.get(backend)
    if reader_cls is None:
        raise UnsupportedBackendError(str(getattr(backend, "value", backend)))
    return reader_cls(pool)


async def discover(
    pool: DatabasePool,
    schema_names: Optional[Iterable[str]] = None,
    include_system: bool = False
) -> RawCatalog:
    """Discover the given schemas through the pool's catalog reader.

    Args:
        pool: The database connection pool.
        schema_names: Schemas to introspect; all user schemas when empty.
        include_system: Keep system schemas and internal tables.

    Returns:
        The raw catalog.
    """
    return await get_catalog_reader(pool).discover(schema_names, include_system)

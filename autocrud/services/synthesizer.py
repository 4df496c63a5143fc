# autocrud/services/synthesizer.py
"""Query synthesis: operation requests to parameterized statements.

Identifiers are only ever taken from the schema graph and quoted by the
dialect; every client-supplied value is bound as a parameter.
"""

import logging
from typing import Any, Optional, Union

from autocrud.models.request import (
    CreateRequest,
    DeleteRequest,
    Filter,
    FilterOperator,
    InvokeRequest,
    ReadBackPlan,
    ReadRequest,
    SortDirection,
    SortKey,
    Statement,
    UpdateRequest,
)
from autocrud.models.schema import (
    ColumnEntry,
    Entity,
    FunctionEntry,
    ParameterEntry,
    ParameterMode,
    ProcedureEntry,
    TableEntry,
    ViewEntry,
)
from autocrud.models.database import BackendKind
from autocrud.models.types import BOOL, INTEGER_KINDS, Kind
from autocrud.services.dialects import Dialect
from autocrud.services.type_mapping import TypeMappingTable, get_type_mapping_table
from autocrud.utils.exceptions import (
    ArityMismatchError,
    InvalidFormatError,
    InvalidRequestError,
    MissingRequiredColumnError,
    ReadOnlyColumnError,
    UnknownColumnError,
    UnscopedMutationError,
)

logger = logging.getLogger("query-synthesizer")

Relation = Union[TableEntry, ViewEntry]
Routine = Union[FunctionEntry, ProcedureEntry]

_COMPARISONS = {
    FilterOperator.EQ: "=",
    FilterOperator.NE: "<>",
    FilterOperator.LT: "<",
    FilterOperator.LTE: "<=",
    FilterOperator.GT: ">",
    FilterOperator.GTE: ">=",
}


class _Binder:
    """Collects bound values and hands out their placeholders."""

    def __init__(self, dialect: Dialect):
        self.dialect = dialect
        self.params: list[Any] = []

    def __call__(self, value: Any) -> str:
        self.params.append(value)
        return self.dialect.placeholder(len(self.params))


def entity_kind_label(entity: Entity) -> str:
    if isinstance(entity, TableEntry):
        return "table"
    if isinstance(entity, ViewEntry):
        return "view"
    if isinstance(entity, FunctionEntry):
        return "function"
    return "procedure"


class QuerySynthesizer:
    """Builds statements for one backend dialect.

    Synthesis is synchronous and never touches the database, so every
    rejection happens before a statement exists.
    """

    def __init__(
        self,
        dialect: Dialect,
        type_table: Optional[TypeMappingTable] = None,
        max_limit: int = 1000
    ):
        """Initialize the synthesizer.

        Args:
            dialect: SQL dialect of the target backend.
            type_table: Codec used to encode bound values.
            max_limit: Default and maximum page size for reads.
        """
        self.dialect = dialect
        self.type_table = type_table or get_type_mapping_table()
        self.max_limit = max_limit

    @property
    def backend(self) -> BackendKind:
        return self.dialect.backend

    def synthesize(self, entity: Entity, request: Any) -> Statement:
        """Build the statement for any operation request.

        Args:
            entity: Target entity from the schema graph.
            request: Read, create, update, delete or invoke request.

        Returns:
            The parameterized statement.

        Raises:
            SynthesisError: If the request is invalid for the entity.
            CodecError: If a value cannot be encoded for its column.
        """
        if isinstance(request, ReadRequest) and isinstance(entity, (TableEntry, ViewEntry)):
            statement = self.read(entity, request)
        elif isinstance(request, CreateRequest) and isinstance(entity, TableEntry):
            statement = self.create(entity, request)
        elif isinstance(request, UpdateRequest) and isinstance(entity, TableEntry):
            statement = self.update(entity, request)
        elif isinstance(request, DeleteRequest) and isinstance(entity, TableEntry):
            statement = self.delete(entity, request)
        elif isinstance(request, InvokeRequest) and isinstance(entity, (FunctionEntry, ProcedureEntry)):
            statement = self.invoke(entity, request)
        else:
            kind = getattr(request, "kind", type(request).__name__)
            raise InvalidRequestError(
                f"Operation '{kind}' is not supported on "
                f"{entity_kind_label(entity)} {entity.qualified_name}"
            )
        logger.debug(
            "Synthesized %s on %s: %s", request.kind, entity.qualified_name, statement.sql
        )
        return statement

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _target(self, entity: Union[Relation, Routine]) -> str:
        return self.dialect.qualify(entity.schema_name, entity.name)

    def _projection(self, columns: tuple[ColumnEntry, ...]) -> str:
        return ", ".join(self.dialect.quote(c.name) for c in columns)

    @staticmethod
    def _column(relation: Relation, name: str) -> ColumnEntry:
        column = relation.column(name)
        if column is None:
            raise UnknownColumnError(relation.qualified_name, name)
        return column

    def _encode(self, column: ColumnEntry, value: Any, store: bool = True) -> Any:
        return self.type_table.encode(column.value_kind, value, self.backend, store)

    def _condition(self, relation: Relation, flt: Filter, bind: _Binder) -> str:
        column = self._column(relation, flt.column)
        ident = self.dialect.quote(column.name)
        op = flt.op

        if op == FilterOperator.IS_NULL:
            flag = self.type_table.to_portable(BOOL, True if flt.value is None else flt.value)
            return f"{ident} IS NULL" if flag else f"{ident} IS NOT NULL"

        if op == FilterOperator.IN:
            if not isinstance(flt.value, (list, tuple, set, frozenset)):
                raise InvalidRequestError(
                    f"Filter 'in' on {relation.qualified_name}.{column.name} expects a list"
                )
            if not flt.value:
                return "1 = 0"
            placeholders = ", ".join(
                bind(self._encode(column, v, store=False)) for v in flt.value
            )
            return f"{ident} IN ({placeholders})"

        if op == FilterOperator.LIKE:
            if not column.value_kind.is_text_like:
                raise InvalidRequestError(
                    f"Filter 'like' requires a text column; "
                    f"{relation.qualified_name}.{column.name} is {column.value_kind.describe()}"
                )
            if not isinstance(flt.value, str):
                raise InvalidFormatError("like pattern", flt.value, "expected a string")
            if column.value_kind.kind == Kind.ENUM_REF and self.backend == BackendKind.POSTGRES:
                ident = f"{ident}::text"
            return f"{ident} LIKE {bind(flt.value)}"

        if flt.value is None:
            if op == FilterOperator.EQ:
                return f"{ident} IS NULL"
            if op == FilterOperator.NE:
                return f"{ident} IS NOT NULL"
            raise InvalidRequestError(
                f"Filter '{op.value}' on {relation.qualified_name}.{column.name} needs a value"
            )
        return f"{ident} {_COMPARISONS[op]} {bind(self._encode(column, flt.value, store=False))}"

    def _where(self, relation: Relation, filters: list[Filter], bind: _Binder) -> str:
        clauses = [self._condition(relation, flt, bind) for flt in filters]
        if not clauses:
            return ""
        return " WHERE " + " AND ".join(clauses)

    @staticmethod
    def tie_break_columns(relation: Relation) -> list[str]:
        """Columns appended to every ORDER BY for stable pagination.

        The primary key in ordinal order; relations without one fall back
        to every orderable column in ordinal order.
        """
        if isinstance(relation, TableEntry) and relation.primary_key:
            return [c.name for c in relation.columns if c.name in relation.primary_key]
        return [c.name for c in relation.columns if c.value_kind.is_orderable]

    def _order_by(self, relation: Relation, sort: list[SortKey]) -> str:
        keys: list[str] = []
        used: set[str] = set()
        for key in sort:
            column = self._column(relation, key.column)
            if column.name in used:
                continue
            if not column.value_kind.is_orderable:
                raise InvalidRequestError(
                    f"Cannot sort by {relation.qualified_name}.{column.name}: "
                    f"{column.value_kind.describe()} values have no ordering"
                )
            direction = "DESC" if key.direction == SortDirection.DESC else "ASC"
            keys.append(f"{self.dialect.quote(column.name)} {direction}")
            used.add(column.name)
        for name in self.tie_break_columns(relation):
            if name not in used:
                keys.append(f"{self.dialect.quote(name)} ASC")
                used.add(name)
        return ", ".join(keys)

    def _page(self, limit: Optional[int], offset: int) -> tuple[int, int]:
        if limit is None:
            limit = self.max_limit
        if limit < 0:
            raise InvalidRequestError(f"limit must not be negative, got {limit}")
        if offset is None:
            offset = 0
        if offset < 0:
            raise InvalidRequestError(f"offset must not be negative, got {offset}")
        return min(limit, self.max_limit), offset

    def _returning(self, table: TableEntry) -> str:
        return f" RETURNING {self._projection(table.columns)}"

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    def read(self, relation: Relation, request: ReadRequest) -> Statement:
        """Build a filtered, sorted and paginated select."""
        bind = _Binder(self.dialect)
        limit, offset = self._page(request.limit, request.offset)

        sql = f"SELECT {self._projection(relation.columns)} FROM {self._target(relation)}"
        sql += self._where(relation, request.filters, bind)
        order = self._order_by(relation, request.sort)
        if order:
            sql += f" ORDER BY {order}"
        sql += f" LIMIT {bind(limit)} OFFSET {bind(offset)}"

        return Statement(sql=sql, params=tuple(bind.params), columns=relation.columns)

    # ------------------------------------------------------------------
    # Create
    # ------------------------------------------------------------------

    def create(self, table: TableEntry, request: CreateRequest) -> Statement:
        """Build an insert returning the created row.

        Without a returning clause the statement carries a read-back plan
        instead.
        """
        values = request.values
        for name in values:
            column = self._column(table, name)
            if not column.is_writable:
                raise ReadOnlyColumnError(table.qualified_name, name)

        missing = [c.name for c in table.columns if c.is_required and values.get(c.name) is None]
        if missing:
            raise MissingRequiredColumnError(table.qualified_name, missing)

        bind = _Binder(self.dialect)
        supplied = [c for c in table.columns if c.name in values]
        if supplied:
            placeholders = ", ".join(bind(self._encode(c, values[c.name])) for c in supplied)
            sql = (
                f"INSERT INTO {self._target(table)} ({self._projection(tuple(supplied))}) "
                f"VALUES ({placeholders})"
            )
        else:
            sql = f"INSERT INTO {self._target(table)} {self.dialect.default_values_sql}"

        if self.dialect.supports_returning:
            return Statement(
                sql=sql + self._returning(table),
                params=tuple(bind.params),
                columns=table.columns
            )
        return Statement(
            sql=sql,
            params=tuple(bind.params),
            columns=table.columns,
            returns_rows=False,
            read_back=self._read_back_plan(table, values)
        )

    def _read_back_plan(self, table: TableEntry, values: dict[str, Any]) -> ReadBackPlan:
        for key in table.key_sets():
            if all(values.get(name) is not None for name in key):
                return ReadBackPlan(key_values={name: values[name] for name in key})
        pk_columns = table.primary_key_columns
        if len(pk_columns) == 1 and pk_columns[0].value_kind.kind in INTEGER_KINDS:
            return ReadBackPlan(key_column=pk_columns[0].name)
        if self.backend == BackendKind.SQLITE:
            return ReadBackPlan(key_column="rowid")
        logger.debug("No read-back key available for inserts into %s", table.qualified_name)
        return ReadBackPlan()

    def read_back(
        self,
        table: TableEntry,
        plan: ReadBackPlan,
        last_row_id: Optional[int] = None
    ) -> Optional[Statement]:
        """Build the select that fetches a just-inserted row.

        Args:
            table: The table the row was inserted into.
            plan: Read-back plan carried by the insert statement.
            last_row_id: Row id reported by the backend for the insert.

        Returns:
            The select, or None when the plan cannot identify the row.
        """
        bind = _Binder(self.dialect)
        conditions = []
        if plan.key_values:
            for name, value in plan.key_values.items():
                column = self._column(table, name)
                placeholder = bind(self._encode(column, value, store=False))
                conditions.append(f"{self.dialect.quote(name)} = {placeholder}")
        elif plan.key_column and last_row_id:
            conditions.append(f"{self.dialect.quote(plan.key_column)} = {bind(last_row_id)}")
        else:
            return None

        sql = (
            f"SELECT {self._projection(table.columns)} FROM {self._target(table)} "
            f"WHERE {' AND '.join(conditions)}"
        )
        return Statement(sql=sql, params=tuple(bind.params), columns=table.columns)

    # ------------------------------------------------------------------
    # Update / Delete
    # ------------------------------------------------------------------

    def _check_scoped(self, table: TableEntry, filters: list[Filter]) -> None:
        """Require the filters to pin a primary key or unique constraint."""
        pinned: set[str] = set()
        listed: set[str] = set()
        for flt in filters:
            column = self._column(table, flt.column)
            if flt.op == FilterOperator.EQ and flt.value is not None:
                pinned.add(column.name)
            elif flt.op == FilterOperator.IN and isinstance(flt.value, (list, tuple, set, frozenset)):
                listed.add(column.name)

        if table.supports_mutation:
            for key in table.key_sets():
                if all(name in pinned for name in key):
                    return
                if len(key) == 1 and key[0] in listed:
                    return
        raise UnscopedMutationError(table.qualified_name)

    def update(self, table: TableEntry, request: UpdateRequest) -> Statement:
        """Build a key-scoped update."""
        if not request.values:
            raise InvalidRequestError(f"Update on {table.qualified_name} needs at least one value")
        for name in request.values:
            column = self._column(table, name)
            if not column.is_writable:
                raise ReadOnlyColumnError(table.qualified_name, name)
        self._check_scoped(table, request.filters)

        bind = _Binder(self.dialect)
        assignments = ", ".join(
            f"{self.dialect.quote(c.name)} = {bind(self._encode(c, request.values[c.name]))}"
            for c in table.columns if c.name in request.values
        )
        sql = f"UPDATE {self._target(table)} SET {assignments}"
        sql += self._where(table, request.filters, bind)
        return self._mutation(table, sql, bind)

    def delete(self, table: TableEntry, request: DeleteRequest) -> Statement:
        """Build a key-scoped delete."""
        self._check_scoped(table, request.filters)

        bind = _Binder(self.dialect)
        sql = f"DELETE FROM {self._target(table)}"
        sql += self._where(table, request.filters, bind)
        return self._mutation(table, sql, bind)

    def _mutation(self, table: TableEntry, sql: str, bind: _Binder) -> Statement:
        if self.dialect.supports_returning:
            return Statement(
                sql=sql + self._returning(table),
                params=tuple(bind.params),
                columns=table.columns
            )
        return Statement(
            sql=sql,
            params=tuple(bind.params),
            columns=table.columns,
            returns_rows=False
        )

    # ------------------------------------------------------------------
    # Invoke
    # ------------------------------------------------------------------

    @staticmethod
    def _expected_arity(inputs: tuple[ParameterEntry, ...]) -> str:
        required = sum(1 for p in inputs if p.is_required)
        if required == len(inputs):
            return str(required)
        return f"{required} to {len(inputs)}"

    def _arrange_arguments(
        self,
        routine: Routine,
        args: Union[list[Any], dict[str, Any]]
    ) -> list[tuple[ParameterEntry, Any]]:
        """Pair arguments with input parameters in declared order."""
        inputs = routine.input_parameters
        expected = self._expected_arity(inputs)

        if isinstance(args, dict):
            known = {p.name for p in inputs}
            for name in args:
                if name not in known:
                    raise InvalidRequestError(
                        f"Unknown argument '{name}' for {routine.qualified_name}"
                    )
            positional = []
            for param in inputs:
                if param.name not in args:
                    break
                positional.append(args[param.name])
            if len(positional) != len(args):
                missing = next(p.name for p in inputs if p.name not in args)
                if any(p.name == missing and p.is_required for p in inputs):
                    raise ArityMismatchError(routine.qualified_name, expected, len(args))
                raise InvalidRequestError(
                    f"Argument '{missing}' of {routine.qualified_name} "
                    "cannot be omitted before later arguments"
                )
            args = positional

        required = sum(1 for p in inputs if p.is_required)
        if not required <= len(args) <= len(inputs):
            raise ArityMismatchError(routine.qualified_name, expected, len(args))
        return list(zip(inputs, args))

    def invoke(self, routine: Routine, request: InvokeRequest) -> Statement:
        """Build a function select or a procedure call."""
        if not self.dialect.supports_routines:
            raise InvalidRequestError(
                f"{self.backend.display_name} does not support stored routines"
            )

        pairs = self._arrange_arguments(routine, request.args)
        bind = _Binder(self.dialect)
        rendered = []
        for param, value in pairs:
            placeholder = bind(self.type_table.encode(param.value_kind, value, self.backend))
            if param.mode == ParameterMode.VARIADIC and self.backend == BackendKind.POSTGRES:
                placeholder = f"VARIADIC {placeholder}"
            rendered.append(placeholder)

        target = self._target(routine)
        if isinstance(routine, ProcedureEntry):
            return self._call(routine, target, rendered, bind)

        arguments = ", ".join(rendered)
        shape = routine.returns
        if shape.kind == "rows":
            sql = f"SELECT * FROM {target}({arguments})"
        elif shape.kind == "void":
            return Statement(
                sql=f"SELECT {target}({arguments})",
                params=tuple(bind.params),
                returns_rows=False
            )
        else:
            sql = f"SELECT {target}({arguments}) AS {self.dialect.quote(routine.name)}"
        return Statement(sql=sql, params=tuple(bind.params), columns=shape.columns)

    def _call(
        self,
        routine: ProcedureEntry,
        target: str,
        rendered: list[str],
        bind: _Binder
    ) -> Statement:
        """Render ``CALL`` with every declared parameter in order.

        Input arguments beyond those supplied fall back to their defaults,
        and OUT parameters after an omitted input are passed by name. OUT
        parameters get the dialect's OUT argument expression.
        """
        if self.backend == BackendKind.MYSQL and any(
            p.mode == ParameterMode.INOUT for p in routine.parameters
        ):
            # MySQL only accepts a session variable for INOUT, which cannot be
            # seeded with a bound value in the same statement
            raise InvalidRequestError(
                f"Procedure {routine.qualified_name} has INOUT parameters, "
                f"which are not supported on {self.backend.display_name}"
            )

        arguments = []
        supplied = iter(rendered)
        by_name = False
        for param in routine.parameters:
            if param.mode == ParameterMode.OUT:
                out = self.dialect.out_argument or "NULL"
                if out.startswith("@"):
                    out = f"{out}_{param.ordinal_position}"
                if by_name:
                    out = f"{self.dialect.quote(param.name)} => {out}"
                arguments.append(out)
                continue
            placeholder = next(supplied, None)
            if placeholder is None:
                by_name = True
                continue
            arguments.append(placeholder)

        columns: tuple[ColumnEntry, ...] = ()
        if self.backend == BackendKind.POSTGRES:
            # CALL returns one row of OUT and INOUT values
            outputs = [
                p for p in routine.parameters
                if p.mode in (ParameterMode.OUT, ParameterMode.INOUT)
            ]
            columns = tuple(
                ColumnEntry(
                    name=p.name,
                    native_type=p.native_type,
                    value_kind=p.value_kind,
                    ordinal_position=index
                )
                for index, p in enumerate(outputs, start=1)
            )
        return Statement(
            sql=f"CALL {target}({', '.join(arguments)})",
            params=tuple(bind.params),
            columns=columns
        )

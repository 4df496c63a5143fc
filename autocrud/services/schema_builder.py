# autocrud/services/schema_builder.py
"""Schema model builder.

Turns a :class:`RawCatalog` into a validated, immutable :class:`SchemaGraph`.
"""

import logging
from typing import Optional, Union

from autocrud.models.catalog import RawCatalog, RawColumn, RawParameter, RawRelation, RawRoutine, RawSchema
from autocrud.models.schema import (
    ColumnEntry,
    EnumEntry,
    ForeignKeyEntry,
    FunctionEntry,
    ParameterEntry,
    ParameterMode,
    ProcedureEntry,
    ReturnShape,
    SchemaEntry,
    SchemaGraph,
    TableEntry,
    UniqueConstraintEntry,
    ViewEntry,
)
from autocrud.models.types import TEXT, EnumRef, ValueKind
from autocrud.services.type_mapping import TypeMappingTable, get_type_mapping_table
from autocrud.utils.exceptions import GraphValidationError, UnresolvedReferenceError

logger = logging.getLogger("schema-builder")

Relation = Union[TableEntry, ViewEntry]


class SchemaModelBuilder:
    """Builds one schema graph from one raw catalog."""

    def __init__(self, raw: RawCatalog, type_table: Optional[TypeMappingTable] = None):
        """Initialize the builder.

        Args:
            raw: Catalog read by a catalog reader.
            type_table: Type mapping table; the shared default when omitted.
        """
        self.raw = raw
        self.backend = raw.backend
        self.type_table = type_table or get_type_mapping_table()
        self.diagnostics: list[str] = list(raw.diagnostics)
        self._discovered = {schema.name for schema in raw.schemas}
        self._enums: dict[tuple[str, str], EnumRef] = {
            (enum.schema_name, enum.name): EnumRef(
                schema_name=enum.schema_name,
                name=enum.name,
                labels=tuple(enum.labels)
            )
            for schema in raw.schemas
            for enum in schema.enums
        }
        self._relations: dict[tuple[str, str], Relation] = {}

    def build(self) -> SchemaGraph:
        """Build and validate the graph.

        Returns:
            The validated schema graph.

        Raises:
            GraphValidationError: If the assembled graph is inconsistent.
        """
        for schema in self.raw.schemas:
            for relation in schema.relations:
                self._relations[(schema.name, relation.name)] = self._build_relation(relation)

        entries = tuple(self._build_schema(schema) for schema in self.raw.schemas)
        graph = SchemaGraph(
            backend=self.backend,
            schemas=entries,
            diagnostics=tuple(self.diagnostics),
            server_version=self.raw.server_version
        )
        validate_schema_graph(graph)

        totals = graph.summary()["TOTAL"]
        logger.info(
            "Built schema graph: %d schemas, %d tables, %d views, %d functions, "
            "%d procedures, %d enums",
            len(entries), totals["tables"], totals["views"], totals["functions"],
            totals["procedures"], totals["enums"]
        )
        return graph

    def _diagnose(self, message: str) -> None:
        logger.warning(message)
        self.diagnostics.append(message)

    # ------------------------------------------------------------------
    # Types
    # ------------------------------------------------------------------

    def _value_kind(
        self,
        source: str,
        native_type: str,
        udt_schema: Optional[str],
        udt_name: Optional[str],
        udt_category: Optional[str]
    ) -> ValueKind:
        if udt_category in ("enum", "enum_array") and udt_name:
            element_name = udt_name
            if udt_category == "enum_array" and udt_name.startswith("_"):
                element_name = udt_name[1:]
            enum = self._enums.get((udt_schema or "", element_name))
            if enum is None:
                error = UnresolvedReferenceError(source, f"enum {udt_schema}.{element_name}")
                self._diagnose(f"{error.message}; treated as text")
                kind = TEXT
            else:
                kind = ValueKind.enum_ref(enum)
            return ValueKind.array(kind) if udt_category == "enum_array" else kind
        return self.type_table.resolve(native_type, self.backend, udt_name)

    def _column(self, relation: RawRelation, column: RawColumn) -> ColumnEntry:
        return ColumnEntry(
            name=column.name,
            native_type=column.native_type,
            value_kind=self._value_kind(
                f"{relation.qualified_name}.{column.name}",
                column.native_type,
                column.udt_schema,
                column.udt_name,
                column.udt_category
            ),
            is_nullable=column.is_nullable,
            has_default=column.has_default,
            ordinal_position=column.ordinal_position,
            comment=column.comment
        )

    # ------------------------------------------------------------------
    # Relations
    # ------------------------------------------------------------------

    def _build_relation(self, relation: RawRelation) -> Relation:
        columns = tuple(
            self._column(relation, column)
            for column in sorted(relation.columns, key=lambda c: c.ordinal_position)
        )
        if relation.kind == "view":
            return ViewEntry(
                schema_name=relation.schema_name,
                name=relation.name,
                columns=columns,
                definition=relation.definition,
                comment=relation.comment
            )

        foreign_keys = []
        for fk in relation.foreign_keys:
            if fk.ref_schema not in self._discovered:
                error = UnresolvedReferenceError(
                    f"{relation.qualified_name}.{fk.column}",
                    f"{fk.ref_schema}.{fk.ref_table}.{fk.ref_column}"
                )
                self._diagnose(f"{error.message}; foreign key {fk.name} dropped")
                continue
            foreign_keys.append(ForeignKeyEntry(
                name=fk.name,
                column=fk.column,
                ref_schema=fk.ref_schema,
                ref_table=fk.ref_table,
                ref_column=fk.ref_column
            ))

        return TableEntry(
            schema_name=relation.schema_name,
            name=relation.name,
            columns=columns,
            primary_key=tuple(relation.primary_key),
            foreign_keys=tuple(foreign_keys),
            unique_constraints=tuple(
                UniqueConstraintEntry(name=u.name, columns=tuple(u.columns))
                for u in relation.unique_constraints
            ),
            comment=relation.comment
        )

    # ------------------------------------------------------------------
    # Routines
    # ------------------------------------------------------------------

    def _parameter(self, routine: RawRoutine, param: RawParameter) -> ParameterEntry:
        return ParameterEntry(
            name=param.name,
            native_type=param.native_type,
            value_kind=self._value_kind(
                f"{routine.qualified_name}({param.name})",
                param.native_type,
                param.udt_schema,
                param.udt_name,
                param.udt_category
            ),
            mode=ParameterMode.parse(param.mode),
            ordinal_position=param.ordinal_position,
            has_default=param.has_default
        )

    def _return_shape(
        self,
        routine: RawRoutine,
        parameters: tuple[ParameterEntry, ...]
    ) -> ReturnShape:
        outputs = [p for p in parameters if p.mode in (ParameterMode.OUT, ParameterMode.INOUT)]
        if outputs:
            return ReturnShape(
                kind="rows",
                columns=tuple(
                    ColumnEntry(
                        name=p.name,
                        native_type=p.native_type,
                        value_kind=p.value_kind,
                        ordinal_position=index
                    )
                    for index, p in enumerate(outputs, start=1)
                ),
                returns_set=routine.returns_set
            )

        native = (routine.return_type or "").strip()
        if native.lower() == "void":
            return ReturnShape(kind="void")

        if routine.return_category == "composite":
            relation = self._relations.get(
                (routine.return_udt_schema or "", routine.return_udt_name or "")
            )
            if relation is not None:
                return ReturnShape(
                    kind="rows",
                    columns=relation.columns,
                    returns_set=routine.returns_set
                )
        if native.lower() == "record":
            # Column list is only known at call time
            return ReturnShape(kind="rows", returns_set=routine.returns_set)

        value_kind = self._value_kind(
            f"{routine.qualified_name} result",
            native,
            routine.return_udt_schema,
            routine.return_udt_name,
            routine.return_category
        )
        return ReturnShape(
            kind="scalar",
            value_kind=value_kind,
            columns=(ColumnEntry(
                name=routine.name,
                native_type=native,
                value_kind=value_kind,
                ordinal_position=1
            ),),
            returns_set=routine.returns_set
        )

    def _build_routines(
        self,
        schema: RawSchema
    ) -> tuple[dict[str, FunctionEntry], dict[str, ProcedureEntry]]:
        functions: dict[str, FunctionEntry] = {}
        procedures: dict[str, ProcedureEntry] = {}
        for routine in schema.routines:
            if routine.name in functions or routine.name in procedures:
                logger.warning(
                    "Skipping overload %s of %s; only the first signature is exposed",
                    routine.specific_name, routine.qualified_name
                )
                continue
            parameters = tuple(
                self._parameter(routine, param)
                for param in sorted(routine.parameters, key=lambda p: p.ordinal_position)
            )
            if routine.kind == "procedure":
                procedures[routine.name] = ProcedureEntry(
                    schema_name=schema.name,
                    name=routine.name,
                    parameters=parameters,
                    comment=routine.comment
                )
            else:
                functions[routine.name] = FunctionEntry(
                    schema_name=schema.name,
                    name=routine.name,
                    parameters=parameters,
                    returns=self._return_shape(routine, parameters),
                    comment=routine.comment
                )
        return functions, procedures

    def _build_schema(self, schema: RawSchema) -> SchemaEntry:
        tables: dict[str, TableEntry] = {}
        views: dict[str, ViewEntry] = {}
        for relation in schema.relations:
            entry = self._relations[(schema.name, relation.name)]
            if isinstance(entry, TableEntry):
                tables[relation.name] = entry
            else:
                views[relation.name] = entry

        functions, procedures = self._build_routines(schema)
        return SchemaEntry(
            name=schema.name,
            tables=tables,
            views=views,
            functions=functions,
            procedures=procedures,
            enums={
                enum.name: EnumEntry(
                    schema_name=enum.schema_name,
                    name=enum.name,
                    labels=tuple(enum.labels)
                )
                for enum in schema.enums
            }
        )


def validate_schema_graph(graph: SchemaGraph) -> None:
    """Check the graph's cross references as one unit.

    Args:
        graph: The graph to validate.

    Raises:
        GraphValidationError: Listing every problem found.
    """
    problems: list[str] = []
    for schema in graph.schemas:
        for relation in (*schema.tables.values(), *schema.views.values()):
            names = relation.column_names
            if len(set(names)) != len(names):
                problems.append(f"{relation.qualified_name} has duplicate column names")

        for table in schema.tables.values():
            names = set(table.column_names)
            for column in table.primary_key:
                if column not in names:
                    problems.append(
                        f"{table.qualified_name} primary key names missing column '{column}'"
                    )
            for unique in table.unique_constraints:
                for column in unique.columns:
                    if column not in names:
                        problems.append(
                            f"{table.qualified_name} constraint {unique.name} "
                            f"names missing column '{column}'"
                        )
            for fk in table.foreign_keys:
                if fk.column not in names:
                    problems.append(
                        f"{table.qualified_name} foreign key {fk.name} "
                        f"uses missing column '{fk.column}'"
                    )
                target = graph.find_relation(fk.ref_schema, fk.ref_table)
                if target is None:
                    problems.append(
                        f"{table.qualified_name} foreign key {fk.name} references "
                        f"unknown relation {fk.ref_schema}.{fk.ref_table}"
                    )
                elif target.column(fk.ref_column) is None:
                    problems.append(
                        f"{table.qualified_name} foreign key {fk.name} references "
                        f"unknown column {target.qualified_name}.{fk.ref_column}"
                    )

    if problems:
        raise GraphValidationError(problems)


def build_schema_graph(
    raw: RawCatalog,
    type_table: Optional[TypeMappingTable] = None
) -> SchemaGraph:
    """Build a validated schema graph from a raw catalog.

    Args:
        raw: Catalog read by a catalog reader.
        type_table: Type mapping table; the shared default when omitted.

    Returns:
        The validated schema graph.
    """
    return SchemaModelBuilder(raw, type_table).build()

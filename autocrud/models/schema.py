# autocrud/models/schema.py
"""Schema-related data models."""

from datetime import datetime
from enum import Enum
from typing import Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from autocrud.models.database import BackendKind
from autocrud.models.types import ValueKind


class EntityKind(str, Enum):
    """Kind of entity discovered in the catalog."""

    TABLE = "table"
    VIEW = "view"
    FUNCTION = "function"
    PROCEDURE = "procedure"
    ENUM = "enum"


class ParameterMode(str, Enum):
    """Routine parameter direction."""

    IN = "IN"
    OUT = "OUT"
    INOUT = "INOUT"
    VARIADIC = "VARIADIC"

    @classmethod
    def parse(cls, value: Optional[str]) -> "ParameterMode":
        normalized = (value or "IN").strip().upper()
        if normalized in ("TABLE", "OUT"):
            return cls.OUT
        if normalized in ("INOUT", "IN OUT"):
            return cls.INOUT
        if normalized == "VARIADIC":
            return cls.VARIADIC
        return cls.IN

    @property
    def is_input(self) -> bool:
        return self != ParameterMode.OUT


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True)


class ColumnEntry(_Frozen):
    """Column information model."""

    name: str
    native_type: str
    value_kind: ValueKind
    is_nullable: bool = True
    has_default: bool = False
    ordinal_position: int
    comment: Optional[str] = None

    @property
    def is_writable(self) -> bool:
        return self.value_kind.is_supported

    @property
    def is_required(self) -> bool:
        return not self.is_nullable and not self.has_default


class ForeignKeyEntry(_Frozen):
    """Single-column link from a table column to a referenced column."""

    name: str
    column: str
    ref_schema: str
    ref_table: str
    ref_column: str


class UniqueConstraintEntry(_Frozen):
    """Unique constraint information model."""

    name: str
    columns: tuple[str, ...]


class _Relation(_Frozen):
    schema_name: str
    name: str
    columns: tuple[ColumnEntry, ...]
    comment: Optional[str] = None

    @property
    def qualified_name(self) -> str:
        return f"{self.schema_name}.{self.name}"

    @property
    def column_names(self) -> tuple[str, ...]:
        return tuple(c.name for c in self.columns)

    def column(self, name: str) -> Optional[ColumnEntry]:
        for col in self.columns:
            if col.name == name:
                return col
        return None


class TableEntry(_Relation):
    """Table information model."""

    primary_key: tuple[str, ...] = ()
    foreign_keys: tuple[ForeignKeyEntry, ...] = ()
    unique_constraints: tuple[UniqueConstraintEntry, ...] = ()

    @property
    def supports_mutation(self) -> bool:
        """Only keyed tables are exposed for update and delete."""
        return bool(self.primary_key)

    @property
    def primary_key_columns(self) -> tuple[ColumnEntry, ...]:
        return tuple(c for c in self.columns if c.name in self.primary_key)

    def key_sets(self) -> list[tuple[str, ...]]:
        """Column sets that identify at most one row."""
        keys = [self.primary_key] if self.primary_key else []
        keys.extend(u.columns for u in self.unique_constraints if u.columns)
        return keys


class ViewEntry(_Relation):
    """View information model; read-only."""

    definition: Optional[str] = None


class ParameterEntry(_Frozen):
    """Routine parameter information model."""

    name: str
    native_type: str
    value_kind: ValueKind
    mode: ParameterMode = ParameterMode.IN
    ordinal_position: int
    has_default: bool = False

    @property
    def is_required(self) -> bool:
        return self.mode.is_input and not self.has_default


class ReturnShape(_Frozen):
    """Declared result of a function."""

    kind: Literal["scalar", "rows", "void"] = "scalar"
    value_kind: Optional[ValueKind] = None
    columns: tuple[ColumnEntry, ...] = ()
    returns_set: bool = False


class _Routine(_Frozen):
    schema_name: str
    name: str
    parameters: tuple[ParameterEntry, ...] = ()
    comment: Optional[str] = None

    @property
    def qualified_name(self) -> str:
        return f"{self.schema_name}.{self.name}"

    @property
    def input_parameters(self) -> tuple[ParameterEntry, ...]:
        return tuple(p for p in self.parameters if p.mode.is_input)


class FunctionEntry(_Routine):
    """Function information model."""

    returns: ReturnShape = Field(default_factory=ReturnShape)


class ProcedureEntry(_Routine):
    """Stored procedure information model."""


class EnumEntry(_Frozen):
    """Enumerated type information model."""

    schema_name: str
    name: str
    labels: tuple[str, ...]


Entity = Union[TableEntry, ViewEntry, FunctionEntry, ProcedureEntry]


class ReadOnlyDict(dict):
    """A dict that refuses in-place changes once built."""

    def _readonly(self, *args, **kwargs):
        raise TypeError(f"{type(self).__name__} is read-only")

    __setitem__ = __delitem__ = __ior__ = _readonly
    clear = pop = popitem = setdefault = update = _readonly

    def __reduce__(self):
        return type(self), (dict(self),)


class SchemaEntry(_Frozen):
    """All entities discovered in one database schema.

    The entity mappings are read-only: a published snapshot is shared by
    every request.
    """

    name: str
    tables: dict[str, TableEntry] = Field(default_factory=ReadOnlyDict)
    views: dict[str, ViewEntry] = Field(default_factory=ReadOnlyDict)
    functions: dict[str, FunctionEntry] = Field(default_factory=ReadOnlyDict)
    procedures: dict[str, ProcedureEntry] = Field(default_factory=ReadOnlyDict)
    enums: dict[str, EnumEntry] = Field(default_factory=ReadOnlyDict)

    @field_validator("tables", "views", "functions", "procedures", "enums")
    @classmethod
    def freeze_mapping(cls, value: dict) -> ReadOnlyDict:
        return ReadOnlyDict(value)

    def counts(self) -> dict[str, int]:
        return {
            "tables": len(self.tables),
            "views": len(self.views),
            "functions": len(self.functions),
            "procedures": len(self.procedures),
            "enums": len(self.enums),
        }

    def find(self, name: str, kind: Optional[EntityKind] = None) -> Optional[Entity]:
        """Look up an operable entity by name, optionally restricted to a kind."""
        lookups = (
            (EntityKind.TABLE, self.tables),
            (EntityKind.VIEW, self.views),
            (EntityKind.FUNCTION, self.functions),
            (EntityKind.PROCEDURE, self.procedures),
        )
        for entity_kind, mapping in lookups:
            if kind is not None and kind != entity_kind:
                continue
            if name in mapping:
                return mapping[name]
        return None


class SchemaGraph(_Frozen):
    """Immutable snapshot of every discovered schema."""

    backend: BackendKind
    schemas: tuple[SchemaEntry, ...] = ()
    built_at: datetime = Field(default_factory=datetime.utcnow)
    diagnostics: tuple[str, ...] = ()
    server_version: Optional[str] = None

    def schema(self, name: str) -> Optional[SchemaEntry]:
        for entry in self.schemas:
            if entry.name == name:
                return entry
        return None

    @property
    def schema_names(self) -> list[str]:
        return [s.name for s in self.schemas]

    def find_relation(self, schema: str, name: str) -> Optional[Union[TableEntry, ViewEntry]]:
        entry = self.schema(schema)
        if entry is None:
            return None
        return entry.tables.get(name) or entry.views.get(name)

    def summary(self) -> dict[str, dict[str, int]]:
        """Per-schema entity counts plus a ``TOTAL`` row."""
        rows = {s.name: s.counts() for s in self.schemas}
        total = dict.fromkeys(("tables", "views", "functions", "procedures", "enums"), 0)
        for counts in rows.values():
            for key, value in counts.items():
                total[key] += value
        rows["TOTAL"] = total
        return rows

# autocrud/models/catalog.py
"""Raw catalog rows as returned by the catalog readers.

These records are backend independent but unvalidated: native type names
are kept verbatim and references are plain names. The schema builder turns
them into the immutable :class:`~autocrud.models.schema.SchemaGraph`.
"""

from dataclasses import dataclass, field
from typing import Optional

from autocrud.models.database import BackendKind


@dataclass
class RawColumn:
    """Column (or view field) as read from the catalog."""
    name: str
    native_type: str
    ordinal_position: int
    is_nullable: bool = True
    has_default: bool = False
    udt_schema: Optional[str] = None
    udt_name: Optional[str] = None
    udt_category: Optional[str] = None  # "enum", "composite", "domain", "base", ...
    default_value: Optional[str] = None
    comment: Optional[str] = None


@dataclass
class RawForeignKey:
    name: str
    column: str
    ref_schema: str
    ref_table: str
    ref_column: str


@dataclass
class RawUniqueConstraint:
    name: str
    columns: list[str]


@dataclass
class RawRelation:
    """A table or view."""
    schema_name: str
    name: str
    kind: str  # "table" or "view"
    columns: list[RawColumn] = field(default_factory=list)
    primary_key: list[str] = field(default_factory=list)
    foreign_keys: list[RawForeignKey] = field(default_factory=list)
    unique_constraints: list[RawUniqueConstraint] = field(default_factory=list)
    definition: Optional[str] = None
    comment: Optional[str] = None

    @property
    def qualified_name(self) -> str:
        return f"{self.schema_name}.{self.name}"

    def column_names(self) -> set[str]:
        return {c.name for c in self.columns}


@dataclass
class RawParameter:
    name: str
    native_type: str
    ordinal_position: int
    mode: str = "IN"
    has_default: bool = False
    udt_schema: Optional[str] = None
    udt_name: Optional[str] = None
    udt_category: Optional[str] = None


@dataclass
class RawRoutine:
    """A function or stored procedure."""
    schema_name: str
    name: str
    kind: str  # "function" or "procedure"
    specific_name: str
    parameters: list[RawParameter] = field(default_factory=list)
    return_type: Optional[str] = None
    return_udt_schema: Optional[str] = None
    return_udt_name: Optional[str] = None
    return_category: Optional[str] = None
    returns_set: bool = False
    comment: Optional[str] = None

    @property
    def qualified_name(self) -> str:
        return f"{self.schema_name}.{self.name}"


@dataclass
class RawEnum:
    schema_name: str
    name: str
    labels: list[str] = field(default_factory=list)


@dataclass
class RawSchema:
    name: str
    relations: list[RawRelation] = field(default_factory=list)
    routines: list[RawRoutine] = field(default_factory=list)
    enums: list[RawEnum] = field(default_factory=list)

    def relation(self, name: str) -> Optional[RawRelation]:
        for relation in self.relations:
            if relation.name == name:
                return relation
        return None


@dataclass
class RawCatalog:
    """Everything one discovery pass read from the database."""
    backend: BackendKind
    schemas: list[RawSchema] = field(default_factory=list)
    diagnostics: list[str] = field(default_factory=list)
    server_version: Optional[str] = None

    def schema(self, name: str) -> Optional[RawSchema]:
        for schema in self.schemas:
            if schema.name == name:
                return schema
        return None

# autocrud/models/__init__.py
"""Data models for autocrud."""

from autocrud.models.database import (
    BackendKind,
    PoolOptions,
    ConnectionDescriptor,
    ConnectionStatus,
)
from autocrud.models.types import (
    Kind,
    EnumRef,
    ValueKind,
)
from autocrud.models.catalog import (
    RawColumn,
    RawForeignKey,
    RawUniqueConstraint,
    RawRelation,
    RawParameter,
    RawRoutine,
    RawEnum,
    RawSchema,
    RawCatalog,
)
from autocrud.models.schema import (
    EntityKind,
    ParameterMode,
    ColumnEntry,
    ForeignKeyEntry,
    UniqueConstraintEntry,
    TableEntry,
    ViewEntry,
    ParameterEntry,
    ReturnShape,
    FunctionEntry,
    ProcedureEntry,
    EnumEntry,
    SchemaEntry,
    SchemaGraph,
)
from autocrud.models.request import (
    FilterOperator,
    SortDirection,
    Filter,
    SortKey,
    EntityRef,
    ReadRequest,
    CreateRequest,
    UpdateRequest,
    DeleteRequest,
    InvokeRequest,
    OperationRequest,
    ReadBackPlan,
    Statement,
    RowSet,
    parse_filters,
    parse_sort,
)

__all__ = [
    "BackendKind",
    "PoolOptions",
    "ConnectionDescriptor",
    "ConnectionStatus",
    "Kind",
    "EnumRef",
    "ValueKind",
    "RawColumn",
    "RawForeignKey",
    "RawUniqueConstraint",
    "RawRelation",
    "RawParameter",
    "RawRoutine",
    "RawEnum",
    "RawSchema",
    "RawCatalog",
    "EntityKind",
    "ParameterMode",
    "ColumnEntry",
    "ForeignKeyEntry",
    "UniqueConstraintEntry",
    "TableEntry",
    "ViewEntry",
    "ParameterEntry",
    "ReturnShape",
    "FunctionEntry",
    "ProcedureEntry",
    "EnumEntry",
    "SchemaEntry",
    "SchemaGraph",
    "FilterOperator",
    "SortDirection",
    "Filter",
    "SortKey",
    "EntityRef",
    "ReadRequest",
    "CreateRequest",
    "UpdateRequest",
    "DeleteRequest",
    "InvokeRequest",
    "OperationRequest",
    "ReadBackPlan",
    "Statement",
    "RowSet",
    "parse_filters",
    "parse_sort",
]

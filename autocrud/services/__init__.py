# autocrud/services/__init__.py
"""Service modules for autocrud."""

from autocrud.services.database import (
    DatabasePool,
    PostgresPool,
    MySQLPool,
    SQLitePool,
    ExecuteResult,
    create_pool,
    test_connection,
    close_pool,
)
from autocrud.services.type_mapping import (
    TypeMappingTable,
    get_type_mapping_table,
    normalize_type_name,
)
from autocrud.services.dialects import (
    Dialect,
    POSTGRES_DIALECT,
    MYSQL_DIALECT,
    SQLITE_DIALECT,
    get_dialect,
)
from autocrud.services.catalog import (
    CatalogReader,
    PostgresCatalogReader,
    MySQLCatalogReader,
    SQLiteCatalogReader,
    get_catalog_reader,
    discover,
)
from autocrud.services.schema_builder import (
    SchemaModelBuilder,
    build_schema_graph,
    validate_schema_graph,
)
from autocrud.services.cache import MetadataCache
from autocrud.services.synthesizer import QuerySynthesizer
from autocrud.services.gateway import ExecutionGateway
from autocrud.services.operations import OperationService, parse_entity_ref, parse_request

__all__ = [
    # Database
    "DatabasePool",
    "PostgresPool",
    "MySQLPool",
    "SQLitePool",
    "ExecuteResult",
    "create_pool",
    "test_connection",
    "close_pool",
    # Types
    "TypeMappingTable",
    "get_type_mapping_table",
    "normalize_type_name",
    # Dialects
    "Dialect",
    "POSTGRES_DIALECT",
    "MYSQL_DIALECT",
    "SQLITE_DIALECT",
    "get_dialect",
    # Discovery
    "CatalogReader",
    "PostgresCatalogReader",
    "MySQLCatalogReader",
    "SQLiteCatalogReader",
    "get_catalog_reader",
    "discover",
    "SchemaModelBuilder",
    "build_schema_graph",
    "validate_schema_graph",
    "MetadataCache",
    # Operations
    "QuerySynthesizer",
    "ExecutionGateway",
    "OperationService",
    "parse_entity_ref",
    "parse_request",
]

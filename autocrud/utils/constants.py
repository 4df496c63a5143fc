# autocrud/utils/constants.py
"""Constants for autocrud."""

from enum import Enum


class ErrorCode(str, Enum):
    """Error code enumeration."""

    CONFIGURATION_INVALID = "ERR_001"
    SCHEMA_NOT_LOADED = "ERR_002"

    # Discovery
    CATALOG_CONNECTION_LOST = "ERR_101"
    UNSUPPORTED_BACKEND = "ERR_102"
    MALFORMED_CATALOG = "ERR_103"

    # Build
    UNRESOLVED_REFERENCE = "ERR_201"
    GRAPH_VALIDATION_FAILED = "ERR_202"

    # Codec
    VALUE_OUT_OF_RANGE = "ERR_301"
    VALUE_INVALID_FORMAT = "ERR_302"

    # Synthesis
    UNKNOWN_ENTITY = "ERR_401"
    UNKNOWN_COLUMN = "ERR_402"
    MISSING_REQUIRED_COLUMN = "ERR_403"
    READ_ONLY_COLUMN = "ERR_404"
    UNSCOPED_MUTATION = "ERR_405"
    ARITY_MISMATCH = "ERR_406"
    INVALID_REQUEST = "ERR_407"

    # Execution
    CONSTRAINT_VIOLATION = "ERR_501"
    EXECUTION_CONNECTION_LOST = "ERR_502"
    STATEMENT_FAILED = "ERR_503"
    EXECUTION_TIMEOUT = "ERR_504"


ERROR_MESSAGES: dict[ErrorCode, str] = {
    ErrorCode.CONFIGURATION_INVALID: "Invalid connection configuration",
    ErrorCode.SCHEMA_NOT_LOADED: "No schema snapshot has been loaded yet",
    ErrorCode.CATALOG_CONNECTION_LOST: "Could not obtain a connection for catalog discovery",
    ErrorCode.UNSUPPORTED_BACKEND: "No catalog queries are registered for this backend",
    ErrorCode.MALFORMED_CATALOG: "A catalog row has an unexpected shape",
    ErrorCode.UNRESOLVED_REFERENCE: "Reference points outside the discovered schemas",
    ErrorCode.GRAPH_VALIDATION_FAILED: "Schema graph failed validation",
    ErrorCode.VALUE_OUT_OF_RANGE: "Value is out of range for the target type",
    ErrorCode.VALUE_INVALID_FORMAT: "Value has an invalid format for the target type",
    ErrorCode.UNKNOWN_ENTITY: "Entity not found",
    ErrorCode.UNKNOWN_COLUMN: "Unknown column",
    ErrorCode.MISSING_REQUIRED_COLUMN: "Required column is missing",
    ErrorCode.READ_ONLY_COLUMN: "Column cannot be written",
    ErrorCode.UNSCOPED_MUTATION: "Mutation is not scoped to a primary key or unique constraint",
    ErrorCode.ARITY_MISMATCH: "Wrong number of arguments",
    ErrorCode.INVALID_REQUEST: "Request parameters are incomplete or malformed",
    ErrorCode.CONSTRAINT_VIOLATION: "Statement violated a database constraint",
    ErrorCode.EXECUTION_CONNECTION_LOST: "Database connection lost during execution",
    ErrorCode.STATEMENT_FAILED: "Database rejected the statement",
    ErrorCode.EXECUTION_TIMEOUT: "Statement timed out",
}

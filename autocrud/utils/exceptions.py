# autocrud/utils/exceptions.py
"""Exception classes for autocrud."""

from typing import Optional

from autocrud.utils.constants import ErrorCode, ERROR_MESSAGES


class AutoCrudError(Exception):
    """Base exception class for autocrud."""

    def __init__(
        self,
        code: ErrorCode,
        message: str | None = None,
        details: dict | None = None
    ):
        self.code = code
        self.message = message or ERROR_MESSAGES.get(code, "Unknown error")
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> dict:
        """Convert the exception to a dictionary format.

        Returns:
            A dictionary representation of the error.
        """
        return {
            "status": "error",
            "error": {
                "code": self.code.value,
                "message": self.message,
                "details": self.details
            }
        }


class ConfigurationError(AutoCrudError):
    """Connection configuration error."""

    def __init__(self, message: str):
        super().__init__(
            code=ErrorCode.CONFIGURATION_INVALID,
            message=message
        )


class SchemaNotLoadedError(AutoCrudError):
    """Raised when the metadata cache has no snapshot yet."""

    def __init__(self):
        super().__init__(code=ErrorCode.SCHEMA_NOT_LOADED)


# ---------------------------------------------------------------------------
# Discovery
# ---------------------------------------------------------------------------

class DiscoveryError(AutoCrudError):
    """Base class for catalog discovery errors."""


class CatalogConnectionError(DiscoveryError):
    """The pool could not serve a connection for discovery."""

    def __init__(self, message: str):
        super().__init__(
            code=ErrorCode.CATALOG_CONNECTION_LOST,
            message=message
        )


class UnsupportedBackendError(DiscoveryError):
    """No catalog reader is registered for the backend."""

    def __init__(self, backend: str):
        super().__init__(
            code=ErrorCode.UNSUPPORTED_BACKEND,
            message=f"Unsupported backend for discovery: {backend}",
            details={"backend": backend}
        )


class MalformedCatalogError(DiscoveryError):
    """A catalog row violates its expected shape."""

    def __init__(self, relation: str, reason: str):
        super().__init__(
            code=ErrorCode.MALFORMED_CATALOG,
            message=f"Malformed catalog entry for {relation}: {reason}",
            details={"relation": relation, "reason": reason}
        )


# ---------------------------------------------------------------------------
# Build
# ---------------------------------------------------------------------------

class BuildError(AutoCrudError):
    """Base class for schema model build errors."""


class UnresolvedReferenceError(BuildError):
    """A foreign key or enum reference points outside the discovered set."""

    def __init__(self, source: str, target: str):
        super().__init__(
            code=ErrorCode.UNRESOLVED_REFERENCE,
            message=f"Reference from {source} to {target} cannot be resolved",
            details={"source": source, "target": target}
        )


class GraphValidationError(BuildError):
    """The assembled schema graph is inconsistent."""

    def __init__(self, problems: list[str]):
        super().__init__(
            code=ErrorCode.GRAPH_VALIDATION_FAILED,
            message=f"Schema graph failed validation: {'; '.join(problems)}",
            details={"problems": problems}
        )


# ---------------------------------------------------------------------------
# Codec
# ---------------------------------------------------------------------------

class CodecError(AutoCrudError):
    """Base class for value conversion errors."""


class OutOfRangeError(CodecError):
    """Value does not fit the target type."""

    def __init__(self, kind: str, value: object):
        super().__init__(
            code=ErrorCode.VALUE_OUT_OF_RANGE,
            message=f"Value {value!r} is out of range for {kind}",
            details={"kind": kind, "value": repr(value)}
        )


class InvalidFormatError(CodecError):
    """Value cannot be parsed as the target type."""

    def __init__(self, kind: str, value: object, reason: Optional[str] = None):
        message = f"Value {value!r} is not a valid {kind}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(
            code=ErrorCode.VALUE_INVALID_FORMAT,
            message=message,
            details={"kind": kind, "value": repr(value)}
        )


# ---------------------------------------------------------------------------
# Synthesis
# ---------------------------------------------------------------------------

class SynthesisError(AutoCrudError):
    """Base class for rejected operation requests."""


class UnknownEntityError(SynthesisError):
    """The requested entity is not in the current snapshot."""

    def __init__(self, entity: str):
        super().__init__(
            code=ErrorCode.UNKNOWN_ENTITY,
            message=f"Unknown entity: {entity}",
            details={"entity": entity}
        )


class UnknownColumnError(SynthesisError):
    """A filter, sort or value names a column the entity does not have."""

    def __init__(self, entity: str, column: str):
        super().__init__(
            code=ErrorCode.UNKNOWN_COLUMN,
            message=f"Unknown column '{column}' on {entity}",
            details={"entity": entity, "column": column}
        )


class MissingRequiredColumnError(SynthesisError):
    """A create request omits non-nullable columns without defaults."""

    def __init__(self, entity: str, columns: list[str]):
        super().__init__(
            code=ErrorCode.MISSING_REQUIRED_COLUMN,
            message=f"Missing required columns on {entity}: {', '.join(columns)}",
            details={"entity": entity, "columns": columns}
        )


class ReadOnlyColumnError(SynthesisError):
    """A write names a column whose type has no portable mapping."""

    def __init__(self, entity: str, column: str):
        super().__init__(
            code=ErrorCode.READ_ONLY_COLUMN,
            message=f"Column '{column}' on {entity} is read-only",
            details={"entity": entity, "column": column}
        )


class UnscopedMutationError(SynthesisError):
    """An update or delete is not pinned to a key."""

    def __init__(self, entity: str):
        super().__init__(
            code=ErrorCode.UNSCOPED_MUTATION,
            message=(
                f"Mutation on {entity} must filter on its primary key "
                "or a unique constraint"
            ),
            details={"entity": entity}
        )


class ArityMismatchError(SynthesisError):
    """Wrong number of routine arguments."""

    def __init__(self, routine: str, expected: str, received: int):
        super().__init__(
            code=ErrorCode.ARITY_MISMATCH,
            message=f"{routine} expects {expected} arguments, got {received}",
            details={"routine": routine, "expected": expected, "received": received}
        )


class InvalidRequestError(SynthesisError):
    """The request is malformed for the target entity."""

    def __init__(self, message: str):
        super().__init__(
            code=ErrorCode.INVALID_REQUEST,
            message=message
        )


# ---------------------------------------------------------------------------
# Execution
# ---------------------------------------------------------------------------

class ExecutionError(AutoCrudError):
    """Base class for errors reported by the database."""


class ConstraintViolationError(ExecutionError):
    """The statement violated a constraint."""

    def __init__(
        self,
        message: str,
        constraint: Optional[str] = None,
        column: Optional[str] = None,
        table: Optional[str] = None
    ):
        super().__init__(
            code=ErrorCode.CONSTRAINT_VIOLATION,
            message=message,
            details={"constraint": constraint, "column": column, "table": table}
        )
        self.constraint = constraint
        self.column = column
        self.table = table


class ExecutionConnectionError(ExecutionError):
    """The connection was lost while executing."""

    def __init__(self, message: str):
        super().__init__(
            code=ErrorCode.EXECUTION_CONNECTION_LOST,
            message=message
        )


class StatementError(ExecutionError):
    """The backend reported a syntax or type error."""

    def __init__(self, message: str, sqlstate: Optional[str] = None):
        super().__init__(
            code=ErrorCode.STATEMENT_FAILED,
            message=message,
            details={"sqlstate": sqlstate}
        )
        self.sqlstate = sqlstate


class ExecutionTimeoutError(ExecutionError):
    """The statement exceeded its timeout."""

    def __init__(self, message: str = "Statement timed out"):
        super().__init__(
            code=ErrorCode.EXECUTION_TIMEOUT,
            message=message
        )

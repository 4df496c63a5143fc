# autocrud/utils/__init__.py
"""Utility modules for autocrud."""

from autocrud.utils.constants import ErrorCode, ERROR_MESSAGES
from autocrud.utils.exceptions import (
    AutoCrudError,
    ConfigurationError,
    SchemaNotLoadedError,
    DiscoveryError,
    CatalogConnectionError,
    UnsupportedBackendError,
    MalformedCatalogError,
    BuildError,
    UnresolvedReferenceError,
    GraphValidationError,
    CodecError,
    OutOfRangeError,
    InvalidFormatError,
    SynthesisError,
    UnknownEntityError,
    UnknownColumnError,
    MissingRequiredColumnError,
    ReadOnlyColumnError,
    UnscopedMutationError,
    ArityMismatchError,
    InvalidRequestError,
    ExecutionError,
    ConstraintViolationError,
    ExecutionConnectionError,
    StatementError,
    ExecutionTimeoutError,
)

__all__ = [
    "ErrorCode",
    "ERROR_MESSAGES",
    "AutoCrudError",
    "ConfigurationError",
    "SchemaNotLoadedError",
    # Discovery
    "DiscoveryError",
    "CatalogConnectionError",
    "UnsupportedBackendError",
    "MalformedCatalogError",
    # Build
    "BuildError",
    "UnresolvedReferenceError",
    "GraphValidationError",
    # Codec
    "CodecError",
    "OutOfRangeError",
    "InvalidFormatError",
    # Synthesis
    "SynthesisError",
    "UnknownEntityError",
    "UnknownColumnError",
    "MissingRequiredColumnError",
    "ReadOnlyColumnError",
    "UnscopedMutationError",
    "ArityMismatchError",
    "InvalidRequestError",
    # Execution
    "ExecutionError",
    "ConstraintViolationError",
    "ExecutionConnectionError",
    "StatementError",
    "ExecutionTimeoutError",
]

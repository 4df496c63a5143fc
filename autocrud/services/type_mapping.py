# autocrud/services/type_mapping.py
"""Native type registry and portable value codec."""

import base64
import binascii
import json
import logging
import math
import re
import uuid
from datetime import date, datetime, time, timedelta
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

from autocrud.models.database import BackendKind
from autocrud.models.types import (
    Kind,
    ValueKind,
    BOOL,
    INT16,
    INT32,
    INT64,
    FLOAT32,
    FLOAT64,
    DECIMAL_TEXT,
    TEXT,
    BYTES,
    UUID,
    TIMESTAMP_NAIVE,
    TIMESTAMP_TZ,
    DATE,
    TIME,
    JSON,
)
from autocrud.utils.exceptions import InvalidFormatError, OutOfRangeError

logger = logging.getLogger("type-mapping")


INT_RANGES: dict[Kind, tuple[int, int]] = {
    Kind.INT16: (-(2 ** 15), 2 ** 15 - 1),
    Kind.INT32: (-(2 ** 31), 2 ** 31 - 1),
    Kind.INT64: (-(2 ** 63), 2 ** 63 - 1),
}

# Upper bounds of MySQL unsigned integers, keyed by normalized native name.
UNSIGNED_MAX: dict[str, int] = {
    "tinyint unsigned": 2 ** 8 - 1,
    "smallint unsigned": 2 ** 16 - 1,
    "mediumint unsigned": 2 ** 24 - 1,
    "int unsigned": 2 ** 32 - 1,
    "integer unsigned": 2 ** 32 - 1,
    "bigint unsigned": 2 ** 64 - 1,
}
FLOAT32_MAX = 3.4028234663852886e38

TRUE_STRINGS = frozenset({"true", "t", "1", "yes", "y", "on"})
FALSE_STRINGS = frozenset({"false", "f", "0", "no", "n", "off"})


POSTGRES_TYPES: dict[str, ValueKind] = {
    "boolean": BOOL,
    "bool": BOOL,
    "smallint": INT16,
    "int2": INT16,
    "smallserial": INT16,
    "integer": INT32,
    "int": INT32,
    "int4": INT32,
    "serial": INT32,
    "bigint": INT64,
    "int8": INT64,
    "bigserial": INT64,
    "real": FLOAT32,
    "float4": FLOAT32,
    "double precision": FLOAT64,
    "float8": FLOAT64,
    "numeric": DECIMAL_TEXT,
    "decimal": DECIMAL_TEXT,
    "text": TEXT,
    "character varying": TEXT,
    "varchar": TEXT,
    "character": TEXT,
    "char": TEXT,
    "bpchar": TEXT,
    "name": TEXT,
    "citext": TEXT,
    "bytea": BYTES,
    "uuid": UUID,
    "timestamp without time zone": TIMESTAMP_NAIVE,
    "timestamp": TIMESTAMP_NAIVE,
    "timestamp with time zone": TIMESTAMP_TZ,
    "timestamptz": TIMESTAMP_TZ,
    "date": DATE,
    "time without time zone": TIME,
    "time": TIME,
    "json": JSON,
    "jsonb": JSON,
}

# Unsigned integers widen to the next signed kind that holds their full
# range; ``bigint unsigned`` has none and is carried as exact decimal text.
MYSQL_TYPES: dict[str, ValueKind] = {
    "bool": BOOL,
    "boolean": BOOL,
    "tinyint": INT16,
    "smallint": INT16,
    "mediumint": INT32,
    "int": INT32,
    "integer": INT32,
    "bigint": INT64,
    "year": INT16,
    "tinyint unsigned": INT16,
    "smallint unsigned": INT32,
    "mediumint unsigned": INT32,
    "int unsigned": INT64,
    "integer unsigned": INT64,
    "bigint unsigned": DECIMAL_TEXT,
    "float": FLOAT32,
    "double": FLOAT64,
    "double precision": FLOAT64,
    "real": FLOAT64,
    "decimal": DECIMAL_TEXT,
    "numeric": DECIMAL_TEXT,
    "char": TEXT,
    "varchar": TEXT,
    "tinytext": TEXT,
    "text": TEXT,
    "mediumtext": TEXT,
    "longtext": TEXT,
    "enum": TEXT,
    "set": TEXT,
    "binary": BYTES,
    "varbinary": BYTES,
    "tinyblob": BYTES,
    "blob": BYTES,
    "mediumblob": BYTES,
    "longblob": BYTES,
    "date": DATE,
    "time": TIME,
    "datetime": TIMESTAMP_NAIVE,
    "timestamp": TIMESTAMP_NAIVE,
    "json": JSON,
}

# Declared names SQLite applications conventionally use; anything else
# falls through to SQLite's own column affinity rules.
SQLITE_TYPES: dict[str, ValueKind] = {
    "boolean": BOOL,
    "bool": BOOL,
    "smallint": INT16,
    "int2": INT16,
    "int4": INT32,
    "int8": INT64,
    "bigint": INT64,
    "date": DATE,
    "datetime": TIMESTAMP_NAIVE,
    "timestamp": TIMESTAMP_NAIVE,
    "timestamptz": TIMESTAMP_TZ,
    "timestamp with time zone": TIMESTAMP_TZ,
    "time": TIME,
    "uuid": UUID,
    "json": JSON,
    "jsonb": JSON,
    "decimal": DECIMAL_TEXT,
    "numeric": DECIMAL_TEXT,
    "blob": BYTES,
}

DEFAULT_REGISTRIES: dict[BackendKind, dict[str, ValueKind]] = {
    BackendKind.POSTGRES: POSTGRES_TYPES,
    BackendKind.MYSQL: MYSQL_TYPES,
    BackendKind.SQLITE: SQLITE_TYPES,
}

_PARAMS_RE = re.compile(r"\s*\([^)]*\)")
_SPACE_RE = re.compile(r"\s+")
_MYSQL_BOOL_RE = re.compile(r"^tinyint\(1\)$")


def normalize_type_name(native: str) -> str:
    """Lower-case a native type name and drop length/precision arguments.

    ``"character varying(255)"`` becomes ``"character varying"`` and
    ``"INT(11) UNSIGNED ZEROFILL"`` becomes ``"int unsigned"``.
    """
    name = _PARAMS_RE.sub("", native.strip().lower())
    name = name.replace("zerofill", "")
    return _SPACE_RE.sub(" ", name).strip()


def sqlite_affinity(name: str) -> Optional[ValueKind]:
    """Apply SQLite's declared-type affinity rules.

    Returns None for NUMERIC affinity types and empty declarations, which
    have no single portable kind.
    """
    if "int" in name:
        return INT64
    if "char" in name or "clob" in name or "text" in name:
        return TEXT
    if "blob" in name:
        return BYTES
    if "real" in name or "floa" in name or "doub" in name:
        return FLOAT64
    return None


def _parse_datetime(value: str) -> datetime:
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    return datetime.fromisoformat(text)


def _decimal_text(value: Decimal) -> str:
    return format(value, "f")


def sqlite_numeric_text(value: Decimal) -> str:
    """Text a decimal reads back as after storage in a NUMERIC affinity column.

    SQLite keeps integral values that fit 64 bits as INTEGER and converts
    everything else to an 8-byte REAL.
    """
    low, high = INT_RANGES[Kind.INT64]
    if value == value.to_integral_value() and low <= value <= high:
        return str(int(value))
    return _decimal_text(Decimal(repr(float(value))))


class TypeMappingTable:
    """Maps native type names to value kinds and converts values.

    The table is read-only after construction and safe to share between
    concurrent requests.
    """

    def __init__(
        self,
        overrides: Optional[dict[BackendKind, dict[str, ValueKind]]] = None
    ):
        """Initialize the table.

        Args:
            overrides: Extra or replacement native type mappings per backend.
        """
        self._registries: dict[BackendKind, dict[str, ValueKind]] = {
            backend: dict(registry) for backend, registry in DEFAULT_REGISTRIES.items()
        }
        for backend, mapping in (overrides or {}).items():
            for native, kind in mapping.items():
                self._registries[backend][normalize_type_name(native)] = kind

    # ------------------------------------------------------------------
    # Type resolution
    # ------------------------------------------------------------------

    def resolve(
        self,
        native_type_name: str,
        backend: BackendKind,
        udt_name: Optional[str] = None
    ) -> ValueKind:
        """Resolve a native type name to a value kind.

        Never raises: a type without a registered mapping resolves to an
        ``unsupported`` kind carrying the native name.

        Args:
            native_type_name: Type name as reported by the catalog.
            backend: Backend the name comes from.
            udt_name: Underlying type name, used by PostgreSQL for arrays
                and user-defined types.

        Returns:
            The resolved value kind.
        """
        raw = (native_type_name or "").strip()
        lower = raw.lower()

        if not raw:
            return ValueKind.unsupported(raw)

        if backend == BackendKind.POSTGRES:
            if lower == "array" and udt_name:
                element = udt_name[1:] if udt_name.startswith("_") else udt_name
                return ValueKind.array(self.resolve(element, backend))
            if lower == "user-defined" and udt_name:
                return self.resolve(udt_name, backend)
            if lower.startswith("_") and len(lower) > 1:
                return ValueKind.array(self.resolve(raw[1:], backend))

        if lower.endswith("[]"):
            return ValueKind.array(self.resolve(raw[:-2], backend, udt_name))

        if backend == BackendKind.MYSQL and _MYSQL_BOOL_RE.match(lower):
            return BOOL

        name = normalize_type_name(raw)
        registry = self._registries.get(backend, {})
        kind = registry.get(name)
        if kind is None and name.endswith(" unsigned"):
            kind = registry.get(name[: -len(" unsigned")])
        if kind is None and backend == BackendKind.SQLITE:
            kind = sqlite_affinity(name)
        if kind is None:
            logger.debug("No mapping for %s type '%s'", backend.value, raw)
            return ValueKind.unsupported(raw)
        if name.endswith(" unsigned"):
            # The native name carries the sign constraint through to validation
            return kind.model_copy(update={"native": name})
        return kind

    # ------------------------------------------------------------------
    # Client value validation
    # ------------------------------------------------------------------

    def to_portable(self, kind: ValueKind, value: Any) -> Any:
        """Validate a client-supplied value and return its portable form.

        Args:
            kind: Target value kind.
            value: Value as supplied by the client (Python object or text).

        Returns:
            The portable value.

        Raises:
            OutOfRangeError: The value does not fit the kind.
            InvalidFormatError: The value cannot be read as the kind.
        """
        if value is None:
            return None
        label = kind.describe()
        k = kind.kind

        if k == Kind.BOOL:
            if isinstance(value, bool):
                return value
            if isinstance(value, int) and value in (0, 1):
                return bool(value)
            if isinstance(value, str):
                lowered = value.strip().lower()
                if lowered in TRUE_STRINGS:
                    return True
                if lowered in FALSE_STRINGS:
                    return False
            raise InvalidFormatError(label, value)

        if k in INT_RANGES:
            number = self._to_int(label, value)
            low, high = INT_RANGES[k]
            if kind.native in UNSIGNED_MAX:
                low, high = 0, UNSIGNED_MAX[kind.native]
            if not low <= number <= high:
                raise OutOfRangeError(label, value)
            return number

        if k in (Kind.FLOAT32, Kind.FLOAT64):
            if isinstance(value, bool):
                raise InvalidFormatError(label, value)
            try:
                number = float(value)
            except OverflowError:
                raise OutOfRangeError(label, value) from None
            except (TypeError, ValueError):
                raise InvalidFormatError(label, value) from None
            if k == Kind.FLOAT32 and math.isfinite(number) and abs(number) > FLOAT32_MAX:
                raise OutOfRangeError(label, value)
            if kind.is_unsigned and number < 0:
                raise OutOfRangeError(label, value)
            return number

        if k == Kind.DECIMAL_TEXT:
            if isinstance(value, bool):
                raise InvalidFormatError(label, value)
            try:
                if isinstance(value, float):
                    number = Decimal(repr(value))
                elif isinstance(value, str):
                    number = Decimal(value.strip())
                else:
                    number = Decimal(value)
            except (InvalidOperation, TypeError, ValueError):
                raise InvalidFormatError(label, value) from None
            if not number.is_finite():
                raise InvalidFormatError(label, value, "not a finite number")
            if kind.native in UNSIGNED_MAX:
                if number != number.to_integral_value():
                    raise InvalidFormatError(label, value, "not an integer")
                if not 0 <= number <= UNSIGNED_MAX[kind.native]:
                    raise OutOfRangeError(label, value)
                return str(int(number))
            if kind.is_unsigned and number < 0:
                raise OutOfRangeError(label, value)
            return _decimal_text(number)

        if k == Kind.TEXT:
            if not isinstance(value, str):
                raise InvalidFormatError(label, value, "expected a string")
            return value

        if k == Kind.BYTES:
            if isinstance(value, (bytes, bytearray, memoryview)):
                return bytes(value)
            if isinstance(value, str):
                try:
                    return base64.b64decode(value, validate=True)
                except (binascii.Error, ValueError):
                    raise InvalidFormatError(label, value, "expected base64 text") from None
            raise InvalidFormatError(label, value)

        if k == Kind.UUID:
            if isinstance(value, uuid.UUID):
                return value
            if isinstance(value, str):
                try:
                    return uuid.UUID(value.strip())
                except ValueError:
                    raise InvalidFormatError(label, value) from None
            raise InvalidFormatError(label, value)

        if k in (Kind.TIMESTAMP_NAIVE, Kind.TIMESTAMP_TZ):
            if isinstance(value, datetime):
                moment = value
            elif isinstance(value, date):
                moment = datetime.combine(value, time())
            elif isinstance(value, str):
                try:
                    moment = _parse_datetime(value)
                except ValueError:
                    raise InvalidFormatError(label, value) from None
            else:
                raise InvalidFormatError(label, value)
            aware = moment.tzinfo is not None and moment.utcoffset() is not None
            if k == Kind.TIMESTAMP_NAIVE and aware:
                raise InvalidFormatError(label, value, "timezone offset not allowed")
            if k == Kind.TIMESTAMP_TZ and not aware:
                raise InvalidFormatError(label, value, "timezone offset required")
            return moment

        if k == Kind.DATE:
            if isinstance(value, datetime):
                raise InvalidFormatError(label, value, "expected a date without time")
            if isinstance(value, date):
                return value
            if isinstance(value, str):
                try:
                    return date.fromisoformat(value.strip())
                except ValueError:
                    raise InvalidFormatError(label, value) from None
            raise InvalidFormatError(label, value)

        if k == Kind.TIME:
            if isinstance(value, time):
                return value
            if isinstance(value, str):
                try:
                    return time.fromisoformat(value.strip())
                except ValueError:
                    raise InvalidFormatError(label, value) from None
            raise InvalidFormatError(label, value)

        if k == Kind.JSON:
            try:
                json.dumps(value, allow_nan=False)
            except (TypeError, ValueError):
                raise InvalidFormatError(label, value, "not JSON serializable") from None
            return value

        if k == Kind.ENUM_REF:
            if not isinstance(value, str):
                raise InvalidFormatError(label, value, "expected an enum label")
            if kind.enum is not None and kind.enum.labels and value not in kind.enum.labels:
                raise InvalidFormatError(
                    label, value, f"expected one of {', '.join(kind.enum.labels)}"
                )
            return value

        if k == Kind.ARRAY:
            if not isinstance(value, (list, tuple)) or kind.element is None:
                raise InvalidFormatError(label, value, "expected a list")
            return [self.to_portable(kind.element, item) for item in value]

        raise InvalidFormatError(label, value, "column type is read-only")

    @staticmethod
    def _to_int(label: str, value: Any) -> int:
        if isinstance(value, bool):
            raise InvalidFormatError(label, value)
        if isinstance(value, int):
            return value
        if isinstance(value, float):
            if not value.is_integer():
                raise InvalidFormatError(label, value, "not an integer")
            return int(value)
        if isinstance(value, Decimal):
            if not value.is_finite() or value != value.to_integral_value():
                raise InvalidFormatError(label, value, "not an integer")
            return int(value)
        if isinstance(value, str):
            try:
                return int(value.strip())
            except ValueError:
                raise InvalidFormatError(label, value) from None
        raise InvalidFormatError(label, value)

    # ------------------------------------------------------------------
    # Driver conversion
    # ------------------------------------------------------------------

    def encode(
        self,
        kind: ValueKind,
        value: Any,
        backend: BackendKind,
        store: bool = True
    ) -> Any:
        """Convert a client value into the object bound as a statement parameter.

        Args:
            kind: Target value kind.
            value: Client-supplied value.
            backend: Backend whose driver receives the value.
            store: Whether the value is written to a column, as opposed to
                only compared against one.

        Returns:
            The driver-level value.

        Raises:
            OutOfRangeError: A stored SQLite decimal would not read back as
                the exact text supplied.
        """
        portable = self.to_portable(kind, value)
        if store and backend == BackendKind.SQLITE:
            self._check_sqlite_numeric(kind, portable)
        return self._to_driver(kind, portable, backend)

    @staticmethod
    def _check_sqlite_numeric(kind: ValueKind, value: Any) -> None:
        if value is None or kind.kind != Kind.DECIMAL_TEXT:
            return
        if sqlite_numeric_text(Decimal(value)) != value:
            raise OutOfRangeError(f"{kind.describe()} stored by SQLite", value)

    def _to_driver(self, kind: ValueKind, value: Any, backend: BackendKind) -> Any:
        if value is None:
            return None
        k = kind.kind
        sqlite = backend == BackendKind.SQLITE

        if k == Kind.BOOL:
            return int(value) if sqlite else value
        if k == Kind.DECIMAL_TEXT:
            return value if sqlite else Decimal(value)
        if k == Kind.UUID:
            return value if backend == BackendKind.POSTGRES else str(value)
        if k == Kind.TIMESTAMP_NAIVE or k == Kind.TIMESTAMP_TZ:
            return value.isoformat(sep=" ") if sqlite else value
        if k in (Kind.DATE, Kind.TIME):
            return value.isoformat() if sqlite else value
        if k == Kind.JSON:
            return json.dumps(value)
        if k == Kind.ARRAY:
            if backend == BackendKind.POSTGRES and kind.element is not None:
                return [self._to_driver(kind.element, item, backend) for item in value]
            return json.dumps(value, default=str)
        return value

    def decode(self, kind: Optional[ValueKind], raw: Any) -> Any:
        """Convert a driver value read from a result row into portable form.

        Args:
            kind: Declared kind of the column, or None to pass the value through.
            raw: Value returned by the driver.

        Returns:
            The portable value.

        Raises:
            InvalidFormatError: The stored value cannot be read as the kind.
        """
        if raw is None:
            return None
        if isinstance(raw, memoryview):
            raw = raw.tobytes()
        if kind is None:
            return raw

        k = kind.kind
        try:
            if k == Kind.BOOL:
                if isinstance(raw, str):
                    return raw.strip().lower() in TRUE_STRINGS
                return bool(raw)
            if k in INT_RANGES:
                return int(raw)
            if k in (Kind.FLOAT32, Kind.FLOAT64):
                return float(raw)
            if k == Kind.DECIMAL_TEXT:
                if isinstance(raw, float):
                    return _decimal_text(Decimal(repr(raw)))
                return _decimal_text(Decimal(str(raw).strip()))
            if k in (Kind.TEXT, Kind.ENUM_REF):
                if isinstance(raw, (bytes, bytearray)):
                    return bytes(raw).decode("utf-8")
                return str(raw)
            if k == Kind.BYTES:
                if isinstance(raw, str):
                    return raw.encode("utf-8")
                return bytes(raw)
            if k == Kind.UUID:
                if type(raw) is uuid.UUID:
                    return raw
                if isinstance(raw, (bytes, bytearray)) and len(raw) == 16:
                    return uuid.UUID(bytes=bytes(raw))
                return uuid.UUID(str(raw))
            if k in (Kind.TIMESTAMP_NAIVE, Kind.TIMESTAMP_TZ):
                if isinstance(raw, datetime):
                    return raw
                if isinstance(raw, date):
                    return datetime.combine(raw, time())
                return _parse_datetime(str(raw))
            if k == Kind.DATE:
                if isinstance(raw, datetime):
                    return raw.date()
                if isinstance(raw, date):
                    return raw
                return date.fromisoformat(str(raw).strip())
            if k == Kind.TIME:
                if isinstance(raw, time):
                    return raw
                if isinstance(raw, timedelta):
                    return (datetime.min + raw).time()
                return time.fromisoformat(str(raw).strip())
            if k == Kind.JSON:
                if isinstance(raw, (str, bytes, bytearray)):
                    return json.loads(raw)
                return raw
            if k == Kind.ARRAY:
                if isinstance(raw, str):
                    raw = json.loads(raw)
                if kind.element is None:
                    return list(raw)
                return [self.decode(kind.element, item) for item in raw]
        except (TypeError, ValueError, InvalidOperation) as e:
            raise InvalidFormatError(kind.describe(), raw, str(e)) from e

        if isinstance(raw, (bytes, bytearray)):
            return bytes(raw).hex()
        return str(raw)


_default_table: Optional[TypeMappingTable] = None


def get_type_mapping_table() -> TypeMappingTable:
    """Get the shared default type mapping table."""
    global _default_table
    if _default_table is None:
        _default_table = TypeMappingTable()
    return _default_table

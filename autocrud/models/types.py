# autocrud/models/types.py
"""Portable value kinds shared by every backend."""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict


class Kind(str, Enum):
    """Tag of a portable value kind."""

    BOOL = "bool"
    INT16 = "int16"
    INT32 = "int32"
    INT64 = "int64"
    FLOAT32 = "float32"
    FLOAT64 = "float64"
    DECIMAL_TEXT = "decimal_text"
    TEXT = "text"
    BYTES = "bytes"
    UUID = "uuid"
    TIMESTAMP_NAIVE = "timestamp_naive"
    TIMESTAMP_TZ = "timestamp_tz"
    DATE = "date"
    TIME = "time"
    JSON = "json"
    ENUM_REF = "enum_ref"
    ARRAY = "array"
    UNSUPPORTED = "unsupported"


INTEGER_KINDS = frozenset({Kind.INT16, Kind.INT32, Kind.INT64})
FLOAT_KINDS = frozenset({Kind.FLOAT32, Kind.FLOAT64})
TEXT_LIKE_KINDS = frozenset({Kind.TEXT, Kind.ENUM_REF})

# Kinds whose values have no total order usable for ORDER BY tie-breaks.
UNORDERED_KINDS = frozenset({Kind.JSON, Kind.BYTES, Kind.ARRAY, Kind.UNSUPPORTED})


class EnumRef(BaseModel):
    """Identity and labels of an enumerated type."""

    model_config = ConfigDict(frozen=True)

    schema_name: str
    name: str
    labels: tuple[str, ...] = ()

    @property
    def qualified_name(self) -> str:
        return f"{self.schema_name}.{self.name}"


class ValueKind(BaseModel):
    """A portable value kind.

    Scalar kinds carry only their tag. ``enum_ref`` carries the enum it
    refers to, ``array`` its element kind and ``unsupported`` the native
    type name that could not be mapped. Unsigned MySQL integers keep their
    native name so validation can enforce the unsigned range.
    """

    model_config = ConfigDict(frozen=True)

    kind: Kind
    enum: Optional[EnumRef] = None
    element: Optional["ValueKind"] = None
    native: Optional[str] = None

    @classmethod
    def scalar(cls, kind: Kind) -> "ValueKind":
        if kind in (Kind.ENUM_REF, Kind.ARRAY, Kind.UNSUPPORTED):
            raise ValueError(f"{kind.value} is not a scalar kind")
        return cls(kind=kind)

    @classmethod
    def enum_ref(cls, enum: EnumRef) -> "ValueKind":
        return cls(kind=Kind.ENUM_REF, enum=enum)

    @classmethod
    def array(cls, element: "ValueKind") -> "ValueKind":
        return cls(kind=Kind.ARRAY, element=element)

    @classmethod
    def unsupported(cls, native: str) -> "ValueKind":
        return cls(kind=Kind.UNSUPPORTED, native=native)

    @property
    def is_supported(self) -> bool:
        if self.kind == Kind.UNSUPPORTED:
            return False
        if self.kind == Kind.ARRAY and self.element is not None:
            return self.element.is_supported
        return True

    @property
    def is_unsigned(self) -> bool:
        return (
            self.kind != Kind.UNSUPPORTED
            and self.native is not None
            and self.native.endswith(" unsigned")
        )

    @property
    def is_orderable(self) -> bool:
        return self.kind not in UNORDERED_KINDS

    @property
    def is_text_like(self) -> bool:
        return self.kind in TEXT_LIKE_KINDS

    def describe(self) -> str:
        """Short human readable form, e.g. ``array<int32>``."""
        if self.kind == Kind.ARRAY and self.element is not None:
            return f"array<{self.element.describe()}>"
        if self.kind == Kind.ENUM_REF and self.enum is not None:
            return f"enum<{self.enum.qualified_name}>"
        if self.kind == Kind.UNSUPPORTED:
            return f"unsupported<{self.native}>"
        return self.kind.value


# Shorthands used by the type registries
BOOL = ValueKind(kind=Kind.BOOL)
INT16 = ValueKind(kind=Kind.INT16)
INT32 = ValueKind(kind=Kind.INT32)
INT64 = ValueKind(kind=Kind.INT64)
FLOAT32 = ValueKind(kind=Kind.FLOAT32)
FLOAT64 = ValueKind(kind=Kind.FLOAT64)
DECIMAL_TEXT = ValueKind(kind=Kind.DECIMAL_TEXT)
TEXT = ValueKind(kind=Kind.TEXT)
BYTES = ValueKind(kind=Kind.BYTES)
UUID = ValueKind(kind=Kind.UUID)
TIMESTAMP_NAIVE = ValueKind(kind=Kind.TIMESTAMP_NAIVE)
TIMESTAMP_TZ = ValueKind(kind=Kind.TIMESTAMP_TZ)
DATE = ValueKind(kind=Kind.DATE)
TIME = ValueKind(kind=Kind.TIME)
JSON = ValueKind(kind=Kind.JSON)

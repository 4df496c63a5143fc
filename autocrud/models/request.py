# autocrud/models/request.py
"""Operation request and result models."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, Field, field_validator

from autocrud.models.schema import ColumnEntry, EntityKind


class FilterOperator(str, Enum):
    """Comparison operators accepted in filters."""

    EQ = "eq"
    NE = "ne"
    LT = "lt"
    LTE = "lte"
    GT = "gt"
    GTE = "gte"
    LIKE = "like"
    IN = "in"
    IS_NULL = "is_null"

    @classmethod
    def parse(cls, value: "str | FilterOperator") -> "FilterOperator":
        if isinstance(value, FilterOperator):
            return value
        return cls(value.strip().lower().replace("-", "_"))


class SortDirection(str, Enum):
    """Sort direction."""

    ASC = "asc"
    DESC = "desc"


class Filter(BaseModel):
    """A single column comparison."""

    column: str
    op: FilterOperator = FilterOperator.EQ
    value: Any = None

    @field_validator("op", mode="before")
    @classmethod
    def coerce_op(cls, value: Any) -> Any:
        return FilterOperator.parse(value) if isinstance(value, str) else value


class SortKey(BaseModel):
    """One ORDER BY key."""

    column: str
    direction: SortDirection = SortDirection.ASC


class EntityRef(BaseModel):
    """Reference to an entity in the schema graph."""

    schema_name: str
    name: str
    kind: Optional[EntityKind] = None

    def __str__(self) -> str:
        return f"{self.schema_name}.{self.name}"


def parse_filters(raw: Union[dict[str, Any], list[Any], None]) -> list[Filter]:
    """Parse filters from their nested mapping form.

    ``{"age": {"gt": 18}, "email": "a@b.com"}`` becomes a ``gt`` filter on
    ``age`` and an ``eq`` filter on ``email``. Lists of filters (or dicts
    shaped like :class:`Filter`) are passed through.

    Args:
        raw: Filters as a mapping or a list.

    Returns:
        A list of filters.
    """
    if not raw:
        return []
    if isinstance(raw, list):
        return [f if isinstance(f, Filter) else Filter.model_validate(f) for f in raw]

    filters = []
    for column, condition in raw.items():
        if isinstance(condition, dict):
            for op, value in condition.items():
                filters.append(Filter(column=column, op=FilterOperator.parse(op), value=value))
        else:
            filters.append(Filter(column=column, op=FilterOperator.EQ, value=condition))
    return filters


def parse_sort(raw: Union[str, list[Any], None]) -> list[SortKey]:
    """Parse sort keys.

    Accepts ``"email,-age"`` (a leading ``-`` means descending), a list of
    such strings, ``(column, direction)`` pairs or :class:`SortKey` objects.
    """
    if not raw:
        return []
    if isinstance(raw, str):
        raw = [part.strip() for part in raw.split(",") if part.strip()]

    keys = []
    for item in raw:
        if isinstance(item, SortKey):
            keys.append(item)
        elif isinstance(item, str):
            if item.startswith("-"):
                keys.append(SortKey(column=item[1:], direction=SortDirection.DESC))
            else:
                keys.append(SortKey(column=item.lstrip("+")))
        elif isinstance(item, (tuple, list)):
            column, direction = item
            keys.append(SortKey(column=column, direction=SortDirection(str(direction).lower())))
        else:
            keys.append(SortKey.model_validate(item))
    return keys


class _FilteredRequest(BaseModel):
    filters: list[Filter] = Field(default_factory=list)

    @field_validator("filters", mode="before")
    @classmethod
    def coerce_filters(cls, value: Any) -> Any:
        return parse_filters(value)


class ReadRequest(_FilteredRequest):
    """Read rows from a table or view."""

    kind: Literal["read"] = "read"
    sort: list[SortKey] = Field(default_factory=list)
    limit: Optional[int] = Field(None, description="Maximum rows to return")
    offset: int = Field(0, description="Rows to skip")

    @field_validator("sort", mode="before")
    @classmethod
    def coerce_sort(cls, value: Any) -> Any:
        return parse_sort(value)


class CreateRequest(BaseModel):
    """Insert one row."""

    kind: Literal["create"] = "create"
    values: dict[str, Any] = Field(default_factory=dict)


class UpdateRequest(_FilteredRequest):
    """Update rows identified by a key."""

    kind: Literal["update"] = "update"
    values: dict[str, Any] = Field(default_factory=dict)


class DeleteRequest(_FilteredRequest):
    """Delete rows identified by a key."""

    kind: Literal["delete"] = "delete"


class InvokeRequest(BaseModel):
    """Call a function or procedure."""

    kind: Literal["invoke"] = "invoke"
    args: Union[list[Any], dict[str, Any]] = Field(default_factory=list)


OperationRequest = Annotated[
    Union[ReadRequest, CreateRequest, UpdateRequest, DeleteRequest, InvokeRequest],
    Field(discriminator="kind"),
]


@dataclass(frozen=True)
class ReadBackPlan:
    """Follow-up read for backends without a returning clause.

    ``key_values`` holds primary-key values supplied by the caller; when it
    is empty ``key_column`` is looked up by the backend's last inserted row id.
    """
    key_values: dict[str, Any] = field(default_factory=dict)
    key_column: Optional[str] = None


@dataclass(frozen=True)
class Statement:
    """A synthesized, parameterized statement."""
    sql: str
    params: tuple[Any, ...] = ()
    columns: tuple[ColumnEntry, ...] = ()
    returns_rows: bool = True
    read_back: Optional[ReadBackPlan] = None


class RowSet(BaseModel):
    """Decoded result of one operation."""

    columns: list[str] = Field(default_factory=list)
    rows: list[dict[str, Any]] = Field(default_factory=list)
    affected_rows: Optional[int] = None
    last_row_id: Optional[int] = None

    @property
    def row_count(self) -> int:
        return len(self.rows)

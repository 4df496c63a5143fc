"""Statement dialects: per-backend SQL rendering capabilities.

Each backend is a plain value of :class:`Dialect` rather than a subclass,
so quirks such as identifier quoting, placeholder syntax and returning
clause support stay declared in one place per backend.
"""

from dataclasses import dataclass
from typing import Optional

import aiosqlite
from sqlglot import exp

from autocrud.models.database import BackendKind
from autocrud.utils.exceptions import UnsupportedBackendError


@dataclass(frozen=True)
class Dialect:
    """SQL rendering capabilities of one backend."""
    backend: BackendKind
    sqlglot_dialect: str
    placeholder_style: str  # "numeric" ($1), "format" (%s) or "qmark" (?)
    supports_returning: bool
    supports_routines: bool
    default_values_sql: str
    # Placeholder expression for an OUT argument of a procedure call
    out_argument: Optional[str] = None

    def quote(self, identifier: str) -> str:
        """Quote an identifier, escaping embedded quote characters."""
        return exp.to_identifier(identifier, quoted=True).sql(dialect=self.sqlglot_dialect)

    def qualify(self, schema: str, name: str) -> str:
        """Render a schema-qualified object name."""
        return f"{self.quote(schema)}.{self.quote(name)}"

    def placeholder(self, position: int) -> str:
        """Render the placeholder for the 1-based parameter ``position``."""
        if self.placeholder_style == "numeric":
            return f"${position}"
        if self.placeholder_style == "format":
            return "%s"
        return "?"


POSTGRES_DIALECT = Dialect(
    backend=BackendKind.POSTGRES,
    sqlglot_dialect="postgres",
    placeholder_style="numeric",
    supports_returning=True,
    supports_routines=True,
    default_values_sql="DEFAULT VALUES",
    out_argument="NULL",
)

MYSQL_DIALECT = Dialect(
    backend=BackendKind.MYSQL,
    sqlglot_dialect="mysql",
    placeholder_style="format",
    supports_returning=False,
    supports_routines=True,
    default_values_sql="() VALUES ()",
    out_argument="@autocrud_out",
)

SQLITE_DIALECT = Dialect(
    backend=BackendKind.SQLITE,
    sqlglot_dialect="sqlite",
    placeholder_style="qmark",
    # RETURNING arrived in SQLite 3.35
    supports_returning=aiosqlite.sqlite_version_info >= (3, 35, 0),
    supports_routines=False,
    default_values_sql="DEFAULT VALUES",
)

_DIALECTS: dict[BackendKind, Dialect] = {
    BackendKind.POSTGRES: POSTGRES_DIALECT,
    BackendKind.MYSQL: MYSQL_DIALECT,
    BackendKind.SQLITE: SQLITE_DIALECT,
}


def get_dialect(backend: BackendKind) -> Dialect:
    """Get the dialect registered for a backend.

    Raises:
        UnsupportedBackendError: If no dialect is registered.
    """
    try:
        return _DIALECTS[backend]
    except KeyError:
        raise UnsupportedBackendError(str(backend)) from None

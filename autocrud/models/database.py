# autocrud/models/database.py
"""Database-related data models."""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from autocrud.utils.exceptions import ConfigurationError


class BackendKind(str, Enum):
    """Supported database backends."""

    POSTGRES = "postgres"
    MYSQL = "mysql"
    SQLITE = "sqlite"

    @classmethod
    def parse(cls, value: "str | BackendKind") -> "BackendKind":
        """Parse a backend name, accepting common aliases.

        Args:
            value: Backend name such as "postgresql" or "mariadb".

        Returns:
            The matching backend kind.

        Raises:
            ConfigurationError: If the name is not recognised.
        """
        if isinstance(value, BackendKind):
            return value
        aliases = {
            "postgres": cls.POSTGRES,
            "postgresql": cls.POSTGRES,
            "pg": cls.POSTGRES,
            "mysql": cls.MYSQL,
            "mariadb": cls.MYSQL,
            "sqlite": cls.SQLITE,
            "sqlite3": cls.SQLITE,
        }
        try:
            return aliases[value.strip().lower()]
        except KeyError:
            raise ConfigurationError(f"Unsupported database type: {value}") from None

    @property
    def display_name(self) -> str:
        return {
            BackendKind.POSTGRES: "PostgreSQL",
            BackendKind.MYSQL: "MySQL/MariaDB",
            BackendKind.SQLITE: "SQLite",
        }[self]


class PoolOptions(BaseModel):
    """Connection pool sizing options."""

    model_config = ConfigDict(frozen=True)

    min_size: int = Field(default=1, ge=0)
    max_size: int = Field(default=10, ge=1)
    command_timeout: float = Field(default=30.0, gt=0)


class ConnectionDescriptor(BaseModel):
    """Immutable description of how to reach one database."""

    model_config = ConfigDict(frozen=True)

    backend: BackendKind = BackendKind.POSTGRES
    host: Optional[str] = None
    port: Optional[int] = None
    user: Optional[str] = None
    password: Optional[str] = Field(default=None, repr=False)
    database: Optional[str] = None
    dsn: Optional[str] = Field(default=None, repr=False)
    sqlite_path: Optional[str] = None
    ssl: bool = False
    pool: PoolOptions = Field(default_factory=PoolOptions)

    def build_dsn(self) -> str:
        """Build the connection string.

        Returns:
            The explicit DSN if one was given, otherwise one assembled
            from the individual parts.

        Raises:
            ConfigurationError: If a part required by the backend is missing.
        """
        if self.dsn:
            return self.dsn

        if self.backend == BackendKind.SQLITE:
            if self.sqlite_path is None:
                raise ConfigurationError("Missing sqlite_path for SQLite")
            return self.sqlite_path or ":memory:"

        scheme = "postgresql" if self.backend == BackendKind.POSTGRES else "mysql"
        label = self.backend.display_name
        for attr in ("user", "host", "port", "database"):
            if getattr(self, attr) in (None, ""):
                raise ConfigurationError(f"Missing {attr} for {label}")
        auth = self.user if not self.password else f"{self.user}:{self.password}"
        return f"{scheme}://{auth}@{self.host}:{self.port}/{self.database}"

    @property
    def sqlite_database(self) -> str:
        """Filesystem path (or ``:memory:``) for SQLite connections."""
        if self.dsn:
            return self.dsn.removeprefix("sqlite:///").removeprefix("sqlite:")
        return self.sqlite_path or ":memory:"


class ConnectionStatus(BaseModel):
    """Outcome of a connectivity check against one database."""

    backend: BackendKind
    database: str
    connected: bool
    latency_ms: Optional[float] = None
    error: Optional[str] = None

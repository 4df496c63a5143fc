# autocrud/config.py
"""Configuration management for autocrud."""

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field
from typing import Optional, List
import json

from autocrud.models.database import BackendKind, ConnectionDescriptor, PoolOptions


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(env_prefix="AUTOCRUD_")

    # Connection configuration
    backend: str = "postgres"
    dsn: Optional[str] = None
    host: str = "localhost"
    port: Optional[int] = None
    database: str = "postgres"
    user: str = "postgres"
    password: str = ""
    ssl: bool = False
    sqlite_path: str = ""

    # Pool configuration
    pool_min_size: int = 1
    pool_max_size: int = 10
    command_timeout: float = 30.0

    # Discovery configuration
    schemas: str = Field(
        default='["public"]',
        description="JSON array of schema names to introspect"
    )
    include_system_schemas: bool = False
    schema_cache_ttl: int = 3600

    # Query configuration
    max_result_rows: int = 1000

    # Logging
    log_level: str = "INFO"

    def get_backend(self) -> BackendKind:
        """Get the configured backend kind.

        Returns:
            The parsed backend kind.
        """
        return BackendKind.parse(self.backend)

    def get_port(self) -> Optional[int]:
        """Get the port, falling back to the backend's default.

        Returns:
            The port number, or None for SQLite.
        """
        if self.port is not None:
            return self.port
        return {
            BackendKind.POSTGRES: 5432,
            BackendKind.MYSQL: 3306,
        }.get(self.get_backend())

    def get_dsn(self) -> str:
        """Get the database connection string.

        Returns:
            The DSN string for connecting to the database.
        """
        return self.to_descriptor().build_dsn()

    def get_schemas(self) -> List[str]:
        """Parse schema names from JSON.

        A plain comma separated list is accepted as well.

        Returns:
            List of schema names.
        """
        try:
            parsed = json.loads(self.schemas)
        except json.JSONDecodeError:
            return [s.strip() for s in self.schemas.split(",") if s.strip()]
        if isinstance(parsed, str):
            return [parsed]
        return [str(s) for s in parsed]

    def to_descriptor(self) -> ConnectionDescriptor:
        """Build the immutable connection descriptor.

        Returns:
            The connection descriptor for the configured database.
        """
        return ConnectionDescriptor(
            backend=self.get_backend(),
            host=self.host,
            port=self.get_port(),
            user=self.user,
            password=self.password or None,
            database=self.database,
            dsn=self.dsn if self.dsn and not self.dsn.startswith("${") else None,
            sqlite_path=self.sqlite_path,
            ssl=self.ssl,
            pool=PoolOptions(
                min_size=self.pool_min_size,
                max_size=self.pool_max_size,
                command_timeout=self.command_timeout
            )
        )

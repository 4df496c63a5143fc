"""Metadata cache holding the published schema snapshot."""

import asyncio
import logging
import time
from datetime import datetime, timedelta
from typing import Any, Iterable, Optional

from autocrud.models.request import EntityRef
from autocrud.models.schema import (
    Entity,
    EnumEntry,
    FunctionEntry,
    ProcedureEntry,
    SchemaEntry,
    SchemaGraph,
    TableEntry,
    ViewEntry,
)
from autocrud.services.catalog import CatalogReader
from autocrud.services.schema_builder import build_schema_graph
from autocrud.services.type_mapping import TypeMappingTable, get_type_mapping_table
from autocrud.utils.exceptions import SchemaNotLoadedError, UnknownEntityError

logger = logging.getLogger("metadata-cache")


class MetadataCache:
    """Owns the current :class:`SchemaGraph` and replaces it wholesale.

    Readers call :meth:`current`, which never awaits. A refresh discovers
    and builds a complete new graph before publishing it with a single
    attribute assignment, so a reader sees either the old or the new
    snapshot. Concurrent refreshes share the task already in flight.
    """

    def __init__(
        self,
        reader: CatalogReader,
        schema_names: Optional[Iterable[str]] = None,
        type_table: Optional[TypeMappingTable] = None,
        include_system: bool = False,
        cache_ttl: int = 3600
    ):
        """Initialize the cache.

        Args:
            reader: Catalog reader used by refreshes.
            schema_names: Schemas to introspect; all user schemas when empty.
            type_table: Type mapping table passed to the schema builder.
            include_system: Keep system schemas and internal tables.
            cache_ttl: Seconds before a snapshot counts as stale; 0 disables expiry.
        """
        self.reader = reader
        self.schema_names = list(schema_names or [])
        self.type_table = type_table or get_type_mapping_table()
        self.include_system = include_system
        self.cache_ttl = cache_ttl

        self._snapshot: Optional[SchemaGraph] = None
        self._refreshed_at: Optional[datetime] = None
        self._refresh_task: Optional[asyncio.Task] = None
        # Bumped by invalidate(); a snapshot is fresh only for the
        # generation its refresh started under.
        self._generation = 0
        self._snapshot_generation = -1
        self.last_error: Optional[str] = None

    # ------------------------------------------------------------------
    # Snapshot access
    # ------------------------------------------------------------------

    def current(self) -> SchemaGraph:
        """Return the published snapshot.

        Raises:
            SchemaNotLoadedError: If no refresh has succeeded yet.
        """
        snapshot = self._snapshot
        if snapshot is None:
            raise SchemaNotLoadedError()
        return snapshot

    @property
    def is_loaded(self) -> bool:
        return self._snapshot is not None

    @property
    def is_stale(self) -> bool:
        """True when invalidated, never loaded, or older than the TTL."""
        if self._snapshot is None or self._refreshed_at is None:
            return True
        if self._snapshot_generation != self._generation:
            return True
        if self.cache_ttl <= 0:
            return False
        return datetime.utcnow() - self._refreshed_at >= timedelta(seconds=self.cache_ttl)

    def invalidate(self) -> None:
        """Mark the snapshot stale; it keeps serving until a refresh succeeds."""
        self._generation += 1
        logger.info("Schema cache invalidated")

    # ------------------------------------------------------------------
    # Refresh
    # ------------------------------------------------------------------

    async def refresh(self, reader: Optional[CatalogReader] = None) -> SchemaGraph:
        """Discover, build and publish a new snapshot.

        A call made while a refresh is in flight joins it instead of
        starting another; ``reader`` is then ignored.

        Args:
            reader: Catalog reader to use instead of the configured one.

        Returns:
            The newly published snapshot.

        Raises:
            DiscoveryError: If discovery fails; the old snapshot keeps serving.
            BuildError: If the new graph fails validation.
        """
        task = self._refresh_task
        if task is None or task.done():
            task = asyncio.ensure_future(self._refresh(reader or self.reader))
            self._refresh_task = task
        else:
            logger.debug("Joining schema refresh already in flight")
        # A cancelled caller must not cancel the refresh other callers share
        return await asyncio.shield(task)

    async def refresh_if_stale(self) -> SchemaGraph:
        """Refresh only when the snapshot is stale; otherwise return it."""
        if self.is_stale:
            return await self.refresh()
        return self.current()

    async def _refresh(self, reader: CatalogReader) -> SchemaGraph:
        generation = self._generation
        start_time = time.perf_counter()
        try:
            raw = await reader.discover(self.schema_names, self.include_system)
            graph = build_schema_graph(raw, self.type_table)
        except Exception as e:
            self.last_error = str(e)
            if self._snapshot is not None:
                logger.warning("Schema refresh failed, serving previous snapshot: %s", e)
            else:
                logger.error("Initial schema load failed: %s", e)
            raise

        self._snapshot = graph
        self._refreshed_at = datetime.utcnow()
        self._snapshot_generation = generation
        self.last_error = None
        logger.info(
            "Schema snapshot published in %.1f ms (%d schemas)",
            (time.perf_counter() - start_time) * 1000, len(graph.schemas)
        )
        return graph

    # ------------------------------------------------------------------
    # Metadata surface
    # ------------------------------------------------------------------

    def _schemas(self, schema_name: Optional[str]) -> list[SchemaEntry]:
        graph = self.current()
        if schema_name is None:
            return list(graph.schemas)
        entry = graph.schema(schema_name)
        if entry is None:
            raise UnknownEntityError(schema_name)
        return [entry]

    def list_schemas(self) -> list[str]:
        return self.current().schema_names

    def list_tables(self, schema_name: Optional[str] = None) -> list[TableEntry]:
        return [t for s in self._schemas(schema_name) for t in s.tables.values()]

    def list_views(self, schema_name: Optional[str] = None) -> list[ViewEntry]:
        return [v for s in self._schemas(schema_name) for v in s.views.values()]

    def list_functions(self, schema_name: Optional[str] = None) -> list[FunctionEntry]:
        return [f for s in self._schemas(schema_name) for f in s.functions.values()]

    def list_procedures(self, schema_name: Optional[str] = None) -> list[ProcedureEntry]:
        return [p for s in self._schemas(schema_name) for p in s.procedures.values()]

    def list_enums(self, schema_name: Optional[str] = None) -> list[EnumEntry]:
        return [e for s in self._schemas(schema_name) for e in s.enums.values()]

    def get_entity(self, ref: EntityRef) -> Entity:
        """Resolve an entity reference against the current snapshot.

        Args:
            ref: Schema, name and optional kind of the entity.

        Returns:
            The table, view, function or procedure entry.

        Raises:
            UnknownEntityError: If the snapshot has no such entity.
        """
        schema = self.current().schema(ref.schema_name)
        entity = schema.find(ref.name, ref.kind) if schema is not None else None
        if entity is None:
            raise UnknownEntityError(str(ref))
        return entity

    def status(self) -> dict[str, Any]:
        """Cache health: load state, staleness, age and entity counts."""
        snapshot = self._snapshot
        status: dict[str, Any] = {
            "loaded": snapshot is not None,
            "stale": self.is_stale,
            "refreshing": self._refresh_task is not None and not self._refresh_task.done(),
            "refreshed_at": self._refreshed_at.isoformat() if self._refreshed_at else None,
            "cache_ttl": self.cache_ttl,
            "last_error": self.last_error,
        }
        if snapshot is not None:
            status.update({
                "backend": snapshot.backend.value,
                "server_version": snapshot.server_version,
                "schemas": snapshot.schema_names,
                "counts": snapshot.summary(),
                "diagnostics": len(snapshot.diagnostics),
            })
        return status

# autocrud/main.py
"""Main entry point: discover a database and print what it exposes."""

import asyncio
import json
import logging
from contextlib import asynccontextmanager

from autocrud.config import Settings
from autocrud.models.schema import SchemaGraph
from autocrud.services.cache import MetadataCache
from autocrud.services.catalog import get_catalog_reader
from autocrud.services.database import create_pool, close_pool, test_connection
from autocrud.services.dialects import get_dialect
from autocrud.services.gateway import ExecutionGateway
from autocrud.services.operations import OperationService
from autocrud.services.synthesizer import QuerySynthesizer
from autocrud.services.type_mapping import get_type_mapping_table
from autocrud.utils.exceptions import CatalogConnectionError


logger = logging.getLogger("autocrud")


@asynccontextmanager
async def app_lifespan(settings: Settings):
    """Application lifespan manager for startup and shutdown.

    Args:
        settings: Application settings.

    Yields:
        Dictionary containing initialized services.
    """
    descriptor = settings.to_descriptor()
    pool = await create_pool(descriptor)

    try:
        status = await test_connection(pool)
        if not status.connected:
            raise CatalogConnectionError(f"Database is not reachable: {status.error}")
        logger.info(
            "Connected to %s database '%s' in %.1f ms",
            descriptor.backend.display_name, status.database, status.latency_ms
        )

        type_table = get_type_mapping_table()
        cache = MetadataCache(
            reader=get_catalog_reader(pool),
            schema_names=settings.get_schemas(),
            type_table=type_table,
            include_system=settings.include_system_schemas,
            cache_ttl=settings.schema_cache_ttl
        )
        await cache.refresh()

        synthesizer = QuerySynthesizer(
            dialect=get_dialect(descriptor.backend),
            type_table=type_table,
            max_limit=settings.max_result_rows
        )
        gateway = ExecutionGateway(pool=pool, type_table=type_table)

        yield {
            "pool": pool,
            "connection": status,
            "cache": cache,
            "synthesizer": synthesizer,
            "gateway": gateway,
            "operations": OperationService(cache, synthesizer, gateway),
            "settings": settings
        }
    finally:
        await close_pool(pool)


def format_summary(graph: SchemaGraph) -> str:
    """Render per-schema entity counts as a text table.

    Args:
        graph: The schema graph to summarize.

    Returns:
        The formatted summary.
    """
    headers = ["Schema", "Tables", "Views", "Functions", "Procedures", "Enums"]
    rows = [
        [name, *(str(counts[key]) for key in ("tables", "views", "functions", "procedures", "enums"))]
        for name, counts in graph.summary().items()
    ]
    widths = [max(len(row[i]) for row in [headers, *rows]) for i in range(len(headers))]

    def render(row: list[str]) -> str:
        return " | ".join(cell.ljust(width) for cell, width in zip(row, widths))

    separator = "-+-".join("-" * width for width in widths)
    lines = [render(headers), separator]
    lines.extend(render(row) for row in rows[:-1])
    lines.append(separator)
    lines.append(render(rows[-1]))

    if graph.server_version:
        lines.append(f"Server: {graph.server_version}")
    if graph.diagnostics:
        lines.append(f"Diagnostics ({len(graph.diagnostics)}):")
        lines.extend(f"  - {message}" for message in graph.diagnostics)
    return "\n".join(lines)


async def run(settings: Settings, as_json: bool = False) -> None:
    """Discover the configured schemas and print the result.

    Args:
        settings: Application settings.
        as_json: Print the full graph as JSON instead of the summary.
    """
    async with app_lifespan(settings) as services:
        graph = services["cache"].current()
        if as_json:
            print(graph.model_dump_json(indent=2))
        else:
            print(format_summary(graph))


def main() -> None:
    """Main entry point for the command line."""
    import argparse

    parser = argparse.ArgumentParser(description="Discover a database schema for autocrud")
    parser.add_argument(
        "--backend",
        type=str,
        help="Database backend: postgres, mysql or sqlite"
    )
    parser.add_argument(
        "--dsn",
        type=str,
        help="Database DSN"
    )
    parser.add_argument(
        "--sqlite-path",
        type=str,
        help="SQLite database file"
    )
    parser.add_argument(
        "--schema",
        action="append",
        dest="schemas",
        help="Schema to introspect; repeatable"
    )
    parser.add_argument(
        "--include-system",
        action="store_true",
        help="Include system schemas and internal tables"
    )
    parser.add_argument(
        "--json",
        action="store_true",
        help="Print the full schema graph as JSON"
    )

    args = parser.parse_args()

    # Load settings
    settings = Settings()
    if args.backend:
        settings.backend = args.backend
    if args.dsn:
        settings.dsn = args.dsn
    if args.sqlite_path:
        settings.sqlite_path = args.sqlite_path
    if args.schemas:
        settings.schemas = json.dumps(args.schemas)
    if args.include_system:
        settings.include_system_schemas = True

    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s - %(message)s",
    )
    logger.info("Starting schema discovery (%s)", settings.get_backend().display_name)

    asyncio.run(run(settings, as_json=args.json))


if __name__ == "__main__":
    main()

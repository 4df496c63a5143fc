"""Execution gateway: runs synthesized statements and decodes their rows."""

import logging
import time
from typing import Any, Optional

from autocrud.models.request import RowSet, Statement
from autocrud.models.schema import ColumnEntry
from autocrud.services.database import DatabasePool, ExecuteResult
from autocrud.services.type_mapping import TypeMappingTable, get_type_mapping_table

logger = logging.getLogger("execution-gateway")


class ExecutionGateway:
    """Executes statements through the pool.

    Driver exceptions are translated by the pool into the execution error
    taxonomy. Nothing is retried here.
    """

    def __init__(self, pool: DatabasePool, type_table: Optional[TypeMappingTable] = None):
        """Initialize the gateway.

        Args:
            pool: The database connection pool.
            type_table: Codec used to decode result values.
        """
        self.pool = pool
        self.type_table = type_table or get_type_mapping_table()

    async def execute(self, statement: Statement) -> RowSet:
        """Run one statement.

        Args:
            statement: The synthesized statement.

        Returns:
            Decoded rows keyed by column name in declared column order.

        Raises:
            ExecutionError: Translated backend error.
            CodecError: A stored value cannot be read as its declared kind.
        """
        start_time = time.perf_counter()
        result: Optional[ExecuteResult] = None
        raw_rows: list[dict[str, Any]] = []
        try:
            if statement.returns_rows:
                raw_rows = await self.pool.fetch(statement.sql, statement.params)
            else:
                result = await self.pool.execute(statement.sql, statement.params)
        except Exception as e:
            error = self.pool.translate_error(e)
            logger.warning("Statement failed [%s]: %s", error.code.value, error.message)
            if error is e:
                raise
            raise error from e

        elapsed_ms = (time.perf_counter() - start_time) * 1000
        logger.debug("Executed in %.2f ms: %s", elapsed_ms, statement.sql)

        rows = [self._decode_row(statement.columns, raw) for raw in raw_rows]
        if statement.columns:
            columns = [c.name for c in statement.columns]
        else:
            columns = list(raw_rows[0].keys()) if raw_rows else []

        return RowSet(
            columns=columns,
            rows=rows,
            affected_rows=result.rowcount if result is not None else None,
            last_row_id=result.last_row_id if result is not None else None
        )

    def _decode_row(
        self,
        columns: tuple[ColumnEntry, ...],
        raw: dict[str, Any]
    ) -> dict[str, Any]:
        if not columns:
            return {name: self.type_table.decode(None, value) for name, value in raw.items()}
        row = {c.name: self.type_table.decode(c.value_kind, raw.get(c.name)) for c in columns}
        for name, value in raw.items():
            if name not in row:
                row[name] = self.type_table.decode(None, value)
        return row

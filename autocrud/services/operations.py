"""Operation service: the entry point transports call per request."""

import logging
from typing import Any, Union

from pydantic import TypeAdapter, ValidationError

from autocrud.models.request import (
    CreateRequest,
    DeleteRequest,
    EntityRef,
    OperationRequest,
    RowSet,
    UpdateRequest,
)
from autocrud.models.schema import TableEntry
from autocrud.services.cache import MetadataCache
from autocrud.services.gateway import ExecutionGateway
from autocrud.services.synthesizer import QuerySynthesizer
from autocrud.utils.exceptions import InvalidRequestError

logger = logging.getLogger("operation-service")

_REQUEST_ADAPTER: TypeAdapter = TypeAdapter(OperationRequest)


def parse_entity_ref(ref: Union[EntityRef, str]) -> EntityRef:
    """Accept an :class:`EntityRef` or a ``"schema.name"`` string."""
    if isinstance(ref, EntityRef):
        return ref
    schema_name, sep, name = ref.partition(".")
    if not sep or not schema_name or not name:
        raise InvalidRequestError(f"Entity reference must look like 'schema.name', got '{ref}'")
    return EntityRef(schema_name=schema_name, name=name)


def parse_request(request: Any) -> Any:
    """Validate a mapping into one of the operation request models."""
    if isinstance(request, dict):
        try:
            return _REQUEST_ADAPTER.validate_python(request)
        except ValidationError as e:
            raise InvalidRequestError(f"Invalid operation request: {e}") from e
    return request


class OperationService:
    """Resolves, synthesizes and executes operation requests."""

    def __init__(
        self,
        cache: MetadataCache,
        synthesizer: QuerySynthesizer,
        gateway: ExecutionGateway
    ):
        self.cache = cache
        self.synthesizer = synthesizer
        self.gateway = gateway

    async def execute_operation(
        self,
        entity_ref: Union[EntityRef, str],
        request: Any
    ) -> RowSet:
        """Run one operation against the current schema snapshot.

        Args:
            entity_ref: Target entity.
            request: An operation request model or its mapping form.

        Returns:
            The decoded result rows.

        Raises:
            SynthesisError: The request was rejected; nothing was executed.
            CodecError: A value could not be converted.
            ExecutionError: The database reported an error.
        """
        ref = parse_entity_ref(entity_ref)
        request = parse_request(request)
        entity = self.cache.get_entity(ref)
        statement = self.synthesizer.synthesize(entity, request)

        result = await self.gateway.execute(statement)
        if isinstance(request, (CreateRequest, UpdateRequest, DeleteRequest)) and statement.returns_rows:
            result.affected_rows = len(result.rows)

        if statement.read_back is None or not isinstance(entity, TableEntry):
            return result

        # Not atomic: a concurrent delete can remove the row before it is read
        follow_up = self.synthesizer.read_back(entity, statement.read_back, result.last_row_id)
        if follow_up is None:
            logger.debug("Created row in %s cannot be read back", entity.qualified_name)
            return result
        fetched = await self.gateway.execute(follow_up)
        return RowSet(
            columns=fetched.columns,
            rows=fetched.rows,
            affected_rows=result.affected_rows,
            last_row_id=result.last_row_id
        )

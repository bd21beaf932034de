"""
Batch execution for the Phoenix SDK.

Two flavours share one outcome model:

- ``prepare_and_execute_batch``: several SQL strings on a created statement
- ``execute_batch``: many parameter sets on a prepared statement

Outcomes are correlated to inputs by position. The server's update counts use
the JDBC markers ``-2`` (success, count unknown) and ``-3`` (item failed); a
count list shorter than the input marks the remaining items as not executed.
Items executed before a failure are not rolled back by the batch itself.

A real query server usually reports a failing item by failing the whole call:
the JDBC driver raises ``BatchUpdateException`` and the server answers with an
error envelope, which surfaces as ``ServerError``. Per-item ``-3`` markers only
appear when the server passes partial counts through, so callers must handle
both forms.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Iterable, Sequence

from .connection.base import BaseTransport
from .connection.options import RequestOptions
from .exceptions import ProtocolError, SequencingError, ValidationError
from .execution import bind_parameters, check_arity
from .protocol.rpc import AvaticaRequest, ResponseType
from .protocol.values import TypedValue
from .statement import StatementManager, StatementState
from .types import BatchItemStatus, BatchOutcome, ExecuteBatchResponse

logger = logging.getLogger(__name__)

SUCCESS_NO_INFO = -2
EXECUTE_FAILED = -3


@dataclass
class UpdateBatch:
    """One parameter set of an ``execute_batch`` call."""

    parameter_values: list[TypedValue] = field(default_factory=list)

    @classmethod
    def of(cls, *values: Any) -> "UpdateBatch":
        return cls(parameter_values=bind_parameters(values))


def build_outcomes(update_counts: Sequence[int], item_count: int) -> list[BatchOutcome]:
    """
    Map server update counts to one outcome per input item.

    Raises:
        ProtocolError: If the server reports more counts than items were sent
    """
    if len(update_counts) > item_count:
        raise ProtocolError(f"Server returned {len(update_counts)} update counts for {item_count} batch item(s)")
    outcomes = []
    for index in range(item_count):
        if index >= len(update_counts):
            outcomes.append(BatchOutcome(index, BatchItemStatus.NOT_EXECUTED))
            continue
        count = update_counts[index]
        if count == EXECUTE_FAILED:
            outcomes.append(BatchOutcome(index, BatchItemStatus.FAILED))
        elif count < 0:
            outcomes.append(BatchOutcome(index, BatchItemStatus.SUCCEEDED))
        else:
            outcomes.append(BatchOutcome(index, BatchItemStatus.SUCCEEDED, count))
    return outcomes


class BatchCoordinator:
    """Runs statement and parameter batches and reports per-item outcomes."""

    def __init__(self, transport: BaseTransport, statements: StatementManager):
        self._transport = transport
        self._statements = statements

    async def prepare_and_execute_batch(
        self,
        connection_id: str,
        statement_id: int,
        sql_commands: Iterable[str],
        options: RequestOptions | None = None,
    ) -> ExecuteBatchResponse:
        """
        Execute several SQL strings in one request.

        An empty batch returns an empty result without contacting the server.

        Raises:
            SequencingError: If the statement is unusable or prepared
            ServerError: If the server rejects the whole batch
        """
        state = self._statements.require(connection_id, statement_id, "prepareAndExecuteBatch")
        if state.prepared:
            raise SequencingError(
                f"Statement {statement_id} is prepared; use execute_batch()",
                connection_id=connection_id,
                statement_id=statement_id,
                operation="prepareAndExecuteBatch",
            )
        commands = list(sql_commands)
        if any(not isinstance(c, str) for c in commands):
            raise ValidationError("Every batch command must be a SQL string")
        if not commands:
            return ExecuteBatchResponse(connection_id=connection_id, statement_id=statement_id)

        body = await self._transport.call(
            AvaticaRequest.prepare_and_execute_batch(connection_id, statement_id, commands),
            options,
            expect=ResponseType.EXECUTE_BATCH,
        )
        return self._finish(state, body, len(commands), "prepareAndExecuteBatch")

    async def execute_batch(
        self,
        connection_id: str,
        statement_id: int,
        updates: Iterable[UpdateBatch | Sequence[Any]],
        options: RequestOptions | None = None,
    ) -> ExecuteBatchResponse:
        """
        Execute a prepared statement once per parameter set.

        Each item may be an ``UpdateBatch`` or a plain sequence of values.

        Raises:
            SequencingError: If the statement is unusable or not prepared
            ValidationError: If a parameter set does not match the placeholders
            ServerError: If the server rejects the whole batch
        """
        state = self._statements.require(connection_id, statement_id, "executeBatch")
        if not state.prepared:
            raise SequencingError(
                f"Statement {statement_id} was not prepared; use prepare_and_execute_batch()",
                connection_id=connection_id,
                statement_id=statement_id,
                operation="executeBatch",
            )
        parameter_sets: list[list[TypedValue]] = []
        for position, update in enumerate(updates):
            values = update.parameter_values if isinstance(update, UpdateBatch) else bind_parameters(update)
            check_arity(state, values, position)
            parameter_sets.append(values)
        if not parameter_sets:
            return ExecuteBatchResponse(connection_id=connection_id, statement_id=statement_id)

        body = await self._transport.call(
            AvaticaRequest.execute_batch(connection_id, statement_id, parameter_sets),
            options,
            expect=ResponseType.EXECUTE_BATCH,
        )
        return self._finish(state, body, len(parameter_sets), "executeBatch")

    def _finish(
        self, state: StatementState, body: dict[str, Any], item_count: int, operation: str
    ) -> ExecuteBatchResponse:
        response = ExecuteBatchResponse.from_dict(body)
        if response.missing_statement:
            raise SequencingError(
                f"Statement {state.handle.id} is missing on the server",
                connection_id=state.handle.connection_id,
                statement_id=state.handle.id,
                operation=operation,
            )
        state.discard_cursor()
        response.outcomes = build_outcomes(response.update_counts, item_count)
        failed = len(response.failed)
        if failed:
            logger.warning(
                "%s on statement %s: %d of %d item(s) did not succeed", operation, state.handle.id, failed, item_count
            )
        else:
            logger.debug("%s on statement %s: %d item(s) succeeded", operation, state.handle.id, item_count)
        return response

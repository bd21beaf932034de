"""
Statement execution for the Phoenix SDK.

Covers one-shot ``prepareAndExecute`` on a created statement and ``execute`` of
a prepared statement with bound parameters.
"""

import logging
from typing import Any, Sequence

from .connection.base import BaseTransport
from .connection.options import RequestOptions
from .exceptions import SequencingError, ValidationError
from .protocol.rpc import AvaticaRequest, ResponseType
from .protocol.values import TypedValue
from .statement import StatementManager, StatementState
from .types import ExecuteResponse, StatementHandle

logger = logging.getLogger(__name__)


def bind_parameters(values: Sequence[Any] | None) -> list[TypedValue]:
    """Convert Python values (or TypedValues) to typed parameter values."""
    if values is None:
        return []
    if isinstance(values, (str, bytes)):
        raise ValidationError("Parameter values must be a sequence, not a single string")
    return [TypedValue.of(v) for v in values]


def check_arity(state: StatementState, values: Sequence[TypedValue], position: int | None = None) -> None:
    """Raise ValidationError when a parameter set does not match the prepared placeholders."""
    signature = state.handle.signature
    if signature is None or not signature.parameters:
        return
    expected = len(signature.parameters)
    if len(values) != expected:
        where = f" in parameter set {position}" if position is not None else ""
        raise ValidationError(f"Statement {state.handle.id} expects {expected} parameter(s), got {len(values)}{where}")


class Executor:
    """Runs statements and keeps their cursor state current."""

    def __init__(self, transport: BaseTransport, statements: StatementManager):
        self._transport = transport
        self._statements = statements

    async def prepare_and_execute(
        self,
        connection_id: str,
        sql: str,
        max_row_count: int | None = None,
        statement_id: int | None = None,
        options: RequestOptions | None = None,
    ) -> ExecuteResponse:
        """
        Prepare and run SQL on a statement created with ``create_statement``.

        Args:
            connection_id: Owning connection
            sql: SQL text without placeholders
            max_row_count: Total row cap, ``None`` or negative for unlimited
            statement_id: Created statement to run on
            options: Per-call options

        Raises:
            SequencingError: If the statement is unknown, closed or prepared
            ServerError: If the SQL is rejected
        """
        if statement_id is None:
            raise ValueError("statement_id is required")
        state = self._statements.require(connection_id, statement_id, "prepareAndExecute")
        if state.prepared:
            raise SequencingError(
                f"Statement {statement_id} is prepared; use execute()",
                connection_id=connection_id,
                statement_id=statement_id,
                operation="prepareAndExecute",
            )

        body = await self._transport.call(
            AvaticaRequest.prepare_and_execute(connection_id, statement_id, sql, max_row_count),
            options,
            expect=ResponseType.EXECUTE_RESULTS,
        )
        return self._finish(state, ExecuteResponse.from_dict(body), "prepareAndExecute")

    async def execute(
        self,
        statement_handle: StatementHandle,
        parameter_values: Sequence[Any] | None = None,
        max_row_count: int | None = None,
        has_parameter_values: bool = True,
        options: RequestOptions | None = None,
    ) -> ExecuteResponse:
        """
        Run a prepared statement with bound parameters.

        Parameters may be TypedValues or plain Python values whose kind is inferred.

        Raises:
            SequencingError: If the handle is unknown, closed or not prepared
            ValidationError: If the parameters do not match the placeholders
            ServerError: If execution fails
        """
        state = self._statements.require_handle(statement_handle, "execute")
        if not state.prepared:
            raise SequencingError(
                f"Statement {statement_handle.id} was not prepared; use prepare_and_execute()",
                connection_id=statement_handle.connection_id,
                statement_id=statement_handle.id,
                operation="execute",
            )
        values = bind_parameters(parameter_values)
        if has_parameter_values:
            check_arity(state, values)

        # The server needs the signature it issued, so send the tracked handle
        body = await self._transport.call(
            AvaticaRequest.execute(state.handle.to_dict(), values, max_row_count, has_parameter_values),
            options,
            expect=ResponseType.EXECUTE_RESULTS,
        )
        return self._finish(state, ExecuteResponse.from_dict(body), "execute")

    def _finish(self, state: StatementState, response: ExecuteResponse, operation: str) -> ExecuteResponse:
        if response.missing_statement:
            raise SequencingError(
                f"Statement {state.handle.id} is missing on the server",
                connection_id=state.handle.connection_id,
                statement_id=state.handle.id,
                operation=operation,
            )
        own = [r for r in response.results if r.statement_id == state.handle.id]
        state.begin_results(own[-1] if own else response.first_result)
        logger.debug(
            "%s on statement %s returned %d result(s)", operation, state.handle.id, len(response.results)
        )
        return response

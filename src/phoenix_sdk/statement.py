"""
Statement management for the Phoenix SDK.

Statements are scoped to a connection and identified by the server-assigned id.
Each tracked statement also carries the position of its open cursor, so fetches
can be validated before they reach the server.
"""

import logging
from collections import OrderedDict
from dataclasses import dataclass
from enum import Enum

from .connection.base import BaseTransport
from .connection.options import RequestOptions
from .exceptions import ProtocolError, SequencingError
from .protocol.rpc import AvaticaRequest, ResponseType
from .session import SessionManager
from .types import Frame, ResultSetResponse, Signature, StatementHandle

logger = logging.getLogger(__name__)

# Closed statements remembered so a late close is a no-op and a late use
# reports "closed" rather than "unknown".
CLOSED_HISTORY = 1024


class StatementStatus(str, Enum):
    """Lifecycle of a statement."""

    CREATED = "CREATED"
    PREPARED = "PREPARED"
    EXECUTING = "EXECUTING"
    CLOSED = "CLOSED"


@dataclass
class StatementState:
    """
    Client-side view of one statement and its cursor.

    Attributes:
        handle: Statement identity
        prepared: True for statements created by ``prepare``
        status: Current lifecycle status
        executed: True once any execution has been issued
        cursor_signature: Signature of the open result, used to decode fetched rows
        next_offset: Offset of the next row the cursor will return
        cursor_done: True when the last result has been fully read
    """

    handle: StatementHandle
    prepared: bool = False
    status: StatementStatus = StatementStatus.CREATED
    executed: bool = False
    cursor_signature: Signature | None = None
    next_offset: int = 0
    cursor_done: bool = True

    @property
    def key(self) -> tuple[str, int]:
        return (self.handle.connection_id, self.handle.id)

    @property
    def idle_status(self) -> StatementStatus:
        return StatementStatus.PREPARED if self.prepared else StatementStatus.CREATED

    def begin_results(self, result: ResultSetResponse | None) -> None:
        """Reset the cursor after an execution returned ``result``."""
        self.executed = True
        if result is None or result.first_frame is None:
            self.cursor_signature = None
            self.next_offset = 0
            self.cursor_done = True
            self.status = self.idle_status
            return
        frame = result.first_frame
        self.cursor_signature = result.signature
        self.next_offset = frame.offset + frame.row_count
        self.cursor_done = frame.done
        self.status = self.idle_status if frame.done else StatementStatus.EXECUTING

    def advance(self, frame: Frame) -> None:
        """Move the cursor past a fetched frame."""
        self.next_offset += frame.row_count
        if frame.done:
            self.cursor_done = True
            self.status = self.idle_status

    def discard_cursor(self) -> None:
        """Drop the open result, e.g. after a batch reused the statement."""
        self.executed = True
        self.cursor_signature = None
        self.next_offset = 0
        self.cursor_done = True
        self.status = self.idle_status


class StatementManager:
    """
    Creates, prepares and closes statements.

    Statements of a connection are invalidated when the connection closes.
    Closed statements leave the live table; only the most recent
    ``closed_history`` of them are remembered.
    """

    def __init__(self, transport: BaseTransport, sessions: SessionManager, closed_history: int = CLOSED_HISTORY):
        self._transport = transport
        self._sessions = sessions
        self._statements: dict[tuple[str, int], StatementState] = {}
        self._closed: OrderedDict[tuple[str, int], StatementState] = OrderedDict()
        self._closed_history = closed_history
        sessions.on_close(self.invalidate_connection)

    def __len__(self) -> int:
        return len(self._statements)

    @property
    def closed_count(self) -> int:
        return len(self._closed)

    def get(self, connection_id: str, statement_id: int) -> StatementState | None:
        key = (connection_id, statement_id)
        return self._statements.get(key) or self._closed.get(key)

    def require(self, connection_id: str, statement_id: int, operation: str) -> StatementState:
        """
        Return the state of a usable statement.

        Raises:
            SequencingError: If the connection is not open and synced, or the
                statement is unknown on that connection or closed
        """
        self._sessions.require_synced(connection_id, operation)
        key = (connection_id, statement_id)
        state = self._statements.get(key)
        if state is not None:
            return state
        if key not in self._closed:
            raise SequencingError(
                f"Statement {statement_id} does not belong to connection '{connection_id}'",
                connection_id=connection_id,
                statement_id=statement_id,
                operation=operation,
            )
        raise SequencingError(
            f"Statement {statement_id} is closed",
            connection_id=connection_id,
            statement_id=statement_id,
            operation=operation,
        )

    def require_handle(self, handle: StatementHandle, operation: str) -> StatementState:
        return self.require(handle.connection_id, handle.id, operation)

    def _register(self, handle: StatementHandle, prepared: bool) -> StatementState:
        state = StatementState(
            handle=handle,
            prepared=prepared,
            status=StatementStatus.PREPARED if prepared else StatementStatus.CREATED,
        )
        self._closed.pop(state.key, None)
        self._statements[state.key] = state
        return state

    def _retire(self, state: StatementState) -> None:
        """Move a statement from the live table into the bounded closed history."""
        state.status = StatementStatus.CLOSED
        self._statements.pop(state.key, None)
        self._closed[state.key] = state
        self._closed.move_to_end(state.key)
        while len(self._closed) > self._closed_history:
            self._closed.popitem(last=False)

    async def create(self, connection_id: str, options: RequestOptions | None = None) -> StatementHandle:
        """Create a statement on a synced connection."""
        self._sessions.require_synced(connection_id, "createStatement")
        body = await self._transport.call(
            AvaticaRequest.create_statement(connection_id),
            options,
            expect=ResponseType.CREATE_STATEMENT,
        )
        returned = body.get("connectionId", connection_id)
        if returned != connection_id:
            raise ProtocolError(f"createStatement answered for connection '{returned}', expected '{connection_id}'")
        try:
            handle = StatementHandle(connection_id=connection_id, id=int(body["statementId"]))
        except (KeyError, TypeError, ValueError) as e:
            raise ProtocolError(f"Malformed createStatement response: {body!r}") from e
        self._register(handle, prepared=False)
        logger.debug("Created statement %s on %s", handle.id, connection_id)
        return handle

    async def prepare(
        self,
        connection_id: str,
        sql: str,
        max_row_count: int | None = None,
        options: RequestOptions | None = None,
    ) -> StatementHandle:
        """Prepare parameterized SQL and return a handle carrying its signature."""
        self._sessions.require_synced(connection_id, "prepare")
        body = await self._transport.call(
            AvaticaRequest.prepare(connection_id, sql, max_row_count),
            options,
            expect=ResponseType.PREPARE,
        )
        if not isinstance(body.get("statement"), dict):
            raise ProtocolError(f"prepare response carries no statement: {body!r}")
        handle = StatementHandle.from_dict(body["statement"])
        if handle.connection_id != connection_id:
            raise ProtocolError(f"prepare answered for connection '{handle.connection_id}', expected '{connection_id}'")
        self._register(handle, prepared=True)
        logger.debug("Prepared statement %s on %s: %s", handle.id, connection_id, sql)
        return handle

    def adopt(self, result: ResultSetResponse) -> StatementState:
        """
        Track a server-owned statement behind a metadata result so its rows can
        be paged like any other result.
        """
        handle = StatementHandle(connection_id=result.connection_id, id=result.statement_id)
        state = self._statements.get((handle.connection_id, handle.id))
        if state is None:
            state = self._register(handle, prepared=False)
        state.begin_results(result)
        return state

    async def close(self, connection_id: str, statement_id: int, options: RequestOptions | None = None) -> None:
        """
        Close a statement.

        Closing an already-closed statement, or one whose connection has been
        closed, succeeds without a round trip.

        Raises:
            SequencingError: If the statement was never created on this connection
        """
        key = (connection_id, statement_id)
        if key in self._closed:
            return
        state = self._statements.get(key)
        session = self._sessions.get(connection_id)
        if session is not None and not session.is_open:
            if state is not None:
                self._retire(state)
            return
        if state is None:
            raise SequencingError(
                f"Statement {statement_id} does not belong to connection '{connection_id}'",
                connection_id=connection_id,
                statement_id=statement_id,
                operation="closeStatement",
            )

        try:
            await self._transport.call(
                AvaticaRequest.close_statement(connection_id, statement_id),
                options,
                expect=ResponseType.CLOSE_STATEMENT,
            )
        except SequencingError as e:
            logger.debug("Statement %s already gone on the server: %s", statement_id, e)

        self._retire(state)
        logger.debug("Closed statement %s on %s", statement_id, connection_id)

    def invalidate_connection(self, connection_id: str) -> None:
        """Mark every statement of a closed connection as closed."""
        stale = [state for (cid, _), state in self._statements.items() if cid == connection_id]
        for state in stale:
            self._retire(state)
        if stale:
            logger.debug("Invalidated %d statement(s) of %s", len(stale), connection_id)

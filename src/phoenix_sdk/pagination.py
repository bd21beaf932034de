"""
Result pagination for the Phoenix SDK.

Query results arrive as a first frame followed by frames pulled with ``fetch``.
``ResultSet`` wraps that sequence as a lazy, single-pass async iterator.
"""

import logging
from typing import AsyncIterator

from .connection.base import BaseTransport
from .connection.options import RequestOptions
from .exceptions import SequencingError, ValidationError
from .protocol.rpc import AvaticaRequest, ResponseType
from .statement import StatementManager
from .types import FetchResponse, Frame, ResultSetResponse, Row, Signature

logger = logging.getLogger(__name__)


def check_fetch_size(fetch_max_row_count: int | None) -> None:
    """Reject a frame size of 0, which makes the server return empty frames forever."""
    if fetch_max_row_count == 0:
        raise ValidationError("fetch_max_row_count must be positive, or None for no limit; got 0")


class ResultPaginator:
    """Issues ``fetch`` requests against statements with an open cursor."""

    def __init__(self, transport: BaseTransport, statements: StatementManager):
        self._transport = transport
        self._statements = statements

    async def fetch(
        self,
        connection_id: str,
        statement_id: int,
        offset: int = 0,
        fetch_max_row_count: int | None = None,
        options: RequestOptions | None = None,
    ) -> Frame:
        """
        Fetch the next frame of the statement's current result.

        ``offset`` is either the position the cursor has reached or 0, which
        means "continue from the current position". Frames come back in order
        and the final one has ``done`` set.

        Raises:
            SequencingError: If nothing was executed, the result is exhausted,
                the offset skips or rewinds, or the server lost the cursor
            ValidationError: If ``fetch_max_row_count`` is 0
        """
        check_fetch_size(fetch_max_row_count)
        state = self._statements.require(connection_id, statement_id, "fetch")
        if not state.executed:
            raise SequencingError(
                f"Statement {statement_id} has no result to fetch; execute it first",
                connection_id=connection_id,
                statement_id=statement_id,
                operation="fetch",
            )
        if state.cursor_done:
            raise SequencingError(
                f"Result of statement {statement_id} is exhausted",
                connection_id=connection_id,
                statement_id=statement_id,
                operation="fetch",
            )
        if offset < 0 or offset not in (0, state.next_offset):
            raise SequencingError(
                f"Fetch offset {offset} does not continue statement {statement_id} (at {state.next_offset})",
                connection_id=connection_id,
                statement_id=statement_id,
                operation="fetch",
            )

        body = await self._transport.call(
            AvaticaRequest.fetch(connection_id, statement_id, offset, fetch_max_row_count),
            options,
            expect=ResponseType.FETCH,
        )
        response = FetchResponse.from_dict(body, state.cursor_signature)
        if response.missing_statement or response.missing_results:
            raise SequencingError(
                f"Server lost the cursor of statement {statement_id}",
                connection_id=connection_id,
                statement_id=statement_id,
                operation="fetch",
            )

        frame = response.frame
        state.advance(frame)
        logger.debug(
            "Fetched %d row(s) of statement %s at offset %d (done=%s)",
            frame.row_count,
            statement_id,
            offset,
            frame.done,
        )
        return frame

    def iterate(
        self,
        result: ResultSetResponse,
        fetch_max_row_count: int | None = None,
        options: RequestOptions | None = None,
    ) -> "ResultSet":
        """Wrap a query result in a lazy row iterator."""
        return ResultSet(self, result, fetch_max_row_count, options)


class ResultSet:
    """
    Lazy, single-pass iterator over every row of a query result.

    Usage:
        async for row in client.iterate(result):
            print(row.as_tuple())

    Frames are fetched only when the rows already received run out. A frame with
    no rows that is not ``done`` triggers another fetch. Iterating a second time
    raises SequencingError.
    """

    def __init__(
        self,
        paginator: ResultPaginator,
        result: ResultSetResponse,
        fetch_max_row_count: int | None = None,
        options: RequestOptions | None = None,
    ):
        check_fetch_size(fetch_max_row_count)
        if result.first_frame is None:
            raise SequencingError(
                f"Result of statement {result.statement_id} has no rows to iterate",
                connection_id=result.connection_id,
                statement_id=result.statement_id,
            )
        self._paginator = paginator
        self.connection_id = result.connection_id
        self.statement_id = result.statement_id
        self.signature: Signature | None = result.signature
        self.fetch_max_row_count = fetch_max_row_count
        self.options = options
        self._first_frame: Frame | None = result.first_frame
        self._next_offset = result.first_frame.offset
        self._started = False
        self.rows_read = 0
        self.frames_read = 0

    @property
    def column_names(self) -> list[str]:
        return self.signature.column_names if self.signature else []

    def _start(self) -> None:
        if self._started:
            raise SequencingError(
                "ResultSet can only be iterated once",
                connection_id=self.connection_id,
                statement_id=self.statement_id,
            )
        self._started = True

    async def _stream(self) -> AsyncIterator[Frame]:
        frame = self._first_frame
        self._first_frame = None
        if frame is not None:
            self._next_offset = frame.offset
        while frame is not None:
            self._next_offset += frame.row_count
            self.frames_read += 1
            yield frame
            if frame.done:
                return
            frame = await self._paginator.fetch(
                self.connection_id,
                self.statement_id,
                self._next_offset,
                self.fetch_max_row_count,
                self.options,
            )

    async def frames(self) -> AsyncIterator[Frame]:
        """Yield every frame, starting with the first one."""
        self._start()
        async for frame in self._stream():
            self.rows_read += frame.row_count
            yield frame

    async def rows(self) -> AsyncIterator[Row]:
        """Yield every row in server order."""
        self._start()
        async for frame in self._stream():
            for row in frame.rows:
                self.rows_read += 1
                yield row

    def __aiter__(self) -> AsyncIterator[Row]:
        return self.rows()

    async def all(self) -> list[Row]:
        """Read every remaining row into a list."""
        return [row async for row in self]

    def __repr__(self) -> str:
        return f"ResultSet(statement={self.statement_id}, rows_read={self.rows_read})"

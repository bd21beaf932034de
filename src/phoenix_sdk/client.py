"""
Phoenix Query Server client.

``PhoenixClient`` is the entry point: it owns one transport and the per-instance
tables of connection and statement state, and exposes every Avatica operation
the SDK supports.
"""

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Iterable, Literal, Self, Sequence

import httpx

from .batch import BatchCoordinator, UpdateBatch
from .connection.base import BaseTransport
from .connection.http import HTTPTransport
from .connection.options import RequestOptions
from .exceptions import PhoenixError
from .execution import Executor
from .metadata import MetadataCatalog
from .pagination import ResultPaginator, ResultSet
from .session import SessionManager, generate_connection_id
from .statement import StatementManager
from .transaction import Transaction, TransactionCoordinator
from .types import (
    ConnectionProperties,
    ExecuteBatchResponse,
    ExecuteResponse,
    Frame,
    OpenConnectionResponse,
    ResultSetResponse,
    StatementHandle,
)

logger = logging.getLogger(__name__)


class PhoenixClient:
    """
    Async client for the Phoenix Query Server.

    Usage:
        async with PhoenixClient("http://localhost:8765") as client:
            async with client.connection() as conn_id:
                stmt = await client.create_statement(conn_id)
                response = await client.prepare_and_execute(conn_id, "SELECT * FROM T", statement_id=stmt.id)
                async for row in client.iterate(response.first_result):
                    print(row.as_tuple())

    Every operation accepts ``options`` for that call only. Fields set on them
    (timeout, headers, gateway endpoint) are layered over the client defaults,
    so ``RequestOptions(timeout=5)`` on a gateway client still uses the gateway
    endpoint.
    """

    def __init__(
        self,
        base_url: str | None = None,
        *,
        transport: BaseTransport | None = None,
        http_client: httpx.AsyncClient | None = None,
        auth: httpx.Auth | None = None,
        default_options: RequestOptions | None = None,
        serialization: Literal["json", "protobuf"] = "json",
    ):
        """
        Initialize the client.

        Args:
            base_url: Query server or gateway URL
            transport: Prebuilt transport; ``base_url`` is then ignored
            http_client: Externally owned HTTP client for the default transport
            auth: Authentication for the default transport
            default_options: Options every call starts from
            serialization: Wire format of the default transport, "json" or "protobuf"
        """
        if transport is None:
            if base_url is None:
                raise ValueError("Either base_url or transport is required")
            transport = HTTPTransport(
                base_url, default_options, client=http_client, auth=auth, serialization=serialization
            )
        self.transport = transport
        self.sessions = SessionManager(transport)
        self.statements = StatementManager(transport, self.sessions)
        self.executor = Executor(transport, self.statements)
        self.paginator = ResultPaginator(transport, self.statements)
        self.batches = BatchCoordinator(transport, self.statements)
        self.transactions = TransactionCoordinator(transport, self.sessions)
        self.metadata = MetadataCatalog(transport, self.sessions, self.statements)

    @property
    def url(self) -> str:
        return self.transport.url

    async def connect(self) -> Self:
        await self.transport.connect()
        return self

    async def close(self) -> None:
        """Close the transport. Open server connections are not closed."""
        if self.sessions.open_connections:
            logger.warning("Closing client with open connections: %s", ", ".join(self.sessions.open_connections))
        await self.transport.close()

    async def __aenter__(self) -> Self:
        return await self.connect()

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    # Connections

    async def open_connection(
        self, connection_id: str, options: RequestOptions | None = None
    ) -> OpenConnectionResponse:
        return await self.sessions.open(connection_id, options)

    async def connection_sync(
        self,
        connection_id: str,
        properties: ConnectionProperties,
        options: RequestOptions | None = None,
    ) -> ConnectionProperties:
        """Sync session properties; returns the values the server applied."""
        return await self.sessions.sync(connection_id, properties, options)

    async def close_connection(self, connection_id: str, options: RequestOptions | None = None) -> None:
        await self.sessions.close(connection_id, options)

    # Statements

    async def create_statement(self, connection_id: str, options: RequestOptions | None = None) -> StatementHandle:
        return await self.statements.create(connection_id, options)

    async def prepare(
        self,
        connection_id: str,
        sql: str,
        max_row_count: int | None = None,
        options: RequestOptions | None = None,
    ) -> StatementHandle:
        return await self.statements.prepare(connection_id, sql, max_row_count, options)

    async def close_statement(
        self, connection_id: str, statement_id: int, options: RequestOptions | None = None
    ) -> None:
        await self.statements.close(connection_id, statement_id, options)

    # Execution

    async def prepare_and_execute(
        self,
        connection_id: str,
        sql: str,
        max_row_count: int | None = None,
        statement_id: int | None = None,
        options: RequestOptions | None = None,
    ) -> ExecuteResponse:
        return await self.executor.prepare_and_execute(connection_id, sql, max_row_count, statement_id, options)

    async def execute(
        self,
        statement_handle: StatementHandle,
        parameter_values: Sequence[Any] | None = None,
        max_row_count: int | None = None,
        has_parameter_values: bool = True,
        options: RequestOptions | None = None,
    ) -> ExecuteResponse:
        return await self.executor.execute(
            statement_handle, parameter_values, max_row_count, has_parameter_values, options
        )

    async def fetch(
        self,
        connection_id: str,
        statement_id: int,
        offset: int = 0,
        fetch_max_row_count: int | None = None,
        options: RequestOptions | None = None,
    ) -> Frame:
        return await self.paginator.fetch(connection_id, statement_id, offset, fetch_max_row_count, options)

    def iterate(
        self,
        result: ResultSetResponse,
        fetch_max_row_count: int | None = None,
        options: RequestOptions | None = None,
    ) -> ResultSet:
        """Lazy iterator over every row of a query result, fetching frames on demand."""
        return self.paginator.iterate(result, fetch_max_row_count, options)

    # Batches

    async def prepare_and_execute_batch(
        self,
        connection_id: str,
        statement_id: int,
        sql_commands: Iterable[str],
        options: RequestOptions | None = None,
    ) -> ExecuteBatchResponse:
        return await self.batches.prepare_and_execute_batch(connection_id, statement_id, sql_commands, options)

    async def execute_batch(
        self,
        connection_id: str,
        statement_id: int,
        updates: Iterable[UpdateBatch | Sequence[Any]],
        options: RequestOptions | None = None,
    ) -> ExecuteBatchResponse:
        return await self.batches.execute_batch(connection_id, statement_id, updates, options)

    # Transactions

    async def commit(self, connection_id: str, options: RequestOptions | None = None) -> None:
        await self.transactions.commit(connection_id, options)

    async def rollback(self, connection_id: str, options: RequestOptions | None = None) -> None:
        await self.transactions.rollback(connection_id, options)

    def transaction(self, connection_id: str, options: RequestOptions | None = None) -> Transaction:
        """Scope committing on success and rolling back on exception."""
        return self.transactions.transaction(connection_id, options)

    # Metadata

    async def tables(
        self,
        connection_id: str,
        catalog: str | None = None,
        schema_pattern: str | None = None,
        table_name_pattern: str | None = None,
        type_list: Sequence[str] | None = None,
        options: RequestOptions | None = None,
    ) -> ResultSetResponse:
        return await self.metadata.tables(
            connection_id, catalog, schema_pattern, table_name_pattern, type_list, options
        )

    async def table_types(self, connection_id: str, options: RequestOptions | None = None) -> ResultSetResponse:
        return await self.metadata.table_types(connection_id, options)

    async def schemas(
        self,
        connection_id: str,
        catalog: str | None = None,
        schema_pattern: str | None = None,
        options: RequestOptions | None = None,
    ) -> ResultSetResponse:
        return await self.metadata.schemas(connection_id, catalog, schema_pattern, options)

    async def catalogs(self, connection_id: str, options: RequestOptions | None = None) -> ResultSetResponse:
        return await self.metadata.catalogs(connection_id, options)

    async def columns(
        self,
        connection_id: str,
        catalog: str | None = None,
        schema_pattern: str | None = None,
        table_name_pattern: str | None = None,
        column_name_pattern: str | None = None,
        options: RequestOptions | None = None,
    ) -> ResultSetResponse:
        return await self.metadata.columns(
            connection_id, catalog, schema_pattern, table_name_pattern, column_name_pattern, options
        )

    async def database_properties(self, connection_id: str, options: RequestOptions | None = None) -> dict[str, Any]:
        return await self.metadata.database_properties(connection_id, options)

    # Scoped helpers

    @asynccontextmanager
    async def connection(
        self,
        connection_id: str | None = None,
        properties: ConnectionProperties | None = None,
        options: RequestOptions | None = None,
    ) -> AsyncIterator[str]:
        """
        Open and sync a connection, closing it on exit.

        Yields the connection id (a random one unless given). A failure to close
        while another exception propagates is logged and does not mask it.
        """
        connection_id = connection_id or generate_connection_id()
        await self.open_connection(connection_id, options)
        try:
            await self.connection_sync(connection_id, properties or ConnectionProperties.for_session(), options)
            yield connection_id
        except BaseException:
            try:
                await self.close_connection(connection_id, options)
            except PhoenixError as e:
                logger.warning("Failed to close connection %s: %s", connection_id, e)
            raise
        await self.close_connection(connection_id, options)

    @asynccontextmanager
    async def statement(
        self, connection_id: str, options: RequestOptions | None = None
    ) -> AsyncIterator[StatementHandle]:
        """Create a statement, closing it on exit."""
        handle = await self.create_statement(connection_id, options)
        try:
            yield handle
        except BaseException:
            try:
                await self.close_statement(connection_id, handle.id, options)
            except PhoenixError as e:
                logger.warning("Failed to close statement %s: %s", handle.id, e)
            raise
        await self.close_statement(connection_id, handle.id, options)

    @asynccontextmanager
    async def prepared(
        self,
        connection_id: str,
        sql: str,
        max_row_count: int | None = None,
        options: RequestOptions | None = None,
    ) -> AsyncIterator[StatementHandle]:
        """Prepare a statement, closing it on exit."""
        handle = await self.prepare(connection_id, sql, max_row_count, options)
        try:
            yield handle
        except BaseException:
            try:
                await self.close_statement(connection_id, handle.id, options)
            except PhoenixError as e:
                logger.warning("Failed to close statement %s: %s", handle.id, e)
            raise
        await self.close_statement(connection_id, handle.id, options)

    def __repr__(self) -> str:
        return f"PhoenixClient({self.url!r}, {self.sessions!r})"

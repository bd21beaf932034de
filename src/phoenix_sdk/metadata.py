"""
Catalog metadata requests for the Phoenix SDK.

Each call returns a ``ResultSetResponse`` backed by a server-owned statement,
so large listings can be paged with the regular fetch machinery.
"""

import logging
from typing import Any, Sequence

from .connection.base import BaseTransport
from .connection.options import RequestOptions
from .protocol.rpc import AvaticaRequest, ResponseType
from .protocol.values import TypedValue
from .session import SessionManager
from .statement import StatementManager
from .types import ResultSetResponse

logger = logging.getLogger(__name__)


class MetadataCatalog:
    """Lists tables, schemas, catalogs and columns of a connection."""

    def __init__(self, transport: BaseTransport, sessions: SessionManager, statements: StatementManager):
        self._transport = transport
        self._sessions = sessions
        self._statements = statements

    async def _result_set(self, request: AvaticaRequest, options: RequestOptions | None) -> ResultSetResponse:
        self._sessions.require_synced(request.connection_id or "", request.request)
        body = await self._transport.call(request, options, expect=ResponseType.RESULT_SET)
        result = ResultSetResponse.from_dict(body)
        self._statements.adopt(result)
        logger.debug("%s returned %d row(s)", request.request, len(result.rows))
        return result

    async def tables(
        self,
        connection_id: str,
        catalog: str | None = None,
        schema_pattern: str | None = None,
        table_name_pattern: str | None = None,
        type_list: Sequence[str] | None = None,
        options: RequestOptions | None = None,
    ) -> ResultSetResponse:
        """List tables, optionally filtered by type (e.g. ``["TABLE", "VIEW"]``)."""
        return await self._result_set(
            AvaticaRequest.get_tables(connection_id, catalog, schema_pattern, table_name_pattern, type_list),
            options,
        )

    async def table_types(self, connection_id: str, options: RequestOptions | None = None) -> ResultSetResponse:
        return await self._result_set(AvaticaRequest.get_table_types(connection_id), options)

    async def schemas(
        self,
        connection_id: str,
        catalog: str | None = None,
        schema_pattern: str | None = None,
        options: RequestOptions | None = None,
    ) -> ResultSetResponse:
        return await self._result_set(AvaticaRequest.get_schemas(connection_id, catalog, schema_pattern), options)

    async def catalogs(self, connection_id: str, options: RequestOptions | None = None) -> ResultSetResponse:
        return await self._result_set(AvaticaRequest.get_catalogs(connection_id), options)

    async def columns(
        self,
        connection_id: str,
        catalog: str | None = None,
        schema_pattern: str | None = None,
        table_name_pattern: str | None = None,
        column_name_pattern: str | None = None,
        options: RequestOptions | None = None,
    ) -> ResultSetResponse:
        return await self._result_set(
            AvaticaRequest.get_columns(connection_id, catalog, schema_pattern, table_name_pattern, column_name_pattern),
            options,
        )

    async def database_properties(
        self, connection_id: str, options: RequestOptions | None = None
    ) -> dict[str, Any]:
        """
        Return the server's database properties.

        Keys are Avatica property names (e.g. ``GET_DRIVER_NAME``); typed values
        are decoded to Python values.
        """
        self._sessions.require_synced(connection_id, "databaseProperties")
        body = await self._transport.call(
            AvaticaRequest.database_properties(connection_id),
            options,
            expect=ResponseType.DATABASE_PROPERTIES,
        )
        properties: dict[str, Any] = {}
        for key, value in (body.get("map") or {}).items():
            if isinstance(value, dict) and "type" in value:
                properties[key] = TypedValue.from_dict(value).value
            else:
                properties[key] = value
        return properties

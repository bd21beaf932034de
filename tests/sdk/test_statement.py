"""Tests for statement lifecycle and execution."""

import pytest
from avatica_fake import FakeAvaticaServer

from phoenix_sdk import PhoenixClient, TypedValue
from phoenix_sdk.exceptions import ServerError, SequencingError, ValidationError
from phoenix_sdk.statement import StatementManager, StatementStatus

CREATE_TABLE = "CREATE TABLE IF NOT EXISTS PEOPLE (ID INTEGER NOT NULL PRIMARY KEY, NAME VARCHAR)"


async def make_table(client: PhoenixClient, conn_id: str) -> None:
    async with client.statement(conn_id) as stmt:
        await client.prepare_and_execute(conn_id, CREATE_TABLE, statement_id=stmt.id)


class TestCreateStatement:
    @pytest.mark.asyncio
    async def test_create(self, client: PhoenixClient, conn_id: str) -> None:
        stmt = await client.create_statement(conn_id)
        assert stmt.connection_id == conn_id
        assert stmt.id > 0
        assert stmt.signature is None
        state = client.statements.get(conn_id, stmt.id)
        assert state is not None and state.status == StatementStatus.CREATED

    @pytest.mark.asyncio
    async def test_ids_distinct(self, client: PhoenixClient, conn_id: str) -> None:
        first = await client.create_statement(conn_id)
        second = await client.create_statement(conn_id)
        assert first.id != second.id


class TestCloseStatement:
    @pytest.mark.asyncio
    async def test_close_twice(self, client: PhoenixClient, conn_id: str, server: FakeAvaticaServer) -> None:
        stmt = await client.create_statement(conn_id)
        await client.close_statement(conn_id, stmt.id)
        await client.close_statement(conn_id, stmt.id)
        assert len(server.sent("closeStatement")) == 1

    @pytest.mark.asyncio
    async def test_execute_after_close(self, client: PhoenixClient, conn_id: str) -> None:
        stmt = await client.create_statement(conn_id)
        await client.close_statement(conn_id, stmt.id)
        with pytest.raises(SequencingError, match="closed"):
            await client.prepare_and_execute(conn_id, "SELECT COUNT(*) FROM PEOPLE", statement_id=stmt.id)

    @pytest.mark.asyncio
    async def test_close_unknown_statement(self, client: PhoenixClient, conn_id: str) -> None:
        with pytest.raises(SequencingError, match="does not belong"):
            await client.close_statement(conn_id, 999)

    @pytest.mark.asyncio
    async def test_server_already_dropped(self, client: PhoenixClient, conn_id: str, server: FakeAvaticaServer) -> None:
        stmt = await client.create_statement(conn_id)
        server.statements[(conn_id, stmt.id)].closed = True
        await client.close_statement(conn_id, stmt.id)
        assert client.statements.get(conn_id, stmt.id).status == StatementStatus.CLOSED  # type: ignore[union-attr]
        assert len(client.statements) == 0

    @pytest.mark.asyncio
    async def test_closed_statements_leave_live_table(
        self, client: PhoenixClient, conn_id: str, server: FakeAvaticaServer
    ) -> None:
        for _ in range(500):
            async with client.statement(conn_id):
                pass
        assert len(client.statements) == 0
        assert len(server.sent("closeStatement")) == 500

    @pytest.mark.asyncio
    async def test_closed_history_bounded(self, client: PhoenixClient, conn_id: str, server: FakeAvaticaServer) -> None:
        manager = StatementManager(client.transport, client.sessions, closed_history=16)
        handles = []
        for _ in range(100):
            handle = await manager.create(conn_id)
            await manager.close(conn_id, handle.id)
            handles.append(handle)
        assert len(manager) == 0
        assert manager.closed_count == 16
        # recent statements still report closed and close quietly
        with pytest.raises(SequencingError, match="is closed"):
            manager.require_handle(handles[-1], "execute")
        await manager.close(conn_id, handles[-1].id)
        assert len(server.sent("closeStatement")) == 100
        # the oldest were forgotten
        with pytest.raises(SequencingError, match="does not belong"):
            manager.require_handle(handles[0], "execute")


class TestPrepareAndExecute:
    @pytest.mark.asyncio
    async def test_ddl_and_dml(self, client: PhoenixClient, conn_id: str) -> None:
        await make_table(client, conn_id)
        stmt = await client.create_statement(conn_id)
        response = await client.prepare_and_execute(
            conn_id, "UPSERT INTO PEOPLE VALUES (1, 'ada')", statement_id=stmt.id
        )
        result = response.first_result
        assert result is not None
        assert result.is_update
        assert result.update_count == 1

    @pytest.mark.asyncio
    async def test_count(self, client: PhoenixClient, conn_id: str) -> None:
        await make_table(client, conn_id)
        stmt = await client.create_statement(conn_id)
        await client.prepare_and_execute(conn_id, "UPSERT INTO PEOPLE VALUES (1, 'ada')", statement_id=stmt.id)
        await client.prepare_and_execute(conn_id, "UPSERT INTO PEOPLE VALUES (2, 'bob')", statement_id=stmt.id)
        response = await client.prepare_and_execute(conn_id, "SELECT COUNT(*) FROM PEOPLE", statement_id=stmt.id)
        assert response.first_result is not None
        assert response.first_result.scalar == 2

    @pytest.mark.asyncio
    async def test_sql_error_surfaces(self, client: PhoenixClient, conn_id: str) -> None:
        stmt = await client.create_statement(conn_id)
        with pytest.raises(ServerError) as exc_info:
            await client.prepare_and_execute(conn_id, "SELECT * FROM MISSING", statement_id=stmt.id)
        assert exc_info.value.code == 1012
        assert exc_info.value.sql_state == "42M03"
        # the statement stays usable after a SQL error
        await make_table(client, conn_id)
        await client.prepare_and_execute(conn_id, "SELECT COUNT(*) FROM PEOPLE", statement_id=stmt.id)

    @pytest.mark.asyncio
    async def test_statement_id_required(self, client: PhoenixClient, conn_id: str) -> None:
        with pytest.raises(ValueError):
            await client.prepare_and_execute(conn_id, "SELECT COUNT(*) FROM PEOPLE")

    @pytest.mark.asyncio
    async def test_statement_of_other_connection(
        self, client: PhoenixClient, conn_id: str, manual_conn_id: str
    ) -> None:
        stmt = await client.create_statement(conn_id)
        with pytest.raises(SequencingError, match="does not belong"):
            await client.prepare_and_execute(manual_conn_id, "SELECT COUNT(*) FROM PEOPLE", statement_id=stmt.id)

    @pytest.mark.asyncio
    async def test_rejects_prepared_handle(self, client: PhoenixClient, conn_id: str) -> None:
        await make_table(client, conn_id)
        handle = await client.prepare(conn_id, "UPSERT INTO PEOPLE VALUES (?, ?)")
        with pytest.raises(SequencingError, match="use execute"):
            await client.prepare_and_execute(conn_id, "SELECT COUNT(*) FROM PEOPLE", statement_id=handle.id)

    @pytest.mark.asyncio
    async def test_missing_statement_flag(self, client: PhoenixClient, conn_id: str, server: FakeAvaticaServer) -> None:
        stmt = await client.create_statement(conn_id)
        server.inject("prepareAndExecute", {"response": "executeResults", "missingStatement": True, "results": []})
        with pytest.raises(SequencingError, match="missing"):
            await client.prepare_and_execute(conn_id, "SELECT COUNT(*) FROM PEOPLE", statement_id=stmt.id)


class TestPreparedExecute:
    @pytest.mark.asyncio
    async def test_prepare_signature(self, client: PhoenixClient, conn_id: str) -> None:
        await make_table(client, conn_id)
        handle = await client.prepare(conn_id, "UPSERT INTO PEOPLE VALUES (?, ?)")
        assert handle.signature is not None
        assert len(handle.signature.parameters) == 2
        assert client.statements.get(conn_id, handle.id).status == StatementStatus.PREPARED  # type: ignore[union-attr]

    @pytest.mark.asyncio
    async def test_execute_many_times(self, client: PhoenixClient, conn_id: str, server: FakeAvaticaServer) -> None:
        await make_table(client, conn_id)
        handle = await client.prepare(conn_id, "UPSERT INTO PEOPLE VALUES (?, ?)")
        for i in range(10):
            response = await client.execute(handle, [i, f"name{i}"])
            assert response.first_result is not None
            assert response.first_result.update_count == 1
        assert len(server.tables["PEOPLE"].rows) == 10
        sent = server.sent("execute")[0]
        assert sent["statementHandle"]["signature"] == handle.signature.raw  # type: ignore[union-attr]
        assert sent["parameterValues"] == [{"type": "LONG", "value": 0}, {"type": "STRING", "value": "name0"}]

    @pytest.mark.asyncio
    async def test_execute_typed_values(self, client: PhoenixClient, conn_id: str, server: FakeAvaticaServer) -> None:
        await make_table(client, conn_id)
        handle = await client.prepare(conn_id, "UPSERT INTO PEOPLE VALUES (?, ?)")
        await client.execute(handle, [TypedValue.number(7), TypedValue.null()])
        assert server.tables["PEOPLE"].rows[7] == [7, None]

    @pytest.mark.asyncio
    async def test_arity_checked_locally(self, client: PhoenixClient, conn_id: str, server: FakeAvaticaServer) -> None:
        await make_table(client, conn_id)
        handle = await client.prepare(conn_id, "UPSERT INTO PEOPLE VALUES (?, ?)")
        with pytest.raises(ValidationError, match="expects 2"):
            await client.execute(handle, [1])
        assert server.sent("execute") == []

    @pytest.mark.asyncio
    async def test_unencodable_parameter(self, client: PhoenixClient, conn_id: str) -> None:
        await make_table(client, conn_id)
        handle = await client.prepare(conn_id, "UPSERT INTO PEOPLE VALUES (?, ?)")
        with pytest.raises(ValidationError):
            await client.execute(handle, [1, object()])

    @pytest.mark.asyncio
    async def test_execute_requires_prepared(self, client: PhoenixClient, conn_id: str) -> None:
        stmt = await client.create_statement(conn_id)
        with pytest.raises(SequencingError, match="not prepared"):
            await client.execute(stmt, [])

    @pytest.mark.asyncio
    async def test_prepare_syntax_error(self, client: PhoenixClient, conn_id: str) -> None:
        with pytest.raises(ServerError) as exc_info:
            await client.prepare(conn_id, "SELEC 1")
        assert exc_info.value.code == 601

    @pytest.mark.asyncio
    async def test_prepared_scope_closes(self, client: PhoenixClient, conn_id: str, server: FakeAvaticaServer) -> None:
        await make_table(client, conn_id)
        async with client.prepared(conn_id, "UPSERT INTO PEOPLE VALUES (?, ?)") as handle:
            await client.execute(handle, [1, "x"])
        assert server.sent("closeStatement")[-1]["statementId"] == handle.id

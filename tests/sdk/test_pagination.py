"""Tests for frame pagination and lazy result iteration."""

import pytest
from avatica_fake import FakeAvaticaServer

from phoenix_sdk import PhoenixClient, ResultSetResponse, StatementHandle
from phoenix_sdk.exceptions import SequencingError, ValidationError
from phoenix_sdk.statement import StatementStatus

ROWS = 300


async def seed(client: PhoenixClient, conn_id: str, server: FakeAvaticaServer, count: int = ROWS) -> None:
    async with client.statement(conn_id) as stmt:
        await client.prepare_and_execute(
            conn_id, "CREATE TABLE NUMBERS (ID INTEGER NOT NULL PRIMARY KEY, LABEL VARCHAR)", statement_id=stmt.id
        )
    server.tables["NUMBERS"].rows = {i: [i, f"n{i}"] for i in range(count)}


async def query(client: PhoenixClient, conn_id: str) -> tuple[StatementHandle, ResultSetResponse]:
    stmt = await client.create_statement(conn_id)
    response = await client.prepare_and_execute(conn_id, "SELECT * FROM NUMBERS", statement_id=stmt.id)
    assert response.first_result is not None
    return stmt, response.first_result


class TestFetch:
    @pytest.mark.asyncio
    async def test_first_frame_capped(self, client: PhoenixClient, conn_id: str, server: FakeAvaticaServer) -> None:
        await seed(client, conn_id, server)
        stmt, result = await query(client, conn_id)
        assert result.first_frame is not None
        assert result.first_frame.row_count == 100
        assert not result.first_frame.done
        assert client.statements.get(conn_id, stmt.id).status == StatementStatus.EXECUTING  # type: ignore[union-attr]

    @pytest.mark.asyncio
    async def test_fetch_rest_with_offset_zero(
        self, client: PhoenixClient, conn_id: str, server: FakeAvaticaServer
    ) -> None:
        await seed(client, conn_id, server)
        stmt, _ = await query(client, conn_id)
        frame = await client.fetch(conn_id, stmt.id, 0, 4294967295)
        assert frame.row_count == 200
        assert frame.done
        assert server.sent("fetch")[0]["fetchMaxRowCount"] == -1

    @pytest.mark.asyncio
    async def test_fetch_sequential_offsets(
        self, client: PhoenixClient, conn_id: str, server: FakeAvaticaServer
    ) -> None:
        await seed(client, conn_id, server)
        stmt, result = await query(client, conn_id)
        second = await client.fetch(conn_id, stmt.id, 100, 150)
        third = await client.fetch(conn_id, stmt.id, 250, 150)
        assert second.row_count == 150 and not second.done
        assert third.row_count == 50 and third.done
        ids = [row[0].value for row in (*result.rows, *second.rows, *third.rows)]
        assert ids == list(range(ROWS))

    @pytest.mark.asyncio
    async def test_rows_decoded_by_signature(
        self, client: PhoenixClient, conn_id: str, server: FakeAvaticaServer
    ) -> None:
        await seed(client, conn_id, server)
        stmt, result = await query(client, conn_id)
        frame = await client.fetch(conn_id, stmt.id, 0)
        assert frame.rows[0].as_tuple() == (100, "n100")
        assert result.signature is not None
        assert result.signature.column_names == ["ID", "LABEL"]

    @pytest.mark.asyncio
    async def test_offset_must_continue(self, client: PhoenixClient, conn_id: str, server: FakeAvaticaServer) -> None:
        await seed(client, conn_id, server)
        stmt, _ = await query(client, conn_id)
        with pytest.raises(SequencingError, match="does not continue"):
            await client.fetch(conn_id, stmt.id, 50)
        assert server.sent("fetch") == []

    @pytest.mark.asyncio
    async def test_fetch_before_execute(self, client: PhoenixClient, conn_id: str) -> None:
        stmt = await client.create_statement(conn_id)
        with pytest.raises(SequencingError, match="execute it first"):
            await client.fetch(conn_id, stmt.id, 0)

    @pytest.mark.asyncio
    async def test_fetch_after_done(self, client: PhoenixClient, conn_id: str, server: FakeAvaticaServer) -> None:
        await seed(client, conn_id, server, count=5)
        stmt, result = await query(client, conn_id)
        assert result.first_frame is not None and result.first_frame.done
        with pytest.raises(SequencingError, match="exhausted"):
            await client.fetch(conn_id, stmt.id, 0)

    @pytest.mark.asyncio
    async def test_fetch_after_dml(self, client: PhoenixClient, conn_id: str, server: FakeAvaticaServer) -> None:
        await seed(client, conn_id, server)
        stmt = await client.create_statement(conn_id)
        await client.prepare_and_execute(conn_id, "UPSERT INTO NUMBERS VALUES (1000, 'x')", statement_id=stmt.id)
        with pytest.raises(SequencingError):
            await client.fetch(conn_id, stmt.id, 0)

    @pytest.mark.asyncio
    async def test_fetch_closed_statement(self, client: PhoenixClient, conn_id: str, server: FakeAvaticaServer) -> None:
        await seed(client, conn_id, server)
        stmt, _ = await query(client, conn_id)
        await client.close_statement(conn_id, stmt.id)
        with pytest.raises(SequencingError, match="closed"):
            await client.fetch(conn_id, stmt.id, 100)

    @pytest.mark.asyncio
    async def test_server_lost_cursor(self, client: PhoenixClient, conn_id: str, server: FakeAvaticaServer) -> None:
        await seed(client, conn_id, server)
        stmt, _ = await query(client, conn_id)
        server.inject("fetch", {"response": "fetch", "frame": None, "missingResults": True})
        with pytest.raises(SequencingError, match="lost the cursor"):
            await client.fetch(conn_id, stmt.id, 100)

    @pytest.mark.asyncio
    async def test_max_row_count_limits_total(
        self, client: PhoenixClient, conn_id: str, server: FakeAvaticaServer
    ) -> None:
        await seed(client, conn_id, server)
        stmt = await client.create_statement(conn_id)
        response = await client.prepare_and_execute(conn_id, "SELECT * FROM NUMBERS", 10, stmt.id)
        assert response.first_result is not None
        assert response.first_result.first_frame is not None
        assert response.first_result.first_frame.row_count == 10
        assert response.first_result.first_frame.done


class TestResultSet:
    @pytest.mark.asyncio
    async def test_iterates_every_row(self, client: PhoenixClient, conn_id: str, server: FakeAvaticaServer) -> None:
        await seed(client, conn_id, server)
        _, result = await query(client, conn_id)
        rows = [row async for row in client.iterate(result, fetch_max_row_count=80)]
        assert [row[0].value for row in rows] == list(range(ROWS))
        # 100 in the first frame, then 80 + 80 + 40
        assert [body["offset"] for body in server.sent("fetch")] == [100, 180, 260]

    @pytest.mark.asyncio
    async def test_lazy(self, client: PhoenixClient, conn_id: str, server: FakeAvaticaServer) -> None:
        await seed(client, conn_id, server)
        _, result = await query(client, conn_id)
        result_set = client.iterate(result)
        rows = result_set.rows()
        for _ in range(100):
            await rows.__anext__()
        assert server.sent("fetch") == []
        await rows.__anext__()
        assert len(server.sent("fetch")) == 1
        await rows.aclose()

    @pytest.mark.asyncio
    async def test_frames(self, client: PhoenixClient, conn_id: str, server: FakeAvaticaServer) -> None:
        await seed(client, conn_id, server)
        _, result = await query(client, conn_id)
        result_set = client.iterate(result, fetch_max_row_count=100)
        frames = [frame async for frame in result_set.frames()]
        assert [f.row_count for f in frames] == [100, 100, 100]
        assert frames[-1].done
        assert result_set.rows_read == ROWS
        assert result_set.frames_read == 3

    @pytest.mark.asyncio
    async def test_single_frame_no_fetch(self, client: PhoenixClient, conn_id: str, server: FakeAvaticaServer) -> None:
        await seed(client, conn_id, server, count=3)
        _, result = await query(client, conn_id)
        rows = await client.iterate(result).all()
        assert len(rows) == 3
        assert server.sent("fetch") == []

    @pytest.mark.asyncio
    async def test_empty_not_done_frame_refetched(
        self, client: PhoenixClient, conn_id: str, server: FakeAvaticaServer
    ) -> None:
        await seed(client, conn_id, server)
        _, result = await query(client, conn_id)
        server.inject("fetch", {"response": "fetch", "frame": {"offset": 100, "done": False, "rows": []}})
        rows = await client.iterate(result).all()
        assert len(rows) == ROWS
        assert [body["offset"] for body in server.sent("fetch")] == [100, 100]

    @pytest.mark.asyncio
    async def test_not_restartable(self, client: PhoenixClient, conn_id: str, server: FakeAvaticaServer) -> None:
        await seed(client, conn_id, server, count=3)
        _, result = await query(client, conn_id)
        result_set = client.iterate(result)
        await result_set.all()
        with pytest.raises(SequencingError, match="once"):
            await result_set.all()

    @pytest.mark.asyncio
    async def test_update_result_not_iterable(
        self, client: PhoenixClient, conn_id: str, server: FakeAvaticaServer
    ) -> None:
        await seed(client, conn_id, server)
        stmt = await client.create_statement(conn_id)
        response = await client.prepare_and_execute(
            conn_id, "UPSERT INTO NUMBERS VALUES (1000, 'x')", statement_id=stmt.id
        )
        assert response.first_result is not None
        with pytest.raises(SequencingError, match="no rows"):
            client.iterate(response.first_result)

    @pytest.mark.asyncio
    async def test_zero_frame_size_rejected(
        self, client: PhoenixClient, conn_id: str, server: FakeAvaticaServer
    ) -> None:
        await seed(client, conn_id, server, count=150)
        stmt, result = await query(client, conn_id)
        with pytest.raises(ValidationError, match="got 0"):
            client.iterate(result, fetch_max_row_count=0)
        with pytest.raises(ValidationError):
            await client.fetch(conn_id, stmt.id, 100, 0)
        assert server.sent("fetch") == []
        # the cursor is untouched and can still be read to the end
        rows = await client.iterate(result, fetch_max_row_count=25).all()
        assert len(rows) == 150

# Phoenix SDK Examples

# Meant to be run cell by cell from an editor (select a block and run it).
# Each comment starts a cell.

# Load requirements

import asyncio
import logging
import os

import httpx
from dotenv import load_dotenv

from phoenix_sdk import ConnectionProperties, Phoenix, PhoenixClient, UpdateBatch

# Load environment from .env (PHOENIX_URL, and for a cluster gateway PHOENIX_USER / PHOENIX_PASS)
load_dotenv()
logging.basicConfig(level=logging.INFO)

PHOENIX_URL = os.getenv("PHOENIX_URL", "http://localhost:8765")
PHOENIX_USER = os.getenv("PHOENIX_USER")
PHOENIX_PASS = os.getenv("PHOENIX_PASS")


def make_client() -> PhoenixClient:
    if PHOENIX_USER and PHOENIX_PASS:
        return Phoenix.gateway(PHOENIX_URL, auth=httpx.BasicAuth(PHOENIX_USER, PHOENIX_PASS))
    return Phoenix.http(PHOENIX_URL)


# Create a table, write a few rows and count them


async def simple_table() -> None:
    async with make_client() as client:
        async with client.connection() as cid:
            async with client.statement(cid) as stmt:
                await client.prepare_and_execute(
                    cid,
                    "CREATE TABLE IF NOT EXISTS SIMPLE_TEST (ID INTEGER NOT NULL PRIMARY KEY, TEXT VARCHAR)",
                    statement_id=stmt.id,
                )
                await client.prepare_and_execute(cid, "UPSERT INTO SIMPLE_TEST VALUES (1, 'one')", statement_id=stmt.id)
                response = await client.prepare_and_execute(
                    cid, "SELECT COUNT(*) FROM SIMPLE_TEST", statement_id=stmt.id
                )
                print("rows:", response.first_result.scalar if response.first_result else None)


asyncio.run(simple_table())


# Prepared statement, parameter batch and paging through every row


async def batch_and_page() -> None:
    async with make_client() as client:
        async with client.connection() as cid:
            async with client.prepared(cid, "UPSERT INTO SIMPLE_TEST VALUES (?, ?)") as handle:
                result = await client.execute_batch(cid, handle.id, [UpdateBatch.of(i, f"row {i}") for i in range(500)])
                print("failed items:", result.failed)
            async with client.statement(cid) as stmt:
                response = await client.prepare_and_execute(cid, "SELECT * FROM SIMPLE_TEST", statement_id=stmt.id)
                if response.first_result is not None:
                    async for row in client.iterate(response.first_result, fetch_max_row_count=200):
                        print(row.as_tuple())


asyncio.run(batch_and_page())


# Manual transaction: committed on success, rolled back on error


async def transaction() -> None:
    async with make_client() as client:
        properties = ConnectionProperties.for_session(auto_commit=False)
        async with client.connection(properties=properties) as cid:
            async with client.prepared(cid, "UPSERT INTO SIMPLE_TEST VALUES (?, ?)") as handle:
                async with client.transaction(cid):
                    await client.execute(handle, [1000, "committed together"])
                    await client.execute(handle, [1001, "committed together"])


asyncio.run(transaction())


# Drop the table


async def cleanup() -> None:
    async with make_client() as client:
        async with client.connection() as cid:
            async with client.statement(cid) as stmt:
                await client.prepare_and_execute(cid, "DROP TABLE IF EXISTS SIMPLE_TEST", statement_id=stmt.id)


asyncio.run(cleanup())

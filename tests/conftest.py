"""
Pytest configuration for Phoenix SDK tests.

Unit tests run against ``FakeAvaticaServer`` (see ``avatica_fake.py``).
Integration tests (marker ``integration``) talk to a real query server and are
skipped unless ``PHOENIX_URL`` is set.
"""

import os
from collections.abc import AsyncGenerator

import httpx
import pytest
import pytest_asyncio
from avatica_fake import FAKE_URL, FakeAvaticaServer

from phoenix_sdk import ConnectionProperties, PhoenixClient

# ---------------------------------------------------------------------------
# Shared connection constants (import these in test files)
# ---------------------------------------------------------------------------
PHOENIX_URL = os.getenv("PHOENIX_URL", "")
PHOENIX_ALTERNATIVE_ENDPOINT = os.getenv("PHOENIX_ALTERNATIVE_ENDPOINT", "")
PHOENIX_USER = os.getenv("PHOENIX_USER", "")
PHOENIX_PASS = os.getenv("PHOENIX_PASS", "")
# Wire format of the server under test; the query server defaults to protobuf
PHOENIX_SERIALIZATION = os.getenv("PHOENIX_SERIALIZATION", "protobuf")

# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def server() -> FakeAvaticaServer:
    return FakeAvaticaServer()


@pytest_asyncio.fixture
async def http_client(server: FakeAvaticaServer) -> AsyncGenerator[httpx.AsyncClient, None]:
    async with httpx.AsyncClient(transport=server.transport()) as client:
        yield client


@pytest_asyncio.fixture
async def client(http_client: httpx.AsyncClient) -> AsyncGenerator[PhoenixClient, None]:
    async with PhoenixClient(FAKE_URL, http_client=http_client) as phoenix:
        yield phoenix


@pytest_asyncio.fixture
async def protobuf_client(http_client: httpx.AsyncClient) -> AsyncGenerator[PhoenixClient, None]:
    """A client speaking the protobuf wire format to the fake server."""
    async with PhoenixClient(FAKE_URL, http_client=http_client, serialization="protobuf") as phoenix:
        yield phoenix


@pytest_asyncio.fixture
async def conn_id(client: PhoenixClient) -> AsyncGenerator[str, None]:
    """An open connection synced with auto-commit on."""
    connection_id = "c0ffee01"
    await client.open_connection(connection_id)
    await client.connection_sync(connection_id, ConnectionProperties.for_session(auto_commit=True))
    yield connection_id
    await client.close_connection(connection_id)


@pytest_asyncio.fixture
async def manual_conn_id(client: PhoenixClient) -> AsyncGenerator[str, None]:
    """An open connection synced with auto-commit off."""
    connection_id = "c0ffee02"
    await client.open_connection(connection_id)
    await client.connection_sync(connection_id, ConnectionProperties.for_session(auto_commit=False))
    yield connection_id
    await client.close_connection(connection_id)


@pytest.fixture(scope="session")
def phoenix_available() -> bool:
    """
    Session-scoped flag telling whether a real query server is configured.

        def test_something(phoenix_available):
            if not phoenix_available:
                pytest.skip("Phoenix Query Server not available")
    """
    return bool(PHOENIX_URL)

"""Tests for the HTTP transport and endpoint resolution."""

import httpx
import pytest
from pydantic import ValidationError as PydanticValidationError

from phoenix_sdk.connection.endpoint import EndpointResolver
from phoenix_sdk.connection.http import HTTPTransport
from phoenix_sdk.connection.options import RequestOptions
from phoenix_sdk.debug import ExchangeLogger
from phoenix_sdk.exceptions import ProtocolError, SequencingError, ServerError, TimeoutError, TransportError
from phoenix_sdk.protocol.rpc import AvaticaRequest, ResponseType

from avatica_fake import FAKE_URL, FakeAvaticaServer


class TestEndpointResolver:
    """Tests for target URL computation."""

    def test_plain(self) -> None:
        assert EndpointResolver("http://localhost:8765").resolve() == "http://localhost:8765/"

    def test_trailing_slash_removed(self) -> None:
        resolver = EndpointResolver("https://cluster.example.net/")
        assert resolver.base_url == "https://cluster.example.net"

    def test_alternative_endpoint(self) -> None:
        resolver = EndpointResolver("https://cluster.example.net")
        options = RequestOptions(alternative_endpoint="hbasephoenix0")
        assert resolver.resolve(options) == "https://cluster.example.net/hbasephoenix0/"

    def test_alternative_endpoint_slashes_normalized(self) -> None:
        resolver = EndpointResolver("https://cluster.example.net/")
        options = RequestOptions(alternative_endpoint="/hbasephoenix0/")
        assert resolver.resolve(options) == "https://cluster.example.net/hbasephoenix0/"

    def test_rejects_non_http(self) -> None:
        with pytest.raises(ValueError, match="http"):
            EndpointResolver("ws://localhost:8765")


class TestRequestOptions:
    """Tests for per-call options."""

    def test_defaults(self) -> None:
        options = RequestOptions()
        assert options.alternative_endpoint is None
        assert options.timeout == 30.0
        assert options.headers == {}

    def test_gateway_defaults(self) -> None:
        assert RequestOptions.gateway_defaults().alternative_endpoint == "hbasephoenix/"
        assert RequestOptions.gateway_defaults("hbasephoenix0/").alternative_endpoint == "hbasephoenix0/"

    def test_empty_endpoint_is_none(self) -> None:
        assert RequestOptions(alternative_endpoint=" / ").alternative_endpoint is None

    def test_endpoint_must_be_segment(self) -> None:
        with pytest.raises(PydanticValidationError):
            RequestOptions(alternative_endpoint="http://other/")

    def test_timeout_positive(self) -> None:
        with pytest.raises(PydanticValidationError):
            RequestOptions(timeout=0)

    def test_with_endpoint_copies(self) -> None:
        base = RequestOptions(timeout=5)
        routed = base.with_endpoint("hbasephoenix1")
        assert routed.alternative_endpoint == "hbasephoenix1/"
        assert routed.timeout == 5
        assert base.alternative_endpoint is None

    def test_merged_over_keeps_unset_defaults(self) -> None:
        defaults = RequestOptions.gateway_defaults(timeout=10, headers={"X-Client": "sdk"})
        merged = RequestOptions(timeout=5, headers={"X-Trace": "abc"}).merged_over(defaults)
        assert merged.alternative_endpoint == "hbasephoenix/"
        assert merged.timeout == 5
        assert merged.headers == {"X-Client": "sdk", "X-Trace": "abc"}

    def test_merged_over_explicit_endpoint_wins(self) -> None:
        defaults = RequestOptions.gateway_defaults()
        assert RequestOptions.gateway_defaults("hbasephoenix1/").merged_over(defaults).alternative_endpoint == (
            "hbasephoenix1/"
        )
        assert RequestOptions(alternative_endpoint=None).merged_over(defaults).alternative_endpoint is None
        assert RequestOptions().merged_over(defaults) == defaults

    def test_with_endpoint_keeps_unset_fields_unset(self) -> None:
        routed = RequestOptions().with_endpoint("hbasephoenix1")
        merged = routed.merged_over(RequestOptions(timeout=7))
        assert merged.alternative_endpoint == "hbasephoenix1/"
        assert merged.timeout == 7

    def test_frozen(self) -> None:
        with pytest.raises(PydanticValidationError):
            RequestOptions().timeout = 1  # type: ignore[misc]


class TestHTTPTransport:
    """Tests for HTTPTransport."""

    def test_headers(self) -> None:
        transport = HTTPTransport("http://localhost:8765")
        assert transport.headers["Content-Type"] == "application/json"
        assert transport.url == "http://localhost:8765"

    @pytest.mark.asyncio
    async def test_connect_and_close(self) -> None:
        transport = HTTPTransport("http://localhost:8765")
        assert not transport.is_connected
        await transport.connect()
        assert transport.is_connected
        await transport.close()
        assert not transport.is_connected

    @pytest.mark.asyncio
    async def test_not_connected(self) -> None:
        transport = HTTPTransport("http://localhost:8765")
        with pytest.raises(TransportError, match="Not connected"):
            await transport.call(AvaticaRequest.commit("c1"))

    @pytest.mark.asyncio
    async def test_external_client_not_closed(self, http_client: httpx.AsyncClient) -> None:
        transport = HTTPTransport(FAKE_URL, client=http_client)
        assert transport.is_connected
        await transport.close()
        assert not http_client.is_closed

    @pytest.mark.asyncio
    async def test_call_posts_json(self, server: FakeAvaticaServer, http_client: httpx.AsyncClient) -> None:
        transport = HTTPTransport(FAKE_URL, client=http_client)
        body = await transport.call(AvaticaRequest.open_connection("c1"), expect=ResponseType.OPEN_CONNECTION)
        assert body["response"] == "openConnection"
        assert server.sent("openConnection") == [{"request": "openConnection", "connectionId": "c1", "info": {}}]
        assert server.paths() == ["/"]

    @pytest.mark.asyncio
    async def test_alternative_endpoint_path(self, server: FakeAvaticaServer, http_client: httpx.AsyncClient) -> None:
        transport = HTTPTransport(FAKE_URL, client=http_client)
        await transport.call(AvaticaRequest.open_connection("c1"), RequestOptions.gateway_defaults("hbasephoenix0/"))
        await transport.call(AvaticaRequest.close_connection("c1"))
        assert server.paths() == ["/hbasephoenix0/", "/"]

    @pytest.mark.asyncio
    async def test_default_options_used(self, server: FakeAvaticaServer, http_client: httpx.AsyncClient) -> None:
        transport = HTTPTransport(FAKE_URL, RequestOptions.gateway_defaults(), client=http_client)
        await transport.call(AvaticaRequest.open_connection("c1"))
        assert server.paths() == ["/hbasephoenix/"]

    @pytest.mark.asyncio
    async def test_partial_options_keep_default_endpoint(
        self, server: FakeAvaticaServer, http_client: httpx.AsyncClient
    ) -> None:
        transport = HTTPTransport(FAKE_URL, RequestOptions.gateway_defaults(), client=http_client)
        await transport.call(AvaticaRequest.open_connection("c1"), RequestOptions(timeout=5))
        await transport.call(AvaticaRequest.close_connection("c1"), RequestOptions(headers={"X-Trace": "abc"}))
        assert server.paths() == ["/hbasephoenix/", "/hbasephoenix/"]

    @pytest.mark.asyncio
    async def test_server_error(self, server: FakeAvaticaServer, http_client: httpx.AsyncClient) -> None:
        server.inject_error("prepareAndExecute", "ERROR 601 (42P00): Syntax error.", 601, "42P00")
        transport = HTTPTransport(FAKE_URL, client=http_client)
        with pytest.raises(ServerError) as exc_info:
            await transport.call(AvaticaRequest.prepare_and_execute("c1", 1, "SELEC 1"))
        assert exc_info.value.code == 601
        assert exc_info.value.sql_state == "42P00"

    @pytest.mark.asyncio
    async def test_unknown_connection_is_sequencing(self, http_client: httpx.AsyncClient) -> None:
        transport = HTTPTransport(FAKE_URL, client=http_client)
        with pytest.raises(SequencingError) as exc_info:
            await transport.call(AvaticaRequest.create_statement("nope"))
        assert exc_info.value.connection_id == "nope"

    @pytest.mark.asyncio
    async def test_gateway_failure(self, server: FakeAvaticaServer, http_client: httpx.AsyncClient) -> None:
        server.inject("openConnection", "<html>Bad Gateway</html>", status=502)
        transport = HTTPTransport(FAKE_URL, client=http_client)
        with pytest.raises(TransportError, match="HTTP error: 502") as exc_info:
            await transport.call(AvaticaRequest.open_connection("c1"))
        assert exc_info.value.code == 502

    @pytest.mark.asyncio
    async def test_non_error_envelope_with_bad_status(
        self, server: FakeAvaticaServer, http_client: httpx.AsyncClient
    ) -> None:
        server.inject("commit", {"response": "commit"}, status=503)
        transport = HTTPTransport(FAKE_URL, client=http_client)
        with pytest.raises(TransportError, match="503"):
            await transport.call(AvaticaRequest.commit("c1"))

    @pytest.mark.asyncio
    async def test_malformed_body(self, server: FakeAvaticaServer, http_client: httpx.AsyncClient) -> None:
        server.inject("commit", "not json", status=200)
        transport = HTTPTransport(FAKE_URL, client=http_client)
        with pytest.raises(ProtocolError):
            await transport.call(AvaticaRequest.commit("c1"))

    @pytest.mark.asyncio
    async def test_wrong_response_type(self, server: FakeAvaticaServer, http_client: httpx.AsyncClient) -> None:
        server.inject("commit", {"response": "rollback"})
        transport = HTTPTransport(FAKE_URL, client=http_client)
        with pytest.raises(ProtocolError, match="Expected 'commit'"):
            await transport.call(AvaticaRequest.commit("c1"), expect=ResponseType.COMMIT)

    @pytest.mark.asyncio
    async def test_timeout(self, server: FakeAvaticaServer, http_client: httpx.AsyncClient) -> None:
        server.inject("commit", httpx.ReadTimeout("read timed out"))
        transport = HTTPTransport(FAKE_URL, client=http_client)
        with pytest.raises(TimeoutError, match="timed out"):
            await transport.call(AvaticaRequest.commit("c1"), RequestOptions(timeout=0.5))

    @pytest.mark.asyncio
    async def test_connection_refused(self, server: FakeAvaticaServer, http_client: httpx.AsyncClient) -> None:
        server.inject("commit", httpx.ConnectError("connection refused"))
        transport = HTTPTransport(FAKE_URL, client=http_client)
        with pytest.raises(TransportError, match="Request failed"):
            await transport.call(AvaticaRequest.commit("c1"))

    @pytest.mark.asyncio
    async def test_per_call_headers(self, http_client: httpx.AsyncClient) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"response": "commit"})

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            transport = HTTPTransport(FAKE_URL, client=client)
            await transport.call(AvaticaRequest.commit("c1"), RequestOptions(headers={"X-Trace": "abc"}))
        assert seen[0].headers["X-Trace"] == "abc"
        assert seen[0].headers["Content-Type"] == "application/json"


class TestProtobufSerialization:
    """Tests for the protobuf wire format."""

    def test_headers(self) -> None:
        transport = HTTPTransport("http://localhost:8765", serialization="protobuf")
        assert transport.headers == {
            "Content-Type": "application/x-google-protobuf",
            "Accept": "application/x-google-protobuf",
        }

    def test_invalid_serialization(self) -> None:
        with pytest.raises(ValueError, match="Invalid serialization 'xml'"):
            HTTPTransport("http://localhost:8765", serialization="xml")  # type: ignore[arg-type]

    @pytest.mark.asyncio
    async def test_call_posts_protobuf(self, server: FakeAvaticaServer, http_client: httpx.AsyncClient) -> None:
        transport = HTTPTransport(FAKE_URL, client=http_client, serialization="protobuf")
        body = await transport.call(AvaticaRequest.open_connection("c1"), expect=ResponseType.OPEN_CONNECTION)
        assert body["response"] == "openConnection"
        assert server.sent("openConnection") == [{"request": "openConnection", "connectionId": "c1", "info": {}}]
        assert server.content_types == ["application/x-google-protobuf"]

    @pytest.mark.asyncio
    async def test_server_error(self, server: FakeAvaticaServer, http_client: httpx.AsyncClient) -> None:
        server.inject_error("prepareAndExecute", "ERROR 601 (42P00): Syntax error.", 601, "42P00")
        transport = HTTPTransport(FAKE_URL, client=http_client, serialization="protobuf")
        with pytest.raises(ServerError) as exc_info:
            await transport.call(AvaticaRequest.prepare_and_execute("c1", 1, "SELEC 1"))
        assert exc_info.value.code == 601
        assert exc_info.value.sql_state == "42P00"
        assert exc_info.value.severity == "ERROR"

    @pytest.mark.asyncio
    async def test_unknown_connection_is_sequencing(self, http_client: httpx.AsyncClient) -> None:
        transport = HTTPTransport(FAKE_URL, client=http_client, serialization="protobuf")
        with pytest.raises(SequencingError):
            await transport.call(AvaticaRequest.create_statement("nope"))

    @pytest.mark.asyncio
    async def test_gateway_failure(self, server: FakeAvaticaServer, http_client: httpx.AsyncClient) -> None:
        server.inject("openConnection", "<html>Bad Gateway</html>", status=502)
        transport = HTTPTransport(FAKE_URL, client=http_client, serialization="protobuf")
        with pytest.raises(TransportError, match="HTTP error: 502"):
            await transport.call(AvaticaRequest.open_connection("c1"))

    @pytest.mark.asyncio
    async def test_malformed_body(self, server: FakeAvaticaServer, http_client: httpx.AsyncClient) -> None:
        server.inject("commit", "not protobuf", status=200)
        transport = HTTPTransport(FAKE_URL, client=http_client, serialization="protobuf")
        with pytest.raises(ProtocolError):
            await transport.call(AvaticaRequest.commit("c1"))


class TestExchangeLogger:
    """Tests for exchange capture."""

    @pytest.mark.asyncio
    async def test_captures_exchanges(self, server: FakeAvaticaServer, http_client: httpx.AsyncClient) -> None:
        transport = HTTPTransport(FAKE_URL, client=http_client)
        async with ExchangeLogger() as log:
            await transport.call(AvaticaRequest.open_connection("c1"))
            with pytest.raises(SequencingError):
                await transport.call(AvaticaRequest.create_statement("missing"))
        assert log.requests() == ["openConnection", "createStatement"]
        assert log.exchanges[0].connection_id == "c1"
        assert not log.exchanges[0].failed
        assert log.exchanges[1].failed
        assert log.total_ms >= 0

    @pytest.mark.asyncio
    async def test_outside_block_not_captured(self, http_client: httpx.AsyncClient) -> None:
        transport = HTTPTransport(FAKE_URL, client=http_client)
        async with ExchangeLogger() as log:
            pass
        await transport.call(AvaticaRequest.open_connection("c1"))
        assert log.total_exchanges == 0

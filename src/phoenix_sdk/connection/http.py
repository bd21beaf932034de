"""
HTTP Transport Implementation for the Phoenix SDK.

Every Avatica request is an independent HTTP POST; no socket is held per session.
"""

import logging
from typing import Literal, Self

import httpx

from ..exceptions import ProtocolError, TimeoutError, TransportError
from ..protocol import protobuf
from ..protocol.rpc import AvaticaRequest, AvaticaResponse
from .base import BaseTransport
from .options import RequestOptions

logger = logging.getLogger(__name__)

JSON_CONTENT_TYPE = "application/json"
PROTOBUF_CONTENT_TYPE = protobuf.CONTENT_TYPE


class HTTPTransport(BaseTransport):
    """
    HTTP transport to the Phoenix Query Server.

    The transport is stateless: connection and statement state live in the
    client's managers and are identified by handles in each request body.

    Authentication is the caller's concern: pass a pre-configured
    ``httpx.AsyncClient`` or an ``httpx.Auth`` (e.g. ``httpx.BasicAuth`` for a
    gateway).

    Supports both wire formats of the query server. JSON is the default here;
    protobuf is what an unmodified server and most cluster gateways expect.
    """

    def __init__(
        self,
        base_url: str,
        default_options: RequestOptions | None = None,
        client: httpx.AsyncClient | None = None,
        auth: httpx.Auth | None = None,
        serialization: Literal["json", "protobuf"] = "json",
    ):
        """
        Initialize HTTP transport.

        Args:
            base_url: Query server or gateway URL (e.g. "https://cluster.example.net")
            default_options: Options every call starts from
            client: Externally owned client; it is not closed by ``close()``
            auth: Authentication for a client created by this transport
            serialization: Wire format, "json" or "protobuf"; must match the
                server's configured serialization
        """
        if serialization not in ("json", "protobuf"):
            raise ValueError(f"Invalid serialization '{serialization}'. Must be 'json' or 'protobuf'.")

        super().__init__(base_url, default_options)
        self._client = client
        self._owns_client = client is None
        self._auth = auth
        self.serialization: Literal["json", "protobuf"] = serialization
        if client is not None:
            self._connected = True

    @property
    def headers(self) -> dict[str, str]:
        """Build request headers based on the serialization setting."""
        content_type = PROTOBUF_CONTENT_TYPE if self.serialization == "protobuf" else JSON_CONTENT_TYPE
        return {"Content-Type": content_type, "Accept": content_type}

    def _encode(self, request: AvaticaRequest) -> str | bytes:
        if self.serialization == "protobuf":
            return request.to_protobuf()
        return request.to_json()

    def _decode(self, content: bytes) -> AvaticaResponse:
        if self.serialization == "protobuf":
            return AvaticaResponse.from_protobuf(content)
        return AvaticaResponse.from_json(content)

    async def connect(self) -> Self:
        """Create the HTTP client. Returns self for fluent API."""
        if self._connected:
            return self

        self._client = httpx.AsyncClient(
            timeout=self.default_options.timeout,
            auth=self._auth,
        )
        self._owns_client = True
        self._connected = True
        return self

    async def close(self) -> None:
        """Close the HTTP client if this transport created it."""
        if self._client and self._owns_client:
            await self._client.aclose()
            self._client = None
        self._connected = False

    async def _send(self, request: AvaticaRequest, url: str, options: RequestOptions) -> AvaticaResponse:
        """
        Send a request via HTTP POST.

        Raises:
            TransportError: If not connected, the request fails, or the
                server answers with a non-Avatica HTTP error
            TimeoutError: If the exchange times out
        """
        if not self._client:
            raise TransportError("Not connected. Call connect() first.")

        try:
            response = await self._client.post(
                url,
                content=self._encode(request),
                headers={**self.headers, **options.headers},
                timeout=options.timeout,
            )
        except httpx.TimeoutException as e:
            raise TimeoutError(f"{request.request} timed out after {options.timeout}s: {e}") from e
        except httpx.RequestError as e:
            raise TransportError(f"Request failed: {e}") from e

        if response.status_code == 200:
            return self._decode(response.content)

        # The query server reports errors as an "error" envelope with a 500 status;
        # anything else (gateway failures, auth rejections) is a transport fault.
        try:
            parsed: AvaticaResponse | None = self._decode(response.content)
        except ProtocolError:
            parsed = None
        if parsed is None or not parsed.is_error:
            raise TransportError(
                f"HTTP error: {response.status_code} - {response.text[:500]}",
                code=response.status_code,
            )
        return parsed

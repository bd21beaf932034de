"""
Base Transport Interface for the Phoenix SDK.

Defines the abstract interface that all transports must implement.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Self

from ..debug import _elapsed_ms, _log_exchange, _start_timer
from ..protocol.rpc import AvaticaRequest, AvaticaResponse
from .endpoint import EndpointResolver
from .options import RequestOptions

logger = logging.getLogger(__name__)


class BaseTransport(ABC):
    """
    Abstract base class for query server transports.

    A transport performs one request/response exchange per call and keeps no
    session state between calls.
    """

    def __init__(self, base_url: str, default_options: RequestOptions | None = None):
        """
        Initialize transport parameters.

        Args:
            base_url: Query server (or gateway) base URL
            default_options: Options every call starts from
        """
        self.endpoint = EndpointResolver(base_url)
        self.default_options = default_options or RequestOptions()
        self._connected = False

    @property
    def url(self) -> str:
        return self.endpoint.base_url

    @property
    def is_connected(self) -> bool:
        """Check if the transport is ready to send."""
        return self._connected

    @abstractmethod
    async def connect(self) -> Self:
        """Prepare the transport. Returns self for fluent API."""
        ...

    @abstractmethod
    async def close(self) -> None:
        """Release transport resources."""
        ...

    @abstractmethod
    async def _send(self, request: AvaticaRequest, url: str, options: RequestOptions) -> AvaticaResponse:
        """
        Send a request and decode the response envelope.

        Args:
            request: The request to send
            url: Resolved target URL
            options: Options for this exchange

        Returns:
            The decoded response, possibly an ``error`` envelope
        """
        ...

    # Context manager support

    async def __aenter__(self) -> Self:
        await self.connect()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    async def call(
        self,
        request: AvaticaRequest,
        options: RequestOptions | None = None,
        expect: str | None = None,
    ) -> dict[str, Any]:
        """
        Perform one exchange.

        Args:
            request: The request to send
            options: Per-call options, layered over ``default_options``
            expect: Response tag the caller requires

        Returns:
            The response body

        Raises:
            TransportError: If the exchange could not complete
            SequencingError: If the server rejected a handle
            ServerError: If the server rejected the request
            ProtocolError: If the response is malformed or of another type
        """
        options = self.default_options if options is None else options.merged_over(self.default_options)
        url = self.endpoint.resolve(options)
        start = _start_timer()
        try:
            response = await self._send(request, url, options)
            if response.error is not None:
                raise response.error.to_exception(request)
            body = response.expect(expect) if expect else response.data
        except Exception as e:
            elapsed = _elapsed_ms(start)
            logger.debug("%s %s failed after %.1fms: %s", request.request, url, elapsed, e)
            _log_exchange(request.request, request.connection_id, url, elapsed, error=str(e))
            raise
        elapsed = _elapsed_ms(start)
        logger.debug("%s %s -> %s in %.1fms", request.request, url, response.response, elapsed)
        _log_exchange(request.request, request.connection_id, url, elapsed)
        return body

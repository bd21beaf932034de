"""
Phoenix SDK - An async Python client for the Apache Phoenix Query Server.

Speaks the Avatica JSON protocol over HTTP, statelessly: every request is an
independent POST and session state is identified by client-held handles.

Supports:
- Connections with synced session properties
- Created and prepared statements, parameter binding
- Frame-by-frame result pagination (lazy async iteration)
- Statement and parameter batches with per-item outcomes
- Manual commit/rollback and transaction scopes
- Catalog metadata (tables, schemas, columns, ...)
- Gateway routing through an alternative endpoint segment
"""

from typing import Any

from .batch import BatchCoordinator, UpdateBatch, build_outcomes
from .client import PhoenixClient
from .connection.base import BaseTransport
from .connection.endpoint import EndpointResolver
from .connection.http import HTTPTransport
from .connection.options import RequestOptions
from .debug import ExchangeLog, ExchangeLogger
from .exceptions import (
    PhoenixError,
    ProtocolError,
    SequencingError,
    ServerError,
    TimeoutError,
    TransactionError,
    TransportError,
    ValidationError,
)
from .pagination import ResultPaginator, ResultSet
from .protocol.rpc import AvaticaError, AvaticaRequest, AvaticaResponse, RequestType, ResponseType
from .protocol.values import Rep, TypedValue
from .session import ConnectionStatus, SessionManager, generate_connection_id
from .statement import StatementManager, StatementStatus
from .transaction import Transaction, TransactionCoordinator
from .types import (
    BatchItemStatus,
    BatchOutcome,
    ColumnMetaData,
    ConnectionProperties,
    ExecuteBatchResponse,
    ExecuteResponse,
    FetchResponse,
    Frame,
    OpenConnectionResponse,
    ResultSetResponse,
    Row,
    Signature,
    StatementHandle,
)

__version__ = "0.1.0"
__all__ = [
    # Client
    "PhoenixClient",
    "Phoenix",
    "generate_connection_id",
    # Transport
    "BaseTransport",
    "HTTPTransport",
    "EndpointResolver",
    "RequestOptions",
    # State
    "SessionManager",
    "ConnectionStatus",
    "StatementManager",
    "StatementStatus",
    # Pagination
    "ResultPaginator",
    "ResultSet",
    # Batches
    "BatchCoordinator",
    "UpdateBatch",
    "build_outcomes",
    # Transactions
    "Transaction",
    "TransactionCoordinator",
    # Protocol
    "AvaticaRequest",
    "AvaticaResponse",
    "AvaticaError",
    "RequestType",
    "ResponseType",
    "Rep",
    "TypedValue",
    # Types
    "BatchItemStatus",
    "BatchOutcome",
    "ColumnMetaData",
    "ConnectionProperties",
    "ExecuteBatchResponse",
    "ExecuteResponse",
    "FetchResponse",
    "Frame",
    "OpenConnectionResponse",
    "ResultSetResponse",
    "Row",
    "Signature",
    "StatementHandle",
    # Debug
    "ExchangeLog",
    "ExchangeLogger",
    # Exceptions
    "PhoenixError",
    "TransportError",
    "TimeoutError",
    "ProtocolError",
    "ValidationError",
    "SequencingError",
    "ServerError",
    "TransactionError",
]


class Phoenix:
    """
    Factory class for creating Phoenix clients.

    Usage:
        # Query server reached directly
        async with Phoenix.http("http://localhost:8765") as client:
            ...

        # Cluster gateway, load balanced across query servers
        async with Phoenix.gateway("https://cluster.example.net", auth=httpx.BasicAuth("admin", "pw")) as client:
            ...

        # Cluster gateway, pinned to the query server on worker node 0
        async with Phoenix.gateway("https://cluster.example.net", node=0) as client:
            ...

    Gateways speak protobuf unless told otherwise; pass
    ``serialization="json"`` for a query server configured for JSON.
    """

    @staticmethod
    def http(url: str, **kwargs: Any) -> PhoenixClient:
        """Create a client talking to a query server directly."""
        return PhoenixClient(url, **kwargs)

    @staticmethod
    def gateway(url: str, node: int | None = None, timeout: float | None = None, **kwargs: Any) -> PhoenixClient:
        """Create a client routed through a cluster gateway (protobuf by default)."""
        segment = f"hbasephoenix{node}/" if node is not None else "hbasephoenix/"
        extra: dict[str, Any] = {"timeout": timeout} if timeout is not None else {}
        kwargs.setdefault("serialization", "protobuf")
        return PhoenixClient(url, default_options=RequestOptions.gateway_defaults(segment, **extra), **kwargs)

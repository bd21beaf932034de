"""
Session management for the Phoenix SDK.

Tracks client-chosen connection ids against the state the server has
acknowledged (open, synced, closed). State lives in an explicit table keyed by
connection id so handles stay valid across independent HTTP exchanges.
"""

import logging
import secrets
from collections import OrderedDict
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable

from .connection.base import BaseTransport
from .connection.options import RequestOptions
from .exceptions import SequencingError
from .protocol.rpc import AvaticaRequest, ResponseType
from .types import ConnectionProperties, OpenConnectionResponse, RpcMetadata

logger = logging.getLogger(__name__)

HEX_CHARACTERS = "0123456789abcdef"
DEFAULT_CONNECTION_ID_LENGTH = 8
# Closed connections remembered so a late close is a no-op.
CLOSED_HISTORY = 256


def generate_connection_id(length: int = DEFAULT_CONNECTION_ID_LENGTH) -> str:
    """Generate a random fixed-length hex connection id."""
    if length <= 0:
        raise ValueError(f"Connection id length must be > 0, got {length}")
    return "".join(secrets.choice(HEX_CHARACTERS) for _ in range(length))


class ConnectionStatus(str, Enum):
    """Lifecycle of a logical connection."""

    OPEN = "OPEN"
    SYNCED = "SYNCED"
    CLOSED = "CLOSED"


@dataclass
class SessionState:
    """Client-side view of one server connection."""

    connection_id: str
    status: ConnectionStatus = ConnectionStatus.OPEN
    properties: ConnectionProperties | None = None

    @property
    def is_open(self) -> bool:
        return self.status != ConnectionStatus.CLOSED

    @property
    def is_synced(self) -> bool:
        return self.status == ConnectionStatus.SYNCED

    @property
    def auto_commit(self) -> bool | None:
        """Effective auto-commit mode, ``None`` if the server did not report it."""
        if self.properties is None or not self.properties.has_auto_commit:
            return None
        return self.properties.auto_commit


CloseListener = Callable[[str], None]


class SessionManager:
    """
    Opens, syncs and closes logical connections.

    Closed connections leave the live table; only the most recent
    ``closed_history`` of them are remembered.

    Usage:
        sessions = SessionManager(transport)
        await sessions.open("a1b2c3d4")
        await sessions.sync("a1b2c3d4", ConnectionProperties.for_session(auto_commit=False))
        ...
        await sessions.close("a1b2c3d4")
    """

    def __init__(self, transport: BaseTransport, closed_history: int = CLOSED_HISTORY):
        self._transport = transport
        self._sessions: dict[str, SessionState] = {}
        self._closed: OrderedDict[str, SessionState] = OrderedDict()
        self._closed_history = closed_history
        self._close_listeners: list[CloseListener] = []

    def on_close(self, listener: CloseListener) -> None:
        """Register a callback run with the connection id whenever a connection closes."""
        self._close_listeners.append(listener)

    def __len__(self) -> int:
        return len(self._sessions)

    def get(self, connection_id: str) -> SessionState | None:
        return self._sessions.get(connection_id) or self._closed.get(connection_id)

    @property
    def open_connections(self) -> list[str]:
        return list(self._sessions)

    def require_open(self, connection_id: str, operation: str) -> SessionState:
        """Return the session state, raising SequencingError unless it is open."""
        state = self._sessions.get(connection_id)
        if state is not None:
            return state
        if connection_id in self._closed:
            raise SequencingError(
                f"Connection '{connection_id}' is closed",
                connection_id=connection_id,
                operation=operation,
            )
        raise SequencingError(
            f"Connection '{connection_id}' has not been opened",
            connection_id=connection_id,
            operation=operation,
        )

    def require_synced(self, connection_id: str, operation: str) -> SessionState:
        """Return the session state, raising SequencingError unless it is open and synced."""
        state = self.require_open(connection_id, operation)
        if not state.is_synced:
            raise SequencingError(
                f"Connection '{connection_id}' must be synced before {operation}",
                connection_id=connection_id,
                operation=operation,
            )
        return state

    async def open(
        self,
        connection_id: str,
        options: RequestOptions | None = None,
        info: dict[str, str] | None = None,
    ) -> OpenConnectionResponse:
        """
        Open a connection on the server.

        Args:
            connection_id: Client-generated id, unique per concurrent session
            options: Per-call options
            info: Driver properties forwarded to the server

        Raises:
            SequencingError: If this client already has the connection open
        """
        if not connection_id:
            raise ValueError("Connection id must be a non-empty string")
        if connection_id in self._sessions:
            raise SequencingError(
                f"Connection '{connection_id}' is already open",
                connection_id=connection_id,
                operation="openConnection",
            )

        body = await self._transport.call(
            AvaticaRequest.open_connection(connection_id, info),
            options,
            expect=ResponseType.OPEN_CONNECTION,
        )
        self._closed.pop(connection_id, None)
        self._sessions[connection_id] = SessionState(connection_id=connection_id)
        logger.debug("Opened connection %s", connection_id)
        return OpenConnectionResponse(
            connection_id=connection_id,
            rpc_metadata=RpcMetadata.from_dict(body.get("rpcMetadata")),
        )

    async def sync(
        self,
        connection_id: str,
        properties: ConnectionProperties,
        options: RequestOptions | None = None,
    ) -> ConnectionProperties:
        """
        Push session properties and return the values the server applied.

        Only dirty properties are pushed; a clean object reads the current
        values back. The server may clamp or ignore requested values.
        """
        state = self.require_open(connection_id, "connectionSync")
        body = await self._transport.call(
            AvaticaRequest.connection_sync(connection_id, properties.to_dict()),
            options,
            expect=ResponseType.CONNECTION_SYNC,
        )
        effective = ConnectionProperties.from_dict(body.get("connProps"))
        state.properties = effective
        state.status = ConnectionStatus.SYNCED
        logger.debug("Synced connection %s (autoCommit=%s)", connection_id, state.auto_commit)
        return effective

    async def close(self, connection_id: str, options: RequestOptions | None = None) -> None:
        """
        Close a connection.

        Closing an already-closed connection succeeds without a round trip, and a
        server reply that the connection does not exist counts as closed. All
        statements of the connection become invalid.
        """
        if connection_id in self._closed:
            return

        try:
            await self._transport.call(
                AvaticaRequest.close_connection(connection_id),
                options,
                expect=ResponseType.CLOSE_CONNECTION,
            )
        except SequencingError as e:
            logger.debug("Connection %s already gone on the server: %s", connection_id, e)

        self._mark_closed(connection_id)
        logger.debug("Closed connection %s", connection_id)

    def _mark_closed(self, connection_id: str) -> None:
        state = self._sessions.pop(connection_id, None) or SessionState(connection_id=connection_id)
        state.status = ConnectionStatus.CLOSED
        self._closed[connection_id] = state
        self._closed.move_to_end(connection_id)
        while len(self._closed) > self._closed_history:
            self._closed.popitem(last=False)
        for listener in self._close_listeners:
            listener(connection_id)

    def __repr__(self) -> str:
        return f"SessionManager({len(self.open_connections)} open)"

    def snapshot(self) -> dict[str, Any]:
        """Connection id to status, for diagnostics."""
        return {cid: state.status.value for cid, state in (*self._closed.items(), *self._sessions.items())}

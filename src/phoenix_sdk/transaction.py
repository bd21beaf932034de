"""
Transaction support for the Phoenix SDK.

Commit and rollback act on every write issued on a connection since its last
commit. They are only meaningful when the connection runs with auto-commit off.
"""

import logging
from typing import Any, Self

from .connection.base import BaseTransport
from .connection.options import RequestOptions
from .exceptions import PhoenixError, TransactionError
from .protocol.rpc import AvaticaRequest, ResponseType
from .session import SessionManager

logger = logging.getLogger(__name__)


class TransactionCoordinator:
    """Issues ``commit`` and ``rollback`` for synced connections."""

    def __init__(self, transport: BaseTransport, sessions: SessionManager):
        self._transport = transport
        self._sessions = sessions

    async def commit(self, connection_id: str, options: RequestOptions | None = None) -> None:
        """
        Make pending writes of the connection durable.

        With auto-commit on this is accepted and has no effect.
        """
        self._sessions.require_synced(connection_id, "commit")
        await self._transport.call(AvaticaRequest.commit(connection_id), options, expect=ResponseType.COMMIT)
        logger.debug("Committed connection %s", connection_id)

    async def rollback(self, connection_id: str, options: RequestOptions | None = None) -> None:
        """Discard pending writes of the connection."""
        self._sessions.require_synced(connection_id, "rollback")
        await self._transport.call(AvaticaRequest.rollback(connection_id), options, expect=ResponseType.ROLLBACK)
        logger.debug("Rolled back connection %s", connection_id)

    def require_manual_commit(self, connection_id: str) -> None:
        """
        Check that a connection can scope a transaction.

        Raises:
            SequencingError: If the connection is not open and synced
            TransactionError: If the connection runs with auto-commit on
        """
        state = self._sessions.require_synced(connection_id, "transaction")
        if state.auto_commit is not False:
            raise TransactionError(
                f"Connection '{connection_id}' is in auto-commit mode; sync it with auto_commit=False"
            )

    def transaction(self, connection_id: str, options: RequestOptions | None = None) -> "Transaction":
        return Transaction(self, connection_id, options)


class Transaction:
    """
    Scope that commits on success and rolls back on exception.

    Usage:
        async with client.transaction(conn_id):
            await client.execute(handle, [1, "a"])
            await client.execute(handle, [2, "b"])
            # Commit on success, rollback on exception

    The connection must have been synced with auto-commit off.
    """

    def __init__(
        self,
        coordinator: TransactionCoordinator,
        connection_id: str,
        options: RequestOptions | None = None,
    ):
        self._coordinator = coordinator
        self.connection_id = connection_id
        self._options = options
        self._committed = False
        self._rolled_back = False
        self._active = False

    @property
    def is_active(self) -> bool:
        """Check if transaction is active."""
        return self._active and not self._committed and not self._rolled_back

    @property
    def is_committed(self) -> bool:
        return self._committed

    @property
    def is_rolled_back(self) -> bool:
        return self._rolled_back

    async def __aenter__(self) -> Self:
        self._coordinator.require_manual_commit(self.connection_id)
        self._active = True
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: Any,
    ) -> bool:
        """Commit on success, rollback on exception."""
        if not self.is_active:
            return False
        if exc_type is not None:
            try:
                await self.rollback()
            except PhoenixError as e:
                logger.warning("Rollback of %s after %s failed: %s", self.connection_id, exc_type.__name__, e)
            return False  # Re-raise exception
        await self.commit()
        return False

    async def commit(self) -> None:
        if not self.is_active:
            raise TransactionError("Transaction is not active")
        await self._coordinator.commit(self.connection_id, self._options)
        self._committed = True

    async def rollback(self) -> None:
        if not self.is_active:
            raise TransactionError("Transaction is not active")
        await self._coordinator.rollback(self.connection_id, self._options)
        self._rolled_back = True

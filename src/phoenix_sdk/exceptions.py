"""
Phoenix SDK Exceptions.

Custom exception hierarchy for the SDK.
"""


class PhoenixError(Exception):
    """Base exception for all Phoenix SDK errors."""

    def __init__(self, message: str, code: int | None = None):
        self.message = message
        self.code = code
        super().__init__(message)


class TransportError(PhoenixError):
    """Raised when an HTTP exchange with the query server cannot complete."""

    pass


class TimeoutError(TransportError):
    """Raised when an exchange exceeds its timeout.

    The server may still have applied the operation.
    """

    pass


class ProtocolError(PhoenixError):
    """Raised when a response envelope is malformed or of the wrong type."""

    pass


class ValidationError(PhoenixError):
    """Raised when client-side arguments cannot be encoded or are inconsistent."""

    pass


class SequencingError(PhoenixError):
    """Raised when an operation is issued against a handle in an invalid state.

    Examples: executing a closed statement, fetching before any execute,
    using a statement whose connection has been closed.
    """

    def __init__(
        self,
        message: str,
        connection_id: str | None = None,
        statement_id: int | None = None,
        operation: str | None = None,
        code: int | None = None,
    ):
        self.connection_id = connection_id
        self.statement_id = statement_id
        self.operation = operation
        super().__init__(message, code)


class ServerError(PhoenixError):
    """Raised when the query server rejects a request (SQL or application error)."""

    def __init__(
        self,
        message: str,
        code: int | None = None,
        sql_state: str | None = None,
        severity: str | None = None,
        exceptions: list[str] | None = None,
        operation: str | None = None,
    ):
        self.sql_state = sql_state
        self.severity = severity
        self.exceptions = exceptions or []
        self.operation = operation
        super().__init__(message, code)


class TransactionError(PhoenixError):
    """Raised when a transaction scope cannot be used or completed."""

    def __init__(
        self,
        message: str,
        code: int | None = None,
        rollback_succeeded: bool | None = None,
    ):
        self.rollback_succeeded = rollback_succeeded
        super().__init__(message, code)

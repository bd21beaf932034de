"""
Avatica RPC Protocol Implementation.

Handles the request/response envelopes used by the Phoenix Query Server.
Every message is a JSON object tagged by ``"request"`` or ``"response"``;
the protobuf wire format is mapped onto the same shape by ``protobuf``.
"""

import json
from dataclasses import dataclass, field
from datetime import date, datetime, time
from decimal import Decimal
from typing import Any, Iterable, Sequence
from uuid import UUID

from ..exceptions import ProtocolError, SequencingError, ServerError
from . import protobuf
from .values import TypedValue

# Row-limit sentinel meaning "no client-side cap"
UNLIMITED = -1
MAX_LONG = 2**63 - 1
MAX_INT = 2**31 - 1

# Server exception classes that indicate a handle in the wrong state
_SEQUENCING_EXCEPTIONS = (
    "NoSuchConnectionException",
    "NoSuchStatementException",
    "MissingResultsException",
)


def normalize_row_limit(value: int | None, ceiling: int = MAX_LONG) -> int:
    """
    Encode a caller row limit for the wire.

    ``None``, negative values and values at or past ``ceiling`` all mean
    "as many rows as the server will return" and become ``-1``.
    """
    if value is None or value < 0 or value >= ceiling:
        return UNLIMITED
    return int(value)


class AvaticaJSONEncoder(json.JSONEncoder):
    """
    Custom JSON encoder for values the standard encoder rejects.

    Handles serialization of Python types that are not natively JSON serializable:
    - TypedValue → Avatica TypedValue object
    - datetime/date/time → ISO 8601 string
    - Decimal → float
    - UUID → string
    """

    def default(self, obj: Any) -> Any:
        if isinstance(obj, TypedValue):
            return obj.to_dict()
        if isinstance(obj, (datetime, date, time)):
            return obj.isoformat()
        if isinstance(obj, Decimal):
            return float(obj)
        if isinstance(obj, UUID):
            return str(obj)
        return super().default(obj)


class RequestType:
    """Avatica request tag constants."""

    # Connection
    OPEN_CONNECTION = "openConnection"
    CLOSE_CONNECTION = "closeConnection"
    CONNECTION_SYNC = "connectionSync"

    # Statements
    CREATE_STATEMENT = "createStatement"
    CLOSE_STATEMENT = "closeStatement"
    PREPARE = "prepare"

    # Execution
    PREPARE_AND_EXECUTE = "prepareAndExecute"
    EXECUTE = "execute"
    FETCH = "fetch"
    PREPARE_AND_EXECUTE_BATCH = "prepareAndExecuteBatch"
    EXECUTE_BATCH = "executeBatch"

    # Transactions
    COMMIT = "commit"
    ROLLBACK = "rollback"

    # Metadata
    GET_TABLES = "getTables"
    GET_TABLE_TYPES = "getTableTypes"
    GET_SCHEMAS = "getSchemas"
    GET_CATALOGS = "getCatalogs"
    GET_COLUMNS = "getColumns"
    DATABASE_PROPERTIES = "databaseProperties"


class ResponseType:
    """Avatica response tag constants."""

    OPEN_CONNECTION = "openConnection"
    CLOSE_CONNECTION = "closeConnection"
    CONNECTION_SYNC = "connectionSync"
    CREATE_STATEMENT = "createStatement"
    CLOSE_STATEMENT = "closeStatement"
    PREPARE = "prepare"
    EXECUTE_RESULTS = "executeResults"
    FETCH = "fetch"
    EXECUTE_BATCH = "executeBatch"
    COMMIT = "commit"
    ROLLBACK = "rollback"
    RESULT_SET = "resultSet"
    DATABASE_PROPERTIES = "databaseProperties"
    ERROR = "error"


@dataclass
class AvaticaRequest:
    """
    Avatica request message.

    Attributes:
        request: Request tag (openConnection, prepare, fetch, ...)
        fields: Message body, serialized next to the tag
    """

    request: str
    fields: dict[str, Any] = field(default_factory=dict)

    @property
    def connection_id(self) -> str | None:
        value = self.fields.get("connectionId")
        if value is None and isinstance(self.fields.get("statementHandle"), dict):
            value = self.fields["statementHandle"].get("connectionId")
        return value

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {"request": self.request, **self.fields}

    def to_json(self) -> str:
        """Serialize to a JSON string."""
        return json.dumps(self.to_dict(), cls=AvaticaJSONEncoder)

    def to_protobuf(self) -> bytes:
        """Serialize to a protobuf ``WireMessage``."""
        return protobuf.encode_request(self.request, self.fields)

    # Connection

    @classmethod
    def open_connection(cls, connection_id: str, info: dict[str, str] | None = None) -> "AvaticaRequest":
        return cls(RequestType.OPEN_CONNECTION, {"connectionId": connection_id, "info": info or {}})

    @classmethod
    def close_connection(cls, connection_id: str) -> "AvaticaRequest":
        return cls(RequestType.CLOSE_CONNECTION, {"connectionId": connection_id})

    @classmethod
    def connection_sync(cls, connection_id: str, conn_props: dict[str, Any]) -> "AvaticaRequest":
        return cls(RequestType.CONNECTION_SYNC, {"connectionId": connection_id, "connProps": conn_props})

    # Statements

    @classmethod
    def create_statement(cls, connection_id: str) -> "AvaticaRequest":
        return cls(RequestType.CREATE_STATEMENT, {"connectionId": connection_id})

    @classmethod
    def close_statement(cls, connection_id: str, statement_id: int) -> "AvaticaRequest":
        return cls(RequestType.CLOSE_STATEMENT, {"connectionId": connection_id, "statementId": statement_id})

    @classmethod
    def prepare(cls, connection_id: str, sql: str, max_row_count: int | None = None) -> "AvaticaRequest":
        return cls(
            RequestType.PREPARE,
            {"connectionId": connection_id, "sql": sql, "maxRowCount": normalize_row_limit(max_row_count)},
        )

    # Execution

    @classmethod
    def prepare_and_execute(
        cls,
        connection_id: str,
        statement_id: int,
        sql: str,
        max_row_count: int | None = None,
    ) -> "AvaticaRequest":
        return cls(
            RequestType.PREPARE_AND_EXECUTE,
            {
                "connectionId": connection_id,
                "statementId": statement_id,
                "sql": sql,
                "maxRowCount": normalize_row_limit(max_row_count),
            },
        )

    @classmethod
    def execute(
        cls,
        statement_handle: dict[str, Any],
        parameter_values: Sequence[TypedValue] | None,
        max_row_count: int | None = None,
        has_parameter_values: bool = True,
    ) -> "AvaticaRequest":
        return cls(
            RequestType.EXECUTE,
            {
                "statementHandle": statement_handle,
                "parameterValues": [v.to_dict() for v in parameter_values or []] if has_parameter_values else None,
                "maxRowCount": normalize_row_limit(max_row_count),
            },
        )

    @classmethod
    def fetch(
        cls,
        connection_id: str,
        statement_id: int,
        offset: int,
        fetch_max_row_count: int | None = None,
    ) -> "AvaticaRequest":
        return cls(
            RequestType.FETCH,
            {
                "connectionId": connection_id,
                "statementId": statement_id,
                "offset": offset,
                "fetchMaxRowCount": normalize_row_limit(fetch_max_row_count, MAX_INT),
            },
        )

    @classmethod
    def prepare_and_execute_batch(
        cls, connection_id: str, statement_id: int, sql_commands: Iterable[str]
    ) -> "AvaticaRequest":
        return cls(
            RequestType.PREPARE_AND_EXECUTE_BATCH,
            {"connectionId": connection_id, "statementId": statement_id, "sqlCommands": list(sql_commands)},
        )

    @classmethod
    def execute_batch(
        cls,
        connection_id: str,
        statement_id: int,
        parameter_values: Iterable[Sequence[TypedValue]],
    ) -> "AvaticaRequest":
        return cls(
            RequestType.EXECUTE_BATCH,
            {
                "connectionId": connection_id,
                "statementId": statement_id,
                "parameterValues": [[v.to_dict() for v in values] for values in parameter_values],
            },
        )

    # Transactions

    @classmethod
    def commit(cls, connection_id: str) -> "AvaticaRequest":
        return cls(RequestType.COMMIT, {"connectionId": connection_id})

    @classmethod
    def rollback(cls, connection_id: str) -> "AvaticaRequest":
        return cls(RequestType.ROLLBACK, {"connectionId": connection_id})

    # Metadata

    @classmethod
    def get_tables(
        cls,
        connection_id: str,
        catalog: str | None = None,
        schema_pattern: str | None = None,
        table_name_pattern: str | None = None,
        type_list: Sequence[str] | None = None,
    ) -> "AvaticaRequest":
        return cls(
            RequestType.GET_TABLES,
            {
                "connectionId": connection_id,
                "catalog": catalog or None,
                "schemaPattern": schema_pattern or None,
                "tableNamePattern": table_name_pattern or None,
                "typeList": list(type_list) if type_list else None,
            },
        )

    @classmethod
    def get_table_types(cls, connection_id: str) -> "AvaticaRequest":
        return cls(RequestType.GET_TABLE_TYPES, {"connectionId": connection_id})

    @classmethod
    def get_schemas(
        cls, connection_id: str, catalog: str | None = None, schema_pattern: str | None = None
    ) -> "AvaticaRequest":
        return cls(
            RequestType.GET_SCHEMAS,
            {"connectionId": connection_id, "catalog": catalog or None, "schemaPattern": schema_pattern or None},
        )

    @classmethod
    def get_catalogs(cls, connection_id: str) -> "AvaticaRequest":
        return cls(RequestType.GET_CATALOGS, {"connectionId": connection_id})

    @classmethod
    def get_columns(
        cls,
        connection_id: str,
        catalog: str | None = None,
        schema_pattern: str | None = None,
        table_name_pattern: str | None = None,
        column_name_pattern: str | None = None,
    ) -> "AvaticaRequest":
        return cls(
            RequestType.GET_COLUMNS,
            {
                "connectionId": connection_id,
                "catalog": catalog or None,
                "schemaPattern": schema_pattern or None,
                "tableNamePattern": table_name_pattern or None,
                "columnNamePattern": column_name_pattern or None,
            },
        )

    @classmethod
    def database_properties(cls, connection_id: str) -> "AvaticaRequest":
        return cls(RequestType.DATABASE_PROPERTIES, {"connectionId": connection_id})


@dataclass
class AvaticaError:
    """
    Avatica ``error`` response.

    Attributes:
        message: Server diagnostic message
        code: Vendor error code
        sql_state: SQLSTATE
        severity: Severity tag (ERROR, FATAL, ...)
        exceptions: Server-side stack traces
    """

    message: str
    code: int | None = None
    sql_state: str | None = None
    severity: str | None = None
    exceptions: list[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "AvaticaError":
        return cls(
            message=data.get("errorMessage") or "Unknown error",
            code=data.get("errorCode"),
            sql_state=data.get("sqlState"),
            severity=data.get("severity"),
            exceptions=list(data.get("exceptions") or []),
        )

    @property
    def is_sequencing(self) -> bool:
        """True when the server rejected a handle rather than the SQL."""
        text = " ".join([self.message, *self.exceptions])
        return any(name in text for name in _SEQUENCING_EXCEPTIONS)

    def to_exception(self, request: AvaticaRequest | None = None) -> SequencingError | ServerError:
        """Build the SDK exception matching this error."""
        operation = request.request if request else None
        if self.is_sequencing:
            statement_id = request.fields.get("statementId") if request else None
            return SequencingError(
                self.message,
                connection_id=request.connection_id if request else None,
                statement_id=statement_id,
                operation=operation,
                code=self.code,
            )
        return ServerError(
            self.message,
            code=self.code,
            sql_state=self.sql_state,
            severity=self.severity,
            exceptions=self.exceptions,
            operation=operation,
        )


@dataclass
class AvaticaResponse:
    """
    Avatica response message.

    Attributes:
        response: Response tag
        data: Full decoded message
        error: Parsed error, for ``error`` responses
    """

    response: str
    data: dict[str, Any] = field(default_factory=dict)
    error: AvaticaError | None = None

    @property
    def is_error(self) -> bool:
        return self.error is not None

    @classmethod
    def from_dict(cls, data: Any) -> "AvaticaResponse":
        if not isinstance(data, dict) or not isinstance(data.get("response"), str):
            raise ProtocolError(f"Response is not an Avatica envelope: {data!r:.200}")
        error = AvaticaError.from_dict(data) if data["response"] == ResponseType.ERROR else None
        return cls(response=data["response"], data=data, error=error)

    @classmethod
    def from_json(cls, json_str: str | bytes) -> "AvaticaResponse":
        try:
            data = json.loads(json_str)
        except ValueError as e:
            raise ProtocolError(f"Response is not valid JSON: {e}") from e
        return cls.from_dict(data)

    @classmethod
    def from_protobuf(cls, payload: bytes) -> "AvaticaResponse":
        return cls.from_dict(protobuf.decode_response(payload))

    def expect(self, response_type: str) -> dict[str, Any]:
        """Return the message body, checking the response tag."""
        if self.response != response_type:
            raise ProtocolError(f"Expected '{response_type}' response, got '{self.response}'")
        return self.data

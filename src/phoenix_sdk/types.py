"""
Type definitions for Phoenix SDK requests and responses.

Provides strongly-typed wrappers around the Avatica JSON messages instead of raw dicts.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterator

from .exceptions import ProtocolError
from .protocol.values import Rep, TypedValue, decode_cell


@dataclass
class ConnectionProperties:
    """
    Session configuration pushed with ``connectionSync``.

    ``auto_commit`` and ``read_only`` are only sent when their presence flags are
    set. Nothing is pushed unless ``is_dirty`` is true; a clean object reads the
    server's current values back.
    """

    auto_commit: bool = False
    has_auto_commit: bool = False
    read_only: bool = False
    has_read_only: bool = False
    transaction_isolation: int = 0
    catalog: str = ""
    schema: str = ""
    is_dirty: bool = False

    @classmethod
    def for_session(
        cls,
        auto_commit: bool = True,
        read_only: bool = False,
        transaction_isolation: int = 0,
        catalog: str = "",
        schema: str = "",
    ) -> ConnectionProperties:
        """Build a dirty property set with both presence flags enabled."""
        return cls(
            auto_commit=auto_commit,
            has_auto_commit=True,
            read_only=read_only,
            has_read_only=True,
            transaction_isolation=transaction_isolation,
            catalog=catalog,
            schema=schema,
            is_dirty=True,
        )

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"connProps": "connPropsImpl"}
        if not self.is_dirty:
            return data
        if self.has_auto_commit:
            data["autoCommit"] = self.auto_commit
        if self.has_read_only:
            data["readOnly"] = self.read_only
        data["transactionIsolation"] = self.transaction_isolation
        # Empty catalog/schema means "leave unchanged"
        if self.catalog:
            data["catalog"] = self.catalog
        if self.schema:
            data["schema"] = self.schema
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> ConnectionProperties:
        data = data or {}
        auto_commit = data.get("autoCommit")
        read_only = data.get("readOnly")
        return cls(
            auto_commit=bool(auto_commit),
            has_auto_commit=auto_commit is not None,
            read_only=bool(read_only),
            has_read_only=read_only is not None,
            transaction_isolation=int(data.get("transactionIsolation") or 0),
            catalog=data.get("catalog") or "",
            schema=data.get("schema") or "",
            is_dirty=False,
        )


@dataclass
class RpcMetadata:
    """Server identification attached to most responses."""

    server_address: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> RpcMetadata | None:
        if not data:
            return None
        return cls(server_address=data.get("serverAddress"))


@dataclass
class ColumnMetaData:
    """Description of one result column."""

    ordinal: int
    column_name: str
    label: str = ""
    type_name: str = ""
    type_id: int | None = None
    rep: Rep | None = None
    nullable: int | None = None
    precision: int | None = None
    scale: int | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ColumnMetaData:
        type_info = data.get("type") or {}
        rep: Rep | None = None
        if type_info.get("rep"):
            try:
                rep = Rep(type_info["rep"])
            except ValueError:
                rep = None
        return cls(
            ordinal=int(data.get("ordinal", 0)),
            column_name=data.get("columnName", ""),
            label=data.get("label", "") or "",
            type_name=type_info.get("name", "") or "",
            type_id=type_info.get("id"),
            rep=rep,
            nullable=data.get("nullable"),
            precision=data.get("precision"),
            scale=data.get("scale"),
        )


@dataclass
class AvaticaParameter:
    """Description of one statement placeholder."""

    parameter_type: int | None = None
    type_name: str = ""
    class_name: str = ""
    name: str = ""

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AvaticaParameter:
        return cls(
            parameter_type=data.get("parameterType"),
            type_name=data.get("typeName", "") or "",
            class_name=data.get("className", "") or "",
            name=data.get("name", "") or "",
        )


@dataclass
class Signature:
    """
    Statement signature returned by prepare and query execution.

    ``raw`` keeps the server's object so it can be echoed back in execute requests.
    """

    columns: list[ColumnMetaData] = field(default_factory=list)
    parameters: list[AvaticaParameter] = field(default_factory=list)
    sql: str | None = None
    statement_type: str | None = None
    raw: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> Signature | None:
        if data is None:
            return None
        return cls(
            columns=[ColumnMetaData.from_dict(c) for c in data.get("columns") or []],
            parameters=[AvaticaParameter.from_dict(p) for p in data.get("parameters") or []],
            sql=data.get("sql"),
            statement_type=data.get("statementType"),
            raw=data,
        )

    @property
    def column_reps(self) -> list[Rep | None]:
        return [c.rep for c in self.columns]

    @property
    def column_names(self) -> list[str]:
        return [c.label or c.column_name for c in self.columns]


@dataclass(frozen=True)
class StatementHandle:
    """Server-assigned statement identity, scoped to one connection."""

    connection_id: str
    id: int
    signature: Signature | None = field(default=None, compare=False)

    def to_dict(self) -> dict[str, Any]:
        return {
            "connectionId": self.connection_id,
            "id": self.id,
            "signature": self.signature.raw if self.signature else None,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> StatementHandle:
        try:
            return cls(
                connection_id=data["connectionId"],
                id=int(data["id"]),
                signature=Signature.from_dict(data.get("signature")),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise ProtocolError(f"Malformed statement handle: {data!r}") from e


@dataclass(frozen=True)
class Row:
    """One result row: an ordered sequence of typed column values."""

    values: tuple[TypedValue, ...]

    def __getitem__(self, index: int) -> TypedValue:
        return self.values[index]

    def __len__(self) -> int:
        return len(self.values)

    def __iter__(self) -> Iterator[TypedValue]:
        return iter(self.values)

    def as_tuple(self) -> tuple[Any, ...]:
        """Python values of every column."""
        return tuple(v.value for v in self.values)


@dataclass(frozen=True)
class Frame:
    """
    One bounded page of a result set.

    Attributes:
        offset: Position of the first row within the full result
        done: True when no further frames exist
        rows: Rows in server order
    """

    offset: int
    done: bool
    rows: tuple[Row, ...] = ()

    @classmethod
    def from_dict(cls, data: dict[str, Any], signature: Signature | None = None) -> Frame:
        if not isinstance(data, dict):
            raise ProtocolError(f"Malformed frame: {data!r}")
        offset = int(data.get("offset", 0))
        if offset < 0:
            raise ProtocolError(f"Frame offset must be non-negative, got {offset}")
        reps = signature.column_reps if signature else []
        rows: list[Row] = []
        for raw_row in data.get("rows") or []:
            if not isinstance(raw_row, list):
                raise ProtocolError(f"Malformed frame row: {raw_row!r}")
            cells = tuple(decode_cell(cell, reps[i] if i < len(reps) else None) for i, cell in enumerate(raw_row))
            rows.append(Row(values=cells))
        return cls(offset=offset, done=bool(data.get("done", False)), rows=tuple(rows))

    @property
    def row_count(self) -> int:
        return len(self.rows)


@dataclass
class OpenConnectionResponse:
    """Acknowledgement of ``openConnection``."""

    connection_id: str
    rpc_metadata: RpcMetadata | None = None


@dataclass
class ResultSetResponse:
    """
    One execution result: an update count or a result set descriptor.

    Query results carry a signature and a first frame; DML results carry
    ``update_count`` and no frame.
    """

    connection_id: str
    statement_id: int
    own_statement: bool = False
    signature: Signature | None = None
    first_frame: Frame | None = None
    update_count: int = -1
    rpc_metadata: RpcMetadata | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ResultSetResponse:
        signature = Signature.from_dict(data.get("signature"))
        frame_data = data.get("firstFrame")
        try:
            return cls(
                connection_id=data["connectionId"],
                statement_id=int(data["statementId"]),
                own_statement=bool(data.get("ownStatement", False)),
                signature=signature,
                first_frame=Frame.from_dict(frame_data, signature) if frame_data is not None else None,
                update_count=int(data.get("updateCount", -1)),
                rpc_metadata=RpcMetadata.from_dict(data.get("rpcMetadata")),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise ProtocolError(f"Malformed result set: {e}") from e

    @property
    def is_update(self) -> bool:
        """True for DML/DDL results (no rows)."""
        return self.first_frame is None and self.signature is None

    @property
    def rows(self) -> tuple[Row, ...]:
        """Rows of the first frame."""
        return self.first_frame.rows if self.first_frame else ()

    @property
    def scalar(self) -> Any:
        """First column of the first row, e.g. the value of ``count(*)``."""
        if not self.rows or not len(self.rows[0]):
            return None
        return self.rows[0][0].value


@dataclass
class ExecuteResponse:
    """
    Response of ``execute``/``prepareAndExecute``.

    Contains one ResultSetResponse per statement result, in server order.
    """

    results: list[ResultSetResponse] = field(default_factory=list)
    missing_statement: bool = False
    rpc_metadata: RpcMetadata | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ExecuteResponse:
        return cls(
            results=[ResultSetResponse.from_dict(r) for r in data.get("results") or []],
            missing_statement=bool(data.get("missingStatement", False)),
            rpc_metadata=RpcMetadata.from_dict(data.get("rpcMetadata")),
        )

    @property
    def first_result(self) -> ResultSetResponse | None:
        return self.results[0] if self.results else None


@dataclass
class FetchResponse:
    """Response of ``fetch``."""

    frame: Frame
    missing_statement: bool = False
    missing_results: bool = False
    rpc_metadata: RpcMetadata | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any], signature: Signature | None = None) -> FetchResponse:
        if data.get("frame") is None:
            frame = Frame(offset=0, done=True)
        else:
            frame = Frame.from_dict(data["frame"], signature)
        return cls(
            frame=frame,
            missing_statement=bool(data.get("missingStatement", False)),
            missing_results=bool(data.get("missingResults", False)),
            rpc_metadata=RpcMetadata.from_dict(data.get("rpcMetadata")),
        )


class BatchItemStatus(str, Enum):
    """Outcome of a single batch item."""

    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"
    NOT_EXECUTED = "NOT_EXECUTED"


@dataclass
class BatchOutcome:
    """
    Result of one batch input, correlated by position.

    Attributes:
        index: Position of the input in the batch
        status: SUCCEEDED, FAILED or NOT_EXECUTED
        update_count: Rows affected, ``None`` when the server gave no count
    """

    index: int
    status: BatchItemStatus
    update_count: int | None = None

    @property
    def succeeded(self) -> bool:
        return self.status == BatchItemStatus.SUCCEEDED


@dataclass
class ExecuteBatchResponse:
    """Response of ``executeBatch``/``prepareAndExecuteBatch`` with per-item outcomes."""

    connection_id: str
    statement_id: int
    update_counts: list[int] = field(default_factory=list)
    outcomes: list[BatchOutcome] = field(default_factory=list)
    missing_statement: bool = False
    rpc_metadata: RpcMetadata | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ExecuteBatchResponse:
        try:
            return cls(
                connection_id=data["connectionId"],
                statement_id=int(data["statementId"]),
                update_counts=[int(c) for c in data.get("updateCounts") or []],
                missing_statement=bool(data.get("missingStatement", False)),
                rpc_metadata=RpcMetadata.from_dict(data.get("rpcMetadata")),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise ProtocolError(f"Malformed batch response: {e}") from e

    @property
    def all_succeeded(self) -> bool:
        return all(o.succeeded for o in self.outcomes)

    @property
    def failed(self) -> list[BatchOutcome]:
        return [o for o in self.outcomes if not o.succeeded]

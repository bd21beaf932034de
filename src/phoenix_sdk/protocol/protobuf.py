"""
Protobuf Encoding/Decoding for the Avatica Protocol.

The Phoenix Query Server serializes with protocol buffers unless it was
configured for JSON, and cluster gateways in front of it usually keep that
default. Every message travels inside a ``WireMessage`` naming the wrapped
type, e.g. ``org.apache.calcite.avatica.proto.Requests$FetchRequest``.

The Avatica schema (``common.proto``, ``requests.proto``, ``responses.proto``)
is assembled at import time from the field tables below and registered in a
private descriptor pool, so no generated ``_pb2`` modules are shipped.

Messages are converted to and from the same camelCase dictionaries the JSON
format uses, so everything above the transport is serialization-agnostic:
- Frame rows decode to bare cell payloads, typed later by the signature
- Unsigned wire fields carry ``-1`` as two's complement, as the server does
- ``has_*`` presence flags are folded into the presence of the JSON key
"""

from __future__ import annotations

import base64
from decimal import Decimal
from functools import cache
from typing import Any, Callable

from google.protobuf import descriptor_pb2, descriptor_pool, message_factory
from google.protobuf.descriptor import FieldDescriptor
from google.protobuf.message import DecodeError, Message

from ..exceptions import ProtocolError
from .values import BOOLEAN_REPS, CHAR_REPS, DECIMAL_REPS, FLOATING_REPS, INTEGRAL_REPS, TIMESTAMP_REPS, Rep

CONTENT_TYPE = "application/x-google-protobuf"

PACKAGE = "avatica"
REQUEST_PREFIX = "org.apache.calcite.avatica.proto.Requests$"
RESPONSE_PREFIX = "org.apache.calcite.avatica.proto.Responses$"

# Enum values in wire order
REP_NAMES = [
    "PRIMITIVE_BOOLEAN", "PRIMITIVE_BYTE", "PRIMITIVE_CHAR", "PRIMITIVE_SHORT",
    "PRIMITIVE_INT", "PRIMITIVE_LONG", "PRIMITIVE_FLOAT", "PRIMITIVE_DOUBLE",
    "BOOLEAN", "BYTE", "CHARACTER", "SHORT", "INTEGER", "LONG", "FLOAT", "DOUBLE",
    "JAVA_SQL_TIME", "JAVA_SQL_TIMESTAMP", "JAVA_SQL_DATE", "JAVA_UTIL_DATE",
    "BYTE_STRING", "STRING", "NUMBER", "OBJECT", "NULL", "BIG_INTEGER", "BIG_DECIMAL",
    "ARRAY", "STRUCT", "MULTISET",
]  # fmt: skip

_ENUMS: dict[str, list[str]] = {
    "Rep": REP_NAMES,
    "StatementType": [
        "SELECT", "INSERT", "UPDATE", "DELETE", "UPSERT", "MERGE",
        "OTHER_DML", "CREATE", "DROP", "ALTER", "OTHER_DDL", "CALL",
    ],  # fmt: skip
    "Severity": ["UNKNOWN_SEVERITY", "FATAL_SEVERITY", "ERROR_SEVERITY", "WARNING_SEVERITY"],
}
_NESTED_ENUMS: dict[str, tuple[str, list[str]]] = {
    "CursorFactory": ("Style", ["OBJECT", "RECORD", "RECORD_PROJECTION", "ARRAY", "LIST", "MAP"]),
}

# (field name, number, kind); "X[]" is repeated, "map" is map<string, string>
_MESSAGES: dict[str, list[tuple[str, int, str]]] = {
    "WireMessage": [("name", 1, "string"), ("wrapped_message", 2, "bytes")],
    # common.proto
    "RpcMetadata": [("server_address", 1, "string")],
    "ConnectionProperties": [
        ("is_dirty", 1, "bool"),
        ("auto_commit", 2, "bool"),
        ("has_auto_commit", 7, "bool"),
        ("read_only", 3, "bool"),
        ("has_read_only", 8, "bool"),
        ("transaction_isolation", 4, "uint32"),
        ("catalog", 5, "string"),
        ("schema", 6, "string"),
    ],
    "StatementHandle": [("connection_id", 1, "string"), ("id", 2, "uint32"), ("signature", 3, "Signature")],
    "Signature": [
        ("columns", 1, "ColumnMetaData[]"),
        ("sql", 2, "string"),
        ("parameters", 3, "AvaticaParameter[]"),
        ("cursor_factory", 4, "CursorFactory"),
        ("statementType", 5, "StatementType"),
    ],
    "ColumnMetaData": [
        ("ordinal", 1, "uint32"),
        ("auto_increment", 2, "bool"),
        ("case_sensitive", 3, "bool"),
        ("searchable", 4, "bool"),
        ("currency", 5, "bool"),
        ("nullable", 6, "uint32"),
        ("signed", 7, "bool"),
        ("display_size", 8, "uint32"),
        ("label", 9, "string"),
        ("column_name", 10, "string"),
        ("schema_name", 11, "string"),
        ("precision", 12, "uint32"),
        ("scale", 13, "uint32"),
        ("table_name", 14, "string"),
        ("catalog_name", 15, "string"),
        ("read_only", 16, "bool"),
        ("writable", 17, "bool"),
        ("definitely_writable", 18, "bool"),
        ("column_class_name", 19, "string"),
        ("type", 20, "AvaticaType"),
    ],
    "AvaticaType": [
        ("id", 1, "uint32"),
        ("name", 2, "string"),
        ("rep", 3, "Rep"),
        ("columns", 4, "ColumnMetaData[]"),
        ("component", 5, "AvaticaType"),
    ],
    "AvaticaParameter": [
        ("signed", 1, "bool"),
        ("precision", 2, "uint32"),
        ("scale", 3, "uint32"),
        ("parameter_type", 4, "uint32"),
        ("type_name", 5, "string"),
        ("class_name", 6, "string"),
        ("name", 7, "string"),
    ],
    "CursorFactory": [("style", 1, "CursorFactory.Style"), ("class_name", 2, "string"), ("field_names", 3, "string[]")],
    "Frame": [("offset", 1, "uint64"), ("done", 2, "bool"), ("rows", 3, "Row[]")],
    "Row": [("value", 1, "ColumnValue[]")],
    "DatabaseProperty": [("name", 1, "string"), ("functions", 2, "string[]")],
    "ColumnValue": [
        ("value", 1, "TypedValue[]"),
        ("array_value", 2, "TypedValue[]"),
        ("has_array_value", 3, "bool"),
        ("scalar_value", 4, "TypedValue"),
    ],
    "TypedValue": [
        ("type", 1, "Rep"),
        ("bool_value", 2, "bool"),
        ("string_value", 3, "string"),
        ("number_value", 4, "sint64"),
        ("bytes_value", 5, "bytes"),
        ("double_value", 6, "double"),
        ("null", 7, "bool"),
        ("array_value", 8, "TypedValue[]"),
        ("component_type", 9, "Rep"),
        ("implicitly_null", 10, "bool"),
    ],
    "UpdateBatch": [("parameter_values", 1, "TypedValue[]")],
    # requests.proto
    "OpenConnectionRequest": [("connection_id", 1, "string"), ("info", 2, "map")],
    "CloseConnectionRequest": [("connection_id", 1, "string")],
    "ConnectionSyncRequest": [("connection_id", 1, "string"), ("conn_props", 2, "ConnectionProperties")],
    "CreateStatementRequest": [("connection_id", 1, "string")],
    "CloseStatementRequest": [("connection_id", 1, "string"), ("statement_id", 2, "uint32")],
    "PrepareRequest": [
        ("connection_id", 1, "string"),
        ("sql", 2, "string"),
        ("max_row_count", 3, "uint64"),
        ("max_rows_total", 4, "int64"),
    ],
    "PrepareAndExecuteRequest": [
        ("connection_id", 1, "string"),
        ("sql", 2, "string"),
        ("max_row_count", 3, "uint64"),
        ("statement_id", 4, "uint32"),
        ("max_rows_total", 5, "int64"),
        ("first_frame_max_size", 6, "int32"),
    ],
    "ExecuteRequest": [
        ("statementHandle", 1, "StatementHandle"),
        ("parameter_values", 2, "TypedValue[]"),
        ("deprecated_first_frame_max_size", 3, "uint64"),
        ("has_parameter_values", 4, "bool"),
        ("first_frame_max_size", 5, "int32"),
    ],
    "FetchRequest": [
        ("connection_id", 1, "string"),
        ("statement_id", 2, "uint32"),
        ("offset", 3, "uint64"),
        ("fetch_max_row_count", 4, "uint32"),
        ("frame_max_size", 5, "int32"),
    ],
    "PrepareAndExecuteBatchRequest": [
        ("connection_id", 1, "string"),
        ("statement_id", 2, "uint32"),
        ("sql_commands", 3, "string[]"),
    ],
    "ExecuteBatchRequest": [
        ("connection_id", 1, "string"),
        ("statement_id", 2, "uint32"),
        ("updates", 3, "UpdateBatch[]"),
    ],
    "CommitRequest": [("connection_id", 1, "string")],
    "RollbackRequest": [("connection_id", 1, "string")],
    "TablesRequest": [
        ("catalog", 1, "string"),
        ("schema_pattern", 2, "string"),
        ("table_name_pattern", 3, "string"),
        ("type_list", 4, "string[]"),
        ("has_type_list", 6, "bool"),
        ("connection_id", 7, "string"),
    ],
    "TableTypesRequest": [("connection_id", 1, "string")],
    "SchemasRequest": [("catalog", 1, "string"), ("schema_pattern", 2, "string"), ("connection_id", 3, "string")],
    "CatalogsRequest": [("connection_id", 1, "string")],
    "ColumnsRequest": [
        ("catalog", 1, "string"),
        ("schema_pattern", 2, "string"),
        ("table_name_pattern", 3, "string"),
        ("column_name_pattern", 4, "string"),
        ("connection_id", 5, "string"),
    ],
    "DatabasePropertyRequest": [("connection_id", 1, "string")],
    # responses.proto
    "ResultSetResponse": [
        ("connection_id", 1, "string"),
        ("statement_id", 2, "uint32"),
        ("own_statement", 3, "bool"),
        ("signature", 4, "Signature"),
        ("first_frame", 5, "Frame"),
        ("update_count", 6, "uint64"),
        ("metadata", 7, "RpcMetadata"),
    ],
    "ExecuteResponse": [
        ("results", 1, "ResultSetResponse[]"),
        ("missing_statement", 2, "bool"),
        ("metadata", 3, "RpcMetadata"),
    ],
    "PrepareResponse": [("statement", 1, "StatementHandle"), ("metadata", 2, "RpcMetadata")],
    "FetchResponse": [
        ("frame", 1, "Frame"),
        ("missing_statement", 2, "bool"),
        ("missing_results", 3, "bool"),
        ("metadata", 4, "RpcMetadata"),
    ],
    "CreateStatementResponse": [
        ("connection_id", 1, "string"),
        ("statement_id", 2, "uint32"),
        ("metadata", 3, "RpcMetadata"),
    ],
    "CloseStatementResponse": [("metadata", 1, "RpcMetadata")],
    "OpenConnectionResponse": [("metadata", 1, "RpcMetadata")],
    "CloseConnectionResponse": [("metadata", 1, "RpcMetadata")],
    "ConnectionSyncResponse": [("conn_props", 1, "ConnectionProperties"), ("metadata", 2, "RpcMetadata")],
    "DatabasePropertyElement": [
        ("key", 1, "DatabaseProperty"),
        ("value", 2, "TypedValue"),
        ("metadata", 3, "RpcMetadata"),
    ],
    "DatabasePropertyResponse": [("props", 1, "DatabasePropertyElement[]"), ("metadata", 2, "RpcMetadata")],
    "ErrorResponse": [
        ("exceptions", 1, "string[]"),
        ("has_exceptions", 7, "bool"),
        ("error_message", 2, "string"),
        ("severity", 3, "Severity"),
        ("error_code", 4, "uint32"),
        ("sql_state", 5, "string"),
        ("metadata", 6, "RpcMetadata"),
    ],
    "ExecuteBatchResponse": [
        ("connection_id", 1, "string"),
        ("statement_id", 2, "uint32"),
        ("update_counts", 3, "uint64[]"),
        ("missing_statement", 4, "bool"),
        ("metadata", 5, "RpcMetadata"),
    ],
    "CommitResponse": [],
    "RollbackResponse": [],
}

REQUEST_MESSAGES = {
    "openConnection": "OpenConnectionRequest",
    "closeConnection": "CloseConnectionRequest",
    "connectionSync": "ConnectionSyncRequest",
    "createStatement": "CreateStatementRequest",
    "closeStatement": "CloseStatementRequest",
    "prepare": "PrepareRequest",
    "prepareAndExecute": "PrepareAndExecuteRequest",
    "execute": "ExecuteRequest",
    "fetch": "FetchRequest",
    "prepareAndExecuteBatch": "PrepareAndExecuteBatchRequest",
    "executeBatch": "ExecuteBatchRequest",
    "commit": "CommitRequest",
    "rollback": "RollbackRequest",
    "getTables": "TablesRequest",
    "getTableTypes": "TableTypesRequest",
    "getSchemas": "SchemasRequest",
    "getCatalogs": "CatalogsRequest",
    "getColumns": "ColumnsRequest",
    "databaseProperties": "DatabasePropertyRequest",
}

RESPONSE_MESSAGES = {
    "resultSet": "ResultSetResponse",
    "executeResults": "ExecuteResponse",
    "prepare": "PrepareResponse",
    "fetch": "FetchResponse",
    "createStatement": "CreateStatementResponse",
    "closeStatement": "CloseStatementResponse",
    "openConnection": "OpenConnectionResponse",
    "closeConnection": "CloseConnectionResponse",
    "connectionSync": "ConnectionSyncResponse",
    "databaseProperties": "DatabasePropertyResponse",
    "error": "ErrorResponse",
    "commit": "CommitResponse",
    "rollback": "RollbackResponse",
    "executeBatch": "ExecuteBatchResponse",
}

_REQUEST_TAGS = {name: tag for tag, name in REQUEST_MESSAGES.items()}
_RESPONSE_TAGS = {name: tag for tag, name in RESPONSE_MESSAGES.items()}

# Wire fields whose JSON key is not the camelCase of their name. Several
# fields may share one key; on decode the first non-default one wins.
_JSON_KEYS = {
    ("ConnectionProperties", "is_dirty"): "dirty",
    ("PrepareRequest", "max_rows_total"): "maxRowCount",
    ("PrepareAndExecuteRequest", "max_rows_total"): "maxRowCount",
    ("ExecuteRequest", "deprecated_first_frame_max_size"): "maxRowCount",
    ("ExecuteRequest", "first_frame_max_size"): "maxRowCount",
    ("FetchRequest", "frame_max_size"): "fetchMaxRowCount",
}

_F = descriptor_pb2.FieldDescriptorProto
_SCALAR_KINDS = {
    "string": _F.TYPE_STRING,
    "bytes": _F.TYPE_BYTES,
    "bool": _F.TYPE_BOOL,
    "double": _F.TYPE_DOUBLE,
    "int32": _F.TYPE_INT32,
    "int64": _F.TYPE_INT64,
    "uint32": _F.TYPE_UINT32,
    "uint64": _F.TYPE_UINT64,
    "sint64": _F.TYPE_SINT64,
}
_ENUM_KINDS = set(_ENUMS) | {f"{owner}.{name}" for owner, (name, _) in _NESTED_ENUMS.items()}
_UNSIGNED_BITS = {FieldDescriptor.TYPE_UINT32: 32, FieldDescriptor.TYPE_UINT64: 64}
_INTEGER_TYPES = {
    FieldDescriptor.TYPE_INT32,
    FieldDescriptor.TYPE_INT64,
    FieldDescriptor.TYPE_SINT64,
}

_NUMBER_REPS = INTEGRAL_REPS | TIMESTAMP_REPS | {Rep.JAVA_SQL_DATE, Rep.JAVA_SQL_TIME}


# =============================================================================
# Schema
# =============================================================================


def _add_field(message: descriptor_pb2.DescriptorProto, owner: str, name: str, number: int, kind: str) -> None:
    field = message.field.add(name=name, number=number, label=_F.LABEL_OPTIONAL)
    if kind == "map":
        entry_name = "".join(part.capitalize() for part in name.split("_")) + "Entry"
        entry = message.nested_type.add(name=entry_name)
        entry.options.map_entry = True
        entry.field.add(name="key", number=1, label=_F.LABEL_OPTIONAL, type=_F.TYPE_STRING)
        entry.field.add(name="value", number=2, label=_F.LABEL_OPTIONAL, type=_F.TYPE_STRING)
        field.label = _F.LABEL_REPEATED
        field.type = _F.TYPE_MESSAGE
        field.type_name = f".{PACKAGE}.{owner}.{entry_name}"
        return
    if kind.endswith("[]"):
        field.label = _F.LABEL_REPEATED
        kind = kind[:-2]
    if kind in _SCALAR_KINDS:
        field.type = _SCALAR_KINDS[kind]
        return
    field.type = _F.TYPE_ENUM if kind in _ENUM_KINDS else _F.TYPE_MESSAGE
    field.type_name = f".{PACKAGE}.{kind}"


def _build_pool() -> descriptor_pool.DescriptorPool:
    schema = descriptor_pb2.FileDescriptorProto(name="phoenix_sdk/avatica.proto", package=PACKAGE, syntax="proto3")
    for name, values in _ENUMS.items():
        enum = schema.enum_type.add(name=name)
        for number, value in enumerate(values):
            enum.value.add(name=value, number=number)
    for name, fields in _MESSAGES.items():
        message = schema.message_type.add(name=name)
        if name in _NESTED_ENUMS:
            enum_name, values = _NESTED_ENUMS[name]
            enum = message.enum_type.add(name=enum_name)
            for number, value in enumerate(values):
                enum.value.add(name=value, number=number)
        for field_name, number, kind in fields:
            _add_field(message, name, field_name, number, kind)

    pool = descriptor_pool.DescriptorPool()
    pool.AddSerializedFile(schema.SerializeToString())
    return pool


_POOL = _build_pool()


@cache
def message_class(name: str) -> type[Message]:
    """Message class of an Avatica message, e.g. ``message_class("FetchRequest")``."""
    return message_factory.GetMessageClass(_POOL.FindMessageTypeByName(f"{PACKAGE}.{name}"))


# =============================================================================
# Field conversion
# =============================================================================


def _json_key(owner: str, name: str) -> str:
    if (owner, name) in _JSON_KEYS:
        return _JSON_KEYS[(owner, name)]
    if name == "metadata":
        return "rpcMetadata"
    head, *rest = name.split("_")
    return head + "".join(part.capitalize() for part in rest)


def _is_map(field: FieldDescriptor) -> bool:
    return field.message_type is not None and field.message_type.GetOptions().map_entry


def _is_presence_flag(field: FieldDescriptor) -> bool:
    return field.name.startswith("has_") and field.name[4:] in field.containing_type.fields_by_name


def _presence_flag(field: FieldDescriptor) -> FieldDescriptor | None:
    return field.containing_type.fields_by_name.get(f"has_{field.name}")


def _scalar_to_wire(field: FieldDescriptor, value: Any) -> Any:
    if field.type == FieldDescriptor.TYPE_ENUM:
        name = str(value)
        if field.enum_type.name == "Severity" and not name.endswith("_SEVERITY"):
            name = f"{name}_SEVERITY"
        enum_value = field.enum_type.values_by_name.get(name)
        return enum_value.number if enum_value is not None else 0
    bits = _UNSIGNED_BITS.get(field.type)
    if bits:
        # -1 ("no limit", "not an update") travels as its two's complement
        return int(value) & ((1 << bits) - 1)
    if field.type in _INTEGER_TYPES:
        return int(value)
    if field.type == FieldDescriptor.TYPE_BOOL:
        return bool(value)
    if field.type == FieldDescriptor.TYPE_DOUBLE:
        return float(value)
    if field.type == FieldDescriptor.TYPE_BYTES:
        return bytes(value)
    return str(value)


def _scalar_from_wire(field: FieldDescriptor, value: Any) -> Any:
    if field.type == FieldDescriptor.TYPE_ENUM:
        enum_value = field.enum_type.values_by_number.get(value)
        if enum_value is None:
            return None
        if field.enum_type.name == "Severity":
            return enum_value.name.removesuffix("_SEVERITY")
        return enum_value.name
    bits = _UNSIGNED_BITS.get(field.type)
    if bits and value >= 1 << (bits - 1):
        return value - (1 << bits)
    return value


def _fill_fields(message: Message, data: dict[str, Any], skip: tuple[str, ...] = ()) -> None:
    descriptor = message.DESCRIPTOR
    for field in descriptor.fields:
        if field.name in skip or _is_presence_flag(field):
            continue
        value = data.get(_json_key(descriptor.name, field.name))
        if value is None:
            continue
        flag = _presence_flag(field)
        if flag is not None:
            setattr(message, flag.name, True)
        if _is_map(field):
            getattr(message, field.name).update({str(k): str(v) for k, v in value.items()})
        elif field.label == FieldDescriptor.LABEL_REPEATED:
            container = getattr(message, field.name)
            for item in value:
                if field.type == FieldDescriptor.TYPE_MESSAGE:
                    _fill(container.add(), item)
                else:
                    container.append(_scalar_to_wire(field, item))
        elif field.type == FieldDescriptor.TYPE_MESSAGE:
            child = getattr(message, field.name)
            child.SetInParent()
            _fill(child, value)
        else:
            setattr(message, field.name, _scalar_to_wire(field, value))


def _fields_to_dict(message: Message, skip: tuple[str, ...] = ()) -> dict[str, Any]:
    descriptor = message.DESCRIPTOR
    data: dict[str, Any] = {}
    for field in descriptor.fields:
        if field.name in skip or _is_presence_flag(field):
            continue
        flag = _presence_flag(field)
        if flag is not None and not getattr(message, flag.name):
            continue
        value = getattr(message, field.name)
        if _is_map(field):
            decoded: Any = dict(value)
        elif field.label == FieldDescriptor.LABEL_REPEATED:
            if field.type == FieldDescriptor.TYPE_MESSAGE:
                decoded = [_to_dict(item) for item in value]
            else:
                decoded = [_scalar_from_wire(field, item) for item in value]
        elif field.type == FieldDescriptor.TYPE_MESSAGE:
            if not message.HasField(field.name):
                continue
            decoded = _to_dict(value)
        else:
            decoded = _scalar_from_wire(field, value)
        key = _json_key(descriptor.name, field.name)
        if data.get(key) not in (None, 0):
            continue
        data[key] = decoded
    return data


# =============================================================================
# Typed values and frames
# =============================================================================


def _wire_rep(payload: Any) -> Rep:
    """Kind of a bare JSON payload with no column type to go by."""
    if payload is None:
        return Rep.NULL
    if isinstance(payload, bool):
        return Rep.BOOLEAN
    if isinstance(payload, int):
        return Rep.LONG
    if isinstance(payload, float):
        return Rep.DOUBLE
    if isinstance(payload, Decimal):
        return Rep.NUMBER
    if isinstance(payload, list):
        return Rep.ARRAY
    return Rep.STRING


def _fits(rep: Rep, payload: Any) -> bool:
    if rep in BOOLEAN_REPS:
        return isinstance(payload, bool)
    if rep in _NUMBER_REPS:
        return isinstance(payload, int) and not isinstance(payload, bool)
    if rep in FLOATING_REPS:
        return isinstance(payload, (int, float)) and not isinstance(payload, bool)
    if rep in DECIMAL_REPS:
        return isinstance(payload, (int, float, str, Decimal)) and not isinstance(payload, bool)
    if rep in CHAR_REPS or rep == Rep.BYTE_STRING:
        return isinstance(payload, str)
    if rep == Rep.ARRAY:
        return isinstance(payload, list)
    return False


def _as_rep(name: Any) -> Rep | None:
    try:
        return Rep(name) if name else None
    except ValueError:
        return None


def _fill_typed_value(message: Any, rep: Rep | None, payload: Any, component: Rep | None = None) -> None:
    if payload is None or rep == Rep.NULL:
        message.type = REP_NAMES.index(Rep.NULL.value)
        message.null = True
        return
    if rep is None or not _fits(rep, payload):
        rep = _wire_rep(payload)
    message.type = REP_NAMES.index(rep.value)
    match rep:
        case _ if rep in BOOLEAN_REPS:
            message.bool_value = payload
        case _ if rep in _NUMBER_REPS:
            message.number_value = payload
        case _ if rep in FLOATING_REPS:
            message.double_value = float(payload)
        case _ if rep in DECIMAL_REPS:
            message.string_value = str(payload)
        case Rep.BYTE_STRING:
            message.bytes_value = base64.b64decode(payload)
        case Rep.ARRAY:
            if component is not None:
                message.component_type = REP_NAMES.index(component.value)
            for item in payload:
                _fill_typed_value(message.array_value.add(), component, item)
        case _:
            message.string_value = str(payload)


def _typed_payload(message: Any) -> tuple[Rep, Any]:
    """Kind and bare JSON payload of a ``TypedValue`` message."""
    rep = _as_rep(REP_NAMES[message.type] if message.type < len(REP_NAMES) else None) or Rep.OBJECT
    if message.null or rep == Rep.NULL:
        return Rep.NULL, None
    match rep:
        case _ if rep in BOOLEAN_REPS:
            return rep, message.bool_value
        case _ if rep in _NUMBER_REPS:
            return rep, message.number_value
        case _ if rep in FLOATING_REPS:
            return rep, message.double_value
        case _ if rep in DECIMAL_REPS:
            if message.string_value:
                return rep, message.string_value
            if message.double_value:
                return rep, message.double_value
            return rep, message.number_value
        case _ if rep in CHAR_REPS:
            return rep, message.string_value
        case Rep.BYTE_STRING:
            if message.bytes_value:
                return rep, base64.b64encode(message.bytes_value).decode("ascii")
            return rep, message.string_value
        case Rep.ARRAY:
            return rep, [_typed_payload(item)[1] for item in message.array_value]
        case _:
            if message.string_value:
                return rep, message.string_value
            if message.double_value:
                return rep, message.double_value
            if message.number_value:
                return rep, message.number_value
            return rep, message.bool_value


def _encode_typed_value(message: Any, data: Any) -> None:
    if hasattr(data, "to_dict"):
        data = data.to_dict()
    _fill_typed_value(message, _as_rep(data.get("type")), data.get("value"), _as_rep(data.get("componentType")))


def _decode_typed_value(message: Any) -> dict[str, Any]:
    rep, payload = _typed_payload(message)
    if rep == Rep.NULL:
        return {"type": Rep.NULL.value}
    data: dict[str, Any] = {"type": rep.value, "value": payload}
    if rep == Rep.ARRAY and message.component_type:
        data["componentType"] = REP_NAMES[message.component_type]
    return data


def _decode_column_value(message: Any) -> Any:
    if message.HasField("scalar_value"):
        return _typed_payload(message.scalar_value)[1]
    if message.has_array_value:
        return [_typed_payload(item)[1] for item in message.array_value]
    if message.value:
        # servers before Avatica 1.8 only fill the repeated field
        return _typed_payload(message.value[0])[1]
    return None


def _fill_frame(message: Any, data: dict[str, Any], reps: list[Rep | None]) -> None:
    message.offset = _scalar_to_wire(message.DESCRIPTOR.fields_by_name["offset"], data.get("offset") or 0)
    message.done = bool(data.get("done", False))
    for cells in data.get("rows") or []:
        row = message.rows.add()
        for index, cell in enumerate(cells):
            column = row.value.add()
            if isinstance(cell, list):
                column.has_array_value = True
                for item in cell:
                    _fill_typed_value(column.array_value.add(), None, item)
            else:
                _fill_typed_value(column.scalar_value, reps[index] if index < len(reps) else None, cell)


def _signature_reps(signature: dict[str, Any] | None) -> list[Rep | None]:
    if not signature:
        return []
    return [_as_rep((column.get("type") or {}).get("rep")) for column in signature.get("columns") or []]


# =============================================================================
# Messages with a JSON shape of their own
# =============================================================================


def _encode_result_set(message: Any, data: dict[str, Any]) -> None:
    _fill_fields(message, data, skip=("first_frame",))
    if data.get("firstFrame") is not None:
        _fill_frame(message.first_frame, data["firstFrame"], _signature_reps(data.get("signature")))


def _encode_connection_properties(message: Any, data: dict[str, Any]) -> None:
    _fill_fields(message, data)
    if "dirty" not in data:
        message.is_dirty = any(key not in ("connProps", "dirty") for key in data)


def _decode_connection_properties(message: Any) -> dict[str, Any]:
    return {"connProps": "connPropsImpl", **_fields_to_dict(message)}


def _encode_execute_batch(message: Any, data: dict[str, Any]) -> None:
    _fill_fields(message, data, skip=("updates",))
    for values in data.get("parameterValues") or []:
        batch = message.updates.add()
        for value in values:
            _encode_typed_value(batch.parameter_values.add(), value)


def _decode_execute_batch(message: Any) -> dict[str, Any]:
    data = _fields_to_dict(message, skip=("updates",))
    data["parameterValues"] = [[_decode_typed_value(v) for v in batch.parameter_values] for batch in message.updates]
    return data


def _encode_database_properties(message: Any, data: dict[str, Any]) -> None:
    _fill_fields(message, data, skip=("props",))
    for name, value in (data.get("map") or {}).items():
        element = message.props.add()
        element.key.name = name
        if isinstance(value, dict) and "type" in value:
            _encode_typed_value(element.value, value)
        else:
            _fill_typed_value(element.value, None, value)


def _decode_database_properties(message: Any) -> dict[str, Any]:
    data = _fields_to_dict(message, skip=("props",))
    data["map"] = {element.key.name: _decode_typed_value(element.value) for element in message.props}
    return data


_ENCODERS: dict[str, Callable[[Any, Any], None]] = {
    "TypedValue": _encode_typed_value,
    "Frame": lambda message, data: _fill_frame(message, data, []),
    "ResultSetResponse": _encode_result_set,
    "ConnectionProperties": _encode_connection_properties,
    "ExecuteBatchRequest": _encode_execute_batch,
    "DatabasePropertyResponse": _encode_database_properties,
}

_DECODERS: dict[str, Callable[[Any], Any]] = {
    "TypedValue": _decode_typed_value,
    "ColumnValue": _decode_column_value,
    "Row": lambda message: [_decode_column_value(value) for value in message.value],
    "ConnectionProperties": _decode_connection_properties,
    "ExecuteBatchRequest": _decode_execute_batch,
    "DatabasePropertyResponse": _decode_database_properties,
}


def _fill(message: Message, data: Any) -> None:
    encoder = _ENCODERS.get(message.DESCRIPTOR.name)
    if encoder is not None:
        encoder(message, data)
    else:
        _fill_fields(message, data)


def _to_dict(message: Message) -> Any:
    decoder = _DECODERS.get(message.DESCRIPTOR.name)
    if decoder is not None:
        return decoder(message)
    return _fields_to_dict(message)


# =============================================================================
# Wire messages
# =============================================================================


def _wrap(prefix: str, name: str, data: dict[str, Any]) -> bytes:
    message = message_class(name)()
    _fill(message, data)
    wire: Any = message_class("WireMessage")()
    wire.name = prefix + name
    wire.wrapped_message = message.SerializeToString()
    return wire.SerializeToString()


def _unwrap(payload: bytes, tags: dict[str, str]) -> tuple[str, Message]:
    try:
        wire: Any = message_class("WireMessage")()
        wire.ParseFromString(payload)
        name = wire.name.rpartition("$")[2]
        if name not in tags:
            raise ProtocolError(f"Unknown Avatica message '{wire.name}'")
        message = message_class(name)()
        message.ParseFromString(wire.wrapped_message)
    except DecodeError as e:
        raise ProtocolError(f"Not a valid Avatica protobuf message: {e}") from e
    return tags[name], message


def encode_request(request: str, fields: dict[str, Any]) -> bytes:
    """
    Encode a request body as a serialized ``WireMessage``.

    Args:
        request: Request tag, e.g. ``"fetch"``
        fields: The JSON-shaped request body, without the tag

    Raises:
        ProtocolError: If the request has no protobuf form
    """
    if request not in REQUEST_MESSAGES:
        raise ProtocolError(f"No protobuf message for request '{request}'")
    return _wrap(REQUEST_PREFIX, REQUEST_MESSAGES[request], fields)


def decode_response(payload: bytes) -> dict[str, Any]:
    """
    Decode a serialized ``WireMessage`` into a JSON-shaped response.

    Raises:
        ProtocolError: If the bytes are not a known Avatica response
    """
    tag, message = _unwrap(payload, _RESPONSE_TAGS)
    return {"response": tag, **_to_dict(message)}


def encode_response(data: dict[str, Any]) -> bytes:
    """Encode a JSON-shaped response (tagged by ``"response"``) as a ``WireMessage``."""
    tag = data.get("response")
    if tag not in RESPONSE_MESSAGES:
        raise ProtocolError(f"No protobuf message for response '{tag}'")
    return _wrap(RESPONSE_PREFIX, RESPONSE_MESSAGES[tag], data)


def decode_request(payload: bytes) -> dict[str, Any]:
    """Decode a serialized request ``WireMessage`` into a JSON-shaped body tagged by ``"request"``."""
    tag, message = _unwrap(payload, _REQUEST_TAGS)
    return {"request": tag, **_to_dict(message)}

"""
Typed value encoding for the Avatica JSON protocol.

Avatica carries every parameter and cell as a ``TypedValue``: a representation
kind (``Rep``) plus a payload whose wire form depends on the kind.

Wire forms used here:
- NULL: no value
- BYTE_STRING: base64 string
- JAVA_SQL_DATE: days since 1970-01-01
- JAVA_SQL_TIME: milliseconds since midnight
- JAVA_SQL_TIMESTAMP / JAVA_UTIL_DATE: milliseconds since the epoch
- NUMBER / BIG_DECIMAL: JSON number
- ARRAY: JSON array of element payloads plus ``componentType``
"""

from __future__ import annotations

import base64
from dataclasses import dataclass
from datetime import UTC, date, datetime, time, timedelta
from decimal import Decimal
from enum import StrEnum
from typing import Any

from ..exceptions import ValidationError

EPOCH = datetime(1970, 1, 1)
EPOCH_DATE = date(1970, 1, 1)
MS_PER_DAY = 86_400_000


class Rep(StrEnum):
    """Avatica value representation kinds."""

    PRIMITIVE_BOOLEAN = "PRIMITIVE_BOOLEAN"
    PRIMITIVE_BYTE = "PRIMITIVE_BYTE"
    PRIMITIVE_CHAR = "PRIMITIVE_CHAR"
    PRIMITIVE_SHORT = "PRIMITIVE_SHORT"
    PRIMITIVE_INT = "PRIMITIVE_INT"
    PRIMITIVE_LONG = "PRIMITIVE_LONG"
    PRIMITIVE_FLOAT = "PRIMITIVE_FLOAT"
    PRIMITIVE_DOUBLE = "PRIMITIVE_DOUBLE"
    BOOLEAN = "BOOLEAN"
    BYTE = "BYTE"
    CHARACTER = "CHARACTER"
    SHORT = "SHORT"
    INTEGER = "INTEGER"
    LONG = "LONG"
    FLOAT = "FLOAT"
    DOUBLE = "DOUBLE"
    BIG_INTEGER = "BIG_INTEGER"
    BIG_DECIMAL = "BIG_DECIMAL"
    JAVA_SQL_TIME = "JAVA_SQL_TIME"
    JAVA_SQL_TIMESTAMP = "JAVA_SQL_TIMESTAMP"
    JAVA_SQL_DATE = "JAVA_SQL_DATE"
    JAVA_UTIL_DATE = "JAVA_UTIL_DATE"
    BYTE_STRING = "BYTE_STRING"
    STRING = "STRING"
    NUMBER = "NUMBER"
    ARRAY = "ARRAY"
    STRUCT = "STRUCT"
    MULTISET = "MULTISET"
    OBJECT = "OBJECT"
    NULL = "NULL"


BOOLEAN_REPS = frozenset({Rep.PRIMITIVE_BOOLEAN, Rep.BOOLEAN})
INTEGRAL_REPS = frozenset(
    {
        Rep.PRIMITIVE_BYTE,
        Rep.PRIMITIVE_SHORT,
        Rep.PRIMITIVE_INT,
        Rep.PRIMITIVE_LONG,
        Rep.BYTE,
        Rep.SHORT,
        Rep.INTEGER,
        Rep.LONG,
        Rep.BIG_INTEGER,
    }
)
FLOATING_REPS = frozenset({Rep.PRIMITIVE_FLOAT, Rep.PRIMITIVE_DOUBLE, Rep.FLOAT, Rep.DOUBLE})
DECIMAL_REPS = frozenset({Rep.NUMBER, Rep.BIG_DECIMAL})
CHAR_REPS = frozenset({Rep.PRIMITIVE_CHAR, Rep.CHARACTER, Rep.STRING})
TIMESTAMP_REPS = frozenset({Rep.JAVA_SQL_TIMESTAMP, Rep.JAVA_UTIL_DATE})
OPAQUE_REPS = frozenset({Rep.OBJECT, Rep.STRUCT, Rep.MULTISET})


@dataclass(frozen=True)
class TypedValue:
    """
    A single typed value as exchanged with the server.

    Attributes:
        rep: Representation kind
        value: Python value (``date``, ``bytes``, ``Decimal``, ...)
        raw: Wire payload as it appears in the JSON envelope
        component_rep: Element kind for ``ARRAY`` values
    """

    rep: Rep
    value: Any = None
    raw: Any = None
    component_rep: Rep | None = None

    @property
    def is_null(self) -> bool:
        return self.rep == Rep.NULL

    # Constructors for the common kinds

    @classmethod
    def null(cls) -> TypedValue:
        return cls(rep=Rep.NULL)

    @classmethod
    def string(cls, value: str) -> TypedValue:
        return cls.from_python(value, Rep.STRING)

    @classmethod
    def number(cls, value: int | float | Decimal) -> TypedValue:
        return cls.from_python(value, Rep.NUMBER)

    @classmethod
    def long(cls, value: int) -> TypedValue:
        return cls.from_python(value, Rep.LONG)

    @classmethod
    def double(cls, value: float) -> TypedValue:
        return cls.from_python(value, Rep.DOUBLE)

    @classmethod
    def boolean(cls, value: bool) -> TypedValue:
        return cls.from_python(value, Rep.BOOLEAN)

    @classmethod
    def byte_string(cls, value: bytes) -> TypedValue:
        return cls.from_python(value, Rep.BYTE_STRING)

    @classmethod
    def of(cls, value: Any) -> TypedValue:
        """Build a typed value, choosing the kind from the Python type."""
        if isinstance(value, TypedValue):
            return value
        return cls.from_python(value, infer_rep(value))

    @classmethod
    def from_python(cls, value: Any, rep: Rep) -> TypedValue:
        """Build a typed value of an explicit kind from a Python value."""
        if value is None:
            return cls.null()
        component: Rep | None = None
        if rep == Rep.ARRAY:
            component = _component_rep(value)
        raw = encode_payload(value, rep)
        return cls(rep=rep, value=value, raw=raw, component_rep=component)

    # Wire conversion

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the Avatica JSON ``TypedValue`` object."""
        if self.rep == Rep.NULL:
            return {"type": Rep.NULL.value}
        data: dict[str, Any] = {"type": self.rep.value, "value": self.raw}
        if self.rep == Rep.ARRAY:
            data["componentType"] = (self.component_rep or Rep.OBJECT).value
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> TypedValue:
        """Parse an Avatica JSON ``TypedValue`` object."""
        try:
            rep = Rep(data.get("type", Rep.OBJECT.value))
        except ValueError as e:
            raise ValidationError(f"Unknown value representation: {data.get('type')!r}") from e
        raw = data.get("value")
        component: Rep | None = None
        if "componentType" in data:
            component = Rep(data["componentType"])
        if rep == Rep.NULL or raw is None:
            return cls.null()
        return cls(rep=rep, value=decode_payload(raw, rep, component), raw=raw, component_rep=component)


def infer_rep(value: Any) -> Rep:
    """Choose a representation kind for a Python value."""
    # bool before int, datetime before date: both are subclasses
    if value is None:
        return Rep.NULL
    if isinstance(value, bool):
        return Rep.BOOLEAN
    if isinstance(value, int):
        return Rep.LONG
    if isinstance(value, float):
        return Rep.DOUBLE
    if isinstance(value, Decimal):
        return Rep.NUMBER
    if isinstance(value, str):
        return Rep.STRING
    if isinstance(value, (bytes, bytearray, memoryview)):
        return Rep.BYTE_STRING
    if isinstance(value, datetime):
        return Rep.JAVA_SQL_TIMESTAMP
    if isinstance(value, date):
        return Rep.JAVA_SQL_DATE
    if isinstance(value, time):
        return Rep.JAVA_SQL_TIME
    if isinstance(value, (list, tuple)):
        return Rep.ARRAY
    raise ValidationError(f"Cannot encode value of type {type(value).__name__}")


def _component_rep(values: Any) -> Rep:
    for item in values:
        if item is not None:
            return infer_rep(item)
    return Rep.OBJECT


def _timestamp_millis(value: datetime) -> int:
    if value.tzinfo is not None:
        value = value.astimezone(UTC).replace(tzinfo=None)
    delta = value - EPOCH
    return delta.days * MS_PER_DAY + delta.seconds * 1000 + delta.microseconds // 1000


def encode_payload(value: Any, rep: Rep) -> Any:
    """Convert a Python value to the wire payload for ``rep``."""
    if value is None:
        return None
    try:
        match rep:
            case Rep.NULL:
                return None
            case _ if rep in BOOLEAN_REPS:
                return bool(value)
            case _ if rep in INTEGRAL_REPS:
                return int(value)
            case _ if rep in FLOATING_REPS:
                return float(value)
            case _ if rep in DECIMAL_REPS:
                if isinstance(value, bool):
                    raise TypeError("bool is not a number")
                if isinstance(value, Decimal):
                    return int(value) if value == value.to_integral_value() else float(value)
                if isinstance(value, (int, float)):
                    return value
                raise TypeError(f"{type(value).__name__} is not a number")
            case _ if rep in CHAR_REPS:
                if not isinstance(value, str):
                    raise TypeError(f"{type(value).__name__} is not a string")
                return value
            case Rep.BYTE_STRING:
                return base64.b64encode(bytes(value)).decode("ascii")
            case Rep.JAVA_SQL_DATE:
                if isinstance(value, datetime):
                    value = value.date()
                return (value - EPOCH_DATE).days
            case Rep.JAVA_SQL_TIME:
                return ((value.hour * 60 + value.minute) * 60 + value.second) * 1000 + value.microsecond // 1000
            case _ if rep in TIMESTAMP_REPS:
                return _timestamp_millis(value)
            case Rep.ARRAY:
                component = _component_rep(value)
                return [encode_payload(item, component) for item in value]
            case _:
                return value
    except (TypeError, ValueError, AttributeError) as e:
        raise ValidationError(f"Cannot encode {value!r} as {rep.value}: {e}") from e


def decode_payload(raw: Any, rep: Rep, component_rep: Rep | None = None) -> Any:
    """Convert a wire payload of kind ``rep`` to a Python value."""
    if raw is None:
        return None
    match rep:
        case Rep.NULL:
            return None
        case _ if rep in BOOLEAN_REPS:
            return bool(raw)
        case _ if rep in INTEGRAL_REPS:
            return int(raw)
        case _ if rep in FLOATING_REPS:
            return float(raw)
        case _ if rep in DECIMAL_REPS:
            if isinstance(raw, bool):
                return raw
            if isinstance(raw, int):
                return raw
            return Decimal(str(raw))
        case _ if rep in CHAR_REPS:
            return str(raw)
        case Rep.BYTE_STRING:
            return base64.b64decode(raw)
        case Rep.JAVA_SQL_DATE:
            return EPOCH_DATE + timedelta(days=int(raw))
        case Rep.JAVA_SQL_TIME:
            millis = int(raw) % MS_PER_DAY
            return (datetime.min + timedelta(milliseconds=millis)).time()
        case _ if rep in TIMESTAMP_REPS:
            return EPOCH + timedelta(milliseconds=int(raw))
        case Rep.ARRAY:
            if not isinstance(raw, list):
                return raw
            if component_rep is None:
                return [decode_cell(item).value for item in raw]
            return [decode_payload(item, component_rep) for item in raw]
        case _:
            return raw


def decode_cell(raw: Any, rep: Rep | None = None) -> TypedValue:
    """
    Decode a frame cell into a TypedValue.

    Frame rows carry bare JSON cells; the column representation comes from the
    statement signature. Without one (or for ``OBJECT`` columns) the kind is
    inferred from the JSON type.
    """
    if raw is None:
        return TypedValue.null()
    if isinstance(raw, dict) and "type" in raw:
        return TypedValue.from_dict(raw)
    if rep is None or rep in OPAQUE_REPS:
        inferred = _infer_wire_rep(raw)
        if inferred is None:
            return TypedValue(rep=rep or Rep.OBJECT, value=raw, raw=raw)
        rep = inferred
    return TypedValue(rep=rep, value=decode_payload(raw, rep), raw=raw)


def _infer_wire_rep(raw: Any) -> Rep | None:
    if isinstance(raw, bool):
        return Rep.BOOLEAN
    if isinstance(raw, int):
        return Rep.LONG
    if isinstance(raw, float):
        return Rep.DOUBLE
    if isinstance(raw, str):
        return Rep.STRING
    if isinstance(raw, list):
        return Rep.ARRAY
    return None

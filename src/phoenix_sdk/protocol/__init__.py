"""
Phoenix SDK Protocol Module.

Implements the Avatica protocol spoken by the Phoenix Query Server, in both
its JSON and protobuf wire formats.
"""

from . import protobuf
from .rpc import (
    UNLIMITED,
    AvaticaError,
    AvaticaRequest,
    AvaticaResponse,
    RequestType,
    ResponseType,
    normalize_row_limit,
)
from .values import Rep, TypedValue, decode_cell, infer_rep

__all__ = [
    # Wire formats
    "protobuf",
    # RPC
    "AvaticaRequest",
    "AvaticaResponse",
    "AvaticaError",
    "RequestType",
    "ResponseType",
    "UNLIMITED",
    "normalize_row_limit",
    # Values
    "Rep",
    "TypedValue",
    "decode_cell",
    "infer_rep",
]

"""
Phoenix SDK Connection Module.

Provides endpoint resolution, request options and the HTTP transport.
"""

from .base import BaseTransport
from .endpoint import EndpointResolver
from .http import HTTPTransport
from .options import RequestOptions

__all__ = [
    "BaseTransport",
    "EndpointResolver",
    "HTTPTransport",
    "RequestOptions",
]

"""
millennium package
------------------

Client library for the HTTP RPC interface of the Millennium ERP.
Importing ``millennium`` exposes the :class:`Millennium` client, the
authentication schemes and the error classes.
"""

from millennium.clients.millennium_client import Millennium
from millennium.core.auth import AuthType
from millennium.core.context import CancelScope
from millennium.core.http_sync import HttpMethod, RequestMethod, RetryPolicy
from millennium.exceptions import (
    ConfigurationError,
    ConnectivityError,
    DecodeError,
    MillenniumError,
    RemoteApplicationError,
    TransportError,
    ValidationError,
)
from millennium.schemas.envelopes import ListResult, ObjectResult

__version__ = "1.0.0"

__all__ = [
    "Millennium",
    "AuthType",
    "CancelScope",
    "HttpMethod",
    "RequestMethod",
    "RetryPolicy",
    "ListResult",
    "ObjectResult",
    "MillenniumError",
    "ConfigurationError",
    "ValidationError",
    "ConnectivityError",
    "TransportError",
    "RemoteApplicationError",
    "DecodeError",
]

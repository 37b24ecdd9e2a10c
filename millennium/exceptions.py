"""
exceptions.py
-------------

Error taxonomy for the Millennium client.

Every failure raised by the package derives from :class:`MillenniumError`
so applications can catch the whole family in one place.  The concrete
classes separate problems detected before any network I/O
(:class:`ConfigurationError`, :class:`ValidationError`), failures to
reach the server (:class:`ConnectivityError`, :class:`TransportError`),
application-level rejections reported by Millennium itself
(:class:`RemoteApplicationError`) and protocol drift
(:class:`DecodeError`).
"""

from __future__ import annotations

from typing import Optional


class MillenniumError(Exception):
    """Base class for all errors raised by the client."""


class ConfigurationError(MillenniumError):
    """Invalid client configuration (server address, timeout, ...)."""


class ValidationError(ConfigurationError):
    """A request descriptor failed validation before being sent."""


class ConnectivityError(MillenniumError):
    """The construction-time reachability probe could not reach the server."""

    def __init__(self, host: str, port: int, detail: str) -> None:
        self.host = host
        self.port = port
        super().__init__(f"Cannot reach Millennium at {host}:{port}: {detail}")


class TransportError(MillenniumError):
    """Network failure, timeout or cancellation while dispatching a call.

    ``kind`` is one of ``"network"``, ``"timeout"`` or ``"cancelled"``.
    The original ``httpx`` exception, when there is one, is chained as
    ``__cause__``.
    """

    NETWORK = "network"
    TIMEOUT = "timeout"
    CANCELLED = "cancelled"

    def __init__(self, method: str, kind: str, detail: str, attempts: int = 0) -> None:
        self.method = method
        self.kind = kind
        self.attempts = attempts
        super().__init__(f"{method}: {detail}")


class RemoteApplicationError(MillenniumError):
    """Millennium answered with an HTTP error status and an error envelope.

    The string form is the message sent by the server, so it can be shown
    to users as is.  ``code`` keeps the numeric code for programmatic
    matching.
    """

    def __init__(self, message: str, code: int, lang: str = "", status_code: int = 0) -> None:
        self.message = message
        self.code = code
        self.lang = lang
        self.status_code = status_code
        super().__init__(message)

    def __str__(self) -> str:
        return self.message


class DecodeError(MillenniumError):
    """A response body could not be decoded into the expected shape."""

    def __init__(self, detail: str, status_code: int = 0, content: Optional[bytes] = None) -> None:
        self.status_code = status_code
        self.content = content
        super().__init__(detail)

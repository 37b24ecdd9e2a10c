"""
core/connectivity.py
--------------------

One-shot TCP reachability probe used when a client is constructed, so
an unreachable server is reported immediately instead of on the first
call.
"""

from __future__ import annotations

import socket

import httpx

from millennium.exceptions import ConnectivityError
from millennium.logging_config import log_event

DEFAULT_PORTS = {"http": 80, "https": 443}


def probe(url: httpx.URL, timeout: float) -> None:
    """Open and close a TCP connection to the host and port of ``url``.

    :raises ConnectivityError: if no connection could be established
        within ``timeout`` seconds
    """
    host = url.host
    port = url.port or DEFAULT_PORTS.get(url.scheme, 80)
    try:
        conn = socket.create_connection((host, port), timeout=timeout)
    except OSError as exc:
        log_event("connectivity_failed", host=host, port=port, detail=str(exc))
        raise ConnectivityError(host, port, str(exc) or type(exc).__name__) from exc
    conn.close()
    log_event("connectivity_ok", host=host, port=port)

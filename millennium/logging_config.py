"""
logging_config.py
------------------

Shared logger and structured logging helpers for the Millennium client.

The package uses Python's built-in ``logging`` module and serialises
every message as JSON so log lines can be parsed downstream.  Being a
library, it does not install handlers on import; applications that
want output on stdout can call :func:`setup_logging` once at startup.

Session tokens, passwords and the ``WTS-*`` authentication headers are
stripped before anything reaches the logs.
"""

from __future__ import annotations

import json
import logging
import sys
from typing import Any, Dict

# Module level logger.  Code elsewhere imports this instead of creating
# new Logger instances.
logger = logging.getLogger("millennium")

# Header names (lower-case) that must never be logged
SENSITIVE_HEADERS = {"authorization", "wts-authorization", "wts-session"}


def setup_logging(level: int = logging.INFO) -> None:
    """Send ``millennium`` log records to stdout.

    Records are formatted with a timestamp, the level and the raw JSON
    message.  Calling this more than once does not add duplicate
    handlers.

    :param level: minimum level to emit
    """
    logger.setLevel(level)
    if not any(getattr(h, "_millennium", False) for h in logger.handlers):
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(message)s"))
        handler._millennium = True  # type: ignore[attr-defined]
        logger.addHandler(handler)


def _sanitize(obj: Any) -> Any:
    """Recursively sanitise objects for logging.

    Dictionaries have keys containing 'session', 'password' or 'secret'
    removed.  Byte strings are replaced by a size marker.  Lists and
    tuples are processed element-wise.

    Parameters
    ----------
    obj : Any
        Arbitrary Python object to sanitise.

    Returns
    -------
    Any
        A sanitised representation of the input suitable for JSON serialisation.
    """
    if isinstance(obj, (bytes, bytearray)):
        return f"<binary {len(obj)} bytes>"
    if isinstance(obj, dict):
        clean: Dict[str, Any] = {}
        for k, v in obj.items():
            if any(keyword in str(k).lower() for keyword in ("session", "password", "secret")):
                continue
            clean[k] = _sanitize(v)
        return clean
    if isinstance(obj, (list, tuple)):
        return [_sanitize(i) for i in obj]
    try:
        return json.loads(json.dumps(obj))
    except (TypeError, ValueError):
        return str(obj)


def safe_headers(headers: Dict[str, Any]) -> Dict[str, Any]:
    """Return a copy of ``headers`` without authentication material."""
    return {k: v for k, v in headers.items() if k.lower() not in SENSITIVE_HEADERS}


def log_event(event: str, level: int = logging.DEBUG, **fields: Any) -> None:
    """Log a structured event as a JSON object."""
    if not logger.isEnabledFor(level):
        return
    data: Dict[str, Any] = {"event": event}
    data.update(_sanitize(fields))
    logger.log(level, json.dumps(data))


def log_http_request(method: str, url: str, *, headers: Dict[str, Any] | None = None,
                     body: bytes | None = None, status: int | None = None,
                     duration_ms: float | None = None, attempt: int | None = None) -> None:
    """Log an outbound HTTP request at DEBUG level.

    This helper centralises request logging so that authentication
    headers are automatically removed and only high-level information
    (method, URL, status and duration) is recorded.  The executor calls
    it before and after dispatching.

    Parameters
    ----------
    method : str
        The HTTP method (GET, POST, DELETE).
    url : str
        The URL being requested.
    headers : dict, optional
        Request headers.  Sensitive keys are removed.
    body : bytes, optional
        Request payload; only its size is logged.
    status : int, optional
        Response status code (log end only).
    duration_ms : float, optional
        Time taken in milliseconds (log end only).
    attempt : int, optional
        Zero-based attempt number when retries are involved.
    """
    if not logger.isEnabledFor(logging.DEBUG):
        return
    data: Dict[str, Any] = {
        "event": "http_request",
        "method": method,
        "url": url,
    }
    if headers is not None:
        data["headers"] = safe_headers(headers)
    if body:
        data["body"] = _sanitize(body)
    if attempt:
        data["attempt"] = attempt
    if status is not None:
        data["status"] = status
    if duration_ms is not None:
        data["duration_ms"] = round(duration_ms, 2)
    logger.debug(json.dumps(data))

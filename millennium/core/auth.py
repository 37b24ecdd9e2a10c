"""
core/auth.py
-------------

Credential and session handling for Millennium.

Millennium accepts three authentication schemes:

* ``SESSION``: a one-time ``WTS-Authorization`` exchange against the
  ``login`` remote method yields a token that is sent back in the
  ``WTS-Session`` header on every later call;
* ``BASIC``: HTTP Basic credentials on every request;
* ``NTLM``: an NTLM challenge/response handshake on every request,
  performed by the ``httpx-ntlm`` auth flow installed at login.

The :class:`SessionManager` owns the credentials and the header set of
one client instance.  It is the only place where either is mutated.
"""

from __future__ import annotations

import logging
import threading
from enum import Enum
from typing import Any, Callable, Dict, Optional

import httpx
from httpx_ntlm import HttpNtlmAuth

from millennium.exceptions import ConfigurationError
from millennium.logging_config import log_event
from millennium.schemas.envelopes import LoginResponse

LOGIN_METHOD = "login"
LOGIN_HEADER = "WTS-Authorization"
SESSION_HEADER = "WTS-Session"


class AuthType(str, Enum):
    """Authentication schemes supported by Millennium."""

    NTLM = "NTLM"
    SESSION = "SESSION"
    BASIC = "BASIC"

    @classmethod
    def parse(cls, value: Any) -> "AuthType":
        """Return the scheme named by ``value``, ignoring case.

        :raises ConfigurationError: for an unknown scheme
        """
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).upper())
        except ValueError:
            names = ", ".join(member.value for member in cls)
            raise ConfigurationError(f"Unknown auth type {value!r}, expected one of {names}") from None


class Credentials:
    """Username, password, scheme and session token of one client."""

    def __init__(self) -> None:
        self.username: str = ""
        self.password: str = ""
        self.auth_type: Optional[AuthType] = None
        self.session: str = ""

    def __repr__(self) -> str:
        # never expose the password or the token
        return f"Credentials(username={self.username!r}, auth_type={self.auth_type!r})"


def build_login_header(username: str, password: str) -> str:
    """Return the ``WTS-Authorization`` value for a session login."""
    return f"{username.upper()}/{password.upper()}"


class SessionManager:
    """Holds the authentication state of a client instance.

    Header reads (:meth:`snapshot_headers`) and login mutations share a
    re-entrant lock: login itself issues a call that snapshots the
    headers it is building, from the same thread.
    """

    def __init__(self) -> None:
        self.credentials = Credentials()
        self._headers: Dict[str, str] = {}
        self._auth: Optional[httpx.Auth] = None
        self._lock = threading.RLock()

    @property
    def authenticated(self) -> bool:
        """``True`` once a session token is held (session mode only)."""
        return bool(self.credentials.session)

    def snapshot_headers(self) -> Dict[str, str]:
        """Return a copy of the shared header set."""
        with self._lock:
            return dict(self._headers)

    def request_auth(self) -> Optional[httpx.Auth]:
        """Return the per-request auth for the current scheme.

        NTLM uses the negotiator installed at login, Basic builds plain
        credentials and session mode relies on headers only.
        """
        creds = self.credentials
        if creds.auth_type == AuthType.NTLM:
            return self._auth
        if creds.auth_type == AuthType.BASIC:
            return httpx.BasicAuth(creds.username, creds.password)
        return None

    def login(
        self,
        username: str,
        password: str,
        auth_type: AuthType,
        submit: Callable[[str, bytes, Any], Any],
    ) -> None:
        """Record credentials and, in session mode, obtain a session token.

        :param username: Millennium user
        :param password: user password
        :param auth_type: authentication scheme
        :param submit: callable issuing a POST call, ``submit(method, body, response)``
        :raises RemoteApplicationError: if Millennium rejects the credentials
        :raises TransportError: if the login call cannot be dispatched
        :raises ConfigurationError: if ``auth_type`` names no known scheme
        :raises DecodeError: if the login answer is not a session envelope
        """
        auth_type = AuthType.parse(auth_type)
        with self._lock:
            creds = self.credentials
            creds.username = username
            creds.password = password
            creds.auth_type = auth_type
            creds.session = ""
            self._headers.pop(SESSION_HEADER, None)
            self._auth = None

            if auth_type == AuthType.NTLM:
                self._auth = HttpNtlmAuth(username, password)
            elif auth_type == AuthType.SESSION:
                self._headers[LOGIN_HEADER] = build_login_header(username, password)
                try:
                    response: LoginResponse = submit(LOGIN_METHOD, b"", LoginResponse)
                except Exception:
                    log_event("login_failed", logging.WARNING, username=username, auth_type=auth_type.value)
                    raise
                finally:
                    self._headers.pop(LOGIN_HEADER, None)
                creds.session = response.session
                self._headers[SESSION_HEADER] = response.session

        log_event("login_success", logging.INFO, username=username, auth_type=auth_type.value)

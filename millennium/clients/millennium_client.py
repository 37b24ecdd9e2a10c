"""
clients/millennium_client.py
----------------------------

High level client for the Millennium ERP RPC interface.

:class:`Millennium` owns one ``httpx.Client`` (and therefore one
connection pool), the credentials and the shared header set of a single
server/account pair.  It exposes the three verbs of the API:

* :meth:`Millennium.get` lists rows (``GET``) and returns a
  :class:`~millennium.schemas.envelopes.ListResult`;
* :meth:`Millennium.post` submits a document (``POST``) and returns an
  :class:`~millennium.schemas.envelopes.ObjectResult`;
* :meth:`Millennium.delete` removes data (``DELETE``).

Calls are blocking.  Several threads may share an instance once it is
logged in, but :meth:`Millennium.login` must not run concurrently with
other calls on the same instance.

Usage example:

    with Millennium("http://erp.local:6017", timeout=30) as client:
        client.login("user", "secret", AuthType.SESSION)
        result = client.get("millenium.produtos.lista", {"produto": 10}, List[Produto])
        print(result.count, result.value)
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

import httpx

from millennium.core.auth import AuthType, Credentials, SessionManager
from millennium.core.codec import Body, Params, decode_list_value
from millennium.core.config import Settings, get_settings
from millennium.core.connectivity import probe
from millennium.core.context import CancelScope
from millennium.core.http_sync import HttpMethod, RequestExecutor, RequestMethod, RetryPolicy
from millennium.exceptions import ConfigurationError
from millennium.logging_config import log_event
from millennium.schemas.envelopes import ListEnvelope, ListResult, ObjectResult


class Millennium:
    """Client for one Millennium server.

    :param server: base address with scheme and port, e.g. ``http://127.0.0.1:6017``
    :param timeout: deadline of each call in seconds, retries included
    :param scope: optional cancellation scope applied to every call
    :param retry_policy: retry settings of the dispatch step
    :param http_client: pre-built ``httpx.Client`` to use instead of
        creating one; the instance closes it on :meth:`close`
    :param transport: ``httpx`` transport for the client created internally;
        cannot be combined with ``http_client``
    :param probe_timeout: timeout of the connectivity probe (defaults to ``timeout``)
    :param check_connection: run the TCP reachability probe on construction
    :raises ConfigurationError: if ``server`` or ``timeout`` are invalid
    :raises ConnectivityError: if the server cannot be reached
    """

    def __init__(
        self,
        server: str,
        timeout: float = 30.0,
        *,
        scope: Optional[CancelScope] = None,
        retry_policy: Optional[RetryPolicy] = None,
        http_client: Optional[httpx.Client] = None,
        transport: Optional[httpx.BaseTransport] = None,
        probe_timeout: Optional[float] = None,
        check_connection: bool = True,
    ) -> None:
        if not server:
            raise ConfigurationError("No server defined")
        if http_client is not None and transport is not None:
            raise ConfigurationError("Pass either http_client or transport, not both")
        if timeout is None or timeout <= 0:
            raise ConfigurationError("Timeout must be greater than zero")
        try:
            url = httpx.URL(server)
        except httpx.InvalidURL as exc:
            raise ConfigurationError(f"Invalid server address {server!r}: {exc}") from exc
        if url.scheme not in ("http", "https") or not url.host:
            raise ConfigurationError(f"Invalid server address {server!r}")

        if check_connection:
            probe(url, probe_timeout or timeout)

        self.server = server.rstrip("/")
        self.timeout = timeout
        self.session = SessionManager()
        self.http_client = http_client or httpx.Client(transport=transport, timeout=timeout)
        self.executor = RequestExecutor(
            self.server,
            self.http_client,
            self.session,
            timeout,
            retry_policy=retry_policy,
            scope=scope,
        )
        log_event("client_created", server=self.server, timeout=timeout)

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None, **kwargs: Any) -> "Millennium":
        """Build a client from :class:`~millennium.core.config.Settings`.

        When the settings carry a username, password and auth type the
        client logs in before being returned.  Extra keyword arguments
        are passed to the constructor.
        """
        settings = settings or get_settings()
        kwargs.setdefault(
            "retry_policy",
            RetryPolicy(
                max_retries=settings.max_retries,
                backoff_factor=settings.backoff_factor,
                backoff_max=settings.backoff_max,
            ),
        )
        kwargs.setdefault("probe_timeout", settings.probe_timeout)
        client = cls(settings.server, settings.timeout, **kwargs)
        if settings.username and settings.auth_type is not None:
            try:
                client.login(settings.username, settings.password or "", settings.auth_type)
            except Exception:
                client.close()
                raise
        return client

    # -----------------------------------------------------------------
    # Session
    # -----------------------------------------------------------------

    @property
    def credentials(self) -> Credentials:
        return self.session.credentials

    @property
    def headers(self) -> Dict[str, str]:
        """Snapshot of the headers sent with every call."""
        return self.session.snapshot_headers()

    def login(
        self,
        username: str,
        password: str,
        auth_type: AuthType = AuthType.SESSION,
        *,
        scope: Optional[CancelScope] = None,
    ) -> None:
        """Authenticate against Millennium.

        In ``SESSION`` mode this calls the ``login`` remote method and
        keeps the returned token for later calls.  ``NTLM`` and ``BASIC``
        only record the credentials, which are presented on every call.

        :raises RemoteApplicationError: if the credentials are rejected
        :raises TransportError: if the login call cannot be sent
        """

        def submit(method: str, body: bytes, response: Any) -> Any:
            return self.post(method, body, response, scope=scope).value

        self.session.login(username, password, auth_type, submit)

    # -----------------------------------------------------------------
    # Verbs
    # -----------------------------------------------------------------

    def request(self, request: RequestMethod, *, scope: Optional[CancelScope] = None) -> Any:
        """Perform a raw call and return its decoded body."""
        return self.executor.execute(request, scope=scope)

    def get(
        self,
        method: str,
        params: Optional[Params] = None,
        response: Any = List[Dict[str, Any]],
        *,
        scope: Optional[CancelScope] = None,
    ) -> ListResult:
        """List rows from a remote method.

        :param method: remote method name
        :param params: query parameters
        :param response: type of the ``value`` array, e.g. ``List[Produto]``
        :raises DecodeError: if the envelope or its rows do not match
        :return: the server-reported count and the decoded rows
        """
        envelope: ListEnvelope = self.executor.execute(
            RequestMethod(HttpMethod.GET, method, params, response=ListEnvelope),
            scope=scope,
        )
        return ListResult(count=envelope.count, value=decode_list_value(envelope, response))

    def post(
        self,
        method: str,
        body: Body = b"",
        response: Any = Any,
        *,
        scope: Optional[CancelScope] = None,
    ) -> ObjectResult:
        """Submit a document to a remote method.

        :param method: remote method name
        :param body: raw bytes, a mapping or a pydantic model
        :param response: type the answer is validated into
        :return: the decoded answer wrapped in an :class:`ObjectResult`
        """
        value = self.executor.execute(
            RequestMethod(HttpMethod.POST, method, body=body, response=response),
            scope=scope,
        )
        return ObjectResult(value=value)

    def delete(
        self,
        method: str,
        params: Optional[Params] = None,
        *,
        scope: Optional[CancelScope] = None,
    ) -> None:
        """Call a remote method with ``DELETE``; any status < 400 is success."""
        self.executor.execute(RequestMethod(HttpMethod.DELETE, method, params), scope=scope)

    # -----------------------------------------------------------------
    # Resources
    # -----------------------------------------------------------------

    def close(self) -> None:
        """Close the underlying HTTPX client and release resources."""
        self.executor.close()
        self.http_client.close()

    def __enter__(self) -> "Millennium":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def __repr__(self) -> str:
        return f"Millennium(server={self.server!r}, auth_type={self.credentials.auth_type!r})"

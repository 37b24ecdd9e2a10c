"""
Synchronous request executor for Millennium remote methods.

Every call goes through :class:`RequestExecutor`, which builds the
``<server>/api/<method>?$format=json&$dateformat=iso&...`` address,
attaches the client's shared headers and per-request auth, dispatches
the request with bounded retries and routes the answer through the
envelope codec.

Only transient transport failures are retried.  GET and DELETE retry
any connection, read or timeout error; POST retries only when the
connection was never established, so a document is not submitted twice.
A response with an error status is a completed round trip and is
decoded, never retried.  A per-call deadline bounds the total wall time
of all attempts, backoff included.  Each attempt runs in a small worker
pool so that a cancelled or expired call returns at once, even while a
request is still waiting for the server.

Usage example:

    executor = RequestExecutor(server, http_client, session, timeout=30.0)
    rows = executor.execute(RequestMethod("GET", "millenium.clientes.lista", response=ListEnvelope))
"""

from __future__ import annotations

import logging
import time
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
from enum import Enum
from typing import Any, Optional, Tuple

import httpx
from pydantic import BaseModel, Field

from millennium.core.auth import SessionManager
from millennium.core.codec import Body, Params, decode_response, encode_body, encode_query
from millennium.core.context import CancelScope
from millennium.exceptions import TransportError, ValidationError
from millennium.logging_config import log_event, log_http_request

API_PREFIX = "/api"

# seconds between cancellation checks while an attempt is in flight
POLL_INTERVAL = 0.05
DISPATCH_WORKERS = 8


class HttpMethod(str, Enum):
    """HTTP verbs used by Millennium."""

    GET = "GET"
    POST = "POST"
    DELETE = "DELETE"


# Verbs whose response body must be decoded into a target type
BODY_METHODS = {HttpMethod.GET, HttpMethod.POST}

# Verbs safe to resend after the request may have reached the server
IDEMPOTENT_METHODS = {HttpMethod.GET, HttpMethod.DELETE}

# The request never left the client
CONNECT_ERRORS = (httpx.ConnectError, httpx.ConnectTimeout)

# Failures that a new attempt cannot fix
PERMANENT_ERRORS = (httpx.UnsupportedProtocol, httpx.LocalProtocolError)


def is_retryable(http_method: HttpMethod, exc: httpx.TransportError) -> bool:
    """Return whether a failed attempt may be sent again."""
    if isinstance(exc, PERMANENT_ERRORS):
        return False
    if http_method in IDEMPOTENT_METHODS:
        return True
    return isinstance(exc, CONNECT_ERRORS)


def _discard(future: Future) -> None:
    if not future.cancelled() and future.exception() is None:
        future.result().close()


class RetryPolicy(BaseModel):
    """Retry settings for the dispatch step.

    ``max_retries`` is the number of extra attempts after the first one.
    POST attempts are only repeated after connection failures, since a
    read error or timeout may come after the server accepted the body.
    The delay before retry ``n`` (zero-based) is
    ``backoff_factor * 2 ** n`` capped at ``backoff_max``.  When
    ``attempt_timeout`` is set, a single attempt never waits longer than
    that, whatever the remaining call deadline.
    """

    max_retries: int = Field(3, ge=0)
    backoff_factor: float = Field(0.5, ge=0)
    backoff_max: float = Field(30.0, ge=0)
    attempt_timeout: Optional[float] = Field(None, gt=0)

    def delay(self, attempt: int) -> float:
        return min(self.backoff_max, self.backoff_factor * (2 ** attempt))


class RequestMethod:
    """Description of one remote method call.

    :param http_method: ``GET``, ``POST`` or ``DELETE``
    :param method: remote method name, e.g. ``millenium.produtos.lista``
    :param params: query parameters (mapping or key/value pairs)
    :param body: request body (bytes, str, mapping or pydantic model)
    :param response: type the response body is validated into; required
        for GET and POST
    """

    def __init__(
        self,
        http_method: str,
        method: str,
        params: Optional[Params] = None,
        body: Body = None,
        response: Any = None,
    ) -> None:
        self.http_method = http_method
        self.method = method
        self.params = params if params is not None else {}
        self.body = body
        self.response = response

    def __repr__(self) -> str:
        return f"RequestMethod({self.http_method!r}, {self.method!r})"


class RequestExecutor:
    """Builds, dispatches and decodes calls for one client instance.

    The executor reads the shared header set and credentials from the
    :class:`SessionManager` but never modifies them.
    """

    def __init__(
        self,
        server: str,
        http_client: httpx.Client,
        session: SessionManager,
        timeout: float,
        retry_policy: Optional[RetryPolicy] = None,
        scope: Optional[CancelScope] = None,
    ) -> None:
        self.server = server.rstrip("/")
        self.http_client = http_client
        self.session = session
        self.timeout = timeout
        self.retry_policy = retry_policy or RetryPolicy()
        self.scope = scope
        self._pool = ThreadPoolExecutor(max_workers=DISPATCH_WORKERS, thread_name_prefix="millennium-dispatch")

    def build_url(self, method: str, params: Optional[Params] = None) -> str:
        """Return the full address of a remote method call."""
        return f"{self.server}{API_PREFIX}/{method}?{encode_query(params)}"

    def validate(self, request: RequestMethod) -> HttpMethod:
        """Check a request descriptor before any network activity.

        :raises ValidationError: on an unknown verb, an empty method name
            or a missing response type for GET/POST
        """
        verb = request.http_method
        try:
            http_method = verb if isinstance(verb, HttpMethod) else HttpMethod(str(verb).upper())
        except ValueError:
            raise ValidationError(f"Unsupported HTTP method {request.http_method!r}") from None
        if not request.method or request.method != request.method.strip():
            raise ValidationError(f"Invalid remote method name {request.method!r}")
        if http_method in BODY_METHODS and request.response is None:
            raise ValidationError(f"{http_method.value} {request.method} requires a response type")
        return http_method

    def execute(self, request: RequestMethod, scope: Optional[CancelScope] = None) -> Any:
        """Send a call and decode its answer.

        :param request: the call to perform
        :param scope: optional cancellation scope for this call only; the
            executor's own scope still applies
        :raises ValidationError: if the descriptor is invalid
        :raises TransportError: on network failure, timeout or cancellation
        :raises RemoteApplicationError: if Millennium returns an error envelope
        :raises DecodeError: if the body does not match ``request.response``
        :return: the decoded body, or ``None`` without a response type
        """
        http_method = self.validate(request)
        url = self.build_url(request.method, request.params)
        content = encode_body(request.body)

        headers = self.session.snapshot_headers()
        if content and not isinstance(request.body, (bytes, str)):
            headers.setdefault("Content-Type", "application/json")

        response = self._dispatch(
            http_method,
            request.method,
            url,
            content,
            headers,
            self.session.request_auth(),
            scope,
        )
        return decode_response(response.status_code, response.content, request.response)

    def _dispatch(
        self,
        http_method: HttpMethod,
        method: str,
        url: str,
        content: bytes,
        headers: dict,
        auth: Optional[httpx.Auth],
        scope: Optional[CancelScope],
    ) -> httpx.Response:
        """Send the request, retrying transport failures within the deadline."""
        outer = tuple(s for s in (scope, self.scope) if s is not None)
        call_scope = CancelScope(self.timeout, parents=outer)
        policy = self.retry_policy
        start_time = time.time()
        attempt = 0

        while True:
            if call_scope.cancelled:
                raise self._deadline_error(method, outer, attempt, None)

            timeout = call_scope.remaining()
            if policy.attempt_timeout is not None:
                timeout = policy.attempt_timeout if timeout is None else min(timeout, policy.attempt_timeout)

            log_http_request(http_method.value, url, headers=headers, body=content, attempt=attempt)
            future = self._pool.submit(
                self.http_client.request,
                http_method.value,
                url,
                content=content or None,
                headers=headers,
                auth=auth,
                timeout=timeout,
            )
            try:
                response = self._wait(future, call_scope)
            except httpx.InvalidURL as exc:
                raise ValidationError(f"Invalid request address for {method}: {exc}") from exc
            except httpx.TransportError as exc:
                attempt += 1
                log_event(
                    "http_error",
                    logging.WARNING,
                    method=http_method.value,
                    url=url,
                    attempt=attempt,
                    detail=str(exc) or type(exc).__name__,
                )
                if call_scope.cancelled:
                    raise self._deadline_error(method, outer, attempt, exc) from exc
                if attempt > policy.max_retries or not is_retryable(http_method, exc):
                    kind = TransportError.TIMEOUT if isinstance(exc, httpx.TimeoutException) else TransportError.NETWORK
                    raise TransportError(
                        method,
                        kind,
                        f"request failed after {attempt} attempt(s): {exc or type(exc).__name__}",
                        attempts=attempt,
                    ) from exc
                if call_scope.wait(policy.delay(attempt - 1)):
                    raise self._deadline_error(method, outer, attempt, exc) from exc
                continue

            if response is None:
                # the scope fired while the attempt was still waiting for an answer
                raise self._deadline_error(method, outer, attempt + 1, None)

            duration_ms = (time.time() - start_time) * 1000
            log_http_request(
                http_method.value,
                url,
                status=response.status_code,
                duration_ms=duration_ms,
                attempt=attempt,
            )
            return response

    @staticmethod
    def _wait(future: Future, call_scope: CancelScope) -> Optional[httpx.Response]:
        """Wait for an attempt, giving up as soon as ``call_scope`` fires.

        An abandoned attempt keeps its worker until its own timeout runs
        out; its response, if one arrives, is closed and dropped.
        """
        while True:
            try:
                return future.result(timeout=POLL_INTERVAL)
            except FutureTimeout:
                if call_scope.cancelled:
                    if not future.cancel():
                        future.add_done_callback(_discard)
                    return None

    def close(self) -> None:
        """Stop the dispatch pool without waiting for abandoned attempts."""
        self._pool.shutdown(wait=False, cancel_futures=True)

    @staticmethod
    def _deadline_error(
        method: str,
        outer: Tuple[CancelScope, ...],
        attempts: int,
        exc: Optional[Exception],
    ) -> TransportError:
        # the caller's scope firing is a cancellation, our own deadline a timeout
        if any(s.cancelled for s in outer):
            kind, detail = TransportError.CANCELLED, "call cancelled"
        else:
            kind, detail = TransportError.TIMEOUT, "call deadline exceeded"
        if exc is not None:
            detail = f"{detail} ({exc or type(exc).__name__})"
        log_event("http_deadline", logging.WARNING, method=method, kind=kind, attempts=attempts)
        return TransportError(method, kind, detail, attempts=attempts)


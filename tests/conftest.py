"""
Shared fixtures: an in-process FastAPI stand-in for a Millennium server.

The fake server answers the same remote methods as the real ERP test
fixtures (``login``, ``test.success.GET``, ``test.error400.GET`` ...)
and records every request it receives so tests can inspect headers and
query strings.  Clients talk to it through ``fastapi.testclient.TestClient``,
which is an ``httpx.Client`` and can therefore be injected as the
client's HTTP client.  A real listening socket backs the server address
so the construction-time connectivity probe succeeds.
"""

from __future__ import annotations

import base64
import json
import socket
from typing import Any, Dict, List

import pytest
from fastapi import FastAPI, Request, Response
from fastapi.testclient import TestClient

from millennium import Millennium
from millennium.schemas.envelopes import ErrorEnvelope

SESSION_TOKEN = "{00000000-0000-0000-0000-000000000000}"
LOGIN_DENIED = "PERMISSÃO NEGADA:\r\rNão é possível autenticar o usuário. Senha inválida."
SUCCESS_LIST = b'{"odata.count": 1,"value":[{"number":1,"string":"test","bool":true}]}'


def json_error(message: str, code: int) -> bytes:
    return ErrorEnvelope.build(message, code).model_dump_json().encode("utf-8")


def _basic_auth(request: Request) -> tuple:
    header = request.headers.get("authorization", "")
    if not header.lower().startswith("basic "):
        return None, None
    user, _, password = base64.b64decode(header[6:]).decode("utf-8").partition(":")
    return user, password


def _json(body: bytes, status_code: int = 200) -> Response:
    return Response(content=body, status_code=status_code, media_type="application/json")


def create_erp_app() -> FastAPI:
    app = FastAPI()
    app.state.requests = []

    @app.api_route("/api/{method}", methods=["GET", "POST", "DELETE"])
    async def remote_method(method: str, request: Request) -> Response:
        body = await request.body()
        app.state.requests.append({
            "method": method,
            "http_method": request.method,
            "headers": dict(request.headers),
            "query": request.url.query,
            "params": list(request.query_params.multi_items()),
            "body": body,
        })

        if method == "login":
            if request.headers.get("wts-authorization") == "TEST/TEST":
                return _json(b'{"session":"' + SESSION_TOKEN.encode() + b'"}')
            return _json(json_error(LOGIN_DENIED, 401), 401)
        if method == "test.success.GET":
            return _json(SUCCESS_LIST)
        if method == "test.error400.GET":
            return _json(json_error("Parameter not found", 400), 400)
        if method == "test.error500.GET":
            return _json(json_error("Query error", 500), 500)
        if method == "test.error.invalidjson":
            return _json(b'{"odata.count": 1,"value":["test":"test"}')
        if method == "test.error.invalidjsonerror":
            return _json(b'{"error":{"', 500)
        if method == "test.error.empty":
            return _json(b"")
        if method == "test.success.POST":
            return _json(b'{"number":1,"string":"test","bool":true}')
        if method == "test.error.POST":
            return _json(json_error("Internal Server Error", 500), 500)
        if method == "test.success.DELETE":
            return _json(b'{"odata.metadata":""}')
        if method == "test.error.DELETE":
            return _json(json_error("Query error", 500), 500)
        if method == "test.session.GET":
            if request.headers.get("wts-session") != SESSION_TOKEN:
                return _json(json_error("Sessão inválida", 401), 401)
            return _json(SUCCESS_LIST)
        if method == "test.basicauth":
            user, password = _basic_auth(request)
            if user != "correct_user" or password != "correct_password":
                return Response(status_code=401, headers={"WWW-Authenticate": 'Basic realm="Restricted"'})
            return _json(SUCCESS_LIST)
        if method == "test.echo":
            rows = [{"key": k, "value": v} for k, v in request.query_params.multi_items()]
            return _json(_dump_list(rows))
        return Response(content=b"404 page not found", status_code=404, media_type="text/plain")

    return app


def _dump_list(rows: List[Dict[str, Any]]) -> bytes:
    return json.dumps({"odata.count": len(rows), "value": rows}).encode("utf-8")


@pytest.fixture()
def server_addr():
    """Base address backed by a real listening socket."""
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    sock.bind(("127.0.0.1", 0))
    sock.listen(16)
    host, port = sock.getsockname()
    yield f"http://{host}:{port}"
    sock.close()


@pytest.fixture()
def erp_app() -> FastAPI:
    return create_erp_app()


@pytest.fixture()
def erp_requests(erp_app) -> List[Dict[str, Any]]:
    """Requests received by the fake server, in order."""
    return erp_app.state.requests


@pytest.fixture()
def client(server_addr, erp_app):
    test_client = TestClient(erp_app, base_url=server_addr)
    with Millennium(server_addr, 30, http_client=test_client) as cli:
        yield cli

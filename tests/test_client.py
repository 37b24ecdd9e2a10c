"""Tests for client construction and the get/post/delete verbs."""

from __future__ import annotations

import socket
from typing import Any, Dict, List

import httpx
import pytest
from pydantic import BaseModel

from millennium import (
    ConfigurationError,
    ConnectivityError,
    DecodeError,
    ListResult,
    Millennium,
    ObjectResult,
    RemoteApplicationError,
    RequestMethod,
    ValidationError,
)


class ResponseTest(BaseModel):
    number: int
    string: str
    bool: bool


def _closed_port() -> int:
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    sock.bind(("127.0.0.1", 0))
    port = sock.getsockname()[1]
    sock.close()
    return port


class TestConstruction:
    def test_empty_server(self) -> None:
        with pytest.raises(ConfigurationError):
            Millennium("", 30)

    @pytest.mark.parametrize("timeout", [0, -1])
    def test_invalid_timeout(self, server_addr, timeout) -> None:
        with pytest.raises(ConfigurationError):
            Millennium(server_addr, timeout)

    @pytest.mark.parametrize("server", ["http://127.0.0.1:6018\n", "ftp://127.0.0.1:21", "not a url"])
    def test_invalid_address(self, server) -> None:
        with pytest.raises(ConfigurationError):
            Millennium(server, 3)

    def test_unreachable_server(self) -> None:
        with pytest.raises(ConnectivityError) as exc_info:
            Millennium(f"http://127.0.0.1:{_closed_port()}", 3)
        assert exc_info.value.host == "127.0.0.1"

    def test_reachable_server(self, server_addr) -> None:
        with Millennium(server_addr, 30) as client:
            assert client.server == server_addr
            assert client.headers == {}
            assert client.credentials.auth_type is None

    def test_probe_can_be_skipped(self) -> None:
        client = Millennium("http://erp.invalid:6017", 3, check_connection=False)
        client.close()

    def test_http_client_and_transport_are_exclusive(self) -> None:
        transport = httpx.MockTransport(lambda request: httpx.Response(200))
        with httpx.Client() as http_client:
            with pytest.raises(ConfigurationError):
                Millennium(
                    "http://erp.local:6017",
                    3,
                    http_client=http_client,
                    transport=transport,
                    check_connection=False,
                )

    def test_trailing_slash_removed(self, server_addr) -> None:
        with Millennium(server_addr + "/", 30) as client:
            assert client.executor.build_url("x.y") == f"{server_addr}/api/x.y?$format=json&$dateformat=iso"


class TestRequest:
    def test_success(self, client) -> None:
        rows = client.request(RequestMethod("GET", "test.success.GET", response=Any))
        assert rows["odata.count"] == 1

    @pytest.mark.parametrize(
        "request_method",
        [
            RequestMethod("[GET", "test.success.GET", response=Any),
            RequestMethod("GET", "test.success.GET"),
            RequestMethod("POST", "test.success.POST"),
            RequestMethod("GET", "", response=Any),
            RequestMethod("GET", " test.success.GET", response=Any),
            RequestMethod("PATCH", "test.success.GET", response=Any),
        ],
    )
    def test_invalid_descriptor_fails_before_io(self, client, erp_requests, request_method) -> None:
        with pytest.raises(ValidationError):
            client.request(request_method)
        assert erp_requests == []

    @pytest.mark.parametrize("method", ["test.error.invalidjsonerror", "test.error.invalidjson"])
    def test_invalid_json(self, client, method) -> None:
        with pytest.raises(DecodeError):
            client.request(RequestMethod("GET", method, response=Any))

    def test_unknown_method_is_decode_error(self, client) -> None:
        with pytest.raises(DecodeError) as exc_info:
            client.request(RequestMethod("GET", "x.x.x", response=Any))
        assert exc_info.value.status_code == 404

    def test_params_default_to_empty(self) -> None:
        assert RequestMethod("GET", "a").params == {}


class TestGet:
    def test_success(self, client, erp_requests) -> None:
        result = client.get("test.success.GET", {"test": "test"}, List[ResponseTest])
        assert isinstance(result, ListResult)
        assert result.count == 1
        assert result.value == [ResponseTest(number=1, string="test", bool=True)]
        assert erp_requests[0]["http_method"] == "GET"
        assert erp_requests[0]["params"] == [("$format", "json"), ("$dateformat", "iso"), ("test", "test")]

    def test_default_rows_are_dicts(self, client) -> None:
        result = client.get("test.success.GET")
        assert result.value == [{"number": 1, "string": "test", "bool": True}]

    @pytest.mark.parametrize(
        "method,message",
        [("test.error400.GET", "Parameter not found"), ("test.error500.GET", "Query error")],
    )
    def test_remote_error(self, client, method, message) -> None:
        with pytest.raises(RemoteApplicationError) as exc_info:
            client.get(method, {}, List[ResponseTest])
        assert str(exc_info.value) == message

    @pytest.mark.parametrize("method", ["test.error.invalidjson", "test.error.empty"])
    def test_decode_errors(self, client, method) -> None:
        with pytest.raises(DecodeError) as exc_info:
            client.get(method, {}, List[ResponseTest])
        assert str(exc_info.value)

    def test_rows_not_matching_target(self, client) -> None:
        class Other(BaseModel):
            codigo: str

        with pytest.raises(DecodeError):
            client.get("test.success.GET", None, List[Other])

    def test_reserved_param_rejected(self, client, erp_requests) -> None:
        with pytest.raises(ValidationError):
            client.get("test.success.GET", {"$format": "xml"})
        assert erp_requests == []

    def test_query_round_trip_over_the_wire(self, client) -> None:
        params = [("filial", "1"), ("filial", "2"), ("nome", "Café & Cia")]
        result = client.get("test.echo", params)
        received = [(row["key"], row["value"]) for row in result.value]
        assert received[:2] == [("$format", "json"), ("$dateformat", "iso")]
        assert sorted(received[2:]) == sorted(params)
        assert result.count == 5


class TestPost:
    def test_success(self, client, erp_requests) -> None:
        result = client.post("test.success.POST", b'{"test":"test"}', ResponseTest)
        assert isinstance(result, ObjectResult)
        assert result.value == ResponseTest(number=1, string="test", bool=True)
        assert erp_requests[0]["http_method"] == "POST"
        assert erp_requests[0]["body"] == b'{"test":"test"}'
        assert erp_requests[0]["params"] == [("$format", "json"), ("$dateformat", "iso")]

    def test_mapping_body(self, client, erp_requests) -> None:
        client.post("test.success.POST", {"test": "test"})
        assert erp_requests[0]["headers"]["content-type"] == "application/json"
        assert erp_requests[0]["body"] == b'{"test": "test"}'

    def test_default_target_is_raw_json(self, client) -> None:
        result = client.post("test.success.POST", b"{}")
        assert result.value == {"number": 1, "string": "test", "bool": True}

    def test_incompatible_target(self, client) -> None:
        with pytest.raises(DecodeError):
            client.post("test.success.POST", b"{}", List[int])

    def test_remote_error(self, client) -> None:
        with pytest.raises(RemoteApplicationError) as exc_info:
            client.post("test.error.POST", b'{"test":"test"}', ResponseTest)
        assert exc_info.value.code == 500
        assert str(exc_info.value) == "Internal Server Error"


class TestDelete:
    def test_success(self, client, erp_requests) -> None:
        assert client.delete("test.success.DELETE", {"test": "test"}) is None
        assert erp_requests[0]["http_method"] == "DELETE"
        assert erp_requests[0]["body"] == b""

    def test_success_body_not_decoded(self, client) -> None:
        # any status < 400 is success, even with a body that is not JSON
        client.delete("test.error.empty")

    def test_remote_error(self, client) -> None:
        with pytest.raises(RemoteApplicationError) as exc_info:
            client.delete("test.error.DELETE", {"test": "test"})
        assert str(exc_info.value) == "Query error"


class TestInjectedTransport:
    def test_mock_transport(self) -> None:
        seen: Dict[str, Any] = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            return httpx.Response(200, json={"odata.count": 7, "value": []})

        with Millennium(
            "http://erp.local:6017",
            30,
            transport=httpx.MockTransport(handler),
            check_connection=False,
        ) as client:
            result = client.get("millenium.produtos.lista", {"produto": 10})

        assert result.count == 7
        assert result.value == []
        assert seen["url"] == (
            "http://erp.local:6017/api/millenium.produtos.lista?$format=json&$dateformat=iso&produto=10"
        )

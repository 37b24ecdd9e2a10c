"""
core/codec.py
-------------

Encoding of outgoing call parameters and decoding of Millennium
responses.

Every call carries the fixed parameters ``$format=json`` and
``$dateformat=iso`` in front of the caller's parameters.  Responses are
routed on the HTTP status: anything >= 400 must carry an error envelope
and is raised as :class:`~millennium.exceptions.RemoteApplicationError`,
anything else is validated into the requested type with a pydantic
``TypeAdapter``.
"""

from __future__ import annotations

import json
from functools import lru_cache
from typing import Any, Iterable, List, Mapping, Optional, Sequence, Tuple, Union
from urllib.parse import urlencode

import httpx
from pydantic import BaseModel, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from millennium.exceptions import DecodeError, RemoteApplicationError, ValidationError
from millennium.schemas.envelopes import ErrorEnvelope, ListEnvelope

FORMAT_PARAM = "$format"
DATEFORMAT_PARAM = "$dateformat"
FIXED_PARAMS: Tuple[Tuple[str, str], ...] = ((FORMAT_PARAM, "json"), (DATEFORMAT_PARAM, "iso"))

ParamValue = Union[str, int, float, bool]
Params = Union[Mapping[str, Union[ParamValue, Sequence[ParamValue]]], Iterable[Tuple[str, ParamValue]]]
Body = Union[bytes, str, Mapping[str, Any], BaseModel, None]


def _stringify(value: ParamValue) -> str:
    # Millennium expects lower-case booleans
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def normalize_params(params: Optional[Params]) -> List[Tuple[str, str]]:
    """Flatten caller parameters into an ordered list of key/value pairs.

    Mappings may hold a single value or a list of values per key, as
    with ``url.Values``-style multi maps.  ``None`` becomes an empty
    list.  The reserved ``$format`` and ``$dateformat`` keys are
    rejected because the client always sets them itself.
    """
    if params is None:
        return []
    items: Iterable[Tuple[str, Any]]
    if isinstance(params, Mapping):
        items = params.items()
    else:
        items = params

    pairs: List[Tuple[str, str]] = []
    for key, value in items:
        if key in (FORMAT_PARAM, DATEFORMAT_PARAM):
            raise ValidationError(f"Query parameter {key!r} is reserved and set by the client")
        if isinstance(value, (list, tuple)):
            pairs.extend((key, _stringify(v)) for v in value)
        else:
            pairs.append((key, _stringify(value)))
    return pairs


def encode_query(params: Optional[Params] = None) -> str:
    """Return the query string for a call, fixed parameters first.

    ``$`` is left unescaped so the reserved keys read as on the wire.
    """
    return urlencode(list(FIXED_PARAMS) + normalize_params(params), safe="$")


def decode_query(query: str) -> List[Tuple[str, str]]:
    """Parse a query string back into the caller's key/value pairs.

    The two fixed parameters added by :func:`encode_query` are dropped.
    """
    return [
        (key, value)
        for key, value in httpx.QueryParams(query.lstrip("?")).multi_items()
        if (key, value) not in FIXED_PARAMS
    ]


def encode_body(body: Body) -> bytes:
    """Serialise a request body.

    Bytes are sent untouched, strings are UTF-8 encoded and mappings or
    pydantic models are dumped as JSON.
    """
    if body is None:
        return b""
    if isinstance(body, bytes):
        return body
    if isinstance(body, str):
        return body.encode("utf-8")
    if isinstance(body, BaseModel):
        return body.model_dump_json(by_alias=True).encode("utf-8")
    return json.dumps(body).encode("utf-8")


@lru_cache(maxsize=256)
def _adapter(target: Any) -> TypeAdapter:
    return TypeAdapter(target)


def get_adapter(target: Any) -> TypeAdapter:
    """Return a (cached when hashable) ``TypeAdapter`` for ``target``."""
    try:
        return _adapter(target)
    except TypeError:
        # unhashable annotations cannot be cached
        return TypeAdapter(target)


def decode_error(status_code: int, content: bytes) -> RemoteApplicationError:
    """Decode an error envelope into the exception that carries it.

    :raises DecodeError: if ``content`` is not a valid error envelope
    """
    try:
        envelope = ErrorEnvelope.model_validate_json(content)
    except PydanticValidationError as exc:
        raise DecodeError(
            f"Invalid error envelope with HTTP status {status_code}: {exc.errors()[0]['msg']}",
            status_code=status_code,
            content=content,
        ) from exc
    return RemoteApplicationError(envelope.message, envelope.code, envelope.lang, status_code)


def decode_response(status_code: int, content: bytes, target: Any = None) -> Any:
    """Decode a raw response.

    :param status_code: HTTP status of the response
    :param content: full response body
    :param target: type to validate the body into; ``None`` skips
        decoding of successful responses
    :raises RemoteApplicationError: if the status is >= 400
    :raises DecodeError: if the body does not match the expected shape
    :return: the decoded value, or ``None`` when ``target`` is ``None``
    """
    if status_code >= 400:
        raise decode_error(status_code, content)
    if target is None:
        return None
    try:
        return get_adapter(target).validate_json(content)
    except PydanticValidationError as exc:
        raise DecodeError(
            f"Invalid response body with HTTP status {status_code}: {exc.errors()[0]['msg']}",
            status_code=status_code,
            content=content,
        ) from exc


def decode_list_value(envelope: ListEnvelope, target: Any) -> Any:
    """Validate the ``value`` rows of a list envelope into ``target``.

    :raises DecodeError: if the rows do not match ``target``; its
        ``content`` holds the rows as JSON
    """
    try:
        return get_adapter(target).validate_python(envelope.value)
    except PydanticValidationError as exc:
        raise DecodeError(
            f"Invalid list value: {exc.errors()[0]['msg']}",
            content=json.dumps(envelope.value).encode("utf-8"),
        ) from exc

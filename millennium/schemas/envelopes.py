"""
schemas/envelopes.py
--------------------

Pydantic models for the JSON envelopes exchanged with Millennium.

List calls (GET) wrap their rows in ``{"odata.count": n, "value": [...]}``,
submit calls (POST) return an arbitrary JSON document and any HTTP
status >= 400 carries ``{"error": {"code": n, "message": {...}}}``.
The results handed back to callers are modelled as two distinct types,
:class:`ListResult` and :class:`ObjectResult`.
"""

from __future__ import annotations

from typing import Any, Generic, List, TypeVar, Union

from pydantic import BaseModel, ConfigDict, Field

T = TypeVar("T")


class ListEnvelope(BaseModel):
    """Outer envelope of a list (GET) response."""

    count: int = Field(alias="odata.count")
    value: List[Any]

    model_config = ConfigDict(populate_by_name=True)


class ErrorMessage(BaseModel):
    lang: str = ""
    value: str


class ErrorBody(BaseModel):
    code: int
    message: ErrorMessage


class ErrorEnvelope(BaseModel):
    """Error envelope sent by Millennium together with a status >= 400."""

    error: ErrorBody

    @classmethod
    def build(cls, message: str, code: int, lang: str = "pt-BR") -> "ErrorEnvelope":
        """Create an envelope from its parts (used by mock servers and tests)."""
        return cls(error=ErrorBody(code=code, message=ErrorMessage(lang=lang, value=message)))

    @property
    def code(self) -> int:
        return self.error.code

    @property
    def message(self) -> str:
        return self.error.message.value

    @property
    def lang(self) -> str:
        return self.error.message.lang


class LoginResponse(BaseModel):
    """Body returned by the ``login`` remote method in session mode."""

    session: str


class ListResult(BaseModel, Generic[T]):
    """Decoded list call: the server-reported count and the typed rows.

    ``count`` is the total reported by Millennium and may differ from
    ``len(value)`` when the server pages results.
    """

    count: int
    value: T


class ObjectResult(BaseModel, Generic[T]):
    """Decoded submit call."""

    value: T


Result = Union[ListResult, ObjectResult]

"""Response envelope, error shape, and body decoding shared by all handlers.

Handlers receive a Responder through ``Depends(get_responder)`` and never build
JSONResponse objects themselves.
"""
from __future__ import annotations

import json
from typing import Any, Dict, Optional, Type, TypeVar, get_origin

from fastapi import Request, Response, status
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field, ValidationError

from content_api.core.errors import DecodeError

M = TypeVar("M", bound=BaseModel)


class Result(BaseModel):
    """Standard success envelope: the payload under ``item``."""
    item: Optional[Any] = None

    def to_body(self) -> dict[str, Any]:
        return {"item": jsonable_encoder(self.item)}


class ErrorResponse(BaseModel):
    """Standard error body."""
    error: str
    fields: Dict[str, str] = Field(default_factory=dict)

    def to_body(self) -> dict[str, Any]:
        body: dict[str, Any] = {"error": self.error}
        if self.fields:
            body["fields"] = self.fields
        return body


# PUBLIC_INTERFACE
def wrap(data: Any) -> Result:
    """Wrap a payload in the standard envelope under ``item``."""
    return Result(item=data)


def error_fields(exc: Any) -> dict[str, str]:
    """Flatten pydantic-style ``exc.errors()`` into field -> message."""
    return {
        (".".join(str(loc) for loc in e["loc"]) or "body"): e["msg"]
        for e in exc.errors()
    }


# PUBLIC_INTERFACE
async def decode(request: Request, model: Type[M]) -> M:
    """Decode the JSON request body into ``model``.

    Raises:
        DecodeError: body is not JSON, or does not validate against model.
    """
    raw = await request.body()
    try:
        payload = json.loads(raw or b"null")
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise DecodeError(f"invalid json body: {exc}") from exc
    try:
        return model.model_validate(payload)
    except ValidationError as exc:
        raise DecodeError("request body failed validation", fields=error_fields(exc)) from exc


# PUBLIC_INTERFACE
def decode_query(request: Request, model: Type[M]) -> M:
    """Decode the query string into ``model``; repeated keys become lists."""
    params: dict[str, Any] = {}
    for key in request.query_params.keys():
        values = request.query_params.getlist(key)
        field = model.model_fields.get(key)
        many = field is not None and get_origin(field.annotation) in (list, set, tuple)
        params[key] = values if many or len(values) > 1 else values[0]
    try:
        return model.model_validate(params)
    except ValidationError as exc:
        raise DecodeError("query string failed validation", fields=error_fields(exc)) from exc


class Responder:
    """Writes envelopes and error bodies as starlette responses."""

    def respond(self, status_code: int, data: Any = None) -> Response:
        if status_code == status.HTTP_204_NO_CONTENT or data is None:
            return Response(status_code=status_code)
        body = data.to_body() if isinstance(data, Result) else jsonable_encoder(data)
        return JSONResponse(status_code=status_code, content=body)

    def respond_error(self, status_code: int, err: Exception) -> Response:
        fields = getattr(err, "fields", None) or {}
        message = getattr(err, "message", None) or str(err)
        body = ErrorResponse(error=message, fields=fields)
        return JSONResponse(status_code=status_code, content=body.to_body())

    def respond_server_error(self) -> Response:
        return self.respond_error(
            status.HTTP_500_INTERNAL_SERVER_ERROR, Exception("internal server error")
        )


_responder = Responder()


# PUBLIC_INTERFACE
def get_responder() -> Responder:
    """FastAPI dependency for the response helper."""
    return _responder

"""Adapters that turn typed business functions into FastAPI endpoints.

    router.add_api_route("/users", query(svc.query_users, 200, UserQuery), methods=["GET"])

``fn`` may also be a ``Depends(provider)`` marker; the provider then supplies
the function per request, so ``app.dependency_overrides`` reach it.

The generated endpoint decodes the query string (and for query_id a UUID path
parameter), calls the function, and responds with ``ok`` and its result. Any
error is raised, not rendered; the app's exception handlers format it.
"""
from __future__ import annotations

import inspect
from typing import Any, Awaitable, Callable, Type, TypeVar, Union
from uuid import UUID

from fastapi import Depends, Request, Response, params
from pydantic import BaseModel
from starlette.concurrency import run_in_threadpool

from content_api.core.errors import RouteKeyError
from content_api.web.context import RequestContext, use_ctx
from content_api.web.server import Responder, decode_query, get_responder

T = TypeVar("T", bound=BaseModel)
Y = TypeVar("Y")

AdapterFunc = Callable[[RequestContext, T], Union[Y, Awaitable[Y]]]
IDFunc = Callable[[RequestContext, UUID, T], Union[Y, Awaitable[Y]]]


async def _call(fn: Callable[..., Any], *args: Any) -> Any:
    if inspect.iscoroutinefunction(fn):
        return await fn(*args)
    result = await run_in_threadpool(fn, *args)
    if inspect.isawaitable(result):
        return await result
    return result


def _provider(fn: Any) -> Callable[..., Any]:
    if isinstance(fn, params.Depends):
        return fn.dependency

    def provide() -> Any:
        return fn

    return provide


def route_uuid(request: Request, param: str) -> UUID:
    raw = request.path_params.get(param)
    if raw is None:
        raise RouteKeyError(param)
    try:
        return UUID(str(raw))
    except ValueError as exc:
        raise RouteKeyError(param) from exc


# PUBLIC_INTERFACE
def query(fn: Union[AdapterFunc[T, Y], Any], ok: int, model: Type[T]) -> Callable[..., Awaitable[Response]]:
    """Endpoint that decodes ``model`` from the query string and calls ``fn(ctx, q)``."""
    provider = _provider(fn)

    async def handler(
        request: Request,
        ctx: RequestContext = Depends(use_ctx),
        responder: Responder = Depends(get_responder),
        call: Any = Depends(provider),
    ) -> Response:
        q = decode_query(request, model)
        res = await _call(call, ctx, q)
        return responder.respond(ok, res)

    return handler


# PUBLIC_INTERFACE
def query_id(param: str, fn: Union[IDFunc[T, Y], Any], ok: int, model: Type[T]) -> Callable[..., Awaitable[Response]]:
    """Like query, but first parses path parameter ``param`` as a UUID.

    A malformed id raises RouteKeyError before the query is decoded.
    """
    provider = _provider(fn)

    async def handler(
        request: Request,
        ctx: RequestContext = Depends(use_ctx),
        responder: Responder = Depends(get_responder),
        call: Any = Depends(provider),
    ) -> Response:
        item_id = route_uuid(request, param)
        q = decode_query(request, model)
        res = await _call(call, ctx, item_id, q)
        return responder.respond(ok, res)

    return handler

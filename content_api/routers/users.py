"""User routes: register, login, logout, self, update, and lookups.

Handlers decode input, call exactly one UserService method, and map the
outcome to a response. Client input errors answer 400, known service outcomes
answer their own status, anything unexpected answers 500.
"""
from __future__ import annotations

import structlog
from fastapi import APIRouter, Depends, Request, Response, status
from starlette.concurrency import run_in_threadpool

from content_api.core.errors import ApiError, DecodeError, UnauthorizedError
from content_api.models.user import (
    NIL_UUID,
    LoginForm,
    NoQuery,
    UserQuery,
    UserRegistration,
    UserUpdate,
)
from content_api.services.user_service import UserService, get_user_service
from content_api.web import adapters
from content_api.web.context import RequestContext, mw_auth_token
from content_api.web.server import Responder, decode, get_responder, wrap

log = structlog.get_logger(__name__)

public_router = APIRouter(prefix="/v1/users", tags=["user"])
router = APIRouter(prefix="/v1/users", tags=["user"], dependencies=[Depends(mw_auth_token)])

NO_USER_IN_CONTEXT = "no user within request context"


def _decode_failed(responder: Responder, err: DecodeError, details: str) -> Response:
    log.error("decode_failed", scope="user", details=details, error=err.message, fields=err.fields)
    return responder.respond_error(status.HTTP_400_BAD_REQUEST, err)


def _service_failed(responder: Responder, err: Exception, details: str) -> Response:
    if isinstance(err, ApiError):
        log.error("service_error", scope="user", details=details, error=err.message, status=err.status_code)
        return responder.respond_error(err.status_code, err)
    log.error("service_error", scope="user", details=details, exc_info=err)
    return responder.respond_server_error()


# PUBLIC_INTERFACE
@public_router.post(
    "/register",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Register user",
    description="Create a new user account. Body: UserRegistration.",
)
async def handle_user_registration(
    request: Request,
    svc: UserService = Depends(get_user_service),
    responder: Responder = Depends(get_responder),
) -> Response:
    """Register a new user.

    Returns:
        204 with an empty body when created.
        400 if the body does not decode.
        409 if the email already exists.
    """
    try:
        reg_data = await decode(request, UserRegistration)
    except DecodeError as err:
        return _decode_failed(responder, err, "failed to decode user registration data")

    try:
        await run_in_threadpool(svc.register_user, reg_data)
    except Exception as err:
        return _service_failed(responder, err, "failed to register user")

    return responder.respond(status.HTTP_204_NO_CONTENT)


# PUBLIC_INTERFACE
@public_router.post(
    "/login",
    summary="Login",
    description="Authenticate and receive a bearer token. Body: LoginForm.",
)
async def handle_user_login(
    request: Request,
    svc: UserService = Depends(get_user_service),
    responder: Responder = Depends(get_responder),
) -> Response:
    try:
        form = await decode(request, LoginForm)
    except DecodeError as err:
        return _decode_failed(responder, err, "failed to decode login form")

    try:
        token = await run_in_threadpool(svc.login, form)
    except Exception as err:
        return _service_failed(responder, err, "failed to login user")

    return responder.respond(status.HTTP_200_OK, token)


# PUBLIC_INTERFACE
@router.post("/logout", status_code=status.HTTP_204_NO_CONTENT, summary="Logout")
async def handle_user_logout(
    ctx: RequestContext = Depends(mw_auth_token),
    svc: UserService = Depends(get_user_service),
    responder: Responder = Depends(get_responder),
) -> Response:
    """Revoke the token used for this request."""
    try:
        await run_in_threadpool(svc.logout, ctx.token)
    except Exception as err:
        return _service_failed(responder, err, "failed to logout user")
    return responder.respond(status.HTTP_204_NO_CONTENT)


# PUBLIC_INTERFACE
@router.get("/self", summary="Get the current user")
async def handle_user_self(
    ctx: RequestContext = Depends(mw_auth_token),
    svc: UserService = Depends(get_user_service),
    responder: Responder = Depends(get_responder),
) -> Response:
    """Return the caller wrapped as ``{"item": user}``."""
    if not ctx.token:
        log.error(NO_USER_IN_CONTEXT, scope="user")
        return responder.respond_server_error()

    try:
        usr = await run_in_threadpool(svc.get_self, ctx.token)
    except Exception as err:
        log.error(NO_USER_IN_CONTEXT, scope="user", exc_info=err)
        return responder.respond_server_error()

    if usr is None or usr.id == NIL_UUID:
        log.warning(NO_USER_IN_CONTEXT, scope="user", details="token no longer resolves")
        return responder.respond_error(status.HTTP_401_UNAUTHORIZED, UnauthorizedError(NO_USER_IN_CONTEXT))

    return responder.respond(status.HTTP_200_OK, wrap(usr))


# PUBLIC_INTERFACE
@router.put("/self", summary="Update the current user", description="Body: UserUpdate.")
async def handle_user_update(
    request: Request,
    ctx: RequestContext = Depends(mw_auth_token),
    svc: UserService = Depends(get_user_service),
    responder: Responder = Depends(get_responder),
) -> Response:
    try:
        update_data = await decode(request, UserUpdate)
    except DecodeError as err:
        return _decode_failed(responder, err, "failed to decode user update data")

    actor = ctx.user
    if actor is None:
        log.error(NO_USER_IN_CONTEXT, scope="user")
        return responder.respond_server_error()

    try:
        new_data = await run_in_threadpool(svc.update_self, actor.id, update_data)
    except Exception as err:
        return _service_failed(responder, err, "failed to update user")

    return responder.respond(status.HTTP_200_OK, wrap(new_data))


# PUBLIC_INTERFACE
@router.delete("/self", status_code=status.HTTP_204_NO_CONTENT, summary="Delete the current user")
async def handle_user_self_delete(
    ctx: RequestContext = Depends(mw_auth_token),
    svc: UserService = Depends(get_user_service),
    responder: Responder = Depends(get_responder),
) -> Response:
    actor = ctx.user
    if actor is None:
        log.error(NO_USER_IN_CONTEXT, scope="user")
        return responder.respond_server_error()

    try:
        await run_in_threadpool(svc.delete_self, actor.id)
    except Exception as err:
        return _service_failed(responder, err, "failed to delete user")
    return responder.respond(status.HTTP_204_NO_CONTENT)


# PUBLIC_INTERFACE
@router.put(
    "/self/password",
    status_code=status.HTTP_501_NOT_IMPLEMENTED,
    summary="Update the current user's password",
)
async def handle_user_update_password(
    responder: Responder = Depends(get_responder),
) -> Response:
    """Not implemented until the password-change rules are settled."""
    return responder.respond_error(
        status.HTTP_501_NOT_IMPLEMENTED, ApiError("password update is not implemented")
    )


def _query_users(svc: UserService = Depends(get_user_service)):
    return svc.query_users


def _get_user(svc: UserService = Depends(get_user_service)):
    return svc.get_user


# Registered after the /self routes so "self" never reaches the {id} matcher.
router.add_api_route(
    "",
    adapters.query(Depends(_query_users), status.HTTP_200_OK, UserQuery),
    methods=["GET"],
    summary="List users",
    description="Superusers only. Query params: page, page_size, search.",
)
router.add_api_route(
    "/{id}",
    adapters.query_id("id", Depends(_get_user), status.HTTP_200_OK, NoQuery),
    methods=["GET"],
    summary="Get a user by id",
    description="The caller's own id, or any id for a superuser.",
)

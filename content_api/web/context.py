"""Request-scoped identity.

mw_auth_token resolves the bearer token once per request and stores a
RequestContext on ``request.state.ctx``; handlers receive it as a dependency.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from starlette.concurrency import run_in_threadpool

from content_api.core.errors import UnauthorizedError
from content_api.models.user import UserOut
from content_api.services.user_service import UserService, get_user_service

bearer_scheme = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class RequestContext:
    token: Optional[str] = None
    user: Optional[UserOut] = None


def use_ctx(request: Request) -> RequestContext:
    """Return the context stored by mw_auth_token, or an empty one."""
    return getattr(request.state, "ctx", None) or RequestContext()


# PUBLIC_INTERFACE
async def mw_auth_token(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    svc: UserService = Depends(get_user_service),
) -> RequestContext:
    """Require a bearer token that resolves to a live session."""
    if credentials is None or not credentials.credentials:
        raise UnauthorizedError("authorization header is required")

    token = credentials.credentials
    user = await run_in_threadpool(svc.get_self, token)
    if user is None:
        raise UnauthorizedError("valid authorization token is required")

    ctx = RequestContext(token=token, user=user)
    request.state.ctx = ctx
    return ctx

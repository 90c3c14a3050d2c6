"""User service: registration, session tokens, and self-service profile edits.

Methods are synchronous; the web layer calls them through the threadpool.
Known failures raise ApiError subclasses so handlers can map them to a status.
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import TYPE_CHECKING, Iterable, Optional
from uuid import UUID, uuid4

import structlog
from jose import JWTError

from content_api.core.config import get_settings
from content_api.core.errors import ForbiddenError, NotFoundError, UnauthorizedError
from content_api.models.user import (
    LoginForm,
    NoQuery,
    PaginationResult,
    TokenResponse,
    User,
    UserOut,
    UserQuery,
    UserRegistration,
    UserUpdate,
)
from content_api.repositories.users import AuthSession, UserRepository, create_user_repository
from content_api.security.jwt import create_access_token, decode_token, hash_password, verify_password

if TYPE_CHECKING:
    from content_api.web.context import RequestContext

log = structlog.get_logger(__name__)

BEARER_PREFIX = "Bearer "


def strip_bearer(token: str) -> str:
    if token[: len(BEARER_PREFIX)].lower() == BEARER_PREFIX.lower():
        return token[len(BEARER_PREFIX):].strip()
    return token.strip()


class UserService:
    def __init__(self, repo: UserRepository, superuser_emails: Iterable[str] = ()) -> None:
        self.repo = repo
        self.superuser_emails = {e.strip().lower() for e in superuser_emails}

    def register_user(self, data: UserRegistration) -> UserOut:
        """Create a user. Raises ConflictError when the email is taken."""
        now = datetime.now(timezone.utc)
        user = User(
            id=uuid4(),
            name=data.name,
            email=data.email,
            password_hash=hash_password(data.password),
            is_superuser=data.email in self.superuser_emails,
            created_at=now,
            updated_at=now,
        )
        self.repo.create(user)
        log.info("user_registered", user_id=str(user.id))
        return UserOut.from_entity(user)

    def login(self, form: LoginForm) -> TokenResponse:
        user = self.repo.get_by_email(form.email.strip().lower())
        if user is None or not verify_password(form.password, user.password_hash):
            raise UnauthorizedError("invalid credentials")

        session_id = uuid4().hex
        token, expires_at = create_access_token(subject=str(user.id), session_id=session_id)
        self.repo.create_session(
            AuthSession(
                id=session_id,
                user_id=user.id,
                expires_at=expires_at,
                created_at=datetime.now(timezone.utc),
            )
        )
        log.info("user_logged_in", user_id=str(user.id))
        return TokenResponse(token=BEARER_PREFIX + token, expires_at=expires_at)

    def _session_for(self, token: str) -> Optional[AuthSession]:
        try:
            claims = decode_token(strip_bearer(token))
        except JWTError:
            return None
        session_id = claims.get("jti")
        if not session_id:
            return None
        session = self.repo.get_session(session_id)
        if session is None or str(session.user_id) != claims.get("sub"):
            return None
        return session

    def get_self(self, token: str) -> Optional[UserOut]:
        """Resolve a bearer token to its user, or None when it does not resolve."""
        session = self._session_for(token)
        if session is None:
            return None
        user = self.repo.get_by_id(session.user_id)
        return UserOut.from_entity(user) if user else None

    def logout(self, token: str) -> bool:
        session = self._session_for(token)
        if session is None:
            return False
        return self.repo.delete_session(session.id)

    def update_self(self, user_id: UUID, data: UserUpdate) -> UserOut:
        user = self.repo.get_by_id(user_id)
        if user is None:
            raise NotFoundError("user not found")
        updated = user.model_copy(
            update={"name": data.name, "email": data.email, "updated_at": datetime.now(timezone.utc)}
        )
        self.repo.update(updated)
        return UserOut.from_entity(updated)

    def delete_self(self, user_id: UUID) -> None:
        if not self.repo.delete(user_id):
            raise NotFoundError("user not found")
        log.info("user_deleted", user_id=str(user_id))

    def get_user(self, ctx: "RequestContext", user_id: UUID, q: NoQuery) -> UserOut:
        """Superusers may read any account; everyone else only their own."""
        actor = ctx.user
        if actor is None or (actor.id != user_id and not actor.is_superuser):
            raise ForbiddenError("not allowed to view this user")
        user = self.repo.get_by_id(user_id)
        if user is None:
            raise NotFoundError("user not found")
        return UserOut.from_entity(user)

    def query_users(self, ctx: "RequestContext", q: UserQuery) -> PaginationResult[UserOut]:
        if ctx.user is None or not ctx.user.is_superuser:
            raise ForbiddenError("listing users requires a superuser")
        offset = (q.page - 1) * q.page_size
        users, total = self.repo.query(q.search, offset, q.page_size)
        return PaginationResult[UserOut](
            page=q.page,
            page_size=q.page_size,
            total=total,
            items=[UserOut.from_entity(u) for u in users],
        )


_user_service: Optional[UserService] = None


# PUBLIC_INTERFACE
def get_user_service() -> UserService:
    """FastAPI dependency returning the process-wide service."""
    global _user_service
    if _user_service is None:
        _user_service = UserService(create_user_repository(), get_settings().superuser_emails)
    return _user_service


# PUBLIC_INTERFACE
def reset_user_service() -> None:
    """Drop the cached service so the next call re-reads settings (tests)."""
    global _user_service
    _user_service = None

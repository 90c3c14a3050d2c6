"""User and auth-session storage.

Two implementations share the UserRepository protocol:
- InMemoryUserRepository: process-local dicts, for development and tests.
- SqliteUserRepository: the `users` and `auth_tokens` tables.

create_user_repository() picks one from DATA_PROVIDER.
"""
from __future__ import annotations

import sqlite3
import threading
from datetime import datetime, timezone
from typing import Dict, List, Optional, Protocol, Tuple
from uuid import UUID

from pydantic import BaseModel

from content_api.core.config import Settings, get_settings
from content_api.core.errors import ConflictError
from content_api.db import sqlite as sqlite_db
from content_api.models.user import User

EMAIL_TAKEN = "email already registered"


class AuthSession(BaseModel):
    """Persisted access-token session."""
    id: str
    user_id: UUID
    expires_at: datetime
    created_at: datetime


class UserRepository(Protocol):
    def create(self, user: User) -> None: ...

    def get_by_id(self, user_id: UUID) -> Optional[User]: ...

    def get_by_email(self, email: str) -> Optional[User]: ...

    def update(self, user: User) -> None: ...

    def delete(self, user_id: UUID) -> bool: ...

    def query(self, search: Optional[str], offset: int, limit: int) -> Tuple[List[User], int]: ...

    def create_session(self, session: AuthSession) -> None: ...

    def get_session(self, session_id: str) -> Optional[AuthSession]: ...

    def delete_session(self, session_id: str) -> bool: ...


def _matches(user: User, search: Optional[str]) -> bool:
    if not search:
        return True
    needle = search.strip().casefold()
    return needle in user.name.casefold() or needle in user.email.casefold()


class InMemoryUserRepository:
    """Dict-backed repository. Email uniqueness is enforced under a lock."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._users: Dict[UUID, User] = {}
        self._ids_by_email: Dict[str, UUID] = {}
        self._sessions: Dict[str, AuthSession] = {}

    def create(self, user: User) -> None:
        with self._lock:
            if user.email in self._ids_by_email:
                raise ConflictError(EMAIL_TAKEN)
            self._users[user.id] = user
            self._ids_by_email[user.email] = user.id

    def get_by_id(self, user_id: UUID) -> Optional[User]:
        return self._users.get(user_id)

    def get_by_email(self, email: str) -> Optional[User]:
        uid = self._ids_by_email.get(email)
        return self._users.get(uid) if uid else None

    def update(self, user: User) -> None:
        with self._lock:
            current = self._users.get(user.id)
            if current is None:
                return
            owner = self._ids_by_email.get(user.email)
            if owner is not None and owner != user.id:
                raise ConflictError(EMAIL_TAKEN)
            self._ids_by_email.pop(current.email, None)
            self._ids_by_email[user.email] = user.id
            self._users[user.id] = user

    def delete(self, user_id: UUID) -> bool:
        with self._lock:
            user = self._users.pop(user_id, None)
            if user is None:
                return False
            self._ids_by_email.pop(user.email, None)
            for sid in [s.id for s in self._sessions.values() if s.user_id == user_id]:
                del self._sessions[sid]
            return True

    def query(self, search: Optional[str], offset: int, limit: int) -> Tuple[List[User], int]:
        rows = sorted(
            (u for u in self._users.values() if _matches(u, search)),
            key=lambda u: (u.created_at, str(u.id)),
        )
        return rows[offset:offset + limit], len(rows)

    def create_session(self, session: AuthSession) -> None:
        now = datetime.now(timezone.utc)
        with self._lock:
            # Expired sessions are dropped whenever a new one is issued.
            for sid in [s.id for s in self._sessions.values() if s.expires_at <= now]:
                del self._sessions[sid]
            self._sessions[session.id] = session

    def get_session(self, session_id: str) -> Optional[AuthSession]:
        return self._sessions.get(session_id)

    def delete_session(self, session_id: str) -> bool:
        with self._lock:
            return self._sessions.pop(session_id, None) is not None


def _user_from_row(row: dict) -> User:
    return User(
        id=UUID(row["id"]),
        name=row["name"],
        email=row["email"],
        password_hash=row["password_hash"],
        is_superuser=bool(row["is_superuser"]),
        created_at=datetime.fromisoformat(row["created_at"]),
        updated_at=datetime.fromisoformat(row["updated_at"]),
    )


def _iso(value: datetime) -> str:
    # Fixed width so expiry strings compare in time order.
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class SqliteUserRepository:
    """Repository over the sqlite helper module; one connection per call."""

    def __init__(self, db_path: Optional[str] = None) -> None:
        self.db_path = db_path

    def create(self, user: User) -> None:
        try:
            with sqlite_db.get_conn(self.db_path) as conn:
                sqlite_db.execute(
                    conn,
                    "INSERT INTO users (id, name, email, password_hash, is_superuser, created_at, updated_at)"
                    " VALUES (?, ?, ?, ?, ?, ?, ?)",
                    (
                        str(user.id),
                        user.name,
                        user.email,
                        user.password_hash,
                        int(user.is_superuser),
                        _iso(user.created_at),
                        _iso(user.updated_at),
                    ),
                )
        except sqlite3.IntegrityError:
            # Unique constraint violation (email)
            raise ConflictError(EMAIL_TAKEN)

    def get_by_id(self, user_id: UUID) -> Optional[User]:
        with sqlite_db.get_conn(self.db_path) as conn:
            row = sqlite_db.fetch_one(conn, "SELECT * FROM users WHERE id = ?", (str(user_id),))
        return _user_from_row(row) if row else None

    def get_by_email(self, email: str) -> Optional[User]:
        with sqlite_db.get_conn(self.db_path) as conn:
            row = sqlite_db.fetch_one(conn, "SELECT * FROM users WHERE email = ?", (email,))
        return _user_from_row(row) if row else None

    def update(self, user: User) -> None:
        try:
            with sqlite_db.get_conn(self.db_path) as conn:
                sqlite_db.execute(
                    conn,
                    "UPDATE users SET name = ?, email = ?, password_hash = ?, updated_at = ? WHERE id = ?",
                    (user.name, user.email, user.password_hash, _iso(user.updated_at), str(user.id)),
                )
        except sqlite3.IntegrityError:
            raise ConflictError(EMAIL_TAKEN)

    def delete(self, user_id: UUID) -> bool:
        with sqlite_db.get_conn(self.db_path) as conn:
            # auth_tokens rows go with it (ON DELETE CASCADE)
            return sqlite_db.execute(conn, "DELETE FROM users WHERE id = ?", (str(user_id),)) > 0

    def query(self, search: Optional[str], offset: int, limit: int) -> Tuple[List[User], int]:
        where, params = "", []
        if search and search.strip():
            pattern = f"%{_escape_like(search.strip().casefold())}%"
            where = " WHERE casefold(name) LIKE ? ESCAPE '\\' OR casefold(email) LIKE ? ESCAPE '\\'"
            params = [pattern, pattern]
        with sqlite_db.get_conn(self.db_path) as conn:
            total = sqlite_db.fetch_one(conn, f"SELECT COUNT(*) AS n FROM users{where}", params)["n"]
            rows = sqlite_db.fetch_all(
                conn,
                f"SELECT * FROM users{where} ORDER BY created_at, id LIMIT ? OFFSET ?",
                [*params, limit, offset],
            )
        return [_user_from_row(r) for r in rows], total

    def create_session(self, session: AuthSession) -> None:
        with sqlite_db.get_conn(self.db_path) as conn:
            sqlite_db.execute(
                conn,
                "DELETE FROM auth_tokens WHERE expires_at <= ?",
                (_iso(datetime.now(timezone.utc)),),
            )
            sqlite_db.execute(
                conn,
                "INSERT INTO auth_tokens (id, user_id, expires_at, created_at) VALUES (?, ?, ?, ?)",
                (session.id, str(session.user_id), _iso(session.expires_at), _iso(session.created_at)),
            )

    def get_session(self, session_id: str) -> Optional[AuthSession]:
        with sqlite_db.get_conn(self.db_path) as conn:
            row = sqlite_db.fetch_one(conn, "SELECT * FROM auth_tokens WHERE id = ?", (session_id,))
        if not row:
            return None
        return AuthSession(
            id=row["id"],
            user_id=UUID(row["user_id"]),
            expires_at=datetime.fromisoformat(row["expires_at"]),
            created_at=datetime.fromisoformat(row["created_at"]),
        )

    def delete_session(self, session_id: str) -> bool:
        with sqlite_db.get_conn(self.db_path) as conn:
            return sqlite_db.execute(conn, "DELETE FROM auth_tokens WHERE id = ?", (session_id,)) > 0


# PUBLIC_INTERFACE
def create_user_repository(settings: Optional[Settings] = None) -> UserRepository:
    """Create the repository configured by DATA_PROVIDER."""
    settings = settings or get_settings()
    if settings.data_provider == "sqlite":
        return SqliteUserRepository(settings.db_path)
    return InMemoryUserRepository()

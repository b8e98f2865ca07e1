from __future__ import annotations

import logging
import secrets
import time
from collections.abc import Callable
from typing import Final

from fastapi import Request, Security
from fastapi.security import APIKeyCookie, APIKeyHeader
from pydantic import BaseModel, ConfigDict, Field

from unireg.errors import unauthorized

logger = logging.getLogger(__name__)

SESSION_COOKIE: Final[str] = "unireg_session"
SESSION_HEADER: Final[str] = "X-UniReg-Session"

_cookie_scheme = APIKeyCookie(name=SESSION_COOKIE, auto_error=False)
_header_scheme = APIKeyHeader(name=SESSION_HEADER, auto_error=False)


class SessionUser(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    name: str | None = None
    email: str | None = None
    image: str | None = None
    role: str | None = None
    access_token: str | None = Field(default=None, alias="accessToken")


class Session(BaseModel):
    session_id: str
    user: SessionUser
    expires_at: float


class SessionStore:
    """In-memory session records keyed by an opaque session id.

    Expired sessions are treated as absent. They are evicted when looked up and
    swept out whenever a new session is created; ``on_expire`` hears about each
    evicted id.
    """

    def __init__(
        self,
        *,
        max_age_seconds: int,
        clock: Callable[[], float] = time.time,
        on_expire: Callable[[str], None] | None = None,
    ) -> None:
        self._max_age_seconds = max_age_seconds
        self._clock = clock
        self._on_expire = on_expire
        self._sessions: dict[str, Session] = {}

    @property
    def max_age_seconds(self) -> int:
        return self._max_age_seconds

    def _expire(self, session: Session) -> None:
        self._sessions.pop(session.session_id, None)
        logger.info("Session expired for user %s", session.user.id)
        if self._on_expire is not None:
            self._on_expire(session.session_id)

    def _sweep(self) -> None:
        now = self._clock()
        for session in [s for s in self._sessions.values() if s.expires_at <= now]:
            self._expire(session)

    def create(self, user: SessionUser) -> Session:
        self._sweep()
        session_id = secrets.token_urlsafe(32)
        session = Session(
            session_id=session_id,
            user=user,
            expires_at=self._clock() + self._max_age_seconds,
        )
        self._sessions[session_id] = session
        logger.info("Session created for user %s", user.id)
        return session

    def get(self, session_id: str | None) -> Session | None:
        if not session_id:
            return None
        session = self._sessions.get(session_id)
        if session is None:
            return None
        if session.expires_at <= self._clock():
            self._expire(session)
            return None
        return session

    def destroy(self, session_id: str | None) -> bool:
        if not session_id:
            return False
        return self._sessions.pop(session_id, None) is not None

    def __len__(self) -> int:
        return len(self._sessions)


def session_id_candidates(request: Request) -> list[str]:
    """Session ids the request carries: the cookie first, then the header."""

    candidates: list[str] = []
    cookie_value = request.cookies.get(SESSION_COOKIE)
    if cookie_value:
        candidates.append(cookie_value)

    header_value = (request.headers.get(SESSION_HEADER) or "").strip()
    if header_value and header_value not in candidates:
        candidates.append(header_value)
    return candidates


def get_session_store(request: Request) -> SessionStore:
    store = getattr(request.app.state, "session_store", None)
    if store is None:
        raise RuntimeError("Session store not initialized")
    return store


def resolve_session(request: Request, store: SessionStore) -> Session | None:
    # A stale cookie must not shadow a valid header.
    for session_id in session_id_candidates(request):
        session = store.get(session_id)
        if session is not None:
            return session
    return None


def authorize(request: Request, store: SessionStore) -> Session:
    """Resolve the caller's session or fail with an unauthorized error."""

    session = resolve_session(request, store)
    if session is None:
        raise unauthorized()
    return session


def current_session(request: Request) -> Session | None:
    return resolve_session(request, get_session_store(request))


async def require_session(
    request: Request,
    cookie_value: str | None = Security(_cookie_scheme),  # noqa: B008
    header_value: str | None = Security(_header_scheme),  # noqa: B008
) -> Session:
    """Dependency for protected JSON routes.

    Accepts either:
    - the ``unireg_session`` cookie set at sign-in
    - X-UniReg-Session: <session id>
    """

    return authorize(request, get_session_store(request))

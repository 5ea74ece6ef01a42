from datetime import timedelta

from fastapi import Request
from passlib.context import CryptContext

from .config import settings
from .errors import NotAuthenticated
from .sessions import AdminSession, InMemorySessionStore, SessionStore, new_session

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

default_session_store = InMemorySessionStore()


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_admin_password(password: str) -> bool:
    raw = str(password or "")
    if not raw:
        return False
    password_hash = settings.ADMIN_PASSWORD_HASH
    if password_hash:
        try:
            return pwd_context.verify(raw, password_hash)
        except ValueError:
            return False
    return raw == settings.ADMIN_PASSWORD


def get_session_store(request: Request) -> SessionStore:
    return getattr(request.app.state, "session_store", default_session_store)


def start_admin_session(store: SessionStore) -> AdminSession:
    session = new_session(timedelta(hours=max(1, int(settings.ADMIN_SESSION_HOURS))))
    store.put(session)
    return session


def require_admin(request: Request) -> AdminSession:
    session_id = request.cookies.get(settings.ADMIN_COOKIE_NAME) or ""
    session = get_session_store(request).lookup(session_id)
    if session is None:
        raise NotAuthenticated()
    return session

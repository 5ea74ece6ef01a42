from fastapi import APIRouter, Depends, Request, Response

from .authn import get_session_store, require_admin, start_admin_session, verify_admin_password
from .config import settings
from .errors import NotAuthenticated
from .schemas import LoginRequest
from .sessions import AdminSession

router = APIRouter(prefix="/api/admin", tags=["admin-auth"])


@router.post("/login")
def login(payload: LoginRequest, request: Request, response: Response):
    if not verify_admin_password(payload.password or ""):
        raise NotAuthenticated("Invalid password")

    session = start_admin_session(get_session_store(request))
    response.set_cookie(
        settings.ADMIN_COOKIE_NAME,
        session.id,
        httponly=True,
        max_age=int(settings.ADMIN_SESSION_HOURS) * 3600,
        samesite="strict",
    )
    return {"success": True, "message": "Login successful"}


@router.post("/logout")
def logout(request: Request, response: Response):
    session_id = request.cookies.get(settings.ADMIN_COOKIE_NAME)
    if session_id:
        get_session_store(request).expire(session_id)
    response.delete_cookie(settings.ADMIN_COOKIE_NAME)
    return {"success": True, "message": "Logged out"}


@router.get("/check-auth")
def check_auth(session: AdminSession = Depends(require_admin)):
    return {"authenticated": True, "expires_at": session.expires_at.isoformat()}

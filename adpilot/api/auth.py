"""Authentication API: login, logout, current user."""
from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from sqlalchemy.orm import Session

from adpilot.models.base import get_db
from adpilot.models.user import User
from adpilot.services import auth_service
from adpilot.config import get_settings

router = APIRouter(prefix="/auth", tags=["auth"])


def require_user(request: Request) -> User:
    """Dependency: raise 401 if no authenticated user on request."""
    user = getattr(request.state, "user", None)
    if not user:
        raise HTTPException(status_code=401, detail="Not authenticated")
    return user


class LoginRequest(BaseModel):
    email: str
    password: str


def _user_out(u: User) -> dict:
    return {
        "id": u.id,
        "email": u.email,
        "display_name": u.display_name,
        "is_active": u.is_active,
        "created_at": u.created_at.isoformat() if u.created_at else None,
        "last_login": u.last_login.isoformat() if u.last_login else None,
    }


@router.post("/login")
async def login(body: LoginRequest, db: Session = Depends(get_db)):
    """Authenticate and return a session cookie."""
    user = auth_service.authenticate(db, body.email, body.password)
    if not user:
        raise HTTPException(status_code=401, detail="Invalid email or password")

    settings = get_settings()
    token = auth_service.create_session(db, user.id)
    response = JSONResponse(content={"success": True, "user": _user_out(user)})
    response.set_cookie(
        key="session_token",
        value=token,
        httponly=True,
        secure=settings.environment != "development",
        samesite="lax",
        max_age=60 * 60 * settings.session_duration_hours,
        path="/",
    )
    return response


@router.post("/logout")
async def logout(request: Request, db: Session = Depends(get_db)):
    """Clear session and cookie."""
    token = request.cookies.get("session_token")
    if token:
        auth_service.delete_session(db, token)
    response = JSONResponse(content={"success": True})
    response.delete_cookie("session_token", path="/")
    return response


@router.get("/me")
async def me(user: User = Depends(require_user)):
    """Return current authenticated user."""
    return _user_out(user)

"""Authentication middleware: protects all routes except public paths."""
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse

from adpilot.models.base import SessionLocal
from adpilot.services import auth_service

# Paths that never require authentication
PUBLIC_PREFIXES = (
    "/auth/login",
    "/health",
    "/docs",
    "/openapi.json",
    "/redoc",
)


class AuthMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        path = request.url.path

        if any(path.startswith(p) for p in PUBLIC_PREFIXES):
            return await call_next(request)

        # CORS preflight carries no cookies
        if request.method == "OPTIONS":
            return await call_next(request)

        token = request.cookies.get("session_token")
        user = None
        if token:
            db = SessionLocal()
            try:
                user = auth_service.validate_session(db, token)
                if user:
                    db.expunge(user)
            finally:
                db.close()

        if user:
            # Attach user to request state for downstream use
            request.state.user = user
            return await call_next(request)

        return JSONResponse(
            status_code=401,
            content={"detail": "Not authenticated"},
        )

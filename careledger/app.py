import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from careledger.core.config import get_settings
from careledger.core.logs import configure_logging
from careledger.domain.errors import LedgerError
from careledger.routers import care as care_router
from careledger.routers import dashboard as dashboard_router
from careledger.routers import members as members_router
from careledger.routers import notifications as notifications_router
from careledger.routers import therapists as therapists_router
from careledger.services.care_service import CareLedgerService
from careledger.services.member_service import MemberService
from careledger.services.notification_service import NotificationService

logger = logging.getLogger(__name__)


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Inject baseline security headers (anti clickjacking, no sniffing, referrer policy)."""

    def __init__(self, app, *, enforce_hsts: bool) -> None:
        super().__init__(app)
        self._enforce_hsts = enforce_hsts

    async def dispatch(self, request, call_next):
        response = await call_next(request)
        response.headers.setdefault("X-Frame-Options", "DENY")
        response.headers.setdefault("X-Content-Type-Options", "nosniff")
        response.headers.setdefault("Referrer-Policy", "no-referrer")
        response.headers.setdefault("Cache-Control", "no-store")
        if self._enforce_hsts:
            response.headers.setdefault("Strict-Transport-Security", "max-age=31536000; includeSubDomains")
        return response


async def _ledger_error_handler(request: Request, exc: LedgerError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse({"error": exc.code, "detail": exc.message}, status_code=exc.status_code)


def create_app(
    *,
    member_service: MemberService | None = None,
    care_service: CareLedgerService | None = None,
    notification_service: NotificationService | None = None,
) -> FastAPI:
    """Factory compatible with uvicorn/gunicorn (`--factory careledger.app:create_app`)."""
    configure_logging()
    settings = get_settings()
    app = FastAPI(title="Care Ledger API")

    allowed_cors = set()
    if settings.app_env != "prod":
        allowed_cors.update(
            {
                "http://localhost:5173",
                "http://127.0.0.1:5173",
                "http://localhost:3000",
            }
        )
    if allowed_cors:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=sorted(allowed_cors),
            allow_credentials=True,
            allow_methods=["GET", "POST", "PATCH", "DELETE", "OPTIONS"],
            allow_headers=["*"],
        )
    app.add_middleware(SecurityHeadersMiddleware, enforce_hsts=settings.app_env == "prod")
    app.add_exception_handler(LedgerError, _ledger_error_handler)

    notifications = notification_service or NotificationService()
    app.state.notification_service = notifications
    app.state.member_service = member_service or MemberService()
    app.state.care_service = care_service or CareLedgerService(notifications=notifications)

    app.include_router(members_router.router)
    app.include_router(therapists_router.router)
    app.include_router(care_router.router)
    app.include_router(notifications_router.router)
    app.include_router(dashboard_router.router)

    @app.get("/health")
    def health():
        return {"ok": True}

    return app

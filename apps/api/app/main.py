import uuid

import structlog
from fastapi import FastAPI, Request

import apps.api.app.models.audit_log
import apps.api.app.models.revoked_token
import apps.api.app.models.user

from apps.api.app.api.error_handling import register_exception_handlers
from apps.api.app.api.users import router as users_router
from apps.api.app.core.config import settings
from apps.api.app.core.logging import get_logger
from apps.api.app.core.rate_limit import limiter
from apps.api.app.db.session import Base, SessionLocal, engine
from apps.api.app.routes.auth import router as auth_router
from apps.api.app.services.revocation import build_revocation_store
from apps.api.app.services.tokens import TokenService


logger = get_logger(__name__)


def create_app(token_service: TokenService = None) -> FastAPI:
    app = FastAPI(title="maison-darin auth API")

    Base.metadata.create_all(bind=engine)

    if token_service is None:
        store = build_revocation_store(settings, session_factory=SessionLocal)
        token_service = TokenService(settings, store)
    app.state.token_service = token_service
    app.state.limiter = limiter

    register_exception_handlers(app)

    @app.middleware("http")
    async def bind_request_context(request: Request, call_next):
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            request_id=request_id,
            path=request.url.path,
            method=request.method,
        )
        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        return response

    app.include_router(auth_router)
    app.include_router(users_router)

    @app.get("/healthz")
    def healthz():
        return {"status": "ok"}

    @app.get("/")
    def root():
        return {"app": "maison-darin-auth", "docs": "/docs"}

    logger.info(
        "app_created",
        environment=settings.ENVIRONMENT,
        revocation_backend=settings.REVOCATION_BACKEND,
    )
    return app


app = create_app()

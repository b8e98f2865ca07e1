from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from logging.handlers import RotatingFileHandler

import httpx
from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import HTMLResponse, JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from unireg import __version__
from unireg.accounts import router as accounts_router
from unireg.cache import InvalidationBus, PageCache
from unireg.config import apply_env_overrides, load_portal_config
from unireg.errors import PortalError, portal_error_handler
from unireg.gateway import UpstreamGateway
from unireg.home import ensure_portal_layout, resolve_portal_home
from unireg.resources import STUDENTS, build_resource_router
from unireg.sessions import SessionStore, current_session
from unireg.ui.router import router as ui_router
from unireg.ui.router import templates

logger = logging.getLogger(__name__)


def create_app(*, upstream_transport: httpx.AsyncBaseTransport | None = None) -> FastAPI:
    """Build the portal app.

    ``upstream_transport`` replaces the network transport of the upstream client;
    tests pass an ``httpx.MockTransport`` here.
    """

    @asynccontextmanager
    async def _lifespan(app: FastAPI):
        home = resolve_portal_home()
        paths = ensure_portal_layout(home)
        config = apply_env_overrides(load_portal_config(paths))

        root = logging.getLogger()
        root.setLevel(logging.INFO)
        # Avoid adding duplicate handlers if reloaded
        if not any(isinstance(h, RotatingFileHandler) for h in root.handlers):
            file_handler = RotatingFileHandler(
                paths.log_path,
                maxBytes=config.logging.max_size_mb * 1024 * 1024,
                backupCount=config.logging.backup_count,
                encoding="utf-8",
            )
            file_handler.setFormatter(
                logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
            )
            root.addHandler(file_handler)

        logger.info("UniReg portal starting up")
        logger.info("Upstream API: %s", config.upstream.base_url)

        bus = InvalidationBus()
        page_cache = PageCache(bus, ttl_seconds=config.ui.list_cache_ttl_seconds)
        gateway = UpstreamGateway.from_config(config.upstream, transport=upstream_transport)

        app.state.portal_home = home
        app.state.portal_paths = paths
        app.state.portal_config = config
        app.state.session_store = SessionStore(
            max_age_seconds=config.session.max_age_seconds,
            on_expire=page_cache.forget_session,
        )
        app.state.invalidation_bus = bus
        app.state.page_cache = page_cache
        app.state.gateway = gateway

        try:
            yield
        finally:
            app.state.page_cache.close()
            await gateway.aclose()
            logger.info("UniReg portal stopped")

    app = FastAPI(title="UniReg Portal", version=__version__, lifespan=_lifespan)

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        response = await call_next(request)
        logger.info(f"{request.method} {request.url.path} - {response.status_code}")
        return response

    app.add_exception_handler(PortalError, portal_error_handler)

    @app.exception_handler(RequestValidationError)
    async def _validation_error_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        return JSONResponse(
            status_code=422,
            content={"error": "Request validation failed", "details": exc.errors()},
        )

    @app.exception_handler(HTTPException)
    async def _http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
        return JSONResponse(status_code=exc.status_code, content={"error": str(exc.detail)})

    @app.exception_handler(StarletteHTTPException)
    async def _starlette_http_exception_handler(
        request: Request, exc: StarletteHTTPException
    ) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": exc.detail if isinstance(exc.detail, str) else "HTTP error"},
        )

    @app.exception_handler(Exception)
    async def _unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(status_code=500, content={"error": "Internal server error"})

    app.include_router(accounts_router)
    app.include_router(build_resource_router(STUDENTS))
    app.include_router(ui_router)

    @app.get("/", response_class=HTMLResponse)
    async def landing(request: Request) -> HTMLResponse:
        session = current_session(request)
        return templates.TemplateResponse(
            request,
            "landing.html",
            {
                "title": "UniReg",
                "active": None,
                "user": session.user if session is not None else None,
            },
        )

    @app.get("/healthz")
    async def healthz() -> dict[str, str]:
        return {"status": "ok"}

    return app

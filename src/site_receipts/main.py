from __future__ import annotations

from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

from site_receipts.api.router import router as api_router
from site_receipts.bootstrap import bootstrap
from site_receipts.core.config import settings
from site_receipts.core.errors import register_error_handlers
from site_receipts.core.logging import RequestContextMiddleware
from site_receipts.web.ui import STATIC_DIR, router as ui_router

STATIC_CACHE_SECONDS = 60 * 60 * 24 * 365


class CachedStaticFiles(StaticFiles):
    """Static files with long-lived cache headers, used in production."""

    def file_response(self, *args, **kwargs):
        response = super().file_response(*args, **kwargs)
        response.headers["Cache-Control"] = f"public, max-age={STATIC_CACHE_SECONDS}, immutable"
        return response


def create_app() -> FastAPI:
    @asynccontextmanager
    async def lifespan(_: FastAPI):
        bootstrap()
        yield

    app = FastAPI(title="Site Receipts", version="0.1.0", lifespan=lifespan)
    app.add_middleware(RequestContextMiddleware)
    if not settings.is_production:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=settings.cors_origins,
            allow_methods=["*"],
            allow_headers=["*"],
        )
    register_error_handlers(app)
    app.include_router(api_router)
    app.include_router(ui_router)
    static_cls = CachedStaticFiles if settings.is_production else StaticFiles
    app.mount("/static", static_cls(directory=str(STATIC_DIR)), name="static")
    return app


app = create_app()


def serve() -> None:
    uvicorn.run("site_receipts.main:app", host="0.0.0.0", port=settings.port)

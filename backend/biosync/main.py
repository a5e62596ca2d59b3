from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded

from biosync.api.deps import build_services
from biosync.api.v1.api import api_router
from biosync.core.config import get_settings
from biosync.core.logging import configure_logging
from biosync.core.rate_limit import limiter
from biosync.db.init_db import init_db
from biosync.db.session import SessionLocal

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging(settings.log_level)
    init_db()
    if getattr(app.state, "services", None) is None:
        app.state.services = build_services(settings, SessionLocal)
    yield
    await app.state.services.advisory.wait_idle()


app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    debug=settings.debug,
    lifespan=lifespan,
)

app.state.limiter = limiter

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_allowed_origins_list,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "x-device-id"],
)


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded):
    return JSONResponse(
        status_code=429,
        content={
            "detail": "Rate limit exceeded",
            "retry_hint": "Please retry after the rate limit window.",
        },
    )


@app.get("/healthz")
def healthz() -> dict:
    return {"status": "ok", "app": settings.app_name, "version": settings.app_version}


app.include_router(api_router)

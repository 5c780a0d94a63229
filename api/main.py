"""
DriveDock Onboarding — FastAPI Backend
Driver onboarding progression, resume verification and abandoned-application cleanup.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from config import settings
import models  # noqa: F401  registers tables on Base.metadata
from db.database import Base, engine
from db.redis import close_redis
from routers import admin, cron, onboarding, resume
from services.errors import AppError, RateLimited
from services.sessions import clear_cookie_instruction

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events."""
    # Startup
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("DriveDock onboarding API starting...")
    yield
    # Shutdown
    await close_redis()
    await engine.dispose()
    logger.info("DriveDock onboarding API shut down.")


app = FastAPI(
    title="DriveDock Onboarding API",
    description="Driver onboarding progression, resume and cleanup backend",
    version="1.0.0",
    lifespan=lifespan,
)

# ── CORS ───────────────────────────────────────────────────
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Restrict in production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ── Errors ─────────────────────────────────────────────────
@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    response = JSONResponse(status_code=exc.status_code, content=exc.to_payload())
    if isinstance(exc, RateLimited):
        response.headers["Retry-After"] = str(exc.retry_after_seconds)
    if exc.clear_cookie:
        clear_cookie_instruction(settings).apply(response)
    return response


# ── Routers ────────────────────────────────────────────────
# resume first so /resume/... is not captured by /{tracker_id}
app.include_router(resume.router, prefix="/api/onboarding/resume", tags=["Resume"])
app.include_router(onboarding.router, prefix="/api/onboarding", tags=["Onboarding"])
app.include_router(cron.router, prefix="/api/cron", tags=["Cron"])
app.include_router(admin.router, prefix="/api/admin/onboarding", tags=["Admin"])


@app.get("/health")
async def health_check():
    return {"status": "healthy", "service": "DriveDock Onboarding API"}

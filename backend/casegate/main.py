"""
FastAPI application entry point
"""
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from casegate.api.v1.api import api_router
from casegate.core.config import settings
from casegate.core.logger import logger
from casegate.db.database import init_db
from casegate.middleware.correlation import CorrelationMiddleware
from casegate.services.background_jobs import shutdown_scheduler, start_scheduler


@asynccontextmanager
async def lifespan(app: FastAPI):
    if settings.DB_CREATE_TABLES:
        init_db()
    start_scheduler()
    logger.info("Casegate API started")
    yield
    shutdown_scheduler()
    logger.info("Casegate API shutdown")


app = FastAPI(
    title=settings.APP_NAME,
    version="1.0.0",
    docs_url="/docs" if settings.DEBUG else None,
    redoc_url="/redoc" if settings.DEBUG else None,
    openapi_url="/openapi.json" if settings.DEBUG else None,
    lifespan=lifespan,
)

# ── Routers ───────────────────────────────────────────────────────────────────
app.include_router(api_router, prefix="/api/v1")

# ── Correlation ID middleware (must be added before CORS) ─────────────────────
app.add_middleware(CorrelationMiddleware)

# ── CORS ──────────────────────────────────────────────────────────────────────
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-Correlation-ID"],
)


@app.get("/")
def read_root():
    logger.info("Root endpoint accessed")
    return {"message": "Casegate API is running", "version": "1.0.0", "docs": "/docs"}

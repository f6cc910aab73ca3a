"""FastAPI application."""
import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from .config import settings
from .database import SessionLocal
from .domain_errors import DomainError
from .problem_details import domain_error_handler
from .routers import (
    auth,
    data_management,
    error_logs,
    history,
    materials,
    products,
    recovery_settings,
    reports,
    uploads,
    users,
)
from .schemas import HealthResponse

logger = logging.getLogger(__name__)

# Create app
app = FastAPI(
    title="Parts Recovery Tracker",
    version="1.0.0",
    description="Backend API for tracking recovery of replaced parts and returned products",
)

if settings.ENV.lower() == "production" and not settings.cors_origins:
    raise RuntimeError("ALLOWED_ORIGINS must be set in production (explicit frontend origin required).")
if settings.ENV.lower() == "production" and any(origin.strip() == "*" for origin in settings.cors_origins):
    raise RuntimeError("ALLOWED_ORIGINS must be explicit in production (no wildcard).")

# CORS
cors_methods = ["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"]
# Custom headers must be whitelisted explicitly in production.
cors_headers = ["Content-Type", "X-User-Code"]
if settings.ENV.lower() != "production":
    cors_headers = ["*"]

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=False,
    allow_methods=cors_methods,
    allow_headers=cors_headers,
    expose_headers=["Content-Disposition"],
)

app.add_exception_handler(DomainError, domain_error_handler)

# Include routers
app.include_router(auth.router, prefix="/api/v1")
app.include_router(users.router, prefix="/api/v1")
app.include_router(uploads.router, prefix="/api/v1")
app.include_router(materials.router, prefix="/api/v1")
app.include_router(products.router, prefix="/api/v1")
app.include_router(history.router, prefix="/api/v1")
app.include_router(recovery_settings.router, prefix="/api/v1")
app.include_router(reports.router, prefix="/api/v1")
app.include_router(data_management.router, prefix="/api/v1")
app.include_router(error_logs.router, prefix="/api/v1")


@app.get("/api/v1/system/health", response_model=HealthResponse)
def health_check():
    """Health check endpoint; reports the database as down instead of failing."""
    database = "ok"
    db = SessionLocal()
    try:
        db.execute(text("SELECT 1"))
    except SQLAlchemyError:
        logger.exception("health.database unavailable")
        database = "unavailable"
    finally:
        db.close()
    return HealthResponse(
        status="ok" if database == "ok" else "degraded",
        app=settings.APP_NAME,
        database=database,
    )


@app.get("/")
def root():
    """Root endpoint."""
    return {
        "message": "Parts Recovery Tracker API",
        "version": "1.0.0",
        "docs": "/docs",
    }

"""FastAPI application."""
import logging

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from .config import settings
from .database import SessionLocal
from .domain_errors import DomainError
from .problem_details import domain_error_exception_handler, request_validation_exception_handler
from .routers import health_checks, repair_items

logger = logging.getLogger(__name__)

# Create app
app = FastAPI(
    title="Vehicle Health Check Workflow",
    version="1.0.0",
    description="Backend API for the vehicle health check workflow"
)

# Production safety checks.
if settings.ENV.lower() == "production" and settings.JWT_SECRET_KEY == "dev-only-change-me":
    raise RuntimeError("JWT_SECRET_KEY must be set in production.")
if settings.ENV.lower() == "production" and any(origin.strip() == "*" for origin in settings.cors_origins):
    raise RuntimeError("ALLOWED_ORIGINS must be explicit in production (no wildcard when using credentials).")

# CORS
cors_methods = ["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"]
cors_headers = ["Authorization", "Content-Type"]
if settings.ENV.lower() != "production":
    cors_headers = ["*"]

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=cors_methods,
    allow_headers=cors_headers,
)

app.add_exception_handler(DomainError, domain_error_exception_handler)
app.add_exception_handler(RequestValidationError, request_validation_exception_handler)

# Include routers
app.include_router(health_checks.router, prefix="/api/v1")
app.include_router(repair_items.router, prefix="/api/v1")


@app.get("/api/v1/system/health")
def health_check():
    """Liveness plus a database round-trip."""
    database = "ok"
    db = SessionLocal()
    try:
        db.execute(text("SELECT 1"))
    except SQLAlchemyError:
        logger.exception("Database health probe failed")
        database = "error"
    finally:
        db.close()

    return {
        "status": "ok" if database == "ok" else "degraded",
        "version": "1.0.0",
        "database": database,
    }


@app.get("/")
def root():
    """Root endpoint."""
    return {
        "message": "Vehicle Health Check Workflow API",
        "version": "1.0.0",
        "docs": "/docs"
    }

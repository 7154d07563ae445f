"""
Membership Portal API
=====================

Backend for a members-only portal built with FastAPI.

Tech Stack:
- FastAPI
- Postgres
- SQLAlchemy
- ImageKit (document storage)

Features:
- Registration behind reCAPTCHA with an administrator approval workflow
- Single and bulk approve / reject / delete, CSV/XLSX import, CSV/PDF export
- Document library backed by the ImageKit CDN
- Notification emails with editable templates
- Rate limiting and audit logging
"""

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException
from contextlib import asynccontextmanager
from dotenv import load_dotenv
from pathlib import Path
import logging
import time

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from portal.config import settings
from portal.database import Base, SessionLocal, ReadonlySessionLocal, engine
from portal.errors import PortalError, DependencyError
import portal.models  # noqa: F401  (registers tables on Base.metadata)

from portal.routes.auth_routes import router as auth_router
from portal.routes.user_routes import router as user_router
from portal.routes.admin_routes import router as admin_router
from portal.routes.document_routes import router as document_router
from portal.routes.file_routes import router as file_router

from portal.middleware.audit_log import audit_logger

# Load environment variables
ROOT_DIR = Path(__file__).parent
load_dotenv(ROOT_DIR / ".env")

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

SERVICE_NAME = "Membership Portal API"
VERSION = "1.0.0"


def db_healthcheck() -> None:
    """Simple DB connectivity check."""
    db: Session = SessionLocal()
    try:
        db.execute(text("SELECT 1"))
    finally:
        db.close()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler.

    Tables are normally created by migrations; AUTO_CREATE_TABLES=true
    creates them on startup for local development.
    """
    if settings.auto_create_tables:
        Base.metadata.create_all(bind=engine)
        logger.info("Database tables ensured")

    try:
        db_healthcheck()
        logger.info("Connected to database successfully")
    except SQLAlchemyError as e:
        logger.error(f"Database connection failed: {e}", exc_info=True)
        raise RuntimeError("Database connection failed") from e

    audit_logger.set_session_factory(SessionLocal)

    logger.info("%s started (env=%s)", SERVICE_NAME, settings.app_env)
    yield
    logger.info("%s shutdown complete", SERVICE_NAME)


app = FastAPI(
    title=SERVICE_NAME,
    description="""
## Overview

Member registration, approval and document access for the portal.

### Roles

- **user**: registers, waits for approval, then reads documents
- **admin**: reviews registrations, manages members and files
- **super_admin**: everything an admin does plus staff accounts and global settings

All protected endpoints expect `Authorization: Bearer <token>`.
""",
    version=VERSION,
    lifespan=lifespan,
    docs_url="/api/docs",
    redoc_url="/api/redoc",
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=[o.strip() for o in settings.cors_origins.split(",") if o.strip()],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Routers
app.include_router(auth_router, prefix="/api")
app.include_router(user_router, prefix="/api")
app.include_router(admin_router, prefix="/api")
app.include_router(document_router, prefix="/api")
app.include_router(file_router, prefix="/api")


# Health
@app.get("/api/health")
def health_check():
    return {
        "status": "healthy",
        "service": SERVICE_NAME,
        "version": VERSION,
    }


@app.get("/api/keepalive")
def keepalive():
    """Touches the read-only database tier so idle free-tier databases stay awake."""
    started = time.perf_counter()
    db_queried = False
    error = None

    db: Session = ReadonlySessionLocal()
    try:
        db.execute(text("SELECT 1"))
        db_queried = True
    except SQLAlchemyError as e:
        logger.warning("Keepalive query failed: %s", e)
        error = str(e.__class__.__name__)
    finally:
        db.close()

    return {
        "status": "ok",
        "db_queried": db_queried,
        "latency_ms": round((time.perf_counter() - started) * 1000, 2),
        "error": error,
    }


# Error handlers
def error_response(status_code: int, message: str, extra: dict = None, headers: dict = None) -> JSONResponse:
    content = {"error": message, "status_code": status_code}
    if extra:
        content.update(extra)
    return JSONResponse(status_code=status_code, content=content, headers=headers)


@app.exception_handler(PortalError)
async def portal_error_handler(request: Request, exc: PortalError):
    if isinstance(exc, DependencyError):
        logger.error(f"Dependency failure on {request.url.path}: {exc.message}", exc_info=exc)
        return error_response(exc.status_code, exc.public_message)
    return error_response(exc.status_code, exc.message, exc.extra)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return error_response(exc.status_code, str(exc.detail), headers=getattr(exc, "headers", None))


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    first = errors[0] if errors else {}
    field = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
    message = f"{field}: {first.get('msg')}" if field else (first.get("msg") or "Invalid request parameters")
    return error_response(400, message, {"details": jsonable_errors(errors)})


def jsonable_errors(errors) -> list:
    return [{"loc": [str(p) for p in e.get("loc", ())], "msg": e.get("msg"), "type": e.get("type")} for e in errors]


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled exception: {exc}", exc_info=True)
    return error_response(500, "Internal server error")


if __name__ == "__main__":
    import os
    import uvicorn
    uvicorn.run("portal.main:app", host="0.0.0.0", port=int(os.environ.get("PORT", 8001)), reload=True)

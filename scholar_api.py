"""
Scholar Database API - Main Application
FastAPI application for scholarship programs: dynamic intake forms,
applicant form data with completion tracking, CSV export and analytics.

Run with: uvicorn scholar_api:create_app --factory
"""

import logging
import time
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.orm import sessionmaker

from auth.security import hash_password, verify_password
from database import crud, schemas
from database.database import Base, build_engine, build_session_factory
from database.models import UserRole
from routers import auth, scholar_fields, scholars, students
from services.responses import install_exception_handlers
from services.storage import StorageClient
from settings import Settings

log = logging.getLogger(__name__)

API_PREFIX = "/api/v1"
VERSION = "1.0.0"


def _seed_admin(session_factory: sessionmaker, settings: Settings) -> None:
    """Ensure a valid "admin" account matching ADMIN_PASSWORD exists."""
    if not settings.admin_password:
        log.warning("ADMIN_PASSWORD not set, skipping default admin check")
        return

    db = session_factory()
    try:
        admin = crud.get_user_by_username(db, "admin")
        if admin and admin.role == UserRole.ADMIN.value and verify_password(settings.admin_password, admin.hashed_password):
            return

        if admin:
            log.warning("Default admin account invalid, recreating it")
            crud.delete_user(db, admin.id)
        crud.create_user(
            db,
            schemas.UserCreate(username="admin", password=settings.admin_password, firstname="admin", lastname="admin"),
            hash_password(settings.admin_password),
            UserRole.ADMIN.value,
        )
        log.info("Default admin created")
    finally:
        db.close()


def create_app(settings: Optional[Settings] = None, storage: Optional[StorageClient] = None) -> FastAPI:
    settings = settings or Settings.from_env()
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    engine = build_engine(settings.database_url)
    session_factory = build_session_factory(engine)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Startup: create tables + seed the default admin."""
        Base.metadata.create_all(bind=engine)
        _seed_admin(session_factory, settings)
        yield
        engine.dispose()

    app = FastAPI(
        title="Scholar Database API",
        description="Scholarship programs, dynamic application forms, completion tracking, export and analytics",
        version=VERSION,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.engine = engine
    app.state.session_factory = session_factory
    app.state.storage = storage or StorageClient.from_settings(settings)

    # CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["Content-Disposition"],
    )

    if settings.development:
        @app.middleware("http")
        async def log_requests(request: Request, call_next):
            start = time.perf_counter()
            response = await call_next(request)
            log.info(
                "%s %s -> %d (%.1f ms)",
                request.method, request.url.path, response.status_code,
                (time.perf_counter() - start) * 1000,
            )
            return response

    install_exception_handlers(app)

    # ─── Routers ───────────────────────────────────────────────────────────────

    app.include_router(auth.router, prefix=API_PREFIX)             # /api/v1/auth/*
    app.include_router(scholars.router, prefix=API_PREFIX)         # /api/v1/scholar/*
    app.include_router(scholar_fields.router, prefix=API_PREFIX)   # /api/v1/scholar-field/*
    app.include_router(students.router, prefix=API_PREFIX)         # /api/v1/student/*

    @app.get("/")
    def root():
        return {
            "name": "Scholar Database API",
            "version": VERSION,
            "endpoints": {
                "docs": "/docs",
                "auth": f"{API_PREFIX}/auth",
                "scholar": f"{API_PREFIX}/scholar",
                "scholar_field": f"{API_PREFIX}/scholar-field",
                "student": f"{API_PREFIX}/student",
            },
        }

    @app.get("/health")
    def health():
        return {"status": "healthy", "service": "scholar-api", "version": VERSION}

    return app


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("scholar_api:create_app", factory=True, host="0.0.0.0", port=8000)

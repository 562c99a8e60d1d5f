# ruff: noqa: I001

import logging
import os
from pathlib import Path

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from clearscrub.api.router import api_router
from clearscrub.api.routes import health
from clearscrub.config import settings
from clearscrub.core.errors import register_error_handlers
from clearscrub.core.observability import global_exception_handler, request_logging_middleware
from clearscrub.database import POOL_CONFIG, engine
from clearscrub.services.rollups import runner as rollup_runner

api_prefix = (
    settings.api_prefix
    if settings.api_prefix.startswith("/")
    else f"/{settings.api_prefix}"
    if settings.api_prefix
    else ""
)

logger = logging.getLogger("clearscrub")
logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s %(message)s")

app = FastAPI(
    title=settings.app_name,
    docs_url="/docs" if settings.enable_docs else None,
    redoc_url="/redoc" if settings.enable_docs else None,
    openapi_url=(f"{api_prefix}/openapi.json" if api_prefix else "/openapi.json")
    if settings.enable_docs
    else None,
)

# Expose logger for middleware without creating circular imports.
app.state.logger = logger

# Machine-readable intake rejections, then the catch-all 500.
register_error_handlers(app)
app.add_exception_handler(Exception, global_exception_handler)

# Request-level logging + request correlation id.
app.middleware("http")(request_logging_middleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origin_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(health.router)
app.include_router(api_router, prefix=api_prefix)


def _run_migrations_if_configured() -> None:
    if not settings.run_migrations_on_start:
        return

    # Avoid running migrations during tests.
    if (settings.environment or "").lower() == "test":
        return

    # Import lazily to keep import graph light for non-migration startups.
    from alembic import command
    from alembic.config import Config
    from sqlalchemy import text

    backend_root = Path(__file__).resolve().parents[1]
    alembic_cfg = Config(str(backend_root / "alembic.ini"))
    alembic_cfg.set_main_option("script_location", str(backend_root / "alembic"))

    lock_key = 734100
    with engine.connect() as connection:
        dialect = str(connection.dialect.name or "").lower()

        # Best-effort: avoid concurrent migrations across multiple instances.
        lock_acquired = True
        if dialect == "postgresql":
            lock_acquired = bool(
                connection.execute(text("select pg_try_advisory_lock(:k)"), {"k": lock_key}).scalar()
            )
        if not lock_acquired:
            logger.info("migrations_skipped_lock_not_acquired")
            return

        try:
            # Reuse this connection inside Alembic env.py (config.attributes['connection']).
            alembic_cfg.attributes["connection"] = connection
            command.upgrade(alembic_cfg, "head")
            logger.info("migrations_applied")
        finally:
            if dialect == "postgresql":
                connection.execute(text("select pg_advisory_unlock(:k)"), {"k": lock_key})
                connection.commit()


@app.on_event("startup")
def _startup():
    logger.info(
        "runtime_config",
        extra={
            "pid": os.getpid(),
            "environment": settings.environment,
            "web_concurrency": os.getenv("WEB_CONCURRENCY"),
            "db_pool": POOL_CONFIG,
        },
    )
    _run_migrations_if_configured()
    # Avoid running background threads in test context by default.
    if (settings.environment or "").lower() == "test":
        return
    if not settings.rollup_refresh_enabled:
        return
    rollup_runner.start()
    logger.info(
        "rollup_scheduler_started",
        extra={"interval_seconds": rollup_runner.interval_seconds},
    )


@app.on_event("shutdown")
def _shutdown():
    rollup_runner.stop()
    logger.info("rollup_scheduler_stopped")


@app.get("/", tags=["meta"])
def root():
    docs_path = (
        (f"{api_prefix}/openapi.json" if api_prefix else "/openapi.json")
        if settings.enable_docs
        else None
    )
    return {"message": settings.app_name, "docs": docs_path}

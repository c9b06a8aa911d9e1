"""FastAPI application factory."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager, suppress
from pathlib import Path

from alembic.config import Config as AlembicConfig
from alembic.script import ScriptDirectory
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text
from trailclub.config import get_settings
from trailclub.database import close_engine, get_engine, get_session_factory

from api.routers import admin_reconcile, admin_webhooks, health, stripe_webhook
from api.services.claim_coordinator import ClaimCoordinator
from api.services.maintenance import run_maintenance_worker
from api.services.webhook_ledger import WebhookEventLedger

logger = logging.getLogger(__name__)


async def _assert_database_revision_current() -> None:
    settings = get_settings()
    if settings.skip_migration_check:
        return

    repo_root = Path(__file__).resolve().parents[3]
    alembic_ini = repo_root / "alembic.ini"
    if not alembic_ini.exists():
        logger.warning("alembic.ini not found; skipping migration revision check")
        return

    alembic_cfg = AlembicConfig(str(alembic_ini))
    alembic_cfg.set_main_option("script_location", str(repo_root / "alembic"))
    script = ScriptDirectory.from_config(alembic_cfg)
    expected_heads = set(script.get_heads())
    if not expected_heads:
        return

    engine = get_engine()
    try:
        async with engine.connect() as connection:
            result = await connection.execute(text("SELECT version_num FROM alembic_version"))
            current_revisions = {str(row[0]) for row in result.fetchall() if row and row[0]}
    except Exception as exc:
        raise RuntimeError(
            "Database migration revision check failed. "
            "Run `alembic upgrade head` before starting the API."
        ) from exc

    if current_revisions != expected_heads:
        raise RuntimeError(
            "Database schema revision mismatch: "
            f"db={sorted(current_revisions)} expected={sorted(expected_heads)}. "
            "Run `alembic upgrade head`."
        )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    settings = get_settings()
    maintenance_stop_event: asyncio.Event | None = None
    maintenance_task: asyncio.Task | None = None
    try:
        await _assert_database_revision_current()
        if settings.run_maintenance_worker:
            coordinator = ClaimCoordinator(
                WebhookEventLedger(get_session_factory()),
                settings.claim_policy(),
            )
            maintenance_stop_event = asyncio.Event()
            maintenance_task = asyncio.create_task(
                run_maintenance_worker(maintenance_stop_event, coordinator)
            )
        yield
    finally:
        if maintenance_stop_event is not None:
            maintenance_stop_event.set()
        if maintenance_task is not None:
            try:
                await asyncio.wait_for(maintenance_task, timeout=5)
            except Exception:
                maintenance_task.cancel()
                with suppress(Exception):
                    await maintenance_task
        await close_engine()


def _warn_insecure_defaults() -> None:
    settings = get_settings()
    if settings.secret_key == "change-me-in-production":
        logger.warning("SECRET_KEY uses insecure default value")
    if not settings.stripe_webhook_secret:
        logger.warning("STRIPE_WEBHOOK_SECRET is empty; webhooks will be rejected")
    if not settings.admin_whitelist():
        logger.warning("ADMIN_EMAIL_WHITELIST is empty; any admin token is accepted")


def create_app() -> FastAPI:
    app = FastAPI(title="Trailclub Billing API", version="0.1.0", lifespan=lifespan)
    settings = get_settings()
    _warn_insecure_defaults()
    allowed_origins = [settings.site_url, settings.admin_url]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.include_router(admin_reconcile.router, prefix="/admin/reconcile", tags=["admin"])
    app.include_router(admin_webhooks.router, prefix="/admin/webhooks", tags=["admin"])
    app.include_router(health.router, tags=["health"])
    app.include_router(stripe_webhook.router, prefix="/v1/stripe", tags=["stripe"])
    return app


app = create_app()

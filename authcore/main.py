"""FastAPI application factory."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI

from authcore.api.error_handlers import register_exception_handlers
from authcore.api.routers import get_api_router
from authcore.core.config import AppSettings, get_settings
from authcore.core.database import SessionFactory, SessionLocal, session_scope
from authcore.core.logging import configure_logging
from authcore.events_engine.dispatcher import AuditDispatcher, build_audit_dispatcher
from authcore.events_engine.publisher import QueueEventPublisher
from authcore.events_engine.writer import AuditWriter
from authcore.services.cache import PermissionCache, PermissionCacheService, build_permission_cache
from authcore.services.resolver import PermissionResolver
from authcore.services.role_store import RoleStore
from authcore.services.roles import RoleService
from authcore.services.signer import Signer, SignerConfig

LOGGER = logging.getLogger("authcore.main")


@asynccontextmanager
async def lifespan(app: FastAPI):  # noqa: D401
    """Seed baseline permissions and run the audit writer for the app's lifetime."""

    settings: AppSettings = app.state.settings
    with session_scope(app.state.session_factory) as session:
        cache_service = PermissionCacheService(
            app.state.permission_cache,
            PermissionResolver(RoleStore(session)),
            ttl_seconds=settings.permission_cache_ttl,
        )
        RoleService(
            session,
            cache_service=cache_service,
            audit=app.state.audit_dispatcher,
        ).ensure_baseline_permissions(settings.default_permissions)

    writer: Optional[AuditWriter] = app.state.audit_writer
    if writer is not None and settings.audit_worker_enabled:
        writer.start()

    try:
        yield
    finally:
        if writer is not None:
            if writer.running:
                writer.stop()
            else:
                writer.drain()


def create_app(
    settings: AppSettings | None = None,
    *,
    session_factory: SessionFactory = SessionLocal,
    permission_cache: Optional[PermissionCache] = None,
    audit_dispatcher: Optional[AuditDispatcher] = None,
) -> FastAPI:
    """Application factory.

    Raises ``ConfigurationMissing`` when either signing secret is absent, so a
    misconfigured process never starts serving.
    """

    settings = settings or get_settings()
    configure_logging(settings)
    signer = Signer(SignerConfig.from_settings(settings))

    app = FastAPI(
        title="AuthCore",
        version="1.0.0",
        lifespan=lifespan,
    )

    dispatcher = audit_dispatcher or build_audit_dispatcher(settings)
    publisher = dispatcher.publisher
    app.state.settings = settings
    app.state.session_factory = session_factory
    app.state.signer = signer
    app.state.permission_cache = permission_cache or build_permission_cache(settings)
    app.state.audit_dispatcher = dispatcher
    app.state.audit_writer = (
        AuditWriter(publisher.queue, session_factory=session_factory)
        if isinstance(publisher, QueueEventPublisher)
        else None
    )

    register_exception_handlers(app)
    app.include_router(get_api_router())
    LOGGER.info(
        "app_created",
        extra={"environment": settings.environment, "audit_writer": app.state.audit_writer is not None},
    )
    return app

"""FastAPI application factory wiring config, persistence and routers."""

from __future__ import annotations

import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from starter.api.contracts import HealthResponse
from starter.api.http_setup import register_exception_handlers, register_http_middleware
from starter.auth.guards import AuthGuard
from starter.auth.repository import AuthRepository
from starter.auth.router import create_auth_router
from starter.auth.service import AuthService
from starter.core.config import AppConfig
from starter.core.db import create_db_engine, create_session_factory, init_schema
from starter.realtime.gateway import RealtimeGateway
from starter.realtime.router import create_realtime_router
from starter.realtime.socket_manager import SocketManager
from starter.scheduler.registry import JobScheduler
from starter.scheduler.router import create_scheduler_router

LOGGER = logging.getLogger(__name__)

TOKEN_CLEANUP_JOB = "refresh-token-cleanup"


def create_app(config: AppConfig) -> FastAPI:
    """Build the API with its own engine, scheduler and socket registry."""
    app = FastAPI(title="Starter Auth API", version="1.0.0")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.security.cors_allowed_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PATCH", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type"],
    )
    register_http_middleware(app, config=config, logger=LOGGER)
    register_exception_handlers(app, logger=LOGGER)

    engine = create_db_engine(config.database)
    init_schema(engine)
    auth_repo = AuthRepository(create_session_factory(engine))
    auth_service = AuthService(auth_repo, config.auth)
    auth_service.bootstrap_admin_user()
    guard = AuthGuard(auth_service)

    scheduler = JobScheduler()
    gateway = RealtimeGateway(SocketManager())

    app.state.auth_repo = auth_repo
    app.state.auth_service = auth_service
    app.state.scheduler = scheduler
    app.state.gateway = gateway

    app.include_router(create_auth_router(auth_service, guard))
    app.include_router(create_realtime_router(gateway, guard))
    app.include_router(create_scheduler_router(scheduler, guard))

    @app.get("/health", response_model=HealthResponse)
    def health() -> HealthResponse:
        return HealthResponse(status="ok")

    @app.on_event("startup")
    async def startup_scheduler() -> None:
        if not config.scheduler.enabled:
            return
        if not scheduler.job_exists(TOKEN_CLEANUP_JOB):
            scheduler.add_job(
                TOKEN_CLEANUP_JOB,
                config.scheduler.token_cleanup_interval_seconds,
                auth_service.cleanup_expired_tokens,
            )
        await scheduler.start()

    @app.on_event("shutdown")
    async def shutdown_scheduler() -> None:
        await scheduler.shutdown()
        engine.dispose()

    return app

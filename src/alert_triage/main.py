"""
Alert Triage Service - Main Application
=======================================

Multi-tenant SOC alert triage.

Modules:
- Intake: classify alerts from email, EDR, firewall and SIEM sources
- Alerts: deduplicate, correlate, and drive the alert lifecycle
- Playbooks: response guidance per classification
- Assignment: role-aware, least-loaded routing to analysts

Clean Architecture Layers:
- Interfaces: FastAPI controllers
- Application: Services and DTOs
- Domain: Entities and value objects
- Infrastructure: Database, connectors, rule files
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from alert_triage.alerts.interfaces import alerts_router, correlations_router
from alert_triage.assignment.interfaces import assignment_router
from alert_triage.config import Settings, get_settings
from alert_triage.container import ServiceContainer
from alert_triage.core import ApplicationException
from alert_triage.intake.interfaces import intake_router
from alert_triage.playbooks.interfaces import playbooks_router
from alert_triage.shared.api.middleware import (
    CorrelationIDMiddleware,
    LoggingMiddleware,
    application_exception_handler,
    global_exception_handler,
)
from alert_triage.shared.infrastructure.logging import get_logger, setup_logging

logger = get_logger(__name__)

DESCRIPTION = """
## SOC Alert Triage

Takes raw alerts from monitoring sources and turns them into assigned,
actionable work items.

### Pipeline
1. **Classify**: alert type, classification, severity and device identifier
2. **Deduplicate**: repeat deliveries merge into the open alert
3. **Correlate**: related alerts across devices are clustered
4. **Guide**: active playbooks are attached by classification
5. **Assign**: least-loaded eligible analyst in the tenant

### Identity
Every request carries `X-User-Id`, `X-User-Role` and `X-Tenant-Id`,
set by the upstream auth layer.
"""


def create_app(
    settings: Optional[Settings] = None,
    container: Optional[ServiceContainer] = None,
) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        settings: Overrides ``get_settings()``
        container: Pre-built container (tests); started and stopped with the app
    """
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator:
        """
        STARTUP:
        1. Setup structured logging
        2. Start the service container (rules, database, services, poller)

        SHUTDOWN:
        1. Stop the service container
        """
        setup_logging(settings.log_level, settings.environment)
        logger.info("Starting Alert Triage Service", extra={
            "version": settings.app_version,
            "environment": settings.environment,
        })

        services = container or ServiceContainer(settings)
        await services.start()
        app.state.container = services

        yield

        logger.info("Shutting down Alert Triage Service")
        await services.stop()
        logger.info("Alert Triage Service shutdown complete")

    app = FastAPI(
        title="Alert Triage API",
        description=DESCRIPTION,
        version=settings.app_version,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    # === CORS Middleware ===
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Added last runs first: the correlation id must exist before logging
    app.add_middleware(LoggingMiddleware)
    app.add_middleware(CorrelationIDMiddleware)
    app.add_exception_handler(ApplicationException, application_exception_handler)
    app.add_exception_handler(Exception, global_exception_handler)

    # === Include Module Routers ===
    app.include_router(intake_router)
    app.include_router(alerts_router)
    app.include_router(correlations_router)
    app.include_router(playbooks_router)
    app.include_router(assignment_router)

    @app.get("/health", tags=["Health"], responses={
        200: {
            "description": "Service is healthy",
            "content": {
                "application/json": {
                    "example": {
                        "status": "healthy",
                        "version": "1.0.0",
                        "environment": "development",
                        "checks": {
                            "storage": "sqlalchemy",
                            "triage_rules": "loaded (14 rules)",
                            "connectors": "running (3)",
                        }
                    }
                }
            }
        }
    })
    async def health_check(request: Request):
        """Health check endpoint for load balancers and orchestrators."""
        services: Optional[ServiceContainer] = getattr(request.app.state, "container", None)
        if services is None or not services.started:
            return {
                "status": "starting",
                "version": settings.app_version,
                "environment": settings.environment,
                "checks": {},
            }

        poller = services.poller
        connectors = len(poller.connector_ids) if poller is not None else 0
        checks = {
            "storage": settings.storage_backend,
            "triage_rules": f"loaded ({len(services.rules.get_config().rules)} rules)",
            "connectors": f"running ({connectors})" if poller is not None and poller.is_running else "stopped",
        }
        return {
            "status": "healthy",
            "version": settings.app_version,
            "environment": settings.environment,
            "checks": checks,
        }

    @app.get("/", tags=["Root"])
    async def root():
        """Root endpoint with API information."""
        return {
            "service": "Alert Triage Service",
            "version": settings.app_version,
            "architecture": "Clean Architecture / Modular Monolith",
            "docs": "/docs",
            "health": "/health",
        }

    return app


app = create_app()


def run() -> None:
    """Console entry point."""
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "alert_triage.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
    )


if __name__ == "__main__":
    run()

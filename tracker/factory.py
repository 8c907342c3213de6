"""Application factory for creating FastAPI instances."""

from datetime import datetime, timedelta
from typing import Optional
from fastapi import FastAPI
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager

from .config import AppConfig, get_config, validate_config
from .core.logging import setup_logging, get_logger
from .core.assembler import TimelineAssembler
from .core.catalog import build_catalog
from .core.error_recovery import HealthChecker
from .core.layout import LayoutCalculator
from .core.metrics import MetricsCollector
from .core.rate_limit import RateLimiter
from .core.resolver import StatusResolver
from .storage.record_source import RecordSource, build_record_source
from .api.endpoints import router

logger = get_logger(__name__)


class ApplicationState:
    """Container for application state and components."""

    def __init__(self):
        self.config: Optional[AppConfig] = None
        self.assembler: Optional[TimelineAssembler] = None
        self.record_source: Optional[RecordSource] = None
        self.metrics: Optional[MetricsCollector] = None
        self.rate_limiter: Optional[RateLimiter] = None
        self.health_checker: Optional[HealthChecker] = None


def initialize_components(config: AppConfig) -> ApplicationState:
    """Build the timeline engine and its supporting services from configuration."""
    try:
        catalog = build_catalog(config.catalog_variant.value)
        resolver = StatusResolver(
            mode=config.resolution_mode,
            datetime_format=config.display_datetime_format,
            date_format=config.display_date_format
        )

        state = ApplicationState()
        state.config = config
        state.assembler = TimelineAssembler(
            catalog,
            resolver=resolver,
            layout_calculator=LayoutCalculator(),
            default_selector=config.default_workflow
        )
        state.record_source = build_record_source(config)
        state.metrics = MetricsCollector(
            capacity=config.metrics_capacity,
            usage_capacity=config.usage_capacity,
            window=timedelta(days=config.metrics_window_days)
        )
        if config.rate_limit_enabled:
            state.rate_limiter = RateLimiter(
                max_requests=config.rate_limit_max_requests,
                window_seconds=config.rate_limit_window_seconds
            )
        state.health_checker = HealthChecker()

        logger.info(
            f"Core components initialized (catalog: {catalog.name}, "
            f"mode: {resolver.mode.value}, source: {state.record_source.name})"
        )
        return state

    except Exception as e:
        logger.error(f"Core components initialization failed: {e}")
        raise


def setup_health_checks(state: ApplicationState) -> None:
    """Register checks for the catalog, the record source and the metrics collector."""

    def check_catalog():
        catalog = state.assembler.catalog
        return {
            "message": "Workflow catalog loaded",
            "catalog": catalog.name,
            "workflows": len(catalog)
        }

    def check_record_source():
        source = state.record_source
        details = source.describe()
        if hasattr(source, "count"):
            details["records"] = source.count()
        return {"message": "Record source reachable", **details}

    def check_metrics():
        stats = state.metrics.stats(recent=0)
        return {
            "window_started": stats["system"]["window_started"],
            "requests_in_window": stats["system"]["total_requests"]
        }

    state.health_checker.register_check("catalog", check_catalog, timeout=2.0)
    state.health_checker.register_check("record_source", check_record_source, timeout=5.0)
    # monitoring is optional for serving timelines
    state.health_checker.register_check("metrics", check_metrics, timeout=2.0, critical=False)


def create_lifespan_handler(config: AppConfig):
    """Create application lifespan handler."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        setup_logging(
            level=config.log_level.value,
            log_file=config.log_file,
            log_format=config.log_format,
            structured=config.log_structured,
            max_size=config.log_max_size,
            backup_count=config.log_backup_count
        )
        logger.info(f"Starting {config.app_name} v{config.app_version}")
        logger.info("Application startup completed successfully")

        yield

        logger.info(f"Shutting down {config.app_name}")

    return lifespan


def create_app(config: Optional[AppConfig] = None) -> FastAPI:
    """Create and configure FastAPI application instance."""

    # Use provided config or load from environment
    if config is None:
        config = get_config()

    validate_config(config)

    state = initialize_components(config)
    setup_health_checks(state)

    app = FastAPI(
        title=config.app_name,
        description="Shipment tracking timelines: milestone status derivation and layout",
        version=config.app_version,
        debug=config.debug,
        lifespan=create_lifespan_handler(config)
    )
    app.state.services = state

    if config.cors_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=config.cors_origins,
            allow_credentials=True,
            allow_methods=config.cors_methods,
            allow_headers=["*"],
        )

    from .core.middleware import (
        ErrorHandlingMiddleware,
        RequestLoggingMiddleware,
        MonitoringMiddleware
    )

    app.add_middleware(ErrorHandlingMiddleware)
    if config.enable_monitoring:
        app.add_middleware(
            MonitoringMiddleware,
            metrics=state.metrics,
            slow_request_threshold=config.slow_request_threshold
        )
    app.add_middleware(RequestLoggingMiddleware)

    app.include_router(router)

    add_health_endpoints(app, config)

    return app


def add_health_endpoints(app: FastAPI, config: AppConfig) -> None:
    """Add health check endpoints to the application."""
    service_name = config.app_name.lower().replace(" ", "-")

    @app.get("/")
    async def root():
        """Root endpoint for basic health check."""
        return {"message": f"{config.app_name} is running", "version": config.app_version}

    @app.get("/health")
    async def health_check():
        """Basic health check endpoint."""
        return {
            "status": "healthy",
            "service": service_name,
            "version": config.app_version
        }

    @app.get("/health/detailed")
    async def detailed_health_check():
        """Detailed health check endpoint with component status."""
        health_checker = app.state.services.health_checker

        try:
            results = await health_checker.run_all_checks()
            status_code = 503 if results["overall_status"] == "unhealthy" else 200

            return JSONResponse(
                status_code=status_code,
                content={
                    "service": service_name,
                    "version": config.app_version,
                    **results
                }
            )
        except Exception as e:
            logger.error(f"Health check failed: {str(e)}")
            return JSONResponse(
                status_code=503,
                content={
                    "service": service_name,
                    "overall_status": "unhealthy",
                    "error": str(e),
                    "timestamp": datetime.utcnow().isoformat()
                }
            )

"""Configuration management for the shipment tracking service."""

import os
from typing import Optional, Dict, Any
from pydantic import BaseModel, Field, field_validator, model_validator
from enum import Enum

from .models.core import ResolutionMode


class LogLevel(str, Enum):
    """Logging levels."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class RecordSourceType(str, Enum):
    """Supported record sources."""
    MEMORY = "memory"
    DATABASE = "database"


class CatalogVariant(str, Enum):
    """Built-in workflow catalogs."""
    SHIPMENT_TYPE = "shipment_type"
    SERVICE_LEVEL = "service_level"


class AppConfig(BaseModel):
    """Application configuration settings."""

    # Application settings
    app_name: str = Field(default="Shipment Tracking Service", description="Application name")
    app_version: str = Field(default="1.0.0", description="Application version")
    debug: bool = Field(default=False, description="Enable debug mode")

    # Server settings
    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=3000, description="Server port")
    reload: bool = Field(default=False, description="Enable auto-reload in development")

    # Record source settings
    record_source: RecordSourceType = Field(
        default=RecordSourceType.MEMORY,
        description="Where shipment records are read from"
    )
    database_url: str = Field(
        default="sqlite:///./shipments.db",
        description="Database connection URL for the database record source"
    )
    database_echo: bool = Field(default=False, description="Enable SQLAlchemy query logging")

    # Timeline settings
    catalog_variant: CatalogVariant = Field(
        default=CatalogVariant.SHIPMENT_TYPE,
        description="Which built-in workflow catalog to serve"
    )
    resolution_mode: ResolutionMode = Field(
        default=ResolutionMode.FIELD_PRESENCE,
        description="How step statuses are derived from records"
    )
    default_workflow: Optional[str] = Field(
        default=None,
        description="Shape used for unknown selectors; unset means unknown selectors are rejected"
    )
    include_events: bool = Field(default=True, description="Show event overlays such as dry ice refills")
    display_datetime_format: str = Field(default="%Y/%m/%d %H:%M", description="strftime format for timestamps")
    display_date_format: str = Field(default="%Y/%m/%d", description="strftime format for dates")

    # Rate limiting settings
    rate_limit_enabled: bool = Field(default=True, description="Enable rate limiting of tracking queries")
    rate_limit_max_requests: int = Field(default=60, description="Requests allowed per client per window")
    rate_limit_window_seconds: float = Field(default=60.0, description="Rate limit window length in seconds")

    # Monitoring settings
    enable_monitoring: bool = Field(default=True, description="Enable request monitoring middleware")
    metrics_capacity: int = Field(default=1000, description="Maximum number of request entries kept")
    usage_capacity: int = Field(default=500, description="Maximum number of usage beacons kept")
    metrics_window_days: int = Field(default=31, description="Days of request history kept")
    slow_request_threshold: float = Field(default=5.0, description="Slow request threshold in seconds")

    # Logging settings
    log_level: LogLevel = Field(default=LogLevel.INFO, description="Logging level")
    log_format: str = Field(
        default="%(asctime)s - %(name)s - %(levelname)s - [%(request_id)s] %(message)s",
        description="Log message format"
    )
    log_file: Optional[str] = Field(default=None, description="Log file path")
    log_structured: bool = Field(default=False, description="Emit JSON log lines")
    log_max_size: int = Field(default=10485760, description="Maximum log file size in bytes")  # 10MB
    log_backup_count: int = Field(default=5, description="Number of log backup files to keep")

    # Security settings
    cors_origins: list = Field(default=["*"], description="CORS allowed origins")
    cors_methods: list = Field(default=["GET", "POST", "OPTIONS"], description="CORS allowed methods")

    @field_validator('database_url')
    @classmethod
    def validate_database_url(cls, v):
        """Validate database URL format."""
        if not v:
            raise ValueError("Database URL cannot be empty")

        supported_schemes = ['sqlite', 'postgresql', 'mysql']
        scheme = v.split('://')[0].split('+')[0].lower()

        if scheme not in supported_schemes:
            raise ValueError(f"Unsupported database scheme: {scheme}. Supported: {supported_schemes}")

        return v

    @field_validator('port')
    @classmethod
    def validate_port(cls, v):
        """Validate port number."""
        if not 1 <= v <= 65535:
            raise ValueError("Port must be between 1 and 65535")
        return v

    @field_validator('rate_limit_max_requests', 'metrics_capacity', 'usage_capacity', 'metrics_window_days')
    @classmethod
    def validate_positive(cls, v):
        """Validate counts that must be at least one."""
        if v < 1:
            raise ValueError("Value must be at least 1")
        return v

    @field_validator('rate_limit_window_seconds', 'slow_request_threshold')
    @classmethod
    def validate_positive_duration(cls, v):
        """Validate durations."""
        if v <= 0:
            raise ValueError("Duration must be positive")
        return v

    @model_validator(mode='after')
    def validate_default_workflow(self):
        """Blank default workflow means none."""
        if self.default_workflow is not None and not self.default_workflow.strip():
            self.default_workflow = None
        return self

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return not self.debug and not self.reload

    def get_uvicorn_config(self) -> Dict[str, Any]:
        """Get Uvicorn server configuration."""
        return {
            "host": self.host,
            "port": self.port,
            "reload": self.reload,
            "log_level": self.log_level.value.lower(),
            "access_log": self.debug
        }

    @classmethod
    def from_env(cls) -> 'AppConfig':
        """Create configuration from environment variables."""
        defaults = cls()

        def get_env(key: str, default=None, type_func=str):
            """Get environment variable with type conversion."""
            value = os.getenv(f"TRACKER_{key}")
            if value is None:
                return default
            if type_func == bool:
                return str(value).lower() in ('true', '1', 'yes', 'on')
            elif type_func == list:
                return value.split(',') if value else default
            return type_func(value)

        return cls(
            app_name=get_env("APP_NAME", defaults.app_name),
            app_version=get_env("APP_VERSION", defaults.app_version),
            debug=get_env("DEBUG", False, bool),
            host=get_env("HOST", defaults.host),
            port=get_env("PORT", defaults.port, int),
            reload=get_env("RELOAD", False, bool),
            record_source=RecordSourceType(get_env("RECORD_SOURCE", defaults.record_source.value)),
            database_url=get_env("DATABASE_URL", defaults.database_url),
            database_echo=get_env("DATABASE_ECHO", False, bool),
            catalog_variant=CatalogVariant(get_env("CATALOG_VARIANT", defaults.catalog_variant.value)),
            resolution_mode=ResolutionMode(get_env("RESOLUTION_MODE", defaults.resolution_mode.value)),
            default_workflow=get_env("DEFAULT_WORKFLOW", None),
            include_events=get_env("INCLUDE_EVENTS", True, bool),
            display_datetime_format=get_env("DISPLAY_DATETIME_FORMAT", defaults.display_datetime_format),
            display_date_format=get_env("DISPLAY_DATE_FORMAT", defaults.display_date_format),
            rate_limit_enabled=get_env("RATE_LIMIT_ENABLED", True, bool),
            rate_limit_max_requests=get_env("RATE_LIMIT_MAX_REQUESTS", defaults.rate_limit_max_requests, int),
            rate_limit_window_seconds=get_env("RATE_LIMIT_WINDOW_SECONDS", defaults.rate_limit_window_seconds, float),
            enable_monitoring=get_env("ENABLE_MONITORING", True, bool),
            metrics_capacity=get_env("METRICS_CAPACITY", defaults.metrics_capacity, int),
            usage_capacity=get_env("USAGE_CAPACITY", defaults.usage_capacity, int),
            metrics_window_days=get_env("METRICS_WINDOW_DAYS", defaults.metrics_window_days, int),
            slow_request_threshold=get_env("SLOW_REQUEST_THRESHOLD", defaults.slow_request_threshold, float),
            log_level=LogLevel(get_env("LOG_LEVEL", "INFO").upper()),
            log_format=get_env("LOG_FORMAT", defaults.log_format),
            log_file=get_env("LOG_FILE", None),
            log_structured=get_env("LOG_STRUCTURED", False, bool),
            log_max_size=get_env("LOG_MAX_SIZE", defaults.log_max_size, int),
            log_backup_count=get_env("LOG_BACKUP_COUNT", defaults.log_backup_count, int),
            cors_origins=get_env("CORS_ORIGINS", ["*"], list),
            cors_methods=get_env("CORS_METHODS", ["GET", "POST", "OPTIONS"], list),
        )


# Global configuration instance
_config: Optional[AppConfig] = None


def get_config() -> AppConfig:
    """Get the global configuration instance."""
    global _config
    if _config is None:
        _config = AppConfig.from_env()
    return _config


def load_config(config_file: Optional[str] = None) -> AppConfig:
    """Load configuration from a .env file and environment variables."""
    global _config

    from dotenv import load_dotenv

    if config_file and os.path.exists(config_file):
        load_dotenv(config_file)
    elif os.path.exists('.env'):
        load_dotenv('.env')

    _config = AppConfig.from_env()

    return _config


def reset_config():
    """Reset the global configuration instance (mainly for testing)."""
    global _config
    _config = None


def validate_config(config: AppConfig) -> None:
    """Validate configuration settings that depend on the environment."""
    from .core.catalog import build_catalog

    errors = []

    if config.record_source == RecordSourceType.DATABASE and config.database_url.startswith("sqlite:///"):
        db_path = config.database_url.replace("sqlite:///", "")
        db_dir = os.path.dirname(db_path)
        if db_dir and db_path != ":memory:" and not os.path.exists(db_dir):
            try:
                os.makedirs(db_dir, exist_ok=True)
            except OSError as e:
                errors.append(f"Cannot create database directory {db_dir}: {e}")

    if config.log_file:
        log_dir = os.path.dirname(config.log_file)
        if log_dir and not os.path.exists(log_dir):
            try:
                os.makedirs(log_dir, exist_ok=True)
            except OSError as e:
                errors.append(f"Cannot create log directory {log_dir}: {e}")

    if config.default_workflow is not None:
        catalog = build_catalog(config.catalog_variant.value)
        if catalog.resolve_selector(config.default_workflow) is None:
            errors.append(
                f"Default workflow '{config.default_workflow}' is not in the "
                f"'{config.catalog_variant.value}' catalog"
            )

    if errors:
        raise ValueError(f"Configuration validation failed: {'; '.join(errors)}")


def get_development_config() -> AppConfig:
    """Get development configuration."""
    return AppConfig(
        debug=True,
        reload=True,
        log_level=LogLevel.DEBUG,
        database_echo=True,
        rate_limit_enabled=False
    )


def get_production_config() -> AppConfig:
    """Get production configuration."""
    return AppConfig(
        debug=False,
        reload=False,
        log_level=LogLevel.INFO,
        log_structured=True,
        record_source=RecordSourceType.DATABASE,
        cors_origins=[]
    )


def get_testing_config() -> AppConfig:
    """Get testing configuration."""
    return AppConfig(
        debug=True,
        database_url="sqlite:///:memory:",
        log_level=LogLevel.WARNING,
        rate_limit_max_requests=1000
    )

"""Application startup script and CLI interface."""

import sys
import json
import argparse
from typing import Optional

from tracker.config import (
    AppConfig,
    CatalogVariant,
    LogLevel,
    RecordSourceType,
    load_config,
    get_development_config,
    get_production_config,
    get_testing_config,
    validate_config
)
from tracker.core.assembler import TimelineAssembler
from tracker.core.catalog import build_catalog
from tracker.core.exceptions import TrackerError
from tracker.core.logging import get_logger, setup_logging
from tracker.core.resolver import StatusResolver
from tracker.models.core import ResolutionMode


def create_argument_parser() -> argparse.ArgumentParser:
    """Create command line argument parser."""
    parser = argparse.ArgumentParser(
        description="Shipment Tracking Service - milestone timelines for shipments"
    )

    # Server configuration
    parser.add_argument(
        "--host",
        help="Host to bind the server to (default: 0.0.0.0)"
    )

    parser.add_argument(
        "--port",
        type=int,
        help="Port to bind the server to (default: 3000)"
    )

    parser.add_argument(
        "--reload",
        action="store_true",
        help="Enable auto-reload for development"
    )

    # Environment configuration
    parser.add_argument(
        "--env",
        choices=["development", "production", "testing"],
        help="Environment configuration preset"
    )

    parser.add_argument(
        "--config",
        help="Path to configuration file"
    )

    # Record source configuration
    parser.add_argument(
        "--record-source",
        choices=[source.value for source in RecordSourceType],
        help="Where shipment records are read from"
    )

    parser.add_argument(
        "--database-url",
        help="Database connection URL"
    )

    # Timeline configuration
    parser.add_argument(
        "--catalog",
        choices=[variant.value for variant in CatalogVariant],
        help="Built-in workflow catalog"
    )

    # Logging configuration
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Logging level"
    )

    parser.add_argument(
        "--log-file",
        help="Path to log file"
    )

    # Debug mode
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug mode"
    )

    # Commands
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # Run server command
    run_parser = subparsers.add_parser("run", help="Run the tracking server")
    run_parser.add_argument(
        "--workers",
        type=int,
        default=1,
        help="Number of worker processes (default: 1)"
    )

    # Database commands
    db_parser = subparsers.add_parser("db", help="Database management commands")
    db_subparsers = db_parser.add_subparsers(dest="db_command", help="Database commands")

    db_subparsers.add_parser("init", help="Initialize database tables")
    db_subparsers.add_parser("seed", help="Load the sample shipments into the database")
    db_subparsers.add_parser("reset", help="Reset database (drop and recreate tables)")

    # Configuration commands
    config_parser = subparsers.add_parser("config", help="Configuration management")
    config_subparsers = config_parser.add_subparsers(dest="config_command", help="Config commands")

    config_subparsers.add_parser("show", help="Show current configuration")
    config_subparsers.add_parser("validate", help="Validate configuration")

    # Catalog commands
    subparsers.add_parser("workflows", help="List the workflow shapes of the catalog")

    timeline_parser = subparsers.add_parser("timeline", help="Print the timeline for a workflow")
    timeline_parser.add_argument("workflow", help="Selector key or shipment type label")
    source_group = timeline_parser.add_mutually_exclusive_group()
    source_group.add_argument(
        "--step",
        type=int,
        help="Current ordinal (selects ordinal mode)"
    )
    source_group.add_argument(
        "--milestones",
        help="JSON file of milestone field values (selects field-presence mode)"
    )
    timeline_parser.add_argument(
        "--no-events",
        action="store_true",
        help="Hide event overlays"
    )

    return parser


def load_configuration(args: argparse.Namespace) -> AppConfig:
    """Load configuration based on command line arguments."""

    # Load environment-specific configuration
    if args.env == "development":
        config = get_development_config()
    elif args.env == "production":
        config = get_production_config()
    elif args.env == "testing":
        config = get_testing_config()
    else:
        # Load from config file or environment
        config = load_config(args.config)

    # Override with command line arguments
    if args.host:
        config.host = args.host
    if args.port:
        config.port = args.port
    if args.reload:
        config.reload = args.reload
    if args.record_source:
        config.record_source = RecordSourceType(args.record_source)
    if args.database_url:
        config.database_url = args.database_url
    if args.catalog:
        config.catalog_variant = CatalogVariant(args.catalog)
    if args.log_level:
        config.log_level = LogLevel(args.log_level)
    if args.log_file:
        config.log_file = args.log_file
    if args.debug:
        config.debug = args.debug

    return config


def run_server(config: AppConfig, workers: int = 1):
    """Run the tracking server."""
    import uvicorn
    from tracker.factory import create_app

    logger = get_logger(__name__)
    logger.info(f"Starting server with {workers} worker(s)")

    uvicorn_config = config.get_uvicorn_config()

    if workers > 1:
        # Workers rebuild the app from TRACKER_* environment variables
        uvicorn.run(
            "tracker.factory:create_app",
            factory=True,
            workers=workers,
            **uvicorn_config
        )
    else:
        app = create_app(config)
        uvicorn.run(app, **uvicorn_config)


def run_database_command(command: str, config: AppConfig):
    """Run database management commands."""
    from tracker.storage.database import create_database_engine, create_tables, drop_tables
    from tracker.storage.record_source import SQLRecordSource

    logger = get_logger(__name__)
    engine = create_database_engine(config.database_url, echo=config.database_echo)

    if command == "init":
        logger.info("Initializing database tables...")
        create_tables(engine)
        logger.info("Database tables created successfully")

    elif command == "seed":
        source = SQLRecordSource(engine)
        count = source.seed()
        logger.info(f"Seeded {count} shipments")
        print(f"Seeded {count} shipments ({source.count()} in database)")

    elif command == "reset":
        logger.info("Resetting database...")
        drop_tables(engine)
        create_tables(engine)
        logger.info("Database reset completed successfully")


def show_configuration(config: AppConfig):
    """Show current configuration."""
    print("Current Configuration:")
    print(f"  App Name: {config.app_name}")
    print(f"  Version: {config.app_version}")
    print(f"  Debug: {config.debug}")
    print(f"  Host: {config.host}")
    print(f"  Port: {config.port}")
    print(f"  Record Source: {config.record_source.value}")
    print(f"  Database URL: {config.database_url}")
    print(f"  Catalog: {config.catalog_variant.value}")
    print(f"  Resolution Mode: {config.resolution_mode.value}")
    print(f"  Default Workflow: {config.default_workflow or '(none)'}")
    print(f"  Rate Limit: {config.rate_limit_max_requests}/{config.rate_limit_window_seconds:g}s"
          f"{'' if config.rate_limit_enabled else ' (disabled)'}")
    print(f"  Log Level: {config.log_level.value}")


def validate_configuration_command(config: AppConfig):
    """Validate configuration and show results."""
    try:
        validate_config(config)
        print("Configuration validation: PASSED")
        print("All configuration settings are valid.")
    except ValueError as e:
        print("Configuration validation: FAILED")
        print(f"Error: {e}")
        sys.exit(1)


def list_workflows(config: AppConfig):
    """Print the shapes of the configured catalog."""
    catalog = build_catalog(config.catalog_variant.value)
    print(f"Catalog: {catalog.name}")
    for shape in catalog.list_shapes():
        labels = ", ".join(shape.shipment_type_labels) or "-"
        print(f"  {shape.key} ({shape.name}, {shape.layout_kind.value}) labels: {labels}")
        for step in shape.steps:
            marker = "*" if step.is_event else str(step.ordinal)
            print(f"    {marker:>2} {step.title}")


def print_timeline(config: AppConfig, workflow: str, step: Optional[int] = None,
                   milestones_file: Optional[str] = None, include_events: bool = True):
    """Assemble a timeline and print it as JSON."""
    assembler = TimelineAssembler(
        build_catalog(config.catalog_variant.value),
        resolver=StatusResolver(
            mode=config.resolution_mode,
            datetime_format=config.display_datetime_format,
            date_format=config.display_date_format
        ),
        default_selector=config.default_workflow
    )

    record = None
    mode = None
    if step is not None:
        mode = ResolutionMode.ORDINAL
    elif milestones_file:
        with open(milestones_file, "r") as f:
            record = json.load(f)
        mode = ResolutionMode.FIELD_PRESENCE

    view = assembler.assemble(
        workflow,
        record=record,
        explicit_ordinal=step,
        mode=mode,
        include_events=include_events
    )
    print(view.model_dump_json(indent=2))


def main(argv: Optional[list] = None):
    """Main entry point for the application."""
    parser = create_argument_parser()
    args = parser.parse_args(argv)

    try:
        # Load configuration
        config = load_configuration(args)

        # Validate configuration
        validate_config(config)

        if args.command in ("workflows", "timeline", "config", "db"):
            setup_logging(level=config.log_level.value if config.debug else "WARNING")

        # Handle commands
        if args.command == "run" or args.command is None:
            # Default to running the server
            workers = getattr(args, 'workers', 1)
            run_server(config, workers)

        elif args.command == "db":
            if args.db_command:
                run_database_command(args.db_command, config)
            else:
                print("Database command required. Use --help for options.")
                sys.exit(1)

        elif args.command == "config":
            if args.config_command == "show":
                show_configuration(config)
            elif args.config_command == "validate":
                validate_configuration_command(config)
            else:
                print("Configuration command required. Use --help for options.")
                sys.exit(1)

        elif args.command == "workflows":
            list_workflows(config)

        elif args.command == "timeline":
            print_timeline(
                config,
                args.workflow,
                step=args.step,
                milestones_file=args.milestones,
                include_events=not args.no_events
            )
        else:
            parser.print_help()

    except TrackerError as e:
        print(f"Error [{e.error_code}]: {e.message}")
        sys.exit(1)
    except Exception as e:
        print(f"Error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()

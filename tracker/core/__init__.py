"""Core timeline engine components."""

from .exceptions import (
    TrackerError,
    UnknownWorkflowSelectorError,
    MalformedRecordError,
    EmptyShapeError,
    InvalidOrdinalError,
    RecordNotFoundError,
    RecordSourceError,
    RateLimitExceededError,
    ConfigurationError,
)
from .logging import setup_logging, get_logger
from .catalog import WorkflowCatalog, build_catalog
from .resolver import StatusResolver, check_monotonic
from .layout import LayoutCalculator
from .assembler import TimelineAssembler

__all__ = [
    "TrackerError",
    "UnknownWorkflowSelectorError",
    "MalformedRecordError",
    "EmptyShapeError",
    "InvalidOrdinalError",
    "RecordNotFoundError",
    "RecordSourceError",
    "RateLimitExceededError",
    "ConfigurationError",
    "setup_logging",
    "get_logger",
    "WorkflowCatalog",
    "build_catalog",
    "StatusResolver",
    "check_monotonic",
    "LayoutCalculator",
    "TimelineAssembler",
]

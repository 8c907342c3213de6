"""Data models for the timeline engine."""

from .core import (
    Status,
    ResolutionMode,
    LayoutKind,
    MilestoneRecord,
    StepDefinition,
    WorkflowShape,
    ResolvedStep,
    LayoutGroups,
    LayoutResult,
    TimelineView,
    ShipmentRecord,
    ValidationResult,
)

__all__ = [
    "Status",
    "ResolutionMode",
    "LayoutKind",
    "MilestoneRecord",
    "StepDefinition",
    "WorkflowShape",
    "ResolvedStep",
    "LayoutGroups",
    "LayoutResult",
    "TimelineView",
    "ShipmentRecord",
    "ValidationResult",
]

"""Core Pydantic models for the shipment timeline engine."""

from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple, Union
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


MilestoneValue = Union[str, bool, int, float, date, datetime, None]
MilestoneRecord = Dict[str, MilestoneValue]


class Status(str, Enum):
    """Enumeration of step statuses."""
    PENDING = "pending"
    ACTIVE = "active"
    COMPLETED = "completed"


class ResolutionMode(str, Enum):
    """Strategies for deriving step statuses."""
    ORDINAL = "ordinal"
    FIELD_PRESENCE = "field_presence"


class LayoutKind(str, Enum):
    """Visual layout families of the workflow shapes."""
    DOMESTIC = "domestic"
    IMPORT_EXPORT = "import-export"
    CROSS_TRADE = "cross-trade"
    FULL_TRACK = "full-track"
    THREE_COLUMN = "three-column"
    TWO_COLUMN = "two-column"
    SINGLE_COLUMN = "single-column"
    MEDICAL = "medical-layout"

    @property
    def is_multi_row(self) -> bool:
        """Whether cards are split into two display rows."""
        return self in (LayoutKind.THREE_COLUMN, LayoutKind.TWO_COLUMN)


class ValidationResult(BaseModel):
    """Result of a shape or record validation."""
    is_valid: bool = Field(..., description="Whether the input is valid")
    errors: List[str] = Field(default_factory=list, description="List of validation errors")
    warnings: List[str] = Field(default_factory=list, description="List of validation warnings")


class StepDefinition(BaseModel):
    """Definition of a single step or event in a workflow shape."""
    model_config = ConfigDict(frozen=True)

    ordinal: Optional[int] = Field(None, description="1-based position in the main sequence, None for events")
    title: str = Field(..., description="Display title")
    source_field: str = Field(..., description="Milestone field read from the record")
    is_event: bool = Field(default=False, description="Whether this entry is an overlay event")
    event_kind: Optional[str] = Field(None, description="Event type, e.g. 'dryice'")

    @field_validator('title', 'source_field')
    @classmethod
    def validate_not_blank(cls, value):
        """Ensure titles and field names are not empty."""
        if not value or not value.strip():
            raise ValueError("Step title and source field cannot be empty")
        return value

    @model_validator(mode='after')
    def validate_step(self):
        """Events carry no ordinal; main steps must have one."""
        if self.is_event:
            if self.ordinal is not None:
                raise ValueError(f"Event '{self.title}' must not have an ordinal")
            if not self.event_kind:
                raise ValueError(f"Event '{self.title}' must declare an event kind")
        else:
            if self.ordinal is None or self.ordinal < 1:
                raise ValueError(f"Step '{self.title}' must have a positive ordinal")
            if self.event_kind is not None:
                raise ValueError(f"Step '{self.title}' is not an event but declares an event kind")
        return self


class WorkflowShape(BaseModel):
    """A named, ordered template of tracking steps."""
    model_config = ConfigDict(frozen=True)

    key: str = Field(..., description="Selector key, e.g. 'importExport'")
    name: str = Field(..., description="Display name")
    layout_kind: LayoutKind = Field(..., description="Layout family")
    steps: Tuple[StepDefinition, ...] = Field(..., description="Steps and events in display order")
    shipment_type_labels: Tuple[str, ...] = Field(
        default=(), description="Record-store labels that select this shape"
    )

    @property
    def main_steps(self) -> List[StepDefinition]:
        """Non-event steps in ordinal order."""
        return [step for step in self.steps if not step.is_event]

    @property
    def events(self) -> List[StepDefinition]:
        """Event entries in display order."""
        return [step for step in self.steps if step.is_event]

    def event_anchor(self, event: StepDefinition) -> int:
        """Ordinal of the closest main step preceding the event."""
        anchor = 1
        for step in self.steps:
            if step == event:
                return anchor
            if not step.is_event:
                anchor = step.ordinal
        raise ValueError(f"Event '{event.title}' is not part of shape '{self.key}'")

    def without_events(self) -> "WorkflowShape":
        """Copy of this shape with every event removed."""
        return self.model_copy(update={"steps": tuple(self.main_steps)})

    def validate_structure(self) -> ValidationResult:
        """Check the ordinal invariants without raising."""
        errors = []
        main_steps = self.main_steps

        if not main_steps:
            errors.append(f"Shape '{self.key}' has no main steps")

        ordinals = [step.ordinal for step in main_steps]
        if ordinals != list(range(1, len(main_steps) + 1)):
            errors.append(
                f"Shape '{self.key}' ordinals must be contiguous from 1, got {ordinals}"
            )

        fields = [step.source_field for step in self.steps]
        duplicates = sorted({name for name in fields if fields.count(name) > 1})
        if duplicates:
            errors.append(f"Shape '{self.key}' reuses source fields: {', '.join(duplicates)}")

        return ValidationResult(is_valid=not errors, errors=errors)


class ResolvedStep(BaseModel):
    """A step definition paired with its derived status."""
    model_config = ConfigDict(frozen=True)

    definition: StepDefinition
    status: Status
    display_time: Optional[str] = None


class LayoutGroups(BaseModel):
    """Two-row partition of cards for multi-row layouts."""
    model_config = ConfigDict(frozen=True)

    row_a: Tuple[ResolvedStep, ...] = ()
    row_b: Tuple[ResolvedStep, ...] = ()


class LayoutResult(BaseModel):
    """Output of the layout calculator."""
    model_config = ConfigDict(frozen=True)

    node_positions: Tuple[float, ...]
    event_positions: Tuple[float, ...] = ()
    progress_percent: int = Field(..., ge=0, le=100)
    groups: Optional[LayoutGroups] = None


class TimelineView(BaseModel):
    """Render-ready description of a shipment timeline."""
    model_config = ConfigDict(frozen=True)

    workflow_name: str
    selector_key: str
    layout_kind: LayoutKind
    mode: ResolutionMode
    steps: Tuple[ResolvedStep, ...]
    events: Tuple[ResolvedStep, ...] = ()
    progress_percent: int = Field(..., ge=0, le=100)
    node_positions: Tuple[float, ...]
    event_positions: Tuple[float, ...] = ()
    groups: Optional[LayoutGroups] = None
    warnings: Tuple[str, ...] = ()


class ShipmentRecord(BaseModel):
    """A shipment row as supplied by a record source."""
    order_no: str = Field(..., description="Order number")
    tracking_no: str = Field(..., description="Tracking number")
    shipment_type: Optional[str] = Field(None, description="Record-store shipment type label")
    status: Optional[str] = Field(None, description="Free-text status from the record store")
    last_update: Optional[str] = Field(None, description="Last update as displayed")
    current_step: Optional[int] = Field(None, description="Current ordinal, when the store tracks one")
    milestones: Dict[str, Any] = Field(default_factory=dict, description="Milestone field values")

    @field_validator('order_no', 'tracking_no')
    @classmethod
    def validate_identifier(cls, value):
        """Normalise identifiers the way users type them."""
        if not value or not value.strip():
            raise ValueError("Order and tracking numbers cannot be empty")
        return value.strip().upper()

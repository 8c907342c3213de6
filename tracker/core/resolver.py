"""Status resolution: derive step and event statuses from milestone data."""

from datetime import date, datetime
from typing import Any, List, Mapping, Optional, Sequence

from ..models.core import ResolutionMode, ResolvedStep, Status, StepDefinition, WorkflowShape
from .exceptions import InvalidOrdinalError, MalformedRecordError
from .logging import get_logger

logger = get_logger(__name__)


PENDING_TEXT = "Pending"
PROCESSING_TEXT = "Processing..."

DEFAULT_DATETIME_FORMAT = "%Y/%m/%d %H:%M"
DEFAULT_DATE_FORMAT = "%Y/%m/%d"


def has_value(value: Any) -> bool:
    """Whether a milestone field counts as reached."""
    if value is None:
        return False
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return bool(value.strip())
    return True


def check_monotonic(steps: Sequence[ResolvedStep], workflow: Optional[str] = None) -> None:
    """
    Verify that every main step before the furthest non-pending step is completed.

    Raises:
        MalformedRecordError: If an earlier step lags behind a later one
    """
    main = [step for step in steps if not step.definition.is_event]
    reached = [index for index, step in enumerate(main) if step.status != Status.PENDING]
    if not reached:
        return

    lagging = [step for step in main[:reached[-1]] if step.status != Status.COMPLETED]
    if lagging:
        raise MalformedRecordError(
            f"Steps {', '.join(repr(step.definition.title) for step in lagging)} are not completed "
            f"although '{main[reached[-1]].definition.title}' has been reached",
            missing_fields=[step.definition.source_field for step in lagging],
            workflow=workflow
        )


class StatusResolver:
    """Resolves a workflow shape against a milestone record."""

    def __init__(
        self,
        mode: ResolutionMode = ResolutionMode.FIELD_PRESENCE,
        datetime_format: str = DEFAULT_DATETIME_FORMAT,
        date_format: str = DEFAULT_DATE_FORMAT
    ):
        self.mode = ResolutionMode(mode)
        self.datetime_format = datetime_format
        self.date_format = date_format

    def resolve(
        self,
        shape: WorkflowShape,
        record: Optional[Mapping[str, Any]] = None,
        explicit_current_ordinal: Optional[int] = None,
        mode: Optional[ResolutionMode] = None
    ) -> List[ResolvedStep]:
        """
        Derive a status for every step and event of the shape.

        Args:
            shape: The workflow shape to resolve
            record: Milestone field values; absent keys mean "not reached"
            explicit_current_ordinal: Current ordinal, required in ordinal mode
            mode: Overrides the resolver's configured mode

        Returns:
            Resolved entries in the shape's display order

        Raises:
            InvalidOrdinalError: If ordinal mode lacks a positive ordinal
            MalformedRecordError: If milestone fields are populated out of order
        """
        record = record or {}
        mode = ResolutionMode(mode or self.mode)

        if mode == ResolutionMode.ORDINAL:
            resolved = self._resolve_by_ordinal(shape, record, explicit_current_ordinal)
        else:
            resolved = self._resolve_by_presence(shape, record)

        check_monotonic(resolved, workflow=shape.key)
        logger.debug(
            f"Resolved '{shape.key}' in {mode.value} mode: "
            f"{[step.status.value for step in resolved]}"
        )
        return resolved

    def _resolve_by_ordinal(
        self,
        shape: WorkflowShape,
        record: Mapping[str, Any],
        current: Optional[int]
    ) -> List[ResolvedStep]:
        if current is None or isinstance(current, bool) or not isinstance(current, int):
            raise InvalidOrdinalError("Ordinal mode requires an integer current ordinal", ordinal=current)
        if current < 1:
            raise InvalidOrdinalError(f"Current ordinal must be at least 1, got {current}", ordinal=current)

        resolved = []
        for step in shape.steps:
            if step.is_event:
                status = Status.COMPLETED if current >= shape.event_anchor(step) else Status.PENDING
            elif step.ordinal < current:
                status = Status.COMPLETED
            elif step.ordinal == current:
                status = Status.ACTIVE
            else:
                status = Status.PENDING
            resolved.append(self._build(step, status, record.get(step.source_field)))
        return resolved

    def _resolve_by_presence(self, shape: WorkflowShape, record: Mapping[str, Any]) -> List[ResolvedStep]:
        main = shape.main_steps
        present = [has_value(record.get(step.source_field)) for step in main]

        if any(present):
            last_reached = max(index for index, flag in enumerate(present) if flag)
            gaps = [step for step, flag in zip(main[:last_reached], present) if not flag]
            if gaps:
                logger.warning(
                    f"Malformed record for '{shape.key}': "
                    f"'{main[last_reached].source_field}' is set but "
                    f"{[step.source_field for step in gaps]} are missing"
                )
                raise MalformedRecordError(
                    f"Milestone '{main[last_reached].source_field}' is set while earlier milestones "
                    f"{', '.join(repr(step.source_field) for step in gaps)} are missing",
                    missing_fields=[step.source_field for step in gaps],
                    workflow=shape.key
                )

        statuses = {}
        for index, step in enumerate(main):
            if not present[index]:
                statuses[step.ordinal] = Status.PENDING
            elif index + 1 < len(main) and present[index + 1]:
                statuses[step.ordinal] = Status.COMPLETED
            else:
                statuses[step.ordinal] = Status.ACTIVE

        resolved = []
        for step in shape.steps:
            value = record.get(step.source_field)
            if step.is_event:
                status = Status.COMPLETED if has_value(value) else Status.PENDING
            else:
                status = statuses[step.ordinal]
            resolved.append(self._build(step, status, value))
        return resolved

    def _build(self, step: StepDefinition, status: Status, value: Any) -> ResolvedStep:
        return ResolvedStep(
            definition=step,
            status=status,
            display_time=self.format_display_time(value, status)
        )

    def format_display_time(self, value: Any, status: Status) -> Optional[str]:
        """Render a milestone value, or a status placeholder when there is none."""
        if has_value(value) and not isinstance(value, bool):
            if isinstance(value, datetime):
                return value.strftime(self.datetime_format)
            if isinstance(value, date):
                return value.strftime(self.date_format)
            return str(value).strip()

        if status == Status.PENDING:
            return PENDING_TEXT
        if status == Status.ACTIVE:
            return PROCESSING_TEXT
        return None

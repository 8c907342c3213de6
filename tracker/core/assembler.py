"""Timeline assembler: catalog, resolver and layout composed into one view."""

from typing import Any, List, Mapping, Optional

from ..models.core import ResolutionMode, TimelineView
from .catalog import WorkflowCatalog
from .exceptions import UnknownWorkflowSelectorError
from .layout import LayoutCalculator
from .resolver import StatusResolver
from .logging import get_logger

logger = get_logger(__name__)


class TimelineAssembler:
    """Builds render-ready timeline views without side effects."""

    def __init__(
        self,
        catalog: WorkflowCatalog,
        resolver: Optional[StatusResolver] = None,
        layout_calculator: Optional[LayoutCalculator] = None,
        default_selector: Optional[str] = None
    ):
        """
        Args:
            catalog: Registry the selector keys are looked up in
            resolver: Status resolver, field-presence mode by default
            layout_calculator: Layout calculator
            default_selector: Shape substituted for unknown selectors; None makes them fail
        """
        self.catalog = catalog
        self.resolver = resolver or StatusResolver()
        self.layout_calculator = layout_calculator or LayoutCalculator()
        self.default_selector = None

        if default_selector is not None:
            self.default_selector = catalog.resolve_selector(default_selector)
            if self.default_selector is None:
                raise UnknownWorkflowSelectorError(default_selector, known_selectors=catalog.keys)

    def assemble(
        self,
        selector_key: str,
        record: Optional[Mapping[str, Any]] = None,
        explicit_ordinal: Optional[int] = None,
        mode: Optional[ResolutionMode] = None,
        include_events: bool = True
    ) -> TimelineView:
        """
        Assemble the timeline view for a shipment.

        Args:
            selector_key: Selector key or record-store label of the workflow shape
            record: Milestone field values
            explicit_ordinal: Current ordinal for ordinal mode
            mode: Resolution mode, defaults to the resolver's configured mode
            include_events: When False, event overlays are dropped from the shape

        Returns:
            The immutable timeline view

        Raises:
            UnknownWorkflowSelectorError: If the selector is unknown and no default is set
            InvalidOrdinalError: If ordinal mode lacks a usable ordinal
            MalformedRecordError: If milestones are populated out of order
        """
        warnings: List[str] = []
        resolved_key = self.catalog.resolve_selector(selector_key)

        if resolved_key is not None:
            shape = self.catalog.get_shape(resolved_key, include_events)
        elif self.default_selector is not None:
            shape, _ = self.catalog.get_shape_or_default(
                selector_key, self.default_selector, include_events
            )
            warnings.append(
                f"Unknown workflow selector '{selector_key}'; showing '{shape.key}' instead"
            )
        else:
            shape = self.catalog.get_shape(selector_key, include_events)

        mode = ResolutionMode(mode or self.resolver.mode)
        resolved = self.resolver.resolve(shape, record, explicit_ordinal, mode)
        layout = self.layout_calculator.layout(resolved, shape.layout_kind)

        view = TimelineView(
            workflow_name=shape.name,
            selector_key=shape.key,
            layout_kind=shape.layout_kind,
            mode=mode,
            steps=tuple(step for step in resolved if not step.definition.is_event),
            events=tuple(step for step in resolved if step.definition.is_event),
            progress_percent=layout.progress_percent,
            node_positions=layout.node_positions,
            event_positions=layout.event_positions,
            groups=layout.groups,
            warnings=tuple(warnings),
        )
        logger.debug(f"Assembled timeline '{shape.key}' at {view.progress_percent}%")
        return view

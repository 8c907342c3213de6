"""Layout calculation: node positions, progress and card grouping."""

import math
from typing import List, Optional, Sequence

from ..models.core import LayoutGroups, LayoutKind, LayoutResult, ResolvedStep, Status


AXIS_LENGTH = 100.0
EVENT_POSITION_START = 75.0
EVENT_POSITION_STEP = 10.0


def calculate_node_positions(node_count: int, total_width: float = AXIS_LENGTH) -> List[float]:
    """Spread nodes evenly across the axis; a single node sits at 0."""
    if node_count < 1:
        return []
    if node_count == 1:
        return [0.0]
    return [index * total_width / (node_count - 1) for index in range(node_count)]


def calculate_event_positions(event_count: int) -> List[float]:
    """Place events after the main axis at a fixed increment, capped at the axis end."""
    return [
        min(EVENT_POSITION_START + EVENT_POSITION_STEP * index, AXIS_LENGTH)
        for index in range(event_count)
    ]


def calculate_progress(steps: Sequence[ResolvedStep]) -> int:
    """Percentage of completed main steps, rounded half up."""
    main = [step for step in steps if not step.definition.is_event]
    if not main:
        return 0

    completed = sum(1 for step in main if step.status == Status.COMPLETED)
    percent = math.floor(100 * completed / len(main) + 0.5)
    # 100 is reserved for a fully completed timeline; rounding only reaches it
    # with 200 or more main steps
    if completed < len(main):
        percent = min(percent, 99)
    return int(percent)


def group_rows(steps: Sequence[ResolvedStep], layout_kind: LayoutKind) -> Optional[LayoutGroups]:
    """Split cards into two rows by ordinal parity for multi-row layouts."""
    if not layout_kind.is_multi_row:
        return None

    row_a, row_b = [], []
    for step in steps:
        ordinal = step.definition.ordinal
        if ordinal is not None and ordinal % 2 == 1:
            row_a.append(step)
        else:
            row_b.append(step)
    return LayoutGroups(row_a=tuple(row_a), row_b=tuple(row_b))


class LayoutCalculator:
    """Computes the visual layout of a resolved timeline."""

    def layout(self, resolved_steps: Sequence[ResolvedStep], layout_kind: LayoutKind) -> LayoutResult:
        main_count = sum(1 for step in resolved_steps if not step.definition.is_event)
        event_count = len(resolved_steps) - main_count

        return LayoutResult(
            node_positions=tuple(calculate_node_positions(main_count)),
            event_positions=tuple(calculate_event_positions(event_count)),
            progress_percent=calculate_progress(resolved_steps),
            groups=group_rows(resolved_steps, LayoutKind(layout_kind)),
        )

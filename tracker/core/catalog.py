"""Workflow catalog: the fixed registry of workflow shapes."""

from types import MappingProxyType
from typing import Dict, Iterable, List, Mapping, Optional, Tuple

from ..models.core import LayoutKind, StepDefinition, WorkflowShape
from .exceptions import EmptyShapeError, UnknownWorkflowSelectorError, ConfigurationError
from .logging import get_logger

logger = get_logger(__name__)


SHIPMENT_TYPE_VARIANT = "shipment_type"
SERVICE_LEVEL_VARIANT = "service_level"


def _step(ordinal: int, title: str, field: Optional[str] = None) -> StepDefinition:
    return StepDefinition(ordinal=ordinal, title=title, source_field=field or title)


def _event(title: str, field: str, kind: str) -> StepDefinition:
    return StepDefinition(title=title, source_field=field, is_event=True, event_kind=kind)


DRY_ICE_EVENT = _event("Dry Ice Refilled", "Dry Ice Refilled?", "dryice")


SHIPMENT_TYPE_SHAPES: Tuple[WorkflowShape, ...] = (
    WorkflowShape(
        key="domestic",
        name="Domestic Shipment",
        layout_kind=LayoutKind.DOMESTIC,
        shipment_type_labels=("Domestic",),
        steps=(
            _step(1, "Order Created"),
            _step(2, "Shipment Collected"),
            _step(3, "In Transit"),
            _step(4, "Delivered", "Shipment Delivered"),
        ),
    ),
    WorkflowShape(
        key="importExport",
        name="Import/Export Shipment",
        layout_kind=LayoutKind.IMPORT_EXPORT,
        shipment_type_labels=("Import/Export", "Import", "Export"),
        steps=(
            _step(1, "Order Created"),
            _step(2, "Shipment Collected"),
            _step(3, "Origin Customs Process"),
            _step(4, "Export Released"),
            _step(5, "In Transit"),
            _step(6, "Destination Customs Process"),
            _step(7, "Import Released"),
            DRY_ICE_EVENT,
        ),
    ),
    WorkflowShape(
        key="crossTrade",
        name="Cross Trade Shipment",
        layout_kind=LayoutKind.CROSS_TRADE,
        shipment_type_labels=("Cross Trade",),
        steps=(
            _step(1, "Order Created"),
            _step(2, "Shipment Collected"),
            _step(3, "Customs Process", "Destination Customs Process"),
            _step(4, "In Transit"),
            _step(5, "Out for Delivery"),
            _step(6, "Shipment Delivered"),
        ),
    ),
    WorkflowShape(
        key="fullTrack",
        name="Shipment Tracking",
        layout_kind=LayoutKind.FULL_TRACK,
        shipment_type_labels=("Full Track",),
        steps=(
            _step(1, "Order Placed"),
            _step(2, "Processing"),
            _step(3, "Origin Customs"),
            _step(4, "Export Clearance"),
            _step(5, "In Transit"),
            _step(6, "Destination Customs Process"),
            _step(7, "Import Released"),
            _step(8, "Out for Delivery"),
            _step(9, "POD"),
        ),
    ),
)


SERVICE_LEVEL_SHAPES: Tuple[WorkflowShape, ...] = (
    WorkflowShape(
        key="standard",
        name="Standard Shipment Tracking",
        layout_kind=LayoutKind.THREE_COLUMN,
        shipment_type_labels=("Standard",),
        steps=(
            _step(1, "Order Created"),
            _step(2, "Shipment Collected"),
            _step(3, "Origin Customs Process"),
            _step(4, "Export Released"),
            _step(5, "In Transit"),
            _step(6, "Destination Customs Process"),
            _step(7, "Import Released"),
            DRY_ICE_EVENT,
            _step(8, "Out for Delivery"),
            _step(9, "Shipment Delivered"),
        ),
    ),
    WorkflowShape(
        key="simplified",
        name="Simplified Shipment Tracking",
        layout_kind=LayoutKind.TWO_COLUMN,
        shipment_type_labels=("Simplified",),
        steps=(
            _step(1, "Order Created"),
            _step(2, "Shipment Collected"),
            _step(3, "In Transit"),
            _step(4, "Customs Process", "Destination Customs Process"),
            _step(5, "Out for Delivery"),
            _step(6, "Shipment Delivered"),
        ),
    ),
    WorkflowShape(
        key="express",
        name="Express Shipment Tracking",
        layout_kind=LayoutKind.SINGLE_COLUMN,
        shipment_type_labels=("Express",),
        steps=(
            _step(1, "Order Created"),
            _step(2, "Shipment Collected"),
            _step(3, "In Transit"),
            _step(4, "Delivered", "Shipment Delivered"),
        ),
    ),
    WorkflowShape(
        key="medical",
        name="Medical Supplies Tracking",
        layout_kind=LayoutKind.MEDICAL,
        shipment_type_labels=("Medical",),
        steps=(
            _step(1, "Order Created"),
            _step(2, "Quality Check"),
            _step(3, "Temperature Control"),
            _step(4, "Shipment Collected"),
            _step(5, "In Transit"),
            _step(6, "Cold Chain Verified"),
            _step(7, "Delivered", "Shipment Delivered"),
        ),
    ),
)


class WorkflowCatalog:
    """Read-only registry of workflow shapes keyed by selector."""

    def __init__(self, shapes: Iterable[WorkflowShape], name: str = "custom"):
        """
        Build the catalog, validating every shape up front.

        Raises:
            EmptyShapeError: If a shape has no main steps
            ConfigurationError: If a shape has broken ordinals or reused fields,
                or two shapes share a key or a label
        """
        self.name = name
        shapes_by_key: Dict[str, WorkflowShape] = {}
        labels: Dict[str, str] = {}

        for shape in shapes:
            if not shape.main_steps:
                raise EmptyShapeError(f"Workflow shape '{shape.key}' has no main steps", workflow=shape.key)
            validation = shape.validate_structure()
            if not validation.is_valid:
                raise ConfigurationError(
                    f"Workflow shape '{shape.key}' is invalid: {'; '.join(validation.errors)}",
                    config_key=shape.key,
                    details={"validation_errors": validation.errors}
                )
            if shape.key in shapes_by_key:
                raise ConfigurationError(f"Duplicate workflow selector: '{shape.key}'", config_key=shape.key)
            shapes_by_key[shape.key] = shape

            for label in (shape.key, *shape.shipment_type_labels):
                normalized = self._normalize(label)
                if labels.get(normalized, shape.key) != shape.key:
                    raise ConfigurationError(
                        f"Label '{label}' maps to both '{labels[normalized]}' and '{shape.key}'",
                        config_key=label
                    )
                labels[normalized] = shape.key

        if not shapes_by_key:
            raise ConfigurationError(f"Catalog '{name}' contains no workflow shapes", config_key=name)

        self._shapes: Mapping[str, WorkflowShape] = MappingProxyType(shapes_by_key)
        self._labels: Mapping[str, str] = MappingProxyType(labels)
        logger.info(f"Workflow catalog '{name}' loaded with {len(shapes_by_key)} shapes")

    @staticmethod
    def _normalize(label: str) -> str:
        return "".join(label.split()).lower()

    @property
    def keys(self) -> List[str]:
        """Selector keys in registration order."""
        return list(self._shapes)

    def __contains__(self, selector_key: str) -> bool:
        return selector_key in self._shapes

    def __len__(self) -> int:
        return len(self._shapes)

    def list_shapes(self) -> List[WorkflowShape]:
        """All shapes in registration order."""
        return list(self._shapes.values())

    def get_shape(self, selector_key: str, include_events: bool = True) -> WorkflowShape:
        """
        Look up a shape by selector key.

        Args:
            selector_key: Catalog key, e.g. 'importExport'
            include_events: When False, event overlays are stripped

        Raises:
            UnknownWorkflowSelectorError: If the key is not registered
        """
        shape = self._shapes.get(selector_key)
        if shape is None:
            raise UnknownWorkflowSelectorError(selector_key, known_selectors=self.keys)
        return shape if include_events else shape.without_events()

    def get_shape_or_default(
        self,
        selector_key: Optional[str],
        default_key: str,
        include_events: bool = True
    ) -> Tuple[WorkflowShape, bool]:
        """
        Look up a shape, substituting the default for unknown selectors.

        Returns:
            The shape and whether the default was substituted
        """
        if selector_key is not None:
            resolved = self.resolve_selector(selector_key)
            if resolved is not None:
                return self.get_shape(resolved, include_events), False

        logger.warning(
            f"Unknown workflow selector '{selector_key}', falling back to '{default_key}'"
        )
        return self.get_shape(default_key, include_events), True

    def resolve_selector(self, label: str) -> Optional[str]:
        """Map a selector key or record-store label onto a selector key."""
        if label in self._shapes:
            return label
        return self._labels.get(self._normalize(label))


_CATALOGS: Dict[str, Tuple[WorkflowShape, ...]] = {
    SHIPMENT_TYPE_VARIANT: SHIPMENT_TYPE_SHAPES,
    SERVICE_LEVEL_VARIANT: SERVICE_LEVEL_SHAPES,
}


def build_catalog(variant: str = SHIPMENT_TYPE_VARIANT) -> WorkflowCatalog:
    """Build one of the built-in catalog variants."""
    if variant not in _CATALOGS:
        raise ConfigurationError(
            f"Unknown catalog variant '{variant}'. Supported: {sorted(_CATALOGS)}",
            config_key="catalog_variant"
        )
    return WorkflowCatalog(_CATALOGS[variant], name=variant)

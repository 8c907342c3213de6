"""Tests for the workflow catalog and shape validation."""

import pytest
from pydantic import ValidationError

from tracker.core.catalog import (
    WorkflowCatalog,
    build_catalog,
    SHIPMENT_TYPE_SHAPES,
    SERVICE_LEVEL_SHAPES,
)
from tracker.core.exceptions import (
    ConfigurationError,
    EmptyShapeError,
    UnknownWorkflowSelectorError,
)
from tracker.models.core import LayoutKind, StepDefinition, WorkflowShape


def make_shape(key="sample", steps=None, labels=()):
    if steps is None:
        steps = (
            StepDefinition(ordinal=1, title="Created", source_field="Created"),
            StepDefinition(ordinal=2, title="Delivered", source_field="Delivered"),
        )
    return WorkflowShape(
        key=key,
        name=f"{key} shape",
        layout_kind=LayoutKind.DOMESTIC,
        steps=steps,
        shipment_type_labels=labels,
    )


class TestBuiltInCatalogs:
    """Test cases for the built-in catalog variants."""

    def test_shipment_type_keys(self, catalog):
        """Test the shipment-type catalog exposes its selectors in order."""
        assert catalog.keys == ["domestic", "importExport", "crossTrade", "fullTrack"]
        assert len(catalog) == 4
        assert "domestic" in catalog
        assert "express" not in catalog

    def test_service_level_keys(self, service_catalog):
        """Test the service-level catalog exposes its selectors."""
        assert service_catalog.keys == ["standard", "simplified", "express", "medical"]

    def test_step_counts(self, catalog, service_catalog):
        """Test main step counts of the built-in shapes."""
        counts = {shape.key: len(shape.main_steps) for shape in catalog.list_shapes()}
        assert counts == {"domestic": 4, "importExport": 7, "crossTrade": 6, "fullTrack": 9}

        counts = {shape.key: len(shape.main_steps) for shape in service_catalog.list_shapes()}
        assert counts == {"standard": 9, "simplified": 6, "express": 4, "medical": 7}

    def test_import_export_dry_ice_event(self, catalog):
        """Test the dry ice event follows the last main step."""
        shape = catalog.get_shape("importExport")
        assert [event.event_kind for event in shape.events] == ["dryice"]
        event = shape.events[0]
        assert event.ordinal is None
        assert event.source_field == "Dry Ice Refilled?"
        assert shape.event_anchor(event) == 7

    def test_standard_event_sits_between_steps(self, service_catalog):
        """Test the standard shape places dry ice between steps 7 and 8."""
        shape = service_catalog.get_shape("standard")
        titles = [step.title for step in shape.steps]
        assert titles.index("Dry Ice Refilled") == titles.index("Import Released") + 1
        assert shape.event_anchor(shape.events[0]) == 7

    def test_all_builtin_shapes_are_valid(self):
        """Test every built-in shape passes structural validation."""
        for shape in SHIPMENT_TYPE_SHAPES + SERVICE_LEVEL_SHAPES:
            result = shape.validate_structure()
            assert result.is_valid, result.errors

    def test_unknown_variant(self):
        """Test building an unknown catalog variant fails."""
        with pytest.raises(ConfigurationError):
            build_catalog("nonexistent")


class TestShapeLookup:
    """Test cases for selector lookup."""

    def test_get_shape(self, catalog):
        """Test looking up a shape by key."""
        shape = catalog.get_shape("crossTrade")
        assert shape.name == "Cross Trade Shipment"
        assert shape.layout_kind == LayoutKind.CROSS_TRADE

    def test_get_shape_unknown(self, catalog):
        """Test unknown selectors raise instead of falling back."""
        with pytest.raises(UnknownWorkflowSelectorError) as exc_info:
            catalog.get_shape("overnight")

        error = exc_info.value
        assert error.error_code == "UnknownWorkflowSelector"
        assert error.context["selector_key"] == "overnight"
        assert "domestic" in error.details["known_selectors"]

    def test_get_shape_without_events(self, catalog):
        """Test event overlays can be stripped."""
        shape = catalog.get_shape("importExport", include_events=False)
        assert shape.events == []
        assert len(shape.main_steps) == 7
        # the registered shape is untouched
        assert len(catalog.get_shape("importExport").events) == 1

    def test_get_shape_or_default(self, catalog):
        """Test the explicit fallback reports whether it was used."""
        shape, fallback_used = catalog.get_shape_or_default("Cross Trade", "domestic")
        assert shape.key == "crossTrade"
        assert fallback_used is False

        shape, fallback_used = catalog.get_shape_or_default("Overnight", "domestic")
        assert shape.key == "domestic"
        assert fallback_used is True

        shape, fallback_used = catalog.get_shape_or_default(None, "domestic")
        assert shape.key == "domestic"
        assert fallback_used is True

    @pytest.mark.parametrize("label, expected", [
        ("importExport", "importExport"),
        ("Import/Export", "importExport"),
        ("import / export", "importExport"),
        ("EXPORT", "importExport"),
        ("Cross Trade", "crossTrade"),
        ("crosstrade", "crossTrade"),
        ("Full Track", "fullTrack"),
        ("Overnight", None),
    ])
    def test_resolve_selector(self, catalog, label, expected):
        """Test record-store labels map onto selector keys."""
        assert catalog.resolve_selector(label) == expected


class TestCatalogValidation:
    """Test cases for rejecting bad shapes at construction time."""

    def test_empty_shape_rejected(self):
        """Test a shape with only events is rejected."""
        shape = make_shape(steps=(
            StepDefinition(title="Dry Ice", source_field="Dry Ice", is_event=True, event_kind="dryice"),
        ))
        with pytest.raises(EmptyShapeError) as exc_info:
            WorkflowCatalog([shape])
        assert exc_info.value.error_code == "EmptyShape"
        assert exc_info.value.context["workflow"] == "sample"

    def test_non_contiguous_ordinals_rejected(self):
        """Test ordinals must run 1..n without gaps."""
        shape = make_shape(steps=(
            StepDefinition(ordinal=1, title="Created", source_field="Created"),
            StepDefinition(ordinal=3, title="Delivered", source_field="Delivered"),
        ))
        with pytest.raises(ConfigurationError) as exc_info:
            WorkflowCatalog([shape])
        assert not isinstance(exc_info.value, EmptyShapeError)
        assert exc_info.value.context["config_key"] == "sample"
        assert "contiguous" in exc_info.value.details["validation_errors"][0]

    def test_duplicate_source_fields_rejected(self):
        """Test two steps cannot read the same field."""
        shape = make_shape(steps=(
            StepDefinition(ordinal=1, title="Created", source_field="Created"),
            StepDefinition(ordinal=2, title="Created Again", source_field="Created"),
        ))
        with pytest.raises(ConfigurationError, match="reuses source fields"):
            WorkflowCatalog([shape])

    def test_empty_catalog_rejected(self):
        """Test a catalog needs at least one shape."""
        with pytest.raises(ConfigurationError):
            WorkflowCatalog([])

    def test_duplicate_keys_rejected(self):
        """Test two shapes cannot share a selector key."""
        with pytest.raises(ConfigurationError):
            WorkflowCatalog([make_shape("a"), make_shape("a")])

    def test_conflicting_labels_rejected(self):
        """Test a label cannot select two shapes."""
        with pytest.raises(ConfigurationError):
            WorkflowCatalog([make_shape("a", labels=("Air",)), make_shape("b", labels=("air",))])

    def test_event_with_ordinal_rejected(self):
        """Test events cannot carry an ordinal."""
        with pytest.raises(ValidationError):
            StepDefinition(ordinal=2, title="Dry Ice", source_field="x", is_event=True, event_kind="dryice")

    def test_event_without_kind_rejected(self):
        """Test events must declare a kind."""
        with pytest.raises(ValidationError):
            StepDefinition(title="Dry Ice", source_field="x", is_event=True)

    def test_step_without_ordinal_rejected(self):
        """Test main steps need a positive ordinal."""
        with pytest.raises(ValidationError):
            StepDefinition(title="Created", source_field="Created")
        with pytest.raises(ValidationError):
            StepDefinition(ordinal=0, title="Created", source_field="Created")

    def test_shapes_are_immutable(self, catalog):
        """Test shapes cannot be changed after construction."""
        shape = catalog.get_shape("domestic")
        with pytest.raises(ValidationError):
            shape.name = "Changed"

    def test_event_anchor_before_any_step(self):
        """Test an event placed first anchors to ordinal 1."""
        event = StepDefinition(title="Dry Ice", source_field="Dry Ice", is_event=True, event_kind="dryice")
        shape = make_shape(steps=(
            event,
            StepDefinition(ordinal=1, title="Created", source_field="Created"),
        ))
        assert shape.event_anchor(event) == 1

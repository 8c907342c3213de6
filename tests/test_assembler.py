"""Tests for timeline assembly end to end."""

import pytest

from tracker.core.assembler import TimelineAssembler
from tracker.core.exceptions import MalformedRecordError, UnknownWorkflowSelectorError
from tracker.models.core import LayoutKind, ResolutionMode, Status


class TestTimelineScenarios:
    """Test cases for the reference scenarios."""

    def test_domestic_ordinal_three(self, ordinal_assembler):
        """Test a domestic shipment at step 3 is half way."""
        view = ordinal_assembler.assemble("domestic", explicit_ordinal=3)

        assert view.workflow_name == "Domestic Shipment"
        assert view.layout_kind == LayoutKind.DOMESTIC
        assert view.mode == ResolutionMode.ORDINAL
        assert [step.status for step in view.steps] == [
            Status.COMPLETED, Status.COMPLETED, Status.ACTIVE, Status.PENDING
        ]
        assert view.progress_percent == 50
        assert view.node_positions == pytest.approx((0.0, 100 / 3, 200 / 3, 100.0))
        assert view.events == ()

    def test_import_export_past_end(self, ordinal_assembler):
        """Test an import/export shipment past its last step is complete."""
        view = ordinal_assembler.assemble("importExport", explicit_ordinal=8)

        assert len(view.steps) == 7
        assert all(step.status == Status.COMPLETED for step in view.steps)
        assert [event.status for event in view.events] == [Status.COMPLETED]
        assert view.progress_percent == 100
        assert view.event_positions == (75.0,)

    def test_field_presence(self, assembler):
        """Test the next-field rule on a sparse record."""
        record = {"Order Placed": "2024-10-01", "Processing": "2024-10-02", "Origin Customs": None}
        view = assembler.assemble("fullTrack", record=record)

        assert view.mode == ResolutionMode.FIELD_PRESENCE
        assert view.steps[0].definition.title == "Order Placed"
        assert view.steps[0].status == Status.COMPLETED
        assert view.steps[1].status == Status.ACTIVE
        assert all(step.status == Status.PENDING for step in view.steps[2:])
        assert view.progress_percent == 11

    def test_record_store_label(self, assembler):
        """Test shipment type labels select shapes."""
        view = assembler.assemble("Import/Export", record={"Order Created": "x"})
        assert view.selector_key == "importExport"

    def test_without_events(self, ordinal_assembler):
        """Test event overlays can be left out."""
        view = ordinal_assembler.assemble("importExport", explicit_ordinal=8, include_events=False)
        assert view.events == ()
        assert view.event_positions == ()
        assert view.progress_percent == 100

    def test_multi_row_groups(self, service_catalog):
        """Test service-level layouts carry row groups."""
        assembler = TimelineAssembler(service_catalog)
        view = assembler.assemble("standard", explicit_ordinal=2, mode=ResolutionMode.ORDINAL)
        assert view.groups is not None
        assert len(view.groups.row_a) + len(view.groups.row_b) == 10

        view = assembler.assemble("express", explicit_ordinal=2, mode=ResolutionMode.ORDINAL)
        assert view.groups is None


class TestTimelineProperties:
    """Test cases for properties every timeline must satisfy."""

    def test_deterministic(self, assembler):
        """Test identical inputs give identical views."""
        record = {"Order Created": "a", "Shipment Collected": "b", "Dry Ice Refilled?": True}
        first = assembler.assemble("importExport", record=record)
        second = assembler.assemble("importExport", record=dict(record))

        assert first == second
        assert first.model_dump() == second.model_dump()

    def test_events_do_not_change_progress(self, assembler):
        """Test event presence leaves progress unchanged."""
        record = {"Order Created": "a", "Shipment Collected": "b", "Origin Customs Process": "c"}
        without_event = assembler.assemble("importExport", record=record)
        with_event = assembler.assemble("importExport", record={**record, "Dry Ice Refilled?": True})

        assert without_event.events[0].status == Status.PENDING
        assert with_event.events[0].status == Status.COMPLETED
        assert with_event.progress_percent == without_event.progress_percent

    def test_view_is_immutable(self, ordinal_assembler):
        """Test the view cannot be modified."""
        view = ordinal_assembler.assemble("domestic", explicit_ordinal=1)
        with pytest.raises(Exception):
            view.progress_percent = 100

    def test_malformed_record_surfaces(self, assembler):
        """Test out-of-order milestones are reported, not rendered."""
        with pytest.raises(MalformedRecordError):
            assembler.assemble("domestic", record={"Shipment Delivered": "x"})


class TestUnknownSelectors:
    """Test cases for unknown selector handling."""

    def test_unknown_without_default(self, assembler):
        """Test unknown selectors fail when no default is configured."""
        with pytest.raises(UnknownWorkflowSelectorError):
            assembler.assemble("overnight", record={})

    def test_unknown_with_default(self, catalog):
        """Test the configured default is used and the substitution reported."""
        assembler = TimelineAssembler(catalog, default_selector="Domestic")
        view = assembler.assemble("overnight", record={"Order Created": "x"})

        assert view.selector_key == "domestic"
        assert len(view.warnings) == 1
        assert "overnight" in view.warnings[0]

    def test_known_selector_has_no_warning(self, catalog):
        """Test no warning is produced when the selector is known."""
        assembler = TimelineAssembler(catalog, default_selector="domestic")
        assert assembler.assemble("crossTrade", record={}).warnings == ()

    def test_invalid_default(self, catalog):
        """Test an unknown default is rejected up front."""
        with pytest.raises(UnknownWorkflowSelectorError):
            TimelineAssembler(catalog, default_selector="overnight")

"""Tests for the date-based reconciliation batch."""

import logging

import pytest

from shipstatus.db.models import Shipment
from shipstatus.services import reconciliation
from shipstatus.services.clock import FixedClock
from shipstatus.services.reconciliation import (
    ReconciliationSummary,
    reconcile_date_based_statuses,
    select_candidates,
)
from shipstatus.services.snapshot_loader import load_status_facts
from shipstatus.services.status_rules import evaluate
from shipstatus.services.status_service import ShipmentStatusService

CLOCK = FixedClock("2024-06-15")


class TestSelectCandidates:
    """Pre-filter for rows whose status may have changed with the date."""

    def test_planning_with_passed_agreed_date_is_selected(self, db_session, make_shipment):
        shipment = make_shipment(status="planning", agreed_shipping_date="2024-06-14")
        assert [sid for sid, _ in select_candidates(db_session, CLOCK)] == [shipment.id]

    def test_planning_with_agreed_date_today_is_skipped(self, db_session, make_shipment):
        make_shipment(status="planning", agreed_shipping_date="2024-06-15")
        make_shipment(status="planning")
        assert select_candidates(db_session, CLOCK) == []

    def test_sailed_with_arrived_eta_is_selected(self, db_session, make_shipment):
        today = make_shipment(status="sailed", bl_no="B1", eta="2024-06-15")
        with_time = make_shipment(status="sailed", bl_no="B2", eta="2024-06-15T08:00:00")
        make_shipment(status="sailed", bl_no="B3", eta="2024-06-16")

        selected = {sid for sid, _ in select_candidates(db_session, CLOCK)}
        assert selected == {today.id, with_time.id}

    @pytest.mark.parametrize(
        "facts",
        [
            {"status": "planning", "agreed_shipping_date": "2024-06-01"},
            {"status": "planning", "agreed_shipping_date": "2024-06-01T09:00:00+03:00"},
            {"status": "planning", "agreed_shipping_date": "20240601"},
            {"status": "planning", "agreed_shipping_date": "2024-06-20"},
            {"status": "sailed", "bl_no": "B1", "eta": "2024-06-10"},
            {"status": "sailed", "bl_no": "B1", "eta": "2024-06-20"},
        ],
    )
    def test_selection_agrees_with_evaluator(self, db_session, make_shipment, facts):
        shipment = make_shipment(**facts)
        snapshot = load_status_facts(db_session, shipment.id)
        would_change = evaluate(snapshot, CLOCK).status.value != facts["status"]

        selected = [sid for sid, _ in select_candidates(db_session, CLOCK)] == [shipment.id]
        assert selected == would_change

    def test_every_delayed_row_is_selected(self, db_session, make_shipment):
        shipment = make_shipment(status="delayed")
        assert [sid for sid, _ in select_candidates(db_session, CLOCK)] == [shipment.id]

    @pytest.mark.parametrize(
        "status",
        ["awaiting_clearance", "pending_transport", "loaded_to_final", "received", "quality_issue"],
    )
    def test_other_statuses_are_skipped(self, db_session, make_shipment, status):
        make_shipment(status=status, agreed_shipping_date="2024-01-01", eta="2024-01-01")
        assert select_candidates(db_session, CLOCK) == []

    def test_deleted_rows_are_skipped(self, db_session, make_shipment):
        make_shipment(status="delayed", is_deleted=True)
        assert select_candidates(db_session, CLOCK) == []

    def test_most_recently_updated_first_and_limited(self, db_session, make_shipment):
        old = make_shipment(status="delayed", updated_at="2024-01-01T00:00:00+00:00")
        new = make_shipment(status="delayed", updated_at="2024-06-01T00:00:00+00:00")
        mid = make_shipment(status="delayed", updated_at="2024-03-01T00:00:00+00:00")

        assert [sid for sid, _ in select_candidates(db_session, CLOCK)] == [
            new.id,
            mid.id,
            old.id,
        ]
        assert [sid for sid, _ in select_candidates(db_session, CLOCK, limit=2)] == [
            new.id,
            mid.id,
        ]


class TestReconcile:
    """reconcile_date_based_statuses() end to end."""

    def test_moves_date_dependent_statuses(self, db_session, make_shipment):
        late = make_shipment(status="planning", agreed_shipping_date="2024-06-01")
        arrived = make_shipment(status="sailed", bl_no="MEDU1", eta="2024-06-10")
        bl_arrived = make_shipment(status="delayed", bl_no="MEDU2", eta="2024-07-01")
        still_late = make_shipment(status="delayed", agreed_shipping_date="2024-06-01")

        summary = reconcile_date_based_statuses(db_session, clock=CLOCK)

        assert summary == ReconciliationSummary(processed=4, updated=3, errors=0)
        assert db_session.get(Shipment, late.id).status == "delayed"
        assert db_session.get(Shipment, arrived.id).status == "awaiting_clearance"
        assert db_session.get(Shipment, bl_arrived.id).status == "sailed"
        assert db_session.get(Shipment, still_late.id).status == "delayed"

    def test_transitions_are_attributed_to_actor(self, db_session, make_shipment, get_audits):
        shipment = make_shipment(status="planning", agreed_shipping_date="2024-06-01")
        reconcile_date_based_statuses(db_session, clock=CLOCK, actor="nightly")
        audits = get_audits(shipment.id)
        assert len(audits) == 1
        assert audits[0].calculated_by == "nightly"
        assert audits[0].trigger_type == "date_check"

    def test_row_failure_does_not_abort_batch(
        self, db_session, make_shipment, monkeypatch, caplog
    ):
        bad = make_shipment(status="delayed", updated_at="2024-06-02T00:00:00+00:00")
        good = make_shipment(
            status="planning",
            agreed_shipping_date="2024-06-01",
            updated_at="2024-06-01T00:00:00+00:00",
        )
        bad_id = bad.id
        original = ShipmentStatusService.recalculate

        def flaky(self, shipment_id, actor="system"):
            if shipment_id == bad_id:
                raise RuntimeError("row is poisoned")
            return original(self, shipment_id, actor)

        monkeypatch.setattr(ShipmentStatusService, "recalculate", flaky)

        with caplog.at_level(logging.ERROR, logger=reconciliation.__name__):
            summary = reconcile_date_based_statuses(db_session, clock=CLOCK)

        assert summary.as_dict() == {"processed": 1, "updated": 1, "errors": 1}
        assert db_session.get(Shipment, good.id).status == "delayed"
        assert bad_id in caplog.text

    def test_empty_run(self, db_session):
        summary = reconcile_date_based_statuses(db_session, clock=CLOCK)
        assert summary.as_dict() == {"processed": 0, "updated": 0, "errors": 0}

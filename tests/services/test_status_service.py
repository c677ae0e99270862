"""Tests for ShipmentStatusService: persistence, overrides and receipt."""

import json
import logging

import pytest
from sqlalchemy.exc import OperationalError

from shipstatus.db.models import Shipment, ShipmentStatus, TriggerType
from shipstatus.errors import (
    AlreadyConfirmedError,
    NoActiveOverrideError,
    NotFoundError,
    PersistenceError,
    ValidationError,
)
from shipstatus.services.clock import FixedClock
from shipstatus.services.snapshot_loader import load_status_facts
from shipstatus.services.status_models import (
    EvaluationSnapshotV1,
    OverrideSnapshotV1,
    parse_audit_snapshot,
)
from shipstatus.services.status_rules import evaluate
from shipstatus.services.status_service import ShipmentStatusService

CLOCK = FixedClock("2024-06-15")


@pytest.fixture
def service(db_session):
    return ShipmentStatusService(db_session, clock=CLOCK)


def _failing_commit():
    raise OperationalError("COMMIT", {}, Exception("disk I/O error"))


class TestRecalculate:
    """recalculate(): load -> evaluate -> apply."""

    def test_transition_updates_status_and_writes_audit(
        self, service, db_session, make_shipment, get_audits
    ):
        shipment = make_shipment(bl_no="MEDU123", eta="2099-01-01")
        result = service.recalculate(shipment.id, actor="ops@example.com")

        assert result.status == ShipmentStatus.sailed
        stored = db_session.get(Shipment, shipment.id)
        assert stored.status == "sailed"
        assert stored.status_reason == result.reason
        assert stored.status_calculated_at is not None

        audits = get_audits(shipment.id)
        assert len(audits) == 1
        assert audits[0].previous_status == "planning"
        assert audits[0].new_status == "sailed"
        assert audits[0].trigger_type == TriggerType.data_change.value
        assert audits[0].calculated_by == "ops@example.com"
        snapshot = parse_audit_snapshot(audits[0].data_snapshot)
        assert isinstance(snapshot, EvaluationSnapshotV1)
        assert snapshot.bl_no == "MEDU123"
        assert snapshot.today.isoformat() == "2024-06-15"

    def test_repeated_recalculation_writes_one_audit_row(
        self, service, make_shipment, get_audits
    ):
        shipment = make_shipment(bl_no="MEDU123", eta="2024-06-01")
        for _ in range(3):
            service.recalculate(shipment.id)
        audits = get_audits(shipment.id)
        assert len(audits) == 1
        assert audits[0].new_status == "awaiting_clearance"

    def test_missing_shipment_returns_none(self, service, caplog):
        with caplog.at_level(logging.WARNING):
            assert service.recalculate("missing-id") is None
        assert "missing-id" in caplog.text

    def test_deleted_shipment_returns_none(self, service, make_shipment):
        shipment = make_shipment(bl_no="MEDU123", eta="2099-01-01", is_deleted=True)
        assert service.recalculate(shipment.id) is None

    def test_status_moves_backwards_when_facts_are_removed(
        self, service, db_session, make_shipment
    ):
        shipment = make_shipment(bl_no="MEDU123", eta="2099-01-01")
        service.recalculate(shipment.id)

        stored = db_session.get(Shipment, shipment.id)
        stored.logistics.bl_no = None
        db_session.commit()

        result = service.recalculate(shipment.id)
        assert result.status == ShipmentStatus.planning
        assert db_session.get(Shipment, shipment.id).status == "planning"


class TestApplyResult:
    """The audited persistence writer."""

    def test_unchanged_status_writes_no_audit(
        self, service, db_session, make_shipment, get_audits
    ):
        shipment = make_shipment()
        result = evaluate(load_status_facts(db_session, shipment.id), CLOCK)

        for _ in range(5):
            assert service.apply_result(shipment.id, result) is False

        assert get_audits(shipment.id) == []
        assert db_session.get(Shipment, shipment.id).status_reason == result.reason

    def test_changed_status_writes_exactly_one_audit(
        self, service, db_session, make_shipment, get_audits
    ):
        shipment = make_shipment(agreed_shipping_date="2024-06-01")
        result = evaluate(load_status_facts(db_session, shipment.id), CLOCK)

        assert service.apply_result(shipment.id, result, actor="system") is True
        assert len(get_audits(shipment.id)) == 1

    def test_missing_shipment_raises_not_found(self, service, db_session, make_shipment):
        shipment = make_shipment()
        result = evaluate(load_status_facts(db_session, shipment.id), CLOCK)
        with pytest.raises(NotFoundError):
            service.apply_result("other-id", result)

    def test_commit_failure_rolls_back_everything(
        self, service, db_session, make_shipment, get_audits, monkeypatch
    ):
        shipment = make_shipment(bl_no="MEDU123", eta="2099-01-01")
        shipment_id = shipment.id
        result = evaluate(load_status_facts(db_session, shipment_id), CLOCK)

        monkeypatch.setattr(db_session, "commit", _failing_commit)
        with pytest.raises(PersistenceError) as exc_info:
            service.apply_result(shipment_id, result)
        monkeypatch.undo()

        assert exc_info.value.code == "E-4001"
        assert exc_info.value.is_retryable is True
        assert isinstance(exc_info.value.__cause__, OperationalError)
        assert db_session.get(Shipment, shipment_id).status == "planning"
        assert get_audits(shipment_id) == []


class TestOverride:
    """Manual override set and clear."""

    def test_override_sets_status_and_metadata_with_verbatim_reason(
        self, service, db_session, make_shipment, get_audits
    ):
        shipment = make_shipment(bl_no="MEDU123", eta="2099-01-01")
        service.recalculate(shipment.id)

        reason = "  Vessel held at transshipment port  "
        result = service.override(shipment.id, "delayed", reason, "ops")

        assert result.status == ShipmentStatus.delayed
        assert result.trigger == TriggerType.manual_override
        assert result.reason == result.reason_ar == reason

        stored = db_session.get(Shipment, shipment.id)
        assert stored.status == "delayed"
        assert stored.status_reason == reason
        assert stored.has_override is True
        assert stored.status_override_by == "ops"
        assert stored.status_override_at is not None
        assert stored.status_override_reason == reason

        audit = get_audits(shipment.id)[-1]
        assert audit.trigger_type == "manual_override"
        assert audit.previous_status == "sailed"
        assert audit.status_reason == reason
        assert json.loads(audit.trigger_details) == {
            "override_reason": reason,
            "overridden_by": "ops",
        }
        snapshot = parse_audit_snapshot(audit.data_snapshot)
        assert isinstance(snapshot, OverrideSnapshotV1)
        assert snapshot.previous_status == "sailed"

    @pytest.mark.parametrize("reason", [None, "", "too short", "   short   "])
    def test_short_reason_is_rejected_before_writing(
        self, service, db_session, make_shipment, get_audits, reason
    ):
        shipment = make_shipment()
        with pytest.raises(ValidationError) as exc_info:
            service.override(shipment.id, "sailed", reason, "ops")
        assert exc_info.value.code == "E-2001"
        assert db_session.get(Shipment, shipment.id).has_override is False
        assert get_audits(shipment.id) == []

    def test_unknown_status_is_rejected(self, service, make_shipment, get_audits):
        shipment = make_shipment()
        with pytest.raises(ValidationError) as exc_info:
            service.override(shipment.id, "teleported", "Reason long enough", "ops")
        assert exc_info.value.code == "E-2002"
        assert "teleported" in str(exc_info.value)
        assert get_audits(shipment.id) == []

    def test_override_commit_failure_rolls_back_everything(
        self, service, db_session, make_shipment, get_audits, monkeypatch
    ):
        shipment = make_shipment(bl_no="MEDU123", eta="2099-01-01")
        service.recalculate(shipment.id)
        shipment_id = shipment.id

        monkeypatch.setattr(db_session, "commit", _failing_commit)
        with pytest.raises(PersistenceError) as exc_info:
            service.override(shipment_id, "delayed", "Vessel held at port", "ops")
        monkeypatch.undo()

        assert exc_info.value.code == "E-4001"
        stored = db_session.get(Shipment, shipment_id)
        assert stored.status == "sailed"
        assert stored.status_override_by is None
        assert stored.status_override_at is None
        assert stored.status_override_reason is None
        assert [a.trigger_type for a in get_audits(shipment_id)] == ["data_change"]

    def test_override_missing_shipment(self, service):
        with pytest.raises(NotFoundError):
            service.override("missing-id", "sailed", "Reason long enough", "ops")

    def test_override_then_clear_returns_to_computed_status(
        self, service, db_session, make_shipment
    ):
        shipment = make_shipment(bl_no="MEDU123", eta="2024-06-01")
        service.override(shipment.id, "received", "Goods received off-system", "ops")

        result = service.clear_override(shipment.id, "ops")

        expected = evaluate(load_status_facts(db_session, shipment.id), CLOCK)
        assert result.status == expected.status == ShipmentStatus.awaiting_clearance
        stored = db_session.get(Shipment, shipment.id)
        assert stored.status == "awaiting_clearance"
        assert stored.status_override_by is None
        assert stored.status_override_at is None
        assert stored.status_override_reason is None

    def test_clear_without_override_raises(self, service, make_shipment):
        shipment = make_shipment()
        with pytest.raises(NoActiveOverrideError) as exc_info:
            service.clear_override(shipment.id, "ops")
        assert exc_info.value.code == "E-3002"

    def test_clear_missing_shipment(self, service):
        with pytest.raises(NotFoundError):
            service.clear_override("missing-id", "ops")


class TestConfirmReceipt:
    """Warehouse receipt confirmation."""

    def test_confirm_without_issues_is_received(
        self, service, db_session, make_shipment, get_audits
    ):
        shipment = make_shipment(customs_clearance_date="2024-06-01")
        result = service.confirm_receipt(shipment.id, has_issues=False, actor="wh1")

        assert result.status == ShipmentStatus.received
        stored = db_session.get(Shipment, shipment.id)
        assert stored.status == "received"
        assert stored.documents.warehouse_receipt_confirmed is True
        assert stored.documents.warehouse_receipt_confirmed_by == "wh1"
        assert get_audits(shipment.id)[-1].trigger_type == "warehouse_confirm"

    def test_confirm_with_issues_is_quality_issue(self, service, make_shipment):
        shipment = make_shipment(warehouse_receipt_confirmed=False)
        result = service.confirm_receipt(
            shipment.id, has_issues=True, actor="wh1", notes="Two pallets damaged"
        )
        assert result.status == ShipmentStatus.quality_issue

    def test_second_confirmation_is_rejected(self, service, db_session, make_shipment):
        shipment = make_shipment()
        service.confirm_receipt(shipment.id, has_issues=False, actor="wh1")

        with pytest.raises(AlreadyConfirmedError) as exc_info:
            service.confirm_receipt(shipment.id, has_issues=True, actor="wh2")

        assert exc_info.value.code == "E-3001"
        stored = db_session.get(Shipment, shipment.id)
        assert stored.status == "received"
        assert stored.documents.warehouse_receipt_has_issues is False

    def test_legacy_confirmation_blocks_new_one(self, service, make_shipment):
        shipment = make_shipment(delivery_confirmed_at="2024-01-01T00:00:00Z")
        with pytest.raises(AlreadyConfirmedError):
            service.confirm_receipt(shipment.id, has_issues=False, actor="wh1")

    def test_confirm_missing_shipment(self, service):
        with pytest.raises(NotFoundError):
            service.confirm_receipt("missing-id", has_issues=False, actor="wh1")

    def test_commit_failure_leaves_receipt_unconfirmed(
        self, service, db_session, make_shipment, get_audits, monkeypatch
    ):
        shipment = make_shipment(
            customs_clearance_date="2024-06-01", warehouse_receipt_confirmed=False
        )
        shipment_id = shipment.id

        monkeypatch.setattr(db_session, "commit", _failing_commit)
        with pytest.raises(PersistenceError):
            service.confirm_receipt(shipment_id, has_issues=True, actor="wh1", notes="Wet")
        monkeypatch.undo()

        documents = db_session.get(Shipment, shipment_id).documents
        assert documents.warehouse_receipt_confirmed is False
        assert documents.warehouse_receipt_confirmed_by is None
        assert documents.warehouse_receipt_confirmed_at is None
        assert documents.warehouse_receipt_has_issues is False
        assert documents.warehouse_receipt_notes is None
        assert db_session.get(Shipment, shipment_id).status == "planning"
        assert get_audits(shipment_id) == []

        # The failed attempt does not count as a confirmation
        result = service.confirm_receipt(shipment_id, has_issues=False, actor="wh1")
        assert result.status == ShipmentStatus.received

    def test_commit_failure_does_not_create_documents(
        self, service, db_session, make_shipment, monkeypatch
    ):
        shipment = make_shipment()
        shipment_id = shipment.id

        monkeypatch.setattr(db_session, "commit", _failing_commit)
        with pytest.raises(PersistenceError):
            service.confirm_receipt(shipment_id, has_issues=False, actor="wh1")
        monkeypatch.undo()

        assert db_session.get(Shipment, shipment_id).documents is None


class TestSecondaryRecalculation:
    """Best-effort recalculation triggered by other writes."""

    def test_irrelevant_fields_skip_recalculation(
        self, service, make_shipment, get_audits
    ):
        shipment = make_shipment(bl_no="MEDU123", eta="2099-01-01")
        assert service.recalculate_if_relevant(shipment.id, ["notes", "supplier"]) is None
        assert get_audits(shipment.id) == []

    def test_relevant_field_recalculates(self, service, make_shipment):
        shipment = make_shipment(bl_no="MEDU123", eta="2099-01-01")
        result = service.recalculate_if_relevant(shipment.id, ["bl_no"], actor="ops")
        assert result.status == ShipmentStatus.sailed

    def test_failure_is_logged_and_swallowed(self, db_session, make_shipment, caplog):
        shipment = make_shipment()

        def broken_loader(db, shipment_id):
            raise RuntimeError("loader exploded")

        service = ShipmentStatusService(db_session, clock=CLOCK, loader=broken_loader)
        with caplog.at_level(logging.WARNING):
            assert service.recalculate_if_relevant(shipment.id, ["eta"]) is None
        assert "loader exploded" in caplog.text


class TestDescribeStatus:
    """Display-only evaluation."""

    def test_describe_does_not_write(self, service, db_session, make_shipment, get_audits):
        shipment = make_shipment(bl_no="MEDU123", eta="2099-01-01")
        explanation = service.describe_status(shipment.id)

        assert explanation.stored_status == "planning"
        assert explanation.result.status == ShipmentStatus.sailed
        assert explanation.display.label == "Sailed / In Transit"
        assert explanation.override_active is False
        assert db_session.get(Shipment, shipment.id).status == "planning"
        assert get_audits(shipment.id) == []

    def test_describe_reports_override(self, service, make_shipment):
        shipment = make_shipment()
        service.override(shipment.id, "delayed", "Supplier reported delay", "ops")
        explanation = service.describe_status(shipment.id)
        assert explanation.stored_status == "delayed"
        assert explanation.override_active is True
        assert explanation.override_by == "ops"

    def test_describe_missing_shipment(self, service):
        assert service.describe_status("missing-id") is None

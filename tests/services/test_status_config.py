"""Tests for status display metadata and trigger fields."""

import pytest

from shipstatus.db.models import ShipmentStatus
from shipstatus.services.status_config import (
    STATUS_CONFIG,
    STATUS_TRIGGER_FIELDS,
    get_status_display_info,
    should_recalculate_status,
)


class TestStatusConfig:
    """Display table covers every status exactly once."""

    def test_every_status_has_display_info(self):
        assert set(STATUS_CONFIG) == set(ShipmentStatus)

    def test_orders_follow_lifecycle(self):
        orders = [STATUS_CONFIG[s].order for s in ShipmentStatus]
        assert orders == list(range(1, 9))

    def test_bilingual_text_present(self):
        for info in STATUS_CONFIG.values():
            assert info.label and info.label_ar
            assert info.description and info.description_ar

    def test_lookup_by_string(self):
        assert get_status_display_info("awaiting_clearance").color == "amber"

    def test_unknown_status_falls_back_to_planning(self):
        assert get_status_display_info("legacy_value") == STATUS_CONFIG[ShipmentStatus.planning]


class TestShouldRecalculate:
    """Trigger field detection."""

    @pytest.mark.parametrize("field", sorted(STATUS_TRIGGER_FIELDS))
    def test_trigger_fields(self, field):
        assert should_recalculate_status(["notes", field]) is True

    def test_unrelated_fields(self):
        assert should_recalculate_status(["notes", "supplier_name", "etd"]) is False

    def test_empty(self):
        assert should_recalculate_status([]) is False

    def test_accepts_any_iterable(self):
        assert should_recalculate_status({"eta": "2024-01-01"}.keys()) is True

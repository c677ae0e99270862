"""Service layer for the shipment status engine.

Provides the rule evaluator, audited status persistence, manual overrides,
warehouse receipt confirmation and date-based reconciliation.
"""

from shipstatus.services.clock import Clock, FixedClock, SystemClock
from shipstatus.services.reconciliation import (
    ReconciliationSummary,
    reconcile_date_based_statuses,
)
from shipstatus.services.snapshot_loader import load_status_facts
from shipstatus.services.status_audit_service import StatusAuditService
from shipstatus.services.status_config import (
    STATUS_CONFIG,
    StatusDisplayInfo,
    get_status_display_info,
    should_recalculate_status,
)
from shipstatus.services.status_models import (
    ReceiptConfirmation,
    StatusComputationResult,
    StatusFactSnapshot,
)
from shipstatus.services.status_rules import evaluate
from shipstatus.services.status_service import (
    ShipmentStatusService,
    StatusExplanation,
)

__all__ = [
    "Clock",
    "SystemClock",
    "FixedClock",
    "evaluate",
    "load_status_facts",
    "ReceiptConfirmation",
    "StatusFactSnapshot",
    "StatusComputationResult",
    "ShipmentStatusService",
    "StatusExplanation",
    "StatusAuditService",
    "ReconciliationSummary",
    "reconcile_date_based_statuses",
    "STATUS_CONFIG",
    "StatusDisplayInfo",
    "get_status_display_info",
    "should_recalculate_status",
]

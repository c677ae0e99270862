"""Batch reconciliation of date-dependent statuses.

Two evaluator branches compare against "today" (ETA reached, agreed
shipping date passed). Today changes without any write to the shipment,
so nothing event-driven would ever re-trigger them. This job re-runs the
recalculation for the rows whose status might have changed overnight.

Rows are processed one at a time; a failure on one row is counted and
logged and never aborts the batch.
"""

import logging
from dataclasses import asdict, dataclass
from datetime import timedelta

from sqlalchemy import and_, or_, select
from sqlalchemy.orm import Session

from shipstatus.db.models import Shipment, ShipmentLogistics, ShipmentStatus
from shipstatus.services.clock import DEFAULT_CLOCK, Clock
from shipstatus.services.status_service import ShipmentStatusService

logger = logging.getLogger(__name__)

DEFAULT_BATCH_LIMIT = 1000

RECONCILIATION_ACTOR = "scheduled_job"


@dataclass
class ReconciliationSummary:
    """Counters for one reconciliation run."""

    processed: int = 0
    updated: int = 0
    errors: int = 0

    def as_dict(self) -> dict[str, int]:
        return asdict(self)


def select_candidates(
    db: Session, clock: Clock | None = None, limit: int = DEFAULT_BATCH_LIMIT
) -> list[tuple[str, str]]:
    """Find shipments whose date-dependent status might now differ.

    - planning rows whose agreed shipping date has passed (-> delayed)
    - sailed rows whose ETA has arrived (-> awaiting_clearance)
    - every delayed row (a BL may have arrived since)

    Dates are stored as ISO strings, so the comparisons are lexical. This
    is only a pre-filter; the evaluator makes the actual decision.

    Returns:
        (shipment_id, status) pairs, most recently updated first.
    """
    today = (clock or DEFAULT_CLOCK).today()
    today_iso = today.isoformat()
    tomorrow_iso = (today + timedelta(days=1)).isoformat()

    stmt = (
        select(Shipment.id, Shipment.status)
        .outerjoin(ShipmentLogistics, ShipmentLogistics.shipment_id == Shipment.id)
        .where(
            Shipment.is_deleted.is_(False),
            or_(
                and_(
                    Shipment.status == ShipmentStatus.planning.value,
                    ShipmentLogistics.agreed_shipping_date.is_not(None),
                    ShipmentLogistics.agreed_shipping_date < today_iso,
                ),
                and_(
                    Shipment.status == ShipmentStatus.sailed.value,
                    ShipmentLogistics.eta.is_not(None),
                    ShipmentLogistics.eta < tomorrow_iso,
                ),
                Shipment.status == ShipmentStatus.delayed.value,
            ),
        )
        .order_by(Shipment.updated_at.desc())
        .limit(limit)
    )
    return [(row.id, row.status) for row in db.execute(stmt)]


def reconcile_date_based_statuses(
    db: Session,
    clock: Clock | None = None,
    limit: int = DEFAULT_BATCH_LIMIT,
    actor: str = RECONCILIATION_ACTOR,
) -> ReconciliationSummary:
    """Recalculate every candidate shipment sequentially.

    Args:
        db: Database session.
        clock: Source of "today" for candidate selection and evaluation.
        limit: Maximum number of shipments per run.
        actor: Audit attribution for transitions made by this run.

    Returns:
        ReconciliationSummary with processed, updated and errors counts.
    """
    service = ShipmentStatusService(db, clock=clock)
    summary = ReconciliationSummary()

    candidates = select_candidates(db, clock=clock, limit=limit)
    logger.info("Reconciliation started: %d candidate shipments", len(candidates))

    for shipment_id, previous_status in candidates:
        try:
            result = service.recalculate(shipment_id, actor)
            summary.processed += 1
            if result is not None and result.status.value != previous_status:
                summary.updated += 1
        except Exception:
            db.rollback()
            summary.errors += 1
            logger.error(
                "Reconciliation failed for shipment %s", shipment_id, exc_info=True
            )

    logger.info(
        "Reconciliation finished: processed=%d updated=%d errors=%d",
        summary.processed,
        summary.updated,
        summary.errors,
    )
    return summary

"""Read side of the status audit trail.

Usage:
    audit = StatusAuditService(db)
    history = audit.get_history(shipment_id)
    text = audit.export_history_text(shipment_id)
"""

import json

from sqlalchemy.orm import Session

from shipstatus.db.models import ShipmentStatusAudit
from shipstatus.services.status_models import (
    EvaluationSnapshotV1,
    OverrideSnapshotV1,
    parse_audit_snapshot,
)


class StatusAuditService:
    """Queries and exports of shipment status transitions."""

    def __init__(self, db: Session) -> None:
        """Initialize with a database session.

        Args:
            db: SQLAlchemy session for database operations.
        """
        self.db = db

    def get_history(
        self, shipment_id: str, limit: int = 50
    ) -> list[ShipmentStatusAudit]:
        """Get status transitions for a shipment.

        Args:
            shipment_id: Shipment UUID.
            limit: Maximum number of entries to return (default 50).

        Returns:
            List of ShipmentStatusAudit entries ordered newest first.
        """
        return (
            self.db.query(ShipmentStatusAudit)
            .filter(ShipmentStatusAudit.shipment_id == shipment_id)
            .order_by(ShipmentStatusAudit.calculated_at.desc())
            .limit(limit)
            .all()
        )

    def get_snapshot(
        self, entry: ShipmentStatusAudit
    ) -> EvaluationSnapshotV1 | OverrideSnapshotV1:
        """Decode the typed snapshot record stored with an audit entry."""
        return parse_audit_snapshot(entry.data_snapshot)

    def export_history_text(self, shipment_id: str, limit: int = 50) -> str:
        """Export a shipment's status history as plain text.

        Example output:
            [2024-01-23T10:30:45+00:00] [date_check] sailed -> awaiting_clearance by scheduled_job
                Arrived at port on 2024-01-23. Awaiting customs clearance.
                Snapshot: {"kind": "evaluation", ...}
        """
        lines = []
        for entry in self.get_history(shipment_id, limit=limit):
            previous = entry.previous_status or "-"
            lines.append(
                f"[{entry.calculated_at}] [{entry.trigger_type}] "
                f"{previous} -> {entry.new_status} by {entry.calculated_by}"
            )
            if entry.status_reason:
                lines.append(f"    {entry.status_reason}")
            try:
                snapshot = json.dumps(json.loads(entry.data_snapshot), sort_keys=True)
            except json.JSONDecodeError:
                snapshot = entry.data_snapshot
            lines.append(f"    Snapshot: {snapshot}")

        return "\n".join(lines)

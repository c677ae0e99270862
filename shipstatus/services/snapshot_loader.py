"""Snapshot loader: reads the facts a status decision needs.

This is the boundary where stored data is normalized for the evaluator:
- date strings are parsed; anything unparseable becomes None
- the legacy delivery confirmation pair is folded into ReceiptConfirmation
- transport assignment is derived from live outbound deliveries
"""

import re
from datetime import date, datetime
from typing import Protocol

from dateutil.parser import isoparse
from sqlalchemy import select
from sqlalchemy.orm import Session

from shipstatus.db.models import (
    OutboundDelivery,
    Shipment,
    ShipmentDocuments,
    ShipmentLogistics,
)
from shipstatus.services.status_models import ReceiptConfirmation, StatusFactSnapshot

_EXTENDED_DATE = re.compile(r"\d{4}-\d{2}-\d{2}(?!\d)")


class SnapshotLoader(Protocol):
    """Callable returning the facts for a shipment, or None if not found."""

    def __call__(self, db: Session, shipment_id: str) -> StatusFactSnapshot | None:
        ...


def parse_fact_date(value: str | date | None) -> date | None:
    """Parse a stored date value, treating garbage as absent.

    Accepts date/datetime objects and extended ISO8601 strings
    (``YYYY-MM-DD`` with or without a time component). Compact forms such
    as ``20240101`` are rejected: the reconciliation pre-filter orders the
    stored strings lexically and only the extended form sorts correctly.
    Never raises.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = value.strip()
    if not _EXTENDED_DATE.match(text):
        return None
    try:
        return isoparse(text).date()
    except (ValueError, OverflowError):
        return None


def has_transport_assigned(db: Session, shipment_id: str) -> bool:
    """True when a live outbound delivery with a truck plate exists."""
    stmt = (
        select(OutboundDelivery.id)
        .where(
            OutboundDelivery.shipment_id == shipment_id,
            OutboundDelivery.is_deleted.is_(False),
            OutboundDelivery.truck_plate_number.is_not(None),
            OutboundDelivery.truck_plate_number != "",
        )
        .limit(1)
    )
    return db.execute(stmt).first() is not None


def load_status_facts(db: Session, shipment_id: str) -> StatusFactSnapshot | None:
    """Load the fact snapshot for a shipment.

    Args:
        db: Database session.
        shipment_id: Shipment UUID.

    Returns:
        StatusFactSnapshot, or None when the shipment is missing or deleted.
    """
    row = db.execute(
        select(Shipment, ShipmentLogistics, ShipmentDocuments)
        .outerjoin(ShipmentLogistics, ShipmentLogistics.shipment_id == Shipment.id)
        .outerjoin(ShipmentDocuments, ShipmentDocuments.shipment_id == Shipment.id)
        .where(Shipment.id == shipment_id, Shipment.is_deleted.is_(False))
    ).first()
    if row is None:
        return None

    _, logistics, documents = row

    if documents is not None:
        receipt = ReceiptConfirmation.from_stored(
            warehouse_confirmed=documents.warehouse_receipt_confirmed,
            warehouse_has_issues=documents.warehouse_receipt_has_issues,
            legacy_confirmed_at=documents.delivery_confirmed_at,
            legacy_has_issues=documents.delivery_has_issues,
        )
    else:
        receipt = ReceiptConfirmation.from_stored(None, None)

    return StatusFactSnapshot(
        bl_no=logistics.bl_no if logistics else None,
        eta=parse_fact_date(logistics.eta) if logistics else None,
        agreed_shipping_date=(
            parse_fact_date(logistics.agreed_shipping_date) if logistics else None
        ),
        customs_clearance_date=(
            parse_fact_date(logistics.customs_clearance_date) if logistics else None
        ),
        receipt=receipt,
        has_transport_assigned=has_transport_assigned(db, shipment_id),
    )

"""Persistence layer: ORM models and connection management."""

from shipstatus.db.models import (
    Base,
    OutboundDelivery,
    Shipment,
    ShipmentDocuments,
    ShipmentLogistics,
    ShipmentStatus,
    ShipmentStatusAudit,
    TriggerType,
)

__all__ = [
    "Base",
    "Shipment",
    "ShipmentLogistics",
    "ShipmentDocuments",
    "OutboundDelivery",
    "ShipmentStatusAudit",
    "ShipmentStatus",
    "TriggerType",
]

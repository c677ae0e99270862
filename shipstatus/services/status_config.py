"""Static status display metadata and recalculation trigger fields.

Presentation layers look statuses up here (label, color, ordering and
bilingual description). Nothing in the engine branches on this table.
"""

from collections.abc import Iterable
from dataclasses import dataclass

from shipstatus.db.models import ShipmentStatus


@dataclass(frozen=True)
class StatusDisplayInfo:
    """Display metadata for one status."""

    label: str
    label_ar: str
    color: str
    order: int
    description: str
    description_ar: str


STATUS_CONFIG: dict[ShipmentStatus, StatusDisplayInfo] = {
    ShipmentStatus.planning: StatusDisplayInfo(
        label="Planning",
        label_ar="تخطيط",
        color="gray",
        order=1,
        description="Shipment is being planned. Waiting for booking details.",
        description_ar="الشحنة قيد التخطيط. في انتظار تفاصيل الحجز.",
    ),
    ShipmentStatus.delayed: StatusDisplayInfo(
        label="Delayed",
        label_ar="متأخر",
        color="red",
        order=2,
        description="Agreed shipping date has passed but no Bill of Lading received.",
        description_ar="تاريخ الشحن المتفق عليه قد مر ولم يتم استلام بوليصة الشحن.",
    ),
    ShipmentStatus.sailed: StatusDisplayInfo(
        label="Sailed / In Transit",
        label_ar="أبحرت / في الطريق",
        color="blue",
        order=3,
        description="Shipment is in transit. Bill of Lading received.",
        description_ar="الشحنة في الطريق. تم استلام بوليصة الشحن.",
    ),
    ShipmentStatus.awaiting_clearance: StatusDisplayInfo(
        label="Awaiting Clearance",
        label_ar="في انتظار التخليص",
        color="amber",
        order=4,
        description="Shipment has arrived at port. Waiting for customs clearance.",
        description_ar="وصلت الشحنة إلى الميناء. في انتظار التخليص الجمركي.",
    ),
    ShipmentStatus.pending_transport: StatusDisplayInfo(
        label="Pending Transport",
        label_ar="في انتظار تعيين النقل",
        color="indigo",
        order=5,
        description="Customs cleared. Assigned to transport agent, waiting for vehicle assignment.",
        description_ar="تم التخليص الجمركي. تم التعيين لوكيل النقل، في انتظار تعيين السيارات.",
    ),
    ShipmentStatus.loaded_to_final: StatusDisplayInfo(
        label="On Way to Final Destination",
        label_ar="في الطريق إلى الوجهة النهائية",
        color="purple",
        order=6,
        description="Transport assigned. Shipment is on the way to final destination.",
        description_ar="تم تعيين النقل. الشحنة في الطريق إلى الوجهة النهائية.",
    ),
    ShipmentStatus.received: StatusDisplayInfo(
        label="Received",
        label_ar="تم الاستلام",
        color="green",
        order=7,
        description="Shipment received at warehouse without issues.",
        description_ar="تم استلام الشحنة في المستودع بدون مشاكل.",
    ),
    ShipmentStatus.quality_issue: StatusDisplayInfo(
        label="Quality Issue",
        label_ar="مشكلة جودة",
        color="orange",
        order=8,
        description="Shipment received with quality issues. Follow-up required.",
        description_ar="تم استلام الشحنة مع مشاكل في الجودة. مطلوب متابعة.",
    ),
}

# Fields whose change should trigger a status recalculation
STATUS_TRIGGER_FIELDS: frozenset[str] = frozenset(
    {
        "bl_no",
        "eta",
        "agreed_shipping_date",
        "customs_clearance_date",
        "warehouse_receipt_confirmed",
        "warehouse_receipt_has_issues",
        "delivery_confirmed_at",
        "delivery_has_issues",
        "truck_plate_number",
    }
)


def get_status_display_info(status: ShipmentStatus | str) -> StatusDisplayInfo:
    """Look up display metadata, falling back to planning for unknown values."""
    try:
        return STATUS_CONFIG[ShipmentStatus(status)]
    except ValueError:
        return STATUS_CONFIG[ShipmentStatus.planning]


def should_recalculate_status(changed_fields: Iterable[str]) -> bool:
    """True if any changed field feeds the status rules."""
    return any(name in STATUS_TRIGGER_FIELDS for name in changed_fields)

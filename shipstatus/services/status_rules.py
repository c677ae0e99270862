"""Rule evaluator: the single source of truth for shipment status.

Status is never selected freely. It is derived from dates (today vs ETA and
agreed shipping date), entered data (BL number, clearance date, transport
assignment) and the warehouse confirmation event.

The rules form a priority-ordered predicate chain evaluated from scratch on
every call, so a status can move in either direction as facts change:

1. receipt confirmed          -> received / quality_issue
2. customs clearance recorded -> loaded_to_final / pending_transport
3. BL + ETA, ETA <= today     -> awaiting_clearance
4. BL + ETA                   -> sailed
5. agreed date passed, no BL  -> delayed
6. otherwise                  -> planning

evaluate() is pure: no I/O, no system clock. "Today" comes from the Clock.
"""

from datetime import date

from shipstatus.db.models import ShipmentStatus, TriggerType
from shipstatus.services.clock import DEFAULT_CLOCK, Clock
from shipstatus.services.status_models import (
    EvaluationSnapshotV1,
    StatusComputationResult,
    StatusFactSnapshot,
)


def _result(
    status: ShipmentStatus,
    trigger: TriggerType,
    reason: str,
    reason_ar: str,
    captured: EvaluationSnapshotV1,
) -> StatusComputationResult:
    return StatusComputationResult(
        status=status,
        reason=reason,
        reason_ar=reason_ar,
        trigger=trigger,
        snapshot=captured,
    )


def evaluate(
    snapshot: StatusFactSnapshot, clock: Clock | None = None
) -> StatusComputationResult:
    """Compute the status a shipment should have given its facts.

    Args:
        snapshot: Facts loaded for the shipment.
        clock: Source of "today". Defaults to the system clock in the
            business timezone (Asia/Riyadh).

    Returns:
        Fresh StatusComputationResult carrying a verbatim copy of the facts.
    """
    today: date = (clock or DEFAULT_CLOCK).today()
    captured = EvaluationSnapshotV1.capture(snapshot, today)

    eta = snapshot.eta
    agreed = snapshot.agreed_shipping_date
    cleared = snapshot.customs_clearance_date
    has_bl = snapshot.has_bl

    # Warehouse confirmation outranks every other fact
    if snapshot.receipt.confirmed:
        if snapshot.receipt.has_issues:
            return _result(
                ShipmentStatus.quality_issue,
                TriggerType.warehouse_confirm,
                "Warehouse confirmed receipt with quality issues.",
                "المستودع أكد الاستلام مع وجود مشاكل في الجودة.",
                captured,
            )
        return _result(
            ShipmentStatus.received,
            TriggerType.warehouse_confirm,
            "Warehouse confirmed receipt without issues.",
            "المستودع أكد الاستلام بدون مشاكل.",
            captured,
        )

    if cleared is not None:
        if snapshot.has_transport_assigned:
            return _result(
                ShipmentStatus.loaded_to_final,
                TriggerType.data_change,
                "Transport assigned. On the way to final destination.",
                "تم تعيين النقل. في الطريق إلى الوجهة النهائية.",
                captured,
            )
        return _result(
            ShipmentStatus.pending_transport,
            TriggerType.data_change,
            f"Customs cleared on {cleared.isoformat()}. "
            "Assigned to transport agent, waiting for vehicle assignment.",
            f"تم التخليص الجمركي في {cleared.isoformat()}. في انتظار تعيين السيارات.",
            captured,
        )

    if has_bl and eta is not None and eta <= today:
        return _result(
            ShipmentStatus.awaiting_clearance,
            TriggerType.date_check,
            f"Arrived at port on {eta.isoformat()}. Awaiting customs clearance.",
            f"وصلت إلى الميناء في {eta.isoformat()}. في انتظار التخليص الجمركي.",
            captured,
        )

    if has_bl and eta is not None:
        return _result(
            ShipmentStatus.sailed,
            TriggerType.data_change,
            f"Bill of Lading received. ETA: {eta.isoformat()}.",
            f"تم استلام بوليصة الشحن. الوصول المتوقع: {eta.isoformat()}.",
            captured,
        )

    if agreed is not None and agreed < today and not has_bl:
        days_late = (today - agreed).days
        return _result(
            ShipmentStatus.delayed,
            TriggerType.date_check,
            f"Agreed shipping date ({agreed.isoformat()}) passed {days_late} days ago. "
            "No Bill of Lading received.",
            f"تاريخ الشحن المتفق عليه ({agreed.isoformat()}) مر منذ {days_late} يوم. "
            "لم يتم استلام بوليصة الشحن.",
            captured,
        )

    # Planning; the reason only says what is still missing
    if not has_bl and eta is None:
        reason = "Waiting for Bill of Lading and ETA."
        reason_ar = "في انتظار بوليصة الشحن وتاريخ الوصول المتوقع."
    elif not has_bl:
        reason = "Waiting for Bill of Lading."
        reason_ar = "في انتظار بوليصة الشحن."
    else:
        # BL without ETA; BL + ETA was handled above
        reason = "Waiting for ETA."
        reason_ar = "في انتظار تاريخ الوصول المتوقع."

    return _result(
        ShipmentStatus.planning, TriggerType.initial, reason, reason_ar, captured
    )

"""Value types flowing through the status engine.

- StatusFactSnapshot: the minimal facts the evaluator consumes.
- ReceiptConfirmation: the single canonical receipt value (legacy fields
  are folded into it at the loading boundary).
- StatusComputationResult: what one evaluation produced.
- EvaluationSnapshotV1 / OverrideSnapshotV1: versioned, explicitly typed
  records stored as JSON in the audit table so replays stay stable when the
  schema evolves.
"""

from dataclasses import dataclass, field
from datetime import date
from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

from shipstatus.db.models import ShipmentStatus, TriggerType


@dataclass(frozen=True)
class ReceiptConfirmation:
    """Whether physical receipt was confirmed, and whether it had issues."""

    confirmed: bool = False
    has_issues: bool = False

    @classmethod
    def from_stored(
        cls,
        warehouse_confirmed: bool | None,
        warehouse_has_issues: bool | None,
        legacy_confirmed_at: str | None = None,
        legacy_has_issues: bool | None = None,
    ) -> "ReceiptConfirmation":
        """Merge the warehouse receipt fields with the legacy delivery pair.

        Either mechanism confirming counts as confirmed; either reporting
        issues counts as issues.
        """
        confirmed = bool(warehouse_confirmed) or bool(legacy_confirmed_at)
        if not confirmed:
            return NOT_CONFIRMED
        return cls(
            confirmed=True,
            has_issues=bool(warehouse_has_issues) or bool(legacy_has_issues),
        )


NOT_CONFIRMED = ReceiptConfirmation()


@dataclass(frozen=True)
class StatusFactSnapshot:
    """Point-in-time facts for one shipment.

    Dates are either valid calendar dates or None; garbage was already
    dropped by the loader.
    """

    bl_no: str | None = None
    eta: date | None = None
    agreed_shipping_date: date | None = None
    customs_clearance_date: date | None = None
    receipt: ReceiptConfirmation = field(default=NOT_CONFIRMED)
    has_transport_assigned: bool = False

    @property
    def has_bl(self) -> bool:
        return bool(self.bl_no and self.bl_no.strip())


class EvaluationSnapshotV1(BaseModel):
    """Facts an automatic evaluation was based on."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    kind: Literal["evaluation"] = "evaluation"
    schema_version: Literal[1] = 1
    today: date
    bl_no: str | None = None
    eta: date | None = None
    agreed_shipping_date: date | None = None
    customs_clearance_date: date | None = None
    receipt_confirmed: bool = False
    receipt_has_issues: bool = False
    has_transport_assigned: bool = False

    @classmethod
    def capture(cls, snapshot: StatusFactSnapshot, today: date) -> "EvaluationSnapshotV1":
        """Copy a fact snapshot verbatim for forensic replay."""
        return cls(
            today=today,
            bl_no=snapshot.bl_no,
            eta=snapshot.eta,
            agreed_shipping_date=snapshot.agreed_shipping_date,
            customs_clearance_date=snapshot.customs_clearance_date,
            receipt_confirmed=snapshot.receipt.confirmed,
            receipt_has_issues=snapshot.receipt.has_issues,
            has_transport_assigned=snapshot.has_transport_assigned,
        )

    def to_facts(self) -> StatusFactSnapshot:
        """Rebuild the fact snapshot this record was captured from."""
        receipt = (
            ReceiptConfirmation(confirmed=True, has_issues=self.receipt_has_issues)
            if self.receipt_confirmed
            else NOT_CONFIRMED
        )
        return StatusFactSnapshot(
            bl_no=self.bl_no,
            eta=self.eta,
            agreed_shipping_date=self.agreed_shipping_date,
            customs_clearance_date=self.customs_clearance_date,
            receipt=receipt,
            has_transport_assigned=self.has_transport_assigned,
        )


class OverrideSnapshotV1(BaseModel):
    """State replaced by a manual override."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    kind: Literal["manual_override"] = "manual_override"
    schema_version: Literal[1] = 1
    previous_status: str | None = None
    previous_reason: str | None = None
    override_by: str
    override_at: str


AuditSnapshot = Annotated[
    EvaluationSnapshotV1 | OverrideSnapshotV1, Field(discriminator="kind")
]

_audit_snapshot_adapter: TypeAdapter[AuditSnapshot] = TypeAdapter(AuditSnapshot)


def parse_audit_snapshot(raw: str) -> EvaluationSnapshotV1 | OverrideSnapshotV1:
    """Load a stored audit snapshot blob into its typed record.

    Raises:
        pydantic.ValidationError: Unknown kind, version or malformed payload.
    """
    return _audit_snapshot_adapter.validate_json(raw)


@dataclass(frozen=True)
class StatusComputationResult:
    """Outcome of one status computation.

    Attributes:
        status: Resulting status.
        reason: English reason text.
        reason_ar: Arabic reason text.
        trigger: Trigger classification for the audit trail.
        snapshot: Versioned record of the inputs that produced the result.
    """

    status: ShipmentStatus
    reason: str
    reason_ar: str
    trigger: TriggerType
    snapshot: EvaluationSnapshotV1 | OverrideSnapshotV1

"""SQLAlchemy ORM models for the shipment status store.

This module defines the minimal slice of the logistics schema the status
engine reads and writes: the shipment record that owns the persisted status,
the logistics and document rows that hold the facts, outbound deliveries
(transport assignment) and the append-only status audit table. Uses
SQLAlchemy 2.0 style with Mapped and mapped_column.
"""

from datetime import UTC, datetime
from enum import Enum
from typing import Optional
from uuid import uuid4

from sqlalchemy import (
    Boolean,
    ForeignKey,
    Index,
    String,
    Text,
)
from sqlalchemy.orm import (
    DeclarativeBase,
    Mapped,
    mapped_column,
    relationship,
)


def generate_uuid() -> str:
    """Generate a UUID4 string for primary keys."""
    return str(uuid4())


def utc_now_iso() -> str:
    """Generate current UTC timestamp in ISO8601 format."""
    return datetime.now(UTC).isoformat()


# Enums matching the database schema constraints


class ShipmentStatus(str, Enum):
    """Lifecycle status of an inbound shipment.

    Derived by the rule evaluator, never selected freely:
        planning -> delayed (agreed shipping date passed, no BL)
        planning/delayed -> sailed (BL + ETA) -> awaiting_clearance (ETA reached)
        -> pending_transport (cleared) -> loaded_to_final (truck assigned)
        -> received / quality_issue (warehouse confirmation)
    """

    planning = "planning"
    delayed = "delayed"
    sailed = "sailed"
    awaiting_clearance = "awaiting_clearance"
    pending_transport = "pending_transport"
    loaded_to_final = "loaded_to_final"
    received = "received"
    quality_issue = "quality_issue"


class TriggerType(str, Enum):
    """Why a status computation produced its result (audit bookkeeping only)."""

    initial = "initial"
    data_change = "data_change"
    date_check = "date_check"
    warehouse_confirm = "warehouse_confirm"
    manual_override = "manual_override"


# SQLAlchemy Base


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


# Models


class Shipment(Base):
    """Shipment record owning the persisted status.

    Attributes:
        id: UUID primary key
        shipment_no: Business reference shown to operators
        status: Current status value (see ShipmentStatus)
        status_reason: Human-readable reason for the current status
        status_calculated_at: ISO8601 timestamp of the last computation
        status_override_by: Actor holding an active manual override
        status_override_at: ISO8601 timestamp the override was set
        status_override_reason: Operator justification for the override
        is_deleted: Soft-delete flag; deleted shipments are invisible to the engine
        created_at: ISO8601 timestamp of creation
        updated_at: ISO8601 timestamp of last update
        updated_by: Actor of the last update
    """

    __tablename__ = "shipments"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=generate_uuid
    )
    shipment_no: Mapped[str | None] = mapped_column(String(100), nullable=True)
    status: Mapped[str] = mapped_column(
        String(30), nullable=False, default=ShipmentStatus.planning.value
    )
    status_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    status_calculated_at: Mapped[str | None] = mapped_column(
        String(50), nullable=True
    )

    # Manual override (all three set together, cleared together)
    status_override_by: Mapped[str | None] = mapped_column(
        String(255), nullable=True
    )
    status_override_at: Mapped[str | None] = mapped_column(
        String(50), nullable=True
    )
    status_override_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    is_deleted: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default="0"
    )

    created_at: Mapped[str] = mapped_column(
        String(50), nullable=False, default=utc_now_iso
    )
    updated_at: Mapped[str] = mapped_column(
        String(50), nullable=False, default=utc_now_iso
    )
    updated_by: Mapped[str | None] = mapped_column(String(255), nullable=True)

    # Relationships
    logistics: Mapped[Optional["ShipmentLogistics"]] = relationship(
        "ShipmentLogistics",
        back_populates="shipment",
        uselist=False,
        cascade="all, delete-orphan",
    )
    documents: Mapped[Optional["ShipmentDocuments"]] = relationship(
        "ShipmentDocuments",
        back_populates="shipment",
        uselist=False,
        cascade="all, delete-orphan",
    )
    outbound_deliveries: Mapped[list["OutboundDelivery"]] = relationship(
        "OutboundDelivery", back_populates="shipment", cascade="all, delete-orphan"
    )
    # Append-only history: no ORM delete cascade, rows go only with the
    # shipment via the FK's ON DELETE CASCADE
    status_audits: Mapped[list["ShipmentStatusAudit"]] = relationship(
        "ShipmentStatusAudit",
        back_populates="shipment",
        cascade="save-update, merge",
        passive_deletes=True,
    )

    # Indexes
    __table_args__ = (
        Index("idx_shipments_status", "status"),
        Index("idx_shipments_updated_at", "updated_at"),
    )

    @property
    def has_override(self) -> bool:
        """True when a manual override is active."""
        return self.status_override_by is not None

    def set_override(self, actor: str, reason: str, at: str) -> None:
        """Record override metadata (the only writer of the override fields)."""
        self.status_override_by = actor
        self.status_override_at = at
        self.status_override_reason = reason

    def clear_override(self) -> None:
        """Drop override metadata, handing the status back to the evaluator."""
        self.status_override_by = None
        self.status_override_at = None
        self.status_override_reason = None

    def __repr__(self) -> str:
        return f"<Shipment(id={self.id!r}, status={self.status!r})>"


class ShipmentLogistics(Base):
    """Logistics facts for a shipment.

    Dates are kept as the ISO strings they were imported with; the snapshot
    loader parses them and treats anything unparseable as absent.
    """

    __tablename__ = "shipment_logistics"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=generate_uuid
    )
    shipment_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("shipments.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    bl_no: Mapped[str | None] = mapped_column(String(100), nullable=True)
    eta: Mapped[str | None] = mapped_column(String(50), nullable=True)
    agreed_shipping_date: Mapped[str | None] = mapped_column(
        String(50), nullable=True
    )
    customs_clearance_date: Mapped[str | None] = mapped_column(
        String(50), nullable=True
    )

    shipment: Mapped["Shipment"] = relationship("Shipment", back_populates="logistics")

    def __repr__(self) -> str:
        return (
            f"<ShipmentLogistics(shipment_id={self.shipment_id!r}, "
            f"bl_no={self.bl_no!r}, eta={self.eta!r})>"
        )


class ShipmentDocuments(Base):
    """Document and receipt facts for a shipment.

    Carries two generations of receipt confirmation: the warehouse receipt
    fields and the legacy delivery confirmation pair. Both are folded into
    a single ReceiptConfirmation by the snapshot loader.
    """

    __tablename__ = "shipment_documents"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=generate_uuid
    )
    shipment_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("shipments.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )

    warehouse_receipt_confirmed: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default="0"
    )
    warehouse_receipt_confirmed_at: Mapped[str | None] = mapped_column(
        String(50), nullable=True
    )
    warehouse_receipt_confirmed_by: Mapped[str | None] = mapped_column(
        String(255), nullable=True
    )
    warehouse_receipt_has_issues: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default="0"
    )
    warehouse_receipt_notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Legacy delivery confirmation
    delivery_confirmed_at: Mapped[str | None] = mapped_column(
        String(50), nullable=True
    )
    delivery_has_issues: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default="0"
    )

    updated_at: Mapped[str] = mapped_column(
        String(50), nullable=False, default=utc_now_iso
    )

    shipment: Mapped["Shipment"] = relationship("Shipment", back_populates="documents")

    @property
    def receipt_already_confirmed(self) -> bool:
        """True when either confirmation mechanism has fired."""
        return bool(self.warehouse_receipt_confirmed or self.delivery_confirmed_at)

    def record_receipt(
        self, actor: str, has_issues: bool, notes: str | None, at: str
    ) -> None:
        """Persist a warehouse receipt confirmation.

        Only the warehouse confirmation handler calls this; it is the sole
        route into the received / quality_issue statuses.
        """
        self.warehouse_receipt_confirmed = True
        self.warehouse_receipt_confirmed_at = at
        self.warehouse_receipt_confirmed_by = actor
        self.warehouse_receipt_has_issues = has_issues
        self.warehouse_receipt_notes = notes
        self.updated_at = at

    def __repr__(self) -> str:
        return (
            f"<ShipmentDocuments(shipment_id={self.shipment_id!r}, "
            f"confirmed={self.warehouse_receipt_confirmed!r})>"
        )


class OutboundDelivery(Base):
    """Outbound (final-leg) delivery of a shipment.

    A live delivery with a truck plate number means transport is assigned.
    """

    __tablename__ = "outbound_deliveries"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=generate_uuid
    )
    shipment_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("shipments.id", ondelete="CASCADE"), nullable=False
    )
    truck_plate_number: Mapped[str | None] = mapped_column(String(50), nullable=True)
    is_deleted: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default="0"
    )
    created_at: Mapped[str] = mapped_column(
        String(50), nullable=False, default=utc_now_iso
    )

    shipment: Mapped["Shipment"] = relationship(
        "Shipment", back_populates="outbound_deliveries"
    )

    __table_args__ = (Index("idx_outbound_deliveries_shipment_id", "shipment_id"),)

    def __repr__(self) -> str:
        return (
            f"<OutboundDelivery(id={self.id!r}, shipment_id={self.shipment_id!r}, "
            f"truck={self.truck_plate_number!r})>"
        )


class ShipmentStatusAudit(Base):
    """Append-only record of one status transition.

    Attributes:
        id: UUID primary key
        shipment_id: Foreign key to the shipment
        previous_status: Status before the transition (None for first write)
        new_status: Status after the transition
        status_reason: Reason recorded with the transition
        trigger_type: TriggerType value
        trigger_details: JSON blob with trigger context
        calculated_by: Actor that caused the transition
        calculated_at: ISO8601 timestamp of the transition
        data_snapshot: JSON of the versioned snapshot record used
    """

    __tablename__ = "shipment_status_audit"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=generate_uuid
    )
    shipment_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("shipments.id", ondelete="CASCADE"), nullable=False
    )
    previous_status: Mapped[str | None] = mapped_column(String(30), nullable=True)
    new_status: Mapped[str] = mapped_column(String(30), nullable=False)
    status_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    trigger_type: Mapped[str] = mapped_column(String(30), nullable=False)
    trigger_details: Mapped[str | None] = mapped_column(Text, nullable=True)
    calculated_by: Mapped[str] = mapped_column(String(255), nullable=False)
    calculated_at: Mapped[str] = mapped_column(
        String(50), nullable=False, default=utc_now_iso
    )
    data_snapshot: Mapped[str] = mapped_column(Text, nullable=False)

    shipment: Mapped["Shipment"] = relationship(
        "Shipment", back_populates="status_audits"
    )

    __table_args__ = (
        Index("idx_shipment_status_audit_shipment_id", "shipment_id"),
        Index("idx_shipment_status_audit_calculated_at", "calculated_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<ShipmentStatusAudit(id={self.id!r}, shipment_id={self.shipment_id!r}, "
            f"{self.previous_status!r} -> {self.new_status!r})>"
        )

"""Root-level pytest fixtures for all tests.

Provides shared fixtures:
- In-memory SQLite session with all tables created
- A shipment factory that writes the facts the status rules read
"""

import os
import tempfile
from collections.abc import Callable, Generator

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from shipstatus.db.models import (
    Base,
    OutboundDelivery,
    Shipment,
    ShipmentDocuments,
    ShipmentLogistics,
    ShipmentStatusAudit,
)


# ============================================================================
# Pytest Configuration
# ============================================================================


def pytest_configure(config):
    """Keep the default database path out of the real user data directory."""
    if not os.environ.get("SHIPSTATUS_HOME"):
        os.environ["SHIPSTATUS_HOME"] = tempfile.mkdtemp(prefix="shipstatus-test-")


# ============================================================================
# Database Fixtures
# ============================================================================


@pytest.fixture
def session_factory() -> sessionmaker:
    """Session factory bound to a fresh in-memory SQLite database.

    StaticPool shares the single connection so every session (including
    ones opened by the scheduler) sees the same data.
    """
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    return sessionmaker(bind=engine)


@pytest.fixture
def db_session(session_factory: sessionmaker) -> Generator[Session, None, None]:
    """Create an in-memory SQLite session for testing."""
    session = session_factory()
    yield session
    session.close()


# ============================================================================
# Test Data Fixtures
# ============================================================================


def create_shipment(
    db: Session,
    *,
    status: str = "planning",
    bl_no: str | None = None,
    eta: str | None = None,
    agreed_shipping_date: str | None = None,
    customs_clearance_date: str | None = None,
    truck_plate_number: str | None = None,
    warehouse_receipt_confirmed: bool | None = None,
    warehouse_receipt_has_issues: bool = False,
    delivery_confirmed_at: str | None = None,
    delivery_has_issues: bool = False,
    is_deleted: bool = False,
    updated_at: str | None = None,
    with_logistics: bool = True,
) -> Shipment:
    """Insert a shipment with the given facts and return it."""
    shipment = Shipment(shipment_no="SHP-001", status=status, is_deleted=is_deleted)
    if updated_at is not None:
        shipment.updated_at = updated_at

    if with_logistics:
        shipment.logistics = ShipmentLogistics(
            bl_no=bl_no,
            eta=eta,
            agreed_shipping_date=agreed_shipping_date,
            customs_clearance_date=customs_clearance_date,
        )

    if warehouse_receipt_confirmed is not None or delivery_confirmed_at is not None:
        shipment.documents = ShipmentDocuments(
            warehouse_receipt_confirmed=bool(warehouse_receipt_confirmed),
            warehouse_receipt_has_issues=warehouse_receipt_has_issues,
            delivery_confirmed_at=delivery_confirmed_at,
            delivery_has_issues=delivery_has_issues,
        )

    if truck_plate_number is not None:
        shipment.outbound_deliveries.append(
            OutboundDelivery(truck_plate_number=truck_plate_number)
        )

    db.add(shipment)
    db.commit()
    return shipment


@pytest.fixture
def make_shipment(db_session: Session) -> Callable[..., Shipment]:
    """Factory fixture: make_shipment(bl_no="MEDU123", eta="2099-01-01")."""

    def _make(**kwargs) -> Shipment:
        return create_shipment(db_session, **kwargs)

    return _make


def audit_rows(db: Session, shipment_id: str) -> list[ShipmentStatusAudit]:
    """All audit rows for a shipment, oldest first."""
    return (
        db.query(ShipmentStatusAudit)
        .filter(ShipmentStatusAudit.shipment_id == shipment_id)
        .order_by(ShipmentStatusAudit.calculated_at.asc())
        .all()
    )


@pytest.fixture
def get_audits(db_session: Session) -> Callable[[str], list[ShipmentStatusAudit]]:
    """Return a lookup of audit rows for a shipment in the test session."""

    def _get(shipment_id: str) -> list[ShipmentStatusAudit]:
        return audit_rows(db_session, shipment_id)

    return _get


@pytest.fixture
def shipment_writer() -> Callable[..., Shipment]:
    """create_shipment() for tests that seed through their own session."""
    return create_shipment

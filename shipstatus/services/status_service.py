"""Shipment status service: audited persistence around the rule evaluator.

This module provides the write side of the status engine:
- apply_result: transactional compare-and-write with an audit row per change
- recalculate: load facts -> evaluate -> apply (the normal-path entry point)
- override / clear_override: manual escape hatch with mandatory reason
- confirm_receipt: the one-shot warehouse confirmation event
- recalculate_if_relevant: best-effort secondary recalculation

Every mutation runs in its own database transaction. Concurrent writers on
the same shipment resolve last-commit-wins; there is no version check.
"""

import json
import logging
from collections.abc import Iterable
from dataclasses import dataclass

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from shipstatus.db.models import (
    Shipment,
    ShipmentDocuments,
    ShipmentStatus,
    ShipmentStatusAudit,
    TriggerType,
    utc_now_iso,
)
from shipstatus.errors import (
    AlreadyConfirmedError,
    DomainError,
    NoActiveOverrideError,
    NotFoundError,
    PersistenceError,
    ValidationError,
    format_error_message,
)
from shipstatus.services.clock import Clock
from shipstatus.services.snapshot_loader import SnapshotLoader, load_status_facts
from shipstatus.services.status_config import (
    StatusDisplayInfo,
    get_status_display_info,
    should_recalculate_status,
)
from shipstatus.services.status_models import (
    OverrideSnapshotV1,
    StatusComputationResult,
)
from shipstatus.services.status_rules import evaluate

logger = logging.getLogger(__name__)

MIN_OVERRIDE_REASON_LENGTH = 10

SYSTEM_ACTOR = "system"


@dataclass(frozen=True)
class StatusExplanation:
    """Display-only view of what the status would be right now.

    Attributes:
        shipment_id: Shipment UUID.
        stored_status: Status currently persisted on the shipment.
        result: Fresh evaluation of the current facts (not persisted).
        display: Display metadata for the evaluated status.
        override_active: Whether a manual override is in effect.
        override_by: Actor holding the override, if any.
        override_reason: Operator justification, if any.
    """

    shipment_id: str
    stored_status: str
    result: StatusComputationResult
    display: StatusDisplayInfo
    override_active: bool = False
    override_by: str | None = None
    override_reason: str | None = None


def validate_status(value: ShipmentStatus | str) -> ShipmentStatus:
    """Coerce a requested status, rejecting anything outside the eight values.

    Raises:
        ValidationError: Unrecognized status.
    """
    try:
        return ShipmentStatus(value)
    except ValueError:
        allowed = ", ".join(s.value for s in ShipmentStatus)
        raise ValidationError(
            format_error_message("E-2002", value=value, allowed=allowed),
            code="E-2002",
        ) from None


class ShipmentStatusService:
    """Service for status recalculation, overrides and receipt confirmation.

    Attributes:
        db: SQLAlchemy session used as the transactional store handle.
        clock: Source of "today" for the evaluator (None = system clock).
        loader: Callable returning the fact snapshot for a shipment.
    """

    def __init__(
        self,
        db: Session,
        clock: Clock | None = None,
        loader: SnapshotLoader = load_status_facts,
    ) -> None:
        """Initialize the status service.

        Args:
            db: SQLAlchemy session for database operations.
            clock: Clock injected into every evaluation.
            loader: Snapshot loader (external collaborator boundary).
        """
        self.db = db
        self.clock = clock
        self.loader = loader

    # =========================================================================
    # Helpers
    # =========================================================================

    def _get_live_shipment(self, shipment_id: str) -> Shipment:
        shipment = self.db.get(Shipment, shipment_id)
        if shipment is None or shipment.is_deleted:
            raise NotFoundError("Shipment", shipment_id)
        return shipment

    def _rollback(self, shipment_id: str, exc: Exception) -> None:
        self.db.rollback()
        logger.error(
            "Status transaction rolled back: shipment=%s error=%s", shipment_id, exc
        )

    # =========================================================================
    # Audited Persistence Writer
    # =========================================================================

    def apply_result(
        self,
        shipment_id: str,
        result: StatusComputationResult,
        actor: str = SYSTEM_ACTOR,
    ) -> bool:
        """Persist a computed status, auditing only actual transitions.

        If the stored status differs, status/reason/calculated-at are
        updated and exactly one audit row is written. Otherwise only the
        reason and calculated-at timestamp are refreshed. All or nothing.

        Args:
            shipment_id: Shipment UUID.
            result: Output of evaluate().
            actor: Who caused the recalculation (audit attribution).

        Returns:
            True if the status changed.

        Raises:
            NotFoundError: Shipment row vanished.
            PersistenceError: The transaction failed and was rolled back.
        """
        try:
            shipment = self._get_live_shipment(shipment_id)
            previous_status = shipment.status
            now = utc_now_iso()
            changed = previous_status != result.status.value

            shipment.status_reason = result.reason
            shipment.status_calculated_at = now

            if changed:
                shipment.status = result.status.value
                shipment.updated_at = now
                self.db.add(
                    ShipmentStatusAudit(
                        shipment_id=shipment_id,
                        previous_status=previous_status,
                        new_status=result.status.value,
                        status_reason=result.reason,
                        trigger_type=result.trigger.value,
                        trigger_details=json.dumps({"calculated_at": now}),
                        calculated_by=actor,
                        calculated_at=now,
                        data_snapshot=result.snapshot.model_dump_json(),
                    )
                )
            self.db.commit()
        except DomainError:
            self.db.rollback()
            raise
        except SQLAlchemyError as e:
            self._rollback(shipment_id, e)
            raise PersistenceError(shipment_id, str(e)) from e

        if changed:
            logger.info(
                "Status updated: shipment=%s %s -> %s trigger=%s by=%s",
                shipment_id,
                previous_status,
                result.status.value,
                result.trigger.value,
                actor,
            )
        return changed

    # =========================================================================
    # Recalculation Orchestrator
    # =========================================================================

    def recalculate(
        self, shipment_id: str, actor: str = SYSTEM_ACTOR
    ) -> StatusComputationResult | None:
        """Load facts, evaluate them and persist the outcome.

        This is the entry point normal write paths and the batch job use;
        evaluation and persistence always happen together.

        Args:
            shipment_id: Shipment UUID.
            actor: Who triggered the recalculation.

        Returns:
            The computation result, or None if the shipment is missing or
            soft-deleted.
        """
        facts = self.loader(self.db, shipment_id)
        if facts is None:
            logger.warning(
                "Cannot recalculate status: shipment %s not found", shipment_id
            )
            return None

        result = evaluate(facts, self.clock)
        self.apply_result(shipment_id, result, actor)
        return result

    def recalculate_best_effort(
        self, shipment_id: str, actor: str = SYSTEM_ACTOR
    ) -> StatusComputationResult | None:
        """Recalculate as a side effect of another write.

        Failures are logged and swallowed so a status-engine defect never
        blocks the primary write that triggered it.
        """
        try:
            return self.recalculate(shipment_id, actor)
        except Exception as e:
            self.db.rollback()
            logger.warning(
                "Secondary status recalculation failed: shipment=%s error=%s",
                shipment_id,
                e,
                exc_info=True,
            )
            return None

    def recalculate_if_relevant(
        self,
        shipment_id: str,
        changed_fields: Iterable[str],
        actor: str = SYSTEM_ACTOR,
    ) -> StatusComputationResult | None:
        """Best-effort recalculation when a status-relevant field changed.

        Args:
            shipment_id: Shipment UUID.
            changed_fields: Names of the fields the caller just wrote.
            actor: Who made the change.

        Returns:
            The result, or None when nothing relevant changed or the
            recalculation failed.
        """
        if not should_recalculate_status(changed_fields):
            return None
        return self.recalculate_best_effort(shipment_id, actor)

    def describe_status(self, shipment_id: str) -> StatusExplanation | None:
        """Evaluate current facts for display without persisting anything.

        Returns:
            StatusExplanation, or None if the shipment is missing or deleted.
        """
        facts = self.loader(self.db, shipment_id)
        if facts is None:
            return None
        shipment = self._get_live_shipment(shipment_id)
        result = evaluate(facts, self.clock)
        return StatusExplanation(
            shipment_id=shipment_id,
            stored_status=shipment.status,
            result=result,
            display=get_status_display_info(result.status),
            override_active=shipment.has_override,
            override_by=shipment.status_override_by,
            override_reason=shipment.status_override_reason,
        )

    # =========================================================================
    # Manual Override Workflow
    # =========================================================================

    def override(
        self,
        shipment_id: str,
        requested_status: ShipmentStatus | str,
        reason: str | None,
        actor: str,
    ) -> StatusComputationResult:
        """Force a status, bypassing the evaluator.

        The operator's reason is stored verbatim for both languages; no
        translation is attempted for manual text.

        Args:
            shipment_id: Shipment UUID.
            requested_status: One of the eight status values.
            reason: Justification, at least 10 characters after trimming.
            actor: Operator setting the override.

        Returns:
            StatusComputationResult with trigger manual_override.

        Raises:
            ValidationError: Reason too short/missing or unknown status.
            NotFoundError: Shipment missing or deleted.
            PersistenceError: Transaction failed and was rolled back.
        """
        if reason is None or len(reason.strip()) < MIN_OVERRIDE_REASON_LENGTH:
            raise ValidationError(
                format_error_message("E-2001", min_length=MIN_OVERRIDE_REASON_LENGTH),
                code="E-2001",
            )
        status = validate_status(requested_status)

        try:
            shipment = self._get_live_shipment(shipment_id)
            previous_status = shipment.status
            now = utc_now_iso()
            snapshot = OverrideSnapshotV1(
                previous_status=previous_status,
                previous_reason=shipment.status_reason,
                override_by=actor,
                override_at=now,
            )

            shipment.status = status.value
            shipment.status_reason = reason
            shipment.status_calculated_at = now
            shipment.set_override(actor, reason, now)
            shipment.updated_at = now
            shipment.updated_by = actor

            self.db.add(
                ShipmentStatusAudit(
                    shipment_id=shipment_id,
                    previous_status=previous_status,
                    new_status=status.value,
                    status_reason=reason,
                    trigger_type=TriggerType.manual_override.value,
                    trigger_details=json.dumps(
                        {"override_reason": reason, "overridden_by": actor}
                    ),
                    calculated_by=actor,
                    calculated_at=now,
                    data_snapshot=snapshot.model_dump_json(),
                )
            )
            self.db.commit()
        except DomainError:
            self.db.rollback()
            raise
        except SQLAlchemyError as e:
            self._rollback(shipment_id, e)
            raise PersistenceError(shipment_id, str(e)) from e

        logger.info(
            "Manual override: shipment=%s %s -> %s by=%s reason=%r",
            shipment_id,
            previous_status,
            status.value,
            actor,
            reason,
        )
        return StatusComputationResult(
            status=status,
            reason=reason,
            reason_ar=reason,
            trigger=TriggerType.manual_override,
            snapshot=snapshot,
        )

    def clear_override(
        self, shipment_id: str, actor: str
    ) -> StatusComputationResult:
        """Drop an active override and hand the status back to the evaluator.

        The recomputed status may differ from the overridden one; the
        override was a temporary exception, not a new ground truth.

        Raises:
            NotFoundError: Shipment missing or deleted.
            NoActiveOverrideError: Nothing to clear.
            PersistenceError: Transaction failed and was rolled back.
        """
        try:
            shipment = self._get_live_shipment(shipment_id)
            if not shipment.has_override:
                raise NoActiveOverrideError(shipment_id)
            previous_status = shipment.status
            shipment.clear_override()
            shipment.updated_at = utc_now_iso()
            shipment.updated_by = actor
            self.db.commit()
        except DomainError:
            self.db.rollback()
            raise
        except SQLAlchemyError as e:
            self._rollback(shipment_id, e)
            raise PersistenceError(shipment_id, str(e)) from e

        logger.info("Manual override cleared: shipment=%s by=%s", shipment_id, actor)

        result = self.recalculate(shipment_id, actor)
        if result is None:
            raise NotFoundError("Shipment", shipment_id)
        logger.info(
            "Status after override cleared: shipment=%s %s -> %s",
            shipment_id,
            previous_status,
            result.status.value,
        )
        return result

    # =========================================================================
    # Warehouse Confirmation Handler
    # =========================================================================

    def confirm_receipt(
        self,
        shipment_id: str,
        has_issues: bool,
        actor: str,
        notes: str | None = None,
    ) -> StatusComputationResult:
        """Record the one-shot warehouse receipt event and recalculate.

        This is the only non-override path into received / quality_issue.

        Args:
            shipment_id: Shipment UUID.
            has_issues: True if goods arrived with quality issues.
            actor: Who confirmed receipt.
            notes: Optional free-text notes.

        Returns:
            The recalculated result (received or quality_issue).

        Raises:
            NotFoundError: Shipment missing or deleted.
            AlreadyConfirmedError: Receipt was confirmed before.
            PersistenceError: Transaction failed and was rolled back.
        """
        try:
            shipment = self._get_live_shipment(shipment_id)
            documents = shipment.documents
            if documents is None:
                documents = ShipmentDocuments(shipment_id=shipment_id)
                shipment.documents = documents
            elif documents.receipt_already_confirmed:
                raise AlreadyConfirmedError(shipment_id)

            documents.record_receipt(
                actor=actor, has_issues=has_issues, notes=notes, at=utc_now_iso()
            )
            self.db.commit()
        except DomainError:
            self.db.rollback()
            raise
        except SQLAlchemyError as e:
            self._rollback(shipment_id, e)
            raise PersistenceError(shipment_id, str(e)) from e

        logger.info(
            "Warehouse receipt confirmed: shipment=%s issues=%s by=%s",
            shipment_id,
            has_issues,
            actor,
        )

        result = self.recalculate(shipment_id, actor)
        if result is None:
            raise NotFoundError("Shipment", shipment_id)
        return result

"""Background scheduler for the reconciliation job.

Runs reconcile_date_based_statuses() at fixed local hours: the main daily
run at 01:00 plus catch-up runs at 07:00, 13:00 and 19:00 so a date that
rolls over during the working day is picked up within a few hours.

The loop lives on a daemon thread and sleeps on a threading.Event, so
stop() interrupts the wait immediately. One failed run is logged and the
schedule carries on.
"""

import logging
import threading
from collections.abc import Callable, Sequence
from datetime import datetime, timedelta
from zoneinfo import ZoneInfo

from sqlalchemy.orm import Session

from shipstatus.services.clock import DEFAULT_TIMEZONE, SystemClock
from shipstatus.services.reconciliation import (
    DEFAULT_BATCH_LIMIT,
    RECONCILIATION_ACTOR,
    ReconciliationSummary,
    reconcile_date_based_statuses,
)

logger = logging.getLogger(__name__)

DEFAULT_RUN_HOURS = (1, 7, 13, 19)


def next_run_after(
    now: datetime, hours: Sequence[int], tz: ZoneInfo
) -> datetime:
    """Return the first scheduled run strictly after ``now``.

    Args:
        now: Timezone-aware current time.
        hours: Local hours of day (0-23) at which the job runs.
        tz: Timezone the hours are expressed in.

    Returns:
        Timezone-aware datetime in ``tz``.

    Raises:
        ValueError: Empty hours or an hour outside 0-23.
    """
    if not hours:
        raise ValueError("At least one run hour is required")
    if any(h < 0 or h > 23 for h in hours):
        raise ValueError(f"Run hours must be between 0 and 23, got {list(hours)}")

    local = now.astimezone(tz)
    for hour in sorted(set(hours)):
        candidate = local.replace(hour=hour, minute=0, second=0, microsecond=0)
        if candidate > local:
            return candidate

    tomorrow = local + timedelta(days=1)
    return tomorrow.replace(hour=min(hours), minute=0, second=0, microsecond=0)


class ReconciliationScheduler:
    """Runs the reconciliation job on a fixed daily schedule.

    Attributes:
        session_factory: Callable returning a fresh Session per run.
        hours: Local hours of day the job runs at.
        timezone: IANA timezone for both the schedule and "today".
        run_on_startup: Run once immediately when started.
        batch_limit: Maximum shipments per run.
        actor: Audit attribution for transitions.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        hours: Sequence[int] = DEFAULT_RUN_HOURS,
        timezone: str = DEFAULT_TIMEZONE,
        run_on_startup: bool = False,
        batch_limit: int = DEFAULT_BATCH_LIMIT,
        actor: str = RECONCILIATION_ACTOR,
    ) -> None:
        self.session_factory = session_factory
        self.hours = tuple(hours)
        self.timezone = timezone
        self.run_on_startup = run_on_startup
        self.batch_limit = batch_limit
        self.actor = actor
        self.clock = SystemClock(timezone)
        self._tz = ZoneInfo(timezone)
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None
        # Validate the schedule up front rather than on the worker thread
        next_run_after(self.clock.now(), self.hours, self._tz)

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def next_run(self) -> datetime:
        """Next scheduled run time from now."""
        return next_run_after(self.clock.now(), self.hours, self._tz)

    def run_once(self) -> ReconciliationSummary | None:
        """Execute one reconciliation run in a fresh session.

        Returns:
            The run summary, or None if the run failed.
        """
        db = self.session_factory()
        try:
            return reconcile_date_based_statuses(
                db, clock=self.clock, limit=self.batch_limit, actor=self.actor
            )
        except Exception:
            logger.error("Scheduled reconciliation run failed", exc_info=True)
            return None
        finally:
            db.close()

    def run_forever(self) -> None:
        """Block and run the schedule until stop() is called."""
        logger.info(
            "Reconciliation scheduler started: hours=%s timezone=%s",
            ",".join(f"{h:02d}:00" for h in sorted(set(self.hours))),
            self.timezone,
        )
        if self.run_on_startup:
            self.run_once()

        while not self._stop.is_set():
            now = self.clock.now()
            target = next_run_after(now, self.hours, self._tz)
            delay = max((target - now).total_seconds(), 0.0)
            logger.debug("Next reconciliation run at %s", target.isoformat())
            if self._stop.wait(delay):
                break
            self.run_once()

        logger.info("Reconciliation scheduler stopped")

    def start(self) -> None:
        """Start the schedule on a daemon thread."""
        if self.is_running:
            return
        self._stop.clear()
        self._thread = threading.Thread(
            target=self.run_forever, name="reconciliation-scheduler", daemon=True
        )
        self._thread.start()

    def stop(self, timeout: float | None = 5.0) -> None:
        """Signal the loop to exit and wait for the thread."""
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None

"""Daily maintenance jobs.

Each ``MaintenanceJob`` runs one named batch procedure. Overlapping runs,
including runs from other processes sharing the database file, are kept out
by a lease row in ``job_leases``. A failed run is logged and left for the next
day; nothing is retried inside a run.
"""

import sqlite3
import threading
from datetime import datetime, timedelta, timezone
from typing import Callable, List, Optional

from school_portal.database import PROCEDURES, Database
from school_portal.errors import ServiceError
from school_portal.logutils import get_logger, with_context

logger = get_logger(__name__)

NOTIFICATION_EXPIRY = "batch_update_expired_notifications"
INVITE_EXPIRY = "expire_stale_invites"


class MaintenanceJob:
    """One scheduled batch procedure guarded by a lease.

    Args:
        name: Job name, also the lease name.
        procedure: Key of ``school_portal.database.PROCEDURES``.
        db: Database handle.
        lease_ttl: Seconds after which a lease left by a crashed run is stale.
        on_success: Called with the affected row count after a successful run.
    """

    def __init__(
        self,
        name: str,
        procedure: str,
        db: Database,
        lease_ttl: int = 3600,
        on_success: Optional[Callable[[int], None]] = None,
    ):
        if procedure not in PROCEDURES:
            raise ValueError(f"Unknown procedure: {procedure}")
        self.name = name
        self.procedure = procedure
        self.db = db
        self.lease_ttl = lease_ttl
        self.on_success = on_success
        self.running = False
        self.last_count: Optional[int] = None

    def run_once(self) -> bool:
        """Run the procedure once. Returns True when it completed."""
        with with_context(operation=f"job.{self.name}"):
            try:
                holder = self.db.acquire_lease(self.name, self.lease_ttl)
            except sqlite3.Error as exc:
                self._log_failure(exc)
                return False
            if holder is None:
                logger.info("Job already running elsewhere, skipped", extra={"extra_data": {"job": self.name}})
                return False

            self.running = True
            started = datetime.now(timezone.utc)
            try:
                count = self.db.call_procedure(self.procedure)
                if self.on_success is not None:
                    self.on_success(count)
            except (sqlite3.Error, ServiceError) as exc:
                self._log_failure(exc)
                return False
            finally:
                self.running = False
                self._release(holder)

            self.last_count = count
            elapsed = (datetime.now(timezone.utc) - started).total_seconds()
            logger.info(
                f"Successfully ran {self.name} job",
                extra={"extra_data": {"job": self.name, "rows": count, "duration_seconds": round(elapsed, 3)}},
            )
            return True

    def _log_failure(self, exc: Exception) -> None:
        logger.error(
            f"Error running {self.name} job",
            extra={"extra_data": {"job": self.name, "procedure": self.procedure, "error": str(exc)}},
            exc_info=True,
        )

    def _release(self, holder: str) -> None:
        # An unreleased lease goes stale after lease_ttl.
        try:
            self.db.release_lease(self.name, holder)
        except sqlite3.Error as exc:
            logger.error(
                f"Failed to release lease for {self.name} job",
                extra={"extra_data": {"job": self.name, "error": str(exc)}},
            )


class DailyScheduler:
    """Runs every registered job once a day at a fixed UTC time."""

    def __init__(self, hour: int = 0, minute: int = 0):
        if not (0 <= hour < 24 and 0 <= minute < 60):
            raise ValueError(f"Invalid schedule time: {hour:02d}:{minute:02d}")
        self.hour = hour
        self.minute = minute
        self.jobs: List[MaintenanceJob] = []

    def register(self, job: MaintenanceJob) -> MaintenanceJob:
        self.jobs.append(job)
        logger.info(
            "Registered maintenance job",
            extra={"extra_data": {"job": job.name, "at": f"{self.hour:02d}:{self.minute:02d} UTC"}},
        )
        return job

    def next_run(self, now: Optional[datetime] = None) -> datetime:
        now = now or datetime.now(timezone.utc)
        candidate = now.replace(hour=self.hour, minute=self.minute, second=0, microsecond=0)
        if candidate <= now:
            candidate += timedelta(days=1)
        return candidate

    def run_all(self) -> dict:
        """Run every job once; returns ``{job name: completed}``."""
        return {job.name: job.run_once() for job in self.jobs}

    def run_forever(self, stop_event: threading.Event) -> None:
        """Block until ``stop_event`` is set, firing jobs at each daily time."""
        logger.info("Scheduler started", extra={"extra_data": {"jobs": [job.name for job in self.jobs]}})
        while not stop_event.is_set():
            delay = (self.next_run() - datetime.now(timezone.utc)).total_seconds()
            if stop_event.wait(max(delay, 0)):
                break
            self.run_all()
        logger.info("Scheduler stopped")

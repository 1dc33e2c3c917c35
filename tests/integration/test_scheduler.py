"""Integration tests for the maintenance jobs and the daily scheduler."""

import sqlite3
import threading
from datetime import datetime, timedelta, timezone

import pytest

from school_portal.scheduler import INVITE_EXPIRY, NOTIFICATION_EXPIRY, DailyScheduler, MaintenanceJob

pytestmark = pytest.mark.integration

UTC = timezone.utc


def messages(handler):
    return [record.getMessage() for record in handler.get_records()]


@pytest.fixture
def overdue_notification(db, notifications, notification_payload):
    """An active notification whose expiry passed without a write."""
    notification = notifications.create(
        notification_payload(expires_at=datetime.now(UTC) + timedelta(days=1))
    )
    with db.connection() as conn:
        conn.execute("DROP TRIGGER trg_notifications_expire_on_update")
        conn.execute(
            "UPDATE notifications SET expires_at = '2000-01-01 00:00:00.000' WHERE id = ?",
            (notification.id,),
        )
    return notification


class TestMaintenanceJob:
    def test_unknown_procedure(self, db):
        with pytest.raises(ValueError, match="Unknown procedure"):
            MaintenanceJob("cleanup", "drop_everything", db)

    def test_run_once(self, db, notifications, overdue_notification, capture_logs):
        handler = capture_logs("school_portal.scheduler")
        job = MaintenanceJob("notification-expiry", NOTIFICATION_EXPIRY, db)

        assert job.run_once() is True

        assert job.last_count == 1
        assert job.running is False
        assert notifications.get_by_id(overdue_notification.id).status == "expired"
        assert "Successfully ran notification-expiry job" in messages(handler)
        success = handler.get_records()[-1]
        assert success.extra_data["rows"] == 1

    def test_releases_lease(self, db):
        job = MaintenanceJob("invite-expiry", INVITE_EXPIRY, db)
        assert job.run_once() is True
        assert job.run_once() is True
        with db.connection() as conn:
            assert conn.execute("SELECT COUNT(*) FROM job_leases").fetchone()[0] == 0

    def test_skipped_while_lease_held(self, db, overdue_notification, notifications, capture_logs):
        handler = capture_logs("school_portal.scheduler")
        db.acquire_lease("notification-expiry", 60)
        job = MaintenanceJob("notification-expiry", NOTIFICATION_EXPIRY, db)

        assert job.run_once() is False

        assert job.last_count is None
        assert "Job already running elsewhere, skipped" in messages(handler)
        assert notifications.get_by_id(overdue_notification.id).status == "active"

    def test_failure_is_logged_and_lease_released(self, db, capture_logs):
        handler = capture_logs("school_portal.scheduler")
        with db.connection() as conn:
            conn.execute("DROP TABLE notifications")
        job = MaintenanceJob("notification-expiry", NOTIFICATION_EXPIRY, db)

        assert job.run_once() is False

        assert job.running is False
        errors = [r for r in handler.get_records() if r.levelname == "ERROR"]
        assert [r.getMessage() for r in errors] == ["Error running notification-expiry job"]
        assert "no such table" in errors[0].extra_data["error"]
        with db.connection() as conn:
            assert conn.execute("SELECT COUNT(*) FROM job_leases").fetchone()[0] == 0

    def test_release_failure_is_logged(self, db, monkeypatch, capture_logs):
        handler = capture_logs("school_portal.scheduler")

        def locked(name, holder):
            raise sqlite3.OperationalError("database is locked")

        monkeypatch.setattr(db, "release_lease", locked)
        job = MaintenanceJob("invite-expiry", INVITE_EXPIRY, db)

        assert job.run_once() is True
        assert job.running is False
        assert "Failed to release lease for invite-expiry job" in messages(handler)

    def test_on_success_receives_count(self, db, overdue_notification):
        seen = []
        job = MaintenanceJob("notification-expiry", NOTIFICATION_EXPIRY, db, on_success=seen.append)
        job.run_once()
        job.run_once()
        assert seen == [1, 0]

    def test_running_flag_set_during_run(self, db):
        observed = []
        job = MaintenanceJob("invite-expiry", INVITE_EXPIRY, db)
        job.on_success = lambda count: observed.append(job.running)
        job.run_once()
        assert observed == [True]
        assert job.running is False


class TestDailyScheduler:
    @pytest.mark.parametrize(
        "now, expected",
        [
            (datetime(2025, 3, 1, 10, 0, tzinfo=UTC), datetime(2025, 3, 2, 0, 0, tzinfo=UTC)),
            (datetime(2025, 3, 1, 0, 0, tzinfo=UTC), datetime(2025, 3, 2, 0, 0, tzinfo=UTC)),
            (datetime(2025, 12, 31, 23, 59, 59, tzinfo=UTC), datetime(2026, 1, 1, 0, 0, tzinfo=UTC)),
        ],
    )
    def test_next_run_midnight(self, now, expected):
        assert DailyScheduler().next_run(now) == expected

    def test_next_run_later_today(self):
        scheduler = DailyScheduler(hour=2, minute=30)
        now = datetime(2025, 3, 1, 1, 0, tzinfo=UTC)
        assert scheduler.next_run(now) == datetime(2025, 3, 1, 2, 30, tzinfo=UTC)

    @pytest.mark.parametrize("hour, minute", [(24, 0), (-1, 0), (0, 60)])
    def test_invalid_time(self, hour, minute):
        with pytest.raises(ValueError):
            DailyScheduler(hour, minute)

    def test_run_all(self, db, overdue_notification):
        scheduler = DailyScheduler()
        notification_job = scheduler.register(MaintenanceJob("notification-expiry", NOTIFICATION_EXPIRY, db))
        scheduler.register(MaintenanceJob("invite-expiry", INVITE_EXPIRY, db))

        assert scheduler.run_all() == {"notification-expiry": True, "invite-expiry": True}
        assert notification_job.last_count == 1

    def test_one_failure_does_not_stop_others(self, db):
        with db.connection() as conn:
            conn.execute("DROP TABLE notifications")
        scheduler = DailyScheduler()
        scheduler.register(MaintenanceJob("notification-expiry", NOTIFICATION_EXPIRY, db))
        scheduler.register(MaintenanceJob("invite-expiry", INVITE_EXPIRY, db))

        assert scheduler.run_all() == {"notification-expiry": False, "invite-expiry": True}

    @pytest.mark.slow
    def test_locked_store_fails_every_job_without_raising(self, db, settings, capture_logs):
        handler = capture_logs("school_portal.scheduler")
        scheduler = DailyScheduler()
        jobs = [
            scheduler.register(MaintenanceJob("notification-expiry", NOTIFICATION_EXPIRY, db)),
            scheduler.register(MaintenanceJob("invite-expiry", INVITE_EXPIRY, db)),
        ]
        writer = sqlite3.connect(str(settings.database_path), isolation_level=None)
        writer.execute("BEGIN EXCLUSIVE")
        try:
            results = scheduler.run_all()
        finally:
            writer.execute("ROLLBACK")
            writer.close()

        assert results == {"notification-expiry": False, "invite-expiry": False}
        assert all(job.running is False for job in jobs)
        errors = [r for r in handler.get_records() if r.levelname == "ERROR"]
        assert [r.getMessage() for r in errors] == [
            "Error running notification-expiry job",
            "Error running invite-expiry job",
        ]
        assert "locked" in errors[0].extra_data["error"]

        assert scheduler.run_all() == {"notification-expiry": True, "invite-expiry": True}

    def test_run_forever_stops_when_event_set(self, db):
        ran = []
        scheduler = DailyScheduler()
        scheduler.register(MaintenanceJob("invite-expiry", INVITE_EXPIRY, db, on_success=ran.append))
        stop = threading.Event()
        stop.set()

        scheduler.run_forever(stop)

        assert ran == []

    def test_run_forever_fires_due_jobs(self, db, monkeypatch):
        stop = threading.Event()
        scheduler = DailyScheduler()
        scheduler.register(MaintenanceJob("invite-expiry", INVITE_EXPIRY, db, on_success=lambda _: stop.set()))
        monkeypatch.setattr(scheduler, "next_run", lambda now=None: datetime.now(UTC))

        worker = threading.Thread(target=scheduler.run_forever, args=(stop,))
        worker.start()
        worker.join(timeout=5)

        assert not worker.is_alive()
        assert scheduler.jobs[0].last_count == 0

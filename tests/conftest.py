"""Pytest configuration and fixtures for School Portal tests."""

import fnmatch
import logging
from datetime import date, timedelta
from pathlib import Path
from typing import Callable, Generator, List

import pytest

from school_portal.config import Settings
from school_portal.database import Database, Invite
from school_portal.errors import DeliveryError
from school_portal.logutils import BufferingHandler
from school_portal.mailer import EmailService
from school_portal.repositories import (
    ClassRepository,
    GradeRepository,
    IndisciplineRepository,
    InviteRepository,
    NotificationRepository,
    ReportRepository,
    StudentRepository,
    SubjectRepository,
    TeacherRepository,
)


def pytest_configure(config):
    """Configure custom pytest markers."""
    config.addinivalue_line("markers", "unit: Unit tests (no external dependencies)")
    config.addinivalue_line("markers", "integration: Integration tests (database, repositories, CLI)")
    config.addinivalue_line("markers", "slow: Slow running tests")


# ==================== DOUBLES ====================


class FakeRedis:
    """In-memory stand-in for the subset of ``redis.Redis`` the cache uses."""

    def __init__(self):
        self.store = {}
        self.ttls = {}

    def get(self, key):
        return self.store.get(key)

    def setex(self, key, ttl, value):
        self.store[key] = value
        self.ttls[key] = ttl
        return True

    def delete(self, *keys):
        removed = 0
        for key in keys:
            if self.store.pop(key, None) is not None:
                self.ttls.pop(key, None)
                removed += 1
        return removed

    def scan_iter(self, match="*", count=None):
        return iter([key for key in list(self.store) if fnmatch.fnmatchcase(key, match)])


class RecordingEmailService(EmailService):
    """Captures invites instead of sending them."""

    def __init__(self, settings: Settings, fail: bool = False):
        super().__init__(settings)
        self.sent: List[Invite] = []
        self.fail = fail

    def send_invite(self, invite: Invite) -> None:
        self.render_invite(invite)
        if self.fail:
            raise DeliveryError("Failed to send invite email")
        self.sent.append(invite)


# ==================== SETTINGS & STORE ====================


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    """Settings pointing at a per-test database file."""
    return Settings(
        database_path=tmp_path / "school_portal.db",
        invite_secret="test-secret",
        frontend_url="https://portal.school.edu",
    )


@pytest.fixture
def db(settings: Settings) -> Generator[Database, None, None]:
    """Initialized temporary database."""
    database = Database.from_settings(settings)
    database.initialize()
    yield database
    database.close()


@pytest.fixture
def fake_redis() -> FakeRedis:
    return FakeRedis()


@pytest.fixture
def email_service(settings: Settings) -> RecordingEmailService:
    return RecordingEmailService(settings)


@pytest.fixture
def failing_email_service(settings: Settings) -> RecordingEmailService:
    return RecordingEmailService(settings, fail=True)


# ==================== REPOSITORIES ====================


@pytest.fixture
def classes(db: Database) -> ClassRepository:
    return ClassRepository(db)


@pytest.fixture
def students(db: Database) -> StudentRepository:
    return StudentRepository(db)


@pytest.fixture
def teachers(db: Database) -> TeacherRepository:
    return TeacherRepository(db)


@pytest.fixture
def subjects(db: Database) -> SubjectRepository:
    return SubjectRepository(db)


@pytest.fixture
def grades(db: Database) -> GradeRepository:
    return GradeRepository(db)


@pytest.fixture
def notifications(db: Database) -> NotificationRepository:
    return NotificationRepository(db)


@pytest.fixture
def indiscipline(db: Database) -> IndisciplineRepository:
    return IndisciplineRepository(db)


@pytest.fixture
def invites(db: Database, settings: Settings, email_service: RecordingEmailService) -> InviteRepository:
    return InviteRepository(db, settings=settings, email=email_service)


@pytest.fixture
def reports(db: Database) -> ReportRepository:
    return ReportRepository(db)


# ==================== PAYLOADS ====================


@pytest.fixture
def class_payload() -> Callable[..., dict]:
    def build(**overrides) -> dict:
        payload = {"name": "Form 1A", "grade": 9, "stream": "East", "academic_year": 2025}
        payload.update(overrides)
        return payload

    return build


@pytest.fixture
def student_payload() -> Callable[..., dict]:
    counter = iter(range(100, 1000))

    def build(**overrides) -> dict:
        n = next(counter)
        payload = {
            "admission_number": f"STU{n}",
            "name": f"Student {n}",
            "email": f"student{n}@school.edu",
            "dob": "2010-05-01",
            "parent_phone": "+254712345678",
        }
        payload.update(overrides)
        return payload

    return build


@pytest.fixture
def teacher_payload() -> Callable[..., dict]:
    counter = iter(range(100, 1000))

    def build(**overrides) -> dict:
        n = next(counter)
        payload = {
            "employee_id": f"EMP{n}",
            "name": f"Teacher {n}",
            "email": f"teacher{n}@school.edu",
            "phone": "+254700000001",
            "join_date": "2020-01-15",
        }
        payload.update(overrides)
        return payload

    return build


@pytest.fixture
def notification_payload() -> Callable[..., dict]:
    def build(**overrides) -> dict:
        payload = {
            "title": "Sports day",
            "message": "Sports day is on Friday.",
            "priority": "medium",
            "target_audience": ["student", "teacher"],
        }
        payload.update(overrides)
        return payload

    return build


@pytest.fixture
def past_date() -> str:
    return (date.today() - timedelta(days=10)).isoformat()


# ==================== LOG CAPTURE ====================


@pytest.fixture
def capture_logs() -> Generator[Callable[..., BufferingHandler], None, None]:
    """Attach a BufferingHandler to the named loggers.

    Application loggers do not propagate, so caplog cannot see them.
    """
    attached = []

    def attach(*names: str) -> BufferingHandler:
        handler = BufferingHandler()
        for name in names:
            logger = logging.getLogger(name)
            logger.addHandler(handler)
            attached.append((logger, handler))
        return handler

    yield attach

    for logger, handler in attached:
        logger.removeHandler(handler)


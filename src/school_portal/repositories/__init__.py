"""Validated CRUD repositories, one per entity, plus read-only reports."""

from .base import BaseRepository, ReadRepository
from .classes import ClassRepository
from .grades import GradeRepository
from .indiscipline import IndisciplineRepository
from .invites import InviteRepository
from .notifications import NotificationRepository
from .reports import RankingEntry, ReportRepository, SchoolOverview, StudentTermReport, SubjectResult
from .students import StudentRepository
from .subjects import SubjectRepository
from .teachers import TeacherRepository

__all__ = [
    "ReadRepository",
    "BaseRepository",
    "ClassRepository",
    "StudentRepository",
    "TeacherRepository",
    "SubjectRepository",
    "GradeRepository",
    "NotificationRepository",
    "IndisciplineRepository",
    "InviteRepository",
    "ReportRepository",
    "StudentTermReport",
    "SubjectResult",
    "RankingEntry",
    "SchoolOverview",
]

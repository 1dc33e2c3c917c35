"""Input validation for repository payloads."""

from .common import CreateSchema, PageParams, Schema, UpdateSchema, validate
from .schemas import (
    ClassCreate,
    ClassFilter,
    ClassUpdate,
    GradeBulkCreate,
    GradeCreate,
    GradeFilter,
    GradeUpdate,
    IndisciplineCreate,
    IndisciplineFilter,
    IndisciplineUpdate,
    InviteCreate,
    InviteFilter,
    InviteResend,
    NotificationCreate,
    NotificationFilter,
    NotificationUpdate,
    StudentCreate,
    StudentFilter,
    StudentLookup,
    StudentUpdate,
    SubjectCreate,
    SubjectFilter,
    SubjectUpdate,
    TeacherCreate,
    TeacherFilter,
    TeacherLookup,
    TeacherUpdate,
)

__all__ = [
    "validate",
    "Schema",
    "CreateSchema",
    "UpdateSchema",
    "PageParams",
    "ClassCreate",
    "ClassUpdate",
    "ClassFilter",
    "StudentCreate",
    "StudentUpdate",
    "StudentLookup",
    "StudentFilter",
    "TeacherCreate",
    "TeacherUpdate",
    "TeacherLookup",
    "TeacherFilter",
    "SubjectCreate",
    "SubjectUpdate",
    "SubjectFilter",
    "GradeCreate",
    "GradeBulkCreate",
    "GradeUpdate",
    "GradeFilter",
    "NotificationCreate",
    "NotificationUpdate",
    "NotificationFilter",
    "IndisciplineCreate",
    "IndisciplineUpdate",
    "IndisciplineFilter",
    "InviteCreate",
    "InviteFilter",
    "InviteResend",
]

"""Pydantic models for School Portal entities.

Rows are mapped with ``Model.model_validate(dict(row))``; attributes are
snake_case and ``model_dump(by_alias=True)`` gives the camelCase shape the
frontend consumes.
"""

import json
from datetime import date, datetime
from typing import Generic, List, Literal, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, computed_field, field_validator
from pydantic.alias_generators import to_camel

PersonStatus = Literal["active", "inactive"]
Priority = Literal["low", "medium", "high"]
Audience = Literal["admin", "teacher", "student"]
NotificationStatus = Literal["active", "expired", "deleted"]
Severity = Literal["minor", "moderate", "severe"]
IndisciplineStatus = Literal["active", "resolved", "deleted"]
InviteRole = Literal["student", "teacher"]
InviteStatus = Literal["pending", "accepted", "cancelled", "expired"]

# Lower bound of each band, highest first.
GRADE_SCALE = (
    (80, "A"),
    (75, "A-"),
    (70, "B+"),
    (65, "B"),
    (60, "B-"),
    (55, "C+"),
    (50, "C"),
    (45, "C-"),
    (40, "D+"),
    (35, "D"),
    (30, "D-"),
)


def letter_grade(score: float) -> str:
    for floor, letter in GRADE_SCALE:
        if score >= floor:
            return letter
    return "E"


class Entity(BaseModel):
    """Common shape: application-assigned id plus audit timestamps."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: str
    created_at: datetime
    updated_at: datetime


class Student(Entity):
    admission_number: str
    name: str
    email: str
    dob: date
    parent_phone: str
    status: PersonStatus = "active"
    class_name: Optional[str] = None


class SchoolClass(Entity):
    name: str
    grade: int
    stream: Optional[str] = None
    academic_year: int
    is_active: bool = True


class Teacher(Entity):
    employee_id: str
    name: str
    email: str
    phone: str
    join_date: date
    status: PersonStatus = "active"
    subjects: List[str] = []
    class_name: Optional[str] = None  # primary class

    @field_validator("subjects", mode="before")
    @classmethod
    def _split_subjects(cls, value):
        # group_concat() yields NULL or a comma-joined string
        if value is None:
            return []
        if isinstance(value, str):
            return sorted(s for s in value.split(",") if s)
        return value


class Subject(Entity):
    name: str
    description: Optional[str] = None


class Grade(Entity):
    student_id: str
    class_id: str
    subject_id: str
    score: float
    term: int
    year: int
    exam_name: str

    @computed_field
    @property
    def letter_grade(self) -> str:
        return letter_grade(self.score)


class Notification(Entity):
    title: str
    message: str
    priority: Priority = "medium"
    target_audience: List[Audience]
    status: NotificationStatus = "active"
    scheduled_for: Optional[datetime] = None
    expires_at: Optional[datetime] = None

    @field_validator("target_audience", mode="before")
    @classmethod
    def _decode_audience(cls, value):
        if isinstance(value, str):
            return json.loads(value)
        return value


class IndisciplineRecord(Entity):
    student_id: str
    reported_by: str
    incident_date: date
    description: str
    severity: Severity
    status: IndisciplineStatus = "active"
    action_taken: Optional[str] = None
    student_name: Optional[str] = None
    reporter_name: Optional[str] = None


class Invite(Entity):
    email: str
    role: InviteRole
    status: InviteStatus = "pending"
    invited_by: str
    token: Optional[str] = None
    expires_at: datetime
    accepted_at: Optional[datetime] = None
    accepted_by: Optional[str] = None


T = TypeVar("T")


class Page(BaseModel, Generic[T]):
    """One page of a filtered listing; ``total`` counts the whole match."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    items: List[T]
    total: int
    page: int
    limit: int

    @computed_field
    @property
    def pages(self) -> int:
        return (self.total + self.limit - 1) // self.limit if self.limit else 0

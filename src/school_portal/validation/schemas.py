"""Create, update, lookup and filter schemas for each entity."""

import re
from datetime import date
from typing import Annotated, List, Optional

from pydantic import AfterValidator, Field, ValidationInfo, field_validator, model_validator

from school_portal.database.models import (
    Audience,
    IndisciplineStatus,
    InviteRole,
    InviteStatus,
    NotificationStatus,
    PersonStatus,
    Priority,
    Severity,
)
from school_portal.database.sqlutils import utcnow

from .common import (
    CreateSchema,
    Email,
    Identifier,
    PageParams,
    Schema,
    Term,
    Timestamp,
    UpdateSchema,
    Year,
    bounded,
    ensure_ordered,
    text,
)

ADMISSION_NUMBER_PATTERN = r"^(STU|PAG)\d{3,}$"
PARENT_PHONE_PATTERN = r"^\+\d{10,}$"
TEACHER_PHONE_PATTERN = r"^\+?[1-9]\d{1,14}$"


def _pattern(regex: str, message: str) -> AfterValidator:
    compiled = re.compile(regex)

    def check(value: str) -> str:
        if not compiled.match(value):
            raise ValueError(message)
        return value

    return AfterValidator(check)


def _date_of_birth(value: date) -> date:
    if value >= utcnow().date():
        raise ValueError("invalid date of birth")
    return value


def _not_future(label: str) -> AfterValidator:
    def check(value: date) -> date:
        if value > utcnow().date():
            raise ValueError(f"{label} cannot be in the future")
        return value

    return AfterValidator(check)


def _audience(value: List[str]) -> List[str]:
    if not value:
        raise ValueError("target audience cannot be empty")
    return sorted(set(value))


AdmissionNumber = Annotated[str, _pattern(ADMISSION_NUMBER_PATTERN, "admission number must look like STU001")]
PersonName = Annotated[str, text(2, 100, "name")]
ParentPhone = Annotated[str, _pattern(PARENT_PHONE_PATTERN, "parent phone must be + followed by at least 10 digits")]
TeacherPhone = Annotated[str, _pattern(TEACHER_PHONE_PATTERN, "phone number must be valid")]
DateOfBirth = Annotated[date, AfterValidator(_date_of_birth)]
ClassName = Annotated[str, text(1, 50, "class name")]
GradeLevel = Annotated[int, bounded(1, 12, "grade")]
Stream = Annotated[str, text(1, 20, "stream")]
EmployeeId = Annotated[str, text(3, 20, "employee id")]
JoinDate = Annotated[date, _not_future("join date")]
SubjectName = Annotated[str, text(2, 100, "subject name")]
Score = Annotated[float, bounded(0, 100, "score")]
ExamName = Annotated[str, text(1, 100, "exam name")]
Title = Annotated[str, text(2, 200, "title")]
Message = Annotated[str, text(1, 2000, "message")]
TargetAudience = Annotated[List[Audience], AfterValidator(_audience)]
IncidentDate = Annotated[date, _not_future("incident date")]
Description = Annotated[str, text(1, 1000, "description")]
ActionTaken = Annotated[str, text(0, 1000, "action taken")]


# ==================== CLASSES ====================


class ClassCreate(CreateSchema):
    name: ClassName
    grade: GradeLevel
    stream: Optional[Stream] = None
    academic_year: Year
    is_active: bool = True


class ClassUpdate(UpdateSchema):
    nullable_fields = frozenset({"stream"})

    name: Optional[ClassName] = None
    grade: Optional[GradeLevel] = None
    stream: Optional[Stream] = None
    academic_year: Optional[Year] = None
    is_active: Optional[bool] = None


class ClassFilter(PageParams):
    grade: Optional[GradeLevel] = None
    academic_year: Optional[Year] = None
    is_active: Optional[bool] = None
    stream: Optional[str] = None
    search: Optional[str] = None


# ==================== STUDENTS ====================


class StudentCreate(CreateSchema):
    relation_fields = frozenset({"class_name"})

    admission_number: AdmissionNumber
    name: PersonName
    email: Email
    dob: DateOfBirth
    parent_phone: ParentPhone
    status: PersonStatus = "active"
    class_name: Optional[ClassName] = None


class StudentUpdate(UpdateSchema):
    relation_fields = frozenset({"class_name"})
    nullable_fields = frozenset({"class_name"})

    admission_number: Optional[AdmissionNumber] = None
    name: Optional[PersonName] = None
    email: Optional[Email] = None
    dob: Optional[DateOfBirth] = None
    parent_phone: Optional[ParentPhone] = None
    status: Optional[PersonStatus] = None
    class_name: Optional[ClassName] = None


class StudentLookup(Schema):
    id: Optional[str] = None
    admission_number: Optional[str] = None
    email: Optional[Email] = None

    @model_validator(mode="after")
    def _exactly_one(self):
        given = [name for name in ("id", "admission_number", "email") if getattr(self, name)]
        if len(given) != 1:
            raise ValueError("exactly one identifier required: id, admission number or email")
        return self


class StudentFilter(PageParams):
    status: Optional[PersonStatus] = None
    class_name: Optional[str] = None
    search: Optional[str] = None


# ==================== TEACHERS ====================


class TeacherCreate(CreateSchema):
    relation_fields = frozenset({"subjects", "class_name"})

    employee_id: EmployeeId
    name: PersonName
    email: Email
    phone: TeacherPhone
    join_date: JoinDate
    status: PersonStatus = "active"
    subjects: List[SubjectName] = Field(default_factory=list)
    class_name: Optional[ClassName] = None


class TeacherUpdate(UpdateSchema):
    relation_fields = frozenset({"subjects", "class_name"})
    nullable_fields = frozenset({"class_name"})

    employee_id: Optional[EmployeeId] = None
    name: Optional[PersonName] = None
    email: Optional[Email] = None
    phone: Optional[TeacherPhone] = None
    join_date: Optional[JoinDate] = None
    status: Optional[PersonStatus] = None
    subjects: Optional[List[SubjectName]] = None
    class_name: Optional[ClassName] = None


class TeacherLookup(Schema):
    id: Optional[str] = None
    employee_id: Optional[str] = None
    email: Optional[Email] = None

    @model_validator(mode="after")
    def _exactly_one(self):
        given = [name for name in ("id", "employee_id", "email") if getattr(self, name)]
        if len(given) != 1:
            raise ValueError("exactly one identifier required: id, employee id or email")
        return self


class TeacherFilter(PageParams):
    status: Optional[PersonStatus] = None
    subject: Optional[str] = None
    class_name: Optional[str] = None
    search: Optional[str] = None


# ==================== SUBJECTS ====================


class SubjectCreate(CreateSchema):
    name: SubjectName
    description: Optional[Annotated[str, text(0, 500, "description")]] = None


class SubjectUpdate(UpdateSchema):
    nullable_fields = frozenset({"description"})

    name: Optional[SubjectName] = None
    description: Optional[Annotated[str, text(0, 500, "description")]] = None


class SubjectFilter(PageParams):
    search: Optional[str] = None


# ==================== GRADES ====================


class GradeCreate(CreateSchema):
    student_id: Identifier
    class_id: Identifier
    subject_id: Identifier
    score: Score
    term: Term
    year: Year
    exam_name: ExamName


class GradeBulkCreate(Schema):
    grades: List[GradeCreate]

    @field_validator("grades")
    @classmethod
    def _check_size(cls, value: List[GradeCreate]) -> List[GradeCreate]:
        if not 1 <= len(value) <= 100:
            raise ValueError("between 1 and 100 grades may be recorded at once")
        return value


class GradeUpdate(UpdateSchema):
    subject_id: Optional[Identifier] = None
    score: Optional[Score] = None
    term: Optional[Term] = None
    year: Optional[Year] = None
    exam_name: Optional[ExamName] = None


class GradeFilter(PageParams):
    student_id: Optional[str] = None
    class_id: Optional[str] = None
    subject_id: Optional[str] = None
    term: Optional[Term] = None
    year: Optional[Year] = None
    exam_name: Optional[str] = None
    min_score: Optional[Score] = None
    max_score: Optional[Score] = None

    @field_validator("max_score")
    @classmethod
    def _check_score_range(cls, value: Optional[float], info: ValidationInfo) -> Optional[float]:
        low = info.data.get("min_score")
        if value is not None and low is not None and value < low:
            raise ValueError("max score must not be below min score")
        return value


# ==================== NOTIFICATIONS ====================


class NotificationCreate(CreateSchema):
    title: Title
    message: Message
    priority: Priority = "medium"
    target_audience: TargetAudience
    scheduled_for: Optional[Timestamp] = None
    expires_at: Optional[Timestamp] = None

    @field_validator("expires_at")
    @classmethod
    def _expires_after_schedule(cls, value, info: ValidationInfo):
        scheduled = info.data.get("scheduled_for")
        if value is not None and scheduled is not None and value <= scheduled:
            raise ValueError("expiry must be after the scheduled time")
        return value


class NotificationUpdate(UpdateSchema):
    nullable_fields = frozenset({"scheduled_for", "expires_at"})

    title: Optional[Title] = None
    message: Optional[Message] = None
    priority: Optional[Priority] = None
    target_audience: Optional[TargetAudience] = None
    status: Optional[NotificationStatus] = None
    scheduled_for: Optional[Timestamp] = None
    expires_at: Optional[Timestamp] = None

    @field_validator("status")
    @classmethod
    def _not_deleted(cls, value):
        if value == "deleted":
            raise ValueError("use delete to remove a notification")
        return value

    @field_validator("expires_at")
    @classmethod
    def _expires_after_schedule(cls, value, info: ValidationInfo):
        scheduled = info.data.get("scheduled_for")
        if value is not None and scheduled is not None and value <= scheduled:
            raise ValueError("expiry must be after the scheduled time")
        return value


class NotificationFilter(PageParams):
    status: Optional[NotificationStatus] = None
    priority: Optional[Priority] = None
    audience: Optional[Audience] = None
    search: Optional[str] = None
    created_from: Optional[date] = None
    created_to: Optional[date] = None

    @field_validator("created_to")
    @classmethod
    def _check_range(cls, value: Optional[date], info: ValidationInfo) -> Optional[date]:
        return ensure_ordered(info.data.get("created_from"), value)


# ==================== INDISCIPLINE ====================


class IndisciplineCreate(CreateSchema):
    """Student and reporter may each be given by id or by natural key."""

    relation_fields = frozenset({"student_id", "student_admission_number", "reported_by", "reporter_email"})

    student_id: Optional[Identifier] = None
    student_admission_number: Optional[AdmissionNumber] = None
    reported_by: Optional[Identifier] = None
    reporter_email: Optional[Email] = None
    incident_date: IncidentDate
    description: Description
    severity: Severity
    status: IndisciplineStatus = "active"
    action_taken: Optional[ActionTaken] = None

    @field_validator("status")
    @classmethod
    def _not_deleted(cls, value):
        if value == "deleted":
            raise ValueError("a new record cannot be deleted")
        return value

    @model_validator(mode="after")
    def _one_form_each(self):
        if (self.student_id is None) == (self.student_admission_number is None):
            raise ValueError("provide exactly one of student id or student admission number")
        if (self.reported_by is None) == (self.reporter_email is None):
            raise ValueError("provide exactly one of reporter id or reporter email")
        return self


class IndisciplineUpdate(UpdateSchema):
    nullable_fields = frozenset({"action_taken"})

    incident_date: Optional[IncidentDate] = None
    description: Optional[Description] = None
    severity: Optional[Severity] = None
    status: Optional[IndisciplineStatus] = None
    action_taken: Optional[ActionTaken] = None

    @field_validator("status")
    @classmethod
    def _not_deleted(cls, value):
        if value == "deleted":
            raise ValueError("use delete to remove a record")
        return value


class IndisciplineFilter(PageParams):
    student_id: Optional[str] = None
    reported_by: Optional[str] = None
    severity: Optional[Severity] = None
    status: Optional[IndisciplineStatus] = None
    date_from: Optional[date] = None
    date_to: Optional[date] = None

    @field_validator("date_to")
    @classmethod
    def _check_range(cls, value: Optional[date], info: ValidationInfo) -> Optional[date]:
        return ensure_ordered(info.data.get("date_from"), value)


# ==================== INVITES ====================


class InviteCreate(Schema):
    email: Email
    role: InviteRole
    invited_by: Annotated[str, text(1, 100, "inviter")]


class InviteFilter(PageParams):
    email: Optional[Email] = None
    role: Optional[InviteRole] = None
    status: Optional[InviteStatus] = None


class InviteResend(Schema):
    email: Email
    invited_by: Annotated[str, text(1, 100, "inviter")]

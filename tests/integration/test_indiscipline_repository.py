"""Integration tests for indiscipline records."""

import uuid
from datetime import date, timedelta

import pytest

from school_portal.errors import NotFoundError, ValidationError

pytestmark = pytest.mark.integration


def days_ago(days: int) -> str:
    return (date.today() - timedelta(days=days)).isoformat()


@pytest.fixture
def people(students, teachers, student_payload, teacher_payload):
    student = students.create(student_payload(admission_number="STU042", name="Amina Otieno"))
    other = students.create(student_payload(name="Brian Kamau"))
    teacher = teachers.create(teacher_payload(name="Grace Mwangi", email="grace@school.edu"))
    return {"student": student, "other": other, "teacher": teacher}


@pytest.fixture
def record_payload(people):
    def build(**overrides) -> dict:
        payload = {
            "student_id": people["student"].id,
            "reported_by": people["teacher"].id,
            "incident_date": days_ago(3),
            "description": "Left class without permission",
            "severity": "moderate",
        }
        payload.update(overrides)
        return payload

    return build


class TestIndisciplineCreate:
    def test_create_by_ids(self, indiscipline, people, record_payload):
        record = indiscipline.create(record_payload())

        assert record.student_id == people["student"].id
        assert record.reported_by == people["teacher"].id
        assert record.student_name == "Amina Otieno"
        assert record.reporter_name == "Grace Mwangi"
        assert record.status == "active"

    def test_create_by_natural_keys(self, indiscipline, people):
        record = indiscipline.create(
            {
                "studentAdmissionNumber": "STU042",
                "reporterEmail": "Grace@School.edu",
                "incidentDate": days_ago(1),
                "description": "Fighting",
                "severity": "severe",
                "actionTaken": "Parents called",
            }
        )

        assert record.student_id == people["student"].id
        assert record.reported_by == people["teacher"].id
        assert record.action_taken == "Parents called"

    def test_unknown_student(self, indiscipline, record_payload):
        with pytest.raises(NotFoundError) as exc_info:
            indiscipline.create(record_payload(student_id=str(uuid.uuid4())))
        assert exc_info.value.code == "STUDENT_NOT_FOUND"

    def test_unknown_reporter_email(self, indiscipline, record_payload):
        payload = record_payload(reporter_email="ghost@school.edu")
        del payload["reported_by"]
        with pytest.raises(NotFoundError) as exc_info:
            indiscipline.create(payload)
        assert exc_info.value.code == "TEACHER_NOT_FOUND"
        assert indiscipline.get_all().total == 0

    def test_both_student_forms(self, indiscipline, record_payload):
        with pytest.raises(ValidationError, match="exactly one of student id or student admission number"):
            indiscipline.create(record_payload(student_admission_number="STU042"))

    def test_future_incident(self, indiscipline, record_payload):
        future = (date.today() + timedelta(days=2)).isoformat()
        with pytest.raises(ValidationError) as exc_info:
            indiscipline.create(record_payload(incident_date=future, severity="catastrophic"))
        assert set(exc_info.value.fields) == {"incident_date", "severity"}


class TestIndisciplineLifecycle:
    def test_resolve(self, indiscipline, record_payload):
        record = indiscipline.create(record_payload())
        resolved = indiscipline.update(record.id, {"status": "resolved", "action_taken": "Detention"})

        assert resolved.status == "resolved"
        assert resolved.action_taken == "Detention"

    def test_soft_delete(self, indiscipline, people, record_payload):
        record = indiscipline.create(record_payload())
        indiscipline.delete(record.id)

        with pytest.raises(NotFoundError) as exc_info:
            indiscipline.get_by_id(record.id)
        assert exc_info.value.code == "INDISCIPLINE_NOT_FOUND"
        assert indiscipline.get_by_student(people["student"].id) == []
        assert indiscipline.get_all({"status": "deleted"}).total == 1

    def test_get_by_student(self, indiscipline, people, record_payload):
        older = indiscipline.create(record_payload(incident_date=days_ago(20)))
        newer = indiscipline.create(record_payload(incident_date=days_ago(2)))
        indiscipline.create(record_payload(student_id=people["other"].id))

        assert [r.id for r in indiscipline.get_by_student(people["student"].id)] == [newer.id, older.id]

    def test_filters(self, indiscipline, people, record_payload):
        indiscipline.create(record_payload(incident_date=days_ago(30), severity="minor"))
        indiscipline.create(record_payload(incident_date=days_ago(5), severity="severe"))
        indiscipline.create(record_payload(incident_date=days_ago(1), severity="severe"))

        assert indiscipline.get_all({"date_from": days_ago(7)}).total == 2
        assert indiscipline.get_all({"date_from": days_ago(31), "date_to": days_ago(6)}).total == 1
        assert indiscipline.get_all({"severity": "severe"}).total == 2
        assert indiscipline.get_all({"reportedBy": people["teacher"].id}).total == 3

    def test_date_range_must_be_ordered(self, indiscipline):
        with pytest.raises(ValidationError) as exc_info:
            indiscipline.get_all({"date_from": days_ago(1), "date_to": days_ago(5)})
        assert exc_info.value.errors == [{"field": "date_to", "message": "end date must not precede start date"}]

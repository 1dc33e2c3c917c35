"""Integration tests for the student and teacher repositories."""

from datetime import date, timedelta

import pytest

from school_portal.errors import DependencyError, DuplicateError, NotFoundError, ValidationError

pytestmark = pytest.mark.integration


@pytest.fixture
def form_1a(classes, class_payload):
    return classes.create(class_payload())


class TestStudentRepository:
    def test_create_with_class(self, students, form_1a, student_payload):
        student = students.create(student_payload(name="Amina Otieno", class_name="Form 1A"))

        assert student.name == "Amina Otieno"
        assert student.class_name == "Form 1A"
        assert student.status == "active"
        assert student.dob == date(2010, 5, 1)

    def test_email_normalized(self, students, student_payload):
        student = students.create(student_payload(email="  Amina.Otieno@School.EDU "))
        assert student.email == "amina.otieno@school.edu"

    def test_unknown_class_rolls_back(self, students, student_payload):
        with pytest.raises(NotFoundError) as exc_info:
            students.create(student_payload(admission_number="STU900", class_name="Form 9Z"))

        assert exc_info.value.code == "CLASS_NOT_FOUND"
        with pytest.raises(NotFoundError):
            students.get_by_identifier(admission_number="STU900")

    def test_duplicate_email(self, students, student_payload):
        students.create(student_payload(email="dup@school.edu"))
        with pytest.raises(DuplicateError) as exc_info:
            students.create(student_payload(email="dup@school.edu"))
        assert exc_info.value.code == "DUPLICATE_STUDENT"
        assert exc_info.value.fields == ["email"]

    def test_duplicate_admission_number(self, students, student_payload):
        students.create(student_payload(admission_number="STU001"))
        with pytest.raises(DuplicateError) as exc_info:
            students.create(student_payload(admission_number="STU001"))
        assert exc_info.value.fields == ["admission_number"]

    def test_invalid_payload_reports_every_field(self, students, student_payload):
        tomorrow = (date.today() + timedelta(days=2)).isoformat()
        with pytest.raises(ValidationError) as exc_info:
            students.create(student_payload(admission_number="X1", dob=tomorrow, parent_phone="0712"))

        assert set(exc_info.value.fields) == {"admission_number", "dob", "parent_phone"}
        assert students.get_all().total == 0

    def test_camel_case_payload(self, students):
        student = students.create(
            {
                "admissionNumber": "STU321",
                "name": "Brian Kamau",
                "email": "brian@school.edu",
                "dob": "2011-02-03",
                "parentPhone": "+254711111111",
            }
        )
        assert student.admission_number == "STU321"
        assert student.model_dump(by_alias=True)["parentPhone"] == "+254711111111"

    def test_get_by_identifier(self, students, student_payload):
        created = students.create(student_payload(admission_number="STU555", email="s555@school.edu"))

        assert students.get_by_identifier(id=created.id) == created
        assert students.get_by_identifier(admission_number="STU555") == created
        assert students.get_by_identifier(email="S555@school.edu") == created

    def test_get_by_identifier_requires_exactly_one(self, students):
        with pytest.raises(ValidationError, match="exactly one identifier"):
            students.get_by_identifier(admission_number="STU555", email="s555@school.edu")
        with pytest.raises(ValidationError, match="exactly one identifier"):
            students.get_by_identifier()

    def test_change_and_clear_class(self, students, classes, form_1a, class_payload, student_payload):
        classes.create(class_payload(name="Form 1B"))
        student = students.create(student_payload(class_name="Form 1A"))

        moved = students.update(student.id, {"class_name": "Form 1B"})
        assert moved.class_name == "Form 1B"
        assert classes.list_students(form_1a.id) == []

        cleared = students.update(student.id, {"className": None})
        assert cleared.class_name is None

    def test_update_rejects_null_for_required_field(self, students, student_payload):
        student = students.create(student_payload())
        with pytest.raises(ValidationError) as exc_info:
            students.update(student.id, {"name": None})
        assert exc_info.value.fields == ["name"]

    def test_delete_blocked_by_grades(self, students, subjects, grades, form_1a, student_payload):
        student = students.create(student_payload(class_name="Form 1A"))
        subject = subjects.create({"name": "Mathematics"})
        grades.create(
            {
                "student_id": student.id,
                "class_id": form_1a.id,
                "subject_id": subject.id,
                "score": 70,
                "term": 1,
                "year": 2025,
                "exam_name": "Midterm",
            }
        )

        with pytest.raises(DependencyError) as exc_info:
            students.delete(student.id)
        assert exc_info.value.code == "STUDENT_HAS_RECORDS"
        assert exc_info.value.details == {"grades": 1, "indiscipline": 0}

    def test_delete_removes_membership(self, students, classes, form_1a, student_payload):
        student = students.create(student_payload(class_name="Form 1A"))
        students.delete(student.id)

        with pytest.raises(NotFoundError):
            students.get_by_id(student.id)
        classes.delete(form_1a.id)

    def test_filters(self, students, form_1a, student_payload):
        students.create(student_payload(name="Amina Otieno", class_name="Form 1A"))
        students.create(student_payload(name="Brian Kamau", status="inactive"))
        students.create(student_payload(name="Carol Wanjiru", class_name="Form 1A"))

        assert [s.name for s in students.get_all({"class_name": "Form 1A"}).items] == [
            "Amina Otieno",
            "Carol Wanjiru",
        ]
        assert [s.name for s in students.get_all({"status": "inactive"}).items] == ["Brian Kamau"]
        assert [s.name for s in students.get_all({"search": "wanj"}).items] == ["Carol Wanjiru"]


class TestTeacherRepository:
    @pytest.fixture
    def catalog(self, subjects):
        return [subjects.create({"name": name}) for name in ("Mathematics", "Physics", "English")]

    def test_create_with_subjects_and_class(self, teachers, catalog, form_1a, teacher_payload):
        teacher = teachers.create(teacher_payload(subjects=["Physics", "Mathematics"], class_name="Form 1A"))

        assert teacher.subjects == ["Mathematics", "Physics"]
        assert teacher.class_name == "Form 1A"
        assert teachers.get_by_id(teacher.id) == teacher

    def test_unknown_subjects(self, teachers, catalog, teacher_payload):
        with pytest.raises(NotFoundError) as exc_info:
            teachers.create(teacher_payload(subjects=["Mathematics", "Latin", "Greek"]))

        assert exc_info.value.code == "SUBJECTS_NOT_FOUND"
        assert "Latin, Greek" in exc_info.value.message
        assert teachers.get_all().total == 0

    def test_replace_subjects(self, teachers, catalog, teacher_payload):
        teacher = teachers.create(teacher_payload(subjects=["Mathematics"]))

        updated = teachers.update(teacher.id, {"subjects": ["English"]})
        assert updated.subjects == ["English"]

        cleared = teachers.update(teacher.id, {"subjects": []})
        assert cleared.subjects == []

    def test_join_date_in_future(self, teachers, teacher_payload):
        tomorrow = (date.today() + timedelta(days=2)).isoformat()
        with pytest.raises(ValidationError) as exc_info:
            teachers.create(teacher_payload(join_date=tomorrow))
        assert exc_info.value.errors == [{"field": "join_date", "message": "join date cannot be in the future"}]

    def test_duplicate_employee_id(self, teachers, teacher_payload):
        teachers.create(teacher_payload(employee_id="EMP001"))
        with pytest.raises(DuplicateError) as exc_info:
            teachers.create(teacher_payload(employee_id="EMP001"))
        assert exc_info.value.code == "DUPLICATE_TEACHER"

    def test_get_by_identifier(self, teachers, teacher_payload):
        teacher = teachers.create(teacher_payload(employee_id="EMP777", email="t777@school.edu"))
        assert teachers.get_by_identifier(employee_id="EMP777").id == teacher.id
        assert teachers.get_by_identifier(email="t777@school.edu").id == teacher.id
        with pytest.raises(ValidationError):
            teachers.get_by_identifier(id=teacher.id, employee_id="EMP777")

    def test_class_assignment(self, teachers, classes, form_1a, class_payload, teacher_payload):
        form_2a = classes.create(class_payload(name="Form 2A", grade=10))
        teacher = teachers.create(teacher_payload(email="mentor@school.edu", class_name="Form 1A"))
        teachers.assign_class(teacher.id, form_2a.id)

        assert teachers.is_assigned_to_class("Mentor@school.edu", "Form 1A")
        assert teachers.is_assigned_to_class("mentor@school.edu", "Form 2A")
        assert not teachers.is_assigned_to_class("mentor@school.edu", "Form 3A")
        assert teachers.get_by_id(teacher.id).class_name == "Form 1A"

        teachers.update(teacher.id, {"status": "inactive"})
        assert not teachers.is_assigned_to_class("mentor@school.edu", "Form 1A")

    def test_primary_class_change(self, teachers, classes, form_1a, class_payload, teacher_payload):
        classes.create(class_payload(name="Form 2A", grade=10))
        teacher = teachers.create(teacher_payload(class_name="Form 1A"))

        assert teachers.update(teacher.id, {"class_name": "Form 2A"}).class_name == "Form 2A"
        assert teachers.update(teacher.id, {"class_name": None}).class_name is None

    def test_filters(self, teachers, catalog, form_1a, teacher_payload):
        teachers.create(teacher_payload(name="Alice Njeri", subjects=["Mathematics"], class_name="Form 1A"))
        teachers.create(teacher_payload(name="Bob Mutua", subjects=["English"]))

        assert [t.name for t in teachers.get_all({"subject": "mathematics"}).items] == ["Alice Njeri"]
        assert [t.name for t in teachers.get_all({"className": "Form 1A"}).items] == ["Alice Njeri"]
        assert teachers.get_all({"search": "mutua"}).total == 1

    def test_delete_blocked_by_reports(self, teachers, students, indiscipline, teacher_payload, student_payload):
        teacher = teachers.create(teacher_payload())
        student = students.create(student_payload())
        indiscipline.create(
            {
                "student_id": student.id,
                "reported_by": teacher.id,
                "incident_date": (date.today() - timedelta(days=1)).isoformat(),
                "description": "Late to class",
                "severity": "minor",
            }
        )

        with pytest.raises(DependencyError) as exc_info:
            teachers.delete(teacher.id)
        assert exc_info.value.code == "TEACHER_HAS_RECORDS"

    def test_delete_removes_links(self, teachers, subjects, catalog, form_1a, teacher_payload):
        teacher = teachers.create(teacher_payload(subjects=["Physics"], class_name="Form 1A"))
        teachers.delete(teacher.id)

        with pytest.raises(NotFoundError):
            teachers.get_by_id(teacher.id)
        subjects.delete(catalog[1].id)

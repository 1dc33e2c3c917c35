"""Student repository."""

import sqlite3
from typing import Any

from school_portal.database import Student
from school_portal.database.sqlutils import FilterBuilder, now_timestamp
from school_portal.errors import DependencyError, NotFoundError
from school_portal.validation import StudentCreate, StudentFilter, StudentLookup, StudentUpdate, validate

from .base import BaseRepository

# Current class: the most recent enrolment.
CLASS_NAME_SQL = """
    (SELECT c.name FROM class_students cs
     JOIN classes c ON c.id = cs.class_id
     WHERE cs.student_id = students.id
     ORDER BY cs.created_at DESC LIMIT 1)
"""


def resolve_class_id(conn: sqlite3.Connection, class_name: str) -> str:
    """Id of the active class called ``class_name`` in the latest academic year."""
    row = conn.execute(
        "SELECT id FROM classes WHERE name = ? AND is_active = 1 ORDER BY academic_year DESC LIMIT 1",
        (class_name,),
    ).fetchone()
    if row is None:
        raise NotFoundError("class", class_name)
    return row["id"]


class StudentRepository(BaseRepository[Student]):
    """Students, with class membership kept in ``class_students``."""

    table = "students"
    entity = "student"
    model = Student
    create_schema = StudentCreate
    update_schema = StudentUpdate
    filter_schema = StudentFilter
    order_by = "students.name"

    def _select_sql(self) -> str:
        return f"SELECT students.*, {CLASS_NAME_SQL} AS class_name FROM students"

    def _apply_filters(self, where: FilterBuilder, params: StudentFilter) -> None:
        where.equals("students.status", params.status)
        if params.class_name:
            where.raw(
                "EXISTS (SELECT 1 FROM class_students cs JOIN classes c ON c.id = cs.class_id "
                "WHERE cs.student_id = students.id AND c.name = ?)",
                params.class_name,
            )
        where.contains(["students.name", "students.email", "students.admission_number"], params.search)

    def _link_class(self, conn: sqlite3.Connection, student_id: str, class_name: str) -> None:
        class_id = resolve_class_id(conn, class_name)
        conn.execute(
            "INSERT OR IGNORE INTO class_students (class_id, student_id, created_at) VALUES (?, ?, ?)",
            (class_id, student_id, now_timestamp()),
        )

    def _after_create(self, conn, entity_id, schema: StudentCreate) -> None:
        if schema.class_name:
            self._link_class(conn, entity_id, schema.class_name)

    def _after_update(self, conn, entity_id, schema: StudentUpdate) -> None:
        relations = schema.relations()
        if "class_name" in relations:
            conn.execute("DELETE FROM class_students WHERE student_id = ?", (entity_id,))
            if relations["class_name"]:
                self._link_class(conn, entity_id, relations["class_name"])

    def _check_dependencies(self, conn, entity_id) -> None:
        grades = self._count(conn, "SELECT COUNT(*) FROM grades WHERE student_id = ?", entity_id)
        incidents = self._count(conn, "SELECT COUNT(*) FROM indiscipline WHERE student_id = ?", entity_id)
        if grades or incidents:
            raise DependencyError(
                f"Cannot delete student with {grades} grade(s) and {incidents} indiscipline record(s): {entity_id}",
                code="STUDENT_HAS_RECORDS",
                details={"grades": grades, "indiscipline": incidents},
            )

    def _delete_links(self, conn, entity_id) -> None:
        conn.execute("DELETE FROM class_students WHERE student_id = ?", (entity_id,))

    def get_by_identifier(self, **identifier: Any) -> Student:
        """Look a student up by exactly one of ``id``, ``admission_number`` or ``email``."""
        lookup = validate(StudentLookup, identifier)
        column, value = next(
            (name, getattr(lookup, name))
            for name in ("id", "admission_number", "email")
            if getattr(lookup, name)
        )
        with self._store_errors("read"):
            with self.db.connection() as conn:
                row = self._fetch_by(conn, column, value)
        if row is None:
            raise NotFoundError(self.entity, value)
        return self._to_model(row)

"""Teacher repository.

Subjects are stored in ``teacher_subjects`` and the teacher's primary class
in ``class_teachers`` (``is_primary = 1``); both are given by name.
"""

import sqlite3
from typing import Any, List

from school_portal.database import Teacher
from school_portal.database.sqlutils import FilterBuilder
from school_portal.errors import DependencyError, NotFoundError
from school_portal.validation import TeacherCreate, TeacherFilter, TeacherLookup, TeacherUpdate, validate

from .base import BaseRepository
from .students import resolve_class_id

SUBJECTS_SQL = """
    (SELECT group_concat(s.name, ',') FROM teacher_subjects ts
     JOIN subjects s ON s.id = ts.subject_id
     WHERE ts.teacher_id = teachers.id)
"""

PRIMARY_CLASS_SQL = """
    (SELECT c.name FROM class_teachers ct
     JOIN classes c ON c.id = ct.class_id
     WHERE ct.teacher_id = teachers.id AND ct.is_primary = 1
     LIMIT 1)
"""


class TeacherRepository(BaseRepository[Teacher]):
    table = "teachers"
    entity = "teacher"
    model = Teacher
    create_schema = TeacherCreate
    update_schema = TeacherUpdate
    filter_schema = TeacherFilter
    order_by = "teachers.name"

    def _select_sql(self) -> str:
        return f"SELECT teachers.*, {SUBJECTS_SQL} AS subjects, {PRIMARY_CLASS_SQL} AS class_name FROM teachers"

    def _apply_filters(self, where: FilterBuilder, params: TeacherFilter) -> None:
        where.equals("teachers.status", params.status)
        if params.subject:
            where.raw(
                "EXISTS (SELECT 1 FROM teacher_subjects ts JOIN subjects s ON s.id = ts.subject_id "
                "WHERE ts.teacher_id = teachers.id AND LOWER(s.name) = LOWER(?))",
                params.subject,
            )
        if params.class_name:
            where.raw(
                "EXISTS (SELECT 1 FROM class_teachers ct JOIN classes c ON c.id = ct.class_id "
                "WHERE ct.teacher_id = teachers.id AND c.name = ?)",
                params.class_name,
            )
        where.contains(["teachers.name", "teachers.email", "teachers.employee_id"], params.search)

    def _subject_ids(self, conn: sqlite3.Connection, names: List[str]) -> List[str]:
        if not names:
            return []
        marks = ", ".join("?" for _ in names)
        rows = conn.execute(f"SELECT id, name FROM subjects WHERE name IN ({marks})", names).fetchall()
        found = {row["name"]: row["id"] for row in rows}
        missing = [name for name in names if name not in found]
        if missing:
            raise NotFoundError("subject", ", ".join(missing), code="SUBJECTS_NOT_FOUND")
        return [found[name] for name in dict.fromkeys(names)]

    def _set_subjects(self, conn: sqlite3.Connection, teacher_id: str, names: List[str]) -> None:
        subject_ids = self._subject_ids(conn, names)
        conn.execute("DELETE FROM teacher_subjects WHERE teacher_id = ?", (teacher_id,))
        conn.executemany(
            "INSERT INTO teacher_subjects (teacher_id, subject_id) VALUES (?, ?)",
            [(teacher_id, subject_id) for subject_id in subject_ids],
        )

    def _set_primary_class(self, conn: sqlite3.Connection, teacher_id: str, class_name: Any) -> None:
        conn.execute("DELETE FROM class_teachers WHERE teacher_id = ? AND is_primary = 1", (teacher_id,))
        if class_name:
            class_id = resolve_class_id(conn, class_name)
            conn.execute(
                """
                INSERT INTO class_teachers (class_id, teacher_id, is_primary) VALUES (?, ?, 1)
                ON CONFLICT(class_id, teacher_id) DO UPDATE SET is_primary = 1
                """,
                (class_id, teacher_id),
            )

    def _after_create(self, conn, entity_id, schema: TeacherCreate) -> None:
        if schema.subjects:
            self._set_subjects(conn, entity_id, schema.subjects)
        if schema.class_name:
            self._set_primary_class(conn, entity_id, schema.class_name)

    def _after_update(self, conn, entity_id, schema: TeacherUpdate) -> None:
        relations = schema.relations()
        if "subjects" in relations:
            self._set_subjects(conn, entity_id, relations["subjects"])
        if "class_name" in relations:
            self._set_primary_class(conn, entity_id, relations["class_name"])

    def _check_dependencies(self, conn, entity_id) -> None:
        reports = self._count(conn, "SELECT COUNT(*) FROM indiscipline WHERE reported_by = ?", entity_id)
        if reports:
            raise DependencyError(
                f"Cannot delete teacher who reported {reports} indiscipline record(s): {entity_id}",
                code="TEACHER_HAS_RECORDS",
                details={"indiscipline": reports},
            )

    def _delete_links(self, conn, entity_id) -> None:
        conn.execute("DELETE FROM teacher_subjects WHERE teacher_id = ?", (entity_id,))
        conn.execute("DELETE FROM class_teachers WHERE teacher_id = ?", (entity_id,))

    def get_by_identifier(self, **identifier: Any) -> Teacher:
        """Look a teacher up by exactly one of ``id``, ``employee_id`` or ``email``."""
        lookup = validate(TeacherLookup, identifier)
        column, value = next(
            (name, getattr(lookup, name))
            for name in ("id", "employee_id", "email")
            if getattr(lookup, name)
        )
        with self._store_errors("read"):
            with self.db.connection() as conn:
                row = self._fetch_by(conn, column, value)
        if row is None:
            raise NotFoundError(self.entity, value)
        return self._to_model(row)

    def assign_class(self, teacher_id: str, class_id: str) -> None:
        """Link a teacher to an additional (non-primary) class."""
        with self._store_errors("update"):
            with self.db.transaction() as conn:
                self._require(conn, teacher_id)
                if conn.execute("SELECT 1 FROM classes WHERE id = ?", (class_id,)).fetchone() is None:
                    raise NotFoundError("class", class_id)
                conn.execute(
                    "INSERT OR IGNORE INTO class_teachers (class_id, teacher_id, is_primary) VALUES (?, ?, 0)",
                    (class_id, teacher_id),
                )
        self._log_write("assigned to class", teacher_id, class_id=class_id)

    def is_assigned_to_class(self, email: str, class_name: str) -> bool:
        with self._store_errors("read"):
            with self.db.connection() as conn:
                row = conn.execute(
                    """
                    SELECT 1 FROM class_teachers ct
                    JOIN teachers t ON t.id = ct.teacher_id
                    JOIN classes c ON c.id = ct.class_id
                    WHERE LOWER(t.email) = LOWER(?) AND c.name = ? AND t.status = 'active'
                    LIMIT 1
                    """,
                    (email, class_name),
                ).fetchone()
        return row is not None

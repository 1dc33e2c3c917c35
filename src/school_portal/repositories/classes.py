"""Class repository and class membership."""

from typing import List

from school_portal.database import SchoolClass, Student, Subject
from school_portal.database.sqlutils import FilterBuilder, now_timestamp
from school_portal.errors import DependencyError, NotFoundError
from school_portal.validation import ClassCreate, ClassFilter, ClassUpdate

from .base import BaseRepository, logger
from .students import StudentRepository


class ClassRepository(BaseRepository[SchoolClass]):
    """Classes are unique per (name, academic year) and hard-deleted.

    A class holding students cannot be deleted; teacher and subject links
    are removed with it.
    """

    table = "classes"
    entity = "class"
    model = SchoolClass
    create_schema = ClassCreate
    update_schema = ClassUpdate
    filter_schema = ClassFilter
    order_by = "classes.grade, classes.name"

    def _apply_filters(self, where: FilterBuilder, params: ClassFilter) -> None:
        where.equals("classes.grade", params.grade)
        where.equals("classes.academic_year", params.academic_year)
        where.equals("classes.is_active", params.is_active)
        where.equals("classes.stream", params.stream)
        where.contains(["classes.name"], params.search)

    def _check_dependencies(self, conn, entity_id) -> None:
        students = self._count(conn, "SELECT COUNT(*) FROM class_students WHERE class_id = ?", entity_id)
        if students:
            raise DependencyError(
                f"Cannot delete class that has students assigned to it: {entity_id}",
                code="CLASS_HAS_STUDENTS",
                details={"students": students},
            )
        grades = self._count(conn, "SELECT COUNT(*) FROM grades WHERE class_id = ?", entity_id)
        if grades:
            raise DependencyError(
                f"Cannot delete class with recorded grades: {entity_id}",
                code="CLASS_HAS_GRADES",
                details={"grades": grades},
            )

    def _delete_links(self, conn, entity_id) -> None:
        conn.execute("DELETE FROM class_teachers WHERE class_id = ?", (entity_id,))
        conn.execute("DELETE FROM class_subjects WHERE class_id = ?", (entity_id,))

    # ==================== MEMBERSHIP ====================

    def add_student(self, class_id: str, student_id: str) -> None:
        with self._store_errors("update"):
            with self.db.transaction() as conn:
                self._require(conn, class_id)
                if conn.execute("SELECT 1 FROM students WHERE id = ?", (student_id,)).fetchone() is None:
                    raise NotFoundError("student", student_id)
                conn.execute(
                    "INSERT OR IGNORE INTO class_students (class_id, student_id, created_at) VALUES (?, ?, ?)",
                    (class_id, student_id, now_timestamp()),
                )
        logger.info(
            "Student added to class",
            extra={"extra_data": {"class_id": class_id, "student_id": student_id}},
        )

    def remove_student(self, class_id: str, student_id: str) -> None:
        with self._store_errors("update"):
            with self.db.transaction() as conn:
                self._require(conn, class_id)
                cursor = conn.execute(
                    "DELETE FROM class_students WHERE class_id = ? AND student_id = ?",
                    (class_id, student_id),
                )
                if cursor.rowcount == 0:
                    raise NotFoundError("student", student_id, code="STUDENT_NOT_IN_CLASS")
        logger.info(
            "Student removed from class",
            extra={"extra_data": {"class_id": class_id, "student_id": student_id}},
        )

    def list_students(self, class_id: str) -> List[Student]:
        students = StudentRepository(self.db)
        with self._store_errors("read"):
            with self.db.connection() as conn:
                self._require(conn, class_id)
                rows = conn.execute(
                    f"{students._select_sql()} "
                    "WHERE students.id IN (SELECT student_id FROM class_students WHERE class_id = ?) "
                    "ORDER BY students.name, students.id",
                    (class_id,),
                ).fetchall()
        return [students._to_model(row) for row in rows]

    def add_subject(self, class_id: str, subject_id: str) -> None:
        with self._store_errors("update"):
            with self.db.transaction() as conn:
                self._require(conn, class_id)
                if conn.execute("SELECT 1 FROM subjects WHERE id = ?", (subject_id,)).fetchone() is None:
                    raise NotFoundError("subject", subject_id)
                conn.execute(
                    "INSERT OR IGNORE INTO class_subjects (class_id, subject_id) VALUES (?, ?)",
                    (class_id, subject_id),
                )

    def list_subjects(self, class_id: str) -> List[Subject]:
        with self._store_errors("read"):
            with self.db.connection() as conn:
                self._require(conn, class_id)
                rows = conn.execute(
                    "SELECT s.* FROM subjects s JOIN class_subjects cs ON cs.subject_id = s.id "
                    "WHERE cs.class_id = ? ORDER BY s.name, s.id",
                    (class_id,),
                ).fetchall()
        return [Subject.model_validate(dict(row)) for row in rows]

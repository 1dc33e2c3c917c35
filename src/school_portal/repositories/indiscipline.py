"""Indiscipline record repository.

Records are soft-deleted. The student may be given by id or admission
number and the reporting teacher by id or email; both are resolved to ids
before insert.
"""

import sqlite3
from typing import List

from school_portal.database import IndisciplineRecord
from school_portal.database.sqlutils import FilterBuilder
from school_portal.errors import NotFoundError
from school_portal.validation import IndisciplineCreate, IndisciplineFilter, IndisciplineUpdate
from school_portal.validation.common import Columns

from .base import BaseRepository


class IndisciplineRepository(BaseRepository[IndisciplineRecord]):
    table = "indiscipline"
    entity = "indiscipline"
    model = IndisciplineRecord
    create_schema = IndisciplineCreate
    update_schema = IndisciplineUpdate
    filter_schema = IndisciplineFilter
    soft_delete_status = "deleted"
    order_by = "indiscipline.incident_date DESC"

    def _select_sql(self) -> str:
        return (
            "SELECT indiscipline.*, "
            "(SELECT name FROM students WHERE students.id = indiscipline.student_id) AS student_name, "
            "(SELECT name FROM teachers WHERE teachers.id = indiscipline.reported_by) AS reporter_name "
            "FROM indiscipline"
        )

    def _apply_filters(self, where: FilterBuilder, params: IndisciplineFilter) -> None:
        where.equals("indiscipline.student_id", params.student_id)
        where.equals("indiscipline.reported_by", params.reported_by)
        where.equals("indiscipline.severity", params.severity)
        where.equals("indiscipline.status", params.status)
        where.range("indiscipline.incident_date", params.date_from, params.date_to)

    def _resolve(self, conn: sqlite3.Connection, table: str, entity: str, column: str, value: str) -> str:
        row = conn.execute(f"SELECT id FROM {table} WHERE {column} = ?", (value,)).fetchone()
        if row is None:
            raise NotFoundError(entity, value)
        return row["id"]

    def _insert_columns(self, conn: sqlite3.Connection, schema: IndisciplineCreate) -> Columns:
        if schema.student_id:
            student_id = self._resolve(conn, "students", "student", "id", schema.student_id)
        else:
            student_id = self._resolve(
                conn, "students", "student", "admission_number", schema.student_admission_number
            )
        if schema.reported_by:
            reporter_id = self._resolve(conn, "teachers", "teacher", "id", schema.reported_by)
        else:
            reporter_id = self._resolve(conn, "teachers", "teacher", "email", schema.reporter_email)
        return [("student_id", student_id), ("reported_by", reporter_id)] + schema.columns()

    def get_by_student(self, student_id: str) -> List[IndisciplineRecord]:
        """Visible records for one student, most recent incident first."""
        return self.list_where("student_id", student_id)

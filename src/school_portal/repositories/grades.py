"""Grade repository.

Student, class and subject references are checked by the store's foreign
keys; a dangling reference surfaces as a ``ValidationError`` with code
``INVALID_REFERENCE``.
"""

from typing import Any, List

from school_portal.database import Grade
from school_portal.database.sqlutils import FilterBuilder, new_id
from school_portal.logutils import with_context
from school_portal.validation import GradeBulkCreate, GradeCreate, GradeFilter, GradeUpdate, validate

from .base import BaseRepository, logger


class GradeRepository(BaseRepository[Grade]):
    table = "grades"
    entity = "grade"
    model = Grade
    create_schema = GradeCreate
    update_schema = GradeUpdate
    filter_schema = GradeFilter
    order_by = "grades.year DESC, grades.term DESC, grades.exam_name, grades.created_at"

    def _apply_filters(self, where: FilterBuilder, params: GradeFilter) -> None:
        where.equals("grades.student_id", params.student_id)
        where.equals("grades.class_id", params.class_id)
        where.equals("grades.subject_id", params.subject_id)
        where.equals("grades.term", params.term)
        where.equals("grades.year", params.year)
        where.contains(["grades.exam_name"], params.exam_name)
        where.range("grades.score", params.min_score, params.max_score)

    def create_bulk(self, data: Any) -> List[Grade]:
        """Record up to 100 grades in one transaction; any failure rejects all."""
        batch = validate(GradeBulkCreate, data if not isinstance(data, list) else {"grades": data})
        ids = [new_id() for _ in batch.grades]

        with with_context(operation="grade.create_bulk", entity=self.entity):
            with self._store_errors("create"):
                with self.db.transaction() as conn:
                    for grade_id, grade in zip(ids, batch.grades):
                        self._insert(conn, grade_id, grade.columns())
                    marks = ", ".join("?" for _ in ids)
                    rows = conn.execute(f"{self._select_sql()} WHERE grades.id IN ({marks})", ids).fetchall()
            logger.info("Grades recorded", extra={"extra_data": {"entity": self.entity, "count": len(ids)}})

        by_id = {row["id"]: row for row in rows}
        return [self._to_model(by_id[grade_id]) for grade_id in ids]

    def get_by_student(self, student_id: str) -> List[Grade]:
        return self.list_where("student_id", student_id)

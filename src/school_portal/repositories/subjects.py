"""Subject repository."""

from school_portal.database import Subject
from school_portal.database.sqlutils import FilterBuilder
from school_portal.errors import DependencyError
from school_portal.validation import SubjectCreate, SubjectFilter, SubjectUpdate

from .base import BaseRepository


class SubjectRepository(BaseRepository[Subject]):
    table = "subjects"
    entity = "subject"
    model = Subject
    create_schema = SubjectCreate
    update_schema = SubjectUpdate
    filter_schema = SubjectFilter
    order_by = "subjects.name"

    def _apply_filters(self, where: FilterBuilder, params: SubjectFilter) -> None:
        where.contains(["subjects.name", "subjects.description"], params.search)

    def _check_dependencies(self, conn, entity_id) -> None:
        grades = self._count(conn, "SELECT COUNT(*) FROM grades WHERE subject_id = ?", entity_id)
        if grades:
            raise DependencyError(
                f"Cannot delete subject with recorded grades: {entity_id}",
                code="SUBJECT_HAS_GRADES",
                details={"grades": grades},
            )

    def _delete_links(self, conn, entity_id) -> None:
        conn.execute("DELETE FROM teacher_subjects WHERE subject_id = ?", (entity_id,))
        conn.execute("DELETE FROM class_subjects WHERE subject_id = ?", (entity_id,))

"""Read-only academic and school reports built from grades and rosters."""

import sqlite3
from contextlib import contextmanager
from typing import Dict, Iterator, List, Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from school_portal.database import Database, letter_grade
from school_portal.errors import NotFoundError, StorageError
from school_portal.validation.common import Schema, Term, Year, validate

from .base import logger


class ReportModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class SubjectResult(ReportModel):
    subject_id: str
    subject_name: str
    exams: int
    average_score: float
    letter_grade: str


class StudentTermReport(ReportModel):
    student_id: str
    student_name: str
    term: int
    year: int
    class_id: Optional[str] = None
    subjects: List[SubjectResult] = []
    average_score: Optional[float] = None
    letter_grade: Optional[str] = None
    rank: Optional[int] = None
    class_size: int = 0


class RankingEntry(ReportModel):
    rank: int
    student_id: str
    student_name: str
    admission_number: str
    graded_subjects: int
    total_marks: float
    average_score: float
    letter_grade: str


class SchoolOverview(ReportModel):
    active_students: int
    active_teachers: int
    active_classes: int
    active_notifications: int
    open_indiscipline: Dict[str, int]


class TermParams(Schema):
    term: Term
    year: Year


RANKING_SQL = """
    SELECT
        RANK() OVER (ORDER BY v.average_score DESC) AS rank,
        v.student_id,
        s.name AS student_name,
        s.admission_number,
        v.graded_subjects,
        v.total_marks,
        v.average_score
    FROM v_student_term_averages v
    JOIN students s ON s.id = v.student_id
    WHERE v.class_id = ? AND v.term = ? AND v.year = ?
    ORDER BY rank, s.name, v.student_id
"""


class ReportRepository:
    def __init__(self, db: Database):
        self.db = db

    @contextmanager
    def _reading(self, report: str) -> Iterator[sqlite3.Connection]:
        try:
            with self.db.connection() as conn:
                yield conn
        except sqlite3.Error as exc:
            logger.error(
                "Report query failed",
                extra={"extra_data": {"report": report, "error": str(exc)}},
                exc_info=True,
            )
            raise StorageError(f"Failed to build {report} report") from exc

    def _ranking(self, conn: sqlite3.Connection, class_id: str, term: int, year: int) -> List[RankingEntry]:
        rows = conn.execute(RANKING_SQL, (class_id, term, year)).fetchall()
        return [
            RankingEntry(**dict(row), letter_grade=letter_grade(row["average_score"]))
            for row in rows
        ]

    def student_term_report(self, student_id: str, term: int, year: int) -> StudentTermReport:
        params = validate(TermParams, {"term": term, "year": year})

        with self._reading("student term") as conn:
            student = conn.execute("SELECT id, name FROM students WHERE id = ?", (student_id,)).fetchone()
            if student is None:
                raise NotFoundError("student", student_id)

            subjects = conn.execute(
                """
                SELECT g.subject_id, s.name AS subject_name, COUNT(*) AS exams,
                       ROUND(AVG(g.score), 2) AS average_score
                FROM grades g
                JOIN subjects s ON s.id = g.subject_id
                WHERE g.student_id = ? AND g.term = ? AND g.year = ?
                GROUP BY g.subject_id, s.name
                ORDER BY s.name
                """,
                (student_id, params.term, params.year),
            ).fetchall()
            summary = conn.execute(
                """
                SELECT class_id, average_score FROM v_student_term_averages
                WHERE student_id = ? AND term = ? AND year = ?
                ORDER BY graded_subjects DESC LIMIT 1
                """,
                (student_id, params.term, params.year),
            ).fetchone()
            ranking = self._ranking(conn, summary["class_id"], params.term, params.year) if summary else []

        report = StudentTermReport(
            student_id=student["id"],
            student_name=student["name"],
            term=params.term,
            year=params.year,
            subjects=[
                SubjectResult(**dict(row), letter_grade=letter_grade(row["average_score"]))
                for row in subjects
            ],
        )
        if summary is not None:
            report.class_id = summary["class_id"]
            report.average_score = summary["average_score"]
            report.letter_grade = letter_grade(summary["average_score"])
            report.class_size = len(ranking)
            report.rank = next((entry.rank for entry in ranking if entry.student_id == student_id), None)
        return report

    def class_term_ranking(self, class_id: str, term: int, year: int) -> List[RankingEntry]:
        """Students of a class ranked by term average; ties share a rank."""
        params = validate(TermParams, {"term": term, "year": year})
        with self._reading("class ranking") as conn:
            if conn.execute("SELECT 1 FROM classes WHERE id = ?", (class_id,)).fetchone() is None:
                raise NotFoundError("class", class_id)
            return self._ranking(conn, class_id, params.term, params.year)

    def school_overview(self) -> SchoolOverview:
        with self._reading("school overview") as conn:
            counts = conn.execute(
                """
                SELECT
                    (SELECT COUNT(*) FROM students WHERE status = 'active') AS active_students,
                    (SELECT COUNT(*) FROM teachers WHERE status = 'active') AS active_teachers,
                    (SELECT COUNT(*) FROM classes WHERE is_active = 1) AS active_classes,
                    (SELECT COUNT(*) FROM notifications WHERE status = 'active') AS active_notifications
                """
            ).fetchone()
            severity = conn.execute(
                "SELECT severity, COUNT(*) AS cnt FROM indiscipline WHERE status = 'active' GROUP BY severity"
            ).fetchall()

        open_counts = {"minor": 0, "moderate": 0, "severe": 0}
        open_counts.update({row["severity"]: row["cnt"] for row in severity})
        return SchoolOverview(**dict(counts), open_indiscipline=open_counts)

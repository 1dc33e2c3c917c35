"""Relational store for School Portal data."""

from .connection import PROCEDURES, ConnectionPool, Database
from .models import (
    Grade,
    IndisciplineRecord,
    Invite,
    Notification,
    Page,
    SchoolClass,
    Student,
    Subject,
    Teacher,
    letter_grade,
)

__all__ = [
    "Database",
    "ConnectionPool",
    "PROCEDURES",
    "Student",
    "SchoolClass",
    "Teacher",
    "Subject",
    "Grade",
    "Notification",
    "IndisciplineRecord",
    "Invite",
    "Page",
    "letter_grade",
]

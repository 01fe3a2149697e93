"""
Student Manager Module - PTE Intensive Management
Author: PTE Intensive Team
Date: October 2026

This module holds the student record as read from the document store and the
pure detection rules run over a snapshot of students. Nothing here performs I/O
and nothing writes back to a student record: payment status stays authoritative
for billing, dates are only used to detect staleness.

Features:
- Student record mapping from store documents
- Tolerant date parsing with a documented fallback to "now"
- Overdue tuition detection
- Course end detection
- Response and email summaries
"""

import calendar
import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional

logger = logging.getLogger(__name__)

PAYMENT_STATUSES = ('paid', 'pending', 'overdue')
OVERDUE_AFTER_DAYS = 14
COURSE_END_WINDOW_MONTHS = 2


@dataclass
class Student:
    """Student record as stored in the ``students`` collection."""
    id: str
    name: str = ''
    phone: str = ''
    dob: str = ''
    province: str = ''
    target_score: Optional[float] = None
    start_date: Any = None
    study_duration: Any = None
    tuition_fee: Any = None
    tuition_payment_status: str = 'pending'
    tuition_payment_dates: List[str] = field(default_factory=list)
    trainer_name: str = ''
    notes: str = ''
    type: str = ''

    @classmethod
    def from_document(cls, doc_id: str, data: Dict[str, Any]) -> 'Student':
        """
        Build a student from a raw store document.

        Args:
            doc_id (str): Document identifier
            data (Dict[str, Any]): Document fields (camelCase, as stored)

        Returns:
            Student: Mapped record
        """
        data = data or {}
        return cls(
            id=doc_id,
            name=data.get('name') or '',
            phone=data.get('phone') or '',
            dob=data.get('dob') or '',
            province=data.get('province') or '',
            target_score=data.get('targetScore'),
            start_date=data.get('startDate'),
            study_duration=data.get('studyDuration'),
            tuition_fee=data.get('tuitionFee'),
            tuition_payment_status=data.get('tuitionPaymentStatus') or 'pending',
            tuition_payment_dates=list(data.get('tuitionPaymentDates') or []),
            trainer_name=data.get('trainerName') or '',
            notes=data.get('notes') or '',
            type=data.get('type') or '',
        )

    @property
    def is_paid(self) -> bool:
        return self.tuition_payment_status == 'paid'

    def to_payment_summary(self) -> Dict[str, Any]:
        """Fields reported back by the payment reminder endpoint."""
        return {
            'name': self.name,
            'startDate': self.start_date,
            'tuitionFee': self.tuition_fee,
            'paymentStatus': self.tuition_payment_status,
            'notes': self.notes
        }


def parse_date_or_now(value: Any, now: datetime) -> date:
    """
    Parse a stored date, falling back to ``now`` when it cannot be read.

    Accepted values are ``date`` and ``datetime`` objects (aware datetimes are
    converted to ``now``'s timezone first) and ISO-8601 strings, either a bare
    date or a date-time with an optional trailing ``Z``. Anything else,
    including None, empty strings and unparseable text, yields ``now.date()``.
    A student with an unreadable start date therefore never counts as overdue.

    Args:
        value (Any): Raw stored value
        now (datetime): Evaluation time

    Returns:
        date: Calendar date of the value, or of ``now``
    """
    if isinstance(value, datetime):
        if value.tzinfo is not None and now.tzinfo is not None:
            value = value.astimezone(now.tzinfo)
        return value.date()

    if isinstance(value, date):
        return value

    if isinstance(value, str) and value.strip():
        text = value.strip()
        if text.endswith('Z'):
            text = text[:-1] + '+00:00'
        try:
            if len(text) == 10:
                return date.fromisoformat(text)
            return parse_date_or_now(datetime.fromisoformat(text), now)
        except ValueError:
            logger.debug(f"Unreadable date {value!r}, using current date")

    return now.date()


def add_months(day: date, months: int) -> date:
    """Shift a date by whole calendar months, clamping to the month's last day."""
    month_index = day.month - 1 + months
    year = day.year + month_index // 12
    month = month_index % 12 + 1
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, min(day.day, last_day))


def _duration_months(value: Any) -> int:
    try:
        return max(int(value), 0)
    except (TypeError, ValueError, OverflowError):
        return 0


def detect_overdue_students(students: Iterable[Student], as_of: datetime,
                            overdue_after_days: int = OVERDUE_AFTER_DAYS) -> List[Student]:
    """
    Select students whose tuition is unpaid and who started long enough ago.

    A student is overdue when the payment status is anything but ``paid`` and
    the start date is on or before ``as_of`` minus ``overdue_after_days``
    calendar days. Input order is preserved.

    Args:
        students (Iterable[Student]): Snapshot of student records
        as_of (datetime): Evaluation time
        overdue_after_days (int): Days after start before an unpaid tuition is overdue

    Returns:
        List[Student]: Overdue students
    """
    threshold = as_of.date() - timedelta(days=overdue_after_days)
    return [
        student for student in students
        if not student.is_paid and parse_date_or_now(student.start_date, as_of) <= threshold
    ]


def course_end_date(student: Student, as_of: datetime) -> Optional[date]:
    """Start date plus the study duration, or None when that leaves the calendar."""
    start = parse_date_or_now(student.start_date, as_of)
    try:
        return add_months(start, _duration_months(student.study_duration))
    except (ValueError, OverflowError):
        logger.warning(f"Student {student.id} has an out-of-range study duration {student.study_duration!r}")
        return None


def detect_course_ending_students(students: Iterable[Student], as_of: datetime,
                                  window_months: int = COURSE_END_WINDOW_MONTHS) -> List[Student]:
    """
    Select students whose course ends after today and within the window.

    Args:
        students (Iterable[Student]): Snapshot of student records
        as_of (datetime): Evaluation time
        window_months (int): How far ahead to look, in calendar months

    Returns:
        List[Student]: Students whose course is ending soon, in input order
    """
    today = as_of.date()
    horizon = add_months(today, window_months)
    ending = []
    for student in students:
        end = course_end_date(student, as_of)
        if end is not None and today < end <= horizon:
            ending.append(student)
    return ending


def format_display_date(value: Any, now: datetime) -> str:
    """Render a stored date as M/D/YYYY."""
    day = parse_date_or_now(value, now)
    return f"{day.month}/{day.day}/{day.year}"


def format_fee(value: Any) -> str:
    if value is None or value == '':
        return '$0'
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    return f"${value}"

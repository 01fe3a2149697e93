"""
Report Generator Module - PTE Intensive Management
Author: PTE Intensive Team
Date: October 2026

Builds the end-of-day task report a principal posts to their webhook. The
summary only covers tasks due today in the business timezone; tasks without a
readable due date count as due today.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

from .student_manager import parse_date_or_now


TASK_STATUSES = ('todo', 'in_progress', 'done')
COMPLETED_LIST_LIMIT = 10
REPORT_COLOR = 0xfc5d01


@dataclass
class Task:
    """Task record as stored in the ``tasks`` collection."""
    id: str
    title: str = ''
    status: str = 'todo'
    due_date: Any = None
    assigned_to: List[str] = field(default_factory=list)

    @classmethod
    def from_document(cls, doc_id: str, data: Dict[str, Any]) -> 'Task':
        data = data or {}
        return cls(
            id=doc_id,
            title=data.get('title') or '',
            status=data.get('status') or 'todo',
            due_date=data.get('dueDate'),
            assigned_to=list(data.get('assignedTo') or []),
        )


@dataclass
class DailyTaskSummary:
    """Same-day task counts for one principal."""
    done: int
    in_progress: int
    todo: int
    total: int
    completed_titles: List[str]

    def summary_lines(self) -> List[str]:
        return [
            f"✅ Done: {self.done}",
            f"🔄 In Progress: {self.in_progress}",
            f"📝 To Do: {self.todo}",
            f"📌 Total: {self.total}"
        ]

    def completed_text(self) -> str:
        if not self.completed_titles:
            return 'No tasks completed today'
        return '\n'.join(
            f"{index}. {title}" for index, title in enumerate(self.completed_titles, start=1)
        )


def summarize_daily_tasks(tasks: Iterable[Task], now: datetime,
                          completed_limit: int = COMPLETED_LIST_LIMIT) -> DailyTaskSummary:
    """
    Count today's tasks by status.

    Args:
        tasks (Iterable[Task]): Tasks assigned to the principal
        now (datetime): Current time in the business timezone
        completed_limit (int): Maximum number of completed titles listed

    Returns:
        DailyTaskSummary: Counts and the truncated completed list
    """
    today = now.date()
    todays = [task for task in tasks if parse_date_or_now(task.due_date, now) == today]

    done = [task for task in todays if task.status == 'done']
    in_progress = [task for task in todays if task.status == 'in_progress']
    todo = [task for task in todays if task.status == 'todo']

    return DailyTaskSummary(
        done=len(done),
        in_progress=len(in_progress),
        todo=len(todo),
        total=len(todays),
        completed_titles=[task.title or 'Untitled task' for task in done[:completed_limit]]
    )


def build_daily_report_payload(sender: str, summary: DailyTaskSummary,
                               sent_at: Optional[datetime] = None) -> Dict[str, Any]:
    """
    Build the webhook body for a daily report.

    Args:
        sender (str): Name (or email) identifying who sent the report
        summary (DailyTaskSummary): Computed task summary
        sent_at (Optional[datetime]): Timestamp to stamp, defaults to now (UTC)

    Returns:
        Dict[str, Any]: JSON-serialisable webhook payload
    """
    sent_at = sent_at or datetime.now(timezone.utc)
    return {
        'content': f"📊 **End-of-day report** - {sender}",
        'embeds': [
            {
                'title': 'Daily Task Report',
                'color': REPORT_COLOR,
                'fields': [
                    {
                        'name': 'Summary',
                        'value': '\n'.join(summary.summary_lines()),
                        'inline': False
                    },
                    {
                        'name': 'Completed tasks',
                        'value': summary.completed_text(),
                        'inline': False
                    }
                ],
                'timestamp': sent_at.isoformat()
            }
        ]
    }

"""
Lead Manager Module - PTE Intensive Management
Author: PTE Intensive Team
Date: October 2026

Prospective students ("leads") handled by the sales team. Each lead is assigned
to a saler and carries the time of its next planned follow-up. This module maps
lead documents, finds the leads whose follow-up time has passed and builds
the team webhook alert for each of them.
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime, time, timezone
from typing import Any, Dict, Iterable, List, Optional

logger = logging.getLogger(__name__)

LEAD_STATUSES = ('lead_new', 'consulted', 'interested', 'closed', 'paid', 'converted', 'lost')
FINISHED_LEAD_STATUSES = ('converted', 'lost')
OVERDUE_LEAD_COLOR = 0xef4444


@dataclass
class Lead:
    """Lead record as stored in the ``leads`` collection."""
    id: str
    full_name: str = ''
    phone: str = ''
    email: str = ''
    source: str = ''
    status: str = 'lead_new'
    assigned_to: str = ''
    next_follow_up_at: Any = None
    notes: str = ''

    @classmethod
    def from_document(cls, doc_id: str, data: Dict[str, Any]) -> 'Lead':
        data = data or {}
        return cls(
            id=doc_id,
            full_name=data.get('fullName') or '',
            phone=data.get('phone') or '',
            email=data.get('email') or '',
            source=data.get('source') or '',
            status=data.get('status') or 'lead_new',
            assigned_to=data.get('assignedTo') or '',
            next_follow_up_at=data.get('nextFollowUpAt'),
            notes=data.get('notes') or '',
        )

    @property
    def is_finished(self) -> bool:
        return self.status in FINISHED_LEAD_STATUSES


def parse_follow_up_time(value: Any, now: datetime) -> Optional[datetime]:
    """
    Read a stored follow-up time.

    Naive values are taken to be in ``now``'s timezone and bare dates mean
    midnight. Missing or unreadable values return None.

    Args:
        value (Any): Raw stored value
        now (datetime): Evaluation time, timezone aware

    Returns:
        Optional[datetime]: Follow-up time, or None when there is none
    """
    if isinstance(value, str) and value.strip():
        text = value.strip()
        if text.endswith('Z'):
            text = text[:-1] + '+00:00'
        try:
            value = datetime.fromisoformat(text)
        except ValueError:
            logger.debug(f"Unreadable follow-up time {value!r}")
            return None

    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=now.tzinfo)
        return value

    if isinstance(value, date):
        return datetime.combine(value, time.min, tzinfo=now.tzinfo)

    return None


def detect_overdue_leads(leads: Iterable[Lead], now: datetime) -> List[Lead]:
    """
    Select open leads whose next follow-up time is already in the past.

    Args:
        leads (Iterable[Lead]): Snapshot of lead records
        now (datetime): Evaluation time, timezone aware

    Returns:
        List[Lead]: Overdue leads, in input order
    """
    overdue = []
    for lead in leads:
        if lead.is_finished:
            continue
        follow_up = parse_follow_up_time(lead.next_follow_up_at, now)
        if follow_up is not None and follow_up < now:
            overdue.append(lead)
    return overdue


def build_overdue_follow_up_payload(lead: Lead, assignee_name: str, now: datetime,
                                    sent_at: Optional[datetime] = None) -> Dict[str, Any]:
    """
    Build the webhook body announcing one overdue follow-up.

    Args:
        lead (Lead): Overdue lead
        assignee_name (str): Name of the saler the lead is assigned to
        now (datetime): Current time in the business timezone
        sent_at (Optional[datetime]): Timestamp to stamp, defaults to now (UTC)

    Returns:
        Dict[str, Any]: JSON-serialisable webhook payload
    """
    sent_at = sent_at or datetime.now(timezone.utc)
    follow_up = parse_follow_up_time(lead.next_follow_up_at, now)
    if follow_up is not None:
        local = follow_up.astimezone(now.tzinfo)
        due = f"{local.month}/{local.day}/{local.year} {local:%H:%M}"
    else:
        due = 'Not set'

    return {
        'content': f"**⚠️ Lead follow-up overdue!** {assignee_name}",
        'embeds': [
            {
                'title': '⚠️ Lead Follow-up Overdue',
                'color': OVERDUE_LEAD_COLOR,
                'fields': [
                    {'name': '👤 Name', 'value': lead.full_name or 'Unnamed lead', 'inline': True},
                    {'name': '📱 Phone', 'value': lead.phone or 'N/A', 'inline': True},
                    {'name': '📅 Follow-up due', 'value': due, 'inline': True},
                    {'name': '👨‍💼 Consultant', 'value': assignee_name, 'inline': True},
                    {'name': '📊 Status', 'value': lead.status, 'inline': True},
                    {'name': '📍 Source', 'value': lead.source.capitalize() or 'Unknown', 'inline': True}
                ],
                'footer': {'text': f"Lead ID: {lead.id}"},
                'timestamp': sent_at.isoformat()
            }
        ]
    }

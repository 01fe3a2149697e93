"""
Notification System Module - PTE Intensive Management
Author: PTE Intensive Team
Date: October 2026

This module handles outbound notifications for the management system. Email
goes through SendGrid to the center's admin inbox; daily task digests go to the
webhook each user configures in Settings, and overdue lead alerts go to the
sales team webhook.

Features:
- Batched overdue tuition reminder (one email per batch, never per student)
- Course end reminder
- New registration alert
- End-of-day task report via webhook
- Overdue lead follow-up alert via the sales team webhook
- Plain-text and HTML email bodies from Jinja2 templates

Every send is a single attempt. Provider and webhook failures are raised as
UpstreamDeliveryError carrying the provider's status and body; nothing here
retries.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Mapping, Optional, Sequence

import requests
from jinja2 import Template
from python_http_client.exceptions import HTTPError
from sendgrid import SendGridAPIClient
from sendgrid.helpers.mail import Email, Mail, To

from .auth_manager import Principal
from .errors import ConfigurationError, UpstreamDeliveryError, ValidationError
from .lead_manager import Lead, build_overdue_follow_up_payload
from .report_generator import DailyTaskSummary, build_daily_report_payload
from .student_manager import Student, course_end_date, format_display_date, format_fee

SUCCESS_STATUS_CODES = (200, 201, 202)
WEBHOOK_NOT_CONFIGURED_MESSAGE = (
    'Discord webhook is not configured. Add your webhook URL in Settings first.'
)
LEADS_WEBHOOK_NOT_CONFIGURED_MESSAGE = 'Lead follow-up webhook is not configured: set LEADS_WEBHOOK_URL'


@dataclass(frozen=True)
class NotificationConfig:
    """Provider credentials and addresses, fixed for the process lifetime."""
    sendgrid_api_key: Optional[str] = None
    sender_email: Optional[str] = None
    sender_name: str = 'PTE Intensive Management'
    admin_email: Optional[str] = None
    webhook_timeout: Optional[float] = 10
    leads_webhook_url: Optional[str] = None

    @classmethod
    def from_mapping(cls, config: Mapping[str, Any]) -> 'NotificationConfig':
        return cls(
            sendgrid_api_key=config.get('SENDGRID_API_KEY'),
            sender_email=config.get('SENDER_EMAIL'),
            sender_name=config.get('SENDER_NAME') or 'PTE Intensive Management',
            admin_email=config.get('ADMIN_EMAIL'),
            webhook_timeout=config.get('WEBHOOK_TIMEOUT_SECONDS', 10),
            leads_webhook_url=config.get('LEADS_WEBHOOK_URL'),
        )


@dataclass
class EmailContent:
    subject: str
    text: str
    html: str


class NotificationDispatcher:
    """
    Sends email through SendGrid and task digests through per-user webhooks.
    Holds no mutable state beyond the clients it was constructed with.
    """

    def __init__(self, config: NotificationConfig, mail_client=None, http_client=None):
        """
        Initialize the dispatcher.

        Args:
            config (NotificationConfig): Provider configuration
            mail_client: Object with a SendGrid-compatible ``send(message)``;
                built from the API key on first use when omitted
            http_client: Object with a requests-compatible ``post``; defaults
                to the ``requests`` module
        """
        self.config = config
        self.logger = logging.getLogger(__name__)
        self._mail_client = mail_client
        self.http = http_client or requests

        self.templates = {
            'payment_reminder_text': _PAYMENT_REMINDER_TEXT,
            'payment_reminder_html': _PAYMENT_REMINDER_HTML,
            'course_end_text': _COURSE_END_TEXT,
            'course_end_html': _COURSE_END_HTML,
            'registration_text': _REGISTRATION_TEXT,
            'registration_html': _REGISTRATION_HTML,
        }

    @property
    def mail_client(self):
        if self._mail_client is None:
            self._mail_client = SendGridAPIClient(self.config.sendgrid_api_key)
        return self._mail_client

    def _require_email_config(self) -> None:
        missing = [
            name for name, value in (
                ('SENDGRID_API_KEY', self.config.sendgrid_api_key),
                ('SENDER_EMAIL', self.config.sender_email),
                ('ADMIN_EMAIL', self.config.admin_email),
            ) if not value
        ]
        if missing:
            raise ConfigurationError(
                f"Email is not configured: set {', '.join(missing)} in the environment"
            )

    def send_payment_reminder(self, students: Sequence[Student], now: Optional[datetime] = None):
        """
        Email the admin one summary of every overdue student.

        Args:
            students (Sequence[Student]): Overdue students, in report order
            now (Optional[datetime]): Reference time for date formatting

        Returns:
            Provider response, or None when there is nobody to report
        """
        if not students:
            return None
        self._require_email_config()

        now = now or datetime.now()
        rows = [
            {
                'name': student.name,
                'start_date': format_display_date(student.start_date, now),
                'tuition_fee': format_fee(student.tuition_fee),
                'notes': student.notes
            }
            for student in students
        ]
        content = EmailContent(
            subject='PTE Intensive - Overdue Tuition Payment Reminder',
            text=self._render('payment_reminder_text', students=rows),
            html=self._render('payment_reminder_html', students=rows, autoescape=True)
        )
        self.logger.info(f"Sending payment reminder for {len(rows)} students to {self.config.admin_email}")
        return self._send_email(content)

    def send_course_end_reminder(self, students: Sequence[Student], now: Optional[datetime] = None):
        """
        Email the admin the students whose course ends within the window.

        Args:
            students (Sequence[Student]): Students ending soon
            now (Optional[datetime]): Reference time for date formatting

        Returns:
            Provider response, or None when there is nobody to report
        """
        if not students:
            return None
        self._require_email_config()

        now = now or datetime.now()
        rows = []
        for student in students:
            end = course_end_date(student, now)
            rows.append({
                'name': student.name,
                'start_date': format_display_date(student.start_date, now),
                'study_duration': student.study_duration or 0,
                'end_date': f"{end.month}/{end.day}/{end.year}" if end else 'Unknown',
                'notes': student.notes
            })
        content = EmailContent(
            subject='PTE Intensive - Course End Reminder',
            text=self._render('course_end_text', students=rows),
            html=self._render('course_end_html', students=rows, autoescape=True)
        )
        self.logger.info(f"Sending course end reminder for {len(rows)} students")
        return self._send_email(content)

    def send_registration_notification(self, record: Mapping[str, Any]):
        """
        Email the admin about a new public registration.

        Args:
            record (Mapping[str, Any]): Registration form data (camelCase keys)

        Returns:
            Provider response
        """
        name = _clean(record.get('name'))
        phone = _clean(record.get('phone'))
        if not name or not phone:
            raise ValidationError()
        self._require_email_config()

        registration = {
            'name': name,
            'phone': phone,
            'dob': record.get('dob') or 'N/A',
            'province': record.get('province') or 'N/A',
            'target_score': record.get('targetScore') if record.get('targetScore') is not None else 'N/A',
            'tuition_fee': format_fee(record.get('tuitionFee')),
        }
        content = EmailContent(
            subject=f"PTE Intensive - New Student Registration: {name}",
            text=self._render('registration_text', registration=registration),
            html=self._render('registration_html', registration=registration, autoescape=True)
        )
        self.logger.info(f"Sending registration notification for {name}")
        return self._send_email(content)

    def resolve_webhook_url(self, webhook_url: Optional[str]) -> str:
        """Return the trimmed webhook URL or raise when none is configured."""
        url = (webhook_url or '').strip()
        if not url:
            raise ConfigurationError(WEBHOOK_NOT_CONFIGURED_MESSAGE)
        return url

    def require_leads_webhook(self) -> str:
        url = (self.config.leads_webhook_url or '').strip()
        if not url:
            raise ConfigurationError(LEADS_WEBHOOK_NOT_CONFIGURED_MESSAGE)
        return url

    def send_daily_report(self, principal: Principal, webhook_url: Optional[str],
                          summary: DailyTaskSummary) -> Dict[str, Any]:
        """
        Post a principal's end-of-day task summary to their webhook.

        Args:
            principal (Principal): Sender of the report
            webhook_url (Optional[str]): Principal's configured webhook URL
            summary (DailyTaskSummary): Today's task summary

        Returns:
            Dict[str, Any]: The payload that was delivered
        """
        url = self.resolve_webhook_url(webhook_url)
        payload = build_daily_report_payload(principal.display_name, summary)
        self._post_webhook(url, payload, f"daily report for user {principal.id}")
        return payload

    def send_overdue_follow_up(self, lead: Lead, assignee_name: str,
                               now: Optional[datetime] = None) -> Dict[str, Any]:
        """
        Alert the sales team webhook about one overdue lead follow-up.

        Args:
            lead (Lead): Lead whose follow-up time has passed
            assignee_name (str): Name of the saler the lead is assigned to
            now (Optional[datetime]): Reference time for date formatting

        Returns:
            Dict[str, Any]: The payload that was delivered
        """
        url = self.require_leads_webhook()
        now = now or datetime.now().astimezone()
        payload = build_overdue_follow_up_payload(lead, assignee_name, now)
        self._post_webhook(url, payload, f"follow-up alert for lead {lead.id}")
        return payload

    def _post_webhook(self, url: str, payload: Dict[str, Any], context: str) -> None:
        try:
            response = self.http.post(url, json=payload, timeout=self.config.webhook_timeout)
        except requests.RequestException as e:
            self.logger.error(f"Webhook request failed for {context}: {str(e)}")
            raise UpstreamDeliveryError('Webhook delivery failed', detail=str(e)) from e

        if not 200 <= response.status_code < 300:
            self.logger.error(f"Webhook rejected {context}: {response.status_code} {response.text}")
            raise UpstreamDeliveryError(
                'Webhook delivery failed',
                detail=f"Webhook responded with status {response.status_code}",
                provider_status=response.status_code,
                provider_body=response.text
            )

        self.logger.info(f"Webhook delivered {context}")

    def _render(self, template_name: str, autoescape: bool = False, **context) -> str:
        template = Template(self.templates[template_name], autoescape=autoescape)
        return template.render(**context).strip()

    def _build_mail(self, content: EmailContent) -> Mail:
        return Mail(
            from_email=Email(self.config.sender_email, self.config.sender_name),
            to_emails=To(self.config.admin_email),
            subject=content.subject,
            plain_text_content=content.text,
            html_content=content.html
        )

    def _send_email(self, content: EmailContent):
        message = self._build_mail(content)
        try:
            response = self.mail_client.send(message)
        except HTTPError as e:
            self.logger.error(
                f"SendGrid rejected '{content.subject}': status {e.status_code}, body {e.body}"
            )
            raise UpstreamDeliveryError(
                'Email provider rejected the message',
                detail=str(e),
                provider_status=e.status_code,
                provider_body=e.body
            ) from e
        except OSError as e:
            self.logger.error(f"SendGrid unreachable while sending '{content.subject}': {str(e)}")
            raise UpstreamDeliveryError('Email provider is unreachable', detail=str(e)) from e

        status_code = getattr(response, 'status_code', None)
        if status_code not in SUCCESS_STATUS_CODES:
            self.logger.error(f"SendGrid returned status {status_code} for '{content.subject}'")
            raise UpstreamDeliveryError(
                'Email provider rejected the message',
                detail=f"Unexpected status {status_code}",
                provider_status=status_code,
                provider_body=getattr(response, 'body', None)
            )

        self.logger.info(f"Email '{content.subject}' accepted by SendGrid ({status_code})")
        return response


def _clean(value: Any) -> Any:
    return value.strip() if isinstance(value, str) else value


_PAYMENT_REMINDER_TEXT = """
The following students have overdue tuition payments (over 2 weeks since start date):
{% for student in students %}
- {{ student.name }}
  Start Date: {{ student.start_date }}
  Tuition Fee: {{ student.tuition_fee }}
  Notes: {{ student.notes or 'No notes available' }}
{% endfor %}
Please follow up with these students regarding their payment status.
"""

_PAYMENT_REMINDER_HTML = """
<h2>Overdue Tuition Payment Reminder</h2>
<p>The following students have overdue tuition payments (over 2 weeks since start date):</p>
<div style="margin: 20px 0; padding: 10px; background-color: #f5f5f5;">
{% for student in students %}
  <div style="margin-bottom: 15px; border-bottom: 1px solid #ddd; padding-bottom: 10px;">
    <strong>{{ student.name }}</strong><br/>
    Start Date: {{ student.start_date }}<br/>
    Tuition Fee: {{ student.tuition_fee }}<br/>
    <div style="margin-top: 5px; color: #666;">Notes: {{ student.notes or 'No notes available' }}</div>
  </div>
{% endfor %}
</div>
<p>Please follow up with these students regarding their payment status.</p>
"""

_COURSE_END_TEXT = """
The following students' courses end within the next 2 months:
{% for student in students %}
- {{ student.name }}
  Start Date: {{ student.start_date }}
  Study Duration: {{ student.study_duration }} months
  Course End: {{ student.end_date }}
  Notes: {{ student.notes or 'No notes available' }}
{% endfor %}
Please reach out to these students about renewal or final test preparation.
"""

_COURSE_END_HTML = """
<h2>Course End Reminder</h2>
<p>The following students' courses end within the next 2 months:</p>
<div style="margin: 20px 0; padding: 10px; background-color: #f5f5f5;">
{% for student in students %}
  <div style="margin-bottom: 15px; border-bottom: 1px solid #ddd; padding-bottom: 10px;">
    <strong>{{ student.name }}</strong><br/>
    Start Date: {{ student.start_date }}<br/>
    Study Duration: {{ student.study_duration }} months<br/>
    Course End: {{ student.end_date }}<br/>
    <div style="margin-top: 5px; color: #666;">Notes: {{ student.notes or 'No notes available' }}</div>
  </div>
{% endfor %}
</div>
<p>Please reach out to these students about renewal or final test preparation.</p>
"""

_REGISTRATION_TEXT = """
A new student has registered through the public form.

Name: {{ registration.name }}
Phone: {{ registration.phone }}
Date of Birth: {{ registration.dob }}
Province: {{ registration.province }}
Target Score: {{ registration.target_score }}
Tuition Fee: {{ registration.tuition_fee }}
"""

_REGISTRATION_HTML = """
<h2>New Student Registration</h2>
<p>A new student has registered through the public form.</p>
<table style="border-collapse: collapse;">
  <tr><td><strong>Name</strong></td><td>{{ registration.name }}</td></tr>
  <tr><td><strong>Phone</strong></td><td>{{ registration.phone }}</td></tr>
  <tr><td><strong>Date of Birth</strong></td><td>{{ registration.dob }}</td></tr>
  <tr><td><strong>Province</strong></td><td>{{ registration.province }}</td></tr>
  <tr><td><strong>Target Score</strong></td><td>{{ registration.target_score }}</td></tr>
  <tr><td><strong>Tuition Fee</strong></td><td>{{ registration.tuition_fee }}</td></tr>
</table>
"""

"""
Scheduler Module - PTE Intensive Management
Author: PTE Intensive Team
Date: October 2026

Flask CLI commands run by the host's scheduler (cron, systemd timers, a hosted
cron service). Each command calls the matching reminder endpoint of the running
application with the shared bearer secret, exactly as an external scheduler
would, and logs the outcome.

Example crontab entry (9:00 every day, business time):
    0 9 * * * cd /srv/pte-center && flask --app app send-payment-reminders
"""

import logging
from typing import Any, Dict, Optional

import click
import requests
from flask import Flask, current_app

logger = logging.getLogger(__name__)

PAYMENT_REMINDER_PATH = '/api/payment-reminder'
COURSE_END_REMINDER_PATH = '/api/course-end-reminder'
LEAD_FOLLOWUP_REMINDER_PATH = '/api/lead-followup-reminder'


def trigger_endpoint(path: str, base_url: Optional[str], secret: Optional[str],
                     timeout: Optional[float] = 30, http_client=None) -> Dict[str, Any]:
    """
    Call a reminder endpoint the way the scheduler does.

    Args:
        path (str): Endpoint path
        base_url (Optional[str]): Public base URL of the running application
        secret (Optional[str]): Shared scheduler secret
        timeout (Optional[float]): Request timeout in seconds
        http_client: requests-compatible client, defaults to ``requests``

    Returns:
        Dict[str, Any]: Decoded JSON result from the endpoint
    """
    if not secret:
        raise click.ClickException('CRON_SECRET is not configured; refusing to call the endpoint')
    if not base_url:
        raise click.ClickException('APP_BASE_URL is not configured')

    http = http_client or requests
    url = f"{base_url.rstrip('/')}{path}"
    try:
        response = http.get(url, headers={'Authorization': f"Bearer {secret}"}, timeout=timeout)
    except requests.RequestException as e:
        raise click.ClickException(f"Request to {url} failed: {e}") from e

    try:
        result = response.json()
    except ValueError:
        result = {'success': False, 'message': response.text}

    if response.status_code != 200 or not result.get('success'):
        logger.error(f"{path} failed ({response.status_code}): {result.get('message')}")
        if result.get('error'):
            logger.error(f"Error details: {result['error']}")
        raise click.ClickException(result.get('message') or f"HTTP error {response.status_code}")

    return result


def _run(path: str) -> Dict[str, Any]:
    config = current_app.config
    return trigger_endpoint(
        path,
        base_url=config.get('APP_BASE_URL'),
        secret=config.get('CRON_SECRET'),
        timeout=config.get('SCHEDULER_TIMEOUT_SECONDS', 30),
        http_client=current_app.extensions.get('scheduler_http')
    )


def register_commands(app: Flask) -> None:
    """Attach the scheduler commands to the app's CLI."""

    @app.cli.command('send-payment-reminders')
    def send_payment_reminders():
        """Check for overdue tuition and email the admin."""
        result = _run(PAYMENT_REMINDER_PATH)
        students = result.get('students') or []
        if students:
            names = ', '.join(student.get('name', '') for student in students)
            logger.info(f"Payment reminder sent for students: {names}")
        else:
            logger.info('No overdue payments found')
        click.echo(result.get('message'))

    @app.cli.command('send-course-end-reminders')
    def send_course_end_reminders():
        """Email the admin about courses ending within two months."""
        result = _run(COURSE_END_REMINDER_PATH)
        logger.info(f"Course end reminder processed for {result.get('studentsCount', 0)} students")
        click.echo(result.get('message'))

    @app.cli.command('send-lead-followup-reminders')
    def send_lead_followup_reminders():
        """Alert the sales team about overdue lead follow-ups."""
        result = _run(LEAD_FOLLOWUP_REMINDER_PATH)
        stats = result.get('stats')
        if stats:
            logger.info(
                f"Lead follow-up alerts: {stats.get('successful', 0)} successful, "
                f"{stats.get('failed', 0)} failed of {stats.get('total', 0)}"
            )
        click.echo(result.get('message'))

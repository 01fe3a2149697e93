"""
PTE Intensive Management - Main Application
Author: PTE Intensive Team
Date: October 2026

This module is the entry point of the management web application. It builds
the Flask app, wires the document store, the notification dispatcher and the
page access middleware, and defines the HTTP endpoints.

Endpoints:
- GET  /api/payment-reminder           overdue tuition check (scheduler or user)
- GET  /api/course-end-reminder        course end check (scheduler or user)
- GET  /api/lead-followup-reminder     overdue lead follow-up alerts (scheduler or user)
- POST /api/registration-notification  public registration alert
- POST /api/tasks/end-of-day-report    daily task digest to the user's webhook

Page routes are placeholders; every one of them is gated by role through the
request authorizer.
"""

import logging
from datetime import datetime
from zoneinfo import ZoneInfo

from flask import (Blueprint, Flask, current_app, g, jsonify, redirect,
                   render_template_string, request, url_for)

from config import init_config
from pte_center.modules.access_policy import AccessPolicy
from pte_center.modules.auth_manager import (RequestAuthorizer, current_principal,
                                             end_session, scheduler_or_session_required,
                                             session_required)
from pte_center.modules.database_manager import DatabaseManager
from pte_center.modules.errors import (ConfigurationError, DataAccessError, PTECenterError,
                                       UpstreamDeliveryError, ValidationError)
from pte_center.modules.lead_manager import detect_overdue_leads
from pte_center.modules.notification_system import NotificationConfig, NotificationDispatcher
from pte_center.modules.report_generator import summarize_daily_tasks
from pte_center.modules.scheduler import register_commands
from pte_center.modules.student_manager import (detect_course_ending_students,
                                                detect_overdue_students)

logger = logging.getLogger(__name__)

pages = Blueprint('pages', __name__)
api = Blueprint('api', __name__, url_prefix='/api')

PAGE_TEMPLATE = """<!doctype html>
<html>
<head><title>{{ title }} - PTE Intensive</title></head>
<body>
  <h1>{{ title }}</h1>
  {% if principal %}<p>Signed in as {{ principal.display_name }}</p>{% endif %}
</body>
</html>
"""

PAGE_TITLES = {
    'attendance': 'Attendance',
    'studentinformation': 'Student Information',
    'students': 'Students',
    'tasks': 'Tasks',
    'accounting': 'Accounting',
    'settings': 'Settings',
}


def business_now() -> datetime:
    """Current time in the business timezone."""
    return datetime.now(ZoneInfo(current_app.config['BUSINESS_TIMEZONE']))


def get_database_manager() -> DatabaseManager:
    return current_app.extensions['database_manager']


def get_dispatcher() -> NotificationDispatcher:
    return current_app.extensions['notification_dispatcher']


def _render_page(title):
    return render_template_string(PAGE_TEMPLATE, title=title, principal=current_principal())


@pages.route('/')
def index():
    """Home page"""
    return _render_page('PTE Intensive Management')


@pages.route('/<any(attendance, studentinformation, students, tasks, accounting, settings):section>')
def section_page(section):
    return _render_page(PAGE_TITLES[section])


@pages.route('/auth/signin')
def signin():
    """Sign-in page; the identity provider flow starts here."""
    if current_principal() is not None:
        return redirect(url_for('pages.index'))
    return _render_page('Sign in')


@pages.route('/auth/signout')
def signout():
    end_session()
    return redirect(url_for('pages.signin'))


@pages.route('/auth/error')
def auth_error():
    return _render_page('Sign-in error')


@api.route('/payment-reminder', methods=['GET'])
@scheduler_or_session_required
def payment_reminder():
    """Check for overdue tuition and email the admin one batched reminder"""
    try:
        now = business_now()
        students = get_database_manager().get_all_students()
        overdue = detect_overdue_students(students, now, current_app.config['OVERDUE_AFTER_DAYS'])
        logger.info(f"Found {len(overdue)} students with overdue payments (triggered by {g.triggered_by})")

        if not overdue:
            return jsonify({
                'success': True,
                'message': 'No overdue payments found'
            })

        get_dispatcher().send_payment_reminder(overdue, now)
        return jsonify({
            'success': True,
            'message': f"Payment reminder sent for {len(overdue)} students",
            'students': [student.to_payment_summary() for student in overdue]
        })

    except DataAccessError as e:
        logger.error(f"Payment reminder check failed while loading students: {e.detail or e.message}")
        return jsonify({
            'success': False,
            'message': 'Failed to process payment reminder check',
            'error': e.message
        }), 500
    except (ConfigurationError, UpstreamDeliveryError) as e:
        logger.error(f"Failed to send payment reminder email: {e.detail or e.message}")
        body = {
            'success': False,
            'message': 'Found overdue payments but failed to send email notification',
            'error': e.detail or e.message,
            'students': [student.name for student in overdue]
        }
        if isinstance(e, UpstreamDeliveryError):
            body['providerError'] = e.provider_error()
        return jsonify(body), 500
    except Exception as e:
        logger.error(f"Payment reminder error: {str(e)}")
        return jsonify({
            'success': False,
            'message': 'Failed to process payment reminder check',
            'error': str(e)
        }), 500


@api.route('/course-end-reminder', methods=['GET'])
@scheduler_or_session_required
def course_end_reminder():
    """Email the admin about courses ending within the configured window"""
    try:
        now = business_now()
        students = get_database_manager().get_all_students()
        ending = detect_course_ending_students(students, now, current_app.config['COURSE_END_WINDOW_MONTHS'])
        logger.info(f"Found {len(ending)} students with courses ending soon (triggered by {g.triggered_by})")

        if not ending:
            return jsonify({
                'success': True,
                'message': 'No students with courses ending soon',
                'studentsCount': 0
            })

        get_dispatcher().send_course_end_reminder(ending, now)
        return jsonify({
            'success': True,
            'message': 'Course end reminders sent successfully',
            'studentsCount': len(ending)
        })

    except DataAccessError as e:
        logger.error(f"Course end check failed while loading students: {e.detail or e.message}")
        return jsonify({
            'success': False,
            'message': 'Failed to process course end reminders',
            'error': e.message
        }), 500
    except (ConfigurationError, UpstreamDeliveryError) as e:
        logger.error(f"Failed to send course end reminder email: {e.detail or e.message}")
        return jsonify({
            'success': False,
            'message': 'Found students with courses ending soon but failed to send email notification',
            'error': e.detail or e.message,
            'studentsCount': len(ending)
        }), 500
    except Exception as e:
        logger.error(f"Course end reminder error: {str(e)}")
        return jsonify({
            'success': False,
            'message': 'Failed to process course end reminders',
            'error': str(e)
        }), 500


@api.route('/lead-followup-reminder', methods=['GET'])
@scheduler_or_session_required
def lead_followup_reminder():
    """Alert the sales team webhook about every lead whose follow-up is overdue"""
    try:
        now = business_now()
        database = get_database_manager()
        dispatcher = get_dispatcher()

        overdue = detect_overdue_leads(database.get_all_leads(), now)
        logger.info(f"Found {len(overdue)} overdue leads (triggered by {g.triggered_by})")

        if not overdue:
            return jsonify({
                'success': True,
                'message': 'No overdue leads',
                'count': 0
            })

        dispatcher.require_leads_webhook()

        results = []
        for lead in overdue:
            # One failed alert must not stop the rest of the batch
            try:
                assignee = database.get_user_name(lead.assigned_to) or 'Unknown'
                dispatcher.send_overdue_follow_up(lead, assignee, now)
            except Exception as e:
                detail = (e.detail or e.message) if isinstance(e, PTECenterError) else str(e)
                logger.error(f"Follow-up alert failed for lead {lead.id}: {detail}")
                results.append({
                    'leadId': lead.id,
                    'leadName': lead.full_name,
                    'success': False,
                    'error': detail
                })
                continue

            results.append({
                'leadId': lead.id,
                'leadName': lead.full_name,
                'assignee': assignee,
                'success': True
            })

        successful = sum(1 for result in results if result['success'])
        logger.info(f"Lead follow-up alerts sent: {successful} successful, {len(results) - successful} failed")

        return jsonify({
            'success': True,
            'message': f"Processed {len(overdue)} overdue leads",
            'stats': {
                'total': len(overdue),
                'successful': successful,
                'failed': len(results) - successful
            },
            'results': results
        })

    except DataAccessError as e:
        logger.error(f"Lead follow-up check failed while loading leads: {e.detail or e.message}")
        return jsonify({
            'success': False,
            'message': 'Failed to process lead follow-up reminders',
            'error': e.message
        }), 500
    except ConfigurationError as e:
        logger.error(f"Lead follow-up alerts not sent: {e.message}")
        return jsonify({
            'success': False,
            'message': 'Found overdue leads but failed to send follow-up alerts',
            'error': e.message,
            'count': len(overdue)
        }), 500
    except Exception as e:
        logger.error(f"Lead follow-up reminder error: {str(e)}")
        return jsonify({
            'success': False,
            'message': 'Failed to process lead follow-up reminders',
            'error': str(e)
        }), 500


@api.route('/registration-notification', methods=['POST'])
def registration_notification():
    """Alert the admin about a new registration from the public form"""
    try:
        data = request.get_json(silent=True)
        if not isinstance(data, dict):
            data = {}

        get_dispatcher().send_registration_notification(data)
        return jsonify({
            'success': True,
            'message': 'Registration notification sent successfully'
        })

    except ValidationError as e:
        return jsonify(e.to_dict()), 400
    except (ConfigurationError, UpstreamDeliveryError) as e:
        logger.error(f"Error sending registration notification: {e.detail or e.message}")
        return jsonify({
            'success': False,
            'message': 'Failed to send registration notification',
            'error': e.detail or e.message
        }), 500
    except Exception as e:
        logger.error(f"Registration notification error: {str(e)}")
        return jsonify({
            'success': False,
            'message': 'Failed to send registration notification',
            'error': str(e)
        }), 500


@api.route('/tasks/end-of-day-report', methods=['POST'])
@session_required
def end_of_day_report():
    """Post the caller's task summary for today to their webhook"""
    principal = current_principal()

    try:
        database = get_database_manager()
        dispatcher = get_dispatcher()

        webhook_url = dispatcher.resolve_webhook_url(database.get_webhook_url(principal.id))
        tasks = database.get_tasks_assigned_to(principal.id)
        summary = summarize_daily_tasks(tasks, business_now())
        dispatcher.send_daily_report(principal, webhook_url, summary)

        return jsonify({
            'success': True,
            'message': 'End-of-day report sent to Discord.',
            'summary': {
                'done': summary.done,
                'inProgress': summary.in_progress,
                'todo': summary.todo,
                'total': summary.total
            }
        })

    except ConfigurationError as e:
        return jsonify({
            'success': False,
            'message': e.message
        }), 400
    except UpstreamDeliveryError as e:
        logger.warning(f"End-of-day report delivery failed for user {principal.id}: {e.detail}")
        return jsonify({
            'success': False,
            'message': 'Sending to the Discord webhook failed. Check the webhook URL in Settings.'
        }), 400
    except Exception as e:
        detail = (e.detail or e.message) if isinstance(e, DataAccessError) else str(e)
        logger.error(f"Error sending end-of-day report: {detail}")
        return jsonify({
            'success': False,
            'message': 'Could not send the end-of-day report. Please try again later.'
        }), 500


def register_error_handlers(app):
    @app.errorhandler(PTECenterError)
    def handle_center_error(error):
        if error.status_code >= 500:
            logger.error(f"Unhandled {type(error).__name__} on {request.path}: {error.detail or error.message}")
        return jsonify(error.to_dict()), error.status_code


def create_app(config_name=None, database_manager=None, notification_dispatcher=None):
    """
    Build the Flask application.

    Args:
        config_name (str): Configuration name (development, testing, production)
        database_manager: Document store reader; built from configuration when omitted
        notification_dispatcher: Notification dispatcher; built from configuration when omitted

    Returns:
        Flask: Configured application
    """
    app = Flask(__name__)
    init_config(app, config_name)

    app.extensions['database_manager'] = database_manager or DatabaseManager.from_config(app.config)
    app.extensions['notification_dispatcher'] = notification_dispatcher or NotificationDispatcher(
        NotificationConfig.from_mapping(app.config)
    )

    RequestAuthorizer(AccessPolicy.from_config(app.config)).init_app(app)

    app.register_blueprint(pages)
    app.register_blueprint(api)
    register_error_handlers(app)
    register_commands(app)

    logger.info("PTE Intensive Management application created")
    return app


if __name__ == '__main__':
    # Run the application
    create_app().run(debug=True, host='0.0.0.0', port=5000)

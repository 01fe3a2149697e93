import io
import urllib.error
from datetime import datetime, timedelta
from zoneinfo import ZoneInfo

from python_http_client.exceptions import HTTPError

from conftest import FakeHttpResponse, email_parts
from pte_center.modules.lead_manager import Lead
from pte_center.modules.notification_system import NotificationConfig
from pte_center.modules.student_manager import Student


def today():
    return datetime.now(ZoneInfo('Asia/Bangkok')).date()


def days_ago(days):
    return (today() - timedelta(days=days)).isoformat()


def months_ago(months):
    return (today() - timedelta(days=months * 30)).isoformat()


def seed_overdue(database):
    database.students = [
        Student(id='s1', name='An', start_date=days_ago(30), tuition_fee=1500),
        Student(id='s2', name='Paid', start_date=days_ago(60), tuition_payment_status='paid'),
        Student(id='s3', name='Binh', start_date=days_ago(20), tuition_payment_status='overdue'),
        Student(id='s4', name='Recent', start_date=days_ago(3)),
        Student(id='s5', name='Cuong', start_date=days_ago(90), notes='Paying in two parts'),
    ]


def test_payment_reminder_requires_credentials(client, database, mail_client):
    response = client.get('/api/payment-reminder')

    assert response.status_code == 401
    assert response.get_json() == {
        'success': False,
        'message': 'Unauthorized access',
        'error': 'Unauthorized'
    }
    assert database.calls == []
    assert mail_client.sent == []


def test_payment_reminder_rejects_wrong_secret(client, database):
    response = client.get('/api/payment-reminder', headers={'Authorization': 'Bearer wrong'})

    assert response.status_code == 401
    assert database.calls == []


def test_payment_reminder_with_no_overdue_students(client, database, mail_client, cron_headers):
    database.students = [Student(id='s1', name='Recent', start_date=days_ago(2))]

    response = client.get('/api/payment-reminder', headers=cron_headers)

    assert response.status_code == 200
    assert response.get_json() == {'success': True, 'message': 'No overdue payments found'}
    assert mail_client.sent == []


def test_payment_reminder_sends_one_email_for_all_overdue(client, database, mail_client, cron_headers):
    seed_overdue(database)

    response = client.get('/api/payment-reminder', headers=cron_headers)

    assert response.status_code == 200
    body = response.get_json()
    assert body['success'] is True
    assert body['message'] == 'Payment reminder sent for 3 students'
    assert [student['name'] for student in body['students']] == ['An', 'Binh', 'Cuong']
    assert body['students'][2]['notes'] == 'Paying in two parts'

    assert len(mail_client.sent) == 1
    _, text, _ = email_parts(mail_client.sent[0])
    assert 'An' in text and 'Binh' in text and 'Cuong' in text
    assert 'Recent' not in text


def test_payment_reminder_accepts_signed_in_user(client, database, mail_client, sign_in):
    seed_overdue(database)
    sign_in(role='accountance')

    response = client.get('/api/payment-reminder')

    assert response.status_code == 200
    assert len(mail_client.sent) == 1


def test_payment_reminder_store_failure(client, database, mail_client, cron_headers):
    database.fail = True

    response = client.get('/api/payment-reminder', headers=cron_headers)

    assert response.status_code == 500
    body = response.get_json()
    assert body['success'] is False
    assert body['message'] == 'Failed to process payment reminder check'
    assert mail_client.sent == []


def test_payment_reminder_provider_failure(client, database, mail_client, cron_headers):
    seed_overdue(database)
    mail_client.error = HTTPError(urllib.error.HTTPError(
        'https://api.sendgrid.com/v3/mail/send', 401, 'Unauthorized', {},
        io.BytesIO(b'{"errors":[{"message":"bad key"}]}')
    ))

    response = client.get('/api/payment-reminder', headers=cron_headers)

    assert response.status_code == 500
    body = response.get_json()
    assert body['message'] == 'Found overdue payments but failed to send email notification'
    assert body['students'] == ['An', 'Binh', 'Cuong']
    assert body['providerError'] == {
        'statusCode': 401,
        'body': '{"errors":[{"message":"bad key"}]}'
    }


def test_payment_reminder_missing_email_config(client, database, dispatcher, cron_headers):
    seed_overdue(database)
    dispatcher.config = NotificationConfig(sendgrid_api_key='SG.testing')

    response = client.get('/api/payment-reminder', headers=cron_headers)

    assert response.status_code == 500
    body = response.get_json()
    assert body['success'] is False
    assert 'SENDER_EMAIL' in body['error']


def test_course_end_reminder_requires_credentials(client, database):
    response = client.get('/api/course-end-reminder')

    assert response.status_code == 401
    assert database.calls == []


def test_course_end_reminder_with_nobody_ending(client, database, mail_client, cron_headers):
    database.students = [Student(id='s1', name='Fresh', start_date=days_ago(5), study_duration=12)]

    response = client.get('/api/course-end-reminder', headers=cron_headers)

    assert response.status_code == 200
    assert response.get_json()['studentsCount'] == 0
    assert mail_client.sent == []


def test_course_end_reminder_sends_email(client, database, mail_client, cron_headers):
    database.students = [
        Student(id='s1', name='Ending', start_date=months_ago(10), study_duration=11),
        Student(id='s2', name='Fresh', start_date=days_ago(5), study_duration=12),
        Student(id='s3', name='Finished', start_date=months_ago(12), study_duration=6),
    ]

    response = client.get('/api/course-end-reminder', headers=cron_headers)

    assert response.status_code == 200
    body = response.get_json()
    assert body['success'] is True
    assert body['studentsCount'] == 1
    assert len(mail_client.sent) == 1
    _, text, _ = email_parts(mail_client.sent[0])
    assert 'Ending' in text
    assert 'Fresh' not in text


def test_course_end_reminder_store_failure(client, database, cron_headers):
    database.fail = True

    response = client.get('/api/course-end-reminder', headers=cron_headers)

    assert response.status_code == 500
    assert response.get_json()['success'] is False


def test_course_end_reminder_tolerates_out_of_range_duration(client, database, mail_client, cron_headers):
    database.students = [Student(id='s1', name='Forever', start_date=days_ago(5), study_duration=10**6)]

    response = client.get('/api/course-end-reminder', headers=cron_headers)

    assert response.status_code == 200
    assert response.get_json()['studentsCount'] == 0
    assert mail_client.sent == []


def test_payment_reminder_unexpected_mail_error_returns_json(client, database, mail_client, cron_headers):
    seed_overdue(database)
    mail_client.error = KeyError('errors')

    response = client.get('/api/payment-reminder', headers=cron_headers)

    assert response.status_code == 500
    assert response.is_json
    body = response.get_json()
    assert body['success'] is False
    assert body['message'] == 'Failed to process payment reminder check'


def test_course_end_reminder_unexpected_store_error_returns_json(client, database, cron_headers, monkeypatch):
    def broken():
        raise RuntimeError('stream closed')
    monkeypatch.setattr(database, 'get_all_students', broken)

    response = client.get('/api/course-end-reminder', headers=cron_headers)

    assert response.status_code == 500
    assert response.is_json
    assert response.get_json() == {
        'success': False,
        'message': 'Failed to process course end reminders',
        'error': 'stream closed'
    }


def hours_from_now(hours):
    return (datetime.now(ZoneInfo('Asia/Bangkok')) + timedelta(hours=hours)).isoformat()


def seed_leads(database):
    database.users['saler-1'] = {'name': 'Trang', 'email': 'trang@pte-intensive.test'}
    database.leads = [
        Lead(id='l1', full_name='Minh', status='consulted', assigned_to='saler-1',
             next_follow_up_at=hours_from_now(-3)),
        Lead(id='l2', full_name='Later', status='interested', assigned_to='saler-1',
             next_follow_up_at=hours_from_now(5)),
        Lead(id='l3', full_name='Lost', status='lost', assigned_to='saler-1',
             next_follow_up_at=hours_from_now(-48)),
        Lead(id='l4', full_name='Orphan', status='lead_new', assigned_to='ghost',
             next_follow_up_at=hours_from_now(-1)),
    ]


def test_lead_followup_reminder_requires_credentials(client, database, http_client):
    response = client.get('/api/lead-followup-reminder')

    assert response.status_code == 401
    assert database.calls == []
    assert http_client.posts == []


def test_lead_followup_reminder_with_nothing_overdue(client, database, http_client, cron_headers):
    database.leads = [Lead(id='l1', status='consulted', next_follow_up_at=hours_from_now(2))]

    response = client.get('/api/lead-followup-reminder', headers=cron_headers)

    assert response.status_code == 200
    assert response.get_json() == {'success': True, 'message': 'No overdue leads', 'count': 0}
    assert http_client.posts == []


def test_lead_followup_reminder_alerts_each_overdue_lead(client, database, http_client, cron_headers):
    seed_leads(database)

    response = client.get('/api/lead-followup-reminder', headers=cron_headers)

    assert response.status_code == 200
    body = response.get_json()
    assert body['message'] == 'Processed 2 overdue leads'
    assert body['stats'] == {'total': 2, 'successful': 2, 'failed': 0}
    assert [result['assignee'] for result in body['results']] == ['Trang', 'Unknown']

    assert [post['url'] for post in http_client.posts] == ['https://discord.test/api/webhooks/leads'] * 2
    footers = [post['json']['embeds'][0]['footer']['text'] for post in http_client.posts]
    assert footers == ['Lead ID: l1', 'Lead ID: l4']


def test_lead_followup_reminder_accepts_signed_in_user(client, database, http_client, sign_in):
    sign_in(role='saler')
    seed_leads(database)

    response = client.get('/api/lead-followup-reminder')

    assert response.status_code == 200
    assert response.get_json()['stats']['total'] == 2


def test_lead_followup_reminder_counts_failed_alerts(client, database, http_client, cron_headers):
    seed_leads(database)
    http_client.response = FakeHttpResponse(status_code=429, text='rate limited')

    response = client.get('/api/lead-followup-reminder', headers=cron_headers)

    assert response.status_code == 200
    body = response.get_json()
    assert body['stats'] == {'total': 2, 'successful': 0, 'failed': 2}
    assert body['results'][0] == {'leadId': 'l1', 'leadName': 'Minh', 'success': False,
                                  'error': 'Webhook responded with status 429'}
    assert len(http_client.posts) == 2


def test_lead_followup_reminder_without_webhook(client, database, dispatcher, http_client, cron_headers):
    seed_leads(database)
    dispatcher.config = NotificationConfig(sendgrid_api_key='SG.testing')

    response = client.get('/api/lead-followup-reminder', headers=cron_headers)

    assert response.status_code == 500
    body = response.get_json()
    assert body['message'] == 'Found overdue leads but failed to send follow-up alerts'
    assert body['count'] == 2
    assert 'LEADS_WEBHOOK_URL' in body['error']
    assert http_client.posts == []


def test_lead_followup_reminder_store_failure(client, database, http_client, cron_headers):
    database.fail = True

    response = client.get('/api/lead-followup-reminder', headers=cron_headers)

    assert response.status_code == 500
    assert response.get_json() == {
        'success': False,
        'message': 'Failed to process lead follow-up reminders',
        'error': 'Failed to load data'
    }
    assert http_client.posts == []

import pytest

from app import create_app
from pte_center.modules.errors import DataAccessError
from pte_center.modules.notification_system import NotificationConfig, NotificationDispatcher


class FakeDatabaseManager:
    """In-memory stand-in for the Firestore reader."""

    def __init__(self):
        self.students = []
        self.users = {}
        self.tasks = []
        self.leads = []
        self.fail = False
        self.calls = []

    def _check(self, name):
        self.calls.append(name)
        if self.fail:
            raise DataAccessError('Failed to load data', detail='store unavailable')

    def get_all_students(self):
        self._check('get_all_students')
        return list(self.students)

    def get_webhook_url(self, user_id):
        self._check('get_webhook_url')
        url = (self.users.get(user_id) or {}).get('discordWebhookUrl')
        if isinstance(url, str) and url.strip():
            return url.strip()
        return None

    def get_tasks_assigned_to(self, user_id):
        self._check('get_tasks_assigned_to')
        return [task for task in self.tasks if user_id in task.assigned_to]

    def get_all_leads(self):
        self._check('get_all_leads')
        return list(self.leads)

    def get_user_name(self, user_id):
        self._check('get_user_name')
        user = self.users.get(user_id) or {}
        return user.get('name') or user.get('email') or None


class FakeMailResponse:
    def __init__(self, status_code=202, body=b''):
        self.status_code = status_code
        self.body = body
        self.headers = {}


class FakeMailClient:
    """Records every message handed to SendGrid."""

    def __init__(self):
        self.sent = []
        self.error = None
        self.response = FakeMailResponse()

    def send(self, message):
        self.sent.append(message)
        if self.error is not None:
            raise self.error
        return self.response


class FakeHttpResponse:
    def __init__(self, status_code=204, payload=None, text=''):
        self.status_code = status_code
        self.payload = payload
        self.text = text

    def json(self):
        if self.payload is None:
            raise ValueError('No JSON body')
        return self.payload


class FakeHttpClient:
    """Records outgoing webhook and scheduler requests."""

    def __init__(self):
        self.posts = []
        self.gets = []
        self.response = FakeHttpResponse()
        self.error = None

    def post(self, url, json=None, timeout=None):
        self.posts.append({'url': url, 'json': json, 'timeout': timeout})
        if self.error is not None:
            raise self.error
        return self.response

    def get(self, url, headers=None, timeout=None):
        self.gets.append({'url': url, 'headers': headers or {}, 'timeout': timeout})
        if self.error is not None:
            raise self.error
        return self.response


def email_parts(message):
    """Return (subject, text, html) of a SendGrid Mail object."""
    data = message.get()
    contents = {part['type']: part['value'] for part in data['content']}
    return data['subject'], contents['text/plain'], contents['text/html']


@pytest.fixture
def database():
    return FakeDatabaseManager()


@pytest.fixture
def mail_client():
    return FakeMailClient()


@pytest.fixture
def http_client():
    return FakeHttpClient()


@pytest.fixture
def notification_config():
    return NotificationConfig(
        sendgrid_api_key='SG.testing',
        sender_email='noreply@pte-intensive.test',
        admin_email='admin@pte-intensive.test',
        leads_webhook_url='https://discord.test/api/webhooks/leads'
    )


@pytest.fixture
def dispatcher(notification_config, mail_client, http_client):
    return NotificationDispatcher(notification_config, mail_client=mail_client, http_client=http_client)


@pytest.fixture
def app(database, dispatcher):
    return create_app('testing', database_manager=database, notification_dispatcher=dispatcher)


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def sign_in(client):
    def _sign_in(user_id='user-1', role='admin', name='Test User', email='user@pte-intensive.test'):
        with client.session_transaction() as sess:
            sess['user_id'] = user_id
            sess['user_name'] = name
            sess['user_email'] = email
            if role:
                sess['role'] = role
    return _sign_in


@pytest.fixture
def cron_headers(app):
    return {'Authorization': f"Bearer {app.config['CRON_SECRET']}"}

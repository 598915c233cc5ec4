import pytest
import requests
from google.auth.exceptions import RefreshError

from apps.notifications import push
from apps.notifications.models import PushToken
from apps.notifications.services import notify_user

pytestmark = pytest.mark.django_db

EXPO_TOKEN = 'ExponentPushToken[abc123]'


class FakeResponse:
    def __init__(self, status_code=200, payload=None):
        self.status_code = status_code
        self._payload = payload or {}

    @property
    def ok(self):
        return self.status_code < 400

    def json(self):
        return self._payload

    def raise_for_status(self):
        if not self.ok:
            raise requests.HTTPError(f'HTTP {self.status_code}')


class Recorder(list):
    pass


@pytest.fixture
def post(monkeypatch):
    recorder = Recorder()
    recorder.responses = []

    def fake_post(url, json=None, headers=None, timeout=None):
        recorder.append({'url': url, 'json': json, 'headers': headers})
        return recorder.responses.pop(0)

    monkeypatch.setattr(push.requests, 'post', fake_post)
    return recorder


def test_expo_delivery(post, student):
    token = PushToken.objects.create(user=student, token=EXPO_TOKEN, provider='EXPO', platform='android')
    post.responses.append(FakeResponse(payload={'data': [{'status': 'ok', 'id': 'ticket-1'}]}))

    report = push.send_push_to_user(student, 'Titolo', 'Corpo', data={'type': 'GENERAL'})

    assert (report.sent, report.failed, report.deactivated) == (1, 0, 0)
    assert post[0]['json'][0]['to'] == EXPO_TOKEN
    token.refresh_from_db()
    assert token.last_used_at is not None


def test_expo_device_not_registered_deactivates(post, student):
    token = PushToken.objects.create(user=student, token=EXPO_TOKEN, provider='EXPO')
    post.responses.append(FakeResponse(payload={'data': [
        {'status': 'error', 'message': 'gone', 'details': {'error': 'DeviceNotRegistered'}},
    ]}))

    report = push.send_push_to_user(student, 'Titolo', 'Corpo')

    token.refresh_from_db()
    assert not token.is_active
    assert report.deactivated == 1
    assert report.failed == 1


def test_expo_batches_of_one_hundred(post, student):
    tokens = [
        PushToken(user=student, token=f'ExponentPushToken[{n}]', provider='EXPO')
        for n in range(150)
    ]
    PushToken.objects.bulk_create(tokens)
    stored = list(PushToken.objects.filter(user=student))
    post.responses.extend([
        FakeResponse(payload={'data': [{'status': 'ok'}] * 100}),
        FakeResponse(payload={'data': [{'status': 'ok'}] * 50}),
    ])

    report = push.send_expo_messages(stored, 'Titolo', 'Corpo')

    assert [len(call['json']) for call in post] == [100, 50]
    assert report.sent == 150


def test_expo_http_failure_is_counted(post, student):
    PushToken.objects.create(user=student, token=EXPO_TOKEN, provider='EXPO')
    post.responses.append(FakeResponse(status_code=500))

    report = push.send_push_to_user(student, 'Titolo', 'Corpo')

    assert report.failed == 1
    assert PushToken.objects.get().is_active


def test_malformed_expo_token_is_skipped(post, student):
    token = PushToken.objects.create(user=student, token='not-an-expo-token', provider='EXPO')
    report = push.send_expo_messages([token], 'Titolo', 'Corpo')
    assert report.failed == 1
    assert post == []


class FakeCredentials:
    """Stands in for service-account credentials; each refresh mints a new token."""

    project_id = 'leonardo'

    def __init__(self, fail=False):
        self.token = None
        self.refreshes = 0
        self.expired = True
        self.fail = fail

    @property
    def valid(self):
        return self.token is not None and not self.expired

    def refresh(self, request):
        if self.fail:
            raise RefreshError('invalid_grant')
        self.refreshes += 1
        self.token = f'access-{self.refreshes}'
        self.expired = False


@pytest.fixture
def fcm_credentials(monkeypatch, settings):
    settings.FCM_PROJECT_ID = ''
    credentials = FakeCredentials()
    monkeypatch.setattr(push, '_load_fcm_credentials', lambda: credentials)
    return credentials


def test_fcm_unregistered_token(post, student, fcm_credentials):
    token = PushToken.objects.create(user=student, token='fcm-token', provider='FCM', platform='web')
    post.responses.append(FakeResponse(status_code=404, payload={'error': {'status': 'NOT_FOUND'}}))

    report = push.send_push_to_user(student, 'Titolo', 'Corpo', link='/notifiche')

    token.refresh_from_db()
    assert not token.is_active
    assert report.deactivated == 1
    assert post[0]['url'].endswith('/projects/leonardo/messages:send')
    assert post[0]['headers']['Authorization'] == 'Bearer access-1'
    assert post[0]['json']['message']['webpush']['fcm_options']['link'] == '/notifiche'


def test_fcm_token_is_refreshed_when_expired(post, student, fcm_credentials):
    PushToken.objects.create(user=student, token='fcm-token', provider='FCM')
    post.responses.extend([FakeResponse(), FakeResponse(), FakeResponse()])

    push.send_push_to_user(student, 'Titolo', 'Corpo')
    push.send_push_to_user(student, 'Titolo', 'Corpo')
    fcm_credentials.expired = True
    report = push.send_push_to_user(student, 'Titolo', 'Corpo')

    assert report.sent == 1
    assert fcm_credentials.refreshes == 2
    assert [call['headers']['Authorization'] for call in post] == [
        'Bearer access-1', 'Bearer access-1', 'Bearer access-2',
    ]


def test_fcm_refresh_failure_is_counted(post, student, monkeypatch, settings):
    settings.FCM_PROJECT_ID = 'leonardo'
    monkeypatch.setattr(push, '_load_fcm_credentials', lambda: FakeCredentials(fail=True))
    PushToken.objects.create(user=student, token='fcm-token', provider='FCM')

    report = push.send_push_to_user(student, 'Titolo', 'Corpo')

    assert report.failed == 1
    assert post == []


def test_fcm_not_configured(post, student, monkeypatch, settings):
    settings.FCM_SERVICE_ACCOUNT_FILE = ''
    monkeypatch.setattr(push, '_fcm_credentials', None)
    PushToken.objects.create(user=student, token='fcm-token', provider='FCM')
    report = push.send_push_to_user(student, 'Titolo', 'Corpo')
    assert report.failed == 1
    assert post == []


def test_notification_survives_push_failure(monkeypatch, student, django_capture_on_commit_callbacks):
    attempts = []

    def broken(*args, **kwargs):
        attempts.append(args)
        raise RuntimeError('provider down')

    monkeypatch.setattr('apps.notifications.services.send_push_to_user', broken)
    with django_capture_on_commit_callbacks(execute=True):
        notification = notify_user(student, 'Titolo', 'Corpo')

    assert notification.pk is not None
    assert len(attempts) == 1


def test_register_and_transfer_token(api_client, student, other_student):
    api_client.force_authenticate(student)
    body = {'token': EXPO_TOKEN, 'provider': 'EXPO', 'platform': 'ios'}
    assert api_client.post('/api/v1/notifications/push-tokens/register/', body, format='json').status_code == 201

    api_client.force_authenticate(other_student)
    response = api_client.post('/api/v1/notifications/push-tokens/register/', body, format='json')

    assert response.status_code == 200
    assert PushToken.objects.get().user == other_student

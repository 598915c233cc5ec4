"""
Push notification fan-out.

Delivers a message to every active device token of a user through the
token's provider:

- Expo push API for the mobile app (tokens ``ExponentPushToken[...]``)
- Firebase Cloud Messaging HTTP v1 for web and native FCM tokens, authorized
  with short-lived OAuth2 tokens minted from a service account

Provider failures never propagate to the caller. A "device not registered"
answer deactivates the token; anything else is logged and counted.
"""

import logging
from dataclasses import dataclass

import requests
from django.conf import settings
from django.utils import timezone
from google.auth.exceptions import GoogleAuthError
from google.auth.transport.requests import Request as GoogleAuthRequest
from google.oauth2 import service_account

from .models import PushToken

logger = logging.getLogger(__name__)

EXPO_BATCH_SIZE = 100
EXPO_TOKEN_PREFIX = 'ExponentPushToken['
FCM_SEND_URL = 'https://fcm.googleapis.com/v1/projects/{project_id}/messages:send'
FCM_SCOPES = ['https://www.googleapis.com/auth/firebase.messaging']

_fcm_credentials = None


@dataclass
class PushReport:
    sent: int = 0
    failed: int = 0
    deactivated: int = 0

    def merge(self, other):
        self.sent += other.sent
        self.failed += other.failed
        self.deactivated += other.deactivated
        return self


def _timeout():
    return getattr(settings, 'PUSH_REQUEST_TIMEOUT', 10)


def _stringify(data):
    # FCM only accepts string values in the data payload
    return {str(key): str(value) for key, value in (data or {}).items()}


def _deactivate(token_ids):
    if not token_ids:
        return 0
    count = PushToken.objects.filter(id__in=token_ids).update(is_active=False)
    logger.info('Deactivated %d unregistered push token(s)', count)
    return count


def _touch(token_ids):
    if token_ids:
        PushToken.objects.filter(id__in=token_ids).update(last_used_at=timezone.now())


# ============================================================================
# Expo
# ============================================================================

def send_expo_messages(tokens, title, body, data=None):
    """
    Send to Expo push tokens in batches of 100.

    Args:
        tokens: iterable of PushToken instances with provider EXPO.
        title (str): Notification title.
        body (str): Notification body.
        data (dict): Optional payload delivered to the app.

    Returns:
        PushReport: counts for this provider.
    """
    report = PushReport()
    valid = []
    for token in tokens:
        if token.token.startswith(EXPO_TOKEN_PREFIX):
            valid.append(token)
        else:
            logger.warning('Skipping malformed Expo push token id=%s', token.id)
            report.failed += 1

    url = getattr(settings, 'EXPO_PUSH_URL', 'https://exp.host/--/api/v2/push/send')
    headers = {
        'Accept': 'application/json',
        'Accept-Encoding': 'gzip, deflate',
        'Content-Type': 'application/json',
    }

    for start in range(0, len(valid), EXPO_BATCH_SIZE):
        batch = valid[start:start + EXPO_BATCH_SIZE]
        messages = [
            {
                'to': token.token,
                'title': title,
                'body': body,
                'data': data or {},
                'sound': 'default',
                'priority': 'high',
                'channelId': 'default',
            }
            for token in batch
        ]

        try:
            response = requests.post(url, json=messages, headers=headers, timeout=_timeout())
            response.raise_for_status()
            tickets = response.json().get('data', [])
        except (requests.RequestException, ValueError) as exc:
            logger.warning('Expo push batch of %d failed: %s', len(batch), exc)
            report.failed += len(batch)
            continue

        delivered, unregistered = [], []
        for token, ticket in zip(batch, tickets):
            if ticket.get('status') == 'ok':
                delivered.append(token.id)
                continue
            report.failed += 1
            error = (ticket.get('details') or {}).get('error')
            if error == 'DeviceNotRegistered':
                unregistered.append(token.id)
            else:
                logger.warning('Expo push to token id=%s failed: %s', token.id, ticket.get('message'))

        # Tickets missing from the response count as failures
        report.failed += max(len(batch) - len(tickets), 0)
        report.sent += len(delivered)
        report.deactivated += _deactivate(unregistered)
        _touch(delivered)

    return report


# ============================================================================
# Firebase Cloud Messaging
# ============================================================================

def _is_fcm_unregistered(response):
    if response.status_code == 404:
        return True
    try:
        error = response.json().get('error', {})
    except ValueError:
        return False
    if error.get('status') in ('NOT_FOUND', 'UNREGISTERED'):
        return True
    for detail in error.get('details', []):
        if detail.get('errorCode') == 'UNREGISTERED':
            return True
    return 'registration-token-not-registered' in str(error.get('message', ''))


def _load_fcm_credentials():
    """Service-account credentials from ``FCM_SERVICE_ACCOUNT_FILE``, loaded once."""
    global _fcm_credentials
    path = getattr(settings, 'FCM_SERVICE_ACCOUNT_FILE', '')
    if not path:
        return None
    if _fcm_credentials is None:
        _fcm_credentials = service_account.Credentials.from_service_account_file(path, scopes=FCM_SCOPES)
    return _fcm_credentials


def _fcm_project_id(credentials):
    return getattr(settings, 'FCM_PROJECT_ID', '') or getattr(credentials, 'project_id', '') or ''


def _fcm_access_token(credentials):
    """Return a valid access token, refreshing it when missing or about to expire."""
    if not credentials.valid:
        credentials.refresh(GoogleAuthRequest())
    return credentials.token


def send_fcm_messages(tokens, title, body, data=None, link=None):
    """Send one FCM HTTP v1 request per token. Returns a PushReport."""
    report = PushReport()
    tokens = list(tokens)
    if not tokens:
        return report

    try:
        credentials = _load_fcm_credentials()
    except (OSError, ValueError) as exc:
        logger.error('Cannot load FCM service account: %s', exc)
        credentials = None
    project_id = _fcm_project_id(credentials) if credentials is not None else ''
    if credentials is None or not project_id:
        logger.warning('FCM is not configured, skipping %d token(s)', len(tokens))
        report.failed += len(tokens)
        return report

    try:
        access_token = _fcm_access_token(credentials)
    except GoogleAuthError as exc:
        logger.warning('FCM access token refresh failed: %s', exc)
        report.failed += len(tokens)
        return report

    url = FCM_SEND_URL.format(project_id=project_id)
    headers = {
        'Authorization': f'Bearer {access_token}',
        'Content-Type': 'application/json; UTF-8',
    }

    delivered, unregistered = [], []
    for token in tokens:
        message = {
            'token': token.token,
            'notification': {'title': title, 'body': body},
            'data': _stringify(data),
        }
        if link:
            message['webpush'] = {'fcm_options': {'link': link}}

        try:
            response = requests.post(url, json={'message': message}, headers=headers, timeout=_timeout())
        except requests.RequestException as exc:
            logger.warning('FCM push to token id=%s failed: %s', token.id, exc)
            report.failed += 1
            continue

        if response.ok:
            delivered.append(token.id)
        elif _is_fcm_unregistered(response):
            report.failed += 1
            unregistered.append(token.id)
        else:
            logger.warning('FCM push to token id=%s failed with HTTP %s', token.id, response.status_code)
            report.failed += 1

    report.sent += len(delivered)
    report.deactivated += _deactivate(unregistered)
    _touch(delivered)
    return report


# ============================================================================
# Fan-out
# ============================================================================

def send_push_to_user(user, title, body, data=None, link=None):
    """
    Deliver a push notification to every active token of ``user``.

    Never raises for provider or network failures.

    Returns:
        PushReport: aggregated sent/failed/deactivated counts.
    """
    tokens = list(PushToken.objects.filter(user=user, is_active=True))
    report = PushReport()
    if not tokens:
        return report

    expo_tokens = [t for t in tokens if t.provider == 'EXPO']
    fcm_tokens = [t for t in tokens if t.provider == 'FCM']

    if expo_tokens:
        report.merge(send_expo_messages(expo_tokens, title, body, data))
    if fcm_tokens:
        report.merge(send_fcm_messages(fcm_tokens, title, body, data, link=link))

    logger.debug(
        'Push to user %s: sent=%d failed=%d deactivated=%d',
        user.pk, report.sent, report.failed, report.deactivated
    )
    return report

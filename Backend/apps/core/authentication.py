import hmac

from django.conf import settings
from django.contrib.auth.models import AnonymousUser
from rest_framework import authentication, exceptions


def extract_cron_token(header_value):
    """Accept both ``Bearer <token>`` and a bare token in the Authorization header."""
    if not header_value:
        return ''
    header_value = header_value.strip()
    if header_value.lower().startswith('bearer '):
        return header_value[7:].strip()
    return header_value


class CronSecretAuthentication(authentication.BaseAuthentication):
    """
    Authenticate scheduled sweep calls against ``CRON_SECRET``.

    When the secret is not configured every request is rejected with 401.
    """

    def authenticate(self, request):
        secret = getattr(settings, 'CRON_SECRET', '')
        token = extract_cron_token(request.META.get('HTTP_AUTHORIZATION', ''))

        if not secret or not token:
            raise exceptions.AuthenticationFailed('Unauthorized')
        if not hmac.compare_digest(token.encode(), secret.encode()):
            raise exceptions.AuthenticationFailed('Unauthorized')

        return (AnonymousUser(), 'cron')

    def authenticate_header(self, request):
        return 'Bearer'

"""
API error taxonomy and the project-wide DRF exception handler.

Every error body carries an ``error`` string so clients can rely on a single
key; serializer validation details are kept under ``details``.
"""

import logging

from django.utils.translation import gettext_lazy as _
from rest_framework import status
from rest_framework.exceptions import APIException
from rest_framework.views import exception_handler

logger = logging.getLogger(__name__)


class Conflict(APIException):
    """The request collides with the current state of the resource."""

    status_code = status.HTTP_409_CONFLICT
    default_detail = _('La risorsa è in conflitto con lo stato attuale.')
    default_code = 'conflict'


def _first_message(detail):
    if isinstance(detail, dict):
        for value in detail.values():
            return _first_message(value)
        return ''
    if isinstance(detail, (list, tuple)):
        return _first_message(detail[0]) if detail else ''
    return str(detail)


def api_exception_handler(exc, context):
    """
    Wrap DRF's default handler so every error response has an ``error`` key.

    Unhandled exceptions (response is None) fall through to Django's 500 page.
    """
    response = exception_handler(exc, context)
    if response is None:
        return None

    data = response.data
    if isinstance(data, dict) and 'error' in data:
        return response

    if isinstance(data, dict) and set(data.keys()) == {'detail'}:
        response.data = {'error': str(data['detail'])}
    else:
        response.data = {
            'error': _first_message(data) or str(exc),
            'details': data,
        }

    if response.status_code >= 500:
        logger.warning('API error %s: %s', response.status_code, response.data['error'])

    return response

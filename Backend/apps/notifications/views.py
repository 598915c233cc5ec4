"""
Notification Views
==================
Inbox for the authenticated user and device token registration.
"""

import logging

from django.utils import timezone
from rest_framework import viewsets, mixins, status
from rest_framework.decorators import action
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated

from .models import Notification, PushToken
from .serializers import NotificationSerializer, PushTokenRegisterSerializer, PushTokenSerializer

logger = logging.getLogger(__name__)


class NotificationViewSet(mixins.ListModelMixin, mixins.RetrieveModelMixin, viewsets.GenericViewSet):
    """Notifications of the authenticated user. Users only ever see their own."""

    serializer_class = NotificationSerializer
    permission_classes = [IsAuthenticated]

    def get_queryset(self):
        queryset = Notification.objects.filter(user=self.request.user)
        is_read = self.request.query_params.get('is_read')
        if is_read is not None:
            queryset = queryset.filter(is_read=is_read.lower() == 'true')
        return queryset

    @action(detail=False, methods=['get'])
    def unread_count(self, request):
        count = Notification.objects.filter(user=request.user, is_read=False).count()
        return Response({'count': count})

    @action(detail=True, methods=['post'])
    def mark_read(self, request, pk=None):
        notification = self.get_object()
        if not notification.is_read:
            notification.is_read = True
            notification.read_at = timezone.now()
            notification.save(update_fields=['is_read', 'read_at'])
        return Response(NotificationSerializer(notification).data)

    @action(detail=False, methods=['post'])
    def mark_all_read(self, request):
        updated = Notification.objects.filter(user=request.user, is_read=False).update(
            is_read=True, read_at=timezone.now()
        )
        return Response({'updated': updated})


class PushTokenViewSet(mixins.ListModelMixin, viewsets.GenericViewSet):
    """
    Device tokens of the authenticated user.

    A token already registered by someone else is transferred to the caller:
    the device changed hands (logout/login on the same phone).
    """

    serializer_class = PushTokenSerializer
    permission_classes = [IsAuthenticated]

    def get_queryset(self):
        return PushToken.objects.filter(user=self.request.user)

    @action(detail=False, methods=['post'])
    def register(self, request):
        serializer = PushTokenRegisterSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        existing = PushToken.objects.filter(token=data['token']).first()
        if existing is None:
            token = PushToken.objects.create(
                user=request.user,
                token=data['token'],
                provider=data['provider'],
                platform=data['platform'],
                device_info=data.get('device_info', ''),
            )
            return Response(PushTokenSerializer(token).data, status=status.HTTP_201_CREATED)

        if existing.user_id != request.user.id:
            logger.info('Transferring push token %s from user %s to user %s',
                        existing.id, existing.user_id, request.user.id)

        existing.user = request.user
        existing.provider = data['provider']
        existing.platform = data['platform']
        existing.device_info = data.get('device_info', existing.device_info)
        existing.is_active = True
        existing.last_used_at = timezone.now()
        existing.save()
        return Response(PushTokenSerializer(existing).data, status=status.HTTP_200_OK)

    @action(detail=False, methods=['post'])
    def unregister(self, request):
        token = request.data.get('token')
        if not token:
            return Response({'error': 'Token mancante.'}, status=status.HTTP_400_BAD_REQUEST)
        updated = PushToken.objects.filter(user=request.user, token=token).update(is_active=False)
        return Response({'success': True, 'deactivated': updated})

    @action(detail=False, methods=['post'])
    def unregister_all(self, request):
        updated = PushToken.objects.filter(user=request.user, is_active=True).update(is_active=False)
        return Response({'success': True, 'deactivated': updated})

"""
Notification URLs
=================
"""

from django.urls import path, include
from rest_framework.routers import DefaultRouter

from .views import NotificationViewSet, PushTokenViewSet

app_name = 'notifications'

router = DefaultRouter()
router.register(r'push-tokens', PushTokenViewSet, basename='push-token')
router.register(r'', NotificationViewSet, basename='notification')

urlpatterns = [
    path('', include(router.urls)),
]

# API Endpoints Summary:
#
# GET    /notifications/                           - List own notifications (?is_read=false)
# GET    /notifications/unread_count/              - Unread counter
# POST   /notifications/{id}/mark_read/            - Mark one as read
# POST   /notifications/mark_all_read/             - Mark all as read
# GET    /notifications/push-tokens/               - List own device tokens
# POST   /notifications/push-tokens/register/      - Register / refresh / transfer a token
# POST   /notifications/push-tokens/unregister/    - Deactivate one token
# POST   /notifications/push-tokens/unregister_all/ - Deactivate every token (logout everywhere)

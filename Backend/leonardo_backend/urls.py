"""
URL configuration for leonardo_backend project.
"""
from django.contrib import admin
from django.urls import path, include
from django.conf import settings
from django.conf.urls.static import static
from rest_framework import permissions
from drf_yasg.views import get_schema_view
from drf_yasg import openapi

schema_view = get_schema_view(
    openapi.Info(
        title="Leonardo School API",
        default_version='v1',
        description="Leonardo School - simulazioni, assegnazioni, contratti e notifiche",
        contact=openapi.Contact(email="info@leonardoschool.it"),
    ),
    public=True,
    permission_classes=[permissions.AllowAny],
)

urlpatterns = [
    path('admin/', admin.site.urls),

    path('api/docs/', schema_view.with_ui('swagger', cache_timeout=0), name='schema-swagger-ui'),
    path('api/redoc/', schema_view.with_ui('redoc', cache_timeout=0), name='schema-redoc'),
    path('api/v1/auth/', include('apps.accounts.urls')),
    path('api/v1/groups/', include('apps.groups.urls')),
    path('api/v1/simulations/', include('apps.simulations.urls')),
    path('api/v1/contracts/', include('apps.contracts.urls')),
    path('api/v1/notifications/', include('apps.notifications.urls')),
    path('api/v1/cron/', include('apps.core.urls')),
]

if settings.DEBUG:
    urlpatterns += static(settings.MEDIA_URL, document_root=settings.MEDIA_ROOT)
    urlpatterns += static(settings.STATIC_URL, document_root=settings.STATIC_ROOT)

from django.urls import path, include
from rest_framework.routers import DefaultRouter

from .views import ContractTemplateViewSet, ContractViewSet

app_name = 'contracts'

router = DefaultRouter()
router.register(r'templates', ContractTemplateViewSet, basename='contract-template')
router.register(r'', ContractViewSet, basename='contract')

urlpatterns = [
    path('', include(router.urls)),
]

# API Endpoints Summary:
#
# GET/POST /contracts/templates/          - Contract templates (Admin)
# GET      /contracts/                    - Admin: all contracts, others: own
# GET      /contracts/mine/               - Own contracts
# POST     /contracts/assign/             - Assign a template to a user (Admin)
# POST     /contracts/{id}/sign/          - Sign own pending contract
# POST     /contracts/{id}/cancel/        - Cancel a contract (Admin)

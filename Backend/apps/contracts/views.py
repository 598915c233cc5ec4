"""
Contract Views
==============
Admins manage templates and assign contracts; owners sign them.
"""

import logging

from rest_framework import viewsets, mixins, status
from rest_framework.decorators import action, api_view, permission_classes, authentication_classes
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated, AllowAny

from apps.core.authentication import CronSecretAuthentication
from apps.core.permissions import IsAdmin
from .models import ContractTemplate, Contract
from .serializers import ContractTemplateSerializer, ContractSerializer, ContractAssignSerializer
from .services import expire_contracts

logger = logging.getLogger(__name__)


class ContractTemplateViewSet(viewsets.ModelViewSet):
    queryset = ContractTemplate.objects.all()
    serializer_class = ContractTemplateSerializer
    permission_classes = [IsAuthenticated, IsAdmin]


class ContractViewSet(mixins.ListModelMixin, mixins.RetrieveModelMixin, viewsets.GenericViewSet):
    """
    Contracts.

    Permissions:
    - Admin: sees all, assigns and cancels
    - Others: see and sign their own
    """

    serializer_class = ContractSerializer

    def get_queryset(self):
        user = self.request.user
        queryset = Contract.objects.select_related('template', 'user')
        if not user.is_admin:
            return queryset.filter(user=user)

        status_param = self.request.query_params.get('status')
        if status_param:
            queryset = queryset.filter(status=status_param)
        return queryset

    def get_permissions(self):
        if self.action in ['assign', 'cancel']:
            return [IsAuthenticated(), IsAdmin()]
        return [IsAuthenticated()]

    @action(detail=False, methods=['get'])
    def mine(self, request):
        contracts = Contract.objects.filter(user=request.user).select_related('template', 'user')
        return Response(ContractSerializer(contracts, many=True).data)

    @action(detail=False, methods=['post'])
    def assign(self, request):
        from apps.core.emails import send_contract_assigned_email
        from apps.notifications.services import notify_user

        serializer = ContractAssignSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        contract = Contract.objects.create(assigned_by=request.user, **serializer.validated_data)

        notify_user(
            contract.user,
            'Nuovo contratto',
            f'È disponibile il contratto "{contract.template.name}" da firmare.',
            notification_type='CONTRACT_STATUS',
            link=f'/contratti/{contract.id}',
        )
        send_contract_assigned_email(contract.user, contract)
        return Response(ContractSerializer(contract).data, status=status.HTTP_201_CREATED)

    @action(detail=True, methods=['post'])
    def sign(self, request, pk=None):
        contract = self.get_object()
        if contract.user_id != request.user.id:
            return Response(
                {'error': 'Puoi firmare solo i tuoi contratti.'},
                status=status.HTTP_403_FORBIDDEN
            )
        if contract.status != 'PENDING':
            return Response(
                {'error': 'Il contratto non è in attesa di firma.'},
                status=status.HTTP_409_CONFLICT
            )
        contract.sign()
        contract.save(update_fields=['status', 'signed_at', 'contract_expires_at', 'updated_at'])
        return Response(ContractSerializer(contract).data)

    @action(detail=True, methods=['post'])
    def cancel(self, request, pk=None):
        contract = self.get_object()
        if contract.status in ['EXPIRED', 'CANCELLED']:
            return Response(
                {'error': 'Il contratto non può essere annullato.'},
                status=status.HTTP_400_BAD_REQUEST
            )
        contract.status = 'CANCELLED'
        contract.save(update_fields=['status', 'updated_at'])
        return Response(ContractSerializer(contract).data)


@api_view(['GET', 'POST'])
@authentication_classes([CronSecretAuthentication])
@permission_classes([AllowAny])
def check_expired_contracts_view(request):
    """Daily sweep: expire contracts and suspend their accounts."""
    try:
        report = expire_contracts()
    except Exception as exc:
        logger.error('Expired contracts check aborted', exc_info=True)
        return Response(
            {'error': 'Internal server error', 'details': str(exc)},
            status=status.HTTP_500_INTERNAL_SERVER_ERROR
        )
    return Response(report)

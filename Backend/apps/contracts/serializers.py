from rest_framework import serializers
from django.contrib.auth import get_user_model

from .models import ContractTemplate, Contract

User = get_user_model()


class ContractTemplateSerializer(serializers.ModelSerializer):
    class Meta:
        model = ContractTemplate
        fields = ['id', 'name', 'content', 'duration_days', 'is_active', 'created_at']
        read_only_fields = ['id', 'created_at']


class ContractSerializer(serializers.ModelSerializer):
    template_name = serializers.CharField(source='template.name', read_only=True)
    content = serializers.CharField(source='template.content', read_only=True)
    user_email = serializers.EmailField(source='user.email', read_only=True)
    status_display = serializers.CharField(source='get_status_display', read_only=True)

    class Meta:
        model = Contract
        fields = [
            'id', 'template', 'template_name', 'content', 'user', 'user_email',
            'status', 'status_display', 'assigned_by', 'signed_at',
            'contract_expires_at', 'created_at'
        ]
        read_only_fields = fields


class ContractAssignSerializer(serializers.Serializer):
    template = serializers.PrimaryKeyRelatedField(queryset=ContractTemplate.objects.filter(is_active=True))
    user = serializers.PrimaryKeyRelatedField(queryset=User.objects.exclude(role='ADMIN'))
    admin_notes = serializers.CharField(required=False, allow_blank=True)

    def validate(self, attrs):
        if Contract.objects.filter(user=attrs['user'], template=attrs['template'], status='PENDING').exists():
            raise serializers.ValidationError('Questo contratto è già in attesa di firma.')
        return attrs

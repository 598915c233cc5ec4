from rest_framework import serializers

from .models import Notification, PushToken


class NotificationSerializer(serializers.ModelSerializer):
    class Meta:
        model = Notification
        fields = ['id', 'title', 'message', 'notification_type', 'link', 'is_read', 'read_at', 'created_at']
        read_only_fields = fields


class PushTokenRegisterSerializer(serializers.Serializer):
    token = serializers.CharField(max_length=512)
    provider = serializers.ChoiceField(choices=PushToken.PROVIDER_CHOICES, default='FCM')
    platform = serializers.ChoiceField(choices=PushToken.PLATFORM_CHOICES, default='web')
    device_info = serializers.CharField(max_length=255, required=False, allow_blank=True)

    def validate(self, attrs):
        if attrs['provider'] == 'EXPO' and not attrs['token'].startswith('ExponentPushToken['):
            raise serializers.ValidationError({'token': 'Token Expo non valido.'})
        return attrs


class PushTokenSerializer(serializers.ModelSerializer):
    class Meta:
        model = PushToken
        fields = ['id', 'token', 'provider', 'platform', 'device_info', 'is_active', 'last_used_at', 'created_at']
        read_only_fields = fields

from rest_framework import serializers

from clinic.models import WhatsAppChat, WhatsAppMessage
from clinic.services.whatsapp import MEDIA_TYPES
from .fields import CleanCharField


class MessageListQuerySerializer(serializers.Serializer):
    chatId = serializers.IntegerField()
    page = serializers.IntegerField(required=False, default=1, min_value=1)
    limit = serializers.IntegerField(required=False, default=50, min_value=1, max_value=200)


class SendMessageSerializer(serializers.Serializer):
    """Either ``chatId`` or ``patientPhone``; text needs ``message``, media needs ``mediaId``."""
    chatId = serializers.IntegerField(required=False)
    patientPhone = serializers.CharField(required=False, allow_blank=True, max_length=32)
    message = CleanCharField(required=False, allow_blank=True, max_length=4096)
    mediaId = serializers.CharField(required=False, allow_blank=True, max_length=128)
    mediaType = serializers.ChoiceField(choices=MEDIA_TYPES, required=False)

    def validate(self, attrs):
        if not attrs.get('chatId') and not attrs.get('patientPhone'):
            raise serializers.ValidationError('chatId or patientPhone is required')
        if attrs.get('mediaId'):
            if not attrs.get('mediaType'):
                raise serializers.ValidationError({'mediaType': 'Required when sending media.'})
        elif not attrs.get('message'):
            raise serializers.ValidationError('Message text is required for text messages')
        return attrs


def serialize_chat(c: WhatsAppChat) -> dict:
    return {
        'id': c.id,
        'phone': c.phone,
        'patientId': c.patient_id,
        'patientName': c.patient_name,
        'profileName': c.profile_name,
        'lastMessage': c.last_message,
        'lastMessageAt': c.last_message_at.isoformat() if c.last_message_at else None,
        'unreadCount': c.unread_count,
        'windowEndsAt': c.window_ends_at.isoformat() if c.window_ends_at else None,
    }


def serialize_message(m: WhatsAppMessage) -> dict:
    return {
        'id': m.id,
        'chatId': m.chat_id,
        'direction': m.direction,
        'senderName': m.sender_name,
        'sentBy': m.sent_by_id,
        'messageType': m.message_type,
        'body': m.body,
        'mediaId': m.media_id or None,
        'mimeType': m.mime_type,
        'status': m.status,
        'errorMessage': m.error_message,
        'insideWindow': m.inside_window,
        'whatsappMessageId': m.whatsapp_message_id or None,
        'createdAt': m.created_at.isoformat(),
    }

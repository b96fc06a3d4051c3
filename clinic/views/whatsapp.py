"""
WhatsApp endpoints.

``messages`` and ``chats`` are the front desk inbox: read a chat's
history and reply with text or previously uploaded media (``media``
returns the id to send).  ``media-proxy`` streams WhatsApp media back
to the browser, since the download needs the access token the browser
must not see; only HTTPS URLs on Meta's media hosts are fetched.
``webhook`` receives inbound messages and delivery receipts from the
Cloud API.
"""
from __future__ import annotations

import hmac
import logging
from urllib.parse import urlparse

from django.conf import settings
from django.http import HttpResponse
from rest_framework import status
from rest_framework.decorators import (
    api_view,
    authentication_classes,
    parser_classes,
    permission_classes,
    throttle_classes,
)
from rest_framework.exceptions import PermissionDenied, ValidationError
from rest_framework.parsers import MultiPartParser
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.response import Response
from rest_framework.throttling import ScopedRateThrottle

from ..context import Actor
from ..exceptions import UpstreamError
from ..permissions import IsFrontDesk, IsStaffRole
from ..serializers.whatsapp import (
    MessageListQuerySerializer,
    SendMessageSerializer,
    serialize_chat,
    serialize_message,
)
from ..services import inbox, whatsapp
from ..services.whatsapp import WhatsAppError

logger = logging.getLogger(__name__)

MEDIA_HOSTS = ('lookaside.fbsbx.com', 'graph.facebook.com')


def _allowed(url: str) -> bool:
    parts = urlparse(url)
    host = (parts.hostname or '').lower()
    return parts.scheme == 'https' and any(host == h or host.endswith('.' + h) for h in MEDIA_HOSTS)


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsStaffRole])
def media_proxy(request):
    """Stream media given either its temporary ``url`` or a ``mediaId`` from a chat message."""
    url = request.query_params.get('url')
    media_id = request.query_params.get('mediaId')
    if not url and not media_id:
        raise ValidationError('Media URL required')
    try:
        if not url:
            url = whatsapp.media_url(media_id)
        if not _allowed(url):
            raise ValidationError('Media URL host not allowed')
        upstream = whatsapp.fetch_media(url)
    except WhatsAppError as e:
        logger.warning('media proxy failed: %s', e)
        raise UpstreamError(str(e))
    if not upstream.ok:
        raise UpstreamError(f'Failed to fetch media: HTTP {upstream.status_code}')
    resp = HttpResponse(upstream.content, content_type=upstream.headers.get('content-type', 'application/octet-stream'))
    resp['Cache-Control'] = 'private, max-age=300'
    return resp


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsStaffRole])
@parser_classes([MultiPartParser])
def media_upload(request):
    f = request.FILES.get('file')
    if f is None:
        raise ValidationError({'file': 'This field is required.'})
    content_type = f.content_type or 'application/octet-stream'
    if not any(content_type.startswith(t) for t in settings.ALLOWED_UPLOAD_TYPES):
        raise ValidationError(f'File type {content_type} not allowed')
    if f.size > settings.UPLOAD_MAX_MB * 1024 * 1024:
        raise ValidationError(f'File exceeds {settings.UPLOAD_MAX_MB} MB')
    try:
        media_id = whatsapp.upload_media(f, filename=f.name, content_type=content_type)
    except WhatsAppError as e:
        logger.warning('media upload failed: %s', e)
        raise UpstreamError(str(e))
    return Response({'success': True, 'mediaId': media_id}, status=status.HTTP_201_CREATED)


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsFrontDesk])
def chats(request):
    return Response({'success': True, 'chats': [serialize_chat(c) for c in inbox.list_chats()]})


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, IsFrontDesk])
def messages(request):
    if request.method == 'GET':
        q = MessageListQuerySerializer(data=request.query_params)
        q.is_valid(raise_exception=True)
        v = q.validated_data
        chat, items, total = inbox.list_messages(v['chatId'], page=v['page'], limit=v['limit'])
        return Response({
            'success': True,
            'chat': serialize_chat(chat),
            'messages': [serialize_message(m) for m in items],
            'total': total,
            'page': v['page'],
            'limit': v['limit'],
        })

    s = SendMessageSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    v = s.validated_data
    message = inbox.send_message(
        Actor.from_request(request),
        chat_id=v.get('chatId'),
        phone=v.get('patientPhone', ''),
        body=v.get('message', ''),
        media_id=v.get('mediaId', ''),
        media_type=v.get('mediaType', ''),
    )
    return Response({'success': True, 'message': serialize_message(message)}, status=status.HTTP_201_CREATED)


@api_view(['GET', 'POST'])
@authentication_classes([])
@permission_classes([AllowAny])
@throttle_classes([ScopedRateThrottle])
def webhook(request):
    if request.method == 'GET':
        # subscription handshake: echo hub.challenge when the verify token matches
        token = request.query_params.get('hub.verify_token', '')
        expected = settings.WHATSAPP_VERIFY_TOKEN
        if request.query_params.get('hub.mode') == 'subscribe' and expected and hmac.compare_digest(token, expected):
            return HttpResponse(request.query_params.get('hub.challenge', ''), content_type='text/plain')
        raise PermissionDenied('Webhook verification failed')

    # the signature covers the raw body, so read it before DRF parses it
    if not whatsapp.verify_signature(request.body, request.headers.get('X-Hub-Signature-256', '')):
        logger.warning('WhatsApp webhook with invalid signature rejected')
        raise PermissionDenied('Invalid signature')
    if not isinstance(request.data, dict):
        raise ValidationError('Invalid webhook payload')
    counts = inbox.apply_webhook(request.data)
    return Response({'success': True, **counts})


# webhook deliveries are rated under their own scope, not the anonymous one
webhook.cls.throttle_scope = 'whatsapp_webhook'

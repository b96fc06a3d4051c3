"""
WhatsApp Business Cloud API client.

Template, text and media messages are sent to ``WHATSAPP_API_URL`` (the
phone number's ``/messages`` endpoint).  Each template expects a fixed
body layout, so positional parameters are mapped onto components here
rather than by callers.  Errors surface as :class:`WhatsAppError`; the
notification outbox decides whether to retry, the inbox records the
failure on the message.

Inbound webhook deliveries are authenticated with the app secret
(``X-Hub-Signature-256``).
"""
from __future__ import annotations

import hashlib
import hmac
import logging
import re
from typing import Optional

import requests
from django.conf import settings

logger = logging.getLogger(__name__)

# template name -> number of body text parameters
BODY_PARAM_COUNTS = {
    'appointment_confirmation': 6,  # patient, service, date, time, doctor, appointment id
    'appointment_reschedule': 4,    # patient, doctor, new date, new time
    'appointment_cancelled': 3,     # patient, doctor, date
}
MEDIA_TYPES = ('image', 'document', 'audio', 'video')


class WhatsAppError(RuntimeError):
    pass


def is_configured() -> bool:
    return bool(settings.WHATSAPP_API_URL and settings.WHATSAPP_ACCESS_TOKEN)


def normalize_phone(phone: str) -> str:
    """Strip everything but digits; the API expects international format without '+'."""
    return re.sub(r'\D', '', phone or '')


def _text(value) -> dict:
    return {'type': 'text', 'text': '' if value is None else str(value)}


def build_components(template: str, parameters: list) -> list[dict]:
    params = list(parameters) + [''] * 6
    count = BODY_PARAM_COUNTS.get(template)
    if count is None:
        logger.warning('unknown WhatsApp template %s, sending without components', template)
        return []
    return [{'type': 'body', 'parameters': [_text(p) for p in params[:count]]}]


def _headers() -> dict:
    return {'Authorization': f'Bearer {settings.WHATSAPP_ACCESS_TOKEN}'}


def _error_message(resp: requests.Response) -> str:
    try:
        data = resp.json()
    except ValueError:
        return f'HTTP {resp.status_code}'
    return (data.get('error') or {}).get('message') or f'HTTP {resp.status_code}'


def _send(to: str, kind: str, content: dict) -> Optional[str]:
    """POST one message of ``kind`` to the messages endpoint and return the provider message id."""
    if not is_configured():
        raise WhatsAppError('WhatsApp is not configured')
    phone = normalize_phone(to)
    if not phone:
        raise WhatsAppError('recipient phone number is empty')
    payload = {'messaging_product': 'whatsapp', 'to': phone, 'type': kind, kind: content}
    try:
        r = requests.post(settings.WHATSAPP_API_URL, json=payload, headers=_headers(), timeout=settings.WHATSAPP_TIMEOUT)
    except requests.RequestException as e:
        raise WhatsAppError(f'WhatsApp request failed: {e}') from e
    if not r.ok:
        raise WhatsAppError(f'WhatsApp API error: {_error_message(r)}')
    messages = r.json().get('messages') or [{}]
    message_id = messages[0].get('id')
    logger.info('WhatsApp %s sent to %s (id=%s)', kind, phone, message_id)
    return message_id


def send_template(to: str, template: str, parameters: list) -> Optional[str]:
    return _send(to, 'template', {
        'name': template,
        'language': {'code': settings.WHATSAPP_TEMPLATE_LANGUAGE},
        'components': build_components(template, parameters),
    })


def send_text(to: str, body: str) -> Optional[str]:
    return _send(to, 'text', {'preview_url': True, 'body': body})


def send_media(to: str, media_id: str, media_type: str, caption: str = '') -> Optional[str]:
    """Send previously uploaded media (see :func:`upload_media`) by its id."""
    if media_type not in MEDIA_TYPES:
        raise WhatsAppError(f'unsupported media type {media_type}')
    content = {'id': media_id}
    # audio messages take no caption
    if caption and media_type != 'audio':
        content['caption'] = caption
    return _send(to, media_type, content)


def media_endpoint() -> str:
    """The ``/media`` endpoint of the same phone number as ``WHATSAPP_API_URL``."""
    base = settings.WHATSAPP_API_URL.rstrip('/')
    if base.endswith('/messages'):
        base = base[: -len('/messages')]
    return f'{base}/media'


def upload_media(file_obj, *, filename: str, content_type: str) -> str:
    """Upload a file to WhatsApp and return its media id."""
    if not is_configured():
        raise WhatsAppError('WhatsApp is not configured')
    try:
        r = requests.post(
            media_endpoint(),
            headers=_headers(),
            data={'messaging_product': 'whatsapp', 'type': content_type},
            files={'file': (filename, file_obj, content_type)},
            timeout=settings.WHATSAPP_TIMEOUT,
        )
    except requests.RequestException as e:
        raise WhatsAppError(f'WhatsApp upload failed: {e}') from e
    if not r.ok:
        raise WhatsAppError(f'WhatsApp upload error: {_error_message(r)}')
    media_id = r.json().get('id')
    if not media_id:
        raise WhatsAppError('WhatsApp upload returned no media id')
    return media_id


def fetch_media(url: str) -> requests.Response:
    """Download media from a temporary WhatsApp URL using the access token."""
    if not settings.WHATSAPP_ACCESS_TOKEN:
        raise WhatsAppError('WhatsApp is not configured')
    try:
        return requests.get(url, headers=_headers(), timeout=settings.WHATSAPP_TIMEOUT)
    except requests.RequestException as e:
        raise WhatsAppError(f'Failed to fetch media: {e}') from e


def media_url(media_id: str) -> str:
    """Resolve a media id (inbound attachment or upload) to its temporary download URL."""
    if not is_configured():
        raise WhatsAppError('WhatsApp is not configured')
    # https://graph.facebook.com/<version>/<phone id>/media -> https://graph.facebook.com/<version>
    version_root = media_endpoint().rsplit('/', 2)[0]
    try:
        r = requests.get(f'{version_root}/{media_id}', headers=_headers(), timeout=settings.WHATSAPP_TIMEOUT)
    except requests.RequestException as e:
        raise WhatsAppError(f'Failed to resolve media: {e}') from e
    if not r.ok:
        raise WhatsAppError(f'Failed to resolve media: {_error_message(r)}')
    url = r.json().get('url')
    if not url:
        raise WhatsAppError('WhatsApp returned no media URL')
    return url


def verify_signature(body: bytes, header: str) -> bool:
    secret = settings.WHATSAPP_APP_SECRET
    if not secret or not header.startswith('sha256='):
        return False
    expected = hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()
    return hmac.compare_digest(expected, header[len('sha256='):])

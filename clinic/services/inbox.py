"""
WhatsApp inbox: chats with patients and the messages exchanged in them.

Outbound messages are stored before they are handed to the Cloud API,
so a send that fails stays in the chat with its error.  Inbound
messages and delivery receipts arrive through the webhook
(:func:`apply_webhook`).  WhatsApp only delivers free-form replies
inside the customer service window opened by the patient's last
message; each outbound message records whether it was sent inside it.
"""
from __future__ import annotations

import datetime as dt
import logging
from typing import Optional

from django.conf import settings
from django.db import transaction
from django.db.models import F
from django.utils import timezone
from rest_framework.exceptions import NotFound, ValidationError

from clinic.exceptions import UpstreamError
from clinic.models import Patient, WhatsAppChat, WhatsAppMessage
from clinic.services import whatsapp
from clinic.services.audit import audit
from clinic.services.whatsapp import WhatsAppError

logger = logging.getLogger(__name__)

# receipts can arrive out of order; a message never moves back down this ladder
STATUS_RANK = {
    WhatsAppMessage.STATUS_PENDING: 0,
    WhatsAppMessage.STATUS_SENT: 1,
    WhatsAppMessage.STATUS_DELIVERED: 2,
    WhatsAppMessage.STATUS_READ: 3,
}
UNREAD_STATUSES = (WhatsAppMessage.STATUS_SENT, WhatsAppMessage.STATUS_DELIVERED)


def _match_patient(digits: str) -> Optional[Patient]:
    if len(digits) < 4:
        return None
    for patient in Patient.objects.filter(phone__endswith=digits[-4:]).only('id', 'name', 'phone'):
        if whatsapp.normalize_phone(patient.phone) == digits:
            return patient
    return None


def open_chat(phone: str) -> WhatsAppChat:
    """Return the chat for ``phone``, creating it and linking the patient with that number."""
    digits = whatsapp.normalize_phone(phone)
    if not digits:
        raise ValidationError('Patient phone is required')
    chat, _ = WhatsAppChat.objects.get_or_create(phone=digits)
    if chat.patient_id is None:
        patient = _match_patient(digits)
        if patient is not None:
            chat.patient = patient
            chat.patient_name = patient.name
            chat.save(update_fields=['patient', 'patient_name', 'updated_at'])
    return chat


def get_chat(chat_id: int) -> WhatsAppChat:
    chat = WhatsAppChat.objects.filter(id=chat_id).first()
    if chat is None:
        raise NotFound('Chat not found')
    return chat


def list_chats() -> list[WhatsAppChat]:
    return list(WhatsAppChat.objects.order_by(F('last_message_at').desc(nulls_last=True), '-id'))


def list_messages(chat_id: int, *, page: int = 1, limit: int = 50):
    """One page of a chat, oldest first; opening it marks the patient's messages read."""
    chat = get_chat(chat_id)
    newest_first = chat.messages.order_by('-created_at', '-id')
    total = newest_first.count()
    offset = (page - 1) * limit
    items = list(newest_first[offset:offset + limit])
    items.reverse()

    chat.messages.filter(direction=WhatsAppMessage.DIRECTION_INBOUND, status__in=UNREAD_STATUSES).update(
        status=WhatsAppMessage.STATUS_READ, status_changed_at=timezone.now(),
    )
    if chat.unread_count:
        chat.unread_count = 0
        chat.save(update_fields=['unread_count', 'updated_at'])
    return chat, items, total


def _preview(message: WhatsAppMessage) -> str:
    if message.body:
        return message.body[:255]
    return f'[{message.message_type}]'


def send_message(actor, *, chat_id: Optional[int] = None, phone: str = '', body: str = '',
                 media_id: str = '', media_type: str = '') -> WhatsAppMessage:
    chat = get_chat(chat_id) if chat_id else open_chat(phone)
    message = WhatsAppMessage.objects.create(
        chat=chat,
        direction=WhatsAppMessage.DIRECTION_OUTBOUND,
        sender_name=actor.name,
        sent_by=actor.user,
        message_type=media_type if media_id else WhatsAppMessage.TYPE_TEXT,
        body=body,
        media_id=media_id,
        inside_window=chat.in_service_window(timezone.now()),
    )
    try:
        if media_id:
            provider_id = whatsapp.send_media(chat.phone, media_id, media_type, caption=body)
        else:
            provider_id = whatsapp.send_text(chat.phone, body)
    except WhatsAppError as e:
        logger.warning('WhatsApp message %s to chat %s failed: %s', message.id, chat.id, e)
        message.status = WhatsAppMessage.STATUS_FAILED
        message.error_message = str(e)
        message.status_changed_at = timezone.now()
        message.save(update_fields=['status', 'error_message', 'status_changed_at'])
        raise UpstreamError(str(e))

    message.whatsapp_message_id = provider_id or ''
    message.status = WhatsAppMessage.STATUS_SENT
    message.status_changed_at = timezone.now()
    message.save(update_fields=['whatsapp_message_id', 'status', 'status_changed_at'])
    chat.last_message = _preview(message)
    chat.last_message_at = message.created_at
    chat.save(update_fields=['last_message', 'last_message_at', 'updated_at'])
    audit(actor, 'whatsapp_send', 'whatsapp_message', message.id, chat_id=chat.id, type=message.message_type)
    return message


def _timestamp(value) -> dt.datetime:
    try:
        return dt.datetime.fromtimestamp(int(value), tz=dt.timezone.utc)
    except (TypeError, ValueError, OverflowError):
        return timezone.now()


def _store_inbound(raw: dict, profile_name: str) -> bool:
    wamid = raw.get('id') or ''
    # the Cloud API redelivers until it gets a 200
    if wamid and WhatsAppMessage.objects.filter(whatsapp_message_id=wamid).exists():
        return False
    if not whatsapp.normalize_phone(raw.get('from', '')):
        logger.warning('inbound WhatsApp message %s without sender ignored', wamid)
        return False

    kind = raw.get('type') or WhatsAppMessage.TYPE_TEXT
    body, media_id, mime_type = '', '', ''
    if kind == WhatsAppMessage.TYPE_TEXT:
        body = (raw.get('text') or {}).get('body', '')
    elif kind in whatsapp.MEDIA_TYPES:
        media = raw.get(kind) or {}
        body = media.get('caption', '')
        media_id = media.get('id', '')
        mime_type = media.get('mime_type', '')
    else:
        kind = WhatsAppMessage.TYPE_UNSUPPORTED

    received_at = _timestamp(raw.get('timestamp'))
    chat = open_chat(raw['from'])
    message = WhatsAppMessage.objects.create(
        chat=chat,
        direction=WhatsAppMessage.DIRECTION_INBOUND,
        sender_name=chat.patient_name or profile_name,
        message_type=kind,
        body=body,
        media_id=media_id,
        mime_type=mime_type,
        whatsapp_message_id=wamid,
        status=WhatsAppMessage.STATUS_DELIVERED,
        created_at=received_at,
    )
    WhatsAppChat.objects.filter(id=chat.id).update(
        profile_name=profile_name or chat.profile_name,
        last_message=_preview(message),
        last_message_at=received_at,
        unread_count=F('unread_count') + 1,
        window_ends_at=received_at + dt.timedelta(hours=settings.WHATSAPP_SERVICE_WINDOW_HOURS),
        updated_at=timezone.now(),
    )
    return True


def _apply_status(raw: dict) -> bool:
    message = WhatsAppMessage.objects.filter(
        whatsapp_message_id=raw.get('id') or '', direction=WhatsAppMessage.DIRECTION_OUTBOUND,
    ).first()
    if message is None:
        return False
    new = raw.get('status')
    if new == WhatsAppMessage.STATUS_FAILED:
        errors = raw.get('errors') or [{}]
        message.error_message = errors[0].get('title') or errors[0].get('message') or 'Delivery failed'
    elif STATUS_RANK.get(new, -1) <= STATUS_RANK.get(message.status, -1):
        return False
    message.status = new
    message.status_changed_at = _timestamp(raw.get('timestamp'))
    message.save(update_fields=['status', 'error_message', 'status_changed_at'])
    return True


@transaction.atomic
def apply_webhook(payload: dict) -> dict:
    """Store inbound messages and delivery receipts from one webhook call."""
    counts = {'messages': 0, 'statuses': 0}
    for entry in payload.get('entry') or []:
        for change in entry.get('changes') or []:
            value = change.get('value') or {}
            names = {
                c.get('wa_id'): (c.get('profile') or {}).get('name', '')
                for c in value.get('contacts') or []
            }
            for raw in value.get('messages') or []:
                if _store_inbound(raw, names.get(raw.get('from'), '')):
                    counts['messages'] += 1
            for raw in value.get('statuses') or []:
                if _apply_status(raw):
                    counts['statuses'] += 1
    logger.info('WhatsApp webhook: %(messages)s messages, %(statuses)s receipts', counts)
    return counts

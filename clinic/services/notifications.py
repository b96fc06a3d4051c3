"""
Notification outbox.

Write paths call the ``notify_*`` helpers, which only insert
:class:`NotificationTask` rows inside the caller's transaction.  Once
that transaction commits, an immediate delivery attempt is scheduled
with ``transaction.on_commit`` (when ``NOTIFY_DISPATCH_ON_COMMIT`` is
enabled).  Failed attempts are rescheduled with exponential backoff and
picked up by ``manage.py dispatch_notifications``.

Delivery failures are logged and recorded on the task; they never
reach the request that triggered the notification.
"""
from __future__ import annotations

import logging
from datetime import timedelta
from typing import Optional

from django.conf import settings
from django.db import transaction
from django.utils import timezone

from clinic.models import Appointment, AppointmentReport, NotificationTask, Patient, User
from clinic.services import mailer, whatsapp

logger = logging.getLogger(__name__)

# payload keys scrubbed once a task reaches a terminal state
SENSITIVE_KEYS = ('password', 'reset_link')


def backoff_seconds(attempt: int) -> int:
    """Delay before retry number ``attempt`` (0 for the first retry)."""
    return settings.NOTIFY_RETRY_BASE_SECONDS * 2 ** attempt


def is_channel_configured(channel: str) -> bool:
    if channel == NotificationTask.CHANNEL_EMAIL:
        return mailer.is_configured()
    if channel == NotificationTask.CHANNEL_WHATSAPP:
        return whatsapp.is_configured()
    return False


def enqueue(channel: str, recipient: str, template: str, payload: dict) -> Optional[NotificationTask]:
    if not recipient:
        logger.info('skipping %s %s: no recipient', channel, template)
        return None
    task = NotificationTask.objects.create(
        channel=channel,
        recipient=recipient,
        template=template,
        payload=payload,
        max_attempts=settings.NOTIFY_MAX_ATTEMPTS,
        next_attempt_at=timezone.now(),
    )
    if settings.NOTIFY_DISPATCH_ON_COMMIT:
        transaction.on_commit(lambda: deliver_by_id(task.id))
    return task


def _send(task: NotificationTask) -> Optional[str]:
    if task.channel == NotificationTask.CHANNEL_EMAIL:
        mailer.send_template_email(task.recipient, task.template, task.payload.get('context', {}))
        return None
    return whatsapp.send_template(task.recipient, task.template, task.payload.get('parameters', []))


def _scrub(payload: dict) -> dict:
    def clean(d):
        return {k: ('***' if k in SENSITIVE_KEYS else clean(v) if isinstance(v, dict) else v) for k, v in d.items()}
    return clean(payload)


def deliver(task: NotificationTask) -> NotificationTask:
    """Attempt delivery of one pending task and record the outcome."""
    if task.status != NotificationTask.STATUS_PENDING:
        return task
    now = timezone.now()
    if not is_channel_configured(task.channel):
        task.status = NotificationTask.STATUS_SKIPPED
        task.last_error = f'{task.channel} channel not configured'
        task.payload = _scrub(task.payload)
        task.save(update_fields=['status', 'last_error', 'payload'])
        logger.info('notification %s skipped: %s', task.id, task.last_error)
        return task
    try:
        message_id = _send(task)
    except Exception as e:
        task.attempts += 1
        task.last_error = str(e)[:2000]
        if task.attempts >= task.max_attempts:
            task.status = NotificationTask.STATUS_FAILED
            task.payload = _scrub(task.payload)
            logger.error('notification %s (%s:%s) failed permanently: %s', task.id, task.channel, task.template, e)
        else:
            task.next_attempt_at = now + timedelta(seconds=backoff_seconds(task.attempts - 1))
            logger.warning('notification %s (%s:%s) attempt %s failed, retry at %s: %s',
                           task.id, task.channel, task.template, task.attempts, task.next_attempt_at, e)
        task.save(update_fields=['attempts', 'last_error', 'status', 'next_attempt_at', 'payload'])
        return task
    task.attempts += 1
    task.status = NotificationTask.STATUS_SENT
    task.provider_message_id = message_id or ''
    task.sent_at = now
    task.last_error = ''
    task.payload = _scrub(task.payload)
    task.save(update_fields=['attempts', 'status', 'provider_message_id', 'sent_at', 'last_error', 'payload'])
    logger.info('notification %s (%s:%s) sent to %s', task.id, task.channel, task.template, task.recipient)
    return task


def deliver_by_id(task_id: int) -> None:
    task = NotificationTask.objects.filter(id=task_id).first()
    if task is None:
        return
    try:
        deliver(task)
    except Exception:
        logger.exception('unexpected error delivering notification %s', task_id)


def dispatch_due(limit: int = 100) -> dict[str, int]:
    """Deliver pending tasks whose retry time has come; return counts by resulting status."""
    counts = {s: 0 for s, _ in NotificationTask.STATUS_CHOICES}
    ids = list(
        NotificationTask.objects
        .filter(status=NotificationTask.STATUS_PENDING, next_attempt_at__lte=timezone.now())
        .order_by('next_attempt_at', 'id')
        .values_list('id', flat=True)[:limit]
    )
    for task_id in ids:
        with transaction.atomic():
            task = NotificationTask.objects.select_for_update().filter(
                id=task_id, status=NotificationTask.STATUS_PENDING
            ).first()
            if task is None:
                continue
            deliver(task)
        counts[task.status] += 1
    return counts


# ---------------------------------------------------------------------
# Triggers
# ---------------------------------------------------------------------
def _appointment_context(appt: Appointment) -> dict:
    return {
        'patient_name': appt.patient_name,
        'doctor_name': appt.doctor_name,
        'date': appt.date.isoformat(),
        'time': appt.time.strftime('%H:%M'),
        'type': appt.type,
        'chair': appt.chair,
        'appointment_id': appt.id,
    }


def notify_appointment_created(appt: Appointment) -> None:
    ctx = _appointment_context(appt)
    enqueue(NotificationTask.CHANNEL_WHATSAPP, appt.patient.phone, 'appointment_confirmation', {
        'parameters': [ctx['patient_name'], ctx['type'], ctx['date'], ctx['time'], ctx['doctor_name'], str(appt.id)],
    })
    enqueue(NotificationTask.CHANNEL_EMAIL, appt.patient.email, 'appointment_confirmation', {'context': ctx})


def notify_appointment_rescheduled(appt: Appointment, *, old_date, old_time) -> None:
    ctx = _appointment_context(appt)
    ctx.update(old_date=old_date.isoformat(), old_time=old_time.strftime('%H:%M'))
    enqueue(NotificationTask.CHANNEL_WHATSAPP, appt.patient.phone, 'appointment_reschedule', {
        'parameters': [ctx['patient_name'], ctx['doctor_name'], ctx['date'], ctx['time']],
    })
    enqueue(NotificationTask.CHANNEL_EMAIL, appt.patient.email, 'appointment_rescheduled', {'context': ctx})


def notify_appointment_cancelled(appt: Appointment, *, phone: str, email: str) -> None:
    """Takes contact details explicitly since the appointment may already be deleted."""
    ctx = _appointment_context(appt)
    enqueue(NotificationTask.CHANNEL_WHATSAPP, phone, 'appointment_cancelled', {
        'parameters': [ctx['patient_name'], ctx['doctor_name'], ctx['date']],
    })
    enqueue(NotificationTask.CHANNEL_EMAIL, email, 'appointment_cancelled', {'context': ctx})


def notify_report_ready(report: AppointmentReport) -> None:
    appt = report.appointment
    enqueue(NotificationTask.CHANNEL_EMAIL, report.patient.email, 'report_ready', {'context': {
        'patient_name': report.patient.name,
        'doctor_name': report.doctor.display_name,
        'date': appt.date.isoformat(),
        'type': appt.type,
        'findings': report.findings,
        'procedures': report.procedures,
        'next_visit': report.next_visit.isoformat() if report.next_visit else '',
        'follow_up_details': report.follow_up_details,
        'report_id': report.id,
    }})


def notify_patient_credentials(patient: Patient, password: str) -> None:
    enqueue(NotificationTask.CHANNEL_EMAIL, patient.email, 'patient_credentials', {'context': {
        'patient_name': patient.name,
        'email': patient.email,
        'password': password,
        'login_url': f'{settings.APP_URL}/login',
    }})


def notify_staff_credentials(user: User, password: str) -> None:
    enqueue(NotificationTask.CHANNEL_EMAIL, user.email, 'staff_credentials', {'context': {
        'name': user.display_name,
        'username': user.username,
        'email': user.email,
        'role': user.get_role_display(),
        'password': password,
        'login_url': f'{settings.APP_URL}/login',
    }})


def notify_password_reset(user: User, raw_token: str) -> None:
    enqueue(NotificationTask.CHANNEL_EMAIL, user.email, 'password_reset', {'context': {
        'name': user.display_name,
        'reset_link': f'{settings.APP_URL}/reset-password?token={raw_token}',
        'ttl_minutes': settings.PASSWORD_RESET_TTL_MINUTES,
    }})

"""
Appointment lifecycle: listing, booking, updates and deletion.

Every booking or move is validated with
:func:`clinic.services.scheduling.check_doctor_availability`; a clash
is reported as 409.  Doctors see the appointments they hold (plus the
ones referred back to them) and may only mark their own appointments
cancelled or completed; booking and deletion are front desk tasks.
Patient notifications are queued in the same transaction as the write.
"""
from __future__ import annotations

import logging

from django.conf import settings
from django.db import transaction
from django.db.models import Q
from rest_framework.exceptions import NotFound, PermissionDenied, ValidationError

from clinic.exceptions import Conflict
from clinic.models import Appointment, Patient, User
from clinic.services import notifications
from clinic.services.audit import audit
from clinic.services.scheduling import check_doctor_availability

logger = logging.getLogger(__name__)

DOCTOR_STATUSES = {Appointment.STATUS_CANCELLED, Appointment.STATUS_COMPLETED}


def _visible_to_doctor(doctor_id: int) -> Q:
    return Q(doctor_id=doctor_id) | Q(original_doctor_id=doctor_id, awaiting_original_doctor_action=True)


def list_appointments(actor, *, patient_id=None, doctor_id=None, date=None, status=None):
    qs = Appointment.objects.all()
    if actor.is_doctor:
        qs = qs.filter(_visible_to_doctor(actor.id))
    elif doctor_id:
        qs = qs.filter(doctor_id=doctor_id)
    if patient_id:
        qs = qs.filter(patient_id=patient_id)
    if date:
        qs = qs.filter(date=date)
    if status:
        qs = qs.filter(status=status)
    return list(qs.order_by('-date', '-time', '-id'))


def get_appointment(actor, appointment_id: int) -> Appointment:
    appt = Appointment.objects.select_related('patient').filter(id=appointment_id).first()
    if appt is None:
        raise NotFound('Appointment not found')
    if actor.is_doctor and not (
        appt.doctor_id == actor.id
        or (appt.original_doctor_id == actor.id and appt.awaiting_original_doctor_action)
    ):
        raise PermissionDenied('Access denied')
    return appt


def _doctor_or_error(doctor_id: int) -> User:
    doctor = User.objects.filter(id=doctor_id, role=User.ROLE_DOCTOR).first()
    if doctor is None:
        raise ValidationError('Invalid doctor selected')
    return doctor


def _ensure_available(doctor_id, date, time, duration, exclude_id=None) -> None:
    check = check_doctor_availability(doctor_id, date, time, duration, exclude_appointment_id=exclude_id)
    if not check.is_valid:
        raise Conflict(check.error)


@transaction.atomic
def create_appointment(actor, data: dict) -> Appointment:
    if not actor.is_front_desk:
        raise PermissionDenied('Doctors cannot create appointments')
    patient = Patient.objects.filter(id=data['patientId']).first()
    if patient is None:
        raise ValidationError('Invalid patient selected')
    doctor = _doctor_or_error(data['doctorId'])
    duration = data.get('duration') or settings.DEFAULT_APPOINTMENT_MINUTES

    # lock the doctor row so concurrent bookings for the same doctor serialize
    User.objects.select_for_update().filter(id=doctor.id).first()
    _ensure_available(doctor.id, data['date'], data['time'], duration)

    appt = Appointment.objects.create(
        patient=patient,
        patient_name=patient.name,
        doctor=doctor,
        doctor_name=doctor.display_name,
        date=data['date'],
        time=data['time'],
        duration_minutes=duration,
        type=data.get('type') or 'Consultation',
        chair=data.get('chair', ''),
        status=Appointment.STATUS_CONFIRMED,
    )
    notifications.notify_appointment_created(appt)
    audit(actor, 'appointment_create', 'appointment', appt.id, doctor_id=doctor.id, patient_id=patient.id)
    logger.info('appointment %s booked for doctor %s on %s %s', appt.id, doctor.id, appt.date, appt.time)
    return appt


@transaction.atomic
def update_appointment(actor, appointment_id: int, data: dict) -> Appointment:
    appt = get_appointment(actor, appointment_id)

    if actor.is_doctor:
        if appt.doctor_id != actor.id:
            raise PermissionDenied('Doctors can only update their own appointments')
        extra = set(data) - {'status'}
        if extra or data.get('status') not in DOCTOR_STATUSES:
            raise PermissionDenied('Doctors can only mark appointments as cancelled or completed')

    old_date, old_time, old_status = appt.date, appt.time, appt.status

    if 'doctorId' in data and data['doctorId'] != appt.doctor_id:
        doctor = _doctor_or_error(data['doctorId'])
        appt.doctor = doctor
        appt.doctor_name = doctor.display_name
    for key, attr in (('date', 'date'), ('time', 'time'), ('type', 'type'), ('chair', 'chair'),
                      ('duration', 'duration_minutes'), ('status', 'status')):
        if key in data:
            setattr(appt, attr, data[key])

    # reviving a cancelled appointment re-occupies its slot
    slot_changed = (
        appt.date != old_date or appt.time != old_time
        or 'duration' in data or 'doctorId' in data
        or old_status == Appointment.STATUS_CANCELLED
    )
    if slot_changed and appt.status != Appointment.STATUS_CANCELLED:
        User.objects.select_for_update().filter(id=appt.doctor_id).first()
        _ensure_available(appt.doctor_id, appt.date, appt.time, appt.duration_minutes, exclude_id=appt.id)

    appt.save()

    if appt.status == Appointment.STATUS_CANCELLED and old_status != Appointment.STATUS_CANCELLED:
        notifications.notify_appointment_cancelled(appt, phone=appt.patient.phone, email=appt.patient.email)
    elif appt.date != old_date or appt.time != old_time:
        notifications.notify_appointment_rescheduled(appt, old_date=old_date, old_time=old_time)

    audit(actor, 'appointment_update', 'appointment', appt.id, fields=sorted(data))
    return appt


@transaction.atomic
def delete_appointment(actor, appointment_id: int) -> None:
    if not actor.is_front_desk:
        raise PermissionDenied('Doctors cannot delete appointments')
    appt = Appointment.objects.select_related('patient').filter(id=appointment_id).first()
    if appt is None:
        raise NotFound('Appointment not found')
    if appt.status not in (Appointment.STATUS_CANCELLED, Appointment.STATUS_COMPLETED):
        notifications.notify_appointment_cancelled(appt, phone=appt.patient.phone, email=appt.patient.email)
    appt.delete()
    audit(actor, 'appointment_delete', 'appointment', appointment_id)

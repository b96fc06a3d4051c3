"""Visit reports written by the treating doctor."""
from __future__ import annotations

import logging

from django.db import transaction
from rest_framework.exceptions import NotFound, PermissionDenied

from clinic.models import Appointment, AppointmentReport
from clinic.services import notifications
from clinic.services.audit import audit
from clinic.services.patients import doctor_has_treated

logger = logging.getLogger(__name__)


def _with_relations():
    return AppointmentReport.objects.select_related('appointment', 'patient', 'doctor')


def _can_read(actor, report: AppointmentReport) -> bool:
    if actor.kind == 'patient':
        return report.patient_id == actor.id
    if actor.is_doctor:
        return report.doctor_id == actor.id or doctor_has_treated(actor.id, report.patient)
    return True


def list_reports(actor, *, appointment_id=None, patient_id=None):
    qs = _with_relations()
    if appointment_id:
        qs = qs.filter(appointment_id=appointment_id)
    if patient_id:
        qs = qs.filter(patient_id=patient_id)
    return [r for r in qs if _can_read(actor, r)]


def get_report(actor, report_id: int) -> AppointmentReport:
    report = _with_relations().filter(id=report_id).first()
    if report is None:
        raise NotFound('Report not found')
    if not _can_read(actor, report):
        raise PermissionDenied('Access denied')
    return report


@transaction.atomic
def create_report(actor, data: dict) -> AppointmentReport:
    if not actor.is_doctor:
        raise PermissionDenied('Only doctors can create reports')
    appt = Appointment.objects.select_related('patient').filter(id=data['appointmentId']).first()
    if appt is None:
        raise NotFound('Appointment not found')
    if appt.doctor_id != actor.id:
        raise PermissionDenied('Only the treating doctor can report on this appointment')

    report = AppointmentReport.objects.create(
        appointment=appt,
        patient=appt.patient,
        doctor_id=actor.id,
        procedures=[dict(p) for p in data['procedures']],
        findings=data['findings'],
        notes=data['notes'],
        next_visit=data.get('nextVisit'),
        follow_up_details=data.get('followUpDetails', ''),
    )
    appt.patient.last_visit = appt.date
    appt.patient.save(update_fields=['last_visit'])
    report = _with_relations().get(id=report.id)
    notifications.notify_report_ready(report)
    audit(actor, 'report_create', 'report', report.id, appointment_id=appt.id)
    logger.info('report %s created for appointment %s', report.id, appt.id)
    return report

"""
Tooth charts: one 32-tooth map per chart, keyed "1".."32".

Receptionists have no access.  A new chart starts with every tooth
healthy; doctors may only update charts they own.
"""
from __future__ import annotations

from django.db import transaction
from django.utils import timezone
from rest_framework.exceptions import NotFound, PermissionDenied, ValidationError

from clinic.models import Patient, ToothChart
from clinic.services.audit import audit
from clinic.services.patients import doctor_has_treated


def blank_teeth(now=None) -> dict:
    stamp = (now or timezone.now()).isoformat()
    return {str(n): {'status': 'healthy', 'notes': '', 'lastUpdated': stamp} for n in ToothChart.TOOTH_NUMBERS}


def _require_clinical(actor) -> None:
    if not (actor.is_admin or actor.is_doctor):
        raise PermissionDenied('Receptionists cannot access tooth charts')


def _merge_teeth(chart: ToothChart, updates: dict, now) -> None:
    teeth = dict(chart.teeth or blank_teeth(now))
    for number, tooth in updates.items():
        current = dict(teeth.get(number) or {'status': 'healthy', 'notes': ''})
        current['status'] = tooth['status']
        if 'notes' in tooth:
            current['notes'] = tooth['notes']
        current['lastUpdated'] = now.isoformat()
        teeth[number] = current
    chart.teeth = teeth


def list_charts(actor, patient_id: int | None = None):
    _require_clinical(actor)
    qs = ToothChart.objects.select_related('doctor').order_by('-updated_at', '-id')
    if patient_id:
        qs = qs.filter(patient_id=patient_id)
    if actor.is_doctor:
        qs = qs.filter(doctor_id=actor.id)
    return list(qs)


def get_chart(actor, chart_id: int) -> ToothChart:
    _require_clinical(actor)
    chart = ToothChart.objects.select_related('doctor', 'patient').filter(id=chart_id).first()
    if chart is None:
        raise NotFound('Tooth chart not found')
    if actor.is_doctor and chart.doctor_id != actor.id and not doctor_has_treated(actor.id, chart.patient):
        raise PermissionDenied('Access denied')
    return chart


@transaction.atomic
def create_chart(actor, data: dict) -> ToothChart:
    _require_clinical(actor)
    patient_id = data.get('patientId')
    if not patient_id:
        raise ValidationError({'patientId': 'This field is required.'})
    patient = Patient.objects.filter(id=patient_id).first()
    if patient is None:
        raise NotFound('Patient not found')
    if actor.is_doctor:
        doctor_id = actor.id
    elif patient.assigned_doctor_id:
        doctor_id = patient.assigned_doctor_id
    else:
        raise ValidationError('Patient has no assigned doctor to own the chart')

    now = timezone.now()
    chart = ToothChart(patient=patient, doctor_id=doctor_id, teeth=blank_teeth(now),
                       overall_notes=data.get('overallNotes', ''), last_review=now)
    _merge_teeth(chart, data.get('teeth') or {}, now)
    chart.save()
    audit(actor, 'tooth_chart_create', 'tooth_chart', chart.id, patient_id=patient.id)
    return ToothChart.objects.select_related('doctor').get(id=chart.id)


@transaction.atomic
def update_chart(actor, chart_id: int, data: dict) -> ToothChart:
    _require_clinical(actor)
    chart = ToothChart.objects.select_for_update().filter(id=chart_id).first()
    if chart is None:
        raise NotFound('Tooth chart not found')
    if actor.is_doctor and chart.doctor_id != actor.id:
        raise PermissionDenied('You can only update your own tooth charts')
    now = timezone.now()
    _merge_teeth(chart, data.get('teeth') or {}, now)
    if 'overallNotes' in data:
        chart.overall_notes = data['overallNotes']
    chart.last_review = now
    chart.save()
    audit(actor, 'tooth_chart_update', 'tooth_chart', chart.id, teeth=sorted((data.get('teeth') or {}).keys()))
    return ToothChart.objects.select_related('doctor').get(id=chart.id)

"""
Doctor-authored medical history.

Each patient has at most one :class:`MedicalHistory` holding an ordered
list of entries.  Entries are addressed by their index in (date, id)
order, which is how the front-end lists them; an index outside
``[0, len)`` is rejected with 400.  Only doctors write, and only the
author of an entry may edit or remove it.
"""
from __future__ import annotations

import logging

from django.db import transaction
from django.utils import timezone
from rest_framework.exceptions import NotFound, PermissionDenied, ValidationError

from clinic.models import MedicalHistory, MedicalHistoryEntry, Patient
from clinic.services.audit import audit
from clinic.services.patients import doctor_has_treated

logger = logging.getLogger(__name__)


def _patient_or_404(patient_id: int) -> Patient:
    patient = Patient.objects.filter(id=patient_id).first()
    if patient is None:
        raise NotFound('Patient not found')
    return patient


def _require_doctor(actor, verb: str) -> None:
    if not actor.is_doctor:
        raise PermissionDenied(f'Only doctors can {verb} medical history')


def get_history(actor, patient_id: int) -> MedicalHistory | None:
    patient = _patient_or_404(patient_id)
    if actor.is_doctor and not doctor_has_treated(actor.id, patient):
        raise PermissionDenied('Access denied')
    return MedicalHistory.objects.filter(patient=patient).first()


@transaction.atomic
def add_entry(actor, patient_id: int, entry: dict) -> MedicalHistory:
    _require_doctor(actor, 'manage')
    patient = _patient_or_404(patient_id)
    history, _ = MedicalHistory.objects.get_or_create(patient=patient, defaults={'created_by_id': actor.id})
    MedicalHistoryEntry.objects.create(
        history=history,
        doctor_id=actor.id,
        doctor_name=actor.name,
        date=timezone.now(),
        notes=entry.get('notes', ''),
        findings=entry.get('findings', ''),
        treatment=entry.get('treatment', ''),
        medications=entry.get('medications', []),
    )
    history.save(update_fields=['updated_at'])
    audit(actor, 'history_add', 'medical_history', history.id, patient_id=patient.id)
    return history


def _entry_at(history: MedicalHistory, index: int) -> MedicalHistoryEntry:
    entries = history.ordered_entries()
    if index < 0 or index >= len(entries):
        raise ValidationError('Invalid entry index')
    return entries[index]


def _locked_history(history_id: int) -> MedicalHistory:
    history = MedicalHistory.objects.select_for_update().filter(id=history_id).first()
    if history is None:
        raise NotFound('Medical history not found')
    return history


@transaction.atomic
def update_entry(actor, history_id: int, index: int, entry: dict) -> MedicalHistory:
    _require_doctor(actor, 'edit')
    history = _locked_history(history_id)
    target = _entry_at(history, index)
    if target.doctor_id != actor.id:
        raise PermissionDenied('You can only edit entries you created')
    for field in ('notes', 'findings', 'treatment', 'medications'):
        if field in entry:
            setattr(target, field, entry[field])
    target.save()
    history.save(update_fields=['updated_at'])
    audit(actor, 'history_update', 'medical_history', history.id, entry_id=target.id)
    return history


@transaction.atomic
def delete_entry(actor, history_id: int, index: int) -> MedicalHistory:
    _require_doctor(actor, 'delete')
    history = _locked_history(history_id)
    target = _entry_at(history, index)
    if target.doctor_id != actor.id:
        raise PermissionDenied('You can only delete entries you created')
    entry_id = target.id
    target.delete()
    history.save(update_fields=['updated_at'])
    audit(actor, 'history_delete', 'medical_history', history.id, entry_id=entry_id)
    return history

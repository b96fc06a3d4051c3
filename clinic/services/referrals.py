"""
Referral state tracker.

A referral hands an appointment from one doctor to another.  Its status
moves only along the transitions in :data:`TRANSITIONS`, and only the
referral's ``to_doctor`` may move it.  Guards run in a fixed order so
callers always get the same error for the same situation:

1. unknown action -> 400
2. referral not found -> 404
3. caller is not a doctor, or not the ``to_doctor`` -> 403
4. referral's appointment not found -> 404
5. action not allowed from the current status -> 400

When a referral is opened, the appointment's doctor assignment is
snapshotted onto it; rejecting puts that assignment back exactly.
The referral row is locked for the duration of a transition.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Optional

from django.db import transaction
from django.db.models import Q
from django.utils import timezone
from rest_framework.exceptions import NotFound, PermissionDenied, ValidationError

from clinic.exceptions import Conflict
from clinic.models import Appointment, AppointmentReferral, User
from clinic.services.audit import audit

logger = logging.getLogger(__name__)

Referral = AppointmentReferral


@dataclass(frozen=True)
class Transition:
    source: str
    target: str
    apply: Optional[Callable[[Appointment, AppointmentReferral, User, str], list[str]]] = None


def _accept(appt: Appointment, referral: AppointmentReferral, doctor: User, notes: str) -> list[str]:
    # the first doctor to hand the appointment over stays the original one
    if not appt.original_doctor_id:
        appt.original_doctor_id = appt.doctor_id
        appt.original_doctor_name = appt.doctor_name
    appt.doctor = doctor
    appt.doctor_name = doctor.display_name
    appt.is_referred = True
    appt.current_referral = referral
    return ['doctor', 'doctor_name', 'is_referred', 'original_doctor', 'original_doctor_name', 'current_referral']


def _reject(appt: Appointment, referral: AppointmentReferral, doctor: User, notes: str) -> list[str]:
    appt.doctor_id = referral.prior_doctor_id or appt.doctor_id
    appt.doctor_name = referral.prior_doctor_name or appt.doctor_name
    appt.is_referred = referral.prior_is_referred
    appt.original_doctor_id = referral.prior_original_doctor_id
    appt.original_doctor_name = referral.prior_original_doctor_name
    appt.current_referral = None
    return ['doctor', 'doctor_name', 'is_referred', 'original_doctor', 'original_doctor_name', 'current_referral']


def _refer_back(appt: Appointment, referral: AppointmentReferral, doctor: User, notes: str) -> list[str]:
    appt.status = Appointment.STATUS_REFER_BACK
    appt.awaiting_original_doctor_action = True
    appt.referral_notes = notes or referral.notes
    appt.last_refer_back_at = timezone.now()
    return ['status', 'awaiting_original_doctor_action', 'referral_notes', 'last_refer_back_at']


TRANSITIONS: dict[str, Transition] = {
    'accept': Transition(Referral.STATUS_PENDING, Referral.STATUS_ACCEPTED, _accept),
    'reject': Transition(Referral.STATUS_PENDING, Referral.STATUS_REJECTED, _reject),
    'refer_back': Transition(Referral.STATUS_ACCEPTED, Referral.STATUS_REFERRED_BACK, _refer_back),
    'complete': Transition(Referral.STATUS_ACCEPTED, Referral.STATUS_COMPLETED),
}


def allowed_actions(status: str) -> list[str]:
    return [name for name, t in TRANSITIONS.items() if t.source == status]


def _with_relations():
    return AppointmentReferral.objects.select_related('appointment', 'from_doctor', 'to_doctor')


# ---------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------
def list_referrals(actor, *, status: str = '', direction: str = '', appointment_id=None):
    qs = _with_relations()
    if actor.is_doctor:
        if direction == 'incoming':
            qs = qs.filter(to_doctor_id=actor.id)
        elif direction == 'outgoing':
            qs = qs.filter(from_doctor_id=actor.id)
        else:
            qs = qs.filter(Q(to_doctor_id=actor.id) | Q(from_doctor_id=actor.id))
    elif not actor.is_admin:
        raise PermissionDenied('Access denied')
    if status:
        qs = qs.filter(status=status)
    if appointment_id:
        qs = qs.filter(appointment_id=appointment_id)
    return list(qs)


def get_referral(actor, referral_id: int) -> AppointmentReferral:
    referral = _with_relations().filter(id=referral_id).first()
    if referral is None:
        raise NotFound('Referral not found')
    if actor.is_admin:
        return referral
    if not actor.is_doctor or actor.id not in (referral.from_doctor_id, referral.to_doctor_id):
        raise PermissionDenied('Access denied')
    return referral


# ---------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------
@transaction.atomic
def create_referral(actor, *, appointment_id: int, to_doctor_id: int, reason: str = '', notes: str = '') -> AppointmentReferral:
    if not actor.is_doctor:
        raise PermissionDenied('Only doctors can refer appointments')
    appt = Appointment.objects.select_for_update().filter(id=appointment_id).first()
    if appt is None:
        raise NotFound('Appointment not found')
    holds_it = appt.doctor_id == actor.id
    awaiting_me = appt.original_doctor_id == actor.id and appt.awaiting_original_doctor_action
    if not (holds_it or awaiting_me):
        raise PermissionDenied('Only the appointment\'s doctor can refer it')
    if appt.status == Appointment.STATUS_CANCELLED:
        raise ValidationError('Cancelled appointments cannot be referred')
    if to_doctor_id == actor.id:
        raise ValidationError('Cannot refer an appointment to yourself')
    target = User.objects.filter(id=to_doctor_id, role=User.ROLE_DOCTOR).first()
    if target is None:
        raise ValidationError('Referral target must be a doctor')
    if appt.referrals.filter(status__in=Referral.OPEN_STATUSES).exists():
        raise Conflict('This appointment already has an open referral')

    if awaiting_me and not holds_it:
        # the original doctor takes the appointment back before handing it on
        appt.doctor_id = actor.id
        appt.doctor_name = actor.name
        appt.is_referred = False
        appt.original_doctor = None
        appt.original_doctor_name = None
    if appt.status == Appointment.STATUS_REFER_BACK:
        appt.status = Appointment.STATUS_CONFIRMED
    appt.awaiting_original_doctor_action = False

    referral = AppointmentReferral.objects.create(
        appointment=appt,
        from_doctor_id=actor.id,
        to_doctor=target,
        reason=reason,
        notes=notes,
        prior_doctor_id=appt.doctor_id,
        prior_doctor_name=appt.doctor_name,
        prior_is_referred=appt.is_referred,
        prior_original_doctor_id=appt.original_doctor_id,
        prior_original_doctor_name=appt.original_doctor_name,
    )
    appt.current_referral = referral
    appt.save()
    audit(actor, 'referral_create', 'referral', referral.id, appointment_id=appt.id, to_doctor_id=target.id)
    logger.info('referral %s opened: appointment %s from %s to %s', referral.id, appt.id, actor.id, target.id)
    return _with_relations().get(id=referral.id)


@transaction.atomic
def apply_action(actor, referral_id: int, action: str, notes: str = '') -> AppointmentReferral:
    transition = TRANSITIONS.get(action)
    if transition is None:
        raise ValidationError(f'Invalid action: {action}')

    referral = AppointmentReferral.objects.select_for_update().filter(id=referral_id).first()
    if referral is None:
        raise NotFound('Referral not found')
    if not actor.is_doctor or referral.to_doctor_id != actor.id:
        raise PermissionDenied('Only the referred doctor can act on this referral')

    appt = Appointment.objects.select_for_update().filter(id=referral.appointment_id).first()
    if appt is None:
        raise NotFound('Appointment not found')
    if referral.status != transition.source:
        raise ValidationError(f'Cannot {action} a referral that is {referral.status}')

    if transition.apply is not None:
        fields = transition.apply(appt, referral, actor.user, notes)
        appt.save(update_fields=fields + ['updated_at'])

    previous = referral.status
    referral.status = transition.target
    if notes:
        referral.notes = notes
    referral.save(update_fields=['status', 'notes', 'updated_at'])

    audit(actor, f'referral_{action}', 'referral', referral.id, appointment_id=appt.id, previous=previous)
    logger.info('referral %s %s -> %s by doctor %s', referral.id, previous, referral.status, actor.id)
    return _with_relations().get(id=referral.id)

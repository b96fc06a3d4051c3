"""
Patient records: listing, creation, updates and cascading deletion.

Doctors only see patients currently assigned to them and may only touch
the medical fields (notes, allergies, conditions).  Front desk staff
(admins and receptionists) manage everything else, including doctor
reassignment, which is tracked in :class:`DoctorAssignment` rows.
"""
from __future__ import annotations

import logging

from django.contrib.auth.hashers import make_password
from django.db import transaction
from django.db.models import Q
from django.utils import timezone
from rest_framework.exceptions import NotFound, PermissionDenied, ValidationError

from clinic.models import (
    Appointment,
    AppointmentReport,
    DoctorAssignment,
    MedicalHistory,
    Patient,
    PatientImage,
    ToothChart,
    User,
)
from clinic.services import notifications
from clinic.services.accounts import generate_password
from clinic.services.audit import audit

logger = logging.getLogger(__name__)

# (payload key, label) of credentials a complete patient record must carry
CRITICAL_CREDENTIALS = [
    ('idNumber', 'ID Number'),
    ('phone', 'Phone Number'),
    ('email', 'Email Address'),
    ('dob', 'Date of Birth'),
]

DOCTOR_EDITABLE = {'medicalHistory', 'allergies', 'medicalConditions'}

FIELD_MAP = {
    'name': 'name',
    'phone': 'phone',
    'email': 'email',
    'dob': 'dob',
    'idNumber': 'id_number',
    'address': 'address',
    'insuranceProvider': 'insurance_provider',
    'insuranceNumber': 'insurance_number',
    'allergies': 'allergies',
    'medicalConditions': 'medical_conditions',
    'status': 'status',
    'medicalHistory': 'medical_notes',
}


def missing_credentials(values: dict) -> list[str]:
    return [label for key, label in CRITICAL_CREDENTIALS if not values.get(key)]


def _doctor_or_error(doctor_id: int) -> User:
    doctor = User.objects.filter(id=doctor_id).first()
    if doctor is None:
        raise NotFound('Selected doctor not found')
    if doctor.role != User.ROLE_DOCTOR:
        raise ValidationError('Selected user is not a doctor')
    return doctor


def list_patients(actor, *, search: str = '', status: str = '', doctor_id: int | None = None):
    qs = Patient.objects.select_related('assigned_doctor').order_by('name', 'id')
    if actor.is_doctor:
        qs = qs.filter(assigned_doctor_id=actor.id)
    elif doctor_id:
        qs = qs.filter(assigned_doctor_id=doctor_id)
    if status:
        qs = qs.filter(status=status)
    if search:
        qs = qs.filter(Q(name__icontains=search) | Q(email__icontains=search) | Q(phone__icontains=search))
    return list(qs)


def get_patient(actor, patient_id: int) -> Patient:
    patient = Patient.objects.select_related('assigned_doctor').filter(id=patient_id).first()
    if patient is None:
        raise NotFound('Patient not found')
    if actor.is_doctor and patient.assigned_doctor_id != actor.id:
        raise PermissionDenied('Access denied')
    return patient


def doctor_has_treated(doctor_id: int, patient: Patient) -> bool:
    """True when ``doctor_id`` is or was assigned to the patient."""
    if patient.assigned_doctor_id == doctor_id:
        return True
    return patient.doctor_history.filter(doctor_id=doctor_id).exists()


def _assign_doctor(patient: Patient, doctor: User) -> None:
    now = timezone.now()
    DoctorAssignment.objects.filter(patient=patient, end_date__isnull=True).update(end_date=now)
    DoctorAssignment.objects.create(patient=patient, doctor=doctor, doctor_name=doctor.display_name, start_date=now)
    patient.assigned_doctor = doctor


@transaction.atomic
def create_patient(actor, data: dict) -> Patient:
    if not actor.is_front_desk:
        raise PermissionDenied('Doctors cannot add patients')
    doctor = _doctor_or_error(data['assignedDoctorId'])
    password = data.get('password') or generate_password()
    missing = missing_credentials(data)

    patient = Patient(
        name=data['name'],
        phone=data['phone'],
        email=data['email'],
        dob=data['dob'],
        id_number=data.get('idNumber', ''),
        address=data.get('address', ''),
        insurance_provider=data['insuranceProvider'],
        insurance_number=data.get('insuranceNumber', ''),
        allergies=data.get('allergies', []),
        medical_conditions=data.get('medicalConditions', []),
        password=make_password(password),
        credential_status='complete' if not missing else 'incomplete',
        missing_credentials=missing,
    )
    patient.save()
    _assign_doctor(patient, doctor)
    patient.save(update_fields=['assigned_doctor'])

    notifications.notify_patient_credentials(patient, password)
    audit(actor, 'patient_create', 'patient', patient.id, doctor_id=doctor.id)
    logger.info('patient %s created by %s %s', patient.id, actor.role, actor.id)
    return patient


@transaction.atomic
def update_patient(actor, patient_id: int, data: dict) -> Patient:
    patient = get_patient(actor, patient_id)
    if actor.is_doctor:
        forbidden = set(data) - DOCTOR_EDITABLE
        if forbidden:
            raise PermissionDenied(f"Doctors may only update medical fields, not: {', '.join(sorted(forbidden))}")

    changed = []
    for key, value in data.items():
        attr = FIELD_MAP.get(key)
        if attr is None:
            continue
        setattr(patient, attr, value)
        changed.append(attr)

    doctor_id = data.get('assignedDoctorId')
    if doctor_id and doctor_id != patient.assigned_doctor_id:
        _assign_doctor(patient, _doctor_or_error(doctor_id))
        changed.append('assigned_doctor')

    if data.get('password'):
        patient.password = make_password(data['password'])
        changed.append('password')

    current = {
        'idNumber': patient.id_number, 'phone': patient.phone, 'email': patient.email, 'dob': patient.dob,
    }
    patient.missing_credentials = missing_credentials(current)
    patient.credential_status = 'complete' if not patient.missing_credentials else 'incomplete'
    patient.save()
    audit(actor, 'patient_update', 'patient', patient.id, fields=sorted(set(changed)))
    return patient


@transaction.atomic
def delete_patient(actor, patient_id: int) -> dict[str, int]:
    """Delete a patient and every record attached to it; returns deleted counts."""
    if not actor.is_front_desk:
        raise PermissionDenied('Access denied')
    patient = Patient.objects.filter(id=patient_id).first()
    if patient is None:
        raise NotFound('Patient not found')

    counts = {
        'toothCharts': ToothChart.objects.filter(patient=patient).delete()[0],
        'reports': AppointmentReport.objects.filter(patient=patient).delete()[0],
        'appointments': Appointment.objects.filter(patient=patient).count(),
        'images': PatientImage.objects.filter(patient=patient).delete()[0],
        'medicalHistory': MedicalHistory.objects.filter(patient=patient).count(),
    }
    # appointments (with their referrals) and history entries go with the patient row
    patient.delete()
    audit(actor, 'patient_delete', 'patient', patient_id, deleted=counts)
    logger.info('patient %s deleted by %s: %s', patient_id, actor.id, counts)
    return counts

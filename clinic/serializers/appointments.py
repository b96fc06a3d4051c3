from rest_framework import serializers

from clinic.models import Appointment, AppointmentReferral
from .fields import CleanCharField

MAX_DURATION_MINUTES = 8 * 60


class AppointmentCreateSerializer(serializers.Serializer):
    patientId = serializers.IntegerField()
    doctorId = serializers.IntegerField()
    date = serializers.DateField()
    time = serializers.TimeField(input_formats=['%H:%M'])
    type = serializers.ChoiceField(choices=[c for c, _ in Appointment.TYPE_CHOICES], default='Consultation')
    chair = CleanCharField(max_length=32, required=False, allow_blank=True)
    duration = serializers.IntegerField(required=False, min_value=5, max_value=MAX_DURATION_MINUTES)


class AppointmentUpdateSerializer(serializers.Serializer):
    doctorId = serializers.IntegerField(required=False)
    date = serializers.DateField(required=False)
    time = serializers.TimeField(required=False, input_formats=['%H:%M'])
    type = serializers.ChoiceField(choices=[c for c, _ in Appointment.TYPE_CHOICES], required=False)
    chair = CleanCharField(max_length=32, required=False, allow_blank=True)
    duration = serializers.IntegerField(required=False, min_value=5, max_value=MAX_DURATION_MINUTES)
    status = serializers.ChoiceField(choices=[c for c, _ in Appointment.STATUS_CHOICES], required=False)


class AppointmentListQuerySerializer(serializers.Serializer):
    patientId = serializers.IntegerField(required=False)
    doctorId = serializers.IntegerField(required=False)
    date = serializers.DateField(required=False)
    status = serializers.ChoiceField(choices=[c for c, _ in Appointment.STATUS_CHOICES], required=False)


class ReferralCreateSerializer(serializers.Serializer):
    appointmentId = serializers.IntegerField()
    toDoctorId = serializers.IntegerField()
    reason = CleanCharField(required=False, allow_blank=True, max_length=2000)
    notes = CleanCharField(required=False, allow_blank=True, max_length=4000)


class ReferralActionSerializer(serializers.Serializer):
    # validated against the transition table by the service, so unknown actions give 400 first
    action = serializers.CharField()
    notes = CleanCharField(required=False, allow_blank=True, max_length=4000)


class ReferralListQuerySerializer(serializers.Serializer):
    appointmentId = serializers.IntegerField(required=False)
    status = serializers.ChoiceField(choices=[c for c, _ in AppointmentReferral.STATUS_CHOICES], required=False)
    direction = serializers.ChoiceField(choices=['incoming', 'outgoing'], required=False)


def serialize_appointment(a: Appointment) -> dict:
    return {
        'id': a.id,
        'patientId': a.patient_id,
        'patientName': a.patient_name,
        'doctorId': a.doctor_id,
        'doctorName': a.doctor_name,
        'date': a.date.isoformat(),
        'time': a.time.strftime('%H:%M'),
        'duration': a.duration_minutes,
        'type': a.type,
        'chair': a.chair,
        'status': a.status,
        'isReferred': a.is_referred,
        'originalDoctorId': a.original_doctor_id,
        'originalDoctorName': a.original_doctor_name,
        'currentReferralId': a.current_referral_id,
        'referralNotes': a.referral_notes,
        'awaitingOriginalDoctorAction': a.awaiting_original_doctor_action,
        'lastReferBackAt': a.last_refer_back_at.isoformat() if a.last_refer_back_at else None,
    }


def serialize_referral(r: AppointmentReferral) -> dict:
    appt = r.appointment
    return {
        'id': r.id,
        'appointmentId': r.appointment_id,
        'patientId': appt.patient_id,
        'patientName': appt.patient_name,
        'date': appt.date.isoformat(),
        'time': appt.time.strftime('%H:%M'),
        'fromDoctorId': r.from_doctor_id,
        'fromDoctorName': r.from_doctor.display_name,
        'toDoctorId': r.to_doctor_id,
        'toDoctorName': r.to_doctor.display_name,
        'status': r.status,
        'reason': r.reason,
        'notes': r.notes,
        'createdAt': r.created_at.isoformat() if r.created_at else None,
        'updatedAt': r.updated_at.isoformat() if r.updated_at else None,
    }

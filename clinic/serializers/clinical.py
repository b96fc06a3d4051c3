from rest_framework import serializers

from clinic.models import (
    AppointmentReport,
    MedicalHistory,
    PatientImage,
    ToothChart,
)
from .fields import CleanCharField, CleanListField


# ---------------------------------------------------------------------
# Medical history
# ---------------------------------------------------------------------
class HistoryEntrySerializer(serializers.Serializer):
    notes = CleanCharField(allow_blank=True, required=False)
    findings = CleanCharField(allow_blank=True, required=False)
    treatment = CleanCharField(allow_blank=True, required=False)
    medications = CleanListField()


class HistoryEntryRequiredSerializer(HistoryEntrySerializer):
    notes = CleanCharField()
    findings = CleanCharField()
    treatment = CleanCharField()


class HistoryCreateSerializer(serializers.Serializer):
    patientId = serializers.IntegerField()
    entry = HistoryEntrySerializer()


class HistoryUpdateSerializer(serializers.Serializer):
    entryIndex = serializers.IntegerField()
    entry = HistoryEntryRequiredSerializer()


class HistoryDeleteSerializer(serializers.Serializer):
    entryIndex = serializers.IntegerField()


def serialize_history(h: MedicalHistory) -> dict:
    return {
        'id': h.id,
        'patientId': h.patient_id,
        'createdBy': h.created_by_id,
        'entries': [
            {
                'index': i,
                'id': e.id,
                'doctorId': e.doctor_id,
                'doctorName': e.doctor_name,
                'date': e.date.isoformat(),
                'notes': e.notes,
                'findings': e.findings,
                'treatment': e.treatment,
                'medications': e.medications,
            }
            for i, e in enumerate(h.ordered_entries())
        ],
        'createdAt': h.created_at.isoformat() if h.created_at else None,
        'updatedAt': h.updated_at.isoformat() if h.updated_at else None,
    }


# ---------------------------------------------------------------------
# Tooth charts
# ---------------------------------------------------------------------
class ToothSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=ToothChart.TOOTH_STATUSES)
    notes = CleanCharField(required=False, allow_blank=True, max_length=2000)


class ToothChartWriteSerializer(serializers.Serializer):
    patientId = serializers.IntegerField(required=False)
    teeth = serializers.DictField(child=ToothSerializer(), required=False)
    overallNotes = CleanCharField(required=False, allow_blank=True)

    def validate_teeth(self, value):
        valid = {str(n) for n in ToothChart.TOOTH_NUMBERS}
        bad = sorted(k for k in value if str(k) not in valid)
        if bad:
            raise serializers.ValidationError(f"Invalid tooth number(s): {', '.join(bad)}; expected 1-32")
        return {str(k): v for k, v in value.items()}


def serialize_tooth_chart(c: ToothChart) -> dict:
    return {
        'id': c.id,
        'patientId': c.patient_id,
        'doctorId': c.doctor_id,
        'doctorName': c.doctor.display_name,
        'teeth': c.teeth,
        'overallNotes': c.overall_notes,
        'lastReview': c.last_review.isoformat() if c.last_review else None,
        'createdAt': c.created_at.isoformat() if c.created_at else None,
        'updatedAt': c.updated_at.isoformat() if c.updated_at else None,
    }


# ---------------------------------------------------------------------
# Images
# ---------------------------------------------------------------------
class PatientImageCreateSerializer(serializers.Serializer):
    patientId = serializers.IntegerField()
    type = serializers.ChoiceField(choices=[c for c, _ in PatientImage.TYPE_CHOICES])
    title = CleanCharField(required=False, allow_blank=True, max_length=255)
    description = CleanCharField(required=False, allow_blank=True)
    imageUrl = serializers.URLField(max_length=1024)
    notes = CleanCharField(required=False, allow_blank=True)


def serialize_image(i: PatientImage) -> dict:
    return {
        'id': i.id,
        'patientId': i.patient_id,
        'type': i.type,
        'title': i.title,
        'description': i.description,
        'imageUrl': i.image_url,
        'notes': i.notes,
        'uploadedBy': i.uploaded_by.display_name if i.uploaded_by else None,
        'uploadedAt': i.uploaded_at.isoformat() if i.uploaded_at else None,
    }


# ---------------------------------------------------------------------
# Appointment reports
# ---------------------------------------------------------------------
class ProcedureSerializer(serializers.Serializer):
    name = CleanCharField(max_length=255)
    description = CleanCharField(required=False, allow_blank=True)
    tooth = CleanCharField(required=False, allow_blank=True, max_length=32)
    status = CleanCharField(required=False, allow_blank=True, max_length=32)


class ReportCreateSerializer(serializers.Serializer):
    appointmentId = serializers.IntegerField()
    procedures = ProcedureSerializer(many=True, allow_empty=False)
    findings = CleanCharField()
    notes = CleanCharField()
    nextVisit = serializers.DateField(required=False, allow_null=True)
    followUpDetails = CleanCharField(required=False, allow_blank=True)


class ReportListQuerySerializer(serializers.Serializer):
    appointmentId = serializers.IntegerField(required=False)
    patientId = serializers.IntegerField(required=False)

    def validate(self, attrs):
        if not attrs.get('appointmentId') and not attrs.get('patientId'):
            raise serializers.ValidationError('appointmentId or patientId is required')
        return attrs


def serialize_report(r: AppointmentReport) -> dict:
    appt = r.appointment
    return {
        'id': r.id,
        'appointmentId': r.appointment_id,
        'patientId': r.patient_id,
        'patientName': r.patient.name,
        'doctorId': r.doctor_id,
        'doctorName': r.doctor.display_name,
        'appointmentDate': appt.date.isoformat(),
        'appointmentTime': appt.time.strftime('%H:%M'),
        'appointmentType': appt.type,
        'procedures': r.procedures,
        'findings': r.findings,
        'notes': r.notes,
        'nextVisit': r.next_visit.isoformat() if r.next_visit else None,
        'followUpDetails': r.follow_up_details,
        'createdAt': r.created_at.isoformat() if r.created_at else None,
    }

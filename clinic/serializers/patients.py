from rest_framework import serializers

from clinic.models import Patient
from .fields import CleanCharField, CleanListField


class PatientCreateSerializer(serializers.Serializer):
    name = CleanCharField(max_length=255)
    phone = CleanCharField(max_length=32)
    email = serializers.EmailField()
    dob = serializers.DateField()
    idNumber = CleanCharField(max_length=64, required=False, allow_blank=True)
    address = CleanCharField(max_length=255, required=False, allow_blank=True)
    insuranceProvider = CleanCharField(max_length=128)
    insuranceNumber = CleanCharField(max_length=64, required=False, allow_blank=True)
    allergies = CleanListField()
    medicalConditions = CleanListField()
    assignedDoctorId = serializers.IntegerField(error_messages={'required': 'Doctor assignment is required'})
    password = serializers.CharField(required=False, allow_blank=True, write_only=True, min_length=8)

    def validate_name(self, v):
        if len(v) < 2:
            raise serializers.ValidationError('Name must be at least 2 characters')
        return v

    def validate_email(self, v):
        v = v.strip().lower()
        qs = Patient.objects.filter(email__iexact=v)
        if self.instance is not None:
            qs = qs.exclude(id=self.instance.id)
        if qs.exists():
            raise serializers.ValidationError('A patient with this email already exists')
        return v


class PatientUpdateSerializer(PatientCreateSerializer):
    """All fields optional; role restrictions are applied by the service."""
    status = serializers.ChoiceField(choices=[c for c, _ in Patient.STATUS_CHOICES], required=False)
    medicalHistory = CleanCharField(required=False, allow_blank=True)

    def __init__(self, *args, **kwargs):
        kwargs.setdefault('partial', True)
        super().__init__(*args, **kwargs)


class PatientListQuerySerializer(serializers.Serializer):
    search = serializers.CharField(required=False, allow_blank=True)
    status = serializers.ChoiceField(choices=[c for c, _ in Patient.STATUS_CHOICES], required=False)
    doctorId = serializers.IntegerField(required=False)


def serialize_patient(p: Patient) -> dict:
    doctor = p.assigned_doctor
    return {
        'id': p.id,
        'name': p.name,
        'phone': p.phone,
        'email': p.email,
        'dob': p.dob.isoformat() if p.dob else None,
        'idNumber': p.id_number,
        'address': p.address,
        'insuranceProvider': p.insurance_provider,
        'insuranceNumber': p.insurance_number,
        'allergies': p.allergies,
        'medicalConditions': p.medical_conditions,
        'status': p.status,
        'balance': float(p.balance),
        'assignedDoctorId': doctor.id if doctor else None,
        'assignedDoctor': {
            'id': doctor.id, 'name': doctor.display_name, 'email': doctor.email, 'specialty': doctor.specialty,
        } if doctor else None,
        'medicalHistory': p.medical_notes,
        'credentialStatus': p.credential_status,
        'missingCredentials': p.missing_credentials,
        'lastVisit': p.last_visit.isoformat() if p.last_visit else None,
        'createdAt': p.created_at.isoformat() if p.created_at else None,
    }


def serialize_patient_detail(p: Patient) -> dict:
    data = serialize_patient(p)
    data['doctorHistory'] = [
        {
            'doctorId': h.doctor_id,
            'doctorName': h.doctor_name,
            'startDate': h.start_date.isoformat(),
            'endDate': h.end_date.isoformat() if h.end_date else None,
        }
        for h in p.doctor_history.all()
    ]
    return data

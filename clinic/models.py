"""
Database models for the dental clinic backend.

These models capture staff accounts, patients and their clinical
records (appointments, referrals, medical history, tooth charts,
images and visit reports), WhatsApp chats, the notification outbox
and the audit trail.  Field names are kept close to the JSON shapes
returned by the API so that serialisation stays a thin mapping.
"""
from __future__ import annotations

from django.contrib.auth.models import AbstractUser
from django.db import models
from django.utils import timezone


class User(AbstractUser):
    """Staff account with a clinic role.

    Roles mirror the front-end roles: 'admin', 'doctor' and
    'receptionist'.  Patients are not users; they authenticate against
    :class:`Patient` with a separate session token.
    """
    ROLE_ADMIN = 'admin'
    ROLE_DOCTOR = 'doctor'
    ROLE_RECEPTIONIST = 'receptionist'
    ROLE_CHOICES = [
        (ROLE_ADMIN, 'Administrator'),
        (ROLE_DOCTOR, 'Doctor'),
        (ROLE_RECEPTIONIST, 'Receptionist'),
    ]
    role = models.CharField(max_length=16, choices=ROLE_CHOICES, default=ROLE_RECEPTIONIST, db_index=True)
    phone = models.CharField(max_length=32, blank=True)
    specialty = models.CharField(max_length=128, blank=True)
    # sha256 hex digest of the emailed reset token; the raw token is never stored
    reset_token = models.CharField(max_length=64, blank=True, null=True, db_index=True)
    reset_token_expiry = models.DateTimeField(blank=True, null=True)

    @property
    def display_name(self) -> str:
        return self.get_full_name() or self.username

    def __str__(self) -> str:
        return f"{self.username} ({self.role})"


class Patient(models.Model):
    """A clinic patient and their demographic/insurance record."""
    STATUS_CHOICES = [
        ('active', 'Active'),
        ('inactive', 'Inactive'),
    ]
    CREDENTIAL_CHOICES = [
        ('complete', 'Complete'),
        ('incomplete', 'Incomplete'),
    ]
    name = models.CharField(max_length=255)
    phone = models.CharField(max_length=32)
    email = models.EmailField(unique=True)
    dob = models.DateField()
    id_number = models.CharField(max_length=64, blank=True)
    address = models.CharField(max_length=255, blank=True)
    insurance_provider = models.CharField(max_length=128, blank=True)
    insurance_number = models.CharField(max_length=64, blank=True)
    allergies = models.JSONField(default=list, blank=True)
    medical_conditions = models.JSONField(default=list, blank=True)
    status = models.CharField(max_length=16, choices=STATUS_CHOICES, default='active', db_index=True)
    balance = models.DecimalField(max_digits=10, decimal_places=2, default=0)
    # Hashed with django.contrib.auth.hashers; used for patient portal login
    password = models.CharField(max_length=128)
    assigned_doctor = models.ForeignKey(
        User, null=True, blank=True, on_delete=models.SET_NULL, related_name='assigned_patients'
    )
    medical_notes = models.TextField(blank=True)
    credential_status = models.CharField(max_length=16, choices=CREDENTIAL_CHOICES, default='incomplete')
    missing_credentials = models.JSONField(default=list, blank=True)
    last_visit = models.DateField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self) -> str:
        return f"{self.name} <{self.email}>"


class DoctorAssignment(models.Model):
    """History of doctors assigned to a patient; the open row is current."""
    patient = models.ForeignKey(Patient, on_delete=models.CASCADE, related_name='doctor_history')
    doctor = models.ForeignKey(User, null=True, on_delete=models.SET_NULL, related_name='patient_assignments')
    doctor_name = models.CharField(max_length=255, blank=True)
    start_date = models.DateTimeField()
    end_date = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ['start_date', 'id']

    def __str__(self) -> str:
        return f"{self.patient_id} -> {self.doctor_name} from {self.start_date:%F}"


class Appointment(models.Model):
    STATUS_CONFIRMED = 'confirmed'
    STATUS_CANCELLED = 'cancelled'
    STATUS_COMPLETED = 'completed'
    STATUS_REFER_BACK = 'refer_back'
    STATUS_CHOICES = [
        (STATUS_CONFIRMED, 'Confirmed'),
        (STATUS_CANCELLED, 'Cancelled'),
        (STATUS_COMPLETED, 'Completed'),
        (STATUS_REFER_BACK, 'Referred back'),
    ]
    TYPE_CHOICES = [
        ('Consultation', 'Consultation'),
        ('Cleaning', 'Cleaning'),
        ('Filling', 'Filling'),
        ('Root Canal', 'Root Canal'),
        ('Extraction', 'Extraction'),
        ('Check-up', 'Check-up'),
    ]

    patient = models.ForeignKey(Patient, on_delete=models.CASCADE, related_name='appointments')
    patient_name = models.CharField(max_length=255)
    doctor = models.ForeignKey(User, on_delete=models.PROTECT, related_name='appointments')
    doctor_name = models.CharField(max_length=255)
    date = models.DateField(db_index=True)
    time = models.TimeField()
    duration_minutes = models.PositiveIntegerField(default=30)
    type = models.CharField(max_length=32, choices=TYPE_CHOICES, default='Consultation')
    chair = models.CharField(max_length=32, blank=True)
    status = models.CharField(max_length=16, choices=STATUS_CHOICES, default=STATUS_CONFIRMED, db_index=True)

    # Referral linkage
    is_referred = models.BooleanField(default=False)
    original_doctor = models.ForeignKey(
        User, null=True, blank=True, on_delete=models.SET_NULL, related_name='referred_out_appointments'
    )
    original_doctor_name = models.CharField(max_length=255, blank=True, null=True)
    current_referral = models.ForeignKey(
        'AppointmentReferral', null=True, blank=True, on_delete=models.SET_NULL, related_name='+'
    )
    referral_notes = models.TextField(blank=True)
    awaiting_original_doctor_action = models.BooleanField(default=False)
    last_refer_back_at = models.DateTimeField(null=True, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-date', '-time']
        indexes = [
            models.Index(fields=['doctor', 'date']),
            models.Index(fields=['patient', 'date']),
        ]

    def __str__(self) -> str:
        return f"{self.patient_name} with {self.doctor_name} on {self.date} {self.time:%H:%M}"


class AppointmentReferral(models.Model):
    """A doctor-to-doctor handover of an appointment.

    The ``prior_*`` fields snapshot the appointment's doctor assignment
    at the moment the referral was opened so that a rejection can put
    it back exactly as it was.
    """
    STATUS_PENDING = 'pending'
    STATUS_ACCEPTED = 'accepted'
    STATUS_REJECTED = 'rejected'
    STATUS_REFERRED_BACK = 'referred_back'
    STATUS_COMPLETED = 'completed'
    STATUS_CHOICES = [
        (STATUS_PENDING, 'Pending'),
        (STATUS_ACCEPTED, 'Accepted'),
        (STATUS_REJECTED, 'Rejected'),
        (STATUS_REFERRED_BACK, 'Referred back'),
        (STATUS_COMPLETED, 'Completed'),
    ]
    OPEN_STATUSES = (STATUS_PENDING, STATUS_ACCEPTED)

    appointment = models.ForeignKey(Appointment, on_delete=models.CASCADE, related_name='referrals')
    from_doctor = models.ForeignKey(User, on_delete=models.CASCADE, related_name='referrals_sent')
    to_doctor = models.ForeignKey(User, on_delete=models.CASCADE, related_name='referrals_received')
    status = models.CharField(max_length=16, choices=STATUS_CHOICES, default=STATUS_PENDING, db_index=True)
    reason = models.TextField(blank=True)
    notes = models.TextField(blank=True)

    prior_doctor = models.ForeignKey(User, null=True, on_delete=models.SET_NULL, related_name='+')
    prior_doctor_name = models.CharField(max_length=255, blank=True)
    prior_is_referred = models.BooleanField(default=False)
    prior_original_doctor = models.ForeignKey(User, null=True, blank=True, on_delete=models.SET_NULL, related_name='+')
    prior_original_doctor_name = models.CharField(max_length=255, blank=True, null=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-created_at', '-id']
        indexes = [
            models.Index(fields=['to_doctor', 'status']),
            models.Index(fields=['from_doctor', 'status']),
        ]

    def __str__(self) -> str:
        return f"referral {self.id}: {self.from_doctor_id} -> {self.to_doctor_id} ({self.status})"


class MedicalHistory(models.Model):
    """Per-patient container of doctor-authored history entries."""
    patient = models.OneToOneField(Patient, on_delete=models.CASCADE, related_name='medical_history')
    created_by = models.ForeignKey(User, null=True, on_delete=models.SET_NULL, related_name='+')
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def ordered_entries(self) -> list['MedicalHistoryEntry']:
        return list(self.entries.select_related('doctor').order_by('date', 'id'))

    def __str__(self) -> str:
        return f"history for patient {self.patient_id}"


class MedicalHistoryEntry(models.Model):
    history = models.ForeignKey(MedicalHistory, on_delete=models.CASCADE, related_name='entries')
    doctor = models.ForeignKey(User, null=True, on_delete=models.SET_NULL, related_name='history_entries')
    doctor_name = models.CharField(max_length=255, blank=True)
    date = models.DateTimeField()
    notes = models.TextField(blank=True)
    findings = models.TextField(blank=True)
    treatment = models.TextField(blank=True)
    medications = models.JSONField(default=list, blank=True)

    def __str__(self) -> str:
        return f"entry {self.id} of history {self.history_id}"


class ToothChart(models.Model):
    TOOTH_STATUSES = ('healthy', 'cavity', 'filling', 'root-canal', 'crown', 'missing', 'implant')
    TOOTH_NUMBERS = range(1, 33)

    patient = models.ForeignKey(Patient, on_delete=models.CASCADE, related_name='tooth_charts')
    doctor = models.ForeignKey(User, on_delete=models.PROTECT, related_name='tooth_charts')
    # {"1": {"status": "healthy", "notes": "", "lastUpdated": "..."}, ... "32": {...}}
    teeth = models.JSONField(default=dict)
    overall_notes = models.TextField(blank=True)
    last_review = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self) -> str:
        return f"tooth chart {self.id} for patient {self.patient_id}"


class PatientImage(models.Model):
    TYPE_CHOICES = [
        ('xray', 'X-ray'),
        ('photo', 'Photo'),
        ('scan', 'Scan'),
    ]
    patient = models.ForeignKey(Patient, on_delete=models.CASCADE, related_name='images')
    type = models.CharField(max_length=8, choices=TYPE_CHOICES)
    title = models.CharField(max_length=255, blank=True)
    description = models.TextField(blank=True)
    image_url = models.URLField(max_length=1024)
    notes = models.TextField(blank=True)
    uploaded_by = models.ForeignKey(User, null=True, on_delete=models.SET_NULL, related_name='uploaded_images')
    uploaded_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['-uploaded_at', '-id']

    def __str__(self) -> str:
        return f"{self.type} {self.title or self.id} for patient {self.patient_id}"


class AppointmentReport(models.Model):
    """Visit report written by the treating doctor."""
    appointment = models.ForeignKey(Appointment, on_delete=models.CASCADE, related_name='reports')
    patient = models.ForeignKey(Patient, on_delete=models.CASCADE, related_name='reports')
    doctor = models.ForeignKey(User, on_delete=models.PROTECT, related_name='reports')
    # [{"name": ..., "description": ..., "tooth": ..., "status": ...}]
    procedures = models.JSONField(default=list)
    findings = models.TextField()
    notes = models.TextField()
    next_visit = models.DateField(null=True, blank=True)
    follow_up_details = models.TextField(blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['-created_at', '-id']

    def __str__(self) -> str:
        return f"report {self.id} for appointment {self.appointment_id}"


class NotificationTask(models.Model):
    """Outbound email/WhatsApp message waiting for (re)delivery."""
    CHANNEL_EMAIL = 'email'
    CHANNEL_WHATSAPP = 'whatsapp'
    CHANNEL_CHOICES = ((CHANNEL_EMAIL, 'email'), (CHANNEL_WHATSAPP, 'whatsapp'))

    STATUS_PENDING = 'pending'
    STATUS_SENT = 'sent'
    STATUS_FAILED = 'failed'
    STATUS_SKIPPED = 'skipped'
    STATUS_CHOICES = (
        (STATUS_PENDING, 'pending'),
        (STATUS_SENT, 'sent'),
        (STATUS_FAILED, 'failed'),
        (STATUS_SKIPPED, 'skipped'),
    )

    channel = models.CharField(max_length=16, choices=CHANNEL_CHOICES)
    recipient = models.CharField(max_length=255)
    template = models.CharField(max_length=64)
    payload = models.JSONField(default=dict, blank=True)
    status = models.CharField(max_length=16, choices=STATUS_CHOICES, default=STATUS_PENDING)
    attempts = models.PositiveIntegerField(default=0)
    max_attempts = models.PositiveIntegerField(default=5)
    next_attempt_at = models.DateTimeField()
    last_error = models.TextField(blank=True)
    provider_message_id = models.CharField(max_length=255, blank=True)
    sent_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        indexes = [
            models.Index(fields=['status', 'next_attempt_at']),
        ]

    def __str__(self) -> str:
        return f"{self.channel}:{self.template} -> {self.recipient} ({self.status})"


class WhatsAppChat(models.Model):
    """Conversation with one WhatsApp number, linked to a patient when the number matches."""
    phone = models.CharField(max_length=32, unique=True)  # digits only, international format
    patient = models.ForeignKey(
        Patient, null=True, blank=True, on_delete=models.SET_NULL, related_name='whatsapp_chats'
    )
    patient_name = models.CharField(max_length=255, blank=True)
    profile_name = models.CharField(max_length=255, blank=True)
    last_message = models.TextField(blank=True)
    last_message_at = models.DateTimeField(null=True, blank=True)
    unread_count = models.PositiveIntegerField(default=0)
    # free-form replies are only delivered until this moment (opened by the patient's last message)
    window_ends_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def in_service_window(self, at) -> bool:
        return self.window_ends_at is not None and at < self.window_ends_at

    def __str__(self) -> str:
        return f"chat {self.id} with {self.patient_name or self.profile_name or self.phone}"


class WhatsAppMessage(models.Model):
    DIRECTION_INBOUND = 'inbound'
    DIRECTION_OUTBOUND = 'outbound'
    DIRECTION_CHOICES = ((DIRECTION_INBOUND, 'inbound'), (DIRECTION_OUTBOUND, 'outbound'))

    STATUS_PENDING = 'pending'
    STATUS_SENT = 'sent'
    STATUS_DELIVERED = 'delivered'
    STATUS_READ = 'read'
    STATUS_FAILED = 'failed'
    STATUS_CHOICES = (
        (STATUS_PENDING, 'pending'),
        (STATUS_SENT, 'sent'),
        (STATUS_DELIVERED, 'delivered'),
        (STATUS_READ, 'read'),
        (STATUS_FAILED, 'failed'),
    )

    TYPE_TEXT = 'text'
    TYPE_UNSUPPORTED = 'unsupported'
    TYPE_CHOICES = [
        (TYPE_TEXT, 'text'),
        ('image', 'image'),
        ('document', 'document'),
        ('audio', 'audio'),
        ('video', 'video'),
        (TYPE_UNSUPPORTED, 'unsupported'),
    ]

    chat = models.ForeignKey(WhatsAppChat, on_delete=models.CASCADE, related_name='messages')
    direction = models.CharField(max_length=8, choices=DIRECTION_CHOICES)
    sender_name = models.CharField(max_length=255, blank=True)
    sent_by = models.ForeignKey(
        User, null=True, blank=True, on_delete=models.SET_NULL, related_name='whatsapp_messages'
    )
    message_type = models.CharField(max_length=16, choices=TYPE_CHOICES, default=TYPE_TEXT)
    body = models.TextField(blank=True)
    media_id = models.CharField(max_length=128, blank=True)
    mime_type = models.CharField(max_length=128, blank=True)
    whatsapp_message_id = models.CharField(max_length=255, blank=True, db_index=True)
    status = models.CharField(max_length=16, choices=STATUS_CHOICES, default=STATUS_PENDING)
    error_message = models.TextField(blank=True)
    inside_window = models.BooleanField(default=False)
    status_changed_at = models.DateTimeField(null=True, blank=True)
    # inbound messages carry the provider's timestamp
    created_at = models.DateTimeField(default=timezone.now)

    class Meta:
        ordering = ['created_at', 'id']
        indexes = [
            models.Index(fields=['chat', 'created_at']),
        ]

    def __str__(self) -> str:
        return f"{self.direction} {self.message_type} in chat {self.chat_id} ({self.status})"


class AuditEvent(models.Model):
    user = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, blank=True)
    action = models.CharField(max_length=64)
    object_type = models.CharField(max_length=64, blank=True, null=True)
    object_id = models.IntegerField(blank=True, null=True)
    detail = models.JSONField(default=dict, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        indexes = [
            models.Index(fields=['action', 'created_at']),
            models.Index(fields=['object_type', 'object_id', 'created_at']),
        ]

    def __str__(self):
        return f"{self.action}:{self.user_id}@{self.created_at:%F %T}"

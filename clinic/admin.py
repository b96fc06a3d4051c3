"""
Django admin registrations for the clinic models.

Registering the models here lets administrators inspect records and
the notification outbox via ``/admin/`` during development and support.
"""

from django.contrib import admin

from .models import (
    User,
    Patient,
    DoctorAssignment,
    Appointment,
    AppointmentReferral,
    MedicalHistory,
    MedicalHistoryEntry,
    ToothChart,
    PatientImage,
    AppointmentReport,
    NotificationTask,
    WhatsAppChat,
    WhatsAppMessage,
    AuditEvent,
)


@admin.register(User)
class UserAdmin(admin.ModelAdmin):
    list_display = ('username', 'email', 'role', 'specialty', 'is_active')
    list_filter = ('role', 'is_active')
    search_fields = ('username', 'email', 'first_name', 'last_name')
    exclude = ('password', 'reset_token')


class DoctorAssignmentInline(admin.TabularInline):
    model = DoctorAssignment
    extra = 0


@admin.register(Patient)
class PatientAdmin(admin.ModelAdmin):
    list_display = ('id', 'name', 'email', 'phone', 'assigned_doctor', 'status', 'credential_status')
    list_filter = ('status', 'credential_status')
    search_fields = ('name', 'email', 'phone', 'id_number')
    exclude = ('password',)
    inlines = [DoctorAssignmentInline]


@admin.register(Appointment)
class AppointmentAdmin(admin.ModelAdmin):
    list_display = ('id', 'patient_name', 'doctor_name', 'date', 'time', 'duration_minutes', 'status', 'is_referred')
    list_filter = ('status', 'type', 'is_referred')
    search_fields = ('patient_name', 'doctor_name')
    date_hierarchy = 'date'


@admin.register(AppointmentReferral)
class AppointmentReferralAdmin(admin.ModelAdmin):
    list_display = ('id', 'appointment', 'from_doctor', 'to_doctor', 'status', 'created_at')
    list_filter = ('status',)


class MedicalHistoryEntryInline(admin.StackedInline):
    model = MedicalHistoryEntry
    extra = 0


@admin.register(MedicalHistory)
class MedicalHistoryAdmin(admin.ModelAdmin):
    list_display = ('id', 'patient', 'created_by', 'updated_at')
    inlines = [MedicalHistoryEntryInline]


@admin.register(ToothChart)
class ToothChartAdmin(admin.ModelAdmin):
    list_display = ('id', 'patient', 'doctor', 'last_review')


@admin.register(PatientImage)
class PatientImageAdmin(admin.ModelAdmin):
    list_display = ('id', 'patient', 'type', 'title', 'uploaded_at')
    list_filter = ('type',)


@admin.register(AppointmentReport)
class AppointmentReportAdmin(admin.ModelAdmin):
    list_display = ('id', 'appointment', 'patient', 'doctor', 'created_at')


@admin.register(NotificationTask)
class NotificationTaskAdmin(admin.ModelAdmin):
    list_display = ('id', 'channel', 'template', 'recipient', 'status', 'attempts', 'next_attempt_at', 'sent_at')
    list_filter = ('channel', 'status', 'template')
    search_fields = ('recipient',)
    readonly_fields = ('payload', 'last_error', 'provider_message_id')


@admin.register(WhatsAppChat)
class WhatsAppChatAdmin(admin.ModelAdmin):
    list_display = ('id', 'phone', 'patient', 'profile_name', 'unread_count', 'last_message_at')
    search_fields = ('phone', 'patient_name', 'profile_name')


@admin.register(WhatsAppMessage)
class WhatsAppMessageAdmin(admin.ModelAdmin):
    list_display = ('id', 'chat', 'direction', 'message_type', 'status', 'created_at')
    list_filter = ('direction', 'status', 'message_type')


@admin.register(AuditEvent)
class AuditEventAdmin(admin.ModelAdmin):
    list_display = ('action', 'user', 'object_type', 'object_id', 'created_at')
    list_filter = ('action', 'object_type')

"""
URL mappings for the dental clinic API.

Paths follow the front-end's endpoint names; trailing slashes are
deliberately omitted.
"""
from django.urls import path, include

from .auth_views import (
    admin_register_staff_view,
    forgot_password_view,
    jwt_logout_view,
    jwt_refresh_view,
    login_view,
    patient_login_view,
    reset_password_view,
    signup_view,
)
from .views import appointments, health, images, medical_history, patients, portal, referrals, reports, staff
from .views import tooth_charts, whatsapp


urlpatterns = [
    path('metrics', include('django_prometheus.urls')),
    path('healthz', health.healthz),

    # Authentication
    path('api/auth/login', login_view),
    path('api/auth/signup', signup_view),
    path('api/auth/admin-register-staff', admin_register_staff_view),
    path('api/auth/forgot-password', forgot_password_view),
    path('api/auth/reset-password', reset_password_view),
    path('api/auth/patient-login', patient_login_view),
    path('api/auth/refresh', jwt_refresh_view),
    path('api/auth/logout', jwt_logout_view),

    # Staff
    path('api/staff', staff.staff_list),
    path('api/doctors', staff.doctors_list),

    # Patients
    path('api/patients', patients.patients),
    path('api/patients/<int:pk>', patients.patient_detail),

    # Appointments & referrals
    path('api/appointments', appointments.appointments),
    path('api/appointments/<int:pk>', appointments.appointment_detail),
    path('api/appointment-referrals', referrals.referrals),
    path('api/appointment-referrals/<int:pk>', referrals.referral_detail),

    # Clinical records
    path('api/medical-history', medical_history.medical_history),
    path('api/medical-history/<int:pk>', medical_history.medical_history_detail),
    path('api/tooth-chart', tooth_charts.tooth_charts),
    path('api/tooth-chart/<int:pk>', tooth_charts.tooth_chart_detail),
    path('api/patient-images', images.patient_images),
    path('api/patient-images/<int:pk>', images.patient_image_detail),
    path('api/appointment-reports', reports.reports),
    path('api/appointment-reports/<int:pk>', reports.report_detail),
    path('api/appointment-reports/<int:pk>/pdf', reports.report_pdf),

    # Patient portal
    path('api/patient/me', portal.me),
    path('api/patient/appointments', portal.my_appointments),
    path('api/patient/reports', portal.my_reports),
    path('api/patient/reports/<int:pk>/pdf', portal.my_report_pdf),
    path('api/patient/images', portal.my_images),
    path('api/patient/tooth-chart', portal.my_tooth_chart),
    path('api/patient/medical-history', portal.my_medical_history),

    # WhatsApp inbox and media
    path('api/whatsapp/chats', whatsapp.chats),
    path('api/whatsapp/messages', whatsapp.messages),
    path('api/whatsapp/media-proxy', whatsapp.media_proxy),
    path('api/whatsapp/media', whatsapp.media_upload),
    path('api/whatsapp/webhook', whatsapp.webhook),
]

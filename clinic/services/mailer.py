"""
Transactional email rendering and delivery.

Each message has an HTML template under ``templates/emails/`` and a
subject line below; the plain-text alternative is derived from the
HTML with ``strip_tags``.
"""
from __future__ import annotations

from django.conf import settings
from django.core.mail import send_mail
from django.template.loader import render_to_string
from django.utils.html import strip_tags

SUBJECTS = {
    'appointment_confirmation': 'Appointment Confirmed - {clinic}',
    'appointment_rescheduled': 'Appointment Rescheduled - {clinic}',
    'appointment_cancelled': 'Appointment Cancelled - {clinic}',
    'report_ready': 'Your Visit Report is Ready - {clinic}',
    'patient_credentials': 'Welcome to {clinic} - Your Patient Portal Access',
    'staff_credentials': 'Your {clinic} Staff Account',
    'password_reset': 'Password Reset Request - {clinic}',
}


def is_configured() -> bool:
    if not settings.EMAIL_ENABLE:
        return False
    # non-SMTP backends (console, locmem, file) need no credentials
    return bool(settings.EMAIL_HOST_USER) or not settings.EMAIL_BACKEND.endswith('smtp.EmailBackend')


def render(template: str, context: dict) -> tuple[str, str, str]:
    """Return (subject, plain text, html) for ``template``."""
    ctx = {'clinic_name': settings.CLINIC_NAME, 'clinic_address': settings.CLINIC_ADDRESS,
           'app_url': settings.APP_URL, **context}
    subject = SUBJECTS.get(template, '{clinic}').format(clinic=settings.CLINIC_NAME)
    html = render_to_string(f'emails/{template}.html', ctx)
    return subject, strip_tags(html), html


def send_template_email(to: str, template: str, context: dict) -> None:
    subject, text, html = render(template, context)
    send_mail(
        subject,
        text,
        settings.DEFAULT_FROM_EMAIL,
        [to],
        html_message=html,
        fail_silently=False,
    )

"""
Token types issued by the clinic backend.

Staff accounts receive a regular simplejwt refresh/access pair whose
claims carry the role and display name the front-end needs.  Patients
signing into the portal receive a separate, shorter lived
``patient_session`` token that staff endpoints refuse: the staff
authentication class only accepts ``access`` tokens and the patient
authentication class only accepts this type.
"""
from __future__ import annotations

from datetime import timedelta

from django.conf import settings
from rest_framework_simplejwt.tokens import RefreshToken, Token

from .models import Patient, User


class PatientSessionToken(Token):
    token_type = 'patient_session'
    lifetime = timedelta(hours=getattr(settings, 'PATIENT_SESSION_LIFETIME_HOURS', 12))

    @classmethod
    def for_patient(cls, patient: Patient) -> 'PatientSessionToken':
        token = cls()
        token['patient_id'] = patient.id
        token['name'] = patient.name
        token['email'] = patient.email
        return token


def issue_staff_tokens(user: User) -> RefreshToken:
    """Return a refresh token for ``user``; custom claims are copied to its access token."""
    refresh = RefreshToken.for_user(user)
    refresh['role'] = user.role
    refresh['name'] = user.display_name
    refresh['email'] = user.email
    return refresh

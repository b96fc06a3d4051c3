"""
Authentication classes for staff and patient requests.

Both classes read a ``Bearer`` token from the ``Authorization`` header
using simplejwt's header parsing.  They live in their own module, apart
from any view definitions, so that DRF can import them from settings
without circular imports.
"""
from __future__ import annotations

from rest_framework.exceptions import AuthenticationFailed
from rest_framework_simplejwt.authentication import JWTAuthentication
from rest_framework_simplejwt.exceptions import TokenError

from .models import Patient
from .tokens import PatientSessionToken


class StaffJWTAuthentication(JWTAuthentication):
    """Access-token authentication for staff accounts.

    Only simplejwt ``access`` tokens validate here, so a patient session
    token presented to a staff endpoint fails with 401.
    """

    www_authenticate_realm = 'staff'


class PatientPrincipal:
    """Authenticated patient attached to ``request.user`` on portal endpoints."""

    role = 'patient'
    is_authenticated = True
    is_anonymous = False

    def __init__(self, patient: Patient):
        self.patient = patient

    @property
    def pk(self):
        return self.patient.pk

    @property
    def id(self):
        return self.patient.id

    def __str__(self) -> str:
        return f"patient:{self.patient.id}"


class PatientSessionAuthentication(JWTAuthentication):
    """Authenticate patient portal requests with a ``patient_session`` token."""

    www_authenticate_realm = 'patient'

    def get_validated_token(self, raw_token):
        try:
            return PatientSessionToken(raw_token)
        except TokenError as e:
            raise AuthenticationFailed(f'Invalid patient session: {e}')

    def get_user(self, validated_token):
        patient_id = validated_token.get('patient_id')
        if patient_id is None:
            raise AuthenticationFailed('Token contained no patient identification')
        patient = Patient.objects.filter(id=patient_id).first()
        if patient is None:
            raise AuthenticationFailed('Patient not found')
        if patient.status != 'active':
            raise AuthenticationFailed('Patient account is inactive')
        return PatientPrincipal(patient)

"""
Request-scoped actor passed into service functions.

Views build an :class:`Actor` once from the authenticated request and
hand it to the service layer, which never inspects tokens or the
request itself.  Roles always come from the database row loaded by the
authentication class, never from token claims.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from rest_framework.exceptions import NotAuthenticated

from .models import Patient, User

STAFF = 'staff'
PATIENT = 'patient'


@dataclass(frozen=True)
class Actor:
    id: int
    role: str
    name: str
    kind: str = STAFF
    user: Optional[User] = None
    patient: Optional[Patient] = None

    @property
    def is_admin(self) -> bool:
        return self.kind == STAFF and self.role == User.ROLE_ADMIN

    @property
    def is_doctor(self) -> bool:
        return self.kind == STAFF and self.role == User.ROLE_DOCTOR

    @property
    def is_receptionist(self) -> bool:
        return self.kind == STAFF and self.role == User.ROLE_RECEPTIONIST

    @property
    def is_front_desk(self) -> bool:
        """Admin or receptionist."""
        return self.is_admin or self.is_receptionist

    @classmethod
    def for_user(cls, user: User) -> 'Actor':
        return cls(id=user.id, role=user.role, name=user.display_name, kind=STAFF, user=user)

    @classmethod
    def for_patient(cls, patient: Patient) -> 'Actor':
        return cls(id=patient.id, role=PATIENT, name=patient.name, kind=PATIENT, patient=patient)

    @classmethod
    def from_request(cls, request) -> 'Actor':
        user = getattr(request, 'user', None)
        if not (user and getattr(user, 'is_authenticated', False)):
            raise NotAuthenticated('Unauthorized')
        patient = getattr(user, 'patient', None)
        if isinstance(patient, Patient):
            return cls.for_patient(patient)
        return cls.for_user(user)

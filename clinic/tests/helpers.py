import datetime as dt

from django.contrib.auth.hashers import make_password

from ..models import Appointment, Patient, User

PASSWORD = 'Str0ng!Pass'


def make_user(username, role='doctor', **extra):
    extra.setdefault('email', f'{username}@clinic.test')
    extra.setdefault('first_name', username.capitalize())
    return User.objects.create_user(username=username, password=PASSWORD, role=role, **extra)


def make_patient(doctor=None, email='pat@example.com', **extra):
    defaults = dict(
        name='Pat Example',
        phone='+92 300 1234567',
        email=email,
        dob=dt.date(1990, 5, 17),
        insurance_provider='Acme Health',
        password=make_password(PASSWORD),
        assigned_doctor=doctor,
    )
    defaults.update(extra)
    return Patient.objects.create(**defaults)


def make_appointment(patient, doctor, date=dt.date(2030, 1, 10), time=dt.time(10, 0), duration=30, **extra):
    return Appointment.objects.create(
        patient=patient,
        patient_name=patient.name,
        doctor=doctor,
        doctor_name=doctor.display_name,
        date=date,
        time=time,
        duration_minutes=duration,
        **extra,
    )

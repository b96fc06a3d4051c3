import datetime as dt

import pytest
from rest_framework.test import APIClient

from ..models import Appointment, NotificationTask
from ..services.scheduling import check_doctor_availability, overlaps
from .helpers import make_appointment, make_patient, make_user

pytestmark = pytest.mark.django_db

DAY = dt.date(2030, 1, 10)


@pytest.fixture
def setup():
    doctor = make_user('drd', role='doctor')
    patient = make_patient(doctor)
    make_appointment(patient, doctor, date=DAY, time=dt.time(10, 0), duration=30)
    return doctor, patient


def test_overlap_is_half_open():
    assert overlaps(600, 630, 615, 645)
    assert not overlaps(600, 630, 630, 660)
    assert not overlaps(630, 660, 600, 630)
    assert overlaps(600, 700, 610, 620)


def test_overlapping_slot_rejected_with_times_in_message(setup):
    doctor, _ = setup
    check = check_doctor_availability(doctor.id, DAY, dt.time(10, 15), 30)
    assert not check.is_valid
    assert 'from 10:00 to 10:30 on 2030-01-10' in check.error
    assert 'from 10:15 to 10:45' in check.error


def test_adjacent_slot_is_free(setup):
    doctor, _ = setup
    assert check_doctor_availability(doctor.id, DAY, dt.time(10, 30), 30).is_valid
    assert check_doctor_availability(doctor.id, DAY, dt.time(9, 30), 30).is_valid


def test_cancelled_appointments_do_not_block(setup):
    doctor, _ = setup
    Appointment.objects.update(status=Appointment.STATUS_CANCELLED)
    assert check_doctor_availability(doctor.id, DAY, dt.time(10, 15), 30).is_valid


def test_other_doctor_is_unaffected(setup):
    other = make_user('dro', role='doctor')
    assert check_doctor_availability(other.id, DAY, dt.time(10, 15), 30).is_valid


def test_excluding_own_appointment(setup):
    doctor, _ = setup
    appt = Appointment.objects.get()
    assert check_doctor_availability(doctor.id, DAY, dt.time(10, 10), 30, exclude_appointment_id=appt.id).is_valid


def test_late_appointment_blocks_next_morning(setup):
    doctor, patient = setup
    make_appointment(patient, doctor, date=DAY, time=dt.time(23, 45), duration=60)
    nxt = DAY + dt.timedelta(days=1)
    check = check_doctor_availability(doctor.id, nxt, dt.time(0, 15), 30)
    assert not check.is_valid
    assert 'from 23:45 to 00:45 on 2030-01-10' in check.error
    assert check_doctor_availability(doctor.id, nxt, dt.time(0, 45), 30).is_valid


def test_booking_api_conflict_then_success(setup):
    doctor, patient = setup
    reception = make_user('rec', role='receptionist')
    client = APIClient()
    client.force_authenticate(reception)
    payload = {'patientId': patient.id, 'doctorId': doctor.id, 'date': '2030-01-10', 'time': '10:15', 'duration': 30}

    r = client.post('/api/appointments', payload, format='json')
    assert r.status_code == 409
    assert r.data['success'] is False
    assert 'conflicting appointment' in r.data['error']

    payload['time'] = '10:30'
    r = client.post('/api/appointments', payload, format='json')
    assert r.status_code == 201
    assert r.data['appointment']['time'] == '10:30'
    assert Appointment.objects.filter(doctor=doctor).count() == 2
    # confirmation queued for both channels
    templates = set(NotificationTask.objects.values_list('channel', 'template'))
    assert ('whatsapp', 'appointment_confirmation') in templates
    assert ('email', 'appointment_confirmation') in templates


def test_reschedule_into_conflict_rejected(setup):
    doctor, patient = setup
    other = make_appointment(patient, doctor, date=DAY, time=dt.time(11, 0))
    admin = make_user('adm', role='admin')
    client = APIClient()
    client.force_authenticate(admin)

    r = client.put(f'/api/appointments/{other.id}', {'time': '10:20'}, format='json')
    assert r.status_code == 409
    other.refresh_from_db()
    assert other.time == dt.time(11, 0)

    r = client.put(f'/api/appointments/{other.id}', {'time': '14:00'}, format='json')
    assert r.status_code == 200
    assert NotificationTask.objects.filter(template='appointment_reschedule', channel='whatsapp').exists()


def test_doctor_cannot_book(setup):
    doctor, patient = setup
    client = APIClient()
    client.force_authenticate(doctor)
    r = client.post('/api/appointments', {
        'patientId': patient.id, 'doctorId': doctor.id, 'date': '2030-01-11', 'time': '09:00',
    }, format='json')
    assert r.status_code == 403
    assert r.data == {'success': False, 'error': 'Doctors cannot create appointments'}


def test_doctor_may_only_set_status(setup):
    doctor, _ = setup
    appt = Appointment.objects.get()
    client = APIClient()
    client.force_authenticate(doctor)
    assert client.put(f'/api/appointments/{appt.id}', {'time': '12:00'}, format='json').status_code == 403
    r = client.put(f'/api/appointments/{appt.id}', {'status': 'completed'}, format='json')
    assert r.status_code == 200
    assert r.data['appointment']['status'] == 'completed'


def test_delete_queues_cancellation(setup):
    _, patient = setup
    appt = Appointment.objects.get()
    client = APIClient()
    client.force_authenticate(make_user('rec2', role='receptionist'))
    r = client.delete(f'/api/appointments/{appt.id}')
    assert r.status_code == 200
    assert not Appointment.objects.exists()
    task = NotificationTask.objects.get(channel='email', template='appointment_cancelled')
    assert task.recipient == patient.email


def test_reviving_cancelled_appointment_checks_slot(setup):
    doctor, _ = setup
    first = Appointment.objects.get()
    client = APIClient()
    client.force_authenticate(make_user('rec3', role='receptionist'))
    assert client.put(f'/api/appointments/{first.id}', {'status': 'cancelled'}, format='json').status_code == 200

    r = client.post('/api/appointments', {
        'patientId': first.patient_id, 'doctorId': doctor.id, 'date': '2030-01-10', 'time': '10:00',
    }, format='json')
    assert r.status_code == 201

    r = client.put(f'/api/appointments/{first.id}', {'status': 'confirmed'}, format='json')
    assert r.status_code == 409
    first.refresh_from_db()
    assert first.status == 'cancelled'
    live = Appointment.objects.filter(doctor=doctor).exclude(status='cancelled')
    assert live.count() == 1


def test_reviving_cancelled_appointment_into_free_slot(setup):
    doctor, _ = setup
    appt = Appointment.objects.get()
    appt.status = Appointment.STATUS_CANCELLED
    appt.save()
    client = APIClient()
    client.force_authenticate(make_user('rec4', role='receptionist'))
    r = client.put(f'/api/appointments/{appt.id}', {'status': 'confirmed'}, format='json')
    assert r.status_code == 200
    assert r.data['appointment']['status'] == 'confirmed'


def test_times_with_seconds_are_rejected(setup):
    doctor, patient = setup
    client = APIClient()
    client.force_authenticate(make_user('rec5', role='receptionist'))
    r = client.post('/api/appointments', {
        'patientId': patient.id, 'doctorId': doctor.id, 'date': '2030-01-10', 'time': '09:30:30', 'duration': 30,
    }, format='json')
    assert r.status_code == 400
    assert not Appointment.objects.filter(time=dt.time(9, 30, 30)).exists()

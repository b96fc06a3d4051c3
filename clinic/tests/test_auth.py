import datetime as dt

import pytest
from django.utils import timezone
from rest_framework.test import APIClient
from rest_framework_simplejwt.tokens import AccessToken

from ..models import NotificationTask, User
from ..services.accounts import generate_password, hash_token
from ..tokens import PatientSessionToken
from .helpers import PASSWORD, make_patient, make_user

pytestmark = pytest.mark.django_db


def login(client, account, password=PASSWORD):
    return client.post('/api/auth/login', {'username': account, 'password': password}, format='json')


def test_staff_login_returns_jwt_with_role_claims():
    make_user('drx', role='doctor', email='drx@clinic.test')
    client = APIClient()
    r = login(client, 'drx')
    assert r.status_code == 200
    assert r.data['success'] is True
    assert r.data['user']['role'] == 'doctor'
    access = AccessToken(r.data['token'])
    assert access['role'] == 'doctor'
    assert access['email'] == 'drx@clinic.test'
    assert r.data['refresh']


def test_login_by_email_and_bad_password():
    make_user('rec', role='receptionist', email='front@clinic.test')
    client = APIClient()
    assert login(client, 'front@clinic.test').status_code == 200
    r = login(client, 'rec', 'wrong')
    assert r.status_code == 401
    assert r.data == {'success': False, 'error': 'Invalid credentials'}


def test_role_comes_from_database_not_request():
    make_user('drx', role='doctor')
    client = APIClient()
    r = client.post('/api/auth/login', {'username': 'drx', 'password': PASSWORD, 'role': 'admin'}, format='json')
    assert r.status_code == 200
    client.credentials(HTTP_AUTHORIZATION=f"Bearer {r.data['token']}")
    assert client.get('/api/staff').status_code == 403


def test_missing_token_is_401():
    r = APIClient().get('/api/patients')
    assert r.status_code == 401
    assert r.data['success'] is False


def test_patient_login_and_token_separation():
    doctor = make_user('drx', role='doctor')
    patient = make_patient(doctor, email='pp@example.com')
    client = APIClient()
    r = client.post('/api/auth/patient-login', {'email': 'pp@example.com', 'password': PASSWORD}, format='json')
    assert r.status_code == 200
    token = r.data['token']
    assert PatientSessionToken(token)['patient_id'] == patient.id

    client.credentials(HTTP_AUTHORIZATION=f'Bearer {token}')
    me = client.get('/api/patient/me')
    assert me.status_code == 200
    assert me.data['patient']['email'] == 'pp@example.com'
    # staff endpoints refuse the patient session
    assert client.get('/api/patients').status_code == 401

    staff = login(APIClient(), 'drx')
    client.credentials(HTTP_AUTHORIZATION=f"Bearer {staff.data['token']}")
    # portal refuses staff tokens
    assert client.get('/api/patient/me').status_code == 401


def test_patient_login_wrong_password():
    make_patient(email='pp@example.com')
    r = APIClient().post('/api/auth/patient-login', {'email': 'pp@example.com', 'password': 'nope'}, format='json')
    assert r.status_code == 401


def test_signup_enforces_password_rules_and_admin_bootstrap():
    client = APIClient()
    weak = {'name': 'New Doc', 'email': 'new@clinic.test', 'role': 'doctor', 'password': 'abc'}
    r = client.post('/api/auth/signup', weak, format='json')
    assert r.status_code == 400

    r = client.post('/api/auth/signup', {**weak, 'password': 'Sup3r$ecret'}, format='json')
    assert r.status_code == 201
    user = User.objects.get(email='new@clinic.test')
    assert user.role == 'doctor'
    assert user.specialty == 'General Dentistry'

    first_admin = {'name': 'Boss', 'email': 'boss@clinic.test', 'role': 'admin', 'password': 'Sup3r$ecret'}
    assert client.post('/api/auth/signup', first_admin, format='json').status_code == 201
    second_admin = {**first_admin, 'email': 'boss2@clinic.test'}
    assert client.post('/api/auth/signup', second_admin, format='json').status_code == 403


def test_admin_registers_staff_and_credentials_are_queued():
    admin = make_user('adm', role='admin')
    client = APIClient()
    client.force_authenticate(admin)
    r = client.post('/api/auth/admin-register-staff', {
        'name': 'Nina Nurse', 'email': 'nina@clinic.test', 'role': 'receptionist',
    }, format='json')
    assert r.status_code == 201
    assert r.data['user']['role'] == 'receptionist'
    task = NotificationTask.objects.get(template='staff_credentials')
    assert task.recipient == 'nina@clinic.test'
    assert task.payload['context']['password']

    client.force_authenticate(make_user('drx', role='doctor'))
    r = client.post('/api/auth/admin-register-staff', {
        'name': 'X', 'email': 'x@clinic.test', 'role': 'doctor',
    }, format='json')
    assert r.status_code == 403


def test_forgot_and_reset_password_flow():
    user = make_user('drx', role='doctor', email='drx@clinic.test')
    client = APIClient()
    r = client.post('/api/auth/forgot-password', {'email': 'drx@clinic.test'}, format='json')
    assert r.status_code == 200
    user.refresh_from_db()
    assert user.reset_token and len(user.reset_token) == 64
    link = NotificationTask.objects.get(template='password_reset').payload['context']['reset_link']
    raw = link.split('token=')[1]
    assert hash_token(raw) == user.reset_token

    # unknown email answers the same way without queueing anything
    r = client.post('/api/auth/forgot-password', {'email': 'ghost@clinic.test'}, format='json')
    assert r.status_code == 200
    assert NotificationTask.objects.filter(template='password_reset').count() == 1

    r = client.post('/api/auth/reset-password', {'token': raw, 'password': 'N3w!Passw0rd'}, format='json')
    assert r.status_code == 200
    assert login(client, 'drx', 'N3w!Passw0rd').status_code == 200
    # tokens are single use
    r = client.post('/api/auth/reset-password', {'token': raw, 'password': 'N3w!Passw0rd'}, format='json')
    assert r.status_code == 400


def test_expired_reset_token_rejected():
    user = make_user('drx', role='doctor')
    user.reset_token = hash_token('abc')
    user.reset_token_expiry = timezone.now() - dt.timedelta(minutes=1)
    user.save()
    r = APIClient().post('/api/auth/reset-password', {'token': 'abc', 'password': 'N3w!Passw0rd'}, format='json')
    assert r.status_code == 400


def test_refresh_and_logout():
    make_user('drx', role='doctor')
    client = APIClient()
    tokens = login(client, 'drx').data
    r = client.post('/api/auth/refresh', {'refresh': tokens['refresh']}, format='json')
    assert r.status_code == 200
    assert r.data['token']

    client.credentials(HTTP_AUTHORIZATION=f"Bearer {tokens['token']}")
    r = client.post('/api/auth/logout', {'refresh': tokens['refresh']}, format='json')
    assert r.status_code == 200
    assert r.data['blacklisted'] == 1
    r = APIClient().post('/api/auth/refresh', {'refresh': tokens['refresh']}, format='json')
    assert r.status_code == 401


def test_generated_password_has_all_character_classes():
    pw = generate_password()
    assert len(pw) == 12
    assert any(c.isupper() for c in pw)
    assert any(c.islower() for c in pw)
    assert any(c.isdigit() for c in pw)
    assert any(c in '!@#$%^&*' for c in pw)

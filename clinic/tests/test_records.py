"""
Patient records and clinical data: patients, medical history, tooth
charts, images and visit reports, plus the read-only patient portal.
"""
import datetime as dt

from rest_framework import status
from rest_framework.test import APIClient, APITestCase

from ..models import (
    Appointment,
    DoctorAssignment,
    MedicalHistory,
    MedicalHistoryEntry,
    NotificationTask,
    Patient,
    ToothChart,
)
from ..tokens import PatientSessionToken
from .helpers import make_appointment, make_patient, make_user

NEW_PATIENT = {
    'name': 'Nora Molar',
    'phone': '+92 321 5550000',
    'email': 'Nora@Example.com',
    'dob': '1985-03-02',
    'insuranceProvider': 'Acme Health',
    'allergies': ['penicillin'],
}


class RecordsTestCase(APITestCase):
    def setUp(self) -> None:
        self.admin = make_user('adm', role='admin')
        self.reception = make_user('rec', role='receptionist')
        self.doc = make_user('drd', role='doctor', first_name='Dana')
        self.other_doc = make_user('dro', role='doctor', first_name='Omar')
        self.patient = make_patient(self.doc)

    def as_user(self, user):
        self.client.force_authenticate(user)
        return self.client


class PatientTests(RecordsTestCase):
    def test_create_requires_assigned_doctor(self):
        r = self.as_user(self.reception).post('/api/patients', NEW_PATIENT, format='json')
        self.assertEqual(r.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('Doctor assignment is required', r.data['error'])

    def test_create_tracks_credentials_and_queues_portal_login(self):
        r = self.as_user(self.reception).post('/api/patients', {**NEW_PATIENT, 'assignedDoctorId': self.doc.id},
                                              format='json')
        self.assertEqual(r.status_code, status.HTTP_201_CREATED, r.data)
        body = r.data['patient']
        self.assertEqual(body['email'], 'nora@example.com')
        self.assertEqual(body['credentialStatus'], 'incomplete')
        self.assertEqual(body['missingCredentials'], ['ID Number'])
        self.assertEqual(body['assignedDoctorId'], self.doc.id)
        self.assertEqual(len(body['doctorHistory']), 1)

        task = NotificationTask.objects.get(template='patient_credentials')
        self.assertEqual(task.recipient, 'nora@example.com')
        self.assertTrue(task.payload['context']['password'])
        patient = Patient.objects.get(email='nora@example.com')
        self.assertNotEqual(patient.password, task.payload['context']['password'])

    def test_duplicate_email_rejected(self):
        r = self.as_user(self.admin).post('/api/patients', {
            **NEW_PATIENT, 'email': self.patient.email, 'assignedDoctorId': self.doc.id,
        }, format='json')
        self.assertEqual(r.status_code, status.HTTP_400_BAD_REQUEST)

    def test_doctor_cannot_create(self):
        r = self.as_user(self.doc).post('/api/patients', {**NEW_PATIENT, 'assignedDoctorId': self.doc.id},
                                        format='json')
        self.assertEqual(r.status_code, status.HTTP_403_FORBIDDEN)

    def test_doctor_sees_only_assigned_patients(self):
        make_patient(self.other_doc, email='else@example.com', name='Someone Else')
        r = self.as_user(self.doc).get('/api/patients')
        self.assertEqual([p['id'] for p in r.data['patients']], [self.patient.id])
        r = self.as_user(self.reception).get('/api/patients?search=else')
        self.assertEqual(len(r.data['patients']), 1)

        other = Patient.objects.get(email='else@example.com')
        r = self.as_user(self.doc).get(f'/api/patients/{other.id}')
        self.assertEqual(r.status_code, status.HTTP_403_FORBIDDEN)

    def test_doctor_updates_only_medical_fields(self):
        client = self.as_user(self.doc)
        r = client.put(f'/api/patients/{self.patient.id}', {'phone': '+1 555'}, format='json')
        self.assertEqual(r.status_code, status.HTTP_403_FORBIDDEN)
        r = client.put(f'/api/patients/{self.patient.id}', {'allergies': ['latex']}, format='json')
        self.assertEqual(r.status_code, status.HTTP_200_OK)
        self.assertEqual(r.data['patient']['allergies'], ['latex'])

    def test_reassignment_closes_previous_assignment(self):
        self.as_user(self.admin).put(f'/api/patients/{self.patient.id}', {'assignedDoctorId': self.doc.id},
                                     format='json')
        r = self.as_user(self.admin).put(f'/api/patients/{self.patient.id}', {'assignedDoctorId': self.other_doc.id},
                                         format='json')
        self.assertEqual(r.status_code, status.HTTP_200_OK)
        self.assertEqual(r.data['patient']['assignedDoctorId'], self.other_doc.id)
        open_rows = DoctorAssignment.objects.filter(patient=self.patient, end_date__isnull=True)
        self.assertEqual([a.doctor_id for a in open_rows], [self.other_doc.id])

    def test_delete_cascades_and_reports_counts(self):
        make_appointment(self.patient, self.doc)
        ToothChart.objects.create(patient=self.patient, doctor=self.doc, teeth={})
        r = self.as_user(self.reception).delete(f'/api/patients/{self.patient.id}')
        self.assertEqual(r.status_code, status.HTTP_200_OK)
        self.assertEqual(r.data['deletedRecords']['appointments'], 1)
        self.assertEqual(r.data['deletedRecords']['toothCharts'], 1)
        self.assertFalse(Patient.objects.filter(id=self.patient.id).exists())
        self.assertFalse(Appointment.objects.exists())


class MedicalHistoryTests(RecordsTestCase):
    def add(self, user, notes='Sensitivity'):
        return self.as_user(user).post('/api/medical-history', {
            'patientId': self.patient.id,
            'entry': {'notes': notes, 'findings': 'Caries on 14', 'treatment': 'Filling', 'medications': []},
        }, format='json')

    def test_doctor_adds_entries_in_order(self):
        self.assertEqual(self.add(self.doc, 'first').status_code, status.HTTP_201_CREATED)
        r = self.add(self.doc, 'second')
        entries = r.data['history']['entries']
        self.assertEqual([e['notes'] for e in entries], ['first', 'second'])
        self.assertEqual([e['index'] for e in entries], [0, 1])

    def test_receptionist_cannot_write(self):
        self.assertEqual(self.add(self.reception).status_code, status.HTTP_403_FORBIDDEN)

    def test_only_author_edits_and_index_is_checked(self):
        self.add(self.doc)
        history = MedicalHistory.objects.get(patient=self.patient)
        entry = {'notes': 'n', 'findings': 'f', 'treatment': 't'}

        r = self.as_user(self.other_doc).put(f'/api/medical-history/{history.id}',
                                             {'entryIndex': 0, 'entry': entry}, format='json')
        self.assertEqual(r.status_code, status.HTTP_403_FORBIDDEN)

        r = self.as_user(self.doc).put(f'/api/medical-history/{history.id}',
                                       {'entryIndex': 5, 'entry': entry}, format='json')
        self.assertEqual(r.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(r.data['error'], 'Invalid entry index')

        r = self.as_user(self.doc).put(f'/api/medical-history/{history.id}',
                                       {'entryIndex': 0, 'entry': entry}, format='json')
        self.assertEqual(r.status_code, status.HTTP_200_OK)
        self.assertEqual(r.data['history']['entries'][0]['treatment'], 't')

        r = self.as_user(self.doc).delete(f'/api/medical-history/{history.id}', {'entryIndex': 0}, format='json')
        self.assertEqual(r.status_code, status.HTTP_200_OK)
        self.assertEqual(r.data['history']['entries'], [])

    def test_delete_outside_entry_range_is_rejected(self):
        self.add(self.doc)
        history = MedicalHistory.objects.get(patient=self.patient)
        for index in (5, 1, -1):
            r = self.as_user(self.doc).delete(f'/api/medical-history/{history.id}', {'entryIndex': index}, format='json')
            self.assertEqual(r.status_code, status.HTTP_400_BAD_REQUEST)
            self.assertEqual(r.data['error'], 'Invalid entry index')
        self.assertEqual(MedicalHistoryEntry.objects.filter(history=history).count(), 1)

    def test_untreated_doctor_cannot_read(self):
        self.add(self.doc)
        r = self.as_user(self.other_doc).get(f'/api/medical-history?patientId={self.patient.id}')
        self.assertEqual(r.status_code, status.HTTP_403_FORBIDDEN)
        r = self.as_user(self.reception).get(f'/api/medical-history?patientId={self.patient.id}')
        self.assertEqual(len(r.data['history']['entries']), 1)


class ToothChartTests(RecordsTestCase):
    def test_receptionist_has_no_access(self):
        r = self.as_user(self.reception).get('/api/tooth-chart')
        self.assertEqual(r.status_code, status.HTTP_403_FORBIDDEN)

    def test_new_chart_has_32_healthy_teeth(self):
        r = self.as_user(self.doc).post('/api/tooth-chart', {
            'patientId': self.patient.id, 'teeth': {'14': {'status': 'cavity', 'notes': 'distal'}},
        }, format='json')
        self.assertEqual(r.status_code, status.HTTP_201_CREATED, r.data)
        teeth = r.data['chart']['teeth']
        self.assertEqual(len(teeth), 32)
        self.assertEqual(teeth['14']['status'], 'cavity')
        self.assertEqual(teeth['1']['status'], 'healthy')

    def test_invalid_tooth_or_status_rejected(self):
        client = self.as_user(self.doc)
        r = client.post('/api/tooth-chart', {'patientId': self.patient.id, 'teeth': {'33': {'status': 'healthy'}}},
                        format='json')
        self.assertEqual(r.status_code, status.HTTP_400_BAD_REQUEST)
        r = client.post('/api/tooth-chart', {'patientId': self.patient.id, 'teeth': {'3': {'status': 'shiny'}}},
                        format='json')
        self.assertEqual(r.status_code, status.HTTP_400_BAD_REQUEST)

    def test_only_owner_doctor_updates(self):
        chart_id = self.as_user(self.doc).post('/api/tooth-chart', {'patientId': self.patient.id},
                                               format='json').data['chart']['id']
        r = self.as_user(self.other_doc).put(f'/api/tooth-chart/{chart_id}',
                                             {'teeth': {'2': {'status': 'missing'}}}, format='json')
        self.assertEqual(r.status_code, status.HTTP_403_FORBIDDEN)
        r = self.as_user(self.admin).put(f'/api/tooth-chart/{chart_id}',
                                         {'teeth': {'2': {'status': 'missing'}}, 'overallNotes': 'ok'}, format='json')
        self.assertEqual(r.status_code, status.HTTP_200_OK)
        self.assertEqual(r.data['chart']['teeth']['2']['status'], 'missing')
        self.assertEqual(r.data['chart']['overallNotes'], 'ok')


class ImageTests(RecordsTestCase):
    def test_create_list_delete(self):
        client = self.as_user(self.reception)
        r = client.post('/api/patient-images', {
            'patientId': self.patient.id, 'type': 'xray', 'title': 'Bitewing',
            'imageUrl': 'https://cdn.example.com/x1.png',
        }, format='json')
        self.assertEqual(r.status_code, status.HTTP_201_CREATED)
        image_id = r.data['image']['id']
        r = client.get(f'/api/patient-images?patientId={self.patient.id}&type=xray')
        self.assertEqual(len(r.data['images']), 1)
        self.assertEqual(self.as_user(self.other_doc).get(f'/api/patient-images/{image_id}').status_code,
                         status.HTTP_403_FORBIDDEN)
        self.assertEqual(self.as_user(self.doc).delete(f'/api/patient-images/{image_id}').status_code,
                         status.HTTP_200_OK)

    def test_type_must_be_known(self):
        r = self.as_user(self.doc).post('/api/patient-images', {
            'patientId': self.patient.id, 'type': 'selfie', 'imageUrl': 'https://cdn.example.com/x.png',
        }, format='json')
        self.assertEqual(r.status_code, status.HTTP_400_BAD_REQUEST)


class ReportTests(RecordsTestCase):
    def setUp(self) -> None:
        super().setUp()
        self.appt = make_appointment(self.patient, self.doc, date=dt.date(2030, 3, 4))
        self.payload = {
            'appointmentId': self.appt.id,
            'procedures': [{'name': 'Composite filling', 'tooth': '14', 'status': 'done'}],
            'findings': 'Small occlusal caries',
            'notes': 'Patient tolerated well',
            'nextVisit': '2030-09-04',
        }

    def create(self, user=None, **overrides):
        return self.as_user(user or self.doc).post('/api/appointment-reports', {**self.payload, **overrides},
                                                   format='json')

    def test_treating_doctor_creates_report(self):
        r = self.create()
        self.assertEqual(r.status_code, status.HTTP_201_CREATED, r.data)
        self.assertEqual(r.data['report']['appointmentType'], self.appt.type)
        self.patient.refresh_from_db()
        self.assertEqual(self.patient.last_visit, dt.date(2030, 3, 4))
        self.assertTrue(NotificationTask.objects.filter(template='report_ready').exists())

    def test_other_roles_rejected(self):
        self.assertEqual(self.create(self.other_doc).status_code, status.HTTP_403_FORBIDDEN)
        self.assertEqual(self.create(self.reception).status_code, status.HTTP_403_FORBIDDEN)

    def test_procedures_required(self):
        self.assertEqual(self.create(procedures=[]).status_code, status.HTTP_400_BAD_REQUEST)

    def test_list_needs_a_filter(self):
        r = self.as_user(self.admin).get('/api/appointment-reports')
        self.assertEqual(r.status_code, status.HTTP_400_BAD_REQUEST)

    def test_pdf_download(self):
        report_id = self.create().data['report']['id']
        r = self.as_user(self.admin).get(f'/api/appointment-reports/{report_id}/pdf')
        self.assertEqual(r.status_code, status.HTTP_200_OK)
        self.assertEqual(r['Content-Type'], 'application/pdf')
        self.assertTrue(r.content.startswith(b'%PDF'))
        self.assertIn(f'report-{report_id}-Pat-Example.pdf', r['Content-Disposition'])


class PortalTests(RecordsTestCase):
    def setUp(self) -> None:
        super().setUp()
        self.appt = make_appointment(self.patient, self.doc)
        self.other = make_patient(self.doc, email='other@example.com', name='Other Person')
        make_appointment(self.other, self.doc, time=dt.time(15, 0))
        self.client.force_authenticate(None)
        token = PatientSessionToken.for_patient(self.patient)
        self.client.credentials(HTTP_AUTHORIZATION=f'Bearer {token}')

    def test_only_own_appointments(self):
        r = self.client.get('/api/patient/appointments')
        self.assertEqual(r.status_code, status.HTTP_200_OK)
        self.assertEqual([a['id'] for a in r.data['appointments']], [self.appt.id])

    def test_own_report_pdf_only(self):
        staff = APIClient()
        staff.force_authenticate(self.doc)
        mine = staff.post('/api/appointment-reports', {
            'appointmentId': self.appt.id, 'procedures': [{'name': 'Scaling'}], 'findings': 'ok', 'notes': 'ok',
        }, format='json').data['report']['id']
        theirs_appt = Appointment.objects.get(patient=self.other)
        theirs = staff.post('/api/appointment-reports', {
            'appointmentId': theirs_appt.id, 'procedures': [{'name': 'Scaling'}], 'findings': 'ok', 'notes': 'ok',
        }, format='json').data['report']['id']

        r = self.client.get('/api/patient/reports')
        self.assertEqual(r.status_code, status.HTTP_200_OK)
        self.assertEqual([x['id'] for x in r.data['reports']], [mine])
        self.assertTrue(self.client.get(f'/api/patient/reports/{mine}/pdf').content.startswith(b'%PDF'))
        self.assertEqual(self.client.get(f'/api/patient/reports/{theirs}/pdf').status_code, status.HTTP_403_FORBIDDEN)

    def test_inactive_patient_rejected(self):
        Patient.objects.filter(id=self.patient.id).update(status='inactive')
        self.assertEqual(self.client.get('/api/patient/me').status_code, status.HTTP_401_UNAUTHORIZED)

    def test_history_and_chart_empty_by_default(self):
        self.assertIsNone(self.client.get('/api/patient/medical-history').data['history'])
        self.assertEqual(self.client.get('/api/patient/tooth-chart').data['charts'], [])

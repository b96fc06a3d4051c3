"""
Tests for the referral workflow.

Covers who may move a referral, the effect of each transition on the
appointment, and the order in which guards fire.
"""
import datetime as dt

from rest_framework import status
from rest_framework.test import APITestCase

from ..context import Actor
from ..models import Appointment, AppointmentReferral
from ..services import referrals
from .helpers import make_appointment, make_patient, make_user


class ReferralAPITests(APITestCase):
    def setUp(self) -> None:
        self.doc_a = make_user('dra', role='doctor', first_name='Alice')
        self.doc_b = make_user('drb', role='doctor', first_name='Bob')
        self.doc_c = make_user('drc', role='doctor', first_name='Carol')
        self.reception = make_user('rec', role='receptionist')
        self.patient = make_patient(self.doc_a)
        self.appt = make_appointment(self.patient, self.doc_a, date=dt.date(2030, 2, 1))

    def open_referral(self, by=None, to=None):
        self.client.force_authenticate(by or self.doc_a)
        r = self.client.post('/api/appointment-referrals', {
            'appointmentId': self.appt.id,
            'toDoctorId': (to or self.doc_b).id,
            'reason': 'Needs root canal',
        }, format='json')
        self.assertEqual(r.status_code, status.HTTP_201_CREATED, r.data)
        return r.data['referral']['id']

    def act(self, user, referral_id, action, **extra):
        self.client.force_authenticate(user)
        return self.client.put(f'/api/appointment-referrals/{referral_id}', {'action': action, **extra}, format='json')

    def test_only_target_doctor_may_reject(self):
        rid = self.open_referral()
        r = self.act(self.doc_a, rid, 'reject')
        self.assertEqual(r.status_code, status.HTTP_403_FORBIDDEN)
        self.assertFalse(r.data['success'])
        self.assertEqual(AppointmentReferral.objects.get(id=rid).status, 'pending')

        r = self.act(self.doc_c, rid, 'accept')
        self.assertEqual(r.status_code, status.HTTP_403_FORBIDDEN)

    def test_reject_restores_doctor_exactly(self):
        rid = self.open_referral()
        r = self.act(self.doc_b, rid, 'reject')
        self.assertEqual(r.status_code, status.HTTP_200_OK)
        self.assertEqual(r.data['referral']['status'], 'rejected')
        self.appt.refresh_from_db()
        self.assertEqual(self.appt.doctor_id, self.doc_a.id)
        self.assertEqual(self.appt.doctor_name, self.doc_a.display_name)
        self.assertFalse(self.appt.is_referred)
        self.assertIsNone(self.appt.original_doctor_id)
        self.assertIsNone(self.appt.current_referral_id)

    def test_accept_moves_appointment_and_keeps_original(self):
        rid = self.open_referral()
        r = self.act(self.doc_b, rid, 'accept')
        self.assertEqual(r.status_code, status.HTTP_200_OK)
        self.assertEqual(r.data['appointment']['doctorId'], self.doc_b.id)
        self.appt.refresh_from_db()
        self.assertTrue(self.appt.is_referred)
        self.assertEqual(self.appt.doctor_id, self.doc_b.id)
        self.assertEqual(self.appt.original_doctor_id, self.doc_a.id)
        self.assertEqual(self.appt.current_referral_id, rid)

    def test_chained_referral_keeps_first_original_and_reverts_to_snapshot(self):
        rid = self.open_referral()
        self.act(self.doc_b, rid, 'accept')
        self.act(self.doc_b, rid, 'complete')
        # B hands the appointment on to C; original stays A
        rid2 = self.open_referral(by=self.doc_b, to=self.doc_c)
        self.act(self.doc_c, rid2, 'accept')
        self.appt.refresh_from_db()
        self.assertEqual(self.appt.doctor_id, self.doc_c.id)
        self.assertEqual(self.appt.original_doctor_id, self.doc_a.id)

    def test_reject_of_second_referral_restores_referred_state(self):
        rid = self.open_referral()
        self.act(self.doc_b, rid, 'accept')
        self.act(self.doc_b, rid, 'complete')
        rid2 = self.open_referral(by=self.doc_b, to=self.doc_c)
        r = self.act(self.doc_c, rid2, 'reject')
        self.assertEqual(r.status_code, status.HTTP_200_OK)
        self.appt.refresh_from_db()
        self.assertEqual(self.appt.doctor_id, self.doc_b.id)
        self.assertTrue(self.appt.is_referred)
        self.assertEqual(self.appt.original_doctor_id, self.doc_a.id)

    def test_refer_back_flags_original_doctor(self):
        rid = self.open_referral()
        self.act(self.doc_b, rid, 'accept')
        r = self.act(self.doc_b, rid, 'refer_back', notes='Please review x-ray')
        self.assertEqual(r.status_code, status.HTTP_200_OK)
        self.assertEqual(r.data['referral']['status'], 'referred_back')
        self.appt.refresh_from_db()
        self.assertEqual(self.appt.status, Appointment.STATUS_REFER_BACK)
        self.assertTrue(self.appt.awaiting_original_doctor_action)
        self.assertEqual(self.appt.referral_notes, 'Please review x-ray')
        self.assertIsNotNone(self.appt.last_refer_back_at)

        # referred_back is terminal
        r = self.act(self.doc_b, rid, 'complete')
        self.assertEqual(r.status_code, status.HTTP_400_BAD_REQUEST)

        # the original doctor can see it and open a new referral
        self.client.force_authenticate(self.doc_a)
        self.assertEqual(self.client.get(f'/api/appointments/{self.appt.id}').status_code, 200)
        rid2 = self.open_referral(by=self.doc_a, to=self.doc_c)
        self.appt.refresh_from_db()
        self.assertEqual(self.appt.doctor_id, self.doc_a.id)
        self.assertFalse(self.appt.awaiting_original_doctor_action)
        self.assertEqual(self.appt.current_referral_id, rid2)

    def test_invalid_transition_is_400(self):
        rid = self.open_referral()
        r = self.act(self.doc_b, rid, 'complete')
        self.assertEqual(r.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('pending', r.data['error'])

    def test_unknown_action_checked_before_existence(self):
        r = self.act(self.doc_b, 999999, 'teleport')
        self.assertEqual(r.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('Invalid action', r.data['error'])

    def test_missing_referral_is_404(self):
        r = self.act(self.doc_b, 999999, 'accept')
        self.assertEqual(r.status_code, status.HTTP_404_NOT_FOUND)

    def test_non_doctor_gets_403(self):
        rid = self.open_referral()
        r = self.act(self.reception, rid, 'accept')
        self.assertEqual(r.status_code, status.HTTP_403_FORBIDDEN)

    def test_second_open_referral_conflicts(self):
        self.open_referral()
        self.client.force_authenticate(self.doc_a)
        r = self.client.post('/api/appointment-referrals', {
            'appointmentId': self.appt.id, 'toDoctorId': self.doc_c.id,
        }, format='json')
        self.assertEqual(r.status_code, status.HTTP_409_CONFLICT)

    def test_cannot_refer_someone_elses_appointment_or_to_non_doctor(self):
        self.client.force_authenticate(self.doc_b)
        r = self.client.post('/api/appointment-referrals', {
            'appointmentId': self.appt.id, 'toDoctorId': self.doc_c.id,
        }, format='json')
        self.assertEqual(r.status_code, status.HTTP_403_FORBIDDEN)

        self.client.force_authenticate(self.doc_a)
        r = self.client.post('/api/appointment-referrals', {
            'appointmentId': self.appt.id, 'toDoctorId': self.reception.id,
        }, format='json')
        self.assertEqual(r.status_code, status.HTTP_400_BAD_REQUEST)

    def test_listing_is_scoped_to_involved_doctors(self):
        self.open_referral()
        self.client.force_authenticate(self.doc_b)
        r = self.client.get('/api/appointment-referrals?direction=incoming')
        self.assertEqual(len(r.data['referrals']), 1)
        self.client.force_authenticate(self.doc_c)
        r = self.client.get('/api/appointment-referrals')
        self.assertEqual(r.data['referrals'], [])

    def test_list_filters_are_validated(self):
        self.open_referral()
        self.client.force_authenticate(self.doc_a)
        for query in ('appointmentId=abc', 'status=open', 'direction=sideways'):
            r = self.client.get(f'/api/appointment-referrals?{query}')
            self.assertEqual(r.status_code, status.HTTP_400_BAD_REQUEST, query)
            self.assertIs(r.data['success'], False)
        r = self.client.get(f'/api/appointment-referrals?appointmentId={self.appt.id}&status=pending&direction=outgoing')
        self.assertEqual(r.status_code, status.HTTP_200_OK)
        self.assertEqual(len(r.data['referrals']), 1)

    def test_transition_table_without_http(self):
        rid = self.open_referral()
        self.assertEqual(referrals.allowed_actions('pending'), ['accept', 'reject'])
        self.assertEqual(referrals.allowed_actions('referred_back'), [])
        ref = referrals.apply_action(Actor.for_user(self.doc_b), rid, 'accept')
        self.assertEqual(ref.status, 'accepted')

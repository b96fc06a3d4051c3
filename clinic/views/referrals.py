"""
Referral endpoints.

POST ``/api/appointment-referrals`` opens a referral; PUT
``/api/appointment-referrals/<id>`` with ``{"action": ...}`` moves it
through the transition table in :mod:`clinic.services.referrals`.
"""
from __future__ import annotations

from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from ..context import Actor
from ..permissions import IsStaffRole
from ..serializers.appointments import (
    ReferralActionSerializer,
    ReferralCreateSerializer,
    ReferralListQuerySerializer,
    serialize_appointment,
    serialize_referral,
)
from ..services import referrals as service


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, IsStaffRole])
def referrals(request):
    actor = Actor.from_request(request)
    if request.method == 'GET':
        q = ReferralListQuerySerializer(data=request.query_params)
        q.is_valid(raise_exception=True)
        v = q.validated_data
        items = service.list_referrals(
            actor,
            status=v.get('status', ''),
            direction=v.get('direction', ''),
            appointment_id=v.get('appointmentId'),
        )
        return Response({'success': True, 'referrals': [serialize_referral(r) for r in items]})

    s = ReferralCreateSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    v = s.validated_data
    referral = service.create_referral(
        actor,
        appointment_id=v['appointmentId'],
        to_doctor_id=v['toDoctorId'],
        reason=v.get('reason', ''),
        notes=v.get('notes', ''),
    )
    return Response({'success': True, 'referral': serialize_referral(referral)}, status=status.HTTP_201_CREATED)


@api_view(['GET', 'PUT'])
@permission_classes([IsAuthenticated, IsStaffRole])
def referral_detail(request, pk: int):
    actor = Actor.from_request(request)
    if request.method == 'GET':
        referral = service.get_referral(actor, pk)
        return Response({
            'success': True,
            'referral': serialize_referral(referral),
            'allowedActions': service.allowed_actions(referral.status) if referral.to_doctor_id == actor.id else [],
        })
    s = ReferralActionSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    referral = service.apply_action(actor, pk, s.validated_data['action'], s.validated_data.get('notes', ''))
    return Response({
        'success': True,
        'referral': serialize_referral(referral),
        'appointment': serialize_appointment(referral.appointment),
    })

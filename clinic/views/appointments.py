"""
Appointment endpoints.

``/api/appointments`` lists and books appointments;
``/api/appointments/<id>`` reads, updates and deletes one.  Access rules
and the scheduling check live in :mod:`clinic.services.appointments`.
"""
from __future__ import annotations

from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from ..context import Actor
from ..permissions import IsStaffRole
from ..serializers.appointments import (
    AppointmentCreateSerializer,
    AppointmentListQuerySerializer,
    AppointmentUpdateSerializer,
    serialize_appointment,
)
from ..services import appointments as service


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, IsStaffRole])
def appointments(request):
    actor = Actor.from_request(request)
    if request.method == 'GET':
        q = AppointmentListQuerySerializer(data=request.query_params)
        q.is_valid(raise_exception=True)
        v = q.validated_data
        items = service.list_appointments(
            actor,
            patient_id=v.get('patientId'),
            doctor_id=v.get('doctorId'),
            date=v.get('date'),
            status=v.get('status'),
        )
        return Response({'success': True, 'appointments': [serialize_appointment(a) for a in items]})

    s = AppointmentCreateSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    appt = service.create_appointment(actor, s.validated_data)
    return Response({'success': True, 'appointment': serialize_appointment(appt)}, status=status.HTTP_201_CREATED)


@api_view(['GET', 'PUT', 'DELETE'])
@permission_classes([IsAuthenticated, IsStaffRole])
def appointment_detail(request, pk: int):
    actor = Actor.from_request(request)
    if request.method == 'GET':
        return Response({'success': True, 'appointment': serialize_appointment(service.get_appointment(actor, pk))})
    if request.method == 'PUT':
        s = AppointmentUpdateSerializer(data=request.data)
        s.is_valid(raise_exception=True)
        appt = service.update_appointment(actor, pk, s.validated_data)
        return Response({'success': True, 'appointment': serialize_appointment(appt)})
    service.delete_appointment(actor, pk)
    return Response({'success': True, 'message': 'Appointment deleted'})

"""
Patient management views.

Front desk staff list, create, update and delete patients; doctors see
only their assigned patients and may only edit medical fields.
"""
from __future__ import annotations

from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from ..context import Actor
from ..permissions import IsStaffRole
from ..serializers.patients import (
    PatientCreateSerializer,
    PatientListQuerySerializer,
    PatientUpdateSerializer,
    serialize_patient,
    serialize_patient_detail,
)
from ..services import patients as service


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, IsStaffRole])
def patients(request):
    actor = Actor.from_request(request)
    if request.method == 'GET':
        q = PatientListQuerySerializer(data=request.query_params)
        q.is_valid(raise_exception=True)
        v = q.validated_data
        items = service.list_patients(actor, search=v.get('search', ''), status=v.get('status', ''),
                                      doctor_id=v.get('doctorId'))
        return Response({'success': True, 'patients': [serialize_patient(p) for p in items]})

    s = PatientCreateSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    patient = service.create_patient(actor, s.validated_data)
    return Response({'success': True, 'patient': serialize_patient_detail(patient)}, status=status.HTTP_201_CREATED)


@api_view(['GET', 'PUT', 'DELETE'])
@permission_classes([IsAuthenticated, IsStaffRole])
def patient_detail(request, pk: int):
    actor = Actor.from_request(request)
    if request.method == 'GET':
        return Response({'success': True, 'patient': serialize_patient_detail(service.get_patient(actor, pk))})
    if request.method == 'PUT':
        patient = service.get_patient(actor, pk)
        s = PatientUpdateSerializer(patient, data=request.data)
        s.is_valid(raise_exception=True)
        patient = service.update_patient(actor, pk, s.validated_data)
        return Response({'success': True, 'patient': serialize_patient_detail(patient)})
    deleted = service.delete_patient(actor, pk)
    return Response({'success': True, 'message': 'Patient and related records deleted', 'deletedRecords': deleted})

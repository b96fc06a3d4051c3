from __future__ import annotations

from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.exceptions import ValidationError
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from ..context import Actor
from ..permissions import IsStaffRole
from ..serializers.clinical import (
    HistoryCreateSerializer,
    HistoryDeleteSerializer,
    HistoryUpdateSerializer,
    serialize_history,
)
from ..services import medical_history as service


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, IsStaffRole])
def medical_history(request):
    actor = Actor.from_request(request)
    if request.method == 'GET':
        patient_id = request.query_params.get('patientId')
        if not patient_id or not str(patient_id).isdigit():
            raise ValidationError('Patient ID required')
        history = service.get_history(actor, int(patient_id))
        return Response({'success': True, 'history': serialize_history(history) if history else None})

    s = HistoryCreateSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    history = service.add_entry(actor, s.validated_data['patientId'], s.validated_data['entry'])
    return Response({'success': True, 'history': serialize_history(history)}, status=status.HTTP_201_CREATED)


@api_view(['PUT', 'DELETE'])
@permission_classes([IsAuthenticated, IsStaffRole])
def medical_history_detail(request, pk: int):
    """Edit or remove the entry at ``entryIndex`` of history ``pk``."""
    actor = Actor.from_request(request)
    if request.method == 'PUT':
        s = HistoryUpdateSerializer(data=request.data)
        s.is_valid(raise_exception=True)
        history = service.update_entry(actor, pk, s.validated_data['entryIndex'], s.validated_data['entry'])
    else:
        s = HistoryDeleteSerializer(data=request.data or request.query_params)
        s.is_valid(raise_exception=True)
        history = service.delete_entry(actor, pk, s.validated_data['entryIndex'])
    return Response({'success': True, 'history': serialize_history(history)})

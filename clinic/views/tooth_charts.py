from __future__ import annotations

from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from ..context import Actor
from ..permissions import IsClinicalStaff
from ..serializers.clinical import ToothChartWriteSerializer, serialize_tooth_chart
from ..services import tooth_charts as service


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, IsClinicalStaff])
def tooth_charts(request):
    actor = Actor.from_request(request)
    if request.method == 'GET':
        patient_id = request.query_params.get('patientId')
        charts = service.list_charts(actor, int(patient_id) if patient_id and patient_id.isdigit() else None)
        return Response({'success': True, 'charts': [serialize_tooth_chart(c) for c in charts]})

    s = ToothChartWriteSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    chart = service.create_chart(actor, s.validated_data)
    return Response({'success': True, 'chart': serialize_tooth_chart(chart)}, status=status.HTTP_201_CREATED)


@api_view(['GET', 'PUT'])
@permission_classes([IsAuthenticated, IsClinicalStaff])
def tooth_chart_detail(request, pk: int):
    actor = Actor.from_request(request)
    if request.method == 'GET':
        return Response({'success': True, 'chart': serialize_tooth_chart(service.get_chart(actor, pk))})
    s = ToothChartWriteSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    chart = service.update_chart(actor, pk, s.validated_data)
    return Response({'success': True, 'chart': serialize_tooth_chart(chart)})

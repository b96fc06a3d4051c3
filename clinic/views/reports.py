from __future__ import annotations

from django.http import HttpResponse
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from ..context import Actor
from ..permissions import IsStaffRole
from ..serializers.clinical import ReportCreateSerializer, ReportListQuerySerializer, serialize_report
from ..services import reports as service
from ..services.pdf import render_report_pdf, report_filename


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, IsStaffRole])
def reports(request):
    actor = Actor.from_request(request)
    if request.method == 'GET':
        q = ReportListQuerySerializer(data=request.query_params)
        q.is_valid(raise_exception=True)
        items = service.list_reports(actor, appointment_id=q.validated_data.get('appointmentId'),
                                     patient_id=q.validated_data.get('patientId'))
        return Response({'success': True, 'reports': [serialize_report(r) for r in items]})

    s = ReportCreateSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    report = service.create_report(actor, s.validated_data)
    return Response({'success': True, 'report': serialize_report(report)}, status=status.HTTP_201_CREATED)


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsStaffRole])
def report_detail(request, pk: int):
    report = service.get_report(Actor.from_request(request), pk)
    return Response({'success': True, 'report': serialize_report(report)})


def pdf_response(report) -> HttpResponse:
    resp = HttpResponse(render_report_pdf(report), content_type='application/pdf')
    resp['Content-Disposition'] = f'attachment; filename="{report_filename(report)}"'
    return resp


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsStaffRole])
def report_pdf(request, pk: int):
    return pdf_response(service.get_report(Actor.from_request(request), pk))

"""
Patient portal endpoints.

Authenticated with a patient session token only; every query is pinned
to the signed-in patient so one patient can never read another's data.
"""
from __future__ import annotations

from rest_framework.decorators import api_view, authentication_classes, permission_classes
from rest_framework.response import Response

from ..authentication import PatientSessionAuthentication
from ..context import Actor
from ..models import Appointment, MedicalHistory, PatientImage, ToothChart
from ..permissions import IsPatientSession
from ..serializers.appointments import serialize_appointment
from ..serializers.clinical import serialize_history, serialize_image, serialize_report, serialize_tooth_chart
from ..serializers.patients import serialize_patient
from ..services import reports as report_service
from .reports import pdf_response

PORTAL_AUTH = [PatientSessionAuthentication]
PORTAL_PERMS = [IsPatientSession]


@api_view(['GET'])
@authentication_classes(PORTAL_AUTH)
@permission_classes(PORTAL_PERMS)
def me(request):
    return Response({'success': True, 'patient': serialize_patient(request.user.patient)})


@api_view(['GET'])
@authentication_classes(PORTAL_AUTH)
@permission_classes(PORTAL_PERMS)
def my_appointments(request):
    qs = Appointment.objects.filter(patient=request.user.patient).order_by('-date', '-time')
    return Response({'success': True, 'appointments': [serialize_appointment(a) for a in qs]})


@api_view(['GET'])
@authentication_classes(PORTAL_AUTH)
@permission_classes(PORTAL_PERMS)
def my_reports(request):
    actor = Actor.from_request(request)
    items = report_service.list_reports(actor, patient_id=actor.id)
    return Response({'success': True, 'reports': [serialize_report(r) for r in items]})


@api_view(['GET'])
@authentication_classes(PORTAL_AUTH)
@permission_classes(PORTAL_PERMS)
def my_report_pdf(request, pk: int):
    return pdf_response(report_service.get_report(Actor.from_request(request), pk))


@api_view(['GET'])
@authentication_classes(PORTAL_AUTH)
@permission_classes(PORTAL_PERMS)
def my_images(request):
    qs = PatientImage.objects.select_related('uploaded_by').filter(patient=request.user.patient)
    return Response({'success': True, 'images': [serialize_image(i) for i in qs]})


@api_view(['GET'])
@authentication_classes(PORTAL_AUTH)
@permission_classes(PORTAL_PERMS)
def my_tooth_chart(request):
    qs = ToothChart.objects.select_related('doctor').filter(patient=request.user.patient).order_by('-updated_at')
    return Response({'success': True, 'charts': [serialize_tooth_chart(c) for c in qs]})


@api_view(['GET'])
@authentication_classes(PORTAL_AUTH)
@permission_classes(PORTAL_PERMS)
def my_medical_history(request):
    history = MedicalHistory.objects.filter(patient=request.user.patient).first()
    return Response({'success': True, 'history': serialize_history(history) if history else None})

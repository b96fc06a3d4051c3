"""
Patient image references (x-rays, photos, scans).

Images are stored externally; these endpoints keep the URL and
metadata.  Any staff member may manage them, doctors only for patients
they are or were assigned to.
"""
from __future__ import annotations

from django.db import transaction
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.exceptions import NotFound, PermissionDenied, ValidationError
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from ..context import Actor
from ..models import Patient, PatientImage
from ..permissions import IsStaffRole
from ..serializers.clinical import PatientImageCreateSerializer, serialize_image
from ..services.audit import audit
from ..services.patients import doctor_has_treated


def _patient_scope(actor, patient: Patient) -> None:
    if actor.is_doctor and not doctor_has_treated(actor.id, patient):
        raise PermissionDenied('Access denied')


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, IsStaffRole])
def patient_images(request):
    actor = Actor.from_request(request)
    if request.method == 'GET':
        patient_id = request.query_params.get('patientId')
        if not patient_id or not patient_id.isdigit():
            raise ValidationError('Patient ID required')
        patient = Patient.objects.filter(id=patient_id).first()
        if patient is None:
            raise NotFound('Patient not found')
        _patient_scope(actor, patient)
        qs = PatientImage.objects.select_related('uploaded_by').filter(patient=patient)
        image_type = request.query_params.get('type')
        if image_type:
            qs = qs.filter(type=image_type)
        return Response({'success': True, 'images': [serialize_image(i) for i in qs]})

    s = PatientImageCreateSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    v = s.validated_data
    patient = Patient.objects.filter(id=v['patientId']).first()
    if patient is None:
        raise NotFound('Patient not found')
    _patient_scope(actor, patient)
    with transaction.atomic():
        image = PatientImage.objects.create(
            patient=patient,
            type=v['type'],
            title=v.get('title', ''),
            description=v.get('description', ''),
            image_url=v['imageUrl'],
            notes=v.get('notes', ''),
            uploaded_by=actor.user,
        )
        audit(actor, 'image_create', 'patient_image', image.id, patient_id=patient.id, type=image.type)
    return Response({'success': True, 'image': serialize_image(image)}, status=status.HTTP_201_CREATED)


@api_view(['GET', 'DELETE'])
@permission_classes([IsAuthenticated, IsStaffRole])
def patient_image_detail(request, pk: int):
    actor = Actor.from_request(request)
    image = PatientImage.objects.select_related('patient', 'uploaded_by').filter(id=pk).first()
    if image is None:
        raise NotFound('Image not found')
    _patient_scope(actor, image.patient)
    if request.method == 'GET':
        return Response({'success': True, 'image': serialize_image(image)})
    with transaction.atomic():
        image.delete()
        audit(actor, 'image_delete', 'patient_image', pk)
    return Response({'success': True, 'message': 'Image deleted'})

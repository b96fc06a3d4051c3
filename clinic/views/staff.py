from __future__ import annotations

from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from ..models import User
from ..permissions import IsAdminRole, IsStaffRole
from ..serializers.auth import serialize_user


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsAdminRole])
def staff_list(request):
    qs = User.objects.filter(is_active=True).order_by('role', 'first_name', 'username')
    role = request.query_params.get('role')
    if role:
        qs = qs.filter(role=role)
    return Response({'success': True, 'staff': [serialize_user(u) for u in qs]})


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsStaffRole])
def doctors_list(request):
    """Doctors for booking, assignment and referral pickers."""
    qs = User.objects.filter(role=User.ROLE_DOCTOR, is_active=True).order_by('first_name', 'username')
    return Response({'success': True, 'doctors': [serialize_user(u) for u in qs]})

"""
Custom permission classes for role based access control.
"""
from rest_framework.permissions import BasePermission

STAFF_ROLES = {"admin", "doctor", "receptionist"}
FRONT_DESK_ROLES = {"admin", "receptionist"}


def _role(request):
    user = getattr(request, "user", None)
    if not (user and user.is_authenticated):
        return None
    return getattr(user, "role", None)


class IsStaffRole(BasePermission):
    """Any clinic staff account."""
    def has_permission(self, request, view) -> bool:  # type: ignore[override]
        return _role(request) in STAFF_ROLES


class IsAdminRole(BasePermission):
    """Allow access only to users with the admin role."""
    message = "Only admins can perform this action"

    def has_permission(self, request, view) -> bool:  # type: ignore[override]
        return _role(request) == "admin"


class IsFrontDesk(BasePermission):
    """Admin or receptionist."""
    message = "Access denied"

    def has_permission(self, request, view) -> bool:  # type: ignore[override]
        return _role(request) in FRONT_DESK_ROLES


class IsClinicalStaff(BasePermission):
    """Admin or doctor; receptionists have no access to clinical charts."""
    message = "Receptionists cannot access tooth charts"

    def has_permission(self, request, view) -> bool:  # type: ignore[override]
        return _role(request) in {"admin", "doctor"}


class IsPatientSession(BasePermission):
    """Request authenticated with a patient session token."""
    def has_permission(self, request, view) -> bool:  # type: ignore[override]
        return _role(request) == "patient" and getattr(request.user, "patient", None) is not None

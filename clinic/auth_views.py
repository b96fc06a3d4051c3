"""
Authentication views.

Staff sign in with username (or email) and password and receive a JWT
pair; patients sign in to the portal with email and password and
receive a patient session token.  Account management endpoints (signup,
admin staff registration, forgot/reset password) live here too.  These
views are kept apart from the authentication classes in
``clinic.authentication`` to avoid circular imports when DRF loads its
settings.
"""
from __future__ import annotations

from django.contrib.auth import authenticate
from django.contrib.auth.hashers import check_password
from rest_framework.decorators import api_view, permission_classes, authentication_classes
from rest_framework.exceptions import AuthenticationFailed, ValidationError
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.response import Response
from rest_framework_simplejwt.exceptions import TokenError
from rest_framework_simplejwt.serializers import TokenRefreshSerializer
from rest_framework_simplejwt.token_blacklist.models import BlacklistedToken, OutstandingToken
from rest_framework_simplejwt.tokens import RefreshToken

from .context import Actor
from .exceptions import InvalidCredentials
from .models import Patient
from .permissions import IsAdminRole
from .serializers.auth import (
    ForgotPasswordSerializer,
    LoginSerializer,
    PatientLoginSerializer,
    ResetPasswordSerializer,
    SignupSerializer,
    StaffRegistrationSerializer,
    serialize_user,
)
from .serializers.patients import serialize_patient
from .services import accounts
from .services.audit import audit
from .tokens import PatientSessionToken, issue_staff_tokens


def _ip(request):
    return request.META.get('REMOTE_ADDR')


def _token_payload(user) -> dict:
    refresh = issue_staff_tokens(user)
    return {
        'success': True,
        'token': str(refresh.access_token),
        'refresh': str(refresh),
        'user': serialize_user(user),
    }


# ---------------------------------------------------------------------
# Staff login / signup
# ---------------------------------------------------------------------
@api_view(['POST'])
@authentication_classes([])
@permission_classes([AllowAny])
def login_view(request):
    s = LoginSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    account = s.validated_data['account']
    password = s.validated_data['password']

    user = accounts.find_staff_by_account(account)
    if user is not None:
        user = authenticate(request, username=user.username, password=password)
    if not user:
        audit(None, 'login', 'user', None, result='fail', account=account, ip=_ip(request))
        raise InvalidCredentials('Invalid credentials')

    audit(Actor.for_user(user), 'login', 'user', user.id, result='ok', ip=_ip(request))
    return Response(_token_payload(user), status=200)

# ScopedRateThrottle reads throttle_scope from the APIView class api_view generates
login_view.cls.throttle_scope = 'login'


@api_view(['POST'])
@authentication_classes([])
@permission_classes([AllowAny])
def signup_view(request):
    s = SignupSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    user = accounts.signup(s.validated_data)
    return Response(_token_payload(user), status=201)

signup_view.cls.throttle_scope = 'login'


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsAdminRole])
def admin_register_staff_view(request):
    s = StaffRegistrationSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    user = accounts.register_staff(Actor.from_request(request), s.validated_data)
    return Response({
        'success': True,
        'message': 'Staff member registered successfully. Credentials sent to email.',
        'user': serialize_user(user),
    }, status=201)


# ---------------------------------------------------------------------
# Forgot / reset password
# ---------------------------------------------------------------------
@api_view(['POST'])
@authentication_classes([])
@permission_classes([AllowAny])
def forgot_password_view(request):
    s = ForgotPasswordSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    accounts.request_password_reset(s.validated_data['email'])
    # same answer whether or not the account exists
    return Response({'success': True, 'message': 'If an account exists for this email, a reset link has been sent.'})

forgot_password_view.cls.throttle_scope = 'password_reset'


@api_view(['POST'])
@authentication_classes([])
@permission_classes([AllowAny])
def reset_password_view(request):
    s = ResetPasswordSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    accounts.reset_password(s.validated_data['token'], s.validated_data['password'])
    return Response({'success': True, 'message': 'Password has been reset successfully'})

reset_password_view.cls.throttle_scope = 'password_reset'


# ---------------------------------------------------------------------
# Patient portal login
# ---------------------------------------------------------------------
@api_view(['POST'])
@authentication_classes([])
@permission_classes([AllowAny])
def patient_login_view(request):
    s = PatientLoginSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    patient = Patient.objects.filter(email__iexact=s.validated_data['email']).first()
    if not patient or not patient.password or not check_password(s.validated_data['password'], patient.password):
        audit(None, 'patient_login', 'patient', patient.id if patient else None, result='fail', ip=_ip(request))
        raise InvalidCredentials('Invalid credentials')
    if patient.status != 'active':
        raise InvalidCredentials('Patient account is inactive')

    token = PatientSessionToken.for_patient(patient)
    audit(Actor.for_patient(patient), 'patient_login', 'patient', patient.id, result='ok', ip=_ip(request))
    return Response({
        'success': True,
        'token': str(token),
        'expiresIn': int(PatientSessionToken.lifetime.total_seconds()),
        'patient': serialize_patient(patient),
    })

patient_login_view.cls.throttle_scope = 'patient_login'


# ---------------------------------------------------------------------
# JWT: refresh & logout
# ---------------------------------------------------------------------
@api_view(['POST'])
@authentication_classes([])
@permission_classes([AllowAny])
def jwt_refresh_view(request):
    """Return a new access token from a refresh token."""
    s = TokenRefreshSerializer(data=request.data)
    try:
        s.is_valid(raise_exception=True)
    except (TokenError, AuthenticationFailed) as e:
        raise InvalidCredentials(str(e))
    data = dict(s.validated_data)
    data['token'] = data.pop('access')
    return Response({'success': True, **data})


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def jwt_logout_view(request):
    """Blacklist the given refresh token, or all of the user's outstanding ones."""
    refresh = request.data.get('refresh')
    count = 0
    if refresh:
        try:
            RefreshToken(refresh).blacklist()
        except TokenError as e:
            raise ValidationError({'refresh': str(e)})
        count = 1
    else:
        for token in OutstandingToken.objects.filter(user=request.user):
            _, created = BlacklistedToken.objects.get_or_create(token=token)
            count += int(created)
    audit(Actor.from_request(request), 'logout', 'user', request.user.id, blacklisted=count)
    return Response({'success': True, 'blacklisted': count})

import re

from rest_framework import serializers

from clinic.models import User
from .fields import CleanCharField

# at least 8 chars with an uppercase letter, a digit and a special character
PASSWORD_RE = re.compile(r'^(?=.*[A-Z])(?=.*\d)(?=.*[@$!%*?&#^()_\-+=.,;:])\S{8,}$')
PASSWORD_RULES = 'Password must be at least 8 characters with an uppercase letter, a number and a special character'


def validate_strong_password(v):
    if not PASSWORD_RE.match(v or ''):
        raise serializers.ValidationError(PASSWORD_RULES)
    return v


class LoginSerializer(serializers.Serializer):
    """Staff login; ``username`` may also be the account email."""
    username = serializers.CharField(required=False, allow_blank=True)
    email = serializers.CharField(required=False, allow_blank=True)
    password = serializers.CharField()

    def validate(self, attrs):
        account = (attrs.get('username') or attrs.get('email') or '').strip()
        if not account:
            raise serializers.ValidationError('Email or username is required')
        attrs['account'] = account
        return attrs


class PatientLoginSerializer(serializers.Serializer):
    email = serializers.EmailField()
    password = serializers.CharField()


class StaffRegistrationSerializer(serializers.Serializer):
    name = CleanCharField(max_length=150)
    email = serializers.EmailField()
    username = CleanCharField(max_length=150, required=False, allow_blank=True)
    role = serializers.ChoiceField(choices=[c for c, _ in User.ROLE_CHOICES])
    phone = CleanCharField(max_length=32, required=False, allow_blank=True)
    specialty = CleanCharField(max_length=128, required=False, allow_blank=True)

    def validate_email(self, v):
        v = v.strip().lower()
        if User.objects.filter(email__iexact=v).exists():
            raise serializers.ValidationError('Email already registered')
        return v

    def validate(self, attrs):
        username = attrs.get('username') or attrs['email']
        if User.objects.filter(username__iexact=username).exists():
            raise serializers.ValidationError({'username': 'Username already taken'})
        attrs['username'] = username
        if attrs['role'] == User.ROLE_DOCTOR and not attrs.get('specialty'):
            attrs['specialty'] = 'General Dentistry'
        return attrs


class SignupSerializer(StaffRegistrationSerializer):
    password = serializers.CharField(write_only=True, validators=[validate_strong_password])


class ForgotPasswordSerializer(serializers.Serializer):
    email = serializers.EmailField()


class ResetPasswordSerializer(serializers.Serializer):
    token = serializers.CharField()
    password = serializers.CharField(validators=[validate_strong_password])


def serialize_user(user: User) -> dict:
    return {
        'id': user.id,
        'username': user.username,
        'name': user.display_name,
        'email': user.email,
        'role': user.role,
        'phone': user.phone,
        'specialty': user.specialty,
    }

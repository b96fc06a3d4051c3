"""
Staff account and credential management.

Covers self-service signup, admin registration of staff with a
generated password, and the forgot/reset password flow.  Reset tokens
are random URL-safe strings emailed to the user; only their sha256
digest is stored, together with an expiry.
"""
from __future__ import annotations

import hashlib
import logging
import secrets
import string
from datetime import timedelta

from django.conf import settings
from django.db import transaction
from django.utils import timezone
from rest_framework.exceptions import PermissionDenied, ValidationError

from clinic.models import User
from clinic.services import notifications
from clinic.services.audit import audit

logger = logging.getLogger(__name__)

SPECIALS = '!@#$%^&*'


def generate_password(length: int = 12) -> str:
    """Random password with at least one upper, lower, digit and special character."""
    pools = [string.ascii_uppercase, string.ascii_lowercase, string.digits, SPECIALS]
    alphabet = ''.join(pools)
    chars = [secrets.choice(p) for p in pools]
    chars += [secrets.choice(alphabet) for _ in range(length - len(chars))]
    secrets.SystemRandom().shuffle(chars)
    return ''.join(chars)


def hash_token(raw: str) -> str:
    return hashlib.sha256(raw.encode()).hexdigest()


def _split_name(name: str) -> tuple[str, str]:
    first, _, last = (name or '').strip().partition(' ')
    return first, last.strip()


def _create_user(data: dict, password: str) -> User:
    first, last = _split_name(data['name'])
    return User.objects.create_user(
        username=data['username'],
        email=data['email'],
        password=password,
        first_name=first,
        last_name=last,
        role=data['role'],
        phone=data.get('phone', ''),
        specialty=data.get('specialty', '') if data['role'] == User.ROLE_DOCTOR else '',
    )


def find_staff_by_account(account: str) -> User | None:
    if '@' in account:
        return User.objects.filter(email__iexact=account).first()
    return User.objects.filter(username__iexact=account).first()


@transaction.atomic
def signup(data: dict) -> User:
    """Self-service staff signup.

    The admin role can only be claimed while no admin exists yet, so the
    first account of a fresh install can bootstrap the clinic.
    """
    if data['role'] == User.ROLE_ADMIN and User.objects.filter(role=User.ROLE_ADMIN).exists():
        raise PermissionDenied('Admin accounts can only be created by an existing admin')
    user = _create_user(data, data['password'])
    audit(None, 'signup', 'user', user.id, role=user.role)
    return user


@transaction.atomic
def register_staff(actor, data: dict) -> User:
    if not actor.is_admin:
        raise PermissionDenied('Unauthorized: Only admins can register staff')
    password = generate_password()
    user = _create_user(data, password)
    notifications.notify_staff_credentials(user, password)
    audit(actor, 'register_staff', 'user', user.id, role=user.role)
    logger.info('admin %s registered %s %s', actor.id, user.role, user.username)
    return user


@transaction.atomic
def request_password_reset(email: str) -> None:
    """Email a reset link if ``email`` belongs to a staff account.

    Unknown emails are silently ignored so callers cannot probe accounts.
    """
    user = User.objects.filter(email__iexact=email, is_active=True).first()
    if user is None:
        logger.info('password reset requested for unknown email')
        return
    raw = secrets.token_urlsafe(32)
    user.reset_token = hash_token(raw)
    user.reset_token_expiry = timezone.now() + timedelta(minutes=settings.PASSWORD_RESET_TTL_MINUTES)
    user.save(update_fields=['reset_token', 'reset_token_expiry'])
    notifications.notify_password_reset(user, raw)
    audit(None, 'password_reset_request', 'user', user.id)


@transaction.atomic
def reset_password(raw_token: str, password: str) -> User:
    user = User.objects.select_for_update().filter(
        reset_token=hash_token(raw_token), reset_token_expiry__gt=timezone.now()
    ).first()
    if user is None:
        raise ValidationError('Invalid or expired reset token')
    user.set_password(password)
    user.reset_token = None
    user.reset_token_expiry = None
    user.save(update_fields=['password', 'reset_token', 'reset_token_expiry'])
    audit(None, 'password_reset', 'user', user.id)
    return user

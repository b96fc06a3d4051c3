import logging
from typing import Optional, Any, Dict

from django.contrib.auth import get_user_model
from django.db import transaction

from clinic.models import AuditEvent

logger = logging.getLogger(__name__)
User = get_user_model()


def log_action(*, user: Optional[User], action: str, object_type: Optional[str]=None, object_id: Optional[int]=None, detail: Optional[Dict[str, Any]]=None) -> AuditEvent:
    return AuditEvent.objects.create(
        user=user if isinstance(user, User) else None,
        action=action,
        object_type=object_type, object_id=object_id,
        detail=detail or {},
    )


def audit(actor, action: str, object_type: Optional[str]=None, object_id: Optional[int]=None, **detail) -> None:
    """Record an audit event for ``actor``; failures are logged, never raised."""
    user = getattr(actor, 'user', None)
    if getattr(actor, 'kind', None) == 'patient':
        detail.setdefault('patient_id', actor.id)
    try:
        with transaction.atomic():
            log_action(user=user, action=action, object_type=object_type, object_id=object_id, detail=detail)
    except Exception:
        logger.warning('audit write failed for %s %s:%s', action, object_type, object_id, exc_info=True)

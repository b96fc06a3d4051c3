from django.db import connections
from django.http import JsonResponse

from ..models import NotificationTask


def healthz(request):
    """Liveness plus database reachability and outbox backlog."""
    try:
        with connections['default'].cursor() as c:
            c.execute('SELECT 1')
            row = c.fetchone()
        pending = NotificationTask.objects.filter(status=NotificationTask.STATUS_PENDING).count()
        return JsonResponse({'success': True, 'db': bool(row and row[0] == 1), 'pendingNotifications': pending})
    except Exception as e:
        return JsonResponse({'success': False, 'error': str(e)}, status=503)

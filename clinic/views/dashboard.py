"""
Admin dashboard.

Returns queue counts, every queue entry with full patient details and
the prescriptions split into pending and dispensed.  "Clear view" only
hides what was created before the moment it was pressed, for this
browser session; nothing is deleted.
"""
from __future__ import annotations

from django.utils import timezone
from django.utils.dateparse import parse_datetime
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import AllowAny
from rest_framework.response import Response

from clinic.services.queue import dashboard_snapshot
from clinic.stores import get_stores

CLEARED_SESSION_KEY = 'dashboard_cleared_before'


@api_view(['GET'])
@permission_classes([AllowAny])
def admin_dashboard(request):
    raw = request.session.get(CLEARED_SESSION_KEY)
    cleared_before = parse_datetime(raw) if raw else None
    return Response({'ok': True, 'data': dashboard_snapshot(get_stores(), cleared_before=cleared_before)})


@api_view(['POST'])
@permission_classes([AllowAny])
def clear_view(request):
    now = timezone.now()
    request.session[CLEARED_SESSION_KEY] = now.isoformat()
    return Response({'ok': True, 'clearedBefore': now.isoformat()})


@api_view(['POST'])
@permission_classes([AllowAny])
def restore_view(request):
    request.session.pop(CLEARED_SESSION_KEY, None)
    return Response({'ok': True, 'clearedBefore': None})

"""
Queue board and the admin queue actions.

The board is public and shows initials only.  Admin actions mutate one
queue entry (or renumber the active ones) and broadcast a change so that
connected boards refresh; every action is written to the audit log.
"""
from __future__ import annotations

from django.conf import settings
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import AllowAny
from rest_framework.response import Response

from clinic.serializers.queue import (
    QueueEntryIdSerializer,
    QueueMoveSerializer,
    QueueReorderSerializer,
    QueueStatusSerializer,
)
from clinic.services import queue as queue_service
from clinic.services.audit import log_action
from clinic.stores import get_stores


def _entry_payload(entry) -> dict:
    return {
        'id': entry.id,
        'queueNumber': entry.queue_number,
        'status': entry.status,
        'calledAt': entry.called_at.isoformat() if entry.called_at else None,
        'completedAt': entry.completed_at.isoformat() if entry.completed_at else None,
    }


@api_view(['GET'])
@permission_classes([AllowAny])
def queue_board(request):
    """Active entries by queue number, with the client polling interval."""
    return Response({
        'ok': True,
        'data': queue_service.board_snapshot(get_stores()),
        'refreshSeconds': settings.CLINIC_POLL_SECONDS,
    })


@api_view(['POST'])
@permission_classes([AllowAny])
def update_status(request):
    s = QueueStatusSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    entry = queue_service.set_status(get_stores(), s.validated_data['id'], s.validated_data['status'])
    log_action(action='queue_status', object_type='queue_entry', object_id=entry.id,
               detail={'status': entry.status})
    return Response({'ok': True, 'data': _entry_payload(entry)})


def _entry_action(request, action, audit_name):
    s = QueueEntryIdSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    entry = action(get_stores(), s.validated_data['id'])
    log_action(action=audit_name, object_type='queue_entry', object_id=s.validated_data['id'])
    return entry


@api_view(['POST'])
@permission_classes([AllowAny])
def approve_entry(request):
    entry = _entry_action(request, queue_service.approve, 'queue_approve')
    return Response({'ok': True, 'data': _entry_payload(entry)})


@api_view(['POST'])
@permission_classes([AllowAny])
def done_entry(request):
    entry = _entry_action(request, queue_service.mark_done, 'queue_done')
    return Response({'ok': True, 'data': _entry_payload(entry)})


@api_view(['POST'])
@permission_classes([AllowAny])
def cancel_entry(request):
    _entry_action(request, queue_service.cancel, 'queue_cancel')
    return Response({'ok': True})


@api_view(['POST'])
@permission_classes([AllowAny])
def reorder_queue(request):
    s = QueueReorderSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    ids = s.validated_data['ids']
    queue_service.reorder(get_stores(), ids)
    log_action(action='queue_reorder', object_type='queue', detail={'ids': ids})
    return Response({'ok': True})


@api_view(['POST'])
@permission_classes([AllowAny])
def move_entry(request):
    s = QueueMoveSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    stores = get_stores()
    moved = queue_service.move(stores, s.validated_data['id'], s.validated_data['direction'])
    if moved:
        log_action(action='queue_move', object_type='queue_entry', object_id=s.validated_data['id'],
                   detail={'direction': s.validated_data['direction']})
    return Response({'ok': True, 'moved': moved, 'data': queue_service.board_snapshot(stores)})

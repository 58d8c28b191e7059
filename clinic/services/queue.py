"""
Queue actions used by the admin dashboard.

Statuses are written as requested: the store does not check the
current status, so callers only expose legal actions (approve a
waiting entry, finish a waiting or examined one).
"""
import logging
from datetime import datetime
from typing import Optional, Sequence

from django.conf import settings
from rest_framework.exceptions import ValidationError

from clinic.exceptions import RecordNotFound
from clinic.records import BEING_EXAMINED, DONE, QueueEntry
from clinic.services import projections
from clinic.services.notify import broadcast_change
from clinic.stores.base import Stores

logger = logging.getLogger(__name__)


def set_status(stores: Stores, entry_id: str, status: str) -> QueueEntry:
    entry = stores.queue.set_status(entry_id, status)
    logger.info('queue entry %s -> %s', entry_id, status)
    broadcast_change('queue_status', entryId=entry_id, status=status)
    return entry


def approve(stores: Stores, entry_id: str) -> QueueEntry:
    return set_status(stores, entry_id, BEING_EXAMINED)


def mark_done(stores: Stores, entry_id: str) -> QueueEntry:
    return set_status(stores, entry_id, DONE)


def cancel(stores: Stores, entry_id: str) -> None:
    stores.queue.remove(entry_id)
    logger.info('queue entry %s cancelled', entry_id)
    broadcast_change('queue_cancelled', entryId=entry_id)


def reorder(stores: Stores, entry_ids: Sequence[str]) -> None:
    if len(set(entry_ids)) != len(entry_ids):
        raise ValidationError({'ids': ['duplicate ids']})
    stores.queue.reorder(list(entry_ids))
    broadcast_change('queue_reordered')


def move(stores: Stores, entry_id: str, direction: str) -> bool:
    """Swap an active entry with its neighbour and renumber the board.

    Returns False when the entry is already first (up) or last (down).
    """
    ids = [e.id for e in stores.queue.list_active()]
    if entry_id not in ids:
        raise RecordNotFound('queue entry', entry_id)
    index = ids.index(entry_id)
    target = index - 1 if direction == 'up' else index + 1
    if target < 0 or target >= len(ids):
        return False
    ids[index], ids[target] = ids[target], ids[index]
    reorder(stores, ids)
    return True


def board_snapshot(stores: Stores) -> list[dict]:
    entries = stores.queue.list_active()
    patients = stores.patients.get_many(e.patient_id for e in entries)
    return projections.queue_board(entries, patients, minutes_per_slot=settings.CLINIC_MINUTES_PER_SLOT)


def dashboard_snapshot(stores: Stores, cleared_before: Optional[datetime] = None) -> dict:
    entries = stores.queue.list_all()
    prescriptions = stores.prescriptions.list_all()
    patient_ids = {e.patient_id for e in entries} | {p.patient_id for p in prescriptions}
    patients = stores.patients.get_many(patient_ids)
    return projections.dashboard(
        entries, prescriptions, patients,
        minutes_per_slot=settings.CLINIC_MINUTES_PER_SLOT,
        cleared_before=cleared_before,
    )

"""
Read-only views over fetched collections.

Every function here takes already-fetched records (queue entries,
prescriptions, a ``{patient_id: Patient}`` map) and returns the dicts
the API serves.  Nothing in this module touches a store, so the same
projection runs on top of either backend and can be tested on plain
dataclasses.
"""
from __future__ import annotations

from datetime import datetime
from typing import Iterable, Mapping, Optional

from django.utils import timezone

from ..records import (
    BEING_EXAMINED,
    DISPENSED,
    DONE,
    PENDING,
    WAITING,
    Patient,
    Prescription,
    QueueEntry,
)

STATUS_LABELS = {
    WAITING: 'Waiting',
    BEING_EXAMINED: 'Being Examined',
    DONE: 'Done',
    PENDING: 'Pending',
    DISPENSED: 'Dispensed',
}


def initials(full_name: str) -> str:
    """``"Alice Tan"`` -> ``"A.T."``; the board never shows full names."""
    parts = [p for p in (full_name or '').split() if p]
    if not parts:
        return '?'
    return ''.join(f'{p[0].upper()}.' for p in parts)


def status_label(status: str) -> str:
    return STATUS_LABELS.get(status, (status or '').replace('_', ' ').title())


def elapsed_minutes(since: Optional[datetime], now: Optional[datetime] = None) -> Optional[int]:
    if since is None:
        return None
    now = now or timezone.now()
    return max(0, int((now - since).total_seconds() // 60))


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _visible(created_at: Optional[datetime], cleared_before: Optional[datetime]) -> bool:
    if cleared_before is None or created_at is None:
        return True
    return created_at >= cleared_before


def queue_board(entries: Iterable[QueueEntry], patients: Mapping[str, Patient], *,
                minutes_per_slot: int, now: Optional[datetime] = None) -> list[dict]:
    """Public board: active entries by queue number, initials only.

    Only waiting entries carry an estimated wait.
    """
    now = now or timezone.now()
    board = []
    for entry in sorted((e for e in entries if e.status != DONE), key=lambda e: e.queue_number):
        patient = patients.get(entry.patient_id)
        board.append({
            'id': entry.id,
            'queueNumber': entry.queue_number,
            'initials': initials(patient.full_name if patient else ''),
            'status': entry.status,
            'statusLabel': status_label(entry.status),
            'estimatedWait': entry.queue_number * minutes_per_slot if entry.status == WAITING else None,
            'waitingMinutes': elapsed_minutes(entry.created_at, now),
        })
    return board


def queue_row(entry: QueueEntry, patient: Optional[Patient], *, minutes_per_slot: int,
              now: Optional[datetime] = None) -> dict:
    return {
        'id': entry.id,
        'queueNumber': entry.queue_number,
        'patientId': entry.patient_id,
        'patientName': patient.full_name if patient else '',
        'contactNumber': patient.contact_number if patient else '',
        'reasonForVisit': patient.reason_for_visit if patient else '',
        'status': entry.status,
        'statusLabel': status_label(entry.status),
        'estimatedWait': entry.queue_number * minutes_per_slot if entry.status == WAITING else None,
        'waitingMinutes': elapsed_minutes(entry.created_at, now),
        'createdAt': _iso(entry.created_at),
        'calledAt': _iso(entry.called_at),
        'completedAt': _iso(entry.completed_at),
    }


def prescription_row(prescription: Prescription, patient: Optional[Patient]) -> dict:
    return {
        'id': prescription.id,
        'patientId': prescription.patient_id,
        'patientName': patient.full_name if patient else '',
        'contactNumber': patient.contact_number if patient else '',
        'diagnosis': prescription.diagnosis,
        'doctorNotes': prescription.doctor_notes,
        'medicines': [
            {
                'medicineName': line.medicine_name,
                'dosage': line.dosage,
                'frequency': line.frequency,
                'duration': line.duration,
            }
            for line in prescription.medicines
        ],
        'status': prescription.status,
        'statusLabel': status_label(prescription.status),
        'createdAt': _iso(prescription.created_at),
        'updatedAt': _iso(prescription.updated_at),
    }


def dashboard(entries: Iterable[QueueEntry], prescriptions: Iterable[Prescription],
              patients: Mapping[str, Patient], *, minutes_per_slot: int,
              cleared_before: Optional[datetime] = None, now: Optional[datetime] = None) -> dict:
    """Admin overview.

    ``cleared_before`` hides entries and prescriptions created earlier;
    counts are taken over what remains visible.
    """
    now = now or timezone.now()
    visible_entries = [e for e in entries if _visible(e.created_at, cleared_before)]
    visible_entries.sort(key=lambda e: (e.status == DONE, e.queue_number))
    visible_rx = [p for p in prescriptions if _visible(p.created_at, cleared_before)]
    counts = {
        'waiting': sum(1 for e in visible_entries if e.status == WAITING),
        'beingExamined': sum(1 for e in visible_entries if e.status == BEING_EXAMINED),
        'done': sum(1 for e in visible_entries if e.status == DONE),
        'total': len(visible_entries),
    }
    return {
        'counts': counts,
        'queue': [
            queue_row(e, patients.get(e.patient_id), minutes_per_slot=minutes_per_slot, now=now)
            for e in visible_entries
        ],
        'prescriptions': {
            'pending': [prescription_row(p, patients.get(p.patient_id)) for p in visible_rx if p.status == PENDING],
            'dispensed': [prescription_row(p, patients.get(p.patient_id)) for p in visible_rx if p.status == DISPENSED],
        },
        'clearedBefore': _iso(cleared_before),
    }


def pharmacy_worklist(prescriptions: Iterable[Prescription], patients: Mapping[str, Patient]) -> list[dict]:
    return [prescription_row(p, patients.get(p.patient_id)) for p in prescriptions if p.status == PENDING]

"""
Tree backend: the stores laid out as nodes of a Firebase Realtime Database.

Layout::

    counters/<name>              integer, incremented by compare-and-set
    patients/<id>                registration fields + created_at
    queue/<id>                   entry fields + denormalized patient_name
    prescriptions/<id>           prescription fields + patient_name
    medicines/<id>               catalog
    medicine_orders/<id>         order snapshot

Identifiers are Firebase push ids generated on the client.  The tree has
no query planner we rely on, so filtering, joining and sorting happen in
Python after fetching a whole collection.  Multi-node writes are not
transactional.
"""
from __future__ import annotations

import logging
import secrets
import threading
import time
from decimal import Decimal
from typing import Any, Iterable, Optional

from django.conf import settings
from django.utils import timezone
from django.utils.dateparse import parse_datetime

from .. import records
from ..exceptions import RecordNotFound, SequenceUnavailable, StoreError
from ..records import MedicineLine, OrderLine
from .base import (
    MedicineCatalog,
    MedicineOrderStore,
    PatientStore,
    PrescriptionStore,
    QueueStore,
    SequenceIssuer,
    Stores,
    estimated_wait,
    require_fields,
)
from .firebase import FirebaseTree

logger = logging.getLogger(__name__)

PUSH_CHARS = '-0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZ_abcdefghijklmnopqrstuvwxyz'


class PushIdGenerator:
    """Chronologically sortable 20 character ids, as the Firebase SDKs make them.

    Eight characters encode the millisecond timestamp; the remaining twelve
    are random, and are incremented instead of redrawn when two ids are
    issued in the same millisecond so that ordering is preserved.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._last_ms = -1
        self._last_rand = [0] * 12

    def __call__(self) -> str:
        now = int(time.time() * 1000)
        with self._lock:
            if now == self._last_ms:
                i = 11
                while i >= 0 and self._last_rand[i] == 63:
                    self._last_rand[i] = 0
                    i -= 1
                if i >= 0:
                    self._last_rand[i] += 1
            else:
                self._last_ms = now
                self._last_rand = [secrets.randbelow(64) for _ in range(12)]
            rand = list(self._last_rand)
        stamp = []
        for _ in range(8):
            stamp.append(PUSH_CHARS[now % 64])
            now //= 64
        return ''.join(reversed(stamp)) + ''.join(PUSH_CHARS[r] for r in rand)


push_id = PushIdGenerator()


def _now() -> str:
    return timezone.now().isoformat()


def _when(value: Optional[str]):
    return parse_datetime(value) if value else None


def _children(tree: FirebaseTree, path: str) -> list[tuple[str, dict]]:
    nodes = tree.get(path) or {}
    if not isinstance(nodes, dict):
        raise StoreError(f'unexpected shape at {path}')
    return [(key, node) for key, node in nodes.items() if isinstance(node, dict)]


def _sort_key_created(item):
    return item.created_at or timezone.now()


def _patient(key: str, node: dict) -> records.Patient:
    return records.Patient(
        id=key,
        full_name=node.get('full_name', ''),
        date_of_birth=node.get('date_of_birth', ''),
        contact_number=node.get('contact_number', ''),
        reason_for_visit=node.get('reason_for_visit', ''),
        created_at=_when(node.get('created_at')),
    )


def _entry(key: str, node: dict) -> records.QueueEntry:
    return records.QueueEntry(
        id=key,
        patient_id=node.get('patient_id', ''),
        queue_number=int(node.get('queue_number') or 0),
        status=node.get('status', records.WAITING),
        estimated_wait_time=node.get('estimated_wait_time'),
        created_at=_when(node.get('created_at')),
        called_at=_when(node.get('called_at')),
        completed_at=_when(node.get('completed_at')),
    )


def _prescription(key: str, node: dict) -> records.Prescription:
    return records.Prescription(
        id=key,
        patient_id=node.get('patient_id', ''),
        diagnosis=node.get('diagnosis', ''),
        doctor_notes=node.get('doctor_notes', ''),
        # an empty list is not stored at all
        medicines=[MedicineLine.from_dict(m) for m in node.get('medicines') or [] if m],
        status=node.get('status', records.PENDING),
        created_at=_when(node.get('created_at')),
        updated_at=_when(node.get('updated_at')),
    )


def _medicine(key: str, node: dict) -> records.Medicine:
    return records.Medicine(
        id=key,
        name=node.get('name', ''),
        category=node.get('category', ''),
        price=Decimal(str(node.get('price', '0'))),
        in_stock=bool(node.get('in_stock', True)),
        stock=int(node.get('stock') or 0),
        description=node.get('description', ''),
        dosage=node.get('dosage', ''),
        frequency=node.get('frequency', ''),
        duration=node.get('duration', ''),
    )


def _order(key: str, node: dict) -> records.MedicineOrder:
    return records.MedicineOrder(
        id=key,
        order_number=int(node.get('order_number') or 0),
        lines=[OrderLine.from_dict(item) for item in node.get('items') or [] if item],
        total=Decimal(str(node.get('total', '0'))),
        status=node.get('status', records.ORDER_PENDING),
        patient_id=node.get('patient_id'),
        created_at=_when(node.get('created_at')),
        collected_at=_when(node.get('collected_at')),
    )


class TreeSequenceIssuer(SequenceIssuer):
    def __init__(self, tree: FirebaseTree, max_retries: int = 10):
        self.tree = tree
        self.max_retries = max_retries

    def issue_identifier(self) -> str:
        return push_id()

    def issue_sequence_number(self, counter_name: str) -> int:
        path = f'counters/{counter_name}'
        try:
            value, etag = self.tree.get_with_etag(path)
            for attempt in range(1, self.max_retries + 1):
                candidate = int(value or 0) + 1
                written, etag, value = self.tree.put_if_match(path, candidate, etag)
                if written:
                    return candidate
                logger.debug('counter %s contended (attempt %d)', counter_name, attempt)
        except StoreError as exc:
            raise SequenceUnavailable(f'could not issue {counter_name}: {exc}') from exc
        logger.error('counter %s still contended after %d attempts', counter_name, self.max_retries)
        raise SequenceUnavailable(f'could not issue {counter_name}: too much contention')


class _TreeStore:
    collection = ''
    kind = ''

    def __init__(self, tree: FirebaseTree, issuer: SequenceIssuer):
        self.tree = tree
        self.issuer = issuer

    def _path(self, key: str) -> str:
        return f'{self.collection}/{key}'

    def _node(self, key: str) -> dict:
        node = self.tree.get(self._path(key)) if key else None
        if not isinstance(node, dict):
            raise RecordNotFound(self.kind, key)
        return node

    def _patient_name(self, patient_id: str) -> str:
        node = self.tree.get(f'patients/{patient_id}') if patient_id else None
        if not isinstance(node, dict):
            raise RecordNotFound('patient', patient_id)
        return node.get('full_name', '')


class TreePatientStore(_TreeStore, PatientStore):
    collection = 'patients'
    kind = 'patient'

    def create(self, **fields) -> records.Patient:
        node = require_fields(fields, records.PATIENT_REQUIRED_FIELDS)
        node['created_at'] = _now()
        key = self.issuer.issue_identifier()
        self.tree.put(self._path(key), node)
        return _patient(key, node)

    def get(self, patient_id: str) -> records.Patient:
        return _patient(patient_id, self._node(patient_id))

    def list(self) -> list[records.Patient]:
        patients = [_patient(k, n) for k, n in _children(self.tree, self.collection)]
        return sorted(patients, key=_sort_key_created)

    def get_many(self, patient_ids: Iterable[str]) -> dict[str, records.Patient]:
        wanted = set(patient_ids)
        if not wanted:
            return {}
        return {k: _patient(k, n) for k, n in _children(self.tree, self.collection) if k in wanted}


class TreeQueueStore(_TreeStore, QueueStore):
    collection = 'queue'
    kind = 'queue entry'

    def create(self, patient_id: str, queue_number: int) -> records.QueueEntry:
        node = {
            'patient_id': patient_id,
            'patient_name': self._patient_name(patient_id),
            'queue_number': queue_number,
            'status': records.WAITING,
            'estimated_wait_time': estimated_wait(queue_number),
            'created_at': _now(),
        }
        key = self.issuer.issue_identifier()
        self.tree.put(self._path(key), node)
        return _entry(key, node)

    def get(self, entry_id: str) -> records.QueueEntry:
        return _entry(entry_id, self._node(entry_id))

    def set_status(self, entry_id: str, status: str) -> records.QueueEntry:
        if status not in records.QUEUE_STATUSES:
            raise ValueError(f'unknown queue status {status!r}')
        node = self._node(entry_id)
        changes: dict[str, Any] = {'status': status}
        if status == records.BEING_EXAMINED:
            changes['called_at'] = _now()
        elif status == records.DONE:
            changes['completed_at'] = _now()
        self.tree.patch(self._path(entry_id), changes)
        node.update(changes)
        return _entry(entry_id, node)

    def remove(self, entry_id: str) -> None:
        self._node(entry_id)
        self.tree.delete(self._path(entry_id))

    def reorder(self, entry_ids) -> None:
        for position, entry_id in enumerate(entry_ids, start=1):
            self._node(entry_id)
            self.tree.patch(self._path(entry_id), {
                'queue_number': position,
                'estimated_wait_time': estimated_wait(position),
            })

    def list_active(self) -> list[records.QueueEntry]:
        entries = [e for e in self.list_all() if e.is_active]
        return sorted(entries, key=lambda e: (e.queue_number, _sort_key_created(e)))

    def list_all(self) -> list[records.QueueEntry]:
        entries = [_entry(k, n) for k, n in _children(self.tree, self.collection)]
        return sorted(entries, key=_sort_key_created)


class TreePrescriptionStore(_TreeStore, PrescriptionStore):
    collection = 'prescriptions'
    kind = 'prescription'

    def create(self, patient_id, diagnosis, notes='', medicine_lines=()) -> records.Prescription:
        stamp = _now()
        node = {
            'patient_id': patient_id,
            'patient_name': self._patient_name(patient_id),
            'diagnosis': diagnosis,
            'doctor_notes': notes or '',
            'medicines': [line.as_dict() for line in medicine_lines],
            'status': records.PENDING,
            'created_at': stamp,
            'updated_at': stamp,
        }
        key = self.issuer.issue_identifier()
        self.tree.put(self._path(key), node)
        return _prescription(key, node)

    def get(self, prescription_id: str) -> records.Prescription:
        return _prescription(prescription_id, self._node(prescription_id))

    def list_by_status(self, status: str) -> list[records.Prescription]:
        return [p for p in self.list_all() if p.status == status]

    def list_all(self) -> list[records.Prescription]:
        items = [_prescription(k, n) for k, n in _children(self.tree, self.collection)]
        return sorted(items, key=_sort_key_created, reverse=True)

    def set_status(self, prescription_id: str, status: str) -> records.Prescription:
        if status not in records.PRESCRIPTION_STATUSES:
            raise ValueError(f'unknown prescription status {status!r}')
        node = self._node(prescription_id)
        changes = {'status': status, 'updated_at': _now()}
        self.tree.patch(self._path(prescription_id), changes)
        node.update(changes)
        return _prescription(prescription_id, node)


class TreeMedicineCatalog(_TreeStore, MedicineCatalog):
    collection = 'medicines'
    kind = 'medicine'

    def list(self) -> list[records.Medicine]:
        items = [_medicine(k, n) for k, n in _children(self.tree, self.collection)]
        return sorted(items, key=lambda m: m.name.lower())

    def get(self, medicine_id: str) -> records.Medicine:
        return _medicine(medicine_id, self._node(medicine_id))

    def create(self, **fields) -> records.Medicine:
        node = require_fields(fields, ('name', 'category', 'price'))
        node['price'] = str(Decimal(str(node['price'])))
        node['in_stock'] = bool(fields.get('in_stock', True))
        node['stock'] = int(fields.get('stock') or 0)
        for name in ('description', 'dosage', 'frequency', 'duration'):
            node[name] = fields.get(name) or ''
        key = self.issuer.issue_identifier()
        self.tree.put(self._path(key), node)
        return _medicine(key, node)


class TreeMedicineOrderStore(_TreeStore, MedicineOrderStore):
    collection = 'medicine_orders'
    kind = 'medicine order'

    def create(self, order_number, lines, total, patient_id: Optional[str] = None) -> records.MedicineOrder:
        node = {
            'order_number': order_number,
            'items': [line.as_dict() for line in lines],
            'total': str(total),
            'status': records.ORDER_PENDING,
            'created_at': _now(),
        }
        if patient_id:
            self._patient_name(patient_id)
            node['patient_id'] = patient_id
        key = self.issuer.issue_identifier()
        self.tree.put(self._path(key), node)
        return _order(key, node)

    def get(self, order_id: str) -> records.MedicineOrder:
        return _order(order_id, self._node(order_id))

    def set_status(self, order_id: str, status: str) -> records.MedicineOrder:
        if status not in records.ORDER_STATUSES:
            raise ValueError(f'unknown order status {status!r}')
        node = self._node(order_id)
        changes = {'status': status}
        if status == records.COLLECTED:
            changes['collected_at'] = _now()
        self.tree.patch(self._path(order_id), changes)
        node.update(changes)
        return _order(order_id, node)


def build_tree_stores(session=None) -> Stores:
    tree = FirebaseTree(
        settings.FIREBASE_DATABASE_URL,
        auth=settings.FIREBASE_AUTH,
        timeout=settings.FIREBASE_TIMEOUT,
        session=session,
    )
    issuer = TreeSequenceIssuer(tree, max_retries=settings.CLINIC_SEQUENCE_MAX_RETRIES)
    return Stores(
        backend='tree',
        issuer=issuer,
        patients=TreePatientStore(tree, issuer),
        queue=TreeQueueStore(tree, issuer),
        prescriptions=TreePrescriptionStore(tree, issuer),
        medicines=TreeMedicineCatalog(tree, issuer),
        orders=TreeMedicineOrderStore(tree, issuer),
    )

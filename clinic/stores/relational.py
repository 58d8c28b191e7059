"""
Relational backend: the stores implemented with the Django ORM.

Counters use a single ``UPDATE ... SET value = value + 1`` inside a
transaction so concurrent registrations never see the same number.
Database errors are re-raised as :class:`StoreError`.
"""
from __future__ import annotations

import logging
import uuid
from contextlib import contextmanager
from decimal import Decimal
from typing import Iterable, Optional, Sequence

from django.db import DatabaseError, transaction
from django.db.models import F
from django.utils import timezone

from .. import models, records
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

logger = logging.getLogger(__name__)


@contextmanager
def _database_errors(operation: str):
    try:
        yield
    except DatabaseError as exc:
        logger.error('database error during %s: %s', operation, exc)
        raise StoreError(f'{operation} failed: {exc}') from exc


def _require_patient(patient_id: str) -> None:
    with _database_errors('patient lookup'):
        found = models.Patient.objects.filter(pk=patient_id).exists()
    if not found:
        raise RecordNotFound('patient', patient_id)


def _patient(row: models.Patient) -> records.Patient:
    return records.Patient(
        id=row.id,
        full_name=row.full_name,
        date_of_birth=row.date_of_birth,
        contact_number=row.contact_number,
        reason_for_visit=row.reason_for_visit,
        created_at=row.created_at,
    )


def _entry(row: models.QueueEntry) -> records.QueueEntry:
    return records.QueueEntry(
        id=row.id,
        patient_id=row.patient_id,
        queue_number=row.queue_number,
        status=row.status,
        estimated_wait_time=row.estimated_wait_time,
        created_at=row.created_at,
        called_at=row.called_at,
        completed_at=row.completed_at,
    )


def _prescription(row: models.Prescription) -> records.Prescription:
    return records.Prescription(
        id=row.id,
        patient_id=row.patient_id,
        diagnosis=row.diagnosis,
        doctor_notes=row.doctor_notes,
        medicines=[MedicineLine.from_dict(m) for m in row.prescribed_medicines or []],
        status=row.status,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _medicine(row: models.Medicine) -> records.Medicine:
    return records.Medicine(
        id=row.id,
        name=row.name,
        category=row.category,
        price=row.price,
        in_stock=row.in_stock,
        stock=row.stock,
        description=row.description,
        dosage=row.dosage,
        frequency=row.frequency,
        duration=row.duration,
    )


def _order(row: models.MedicineOrder) -> records.MedicineOrder:
    return records.MedicineOrder(
        id=row.id,
        order_number=row.order_number,
        lines=[OrderLine.from_dict(item) for item in row.items or []],
        total=row.total,
        status=row.status,
        patient_id=row.patient_id,
        created_at=row.created_at,
        collected_at=row.collected_at,
    )


class RelationalSequenceIssuer(SequenceIssuer):
    def issue_identifier(self) -> str:
        return str(uuid.uuid4())

    def issue_sequence_number(self, counter_name: str) -> int:
        try:
            with transaction.atomic():
                models.SequenceCounter.objects.get_or_create(name=counter_name)
                models.SequenceCounter.objects.filter(name=counter_name).update(value=F('value') + 1)
                return models.SequenceCounter.objects.get(name=counter_name).value
        except DatabaseError as exc:
            logger.error('counter %s did not commit: %s', counter_name, exc)
            raise SequenceUnavailable(f'could not issue {counter_name}: {exc}') from exc


class RelationalPatientStore(PatientStore):
    def __init__(self, issuer: SequenceIssuer):
        self.issuer = issuer

    def create(self, **fields) -> records.Patient:
        cleaned = require_fields(fields, records.PATIENT_REQUIRED_FIELDS)
        with _database_errors('patient insert'):
            row = models.Patient.objects.create(id=self.issuer.issue_identifier(), **cleaned)
        return _patient(row)

    def get(self, patient_id: str) -> records.Patient:
        with _database_errors('patient lookup'):
            row = models.Patient.objects.filter(pk=patient_id).first()
        if row is None:
            raise RecordNotFound('patient', patient_id)
        return _patient(row)

    def list(self) -> list[records.Patient]:
        with _database_errors('patient list'):
            return [_patient(r) for r in models.Patient.objects.order_by('created_at')]

    def get_many(self, patient_ids: Iterable[str]) -> dict[str, records.Patient]:
        ids = set(patient_ids)
        if not ids:
            return {}
        with _database_errors('patient lookup'):
            return {r.id: _patient(r) for r in models.Patient.objects.filter(pk__in=ids)}


class RelationalQueueStore(QueueStore):
    def __init__(self, issuer: SequenceIssuer):
        self.issuer = issuer

    def _row(self, entry_id: str) -> models.QueueEntry:
        with _database_errors('queue lookup'):
            row = models.QueueEntry.objects.filter(pk=entry_id).first()
        if row is None:
            raise RecordNotFound('queue entry', entry_id)
        return row

    def create(self, patient_id: str, queue_number: int) -> records.QueueEntry:
        _require_patient(patient_id)
        with _database_errors('queue insert'):
            row = models.QueueEntry.objects.create(
                id=self.issuer.issue_identifier(),
                patient_id=patient_id,
                queue_number=queue_number,
                status=records.WAITING,
                estimated_wait_time=estimated_wait(queue_number),
            )
        return _entry(row)

    def get(self, entry_id: str) -> records.QueueEntry:
        return _entry(self._row(entry_id))

    def set_status(self, entry_id: str, status: str) -> records.QueueEntry:
        if status not in records.QUEUE_STATUSES:
            raise ValueError(f'unknown queue status {status!r}')
        row = self._row(entry_id)
        row.status = status
        fields = ['status']
        if status == records.BEING_EXAMINED:
            row.called_at = timezone.now()
            fields.append('called_at')
        elif status == records.DONE:
            row.completed_at = timezone.now()
            fields.append('completed_at')
        with _database_errors('queue status update'):
            row.save(update_fields=fields)
        return _entry(row)

    def remove(self, entry_id: str) -> None:
        with _database_errors('queue delete'):
            deleted, _ = models.QueueEntry.objects.filter(pk=entry_id).delete()
        if not deleted:
            raise RecordNotFound('queue entry', entry_id)

    def reorder(self, entry_ids: Sequence[str]) -> None:
        for position, entry_id in enumerate(entry_ids, start=1):
            with _database_errors('queue reorder'):
                updated = models.QueueEntry.objects.filter(pk=entry_id).update(
                    queue_number=position, estimated_wait_time=estimated_wait(position)
                )
            if not updated:
                raise RecordNotFound('queue entry', entry_id)

    def list_active(self) -> list[records.QueueEntry]:
        qs = models.QueueEntry.objects.filter(status__in=records.ACTIVE_QUEUE_STATUSES)
        with _database_errors('queue list'):
            return [_entry(r) for r in qs.order_by('queue_number', 'created_at')]

    def list_all(self) -> list[records.QueueEntry]:
        with _database_errors('queue list'):
            return [_entry(r) for r in models.QueueEntry.objects.order_by('created_at')]


class RelationalPrescriptionStore(PrescriptionStore):
    def __init__(self, issuer: SequenceIssuer):
        self.issuer = issuer

    def _row(self, prescription_id: str) -> models.Prescription:
        with _database_errors('prescription lookup'):
            row = models.Prescription.objects.filter(pk=prescription_id).first()
        if row is None:
            raise RecordNotFound('prescription', prescription_id)
        return row

    def create(self, patient_id, diagnosis, notes='', medicine_lines=()) -> records.Prescription:
        _require_patient(patient_id)
        with _database_errors('prescription insert'):
            row = models.Prescription.objects.create(
                id=self.issuer.issue_identifier(),
                patient_id=patient_id,
                diagnosis=diagnosis,
                doctor_notes=notes or '',
                prescribed_medicines=[line.as_dict() for line in medicine_lines],
                status=records.PENDING,
            )
        return _prescription(row)

    def get(self, prescription_id: str) -> records.Prescription:
        return _prescription(self._row(prescription_id))

    def list_by_status(self, status: str) -> list[records.Prescription]:
        qs = models.Prescription.objects.filter(status=status).order_by('-created_at')
        with _database_errors('prescription list'):
            return [_prescription(r) for r in qs]

    def list_all(self) -> list[records.Prescription]:
        with _database_errors('prescription list'):
            return [_prescription(r) for r in models.Prescription.objects.order_by('-created_at')]

    def set_status(self, prescription_id: str, status: str) -> records.Prescription:
        if status not in records.PRESCRIPTION_STATUSES:
            raise ValueError(f'unknown prescription status {status!r}')
        row = self._row(prescription_id)
        row.status = status
        with _database_errors('prescription status update'):
            row.save(update_fields=['status', 'updated_at'])
        return _prescription(row)


class RelationalMedicineCatalog(MedicineCatalog):
    def __init__(self, issuer: SequenceIssuer):
        self.issuer = issuer

    def list(self) -> list[records.Medicine]:
        with _database_errors('medicine list'):
            return [_medicine(r) for r in models.Medicine.objects.order_by('name')]

    def get(self, medicine_id: str) -> records.Medicine:
        with _database_errors('medicine lookup'):
            row = models.Medicine.objects.filter(pk=medicine_id).first()
        if row is None:
            raise RecordNotFound('medicine', medicine_id)
        return _medicine(row)

    def create(self, **fields) -> records.Medicine:
        cleaned = require_fields(fields, ('name', 'category', 'price'))
        extra = {k: fields[k] for k in ('in_stock', 'stock', 'description', 'dosage', 'frequency', 'duration')
                 if fields.get(k) is not None}
        with _database_errors('medicine insert'):
            row = models.Medicine.objects.create(
                id=self.issuer.issue_identifier(),
                name=cleaned['name'],
                category=cleaned['category'],
                price=Decimal(str(cleaned['price'])),
                **extra,
            )
        return _medicine(row)


class RelationalMedicineOrderStore(MedicineOrderStore):
    def __init__(self, issuer: SequenceIssuer):
        self.issuer = issuer

    def _row(self, order_id: str) -> models.MedicineOrder:
        with _database_errors('order lookup'):
            row = models.MedicineOrder.objects.filter(pk=order_id).first()
        if row is None:
            raise RecordNotFound('medicine order', order_id)
        return row

    def create(self, order_number, lines, total, patient_id: Optional[str] = None) -> records.MedicineOrder:
        if patient_id:
            _require_patient(patient_id)
        with _database_errors('order insert'):
            row = models.MedicineOrder.objects.create(
                id=self.issuer.issue_identifier(),
                order_number=order_number,
                items=[line.as_dict() for line in lines],
                total=total,
                status=records.ORDER_PENDING,
                patient_id=patient_id or None,
            )
        return _order(row)

    def get(self, order_id: str) -> records.MedicineOrder:
        return _order(self._row(order_id))

    def set_status(self, order_id: str, status: str) -> records.MedicineOrder:
        if status not in records.ORDER_STATUSES:
            raise ValueError(f'unknown order status {status!r}')
        row = self._row(order_id)
        row.status = status
        fields = ['status']
        if status == records.COLLECTED:
            row.collected_at = timezone.now()
            fields.append('collected_at')
        with _database_errors('order status update'):
            row.save(update_fields=fields)
        return _order(row)


def build_relational_stores() -> Stores:
    issuer = RelationalSequenceIssuer()
    return Stores(
        backend='relational',
        issuer=issuer,
        patients=RelationalPatientStore(issuer),
        queue=RelationalQueueStore(issuer),
        prescriptions=RelationalPrescriptionStore(issuer),
        medicines=RelationalMedicineCatalog(issuer),
        orders=RelationalMedicineOrderStore(issuer),
        atomic=transaction.atomic,
    )

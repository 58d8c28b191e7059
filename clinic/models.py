"""
Database models for the relational clinic backend.

The tables mirror the columns the front-end reads (snake_case, foreign
keys by identifier).  Primary keys are short strings issued by the
sequence issuer rather than auto increments, so that the relational
and tree backends hand out identifiers of the same shape.  No model
cascades deletes: removing a patient is not part of any flow.
"""
from __future__ import annotations

from django.db import models

from . import records


def _choices(values) -> list[tuple[str, str]]:
    return [(v, v.replace('_', ' ').capitalize()) for v in values]


class SequenceCounter(models.Model):
    """A named, monotonically increasing counter (queue and order numbers)."""
    name = models.CharField(max_length=64, primary_key=True)
    value = models.BigIntegerField(default=0)

    def __str__(self) -> str:
        return f"{self.name}={self.value}"


class Patient(models.Model):
    id = models.CharField(max_length=36, primary_key=True)
    full_name = models.CharField(max_length=255)
    date_of_birth = models.CharField(max_length=32)
    contact_number = models.CharField(max_length=32)
    reason_for_visit = models.TextField()
    created_at = models.DateTimeField(auto_now_add=True, db_index=True)

    def __str__(self) -> str:
        return f"{self.full_name} ({self.id})"


class QueueEntry(models.Model):
    id = models.CharField(max_length=36, primary_key=True)
    patient = models.ForeignKey(Patient, on_delete=models.PROTECT, related_name='queue_entries')
    # Not unique: a manual reorder rewrites numbers one row at a time
    queue_number = models.IntegerField(db_index=True)
    status = models.CharField(
        max_length=20, choices=_choices(records.QUEUE_STATUSES), default=records.WAITING, db_index=True
    )
    estimated_wait_time = models.PositiveIntegerField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    called_at = models.DateTimeField(null=True, blank=True)
    completed_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        verbose_name_plural = 'queue entries'

    def __str__(self) -> str:
        return f"#{self.queue_number} {self.status}"


class Prescription(models.Model):
    id = models.CharField(max_length=36, primary_key=True)
    patient = models.ForeignKey(Patient, on_delete=models.PROTECT, related_name='prescriptions')
    diagnosis = models.TextField()
    doctor_notes = models.TextField(blank=True, default='')
    # Ordered list of {medicine_name, dosage, frequency, duration}
    prescribed_medicines = models.JSONField(default=list, blank=True)
    status = models.CharField(
        max_length=20, choices=_choices(records.PRESCRIPTION_STATUSES), default=records.PENDING, db_index=True
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        indexes = [
            models.Index(fields=['status', 'created_at']),
        ]

    def __str__(self) -> str:
        return f"{self.diagnosis[:30]} ({self.status})"


class Medicine(models.Model):
    id = models.CharField(max_length=36, primary_key=True)
    name = models.CharField(max_length=255)
    category = models.CharField(max_length=100, db_index=True)
    price = models.DecimalField(max_digits=12, decimal_places=2)
    in_stock = models.BooleanField(default=True)
    stock = models.PositiveIntegerField(default=0)
    description = models.TextField(blank=True, default='')
    dosage = models.CharField(max_length=100, blank=True, default='')
    frequency = models.CharField(max_length=100, blank=True, default='')
    duration = models.CharField(max_length=100, blank=True, default='')
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self) -> str:
        return self.name


class MedicineOrder(models.Model):
    id = models.CharField(max_length=36, primary_key=True)
    order_number = models.IntegerField(unique=True)
    # Snapshot of the cart: prices are copied, never looked up again
    items = models.JSONField(default=list)
    total = models.DecimalField(max_digits=12, decimal_places=2)
    status = models.CharField(
        max_length=20, choices=_choices(records.ORDER_STATUSES), default=records.ORDER_PENDING
    )
    patient = models.ForeignKey(
        Patient, null=True, blank=True, on_delete=models.PROTECT, related_name='medicine_orders'
    )
    created_at = models.DateTimeField(auto_now_add=True)
    collected_at = models.DateTimeField(null=True, blank=True)

    def __str__(self) -> str:
        return f"Order {self.order_number} ({self.status})"


class AuditEvent(models.Model):
    """Login attempts and staff actions, kept regardless of storage backend."""
    action = models.CharField(max_length=64)
    actor = models.CharField(max_length=150, blank=True, default='')
    object_type = models.CharField(max_length=64, blank=True, null=True)
    object_id = models.CharField(max_length=64, blank=True, null=True)
    detail = models.JSONField(default=dict, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        indexes = [
            models.Index(fields=['action', 'created_at']),
            models.Index(fields=['object_type', 'object_id', 'created_at']),
        ]

    def __str__(self):
        return f"{self.action}:{self.object_type}/{self.object_id}@{self.created_at:%F %T}"

"""
Backend-neutral record types.

Both storage backends return these dataclasses so that services,
projections and views never see ORM instances or raw tree nodes.
Status vocabularies live here as well because the relational models
and the tree stores share them.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Optional

# Queue entry lifecycle
WAITING = 'waiting'
BEING_EXAMINED = 'being_examined'
DONE = 'done'
QUEUE_STATUSES = (WAITING, BEING_EXAMINED, DONE)
ACTIVE_QUEUE_STATUSES = (WAITING, BEING_EXAMINED)

# Prescription lifecycle (one-way)
PENDING = 'pending'
DISPENSED = 'dispensed'
PRESCRIPTION_STATUSES = (PENDING, DISPENSED)

# Medicine order lifecycle
ORDER_PENDING = 'pending'
COLLECTED = 'collected'
ORDER_STATUSES = (ORDER_PENDING, COLLECTED)

# Named counters handed to the sequence issuer
QUEUE_COUNTER = 'queue_number'
ORDER_COUNTER = 'order_number'

PATIENT_REQUIRED_FIELDS = ('full_name', 'date_of_birth', 'contact_number', 'reason_for_visit')


@dataclass
class Patient:
    id: str
    full_name: str
    date_of_birth: str
    contact_number: str
    reason_for_visit: str
    created_at: Optional[datetime] = None


@dataclass
class QueueEntry:
    id: str
    patient_id: str
    queue_number: int
    status: str = WAITING
    estimated_wait_time: Optional[int] = None
    created_at: Optional[datetime] = None
    called_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_QUEUE_STATUSES


@dataclass
class MedicineLine:
    """One prescribed medicine as written by the doctor."""
    medicine_name: str
    dosage: str = ''
    frequency: str = ''
    duration: str = ''

    def as_dict(self) -> dict:
        return {
            'medicine_name': self.medicine_name,
            'dosage': self.dosage,
            'frequency': self.frequency,
            'duration': self.duration,
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'MedicineLine':
        return cls(
            medicine_name=data.get('medicine_name') or '',
            dosage=data.get('dosage') or '',
            frequency=data.get('frequency') or '',
            duration=data.get('duration') or '',
        )


@dataclass
class Prescription:
    id: str
    patient_id: str
    diagnosis: str
    doctor_notes: str = ''
    medicines: list[MedicineLine] = field(default_factory=list)
    status: str = PENDING
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


@dataclass
class Medicine:
    id: str
    name: str
    category: str
    price: Decimal
    in_stock: bool = True
    stock: int = 0
    description: str = ''
    # Defaults copied into a prescription line when the doctor leaves them blank
    dosage: str = ''
    frequency: str = ''
    duration: str = ''


@dataclass
class OrderLine:
    """Snapshot of a catalog medicine at the time the order was placed."""
    medicine_id: str
    medicine_name: str
    unit_price: Decimal
    quantity: int

    @property
    def subtotal(self) -> Decimal:
        return self.unit_price * self.quantity

    def as_dict(self) -> dict:
        return {
            'medicine_id': self.medicine_id,
            'medicine_name': self.medicine_name,
            'unit_price': str(self.unit_price),
            'quantity': self.quantity,
            'subtotal': str(self.subtotal),
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'OrderLine':
        return cls(
            medicine_id=str(data.get('medicine_id') or ''),
            medicine_name=data.get('medicine_name') or '',
            unit_price=Decimal(str(data.get('unit_price') or '0')),
            quantity=int(data.get('quantity') or 0),
        )


@dataclass
class MedicineOrder:
    id: str
    order_number: int
    lines: list[OrderLine]
    total: Decimal
    status: str = ORDER_PENDING
    patient_id: Optional[str] = None
    created_at: Optional[datetime] = None
    collected_at: Optional[datetime] = None

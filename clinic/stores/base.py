"""
Storage contracts shared by the relational and tree backends.

Each entity gets one abstract store; the services layer only ever talks
to these interfaces and receives a :class:`Stores` bundle from
:func:`clinic.stores.get_stores`.  Implementations return the dataclasses
from :mod:`clinic.records` and raise the exceptions from
:mod:`clinic.exceptions` (``RecordNotFound`` for unknown identifiers,
``StoreError`` for transport or database failures).
"""
from __future__ import annotations

import abc
from contextlib import nullcontext
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Callable, ContextManager, Iterable, Optional, Sequence

from django.conf import settings

from ..exceptions import MissingField
from ..records import Medicine, MedicineLine, MedicineOrder, OrderLine, Patient, Prescription, QueueEntry


def require_fields(values: dict, names: Sequence[str]) -> dict:
    """Return ``values`` restricted to ``names`` with strings stripped.

    Raises :class:`MissingField` for the first name whose value is empty.
    """
    cleaned = {}
    for name in names:
        value = values.get(name)
        if isinstance(value, str):
            value = value.strip()
        if value in (None, ''):
            raise MissingField(name)
        cleaned[name] = value
    return cleaned


def estimated_wait(queue_number: int) -> int:
    return queue_number * settings.CLINIC_MINUTES_PER_SLOT


class SequenceIssuer(abc.ABC):
    @abc.abstractmethod
    def issue_identifier(self) -> str:
        """Return a new opaque, globally unique record identifier."""

    @abc.abstractmethod
    def issue_sequence_number(self, counter_name: str) -> int:
        """Atomically increment ``counter_name`` and return the new value.

        Raises ``SequenceUnavailable`` when the increment does not commit.
        """


class PatientStore(abc.ABC):
    @abc.abstractmethod
    def create(self, **fields: Any) -> Patient: ...

    @abc.abstractmethod
    def get(self, patient_id: str) -> Patient: ...

    @abc.abstractmethod
    def list(self) -> list[Patient]:
        """All patients, oldest first."""

    @abc.abstractmethod
    def get_many(self, patient_ids: Iterable[str]) -> dict[str, Patient]:
        """Patients keyed by id; unknown ids are simply absent."""


class QueueStore(abc.ABC):
    @abc.abstractmethod
    def create(self, patient_id: str, queue_number: int) -> QueueEntry: ...

    @abc.abstractmethod
    def get(self, entry_id: str) -> QueueEntry: ...

    @abc.abstractmethod
    def set_status(self, entry_id: str, status: str) -> QueueEntry:
        """Write ``status`` without checking the current one.

        Moving to ``being_examined`` stamps ``called_at`` and moving to
        ``done`` stamps ``completed_at``.
        """

    @abc.abstractmethod
    def remove(self, entry_id: str) -> None: ...

    @abc.abstractmethod
    def reorder(self, entry_ids: Sequence[str]) -> None:
        """Assign queue numbers 1..N in the given order.

        Entries are written one at a time; a failure part way through
        leaves the earlier entries renumbered.
        """

    @abc.abstractmethod
    def list_active(self) -> list[QueueEntry]:
        """Waiting and being-examined entries by ascending queue number."""

    @abc.abstractmethod
    def list_all(self) -> list[QueueEntry]: ...


class PrescriptionStore(abc.ABC):
    @abc.abstractmethod
    def create(self, patient_id: str, diagnosis: str, notes: str = '',
               medicine_lines: Sequence[MedicineLine] = ()) -> Prescription: ...

    @abc.abstractmethod
    def get(self, prescription_id: str) -> Prescription: ...

    @abc.abstractmethod
    def list_by_status(self, status: str) -> list[Prescription]:
        """Newest first."""

    @abc.abstractmethod
    def list_all(self) -> list[Prescription]: ...

    @abc.abstractmethod
    def set_status(self, prescription_id: str, status: str) -> Prescription: ...


class MedicineCatalog(abc.ABC):
    @abc.abstractmethod
    def list(self) -> list[Medicine]:
        """Catalog ordered by name."""

    @abc.abstractmethod
    def get(self, medicine_id: str) -> Medicine: ...

    @abc.abstractmethod
    def create(self, **fields: Any) -> Medicine: ...


class MedicineOrderStore(abc.ABC):
    @abc.abstractmethod
    def create(self, order_number: int, lines: Sequence[OrderLine], total: Decimal,
               patient_id: Optional[str] = None) -> MedicineOrder: ...

    @abc.abstractmethod
    def get(self, order_id: str) -> MedicineOrder: ...

    @abc.abstractmethod
    def set_status(self, order_id: str, status: str) -> MedicineOrder:
        """Moving to ``collected`` stamps ``collected_at``."""


@dataclass
class Stores:
    """Everything one backend provides, handed to the services layer."""
    backend: str
    issuer: SequenceIssuer
    patients: PatientStore
    queue: QueueStore
    prescriptions: PrescriptionStore
    medicines: MedicineCatalog
    orders: MedicineOrderStore
    # Wraps multi-write flows; only the relational backend can honour it
    atomic: Callable[[], ContextManager] = field(default=nullcontext)
